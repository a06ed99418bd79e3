"""Shared URL and SAML-form string helpers for the login chase."""

import html
import re
from urllib.parse import urlsplit

_PORT_443_RE = re.compile(r"^(https?://[^/:]+):443(?=/|$)")
_NON_BASE64_RE = re.compile(r"[^A-Za-z0-9+/]")


def decode_html_entities(text: str) -> str:
    """Decode named and numeric entities (&amp;, &#x3a;, &#47; ...)."""
    if not text:
        return text
    return html.unescape(text)


def strip_port_443(url: str) -> str:
    """Drop an explicit :443 port that sits right before the path."""
    if not url:
        return url
    return _PORT_443_RE.sub(r"\1", url)


def normalize_url(url: str) -> str:
    return strip_port_443(decode_html_entities(url))


def origin_of(url: str) -> str:
    """scheme://host[:port] of an absolute URL, "" for relative ones."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


def resolve_url(url: str, origin: str) -> str:
    """Resolve a server-relative or bare path against an origin.

    Absolute URLs pass through unchanged. Bare paths ("module.php/x") are
    treated as root-relative, which is how the portal emits them.
    """
    if not url or url.startswith(("http://", "https://")):
        return url
    base = origin.rstrip("/")
    return base + ("" if url.startswith("/") else "/") + url


def clean_base64(value: str) -> str:
    """Entity-decode a SAML assertion and re-pad it to a valid base64 length."""
    if not value:
        return ""
    decoded = html.unescape(value)
    body = _NON_BASE64_RE.sub("", decoded)
    return body + "=" * ((4 - len(body) % 4) % 4)


def clean_relay_state(value: str) -> str:
    """Entity-decode a RelayState value and drop embedded line breaks."""
    if not value:
        return ""
    return html.unescape(value).replace("\r", "").replace("\n", "").strip()
