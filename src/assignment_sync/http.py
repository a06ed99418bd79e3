"""Cookie-carrying HTTP client for the WebClass portal.

The portal is session-cookie bound, so the jar is an explicit AuthSession
value handed to every send() call instead of living inside the client. One
scan owns one AuthSession; nothing here interprets page content.

Redirects are never followed by requests itself: every hop goes through
send() so Set-Cookie headers from intermediate responses land in the jar.
"""

import random
from typing import Callable, Protocol

import requests
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.assignment_sync.config import SyncConfig, get_config
from src.assignment_sync.errors import RedirectLoop, TransientError, TransportError
from src.assignment_sync.logging import get_logger
from src.assignment_sync.utils import normalize_url, origin_of, resolve_url

logger = get_logger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class HttpResponse(BaseModel):
    """Transport-neutral response. Header names are lower-cased."""

    status_code: int
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    set_cookies: list[str] = Field(default_factory=list)

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def is_redirect(self) -> bool:
        return self.status_code in REDIRECT_STATUSES and bool(self.header("location"))


class AuthSession(BaseModel):
    """Per-scan cookie jar. Never persisted, never shared between scans."""

    cookies: dict[str, str] = Field(default_factory=dict)

    def merge(self, set_cookie_headers: list[str]) -> None:
        """Apply Set-Cookie headers; the last value per cookie name wins."""
        for header in set_cookie_headers:
            pair = header.split(";", 1)[0]
            if "=" not in pair:
                continue
            name, value = pair.split("=", 1)
            name = name.strip()
            if name:
                self.cookies[name] = value.strip()

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


class Transport(Protocol):
    def __call__(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: str | bytes | None,
    ) -> HttpResponse: ...


def _set_cookie_headers(response: requests.Response) -> list[str]:
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return list(raw_headers.getlist("Set-Cookie"))
    value = response.headers.get("Set-Cookie")
    return [value] if value else []


class RequestsTransport:
    """Single-request transport over requests, with retry on network errors."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    def __call__(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: str | bytes | None,
    ) -> HttpResponse:
        try:
            response = requests.request(
                method,
                url,
                headers=headers,
                data=body,
                allow_redirects=False,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("http_transient_error", url=url, error=str(e))
            raise TransientError(f"{method} {url} failed: {e}") from e
        except requests.RequestException as e:
            logger.warning("http_transport_error", url=url, error=str(e), type=type(e).__name__)
            raise TransportError(f"{method} {url} failed: {type(e).__name__}: {e}") from e

        return HttpResponse(
            status_code=response.status_code,
            url=url,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.text,
            set_cookies=_set_cookie_headers(response),
        )


class SessionClient:
    """Issues requests on behalf of one AuthSession."""

    def __init__(
        self,
        transport: Transport | None = None,
        config: SyncConfig | None = None,
        choose: Callable[[list[str]], str] = random.choice,
    ) -> None:
        self.config = config or get_config()
        self.transport = transport or RequestsTransport(timeout=self.config.http_timeout)
        self._choose = choose

    def build_headers(self, session: AuthSession, url: str) -> dict[str, str]:
        headers = {
            "User-Agent": self._choose(self.config.user_agents),
            "Accept": ACCEPT,
            "Referer": url,
        }
        cookie = session.cookie_header()
        if cookie:
            headers["Cookie"] = cookie
        return headers

    def send(
        self,
        session: AuthSession,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | bytes | None = None,
        follow_redirects: bool = False,
    ) -> HttpResponse:
        """Send a request, merging response cookies into the session jar.

        Non-2xx statuses are returned, not raised.

        Raises:
            RedirectLoop: follow_redirects is set and the chain exceeds max_redirects.
            TransientError: the network failed after retries.
            TransportError: the exchange broke in a non-retryable way.
        """
        current = normalize_url(url)
        hops = 0
        while True:
            request_headers = self.build_headers(session, current)
            if headers:
                request_headers.update(headers)

            response = self.transport(method, current, request_headers, body)
            session.merge(response.set_cookies)
            logger.debug(
                "http_response",
                method=method,
                url=current,
                status=response.status_code,
            )

            if not follow_redirects or not response.is_redirect:
                return response

            hops += 1
            if hops > self.config.max_redirects:
                raise RedirectLoop(
                    f"More than {self.config.max_redirects} redirects starting at {url}"
                )
            location = normalize_url(response.header("location") or "")
            current = resolve_url(location, origin_of(current))
            method, body, headers = "GET", None, None
