"""OpenAM SSO + SAML login for the WebClass portal.

Flow (confirmed against the portal, 2024):
  1. POST {sso_url} with no body            -> {"authId": ...}
  2. POST {sso_url} with NameCallback/PasswordCallback filled in
                                              -> {"tokenId": ..., "successUrl": ...}
  3. GET {portal}/webclass/login.php?auth_mode=SAML and chase the result:
       HTTP Location headers, an auto-submitting SAMLResponse form that has
       to be POSTed to the ACS by hand, and script/meta-refresh redirects,
       until the course dashboard shows up.

Redirects are chased manually so every hop's cookies end up in the
AuthSession and so SAML form posts can be replayed.
"""

import json
import re
from enum import Enum
from urllib.parse import urlencode

from src.assignment_sync.config import SyncConfig, get_config
from src.assignment_sync.errors import (
    AuthenticationError,
    RedirectLoop,
    RedirectUnresolved,
)
from src.assignment_sync.http import AuthSession, HttpResponse, SessionClient
from src.assignment_sync.logging import get_logger
from src.assignment_sync.utils import (
    clean_base64,
    clean_relay_state,
    decode_html_entities,
    normalize_url,
    resolve_url,
)

log = get_logger(__name__)

SAML_RESPONSE_RE = re.compile(r'<input type="hidden" name="SAMLResponse" value="([^"]+)"')
RELAY_STATE_RE = re.compile(r'<input type="hidden" name="RelayState" value="([^"]+)"')
FORM_ACTION_RE = re.compile(r'<form method="post" action="([^"]+)"')
SCRIPT_REDIRECT_RE = re.compile(
    r"""(?:window\.location\.href\s*=\s*|content\s*=\s*["']0;\s*URL=)['"]?([^"']+)["']""",
    re.IGNORECASE,
)

# After this many iterations a plain 200 page is accepted as the landing page.
FALLBACK_AFTER = 5


class AuthState(str, Enum):
    START = "START"
    SSO_CHALLENGE = "SSO_CHALLENGE"
    SSO_SUBMIT = "SSO_SUBMIT"
    SAML_REDIRECT_CHASE = "SAML_REDIRECT_CHASE"
    AUTHENTICATED = "AUTHENTICATED"
    FAILED = "FAILED"


def find_script_redirect(body: str) -> str | None:
    """Target of a window.location.href / meta-refresh redirect, if any."""
    match = SCRIPT_REDIRECT_RE.search(body)
    return match.group(1) if match else None


class SsoAuthenticator:
    """Drives the SSO handshake and SAML redirect chase for one AuthSession."""

    def __init__(self, client: SessionClient, config: SyncConfig | None = None) -> None:
        self.client = client
        self.config = config or get_config()
        self.state = AuthState.START

    def _enter(self, state: AuthState, **context) -> None:
        self.state = state
        log.debug("auth_state", state=state.value, **context)

    def _fail(self, error: Exception) -> Exception:
        self._enter(AuthState.FAILED, error=str(error))
        log.error("authentication_failed", error=str(error), type=type(error).__name__)
        return error

    def login(self, session: AuthSession, userid: str, password: str) -> str:
        """Authenticate and return the URL of the portal dashboard.

        Raises:
            AuthenticationError: SSO rejected the credentials or replied with garbage.
            RedirectLoop: The chase exceeded max_redirects iterations.
            RedirectUnresolved: A response had no recognizable next step.
        """
        log.info("authentication_started", url=self.config.sso_url)
        self._enter(AuthState.START)

        auth_id = self._challenge(session)
        token = self._submit(session, auth_id, userid, password)
        if token:
            session.cookies[self.config.sso_token_cookie] = token
        log.info("sso_authenticated")

        landing_url = self._chase(session, self.config.saml_login_url)
        log.info("authentication_succeeded", url=landing_url)
        return landing_url

    # -- SSO ---------------------------------------------------------------

    def _post_json(self, session: AuthSession, payload: dict | None) -> dict:
        response = self.client.send(
            session,
            self.config.sso_url,
            method="POST",
            headers={"Content-Type": "application/json"},
            body=json.dumps(payload) if payload is not None else None,
        )
        try:
            data = json.loads(response.body)
        except ValueError:
            raise self._fail(
                AuthenticationError(
                    f"SSO endpoint returned non-JSON (status {response.status_code})"
                )
            )
        if not isinstance(data, dict):
            raise self._fail(AuthenticationError("SSO endpoint returned unexpected JSON"))
        return data

    def _challenge(self, session: AuthSession) -> str:
        self._enter(AuthState.SSO_CHALLENGE)
        data = self._post_json(session, None)
        auth_id = data.get("authId")
        if not auth_id:
            raise self._fail(
                AuthenticationError(
                    "SSO challenge failed: " + str(data.get("message") or "no authId")
                )
            )
        return auth_id

    def _submit(self, session: AuthSession, auth_id: str, userid: str, password: str) -> str | None:
        self._enter(AuthState.SSO_SUBMIT)
        payload = {
            "authId": auth_id,
            "callbacks": [
                {
                    "type": "NameCallback",
                    "output": [{"name": "prompt", "value": "ユーザー名:"}],
                    "input": [{"name": "IDToken1", "value": userid}],
                },
                {
                    "type": "PasswordCallback",
                    "output": [{"name": "prompt", "value": "パスワード:"}],
                    "input": [{"name": "IDToken2", "value": password}],
                    "echoPassword": False,
                },
            ],
        }
        data = self._post_json(session, payload)
        if not data.get("tokenId") and not data.get("successUrl"):
            raise self._fail(
                AuthenticationError(
                    "SSO authentication failed: " + str(data.get("message") or "unknown error")
                )
            )
        return data.get("tokenId")

    # -- SAML redirect chase -----------------------------------------------

    def _is_landing(self, response: HttpResponse) -> bool:
        return response.status_code == 200 and any(
            marker in response.body for marker in self.config.landing_markers
        )

    def _saml_post(self, body: str) -> tuple[str, str] | None:
        """(acs_url, form body) for an embedded SAMLResponse form, else None."""
        saml_match = SAML_RESPONSE_RE.search(body)
        if not saml_match:
            return None
        relay_match = RELAY_STATE_RE.search(body)
        action_match = FORM_ACTION_RE.search(body)

        assertion = clean_base64(saml_match.group(1))
        relay_state = clean_relay_state(relay_match.group(1) if relay_match else "")
        action = action_match.group(1) if action_match else self.config.acs_url
        acs_url = resolve_url(normalize_url(action), self.config.portal_origin)
        form = urlencode({"SAMLResponse": assertion, "RelayState": relay_state})
        return acs_url, form

    def _resolve_location(self, location: str) -> str:
        """Absolute URL for a Location header.

        Relative targets go to the portal only when the header names the
        portal origin; anything else is taken to be on the identity provider.
        """
        location = normalize_url(location)
        if self.config.portal_origin in location:
            return resolve_url(location, self.config.portal_origin)
        return resolve_url(location, self.config.sso_origin)

    def _chase(self, session: AuthSession, start_url: str) -> str:
        self._enter(AuthState.SAML_REDIRECT_CHASE, url=start_url)
        current_url = start_url
        pending_post: tuple[str, str] | None = None

        for i in range(self.config.max_redirects):
            if pending_post:
                acs_url, form = pending_post
                pending_post = None
                log.debug("saml_post", url=acs_url)
                response = self.client.send(
                    session,
                    acs_url,
                    method="POST",
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    body=form,
                )
            else:
                response = self.client.send(session, current_url)

            if self._is_landing(response):
                self._enter(AuthState.AUTHENTICATED, url=current_url)
                return current_url

            saml = self._saml_post(response.body)
            if saml:
                pending_post = saml
                location = response.header("location")
                if location:
                    current_url = self._resolve_location(location)
                continue

            location = response.header("location")
            if location:
                current_url = self._resolve_location(location)
                log.debug("redirect_location", iteration=i, url=current_url)
                continue

            script_target = find_script_redirect(response.body)
            if script_target:
                current_url = resolve_url(
                    normalize_url(script_target), self.config.portal_origin
                )
                log.debug("redirect_script", iteration=i, url=current_url)
                continue

            if i >= FALLBACK_AFTER and response.status_code == 200:
                log.warning(
                    "landing_marker_missing",
                    url=current_url,
                    iterations=i + 1,
                )
                self._enter(AuthState.AUTHENTICATED, url=current_url)
                return current_url

            raise self._fail(
                RedirectUnresolved(
                    f"Cannot follow redirect: status {response.status_code}, "
                    f"URL {decode_html_entities(current_url)}"
                )
            )

        raise self._fail(
            RedirectLoop(f"Exceeded {self.config.max_redirects} redirects during login")
        )
