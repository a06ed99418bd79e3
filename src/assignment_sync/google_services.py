"""OAuth2 credentials and API service construction for Classroom + Tasks."""

from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from src.assignment_sync.errors import ConfigMissing
from src.assignment_sync.logging import get_logger

log = get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/classroom.courses.readonly",
    "https://www.googleapis.com/auth/classroom.coursework.me.readonly",
    "https://www.googleapis.com/auth/tasks",
]


def load_credentials(
    client_secret_path: str,
    token_path: str,
    scopes: list[str] = SCOPES,
) -> Credentials:
    """Load the cached token, refreshing or re-running the OAuth flow as needed.

    Raises:
        ConfigMissing: No usable token and no client secret to start a flow from.
    """
    creds = None
    token_file = Path(token_path).expanduser()
    if token_file.exists():
        try:
            creds = Credentials.from_authorized_user_file(str(token_file), scopes)
        except ValueError as e:
            log.warning("google_token_unreadable", path=str(token_file), error=str(e))

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
        log.info("google_token_refreshed")
    else:
        secret_file = Path(client_secret_path).expanduser()
        if not secret_file.exists():
            raise ConfigMissing("google_client_secret")
        flow = InstalledAppFlow.from_client_secrets_file(str(secret_file), scopes)
        creds = flow.run_local_server(port=0)
        log.info("google_oauth_completed")

    token_file.parent.mkdir(parents=True, exist_ok=True)
    token_file.write_text(creds.to_json(), encoding="utf-8")
    return creds


def build_service(name: str, version: str, credentials: Credentials):
    """Build a googleapiclient resource without the on-disk discovery cache."""
    return build(name, version, credentials=credentials, cache_discovery=False)
