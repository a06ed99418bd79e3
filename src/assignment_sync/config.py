"""Sync configuration loaded from environment variables.

Everything that used to be a scattered module constant (portal URLs, header
pools, redirect cap, pacing) lives here and is loaded once per process.
"""

from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.6 Mobile/15E148 Safari/604.1",
]


class SyncConfig(BaseSettings):
    """Sync configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # WebClass portal + OpenAM identity provider
    webclass_url: str = Field(
        default="https://rpwebcls.meijo-u.ac.jp",
        description="WebClass portal base URL",
    )
    sso_url: str = Field(
        default="https://slbsso.meijo-u.ac.jp/opensso/json/authenticate",
        description="OpenAM JSON authentication endpoint",
    )
    acs_path: str = Field(
        default="/simplesaml/module.php/saml/sp/saml2-acs.php/default-sp",
        description="SAML assertion consumer path on the portal (fallback form target)",
    )
    sso_token_cookie: str = Field(
        default="iPlanetDirectoryPro",
        description="Cookie name the SSO token is stored under",
    )
    landing_markers: list[str] = Field(
        default=["コースリスト", "cl-courseList_courseLink"],
        description="Strings that identify the authenticated dashboard",
    )

    # HTTP
    user_agents: list[str] = Field(default=DEFAULT_USER_AGENTS)
    max_redirects: int = Field(default=15, description="Redirect cap for every chase")
    http_timeout: float = Field(default=30.0, description="Per-request timeout (s)")
    request_delay_seconds: float = Field(
        default=0.5,
        description="Pause between course page fetches",
    )

    # Reconciliation
    timezone: str = Field(default="Asia/Tokyo", description="Timezone of portal dates")
    urgent_days: int = Field(default=3, description="Due within N days -> urgent title")
    expiry_grace_hours: int = Field(
        default=24,
        description="Unregistered records overdue by more than this are EXPIRED",
    )
    max_registrations_per_run: int | None = Field(
        default=None,
        description="Upper bound on sink inserts per reconciliation (None = unlimited)",
    )

    # Paths
    data_dir: str = Field(default="data", description="Directory for sheet CSV files")
    settings_file: str = Field(
        default="~/.config/assignment-sync/settings.json",
        description="User-scoped settings store",
    )
    google_client_secret: str = Field(
        default="credentials.json",
        description="OAuth client secret for Classroom + Tasks",
    )
    google_token_file: str = Field(
        default="data/google_token.json",
        description="Cached OAuth token",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def portal_origin(self) -> str:
        return self.webclass_url.rstrip("/")

    @property
    def sso_origin(self) -> str:
        scheme, _, rest = self.sso_url.partition("://")
        return f"{scheme}://{rest.split('/', 1)[0]}"

    @property
    def acs_url(self) -> str:
        return self.portal_origin + self.acs_path

    @property
    def saml_login_url(self) -> str:
        return f"{self.portal_origin}/webclass/login.php?auth_mode=SAML"

    @property
    def settings_path(self) -> Path:
        return Path(self.settings_file).expanduser()


# Singleton pattern
_config: SyncConfig | None = None


def get_config() -> SyncConfig:
    """Get the sync configuration singleton.

    Returns:
        SyncConfig: Sync configuration instance
    """
    global _config
    if _config is None:
        _config = SyncConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None
