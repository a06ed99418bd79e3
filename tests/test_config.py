import pytest
from pydantic import ValidationError

from src.assignment_sync.config import SyncConfig, get_config, reset_config


class TestSyncConfig:
    def test_derived_urls(self):
        config = SyncConfig(
            webclass_url="https://portal.example/",
            sso_url="https://idp.example:8443/opensso/json/authenticate",
        )
        assert config.portal_origin == "https://portal.example"
        assert config.sso_origin == "https://idp.example:8443"
        assert config.saml_login_url == "https://portal.example/webclass/login.php?auth_mode=SAML"
        assert config.acs_url.startswith("https://portal.example/simplesaml/")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MAX_REDIRECTS", "4")
        monkeypatch.setenv("TIMEZONE", "UTC")
        config = SyncConfig()
        assert config.max_redirects == 4
        assert config.tzinfo.key == "UTC"

    def test_frozen(self):
        with pytest.raises(ValidationError):
            SyncConfig().max_redirects = 3


def test_singleton_reset(monkeypatch):
    first = get_config()
    assert get_config() is first
    monkeypatch.setenv("URGENT_DAYS", "5")
    reset_config()
    assert get_config().urgent_days == 5
