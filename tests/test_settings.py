import json
import stat

import pytest

from src.assignment_sync import settings as keys
from src.assignment_sync.errors import ConfigMissing
from src.assignment_sync.settings import SettingsStore


@pytest.fixture
def store(tmp_path):
    return SettingsStore(tmp_path / "cfg" / "settings.json")


class TestSettingsStore:
    def test_require_missing(self, store):
        with pytest.raises(ConfigMissing) as excinfo:
            store.require(keys.USERID)
        assert excinfo.value.key == "userid"

    def test_save_auth(self, store):
        store.save_auth("s123", "secret")
        assert store.require(keys.USERID) == "s123"
        assert store.require(keys.PASSWORD) == "secret"
        assert stat.S_IMODE(store.path.stat().st_mode) == 0o600

    def test_save_auth_rejects_blank(self, store):
        with pytest.raises(ValueError):
            store.save_auth("s123", "")

    def test_defaults(self, store):
        assert store.tasks_settings() == {
            "taskListName": "大学課題",
            "triggerHour": "6",
            "cleanupDays": "30",
        }
        assert store.get_int(keys.CLEANUP_DAYS) == 30

    def test_save_tasks_keeps_credentials(self, store):
        store.save_auth("s123", "secret")
        store.save_tasks("Homework", 7, 14)
        store.set_task_list_id("list-9")

        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data == {
            "userid": "s123",
            "password": "secret",
            "taskListName": "Homework",
            "triggerHour": "7",
            "cleanupDays": "14",
            "taskListId": "list-9",
        }
        assert store.get_int(keys.CLEANUP_DAYS) == 14

    @pytest.mark.parametrize("hour, days", [(24, 30), (-1, 30), (6, -1)])
    def test_save_tasks_validates(self, store, hour, days):
        with pytest.raises(ValueError):
            store.save_tasks("Homework", hour, days)

    def test_empty_value_counts_as_missing(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps({"taskListId": "", "cleanupDays": "abc"}), encoding="utf-8")
        assert store.get_setting(keys.TASK_LIST_ID) is None
        assert store.get_int(keys.CLEANUP_DAYS) == 30

    def test_reset_all(self, store):
        store.save_auth("s123", "secret")
        store.reset_all()
        assert not store.path.exists()
        assert store.get_setting(keys.USERID) is None
        store.reset_all()
