"""User-scoped key-value settings (credentials, task list, schedule).

Stored as a flat JSON object of strings at SyncConfig.settings_path with
owner-only permissions, since it holds the portal password.
"""

import json
import os
from pathlib import Path

from src.assignment_sync.errors import ConfigMissing
from src.assignment_sync.logging import get_logger

log = get_logger(__name__)

USERID = "userid"
PASSWORD = "password"
TASK_LIST_NAME = "taskListName"
TASK_LIST_ID = "taskListId"
TRIGGER_HOUR = "triggerHour"
CLEANUP_DAYS = "cleanupDays"

DEFAULTS = {
    TASK_LIST_NAME: "大学課題",
    TRIGGER_HOUR: "6",
    CLEANUP_DAYS: "30",
}


class SettingsStore:
    """JSON-file implementation of the per-user settings store."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)

    def _update(self, values: dict[str, str]) -> None:
        data = self._load()
        data.update(values)
        self._save(data)

    def get_setting(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if value not in (None, "") else None

    def require(self, key: str) -> str:
        """Return a setting or raise ConfigMissing."""
        value = self.get_setting(key)
        if value is None:
            raise ConfigMissing(key)
        return value

    def get_int(self, key: str) -> int:
        """Integer setting, falling back to DEFAULTS."""
        value = self.get_setting(key) or DEFAULTS[key]
        try:
            return int(value)
        except ValueError:
            log.warning("setting_not_integer", key=key, value=value)
            return int(DEFAULTS[key])

    def save_auth(self, userid: str, password: str) -> None:
        if not userid or not password:
            raise ValueError("userid and password are required")
        self._update({USERID: str(userid), PASSWORD: str(password)})
        log.info("credentials_saved")

    def save_tasks(self, task_list_name: str, trigger_hour: int, cleanup_days: int) -> None:
        if not task_list_name:
            raise ValueError("task list name is required")
        if not 0 <= int(trigger_hour) <= 23:
            raise ValueError(f"trigger hour must be 0-23, got {trigger_hour}")
        if int(cleanup_days) < 0:
            raise ValueError(f"cleanup days must be >= 0, got {cleanup_days}")
        self._update(
            {
                TASK_LIST_NAME: str(task_list_name),
                TRIGGER_HOUR: str(int(trigger_hour)),
                CLEANUP_DAYS: str(int(cleanup_days)),
            }
        )
        log.info("task_settings_saved", task_list=task_list_name, hour=trigger_hour)

    def set_task_list_id(self, list_id: str) -> None:
        self._update({TASK_LIST_ID: list_id})

    def tasks_settings(self) -> dict[str, str]:
        """Current task settings with defaults filled in."""
        return {key: self.get_setting(key) or default for key, default in DEFAULTS.items()}

    def reset_all(self) -> None:
        """Delete every stored setting."""
        self.path.unlink(missing_ok=True)
        log.info("settings_reset")
