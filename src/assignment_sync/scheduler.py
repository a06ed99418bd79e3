"""Daily trigger managed as a single tagged crontab line."""

import subprocess
from typing import Callable

from src.assignment_sync.logging import get_logger

log = get_logger(__name__)

CRON_TAG = "# assignment-sync daily run"

Runner = Callable[..., subprocess.CompletedProcess]


class CronScheduler:
    """Keeps exactly one crontab entry that runs `command` daily at a given hour."""

    def __init__(self, command: str, runner: Runner = subprocess.run) -> None:
        self.command = command
        self.runner = runner

    def entry(self, hour: int) -> str:
        return f"0 {hour} * * * {self.command} {CRON_TAG}"

    def _read(self) -> list[str]:
        result = self.runner(["crontab", "-l"], capture_output=True, text=True)
        if result.returncode != 0:
            # "no crontab for <user>" is a normal empty state
            return []
        return result.stdout.splitlines()

    def _write(self, lines: list[str]) -> None:
        content = "\n".join(lines) + "\n" if lines else ""
        result = self.runner(["crontab", "-"], input=content, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"crontab update failed: {result.stderr.strip()}")

    def register_daily(self, hour: int) -> bool:
        """Install the daily entry.

        Returns:
            False if the identical entry was already the only tagged line.
        """
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be 0-23, got {hour}")
        lines = self._read()
        tagged = [line for line in lines if line.endswith(CRON_TAG)]
        wanted = self.entry(hour)
        if tagged == [wanted]:
            log.debug("trigger_unchanged", hour=hour)
            return False

        kept = [line for line in lines if not line.endswith(CRON_TAG)]
        self._write(kept + [wanted])
        log.info("trigger_registered", hour=hour, replaced=len(tagged))
        return True

    def remove(self) -> int:
        """Remove every tagged entry. Returns how many were removed."""
        lines = self._read()
        kept = [line for line in lines if not line.endswith(CRON_TAG)]
        removed = len(lines) - len(kept)
        if removed:
            self._write(kept)
            log.info("trigger_removed", count=removed)
        return removed
