"""Configure the assignment sync.

Usage:
    python scripts/setup_sync.py auth --userid s123456        # prompts for password
    python scripts/setup_sync.py tasks --list-name 大学課題 --hour 6 --cleanup-days 30
    python scripts/setup_sync.py show
    python scripts/setup_sync.py reset                         # settings + cron entry

"tasks" finds or creates the Google Tasks list, stores its id and installs
the daily crontab entry for scripts/run_sync.py.
"""

import argparse
import getpass
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from google.auth.exceptions import GoogleAuthError

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.assignment_sync import settings as keys  # noqa: E402
from src.assignment_sync.config import get_config  # noqa: E402
from src.assignment_sync.errors import SyncError  # noqa: E402
from src.assignment_sync.google_services import build_service, load_credentials  # noqa: E402
from src.assignment_sync.logging import setup_logging  # noqa: E402
from src.assignment_sync.runner import reset_all, setup_tasks  # noqa: E402
from src.assignment_sync.scheduler import CronScheduler  # noqa: E402
from src.assignment_sync.settings import SettingsStore  # noqa: E402
from src.assignment_sync.tasks import TaskSink  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _run_command() -> str:
    script = PROJECT_ROOT / "scripts" / "run_sync.py"
    return f"cd {PROJECT_ROOT} && {sys.executable} {script}"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Configure the assignment sync.")
    sub = parser.add_subparsers(dest="command", required=True)

    auth = sub.add_parser("auth", help="Store WebClass credentials.")
    auth.add_argument("--userid", required=True)

    tasks = sub.add_parser("tasks", help="Set up the task list and daily trigger.")
    tasks.add_argument("--list-name", default=keys.DEFAULTS[keys.TASK_LIST_NAME])
    tasks.add_argument("--hour", type=int, default=int(keys.DEFAULTS[keys.TRIGGER_HOUR]))
    tasks.add_argument(
        "--cleanup-days", type=int, default=int(keys.DEFAULTS[keys.CLEANUP_DAYS])
    )

    sub.add_parser("show", help="Print current task settings.")
    sub.add_parser("reset", help="Delete all settings and the daily trigger.")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)
    settings = SettingsStore(config.settings_path)
    scheduler = CronScheduler(_run_command())

    try:
        if args.command == "auth":
            password = getpass.getpass("WebClass password: ")
            settings.save_auth(args.userid, password)
            print("Credentials saved.")
        elif args.command == "tasks":
            credentials = load_credentials(config.google_client_secret, config.google_token_file)
            sink = TaskSink(build_service("tasks", "v1", credentials))
            list_id = setup_tasks(
                settings, sink, scheduler, args.list_name, args.hour, args.cleanup_days
            )
            print(f"Linked task list {args.list_name!r} ({list_id}); daily run at {args.hour}:00.")
        elif args.command == "show":
            for key, value in settings.tasks_settings().items():
                print(f"  {key:<14} {value}")
            print(f"  {keys.TASK_LIST_ID:<14} {settings.get_setting(keys.TASK_LIST_ID) or '-'}")
        elif args.command == "reset":
            reset_all(settings, scheduler)
            print("All settings and the daily trigger were removed.")
    except (SyncError, GoogleAuthError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
