"""Run the daily assignment sync (WebClass + Classroom -> Google Tasks).

Run with:  python scripts/run_sync.py
Preview:   python scripts/run_sync.py --dry-run            # scan only, no writes
One side:  python scripts/run_sync.py --dry-run --source webclass

Exit codes:
  0 = every phase succeeded
  1 = fatal error (missing settings, task list gone) or a phase failed
"""

import argparse
import os
import sys

from dotenv import load_dotenv
from google.auth.exceptions import GoogleAuthError

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.assignment_sync import settings as keys  # noqa: E402
from src.assignment_sync.config import get_config  # noqa: E402
from src.assignment_sync.errors import ConfigMissing, SinkListInvalid, SyncError  # noqa: E402
from src.assignment_sync.logging import setup_logging  # noqa: E402
from src.assignment_sync.models import AssignmentRecord  # noqa: E402
from src.assignment_sync.reconcile import sort_by_due  # noqa: E402
from src.assignment_sync.runner import build_context, run_daily  # noqa: E402
from src.assignment_sync.scanner import CourseScanner  # noqa: E402
from src.assignment_sync.storage import SheetStore  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync WebClass and Classroom assignments into Google Tasks.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scan and print assignments without touching sheets or the task list.",
    )
    parser.add_argument(
        "--source",
        choices=["webclass", "classroom", "all"],
        default="all",
        help="Which source to scan in --dry-run mode (default: all).",
    )
    return parser.parse_args()


def _print_table(records: list[AssignmentRecord]) -> None:
    if not records:
        print("  (no assignments)")
        return
    for r in sort_by_due(records):
        due = r.due_at or "-"
        print(f"  {due:<17} {r.course_name[:24]:<24} {r.title[:50]}")


def _dry_run(source: str) -> int:
    config = get_config()
    context = build_context(config)

    print("=" * 60)
    print("ASSIGNMENT SYNC [DRY-RUN]")
    print("=" * 60)

    if source in ("webclass", "all"):
        print("\nWebClass:")
        try:
            records = CourseScanner(config=config).scan(
                context.settings.require(keys.USERID),
                context.settings.require(keys.PASSWORD),
            )
        except SyncError as e:
            print(f"  FAILED: {e}", file=sys.stderr)
            return 1
        _print_table(records)

    if source in ("classroom", "all"):
        print("\nClassroom:")
        try:
            records = context.classroom_factory().fetch()
        except (SyncError, GoogleAuthError) as e:
            print(f"  FAILED: {e}", file=sys.stderr)
            return 1
        _print_table(records)

    print("\nRun without --dry-run to write sheets and register tasks.")
    return 0


def main() -> int:
    args = _parse_args()
    config = get_config()
    setup_logging(
        json_output=config.log_json,
        log_level=config.log_level,
        log_sink=SheetStore(config.data_dir).append_log,
    )

    try:
        if args.dry_run:
            return _dry_run(args.source)
        report = run_daily(build_context(config))
    except (ConfigMissing, SinkListInvalid) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(f"\n{'=' * 60}")
    print("SUMMARY")
    print(f"{'=' * 60}")
    for phase, status in report.phases.items():
        print(f"  {phase:<22} {status}")
    for source, count in report.scanned.items():
        print(f"  Scanned {source}: {count}")
    print(f"  Registered: {report.registered}")
    print(f"  Completed:  {report.completed}")
    print(f"  Deleted:    {report.deleted}")
    print(f"  Purged:     {report.purged}")
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
