"""Daily run: WebClass scan, Classroom scan, task sync + cleanup.

Each phase is isolated: an exception in one is logged, recorded in the
RunReport and the next phase still runs, so one source's outage never
blocks the other's stored state from updating. Missing settings and a
vanished task list are fatal and abort the run before any scan.
"""

from datetime import datetime, timedelta
from typing import Callable

from src.assignment_sync import settings as keys
from src.assignment_sync.classroom import ClassroomSource
from src.assignment_sync.config import SyncConfig
from src.assignment_sync.errors import ConfigMissing, SinkListInvalid, SinkNotFound
from src.assignment_sync.google_services import build_service, load_credentials
from src.assignment_sync.logging import get_logger
from src.assignment_sync.models import AssignmentRecord, RunReport, Source
from src.assignment_sync.reconcile import (
    ReconciliationEngine,
    cleanup,
    merge_snapshots,
    sort_by_due,
)
from src.assignment_sync.scanner import CourseScanner
from src.assignment_sync.scheduler import CronScheduler
from src.assignment_sync.settings import SettingsStore
from src.assignment_sync.storage import SheetStore
from src.assignment_sync.tasks import TaskSink

log = get_logger(__name__)

FATAL_ERRORS = (ConfigMissing, SinkListInvalid)


class RunContext:
    """Collaborators for one run. Factories are lazy so a phase that fails to
    build its client (expired OAuth token, API outage) fails on its own."""

    def __init__(
        self,
        config: SyncConfig,
        settings: SettingsStore,
        store: SheetStore,
        sink: TaskSink | None,
        scanner_factory: Callable[[], CourseScanner],
        classroom_factory: Callable[[], ClassroomSource],
        clock: Callable[[], datetime] | None = None,
        sink_factory: Callable[[], TaskSink] | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.store = store
        self._sink = sink
        self.sink_factory = sink_factory
        self.scanner_factory = scanner_factory
        self.classroom_factory = classroom_factory
        self.clock = clock or (lambda: datetime.now(config.tzinfo))

    @property
    def sink(self) -> TaskSink:
        if self._sink is None:
            self._sink = self.sink_factory()
        return self._sink

    @sink.setter
    def sink(self, value: TaskSink) -> None:
        self._sink = value

    def now(self) -> datetime:
        return self.clock()


# ---------------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------------
def check_settings(context: RunContext) -> str:
    """Return the task list id once every required setting is present.

    Raises:
        ConfigMissing: credentials or task list id not configured.
    """
    context.settings.require(keys.USERID)
    context.settings.require(keys.PASSWORD)
    return context.settings.require(keys.TASK_LIST_ID)


def check_task_list(context: RunContext, list_id: str) -> str:
    """Confirm the task list still exists on the sink.

    Raises:
        SinkListInvalid: the sink reports the list as gone.
        SinkAPIError: the sink could not be asked (not fatal to the run).
    """
    try:
        context.sink.get_task_list(list_id)
    except SinkNotFound as e:
        raise SinkListInvalid(
            f"Task list {list_id} no longer exists; run setup again"
        ) from e
    return list_id


def preflight(context: RunContext) -> str:
    """Check required settings and that the task list still exists."""
    return check_task_list(context, check_settings(context))


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------
def _store_scan(context: RunContext, source: Source, fresh: list[AssignmentRecord]) -> int:
    previous = context.store.read_records(source)
    merged = sort_by_due(merge_snapshots(previous, fresh))
    context.store.write_records(source, merged)
    return len(merged)


def process_webclass(context: RunContext) -> int:
    log.info("phase_started", phase="webclass")
    userid = context.settings.require(keys.USERID)
    password = context.settings.require(keys.PASSWORD)
    fresh = context.scanner_factory().scan(userid, password)
    return _store_scan(context, Source.WEBCLASS, fresh)


def process_classroom(context: RunContext) -> int:
    log.info("phase_started", phase="classroom")
    fresh = context.classroom_factory().fetch()
    return _store_scan(context, Source.CLASSROOM, fresh)


def process_tasks_sync(context: RunContext, list_id: str, report: RunReport) -> None:
    """Reconcile and clean every source sheet against the task list."""
    log.info("phase_started", phase="tasks")
    engine = ReconciliationEngine(
        context.sink,
        list_id,
        urgent_days=context.config.urgent_days,
        expiry_grace=timedelta(hours=context.config.expiry_grace_hours),
        max_registrations=context.config.max_registrations_per_run,
    )
    grace_days = context.settings.get_int(keys.CLEANUP_DAYS)

    for source in Source:
        try:
            records = context.store.read_records(source)
            now = context.now()
            result = engine.reconcile(records, now)
            kept = cleanup(result.records, grace_days, now)
            context.store.write_records(source, kept)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            log.exception("tasks_sync_failed", source=source.value, error=str(e))
            report.phases[f"tasks:{source.value}"] = f"{type(e).__name__}: {e}"
            continue
        report.registered += result.registered
        report.completed += result.completed
        report.deleted += result.deleted
        report.purged += len(result.records) - len(kept)


def _run_phase(report: RunReport, name: str, fn: Callable[[], object]) -> object | None:
    try:
        value = fn()
    except FATAL_ERRORS:
        raise
    except Exception as e:
        log.exception("phase_failed", phase=name, error=str(e), type=type(e).__name__)
        report.phases[name] = f"{type(e).__name__}: {e}"
        return None
    report.phases.setdefault(name, "ok")
    return value


def run_daily(context: RunContext) -> RunReport:
    """Entry point for the scheduled run.

    Only a missing setting or a task list the sink confirms as deleted is
    fatal. If the sink cannot be reached at all, both scans still run and
    refresh their sheets; reconciliation waits for the next run.

    Raises:
        ConfigMissing, SinkListInvalid: logged, then re-raised to the caller.
    """
    log.info("run_started")
    report = RunReport()
    try:
        list_id = _run_phase(
            report, "tasks", lambda: check_task_list(context, check_settings(context))
        )

        scanned = _run_phase(report, "webclass", lambda: process_webclass(context))
        if scanned is not None:
            report.scanned[Source.WEBCLASS.value] = scanned

        scanned = _run_phase(report, "classroom", lambda: process_classroom(context))
        if scanned is not None:
            report.scanned[Source.CLASSROOM.value] = scanned

        if list_id is not None:
            _run_phase(report, "tasks", lambda: process_tasks_sync(context, list_id, report))
        else:
            log.warning("tasks_skipped", reason=report.phases.get("tasks"))
    except FATAL_ERRORS as e:
        log.error("run_aborted", error=str(e), type=type(e).__name__)
        raise

    log.info(
        "run_finished",
        ok=report.ok,
        registered=report.registered,
        completed=report.completed,
        deleted=report.deleted,
        purged=report.purged,
    )
    return report


# ---------------------------------------------------------------------------
# Setup / reset
# ---------------------------------------------------------------------------
def setup_tasks(
    settings: SettingsStore,
    sink: TaskSink,
    scheduler: CronScheduler,
    task_list_name: str,
    trigger_hour: int,
    cleanup_days: int,
) -> str:
    """Find or create the task list, store task settings and install the trigger."""
    settings.save_tasks(task_list_name, trigger_hour, cleanup_days)
    list_id = sink.ensure_task_list(task_list_name)
    settings.set_task_list_id(list_id)
    scheduler.register_daily(int(trigger_hour))
    return list_id


def reset_all(settings: SettingsStore, scheduler: CronScheduler) -> None:
    """Delete all stored settings and the daily trigger."""
    settings.reset_all()
    scheduler.remove()
    log.info("reset_completed")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------
def build_context(config: SyncConfig) -> RunContext:
    """Wire the production collaborators (Google APIs, CSV sheets, JSON settings).

    OAuth credentials are loaded on first use, inside whichever phase needs
    them, and shared by the Tasks and Classroom clients.
    """
    credentials = []

    def google_service(name: str):
        if not credentials:
            credentials.append(
                load_credentials(config.google_client_secret, config.google_token_file)
            )
        return build_service(name, "v1", credentials[0])

    return RunContext(
        config=config,
        settings=SettingsStore(config.settings_path),
        store=SheetStore(config.data_dir),
        sink=None,
        sink_factory=lambda: TaskSink(google_service("tasks")),
        scanner_factory=lambda: CourseScanner(config=config),
        classroom_factory=lambda: ClassroomSource(google_service("classroom"), config.tzinfo),
    )
