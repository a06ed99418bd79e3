"""Reconciliation engine: fresh scans + stored sheet state + task sink.

Identity key: link_url. A full scan regenerates every record with an empty
task id and flag, so merge_snapshots() first copies those two columns from
the stored snapshot. The engine then walks each record through the
LifecycleFlag state machine:

  with task id, not terminal   -> poll sink: completed -> COMPLETED,
                                  not found -> DELETED, API error -> deferred
  EMPTY, no task id            -> no date -> SKIPPED_NODATE
                                  overdue > expiry grace -> EXPIRED
                                  otherwise -> insert task, REGISTERED

Registration walks candidates latest-due first, so under a per-run budget
the far-future items are inserted first and near-term ones last.
"""

from datetime import datetime, timedelta
from typing import Protocol

from pydantic import BaseModel

from src.assignment_sync.dates import parse_assignment_date, to_sink_due
from src.assignment_sync.errors import SinkAPIError, SinkNotFound
from src.assignment_sync.logging import get_logger
from src.assignment_sync.models import AssignmentRecord, LifecycleFlag

log = get_logger(__name__)

URGENT_PREFIX = "[URGENT] "


class Sink(Protocol):
    def get_status(self, list_id: str, task_id: str) -> str: ...

    def insert(self, list_id: str, title: str, due: str | None, notes: str) -> str: ...


class SinkStatus:
    COMPLETED = "completed"
    NOT_FOUND = "notFound"


class ReconcileResult(BaseModel):
    records: list[AssignmentRecord]
    registered: int = 0
    completed: int = 0
    deleted: int = 0
    expired: int = 0
    skipped: int = 0
    deferred: int = 0

    @property
    def changed(self) -> bool:
        return any(
            (self.registered, self.completed, self.deleted, self.expired, self.skipped)
        )


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------
def _due_sort_key(record: AssignmentRecord) -> tuple[int, float]:
    due = parse_assignment_date(record.due_at)
    if due is None:
        return (1, 0.0)  # no date sorts as infinitely far in the future
    return (0, due.timestamp())


def sort_by_due(
    records: list[AssignmentRecord], descending: bool = False
) -> list[AssignmentRecord]:
    """Stable sort by parsed due date; undated records count as latest."""
    return sorted(records, key=_due_sort_key, reverse=descending)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------
def merge_snapshots(
    previous: list[AssignmentRecord],
    fresh: list[AssignmentRecord],
) -> list[AssignmentRecord]:
    """Carry task id and flag forward from the stored snapshot by link_url.

    Fresh records are de-duplicated by link_url (first wins). Stored records
    whose link is absent from the fresh scan are dropped.
    """
    previous_by_link = {r.link_url: r for r in previous if r.link_url}

    merged: list[AssignmentRecord] = []
    seen: set[str] = set()
    carried = 0
    for record in fresh:
        if not record.link_url or record.link_url in seen:
            continue
        seen.add(record.link_url)
        old = previous_by_link.get(record.link_url)
        if old is not None:
            record = record.model_copy(
                update={
                    "sink_task_id": old.sink_task_id,
                    "lifecycle_flag": old.lifecycle_flag,
                }
            )
            carried += 1
        merged.append(record)

    log.debug(
        "snapshots_merged",
        fresh=len(fresh),
        merged=len(merged),
        carried=carried,
        dropped=len(previous_by_link.keys() - seen),
    )
    return merged


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------
def decide(
    record: AssignmentRecord,
    now: datetime,
    sink_status: str | None = None,
    expiry_grace: timedelta = timedelta(days=1),
) -> LifecycleFlag:
    """Next flag for one record. Pure: sink answers are passed in.

    For records with a task id, sink_status is the polled status (or
    SinkStatus.NOT_FOUND); None means the poll failed and nothing changes.
    For records without one, REGISTERED means "insert a task now".
    """
    flag = record.lifecycle_flag
    if flag.is_terminal:
        return flag

    if record.sink_task_id:
        if sink_status == SinkStatus.COMPLETED:
            return flag.advance(LifecycleFlag.COMPLETED)
        if sink_status == SinkStatus.NOT_FOUND:
            return flag.advance(LifecycleFlag.DELETED)
        return flag

    if flag is not LifecycleFlag.EMPTY:
        # REGISTERED row whose task id was lost; nothing to poll
        return flag

    due = parse_assignment_date(record.due_at)
    if due is None:
        return flag.advance(LifecycleFlag.SKIPPED_NODATE)
    if now - due > expiry_grace:
        return flag.advance(LifecycleFlag.EXPIRED)
    return flag.advance(LifecycleFlag.REGISTERED)


def task_title(record: AssignmentRecord, now: datetime, urgent_days: int = 3) -> str:
    title = f"[{record.course_name}] {record.title}"
    due = parse_assignment_date(record.due_at)
    if due is not None and due - now <= timedelta(days=urgent_days):
        title = URGENT_PREFIX + title
    return title


def task_notes(record: AssignmentRecord) -> str:
    return f"Link:\n{record.link_url}\n\nDue: {record.due_at}\nSource: {record.source.value}"


class ReconciliationEngine:
    """Applies one reconciliation pass against a task sink."""

    def __init__(
        self,
        sink: Sink,
        list_id: str,
        urgent_days: int = 3,
        expiry_grace: timedelta = timedelta(days=1),
        max_registrations: int | None = None,
    ) -> None:
        self.sink = sink
        self.list_id = list_id
        self.urgent_days = urgent_days
        self.expiry_grace = expiry_grace
        self.max_registrations = max_registrations

    def _poll(self, record: AssignmentRecord) -> str | None:
        try:
            return self.sink.get_status(self.list_id, record.sink_task_id)
        except SinkNotFound:
            return SinkStatus.NOT_FOUND
        except SinkAPIError as e:
            log.warning("sink_status_failed", title=record.title, error=str(e))
            return None

    def _register(self, record: AssignmentRecord, now: datetime) -> str | None:
        due = parse_assignment_date(record.due_at)
        title = task_title(record, now, self.urgent_days)
        try:
            task_id = self.sink.insert(
                self.list_id,
                title,
                to_sink_due(due) if due else None,
                task_notes(record),
            )
        except SinkAPIError as e:
            log.warning("task_register_failed", title=record.title, error=str(e))
            return None
        log.info("task_registered", title=title, task_id=task_id)
        return task_id

    def reconcile(self, records: list[AssignmentRecord], now: datetime) -> ReconcileResult:
        """Run every record through the state machine once.

        Returns:
            ReconcileResult whose records are sorted soonest-due first.
        """
        result = ReconcileResult(records=[])
        updated: dict[int, AssignmentRecord] = {}
        candidates: list[tuple[int, AssignmentRecord]] = []

        for index, record in enumerate(records):
            flag = record.lifecycle_flag
            if flag.is_terminal:
                continue

            if record.sink_task_id:
                new_flag = decide(record, now, self._poll(record), self.expiry_grace)
                if new_flag is LifecycleFlag.COMPLETED:
                    result.completed += 1
                elif new_flag is LifecycleFlag.DELETED:
                    result.deleted += 1
                if new_flag is not flag:
                    updated[index] = record.model_copy(update={"lifecycle_flag": new_flag})
                continue

            new_flag = decide(record, now, expiry_grace=self.expiry_grace)
            if new_flag is LifecycleFlag.REGISTERED:
                candidates.append((index, record))
                continue
            if new_flag is LifecycleFlag.EXPIRED:
                result.expired += 1
            elif new_flag is LifecycleFlag.SKIPPED_NODATE:
                result.skipped += 1
            updated[index] = record.model_copy(update={"lifecycle_flag": new_flag})

        # Latest deadline first; undated candidates cannot reach this point.
        candidates.sort(key=lambda pair: _due_sort_key(pair[1]), reverse=True)
        for index, record in candidates:
            if self.max_registrations is not None and result.registered >= self.max_registrations:
                result.deferred += 1
                continue
            task_id = self._register(record, now)
            if task_id is None:
                result.deferred += 1
                continue
            result.registered += 1
            updated[index] = record.model_copy(
                update={
                    "sink_task_id": task_id,
                    "lifecycle_flag": record.lifecycle_flag.advance(LifecycleFlag.REGISTERED),
                }
            )

        result.records = sort_by_due([updated.get(i, r) for i, r in enumerate(records)])
        log.info(
            "reconcile_finished",
            registered=result.registered,
            completed=result.completed,
            deleted=result.deleted,
            expired=result.expired,
            skipped=result.skipped,
            deferred=result.deferred,
        )
        return result


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------
def should_purge(record: AssignmentRecord, grace_days: int, now: datetime) -> bool:
    due = parse_assignment_date(record.due_at)
    past_grace = due is not None and now - due > timedelta(days=grace_days)
    if record.lifecycle_flag.is_terminal and (due is None or past_grace):
        return True
    return not record.sink_task_id and past_grace


def cleanup(
    records: list[AssignmentRecord], grace_days: int, now: datetime
) -> list[AssignmentRecord]:
    """Drop terminal or never-registered records whose grace period has run out."""
    kept = [r for r in records if not should_purge(r, grace_days, now)]
    if len(kept) != len(records):
        log.info("records_purged", count=len(records) - len(kept), grace_days=grace_days)
    return kept
