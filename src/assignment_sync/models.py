"""Pydantic models for assignment data.

All data structures use Pydantic v2 for validation, serialization, and type safety.
"""

from enum import Enum

from pydantic import BaseModel, Field

HEADER = [
    "Source",
    "Course",
    "Title",
    "Available From",
    "Due",
    "Link",
    "Task ID",
    "Flag",
]


class Source(str, Enum):
    """Origin system of an assignment. Values are what the sheets store."""

    WEBCLASS = "WebClass"
    CLASSROOM = "Classroom"


class LifecycleFlag(str, Enum):
    """Per-record sync status.

    EMPTY is the only state that can be left for more than one target.
    REGISTERED may still move to COMPLETED or DELETED; the rest are terminal.
    """

    EMPTY = ""
    REGISTERED = "REGISTERED"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"
    EXPIRED = "EXPIRED"
    SKIPPED_NODATE = "SKIPPED_NODATE"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_advance(self, target: "LifecycleFlag") -> bool:
        return target is self or target in _TRANSITIONS[self]

    def advance(self, target: "LifecycleFlag") -> "LifecycleFlag":
        """Return target if the edge self -> target is legal, else raise ValueError."""
        if not self.can_advance(target):
            raise ValueError(f"illegal lifecycle transition {self.name} -> {target.name}")
        return target


_TRANSITIONS: dict[LifecycleFlag, frozenset[LifecycleFlag]] = {
    LifecycleFlag.EMPTY: frozenset(
        {
            LifecycleFlag.REGISTERED,
            LifecycleFlag.COMPLETED,
            LifecycleFlag.DELETED,
            LifecycleFlag.EXPIRED,
            LifecycleFlag.SKIPPED_NODATE,
        }
    ),
    LifecycleFlag.REGISTERED: frozenset({LifecycleFlag.COMPLETED, LifecycleFlag.DELETED}),
    LifecycleFlag.COMPLETED: frozenset(),
    LifecycleFlag.DELETED: frozenset(),
    LifecycleFlag.EXPIRED: frozenset(),
    LifecycleFlag.SKIPPED_NODATE: frozenset(),
}


class AssignmentRecord(BaseModel):
    """One tracked assignment, i.e. one sheet row.

    link_url is the identity key across fetch cycles; title and course text
    may change upstream without breaking the association.
    """

    source: Source
    course_name: str
    title: str
    available_from: str = ""  # raw portal text, "" when absent
    due_at: str = ""  # raw text, "" means no deadline
    link_url: str
    sink_task_id: str = ""  # set once on registration, never cleared
    lifecycle_flag: LifecycleFlag = LifecycleFlag.EMPTY

    def to_row(self) -> list[str]:
        return [
            self.source.value,
            self.course_name,
            self.title,
            self.available_from,
            self.due_at,
            self.link_url,
            self.sink_task_id,
            self.lifecycle_flag.value,
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> "AssignmentRecord":
        """Build a record from a sheet row, padding short rows with ""."""
        cells = [str(c).strip() for c in row] + [""] * (len(HEADER) - len(row))
        return cls(
            source=Source(cells[0]),
            course_name=cells[1],
            title=cells[2],
            available_from=cells[3],
            due_at=cells[4],
            link_url=cells[5],
            sink_task_id=cells[6],
            lifecycle_flag=LifecycleFlag(cells[7]),
        )


class CourseLink(BaseModel):
    """A course entry from the portal dashboard."""

    url: str
    name: str


class CourseAssignment(BaseModel):
    """An assignment card extracted from a course contents page."""

    title: str
    share_link: str  # session-independent login.php?id=... link
    start: str = ""
    end: str = ""


class RunReport(BaseModel):
    """Outcome of one daily run, one entry per phase."""

    phases: dict[str, str] = Field(default_factory=dict)  # phase -> "ok" | error text
    scanned: dict[str, int] = Field(default_factory=dict)
    registered: int = 0
    completed: int = 0
    deleted: int = 0
    purged: int = 0

    @property
    def ok(self) -> bool:
        return all(status == "ok" for status in self.phases.values())
