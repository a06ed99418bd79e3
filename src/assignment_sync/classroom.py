"""Google Classroom course-work source.

Classroom is a structured API, so nothing is scraped: active courses are
listed, then each course's published course work. dueDate/dueTime come back
in UTC and are converted to the portal timezone so both sources store the
same "YYYY/MM/DD HH:MM" wall-clock format.
"""

from datetime import datetime, timezone, tzinfo

from googleapiclient.errors import HttpError

from src.assignment_sync.dates import format_assignment_date
from src.assignment_sync.errors import TransientError
from src.assignment_sync.logging import get_logger
from src.assignment_sync.models import AssignmentRecord, Source

log = get_logger(__name__)


def due_from_classroom(due_date: dict | None, due_time: dict | None, tz: tzinfo) -> datetime | None:
    """Convert Classroom dueDate/dueTime (UTC) into an aware datetime in tz."""
    if not due_date:
        return None
    try:
        due = datetime(
            due_date["year"],
            due_date["month"],
            due_date["day"],
            (due_time or {}).get("hours", 0),
            (due_time or {}).get("minutes", 0),
            tzinfo=timezone.utc,
        )
    except (KeyError, TypeError, ValueError):
        return None
    return due.astimezone(tz)


class ClassroomSource:
    """Reads course work through a googleapiclient "classroom" v1 resource."""

    def __init__(self, service, tz: tzinfo) -> None:
        self.service = service
        self.tz = tz

    def _paged(self, request_fn, key: str) -> list[dict]:
        items: list[dict] = []
        page_token = None
        while True:
            response = request_fn(page_token).execute()
            items.extend(response.get(key, []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    def list_active_courses(self) -> list[dict]:
        return self._paged(
            lambda token: self.service.courses().list(
                courseStates=["ACTIVE"], pageToken=token
            ),
            "courses",
        )

    def list_published_course_work(self, course_id: str) -> list[dict]:
        return self._paged(
            lambda token: self.service.courses().courseWork().list(
                courseId=course_id, courseWorkStates=["PUBLISHED"], pageToken=token
            ),
            "courseWork",
        )

    def fetch(self) -> list[AssignmentRecord]:
        """Collect records for every published, dated course work item.

        Raises:
            TransientError: The course list itself could not be read.
        """
        log.info("classroom_scan_started")
        try:
            courses = self.list_active_courses()
        except HttpError as e:
            raise TransientError(f"Classroom courses.list failed: {e}") from e

        if not courses:
            log.info("classroom_no_active_courses")
            return []

        records: list[AssignmentRecord] = []
        for course in courses:
            course_id = course.get("id")
            if not course_id:
                continue
            try:
                works = self.list_published_course_work(course_id)
            except HttpError as e:
                log.warning(
                    "classroom_coursework_failed",
                    course=course.get("name"),
                    error=str(e),
                )
                continue

            for work in works:
                due = due_from_classroom(work.get("dueDate"), work.get("dueTime"), self.tz)
                if due is None or not work.get("alternateLink"):
                    continue
                records.append(
                    AssignmentRecord(
                        source=Source.CLASSROOM,
                        course_name=course.get("name", ""),
                        title=work.get("title", ""),
                        due_at=format_assignment_date(due),
                        link_url=work["alternateLink"],
                    )
                )

        log.info("classroom_scan_finished", courses=len(courses), assignments=len(records))
        return records
