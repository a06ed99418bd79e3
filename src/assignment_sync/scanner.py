"""WebClass course scanner.

Logs in once, reads the dashboard, then visits every course page one at a
time with a fixed pause between requests. A course that fails to load or
parse is logged and skipped; only a login failure aborts the scan.
"""

import re
import time
from typing import Callable

from src.assignment_sync.auth import SsoAuthenticator, find_script_redirect
from src.assignment_sync.config import SyncConfig, get_config
from src.assignment_sync.errors import RedirectLoop, SyncError
from src.assignment_sync.http import AuthSession, SessionClient
from src.assignment_sync.logging import get_logger
from src.assignment_sync.models import AssignmentRecord, CourseLink, Source
from src.assignment_sync.pages.course import parse_course_contents
from src.assignment_sync.pages.dashboard import parse_dashboard
from src.assignment_sync.utils import normalize_url, resolve_url

log = get_logger(__name__)

_LEADING_CODE_RE = re.compile(r"^\s*\d+\s*")
_TRAILING_PAREN_RE = re.compile(r"\s*\(.*\)\s*$")

# Interstitial pages that only bounce via script are tiny; real pages are not.
SCRIPT_REDIRECT_MAX_BODY = 500


def normalize_course_name(name: str) -> str:
    """"12345 Linear Algebra (Mon 1)" -> "Linear Algebra"."""
    return _TRAILING_PAREN_RE.sub("", _LEADING_CODE_RE.sub("", name)).strip()


class CourseScanner:
    """Enumerates WebClass courses and their assignment cards."""

    def __init__(
        self,
        client: SessionClient | None = None,
        authenticator: SsoAuthenticator | None = None,
        config: SyncConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or get_config()
        self.client = client or SessionClient(config=self.config)
        self.authenticator = authenticator or SsoAuthenticator(self.client, self.config)
        self.sleep = sleep

    def fetch_page(self, session: AuthSession, url: str) -> str:
        """GET a portal page, following HTTP and short script redirects.

        Raises:
            RedirectLoop: More than max_redirects hops in total.
        """
        current = url
        for _ in range(self.config.max_redirects):
            response = self.client.send(session, current, follow_redirects=True)
            if 200 <= response.status_code < 300 and len(response.body) < SCRIPT_REDIRECT_MAX_BODY:
                target = find_script_redirect(response.body)
                if target:
                    current = resolve_url(normalize_url(target), self.config.portal_origin)
                    continue
            return response.body
        raise RedirectLoop(f"Exceeded {self.config.max_redirects} redirects fetching {url}")

    def scan_course(self, session: AuthSession, course: CourseLink) -> list[AssignmentRecord]:
        course_name = normalize_course_name(course.name)
        html = self.fetch_page(session, course.url)
        return [
            AssignmentRecord(
                source=Source.WEBCLASS,
                course_name=course_name,
                title=item.title,
                available_from=item.start,
                due_at=item.end,
                link_url=item.share_link,
            )
            for item in parse_course_contents(html, self.config.portal_origin)
        ]

    def scan(self, userid: str, password: str) -> list[AssignmentRecord]:
        """Log in and collect assignments from every course on the dashboard.

        Raises:
            AuthenticationError, RedirectLoop, RedirectUnresolved: login failed.
        """
        log.info("webclass_scan_started")
        session = AuthSession()
        landing_url = self.authenticator.login(session, userid, password)

        dashboard_html = self.fetch_page(session, landing_url)
        courses = parse_dashboard(dashboard_html, self.config.portal_origin)
        log.info("courses_found", count=len(courses))

        records: list[AssignmentRecord] = []
        failed = 0
        for i, course in enumerate(courses, start=1):
            try:
                found = self.scan_course(session, course)
                records.extend(found)
                log.info(
                    "course_scanned",
                    index=f"{i}/{len(courses)}",
                    course=normalize_course_name(course.name),
                    assignments=len(found),
                )
            except (SyncError, ValueError) as e:
                failed += 1
                log.warning(
                    "course_scan_failed",
                    course=course.name,
                    error=str(e),
                    type=type(e).__name__,
                )
            if i < len(courses):
                self.sleep(self.config.request_delay_seconds)

        log.info("webclass_scan_finished", assignments=len(records), failed_courses=failed)
        return records
