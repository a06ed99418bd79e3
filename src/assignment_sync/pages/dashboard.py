"""Dashboard parser - course links from the WebClass top page.

DOM structure (timetable and course list share the same anchors):
  <a href='/webclass/course.php/<hex>/login?acs_=...' Target='_top'>
    &raquo; 12345 Course Name (Mon 1)
  </a>

The same course usually appears twice (timetable cell + course list); the
acs_ query differs per occurrence, so the path alone identifies a course.
"""

import re

from bs4 import BeautifulSoup

from src.assignment_sync.logging import get_logger
from src.assignment_sync.models import CourseLink

log = get_logger(__name__)

COURSE_HREF_RE = re.compile(r"^/webclass/course\.php/[a-f0-9]+/login\?acs_=")
DECORATIONS = ("»",)


def _clean_name(text: str) -> str:
    for glyph in DECORATIONS:
        text = text.replace(glyph, "")
    return " ".join(text.split())


def parse_dashboard(html: str, base_url: str) -> list[CourseLink]:
    """Extract unique course links, in page order.

    Args:
        html: Dashboard markup.
        base_url: Portal origin prepended to the relative hrefs.

    Returns:
        One CourseLink per course path; the first occurrence wins.
    """
    soup = BeautifulSoup(html, "html.parser")
    base = base_url.rstrip("/")
    courses: dict[str, CourseLink] = {}

    for anchor in soup.find_all("a", href=COURSE_HREF_RE):
        if (anchor.get("target") or "").lower() != "_top":
            continue
        href = anchor["href"]
        key = href.split("?", 1)[0]
        if key in courses:
            continue
        courses[key] = CourseLink(url=base + href, name=_clean_name(anchor.get_text(" ")))

    log.debug("dashboard_parsed", courses=len(courses))
    return list(courses.values())
