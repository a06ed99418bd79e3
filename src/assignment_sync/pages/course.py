"""Course contents parser - assignment cards from a WebClass course page.

DOM structure:
  section.list-group-item.cl-contentsList_listGroupItem      (one per content)
    h4.cm-contentsList_contentName
      div.cl-contentsList_new                                ("New" badge, optional)
      <a href="...do_contents.php?...&id=<hex>...">Title</a>
    div.cm-contentsList_contentDetailListItemLabel           "利用可能期間"
    div.cm-contentsList_contentDetailListItemData            "2024/10/01 00:00 - 2024/10/08 23:59"

The in-page links embed session state, so only the content id is kept and a
canonical login.php?id=... share link is built from it.
"""

import re

from bs4 import BeautifulSoup, Tag

from src.assignment_sync.errors import ParseSkip
from src.assignment_sync.logging import get_logger
from src.assignment_sync.models import CourseAssignment

log = get_logger(__name__)

CARD_CLASS = "cl-contentsList_listGroupItem"
TITLE_CLASS = "cm-contentsList_contentName"
NEW_BADGE_CLASS = "cl-contentsList_new"
DETAIL_DATA_CLASS = "cm-contentsList_contentDetailListItemData"
PERIOD_LABEL = "利用可能期間"
PERIOD_DELIMITER = " - "
CONTENT_ID_RE = re.compile(r"id=([a-f0-9]+)")


def share_link(base_url: str, content_id: str) -> str:
    return f"{base_url.rstrip('/')}/webclass/login.php?id={content_id}&page=1&auth_mode=SAML"


def split_period(raw: str) -> tuple[str, str]:
    """Split "start - end" into its parts; a lone value is the end date."""
    text = " ".join(raw.split())
    if not text:
        return "", ""
    parts = text.split(PERIOD_DELIMITER)
    if len(parts) == 2:
        return parts[0].strip(), parts[1].strip()
    return "", text


def _period_text(card: Tag) -> str:
    label = card.find(string=lambda s: s is not None and s.strip() == PERIOD_LABEL)
    if label is None:
        return ""
    data = label.find_next("div", class_=DETAIL_DATA_CLASS)
    if data is None:
        return ""
    return data.get_text(" ", strip=True)


def parse_card(card: Tag, base_url: str) -> CourseAssignment:
    """Extract one assignment card.

    Raises:
        ParseSkip: The card has no title or no content id.
    """
    heading = card.find("h4", class_=TITLE_CLASS)
    if heading is None:
        raise ParseSkip("card has no title heading")

    for badge in heading.find_all("div", class_=NEW_BADGE_CLASS):
        badge.decompose()
    title = heading.get_text(" ", strip=True)
    if not title:
        raise ParseSkip("card title is empty")

    link = heading.find("a", href=True)
    id_match = CONTENT_ID_RE.search(link["href"]) if link else None
    if not id_match:
        raise ParseSkip(f"no content id for {title!r}")

    start, end = split_period(_period_text(card))
    return CourseAssignment(
        title=title,
        share_link=share_link(base_url, id_match.group(1)),
        start=start,
        end=end,
    )


def parse_course_contents(html: str, base_url: str) -> list[CourseAssignment]:
    """Extract every parseable assignment card from a course page.

    Cards that cannot be parsed are skipped, never raised.
    """
    soup = BeautifulSoup(html, "html.parser")
    results: list[CourseAssignment] = []
    for card in soup.find_all("section", class_=CARD_CLASS):
        try:
            results.append(parse_card(card, base_url))
        except ParseSkip as e:
            log.debug("card_skipped", reason=str(e))
    return results
