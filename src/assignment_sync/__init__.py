"""Assignment sync: WebClass + Google Classroom assignments into Google Tasks.

Scrapes the WebClass portal behind its SSO/SAML login, reads Classroom
course work, and reconciles both into a Google Tasks list, keeping
completion and deletion state in step with per-source sheets.
"""

from src.assignment_sync.models import AssignmentRecord, LifecycleFlag, Source
from src.assignment_sync.reconcile import ReconciliationEngine, cleanup, merge_snapshots
from src.assignment_sync.scanner import CourseScanner

__all__ = [
    "AssignmentRecord",
    "CourseScanner",
    "LifecycleFlag",
    "ReconciliationEngine",
    "Source",
    "cleanup",
    "merge_snapshots",
]
