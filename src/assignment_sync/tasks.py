"""Google Tasks sink.

Status codes are classified once, in _execute():
  404/410 -> SinkNotFound (the user deleted the task; not an error upstream)
  429     -> RateLimitError, 5xx -> TransientError (retried, then SinkAPIError)
  other   -> SinkAPIError
"""

from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.assignment_sync.errors import (
    RateLimitError,
    SinkAPIError,
    SinkNotFound,
    TransientError,
)
from src.assignment_sync.logging import get_logger

log = get_logger(__name__)

STATUS_COMPLETED = "completed"
STATUS_NEEDS_ACTION = "needsAction"


def _status_of(error: HttpError) -> int:
    return int(getattr(error.resp, "status", 0) or 0)


class TaskSink:
    """Thin wrapper over a googleapiclient "tasks" v1 resource."""

    def __init__(self, service) -> None:
        self.service = service

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, max=10),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    def _execute(self, request) -> dict:
        try:
            return request.execute()
        except HttpError as e:
            status = _status_of(e)
            if status in (404, 410):
                raise SinkNotFound(str(e)) from e
            if status == 429:
                raise RateLimitError(str(e)) from e
            if status >= 500:
                raise TransientError(str(e)) from e
            raise SinkAPIError(str(e)) from e

    def _call(self, request) -> dict:
        try:
            return self._execute(request)
        except TransientError as e:
            raise SinkAPIError(f"gave up after retries: {e}") from e

    def get_status(self, list_id: str, task_id: str) -> str:
        """Return "completed" or "needsAction".

        Raises:
            SinkNotFound: The task no longer exists (or is flagged deleted).
            SinkAPIError: Any other failure.
        """
        task = self._call(self.service.tasks().get(tasklist=list_id, task=task_id))
        if task.get("deleted"):
            raise SinkNotFound(f"task {task_id} is deleted")
        return task.get("status", STATUS_NEEDS_ACTION)

    def insert(self, list_id: str, title: str, due: str | None, notes: str) -> str:
        body = {"title": title, "notes": notes}
        if due:
            body["due"] = due
        created = self._call(self.service.tasks().insert(tasklist=list_id, body=body))
        return created["id"]

    def list_task_lists(self) -> list[dict]:
        lists: list[dict] = []
        page_token = None
        while True:
            response = self._call(self.service.tasklists().list(pageToken=page_token))
            lists.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return lists

    def create_task_list(self, title: str) -> str:
        created = self._call(self.service.tasklists().insert(body={"title": title}))
        return created["id"]

    def get_task_list(self, list_id: str) -> dict:
        return self._call(self.service.tasklists().get(tasklist=list_id))

    def ensure_task_list(self, name: str) -> str:
        """Find a task list by title, creating it if absent. Returns its id."""
        for task_list in self.list_task_lists():
            if task_list.get("title") == name:
                log.info("task_list_found", name=name, id=task_list["id"])
                return task_list["id"]
        list_id = self.create_task_list(name)
        log.info("task_list_created", name=name, id=list_id)
        return list_id
