"""Shared fakes: scripted HTTP transport, in-memory task sink, fixed clocks."""

import json
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from src.assignment_sync import config as config_module
from src.assignment_sync.config import SyncConfig
from src.assignment_sync.errors import SinkAPIError, SinkNotFound
from src.assignment_sync.http import HttpResponse, SessionClient
from src.assignment_sync.models import AssignmentRecord, LifecycleFlag, Source

TOKYO = ZoneInfo("Asia/Tokyo")
PORTAL = "https://rpwebcls.meijo-u.ac.jp"
SSO = "https://slbsso.meijo-u.ac.jp/opensso/json/authenticate"


def respond(
    status: int = 200,
    body: str = "",
    location: str | None = None,
    cookies: list[str] | None = None,
    url: str = "",
) -> HttpResponse:
    headers = {"location": location} if location else {}
    return HttpResponse(
        status_code=status,
        url=url,
        headers=headers,
        body=body,
        set_cookies=cookies or [],
    )


def json_response(data: dict) -> HttpResponse:
    return respond(body=json.dumps(data))


class FakeTransport:
    """Routes (method, url) to a canned response or a handler callable.

    Every call is recorded as (method, url, headers, body).
    """

    def __init__(self, routes: dict | None = None, fallback=None) -> None:
        self.routes = routes or {}
        self.fallback = fallback
        self.calls: list[tuple[str, str, dict, object]] = []

    def __call__(self, method, url, headers, body):
        self.calls.append((method, url, dict(headers), body))
        target = self.routes.get((method, url))
        if target is None and self.fallback is not None:
            target = self.fallback
        if target is None:
            raise AssertionError(f"unexpected request {method} {url}")
        if callable(target):
            return target(method, url, headers, body)
        return target

    def urls(self, method: str | None = None) -> list[str]:
        return [c[1] for c in self.calls if method is None or c[0] == method]


class FakeSink:
    """In-memory task list. Tests flip task statuses between runs."""

    def __init__(self, list_ids: tuple[str, ...] = ("list-1",)) -> None:
        self.list_ids = set(list_ids)
        self.tasks: dict[str, dict] = {}
        self.inserted: list[dict] = []
        self.polled: list[str] = []
        self.failing: set[str] = set()
        self.fail_inserts = False

    def get_status(self, list_id: str, task_id: str) -> str:
        self.polled.append(task_id)
        if task_id in self.failing:
            raise SinkAPIError("backend unavailable")
        if task_id not in self.tasks:
            raise SinkNotFound(task_id)
        return self.tasks[task_id]["status"]

    def insert(self, list_id: str, title: str, due: str | None, notes: str) -> str:
        if self.fail_inserts:
            raise SinkAPIError("quota exceeded")
        task_id = f"task-{len(self.inserted) + 1}"
        task = {"id": task_id, "title": title, "due": due, "notes": notes, "status": "needsAction"}
        self.tasks[task_id] = task
        self.inserted.append(task)
        return task_id

    def complete(self, task_id: str) -> None:
        self.tasks[task_id]["status"] = "completed"

    def delete(self, task_id: str) -> None:
        del self.tasks[task_id]

    def get_task_list(self, list_id: str) -> dict:
        if list_id not in self.list_ids:
            raise SinkNotFound(list_id)
        return {"id": list_id}

    def ensure_task_list(self, name: str) -> str:
        self.list_ids.add(name + "-id")
        return name + "-id"


def make_record(
    title: str = "Report 1",
    due_at: str = "2024/12/01 23:59",
    link: str | None = None,
    source: Source = Source.WEBCLASS,
    course: str = "Linear Algebra",
    task_id: str = "",
    flag: LifecycleFlag = LifecycleFlag.EMPTY,
) -> AssignmentRecord:
    return AssignmentRecord(
        source=source,
        course_name=course,
        title=title,
        due_at=due_at,
        link_url=link or f"{PORTAL}/webclass/login.php?id={title.encode().hex()}",
        sink_task_id=task_id,
        lifecycle_flag=flag,
    )


def at(text: str) -> datetime:
    """'2024/12/01 23:59' as an aware Tokyo datetime."""
    return datetime.strptime(text, "%Y/%m/%d %H:%M").replace(tzinfo=TOKYO)


@pytest.fixture(autouse=True)
def _fresh_config():
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(
        webclass_url=PORTAL,
        sso_url=SSO,
        timezone="Asia/Tokyo",
        request_delay_seconds=0.5,
    )


@pytest.fixture
def make_client(config):
    def _make(transport: FakeTransport) -> SessionClient:
        return SessionClient(transport=transport, config=config, choose=lambda agents: agents[0])

    return _make


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()
