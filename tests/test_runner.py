from unittest.mock import MagicMock

import pytest
from google.auth.exceptions import RefreshError

from conftest import FakeSink, at, make_record
from src.assignment_sync import settings as keys
from src.assignment_sync.errors import (
    AuthenticationError,
    ConfigMissing,
    SinkAPIError,
    SinkListInvalid,
)
from src.assignment_sync.models import LifecycleFlag, Source
from src.assignment_sync.runner import RunContext, reset_all, run_daily, setup_tasks
from src.assignment_sync.settings import SettingsStore
from src.assignment_sync.storage import SheetStore

NOW = at("2024/11/20 06:00")


def webclass_records():
    return [
        make_record("Report 1", due_at="2024/12/01 23:59", link="W1", course="Algebra"),
        make_record("Quiz", due_at="", link="W2", course="Algebra"),
    ]


def classroom_records():
    return [
        make_record(
            "Lab 1",
            due_at="2024/11/28 23:59",
            link="https://classroom.google.com/c/1/a/1",
            source=Source.CLASSROOM,
            course="Physics",
        )
    ]


@pytest.fixture
def settings(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    store.save_auth("s123", "secret")
    store.save_tasks("大学課題", 6, 30)
    store.set_task_list_id("list-1")
    return store


@pytest.fixture
def scanner():
    scanner = MagicMock()
    scanner.scan.return_value = webclass_records()
    return scanner


@pytest.fixture
def classroom():
    classroom = MagicMock()
    classroom.fetch.return_value = classroom_records()
    return classroom


@pytest.fixture
def context(config, settings, tmp_path, sink, scanner, classroom):
    return RunContext(
        config=config,
        settings=settings,
        store=SheetStore(tmp_path / "data"),
        sink=sink,
        scanner_factory=lambda: scanner,
        classroom_factory=lambda: classroom,
        clock=lambda: NOW,
    )


class TestRunDaily:
    def test_full_run(self, context, sink, scanner):
        report = run_daily(context)

        assert report.ok
        assert report.phases == {"webclass": "ok", "classroom": "ok", "tasks": "ok"}
        assert report.scanned == {"WebClass": 2, "Classroom": 1}
        assert report.registered == 2
        scanner.scan.assert_called_once_with("s123", "secret")

        webclass = context.store.read_records(Source.WEBCLASS)
        # the undated record was skipped and then purged by cleanup
        assert [r.link_url for r in webclass] == ["W1"]
        assert webclass[0].lifecycle_flag is LifecycleFlag.REGISTERED
        classroom = context.store.read_records(Source.CLASSROOM)
        assert classroom[0].sink_task_id in sink.tasks

    def test_second_run_keeps_registrations(self, context, sink):
        run_daily(context)
        task_ids = {r.sink_task_id for r in context.store.read_records(Source.WEBCLASS)}

        report = run_daily(context)

        assert report.registered == 0
        assert len(sink.inserted) == 2
        assert {r.sink_task_id for r in context.store.read_records(Source.WEBCLASS)} == task_ids

    def test_completion_flows_back_to_sheet(self, context, sink):
        run_daily(context)
        task_id = context.store.read_records(Source.CLASSROOM)[0].sink_task_id
        sink.complete(task_id)

        report = run_daily(context)

        assert report.completed == 1
        record = context.store.read_records(Source.CLASSROOM)[0]
        assert record.lifecycle_flag is LifecycleFlag.COMPLETED

    def test_webclass_failure_does_not_block_classroom(self, context, scanner):
        scanner.scan.side_effect = AuthenticationError("SSO authentication failed")

        report = run_daily(context)

        assert not report.ok
        assert report.phases["webclass"].startswith("AuthenticationError")
        assert report.phases["classroom"] == "ok"
        assert report.phases["tasks"] == "ok"
        assert report.registered == 1
        assert context.store.read_records(Source.WEBCLASS) == []

    def test_failed_scan_keeps_stored_state(self, context, scanner):
        run_daily(context)
        before = context.store.read_records(Source.WEBCLASS)
        scanner.scan.side_effect = AuthenticationError("down")

        run_daily(context)

        assert context.store.read_records(Source.WEBCLASS) == before

    def test_sink_failure_in_one_source_is_isolated(self, context, sink, monkeypatch):
        original = context.store.read_records

        def read_records(source):
            if source is Source.WEBCLASS and sink.inserted:
                raise OSError("sheet locked")
            return original(source)

        monkeypatch.setattr(context.store, "read_records", read_records)
        run_daily(context)

        report = run_daily(context)
        assert "tasks:WebClass" in report.phases
        assert not report.ok

    def test_missing_credentials_are_fatal(self, context, settings, sink, scanner):
        settings.reset_all()
        with pytest.raises(ConfigMissing):
            run_daily(context)
        scanner.scan.assert_not_called()
        assert sink.inserted == []

    def test_deleted_task_list_is_fatal(self, context, scanner):
        context.sink = FakeSink(list_ids=())
        with pytest.raises(SinkListInvalid):
            run_daily(context)
        scanner.scan.assert_not_called()

    def test_unreachable_sink_still_runs_both_scans(self, context, sink, monkeypatch):
        def get_task_list(list_id):
            raise SinkAPIError("503 backend")

        monkeypatch.setattr(sink, "get_task_list", get_task_list)

        report = run_daily(context)

        assert not report.ok
        assert report.phases["tasks"].startswith("SinkAPIError")
        assert report.phases["webclass"] == "ok"
        assert report.phases["classroom"] == "ok"
        assert report.scanned == {"WebClass": 2, "Classroom": 1}
        assert len(context.store.read_records(Source.WEBCLASS)) == 2
        assert sink.inserted == []

    def test_expired_google_token_still_runs_both_scans(
        self, config, settings, tmp_path, scanner, classroom
    ):
        def sink_factory():
            raise RefreshError("invalid_grant: Token has been expired or revoked.")

        context = RunContext(
            config=config,
            settings=settings,
            store=SheetStore(tmp_path / "data"),
            sink=None,
            sink_factory=sink_factory,
            scanner_factory=lambda: scanner,
            classroom_factory=lambda: classroom,
            clock=lambda: NOW,
        )

        report = run_daily(context)

        assert report.phases["tasks"].startswith("RefreshError")
        assert report.scanned == {"WebClass": 2, "Classroom": 1}
        scanner.scan.assert_called_once_with("s123", "secret")
        assert [r.link_url for r in context.store.read_records(Source.CLASSROOM)] == [
            "https://classroom.google.com/c/1/a/1"
        ]


class TestSetup:
    def test_setup_tasks(self, tmp_path, sink):
        settings = SettingsStore(tmp_path / "settings.json")
        scheduler = MagicMock()

        list_id = setup_tasks(settings, sink, scheduler, "Homework", 7, 14)

        assert list_id == "Homework-id"
        assert settings.get_setting(keys.TASK_LIST_ID) == "Homework-id"
        assert settings.get_int(keys.CLEANUP_DAYS) == 14
        scheduler.register_daily.assert_called_once_with(7)

    def test_setup_rejects_bad_hour_before_side_effects(self, tmp_path, sink):
        settings = SettingsStore(tmp_path / "settings.json")
        scheduler = MagicMock()
        with pytest.raises(ValueError):
            setup_tasks(settings, sink, scheduler, "Homework", 30, 14)
        scheduler.register_daily.assert_not_called()
        assert not settings.path.exists()

    def test_reset_all(self, settings):
        scheduler = MagicMock()
        reset_all(settings, scheduler)
        assert settings.get_setting(keys.USERID) is None
        scheduler.remove.assert_called_once()
