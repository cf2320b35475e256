"""Mirroring todos into the todo calendar."""
from datetime import datetime, timedelta, UTC
from unittest.mock import MagicMock

import pytest

from models import Todo
from services import todo_sync
from services import token_service
from services.errors import AuthenticationRejected, CalendarApiError


@pytest.fixture
def todo(db, member):
    todo = Todo(
        title="Take out the bins",
        description="Green bin this week",
        category="Chores",
        priority="high",
        assigned_to=member.id,
        notes="Kerbside before 7am",
    )
    db.add(todo)
    db.commit()
    return todo


@pytest.fixture
def fake_calendar(monkeypatch):
    """In-memory stand-in for the calendar API, recording calls."""
    api = MagicMock()
    api.create_event.side_effect = lambda token, cal_id, body: {"id": "evt-123", **body}
    api.delete_event.return_value = True
    monkeypatch.setattr(todo_sync.calendar_service, "create_event", api.create_event)
    monkeypatch.setattr(todo_sync.calendar_service, "delete_event", api.delete_event)
    return api


def test_event_body_defaults_to_24h_from_now(todo):
    now = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

    body = todo_sync.build_event_body(todo, now=now)

    assert body["start"]["dateTime"] == "2026-10-20T12:00:00+00:00"
    assert body["end"]["dateTime"] == "2026-10-20T13:00:00+00:00"
    assert body["start"]["timeZone"] == "Europe/Amsterdam"
    assert "Take out the bins" in body["summary"]
    assert "Priority: high" in body["description"]
    assert "Category: Chores" in body["description"]
    assert "Assigned to: Sam" in body["description"]
    assert body["extendedProperties"]["private"]["todoId"] == str(todo.id)


def test_event_body_uses_due_time(db, todo):
    todo.due_at = datetime(2026, 11, 1, 18, 30, tzinfo=UTC)
    db.commit()

    body = todo_sync.build_event_body(todo)

    assert body["start"]["dateTime"] == "2026-11-01T18:30:00+00:00"
    assert body["end"]["dateTime"] == "2026-11-01T19:30:00+00:00"


def test_create_records_event_id_and_leaves_notes_alone(db, todo, service_account, todo_calendar, fake_calendar):
    result = todo_sync.create_event(db, todo)

    assert result == {"ok": True, "event_id": "evt-123", "warning": None}
    db.expire_all()
    assert todo.calendar_event_id == "evt-123"
    assert todo.notes == "Kerbside before 7am"
    token, calendar_id, _ = fake_calendar.create_event.call_args.args
    assert token == "svc-access"
    assert calendar_id == todo_calendar.calendar_id


def test_create_is_a_noop_for_already_mirrored_todo(db, todo, service_account, todo_calendar, fake_calendar):
    todo.calendar_event_id = "existing"
    db.commit()

    assert todo_sync.create_event(db, todo)["event_id"] == "existing"
    fake_calendar.create_event.assert_not_called()


def test_create_failure_is_a_warning(db, todo, service_account, todo_calendar, fake_calendar):
    fake_calendar.create_event.side_effect = CalendarApiError("HTTP 500", status_code=500)

    result = todo_sync.create_event(db, todo)

    assert result["ok"] is False
    assert "not synced" in result["warning"]
    assert db.get(Todo, todo.id) is not None
    assert todo.calendar_event_id is None


def test_create_without_todo_calendar_is_a_warning(db, todo, service_account, fake_calendar):
    result = todo_sync.create_event(db, todo)

    assert result["ok"] is False
    assert "No active todo calendar" in result["warning"]
    fake_calendar.create_event.assert_not_called()


def test_delete_without_event_id_makes_no_calls(db, todo, monkeypatch, fake_calendar):
    get_token = MagicMock()
    monkeypatch.setattr(todo_sync, "call_with_token_retry", get_token)

    result = todo_sync.delete_event(db, todo)

    assert result == {"ok": True, "event_id": None, "warning": None}
    get_token.assert_not_called()
    fake_calendar.delete_event.assert_not_called()


def test_create_then_delete_removes_the_same_event(db, todo, service_account, todo_calendar, fake_calendar):
    created = todo_sync.create_event(db, todo)

    deleted = todo_sync.delete_event(db, todo)

    assert deleted["ok"] is True
    assert deleted["event_id"] == created["event_id"]
    fake_calendar.delete_event.assert_called_once_with("svc-access", todo_calendar.calendar_id, "evt-123")
    db.expire_all()
    assert todo.calendar_event_id is None


def test_delete_of_event_already_gone_succeeds(db, todo, service_account, todo_calendar, fake_calendar):
    todo.calendar_event_id = "evt-gone"
    db.commit()
    fake_calendar.delete_event.return_value = False

    assert todo_sync.delete_event(db, todo)["ok"] is True
    assert todo.calendar_event_id is None


def test_delete_failure_keeps_the_link_and_warns(db, todo, service_account, todo_calendar, fake_calendar):
    todo.calendar_event_id = "evt-1"
    db.commit()
    fake_calendar.delete_event.side_effect = CalendarApiError("HTTP 500", status_code=500)

    result = todo_sync.delete_event(db, todo)

    assert result["ok"] is False
    assert result["event_id"] == "evt-1"
    assert "not removed" in result["warning"]
    assert todo.calendar_event_id == "evt-1"


def test_expired_service_token_is_refreshed_before_create(db, todo, service_account, todo_calendar, fake_calendar, monkeypatch):
    from services import token_service
    from services.token_service import load_token

    row = load_token(db, service_account.id)
    row.expires_at = datetime.now(UTC) - timedelta(hours=1)
    db.commit()
    monkeypatch.setattr(
        token_service,
        "_token_request",
        MagicMock(return_value={"access_token": "svc-access-2", "expires_in": 3600}),
    )

    assert todo_sync.create_event(db, todo)["ok"] is True
    assert fake_calendar.create_event.call_args.args[0] == "svc-access-2"


def test_missing_service_account_is_reported(db, todo, todo_calendar, fake_calendar, monkeypatch):
    monkeypatch.setattr(todo_sync.config, "CALENDAR_SERVICE_ACCOUNT_ID", None)

    result = todo_sync.create_event(db, todo)

    assert result["ok"] is False
    assert "service account" in result["warning"]


def test_rejected_service_token_is_refreshed_and_create_retried_once(db, todo, service_account, todo_calendar, fake_calendar, monkeypatch):
    grant = MagicMock(return_value={"access_token": "svc-access-2", "expires_in": 3600})
    monkeypatch.setattr(token_service, "_token_request", grant)
    fake_calendar.create_event.side_effect = [AuthenticationRejected("401"), {"id": "evt-456"}]

    result = todo_sync.create_event(db, todo)

    assert result == {"ok": True, "event_id": "evt-456", "warning": None}
    assert grant.call_count == 1
    assert [c.args[0] for c in fake_calendar.create_event.call_args_list] == ["svc-access", "svc-access-2"]


def test_rejected_service_token_is_refreshed_and_delete_retried_once(db, todo, service_account, todo_calendar, fake_calendar, monkeypatch):
    todo.calendar_event_id = "evt-1"
    db.commit()
    monkeypatch.setattr(
        token_service,
        "_token_request",
        MagicMock(return_value={"access_token": "svc-access-2", "expires_in": 3600}),
    )
    fake_calendar.delete_event.side_effect = [AuthenticationRejected("401"), True]

    assert todo_sync.delete_event(db, todo)["ok"] is True
    assert fake_calendar.delete_event.call_count == 2
    assert todo.calendar_event_id is None


def test_failed_refresh_during_sync_disconnects_service_account(db, todo, service_account, todo_calendar, fake_calendar, monkeypatch):
    from services.errors import TokenGrantRejected

    monkeypatch.setattr(token_service, "_token_request", MagicMock(side_effect=TokenGrantRejected("invalid_grant")))
    fake_calendar.create_event.side_effect = AuthenticationRejected("401")

    result = todo_sync.create_event(db, todo)

    assert result["ok"] is False
    assert fake_calendar.create_event.call_count == 1
    db.expire_all()
    assert not token_service.is_connected(db, service_account.id)
