"""
Mirror todos into the shared todo calendar.

The todo row is authoritative and the calendar event is a projection of it:
both operations run after the local write has been committed and report
failures as {"ok": False, "warning": ...} instead of raising, so a Google
outage leaves the todo correct locally and stale remotely. Errors from the
local database still propagate.

Calendar calls use the tokens of the configured service account
(CALENDAR_SERVICE_ACCOUNT_ID), not those of the user who triggered them.
A rejected token is refreshed and the call retried once, as for event reads.
"""
import logging
from datetime import datetime, timedelta, UTC

from sqlalchemy.orm import Session

import config
from models import Todo, TodoCalendarConfig, as_utc
from services import calendar_service
from services.errors import ConfigurationMissing, ServiceError
from services.token_service import call_with_token_retry

log = logging.getLogger(__name__)

DEFAULT_LEAD = timedelta(hours=24)
EVENT_DURATION = timedelta(hours=1)


def get_active_config(db: Session) -> TodoCalendarConfig | None:
    return db.query(TodoCalendarConfig).filter_by(is_active=True).order_by(TodoCalendarConfig.id.desc()).first()


def require_sync_target(db: Session, service_account_id: str | None = None) -> tuple[TodoCalendarConfig, str]:
    """Active todo calendar and the identity whose tokens write to it; raises ConfigurationMissing."""
    cal_config = get_active_config(db)
    if cal_config is None:
        raise ConfigurationMissing("No active todo calendar configured")
    owner_id = service_account_id or config.CALENDAR_SERVICE_ACCOUNT_ID
    if not owner_id:
        raise ConfigurationMissing("No calendar service account configured")
    return cal_config, owner_id


def build_event_body(todo: Todo, now: datetime | None = None) -> dict:
    """Event payload: one hour at the due time, or starting 24h from now when undated."""
    start = as_utc(todo.due_at) or (now or datetime.now(UTC)) + DEFAULT_LEAD
    end = start + EVENT_DURATION
    assignee = todo.assignee.name if todo.assignee is not None and todo.assignee.name else "Nobody"
    lines = [
        todo.description or "",
        "",
        f"Category: {todo.category or 'None'}",
        f"Priority: {todo.priority}",
        f"Assigned to: {assignee}",
    ]
    return {
        "summary": f"\U0001F4CB {todo.title}",
        "description": "\n".join(lines).strip(),
        "start": {"dateTime": start.isoformat(), "timeZone": config.CALENDAR_TIMEZONE},
        "end": {"dateTime": end.isoformat(), "timeZone": config.CALENDAR_TIMEZONE},
        "extendedProperties": {
            "private": {"todoId": str(todo.id), "appSource": config.CALENDAR_APP_SOURCE},
        },
    }


def create_event(db: Session, todo: Todo, service_account_id: str | None = None) -> dict:
    """
    Create the calendar event for a saved todo and record its id on the todo.
    A todo that already has an event is left alone.
    """
    if todo.calendar_event_id:
        return {"ok": True, "event_id": todo.calendar_event_id, "warning": None}
    try:
        cal_config, owner_id = require_sync_target(db, service_account_id)
        body = build_event_body(todo)
        created = call_with_token_retry(
            db, owner_id, lambda token: calendar_service.create_event(token, cal_config.calendar_id, body)
        )
    except ServiceError as e:
        log.warning("Todo %s saved but not synced to calendar: %s", todo.id, e.msg)
        return {"ok": False, "event_id": None, "warning": f"Todo saved, but not synced to calendar: {e.msg}"}

    todo.calendar_event_id = created["id"]
    db.commit()
    log.info("Todo %s mirrored as calendar event %s", todo.id, created["id"])
    return {"ok": True, "event_id": created["id"], "warning": None}


def delete_event(db: Session, todo: Todo, service_account_id: str | None = None) -> dict:
    """
    Delete the todo's calendar event, if it has one. No event id means
    nothing to do and no network call; an event already gone counts as deleted.
    """
    event_id = todo.calendar_event_id
    if not event_id:
        return {"ok": True, "event_id": None, "warning": None}
    try:
        cal_config, owner_id = require_sync_target(db, service_account_id)
        deleted = call_with_token_retry(
            db, owner_id, lambda token: calendar_service.delete_event(token, cal_config.calendar_id, event_id)
        )
    except ServiceError as e:
        log.warning("Calendar event %s for todo %s not deleted: %s", event_id, todo.id, e.msg)
        return {"ok": False, "event_id": event_id, "warning": f"Calendar event not removed: {e.msg}"}

    if not deleted:
        log.info("Calendar event %s for todo %s was already gone", event_id, todo.id)
    todo.calendar_event_id = None
    db.commit()
    return {"ok": True, "event_id": event_id, "warning": None}
