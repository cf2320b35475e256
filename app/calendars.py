"""
Calendar router: Google connection status, calendar list, per-user calendar
assignments, merged event feed, and the admin-managed todo calendar.

Calls that read Google data on behalf of the current user go through
call_with_token_retry: refresh when the stored expiry has passed, and on a
401 refresh once more and retry exactly once. A failed refresh clears the
user's tokens and answers 401 with "reauthorize".
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth import get_current_user, require_admin
from database import get_db, upsert
from models import CalendarAssignment, TodoCalendarConfig, User
from services.calendar_service import fetch_assigned_events, list_calendars
from services.todo_sync import get_active_config
from services.token_service import call_with_token_retry, clear_tokens, is_connected

router = APIRouter(prefix="/calendar")


# --- Request models ---


class CalendarRef(BaseModel):
    calendar_id: str = Field(..., min_length=1, max_length=1024)
    calendar_name: str | None = Field(None, max_length=255)


class AssignmentsBody(BaseModel):
    """Full set of calendars the user wants on their dashboard."""
    calendars: list[CalendarRef] = Field(default_factory=list, max_length=50)


def _config_dict(cfg: TodoCalendarConfig | None) -> dict | None:
    if cfg is None:
        return None
    return {"id": cfg.id, "calendar_id": cfg.calendar_id, "calendar_name": cfg.calendar_name}


def _user_assignments(db: Session, user: User) -> list[CalendarAssignment]:
    return (
        db.query(CalendarAssignment)
        .filter_by(user_id=user.id)
        .order_by(CalendarAssignment.id)
        .all()
    )


# --- Connection ---


@router.get("/status")
def connection_status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"connected": is_connected(db, user.id)}


@router.post("/disconnect")
def disconnect(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Forget the user's Google tokens."""
    clear_tokens(db, user.id)
    return {"ok": True, "connected": False}


# --- Google data ---


@router.get("/calendars")
def get_calendars(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Calendars on the user's Google calendar list (to pick assignments from)."""
    return {"calendars": call_with_token_retry(db, user.id, list_calendars)}


@router.get("/events")
def get_events(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Upcoming events from all calendars assigned to the user, merged and
    sorted by start time.
    """
    assignments = _user_assignments(db, user)
    if not assignments:
        return {"events": [], "message": "No calendars assigned; pick some under My Calendars"}
    events = call_with_token_retry(
        db,
        user.id,
        lambda access_token: fetch_assigned_events(access_token, assignments),
    )
    return {"events": events}


# --- Assignments ---


@router.get("/assignments")
def get_assignments(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {
        "assignments": [
            {"calendar_id": a.calendar_id, "calendar_name": a.calendar_name}
            for a in _user_assignments(db, user)
        ]
    }


@router.put("/assignments")
def set_assignments(
    body: AssignmentsBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Replace the user's calendar selection with exactly the given calendars."""
    wanted = {ref.calendar_id: ref.calendar_name for ref in body.calendars}
    for existing in _user_assignments(db, user):
        if existing.calendar_id not in wanted:
            db.delete(existing)
    for calendar_id, calendar_name in wanted.items():
        upsert(
            db,
            CalendarAssignment,
            {"user_id": user.id, "calendar_id": calendar_id},
            {"calendar_name": calendar_name},
        )
    db.commit()
    return get_assignments(user, db)


# --- Todo calendar (shared, admin managed) ---


@router.get("/todo-calendar")
def get_todo_calendar(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """The calendar todos are mirrored into, or null when mirroring is off."""
    return {"config": _config_dict(get_active_config(db))}


@router.put("/todo-calendar")
def set_todo_calendar(
    body: CalendarRef,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Make the given calendar the active todo calendar; any previous one is deactivated."""
    db.query(TodoCalendarConfig).filter_by(is_active=True).update({"is_active": False})
    cfg = TodoCalendarConfig(calendar_id=body.calendar_id, calendar_name=body.calendar_name, is_active=True)
    db.add(cfg)
    db.commit()
    return {"config": _config_dict(cfg)}


@router.delete("/todo-calendar")
def clear_todo_calendar(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Turn todo mirroring off."""
    db.query(TodoCalendarConfig).filter_by(is_active=True).update({"is_active": False})
    db.commit()
    return {"config": None}
