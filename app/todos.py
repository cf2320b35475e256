"""
Todos router: CRUD, completion, calendar mirroring, templates, automation.

The todo row is written and committed first; mirroring into the shared todo
calendar happens afterwards and only ever adds a "calendar_sync" warning to
the response. Asking for mirroring while no todo calendar is configured is
rejected up front (400) with nothing written.
"""
from datetime import datetime, UTC
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from models import Todo, TodoTemplate, User, as_utc
from services import automation, todo_sync

router = APIRouter(prefix="/todos")

Priority = Literal["low", "medium", "high"]
Status = Literal["open", "completed"]


# --- Request models ---


class TodoCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    priority: Priority = "medium"
    due_at: datetime | None = None
    assigned_to: str | None = None
    notes: str | None = None
    sync_to_calendar: bool = False

    @field_validator("due_at")
    @classmethod
    def _due_at_in_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class TodoUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    priority: Priority | None = None
    due_at: datetime | None = None
    assigned_to: str | None = None
    notes: str | None = None

    @field_validator("title", "priority")
    @classmethod
    def _not_null(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"{info.field_name} may be omitted but not null")
        return value

    @field_validator("due_at")
    @classmethod
    def _due_at_in_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class TemplateCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    default_assigned_to: str | None = None
    is_active: bool = True


def todo_dict(todo: Todo) -> dict:
    due_at = as_utc(todo.due_at)
    completed_at = as_utc(todo.completed_at)
    return {
        "id": todo.id,
        "title": todo.title,
        "description": todo.description,
        "category": todo.category,
        "priority": todo.priority,
        "status": todo.status,
        "due_at": due_at.isoformat() if due_at else None,
        "notes": todo.notes,
        "calendar_event_id": todo.calendar_event_id,
        "assigned_to": todo.assigned_to,
        "assignee_name": todo.assignee.name if todo.assignee is not None else None,
        "created_by": todo.created_by,
        "completed_by": todo.completed_by,
        "completed_at": completed_at.isoformat() if completed_at else None,
    }


def _template_dict(t: TodoTemplate) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "category": t.category,
        "default_assigned_to": t.default_assigned_to,
        "is_active": t.is_active,
    }


def _get_todo(db: Session, todo_id: int) -> Todo:
    todo = db.get(Todo, todo_id)
    if todo is None:
        raise HTTPException(status_code=404, detail="Todo not found")
    return todo


def _check_assignee(db: Session, user_id: str | None) -> None:
    if user_id is not None and db.get(User, user_id) is None:
        raise HTTPException(status_code=400, detail=f"Unknown user {user_id}")


# --- Templates and automation (static paths before /{todo_id}) ---


@router.get("/templates")
def list_templates(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    templates = db.query(TodoTemplate).order_by(TodoTemplate.id).all()
    return {"templates": [_template_dict(t) for t in templates]}


@router.post("/templates", status_code=201)
def create_template(
    body: TemplateCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_assignee(db, body.default_assigned_to)
    template = TodoTemplate(**body.model_dump())
    db.add(template)
    db.commit()
    return _template_dict(template)


@router.delete("/templates/{template_id}")
def delete_template(template_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    template = db.get(TodoTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    db.delete(template)
    db.commit()
    return {"ok": True}


@router.post("/automation/recurring")
def run_recurring(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Create todos from every active template."""
    created = automation.create_recurring_todos(db)
    return {"created_count": len(created), "todos": [todo_dict(t) for t in created]}


@router.get("/automation/overdue")
def overdue(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"reminders": automation.overdue_reminders(db)}


@router.get("/stats")
def stats(
    user_id: str | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Todo counts for a user (default: the caller)."""
    return {"user_id": user_id or user.id, "stats": automation.todo_stats(db, user_id or user.id)}


# --- Todos ---


@router.get("")
def list_todos(
    status: Status | None = None,
    assigned_to: str | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Todo)
    if status:
        query = query.filter(Todo.status == status)
    if assigned_to:
        query = query.filter(Todo.assigned_to == assigned_to)
    todos = query.order_by(Todo.status, Todo.due_at, Todo.id).all()
    return {"todos": [todo_dict(t) for t in todos]}


@router.post("", status_code=201)
def create_todo(
    body: TodoCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Save a todo; with sync_to_calendar, also mirror it into the todo calendar.
    A mirroring failure leaves the todo saved and is reported as a warning.
    """
    _check_assignee(db, body.assigned_to)
    if body.sync_to_calendar:
        todo_sync.require_sync_target(db)

    todo = Todo(
        **body.model_dump(exclude={"sync_to_calendar"}),
        status="open",
        created_by=user.id,
    )
    db.add(todo)
    db.commit()

    sync = todo_sync.create_event(db, todo) if body.sync_to_calendar else None
    return {"todo": todo_dict(todo), "calendar_sync": sync}


@router.get("/{todo_id}")
def get_todo(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return todo_dict(_get_todo(db, todo_id))


@router.patch("/{todo_id}")
def update_todo(
    todo_id: int,
    body: TodoUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    todo = _get_todo(db, todo_id)
    changes = body.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        _check_assignee(db, changes["assigned_to"])
    for attr, value in changes.items():
        setattr(todo, attr, value)
    db.commit()
    return todo_dict(todo)


@router.post("/{todo_id}/toggle")
def toggle_status(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Flip open <-> completed. Completing a mirrored todo removes its calendar
    event; that removal is best effort and never blocks the completion.
    """
    todo = _get_todo(db, todo_id)
    if todo.status == "open":
        todo.status = "completed"
        todo.completed_at = datetime.now(UTC)
        todo.completed_by = user.id
    else:
        todo.status = "open"
        todo.completed_at = None
        todo.completed_by = None
    db.commit()

    sync = todo_sync.delete_event(db, todo) if todo.status == "completed" else None
    return {"todo": todo_dict(todo), "calendar_sync": sync}


@router.post("/{todo_id}/calendar-sync")
def sync_todo(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Mirror an existing open todo into the todo calendar (e.g. after an earlier failure)."""
    todo = _get_todo(db, todo_id)
    if todo.status != "open":
        raise HTTPException(status_code=400, detail="Only open todos are mirrored")
    todo_sync.require_sync_target(db)
    return {"todo_id": todo.id, "calendar_sync": todo_sync.create_event(db, todo)}


@router.post("/{todo_id}/assign-random")
def assign_random(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    todo = _get_todo(db, todo_id)
    if automation.assign_random(db, todo) is None:
        raise HTTPException(status_code=400, detail="No family members to assign")
    return todo_dict(todo)


@router.delete("/{todo_id}")
def delete_todo(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Delete a todo, removing its calendar event first when it has one (best effort)."""
    todo = _get_todo(db, todo_id)
    sync = todo_sync.delete_event(db, todo)
    db.delete(todo)
    db.commit()
    return {"ok": True, "calendar_sync": sync}
