"""
Admin router: family member management.

Roles: emails listed in ADMIN_EMAILS are admins on every login and cannot be
demoted here; everyone else keeps whatever role an admin last gave them
(new sign-ups start as members). Admins cannot demote or delete themselves.
A deleted member who signs in with Google again comes back as a new member.
"""
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator
from sqlalchemy.orm import Session

from auth import require_admin
from config import ADMIN_EMAILS
from database import get_db
from models import (
    CalendarAssignment,
    GoogleToken,
    MealPlan,
    Recipe,
    ShoppingItem,
    Todo,
    TodoTemplate,
    User,
    UserLocation,
)
from services.token_service import is_connected

log = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")

Role = Literal["admin", "member"]


class UserUpdate(BaseModel):
    name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    role: Role | None = None

    @field_validator("email", "role")
    @classmethod
    def _not_null(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"{info.field_name} may be omitted but not null")
        return value


def _role_locked(user: User) -> bool:
    return user.email.lower() in ADMIN_EMAILS


def _user_dict(user: User, db: Session) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "role_locked": _role_locked(user),
        "calendar_connected": is_connected(db, user.id),
    }


def _get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _detach_user(db: Session, user_id: str) -> None:
    """Remove rows owned by the user and clear references to them; the caller commits."""
    db.query(GoogleToken).filter(GoogleToken.owner_id == user_id).delete()
    for model in (UserLocation, CalendarAssignment):
        db.query(model).filter(model.user_id == user_id).delete()
    references = [
        (Todo, "assigned_to"),
        (Todo, "created_by"),
        (Todo, "completed_by"),
        (TodoTemplate, "default_assigned_to"),
        (ShoppingItem, "checked_by"),
        (ShoppingItem, "added_by"),
        (MealPlan, "assigned_to"),
        (Recipe, "created_by"),
    ]
    for model, column in references:
        db.query(model).filter(getattr(model, column) == user_id).update(
            {column: None}, synchronize_session=False
        )


@router.get("/users")
def list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    users = db.query(User).order_by(User.name, User.email).all()
    return {"users": [_user_dict(u, db) for u in users]}


@router.patch("/users/{user_id}")
def update_user(
    user_id: str,
    body: UserUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Rename, change email, or grant/revoke the admin role."""
    user = _get_user(db, user_id)
    changes = body.model_dump(exclude_unset=True)

    if changes.get("role") == "member" and user.is_admin:
        if user.id == admin.id:
            raise HTTPException(status_code=400, detail="Admins cannot revoke their own admin role")
        if _role_locked(user):
            raise HTTPException(status_code=400, detail="Role is fixed by ADMIN_EMAILS")
    if "email" in changes:
        taken = db.query(User).filter(User.email == changes["email"], User.id != user.id).first()
        if taken is not None:
            raise HTTPException(status_code=409, detail="Email already in use")

    for attr, value in changes.items():
        setattr(user, attr, value)
    db.commit()
    log.info("Admin %s updated user %s: %s", admin.id, user.id, sorted(changes))
    return _user_dict(user, db)


@router.delete("/users/{user_id}")
def delete_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Remove a family member, their Google tokens, and their location; their todos stay, unassigned."""
    user = _get_user(db, user_id)
    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="Admins cannot delete themselves")
    _detach_user(db, user.id)
    db.delete(user)
    db.commit()
    log.info("Admin %s deleted user %s", admin.id, user_id)
    return {"ok": True}
