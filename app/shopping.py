"""
Shopping router: the shared shopping list and its recurring items.
"""
from datetime import date, datetime, timedelta, UTC

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from models import RecurringShoppingItem, ShoppingItem, User, as_utc
from services import automation

router = APIRouter(prefix="/shopping")


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: str | None = Field(None, max_length=100)
    category: str | None = Field(None, max_length=100)
    notes: str | None = None


class ItemUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    quantity: str | None = Field(None, max_length=100)
    category: str | None = Field(None, max_length=100)
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def _not_null(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"{info.field_name} may be omitted but not null")
        return value


class RecurringCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: str | None = Field(None, max_length=100)
    category: str | None = Field(None, max_length=100)
    frequency_days: int = Field(7, ge=1, le=365)


def item_dict(item: ShoppingItem) -> dict:
    checked_at = as_utc(item.checked_at)
    return {
        "id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "category": item.category,
        "notes": item.notes,
        "is_checked": item.is_checked,
        "checked_at": checked_at.isoformat() if checked_at else None,
        "checked_by": item.checked_by,
        "added_by": item.added_by,
    }


def _recurring_dict(item: RecurringShoppingItem) -> dict:
    last_added = as_utc(item.last_added)
    return {
        "id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "category": item.category,
        "frequency_days": item.frequency_days,
        "is_active": item.is_active,
        "last_added": last_added.isoformat() if last_added else None,
    }


def _get_item(db: Session, item_id: int) -> ShoppingItem:
    item = db.get(ShoppingItem, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


# --- Recurring items (static paths before /items/{item_id}) ---


@router.get("/recurring")
def list_recurring(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    items = db.query(RecurringShoppingItem).order_by(RecurringShoppingItem.id).all()
    return {"recurring": [_recurring_dict(i) for i in items]}


@router.post("/recurring", status_code=201)
def create_recurring(body: RecurringCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    item = RecurringShoppingItem(**body.model_dump())
    db.add(item)
    db.commit()
    return _recurring_dict(item)


@router.delete("/recurring/{recurring_id}")
def delete_recurring(recurring_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    item = db.get(RecurringShoppingItem, recurring_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Recurring item not found")
    db.delete(item)
    db.commit()
    return {"ok": True}


@router.post("/recurring/run")
def run_recurring(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Add every recurring item that is due to the list."""
    added = automation.add_due_recurring_items(db)
    return {"added_count": len(added), "items": [item_dict(i) for i in added]}


@router.get("/suggestions")
def suggestions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Ingredients needed for the recipes planned this coming week; nothing is added."""
    today = date.today()
    return {"suggestions": automation.ingredients_for_meals(db, today, today + timedelta(days=6))}


# --- List items ---


@router.get("/items")
def list_items(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Unchecked items first, then by category and name."""
    items = (
        db.query(ShoppingItem)
        .order_by(ShoppingItem.is_checked, ShoppingItem.category, ShoppingItem.name)
        .all()
    )
    return {"items": [item_dict(i) for i in items]}


@router.post("/items", status_code=201)
def add_item(body: ItemCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    item = ShoppingItem(**body.model_dump(), added_by=user.id)
    db.add(item)
    db.commit()
    return item_dict(item)


@router.patch("/items/{item_id}")
def update_item(
    item_id: int,
    body: ItemUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = _get_item(db, item_id)
    for attr, value in body.model_dump(exclude_unset=True).items():
        setattr(item, attr, value)
    db.commit()
    return item_dict(item)


@router.post("/items/{item_id}/toggle")
def toggle_item(item_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    item = _get_item(db, item_id)
    item.is_checked = not item.is_checked
    item.checked_at = datetime.now(UTC) if item.is_checked else None
    item.checked_by = user.id if item.is_checked else None
    db.commit()
    return item_dict(item)


@router.delete("/items/{item_id}")
def delete_item(item_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    db.delete(_get_item(db, item_id))
    db.commit()
    return {"ok": True}


@router.post("/items/clear-checked")
def clear_checked(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Remove everything already bought."""
    removed = db.query(ShoppingItem).filter_by(is_checked=True).delete()
    db.commit()
    return {"removed_count": removed}
