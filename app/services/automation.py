"""
Household automations: recurring todos and shopping items, shopping lists
from planned recipes, reminders, stats.

Each function is a straight sequence of reads and writes; callers trigger
them on demand (dashboard button or an external scheduler hitting the API).
"""
import logging
import random
from datetime import date, datetime, timedelta, UTC

from sqlalchemy.orm import Session

from models import (
    MealPlan,
    Recipe,
    RecurringShoppingItem,
    ShoppingItem,
    Todo,
    TodoTemplate,
    User,
    as_utc,
)

log = logging.getLogger(__name__)

SHOPPING_CATEGORY = "Other"


def create_recurring_todos(db: Session) -> list[Todo]:
    """One open, medium-priority todo per active template."""
    templates = db.query(TodoTemplate).filter_by(is_active=True).order_by(TodoTemplate.id).all()
    todos = [
        Todo(
            title=t.title,
            description=t.description,
            category=t.category,
            assigned_to=t.default_assigned_to,
            status="open",
            priority="medium",
        )
        for t in templates
    ]
    db.add_all(todos)
    db.commit()
    log.info("Created %d recurring todos", len(todos))
    return todos


def overdue_reminders(db: Session, now: datetime | None = None) -> list[dict]:
    """Open todos past their due time, oldest first."""
    now = now or datetime.now(UTC)
    overdue = (
        db.query(Todo)
        .filter(Todo.status == "open", Todo.due_at.isnot(None), Todo.due_at < now)
        .order_by(Todo.due_at)
        .all()
    )
    return [
        {
            "todo_id": t.id,
            "title": t.title,
            "assigned_to": t.assignee.name if t.assignee is not None else None,
            "user_id": t.assigned_to,
            "days_overdue": (now - as_utc(t.due_at)).days,
        }
        for t in overdue
    ]


def todo_stats(db: Session, user_id: str) -> dict:
    todos = db.query(Todo.status, Todo.priority).filter(Todo.assigned_to == user_id).all()
    return {
        "total": len(todos),
        "completed": sum(1 for status, _ in todos if status == "completed"),
        "open": sum(1 for status, _ in todos if status == "open"),
        "high_priority": sum(1 for status, priority in todos if status == "open" and priority == "high"),
    }


def assign_random(db: Session, todo: Todo, rng: random.Random | None = None) -> User | None:
    """Give the todo to a randomly chosen family member. None when there are no users."""
    users = db.query(User).order_by(User.id).all()
    if not users:
        return None
    chosen = (rng or random).choice(users)
    todo.assigned_to = chosen.id
    db.commit()
    return chosen


def add_due_recurring_items(db: Session, now: datetime | None = None) -> list[ShoppingItem]:
    """Put recurring items on the list when frequency_days have passed since they were last added."""
    now = now or datetime.now(UTC)
    added: list[ShoppingItem] = []
    for item in db.query(RecurringShoppingItem).filter_by(is_active=True).order_by(RecurringShoppingItem.id):
        last_added = as_utc(item.last_added)
        if last_added is not None and now - last_added < timedelta(days=item.frequency_days):
            continue
        added.append(ShoppingItem(name=item.name, quantity=item.quantity, category=item.category))
        item.last_added = now
    db.add_all(added)
    db.commit()
    log.info("Added %d recurring shopping items", len(added))
    return added


def cooking_reminders(db: Session, today: date | None = None, meal_type: str = "dinner") -> list[dict]:
    """Who cooks what today."""
    today = today or date.today()
    meals = db.query(MealPlan).filter_by(meal_date=today, meal_type=meal_type).order_by(MealPlan.id).all()
    return [
        {
            "meal_id": m.id,
            "meal": meal_name(m),
            "cook": m.cook.name if m.cook is not None else None,
            "assigned_to": m.assigned_to,
        }
        for m in meals
    ]


def meal_name(meal: MealPlan) -> str:
    if meal.custom_meal_name:
        return meal.custom_meal_name
    if meal.recipe is not None:
        return meal.recipe.name
    return "Unknown meal"


def _amount(quantity: str | None, unit: str | None) -> str | None:
    return " ".join(part for part in (quantity, unit) if part) or None


def ingredients_for_meals(db: Session, start: date, end: date) -> list[dict]:
    """
    Ingredients of every recipe planned between start and end (inclusive),
    merged case-insensitively by name. Amounts are not converted between
    units; a repeated ingredient lists its amounts joined with " + ".
    """
    meals = (
        db.query(MealPlan)
        .join(Recipe, MealPlan.recipe_id == Recipe.id)
        .filter(MealPlan.meal_date >= start, MealPlan.meal_date <= end)
        .order_by(MealPlan.meal_date, MealPlan.id)
        .all()
    )
    merged: dict[str, dict] = {}
    for meal in meals:
        for ingredient in meal.recipe.ingredients:
            key = ingredient.ingredient_name.strip().lower()
            amount = _amount(ingredient.quantity, ingredient.unit)
            entry = merged.setdefault(key, {"name": ingredient.ingredient_name.strip(), "amounts": [], "recipes": []})
            if amount:
                entry["amounts"].append(amount)
            if meal.recipe.name not in entry["recipes"]:
                entry["recipes"].append(meal.recipe.name)
    return [
        {
            "name": entry["name"],
            "quantity": " + ".join(entry["amounts"]) or None,
            "category": SHOPPING_CATEGORY,
            "recipes": entry["recipes"],
        }
        for entry in merged.values()
    ]


def generate_shopping_list(db: Session, start: date, end: date, added_by: str | None = None) -> list[ShoppingItem]:
    """Put the merged ingredients of the meals planned in [start, end] on the shopping list."""
    items = [
        ShoppingItem(
            name=ingredient["name"],
            quantity=ingredient["quantity"],
            category=ingredient["category"],
            notes=f"For: {', '.join(ingredient['recipes'])}",
            added_by=added_by,
        )
        for ingredient in ingredients_for_meals(db, start, end)
    ]
    db.add_all(items)
    db.commit()
    log.info("Added %d ingredients for meals %s..%s to the shopping list", len(items), start, end)
    return items
