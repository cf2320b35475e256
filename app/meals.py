"""
Meals router: recipes, the weekly meal plan, who cooks today, and turning
the planned recipes into shopping list items.
"""
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from models import MealPlan, Recipe, RecipeIngredient, User
from services import automation
from shopping import item_dict

router = APIRouter(prefix="/meals")

MealType = Literal["breakfast", "lunch", "dinner", "snack"]


class IngredientBody(BaseModel):
    ingredient_name: str = Field(..., min_length=1, max_length=255)
    quantity: str | None = Field(None, max_length=100)
    unit: str | None = Field(None, max_length=50)
    notes: str | None = None


class RecipeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    servings: int | None = Field(None, ge=1)
    instructions: str | None = None
    ingredients: list[IngredientBody] = []


class MealCreate(BaseModel):
    meal_date: date
    meal_type: MealType = "dinner"
    recipe_id: int | None = None
    custom_meal_name: str | None = Field(None, max_length=255)
    notes: str | None = None
    assigned_to: str | None = None


class MealUpdate(BaseModel):
    meal_date: date | None = None
    meal_type: MealType | None = None
    recipe_id: int | None = None
    custom_meal_name: str | None = Field(None, max_length=255)
    notes: str | None = None
    assigned_to: str | None = None
    is_completed: bool | None = None

    @field_validator("meal_date", "meal_type", "is_completed")
    @classmethod
    def _not_null(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"{info.field_name} may be omitted but not null")
        return value


class ShoppingListRequest(BaseModel):
    start: date
    end: date


def _recipe_dict(recipe: Recipe) -> dict:
    return {
        "id": recipe.id,
        "name": recipe.name,
        "description": recipe.description,
        "category": recipe.category,
        "servings": recipe.servings,
        "instructions": recipe.instructions,
        "ingredients": [
            {
                "ingredient_name": i.ingredient_name,
                "quantity": i.quantity,
                "unit": i.unit,
                "notes": i.notes,
            }
            for i in recipe.ingredients
        ],
    }


def _meal_dict(meal: MealPlan) -> dict:
    return {
        "id": meal.id,
        "meal_date": meal.meal_date.isoformat(),
        "meal_type": meal.meal_type,
        "recipe_id": meal.recipe_id,
        "meal_name": automation.meal_name(meal),
        "custom_meal_name": meal.custom_meal_name,
        "notes": meal.notes,
        "assigned_to": meal.assigned_to,
        "cook_name": meal.cook.name if meal.cook is not None else None,
        "is_completed": meal.is_completed,
    }


def _get_meal(db: Session, meal_id: int) -> MealPlan:
    meal = db.get(MealPlan, meal_id)
    if meal is None:
        raise HTTPException(status_code=404, detail="Meal not found")
    return meal


def _get_recipe(db: Session, recipe_id: int) -> Recipe:
    recipe = db.get(Recipe, recipe_id)
    if recipe is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return recipe


def _check_references(db: Session, values: dict) -> None:
    if values.get("assigned_to") and db.get(User, values["assigned_to"]) is None:
        raise HTTPException(status_code=400, detail=f"Unknown user {values['assigned_to']}")
    if values.get("recipe_id") is not None and db.get(Recipe, values["recipe_id"]) is None:
        raise HTTPException(status_code=400, detail=f"Unknown recipe {values['recipe_id']}")


# --- Recipes ---


@router.get("/recipes")
def list_recipes(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    recipes = db.query(Recipe).order_by(Recipe.name, Recipe.id).all()
    return {"recipes": [_recipe_dict(r) for r in recipes]}


@router.post("/recipes", status_code=201)
def create_recipe(body: RecipeCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    recipe = Recipe(
        **body.model_dump(exclude={"ingredients"}),
        created_by=user.id,
        ingredients=[RecipeIngredient(**i.model_dump()) for i in body.ingredients],
    )
    db.add(recipe)
    db.commit()
    return _recipe_dict(recipe)


@router.get("/recipes/{recipe_id}")
def get_recipe(recipe_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _recipe_dict(_get_recipe(db, recipe_id))


@router.delete("/recipes/{recipe_id}")
def delete_recipe(recipe_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Delete a recipe; meals that used it stay planned without a recipe."""
    recipe = _get_recipe(db, recipe_id)
    db.query(MealPlan).filter(MealPlan.recipe_id == recipe.id).update(
        {"recipe_id": None}, synchronize_session=False
    )
    db.delete(recipe)
    db.commit()
    return {"ok": True}


# --- Plan ---


@router.get("/reminders/today")
def todays_cooks(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"reminders": automation.cooking_reminders(db)}


@router.post("/shopping-list")
def generate_shopping_list(
    body: ShoppingListRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add the ingredients of every recipe planned from start to end to the shopping list."""
    if body.end < body.start:
        raise HTTPException(status_code=400, detail="end must not be before start")
    items = automation.generate_shopping_list(db, body.start, body.end, added_by=user.id)
    return {"added_count": len(items), "items": [item_dict(i) for i in items]}


@router.get("")
def list_meals(
    start: date | None = None,
    end: date | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Meals between start and end (inclusive); defaults to everything from today on."""
    query = db.query(MealPlan).filter(MealPlan.meal_date >= (start or date.today()))
    if end:
        query = query.filter(MealPlan.meal_date <= end)
    meals = query.order_by(MealPlan.meal_date, MealPlan.id).all()
    return {"meals": [_meal_dict(m) for m in meals]}


@router.post("", status_code=201)
def plan_meal(body: MealCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    values = body.model_dump()
    _check_references(db, values)
    meal = MealPlan(**values)
    db.add(meal)
    db.commit()
    return _meal_dict(meal)


@router.patch("/{meal_id}")
def update_meal(
    meal_id: int,
    body: MealUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    meal = _get_meal(db, meal_id)
    changes = body.model_dump(exclude_unset=True)
    _check_references(db, changes)
    for attr, value in changes.items():
        setattr(meal, attr, value)
    db.commit()
    return _meal_dict(meal)


@router.delete("/{meal_id}")
def delete_meal(meal_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    db.delete(_get_meal(db, meal_id))
    db.commit()
    return {"ok": True}
