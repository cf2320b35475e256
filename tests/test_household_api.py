"""Presence, shopping list, and meal plan routers."""
from datetime import date, datetime, timedelta, UTC

import pytest

from models import MealPlan, Recipe, RecipeIngredient, RecurringShoppingItem, ShoppingItem
from services import automation

HOME = {"latitude": 52.3676, "longitude": 4.9041}


# --- presence ---


def test_location_report_without_home_is_configuration_error(login, member):
    resp = login(member).post("/presence/location", json={"latitude": 52.0, "longitude": 4.0})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Home location not configured"


def test_location_report_classifies_and_lists(login, admin, member):
    admin_client = login(admin)
    assert admin_client.put("/presence/home", json={**HOME, "radius_meters": 100}).status_code == 200
    client = login(member)

    resp = client.post("/presence/location", json={"latitude": 52.3680, "longitude": 4.9045, "accuracy": 12})

    assert resp.json()["status"] == "home"
    assert 10 < resp.json()["distance"] < 100
    people = {p["user_id"]: p for p in client.get("/presence").json()["people"]}
    assert people[member.id]["status"] == "home"
    assert people[admin.id]["status"] == "unknown"
    assert people[admin.id]["last_updated"] is None


def test_location_report_rejects_out_of_range_coordinates(login, member):
    client = login(member)

    assert client.post("/presence/location", json={"latitude": 91, "longitude": 4}).status_code == 422
    assert client.post("/presence/location", json={"latitude": 52, "longitude": "east"}).status_code == 422


def test_home_location_round_trip(login, admin):
    client = login(admin)

    client.put("/presence/home", json={**HOME, "radius_meters": 150, "name": "De Pijp"})

    assert client.get("/presence/home").json()["home"] == {**HOME, "radius_meters": 150, "name": "De Pijp"}


# --- shopping ---


def test_shopping_item_lifecycle(login, member):
    client = login(member)
    item = client.post("/shopping/items", json={"name": "Milk", "quantity": "2 l", "category": "Dairy"}).json()
    client.post("/shopping/items", json={"name": "Bread"})

    checked = client.post(f"/shopping/items/{item['id']}/toggle").json()
    assert checked["is_checked"] is True
    assert checked["checked_by"] == member.id

    names = [i["name"] for i in client.get("/shopping/items").json()["items"]]
    assert names == ["Bread", "Milk"]

    assert client.post("/shopping/items/clear-checked").json() == {"removed_count": 1}
    assert [i["name"] for i in client.get("/shopping/items").json()["items"]] == ["Bread"]


def test_recurring_items_are_added_when_due(login, member, db):
    now = datetime.now(UTC)
    db.add_all([
        RecurringShoppingItem(name="Coffee", frequency_days=7, last_added=now - timedelta(days=8)),
        RecurringShoppingItem(name="Eggs", frequency_days=7, last_added=now - timedelta(days=2)),
        RecurringShoppingItem(name="Rice", frequency_days=30),
        RecurringShoppingItem(name="Paused", frequency_days=1, is_active=False),
    ])
    db.commit()
    client = login(member)

    resp = client.post("/shopping/recurring/run")

    assert sorted(i["name"] for i in resp.json()["items"]) == ["Coffee", "Rice"]
    assert client.post("/shopping/recurring/run").json()["added_count"] == 0


# --- meals ---


def test_meal_plan_and_todays_cook(login, member, db):
    client = login(member)
    today = date.today()

    resp = client.post("/meals", json={
        "meal_date": today.isoformat(),
        "custom_meal_name": "Stamppot",
        "assigned_to": member.id,
    })
    assert resp.status_code == 201
    client.post("/meals", json={"meal_date": (today + timedelta(days=1)).isoformat(), "meal_type": "lunch"})

    meals = client.get("/meals", params={"start": today.isoformat(), "end": today.isoformat()}).json()["meals"]
    assert [m["custom_meal_name"] for m in meals] == ["Stamppot"]

    reminders = client.get("/meals/reminders/today").json()["reminders"]
    assert reminders == [{"meal_id": meals[0]["id"], "meal": "Stamppot", "cook": "Sam", "assigned_to": member.id}]


def test_meal_update_and_delete(login, member, db):
    meal = MealPlan(meal_date=date.today(), meal_type="dinner")
    db.add(meal)
    db.commit()
    client = login(member)

    assert client.patch(f"/meals/{meal.id}", json={"is_completed": True}).json()["is_completed"] is True
    assert client.delete(f"/meals/{meal.id}").json() == {"ok": True}
    assert client.delete(f"/meals/{meal.id}").status_code == 404


def test_shopping_item_rename_rejects_null(login, member):
    client = login(member)
    item = client.post("/shopping/items", json={"name": "Milk"}).json()

    assert client.patch(f"/shopping/items/{item['id']}", json={"name": None}).status_code == 422
    assert client.patch(f"/shopping/items/{item['id']}", json={"quantity": None}).json()["name"] == "Milk"


@pytest.mark.parametrize("field", ["meal_date", "meal_type", "is_completed"])
def test_meal_update_rejects_null_for_required_fields(login, member, db, field):
    meal = MealPlan(meal_date=date.today(), meal_type="dinner")
    db.add(meal)
    db.commit()

    resp = login(member).patch(f"/meals/{meal.id}", json={field: None})

    assert resp.status_code == 422


# --- recipes and shopping lists from the meal plan ---


def _recipe(db, name, *ingredients):
    recipe = Recipe(
        name=name,
        ingredients=[RecipeIngredient(ingredient_name=n, quantity=q, unit=u) for n, q, u in ingredients],
    )
    db.add(recipe)
    db.commit()
    return recipe


def test_recipe_create_and_plan_a_meal_with_it(login, member):
    client = login(member)

    recipe = client.post("/meals/recipes", json={
        "name": "Pancakes",
        "servings": 4,
        "ingredients": [
            {"ingredient_name": "Flour", "quantity": "250", "unit": "g"},
            {"ingredient_name": "Eggs", "quantity": "2"},
        ],
    }).json()
    assert [i["ingredient_name"] for i in recipe["ingredients"]] == ["Flour", "Eggs"]

    meal = client.post("/meals", json={"meal_date": date.today().isoformat(), "recipe_id": recipe["id"]}).json()
    assert meal["meal_name"] == "Pancakes"
    assert client.post("/meals", json={"meal_date": date.today().isoformat(), "recipe_id": 999}).status_code == 400


def test_ingredients_are_merged_by_name_across_the_range(db):
    monday = date(2026, 10, 19)
    pasta = _recipe(db, "Pasta", ("Tomatoes", "400", "g"), ("Onion", "1", None), ("Pasta", "500", "g"))
    soup = _recipe(db, "Soup", ("tomatoes ", "6", None), ("Stock", None, None))
    stew = _recipe(db, "Stew", ("Beef", "1", "kg"))
    db.add_all([
        MealPlan(meal_date=monday, recipe_id=pasta.id),
        MealPlan(meal_date=monday + timedelta(days=2), recipe_id=soup.id),
        MealPlan(meal_date=monday + timedelta(days=3), custom_meal_name="Takeaway"),
        MealPlan(meal_date=monday + timedelta(days=9), recipe_id=stew.id),
    ])
    db.commit()

    merged = {i["name"]: i for i in automation.ingredients_for_meals(db, monday, monday + timedelta(days=6))}

    assert sorted(merged) == ["Onion", "Pasta", "Stock", "Tomatoes"]
    assert merged["Tomatoes"]["quantity"] == "400 g + 6"
    assert merged["Tomatoes"]["recipes"] == ["Pasta", "Soup"]
    assert merged["Stock"]["quantity"] is None


def test_generate_shopping_list_adds_merged_items(login, member, db):
    today = date.today()
    chili = _recipe(db, "Chili", ("Beans", "2", "cans"), ("Rice", "300", "g"))
    db.add_all([
        MealPlan(meal_date=today, recipe_id=chili.id),
        MealPlan(meal_date=today + timedelta(days=1), recipe_id=chili.id),
    ])
    db.commit()
    client = login(member)

    resp = client.post("/meals/shopping-list", json={"start": today.isoformat(), "end": (today + timedelta(days=1)).isoformat()})

    assert resp.status_code == 200
    items = {i["name"]: i for i in resp.json()["items"]}
    assert resp.json()["added_count"] == 2
    assert items["Beans"]["quantity"] == "2 cans + 2 cans"
    assert items["Rice"]["added_by"] == member.id
    assert db.query(ShoppingItem).count() == 2


def test_generate_shopping_list_rejects_reversed_range(login, member):
    today = date.today()

    resp = login(member).post("/meals/shopping-list", json={
        "start": today.isoformat(),
        "end": (today - timedelta(days=1)).isoformat(),
    })

    assert resp.status_code == 400


def test_suggestions_cover_the_coming_week_without_adding(login, member, db):
    today = date.today()
    curry = _recipe(db, "Curry", ("Coconut milk", "1", "can"))
    db.add(MealPlan(meal_date=today + timedelta(days=3), recipe_id=curry.id))
    db.commit()

    suggestions = login(member).get("/shopping/suggestions").json()["suggestions"]

    assert [s["name"] for s in suggestions] == ["Coconut milk"]
    assert db.query(ShoppingItem).count() == 0


def test_deleting_a_recipe_keeps_its_meals(login, member, db):
    recipe = _recipe(db, "Pizza", ("Dough", "1", None))
    meal = MealPlan(meal_date=date.today(), recipe_id=recipe.id)
    db.add(meal)
    db.commit()
    client = login(member)

    assert client.delete(f"/meals/recipes/{recipe.id}").json() == {"ok": True}

    meals = client.get("/meals").json()["meals"]
    assert [(m["id"], m["recipe_id"]) for m in meals] == [(meal.id, None)]
    assert db.query(RecipeIngredient).count() == 0
