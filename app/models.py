"""
Data models for the family dashboard.

Access control is role based at the router level (member vs admin); every
member sees the shared family data.
"""
from datetime import datetime, UTC

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize to aware UTC. SQLite stores wall-clock time only, so values are
    converted before they are written and naive values read back are UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class User(Base):
    """
    Family member identity.

    - id: Google subject id (string), primary key.
    - email, name: from Google profile.
    - role: "admin" or "member"; admins manage the home location and the
      shared todo calendar.
    """
    __tablename__ = "users"

    id = Column(String(255), primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    role = Column(String(20), nullable=False, default="member")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class GoogleToken(Base):
    """
    OAuth token record for one identity; the row existing means "connected".

    - encrypted_access_token / encrypted_refresh_token: Fernet-encrypted;
      decrypted only when calling Google APIs.
    - expires_at: UTC time when the access token expires; null when Google
      did not say, in which case the token is used until rejected.
    - refresh_locked_until: refresh claim. A request may refresh only after
      moving this from null/past to a future time in a single UPDATE.
    """
    __tablename__ = "google_tokens"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    encrypted_access_token = Column(String(2048), nullable=False)
    encrypted_refresh_token = Column(String(2048), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    refresh_locked_until = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class HomeLocation(Base):
    """Geofence centre. Singleton: the first row is the active one."""
    __tablename__ = "home_location"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, default="Home")
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius_meters = Column(Float, nullable=False, default=100.0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class UserLocation(Base):
    """Latest reported location per user; no history is kept."""
    __tablename__ = "user_locations"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default="unknown")
    last_updated = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Todo(Base):
    """
    Family task.

    calendar_event_id links to the mirrored Google Calendar event in the
    active todo calendar; null when the todo is not mirrored.
    """
    __tablename__ = "todos"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    priority = Column(String(20), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="open")
    due_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    calendar_event_id = Column(String(1024), nullable=True)
    assigned_to = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_by = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    assignee = relationship("User", foreign_keys=[assigned_to])


class TodoTemplate(Base):
    """Blueprint for recurring todos created by the automation endpoint."""
    __tablename__ = "todo_templates"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    default_assigned_to = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class TodoCalendarConfig(Base):
    """Target calendar for todo mirroring; at most one row is active."""
    __tablename__ = "todo_calendar_config"

    id = Column(Integer, primary_key=True)
    calendar_id = Column(String(1024), nullable=False)
    calendar_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class CalendarAssignment(Base):
    """A Google calendar a user chose to see on their dashboard."""
    __tablename__ = "calendar_assignments"
    __table_args__ = (UniqueConstraint("user_id", "calendar_id", name="uq_calendar_assignment"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    calendar_id = Column(String(1024), nullable=False)
    calendar_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class ShoppingItem(Base):
    __tablename__ = "shopping_items"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    quantity = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    is_checked = Column(Boolean, nullable=False, default=False)
    checked_at = Column(DateTime(timezone=True), nullable=True)
    checked_by = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    added_by = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class RecurringShoppingItem(Base):
    """Item re-added to the list every frequency_days."""
    __tablename__ = "shopping_recurring_items"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    quantity = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    frequency_days = Column(Integer, nullable=False, default=7)
    is_active = Column(Boolean, nullable=False, default=True)
    last_added = Column(DateTime(timezone=True), nullable=True)


class MealPlan(Base):
    __tablename__ = "meal_plan"

    id = Column(Integer, primary_key=True)
    meal_date = Column(Date, nullable=False, index=True)
    meal_type = Column(String(20), nullable=False, default="dinner")
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True)
    custom_meal_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    assigned_to = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)

    cook = relationship("User")
    recipe = relationship("Recipe")


class Recipe(Base):
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    servings = Column(Integer, nullable=True)
    instructions = Column(Text, nullable=True)
    created_by = Column(String(255), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    ingredients = relationship(
        "RecipeIngredient",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.id",
    )


class RecipeIngredient(Base):
    """One line of a recipe; quantity and unit are free text ("2", "tbsp")."""
    __tablename__ = "recipe_ingredients"

    id = Column(Integer, primary_key=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    ingredient_name = Column(String(255), nullable=False)
    quantity = Column(String(100), nullable=True)
    unit = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
