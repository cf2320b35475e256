"""
Database engine and session. Supports SQLite (dev) and Postgres via DATABASE_URL.

get_db is the single dependency for DB access; routers never open sessions
themselves. upsert() covers the "one row per key, latest write wins" tables
(tokens, user locations, calendar assignments).
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

# SQLite needs check_same_thread=False for FastAPI; Postgres does not.
# In-memory SQLite must share one connection or every session sees an empty DB.
_engine_kwargs = {}
if DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
    if ":memory:" in DATABASE_URL or DATABASE_URL == "sqlite://":
        _engine_kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, **_engine_kwargs)
SessionLocal = sessionmaker(bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create all tables. Import models first so they register on Base."""
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency: yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def upsert(db: Session, model, key: dict, values: dict):
    """
    Insert or update the single row of `model` matching `key`.

    Returns the row; the caller commits. Not atomic across processes: two
    first-time inserts for the same key race on the unique constraint and
    one of them fails at commit.
    """
    row = db.query(model).filter_by(**key).one_or_none()
    if row is None:
        row = model(**key, **values)
        db.add(row)
    else:
        for attr, value in values.items():
            setattr(row, attr, value)
    return row
