"""
Family dashboard backend: Google login, calendar mirror, todos, shopping,
meals, and geofenced presence.

Load .env in development only (production uses env vars directly). Add CORS,
service-error mapping, global exception handler, optional DB init.
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load .env only in development; production should set env vars directly.
# Must run before config is imported: config validates env at import time.
if os.getenv("ENV", "development").lower() == "development":
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from config import FRONTEND_URL, LOG_LEVEL, SKIP_DB_INIT
from database import init_db
from services.errors import (
    AuthenticationRejected,
    CalendarApiError,
    ConfigurationMissing,
    ReauthorizationRequired,
    RefreshInProgress,
    ServiceError,
)
from admin import router as admin_router
from auth import router as auth_router
from calendars import router as calendar_router
from meals import router as meals_router
from presence import router as presence_router
from shopping import router as shopping_router
from todos import router as todos_router

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger(__name__)

# Create DB tables if not skipping (production uses Alembic migrations)
if not SKIP_DB_INIT:
    init_db()

app = FastAPI(
    title="Family Dashboard Backend",
    description="Auth, Google Calendar mirror, todos, shopping list, meal plan, who-is-home.",
)

# CORS: explicit origin, allow credentials (cookies). Never use "*" with cookies.
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL] if FRONTEND_URL else [],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

SERVICE_ERROR_STATUS = {
    ConfigurationMissing: 400,
    ReauthorizationRequired: 401,
    AuthenticationRejected: 401,
    RefreshInProgress: 409,
    CalendarApiError: 502,
}


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Map service-layer failures to status codes; 401s tell the client to reconnect Google."""
    status_code = SERVICE_ERROR_STATUS.get(type(exc), 500)
    content = {"detail": exc.msg}
    if status_code == 401:
        content["reauthorize"] = True
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions; log and return generic 500. Never leak stack traces."""
    # Let FastAPI handle HTTPException (validation, auth, etc.)
    if isinstance(exc, HTTPException):
        raise exc
    log.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(calendar_router)
app.include_router(todos_router)
app.include_router(presence_router)
app.include_router(shopping_router)
app.include_router(meals_router)
app.include_router(admin_router)
