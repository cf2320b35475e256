"""
Application configuration from environment variables.

Load with python-dotenv in main so env vars are available before imports.
Validates critical secrets at module load; missing values raise RuntimeError.
"""
import os

# --- Required (raise if missing) ---
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI")
JWT_SECRET = os.getenv("JWT_SECRET")
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

for name, val in [
    ("GOOGLE_CLIENT_ID", GOOGLE_CLIENT_ID),
    ("GOOGLE_CLIENT_SECRET", GOOGLE_CLIENT_SECRET),
    ("GOOGLE_REDIRECT_URI", GOOGLE_REDIRECT_URI),
    ("JWT_SECRET", JWT_SECRET),
    ("TOKEN_ENCRYPTION_KEY", TOKEN_ENCRYPTION_KEY),
]:
    if not val or not str(val).strip():
        raise RuntimeError(f"Required env var {name} is missing or empty")

JWT_ALGORITHM = "HS256"

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_SCOPES = "openid email profile https://www.googleapis.com/auth/calendar"


def _int_env(key: str, default: int, minimum: int = 1) -> int:
    try:
        return max(minimum, int(os.getenv(key, str(default))))
    except ValueError:
        return default


def _bool_env(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).lower() in ("1", "true", "yes")


# --- Optional with defaults ---
# Frontend URL for post-login redirect; cookie is set by backend, no token in URL
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")

# Session cookie: JWT lifetime and cookie max_age should match
JWT_COOKIE_NAME = os.getenv("JWT_COOKIE_NAME", "session")
JWT_COOKIE_MAX_AGE = _int_env("JWT_COOKIE_MAX_AGE", 86400, minimum=60)

# OAuth CSRF: cookie name for state parameter, short-lived
OAUTH_STATE_COOKIE_NAME = os.getenv("OAUTH_STATE_COOKIE_NAME", "oauth_state")
OAUTH_STATE_MAX_AGE = 600  # 10 minutes

# Emails that receive the admin role at login (home location, todo calendar)
ADMIN_EMAILS = {
    e.strip().lower()
    for e in os.getenv("ADMIN_EMAILS", "").split(",")
    if e.strip()
}

# User id whose Google tokens mirror todos into the shared todo calendar.
# Empty means todo mirroring is not configured.
CALENDAR_SERVICE_ACCOUNT_ID = os.getenv("CALENDAR_SERVICE_ACCOUNT_ID", "").strip() or None

CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "Europe/Amsterdam")
CALENDAR_APP_SOURCE = os.getenv("CALENDAR_APP_SOURCE", "family-dashboard")

# Refresh access tokens this many seconds before the stored expiry
TOKEN_REFRESH_MARGIN_SECONDS = _int_env("TOKEN_REFRESH_MARGIN_SECONDS", 300, minimum=0)

# Per-identity refresh guard: how long a claim is held, and how long a
# competing request waits for the holder to persist a new token
REFRESH_LOCK_SECONDS = _int_env("REFRESH_LOCK_SECONDS", 30)
REFRESH_LOCK_WAIT_SECONDS = _int_env("REFRESH_LOCK_WAIT_SECONDS", 5, minimum=0)

# Event fetch window and page size per calendar
EVENTS_WINDOW_DAYS = _int_env("EVENTS_WINDOW_DAYS", 31)
EVENTS_MAX_RESULTS = _int_env("EVENTS_MAX_RESULTS", 50)

# Request timeouts (connect, read) in seconds
GOOGLE_REQUEST_TIMEOUT = (5, 30)

# Secure cookie flag (set True in production over HTTPS)
SECURE_COOKIES = _bool_env("SECURE_COOKIES")

# Database URL (SQLite default; use Postgres URL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./family.db")

# Skip create_all at startup (set in production when using Alembic migrations)
SKIP_DB_INIT = _bool_env("SKIP_DB_INIT")

# Environment: development | production (affects .env loading, error details)
ENV = os.getenv("ENV", "development").lower()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
