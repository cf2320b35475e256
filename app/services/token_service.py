"""
Google OAuth token store and refresh protocol.

Tokens are encrypted at rest with Fernet (symmetric, from cryptography) and
decrypted only when a Google API call needs them. One GoogleToken row per
identity; the row existing is what "connected" means.

Refresh is fail-closed: when Google refuses a refresh (or it cannot be
reached) the row is deleted, so a stale token never passes for a valid one.
Refreshes for the same identity are serialised through a claim on
GoogleToken.refresh_locked_until, taken with a single conditional UPDATE.
"""
import logging
import time
from datetime import datetime, timedelta, UTC
from typing import Callable, TypeVar

import requests
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    GOOGLE_REQUEST_TIMEOUT,
    GOOGLE_TOKEN_URL,
    REFRESH_LOCK_SECONDS,
    REFRESH_LOCK_WAIT_SECONDS,
    TOKEN_ENCRYPTION_KEY,
    TOKEN_REFRESH_MARGIN_SECONDS,
)
from database import upsert
from models import GoogleToken, as_utc
from services.errors import (
    AuthenticationRejected,
    ReauthorizationRequired,
    RefreshInProgress,
    TokenGrantRejected,
)

log = logging.getLogger(__name__)

fernet = Fernet(TOKEN_ENCRYPTION_KEY.encode())

# How often a request waiting on another request's refresh re-reads the row
REFRESH_POLL_INTERVAL = 0.25

T = TypeVar("T")


def encrypt(value: str) -> str:
    """Encrypt a token for storage."""
    return fernet.encrypt(value.encode()).decode()


def decrypt(value: str | None) -> str | None:
    """Decrypt a stored token. Returns None if value is None (optional refresh_token)."""
    if value is None:
        return None
    return fernet.decrypt(value.encode()).decode()


# --- Token endpoint ---


def _token_request(grant: dict) -> dict:
    """POST a grant to Google's token endpoint; raises TokenGrantRejected on any refusal."""
    try:
        resp = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                **grant,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=GOOGLE_REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise TokenGrantRejected(f"Token endpoint unreachable: {e.__class__.__name__}")
    try:
        data = resp.json()
    except ValueError:
        data = {}
    if resp.status_code >= 400 or "error" in data:
        reason = data.get("error_description") or data.get("error") or f"HTTP {resp.status_code}"
        raise TokenGrantRejected(f"Token grant rejected: {reason}")
    if not data.get("access_token"):
        raise TokenGrantRejected("Token endpoint did not return access_token")
    return data


def exchange_code(code: str, redirect_uri: str = GOOGLE_REDIRECT_URI) -> dict:
    """
    Exchange an authorization code for {access_token, refresh_token?, expires_in}.
    Raises TokenGrantRejected.
    """
    return _token_request({
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": redirect_uri,
    })


# --- Store ---


def load_token(db: Session, owner_id: str) -> GoogleToken | None:
    return db.query(GoogleToken).filter_by(owner_id=owner_id).one_or_none()


def is_connected(db: Session, owner_id: str) -> bool:
    return load_token(db, owner_id) is not None


def store_tokens(
    db: Session,
    owner_id: str,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
) -> GoogleToken:
    """
    Upsert the token record for owner_id and commit. A missing refresh_token
    keeps the stored one (Google only returns it on first consent).
    """
    values = {
        "encrypted_access_token": encrypt(access_token),
        "expires_at": datetime.now(UTC) + timedelta(seconds=int(expires_in)) if expires_in else None,
        "refresh_locked_until": None,
    }
    if refresh_token:
        values["encrypted_refresh_token"] = encrypt(refresh_token)
    row = upsert(db, GoogleToken, {"owner_id": owner_id}, values)
    db.commit()
    return row


def clear_tokens(db: Session, owner_id: str) -> bool:
    """Delete the token record; the identity is disconnected. Returns True if a row existed."""
    deleted = db.query(GoogleToken).filter_by(owner_id=owner_id).delete()
    db.commit()
    return bool(deleted)


def needs_refresh(row: GoogleToken, now: datetime | None = None) -> bool:
    """True when the stored expiry (less the safety margin) has passed. No expiry means valid."""
    expires_at = as_utc(row.expires_at)
    if expires_at is None:
        return False
    now = now or datetime.now(UTC)
    return now >= expires_at - timedelta(seconds=TOKEN_REFRESH_MARGIN_SECONDS)


def _disconnect(db: Session, owner_id: str, reason: str) -> ReauthorizationRequired:
    log.warning("Google connection for %s reset: %s", owner_id, reason)
    clear_tokens(db, owner_id)
    return ReauthorizationRequired(
        "Google Calendar connection expired; please reconnect your Google account"
    )


def _decrypt_row(db: Session, row: GoogleToken) -> tuple[str, str | None]:
    owner_id = row.owner_id
    try:
        return decrypt(row.encrypted_access_token), decrypt(row.encrypted_refresh_token)
    except InvalidToken:
        raise _disconnect(db, owner_id, "stored tokens cannot be decrypted")


# --- Refresh guard ---


def _claim_refresh(db: Session, owner_id: str) -> bool:
    """Take the refresh claim if nobody holds a live one. Commits; True when taken."""
    now = datetime.now(UTC)
    result = db.execute(
        update(GoogleToken)
        .where(
            GoogleToken.owner_id == owner_id,
            or_(
                GoogleToken.refresh_locked_until.is_(None),
                GoogleToken.refresh_locked_until < now,
            ),
        )
        .values(refresh_locked_until=now + timedelta(seconds=REFRESH_LOCK_SECONDS))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def refresh_access_token(db: Session, owner_id: str, rejected_token: str | None = None) -> str:
    """
    Exchange the stored refresh token for a new access token and persist it.

    If another request is already refreshing this identity, wait up to
    REFRESH_LOCK_WAIT_SECONDS for it and use the token it stored (unless
    that is the rejected_token the caller just saw fail).

    Raises ReauthorizationRequired (tokens cleared) or RefreshInProgress.
    """
    deadline = time.monotonic() + REFRESH_LOCK_WAIT_SECONDS
    while not _claim_refresh(db, owner_id):
        row = load_token(db, owner_id)
        if row is None:
            raise ReauthorizationRequired("Google account is not connected")
        access_token, _ = _decrypt_row(db, row)
        if not needs_refresh(row) and access_token != rejected_token:
            return access_token
        if time.monotonic() >= deadline:
            raise RefreshInProgress("Google token refresh already in progress; try again")
        time.sleep(REFRESH_POLL_INTERVAL)
        db.expire_all()

    row = load_token(db, owner_id)
    if row is None:
        raise ReauthorizationRequired("Google account is not connected")
    _, refresh_token = _decrypt_row(db, row)
    if not refresh_token:
        raise _disconnect(db, owner_id, "no refresh token stored")

    try:
        data = _token_request({"refresh_token": refresh_token, "grant_type": "refresh_token"})
    except TokenGrantRejected as e:
        raise _disconnect(db, owner_id, e.msg)

    stored = store_tokens(
        db,
        owner_id,
        data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in", 3600),
    )
    log.info("Refreshed Google access token for %s (expires %s)", owner_id, stored.expires_at)
    return data["access_token"]


def get_valid_access_token(
    db: Session,
    owner_id: str,
    *,
    force_refresh: bool = False,
    rejected_token: str | None = None,
) -> str:
    """
    Return a usable access token for owner_id, refreshing first when the
    stored expiry has passed (or always when force_refresh=True, for the
    retry after a 401).
    """
    row = load_token(db, owner_id)
    if row is None:
        raise ReauthorizationRequired("Google account is not connected")
    if force_refresh or needs_refresh(row):
        return refresh_access_token(db, owner_id, rejected_token=rejected_token)
    access_token, _ = _decrypt_row(db, row)
    return access_token


def call_with_token_retry(db: Session, owner_id: str, call: Callable[[str], T]) -> T:
    """
    Run call(access_token). When Google rejects the token, refresh once and
    run it again; a second rejection propagates. Never retries more than once.
    """
    access_token = get_valid_access_token(db, owner_id)
    try:
        return call(access_token)
    except AuthenticationRejected:
        log.info("Google rejected access token for %s; refreshing and retrying once", owner_id)
    access_token = get_valid_access_token(
        db, owner_id, force_refresh=True, rejected_token=access_token
    )
    return call(access_token)
