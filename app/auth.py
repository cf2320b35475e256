"""
Google OAuth 2.0 login, callback, session cookie, and current-user dependency.

- Login redirects to Google (identity + calendar scopes) with a CSRF state
  stored in a short-lived cookie.
- Callback validates state, exchanges the code, upserts the User and its
  encrypted GoogleToken record, sets JWT in HttpOnly cookie, redirects to
  frontend (no token in URL).
- /me returns current user and whether Google Calendar is connected.
- /logout clears the session cookie.
- get_current_user / require_admin are the dependencies used by all routers.
"""
import logging
import secrets
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, Response
from jose import JWTError
from sqlalchemy.orm import Session

from config import (
    ADMIN_EMAILS,
    FRONTEND_URL,
    GOOGLE_AUTH_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_REDIRECT_URI,
    GOOGLE_REQUEST_TIMEOUT,
    GOOGLE_SCOPES,
    GOOGLE_USERINFO_URL,
    JWT_COOKIE_MAX_AGE,
    JWT_COOKIE_NAME,
    OAUTH_STATE_COOKIE_NAME,
    OAUTH_STATE_MAX_AGE,
    SECURE_COOKIES,
)
from database import get_db
from models import User
from security import create_session_token, decode_session_token
from services.errors import TokenGrantRejected
from services.token_service import exchange_code, is_connected, store_tokens

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


# Cookie flags: HttpOnly (no JS access), SameSite=Lax (CSRF mitigation), Secure in production is set per-response
def _cookie_kwargs(secure: bool = False) -> dict:
    return {
        "httponly": True,
        "samesite": "lax",
        "secure": secure,
        "path": "/",
    }


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    FastAPI dependency: read JWT from session cookie, decode it, load User.
    Raises 401 if cookie missing or JWT invalid/expired or user not found.
    """
    token = request.cookies.get(JWT_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_session_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid session")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """FastAPI dependency: current user, 403 unless they have the admin role."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


def _role_for(email: str, current: str | None = None) -> str:
    """ADMIN_EMAILS always wins; otherwise keep the role set through /admin/users (members by default)."""
    if email.lower() in ADMIN_EMAILS:
        return "admin"
    return current or "member"


@router.get("/google/login")
def google_login():
    """
    Redirect to Google OAuth consent. Sets a short-lived cookie with a random
    state value and includes the same state in the redirect URL so the callback
    can verify the request was not forged (CSRF protection). access_type=offline
    with prompt=consent makes Google return a refresh token.
    """
    state = secrets.token_urlsafe(32)
    query = urlencode({
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": GOOGLE_SCOPES,
        "access_type": "offline",
        "include_granted_scopes": "true",
        "prompt": "consent",
        "state": state,
    })
    redirect = RedirectResponse(url=f"{GOOGLE_AUTH_URL}?{query}")
    redirect.set_cookie(
        OAUTH_STATE_COOKIE_NAME,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        **_cookie_kwargs(secure=SECURE_COOKIES),
    )
    return redirect


@router.get("/google/callback")
def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Handle redirect from Google. Validates state cookie (CSRF), exchanges code
    for tokens, creates/updates User and its token record, sets session cookie,
    redirects to frontend success page (no JWT in URL).
    """
    if error:
        raise HTTPException(status_code=400, detail=f"OAuth error: {error}")
    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state")

    state_cookie = request.cookies.get(OAUTH_STATE_COOKIE_NAME)
    if not state_cookie or not secrets.compare_digest(state, state_cookie):
        raise HTTPException(status_code=400, detail="Invalid or expired state; please try logging in again")

    try:
        token_data = exchange_code(code)
    except TokenGrantRejected as e:
        raise HTTPException(status_code=400, detail=f"Token exchange failed: {e.msg}")
    access_token = token_data["access_token"]

    userinfo_res = requests.get(
        GOOGLE_USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=GOOGLE_REQUEST_TIMEOUT,
    )
    userinfo_res.raise_for_status()
    userinfo = userinfo_res.json()

    user_id = userinfo.get("sub")
    email = userinfo.get("email")
    if not user_id or not email:
        raise HTTPException(
            status_code=400,
            detail="Google userinfo missing sub or email",
        )
    user = db.get(User, user_id)
    if not user:
        user = User(id=user_id, email=email, name=userinfo.get("name"), role=_role_for(email))
        db.add(user)
        log.info("New family member %s signed up", user_id)
    else:
        user.email = email
        user.name = userinfo.get("name") or user.name
        user.role = _role_for(email, user.role)
    db.commit()

    store_tokens(
        db,
        user.id,
        access_token,
        refresh_token=token_data.get("refresh_token"),
        expires_in=token_data.get("expires_in", 3600),
    )

    jwt_token = create_session_token(user.id, user.role)
    redirect = RedirectResponse(url=f"{FRONTEND_URL}/login/success")
    # Set session cookie so frontend can call /auth/me and other APIs with credentials
    redirect.set_cookie(
        JWT_COOKIE_NAME,
        jwt_token,
        max_age=JWT_COOKIE_MAX_AGE,
        **_cookie_kwargs(secure=SECURE_COOKIES),
    )
    # Clear state cookie
    redirect.delete_cookie(OAUTH_STATE_COOKIE_NAME, path="/")
    return redirect


@router.get("/me")
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Current user profile plus the Google Calendar "connected" flag."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "calendar_connected": is_connected(db, user.id),
    }


@router.post("/logout")
def logout(response: Response):
    """
    Clear the session cookie so the client is logged out. Frontend should
    redirect to login after calling this.
    """
    response.delete_cookie(JWT_COOKIE_NAME, path="/")
    return {"ok": True}
