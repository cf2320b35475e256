"""
Calendar service: Google Calendar API v3 over requests.

Business logic separated from HTTP layer. Every call takes a bearer access
token and raises AuthenticationRejected on 401 so the caller can refresh and
retry; other API errors raise CalendarApiError.
"""
import logging
from datetime import date, datetime, timedelta, UTC
from typing import Any, Iterable
from urllib.parse import quote

import requests

from config import (
    EVENTS_MAX_RESULTS,
    EVENTS_WINDOW_DAYS,
    GOOGLE_CALENDAR_API,
    GOOGLE_REQUEST_TIMEOUT,
)
from services.errors import AuthenticationRejected, CalendarApiError

log = logging.getLogger(__name__)

# Delete treats these as "already gone"
GONE_STATUSES = (404, 410)


def _calendar_request(
    method: str,
    path: str,
    access_token: str,
    **kwargs: Any,
) -> dict | None:
    """Call the Calendar API with timeout; returns JSON (None for empty bodies)."""
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    if "headers" in kwargs:
        headers.update(kwargs.pop("headers"))
    kwargs.setdefault("timeout", GOOGLE_REQUEST_TIMEOUT)
    try:
        resp = requests.request(method, f"{GOOGLE_CALENDAR_API}{path}", headers=headers, **kwargs)
    except requests.RequestException as e:
        raise CalendarApiError(f"Google Calendar unreachable: {e.__class__.__name__}")
    if resp.status_code == 401:
        raise AuthenticationRejected("Google rejected the access token")
    if resp.status_code >= 400:
        raise CalendarApiError(
            f"Google Calendar {method} {path} failed with HTTP {resp.status_code}",
            status_code=resp.status_code,
        )
    if resp.content:
        return resp.json()
    return None


def _calendar_path(calendar_id: str) -> str:
    return f"/calendars/{quote(calendar_id, safe='')}"


def list_calendars(access_token: str) -> list[dict]:
    """All calendars on the identity's calendar list: {id, summary, backgroundColor, primary, accessRole}."""
    result: list[dict] = []
    page_token = None
    while True:
        params = {"pageToken": page_token} if page_token else None
        page = _calendar_request("GET", "/users/me/calendarList", access_token, params=params) or {}
        for cal in page.get("items", []):
            result.append({
                "id": cal.get("id"),
                "summary": cal.get("summaryOverride") or cal.get("summary"),
                "backgroundColor": cal.get("backgroundColor"),
                "primary": bool(cal.get("primary")),
                "accessRole": cal.get("accessRole"),
            })
        page_token = page.get("nextPageToken")
        if not page_token:
            break
    return result


def list_events(
    access_token: str,
    calendar_id: str,
    time_min: datetime,
    time_max: datetime,
    max_results: int = EVENTS_MAX_RESULTS,
) -> list[dict]:
    """Single (expanded) events in [time_min, time_max) ordered by start time."""
    data = _calendar_request(
        "GET",
        f"{_calendar_path(calendar_id)}/events",
        access_token,
        params={
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": max_results,
        },
    )
    return (data or {}).get("items", [])


def create_event(access_token: str, calendar_id: str, body: dict) -> dict:
    """Insert an event; returns the created event (with its id)."""
    created = _calendar_request(
        "POST",
        f"{_calendar_path(calendar_id)}/events",
        access_token,
        json=body,
    )
    if not created or not created.get("id"):
        raise CalendarApiError("Google Calendar did not return an event id")
    return created


def delete_event(access_token: str, calendar_id: str, event_id: str) -> bool:
    """
    Delete an event. Returns True when deleted, False when it was already
    gone (404/410); raises on other errors.
    """
    try:
        _calendar_request(
            "DELETE",
            f"{_calendar_path(calendar_id)}/events/{quote(event_id, safe='')}",
            access_token,
        )
    except CalendarApiError as e:
        if e.status_code in GONE_STATUSES:
            return False
        raise
    return True


def event_start(event: dict) -> datetime:
    """Sort key: timed events by dateTime, all-day events at midnight UTC."""
    start = event.get("start") or {}
    if start.get("dateTime"):
        value = datetime.fromisoformat(start["dateTime"].replace("Z", "+00:00"))
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if start.get("date"):
        d = date.fromisoformat(start["date"])
        return datetime(d.year, d.month, d.day, tzinfo=UTC)
    return datetime.max.replace(tzinfo=UTC)


def fetch_assigned_events(
    access_token: str,
    assignments: Iterable[Any],
    now: datetime | None = None,
) -> list[dict]:
    """
    Merge upcoming events from every assigned calendar, sorted by start.

    Each event gets calendarId, calendarName and backgroundColor. A calendar
    that fails with anything but an auth rejection is skipped; an auth
    rejection aborts the whole fetch so the caller can refresh and retry.
    """
    now = now or datetime.now(UTC)
    time_max = now + timedelta(days=EVENTS_WINDOW_DAYS)

    try:
        calendars = {c["id"]: c for c in list_calendars(access_token)}
    except CalendarApiError as e:
        log.warning("Calendar list unavailable, continuing without colours: %s", e.msg)
        calendars = {}

    merged: list[dict] = []
    for assignment in assignments:
        try:
            events = list_events(access_token, assignment.calendar_id, now, time_max)
        except CalendarApiError as e:
            log.warning("Skipping calendar %s: %s", assignment.calendar_id, e.msg)
            continue
        info = calendars.get(assignment.calendar_id, {})
        for event in events:
            merged.append({
                **event,
                "calendarId": assignment.calendar_id,
                "calendarName": assignment.calendar_name or info.get("summary") or assignment.calendar_id,
                "backgroundColor": info.get("backgroundColor"),
            })

    merged.sort(key=event_start)
    return merged
