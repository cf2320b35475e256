"""
Presence router: location reports, who-is-where, and the home geofence.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth import get_current_user, require_admin
from database import get_db
from models import User, UserLocation, as_utc
from services.presence_service import (
    STATUS_UNKNOWN,
    get_home_location,
    report_location,
    set_home_location,
)

router = APIRouter(prefix="/presence")


class LocationReport(BaseModel):
    """Browser/device geolocation fix. Untrusted: bounds-checked, finite only."""
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    accuracy: float | None = Field(None, ge=0, allow_inf_nan=False)


class HomeLocationBody(BaseModel):
    name: str = Field("Home", min_length=1, max_length=255)
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    radius_meters: float = Field(100.0, gt=0, le=100_000, allow_inf_nan=False)


@router.post("/location")
def post_location(
    body: LocationReport,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Report the caller's position; answers with the derived status and rounded distance."""
    result = report_location(db, user.id, body.latitude, body.longitude, body.accuracy)
    return {"success": True, **result}


@router.get("")
def who_is_where(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Every family member with their latest status; "unknown" when they never reported."""
    locations = {loc.user_id: loc for loc in db.query(UserLocation).all()}
    people = []
    for member in db.query(User).order_by(User.name, User.id).all():
        loc = locations.get(member.id)
        last_updated = as_utc(loc.last_updated) if loc else None
        people.append({
            "user_id": member.id,
            "name": member.name,
            "status": loc.status if loc else STATUS_UNKNOWN,
            "last_updated": last_updated.isoformat() if last_updated else None,
        })
    # Most recent reports first, never-reported last
    people.sort(key=lambda p: p["last_updated"] or "", reverse=True)
    return {"people": people}


@router.get("/home")
def get_home(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    home = get_home_location(db)
    if home is None:
        return {"home": None}
    return {
        "home": {
            "name": home.name,
            "latitude": home.latitude,
            "longitude": home.longitude,
            "radius_meters": home.radius_meters,
        }
    }


@router.put("/home")
def put_home(
    body: HomeLocationBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    set_home_location(db, body.latitude, body.longitude, body.radius_meters, body.name)
    return get_home(admin, db)
