"""
Presence: who is home, from reported GPS positions and the home geofence.
"""
import logging
import math
from datetime import datetime, UTC

from sqlalchemy.orm import Session

from database import upsert
from models import HomeLocation, UserLocation
from services.errors import ConfigurationMissing

log = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371e3

STATUS_HOME = "home"
STATUS_AWAY = "away"
STATUS_UNKNOWN = "unknown"


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def presence_status(distance: float, radius_meters: float) -> str:
    # Boundary counts as home
    return STATUS_HOME if distance <= radius_meters else STATUS_AWAY


def get_home_location(db: Session) -> HomeLocation | None:
    return db.query(HomeLocation).order_by(HomeLocation.id).first()


def set_home_location(
    db: Session,
    latitude: float,
    longitude: float,
    radius_meters: float,
    name: str = "Home",
) -> HomeLocation:
    """Create or overwrite the single home location."""
    home = get_home_location(db)
    if home is None:
        home = HomeLocation()
        db.add(home)
    home.name = name
    home.latitude = latitude
    home.longitude = longitude
    home.radius_meters = radius_meters
    db.commit()
    return home


def report_location(
    db: Session,
    user_id: str,
    latitude: float,
    longitude: float,
    accuracy: float | None = None,
) -> dict:
    """
    Classify a reported position against the home geofence and store it as
    the user's latest location. Raises ConfigurationMissing (nothing written)
    when no home location is set.
    """
    home = get_home_location(db)
    if home is None:
        raise ConfigurationMissing("Home location not configured")

    distance = haversine_distance(latitude, longitude, home.latitude, home.longitude)
    status = presence_status(distance, home.radius_meters)
    log.info("Location for %s is %.0fm from home: %s", user_id, distance, status)

    upsert(
        db,
        UserLocation,
        {"user_id": user_id},
        {
            "latitude": latitude,
            "longitude": longitude,
            "accuracy": accuracy,
            "status": status,
            "last_updated": datetime.now(UTC),
        },
    )
    db.commit()
    return {"status": status, "distance": round(distance)}
