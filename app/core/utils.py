import math
import secrets
from datetime import datetime, timezone

EARTH_RADIUS_KM = 6371.0

# Average door-to-door speeds in km/h
TRAVEL_SPEEDS_KMH = {
    "driving": 40.0,
    "walking": 5.0,
    "transit": 30.0,
    "bicycling": 15.0,
}

def generate_entry_id() -> str:
    return secrets.token_hex(16)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def ceil_minutes(value: float) -> int:
    # Fractional minutes round up so waits are never under-promised
    return int(math.ceil(value))

def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

def format_wait(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
