from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.utils import ceil_minutes, haversine_km, TRAVEL_SPEEDS_KMH
from app.models.enums import QueueStatus, QueueEventType, TravelMode
from app.models.queue_entry import QueueEntry
from app.schemas.queue import Coordinates, TravelInfo

# Statuses in which the patient has not set off yet
PRE_DEPARTURE_STATUSES = frozenset({QueueStatus.WAITING, QueueStatus.NOTIFIED})


@dataclass(frozen=True)
class Estimate:
    wait_minutes: int
    call_time: datetime
    time_to_leave: Optional[int] = None


def estimate_wait_minutes(position: int, average_service_duration: float) -> int:
    return ceil_minutes(max(0.0, (position - 1) * average_service_duration))


def time_to_leave(wait_minutes: int, travel_info: Optional[TravelInfo]) -> Optional[int]:
    if travel_info is None:
        return None
    return wait_minutes - ceil_minutes(travel_info.duration)


def estimate(entry: QueueEntry, average_service_duration: float, now: datetime) -> Estimate:
    """
    Work out wait time, call time and time to leave for an active entry.

    While the entry keeps its position and the clinic's average does not drop,
    the wait never goes below the previous estimate, so the call time only
    moves later as time passes.
    """
    wait = estimate_wait_minutes(entry.position or 1, average_service_duration)
    if entry.estimate_basis is not None:
        previous_position, previous_average = entry.estimate_basis
        if previous_position == entry.position and average_service_duration >= previous_average:
            wait = max(wait, entry.estimated_wait_time)

    leave = None
    if entry.status in PRE_DEPARTURE_STATUSES:
        leave = time_to_leave(wait, entry.travel_info)
    return Estimate(wait_minutes=wait, call_time=now + timedelta(minutes=wait), time_to_leave=leave)


def apply_estimate(entry: QueueEntry, average_service_duration: float, now: datetime) -> Estimate:
    result = estimate(entry, average_service_duration, now)
    if result.wait_minutes != entry.estimated_wait_time:
        entry.record(
            QueueEventType.WAIT_TIME_UPDATED,
            now,
            old_wait_time=entry.estimated_wait_time,
            new_wait_time=result.wait_minutes,
        )
    entry.estimated_wait_time = result.wait_minutes
    entry.estimated_call_time = result.call_time
    entry.time_to_leave = result.time_to_leave
    entry.estimate_basis = (entry.position, average_service_duration)
    entry.dirty = False
    return result


def estimate_travel_minutes(origin: Coordinates, destination: Coordinates, mode: TravelMode = TravelMode.DRIVING) -> int:
    # Straight-line distance at an average speed; custom mode travels as driving
    speed = TRAVEL_SPEEDS_KMH.get(mode.value, TRAVEL_SPEEDS_KMH["driving"])
    distance = haversine_km(origin.lat, origin.lng, destination.lat, destination.lng)
    return ceil_minutes(distance / speed * 60)


def travel_info_between(origin: Coordinates, destination: Coordinates, mode: TravelMode = TravelMode.DRIVING) -> TravelInfo:
    distance = haversine_km(origin.lat, origin.lng, destination.lat, destination.lng)
    return TravelInfo(
        mode=mode,
        duration=estimate_travel_minutes(origin, destination, mode),
        distance=round(distance, 2),
    )
