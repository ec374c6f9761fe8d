from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from typing import Optional, List

from app.models.enums import (
    QueueStatus,
    QueuePriority,
    TravelMode,
    Severity,
    QueueEventType,
)

class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

class TravelInfo(BaseModel):
    mode: TravelMode = TravelMode.DRIVING
    duration: float = Field(ge=0)  # minutes
    distance: Optional[float] = Field(default=None, ge=0)  # km

    class Config:
        frozen = True

class ProfessionalSnapshot(BaseModel):
    id: str
    name: str
    specialty: Optional[str] = None
    avatar: Optional[str] = None

    class Config:
        frozen = True

class ClinicSnapshot(BaseModel):
    id: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        frozen = True

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

class QueueJoinRequest(BaseModel):
    clinic_id: str
    entry_id: Optional[str] = None
    patient_id: Optional[str] = None
    priority: QueuePriority = QueuePriority.NORMAL
    reason: Optional[str] = None
    symptoms: Optional[str] = None
    travel_info: Optional[TravelInfo] = None
    professional: Optional[ProfessionalSnapshot] = None
    clinic: Optional[ClinicSnapshot] = None
    joined_at: Optional[datetime] = None

    @field_validator("joined_at")
    @classmethod
    def normalize_joined_at(cls, value):
        return _as_utc(value)

class QueuePatch(BaseModel):
    """
    Partial update delivered by the update feed.

    Only the fields present in the payload are applied. Derived fields
    (position, wait and call time) are owned by the queue and are rejected.
    """
    entry_id: str
    server_timestamp: datetime
    status: Optional[QueueStatus] = None
    travel_info: Optional[TravelInfo] = None
    reason: Optional[str] = None
    professional: Optional[ProfessionalSnapshot] = None
    clinic: Optional[ClinicSnapshot] = None

    class Config:
        extra = "forbid"

    @field_validator("server_timestamp")
    @classmethod
    def normalize_timestamp(cls, value):
        return _as_utc(value)

class QueueUpdate(BaseModel):
    timestamp: datetime
    event: QueueEventType
    old_position: Optional[int] = None
    new_position: Optional[int] = None
    old_wait_time: Optional[int] = None
    new_wait_time: Optional[int] = None
    old_status: Optional[QueueStatus] = None
    new_status: Optional[QueueStatus] = None
    message: Optional[str] = None

    class Config:
        frozen = True

class QueueSnapshot(BaseModel):
    id: str
    clinic_id: str
    patient_id: Optional[str] = None
    status: QueueStatus
    status_label: str
    severity: Severity
    position: Optional[int] = None
    total_in_queue: int
    estimated_wait_time: int
    wait_label: str
    estimated_call_time: Optional[datetime] = None
    time_to_leave: Optional[int] = None
    should_leave: bool = False
    priority: QueuePriority
    reason: Optional[str] = None
    symptoms: Optional[str] = None
    travel_info: Optional[TravelInfo] = None
    professional: Optional[ProfessionalSnapshot] = None
    clinic: Optional[ClinicSnapshot] = None

    class Config:
        frozen = True

class UpdateResult(BaseModel):
    applied: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    snapshot: Optional[QueueSnapshot] = None

class ClinicQueueResponse(BaseModel):
    clinic_id: str
    total_in_queue: int
    average_service_duration: float
    entries: List[QueueSnapshot]

class ServiceDurationUpdate(BaseModel):
    minutes: float = Field(gt=0)

def status_display(status: QueueStatus) -> tuple[str, Severity]:
    match status:
        case QueueStatus.WAITING:
            return "Waiting", Severity.WARNING
        case QueueStatus.NOTIFIED:
            return "Time to Leave!", Severity.SUCCESS
        case QueueStatus.ON_WAY:
            return "On the Way", Severity.INFO
        case QueueStatus.ARRIVED:
            return "Arrived", Severity.INFO
        case QueueStatus.COMPLETED:
            return "Completed", Severity.NEUTRAL
        case QueueStatus.CANCELLED:
            return "Cancelled", Severity.ERROR
    raise ValueError(f"Unhandled queue status: {status!r}")

class TravelEstimateRequest(BaseModel):
    origin: Coordinates
    destination: Coordinates
    mode: TravelMode = TravelMode.DRIVING
