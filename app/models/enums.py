from enum import Enum


class QueueStatus(str, Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    ON_WAY = "on-way"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({
    QueueStatus.WAITING,
    QueueStatus.NOTIFIED,
    QueueStatus.ON_WAY,
    QueueStatus.ARRIVED,
})

TERMINAL_STATUSES = frozenset({QueueStatus.COMPLETED, QueueStatus.CANCELLED})


class QueuePriority(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return 1 if self is QueuePriority.URGENT else 0


class TravelMode(str, Enum):
    DRIVING = "driving"
    WALKING = "walking"
    TRANSIT = "transit"
    BICYCLING = "bicycling"
    CUSTOM = "custom"


class Severity(str, Enum):
    NEUTRAL = "neutral"
    WARNING = "warning"
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class QueueEventType(str, Enum):
    POSITION_CHANGED = "position_changed"
    WAIT_TIME_UPDATED = "wait_time_updated"
    NOTIFIED = "notified"
    STATUS_CHANGED = "status_changed"
    PROFESSIONAL_CHANGED = "professional_changed"
