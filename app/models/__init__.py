from .enums import (
    QueueStatus,
    QueuePriority,
    TravelMode,
    Severity,
    QueueEventType,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)

__all__ = [
    "QueueStatus",
    "QueuePriority",
    "TravelMode",
    "Severity",
    "QueueEventType",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
