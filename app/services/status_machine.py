"""
Status lifecycle of a queue entry.

    waiting  -> notified, cancelled
    notified -> on-way, arrived, cancelled
    on-way   -> arrived, cancelled
    arrived  -> completed, cancelled

completed and cancelled are terminal.
"""
from enum import Flag, auto

from app.core.exceptions import InvalidTransition, TerminalEntryError
from app.models.enums import QueueStatus, TERMINAL_STATUSES

TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.WAITING: frozenset({QueueStatus.NOTIFIED, QueueStatus.CANCELLED}),
    QueueStatus.NOTIFIED: frozenset({QueueStatus.ON_WAY, QueueStatus.ARRIVED, QueueStatus.CANCELLED}),
    QueueStatus.ON_WAY: frozenset({QueueStatus.ARRIVED, QueueStatus.CANCELLED}),
    QueueStatus.ARRIVED: frozenset({QueueStatus.COMPLETED, QueueStatus.CANCELLED}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.CANCELLED: frozenset(),
}

# Entry timestamp stamped when the status is entered
STATUS_TIMESTAMPS: dict[QueueStatus, str] = {
    QueueStatus.NOTIFIED: "notified_at",
    QueueStatus.ARRIVED: "arrived_at",
    QueueStatus.COMPLETED: "completed_at",
    QueueStatus.CANCELLED: "cancelled_at",
}


class TransitionEffect(Flag):
    NONE = 0
    REESTIMATE = auto()
    LEAVE_QUEUE = auto()


def is_terminal(status: QueueStatus) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(current: QueueStatus, target: QueueStatus, entry_id: str | None = None) -> bool:
    """
    Check a requested status change.

    Returns False when ``target`` equals ``current`` (nothing to do) and True
    for a permitted change. Raises TerminalEntryError when ``current`` is
    terminal and InvalidTransition for any other change not in the table.
    """
    if is_terminal(current):
        raise TerminalEntryError(current.value, entry_id)
    if target == current:
        return False
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value, entry_id)
    return True


def effects_of(target: QueueStatus) -> TransitionEffect:
    match target:
        case QueueStatus.COMPLETED | QueueStatus.CANCELLED:
            return TransitionEffect.LEAVE_QUEUE
        case QueueStatus.WAITING | QueueStatus.NOTIFIED | QueueStatus.ON_WAY | QueueStatus.ARRIVED:
            return TransitionEffect.REESTIMATE
    raise ValueError(f"Unhandled queue status: {target!r}")
