from datetime import datetime
from typing import Iterable, List

from app.models.enums import QueueEventType
from app.models.queue_entry import QueueEntry


def ordering_key(entry: QueueEntry):
    # Urgent first, then first come first served, then id for equal join times
    return (-entry.priority.rank, entry.joined_at, entry.id)


def rank_entries(entries: Iterable[QueueEntry], now: datetime) -> List[str]:
    """
    Recompute position and total for every active entry of one clinic.

    Terminal entries lose their position. Entries whose position moved are
    marked dirty for re-estimation; their ids are returned in rank order.
    """
    entries = list(entries)
    active = sorted((e for e in entries if e.is_active), key=ordering_key)
    total = len(active)

    moved = []
    for index, entry in enumerate(active, start=1):
        if entry.position != index:
            if entry.position is not None:
                entry.record(
                    QueueEventType.POSITION_CHANGED,
                    now,
                    old_position=entry.position,
                    new_position=index,
                )
            entry.position = index
            entry.dirty = True
            moved.append(entry.id)
        entry.total_in_queue = total

    for entry in entries:
        if not entry.is_active:
            entry.position = None
    return moved
