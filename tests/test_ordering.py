import random

from app.models.enums import QueueEventType, QueuePriority, QueueStatus
from app.models.queue_entry import QueueEntry
from app.services.ordering_service import rank_entries
from tests.conftest import CLINIC_ID, ts


def make(entry_id: str, minute: float, priority=QueuePriority.NORMAL, status=QueueStatus.WAITING):
    return QueueEntry(clinic_id=CLINIC_ID, id=entry_id, joined_at=ts(minute), priority=priority, status=status)


def positions(entries):
    return {e.id: e.position for e in entries}


def test_fifo_within_priority():
    entries = [make("c", 3), make("a", 1), make("b", 2)]
    rank_entries(entries, ts(5))
    assert positions(entries) == {"a": 1, "b": 2, "c": 3}
    assert all(e.total_in_queue == 3 for e in entries)


def test_urgent_goes_ahead_of_normal():
    entries = [make("a", 1), make("b", 2), make("c", 3)]
    rank_entries(entries, ts(4))
    entries.append(make("u", 4, QueuePriority.URGENT))

    moved = rank_entries(entries, ts(5))

    assert positions(entries) == {"u": 1, "a": 2, "b": 3, "c": 4}
    assert moved == ["u", "a", "b", "c"]
    event = entries[0].updates[-1]
    assert event.event == QueueEventType.POSITION_CHANGED
    assert (event.old_position, event.new_position) == (1, 2)


def test_equal_join_times_break_ties_by_id():
    entries = [make("zeta", 1), make("alpha", 1), make("mid", 1)]
    rank_entries(entries, ts(2))
    assert positions(entries) == {"alpha": 1, "mid": 2, "zeta": 3}


def test_terminal_entries_drop_out():
    entries = [make("a", 1), make("b", 2, status=QueueStatus.COMPLETED), make("c", 3)]
    entries[1].position = 2
    rank_entries(entries, ts(4))
    assert positions(entries) == {"a": 1, "b": None, "c": 2}
    assert entries[0].total_in_queue == 2


def test_unmoved_entries_stay_clean():
    entries = [make("a", 1), make("b", 2)]
    rank_entries(entries, ts(3))
    for entry in entries:
        entry.dirty = False
    assert rank_entries(entries, ts(4)) == []
    assert not any(e.dirty for e in entries)


def test_positions_are_a_permutation_with_urgent_first():
    rng = random.Random(7)
    statuses = [QueueStatus.WAITING, QueueStatus.NOTIFIED, QueueStatus.ON_WAY,
                QueueStatus.ARRIVED, QueueStatus.COMPLETED, QueueStatus.CANCELLED]
    for _ in range(50):
        entries = [
            make(f"e{i}", rng.randint(0, 20), rng.choice(list(QueuePriority)), rng.choice(statuses))
            for i in range(rng.randint(1, 25))
        ]
        rank_entries(entries, ts(30))
        active = sorted((e for e in entries if e.is_active), key=lambda e: e.position)

        assert [e.position for e in active] == list(range(1, len(active) + 1))
        assert all(e.total_in_queue == len(active) for e in active)
        ranks = [e.priority.rank for e in active]
        assert ranks == sorted(ranks, reverse=True)
