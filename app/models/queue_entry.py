from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from app.core.exceptions import MalformedPatch, StaleUpdate, TerminalEntryError
from app.core.utils import format_wait, generate_entry_id, utcnow
from app.models.enums import (
    QueueStatus,
    QueuePriority,
    QueueEventType,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)
from app.schemas.queue import (
    TravelInfo,
    ProfessionalSnapshot,
    ClinicSnapshot,
    QueuePatch,
    QueueUpdate,
    QueueSnapshot,
    status_display,
)
from app.services import status_machine

# Fields a patch replaces wholesale when present
REPLACEABLE_FIELDS = ("travel_info", "reason", "professional", "clinic")


@dataclass(eq=False)
class QueueEntry:
    """
    One patient's membership in a clinic queue.

    Position and timing fields are derived: the ordering policy and the
    estimation engine write them, a patch never does. ``dirty`` is raised
    whenever an input to the estimate changes and cleared once re-estimated.
    """
    clinic_id: str
    joined_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=generate_entry_id)
    patient_id: Optional[str] = None
    priority: QueuePriority = QueuePriority.NORMAL
    status: QueueStatus = QueueStatus.WAITING
    position: Optional[int] = None
    total_in_queue: int = 0
    estimated_wait_time: int = 0
    estimated_call_time: Optional[datetime] = None
    time_to_leave: Optional[int] = None
    reason: Optional[str] = None
    symptoms: Optional[str] = None
    travel_info: Optional[TravelInfo] = None
    professional: Optional[ProfessionalSnapshot] = None
    clinic: Optional[ClinicSnapshot] = None
    notified_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_applied_at: Optional[datetime] = None
    updates: List[QueueUpdate] = field(default_factory=list)
    dirty: bool = True
    # (position, average service duration) behind the current estimate
    estimate_basis: Optional[tuple] = None
    leave_signalled: bool = False

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def should_leave(self) -> bool:
        return self.time_to_leave is not None and self.time_to_leave <= 0

    def record(self, event: QueueEventType, timestamp: datetime, **values) -> None:
        self.updates.append(QueueUpdate(timestamp=timestamp, event=event, **values))

    def apply_update(self, patch: QueuePatch, now: Optional[datetime] = None) -> bool:
        """
        Apply a partial update from the update feed.

        The patch is validated in full before any field changes, so a rejected
        patch leaves the entry exactly as it was. Returns True when something
        observable changed.
        """
        now = now or utcnow()
        if patch.entry_id != self.id:
            raise MalformedPatch(f"Patch for '{patch.entry_id}' applied to entry '{self.id}'", self.id)
        if self.is_terminal:
            raise TerminalEntryError(self.status.value, self.id)
        if self.last_applied_at is not None and patch.server_timestamp < self.last_applied_at:
            raise StaleUpdate(
                f"Update at {patch.server_timestamp.isoformat()} precedes "
                f"last applied {self.last_applied_at.isoformat()}",
                self.id,
            )

        provided = patch.model_fields_set
        status_changes = False
        if "status" in provided and patch.status is not None:
            status_changes = status_machine.validate_transition(self.status, patch.status, self.id)

        changed = [
            name for name in REPLACEABLE_FIELDS
            if name in provided and getattr(patch, name) != getattr(self, name)
        ]

        if status_changes:
            self.transition_to(patch.status, now)
        for name in changed:
            if name == "professional":
                self.record(
                    QueueEventType.PROFESSIONAL_CHANGED,
                    now,
                    message=patch.professional.name if patch.professional else None,
                )
            setattr(self, name, getattr(patch, name))
        if "travel_info" in changed:
            self.dirty = True
        if changed:
            self.updated_at = now
        self.last_applied_at = patch.server_timestamp
        return status_changes or bool(changed)

    def transition_to(self, target: QueueStatus, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if not status_machine.validate_transition(self.status, target, self.id):
            return False

        previous = self.status
        self.status = target
        stamp = status_machine.STATUS_TIMESTAMPS.get(target)
        if stamp:
            setattr(self, stamp, now)
        self.updated_at = now
        self.record(QueueEventType.STATUS_CHANGED, now, old_status=previous, new_status=target)
        if target == QueueStatus.NOTIFIED:
            self.record(QueueEventType.NOTIFIED, now, new_wait_time=self.estimated_wait_time)

        effects = status_machine.effects_of(target)
        if status_machine.TransitionEffect.REESTIMATE in effects:
            self.dirty = True
        if status_machine.TransitionEffect.LEAVE_QUEUE in effects:
            self.position = None
            self.time_to_leave = None
            self.dirty = False
        return True

    def to_snapshot(self) -> QueueSnapshot:
        label, severity = status_display(self.status)
        return QueueSnapshot(
            id=self.id,
            clinic_id=self.clinic_id,
            patient_id=self.patient_id,
            status=self.status,
            status_label=label,
            severity=severity,
            position=self.position if self.is_active else None,
            total_in_queue=self.total_in_queue,
            estimated_wait_time=self.estimated_wait_time,
            wait_label=format_wait(self.estimated_wait_time),
            estimated_call_time=self.estimated_call_time,
            time_to_leave=self.time_to_leave,
            should_leave=self.should_leave,
            priority=self.priority,
            reason=self.reason,
            symptoms=self.symptoms,
            travel_info=self.travel_info,
            professional=self.professional,
            clinic=self.clinic,
        )
