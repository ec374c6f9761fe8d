import asyncio
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from app.core.clock import SystemClock
from app.core.config import settings
from app.core.exceptions import MalformedPatch, QueueError, StaleUpdate, UnknownEntry
from app.core.logger import get_logger
from app.models.enums import QueueStatus
from app.models.queue_entry import QueueEntry
from app.schemas.queue import (
    ClinicQueueResponse,
    QueueJoinRequest,
    QueuePatch,
    QueueSnapshot,
    UpdateResult,
)
from app.services.estimation_service import apply_estimate
from app.services.ordering_service import rank_entries
from app.services.service_duration import ServiceDurationSource

logger = get_logger("queue")

QUEUE_EVENTS = ("update", "time_to_leave", "removed")


class ClinicQueue:
    """Active entries of one clinic and the lock that serializes their changes."""

    def __init__(self, clinic_id: str):
        self.clinic_id = clinic_id
        self.entries: Dict[str, QueueEntry] = {}
        self.lock = asyncio.Lock()

    def ranked(self) -> List[QueueEntry]:
        return sorted(self.entries.values(), key=lambda e: e.position or 0)


class QueueService:
    def __init__(
        self,
        duration_source: ServiceDurationSource,
        clock=None,
        refresh_interval: Optional[float] = None,
        auto_notify: Optional[bool] = None,
        history_limit: Optional[int] = None,
    ):
        self.duration_source = duration_source
        self.clock = clock or SystemClock()
        self.refresh_interval = (
            refresh_interval if refresh_interval is not None else settings.QUEUE_REFRESH_INTERVAL_SECONDS
        )
        self.auto_notify = auto_notify if auto_notify is not None else settings.AUTO_NOTIFY_ON_LEAVE_TIME
        self.history_limit = history_limit if history_limit is not None else settings.TERMINAL_HISTORY_LIMIT
        self._clinics: Dict[str, ClinicQueue] = {}
        self._entry_clinic: Dict[str, str] = {}
        self._history: "OrderedDict[str, QueueEntry]" = OrderedDict()
        self._refresh_tasks: Dict[str, asyncio.Task] = {}
        self._listeners: Dict[str, Set[Callable[[Any], None]]] = {event: set() for event in QUEUE_EVENTS}

    # ------------------------------------------------------------------
    # Queue membership
    # ------------------------------------------------------------------

    def _get_clinic(self, clinic_id: str) -> ClinicQueue:
        clinic = self._clinics.get(clinic_id)
        if clinic is None:
            clinic = ClinicQueue(clinic_id)
            self._clinics[clinic_id] = clinic
        return clinic

    def _find_entry(self, entry_id: str) -> Optional[QueueEntry]:
        clinic_id = self._entry_clinic.get(entry_id)
        if clinic_id is None:
            return None
        entry = self._clinics[clinic_id].entries.get(entry_id)
        return entry or self._history.get(entry_id)

    async def join_queue(self, request: QueueJoinRequest) -> QueueSnapshot:
        clinic = self._get_clinic(request.clinic_id)
        average = await self.duration_source.average_for(clinic.clinic_id)

        async with clinic.lock:
            existing = self._find_entry(request.entry_id) if request.entry_id else None
            if existing is not None:
                return existing.to_snapshot()

            now = self.clock.now()
            entry = QueueEntry(
                clinic_id=clinic.clinic_id,
                joined_at=request.joined_at or now,
                patient_id=request.patient_id,
                priority=request.priority,
                reason=request.reason,
                symptoms=request.symptoms,
                travel_info=request.travel_info,
                professional=request.professional,
                clinic=request.clinic,
                updated_at=now,
            )
            if request.entry_id:
                entry.id = request.entry_id
            clinic.entries[entry.id] = entry
            self._entry_clinic[entry.id] = clinic.clinic_id
            events = self._recompute(clinic, average, now)
            snapshot = entry.to_snapshot()

        logger.info(
            f"Entry {entry.id} joined clinic {clinic.clinic_id} | "
            f"Priority: {entry.priority.value} | Position: {snapshot.position}/{snapshot.total_in_queue}"
        )
        self._start_refresh(entry.id)
        self._dispatch(events)
        return snapshot

    async def apply_update(self, patch) -> UpdateResult:
        """
        Apply one update-feed patch.

        Every rejection is reported through the result rather than raised:
        stale patches are dropped quietly, the rest carry a reason code.
        """
        if not isinstance(patch, QueuePatch):
            try:
                patch = QueuePatch.model_validate(patch)
            except ValidationError as exc:
                error = MalformedPatch("Patch failed validation", errors=exc.errors())
                logger.warning(f"Rejected malformed patch: {exc.errors()}")
                return UpdateResult(applied=False, reason=error.code, message=error.message)

        entry = self._find_entry(patch.entry_id)
        if entry is None:
            return self._unknown(patch.entry_id)
        return await self._apply(entry, lambda now: patch)

    async def leave_queue(self, entry_id: str, server_timestamp=None) -> UpdateResult:
        return await self._local_status(entry_id, QueueStatus.CANCELLED, server_timestamp)

    async def mark_arrived(self, entry_id: str, server_timestamp=None) -> UpdateResult:
        return await self._local_status(entry_id, QueueStatus.ARRIVED, server_timestamp)

    async def _local_status(self, entry_id: str, status: QueueStatus, server_timestamp=None) -> UpdateResult:
        """
        Status change requested by the patient rather than the feed.

        Without an explicit timestamp the action is stamped no earlier than the
        last feed update, so a feed clock running ahead of ours cannot turn the
        patient's own action into a stale one.
        """
        if server_timestamp is not None:
            return await self.apply_update({
                "entry_id": entry_id,
                "status": status,
                "server_timestamp": server_timestamp,
            })

        entry = self._find_entry(entry_id)
        if entry is None:
            return self._unknown(entry_id)

        def stamped(now):
            stamp = now
            if entry.last_applied_at is not None and entry.last_applied_at > now:
                stamp = entry.last_applied_at
            return QueuePatch(entry_id=entry_id, status=status, server_timestamp=stamp)

        return await self._apply(entry, stamped)

    async def _apply(self, entry: QueueEntry, build_patch: Callable[[Any], QueuePatch]) -> UpdateResult:
        clinic = self._clinics[entry.clinic_id]
        average = await self.duration_source.average_for(clinic.clinic_id)

        async with clinic.lock:
            now = self.clock.now()
            patch = build_patch(now)
            try:
                changed = entry.apply_update(patch, now)
            except StaleUpdate as exc:
                logger.debug(f"Discarded stale update for {entry.id}: {exc.message}")
                return UpdateResult(applied=False, reason=exc.code, snapshot=entry.to_snapshot())
            except QueueError as exc:
                logger.info(f"Rejected update for {entry.id}: {exc.message}")
                return UpdateResult(
                    applied=False,
                    reason=exc.code,
                    message=exc.message,
                    snapshot=entry.to_snapshot(),
                )

            events = []
            if entry.is_terminal:
                events.extend(self._retire(clinic, entry))
            if changed:
                events.extend(self._recompute(clinic, average, now))
            snapshot = entry.to_snapshot()
            if changed and entry.is_active and not any(p.id == entry.id for _, p in events):
                events.append(("update", snapshot))

        if entry.is_terminal:
            self._cancel_refresh(entry.id)
        self._dispatch(events)
        return UpdateResult(applied=True, snapshot=snapshot)

    def _unknown(self, entry_id: str) -> UpdateResult:
        error = UnknownEntry(f"Entry '{entry_id}' is not tracked locally", entry_id)
        logger.info(f"Update for unknown entry {entry_id}; needs fetch")
        return UpdateResult(applied=False, reason=error.code, message=error.message)

    def _retire(self, clinic: ClinicQueue, entry: QueueEntry) -> List[tuple]:
        clinic.entries.pop(entry.id, None)
        entry.total_in_queue = len(clinic.entries)
        self._history[entry.id] = entry
        # oldest retired entries are forgotten first
        while len(self._history) > self.history_limit:
            evicted, _ = self._history.popitem(last=False)
            self._entry_clinic.pop(evicted, None)
        logger.info(f"Entry {entry.id} left clinic {clinic.clinic_id} as {entry.status.value}")
        return [("removed", entry.to_snapshot())]

    # ------------------------------------------------------------------
    # Ranking and estimation (call with clinic.lock held)
    # ------------------------------------------------------------------

    def _recompute(self, clinic: ClinicQueue, average: float, now) -> List[tuple]:
        rank_entries(clinic.entries.values(), now)
        events = []
        for entry in clinic.ranked():
            if not entry.dirty:
                continue
            apply_estimate(entry, average, now)
            events.extend(self._check_leave_time(entry, average, now))
            events.append(("update", entry.to_snapshot()))
        return events

    def _check_leave_time(self, entry: QueueEntry, average: float, now) -> List[tuple]:
        if not entry.should_leave:
            entry.leave_signalled = False
            return []
        if entry.leave_signalled:
            return []

        entry.leave_signalled = True
        if self.auto_notify and entry.status == QueueStatus.WAITING:
            entry.transition_to(QueueStatus.NOTIFIED, now)
            apply_estimate(entry, average, now)
            logger.info(f"Entry {entry.id} notified to leave | Time to leave: {entry.time_to_leave} min")
        return [("time_to_leave", entry.to_snapshot())]

    async def refresh_entry(self, entry_id: str) -> Optional[QueueSnapshot]:
        entry = self._find_entry(entry_id)
        if entry is None or entry.is_terminal:
            return None

        clinic = self._clinics[entry.clinic_id]
        average = await self.duration_source.average_for(clinic.clinic_id)
        async with clinic.lock:
            if entry.is_terminal:
                return None
            entry.dirty = True
            events = self._recompute(clinic, average, self.clock.now())
            snapshot = entry.to_snapshot()
        self._dispatch(events)
        return snapshot

    async def refresh_clinic(self, clinic_id: str) -> List[QueueSnapshot]:
        clinic = self._get_clinic(clinic_id)
        average = await self.duration_source.average_for(clinic_id)
        async with clinic.lock:
            for entry in clinic.entries.values():
                entry.dirty = True
            events = self._recompute(clinic, average, self.clock.now())
            snapshots = [entry.to_snapshot() for entry in clinic.ranked()]
        self._dispatch(events)
        return snapshots

    async def set_service_duration(self, clinic_id: str, minutes: float) -> List[QueueSnapshot]:
        await self.duration_source.set_average(clinic_id, minutes)
        logger.info(f"Service duration for clinic {clinic_id} set to {minutes} min")
        return await self.refresh_clinic(clinic_id)

    async def record_service_sample(self, clinic_id: str, minutes: float) -> List[QueueSnapshot]:
        average = await self.duration_source.record_service(clinic_id, minutes)
        logger.info(f"Service duration for clinic {clinic_id} now averages {average:.1f} min")
        return await self.refresh_clinic(clinic_id)

    # ------------------------------------------------------------------
    # Periodic refresh
    # ------------------------------------------------------------------

    def _start_refresh(self, entry_id: str) -> None:
        if self.refresh_interval <= 0 or entry_id in self._refresh_tasks:
            return
        task = asyncio.create_task(self._refresh_loop(entry_id))
        self._refresh_tasks[entry_id] = task
        task.add_done_callback(lambda _: self._refresh_tasks.pop(entry_id, None))

    def _cancel_refresh(self, entry_id: str) -> None:
        task = self._refresh_tasks.pop(entry_id, None)
        if task is not None and not task.done():
            task.cancel()

    def has_refresh(self, entry_id: str) -> bool:
        return entry_id in self._refresh_tasks

    async def _refresh_loop(self, entry_id: str) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                snapshot = await self.refresh_entry(entry_id)
            except Exception:
                logger.exception(f"Periodic refresh failed for {entry_id}")
                continue
            if snapshot is None:
                return

    async def shutdown(self) -> None:
        tasks = list(self._refresh_tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_tasks.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_snapshot(self, entry_id: str) -> QueueSnapshot:
        entry = self._find_entry(entry_id)
        if entry is None:
            raise UnknownEntry(f"Entry '{entry_id}' is not tracked locally", entry_id)
        return entry.to_snapshot()

    def get_history(self, entry_id: str):
        entry = self._find_entry(entry_id)
        if entry is None:
            raise UnknownEntry(f"Entry '{entry_id}' is not tracked locally", entry_id)
        return list(entry.updates)

    async def get_clinic_queue(self, clinic_id: str) -> ClinicQueueResponse:
        clinic = self._get_clinic(clinic_id)
        average = await self.duration_source.average_for(clinic_id)
        async with clinic.lock:
            entries = [entry.to_snapshot() for entry in clinic.ranked()]
        return ClinicQueueResponse(
            clinic_id=clinic_id,
            total_in_queue=len(entries),
            average_service_duration=average,
            entries=entries,
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown queue event '{event}'")
        self._listeners[event].add(callback)

    def off(self, event: str, callback: Callable[[Any], None]) -> None:
        self._listeners.get(event, set()).discard(callback)

    def _dispatch(self, events: List[tuple]) -> None:
        for event, payload in events:
            for callback in list(self._listeners[event]):
                try:
                    callback(payload)
                except Exception:
                    logger.exception(f"Queue listener for '{event}' failed")
