"""
Rotation Service
================
Request-level operations over one rotation key: load the frame, run the
engine or queue manager, persist the result.

The service keeps no mutable state between calls; the frame store is the only
synchronisation point. Seat and queue edits are revision-guarded. Full-frame
writes (``rotate``, ``autopopulate``) are last-writer-wins.

Usage:
    service = RotationService(FrameStore(MemoryBackend()), StaticDirectory(guards))
    service.set_slot("2025-07-01", "1.1", "g-1")
    service.rotate("2025-07-01", now="2025-07-01T10:30:00Z")
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from poolrota.engine.queue import BreakQueue
from poolrota.engine.rotation import detect_conflicts, period_for, step, tick_index
from poolrota.errors import StorageUnavailable, ValidationError
from poolrota.io.roster_loader import PersonnelDirectory
from poolrota.models.config import RotationConfig
from poolrota.models.state import QueueEntry, RotationState
from poolrota.models.topology import DEFAULT_TOPOLOGY, Topology
from poolrota.models.validated import (
    DateRequest,
    QueueAddRequest,
    QueueMoveRequest,
    SlotUpdateRequest,
    validate_request,
)
from poolrota.store.frame_store import FrameStore, next_frame_timestamp
from poolrota.store.keys import resolve_instance_id, rotation_key
from poolrota.utils.clock import as_utc, format_timestamp
from poolrota.utils.logging_setup import get_logger
from poolrota.utils.structured_logging import bind_context, clear_context, get_structured_logger

logger = get_logger("poolrota.services.orchestrator")
events = get_structured_logger("poolrota.service")

T = TypeVar("T")
When = Union[datetime, str, None]


class RotationService:
    """Validated, persisted rotation operations for a single pool layout."""

    def __init__(
        self,
        store: FrameStore,
        directory: PersonnelDirectory,
        topology: Topology = DEFAULT_TOPOLOGY,
        config: Optional[RotationConfig] = None,
    ):
        self.store = store
        self.directory = directory
        self.topology = topology
        self.config = config or RotationConfig()

    # ---- plumbing ----

    def _retry(self, op: str, fn: Callable[[], T]) -> T:
        """Run a storage call, retrying StorageUnavailable a bounded number of times."""
        attempts = 1 + max(0, self.config.max_storage_retries)
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except StorageUnavailable:
                if attempt == attempts:
                    logger.error(f"{op}: storage unavailable after {attempts} attempts")
                    raise
                logger.warning(f"{op}: storage unavailable, retry {attempt}/{attempts - 1}")

    def _key(self, date: str, instance: Optional[str]) -> str:
        return rotation_key(date, resolve_instance_id(instance))

    def _ttl(self, key_instance: Optional[str]) -> Optional[int]:
        return self.config.sandbox_ttl_seconds if resolve_instance_id(key_instance) else None

    def _now(self, now: When) -> datetime:
        return as_utc(now) if now is not None else as_utc(self.store.clock())

    def _roster(self):
        guards = self.directory.list_active()
        return {g.id: g for g in guards}

    def _require_position(self, position_id: str) -> None:
        if position_id not in self.topology:
            raise ValidationError(f"unknown position: {position_id}")

    def _require_section(self, section: str) -> None:
        if section not in self.topology.all_sections():
            raise ValidationError(f"unknown section: {section}")

    def _write(self, op: str, key: str, state: RotationState, instance: Optional[str],
               expected_rev: Optional[int]) -> RotationState:
        saved = self._retry(op, lambda: self.store.put(key, state, self._ttl(instance), expected_rev))
        events.info(op, key=key, rev=saved.rev)
        return saved

    # ---- reads ----

    def load(self, date: str, instance: Optional[str] = None) -> RotationState:
        req = validate_request(DateRequest, date=date)
        key = self._key(req.date, instance)
        return self._retry("load", lambda: self.store.get(key))

    def board(self, date: str, instance: Optional[str] = None, now: When = None) -> Dict[str, Any]:
        """Current board: one entry per seat, queues per section, conflicts and period."""
        state = self.load(date, instance)
        when = self._now(now)
        queue = BreakQueue.from_entries(state.queue, self.topology.all_sections())
        return {
            "date": date,
            "period": period_for(when, self.config.policy).value,
            "seats": [
                {
                    "stationId": pid,
                    "guardId": state.assigned.get(pid),
                    "updatedAt": state.updated_at.get(pid),
                }
                for pid in self.topology.all_positions()
            ],
            "queues": queue.by_section(),
            "breaks": dict(state.breaks),
            "conflicts": [c.to_dict() for c in state.conflicts],
            "tick": state.tick,
            "rev": state.rev,
        }

    # ---- seat edits ----

    def set_slot(
        self,
        date: str,
        position_id: str,
        reference: Optional[str],
        now: When = None,
        expected_rev: Optional[int] = None,
        instance: Optional[str] = None,
        notes: str = "",
    ) -> RotationState:
        """
        Seat a guard (or clear the seat when ``reference`` is None).

        The guard leaves any other seat and the break queue. The write is
        guarded by ``expected_rev``, or by the revision just read when omitted.

        Raises:
            ValidationError: unknown position or guard
            OptimisticConflict: stale revision
        """
        req = validate_request(
            SlotUpdateRequest, date=date, position_id=position_id,
            guard_id=reference, expected_rev=expected_rev, notes=notes,
        )
        self._require_position(req.position_id)
        roster = self._roster()
        if req.guard_id is not None and req.guard_id not in roster:
            raise ValidationError(f"unknown guard: {req.guard_id}")

        key = self._key(req.date, instance)
        when = self._now(now)
        bind_context(key=key)
        try:
            state = self._retry("set_slot.read", lambda: self.store.get(key))
            _, _, latest = self._retry("set_slot.rows", lambda: self.store.latest_frame(key))
            # The row must sort after every stored frame or reconstruction hides it
            stamp = next_frame_timestamp(latest, when)
            guard_rev = req.expected_rev if req.expected_rev is not None else state.rev

            assigned = dict(state.assigned)
            updated_at = dict(state.updated_at)
            if req.guard_id is not None:
                for pid, gid in list(assigned.items()):
                    if gid == req.guard_id and pid != req.position_id:
                        assigned[pid] = None
                        updated_at[pid] = stamp
            assigned[req.position_id] = req.guard_id
            updated_at[req.position_id] = stamp
            queue = [e for e in state.queue if e.personnel_id != req.guard_id]
            breaks = {g: v for g, v in state.breaks.items() if g != req.guard_id}

            state.assigned = assigned
            state.updated_at = updated_at
            state.queue = queue
            state.breaks = breaks
            state.conflicts = detect_conflicts(assigned, when, self.topology, roster)

            saved = self._write("slot_set", key, state, instance, guard_rev)
            self._retry("set_slot.row", lambda: self.store.append_slot(
                key, req.position_id, req.guard_id, stamp, req.notes or "set-slot",
                self._ttl(instance),
            ))
            return saved
        finally:
            clear_context()

    # ---- full-frame operations ----

    def rotate(self, date: str, now: When = None, instance: Optional[str] = None) -> RotationState:
        """Advance the board one tick and persist the new frame."""
        req = validate_request(DateRequest, date=date)
        key = self._key(req.date, instance)
        when = self._now(now)
        roster = self._roster()
        bind_context(key=key)
        try:
            state = self._retry("rotate.read", lambda: self.store.get(key))
            result = step(
                state.assigned, state.queue, when, self.topology,
                roster=roster, allowed_ids=(roster.keys() if roster else None), policy=self.config.policy,
            )
            stamp = self._retry("rotate.frame", lambda: self.store.append_frame(
                key, result.next_assignment, when, "rotate", self._ttl(instance),
            ))
            queued = {e.personnel_id for e in result.next_queue}
            breaks = {g: v for g, v in state.breaks.items() if g in queued}
            for e in result.next_queue:
                breaks.setdefault(e.personnel_id, stamp)

            nxt = RotationState(
                assigned=result.next_assignment,
                queue=result.next_queue,
                breaks=breaks,
                conflicts=result.conflicts,
                updated_at={pid: stamp for pid in result.next_assignment},
                tick=result.tick,
            )
            logger.info(f"Rotated {key} tick={result.tick} period={result.period.value}")
            return self._write("rotated", key, nxt, instance, None)
        finally:
            clear_context()

    def autopopulate(self, date: str, now: When = None, instance: Optional[str] = None) -> RotationState:
        """
        Seed a fresh frame: roster order fills seats section by section, then
        one remaining guard is queued per section, eligible at the next tick.
        """
        req = validate_request(DateRequest, date=date)
        key = self._key(req.date, instance)
        when = self._now(now)
        roster = self._roster()
        tick = tick_index(when)

        ids = list(roster)
        seats = self.topology.all_positions()
        assigned = self.topology.empty_assignment()
        for pid, gid in zip(seats, ids):
            assigned[pid] = gid
        bench = ids[len(seats):]
        queue: List[QueueEntry] = [
            QueueEntry(gid, section, tick - 1)
            for section, gid in zip(self.topology.all_sections(), bench)
        ]

        stamp = self._retry("autopopulate.frame", lambda: self.store.append_frame(
            key, assigned, when, "autopopulate", self._ttl(instance),
        ))
        state = RotationState(
            assigned=assigned,
            queue=queue,
            breaks={},
            conflicts=detect_conflicts(assigned, when, self.topology, roster),
            updated_at={pid: stamp for pid in assigned},
            tick=tick,
        )
        return self._write("autopopulated", key, state, instance, None)

    # ---- queue edits ----

    def _edit_queue(
        self,
        op: str,
        date: str,
        instance: Optional[str],
        expected_rev: Optional[int],
        edit: Callable[[BreakQueue, RotationState], None],
    ) -> RotationState:
        key = self._key(date, instance)
        state = self._retry(f"{op}.read", lambda: self.store.get(key))
        guard_rev = expected_rev if expected_rev is not None else state.rev
        queue = BreakQueue.from_entries(state.queue, self.topology.all_sections())
        edit(queue, state)
        queue.reconcile(state.seated_ids())
        state.queue = queue.to_entries()
        state.breaks = {g: v for g, v in state.breaks.items() if g in queue}
        return self._write(op, key, state, instance, guard_rev)

    def queue_add(
        self,
        date: str,
        guard_id: str,
        section: str,
        now: When = None,
        instance: Optional[str] = None,
        expected_rev: Optional[int] = None,
    ) -> RotationState:
        """
        Append a guard to a section queue.

        Already-queued guards are left where they are. Seated or unknown
        guards are rejected with ValidationError.
        """
        req = validate_request(QueueAddRequest, date=date, guard_id=guard_id, return_to=section)
        self._require_section(req.return_to)
        if req.guard_id not in self._roster():
            raise ValidationError(f"unknown guard: {req.guard_id}")
        when = self._now(now)
        tick = tick_index(when)

        def edit(queue: BreakQueue, state: RotationState) -> None:
            if req.guard_id in state.seated_ids():
                raise ValidationError(f"guard {req.guard_id} is already seated")
            if queue.enqueue(req.guard_id, req.return_to, tick, state.seated_ids()):
                state.breaks[req.guard_id] = format_timestamp(when)

        return self._edit_queue("queue_add", req.date, instance, expected_rev, edit)

    def queue_move(
        self,
        date: str,
        guard_id: str,
        from_section: str,
        to_section: str,
        to_index: int = 0,
        from_index: int = -1,
        instance: Optional[str] = None,
        expected_rev: Optional[int] = None,
    ) -> RotationState:
        req = validate_request(
            QueueMoveRequest, date=date, guard_id=guard_id, from_section=from_section,
            from_index=from_index, to_section=to_section, to_index=to_index,
        )
        self._require_section(req.to_section)

        def edit(queue: BreakQueue, state: RotationState) -> None:
            queue.move_within_queue(
                req.guard_id, req.from_section, req.from_index, req.to_section, req.to_index,
            )

        return self._edit_queue("queue_move", req.date, instance, expected_rev, edit)

    def queue_remove(
        self,
        date: str,
        guard_id: str,
        instance: Optional[str] = None,
        expected_rev: Optional[int] = None,
    ) -> RotationState:
        req = validate_request(DateRequest, date=date)

        def edit(queue: BreakQueue, state: RotationState) -> None:
            if not queue.remove(str(guard_id)):
                logger.debug(f"queue_remove: {guard_id} not queued")

        return self._edit_queue("queue_remove", req.date, instance, expected_rev, edit)

    def queue_clear(
        self,
        date: str,
        instance: Optional[str] = None,
        expected_rev: Optional[int] = None,
    ) -> RotationState:
        req = validate_request(DateRequest, date=date)

        def edit(queue: BreakQueue, state: RotationState) -> None:
            queue.clear_all()

        return self._edit_queue("queue_clear", req.date, instance, expected_rev, edit)
