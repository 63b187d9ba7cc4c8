"""
Repair Jobs
===========
Offline batch jobs that clean historically malformed references (free-text
names, ``GUARD#`` prefixed ids) out of stored rotation state.

All jobs cover every state record for a date prefix, live and sandbox alike.
Writes are revision-guarded against the revision read during the scan, so a
record edited concurrently is skipped and reported instead of overwritten.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from poolrota.errors import LogicInvariantViolation, OptimisticConflict
from poolrota.io.roster_loader import PersonnelDirectory
from poolrota.models.state import QueueEntry, RotationState
from poolrota.models.topology import DEFAULT_TOPOLOGY, Topology
from poolrota.services.identity import build_name_index, canonicalize
from poolrota.store.frame_store import FrameStore
from poolrota.utils.logging_setup import get_logger, log_invariant

logger = get_logger("poolrota.services.repair")

MAX_SAMPLES = 20


@dataclass
class RepairReport:
    """Outcome of a repair run."""
    examined: int = 0
    changed: int = 0
    applied: bool = False
    records_touched: int = 0
    seats_cleared: int = 0
    queue_removed: int = 0
    conflicts: List[str] = field(default_factory=list)
    samples: List[Dict[str, Any]] = field(default_factory=list)

    def sample(self, **item) -> None:
        if len(self.samples) < MAX_SAMPLES:
            self.samples.append(item)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "examined": self.examined,
            "changed": self.changed,
            "applied": self.applied,
            "recordsTouched": self.records_touched,
            "seatsCleared": self.seats_cleared,
            "queueRemoved": self.queue_removed,
            "conflicts": list(self.conflicts),
            "samples": list(self.samples),
        }


def _maps(directory: PersonnelDirectory):
    guards = directory.list_active()
    return guards, {g.id for g in guards}, build_name_index(guards)


def diagnose(store: FrameStore, directory: PersonnelDirectory, date: Optional[str] = None) -> Dict[str, Any]:
    """Count seat and queue references that do not resolve to a roster id."""
    guards, known, by_name = _maps(directory)
    records = store.scan(date)
    out: Dict[str, Any] = {
        "rosterCount": len(guards),
        "stateRowCount": len(records),
        "unknownAssigned": 0,
        "unknownQueue": 0,
        "samples": [],
    }
    for key, state in records:
        for seat, gid in state.assigned.items():
            if gid and canonicalize(gid, known, by_name) is None:
                out["unknownAssigned"] += 1
                if len(out["samples"]) < 10:
                    out["samples"].append({"kind": "assigned", "pk": key, "seat": seat, "bad": gid})
        for entry in state.queue:
            if canonicalize(entry.personnel_id, known, by_name) is None:
                out["unknownQueue"] += 1
                if len(out["samples"]) < 10:
                    out["samples"].append({"kind": "queue", "pk": key, "bad": entry.personnel_id})
    return out


def _dedupe(queue: List[QueueEntry], seated: set) -> List[QueueEntry]:
    seen = set(seated)
    kept = []
    for e in queue:
        if e.personnel_id in seen:
            continue
        seen.add(e.personnel_id)
        kept.append(e)
    return kept


def _single_seat(key: str, assigned: Dict[str, Optional[str]], topology: Topology) -> Dict[str, Optional[str]]:
    """Keep each guard on its first seat in topology order; later seats are cleared."""
    order = topology.all_positions()
    ranked = sorted(assigned, key=lambda pid: (order.index(pid) if pid in order else len(order), pid))
    out = dict(assigned)
    seen = set()
    for pid in ranked:
        gid = out[pid]
        if not gid:
            continue
        if gid in seen:
            log_invariant(
                logger, LogicInvariantViolation.kind, False,
                f"{key}: guard {gid} seated twice after repair, clearing {pid}",
            )
            out[pid] = None
            continue
        seen.add(gid)
    return out


def _remaining_ttl(store: FrameStore, state: RotationState) -> Optional[int]:
    if state.ttl is None:
        return None
    return max(1, state.ttl - store.now_epoch())


def _save(store: FrameStore, key: str, state: RotationState, report: RepairReport) -> bool:
    try:
        store.put(key, state, _remaining_ttl(store, state), expected_rev=state.rev)
    except OptimisticConflict:
        logger.warning(f"Skipped {key}: modified during repair")
        report.conflicts.append(key)
        return False
    report.records_touched += 1
    return True


def fix_ids(
    store: FrameStore,
    directory: PersonnelDirectory,
    date: Optional[str] = None,
    apply: bool = False,
    topology: Topology = DEFAULT_TOPOLOGY,
) -> RepairReport:
    """
    Rewrite resolvable names to roster ids.

    Unresolvable references are left untouched. A guard that ends up on two
    seats keeps the first one. Applied fixes also append a corrective frame so
    the board rebuilt from slot rows matches the repaired state. With
    ``apply`` False this is a dry run that only reports what would change.
    """
    _, known, by_name = _maps(directory)
    report = RepairReport(applied=apply)

    for key, state in store.scan(date):
        report.examined += 1
        dirty = False

        assigned = dict(state.assigned)
        for seat, gid in assigned.items():
            if not gid:
                continue
            canon = canonicalize(gid, known, by_name)
            if canon and canon != gid:
                assigned[seat] = canon
                dirty = True
                report.changed += 1
                report.sample(kind="assigned", pk=key, seat=seat, **{"from": gid, "to": canon})

        queue = []
        for entry in state.queue:
            canon = canonicalize(entry.personnel_id, known, by_name)
            if canon and canon != entry.personnel_id:
                dirty = True
                report.changed += 1
                report.sample(kind="queue", pk=key, **{"from": entry.personnel_id, "to": canon})
                entry = QueueEntry(canon, entry.return_to, entry.entered_tick)
            queue.append(entry)

        if not dirty or not apply:
            continue
        state.assigned = _single_seat(key, assigned, topology)
        state.queue = _dedupe(queue, {g for g in state.assigned.values() if g})
        if _save(store, key, state, report):
            store.append_frame(key, state.assigned, notes="fix-ids", ttl_seconds=_remaining_ttl(store, state))

    logger.info(f"fix-ids: examined={report.examined} changed={report.changed} applied={apply}")
    return report


def purge_unknown(store: FrameStore, directory: PersonnelDirectory, date: str) -> RepairReport:
    """Clear seats and drop queue entries that no roster guard matches, then append a corrective frame."""
    _, known, by_name = _maps(directory)
    report = RepairReport(applied=True)

    for key, state in store.scan(date):
        report.examined += 1
        dirty = False

        assigned = dict(state.assigned)
        for seat, gid in assigned.items():
            if gid and canonicalize(gid, known, by_name) is None:
                assigned[seat] = None
                report.seats_cleared += 1
                report.sample(kind="assigned", pk=key, seat=seat, bad=gid)
                dirty = True

        kept: List[QueueEntry] = []
        for entry in state.queue:
            canon = canonicalize(entry.personnel_id, known, by_name)
            if canon is None:
                report.queue_removed += 1
                report.sample(kind="queue", pk=key, bad=entry.personnel_id)
                dirty = True
            else:
                if canon != entry.personnel_id:
                    dirty = True
                kept.append(QueueEntry(canon, entry.return_to, entry.entered_tick))

        if not dirty:
            continue
        report.changed += 1
        state.assigned = assigned
        state.queue = _dedupe(kept, {g for g in assigned.values() if g})
        state.breaks = {g: v for g, v in state.breaks.items() if g in {e.personnel_id for e in state.queue}}
        if _save(store, key, state, report):
            store.append_frame(key, state.assigned, notes="purge-unknown", ttl_seconds=_remaining_ttl(store, state))

    logger.info(
        f"purge-unknown {date}: touched={report.records_touched} "
        f"seats={report.seats_cleared} queue={report.queue_removed}"
    )
    return report

