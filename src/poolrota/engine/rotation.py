"""
Rotation Engine
===============
Advances seat assignments by one tick.

``advance`` is the pure core: propagate every occupant one hop along the
topology, apply the time-of-day policy and report advisory age conflicts.
``step`` is the full tick used by the service: it runs ``advance`` and routes
guards leaving the board into the break queue, then refills seats from it.

Both are deterministic functions of their inputs. Neither raises for unknown
positions; those are skipped.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from poolrota.engine.queue import BreakQueue
from poolrota.errors import LogicInvariantViolation
from poolrota.models.config import TICK_MINUTES, RotationPolicy
from poolrota.models.personnel import Guard
from poolrota.models.state import Conflict, ConflictReason, Period, QueueEntry
from poolrota.models.topology import DEFAULT_TOPOLOGY, Topology
from poolrota.utils.clock import as_utc
from poolrota.utils.logging_setup import get_logger, log_function_call, log_invariant

logger = get_logger("poolrota.engine.rotation")

Assignment = Dict[str, Optional[str]]
Roster = Union[Mapping[str, Guard], Iterable[Guard], None]

DEFAULT_POLICY = RotationPolicy()


def tick_index(now: Union[datetime, str]) -> int:
    """Whole ticks (15 minutes) since the Unix epoch."""
    ts = as_utc(now).timestamp()
    return int(ts // (TICK_MINUTES * 60))


def period_for(now: Union[datetime, str], policy: Optional[RotationPolicy] = None) -> Period:
    """Minute-of-hour decides the period; the restricted window runs to the top of the hour."""
    policy = policy or DEFAULT_POLICY
    if not policy.enforce_restricted:
        return Period.ALL_AGES
    if as_utc(now).minute >= policy.restricted_from_minute:
        return Period.ADULT_SWIM
    return Period.ALL_AGES


def _roster_index(roster: Roster) -> Dict[str, Guard]:
    if roster is None:
        return {}
    if isinstance(roster, Mapping):
        return dict(roster)
    return {g.id: g for g in roster}


def detect_conflicts(
    assignment: Mapping[str, Optional[str]],
    now: Union[datetime, str],
    topology: Topology = DEFAULT_TOPOLOGY,
    roster: Roster = None,
) -> List[Conflict]:
    """Occupants younger than their seat's minimum age. Unknown ages never conflict."""
    guards = _roster_index(roster)
    if not guards:
        return []
    today = as_utc(now).date()
    conflicts = []
    for pid in topology.all_positions():
        gid = assignment.get(pid)
        min_age = topology.min_age(pid)
        if not gid or min_age <= 0 or gid not in guards:
            continue
        age = guards[gid].age_on(today)
        if age is not None and age < min_age:
            conflicts.append(Conflict(pid, gid, ConflictReason.AGE_RULE))
    return conflicts


@dataclass
class AdvanceResult:
    """Output of one pure propagation step."""
    next_assignment: Assignment
    conflicts: List[Conflict]
    period: Period
    # (position the guard left, guard id): fell off a ring terminus or lost a collision
    vacated: List[Tuple[str, str]] = field(default_factory=list)
    # (position the guard was cleared from, guard id): restricted-period clearing
    displaced: List[Tuple[str, str]] = field(default_factory=list)


@log_function_call
def advance(
    assignment: Mapping[str, Optional[str]],
    now: Union[datetime, str],
    topology: Topology = DEFAULT_TOPOLOGY,
    roster: Roster = None,
    policy: Optional[RotationPolicy] = None,
) -> AdvanceResult:
    """
    Move every occupant to its next position and apply the period policy.

    Args:
        assignment: position id -> guard id (or None)
        now: current time; its minute-of-hour selects the period
        topology: seat graph
        roster: guards with birth dates, for the age check
        policy: time-of-day policy (defaults to the 45-minute boundary)

    Returns:
        AdvanceResult; the input mapping is never modified.
    """
    period = period_for(now, policy)
    nxt: Assignment = topology.empty_assignment()
    vacated: List[Tuple[str, str]] = []
    displaced: List[Tuple[str, str]] = []

    unknown = [pid for pid in assignment if pid not in topology]
    if unknown:
        logger.debug(f"Ignoring unknown positions: {sorted(unknown)}")

    seen: Set[str] = set()
    for pid in topology.all_positions():
        gid = assignment.get(pid)
        if not gid:
            continue
        if gid in seen:
            log_invariant(
                logger, LogicInvariantViolation.kind, False,
                f"guard {gid} seated twice, dropping copy at {pid}",
            )
            continue
        seen.add(gid)

        target = topology.next_position(pid)
        if target is None:
            vacated.append((pid, gid))
        elif nxt[target] is not None:
            # Two edges into one seat: first in topology order keeps it
            logger.warning(f"Seat {target} already taken this tick; {gid} from {pid} leaves the board")
            vacated.append((pid, gid))
        else:
            nxt[target] = gid

    if period.is_restricted:
        for pid in topology.all_positions():
            gid = nxt[pid]
            if gid and not topology.is_rest_position(pid):
                displaced.append((pid, gid))
                nxt[pid] = None

    return AdvanceResult(
        next_assignment=nxt,
        conflicts=detect_conflicts(nxt, now, topology, roster),
        period=period,
        vacated=vacated,
        displaced=displaced,
    )


@dataclass
class StepResult:
    """Output of one full tick: board, queue, conflicts and period."""
    next_assignment: Assignment
    next_queue: List[QueueEntry]
    conflicts: List[Conflict]
    period: Period
    tick: int
    queues_by_section: Dict[str, List[str]] = field(default_factory=dict)


def _normalize_queue(entries: Iterable[QueueEntry], tick: int) -> List[QueueEntry]:
    # Unknown arrival -> must sit out one full tick; future arrivals are clamped
    out = []
    for e in entries:
        et = e.entered_tick if e.entered_tick is not None else tick
        out.append(QueueEntry(e.personnel_id, e.return_to, min(int(et), tick)))
    return out


def _refill(
    queue: BreakQueue,
    assignment: Assignment,
    section: str,
    seats: List[str],
    tick: int,
    seated: Set[str],
) -> None:
    for seat in seats:
        if assignment.get(seat):
            continue
        gid = queue.pop_eligible(section, tick, exclude=seated)
        if gid is None:
            break
        assignment[seat] = gid
        seated.add(gid)


@log_function_call
def step(
    assignment: Mapping[str, Optional[str]],
    queue_entries: Iterable[QueueEntry],
    now: Union[datetime, str],
    topology: Topology = DEFAULT_TOPOLOGY,
    roster: Roster = None,
    allowed_ids: Optional[Iterable[str]] = None,
    policy: Optional[RotationPolicy] = None,
) -> StepResult:
    """
    Run one full rotation tick.

    Permissive tick:
        guards leaving a section's last seat queue for the next section and
        are eligible at once; each section's entry seat pulls the first
        eligible guard from its queue. After an adult-swim tick every empty
        seat is refilled, last seat first.
    Restricted tick:
        guards leaving the last seat and guards cleared from non-rest seats
        start a break (eligible from the next tick); an empty rest entry seat
        pulls from its section's queue.

    A queued guard is eligible once it has waited at least one full tick.
    """
    policy = policy or DEFAULT_POLICY
    now = as_utc(now)
    tick = tick_index(now)
    sections = topology.all_sections()

    allowed = set(allowed_ids) if allowed_ids is not None else None
    current = {pid: gid for pid, gid in assignment.items() if pid in topology}
    if allowed is not None:
        current = {pid: (gid if gid in allowed else None) for pid, gid in current.items()}

    queue = BreakQueue.from_entries(_normalize_queue(queue_entries, tick), sections, allowed)
    queue.reconcile(gid for gid in current.values() if gid)

    adv = advance(current, now, topology, roster, policy)
    nxt = dict(adv.next_assignment)
    seated = {gid for gid in nxt.values() if gid}

    if adv.period.is_restricted:
        for pid, gid in adv.vacated:
            queue.enqueue(gid, topology.next_section(topology.section_of(pid)), tick, seated)
        for pid, gid in adv.displaced:
            queue.enqueue(gid, topology.section_of(pid), tick, seated)
        for s in sections:
            entry = topology.entry_position(s)
            if entry and topology.is_rest_position(entry):
                _refill(queue, nxt, s, [entry], tick, seated)
    else:
        for pid, gid in adv.vacated:
            queue.enqueue(gid, topology.next_section(topology.section_of(pid)), tick - 1, seated)
        prev_restricted = period_for(now - timedelta(minutes=TICK_MINUTES), policy).is_restricted
        for s in sections:
            seats = topology.positions_in(s)
            if prev_restricted:
                _refill(queue, nxt, s, list(reversed(seats)), tick, seated)
            else:
                _refill(queue, nxt, s, seats[:1], tick, seated)

    queue.reconcile(seated)
    logger.debug(f"tick={tick} period={adv.period.value} queues={queue.by_section()}")

    return StepResult(
        next_assignment=nxt,
        next_queue=queue.to_entries(),
        conflicts=detect_conflicts(nxt, now, topology, roster),
        period=adv.period,
        tick=tick,
        queues_by_section=queue.by_section(),
    )
