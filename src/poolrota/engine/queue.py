"""
Break Queue Manager
===================
Per-section ordered waiting lists for guards rotated off a seat.

The queue is an arena: one list per section plus a section -> slot index.
Cross-section reordering goes through the pure ``move_entry`` function so the
splicing rules live in exactly one place.

Invariants:
- a guard id appears at most once across all section lists
- a guard is never queued while seated (callers pass the seated set)
- order within a section only changes through an explicit move into it
"""
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from poolrota.errors import LogicInvariantViolation, ValidationError
from poolrota.models.state import QueueEntry
from poolrota.utils.logging_setup import get_logger, log_invariant

logger = get_logger("poolrota.engine.queue")

Arena = Tuple[Tuple[QueueEntry, ...], ...]


def locate(arena: Sequence[Sequence[QueueEntry]], personnel_id: str) -> Optional[Tuple[int, int]]:
    """(section slot, index) of ``personnel_id`` in the arena, or None."""
    for s, bucket in enumerate(arena):
        for i, entry in enumerate(bucket):
            if entry.personnel_id == personnel_id:
                return s, i
    return None


def move_entry(
    arena: Sequence[Sequence[QueueEntry]],
    section_index: Dict[str, int],
    personnel_id: str,
    from_section: str,
    from_index: int,
    to_section: str,
    to_index: int,
) -> Arena:
    """
    Relocate one entry to ``to_section`` at ``to_index``.

    ``from_section``/``from_index`` are a hint: when they do not point at
    ``personnel_id`` the entry is looked up wherever it is. ``to_index`` is
    applied to the destination list after the entry has been taken out, and is
    clamped to ``[0, len(destination)]``. Unknown guards leave the arena as is.

    Returns a new arena; the input is not modified.
    """
    if to_section not in section_index:
        raise ValidationError(f"unknown section: {to_section}")

    buckets: List[List[QueueEntry]] = [list(b) for b in arena]

    pos = None
    src = section_index.get(from_section)
    if src is not None and 0 <= from_index < len(buckets[src]):
        if buckets[src][from_index].personnel_id == personnel_id:
            pos = (src, from_index)
    if pos is None:
        pos = locate(buckets, personnel_id)
    if pos is None:
        return tuple(tuple(b) for b in buckets)

    entry = buckets[pos[0]].pop(pos[1])
    dst = section_index[to_section]
    target = buckets[dst]
    index = max(0, min(int(to_index), len(target)))
    target.insert(index, replace(entry, return_to=to_section))
    return tuple(tuple(b) for b in buckets)


class BreakQueue:
    """Ordered break queue, one list per section."""

    def __init__(self, sections: Iterable[str]):
        self._sections: List[str] = list(dict.fromkeys(str(s) for s in sections))
        self._index: Dict[str, int] = {s: i for i, s in enumerate(self._sections)}
        self._arena: List[List[QueueEntry]] = [[] for _ in self._sections]

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[QueueEntry],
        sections: Iterable[str],
        allowed_ids: Optional[Iterable[str]] = None,
    ) -> "BreakQueue":
        """
        Rebuild buckets from a flat queue.

        Entries for unknown sections or outside ``allowed_ids`` are dropped;
        repeated guard ids keep their first occurrence.
        """
        q = cls(sections)
        allowed = set(allowed_ids) if allowed_ids is not None else None
        for e in entries:
            if not e.personnel_id or e.return_to not in q._index:
                continue
            if allowed is not None and e.personnel_id not in allowed:
                continue
            if e.personnel_id in q:
                log_invariant(
                    logger, LogicInvariantViolation.kind, False,
                    f"guard {e.personnel_id} queued twice, keeping first",
                )
                continue
            q._arena[q._index[e.return_to]].append(e)
        return q

    # ---- inspection ----

    @property
    def sections(self) -> List[str]:
        return list(self._sections)

    def __contains__(self, personnel_id: str) -> bool:
        return locate(self._arena, personnel_id) is not None

    def __len__(self) -> int:
        return sum(len(b) for b in self._arena)

    def section_of(self, personnel_id: str) -> Optional[str]:
        pos = locate(self._arena, personnel_id)
        return self._sections[pos[0]] if pos else None

    def entries(self, section: str) -> List[QueueEntry]:
        i = self._index.get(section)
        return list(self._arena[i]) if i is not None else []

    def by_section(self) -> Dict[str, List[str]]:
        return {s: [e.personnel_id for e in self._arena[i]] for s, i in self._index.items()}

    def to_entries(self) -> List[QueueEntry]:
        """Flat queue in section order."""
        return [e for bucket in self._arena for e in bucket]

    def _require_section(self, section: str) -> int:
        i = self._index.get(str(section))
        if i is None:
            raise ValidationError(f"unknown section: {section}")
        return i

    # ---- mutations ----

    def enqueue(
        self,
        personnel_id: str,
        section: str,
        entered_tick: int = 0,
        seated: Iterable[str] = (),
    ) -> bool:
        """Append to the tail of ``section``. No-op if already queued or seated."""
        i = self._require_section(section)
        if not personnel_id or personnel_id in self or personnel_id in set(seated):
            return False
        self._arena[i].append(QueueEntry(personnel_id, str(section), int(entered_tick)))
        return True

    def dequeue_front(self, section: str) -> Optional[str]:
        i = self._index.get(section)
        if i is None or not self._arena[i]:
            return None
        return self._arena[i].pop(0).personnel_id

    def pop_eligible(self, section: str, tick: int, exclude: Iterable[str] = ()) -> Optional[str]:
        """Remove the first entry that has waited at least one full tick."""
        i = self._index.get(section)
        if i is None:
            return None
        skip = set(exclude)
        bucket = self._arena[i]
        for k, e in enumerate(bucket):
            entered = e.entered_tick if e.entered_tick is not None else tick
            if entered < tick and e.personnel_id not in skip:
                return bucket.pop(k).personnel_id
        return None

    def move_within_queue(
        self,
        personnel_id: str,
        from_section: str,
        from_index: int,
        to_section: str,
        to_index: int,
    ) -> None:
        arena = move_entry(
            self._arena, self._index, personnel_id,
            from_section, from_index, to_section, to_index,
        )
        self._arena = [list(b) for b in arena]

    def remove(self, personnel_id: str) -> bool:
        pos = locate(self._arena, personnel_id)
        if pos is None:
            return False
        self._arena[pos[0]].pop(pos[1])
        return True

    def clear_all(self) -> None:
        self._arena = [[] for _ in self._sections]

    def reconcile(self, seated: Iterable[str]) -> List[str]:
        """Drop queued guards that are also seated; returns the dropped ids."""
        seated_set = set(seated)
        dropped = []
        for bucket in self._arena:
            for e in list(bucket):
                if e.personnel_id in seated_set:
                    bucket.remove(e)
                    dropped.append(e.personnel_id)
        if dropped:
            log_invariant(
                logger, LogicInvariantViolation.kind, False,
                f"seated guards found in queue, dropped {sorted(dropped)}",
            )
        return dropped

    def __repr__(self):
        return f"BreakQueue({self.by_section()})"
