"""Rotation state (frame) models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class Period(str, Enum):
    """Time-of-day policy periods."""
    ALL_AGES = "ALL_AGES"      # permissive
    ADULT_SWIM = "ADULT_SWIM"  # restricted: only rest seats stay staffed

    @property
    def is_restricted(self) -> bool:
        return self is Period.ADULT_SWIM


class ConflictReason(str, Enum):
    AGE_RULE = "AGE_RULE"


@dataclass(frozen=True)
class QueueEntry:
    """A guard waiting to return to a section."""
    personnel_id: str
    return_to: str
    entered_tick: Optional[int] = None  # None = unknown, treated as "just arrived"

    def to_dict(self) -> dict:
        return {
            "guardId": self.personnel_id,
            "returnTo": self.return_to,
            "enteredTick": self.entered_tick,
        }


@dataclass(frozen=True)
class Conflict:
    """Advisory eligibility conflict; never blocks a seat."""
    position_id: str
    personnel_id: str
    reason: ConflictReason = ConflictReason.AGE_RULE

    def to_dict(self) -> dict:
        return {
            "stationId": self.position_id,
            "guardId": self.personnel_id,
            "reason": self.reason.value,
        }


@dataclass
class RotationState:
    """
    One persisted frame of assignments, queue and metadata for a key.

    ``rev`` is owned by the store: every successful write bumps it by one.
    ``ttl`` is an epoch-seconds expiry and only ever set on sandbox copies.
    """

    assigned: Dict[str, Optional[str]] = field(default_factory=dict)
    queue: List[QueueEntry] = field(default_factory=list)
    breaks: Dict[str, str] = field(default_factory=dict)
    conflicts: List[Conflict] = field(default_factory=list)
    updated_at: Dict[str, str] = field(default_factory=dict)
    tick: int = 0
    rev: int = 0
    ttl: Optional[int] = None

    def seated_ids(self) -> set:
        return {gid for gid in self.assigned.values() if gid}

    def queued_ids(self) -> set:
        return {e.personnel_id for e in self.queue}

    def to_dict(self) -> dict:
        """Serialize using the stored record field names."""
        d = {
            "assigned": dict(self.assigned),
            "queue": [e.to_dict() for e in self.queue],
            "breaks": dict(self.breaks),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "updatedAt": dict(self.updated_at),
            "tick": self.tick,
            "rev": self.rev,
        }
        if self.ttl is not None:
            d["ttl"] = self.ttl
        return d
