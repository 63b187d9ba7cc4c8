"""
Pydantic Validated Models
=========================
Schema layer for the loosely shaped stored records and for inbound requests.

Stored records may be partial or legacy (missing ``rev``, queue entries
without ``enteredTick``, ``GUARD#`` prefixed ids). ``parse_state_record``
merges explicit defaults field by field so a read never fails on shape.

Usage:
    from poolrota.models.validated import parse_state_record, SlotUpdateRequest

    state = parse_state_record(raw_item)
    req = SlotUpdateRequest(date="2025-07-01", position_id="1.1", guard_id="g-1")
"""
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from poolrota.errors import ValidationError
from poolrota.models.personnel import GUARD_PREFIX
from poolrota.models.state import Conflict, ConflictReason, QueueEntry, RotationState

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _strip_prefix(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    if s.startswith(GUARD_PREFIX):
        s = s[len(GUARD_PREFIX):]
    return s or None


# ---- stored record schema ----

class QueueEntryRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    guard_id: Optional[str] = Field(default=None, alias="guardId")
    return_to: str = Field(default="", alias="returnTo")
    entered_tick: Optional[int] = Field(default=None, alias="enteredTick")

    @field_validator("guard_id", mode="before")
    @classmethod
    def strip_guard_prefix(cls, v):
        return _strip_prefix(v)

    @field_validator("return_to", mode="before")
    @classmethod
    def coerce_section(cls, v):
        return "" if v is None else str(v)

    @field_validator("entered_tick", mode="before")
    @classmethod
    def coerce_tick(cls, v):
        # NaN, strings and other junk collapse to "unknown"
        if isinstance(v, bool) or v is None:
            return None
        if isinstance(v, (int, float)) and v == v and v not in (float("inf"), float("-inf")):
            return int(v)
        return None


class ConflictRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    station_id: str = Field(default="", alias="stationId")
    guard_id: str = Field(default="", alias="guardId")
    reason: str = "AGE_RULE"


class StoredRotationRecord(BaseModel):
    """Stored STATE record with explicit defaults for every field."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    assigned: Dict[str, Optional[str]] = Field(default_factory=dict)
    queue: List[QueueEntryRecord] = Field(default_factory=list)
    breaks: Dict[str, str] = Field(default_factory=dict)
    conflicts: List[ConflictRecord] = Field(default_factory=list)
    updated_at: Dict[str, str] = Field(default_factory=dict, alias="updatedAt")
    tick: int = 0
    rev: int = 0
    ttl: Optional[int] = None

    @field_validator("assigned", mode="before")
    @classmethod
    def normalize_assigned(cls, v):
        if not isinstance(v, dict):
            return {}
        return {str(k): _strip_prefix(g) for k, g in v.items()}

    @field_validator("queue", "conflicts", mode="before")
    @classmethod
    def list_or_empty(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @field_validator("breaks", "updated_at", mode="before")
    @classmethod
    def dict_or_empty(cls, v):
        if not isinstance(v, dict):
            return {}
        return {str(k): str(val) for k, val in v.items() if val is not None}

    @field_validator("tick", "rev", mode="before")
    @classmethod
    def int_or_zero(cls, v):
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0

    @field_validator("ttl", mode="before")
    @classmethod
    def int_or_none(cls, v):
        try:
            return int(v) if v is not None else None
        except (TypeError, ValueError):
            return None

    def to_state(self) -> RotationState:
        queue = [
            QueueEntry(
                personnel_id=q.guard_id,
                return_to=q.return_to,
                entered_tick=q.entered_tick,
            )
            for q in self.queue
            if q.guard_id
        ]
        conflicts = []
        for c in self.conflicts:
            if not (c.station_id and c.guard_id):
                continue
            try:
                reason = ConflictReason(c.reason)
            except ValueError:
                reason = ConflictReason.AGE_RULE
            conflicts.append(Conflict(c.station_id, c.guard_id, reason))
        return RotationState(
            assigned=dict(self.assigned),
            queue=queue,
            breaks=dict(self.breaks),
            conflicts=conflicts,
            updated_at=dict(self.updated_at),
            tick=self.tick,
            rev=self.rev,
            ttl=self.ttl,
        )


def parse_state_record(raw: Optional[Dict[str, Any]]) -> RotationState:
    """Default-merge a raw stored record into a RotationState."""
    if not isinstance(raw, dict):
        raw = {}
    return StoredRotationRecord.model_validate(raw).to_state()


# ---- request schemas ----

class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    date: str

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        if not DATE_RE.match(v):
            raise ValueError("date must be YYYY-MM-DD")
        return v


class SlotUpdateRequest(_Request):
    """Single-seat write. ``guard_id`` None clears the seat."""
    position_id: str = Field(min_length=1)
    guard_id: Optional[str] = None
    expected_rev: Optional[int] = Field(default=None, ge=0)
    notes: str = ""

    @field_validator("guard_id", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _strip_prefix(v)


class QueueAddRequest(_Request):
    guard_id: str = Field(min_length=1)
    return_to: str = Field(min_length=1)

    @field_validator("guard_id", mode="before")
    @classmethod
    def strip_guard_prefix(cls, v):
        return _strip_prefix(v) or ""


class QueueMoveRequest(_Request):
    guard_id: str = Field(min_length=1)
    from_section: str = Field(min_length=1)
    from_index: int = Field(default=-1)
    to_section: str = Field(min_length=1)
    to_index: int = Field(default=0)


class DateRequest(_Request):
    pass


def validate_request(model: type, **data) -> BaseModel:
    """Build a request model, translating pydantic errors into ValidationError."""
    try:
        return model(**data)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg", "invalid request")
        raise ValidationError(f"{loc}: {msg}" if loc else msg) from e
