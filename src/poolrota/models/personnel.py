"""Guard model as supplied by the personnel directory."""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

GUARD_PREFIX = "GUARD#"


def _parse_dob(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


@dataclass
class Guard:
    """A roster member. Only ``id`` is ever stored in rotation state."""

    id: str
    name: str = ""
    dob: Optional[date] = None

    def __post_init__(self):
        """Normalize fields."""
        self.id = str(self.id).strip()
        if self.id.startswith(GUARD_PREFIX):
            self.id = self.id[len(GUARD_PREFIX):]
        self.name = str(self.name or "").strip()
        self.dob = _parse_dob(self.dob)

    def age_on(self, day: date) -> Optional[int]:
        """Whole years of age on ``day``; None when the birth date is unknown."""
        if self.dob is None:
            return None
        years = day.year - self.dob.year
        if (day.month, day.day) < (self.dob.month, self.dob.day):
            years -= 1
        return years

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "dob": self.dob.isoformat() if self.dob else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Guard":
        """Create from a directory record (``pk`` style ids accepted)."""
        raw_id = d.get("id") or d.get("pk") or ""
        return cls(id=str(raw_id), name=d.get("name", ""), dob=d.get("dob"))
