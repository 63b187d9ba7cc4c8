"""
Error Taxonomy
==============
Every failure that can leave the rotation core carries a short ``kind`` and a
human message. Callers surface ``public_dict()`` and nothing else, so storage
details never leak outward.
"""
from typing import Dict


class RotationError(Exception):
    """Base class for all rotation core errors."""

    kind = "rotation_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def public_dict(self) -> Dict[str, str]:
        """Caller-safe representation: taxonomy kind plus short message."""
        return {"kind": self.kind, "message": self.message}


class ValidationError(RotationError):
    """Malformed request: unknown position, unknown section, missing field."""

    kind = "validation_error"


class OptimisticConflict(RotationError):
    """Revision mismatch on a guarded write. Re-read and retry."""

    kind = "optimistic_conflict"

    def __init__(self, key: str, expected_rev: int, actual_rev: int):
        super().__init__(f"revision mismatch (expected {expected_rev}, found {actual_rev})")
        self.key = key
        self.expected_rev = expected_rev
        self.actual_rev = actual_rev


class StorageUnavailable(RotationError):
    """Backing store error or timeout."""

    kind = "storage_unavailable"

    def __init__(self, message: str = "storage unavailable"):
        super().__init__(message)


class LogicInvariantViolation(RotationError):
    """
    Broken internal invariant (e.g. one guard both seated and queued).

    The core records these and repairs the state instead of raising them, so
    this class mostly travels as a log payload.
    """

    kind = "logic_invariant_violation"
