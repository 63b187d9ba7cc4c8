"""Storage key helpers for rotation records."""
import re
from typing import Optional

KEY_PREFIX = "ROTATION#"
INSTANCE_MARKER = "#INSTANCE#"
STATE_SK = "STATE"

# Sandbox ids come from an untrusted header; anything else means canonical state
_INSTANCE_RE = re.compile(r"^[A-Za-z0-9-]{8,}$")


def rotation_key(date: str, instance_id: Optional[str] = None) -> str:
    """``ROTATION#<date>`` or ``ROTATION#<date>#INSTANCE#<id>`` for sandboxes."""
    if instance_id:
        return f"{KEY_PREFIX}{date}{INSTANCE_MARKER}{instance_id}"
    return f"{KEY_PREFIX}{date}"


def resolve_instance_id(raw: Optional[str]) -> Optional[str]:
    """Validated sandbox instance id, or None for canonical state."""
    text = str(raw or "").strip()
    return text if _INSTANCE_RE.match(text) else None


def is_sandbox_key(key: str) -> bool:
    return INSTANCE_MARKER in key


def date_of_key(key: str) -> str:
    rest = key[len(KEY_PREFIX):] if key.startswith(KEY_PREFIX) else key
    return rest.split(INSTANCE_MARKER, 1)[0]
