"""Rotation configuration and time-of-day policy."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

TICK_MINUTES = 15
DEFAULT_DB_PATH = Path("data/rotation.db")


@dataclass(frozen=True)
class RotationPolicy:
    """Time-of-day policy applied by the rotation engine."""

    restricted_from_minute: int = 45  # minutes >= this are adult swim
    enforce_restricted: bool = True   # False = every tick is permissive

    def __post_init__(self):
        if not 0 <= self.restricted_from_minute <= 60:
            raise ValueError("restricted_from_minute must be within 0..60")


@dataclass
class RotationConfig:
    """Configuration for the rotation service and its storage."""

    # Storage
    db_path: Path = DEFAULT_DB_PATH
    storage_timeout_seconds: float = 5.0
    max_storage_retries: int = 2  # extra attempts after the first

    # Sandbox instances expire, canonical state never does
    sandbox_ttl_days: int = 7

    # Policy
    policy: RotationPolicy = field(default_factory=RotationPolicy)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = "logs/poolrota.log"

    @property
    def sandbox_ttl_seconds(self) -> int:
        return self.sandbox_ttl_days * 24 * 3600

    def to_dict(self) -> Dict:
        """Serialize to dictionary."""
        return {
            "db_path": str(self.db_path),
            "storage_timeout_seconds": self.storage_timeout_seconds,
            "max_storage_retries": self.max_storage_retries,
            "sandbox_ttl_days": self.sandbox_ttl_days,
            "restricted_from_minute": self.policy.restricted_from_minute,
            "enforce_restricted": self.policy.enforce_restricted,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "RotationConfig":
        """Create from dictionary; unknown keys are ignored."""
        cfg = cls()
        policy_kwargs = {}
        for key, value in d.items():
            if key == "restricted_from_minute":
                policy_kwargs[key] = int(value)
            elif key == "enforce_restricted":
                policy_kwargs[key] = _as_bool(value)
            elif key == "db_path":
                cfg.db_path = Path(value)
            elif hasattr(cfg, key) and key != "policy":
                setattr(cfg, key, value)
        if policy_kwargs:
            cfg.policy = RotationPolicy(**policy_kwargs)
        cfg.storage_timeout_seconds = float(cfg.storage_timeout_seconds)
        cfg.max_storage_retries = max(0, int(cfg.max_storage_retries))
        cfg.sandbox_ttl_days = max(1, int(cfg.sandbox_ttl_days))
        return cfg

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "RotationConfig":
        """Build from ``POOLROTA_*`` / ``SANDBOX_TTL_DAYS`` environment variables."""
        env = os.environ if environ is None else environ
        mapping = {
            "POOLROTA_DB": "db_path",
            "POOLROTA_STORAGE_TIMEOUT": "storage_timeout_seconds",
            "POOLROTA_MAX_RETRIES": "max_storage_retries",
            "SANDBOX_TTL_DAYS": "sandbox_ttl_days",
            "POOLROTA_RESTRICTED_MINUTE": "restricted_from_minute",
            "POOLROTA_ENFORCE_RESTRICTED": "enforce_restricted",
            "POOLROTA_LOG_LEVEL": "log_level",
            "POOLROTA_LOG_FILE": "log_file",
        }
        return cls.from_dict({key: env[var] for var, key in mapping.items() if var in env})


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
