# poolrota/services - Request orchestration, identity resolution and repair jobs
from .identity import build_name_index, canonicalize, normalize_name, strip_prefix
from .orchestrator import RotationService
from .repair import RepairReport, diagnose, fix_ids, purge_unknown

__all__ = [
    "RotationService",
    "canonicalize",
    "normalize_name",
    "strip_prefix",
    "build_name_index",
    "RepairReport",
    "diagnose",
    "fix_ids",
    "purge_unknown",
]
