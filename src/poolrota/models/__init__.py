# poolrota/models - Data models for the rotation core
from .config import RotationConfig, RotationPolicy
from .personnel import Guard
from .state import Conflict, ConflictReason, Period, QueueEntry, RotationState
from .topology import DEFAULT_TOPOLOGY, Edge, Position, Topology

__all__ = [
    "Position", "Edge", "Topology", "DEFAULT_TOPOLOGY",
    "Guard",
    "Period", "QueueEntry", "Conflict", "ConflictReason", "RotationState",
    "RotationConfig", "RotationPolicy",
]
