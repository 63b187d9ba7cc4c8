# poolrota/engine - Rotation engine and break queue manager
from .queue import BreakQueue, move_entry
from .rotation import (
    AdvanceResult,
    StepResult,
    advance,
    detect_conflicts,
    period_for,
    step,
    tick_index,
)

__all__ = [
    "advance",
    "step",
    "detect_conflicts",
    "period_for",
    "tick_index",
    "AdvanceResult",
    "StepResult",
    "BreakQueue",
    "move_entry",
]
