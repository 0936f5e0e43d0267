"""
Stop-condition evaluation.
"""

from .evaluator import (
    CHECKS,
    BlockingReason,
    ExitDecision,
    StopConditionEvaluator,
    normalize_conditions,
)
from .messages import artifact_message, escape_hatch_message, next_step_message
from .signals import WorkspaceSignals, parse_timestamp

__all__ = [
    "CHECKS",
    "BlockingReason",
    "ExitDecision",
    "StopConditionEvaluator",
    "normalize_conditions",
    "artifact_message",
    "escape_hatch_message",
    "next_step_message",
    "WorkspaceSignals",
    "parse_timestamp",
]
