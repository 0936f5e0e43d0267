"""
Modeflow: mode, phase and task orchestration for AI coding-agent sessions.
"""

from .config import ConfigContext, ModeflowSettings, ProjectConfig
from .errors import ModeflowError
from .gates import ExitDecision, StopConditionEvaluator
from .state import SessionState, read_state, update_state, write_state
from .workflow import NativeTask, TaskFactory, build_tasks

__version__ = "0.1.0"

__all__ = [
    "ConfigContext",
    "ModeflowSettings",
    "ProjectConfig",
    "ModeflowError",
    "ExitDecision",
    "StopConditionEvaluator",
    "SessionState",
    "read_state",
    "update_state",
    "write_state",
    "NativeTask",
    "TaskFactory",
    "build_tasks",
]
