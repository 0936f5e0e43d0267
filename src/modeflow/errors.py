"""
Exception hierarchy for Modeflow.

Configuration and state errors abort the current command. Phase validation
problems are normally returned as data (see ``modeflow.validation``); the
exceptions here exist for callers that want to raise them.
"""

from typing import Any, Optional


class ModeflowError(Exception):
    """Base class for all Modeflow errors."""


# ==============================================================================
# CONFIGURATION ERRORS
# ==============================================================================


class ConfigurationError(ModeflowError):
    """Missing or invalid configuration. Fatal, reported before any mutation."""


class ProjectNotFoundError(ConfigurationError):
    """No project directory (containing ``.modeflow/``) could be located."""


class ConfigNotFoundError(ConfigurationError):
    """The project's mode configuration file does not exist."""


class ConfigValidationError(ConfigurationError):
    """The mode configuration file exists but does not match the schema."""


class UnknownModeError(ConfigurationError):
    """The requested mode (or alias) is not configured."""

    def __init__(self, mode: str, available: list[str]):
        self.mode = mode
        self.available = available
        super().__init__(
            f"Unknown mode: {mode}\nAvailable modes: {', '.join(available) or 'none'}"
        )


class DeprecatedModeError(ConfigurationError):
    """The requested mode is deprecated and refuses entry."""

    def __init__(self, mode: str, redirect_to: Optional[str] = None):
        self.mode = mode
        self.redirect_to = redirect_to
        message = f"Mode '{mode}' is deprecated."
        if redirect_to:
            message += f" Use '{redirect_to}' instead."
        super().__init__(message)


class TemplateNotFoundError(ConfigurationError):
    """A template reference could not be resolved to a file."""


class DocumentParseError(ConfigurationError):
    """A template or spec metadata block is not valid YAML."""


class UnknownSubphasePatternError(ConfigurationError):
    """A container phase references a subphase pattern that does not exist."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        super().__init__(
            f'Unknown subphase pattern "{name}". Available: {", ".join(available) or "none"}'
        )


class SpecValidationError(ConfigurationError):
    """A spec document was found but cannot supply phases to expand."""


class PhaseValidationError(ConfigurationError):
    """
    Raised by the validate-or-raise wrapper when template phases are invalid.

    Carries the full validation result so callers can still render every issue.
    """

    def __init__(self, message: str, result: Any = None):
        self.result = result
        super().__init__(message)


# ==============================================================================
# STATE ERRORS
# ==============================================================================


class StateError(ModeflowError):
    """Session state could not be read or written. Never auto-repaired."""


class SessionNotFoundError(StateError):
    """No session id was supplied and none could be discovered."""


class StateNotFoundError(StateError):
    """The session state file does not exist."""


class StateCorruptError(StateError):
    """The session state file is not valid JSON."""


class StateSchemaError(StateError):
    """The session state document does not match the schema."""


# ==============================================================================
# TASK TRACKER ERRORS
# ==============================================================================


class TaskDependencyError(ModeflowError):
    """A task was moved forward while one of its dependencies is incomplete."""

    def __init__(self, task_id: str, blocked_by: list[str]):
        self.task_id = task_id
        self.blocked_by = blocked_by
        super().__init__(
            f"Task {task_id} is blocked by incomplete task(s): {', '.join(blocked_by)}"
        )


class TaskNotFoundError(ModeflowError):
    """The referenced native task does not exist."""
