"""
Session state schema and persistence.
"""

from .models import (
    DEFAULT_MODE,
    BeadRecord,
    Ledger,
    ModeHistoryEntry,
    ModeStateEntry,
    SessionState,
    utc_now_iso,
)
from .store import (
    atomic_write_text,
    create_default_state,
    read_state,
    state_exists,
    update_state,
    write_state,
)

__all__ = [
    "DEFAULT_MODE",
    "BeadRecord",
    "Ledger",
    "ModeHistoryEntry",
    "ModeStateEntry",
    "SessionState",
    "utc_now_iso",
    "atomic_write_text",
    "create_default_state",
    "read_state",
    "state_exists",
    "update_state",
    "write_state",
]
