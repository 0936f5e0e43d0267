"""
Session state document schema.

The on-disk document uses camelCase keys. Two fields accept an older scalar
encoding next to the current structured one:

* ``modeHistory`` entries: ``"planning"`` or ``{mode, enteredAt, exitedAt?}``
* ``beadsCreated`` entries: ``42`` or ``{phaseId, beadId, createdAt}``

Both are normalized on load into a single model carrying a hidden
``encoding`` tag, and written back in the encoding they were read in.
Keys the schema does not know are kept in ``extra_fields`` and written back
unchanged.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator
from pydantic.alias_generators import to_camel


Encoding = Literal["legacy", "current"]
ModeStatus = Literal["active", "completed", "abandoned", "paused"]

DEFAULT_MODE = "default"


def utc_now_iso() -> str:
    """Current UTC time, millisecond precision, ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StateModel(BaseModel):
    """Base for state models: camelCase on disk, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ModeHistoryEntry(StateModel):
    """Mode entry/exit record."""

    mode: str
    entered_at: Optional[str] = None
    exited_at: Optional[str] = None
    encoding: Encoding = Field(default="current", exclude=True)

    @model_validator(mode="before")
    @classmethod
    def from_legacy(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"mode": data, "encoding": "legacy"}
        return data

    @model_serializer(mode="wrap")
    def to_document(self, handler):
        if self.encoding == "legacy":
            return self.mode
        return handler(self)

    @property
    def is_open(self) -> bool:
        """Entered but not yet exited. Legacy entries carry no timestamps."""
        return self.encoding == "current" and self.exited_at is None


class BeadRecord(StateModel):
    """Tracker item created for a phase."""

    bead_id: str
    phase_id: Optional[str] = None
    created_at: Optional[str] = None
    encoding: Encoding = Field(default="current", exclude=True)

    @model_validator(mode="before")
    @classmethod
    def from_legacy(cls, data: Any) -> Any:
        # bool is an int subclass; never a bead id
        if isinstance(data, int) and not isinstance(data, bool):
            return {"bead_id": str(data), "encoding": "legacy"}
        return data

    @model_serializer(mode="wrap")
    def to_document(self, handler):
        if self.encoding == "legacy":
            return int(self.bead_id)
        return handler(self)


class ModeStateEntry(StateModel):
    """Per-mode status."""

    status: ModeStatus
    entered_at: Optional[str] = None
    exited_at: Optional[str] = None
    paused_at: Optional[str] = None
    resumed_at: Optional[str] = None
    current_phase: Optional[str] = None
    completed_phases: Optional[List[str]] = None


class Ledger(StateModel):
    """Free-form notes collected during a session."""

    corrections: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    decisions: List[str] = Field(default_factory=list)
    discoveries: List[str] = Field(default_factory=list)


class SessionState(StateModel):
    """
    Persistent record of one session.

    Created with every collection empty and ``current_mode == "default"``.
    Mutated only through the state store's read → merge → atomic write cycle.
    """

    # Identity
    session_id: Optional[str] = None
    workflow_id: Optional[str] = None
    issue_number: Optional[int] = None
    issue_type: Optional[str] = None
    issue_title: Optional[str] = None

    # Mode tracking
    session_type: Optional[str] = None
    current_mode: str = DEFAULT_MODE
    previous_mode: Optional[str] = None

    # Phase tracking
    current_phase: Optional[str] = None
    completed_phases: List[str] = Field(default_factory=list)
    template: Optional[str] = None
    phases: List[str] = Field(default_factory=list)

    mode_history: List[ModeHistoryEntry] = Field(default_factory=list)
    mode_state: Dict[str, ModeStateEntry] = Field(default_factory=dict)

    # Timestamps
    started_at: Optional[str] = None
    updated_at: Optional[str] = None
    workflow_completed_at: Optional[str] = None

    # Session metadata
    branch: Optional[str] = None
    beads_created: List[BeadRecord] = Field(default_factory=list)
    edited_files: List[str] = Field(default_factory=list)
    ledger: Optional[Ledger] = None
    is_temporary: Optional[bool] = None
    spec_path: Optional[str] = None
    workflow_dir: Optional[str] = None

    # Unknown keys, written back verbatim
    extra_fields: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def known_keys(cls) -> set:
        keys = set()
        for name, info in cls.model_fields.items():
            if name == "extra_fields":
                continue
            keys.add(name)
            if info.alias:
                keys.add(info.alias)
        return keys

    @model_validator(mode="before")
    @classmethod
    def collect_extra_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = cls.known_keys()
        extra = {key: value for key, value in data.items() if key not in known and key != "extra_fields"}
        if not extra:
            return data
        core = {key: value for key, value in data.items() if key in known}
        core["extra_fields"] = {**data.get("extra_fields", {}), **extra}
        return core

    @model_serializer(mode="wrap")
    def merge_extra_fields(self, handler):
        data = handler(self)
        if isinstance(data, dict):
            for key, value in self.extra_fields.items():
                data.setdefault(key, value)
        return data

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready document with on-disk key names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def open_history_entry(self, mode: Optional[str] = None) -> Optional[ModeHistoryEntry]:
        """Most recent entry not yet exited, optionally for a given mode."""
        for entry in reversed(self.mode_history):
            if entry.is_open and (mode is None or entry.mode == mode):
                return entry
        return None
