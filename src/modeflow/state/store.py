"""
Session state persistence.

The store is the only writer of ``state.json``. Writes go to a uniquely
named temporary file in the same directory, are fsynced, then renamed over
the target, so a reader sees either the previous or the new document and
never a partial one.

``update_state`` is read → merge → write. It is not a lock: two concurrent
updates of the same session can race and the later writer wins.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional, Union
from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from .models import SessionState, utc_now_iso
from ..errors import StateCorruptError, StateNotFoundError, StateSchemaError
from ..logging_config import get_logger

logger = get_logger(__name__)


def _reinit_hint(session_id: Optional[str]) -> str:
    return f"To re-initialize: modeflow init --session={session_id or '<id>'}"


def _session_id_from_path(state_file: Path) -> str:
    return state_file.parent.name


def atomic_write_text(path: Path, content: str) -> None:
    """
    Replace ``path`` with ``content`` atomically.

    Raises:
        OSError: Directory cannot be created or written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    try:
        with tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp.name, path)
    except BaseException:
        Path(tmp.name).unlink(missing_ok=True)
        raise


def state_exists(state_file: Path) -> bool:
    return state_file.is_file()


def read_state(state_file: Path) -> SessionState:
    """
    Read and validate a session state document.

    Raises:
        StateNotFoundError: File does not exist
        StateCorruptError: File is not valid JSON
        StateSchemaError: Document does not match the schema
    """
    session_id = _session_id_from_path(state_file)
    try:
        raw = state_file.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise StateNotFoundError(
            f"Session state not found: {state_file}\n{_reinit_hint(session_id)}"
        ) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StateCorruptError(
            f"Session state is not valid JSON ({state_file}): {e}\n{_reinit_hint(session_id)}"
        ) from e

    if not isinstance(data, dict):
        raise StateSchemaError(
            f"Session state must be a JSON object ({state_file})\n{_reinit_hint(session_id)}"
        )

    try:
        return SessionState.model_validate(data)
    except ValidationError as e:
        raise StateSchemaError(
            f"Session state does not match the schema ({state_file}):\n{e}\n"
            f"{_reinit_hint(session_id)}"
        ) from e


def write_state(state_file: Path, state: Union[SessionState, Mapping[str, Any]]) -> SessionState:
    """
    Validate and atomically write a session state document.

    Args:
        state_file: Path to ``state.json``
        state: State model, or a raw document to validate first

    Returns:
        The validated state that was written

    Raises:
        StateSchemaError: State does not match the schema
    """
    try:
        # Re-validate models too, so field assignments are checked
        payload = state.to_document() if isinstance(state, SessionState) else dict(state)
        validated = SessionState.model_validate(payload)
    except ValidationError as e:
        raise StateSchemaError(
            f"Refusing to write invalid session state to {state_file}:\n{e}"
        ) from e

    atomic_write_text(state_file, json.dumps(validated.to_document(), indent=2) + "\n")
    logger.debug(f"Wrote session state {state_file}")
    return validated


def update_state(state_file: Path, changes: Mapping[str, Any]) -> SessionState:
    """
    Merge ``changes`` into the stored state and write it back.

    Keys may be Python field names (``current_mode``) or document keys
    (``currentMode``). ``updatedAt`` is always refreshed.

    Raises:
        StateError: Current state cannot be read, or the result is invalid
    """
    current = read_state(state_file)
    document = current.to_document()

    field_aliases = {
        name: info.alias or name
        for name, info in SessionState.model_fields.items()
        if name != "extra_fields"
    }
    for key, value in changes.items():
        document[field_aliases.get(key, key)] = to_jsonable_python(
            value, by_alias=True, exclude_none=True
        )
    document["updatedAt"] = utc_now_iso()

    return write_state(state_file, document)


def create_default_state(session_id: str, **overrides: Any) -> SessionState:
    """Fresh state: ``default`` mode, every collection empty."""
    now = utc_now_iso()
    state = SessionState(session_id=session_id, started_at=now, updated_at=now)
    if overrides:
        state = state.model_copy(update=overrides)
    return state

