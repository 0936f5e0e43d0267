"""
Host hook handlers.

The host invokes ``modeflow hook stop`` with a JSON payload on stdin when
the agent tries to end its turn. Printing nothing allows the stop; printing
``{"decision": "block", "reason": ...}`` keeps the agent working.

Every decision is appended to ``<sessions>/<id>/hooks.log.jsonl``.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ModeflowError
from .logging_config import get_logger, log_context
from .session.lookup import get_session_dir, get_state_file_path
from .state import state_exists, utc_now_iso
from .workflow.session_manager import SessionManager

logger = get_logger(__name__)

HOOK_LOG_FILENAME = "hooks.log.jsonl"


def parse_hook_input(raw: str) -> Dict[str, Any]:
    """Hook payload as a dict; empty or malformed input yields ``{}``."""
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring malformed hook input: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def append_hook_log(project_root: Path, session_id: str, entry: Dict[str, Any]) -> None:
    """Append one JSON line to the session's hook log. Failures are logged only."""
    path = get_session_dir(project_root, session_id) / HOOK_LOG_FILENAME
    record = {"ts": utc_now_iso(), **entry}
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
    except OSError as e:
        logger.warning(f"Cannot write hook log {path}: {e}")


def handle_stop(manager: SessionManager, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Decide whether the agent may stop.

    Args:
        manager: Session manager for the project
        payload: Hook input; ``session_id`` names the session

    Returns:
        The block response, or None to allow the stop
    """
    session_id = payload.get("session_id") or manager.ctx.settings.session_id
    if not session_id:
        return None

    with log_context(session_id):
        return _stop_decision(manager, session_id)


def _stop_decision(manager: SessionManager, session_id: str) -> Optional[Dict[str, Any]]:
    project_root = manager.ctx.project_root
    if not state_exists(get_state_file_path(project_root, session_id)):
        return None

    try:
        decision, state = manager.can_exit(session_id)
    except ModeflowError as e:
        logger.warning(f"Stop hook could not evaluate session {session_id}: {e}")
        append_hook_log(
            project_root,
            session_id,
            {"hook": "stop", "decision": "allow", "note": f"evaluation failed: {e}"},
        )
        return None

    if decision.can_exit:
        append_hook_log(
            project_root,
            session_id,
            {"hook": "stop", "decision": "allow", "checked": decision.checked},
        )
        return None

    append_hook_log(
        project_root,
        session_id,
        {
            "hook": "stop",
            "decision": "block",
            "mode": state.current_mode,
            "blocking": decision.blocking.to_dict() if decision.blocking else None,
        },
    )
    return {"decision": "block", "reason": decision.guidance(state.issue_number)}
