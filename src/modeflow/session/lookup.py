"""
Project and session path lookup.

Layout of a project::

    <project>/.modeflow/
        modeflow.yaml                  # mode configuration
        subphase-patterns.yaml         # optional pattern overrides
        templates/                     # mode templates
        sessions/<session-id>/state.json
        verification-evidence/
"""

import os
from pathlib import Path
from typing import Optional

from ..errors import ProjectNotFoundError, SessionNotFoundError


MODEFLOW_DIR = ".modeflow"
CONFIG_FILENAME = "modeflow.yaml"
PATTERNS_FILENAME = "subphase-patterns.yaml"
STATE_FILENAME = "state.json"
PROJECT_DIR_ENV = "MODEFLOW_PROJECT_DIR"


def find_project_dir(start: Optional[Path] = None) -> Path:
    """
    Find the project root by walking up from ``start`` (default: cwd).

    ``MODEFLOW_PROJECT_DIR`` takes precedence when set.

    Raises:
        ProjectNotFoundError: No ancestor contains a ``.modeflow/`` directory
    """
    override = os.environ.get(PROJECT_DIR_ENV)
    if override:
        return Path(override).resolve()

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / MODEFLOW_DIR).is_dir():
            return candidate

    raise ProjectNotFoundError(
        f"Not in a modeflow project (no {MODEFLOW_DIR}/ found above {current})\n"
        "Run: modeflow setup"
    )


def get_modeflow_dir(project_root: Path) -> Path:
    return project_root / MODEFLOW_DIR


def get_config_path(project_root: Path) -> Path:
    """Path to the project's mode configuration document."""
    return get_modeflow_dir(project_root) / CONFIG_FILENAME


def get_project_patterns_path(project_root: Path) -> Path:
    return get_modeflow_dir(project_root) / PATTERNS_FILENAME


def get_templates_dir(project_root: Path) -> Path:
    return get_modeflow_dir(project_root) / "templates"


def get_sessions_dir(project_root: Path) -> Path:
    return get_modeflow_dir(project_root) / "sessions"


def get_verification_dir(project_root: Path) -> Path:
    """Directory holding verification evidence JSON files."""
    return get_modeflow_dir(project_root) / "verification-evidence"


def get_session_dir(project_root: Path, session_id: str) -> Path:
    return get_sessions_dir(project_root) / session_id


def get_state_file_path(project_root: Path, session_id: str) -> Path:
    """Path to a session's state document."""
    return get_session_dir(project_root, session_id) / STATE_FILENAME


def resolve_session_id(
    project_root: Path,
    explicit: Optional[str] = None,
    configured: Optional[str] = None,
) -> str:
    """
    Decide which session a command operates on.

    Order: explicit argument, configured id (``MODEFLOW_SESSION_ID``), then
    the session whose state file was written most recently.

    Raises:
        SessionNotFoundError: Nothing to fall back on
    """
    if explicit:
        return explicit
    if configured:
        return configured

    sessions_dir = get_sessions_dir(project_root)
    candidates = []
    if sessions_dir.is_dir():
        for entry in sessions_dir.iterdir():
            state_file = entry / STATE_FILENAME
            if state_file.is_file():
                candidates.append((state_file.stat().st_mtime, entry.name))

    if not candidates:
        raise SessionNotFoundError(
            "No session id given and no existing session found.\n"
            "Pass --session=<id> or set MODEFLOW_SESSION_ID."
        )

    candidates.sort()
    return candidates[-1][1]
