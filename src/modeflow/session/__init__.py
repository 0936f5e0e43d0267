"""
Project and session path lookup.
"""

from .lookup import (
    MODEFLOW_DIR,
    find_project_dir,
    get_config_path,
    get_project_patterns_path,
    get_templates_dir,
    get_sessions_dir,
    get_session_dir,
    get_state_file_path,
    get_verification_dir,
    resolve_session_id,
)

__all__ = [
    "MODEFLOW_DIR",
    "find_project_dir",
    "get_config_path",
    "get_project_patterns_path",
    "get_templates_dir",
    "get_sessions_dir",
    "get_session_dir",
    "get_state_file_path",
    "get_verification_dir",
    "resolve_session_id",
]
