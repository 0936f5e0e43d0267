"""
XDG Base Directory Specification support.

User-level Modeflow settings live under the XDG config directory; project
configuration lives in the project's ``.modeflow/`` directory instead
(see ``modeflow.session.lookup``).

References:
    https://specifications.freedesktop.org/basedir-spec/basedir-spec-latest.html
"""

import os
from pathlib import Path


APP_NAME = "modeflow"


def get_xdg_config_home() -> Path:
    """
    Get the XDG config directory.

    Returns:
        Path to config directory (default: ~/.config)

    Environment:
        XDG_CONFIG_HOME: Override default config directory
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config)
    return Path.home() / ".config"


def get_xdg_config_dirs() -> list[Path]:
    """
    Get the system-wide XDG config directories, highest precedence first.

    Environment:
        XDG_CONFIG_DIRS: Colon separated list (default: /etc/xdg)
    """
    raw = os.environ.get("XDG_CONFIG_DIRS", "/etc/xdg")
    return [Path(entry) for entry in raw.split(":") if entry]


def get_modeflow_config_dir() -> Path:
    """
    Get Modeflow's user configuration directory.

    Returns:
        Path to ~/.config/modeflow (or XDG_CONFIG_HOME/modeflow)
    """
    return get_xdg_config_home() / APP_NAME


def get_user_config_path() -> Path:
    """Path to the user settings file (~/.config/modeflow/config.yaml)."""
    return get_modeflow_config_dir() / "config.yaml"


def get_default_tasks_root() -> Path:
    """
    Default root of the host agent's native task tracker.

    Returns:
        Path to ~/.claude/tasks
    """
    return Path.home() / ".claude" / "tasks"
