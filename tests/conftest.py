"""Pytest configuration and shared fixtures."""

import subprocess
import textwrap
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from modeflow.config import ConfigContext, ModeflowSettings, clear_config_cache
from modeflow.workflow.session_manager import SessionManager


PROJECT_CONFIG = """\
project:
  name: demo
  test_command: pytest
spec_path: planning/specs
providers:
  default: codex
modes:
  planning:
    template: planning.md
    stop_conditions: [tasks_complete]
    aliases: [plan]
    workflow_prefix: PL
  implementation:
    template: implementation.md
    stop_conditions: [tasks_complete, committed]
    aliases: [impl]
  debug:
    template: debug.md
  old-planning:
    template: planning.md
    deprecated: true
    redirect_to: planning
"""

IMPLEMENTATION_TEMPLATE = """\
---
id: implementation
name: Implementation
global_conditions: [changes_committed, changes_pushed]
phases:
  - id: p0
    name: Setup
    task_config:
      title: "P0: Setup - read the spec"
  - id: p1
    name: Claim
    task_config:
      title: "P1: Claim - create branch"
      depends_on: [p0]
  - id: p2
    name: Implement
    container: true
    subphase_pattern: impl-test-review
  - id: p3
    name: Close
    task_config:
      title: "P3: Close - open PR"
      depends_on: [p2]
---
# Implementation

Work through the tasks in order.
"""

PLANNING_TEMPLATE = """\
---
id: planning
name: Planning
phases:
  - id: p0
    name: Research
    task_config:
      title: "Research the problem"
  - id: p1
    name: Interview
    task_config:
      depends_on: [p0]
    steps:
      - id: requirements
        title: "Requirements interview"
      - id: review
        title: "Spec review"
        agent:
          provider: "${providers.default}"
          prompt: spec-review
          gate: true
  - id: p2
    name: Write
    task_config:
      title: "Write the spec"
      depends_on: [p1]
---
# Planning
"""

DEBUG_TEMPLATE = """\
---
id: debug
name: Debug
phases:
  - id: p0
    name: Reproduce
    task_config:
      title: "Reproduce the bug"
  - id: p1
    name: Fix
    task_config:
      title: "Fix the bug"
      depends_on: [p0]
---
"""

SPEC_42 = """\
---
github_issue: 42
title: Session store
phases:
  - id: p1
    name: Store & State
    tasks:
      - Add state store
      - Add migrations
  - id: p2
    name: CLI
    tasks:
      - Add status command
---
# Session store
"""


def write_file(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep user config, env vars and the config cache out of every test."""
    xdg = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg / "home"))
    monkeypatch.setenv("XDG_CONFIG_DIRS", str(xdg / "system"))
    for name in ("MODEFLOW_SESSION_ID", "MODEFLOW_PROJECT_DIR", "MODEFLOW_TASKS_ROOT", "MODEFLOW_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def project(tmp_path) -> Path:
    """Project with three modes, their templates and a spec for issue #42."""
    root = tmp_path / "project"
    write_file(root / ".modeflow" / "modeflow.yaml", PROJECT_CONFIG)
    templates = root / ".modeflow" / "templates"
    write_file(templates / "implementation.md", IMPLEMENTATION_TEMPLATE)
    write_file(templates / "planning.md", PLANNING_TEMPLATE)
    write_file(templates / "debug.md", DEBUG_TEMPLATE)
    write_file(root / "planning" / "specs" / "42-session-store.md", SPEC_42)
    return root


@pytest.fixture
def tasks_root(tmp_path) -> Path:
    return tmp_path / "tasks"


@pytest.fixture
def settings(tasks_root) -> ModeflowSettings:
    return ModeflowSettings(tasks_root=tasks_root)


@pytest.fixture
def ctx(project, settings) -> ConfigContext:
    return ConfigContext.load(project, settings)


class FakeGit:
    """
    Stands in for ``subprocess.run`` when git is called.

    ``responses`` maps a subcommand (``status``, ``branch``, ``log``,
    ``diff --name-only``, ``diff``) to its stdout; None means git fails.
    """

    def __init__(self, responses: Optional[Dict[str, Optional[str]]] = None):
        self.responses = dict(responses or {})
        self.calls: List[List[str]] = []

    def __call__(self, command, **kwargs):
        self.calls.append(list(command))
        key = command[1]
        if key == "diff" and "--name-only" in command:
            key = "diff --name-only"
        stdout = self.responses.get(key)
        if stdout is None:
            return subprocess.CompletedProcess(command, 128, stdout="", stderr="fatal: not a git repository")
        return subprocess.CompletedProcess(command, 0, stdout=stdout, stderr="")


@pytest.fixture
def clean_git() -> FakeGit:
    """Everything committed and pushed."""
    return FakeGit({"status": "", "branch": "  origin/feature\n", "log": "2026-01-01T00:00:00+00:00\n"})


@pytest.fixture
def manager(ctx, clean_git) -> SessionManager:
    return SessionManager(ctx, runner=clean_git)
