"""
Tests for project and session lookup.
"""

import os

import pytest

from conftest import write_file
from modeflow.errors import ProjectNotFoundError, SessionNotFoundError
from modeflow.session.lookup import find_project_dir, get_state_file_path, resolve_session_id


@pytest.mark.unit
class TestFindProjectDir:
    """Test project root discovery."""

    def test_walks_up(self, project):
        """Test the nearest ancestor with .modeflow/ is found."""
        nested = project / "src" / "pkg"
        nested.mkdir(parents=True)

        assert find_project_dir(nested) == project.resolve()

    def test_env_override(self, project, tmp_path, monkeypatch):
        """Test MODEFLOW_PROJECT_DIR wins over discovery."""
        monkeypatch.setenv("MODEFLOW_PROJECT_DIR", str(project))

        assert find_project_dir(tmp_path) == project.resolve()

    def test_not_found(self, tmp_path):
        """Test a directory outside any project raises."""
        with pytest.raises(ProjectNotFoundError, match="modeflow setup"):
            find_project_dir(tmp_path / "cwd")


@pytest.mark.unit
class TestResolveSessionId:
    """Test session id precedence."""

    def test_explicit_then_configured(self, project):
        """Test an explicit id beats the configured one."""
        assert resolve_session_id(project, "a", "b") == "a"
        assert resolve_session_id(project, None, "b") == "b"

    def test_latest_session(self, project):
        """Test the most recently written session is the fallback."""
        for index, session_id in enumerate(["old", "new"]):
            state_file = write_file(get_state_file_path(project, session_id), "{}")
            os.utime(state_file, (1000 + index, 1000 + index))

        assert resolve_session_id(project) == "new"

    def test_no_sessions(self, project):
        """Test an empty sessions directory raises."""
        with pytest.raises(SessionNotFoundError, match="MODEFLOW_SESSION_ID"):
            resolve_session_id(project)
