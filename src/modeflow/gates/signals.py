"""
Live workspace signals consulted by stop conditions.

Git and filesystem problems never raise from here: methods return None when
a signal cannot be determined, and the evaluator treats "unknown" as not
blocking.
"""

import fnmatch
import json
import re
import subprocess
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Optional

from ..logging_config import get_logger
from ..session.lookup import get_verification_dir
from ..workflow.native_tasks import TaskRecord, pending_tasks

logger = get_logger(__name__)

GIT_TIMEOUT_SECONDS = 30
NEW_TEST_LINE = re.compile(r"^\+\s*(def\s+test_\w*|async\s+def\s+test_\w*|it\s*\(|test\s*\(|describe\s*\()")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WorkspaceSignals:
    """
    Reads git state, native tasks and verification evidence for a project.

    ``runner`` has the signature of ``subprocess.run`` so tests can
    substitute a fake.
    """

    def __init__(
        self,
        project_root: Path,
        tasks_dir: Path,
        non_code_paths: Optional[List[str]] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.project_root = project_root
        self.tasks_dir = tasks_dir
        self.non_code_paths = list(non_code_paths or [])
        self.runner = runner

    @property
    def evidence_dir(self) -> Path:
        return get_verification_dir(self.project_root)

    # ------------------------------------------------------------------
    # Git
    # ------------------------------------------------------------------

    def _git(self, *args: str) -> Optional[str]:
        """Run a git command; None on any failure."""
        command = ["git", *args]
        try:
            result = self.runner(
                command,
                cwd=self.project_root,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"{' '.join(command)} failed: {e}")
            return None
        if result.returncode != 0:
            logger.debug(f"{' '.join(command)} exited {result.returncode}: {result.stderr}")
            return None
        return result.stdout

    def has_uncommitted_changes(self) -> Optional[bool]:
        """Tracked files modified (untracked ``??`` entries are ignored)."""
        output = self._git("status", "--porcelain")
        if output is None:
            return None
        return any(line and not line.startswith("??") for line in output.splitlines())

    def is_head_pushed(self) -> Optional[bool]:
        """HEAD is contained in at least one remote branch."""
        output = self._git("branch", "-r", "--contains", "HEAD")
        if output is None:
            return None
        return bool(output.strip())

    def latest_code_commit_at(self) -> Optional[datetime]:
        """Commit time of the newest commit touching code (non-code paths excluded)."""
        excludes = [f":!{path}" for path in self.non_code_paths]
        output = self._git("log", "-1", "--format=%cI", "--", ".", *excludes)
        if output is None:
            return None
        return parse_timestamp(output.strip())

    def changed_test_files(self, diff_base: str, globs: List[str]) -> Optional[List[str]]:
        output = self._git("diff", "--name-only", diff_base)
        if output is None:
            return None
        return [
            name
            for name in output.splitlines()
            if name and any(fnmatch.fnmatch(PurePosixPath(name).name, g) for g in globs)
        ]

    def count_new_test_functions(self, diff_base: str, globs: List[str]) -> Optional[int]:
        """
        Count test declarations added since ``diff_base``.

        Returns:
            Number of added ``def test_``/``it(``/``test(``/``describe(`` lines,
            or None when git cannot answer
        """
        files = self.changed_test_files(diff_base, globs)
        if files is None:
            return None
        if not files:
            return 0
        output = self._git("diff", diff_base, "--", *files)
        if output is None:
            return None
        return sum(1 for line in output.splitlines() if NEW_TEST_LINE.match(line))

    # ------------------------------------------------------------------
    # Tasks and evidence
    # ------------------------------------------------------------------

    def pending_tasks(self) -> List[TaskRecord]:
        return pending_tasks(self.tasks_dir)

    def verification_evidence_path(self, issue: int) -> Path:
        return self.evidence_dir / f"{issue}.json"

    def read_evidence(self, path: Path) -> Optional[Dict[str, Any]]:
        """Parsed evidence file, or None when missing or unreadable."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug(f"Cannot read evidence {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def list_evidence(self, prefix: str, issue: int) -> List[Path]:
        """Evidence files named ``<prefix>-*-<issue>.json``, sorted."""
        if not self.evidence_dir.is_dir():
            return []
        return sorted(self.evidence_dir.glob(f"{prefix}-*-{issue}.json"))
