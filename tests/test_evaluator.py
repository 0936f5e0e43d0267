"""
Tests for stop-condition evaluation.
"""

import json
import logging

import pytest

from conftest import FakeGit, write_file
from modeflow.config import ProjectConfig
from modeflow.gates import CHECKS, StopConditionEvaluator, WorkspaceSignals, normalize_conditions
from modeflow.validation import validate_phases_or_raise
from modeflow.workflow import TaskTracker, build_tasks, write_native_tasks


CLEAN = {"status": "", "branch": "  origin/main\n", "log": "2026-01-02T00:00:00+00:00\n"}


@pytest.fixture
def tasks_dir(tmp_path):
    return tmp_path / "tasks" / "s1"


def write_two_tasks(tasks_dir):
    phases = validate_phases_or_raise(
        [
            {"id": "p0", "name": "A", "task_config": {"title": "Write schema"}},
            {"id": "p1", "name": "B", "task_config": {"title": "Write docs", "depends_on": ["p0"]}},
        ]
    )
    write_native_tasks(tasks_dir, build_tasks(phases), "W")


def make_evaluator(tmp_path, tasks_dir, responses=None, project=None, issue=None):
    signals = WorkspaceSignals(tmp_path, tasks_dir, runner=FakeGit(CLEAN if responses is None else responses))
    return StopConditionEvaluator(signals, project or ProjectConfig(), issue_number=issue)


def write_evidence(tmp_path, name, data):
    write_file(tmp_path / ".modeflow" / "verification-evidence" / name, json.dumps(data))


@pytest.mark.unit
class TestNormalizeConditions:
    """Test merging mode and template conditions."""

    def test_merge_and_strip_prefix(self):
        """Test global conditions lose their prefix and duplicates are dropped."""
        merged = normalize_conditions(
            ["tasks_complete", "committed"], ["changes_committed", "changes_pushed"]
        )
        assert merged == ["tasks_complete", "committed", "pushed"]


@pytest.mark.unit
class TestEvaluationOrder:
    """Test first-unmet-condition semantics."""

    def test_tasks_then_commit_then_allow(self, tmp_path, tasks_dir):
        """Test each fix reveals the next blocker until exit is allowed."""
        write_two_tasks(tasks_dir)
        dirty = dict(CLEAN, status=" M app.py\n")
        conditions = ["tasks_complete", "committed"]

        decision = make_evaluator(tmp_path, tasks_dir, dirty).evaluate(conditions)
        assert decision.blocking.kind == "tasks_complete"
        assert decision.checked == ["tasks_complete"]

        tracker = TaskTracker(tasks_dir)
        tracker.mark_complete("1")
        tracker.mark_complete("2")
        decision = make_evaluator(tmp_path, tasks_dir, dirty).evaluate(conditions)
        assert decision.blocking.kind == "committed"
        assert decision.blocking.fix_command == "git add -A && git commit"

        decision = make_evaluator(tmp_path, tasks_dir).evaluate(conditions)
        assert decision.can_exit
        assert decision.checked == conditions
        assert decision.guidance() == ""

    def test_no_conditions_allows(self, tmp_path, tasks_dir):
        """Test an empty condition list always allows exit."""
        assert make_evaluator(tmp_path, tasks_dir).evaluate([]).can_exit

    def test_blocked_exit_logged_at_info(self, tmp_path, tasks_dir, caplog):
        """Test a blocked exit is an INFO event."""
        write_two_tasks(tasks_dir)
        with caplog.at_level(logging.INFO, logger="modeflow"):
            make_evaluator(tmp_path, tasks_dir).evaluate(["tasks_complete"])

        assert any(r.levelno == logging.INFO and "tasks_complete" in r.message for r in caplog.records)

    def test_checks_cover_vocabulary(self):
        """Test every condition kind has a check."""
        assert set(CHECKS) == {
            "tasks_complete",
            "committed",
            "pushed",
            "verification",
            "tests_pass",
            "feature_tests_added",
            "verification_plan_executed",
        }


@pytest.mark.unit
class TestTasksComplete:
    """Test the pending-task condition."""

    def test_guidance_names_first_pending_task(self, tmp_path, tasks_dir):
        """Test the remediation points at the first pending task."""
        write_two_tasks(tasks_dir)

        decision = make_evaluator(tmp_path, tasks_dir).evaluate(["tasks_complete"])

        assert decision.blocking.message.startswith("2 task(s) still pending")
        assert decision.blocking.details == ["  - [1] Write schema", "  - [2] Write docs"]
        guidance = decision.guidance()
        assert "Current task: [1] Write schema" in guidance
        assert 'TaskUpdate(taskId="1", status="completed")' in guidance
        assert "ONLY IF GENUINELY BLOCKED" in guidance

    def test_long_list_truncated(self, tmp_path, tasks_dir):
        """Test only the first five pending tasks are listed."""
        phases = validate_phases_or_raise(
            [{"id": f"p{n}", "name": f"N{n}", "task_config": {"title": f"Task {n}"}} for n in range(7)]
        )
        write_native_tasks(tasks_dir, build_tasks(phases), "W")

        decision = make_evaluator(tmp_path, tasks_dir).evaluate(["tasks_complete"])

        assert len(decision.blocking.details) == 6
        assert decision.blocking.details[-1] == "  ... and 2 more"

    def test_no_task_directory(self, tmp_path, tasks_dir):
        """Test a session without tasks satisfies the condition."""
        assert make_evaluator(tmp_path, tasks_dir).evaluate(["tasks_complete"]).can_exit


@pytest.mark.unit
class TestGitConditions:
    """Test committed and pushed."""

    def test_unpushed(self, tmp_path, tasks_dir):
        """Test a HEAD on no remote branch blocks."""
        decision = make_evaluator(tmp_path, tasks_dir, dict(CLEAN, branch="")).evaluate(["pushed"])

        assert decision.blocking.kind == "pushed"
        assert "Fix: git push" in decision.guidance()

    def test_unknown_git_state_never_blocks(self, tmp_path, tasks_dir):
        """Test git failures are treated as satisfied."""
        decision = make_evaluator(tmp_path, tasks_dir, {}).evaluate(["committed", "pushed", "feature_tests_added"])

        assert decision.can_exit
        assert decision.checked == ["committed", "pushed", "feature_tests_added"]


@pytest.mark.unit
class TestVerification:
    """Test the verification evidence condition."""

    @pytest.fixture
    def project(self):
        return ProjectConfig(verify_command="make verify")

    def test_not_required(self, tmp_path, tasks_dir):
        """Test verification passes when nothing is configured."""
        assert make_evaluator(tmp_path, tasks_dir, issue=42).evaluate(["verification"]).can_exit

    def test_no_issue(self, tmp_path, tasks_dir, project):
        """Test verification passes without a linked issue."""
        assert make_evaluator(tmp_path, tasks_dir, project=project).evaluate(["verification"]).can_exit

    def test_not_run(self, tmp_path, tasks_dir, project):
        """Test missing evidence blocks with the artifact message."""
        decision = make_evaluator(tmp_path, tasks_dir, project=project, issue=42).evaluate(["verification"])

        assert decision.blocking.artifact == "verification_not_run"
        assert decision.blocking.fix_command == "make verify"
        guidance = decision.guidance(42)
        assert "Verification has not been run" in guidance
        assert ".modeflow/verification-evidence/42.json" in guidance

    def test_failed(self, tmp_path, tasks_dir, project):
        """Test failed evidence blocks."""
        write_evidence(tmp_path, "42.json", {"verifiedAt": "2026-01-03T00:00:00Z", "passed": False})

        decision = make_evaluator(tmp_path, tasks_dir, project=project, issue=42).evaluate(["verification"])
        assert decision.blocking.artifact == "verification_failed"

    def test_stale(self, tmp_path, tasks_dir, project):
        """Test evidence older than the latest code commit blocks."""
        write_evidence(tmp_path, "42.json", {"verifiedAt": "2026-01-01T00:00:00Z", "passed": True})

        decision = make_evaluator(tmp_path, tasks_dir, project=project, issue=42).evaluate(["verification"])
        assert decision.blocking.artifact == "verification_stale"

    def test_fresh(self, tmp_path, tasks_dir, project):
        """Test passing evidence newer than the latest commit allows exit."""
        write_evidence(tmp_path, "42.json", {"verifiedAt": "2026-01-03T00:00:00Z", "passed": True})

        assert make_evaluator(tmp_path, tasks_dir, project=project, issue=42).evaluate(["verification"]).can_exit

    def test_unknown_commit_time_not_stale(self, tmp_path, tasks_dir, project):
        """Test evidence is fresh when the commit time cannot be read."""
        write_evidence(tmp_path, "42.json", {"verifiedAt": "2020-01-01T00:00:00Z", "passed": True})

        evaluator = make_evaluator(tmp_path, tasks_dir, dict(CLEAN, log=None), project=project, issue=42)
        assert evaluator.evaluate(["verification"]).can_exit


@pytest.mark.unit
class TestEvidenceFileConditions:
    """Test tests_pass and verification_plan_executed."""

    def test_tests_pass_missing(self, tmp_path, tasks_dir):
        """Test missing phase evidence blocks."""
        decision = make_evaluator(tmp_path, tasks_dir, issue=42).evaluate(["tests_pass"])

        assert decision.blocking.message == "Phase checks have not been run for issue #42"

    def test_tests_pass_failed_phase(self, tmp_path, tasks_dir):
        """Test the first failing phase is named."""
        write_evidence(tmp_path, "phase-p1-42.json", {"phaseId": "p1", "overallPassed": True, "timestamp": "2026-01-03T00:00:00Z"})
        write_evidence(tmp_path, "phase-p2-42.json", {"phaseId": "p2", "overallPassed": False})

        decision = make_evaluator(tmp_path, tasks_dir, issue=42).evaluate(["tests_pass"])
        assert decision.blocking.message.startswith("Phase p2 failed its checks")

    def test_tests_pass_stale(self, tmp_path, tasks_dir):
        """Test stale phase evidence blocks."""
        write_evidence(tmp_path, "phase-p1-42.json", {"phaseId": "p1", "overallPassed": True, "timestamp": "2025-12-01T00:00:00Z"})

        decision = make_evaluator(tmp_path, tasks_dir, issue=42).evaluate(["tests_pass"])
        assert "stale" in decision.blocking.message

    def test_verification_plan_passed(self, tmp_path, tasks_dir):
        """Test passing verification plan evidence allows exit."""
        write_evidence(tmp_path, "vp-p1-42.json", {"phaseId": "p1", "allStepsPassed": True, "timestamp": "2026-01-03T00:00:00Z"})

        assert make_evaluator(tmp_path, tasks_dir, issue=42).evaluate(["verification_plan_executed"]).can_exit

    def test_without_issue(self, tmp_path, tasks_dir):
        """Test evidence conditions pass without a linked issue."""
        decision = make_evaluator(tmp_path, tasks_dir).evaluate(["tests_pass", "verification_plan_executed"])
        assert decision.can_exit


@pytest.mark.unit
class TestFeatureTestsAdded:
    """Test the new-tests condition."""

    def test_no_new_tests(self, tmp_path, tasks_dir):
        """Test a diff without new test functions blocks."""
        responses = dict(CLEAN, **{"diff --name-only": "src/app.py\n"})

        decision = make_evaluator(tmp_path, tasks_dir, responses).evaluate(["feature_tests_added"])
        assert decision.blocking.message == (
            "At least one new test function is required (compared to origin/main)"
        )

    def test_new_test_added(self, tmp_path, tasks_dir):
        """Test one added test function satisfies the condition."""
        responses = dict(CLEAN, **{"diff --name-only": "tests/test_app.py\n", "diff": "+def test_app():\n"})

        assert make_evaluator(tmp_path, tasks_dir, responses).evaluate(["feature_tests_added"]).can_exit
