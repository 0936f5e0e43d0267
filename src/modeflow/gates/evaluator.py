"""
Stop-condition evaluation.

Conditions are checked in the mode's declared order and evaluation stops at
the first unmet one, so the agent always gets exactly one next step. A
blocked exit is a normal outcome, logged at INFO.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .messages import artifact_message, escape_hatch_message, next_step_message
from .signals import WorkspaceSignals, parse_timestamp
from ..config.schema import GLOBAL_CONDITION_PREFIX, STOP_CONDITION_TYPES, ProjectConfig
from ..logging_config import get_logger

logger = get_logger(__name__)

MAX_LISTED_TASKS = 5


@dataclass
class BlockingReason:
    """Why the session cannot exit yet."""

    kind: str
    message: str
    fix_command: Optional[str] = None
    details: List[str] = field(default_factory=list)
    # Evidence problem key (verification_not_run, ...)
    artifact: Optional[str] = None
    next_task_id: Optional[str] = None
    next_task_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "fixCommand": self.fix_command,
            "details": list(self.details),
            "artifact": self.artifact,
        }


@dataclass
class ExitDecision:
    """Outcome of evaluating a mode's stop conditions."""

    can_exit: bool
    blocking: Optional[BlockingReason] = None
    checked: List[str] = field(default_factory=list)
    escape_hatch: str = field(default_factory=escape_hatch_message)

    def guidance(self, issue: Optional[int] = None) -> str:
        """Full remediation text for a blocked exit; empty when exit is allowed."""
        if self.can_exit or self.blocking is None:
            return ""
        sections = [self.blocking.message]
        if self.blocking.artifact:
            artifact = artifact_message(self.blocking.artifact, issue)
            if artifact:
                sections.append(f"{artifact[0]}\n{artifact[1]}")
        if self.blocking.next_task_id:
            sections.append(
                next_step_message(self.blocking.next_task_id, self.blocking.next_task_title)
            )
        elif self.blocking.fix_command:
            sections.append(f"Fix: {self.blocking.fix_command}")
        sections.append(self.escape_hatch)
        return "\n\n".join(sections)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canExit": self.can_exit,
            "blocking": self.blocking.to_dict() if self.blocking else None,
            "checked": list(self.checked),
        }


def normalize_conditions(*condition_lists: List[str]) -> List[str]:
    """
    Merge condition lists in order, dropping duplicates.

    Template ``global_conditions`` carry a ``changes_`` prefix
    (``changes_committed`` → ``committed``).
    """
    merged: List[str] = []
    for conditions in condition_lists:
        for condition in conditions:
            if condition.startswith(GLOBAL_CONDITION_PREFIX):
                condition = condition[len(GLOBAL_CONDITION_PREFIX):]
            if condition not in merged:
                merged.append(condition)
    return merged


class StopConditionEvaluator:
    """
    Decides whether a session may exit.

    Example:
        evaluator = StopConditionEvaluator(signals, ctx.project, issue_number=42)
        decision = evaluator.evaluate(["tasks_complete", "committed"])
    """

    def __init__(
        self,
        signals: WorkspaceSignals,
        project: ProjectConfig,
        issue_number: Optional[int] = None,
    ):
        self.signals = signals
        self.project = project
        self.issue_number = issue_number

    def evaluate(self, conditions: List[str]) -> ExitDecision:
        """
        Evaluate conditions in order, stopping at the first unmet one.

        Unknown condition kinds are skipped with a warning; the mode schema
        rejects them before this point.
        """
        checked: List[str] = []
        for kind in normalize_conditions(conditions):
            check = CHECKS.get(kind)
            if check is None:
                logger.warning(f"Skipping unknown stop condition: {kind}")
                continue
            checked.append(kind)
            reason = check(self)
            if reason is not None:
                logger.info(f"Exit blocked by {kind}: {reason.message.splitlines()[0]}")
                return ExitDecision(can_exit=False, blocking=reason, checked=checked)

        return ExitDecision(can_exit=True, checked=checked)

    # ------------------------------------------------------------------
    # Checks: each returns None when satisfied
    # ------------------------------------------------------------------

    def check_tasks_complete(self) -> Optional[BlockingReason]:
        pending = self.signals.pending_tasks()
        if not pending:
            return None

        titles = [f"[{task.id}] {task.subject}" for task in pending]
        details = [f"  - {title}" for title in titles[:MAX_LISTED_TASKS]]
        if len(titles) > MAX_LISTED_TASKS:
            details.append(f"  ... and {len(titles) - MAX_LISTED_TASKS} more")

        first = pending[0]
        return BlockingReason(
            kind="tasks_complete",
            message="\n".join([f"{len(pending)} task(s) still pending"] + details),
            fix_command=f'TaskUpdate(taskId="{first.id}", status="completed")',
            details=details,
            next_task_id=first.id,
            next_task_title=first.subject,
        )

    def check_committed(self) -> Optional[BlockingReason]:
        if self.signals.has_uncommitted_changes():
            return BlockingReason(
                kind="committed",
                message="Uncommitted changes in tracked files",
                fix_command="git add -A && git commit",
            )
        return None

    def check_pushed(self) -> Optional[BlockingReason]:
        if self.signals.is_head_pushed() is False:
            return BlockingReason(
                kind="pushed",
                message="Unpushed commits",
                fix_command="git push",
            )
        return None

    def check_verification(self) -> Optional[BlockingReason]:
        if not self.project.verification_required or self.issue_number is None:
            return None

        evidence = self.signals.read_evidence(
            self.signals.verification_evidence_path(self.issue_number)
        )
        if evidence is None or not evidence.get("verifiedAt"):
            return self._verification_block("verification_not_run", "Verification not run")
        if evidence.get("passed") is not True:
            return self._verification_block("verification_failed", "Verification failed")
        if self._is_stale(evidence.get("verifiedAt")):
            return self._verification_block(
                "verification_stale",
                "Verification evidence is stale (predates latest commit)",
            )
        return None

    def _verification_block(self, artifact: str, message: str) -> BlockingReason:
        return BlockingReason(
            kind="verification",
            message=message,
            fix_command=self.project.verify_command,
            artifact=artifact,
        )

    def check_tests_pass(self) -> Optional[BlockingReason]:
        if self.issue_number is None:
            return None
        return self._check_evidence_files(
            kind="tests_pass",
            prefix="phase",
            passed_key="overallPassed",
            missing=f"Phase checks have not been run for issue #{self.issue_number}",
            failed="Phase {phase} failed its checks. Fix the failures and re-run them.",
            stale="Phase {phase} check evidence is stale (predates latest commit). Re-run the checks.",
        )

    def check_verification_plan_executed(self) -> Optional[BlockingReason]:
        if self.issue_number is None:
            return None
        return self._check_evidence_files(
            kind="verification_plan_executed",
            prefix="vp",
            passed_key="allStepsPassed",
            missing="No verification plan evidence found. Run the VERIFY step for each phase.",
            failed="Verification plan for phase {phase} has failing steps. Fix and re-run VERIFY.",
            stale="Verification plan evidence for phase {phase} is stale. Re-run VERIFY.",
        )

    def _check_evidence_files(
        self,
        kind: str,
        prefix: str,
        passed_key: str,
        missing: str,
        failed: str,
        stale: str,
    ) -> Optional[BlockingReason]:
        files = self.signals.list_evidence(prefix, self.issue_number)
        if not files:
            return BlockingReason(kind=kind, message=missing)

        for path in files:
            evidence = self.signals.read_evidence(path)
            if evidence is None:
                return BlockingReason(kind=kind, message=f"Evidence file unreadable: {path.name}")
            phase = evidence.get("phaseId") or path.stem
            if evidence.get(passed_key) is not True:
                return BlockingReason(kind=kind, message=failed.format(phase=phase))
            if self._is_stale(evidence.get("timestamp")):
                return BlockingReason(kind=kind, message=stale.format(phase=phase))
        return None

    def check_feature_tests_added(self) -> Optional[BlockingReason]:
        profile = self.project.project
        count = self.signals.count_new_test_functions(profile.diff_base, profile.test_file_globs)
        if count == 0:
            return BlockingReason(
                kind="feature_tests_added",
                message=(
                    f"At least one new test function is required (compared to {profile.diff_base})"
                ),
            )
        return None

    def _is_stale(self, timestamp: Any) -> bool:
        """Evidence older than the latest code commit. Unparseable times are not stale."""
        evidence_time = parse_timestamp(timestamp)
        if evidence_time is None:
            return False
        latest: Optional[datetime] = self.signals.latest_code_commit_at()
        return latest is not None and evidence_time < latest


# Must cover exactly the StopConditionKind vocabulary in config.schema
CHECKS: Dict[str, Callable[[StopConditionEvaluator], Optional[BlockingReason]]] = {
    "tasks_complete": StopConditionEvaluator.check_tasks_complete,
    "committed": StopConditionEvaluator.check_committed,
    "pushed": StopConditionEvaluator.check_pushed,
    "verification": StopConditionEvaluator.check_verification,
    "tests_pass": StopConditionEvaluator.check_tests_pass,
    "feature_tests_added": StopConditionEvaluator.check_feature_tests_added,
    "verification_plan_executed": StopConditionEvaluator.check_verification_plan_executed,
}

_drift = set(CHECKS) ^ set(STOP_CONDITION_TYPES)
if _drift:
    raise RuntimeError(f"Stop condition check table out of sync with schema: {sorted(_drift)}")

