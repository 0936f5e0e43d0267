"""
Session lifecycle: init, enter, exit, advance, link, status and can-exit.

``SessionManager`` strings the components together for one project:

    enter(mode) → load template (+ spec) → validate phases → build tasks
                → build guidance → write native tasks → update state

Every state change goes through ``modeflow.state`` (read → merge → atomic
write). Configuration problems are raised before anything is written.
"""

import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .guidance import PhaseTitle, WorkflowGuidance, build_guidance
from .native_tasks import write_native_tasks
from .task_factory import NativeTask, TaskFactory
from .task_tracker import TaskTracker
from ..config.loader import ConfigContext
from ..documents import (
    check_spec_phases,
    find_spec_file,
    load_spec,
    load_template,
    phase_titles,
    resolve_template_path,
)
from ..errors import ModeflowError
from ..gates import ExitDecision, StopConditionEvaluator, WorkspaceSignals, normalize_conditions
from ..logging_config import get_logger, log_context
from ..session.lookup import get_state_file_path
from ..state import (
    DEFAULT_MODE,
    ModeHistoryEntry,
    ModeStateEntry,
    SessionState,
    create_default_state,
    read_state,
    state_exists,
    update_state,
    write_state,
)
from ..state.models import utc_now_iso
from ..validation import validate_phases_or_raise
from ..validation.models import SpecDocument, TemplateDocument

logger = get_logger(__name__)


def workflow_id_for_issue(issue: int) -> str:
    return f"GH#{issue}"


def generate_workflow_id(prefix: str, session_id: str, now: Optional[datetime] = None) -> str:
    """
    Session-scoped workflow id: ``<PREFIX>-<4 hex of session id>-<MMDD>``.

    Example:
        generate_workflow_id("IM", "a1b2c3d4-...") -> "IM-a1b2-1019"
    """
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{session_id.replace('-', '')[:4]}-{now:%m%d}"


@dataclass
class EnterResult:
    """Outcome of entering a mode."""

    mode: str
    workflow_id: str
    action: str
    template: str
    phases: List[str]
    tasks: List[NativeTask]
    guidance: WorkflowGuidance
    issue_number: Optional[int] = None
    spec_path: Optional[Path] = None
    state: Optional[SessionState] = None

    @property
    def dry_run(self) -> bool:
        return self.action == "dry-run"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": True,
            "mode": self.mode,
            "workflowId": self.workflow_id,
            "action": self.action,
            "template": self.template,
            "phases": list(self.phases),
            "tasks": [task.title for task in self.tasks],
            "guidance": self.guidance.to_dict(),
        }
        if self.dry_run:
            data["dryRun"] = True
            data["wouldCreateTasks"] = len(self.tasks)
        if self.issue_number is not None:
            data["issueNumber"] = self.issue_number
        if self.spec_path is not None:
            data["specPath"] = str(self.spec_path)
            data["phasesFromSpec"] = True
        return data


@dataclass
class SessionStatus:
    """Snapshot reported by ``modeflow status``."""

    session_id: str
    mode: str
    phase: Optional[str] = None
    workflow_id: Optional[str] = None
    issue_number: Optional[int] = None
    phases: List[str] = field(default_factory=list)
    completed_phases: List[str] = field(default_factory=list)
    tasks: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "currentMode": self.mode,
            "currentPhase": self.phase,
            "workflowId": self.workflow_id,
            "issueNumber": self.issue_number,
            "phases": list(self.phases),
            "completedPhases": list(self.completed_phases),
            "tasks": dict(self.tasks),
        }


class SessionManager:
    """
    Runs session lifecycle operations for one project.

    Example:
        manager = SessionManager(ConfigContext.load())
        result = manager.enter_mode("implementation", session_id, issue=42)
        decision, state = manager.can_exit(session_id)
    """

    def __init__(
        self,
        ctx: ConfigContext,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """
        Args:
            ctx: Configuration context for the project
            runner: ``subprocess.run`` compatible callable used for git signals
        """
        self.ctx = ctx
        self.runner = runner

    def state_file(self, session_id: str) -> Path:
        return get_state_file_path(self.ctx.project_root, session_id)

    def tasks_dir(self, session_id: str) -> Path:
        return self.ctx.settings.tasks_dir(session_id)

    def load_state(self, session_id: str) -> SessionState:
        return read_state(self.state_file(session_id))

    # ------------------------------------------------------------------
    # init
    # ------------------------------------------------------------------

    def init_session(self, session_id: str, force: bool = False) -> Tuple[SessionState, bool]:
        """
        Create the state document for a session.

        Returns:
            (state, created): ``created`` is False when an existing state
            was kept
        """
        state_file = self.state_file(session_id)
        if state_exists(state_file) and not force:
            logger.debug(f"Session {session_id} already initialized")
            return read_state(state_file), False

        state = write_state(state_file, create_default_state(session_id))
        logger.info(f"Initialized session {session_id}")
        return state, True

    # ------------------------------------------------------------------
    # enter
    # ------------------------------------------------------------------

    def enter_mode(
        self,
        mode: str,
        session_id: str,
        issue: Optional[int] = None,
        dry_run: bool = False,
    ) -> EnterResult:
        """
        Enter a mode: generate its tasks and record it in the session state.

        Args:
            mode: Mode name or alias
            session_id: Session to operate on (created if missing)
            issue: Issue to link; defaults to the issue already linked
            dry_run: Build everything but write nothing

        Returns:
            EnterResult with the generated tasks and guidance

        Raises:
            ConfigurationError: Unknown/deprecated mode, missing template,
                invalid phases, bad spec or unknown subphase pattern
            StateError: Existing state cannot be read
        """
        with log_context(session_id, mode):
            return self._enter_mode(mode, session_id, issue, dry_run)

    def _enter_mode(
        self, mode: str, session_id: str, issue: Optional[int], dry_run: bool
    ) -> EnterResult:
        canonical, mode_config = self.ctx.resolve_mode(mode)

        template_path = resolve_template_path(mode_config.template, self.ctx.project_root)
        template = load_template(template_path)
        phases = validate_phases_or_raise(template.phases, str(template_path))

        state_file = self.state_file(session_id)
        if state_exists(state_file):
            state = read_state(state_file)
        else:
            state = create_default_state(session_id)

        issue_number = issue if issue is not None else state.issue_number
        if issue is not None and state.issue_number not in (None, issue) and (
            state.current_mode != DEFAULT_MODE
        ):
            logger.warning(
                f"Switching from issue #{state.issue_number} to #{issue} "
                f"(previous mode: {state.current_mode})"
            )

        factory = TaskFactory(
            phases,
            self.ctx.patterns,
            issue=issue_number,
            resolve_reference=self.ctx.resolve_reference,
        )

        spec: Optional[SpecDocument] = None
        if factory.container_phase is not None and issue_number is not None:
            spec = self._load_spec(issue_number)
            if spec is not None:
                check_spec_phases(spec)

        spec_phases = spec.phases if spec is not None else None
        tasks = factory.build(spec_phases)

        workflow_id = self._workflow_id(canonical, mode_config.workflow_prefix, state, session_id, issue_number)
        if spec_phases:
            effective_phases = [phase.id for phase in spec_phases]
        else:
            effective_phases = [phase.id for phase in phases]

        guidance = build_guidance(
            canonical,
            tasks,
            phase_titles=[PhaseTitle(**title) for title in phase_titles(template)],
            task_rules=self.ctx.project.task_rules,
            global_rules=self.ctx.project.global_rules,
            reference=str(spec.path if spec is not None else template_path),
        )

        result = EnterResult(
            mode=canonical,
            workflow_id=workflow_id,
            action="dry-run" if dry_run else "started",
            template=mode_config.template,
            phases=effective_phases,
            tasks=tasks,
            guidance=guidance,
            issue_number=issue_number,
            spec_path=spec.path if spec is not None else None,
        )
        if dry_run:
            logger.info(f"Dry run: {canonical} would create {len(tasks)} task(s)")
            return result

        if tasks:
            write_native_tasks(self.tasks_dir(session_id), tasks, workflow_id, issue_number)

        now = utc_now_iso()
        mode_state = dict(state.mode_state)
        mode_state[canonical] = ModeStateEntry(status="active", entered_at=now)

        updated = state.model_copy(
            update={
                "session_type": canonical,
                "current_mode": canonical,
                "template": mode_config.template,
                "phases": effective_phases,
                "current_phase": effective_phases[0] if effective_phases else None,
                "workflow_id": workflow_id,
                "issue_number": issue_number,
                "spec_path": str(spec.path) if spec is not None else state.spec_path,
                "mode_history": state.mode_history + [ModeHistoryEntry(mode=canonical, entered_at=now)],
                "mode_state": mode_state,
                "workflow_dir": str(state_file.parent / "workflow"),
                "updated_at": now,
            }
        )
        result.state = write_state(state_file, updated)
        logger.info(f"Entered {canonical} ({workflow_id}) with {len(tasks)} task(s)")
        return result

    def _load_spec(self, issue: int) -> Optional[SpecDocument]:
        spec_path = find_spec_file(self.ctx.spec_dir, issue)
        if spec_path is None:
            logger.info(f"No spec found for issue #{issue} in {self.ctx.spec_dir}")
            return None
        spec = load_spec(spec_path)
        logger.info(f"Found spec with {len(spec.phases)} phase(s): {spec_path}")
        return spec

    def _workflow_id(
        self,
        mode: str,
        prefix: Optional[str],
        state: SessionState,
        session_id: str,
        issue: Optional[int],
    ) -> str:
        if issue is not None:
            return workflow_id_for_issue(issue)
        if state.current_mode == mode and state.workflow_id:
            return state.workflow_id
        return generate_workflow_id(prefix or mode.upper()[:2], session_id)

    # ------------------------------------------------------------------
    # exit / advance / link
    # ------------------------------------------------------------------

    def exit_mode(self, session_id: str) -> SessionState:
        """
        Complete the current mode and return to ``default``.

        Exiting while already in ``default`` changes nothing.
        """
        state_file = self.state_file(session_id)
        state = read_state(state_file)
        completed = state.current_mode
        if completed == DEFAULT_MODE:
            logger.info(f"Session {session_id} is already in {DEFAULT_MODE} mode")
            return state

        now = utc_now_iso()
        mode_state = dict(state.mode_state)
        previous = mode_state.get(completed)
        if previous is None:
            mode_state[completed] = ModeStateEntry(status="completed", entered_at=now, exited_at=now)
        else:
            mode_state[completed] = previous.model_copy(
                update={
                    "status": "completed",
                    "exited_at": now,
                    "entered_at": previous.entered_at or now,
                }
            )

        history = [
            entry.model_copy(update={"exited_at": now})
            if entry.mode == completed and entry.is_open
            else entry
            for entry in state.mode_history
        ]

        updated = update_state(
            state_file,
            {
                "previous_mode": completed,
                "current_mode": DEFAULT_MODE,
                "session_type": DEFAULT_MODE,
                "current_phase": None,
                "workflow_completed_at": now,
                "mode_state": mode_state,
                "mode_history": history,
            },
        )
        logger.info(f"Exited {completed}")
        return updated

    def advance_phase(self, session_id: str, phase: str) -> SessionState:
        """
        Move to ``phase``, recording the current phase as completed.

        Raises:
            ModeflowError: ``phase`` is not one of the session's phases
        """
        state_file = self.state_file(session_id)
        state = read_state(state_file)
        if phase not in state.phases:
            raise ModeflowError(
                f"Unknown phase: {phase}\nAvailable phases: {', '.join(state.phases) or 'none'}"
            )

        completed = list(state.completed_phases)
        if state.current_phase and state.current_phase not in completed:
            completed.append(state.current_phase)

        return update_state(state_file, {"current_phase": phase, "completed_phases": completed})

    def link_issue(
        self,
        session_id: str,
        number: Optional[int],
        title: Optional[str] = None,
        issue_type: Optional[str] = None,
    ) -> SessionState:
        """Link (or, with ``number=None``, unlink) an issue."""
        changes: Dict[str, Any] = {"issue_number": number}
        if number is None:
            changes.update({"issue_title": None, "issue_type": None})
        else:
            if title is not None:
                changes["issue_title"] = title
            if issue_type is not None:
                changes["issue_type"] = issue_type
        return update_state(self.state_file(session_id), changes)

    # ------------------------------------------------------------------
    # status / can-exit
    # ------------------------------------------------------------------

    def get_status(self, session_id: str) -> SessionStatus:
        state = self.load_state(session_id)
        tracker = TaskTracker(self.tasks_dir(session_id))
        return SessionStatus(
            session_id=session_id,
            mode=state.current_mode,
            phase=state.current_phase,
            workflow_id=state.workflow_id,
            issue_number=state.issue_number,
            phases=list(state.phases),
            completed_phases=list(state.completed_phases),
            tasks=tracker.get_status_summary(),
        )

    def stop_conditions(self, state: SessionState) -> List[str]:
        """Mode stop conditions followed by the template's global conditions."""
        if state.current_mode == DEFAULT_MODE:
            return []
        mode_config = self.ctx.project.modes.get(state.current_mode)
        if mode_config is None:
            logger.warning(f"Mode {state.current_mode} is no longer configured; nothing to check")
            return []

        global_conditions: List[str] = []
        template = self._template_for(mode_config.template)
        if template is not None:
            global_conditions = template.global_conditions
        return normalize_conditions(mode_config.stop_conditions, global_conditions)

    def _template_for(self, reference: str) -> Optional[TemplateDocument]:
        try:
            return load_template(resolve_template_path(reference, self.ctx.project_root))
        except ModeflowError as e:
            logger.warning(f"Cannot read template {reference} for global conditions: {e}")
            return None

    def can_exit(self, session_id: str) -> Tuple[ExitDecision, SessionState]:
        """
        Evaluate the active mode's stop conditions.

        Returns:
            (decision, state). ``default`` mode, or a mode with no
            conditions, may always exit.

        Raises:
            StateError: State cannot be read
        """
        state = self.load_state(session_id)
        conditions = self.stop_conditions(state)
        if not conditions:
            return ExitDecision(can_exit=True), state

        signals = WorkspaceSignals(
            self.ctx.project_root,
            self.tasks_dir(session_id),
            non_code_paths=self.ctx.project.non_code_paths,
            runner=self.runner,
        )
        evaluator = StopConditionEvaluator(signals, self.ctx.project, state.issue_number)
        with log_context(session_id, state.current_mode):
            return evaluator.evaluate(conditions), state
