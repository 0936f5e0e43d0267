"""
Task factory: template phases (plus optional spec phases) → ordered tasks.

Three shapes of input:

1. No container phase, or no spec phases: each phase with a
   ``task_config.title`` becomes one task; a phase with ``steps`` and no
   title becomes one task per step.
2. Container phase and spec phases: phases numbered below the container
   come first, then one task per (spec phase × pattern step) with ids
   ``p<container>.<n>:<suffix>``, then every remaining phase.
3. Container phase but no spec phases yet: same as 1.

Phase-level ``depends_on`` is resolved after generation to the last task
produced for the referenced phase.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .placeholders import PlaceholderValues, apply_placeholders, summarize_tasks
from ..config.subphase_models import AgentStepConfig, SubphasePattern, SubphasePatternLibrary
from ..errors import ConfigurationError
from ..logging_config import get_logger
from ..validation.models import PhaseDefinition, SpecPhase

logger = get_logger(__name__)


class TaskStatus(Enum):
    """Native task status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class AgentDelegation:
    """External review agent a task must invoke."""

    provider: str
    prompt: str
    model: Optional[str] = None
    context: List[str] = field(default_factory=list)
    output: Optional[str] = None
    gate: bool = False
    threshold: float = 75

    @classmethod
    def from_config(
        cls,
        config: AgentStepConfig,
        resolve_reference: Callable[[str], str],
    ) -> "AgentDelegation":
        return cls(
            provider=resolve_reference(config.provider),
            prompt=config.prompt,
            model=config.model,
            context=list(config.context),
            output=config.output,
            gate=config.gate,
            threshold=config.effective_threshold,
        )

    def command_line(self) -> str:
        """Command the executing agent runs for this step."""
        line = f"Run: modeflow review --prompt={self.prompt} --provider={self.provider}"
        if self.model:
            line += f" --model={self.model}"
        if self.gate:
            line += f" (gate: score >= {self.threshold:g})"
        return line

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "prompt": self.prompt,
            "model": self.model,
            "context": list(self.context),
            "output": self.output,
            "gate": self.gate,
            "threshold": self.threshold,
        }


@dataclass
class NativeTask:
    """Unit handed to the host's task tracker."""

    id: str
    title: str
    todo: str
    phase_id: str
    active_form: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    labels: List[str] = field(default_factory=list)
    depends_on: List[str] = field(default_factory=list)
    instruction: Optional[str] = None
    agent: Optional[AgentDelegation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "todo": self.todo,
            "phaseId": self.phase_id,
            "activeForm": self.active_form,
            "status": self.status.value,
            "labels": list(self.labels),
            "dependsOn": list(self.depends_on),
            "instruction": self.instruction,
            "agent": self.agent.to_dict() if self.agent else None,
        }


def render_instruction(
    instruction: Optional[str], agent: Optional[AgentDelegation]
) -> Optional[str]:
    """Join a step's instruction text and its agent command line."""
    parts = []
    if instruction:
        parts.append(instruction)
    if agent:
        parts.append(agent.command_line())
    return "\n".join(parts) or None


def _identity(value: str) -> str:
    return value


class TaskFactory:
    """
    Builds the task list for a mode entry.

    Example:
        factory = TaskFactory(phases, ctx.patterns, issue=42,
                              resolve_reference=ctx.resolve_reference)
        tasks = factory.build(spec.phases)
    """

    def __init__(
        self,
        phases: List[PhaseDefinition],
        patterns: Optional[SubphasePatternLibrary] = None,
        issue: Optional[int] = None,
        resolve_reference: Optional[Callable[[str], str]] = None,
    ):
        """
        Args:
            phases: Validated template phases, in template order
            patterns: Shared subphase pattern library
            issue: Linked issue number, substituted for ``{issue}``
            resolve_reference: Resolves ``${config.key}`` agent providers
        """
        self.phases = phases
        self.patterns = patterns or SubphasePatternLibrary()
        self.issue = issue
        self.resolve_reference = resolve_reference or _identity

    @property
    def container_phase(self) -> Optional[PhaseDefinition]:
        for phase in self.phases:
            if phase.container:
                return phase
        return None

    def resolve_subphase_pattern(self) -> List[SubphasePattern]:
        """
        Pattern steps of the container phase.

        Raises:
            ConfigurationError: No container, or the container has no pattern
            UnknownSubphasePatternError: Named pattern is not in the library
        """
        container = self.container_phase
        if container is None:
            raise ConfigurationError("Template has no container phase")

        pattern = container.subphase_pattern
        if pattern is None:
            raise ConfigurationError(
                f"Container phase {container.id} has no subphase_pattern; "
                "cannot expand spec phases"
            )
        if isinstance(pattern, str):
            return self.patterns.get_steps(pattern)
        return list(pattern)

    def build(self, spec_phases: Optional[List[SpecPhase]] = None) -> List[NativeTask]:
        """
        Generate the ordered task list.

        Spec tasks are spliced in place of the container. The first one waits
        on the container's ``depends_on`` (or the last task before it), each
        group waits on the group before, and the first task after the
        container waits on the last spec task.

        Args:
            spec_phases: Phases from the spec document, in document order

        Returns:
            Tasks in execution order with dependencies resolved

        Raises:
            ConfigurationError: Container pattern cannot be resolved. Raised
                before any task is produced.
        """
        container = self.container_phase
        tasks: List[NativeTask] = []
        phase_refs: Dict[str, List[str]] = {}

        if container is None or not spec_phases:
            for phase in self.phases:
                tasks.extend(self._phase_tasks(phase, phase_refs))
        else:
            pattern = self.resolve_subphase_pattern()
            container_number = container.number
            before = [
                p for p in self.phases
                if p is not container and p.number is not None and p.number < container_number
            ]
            before_ids = {p.id for p in before}
            after = [p for p in self.phases if p is not container and p.id not in before_ids]

            for phase in before:
                tasks.extend(self._phase_tasks(phase, phase_refs))
            last_before = tasks[-1].id if tasks else None

            spec_tasks = self._spec_tasks(container, spec_phases, pattern)
            if spec_tasks:
                first = spec_tasks[0]
                if container.depends_on:
                    phase_refs[first.id] = container.depends_on
                elif last_before is not None and last_before not in first.depends_on:
                    first.depends_on.append(last_before)
                    logger.debug(f"  {first.id} depends on {last_before}")
            tasks.extend(spec_tasks)

            after_tasks: List[NativeTask] = []
            for phase in after:
                after_tasks.extend(self._phase_tasks(phase, phase_refs))
            if spec_tasks and after_tasks:
                last_spec = spec_tasks[-1].id
                if last_spec not in after_tasks[0].depends_on:
                    after_tasks[0].depends_on.append(last_spec)
                    logger.debug(f"  {after_tasks[0].id} depends on {last_spec}")
            tasks.extend(after_tasks)

        self._resolve_phase_dependencies(tasks, phase_refs)
        return tasks

    # ------------------------------------------------------------------

    def _phase_tasks(
        self, phase: PhaseDefinition, phase_refs: Dict[str, List[str]]
    ) -> List[NativeTask]:
        if phase.task_config is not None and phase.task_config.title:
            task = NativeTask(
                id=phase.id,
                title=phase.task_config.title,
                todo=phase.task_config.title,
                phase_id=phase.id,
                labels=list(phase.task_config.labels),
            )
            if phase.depends_on:
                phase_refs[task.id] = phase.depends_on
            logger.debug(f"Created phase task {task.id}: {task.title}")
            return [task]

        if phase.steps:
            return self._step_tasks(phase, phase_refs)

        # Container placeholder with nothing to track
        return []

    def _step_tasks(
        self, phase: PhaseDefinition, phase_refs: Dict[str, List[str]]
    ) -> List[NativeTask]:
        tasks: List[NativeTask] = []
        phase_label = phase.id.upper()
        previous: Optional[str] = None

        for step in phase.steps:
            values = PlaceholderValues(
                task_summary=step.title, phase_name=phase.name, phase_label=phase_label
            )
            task = NativeTask(
                id=f"{phase.id}:{step.id}",
                title=f"{phase_label}: {step.title}",
                todo=step.title,
                phase_id=phase.id,
                depends_on=[previous] if previous else [],
            )
            self._attach_instruction(task, step, values)
            if previous is None and phase.depends_on:
                phase_refs[task.id] = phase.depends_on
            logger.debug(f"Created step task {task.id}: {task.title}")
            if task.depends_on:
                logger.debug(f"  {task.id} depends on {', '.join(task.depends_on)}")
            tasks.append(task)
            previous = task.id

        return tasks

    def _spec_tasks(
        self,
        container: PhaseDefinition,
        spec_phases: List[SpecPhase],
        pattern: List[SubphasePattern],
    ) -> List[NativeTask]:
        tasks: List[NativeTask] = []
        container_number = container.number
        group_tail: Optional[str] = None

        for index, spec_phase in enumerate(spec_phases, start=1):
            phase_name = spec_phase.name or spec_phase.id.upper()
            values = PlaceholderValues(
                task_summary=summarize_tasks(spec_phase.tasks, phase_name),
                phase_name=phase_name,
                phase_label=f"P{container_number}.{index}",
            )
            previous: Optional[str] = None

            for step in pattern:
                depends_on = [previous] if step.depends_on_previous and previous else []
                # A group's opening step waits for the previous group to finish
                if previous is None and group_tail is not None:
                    depends_on = [group_tail]
                task = NativeTask(
                    id=f"p{container_number}.{index}:{step.id_suffix}",
                    title=apply_placeholders(step.title_template, values),
                    todo=f"{values.phase_label}: {apply_placeholders(step.todo_template, values)}",
                    active_form=apply_placeholders(step.active_form, values),
                    phase_id=container.id,
                    labels=list(step.labels),
                    depends_on=depends_on,
                )
                self._attach_instruction(task, step, values)
                logger.debug(f"Created spec task {task.id}: {task.title}")
                if task.depends_on:
                    logger.debug(f"  {task.id} depends on {', '.join(task.depends_on)}")
                tasks.append(task)
                previous = task.id

            group_tail = previous

        return tasks

    def _attach_instruction(self, task: NativeTask, step: Any, values: PlaceholderValues) -> None:
        """Fill ``instruction``/``agent`` from a pattern step or phase step."""
        instruction = None
        if step.instruction:
            instruction = apply_placeholders(step.instruction, values, issue=self.issue)
        agent = None
        if step.agent is not None:
            agent = AgentDelegation.from_config(step.agent, self.resolve_reference)
        task.agent = agent
        task.instruction = render_instruction(instruction, agent)

    def _resolve_phase_dependencies(
        self, tasks: List[NativeTask], phase_refs: Dict[str, List[str]]
    ) -> None:
        last_task_for_phase: Dict[str, str] = {}
        for task in tasks:
            last_task_for_phase[task.phase_id] = task.id

        for task in tasks:
            for phase_id in phase_refs.get(task.id, []):
                target = last_task_for_phase.get(phase_id)
                if target is None:
                    logger.debug(f"Dropping dependency {task.id} -> {phase_id}: phase produced no tasks")
                    continue
                if target not in task.depends_on:
                    task.depends_on.append(target)
                    logger.debug(f"  {task.id} depends on {target}")


def build_tasks(
    phases: List[PhaseDefinition],
    spec_phases: Optional[List[SpecPhase]] = None,
    patterns: Optional[SubphasePatternLibrary] = None,
    issue: Optional[int] = None,
    resolve_reference: Optional[Callable[[str], str]] = None,
) -> List[NativeTask]:
    """Functional wrapper around ``TaskFactory.build``."""
    factory = TaskFactory(phases, patterns, issue=issue, resolve_reference=resolve_reference)
    return factory.build(spec_phases)
