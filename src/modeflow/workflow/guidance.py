"""
Guidance shown to the acting agent after entering a mode.

Pure projection of the generated tasks (or, for templates without task
generation, the bare phase titles) into a checklist and instructions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .native_tasks import derive_active_form
from .task_factory import NativeTask


@dataclass
class PhaseTitle:
    id: str
    title: str


@dataclass
class RequiredTodo:
    """One checklist entry."""

    content: str
    active_form: str
    status: str = "pending"

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "status": self.status, "activeForm": self.active_form}


@dataclass
class WorkflowGuidance:
    """Checklist plus instructions for a mode."""

    mode: str
    required_todos: List[RequiredTodo] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "requiredTodos": [todo.to_dict() for todo in self.required_todos],
            "instructions": list(self.instructions),
        }

    def render(self) -> str:
        """Plain-text rendering for terminal output."""
        lines = [f"Mode: {self.mode}", ""]
        if self.required_todos:
            lines.append("Required tasks:")
            for index, todo in enumerate(self.required_todos, start=1):
                lines.append(f"  {index}. {todo.content}")
            lines.append("")
        lines.extend(self.instructions)
        return "\n".join(lines)


def build_guidance(
    mode: str,
    tasks: List[NativeTask],
    phase_titles: Optional[List[PhaseTitle]] = None,
    task_rules: Optional[List[str]] = None,
    global_rules: Optional[List[str]] = None,
    reference: Optional[str] = None,
) -> WorkflowGuidance:
    """
    Build the guidance for a freshly entered mode.

    Args:
        mode: Canonical mode name
        tasks: Generated tasks, in order
        phase_titles: Used only when no tasks were generated
        task_rules: Task discipline rules from the project config
        global_rules: Project-wide rules from the project config
        reference: Template or spec path the agent should read

    Returns:
        WorkflowGuidance with every todo pending
    """
    if tasks:
        todos = [
            RequiredTodo(
                content=task.todo,
                active_form=task.active_form or derive_active_form(task.title),
            )
            for task in tasks
        ]
    else:
        todos = [
            RequiredTodo(content=phase.title, active_form=f"Working on {phase.title}")
            for phase in phase_titles or []
        ]

    instructions = ["Follow the tasks closely - they define your workflow."]
    if reference:
        instructions.append(f"Reference: {reference}")

    if tasks and task_rules:
        instructions.append("")
        instructions.append("Task rules:")
        instructions.extend(f"  - {rule}" for rule in task_rules)

    if global_rules:
        instructions.append("")
        instructions.append("Project rules:")
        instructions.extend(f"  - {rule}" for rule in global_rules)

    instructions.extend(
        [
            "",
            "Commands:",
            "  modeflow status      # Check current mode and phase",
            "  modeflow can-exit    # Check if exit conditions are met",
        ]
    )

    return WorkflowGuidance(mode=mode, required_todos=todos, instructions=instructions)
