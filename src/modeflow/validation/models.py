"""
Template phase and document models.

Phase ids follow ``p<N>``, ``p<N>.<M>`` or ``p<N>-<name>``.
"""

import re
from pathlib import Path
from typing import Any, List, Optional, Union
from pydantic import BaseModel, Field, field_validator

from ..config.subphase_models import AgentStepConfig, SubphasePattern


PHASE_ID_PATTERN = r"^p\d+(\.\d+|-[a-z][a-z0-9-]*)?$"
_PHASE_NUMBER = re.compile(r"^p(\d+)")


def phase_number(phase_id: str) -> Optional[int]:
    """Leading integer of a phase id (``p2.1`` → 2), or None."""
    match = _PHASE_NUMBER.match(phase_id)
    return int(match.group(1)) if match else None


class PhaseTaskConfig(BaseModel):
    """
    Task produced when a phase becomes a single task.

    Without a ``title`` the block only declares ``depends_on`` for a phase
    whose steps become the tasks.
    """

    title: Optional[str] = Field(default=None, min_length=1)
    labels: List[str] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list)


class PhaseStep(BaseModel):
    """Trackable unit inside a phase (for example an interview round)."""

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    instruction: Optional[str] = None
    agent: Optional[AgentStepConfig] = None


class PhaseDefinition(BaseModel):
    """One phase of a template."""

    id: str = Field(pattern=PHASE_ID_PATTERN)
    name: str = Field(min_length=1)
    task_config: Optional[PhaseTaskConfig] = None
    steps: List[PhaseStep] = Field(default_factory=list)
    container: bool = False
    # Pattern name in the shared library, or inline steps
    subphase_pattern: Optional[Union[str, List[SubphasePattern]]] = None

    @property
    def number(self) -> Optional[int]:
        return phase_number(self.id)

    @property
    def depends_on(self) -> List[str]:
        return list(self.task_config.depends_on) if self.task_config else []


class TemplateDocument(BaseModel):
    """
    Parsed template: metadata block plus the opaque body.

    ``phases`` stays raw here; the phase validator turns it into
    ``PhaseDefinition`` objects and reports every problem at once.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    mode: Optional[str] = None
    phases: List[Any] = Field(default_factory=list)
    global_conditions: List[str] = Field(default_factory=list)
    workflow_id_format: Optional[str] = None
    reviewer_prompt: str = "code-review"

    body: str = ""
    path: Optional[Path] = None


class SpecPhase(BaseModel):
    """Phase of an externally authored spec. Only presence and shape are checked."""

    id: str
    name: Optional[str] = None
    tasks: List[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        # Spec authors often write bare numbers
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("tasks", mode="before")
    @classmethod
    def coerce_tasks(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [str(item) for item in v]
        return v


class SpecDocument(BaseModel):
    """Parsed spec document."""

    github_issue: Optional[int] = None
    title: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    phases: List[SpecPhase] = Field(default_factory=list)

    body: str = ""
    path: Optional[Path] = None

    @property
    def task_count(self) -> int:
        return sum(len(phase.tasks) for phase in self.phases)
