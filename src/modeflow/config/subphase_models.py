"""
Subphase pattern model definitions.

A subphase pattern is a reusable sequence of step templates (for example
impl → test → review) used to expand each spec phase into several tasks.
Patterns are either declared inline on a container phase or referenced by
name from the shared pattern library.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from ..errors import UnknownSubphasePatternError


DEFAULT_GATE_THRESHOLD = 75


class AgentStepConfig(BaseModel):
    """
    Delegation of a step to an external review agent.

    Example:
        provider: "${providers.default}"
        prompt: code-review
        gate: true
        threshold: 80
    """

    # Provider name or a ``${config.key}`` reference into the project config
    provider: str = Field(min_length=1)
    model: Optional[str] = None
    # Named prompt template
    prompt: str = Field(min_length=1)
    # Named context sources assembled into the prompt
    context: List[str] = Field(default_factory=list)
    # Output artifact path, relative to the project root
    output: Optional[str] = None
    # Blocks progression until the review score reaches the threshold
    gate: bool = False
    threshold: Optional[float] = Field(default=None, ge=0, le=100)

    @property
    def effective_threshold(self) -> float:
        """Gate threshold, falling back to the default of 75."""
        return self.threshold if self.threshold is not None else DEFAULT_GATE_THRESHOLD


class SubphasePattern(BaseModel):
    """
    One step of a subphase pattern.

    The three text templates accept the ``{task_summary}``, ``{phase_name}``
    and ``{phase_label}`` placeholders.
    """

    id_suffix: str = Field(min_length=1)
    title_template: str = Field(min_length=1)
    todo_template: str = Field(min_length=1)
    active_form: str = Field(min_length=1)
    labels: List[str] = Field(default_factory=list)
    depends_on_previous: bool = False
    instruction: Optional[str] = None
    agent: Optional[AgentStepConfig] = None


class SubphasePatternDefinition(BaseModel):
    """Named pattern in the shared library."""

    description: str = Field(min_length=1)
    steps: List[SubphasePattern] = Field(min_length=1)


class SubphasePatternLibrary(BaseModel):
    """Shared library of named subphase patterns."""

    subphase_patterns: Dict[str, SubphasePatternDefinition] = Field(default_factory=dict)

    @property
    def names(self) -> List[str]:
        return sorted(self.subphase_patterns)

    def get_steps(self, name: str) -> List[SubphasePattern]:
        """
        Look up the steps of a named pattern.

        Args:
            name: Pattern name

        Returns:
            Ordered list of pattern steps

        Raises:
            UnknownSubphasePatternError: No pattern with that name
        """
        definition = self.subphase_patterns.get(name)
        if definition is None:
            raise UnknownSubphasePatternError(name, self.names)
        return list(definition.steps)

    def merged_with(self, overlay: "SubphasePatternLibrary") -> "SubphasePatternLibrary":
        """Return a new library where ``overlay`` replaces patterns by name."""
        merged = dict(self.subphase_patterns)
        merged.update(overlay.subphase_patterns)
        return SubphasePatternLibrary(subphase_patterns=merged)
