"""
Template phase validation.

Validation never raises for bad data: every problem is collected into a
``ValidationResult`` so a template author can fix them all in one pass.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional
from pydantic import ValidationError

from .models import PhaseDefinition
from ..errors import PhaseValidationError


@dataclass
class PhaseValidationIssue:
    """One validation problem."""

    message: str
    phase_id: Optional[str] = None
    field: Optional[str] = None
    template_path: Optional[str] = None


@dataclass
class ValidationResult:
    """Typed phases (when valid) plus every issue found."""

    phases: List[PhaseDefinition] = field(default_factory=list)
    errors: List[PhaseValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _raw_id(raw: Any) -> Optional[str]:
    if isinstance(raw, dict) and raw.get("id") is not None:
        return str(raw["id"])
    return None


def validate_phases(raw_phases: List[Any], template_path: Optional[str] = None) -> ValidationResult:
    """
    Validate raw phase objects from a template.

    Checks, in order:
    1. Structure of each phase (required fields, id pattern, types)
    2. Unique phase ids
    3. Every ``depends_on`` names a phase in the same list
    4. At most one container phase

    Args:
        raw_phases: Phase mappings as parsed from YAML
        template_path: Source file, attached to each issue

    Returns:
        ValidationResult; ``phases`` is only populated when valid
    """
    errors: List[PhaseValidationIssue] = []
    parsed: List[PhaseDefinition] = []

    # 1. Structure, phase by phase so one bad phase does not hide another
    for index, raw in enumerate(raw_phases):
        try:
            parsed.append(PhaseDefinition.model_validate(raw))
        except ValidationError as e:
            phase_id = _raw_id(raw)
            for item in e.errors():
                loc = [str(part) for part in item["loc"]]
                path = ".".join([str(index)] + loc)
                errors.append(
                    PhaseValidationIssue(
                        message=f"{item['msg']} at {path}",
                        phase_id=phase_id,
                        field=loc[-1] if loc else None,
                        template_path=template_path,
                    )
                )

    # 2. Duplicate ids, over every phase that declared one
    known_ids = set()
    for raw in raw_phases:
        phase_id = _raw_id(raw)
        if phase_id is None:
            continue
        if phase_id in known_ids:
            errors.append(
                PhaseValidationIssue(
                    message=f"Duplicate phase ID: {phase_id}",
                    phase_id=phase_id,
                    field="id",
                    template_path=template_path,
                )
            )
        known_ids.add(phase_id)

    # 3. Dangling dependencies
    for phase in parsed:
        for dep_id in phase.depends_on:
            if dep_id not in known_ids:
                errors.append(
                    PhaseValidationIssue(
                        message=f"Phase {phase.id} depends on non-existent phase: {dep_id}",
                        phase_id=phase.id,
                        field="depends_on",
                        template_path=template_path,
                    )
                )

    # 4. Single container
    containers = [phase.id for phase in parsed if phase.container]
    if len(containers) > 1:
        errors.append(
            PhaseValidationIssue(
                message=(
                    f"Multiple container phases found: {', '.join(containers)}. "
                    "Only one phase can be marked as container."
                ),
                field="container",
                template_path=template_path,
            )
        )

    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(phases=parsed)


def format_validation_errors(result: ValidationResult) -> str:
    """Render a validation result for humans."""
    if result.valid:
        return "All phases valid"

    lines = ["Phase validation failed:", ""]
    for issue in result.errors:
        location = ", ".join(
            part
            for part in (
                issue.phase_id and f"phase: {issue.phase_id}",
                issue.field and f"field: {issue.field}",
                issue.template_path and f"file: {issue.template_path}",
            )
            if part
        )
        lines.append(f"  - {issue.message}")
        if location:
            lines.append(f"    ({location})")
    return "\n".join(lines)


def validate_phases_or_raise(
    raw_phases: List[Any], template_path: Optional[str] = None
) -> List[PhaseDefinition]:
    """
    Validate phases and return the typed list.

    Raises:
        PhaseValidationError: Any issue was found; carries the full result
    """
    result = validate_phases(raw_phases, template_path)
    if not result.valid:
        raise PhaseValidationError(format_validation_errors(result), result=result)
    return result.phases
