"""
Template phase models and validation.
"""

from .models import (
    PHASE_ID_PATTERN,
    PhaseDefinition,
    PhaseStep,
    PhaseTaskConfig,
    SpecDocument,
    SpecPhase,
    TemplateDocument,
    phase_number,
)
from .phase_validator import (
    PhaseValidationIssue,
    ValidationResult,
    format_validation_errors,
    validate_phases,
    validate_phases_or_raise,
)

__all__ = [
    "PHASE_ID_PATTERN",
    "PhaseDefinition",
    "PhaseStep",
    "PhaseTaskConfig",
    "SpecDocument",
    "SpecPhase",
    "TemplateDocument",
    "phase_number",
    "PhaseValidationIssue",
    "ValidationResult",
    "format_validation_errors",
    "validate_phases",
    "validate_phases_or_raise",
]
