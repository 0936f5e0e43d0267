"""
Spec documents: phased specifications located by issue number.

Spec files live in the configured spec directory and are named
``<issue>-<slug>.md``.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from pydantic import ValidationError

from .frontmatter import read_frontmatter
from ..errors import DocumentParseError, SpecValidationError
from ..validation.models import SpecDocument


def find_spec_file(spec_dir: Path, issue: int) -> Optional[Path]:
    """
    Find the spec for an issue.

    Args:
        spec_dir: Directory holding spec documents
        issue: Issue number

    Returns:
        First matching file in name order, or None
    """
    if not spec_dir.is_dir():
        return None
    pattern = re.compile(rf"^{issue}(-.*)?\.md$")
    matches = sorted(p for p in spec_dir.iterdir() if p.is_file() and pattern.match(p.name))
    return matches[0] if matches else None


def load_spec(path: Path) -> SpecDocument:
    """
    Parse a spec document.

    Raises:
        DocumentParseError: Metadata block is malformed or phases are mis-shaped
    """
    metadata, body = read_frontmatter(path)
    if metadata.get("phases") is None:
        metadata.pop("phases", None)
    try:
        return SpecDocument.model_validate({**metadata, "body": body, "path": path})
    except ValidationError as e:
        raise DocumentParseError(f"Invalid spec metadata in {path}: {e}") from e


def check_spec_phases(spec: SpecDocument) -> None:
    """
    Ensure a spec can drive task generation.

    Raises:
        SpecValidationError: No phases, or phases without a single task
    """
    if not spec.phases:
        raise SpecValidationError(
            f"Spec {spec.path} has no phases. Add a phases list to its metadata block:\n"
            "  phases:\n"
            "    - id: p1\n"
            "      name: \"Phase Name\"\n"
            "      tasks:\n"
            "        - \"First task description\""
        )
    if spec.task_count == 0:
        raise SpecValidationError(
            f"Spec {spec.path} has phases but no tasks. Each phase needs a tasks list."
        )


@dataclass
class SpecReport:
    """Outcome of ``modeflow validate-spec``."""

    path: Path
    issue_number: Optional[int] = None
    phases: int = 0
    total_tasks: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_spec_file(path: Path) -> SpecReport:
    """
    Check a spec document for everything task generation relies on.

    Problems are collected into the report rather than raised.
    """
    report = SpecReport(path=path)
    if not path.is_file():
        report.errors.append(f"Spec file not found: {path}")
        return report

    try:
        spec = load_spec(path)
    except DocumentParseError as e:
        report.errors.append(str(e))
        return report

    report.issue_number = spec.github_issue
    report.phases = len(spec.phases)
    report.total_tasks = spec.task_count

    if spec.github_issue is None:
        report.warnings.append("No github_issue field in metadata")

    seen = set()
    for index, phase in enumerate(spec.phases, start=1):
        if phase.id in seen:
            report.errors.append(f'Phase {index}: Duplicate id "{phase.id}"')
        seen.add(phase.id)
        if not phase.name:
            report.warnings.append(f"Phase {phase.id}: Missing name field")

    try:
        check_spec_phases(spec)
    except SpecValidationError as e:
        report.errors.append(str(e))

    return report
