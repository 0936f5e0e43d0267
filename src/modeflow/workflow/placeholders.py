"""
Placeholder substitution for pattern templates.

The placeholder set is closed: ``{task_summary}``, ``{phase_name}`` and
``{phase_label}`` in every template, plus ``{issue}`` in instructions.
Anything else in braces is left untouched.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class PlaceholderValues:
    task_summary: str
    phase_name: str
    phase_label: str


def apply_placeholders(
    template: str,
    values: PlaceholderValues,
    issue: Optional[int] = None,
) -> str:
    """
    Substitute the whitelisted placeholders in a template string.

    Args:
        template: Text containing placeholders
        values: Substitution values
        issue: Issue number for ``{issue}``; left as-is when None

    Returns:
        Substituted text
    """
    text = (
        template.replace("{task_summary}", values.task_summary)
        .replace("{phase_name}", values.phase_name)
        .replace("{phase_label}", values.phase_label)
    )
    if issue is not None:
        text = text.replace("{issue}", str(issue))
    return text


def summarize_tasks(tasks: List[str], fallback: str) -> str:
    """
    One-line summary of a spec phase's task list.

    A single task is used verbatim, several become ``"<first> + N more"``,
    and an empty list falls back to ``fallback`` (the phase name).
    """
    if not tasks:
        return fallback
    if len(tasks) == 1:
        return tasks[0]
    return f"{tasks[0]} + {len(tasks) - 1} more"
