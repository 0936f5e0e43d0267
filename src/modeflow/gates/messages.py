"""
Stop guidance messages.

Kept in one place so the CLI and the stop hook print identical text.
"""

from typing import Dict, Optional, Tuple


ESCAPE_HATCH = """ONLY IF GENUINELY BLOCKED:
If you have a legitimate question that prevents progress (unclear requirements,
an ambiguous spec, a decision only the user can make), ask the user for
clarification. The conversation pauses until they respond.
Do NOT use this to skip conditions. It is only for blockers you cannot resolve."""


def escape_hatch_message() -> str:
    return ESCAPE_HATCH


def next_step_message(task_id: Optional[str], title: Optional[str]) -> str:
    """Guidance pointing at the first pending task."""
    if not task_id:
        return ""
    return (
        "NEXT STEP (DO NOT SKIP):\n"
        "1. Do the actual work for this task\n"
        f'2. When the work is complete: TaskUpdate(taskId="{task_id}", status="completed")\n'
        "\n"
        f"Current task: [{task_id}] {title}\n"
        "\n"
        "Do NOT bulk-complete tasks just to pass this check.\n"
        "Complete tasks in order, one at a time, with real work."
    )


ARTIFACT_MESSAGES: Dict[str, Tuple[str, str]] = {
    "verification_not_run": (
        "Verification has not been run",
        "Run the verification step for issue #{issue} and record evidence in "
        ".modeflow/verification-evidence/{issue}.json before exiting.",
    ),
    "verification_failed": (
        "Verification failed",
        "The last verification for issue #{issue} did not pass. Fix the reported "
        "problems, then re-run verification.",
    ),
    "verification_stale": (
        "Verification evidence is stale",
        "Code was committed after the last verification for issue #{issue}. "
        "Re-run verification against the latest commit.",
    ),
}


def artifact_message(artifact: str, issue: Optional[int]) -> Optional[Tuple[str, str]]:
    """(title, body) for an evidence problem, or None for unknown kinds."""
    template = ARTIFACT_MESSAGES.get(artifact)
    if template is None:
        return None
    title, body = template
    return title, body.format(issue=issue if issue is not None else "?")
