"""
Native task tracker files.

The host keeps one JSON file per task in ``<tasks_root>/<session_id>/``,
named by 1-based position (``1.json``, ``2.json``, ...). Generated task ids
(``p2.1:impl``) are kept in ``metadata.originalId``; dependencies become
``blockedBy``/``blocks`` lists of native ids.
"""

import json
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .task_factory import NativeTask, TaskStatus
from ..logging_config import get_logger
from ..state.store import atomic_write_text

logger = get_logger(__name__)

_TITLE_PREFIX = re.compile(r"^(GH#\d+:\s*)?(P?\d+(\.\d+)?:?\s*)?", re.IGNORECASE)
_CVC_ENDING = re.compile(r"[^aeiou][aeiou][^aeiouwxy]$")


def derive_active_form(title: str) -> str:
    """
    Present-continuous form of a task title.

    ``"GH#12: P2.1: Write schema"`` → ``"Writing schema"``
    """
    stripped = _TITLE_PREFIX.sub("", title, count=1).strip()
    words = stripped.split()
    if not words:
        return title

    verb = words[0].lower()
    if verb.endswith("ing"):
        gerund = verb
    elif verb.endswith("e") and not verb.endswith("ee"):
        gerund = verb[:-1] + "ing"
    elif len(verb) <= 4 and _CVC_ENDING.search(verb):
        gerund = verb + verb[-1] + "ing"
    else:
        gerund = verb + "ing"

    words[0] = gerund[:1].upper() + gerund[1:]
    return " ".join(words)


class TaskRecord(BaseModel):
    """One native task file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    subject: str
    description: str = ""
    active_form: str = ""
    status: TaskStatus = TaskStatus.PENDING
    blocks: List[str] = Field(default_factory=list)
    blocked_by: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def original_id(self) -> Optional[str]:
        return self.metadata.get("originalId")

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2) + "\n"


def to_task_records(
    tasks: List[NativeTask],
    workflow_id: str,
    issue_number: Optional[int] = None,
) -> List[TaskRecord]:
    """Convert generated tasks into native task records."""
    native_ids = {task.id: str(index) for index, task in enumerate(tasks, start=1)}

    blocks: Dict[str, List[str]] = {}
    for task in tasks:
        for dep in task.depends_on:
            if dep in native_ids:
                blocks.setdefault(native_ids[dep], []).append(native_ids[task.id])

    records = []
    for task in tasks:
        native_id = native_ids[task.id]
        description = (task.instruction or "").strip() or (
            f"Workflow task from {workflow_id}. Original ID: {task.id}"
        )
        metadata: Dict[str, Any] = {
            "workflowId": workflow_id,
            "issueNumber": issue_number,
            "originalId": task.id,
        }
        if task.labels:
            metadata["labels"] = list(task.labels)
        if task.agent:
            metadata["agent"] = task.agent.to_dict()

        records.append(
            TaskRecord(
                id=native_id,
                subject=task.title,
                description=description,
                active_form=task.active_form or derive_active_form(task.title),
                status=task.status,
                blocks=blocks.get(native_id, []),
                blocked_by=[native_ids[d] for d in task.depends_on if d in native_ids],
                metadata=metadata,
            )
        )
    return records


def clear_native_tasks(tasks_dir: Path) -> None:
    """Remove every task file for a session."""
    if tasks_dir.exists():
        shutil.rmtree(tasks_dir)


def write_native_tasks(
    tasks_dir: Path,
    tasks: List[NativeTask],
    workflow_id: str,
    issue_number: Optional[int] = None,
) -> List[TaskRecord]:
    """
    Replace a session's task files with the given tasks.

    Args:
        tasks_dir: ``<tasks_root>/<session_id>``
        tasks: Generated tasks in order
        workflow_id: Workflow id recorded in each task's metadata
        issue_number: Linked issue, if any

    Returns:
        The records written
    """
    records = to_task_records(tasks, workflow_id, issue_number)
    clear_native_tasks(tasks_dir)
    tasks_dir.mkdir(parents=True, exist_ok=True)
    for record in records:
        write_task_record(tasks_dir, record)
    logger.debug(f"Wrote {len(records)} native task(s) to {tasks_dir}")
    return records


def write_task_record(tasks_dir: Path, record: TaskRecord) -> None:
    atomic_write_text(tasks_dir / f"{record.id}.json", record.to_json())


def read_native_tasks(tasks_dir: Path) -> List[TaskRecord]:
    """
    Read a session's task files, sorted by numeric id.

    Unreadable or malformed files are skipped.
    """
    if not tasks_dir.is_dir():
        return []

    records = []
    for path in tasks_dir.glob("*.json"):
        try:
            records.append(TaskRecord.model_validate_json(path.read_text(encoding="utf-8")))
        except (OSError, ValidationError) as e:
            logger.debug(f"Skipping unreadable task file {path}: {e}")

    records.sort(key=_numeric_id)
    return records


def _numeric_id(record: TaskRecord):
    return (0, int(record.id), "") if record.id.isdigit() else (1, 0, record.id)


def pending_tasks(tasks_dir: Path) -> List[TaskRecord]:
    return [record for record in read_native_tasks(tasks_dir) if not record.is_completed]


def count_pending_tasks(tasks_dir: Path) -> int:
    return len(pending_tasks(tasks_dir))


def pending_task_titles(tasks_dir: Path) -> List[str]:
    """``[id] subject`` for every incomplete task."""
    return [f"[{record.id}] {record.subject}" for record in pending_tasks(tasks_dir)]


def first_pending_task(tasks_dir: Path) -> Optional[TaskRecord]:
    pending = pending_tasks(tasks_dir)
    return pending[0] if pending else None
