"""
Dependency-aware view over a session's native task files.

Dependency order is fixed when tasks are generated; the tracker double
checks it before moving a task forward.
"""

from pathlib import Path
from typing import Dict, List, Optional

from .native_tasks import TaskRecord, read_native_tasks, write_task_record
from .task_factory import TaskStatus
from ..errors import TaskDependencyError, TaskNotFoundError
from ..logging_config import get_logger

logger = get_logger(__name__)


class TaskTracker:
    """
    Reads and updates native task files for one session.

    Features:
    - Lookup by native id (``3``) or generated id (``p2.1:impl``)
    - Ready-task discovery
    - Refuses to start or complete a task whose dependencies are incomplete
    """

    def __init__(self, tasks_dir: Path):
        """
        Initialize tracker.

        Args:
            tasks_dir: ``<tasks_root>/<session_id>``
        """
        self.tasks_dir = tasks_dir
        self.tasks: Dict[str, TaskRecord] = {}
        self.reload()

    def reload(self) -> None:
        self.tasks = {record.id: record for record in read_native_tasks(self.tasks_dir)}

    def get_task(self, task_id: str) -> Optional[TaskRecord]:
        """Get task by native id or generated id."""
        if task_id in self.tasks:
            return self.tasks[task_id]
        for record in self.tasks.values():
            if record.original_id == task_id:
                return record
        return None

    def get_all_tasks(self) -> List[TaskRecord]:
        return list(self.tasks.values())

    def incomplete_dependencies(self, record: TaskRecord) -> List[str]:
        """Native ids of dependencies that are not completed (missing counts)."""
        unmet = []
        for dep_id in record.blocked_by:
            dep = self.tasks.get(dep_id)
            if dep is None or not dep.is_completed:
                unmet.append(dep_id)
        return unmet

    def get_ready_tasks(self) -> List[TaskRecord]:
        """
        Tasks that can start now.

        A task is ready if it is pending and every dependency is completed.
        """
        return [
            record
            for record in self.tasks.values()
            if record.status == TaskStatus.PENDING and not self.incomplete_dependencies(record)
        ]

    def mark_in_progress(self, task_id: str) -> TaskRecord:
        """
        Mark task as in progress.

        Raises:
            TaskNotFoundError: Unknown task
            TaskDependencyError: A dependency is incomplete
        """
        return self._transition(task_id, TaskStatus.IN_PROGRESS)

    def mark_complete(self, task_id: str) -> TaskRecord:
        """
        Mark task as completed.

        Raises:
            TaskNotFoundError: Unknown task
            TaskDependencyError: A dependency is incomplete
        """
        return self._transition(task_id, TaskStatus.COMPLETED)

    def _transition(self, task_id: str, status: TaskStatus) -> TaskRecord:
        record = self.get_task(task_id)
        if record is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")

        unmet = self.incomplete_dependencies(record)
        if unmet:
            raise TaskDependencyError(record.id, unmet)

        updated = record.model_copy(update={"status": status})
        write_task_record(self.tasks_dir, updated)
        self.tasks[updated.id] = updated
        logger.debug(f"Task {updated.id} -> {status.value}")
        return updated

    def get_status_summary(self) -> Dict[str, int]:
        """
        Get summary of task statuses.

        Returns:
            Dict with counts for each status plus ``total`` and ``ready``
        """
        summary = {"total": len(self.tasks), "ready": len(self.get_ready_tasks())}
        for status in TaskStatus:
            summary[status.value] = 0
        for record in self.tasks.values():
            summary[record.status.value] += 1
        return summary

    def first_pending(self) -> Optional[TaskRecord]:
        for record in self.tasks.values():
            if not record.is_completed:
                return record
        return None

    def is_complete(self) -> bool:
        """Check if all tasks are complete."""
        return all(record.is_completed for record in self.tasks.values())
