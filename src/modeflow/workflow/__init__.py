"""
Task generation, guidance and native task tracking.
"""

from .task_factory import AgentDelegation, NativeTask, TaskFactory, TaskStatus, build_tasks
from .placeholders import PlaceholderValues, apply_placeholders, summarize_tasks
from .guidance import PhaseTitle, RequiredTodo, WorkflowGuidance, build_guidance
from .native_tasks import (
    TaskRecord,
    clear_native_tasks,
    count_pending_tasks,
    derive_active_form,
    first_pending_task,
    pending_task_titles,
    read_native_tasks,
    write_native_tasks,
)
from .task_tracker import TaskTracker

__all__ = [
    "AgentDelegation",
    "NativeTask",
    "TaskFactory",
    "TaskStatus",
    "build_tasks",
    "PlaceholderValues",
    "apply_placeholders",
    "summarize_tasks",
    "PhaseTitle",
    "RequiredTodo",
    "WorkflowGuidance",
    "build_guidance",
    "TaskRecord",
    "clear_native_tasks",
    "count_pending_tasks",
    "derive_active_form",
    "first_pending_task",
    "pending_task_titles",
    "read_native_tasks",
    "write_native_tasks",
    "TaskTracker",
]
