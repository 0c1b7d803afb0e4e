from .models import Task, TaskOptions, TaskState
from .task_state import (
    InMemoryTaskStore,
    SqliteTaskStore,
    TaskStore,
    build_task_store,
)

__all__ = [
    "Task",
    "TaskOptions",
    "TaskState",
    "TaskStore",
    "InMemoryTaskStore",
    "SqliteTaskStore",
    "build_task_store",
]
