"""Task queue module."""

from .task_queue import JobHandler, TaskQueue

__all__ = ["JobHandler", "TaskQueue"]
