"""Task tracking module for nsx-serviceaccount.

This module provides a simple task tracking service that allows
controllers to run and wait for asynchronous tasks.
"""

from .service import TaskService, TaskServiceImpl

__all__ = ["TaskService", "TaskServiceImpl"]
