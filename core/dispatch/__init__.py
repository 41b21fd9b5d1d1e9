"""Dispatch module.

This module provides the bounded worker pool that executes webhook
work in the background, with caller-runs degradation under overload.
"""

from core.dispatch.dispatcher import Dispatcher, DispatcherConfig
from core.dispatch.models import DispatcherStats, DispatchTask, TaskHandler, TaskState

__all__ = [
    "Dispatcher",
    "DispatcherConfig",
    "DispatcherStats",
    "DispatchTask",
    "TaskHandler",
    "TaskState",
]
