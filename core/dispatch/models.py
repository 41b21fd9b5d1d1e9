"""Data models for the dispatch module.

This module defines the unit of work submitted to the dispatcher, its
lifecycle states, and the dispatcher's runtime statistics.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class TaskState(str, Enum):
    """Lifecycle of a dispatch task."""

    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TaskHandler = Callable[[Any], Awaitable[Any]]


@dataclass
class DispatchTask:
    """A payload plus the coroutine function that processes it.

    A task is submitted once and executed at most once. The dispatcher
    never retries a failed task.
    """

    payload: Any
    handler: TaskHandler
    name: str = "task"
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: TaskState = TaskState.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def is_finished(self) -> bool:
        """Whether the task reached a terminal state."""
        return self.state in (TaskState.COMPLETED, TaskState.FAILED)


class DispatcherStats(BaseModel):
    """Point-in-time view of the dispatcher."""

    model_config = ConfigDict(frozen=True)

    running: bool = Field(..., description="Accepting submissions")
    workers: int = Field(..., description="Live worker count")
    idle_workers: int = Field(..., description="Workers waiting for a task")
    queued: int = Field(..., description="Tasks waiting in the queue")
    submitted: int = Field(default=0, description="Tasks accepted")
    completed: int = Field(default=0, description="Tasks completed")
    failed: int = Field(default=0, description="Tasks failed")
    caller_runs: int = Field(default=0, description="Tasks run on the submitter")
