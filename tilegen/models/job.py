"""Scheduler job and tile attempt state."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .position import GridPosition


class JobState(Enum):
    """Lifecycle of a scheduled external call."""

    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class TileState(Enum):
    """Lifecycle of one tile generation attempt."""

    REQUESTED = "requested"
    COMPOSITING = "compositing"
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    RETRY = "retry"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FALLBACK = "fallback"
    DONE = "done"


@dataclass(eq=False)
class QueueJob:
    """A thunk waiting in (or running from) the request scheduler."""

    id: str
    invoke: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    priority: int = 1
    retry_count: int = 0
    state: JobState = JobState.QUEUED
    enqueue_time: float = field(default_factory=time.monotonic)
    last_error: Optional[BaseException] = None

    # Pending priority-aging timer
    _aging_handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    @property
    def attempts(self) -> int:
        """Attempts started so far (or completed, once terminal)."""
        if self.state is JobState.QUEUED:
            return self.retry_count
        return self.retry_count + 1

    @property
    def age(self) -> float:
        return time.monotonic() - self.enqueue_time

    def cancel_aging(self) -> None:
        if self._aging_handle is not None:
            self._aging_handle.cancel()
            self._aging_handle = None

    def __str__(self) -> str:
        return f"QueueJob[{self.id}] {self.state.value} priority={self.priority} retries={self.retry_count}"


@dataclass
class TileAttempt:
    """Progress record for a tile being generated."""

    position: GridPosition
    state: TileState = TileState.REQUESTED
    attempts: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    error: Optional[str] = None
    history: list[TileState] = field(default_factory=lambda: [TileState.REQUESTED])

    def advance(self, state: TileState) -> None:
        self.state = state
        self.history.append(state)
        if state is TileState.DONE:
            self.finished_at = time.time()

    @property
    def generation_time(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    @property
    def used_fallback(self) -> bool:
        return TileState.FALLBACK in self.history
