from __future__ import annotations

import time
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class ProgressTracker:
    """When the user last heard from the loop of one conversation."""

    conversation_id: str
    clock: Callable[[], float] = field(default=time.time, repr=False)
    last_reported_at: float = 0.0

    def mark_reported(self) -> None:
        self.last_reported_at = self.clock()

    def seconds_since_report(self) -> float:
        return self.clock() - self.last_reported_at


_current: ContextVar[ProgressTracker | None] = ContextVar("progress_tracker", default=None)


def bind_progress(tracker: ProgressTracker) -> Token:
    return _current.set(tracker)


def reset_progress(token: Token) -> None:
    _current.reset(token)


def current_progress() -> ProgressTracker | None:
    return _current.get()
