from __future__ import annotations

import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from loguru import logger

from swe_agent_loop.services.cancellation import CancellationToken

T = TypeVar("T")


class SessionState(Enum):
    RUNNING = "running"
    CANCELLED = "cancelled"
    FINISHED = "finished"


@dataclass
class Session:
    session_id: int
    conversation_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    finished: bool = False

    @property
    def state(self) -> SessionState:
        if self.finished:
            return SessionState.FINISHED
        if self.token.is_cancelled:
            return SessionState.CANCELLED
        return SessionState.RUNNING


class SessionController:
    """Tracks the loop executions in this process, at most one live per conversation.

    Starting a session cancels the still-running ones of the same conversation;
    they stop at their next cancellation check.
    """

    def __init__(self) -> None:
        self._sessions: list[Session] = []
        self._ids = itertools.count(1)

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions)

    def start(self, conversation_id: str) -> Session:
        for session in self._sessions:
            if session.conversation_id == conversation_id and session.state is SessionState.RUNNING:
                session.token.cancel()
                logger.bind(conversation_id=conversation_id).info(f"Cancelled session {session.session_id}")
        session = Session(session_id=next(self._ids), conversation_id=conversation_id)
        self._sessions.append(session)
        return session

    def finish(self, session: Session) -> None:
        session.finished = True

    def prune(self) -> int:
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if not s.finished]
        return before - len(self._sessions)

    async def run(self, conversation_id: str, fn: Callable[[CancellationToken], Awaitable[T]]) -> T:
        session = self.start(conversation_id)
        try:
            return await fn(session.token)
        finally:
            self.finish(session)
            self.prune()
