from __future__ import annotations

import sys
from typing import Protocol, TextIO, runtime_checkable

from loguru import logger


@runtime_checkable
class ChatTransport(Protocol):
    """Outbound side of the chat surface the conversation lives in."""

    async def send_final_answer(self, conversation_id: str, text: str) -> None: ...

    async def send_progress(self, conversation_id: str, text: str) -> None: ...


class ConsoleTransport:
    """Prints agent output to a stream; used by the local CLI worker."""

    def __init__(self, stream: TextIO | None = None, *, assistant_prefix: str = "assistant> "):
        self._stream = stream or sys.stdout
        self._prefix = assistant_prefix

    async def send_final_answer(self, conversation_id: str, text: str) -> None:
        logger.bind(conversation_id=conversation_id).debug(f"Final answer: {len(text)} chars")
        self._write(f"{self._prefix}{text}")

    async def send_progress(self, conversation_id: str, text: str) -> None:
        logger.bind(conversation_id=conversation_id).debug(f"Progress: {len(text)} chars")
        self._write(f"{self._prefix}[progress] {text}")

    def _write(self, line: str) -> None:
        print(line, file=self._stream, flush=True)
