"""Log sinks for the engine.

Every record carries a ``conversation_id`` extra: engine code binds it with
``logger.bind(conversation_id=...)`` and records logged outside a conversation
show ``-``. Sinks are declared in ``config.json`` under ``LogConsumers``, e.g.
``[{"type": "console"}, {"type": "file", "path": "logs/worker.log", "serialize": true}]``.
"""

import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>{extra[conversation_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[conversation_id]} | {name}:{line} - {message}"


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


def _conversation_filter(conversation_id: str | None):
    if conversation_id is None:
        return None
    return lambda record: record["extra"].get("conversation_id") == conversation_id


class ConsoleLogConsumer:
    def __init__(self, conversation_id: str | None = None):
        self._conversation_id = conversation_id

    def register(self, level: str) -> None:
        logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, filter=_conversation_filter(self._conversation_id))

    def describe(self, level: str) -> str:
        scope = f", conversation {self._conversation_id}" if self._conversation_id else ""
        return f"console (stderr, {level}{scope})"


class FileLogConsumer:
    """Rotating file sink; ``serialize`` writes one JSON object per record."""

    def __init__(
        self,
        path: str = "logs/swe-agent.log",
        rotation: str = "10 MB",
        retention: int = 5,
        serialize: bool = False,
        conversation_id: str | None = None,
    ):
        self._path = path
        self._rotation = rotation
        self._retention = retention
        self._serialize = serialize
        self._conversation_id = conversation_id

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        # enqueue: loop tasks and to_thread workers log concurrently.
        logger.add(
            self._path,
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
            serialize=self._serialize,
            enqueue=True,
            filter=_conversation_filter(self._conversation_id),
        )

    def describe(self, level: str) -> str:
        kind = "json" if self._serialize else "text"
        return f"file ({self._path}, {kind}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}


def setup_logging(level: str = "INFO", consumers: list[dict[str, Any]] | None = None) -> list[str]:
    """Replace all sinks with the configured consumers (console only by default).

    Returns a description of each registered consumer.
    """
    logger.remove()
    logger.configure(extra={"conversation_id": "-"})

    registered: list[str] = []
    for entry in consumers if consumers is not None else [{"type": "console"}]:
        options = dict(entry)
        sink_type = options.pop("type", "")
        sink_level = options.pop("level", level)
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue
        consumer = cls(**options)
        consumer.register(sink_level)
        registered.append(consumer.describe(sink_level))
    return registered
