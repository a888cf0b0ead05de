from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from swe_agent_loop.content import ContentBlock, Message


class MessageType(str, Enum):
    USER_MESSAGE = "userMessage"
    TOOL_USE = "toolUse"
    TOOL_RESULT = "toolResult"
    ASSISTANT = "assistant"


@dataclass
class MessageRecord:
    conversation_id: str
    sequence_key: str
    role: str
    message_type: MessageType
    content: list[ContentBlock] = field(default_factory=list)
    token_count: int = 0
    author_user_id: str | None = None

    def to_message(self) -> Message:
        return Message(role=self.role, content=list(self.content))


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0


@dataclass(frozen=True)
class TokenLedgerEntry:
    conversation_id: str
    model_id: str
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int
    cache_write_tokens: int
