"""Token-budgeted prompt construction.

``middle_out_filter`` keeps the start of a conversation (where the task is
usually stated) and its most recent records, and drops the middle once the
stored token counts no longer fit the budget. ``CachePointTracker`` marks the
prompt-cache boundaries that the next call can reuse.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from swe_agent_loop.content import CachePointBlock, Message
from swe_agent_loop.store.models import MessageRecord, MessageType

MAX_INPUT_TOKEN = 80_000
HEAD_RATIO = 0.6
TAIL_RATIO = 1 - HEAD_RATIO


@dataclass
class FilterResult:
    records: list[MessageRecord]
    total_token_count: int


def total_token_count(records: list[MessageRecord]) -> int:
    return sum(r.token_count for r in records)


def middle_out_filter(history: list[MessageRecord], max_tokens: int = MAX_INPUT_TOKEN) -> FilterResult:
    total = total_token_count(history)
    if total < max_tokens:
        return FilterResult(records=list(history), total_token_count=total)

    logger.info(f"Applying middle-out filter: {total:,} stored tokens, budget {max_tokens:,}")

    head: list[int] = []
    cumulative = 0
    for index, record in enumerate(history):
        cumulative += record.token_count
        if index == 0 or cumulative <= max_tokens * HEAD_RATIO:
            head.append(index)
        else:
            break

    tail: list[int] = []
    cumulative = 0
    for index in range(len(history) - 1, -1, -1):
        cumulative += history[index].token_count
        if cumulative <= max_tokens * TAIL_RATIO:
            tail.insert(0, index)
        else:
            break

    # A toolUse and its toolResult are never split across the dropped middle.
    # Record 0 always stays; when head and tail touch, the boundary pair is intact.
    adjacent = bool(head and tail) and head[-1] + 1 >= tail[0]
    if not adjacent:
        if history[head[-1]].message_type is MessageType.TOOL_USE:
            if len(head) > 1:
                head.pop()
            elif len(history) > 1 and history[1].message_type is MessageType.TOOL_RESULT:
                head.append(1)
        if tail and history[tail[0]].message_type is MessageType.TOOL_RESULT:
            tail.pop(0)

    kept_head = set(head)
    indices = head + [i for i in tail if i not in kept_head]
    records = [history[i] for i in indices]
    return FilterResult(records=records, total_token_count=total_token_count(records))


class CachePointTracker:
    """Places prompt-cache markers across the turns of one loop.

    Each call tags the message at the previous turn's boundary and the current
    last message; the last message then becomes the boundary for the next turn.
    """

    def __init__(self, initial_length: int):
        self.previous_index = initial_length - 3 if initial_length > 2 else initial_length - 1

    def assign(self, messages: list[Message]) -> list[Message]:
        last_index = len(messages) - 1
        for index in sorted({self.previous_index, last_index}):
            if 0 <= index < len(messages):
                message = messages[index]
                messages[index] = Message(role=message.role, content=[*message.content, CachePointBlock()])
        self.previous_index = last_index
        return messages
