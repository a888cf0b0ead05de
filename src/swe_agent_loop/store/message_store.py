from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable
from typing import Any

from loguru import logger
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential

from swe_agent_loop.content import ContentBlock, Message, block_from_dict, content_from_json, content_to_json
from swe_agent_loop.errors import ContentValidationError, StoreError
from swe_agent_loop.store.content_codec import ContentOffloadCodec
from swe_agent_loop.store.database import Database, utc_now
from swe_agent_loop.store.models import MessageRecord, MessageType

SEQUENCE_KEY_WIDTH = 15


def format_sequence_key(epoch_millis: int) -> str:
    return str(epoch_millis).zfill(SEQUENCE_KEY_WIDTH)


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class MessageStore:
    """Append-only, per-conversation message log.

    Sequence keys are zero-padded millisecond timestamps. When the clock has not
    moved past the newest stored key, the next key is that key plus one, so keys
    stay strictly increasing even for writes within the same millisecond.
    """

    def __init__(
        self,
        db: Database,
        codec: ContentOffloadCodec,
        *,
        page_size: int = 100,
        clock: Callable[[], int] = _epoch_millis,
    ):
        self._db = db
        self._codec = codec
        self._page_size = max(1, page_size)
        self._clock = clock

    async def append(
        self,
        conversation_id: str,
        message: Message,
        token_count: int,
        message_type: MessageType,
        *,
        author_user_id: str | None = None,
    ) -> MessageRecord:
        row = await self._prepare_row(conversation_id, message, token_count, message_type, author_user_id)
        (record,) = await self._db.run(self._insert_rows, conversation_id, [row])
        logger.debug(
            f"Appended {record.message_type.value} {record.sequence_key} to {conversation_id} "
            f"(tokens={record.token_count})"
        )
        return record

    async def append_pair(
        self,
        conversation_id: str,
        tool_use_message: Message,
        tool_result_message: Message,
        output_token_count: int,
    ) -> list[MessageRecord]:
        rows = [
            await self._prepare_row(conversation_id, tool_use_message, output_token_count, MessageType.TOOL_USE, None),
            await self._prepare_row(conversation_id, tool_result_message, 0, MessageType.TOOL_RESULT, None),
        ]
        records = await self._db.run(self._insert_rows, conversation_id, rows)
        logger.debug(
            f"Appended tool pair {records[0].sequence_key}/{records[1].sequence_key} to {conversation_id}"
        )
        return records

    async def update_token_count(self, conversation_id: str, sequence_key: str, token_count: int) -> None:
        updated = await self._db.run(self._update_token_count, conversation_id, sequence_key, token_count)
        if updated == 0:
            raise StoreError(f"No message {sequence_key} in conversation {conversation_id}")

    async def get_history(self, conversation_id: str) -> list[MessageRecord]:
        records: list[MessageRecord] = []
        after_key = ""
        while True:
            rows = await self._db.run(self._read_page, conversation_id, after_key)
            records.extend(self._row_to_record(row) for row in rows)
            if len(rows) < self._page_size:
                return records
            after_key = rows[-1]["sequence_key"]

    async def get_history_awaiting_reply(
        self,
        conversation_id: str,
        *,
        max_attempts: int = 5,
    ) -> list[MessageRecord]:
        """Read history, retrying briefly while the newest record is not a user message.

        A freshly written user message may not be visible yet. Once the retry
        budget is spent the last read is returned as-is.
        """
        retrying = AsyncRetrying(
            retry=retry_if_result(_last_is_not_user_message),
            wait=wait_exponential(multiplier=0.1, max=1.0),
            stop=stop_after_attempt(max(1, max_attempts)),
            before_sleep=lambda state: logger.debug(
                f"Last message of {conversation_id} is not from the user yet "
                f"(attempt {state.attempt_number}/{max_attempts})"
            ),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(self.get_history, conversation_id)

    async def _prepare_row(
        self,
        conversation_id: str,
        message: Message,
        token_count: int,
        message_type: MessageType,
        author_user_id: str | None,
    ) -> tuple[Any, ...]:
        if message.role not in ("user", "assistant"):
            raise ContentValidationError(f"Unsupported message role: {message.role!r}")
        content = await self._codec.offload(conversation_id, _coerce_content(message.content))
        return (message.role, MessageType(message_type), content_to_json(content), int(token_count), author_user_id)

    def _insert_rows(self, conversation_id: str, rows: list[tuple[Any, ...]]) -> list[MessageRecord]:
        records: list[MessageRecord] = []
        try:
            with self._db.transaction() as conn:
                newest = conn.execute(
                    "SELECT MAX(sequence_key) AS k FROM messages WHERE conversation_id = ?",
                    (conversation_id,),
                ).fetchone()["k"]
                next_millis = self._clock()
                if newest is not None:
                    next_millis = max(next_millis, int(newest) + 1)
                now = utc_now()
                for offset, (role, message_type, content_json, token_count, author_user_id) in enumerate(rows):
                    key = format_sequence_key(next_millis + offset)
                    conn.execute(
                        """
                        INSERT INTO messages (
                            conversation_id, sequence_key, role, message_type,
                            content_json, token_count, author_user_id, created_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (conversation_id, key, role, message_type.value, content_json, token_count, author_user_id, now),
                    )
                    records.append(
                        MessageRecord(
                            conversation_id=conversation_id,
                            sequence_key=key,
                            role=role,
                            message_type=message_type,
                            content=content_from_json(content_json),
                            token_count=token_count,
                            author_user_id=author_user_id,
                        )
                    )
        except sqlite3.Error as ex:
            raise StoreError(f"Failed to write messages for {conversation_id}: {ex}") from ex
        return records

    def _update_token_count(self, conversation_id: str, sequence_key: str, token_count: int) -> int:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE messages SET token_count = ? WHERE conversation_id = ? AND sequence_key = ?",
                (int(token_count), conversation_id, sequence_key),
            )
            return cursor.rowcount

    def _read_page(self, conversation_id: str, after_key: str) -> list[sqlite3.Row]:
        return self._db.fetchall(
            """
            SELECT conversation_id, sequence_key, role, message_type, content_json, token_count, author_user_id
            FROM messages
            WHERE conversation_id = ? AND sequence_key > ?
            ORDER BY sequence_key ASC
            LIMIT ?
            """,
            (conversation_id, after_key, self._page_size),
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            conversation_id=row["conversation_id"],
            sequence_key=row["sequence_key"],
            role=row["role"],
            message_type=MessageType(row["message_type"]),
            content=content_from_json(row["content_json"]),
            token_count=int(row["token_count"]),
            author_user_id=row["author_user_id"],
        )


def _coerce_content(content: list[ContentBlock] | list[dict]) -> list[ContentBlock]:
    return [block_from_dict(b) if isinstance(b, dict) else b for b in content]


def _last_is_not_user_message(records: list[MessageRecord]) -> bool:
    return bool(records) and records[-1].message_type is not MessageType.USER_MESSAGE
