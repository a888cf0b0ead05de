from __future__ import annotations

from swe_agent_loop.store.database import Database, utc_now
from swe_agent_loop.store.models import TokenLedgerEntry, TokenUsage


class TokenLedger:
    """Cumulative token usage per (conversation, model)."""

    def __init__(self, db: Database):
        self._db = db

    async def increment(self, conversation_id: str, model_id: str, usage: TokenUsage) -> None:
        await self._db.run(self._increment, conversation_id, model_id, usage)

    async def get(self, conversation_id: str, model_id: str) -> TokenLedgerEntry | None:
        rows = await self._db.run(
            self._db.fetchall,
            """
            SELECT conversation_id, model_id, input_tokens, output_tokens, cache_read_tokens, cache_write_tokens
            FROM token_usage
            WHERE conversation_id = ? AND model_id = ?
            """,
            (conversation_id, model_id),
        )
        if not rows:
            return None
        row = rows[0]
        return TokenLedgerEntry(
            conversation_id=row["conversation_id"],
            model_id=row["model_id"],
            input_tokens=int(row["input_tokens"]),
            output_tokens=int(row["output_tokens"]),
            cache_read_tokens=int(row["cache_read_tokens"]),
            cache_write_tokens=int(row["cache_write_tokens"]),
        )

    def _increment(self, conversation_id: str, model_id: str, usage: TokenUsage) -> None:
        # Negative deltas would break monotonicity.
        deltas = (
            max(0, usage.input_tokens),
            max(0, usage.output_tokens),
            max(0, usage.cache_read_tokens),
            max(0, usage.cache_write_tokens),
        )
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO token_usage (
                    conversation_id, model_id,
                    input_tokens, output_tokens, cache_read_tokens, cache_write_tokens, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (conversation_id, model_id) DO UPDATE SET
                    input_tokens = input_tokens + excluded.input_tokens,
                    output_tokens = output_tokens + excluded.output_tokens,
                    cache_read_tokens = cache_read_tokens + excluded.cache_read_tokens,
                    cache_write_tokens = cache_write_tokens + excluded.cache_write_tokens,
                    updated_at = excluded.updated_at
                """,
                (conversation_id, model_id, *deltas, utc_now()),
            )
