import asyncio

from swe_agent_loop.store import TokenUsage
from tests.store.base import MessageStoreTestCase


class TokenLedgerTests(MessageStoreTestCase):
    def test_unknown_pair_has_no_entry(self) -> None:
        self.assertIsNone(asyncio.run(self._ledger.get("c1", "model-a")))

    def test_increments_accumulate(self) -> None:
        async def scenario():
            await self._ledger.increment("c1", "model-a", TokenUsage(input_tokens=100, output_tokens=20))
            await self._ledger.increment(
                "c1",
                "model-a",
                TokenUsage(input_tokens=50, output_tokens=5, cache_read_tokens=30, cache_write_tokens=10),
            )
            return await self._ledger.get("c1", "model-a")

        entry = asyncio.run(scenario())
        self.assertEqual(150, entry.input_tokens)
        self.assertEqual(25, entry.output_tokens)
        self.assertEqual(30, entry.cache_read_tokens)
        self.assertEqual(10, entry.cache_write_tokens)

    def test_models_and_conversations_are_tracked_separately(self) -> None:
        async def scenario():
            await self._ledger.increment("c1", "model-a", TokenUsage(input_tokens=1))
            await self._ledger.increment("c1", "model-b", TokenUsage(input_tokens=2))
            await self._ledger.increment("c2", "model-a", TokenUsage(input_tokens=4))
            return (
                await self._ledger.get("c1", "model-a"),
                await self._ledger.get("c1", "model-b"),
                await self._ledger.get("c2", "model-a"),
            )

        a, b, c = asyncio.run(scenario())
        self.assertEqual((1, 2, 4), (a.input_tokens, b.input_tokens, c.input_tokens))

    def test_totals_never_decrease(self) -> None:
        async def scenario():
            await self._ledger.increment("c1", "model-a", TokenUsage(input_tokens=10, output_tokens=10))
            await self._ledger.increment("c1", "model-a", TokenUsage(input_tokens=-5, output_tokens=0))
            return await self._ledger.get("c1", "model-a")

        entry = asyncio.run(scenario())
        self.assertEqual(10, entry.input_tokens)
        self.assertEqual(10, entry.output_tokens)

    def test_concurrent_increments_are_not_lost(self) -> None:
        async def scenario():
            await asyncio.gather(
                *(self._ledger.increment("c1", "model-a", TokenUsage(output_tokens=1)) for _ in range(20))
            )
            return await self._ledger.get("c1", "model-a")

        self.assertEqual(20, asyncio.run(scenario()).output_tokens)
