import asyncio
import unittest

from swe_agent_loop.idle_timer import IdleTimer
from swe_agent_loop.services.session_controller import SessionController, SessionState


class SessionControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.controller = SessionController()

    def test_new_session_cancels_running_one_for_same_conversation(self) -> None:
        first = self.controller.start("c1")
        second = self.controller.start("c1")

        self.assertIs(SessionState.CANCELLED, first.state)
        self.assertIs(SessionState.RUNNING, second.state)
        self.assertTrue(first.token.is_cancelled)

    def test_other_conversations_are_not_affected(self) -> None:
        other = self.controller.start("c2")
        self.controller.start("c1")
        self.assertIs(SessionState.RUNNING, other.state)

    def test_finished_sessions_are_pruned(self) -> None:
        first = self.controller.start("c1")
        second = self.controller.start("c2")
        self.controller.finish(first)

        self.assertIs(SessionState.FINISHED, first.state)
        self.assertEqual(1, self.controller.prune())
        self.assertEqual([second], self.controller.sessions)

    def test_cancelled_session_stays_until_finished(self) -> None:
        first = self.controller.start("c1")
        self.controller.start("c1")
        self.assertEqual(0, self.controller.prune())
        self.controller.finish(first)
        self.assertEqual(1, self.controller.prune())

    def test_run_finishes_and_prunes_even_on_error(self) -> None:
        async def failing(token):
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            asyncio.run(self.controller.run("c1", failing))
        self.assertEqual([], self.controller.sessions)

    def test_run_hands_the_session_token_to_the_loop(self) -> None:
        seen = []

        async def loop(token):
            seen.append(token.is_cancelled)
            self.controller.start("c1")
            seen.append(token.is_cancelled)
            return "done"

        self.assertEqual("done", asyncio.run(self.controller.run("c1", loop)))
        self.assertEqual([False, True], seen)


class IdleTimerTests(unittest.TestCase):
    def test_fires_after_timeout(self) -> None:
        fired = []

        async def on_idle() -> None:
            fired.append(True)

        async def scenario():
            timer = IdleTimer(0.05, on_idle)
            timer.reset()
            await asyncio.sleep(0.2)

        asyncio.run(scenario())
        self.assertEqual([True], fired)

    def test_reset_postpones_and_cancel_stops(self) -> None:
        fired = []

        async def on_idle() -> None:
            fired.append(True)

        async def scenario():
            timer = IdleTimer(0.1, on_idle)
            timer.reset()
            await asyncio.sleep(0.06)
            timer.reset()
            await asyncio.sleep(0.06)
            timer.cancel()
            await asyncio.sleep(0.15)

        asyncio.run(scenario())
        self.assertEqual([], fired)

    def test_zero_timeout_disables_the_timer(self) -> None:
        async def on_idle() -> None:
            raise AssertionError("should not fire")

        async def scenario():
            timer = IdleTimer(0, on_idle)
            timer.reset()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())


if __name__ == "__main__":
    unittest.main()
