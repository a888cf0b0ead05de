from __future__ import annotations

from loguru import logger

from swe_agent_loop.content import Message, TextBlock
from swe_agent_loop.services.cancellation import CancellationToken
from swe_agent_loop.services.session_controller import SessionController
from swe_agent_loop.store.message_store import MessageStore
from swe_agent_loop.store.models import MessageRecord, MessageType
from swe_agent_loop.transport import ChatTransport
from swe_agent_loop.turn_engine import TurnEngine


class Agent:
    """Entry points used by whatever receives chat events for a conversation."""

    def __init__(
        self,
        *,
        store: MessageStore,
        engine: TurnEngine,
        sessions: SessionController,
        transport: ChatTransport,
    ) -> None:
        self._store = store
        self._engine = engine
        self._sessions = sessions
        self._transport = transport

    async def submit_user_message(
        self,
        conversation_id: str,
        text: str,
        author_user_id: str | None = None,
    ) -> MessageRecord:
        # The real size of a user message is learned from the next inference call.
        return await self._store.append(
            conversation_id,
            Message(role="user", content=[TextBlock(text=text)]),
            0,
            MessageType.USER_MESSAGE,
            author_user_id=author_user_id,
        )

    async def on_message_received(self, conversation_id: str, token: CancellationToken) -> None:
        await self._engine.run(conversation_id, token)

    async def resume(self, conversation_id: str, token: CancellationToken) -> None:
        history = await self._store.get_history(conversation_id)
        if not history or history[-1].message_type is not MessageType.USER_MESSAGE:
            logger.bind(conversation_id=conversation_id).debug("Nothing to resume")
            return
        logger.bind(conversation_id=conversation_id).info("Resuming unanswered conversation")
        await self.on_message_received(conversation_id, token)

    async def dispatch(self, conversation_id: str, *, resume: bool = False) -> None:
        """Run the loop for a conversation under the session controller.

        A newer dispatch for the same conversation cancels this one. Fatal loop
        errors are logged and reported to the conversation instead of raised.
        """
        handler = self.resume if resume else self.on_message_received
        try:
            await self._sessions.run(conversation_id, lambda token: handler(conversation_id, token))
        except Exception as ex:
            logger.bind(conversation_id=conversation_id).exception(f"Loop failed: {ex}")
            try:
                await self._transport.send_final_answer(conversation_id, f"An error occurred: {ex}")
            except Exception as send_ex:
                logger.bind(conversation_id=conversation_id).error(f"Failed to report error: {send_ex}")
