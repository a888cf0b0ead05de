from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import replace

from loguru import logger

from swe_agent_loop.content import CachePointBlock, Message, TextBlock, ToolResultBlock, ToolUseBlock, final_text
from swe_agent_loop.context_window import CachePointTracker, middle_out_filter, total_token_count
from swe_agent_loop.errors import EngineError
from swe_agent_loop.inference.client import InferenceClient
from swe_agent_loop.inference.request import ConverseRequest, ConverseResponse, ToolConfig
from swe_agent_loop.progress import ProgressTracker, bind_progress, reset_progress
from swe_agent_loop.services.cancellation import CancellationToken
from swe_agent_loop.store.content_codec import ContentOffloadCodec
from swe_agent_loop.store.message_store import MessageStore
from swe_agent_loop.store.models import MessageRecord, MessageType
from swe_agent_loop.system_prompt import render_tool_result, strip_thinking
from swe_agent_loop.tool_dispatcher import ToolDispatcher
from swe_agent_loop.transport import ChatTransport


def _noop() -> None:
    pass


class TurnEngine:
    """The tool-calling loop for one conversation.

    Reads the stored history, asks the model for the next message, runs the
    requested tools and persists each tool-use/tool-result pair, until the model
    ends its turn. Every suspension point is preceded by a cancellation check,
    and a cancelled loop stops without writing anything further.
    """

    def __init__(
        self,
        *,
        store: MessageStore,
        codec: ContentOffloadCodec,
        inference: InferenceClient,
        dispatcher: ToolDispatcher,
        transport: ChatTransport,
        candidate_models: list[str],
        system_prompt_factory: Callable[[], str],
        max_input_tokens: int = 80_000,
        progress_reminder_seconds: float = 300,
        reset_idle_timer: Callable[[], None] = _noop,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._codec = codec
        self._inference = inference
        self._dispatcher = dispatcher
        self._transport = transport
        self._candidate_models = candidate_models
        self._system_prompt_factory = system_prompt_factory
        self._max_input_tokens = max_input_tokens
        self._progress_reminder_seconds = progress_reminder_seconds
        self._reset_idle_timer = reset_idle_timer
        self._clock = clock

    async def run(self, conversation_id: str, token: CancellationToken) -> None:
        log = logger.bind(conversation_id=conversation_id)
        if token.is_cancelled:
            return
        self._reset_idle_timer()

        history = await self._store.get_history_awaiting_reply(conversation_id)
        if not history:
            log.info("No messages to reply to")
            return
        author_user_id = next((r.author_user_id for r in reversed(history) if r.author_user_id), None)

        system_prompt = self._system_prompt_factory()
        tool_specs = await self._dispatcher.tool_specs()
        tool_config = ToolConfig(tools=[*tool_specs, CachePointBlock()])

        initial = middle_out_filter(history, self._max_input_tokens).records
        cache_points = CachePointTracker(len(initial))
        appended: list[MessageRecord] = []

        tracker = ProgressTracker(conversation_id, clock=self._clock)
        progress_token = bind_progress(tracker)
        try:
            while True:
                if token.is_cancelled:
                    log.info("Loop cancelled")
                    return
                records = initial + appended
                stored_tokens = total_token_count(records)
                messages = await self._codec.rehydrate_messages([r.to_message() for r in records])
                cache_points.assign(messages)

                if token.is_cancelled:
                    log.info("Loop cancelled before inference")
                    return
                self._reset_idle_timer()
                response = await self._inference.converse(
                    conversation_id,
                    self._candidate_models,
                    ConverseRequest(
                        messages=messages,
                        system=[TextBlock(text=system_prompt), CachePointBlock()],
                        tool_config=tool_config,
                    ),
                    cancellation_token=token,
                )
                if response is None:
                    return

                if not await self._correct_token_count(conversation_id, records[-1], response, stored_tokens, token):
                    return
                output_tokens = response.usage.output_tokens if response.usage else 0

                if response.stop_reason == "tool_use":
                    pair = await self._run_tools(conversation_id, response, output_tokens, tracker, token)
                    if pair is None:
                        return
                    appended.extend(pair)
                    continue

                await self._finish(conversation_id, response, output_tokens, author_user_id, token)
                return
        finally:
            reset_progress(progress_token)

    async def _correct_token_count(
        self,
        conversation_id: str,
        last: MessageRecord,
        response: ConverseResponse,
        stored_tokens: int,
        token: CancellationToken,
    ) -> bool:
        """Attribute the unexplained part of the prompt to the newest user-side record."""
        if last.role != "user" or response.usage is None:
            return True
        usage = response.usage
        corrected = usage.input_tokens + usage.cache_read_tokens + usage.cache_write_tokens - stored_tokens
        if corrected < 0:
            # Reasoning blocks dropped from earlier turns still count in stored totals.
            logger.bind(conversation_id=conversation_id).warning(
                f"Corrected token count for {last.sequence_key} is negative ({corrected})"
            )
        if token.is_cancelled:
            return False
        await self._store.update_token_count(conversation_id, last.sequence_key, corrected)
        last.token_count = corrected
        return True

    async def _run_tools(
        self,
        conversation_id: str,
        response: ConverseResponse,
        output_tokens: int,
        tracker: ProgressTracker,
        token: CancellationToken,
    ) -> list[MessageRecord] | None:
        tool_uses = [b for b in response.message.content if isinstance(b, ToolUseBlock)]
        if not tool_uses:
            raise EngineError("Model stopped for tool use without requesting a tool")

        if token.is_cancelled:
            return None
        result_message = await self._dispatcher.execute_all(tool_uses)
        force_report = tracker.seconds_since_report() > self._progress_reminder_seconds
        result_message = Message(
            role="user",
            content=[_render(block, force_report) for block in result_message.content],
        )

        if token.is_cancelled:
            return None
        return await self._store.append_pair(conversation_id, response.message, result_message, output_tokens)

    async def _finish(
        self,
        conversation_id: str,
        response: ConverseResponse,
        output_tokens: int,
        author_user_id: str | None,
        token: CancellationToken,
    ) -> None:
        log = logger.bind(conversation_id=conversation_id)
        final = response.message
        mention = f"<@{author_user_id}>" if author_user_id else ""
        if token.is_cancelled:
            return
        if not final.content:
            log.info("Final message is empty; not persisted")
            if mention:
                await self._transport.send_final_answer(conversation_id, mention)
            return
        await self._store.append(conversation_id, final, output_tokens, MessageType.ASSISTANT)

        # With reasoning enabled the answer is the last text block.
        text = strip_thinking(final_text(final.content)).strip()
        if not text:
            log.info("Final message has no visible text")
            if mention:
                await self._transport.send_final_answer(conversation_id, mention)
            return
        await self._transport.send_final_answer(conversation_id, f"{mention} {text}" if mention else text)


def _render(block: object, force_report: bool) -> object:
    if not isinstance(block, ToolResultBlock):
        return block
    if len(block.content) != 1 or not isinstance(block.content[0], TextBlock):
        return block
    text = render_tool_result(block.content[0].text, force_report=force_report)
    return replace(block, content=[TextBlock(text=text)])
