from typing import Any

from loguru import logger

from swe_agent_loop.progress import current_progress
from swe_agent_loop.transport import ChatTransport


class ReportProgressTool:
    def __init__(self, transport: ChatTransport):
        self._transport = transport

    @property
    def name(self) -> str:
        return "report_progress"

    @property
    def description(self) -> str:
        return (
            "Send a message to the user while you keep working. Your text output only reaches the "
            "user through this tool or at the end of your turn, so use it to report progress "
            "during long operations. If this is your last action, end the turn without more text."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message": {
                    "type": "string",
                    "description": "The message to send to the user",
                },
            },
            "required": ["message"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        tracker = current_progress()
        if tracker is None:
            raise RuntimeError("report_progress can only be used inside a conversation loop")
        await self._transport.send_progress(tracker.conversation_id, tool_input["message"])
        tracker.mark_reported()
        logger.bind(conversation_id=tracker.conversation_id).debug("Progress reported")
        return "Successfully sent a message."
