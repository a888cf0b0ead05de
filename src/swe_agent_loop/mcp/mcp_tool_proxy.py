import base64
import json
from typing import Any

from loguru import logger
from mcp import ClientSession
from mcp.types import ImageContent, TextContent

from swe_agent_loop.content import ContentBlock, ImageBlock, TextBlock


class McpToolError(RuntimeError):
    pass


def to_content_blocks(content: list[Any]) -> list[ContentBlock]:
    blocks: list[ContentBlock] = []
    for item in content:
        if isinstance(item, TextContent):
            blocks.append(TextBlock(text=item.text))
        elif isinstance(item, ImageContent):
            image_format = item.mimeType.split("/", 1)[-1]
            blocks.append(ImageBlock(format=image_format, data=base64.b64decode(item.data)))
        else:
            raise McpToolError(f"Unsupported MCP content type: {type(item).__name__}")
    return blocks


class McpToolProxy:
    """Adapter that wraps an MCP tool definition + session into a Tool Protocol object."""

    def __init__(
        self,
        server_name: str,
        tool_name: str,
        tool_description: str | None,
        tool_input_schema: dict[str, Any],
        session: ClientSession,
    ):
        self._server_name = server_name
        self._tool_name = tool_name
        self._description = tool_description or ""
        self._input_schema = tool_input_schema
        self._session = session

    @property
    def name(self) -> str:
        return self._tool_name

    @property
    def server_name(self) -> str:
        return self._server_name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._input_schema

    async def execute(self, tool_input: dict[str, Any]) -> list[ContentBlock]:
        logger.debug("MCP tool call: {name} | input: {input}", name=self.name, input=json.dumps(tool_input, default=str))
        result = await self._session.call_tool(self._tool_name, arguments=tool_input)
        if result.isError:
            text = "\n".join(block.text for block in result.content if isinstance(block, TextContent))
            logger.warning("MCP tool error: {name} | result: {output}", name=self.name, output=text[:500])
            raise McpToolError(text or "MCP tool reported an error")
        blocks = to_content_blocks(result.content)
        logger.debug(
            "MCP tool result: {name} | blocks={count} | types={types}",
            name=self.name,
            count=len(blocks),
            types=[type(b).__name__ for b in blocks],
        )
        return blocks or [TextBlock(text="(no output)")]
