from __future__ import annotations

import asyncio
import json
from typing import Protocol

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from loguru import logger

from swe_agent_loop.content import ContentBlock, Message, TextBlock, ToolResultBlock, ToolUseBlock
from swe_agent_loop.tool import Tool, ToolSpec, describe


class ExternalToolSource(Protocol):
    async def get_tools(self) -> list[Tool]: ...

    async def find_tool(self, name: str) -> Tool | None: ...


def tool_error_text(name: str, detail: object) -> str:
    return f"Error occurred when using tool {name}: {detail}"


class ToolDispatcher:
    """Runs tool-use requests against MCP tools first, then the local registry.

    Tool-level failures (unknown tool, invalid input, an exception raised by the
    tool) become error tool results; they never propagate to the caller.
    """

    def __init__(self, local_tools: list[Tool], external: ExternalToolSource | None = None):
        self._local = {t.name: t for t in local_tools}
        self._external = external
        self._validators: dict[int, Draft7Validator] = {}

    async def tool_specs(self) -> list[ToolSpec]:
        external = await self._external.get_tools() if self._external is not None else []
        # External tools shadow local ones of the same name, matching execute().
        shadowed = {t.name for t in external}
        return [describe(t) for t in external] + [
            describe(t) for t in self._local.values() if t.name not in shadowed
        ]

    async def execute(self, tool_use: ToolUseBlock) -> ToolResultBlock:
        try:
            tool = await self._find(tool_use.name)
            if tool is None:
                raise LookupError(f"tool {tool_use.name} is not found")
            self._validate(tool, tool_use.input)
            logger.info(f"Using tool: {tool_use.name} {json.dumps(tool_use.input, default=str)[:500]}")
            output = await tool.execute(tool_use.input)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            logger.warning(f"Tool {tool_use.name} failed: {type(ex).__name__}: {ex}")
            return ToolResultBlock(
                tool_use_id=tool_use.id,
                content=[TextBlock(text=tool_error_text(tool_use.name, ex))],
                is_error=True,
            )
        return ToolResultBlock(tool_use_id=tool_use.id, content=_output_to_blocks(output))

    async def execute_all(self, tool_uses: list[ToolUseBlock]) -> Message:
        results = await asyncio.gather(*(self.execute(t) for t in tool_uses))
        return Message(role="user", content=list(results))

    async def close(self) -> None:
        for tool in self._local.values():
            close = getattr(tool, "close", None)
            if close is not None:
                await close()

    async def _find(self, name: str) -> Tool | None:
        if self._external is not None:
            tool = await self._external.find_tool(name)
            if tool is not None:
                return tool
        return self._local.get(name)

    def _validate(self, tool: Tool, tool_input: dict) -> None:
        validator = self._validators.get(id(tool))
        if validator is None:
            schema = tool.input_schema or {"type": "object"}
            try:
                Draft7Validator.check_schema(schema)
            except SchemaError as ex:
                raise ValueError(f"tool has an invalid input schema: {ex.message}") from ex
            validator = Draft7Validator(schema)
            self._validators[id(tool)] = validator
        error = next(iter(sorted(validator.iter_errors(tool_input), key=lambda e: list(e.path))), None)
        if error is not None:
            location = "/".join(str(p) for p in error.path) or "input"
            raise ValueError(f"invalid input at {location}: {error.message}")


def _output_to_blocks(output: str | list[ContentBlock]) -> list[ContentBlock]:
    if isinstance(output, str):
        return [TextBlock(text=output)]
    return list(output)
