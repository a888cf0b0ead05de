from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Union, runtime_checkable

from swe_agent_loop.content import ContentBlock

ToolOutput = Union[str, list[ContentBlock]]


@runtime_checkable
class Tool(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def input_schema(self) -> dict[str, Any]: ...

    async def execute(self, tool_input: dict[str, Any]) -> ToolOutput: ...


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    json_schema: dict[str, Any]


def describe(tool: Tool) -> ToolSpec:
    return ToolSpec(name=tool.name, description=tool.description, json_schema=tool.input_schema)
