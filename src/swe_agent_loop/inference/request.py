"""Request/response types for one inference call and their Messages API form.

Shaping is split into small pure functions so each capability gate can be
checked on its own; ``shape_request`` applies all of them for one model.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field, replace
from typing import Any, Union

from loguru import logger

from swe_agent_loop.content import (
    CachePointBlock,
    ContentBlock,
    ImageBlock,
    Message,
    ReasoningBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from swe_agent_loop.errors import EngineError
from swe_agent_loop.inference.models import ModelConfig
from swe_agent_loop.store.models import TokenUsage
from swe_agent_loop.tool import ToolSpec

SystemBlock = Union[TextBlock, CachePointBlock]
ToolEntry = Union[ToolSpec, CachePointBlock]


@dataclass
class ToolConfig:
    tools: list[ToolEntry] = field(default_factory=list)
    # {"type": "auto" | "any"} or {"type": "tool", "name": ...}
    tool_choice: dict[str, Any] | None = None


@dataclass
class ConverseRequest:
    messages: list[Message]
    system: list[SystemBlock] = field(default_factory=list)
    tool_config: ToolConfig | None = None


@dataclass
class ShapedRequest:
    messages: list[Message]
    system: list[SystemBlock]
    tool_config: ToolConfig | None
    max_tokens: int
    reasoning_budget_tokens: int | None = None


@dataclass
class ConverseResponse:
    stop_reason: str
    message: Message
    usage: TokenUsage | None
    model_id: str


def strip_unsupported_tool_choice(tool_config: ToolConfig | None, config: ModelConfig) -> ToolConfig | None:
    if tool_config is None or tool_config.tool_choice is None:
        return tool_config
    if tool_config.tool_choice.get("type") in config.tool_choice_support:
        return tool_config
    logger.debug(f"{config.key} does not support tool choice {tool_config.tool_choice}; dropping it")
    return replace(tool_config, tool_choice=None)


def should_enable_reasoning(messages: list[Message], tool_config: ToolConfig | None, config: ModelConfig) -> bool:
    if not config.reasoning_support:
        return False
    if tool_config is not None and tool_config.tool_choice is not None:
        return False
    if len(messages) >= 2:
        previous = [b for b in messages[-2].content if not isinstance(b, CachePointBlock)]
        # A tool use issued without reasoning cannot be continued with reasoning on.
        if previous and isinstance(previous[-1], ToolUseBlock) and not isinstance(previous[0], ReasoningBlock):
            return False
    return True


def strip_reasoning(messages: list[Message]) -> list[Message]:
    return [
        Message(role=m.role, content=[b for b in m.content if not isinstance(b, ReasoningBlock)])
        for m in messages
    ]


def strip_cache_points(blocks: list) -> list:
    return [b for b in blocks if not isinstance(b, CachePointBlock)]


def shape_request(request: ConverseRequest, config: ModelConfig, reasoning_budget_tokens: int) -> ShapedRequest:
    tool_config = strip_unsupported_tool_choice(request.tool_config, config)
    messages = [Message(role=m.role, content=list(m.content)) for m in request.messages]
    system = list(request.system)

    reasoning = should_enable_reasoning(messages, tool_config, config)
    if not reasoning:
        messages = strip_reasoning(messages)

    if "system" not in config.cache_support:
        system = strip_cache_points(system)
    if "tool" not in config.cache_support and tool_config is not None:
        tool_config = replace(tool_config, tools=strip_cache_points(tool_config.tools))
    if "message" not in config.cache_support:
        messages = [Message(role=m.role, content=strip_cache_points(m.content)) for m in messages]

    return ShapedRequest(
        messages=messages,
        system=system,
        tool_config=tool_config,
        max_tokens=config.max_output_tokens,
        reasoning_budget_tokens=reasoning_budget_tokens if reasoning else None,
    )


def to_anthropic_params(shaped: ShapedRequest, model_id: str) -> dict[str, Any]:
    params: dict[str, Any] = {
        "model": model_id,
        "max_tokens": shaped.max_tokens,
        "messages": [
            {"role": m.role, "content": _blocks_to_params(m.content)}
            for m in shaped.messages
        ],
    }
    system = _blocks_to_params(shaped.system)
    if system:
        params["system"] = system
    if shaped.tool_config is not None:
        tools = _tools_to_params(shaped.tool_config.tools)
        if tools:
            params["tools"] = tools
        if shaped.tool_config.tool_choice is not None:
            params["tool_choice"] = dict(shaped.tool_config.tool_choice)
    if shaped.reasoning_budget_tokens:
        params["thinking"] = {"type": "enabled", "budget_tokens": shaped.reasoning_budget_tokens}
    return params


def from_anthropic_response(response: Any, model_id: str) -> ConverseResponse:
    content: list[ContentBlock] = []
    for block in response.content:
        if block.type == "text":
            content.append(TextBlock(text=block.text))
        elif block.type == "tool_use":
            content.append(ToolUseBlock(id=block.id, name=block.name, input=dict(block.input or {})))
        elif block.type == "thinking":
            content.append(ReasoningBlock(text=block.thinking, signature=block.signature))
        else:
            logger.debug(f"Ignoring unsupported response block type {block.type!r}")

    usage = None
    raw_usage = getattr(response, "usage", None)
    if raw_usage is not None:
        usage = TokenUsage(
            input_tokens=raw_usage.input_tokens or 0,
            output_tokens=raw_usage.output_tokens or 0,
            cache_read_tokens=getattr(raw_usage, "cache_read_input_tokens", None) or 0,
            cache_write_tokens=getattr(raw_usage, "cache_creation_input_tokens", None) or 0,
        )
    return ConverseResponse(
        stop_reason=response.stop_reason or "",
        message=Message(role="assistant", content=content),
        usage=usage,
        model_id=model_id,
    )


def _blocks_to_params(blocks: list[ContentBlock]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for block in blocks:
        if isinstance(block, CachePointBlock):
            if out:
                out[-1]["cache_control"] = {"type": "ephemeral"}
            continue
        param = _block_to_param(block)
        if param is not None:
            out.append(param)
    return out


def _block_to_param(block: ContentBlock) -> dict[str, Any] | None:
    if isinstance(block, TextBlock):
        # The API rejects empty text blocks.
        return {"type": "text", "text": block.text} if block.text else None
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if isinstance(block, ToolResultBlock):
        param: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": _blocks_to_params(block.content),
        }
        if block.is_error:
            param["is_error"] = True
        return param
    if isinstance(block, ImageBlock):
        if block.data is None:
            raise EngineError(f"Image {block.blob_ref} was not rehydrated before the inference call")
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": f"image/{block.format}",
                "data": base64.b64encode(block.data).decode("ascii"),
            },
        }
    if isinstance(block, ReasoningBlock):
        return {"type": "thinking", "thinking": block.text, "signature": block.signature or ""}
    raise EngineError(f"Unsupported content block: {block!r}")


def _tools_to_params(tools: list[ToolEntry]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for tool in tools:
        if isinstance(tool, CachePointBlock):
            if out:
                out[-1]["cache_control"] = {"type": "ephemeral"}
            continue
        out.append({"name": tool.name, "description": tool.description, "input_schema": tool.json_schema})
    return out
