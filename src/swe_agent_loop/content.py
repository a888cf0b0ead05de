"""Message content blocks.

Each block kind is its own frozen dataclass; ``ContentBlock`` is the union of
all of them. The JSON form written to the message store uses a ``type`` tag per
block, and ``block_from_dict`` rejects anything it cannot map back onto one of
the known kinds.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from swe_agent_loop.errors import ContentValidationError

IMAGE_FORMATS = ("png", "jpeg", "gif", "webp")


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ImageBlock:
    format: str
    blob_ref: str | None = None
    data: bytes | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ReasoningBlock:
    text: str
    signature: str | None = None


@dataclass(frozen=True)
class CachePointBlock:
    pass


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: list[ContentBlock] = field(default_factory=list)
    is_error: bool = False


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, ImageBlock, ReasoningBlock, CachePointBlock]


@dataclass
class Message:
    role: str
    content: list[ContentBlock]


def block_to_dict(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if isinstance(block, ToolResultBlock):
        result: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": [block_to_dict(b) for b in block.content],
        }
        if block.is_error:
            result["is_error"] = True
        return result
    if isinstance(block, ImageBlock):
        if block.blob_ref is None:
            raise ContentValidationError("Image bytes must be offloaded before the block is serialized")
        return {"type": "image", "format": block.format, "blob_ref": block.blob_ref}
    if isinstance(block, ReasoningBlock):
        return {"type": "reasoning", "text": block.text, "signature": block.signature}
    if isinstance(block, CachePointBlock):
        return {"type": "cache_point"}
    raise ContentValidationError(f"Unknown content block: {block!r}")


def block_from_dict(raw: Any) -> ContentBlock:
    if not isinstance(raw, dict):
        raise ContentValidationError(f"Content block must be an object, got {type(raw).__name__}")
    block_type = raw.get("type")
    try:
        if block_type == "text":
            return TextBlock(text=_require_str(raw, "text"))
        if block_type == "tool_use":
            tool_input = raw.get("input", {})
            if not isinstance(tool_input, dict):
                raise ContentValidationError("tool_use input must be an object")
            return ToolUseBlock(id=_require_str(raw, "id"), name=_require_str(raw, "name"), input=tool_input)
        if block_type == "tool_result":
            nested = raw.get("content", [])
            if not isinstance(nested, list):
                raise ContentValidationError("tool_result content must be a list")
            return ToolResultBlock(
                tool_use_id=_require_str(raw, "tool_use_id"),
                content=[block_from_dict(b) for b in nested],
                is_error=bool(raw.get("is_error", False)),
            )
        if block_type == "image":
            if "data" in raw or "bytes" in raw:
                raise ContentValidationError("Stored image blocks must not carry inline bytes")
            return ImageBlock(format=_require_str(raw, "format"), blob_ref=_require_str(raw, "blob_ref"))
        if block_type == "reasoning":
            signature = raw.get("signature")
            return ReasoningBlock(text=_require_str(raw, "text"), signature=signature if isinstance(signature, str) else None)
        if block_type == "cache_point":
            return CachePointBlock()
    except KeyError as ex:
        raise ContentValidationError(f"{block_type} block is missing field {ex.args[0]!r}") from ex
    raise ContentValidationError(f"Unknown content block type: {block_type!r}")


def content_to_json(content: list[ContentBlock]) -> str:
    return json.dumps([block_to_dict(b) for b in content], ensure_ascii=True)


def content_from_json(content_json: str) -> list[ContentBlock]:
    try:
        parsed = json.loads(content_json)
    except json.JSONDecodeError as ex:
        raise ContentValidationError(f"Content is not valid JSON: {ex}") from ex
    if not isinstance(parsed, list):
        raise ContentValidationError("Content must be a list of blocks")
    return [block_from_dict(b) for b in parsed]


def final_text(content: list[ContentBlock]) -> str:
    """Text of the last text block (reasoning, when enabled, comes first)."""
    for block in reversed(content):
        if isinstance(block, TextBlock):
            return block.text
    return ""


def _require_str(raw: dict[str, Any], key: str) -> str:
    value = raw[key]
    if not isinstance(value, str):
        raise ContentValidationError(f"Field {key!r} must be a string")
    return value
