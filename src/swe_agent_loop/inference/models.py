from __future__ import annotations

from dataclasses import dataclass

CACHE_SECTIONS = ("system", "tool", "message")
TOOL_CHOICE_KINDS = ("any", "auto", "tool")


@dataclass(frozen=True)
class ModelConfig:
    """What one model accepts in a request."""

    key: str
    bedrock_id: str
    anthropic_id: str
    max_output_tokens: int = 4096
    cache_support: frozenset[str] = frozenset()
    reasoning_support: bool = False
    tool_choice_support: frozenset[str] = frozenset()

    def model_id(self, provider: str, region_prefix: str = "us") -> str:
        if provider == "anthropic":
            return self.anthropic_id
        return f"{region_prefix}.{self.bedrock_id}"


_ALL_TOOL_CHOICES = frozenset(TOOL_CHOICE_KINDS)

MODEL_CONFIGS: dict[str, ModelConfig] = {
    "sonnet3.5v1": ModelConfig(
        key="sonnet3.5v1",
        bedrock_id="anthropic.claude-3-5-sonnet-20240620-v1:0",
        anthropic_id="claude-3-5-sonnet-20240620",
        tool_choice_support=_ALL_TOOL_CHOICES,
    ),
    "sonnet3.5": ModelConfig(
        key="sonnet3.5",
        bedrock_id="anthropic.claude-3-5-sonnet-20241022-v2:0",
        anthropic_id="claude-3-5-sonnet-20241022",
        tool_choice_support=_ALL_TOOL_CHOICES,
    ),
    "sonnet3.7": ModelConfig(
        key="sonnet3.7",
        bedrock_id="anthropic.claude-3-7-sonnet-20250219-v1:0",
        anthropic_id="claude-3-7-sonnet-20250219",
        max_output_tokens=8192,
        cache_support=frozenset(CACHE_SECTIONS),
        reasoning_support=True,
        tool_choice_support=_ALL_TOOL_CHOICES,
    ),
    "sonnet4": ModelConfig(
        key="sonnet4",
        bedrock_id="anthropic.claude-sonnet-4-20250514-v1:0",
        anthropic_id="claude-sonnet-4-20250514",
        max_output_tokens=8192,
        cache_support=frozenset(CACHE_SECTIONS),
        reasoning_support=True,
        tool_choice_support=_ALL_TOOL_CHOICES,
    ),
    "haiku3.5": ModelConfig(
        key="haiku3.5",
        bedrock_id="anthropic.claude-3-5-haiku-20241022-v1:0",
        anthropic_id="claude-3-5-haiku-20241022",
        tool_choice_support=_ALL_TOOL_CHOICES,
    ),
}

DEFAULT_MODELS = ["sonnet3.7"]


def get_model_config(key: str) -> ModelConfig:
    try:
        return MODEL_CONFIGS[key]
    except KeyError:
        supported = ", ".join(sorted(MODEL_CONFIGS))
        raise ValueError(f"Unknown model: {key!r}. Supported: {supported}") from None


def region_prefix(aws_region: str) -> str:
    """Cross-region inference profile prefix for an AWS region."""
    if aws_region.startswith("eu-"):
        return "eu"
    if aws_region.startswith("ap-"):
        return "apac"
    return "us"
