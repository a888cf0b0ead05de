import unittest
from types import SimpleNamespace

from swe_agent_loop.content import (
    CachePointBlock,
    ImageBlock,
    Message,
    ReasoningBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from swe_agent_loop.errors import EngineError
from swe_agent_loop.inference.models import ModelConfig, get_model_config, region_prefix
from swe_agent_loop.inference.request import (
    ConverseRequest,
    ToolConfig,
    from_anthropic_response,
    shape_request,
    should_enable_reasoning,
    strip_unsupported_tool_choice,
    to_anthropic_params,
)
from swe_agent_loop.tool import ToolSpec

_ECHO = ToolSpec(name="echo", description="Echo text.", json_schema={"type": "object", "properties": {}})


def _user(text: str) -> Message:
    return Message(role="user", content=[TextBlock(text=text)])


def _cached_request() -> ConverseRequest:
    return ConverseRequest(
        messages=[Message(role="user", content=[TextBlock(text="hi"), CachePointBlock()])],
        system=[TextBlock(text="You are helpful."), CachePointBlock()],
        tool_config=ToolConfig(tools=[_ECHO, CachePointBlock()]),
    )


class ModelTableTests(unittest.TestCase):
    def test_unknown_model_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            get_model_config("gpt-4")

    def test_bedrock_ids_carry_region_prefix(self) -> None:
        config = get_model_config("sonnet3.7")
        self.assertEqual("eu.anthropic.claude-3-7-sonnet-20250219-v1:0", config.model_id("bedrock", "eu"))
        self.assertEqual("claude-3-7-sonnet-20250219", config.model_id("anthropic"))

    def test_region_prefix(self) -> None:
        self.assertEqual("us", region_prefix("us-west-2"))
        self.assertEqual("eu", region_prefix("eu-central-1"))
        self.assertEqual("apac", region_prefix("ap-northeast-1"))


class ToolChoiceTests(unittest.TestCase):
    def test_unsupported_tool_choice_is_dropped(self) -> None:
        config = ModelConfig(key="limited", bedrock_id="b", anthropic_id="a", tool_choice_support=frozenset({"auto"}))
        stripped = strip_unsupported_tool_choice(ToolConfig(tools=[_ECHO], tool_choice={"type": "any"}), config)
        self.assertIsNone(stripped.tool_choice)
        self.assertEqual([_ECHO], stripped.tools)

    def test_supported_tool_choice_is_kept(self) -> None:
        config = ModelConfig(key="limited", bedrock_id="b", anthropic_id="a", tool_choice_support=frozenset({"auto"}))
        kept = strip_unsupported_tool_choice(ToolConfig(tool_choice={"type": "auto"}), config)
        self.assertEqual({"type": "auto"}, kept.tool_choice)

    def test_absent_tool_config_stays_absent(self) -> None:
        self.assertIsNone(strip_unsupported_tool_choice(None, get_model_config("haiku3.5")))


class ReasoningGateTests(unittest.TestCase):
    def setUp(self) -> None:
        self._config = get_model_config("sonnet3.7")

    def test_enabled_for_plain_history(self) -> None:
        self.assertTrue(should_enable_reasoning([_user("hi")], None, self._config))

    def test_disabled_without_model_support(self) -> None:
        self.assertFalse(should_enable_reasoning([_user("hi")], None, get_model_config("haiku3.5")))

    def test_disabled_when_tool_choice_is_set(self) -> None:
        tool_config = ToolConfig(tools=[_ECHO], tool_choice={"type": "any"})
        self.assertFalse(should_enable_reasoning([_user("hi")], tool_config, self._config))

    def test_disabled_after_tool_use_issued_without_reasoning(self) -> None:
        messages = [
            _user("hi"),
            Message(role="assistant", content=[TextBlock(text="let me"), ToolUseBlock(id="t1", name="echo")]),
            Message(role="user", content=[ToolResultBlock(tool_use_id="t1"), CachePointBlock()]),
        ]
        self.assertFalse(should_enable_reasoning(messages, None, self._config))

    def test_enabled_after_tool_use_that_started_with_reasoning(self) -> None:
        messages = [
            _user("hi"),
            Message(
                role="assistant",
                content=[ReasoningBlock(text="plan", signature="s"), ToolUseBlock(id="t1", name="echo"), CachePointBlock()],
            ),
            Message(role="user", content=[ToolResultBlock(tool_use_id="t1")]),
        ]
        self.assertTrue(should_enable_reasoning(messages, None, self._config))

    def test_reasoning_blocks_are_removed_when_disabled(self) -> None:
        request = ConverseRequest(
            messages=[
                _user("hi"),
                Message(role="assistant", content=[ReasoningBlock(text="plan"), TextBlock(text="done")]),
                _user("more"),
            ],
        )
        shaped = shape_request(request, get_model_config("haiku3.5"), 1024)
        self.assertIsNone(shaped.reasoning_budget_tokens)
        self.assertEqual([TextBlock(text="done")], shaped.messages[1].content)


class CacheShapingTests(unittest.TestCase):
    def test_cache_points_removed_for_model_without_cache_support(self) -> None:
        shaped = shape_request(_cached_request(), get_model_config("haiku3.5"), 1024)
        self.assertEqual([TextBlock(text="You are helpful.")], shaped.system)
        self.assertEqual([_ECHO], shaped.tool_config.tools)
        self.assertEqual([TextBlock(text="hi")], shaped.messages[0].content)
        self.assertEqual(4096, shaped.max_tokens)

    def test_cache_points_kept_for_model_with_cache_support(self) -> None:
        shaped = shape_request(_cached_request(), get_model_config("sonnet3.7"), 2048)
        self.assertIsInstance(shaped.system[-1], CachePointBlock)
        self.assertIsInstance(shaped.tool_config.tools[-1], CachePointBlock)
        self.assertIsInstance(shaped.messages[0].content[-1], CachePointBlock)
        self.assertEqual(8192, shaped.max_tokens)
        self.assertEqual(2048, shaped.reasoning_budget_tokens)

    def test_shaping_does_not_mutate_the_request(self) -> None:
        request = _cached_request()
        shape_request(request, get_model_config("haiku3.5"), 1024)
        self.assertIsInstance(request.messages[0].content[-1], CachePointBlock)


class AnthropicParamsTests(unittest.TestCase):
    def test_cache_points_become_cache_control(self) -> None:
        shaped = shape_request(_cached_request(), get_model_config("sonnet3.7"), 1024)
        params = to_anthropic_params(shaped, "model-x")

        self.assertEqual("model-x", params["model"])
        self.assertEqual({"type": "ephemeral"}, params["system"][0]["cache_control"])
        self.assertEqual({"type": "ephemeral"}, params["tools"][0]["cache_control"])
        self.assertEqual({"type": "ephemeral"}, params["messages"][0]["content"][0]["cache_control"])
        self.assertEqual({"type": "enabled", "budget_tokens": 1024}, params["thinking"])

    def test_images_are_base64_encoded(self) -> None:
        shaped = shape_request(
            ConverseRequest(messages=[Message(role="user", content=[ImageBlock(format="png", data=b"abc")])]),
            get_model_config("haiku3.5"),
            1024,
        )
        source = to_anthropic_params(shaped, "m")["messages"][0]["content"][0]["source"]
        self.assertEqual({"type": "base64", "media_type": "image/png", "data": "YWJj"}, source)

    def test_image_without_bytes_is_an_error(self) -> None:
        shaped = shape_request(
            ConverseRequest(messages=[Message(role="user", content=[ImageBlock(format="png", blob_ref="c/x.png")])]),
            get_model_config("haiku3.5"),
            1024,
        )
        with self.assertRaises(EngineError):
            to_anthropic_params(shaped, "m")

    def test_empty_text_blocks_are_skipped(self) -> None:
        shaped = shape_request(
            ConverseRequest(messages=[Message(role="user", content=[TextBlock(text=""), TextBlock(text="x")])]),
            get_model_config("haiku3.5"),
            1024,
        )
        self.assertEqual([{"type": "text", "text": "x"}], to_anthropic_params(shaped, "m")["messages"][0]["content"])

    def test_response_blocks_and_usage_are_mapped(self) -> None:
        response = SimpleNamespace(
            stop_reason="tool_use",
            content=[
                SimpleNamespace(type="thinking", thinking="plan", signature="sig"),
                SimpleNamespace(type="text", text="calling"),
                SimpleNamespace(type="tool_use", id="t1", name="echo", input={"text": "x"}),
            ],
            usage=SimpleNamespace(
                input_tokens=100,
                output_tokens=20,
                cache_read_input_tokens=300,
                cache_creation_input_tokens=None,
            ),
        )
        result = from_anthropic_response(response, "model-x")
        self.assertEqual("tool_use", result.stop_reason)
        self.assertEqual(
            [
                ReasoningBlock(text="plan", signature="sig"),
                TextBlock(text="calling"),
                ToolUseBlock(id="t1", name="echo", input={"text": "x"}),
            ],
            result.message.content,
        )
        self.assertEqual(300, result.usage.cache_read_tokens)
        self.assertEqual(0, result.usage.cache_write_tokens)


if __name__ == "__main__":
    unittest.main()
