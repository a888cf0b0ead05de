import asyncio
import unittest
from typing import Any

from swe_agent_loop.content import ImageBlock, TextBlock, ToolUseBlock
from swe_agent_loop.tool_dispatcher import ToolDispatcher


class _FakeTool:
    def __init__(self, name: str, result: Any = "ok", schema: dict | None = None, error: Exception | None = None):
        self._name = name
        self._result = result
        self._schema = schema or {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }
        self._error = error
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"{self._name} tool"

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._schema

    async def execute(self, tool_input: dict[str, Any]) -> Any:
        self.calls.append(tool_input)
        if self._error is not None:
            raise self._error
        return self._result


class _FakeExternal:
    def __init__(self, tools: list[_FakeTool]):
        self._tools = {t.name: t for t in tools}

    async def get_tools(self) -> list[_FakeTool]:
        return list(self._tools.values())

    async def find_tool(self, name: str) -> _FakeTool | None:
        return self._tools.get(name)


class _GatedTool(_FakeTool):
    """Finishes only once its partner has started."""

    def __init__(self, name: str, started: asyncio.Event, partner_started: asyncio.Event):
        super().__init__(name, result=name)
        self._started = started
        self._partner_started = partner_started

    async def execute(self, tool_input: dict[str, Any]) -> Any:
        self._started.set()
        await self._partner_started.wait()
        return self._result


def _use(name: str, tool_input: dict | None = None, tool_use_id: str = "t1") -> ToolUseBlock:
    return ToolUseBlock(id=tool_use_id, name=name, input={"text": "hi"} if tool_input is None else tool_input)


class ToolDispatcherTests(unittest.TestCase):
    def test_string_output_becomes_text_block(self) -> None:
        dispatcher = ToolDispatcher([_FakeTool("echo", result="hi back")])
        result = asyncio.run(dispatcher.execute(_use("echo")))
        self.assertEqual("t1", result.tool_use_id)
        self.assertFalse(result.is_error)
        self.assertEqual([TextBlock(text="hi back")], result.content)

    def test_block_output_is_passed_through(self) -> None:
        image = ImageBlock(format="webp", data=b"img")
        dispatcher = ToolDispatcher([_FakeTool("shot", result=[image])])
        result = asyncio.run(dispatcher.execute(_use("shot")))
        self.assertEqual([image], result.content)

    def test_unknown_tool_is_an_error_result(self) -> None:
        result = asyncio.run(ToolDispatcher([]).execute(_use("missing")))
        self.assertTrue(result.is_error)
        self.assertEqual(
            "Error occurred when using tool missing: tool missing is not found",
            result.content[0].text,
        )

    def test_invalid_input_is_rejected_before_execution(self) -> None:
        tool = _FakeTool("echo")
        result = asyncio.run(ToolDispatcher([tool]).execute(_use("echo", {"text": 3})))
        self.assertTrue(result.is_error)
        self.assertIn("invalid input at text", result.content[0].text)
        self.assertEqual([], tool.calls)

    def test_missing_required_field_is_rejected(self) -> None:
        result = asyncio.run(ToolDispatcher([_FakeTool("echo")]).execute(_use("echo", {})))
        self.assertTrue(result.is_error)
        self.assertIn("'text' is a required property", result.content[0].text)

    def test_tool_exception_becomes_error_result(self) -> None:
        tool = _FakeTool("boom", error=RuntimeError("disk full"))
        result = asyncio.run(ToolDispatcher([tool]).execute(_use("boom")))
        self.assertTrue(result.is_error)
        self.assertEqual("Error occurred when using tool boom: disk full", result.content[0].text)

    def test_external_tools_take_precedence(self) -> None:
        local = _FakeTool("search", result="local")
        remote = _FakeTool("search", result="remote")
        dispatcher = ToolDispatcher([local], _FakeExternal([remote]))

        result = asyncio.run(dispatcher.execute(_use("search")))
        self.assertEqual("remote", result.content[0].text)
        self.assertEqual([], local.calls)

    def test_tool_specs_list_each_name_once(self) -> None:
        dispatcher = ToolDispatcher(
            [_FakeTool("search"), _FakeTool("think")],
            _FakeExternal([_FakeTool("search"), _FakeTool("fetch")]),
        )
        names = [spec.name for spec in asyncio.run(dispatcher.tool_specs())]
        self.assertEqual(["search", "fetch", "think"], names)

    def test_execute_all_keeps_order_and_runs_concurrently(self) -> None:
        async def scenario():
            first_started, second_started = asyncio.Event(), asyncio.Event()
            dispatcher = ToolDispatcher([
                _GatedTool("first", first_started, second_started),
                _GatedTool("second", second_started, first_started),
            ])
            uses = [_use("first", tool_use_id="a"), _use("second", tool_use_id="b")]
            return await asyncio.wait_for(dispatcher.execute_all(uses), timeout=5)

        message = asyncio.run(scenario())
        self.assertEqual("user", message.role)
        self.assertEqual(["a", "b"], [r.tool_use_id for r in message.content])
        self.assertEqual(["first", "second"], [r.content[0].text for r in message.content])

    def test_failure_of_one_tool_does_not_affect_others(self) -> None:
        dispatcher = ToolDispatcher([_FakeTool("ok"), _FakeTool("bad", error=ValueError("nope"))])
        message = asyncio.run(dispatcher.execute_all([_use("bad", tool_use_id="1"), _use("ok", tool_use_id="2")]))
        self.assertEqual([True, False], [r.is_error for r in message.content])


if __name__ == "__main__":
    unittest.main()
