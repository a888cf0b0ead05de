from typing import Any


class ThinkTool:
    @property
    def name(self) -> str:
        return "think"

    @property
    def description(self) -> str:
        return (
            "Think about something. It does not obtain new information or change anything; the "
            "thought is only recorded. Use it for complex reasoning, or to plan before a series "
            "of tool calls. The user does not see it."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "thought": {
                    "type": "string",
                    "description": "Your thoughts",
                },
            },
            "required": ["thought"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        return "Thought recorded."
