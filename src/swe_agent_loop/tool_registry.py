from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from swe_agent_loop.tool import Tool
from swe_agent_loop.tools.execute_command_tool import ExecuteCommandTool
from swe_agent_loop.tools.file_edit_tool import FileEditTool
from swe_agent_loop.tools.read_image_tool import ReadImageTool
from swe_agent_loop.tools.report_progress_tool import ReportProgressTool
from swe_agent_loop.tools.think_tool import ThinkTool
from swe_agent_loop.tools.web.web_fetch_tool import WebFetchTool
from swe_agent_loop.transport import ChatTransport


@dataclass(frozen=True)
class ToolGroup:
    enabled: Callable[[dict], bool]
    build: Callable[[dict], list[Tool]]


def _always(_: dict) -> bool:
    return True


def _workspace_tools(ctx: dict) -> list[Tool]:
    working_directory = ctx["working_directory"]
    return [
        ExecuteCommandTool(working_directory),
        FileEditTool(working_directory),
        ReadImageTool(),
        ThinkTool(),
    ]


def _reporting_enabled(ctx: dict) -> bool:
    return ctx.get("transport") is not None


def _reporting_tools(ctx: dict) -> list[Tool]:
    return [ReportProgressTool(ctx["transport"])]


def _web_enabled(ctx: dict) -> bool:
    return bool(ctx.get("enable_web", True))


def _web_tools(_: dict) -> list[Tool]:
    return [WebFetchTool()]


_GROUPS = [
    ToolGroup(enabled=_always, build=_workspace_tools),
    ToolGroup(enabled=_reporting_enabled, build=_reporting_tools),
    ToolGroup(enabled=_web_enabled, build=_web_tools),
]


def build_local_tools(
    working_directory: str | None = None,
    transport: ChatTransport | None = None,
    enable_web: bool = True,
) -> list[Tool]:
    ctx = {
        "working_directory": working_directory,
        "transport": transport,
        "enable_web": enable_web,
    }

    tools: list[Tool] = []
    for group in _GROUPS:
        if group.enabled(ctx):
            tools.extend(group.build(ctx))
    return tools
