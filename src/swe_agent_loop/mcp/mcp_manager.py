import asyncio
import os
from contextlib import AbstractAsyncContextManager
from typing import Any

from loguru import logger
from mcp import ClientSession, StdioServerParameters, stdio_client
from mcp.client.streamable_http import streamable_http_client

from swe_agent_loop.mcp.mcp_tool_proxy import McpToolProxy

_SHUTDOWN_TIMEOUT = 5.0


class _ServerConnection:
    """One running MCP server: its session lives in a background task until stop()."""

    def __init__(self, name: str, config: dict[str, Any]):
        self.name = name
        self.tools: list[McpToolProxy] = []
        self._config = config
        self._ready = asyncio.Event()
        self._shutdown = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._error: Exception | None = None

    def _open_streams(self) -> AbstractAsyncContextManager:
        transport = self._config.get("transport", "stdio")
        if transport == "stdio":
            env = dict(os.environ)
            env.update(self._config.get("env") or {})
            return stdio_client(StdioServerParameters(
                command=self._config["command"],
                args=self._config.get("args", []),
                env=env,
            ))
        if transport == "http":
            return streamable_http_client(self._config["url"])
        raise ValueError(f"Unknown transport '{transport}'")

    async def _serve(self) -> None:
        try:
            async with self._open_streams() as streams:
                read_stream, write_stream = streams[0], streams[1]
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    listed = await session.list_tools()
                    self.tools = [
                        McpToolProxy(
                            server_name=self.name,
                            tool_name=tool.name,
                            tool_description=tool.description,
                            tool_input_schema=tool.inputSchema,
                            session=session,
                        )
                        for tool in listed.tools
                    ]
                    self._ready.set()
                    await self._shutdown.wait()
        except Exception as ex:
            self._error = ex
            self._ready.set()

    async def start(self) -> list[McpToolProxy]:
        self._task = asyncio.create_task(self._serve())
        await self._ready.wait()
        if self._error:
            raise self._error
        return self.tools

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        # stdio_client's anyio task group does not always react to cancellation alone.
        self._shutdown.set()
        self._task.cancel()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=_SHUTDOWN_TIMEOUT)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass


class McpManager:
    """Connects to the configured MCP servers the first time their tools are needed."""

    def __init__(self, server_configs: dict[str, dict[str, Any]]):
        self._server_configs = server_configs
        self._connections: list[_ServerConnection] = []
        self._tools: dict[str, McpToolProxy] | None = None
        self._lock = asyncio.Lock()

    async def get_tools(self) -> list[McpToolProxy]:
        return list((await self._discover()).values())

    async def find_tool(self, name: str) -> McpToolProxy | None:
        return (await self._discover()).get(name)

    async def _discover(self) -> dict[str, McpToolProxy]:
        if self._tools is not None:
            return self._tools
        async with self._lock:
            if self._tools is None:
                self._tools = await self._connect_all()
        return self._tools

    async def _connect_all(self) -> dict[str, McpToolProxy]:
        tools: dict[str, McpToolProxy] = {}
        for server_name, config in self._server_configs.items():
            conn = _ServerConnection(server_name, config)
            self._connections.append(conn)
            try:
                discovered = await conn.start()
            except Exception as ex:
                logger.error(f"Failed to connect to MCP server '{server_name}': {ex}")
                continue
            for tool in discovered:
                if tool.name in tools:
                    logger.warning(f"MCP tool '{tool.name}' from '{server_name}' shadows one from '{tools[tool.name].server_name}'")
                tools[tool.name] = tool
            logger.info(f"MCP server '{server_name}': {len(discovered)} tool(s) discovered")
        return tools

    async def close(self) -> None:
        for conn in self._connections:
            logger.debug(f"Shutting down MCP server '{conn.name}'...")
            try:
                await conn.stop()
            except Exception as ex:
                logger.warning(f"MCP server '{conn.name}' shutdown error: {ex}")
        self._connections.clear()
        self._tools = None
