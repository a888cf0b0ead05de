import asyncio
import os
import subprocess
from typing import Any

from loguru import logger

_DEFAULT_TIMEOUT_SECONDS = 60
_LONG_RUNNING_GRACE_SECONDS = 10
_MAX_STDOUT_CHARS = 40_000
_MAX_STDERR_CHARS = 10_000


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}\n[truncated {len(text) - max_chars:,} chars]"


class ExecuteCommandTool:
    def __init__(
        self,
        working_directory: str | None = None,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        long_running_grace_seconds: float = _LONG_RUNNING_GRACE_SECONDS,
    ):
        self._cwd = working_directory
        self._timeout = timeout_seconds
        self._grace = long_running_grace_seconds
        # long-running processes that outlived their call, with their output drains
        self._background: dict[asyncio.subprocess.Process, asyncio.Future] = {}

    @property
    def name(self) -> str:
        return "execute_command"

    @property
    def description(self) -> str:
        return (
            "Execute any shell command and return its output (stdout + stderr). "
            "Set `cwd` to run the command in a specific directory. "
            "For daemons or other long-running processes (dev servers, docker compose up) set "
            "`longRunningProcess: true`: the process is started, output from the first 10 seconds "
            "is returned and the process keeps running in the background. "
            "Quote special characters (backticks, dollar signs) so the shell does not interpret them."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The command to execute",
                },
                "cwd": {
                    "type": "string",
                    "description": "Working directory to execute the command in (optional)",
                },
                "longRunningProcess": {
                    "type": "boolean",
                    "description": "Leave the process running and return after 10 seconds",
                },
            },
            "required": ["command"],
            "additionalProperties": False,
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        command = tool_input["command"]
        cwd = tool_input.get("cwd") or self._cwd
        long_running = bool(tool_input.get("longRunningProcess", False))

        logger.info(f"Executing command: {command} (cwd={cwd})")
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ),
        )

        wait_seconds = self._grace if long_running else self._timeout
        communicate = asyncio.ensure_future(proc.communicate())
        try:
            stdout, stderr = await asyncio.wait_for(asyncio.shield(communicate), timeout=wait_seconds)
        except asyncio.TimeoutError:
            if long_running:
                # Output keeps draining in the background so the pipe never fills up.
                self._background[proc] = communicate
                communicate.add_done_callback(lambda _: self._background.pop(proc, None))
                return f"[process {proc.pid} is still running in the background]"
            proc.kill()
            try:
                await asyncio.wait_for(communicate, timeout=5)
            except (asyncio.TimeoutError, ProcessLookupError):
                pass
            return f"[timed out after {self._timeout:.0f}s]"

        output = truncate(stdout.decode(errors="replace"), _MAX_STDOUT_CHARS)
        errors = stderr.decode(errors="replace")
        if errors:
            output = f"{output}\n[stderr]\n{truncate(errors, _MAX_STDERR_CHARS)}"

        if proc.returncode != 0:
            return f"{output}\n[exit code {proc.returncode}]"

        return output.rstrip()

    async def close(self) -> None:
        """Kill and reap any long-running processes that are still alive."""
        background = list(self._background.items())
        self._background.clear()
        for proc, communicate in background:
            if proc.returncode is None:
                logger.info(f"Stopping background process {proc.pid}")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
            try:
                await asyncio.wait_for(communicate, timeout=5)
            except asyncio.TimeoutError:
                logger.warning(f"Background process {proc.pid} did not exit after kill")
