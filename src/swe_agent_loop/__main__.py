import asyncio
import sys
import threading

from dotenv import load_dotenv
from loguru import logger

from swe_agent_loop.app_config import apply_runtime_env, load_json_config, parse_app_config, resolve_runtime_env
from swe_agent_loop.bootstrap import bootstrap_runtime
from swe_agent_loop.idle_timer import IdleTimer


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[str | None]") -> None:
    """Feed stdin lines into ``queue`` from a daemon thread; None marks end of input."""

    def _read() -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=_read, name="stdin-reader", daemon=True).start()


async def main() -> None:
    load_dotenv()

    env = resolve_runtime_env()
    app = apply_runtime_env(parse_app_config(load_json_config()), env)

    stopped = asyncio.Event()

    async def _on_idle() -> None:
        logger.info(f"No activity for {app.idle_timeout_minutes:g} minutes; stopping the worker")
        stopped.set()

    idle_timer = IdleTimer(app.idle_timeout_minutes * 60, _on_idle)
    ctx = await bootstrap_runtime(app, env, reset_idle_timer=idle_timer.reset)
    conversation_id = app.conversation_id

    print(f"swe-agent-loop worker (conversation: {conversation_id}, type 'exit' to quit)")
    print("Tools:")
    for spec in await ctx.dispatcher.tool_specs():
        print(f"  - {spec.name}")
    if ctx.log_descriptions:
        print(f"Logging: {', '.join(ctx.log_descriptions)}")
    print()

    tasks: set[asyncio.Task] = set()

    def _spawn(resume: bool = False) -> None:
        task = asyncio.create_task(ctx.agent.dispatch(conversation_id, resume=resume))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), queue)
    idle_timer.reset()
    _spawn(resume=True)

    stop_wait = asyncio.create_task(stopped.wait())
    try:
        while True:
            next_line = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({next_line, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
            if stop_wait in done:
                next_line.cancel()
                break
            line = next_line.result()
            if line is None:
                break
            trimmed = line.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            idle_timer.reset()
            try:
                await ctx.agent.submit_user_message(conversation_id, trimmed, author_user_id=None)
            except Exception as ex:
                logger.error(f"Failed to store message: {ex}")
                continue
            _spawn()

        if tasks and not stopped.is_set():
            await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        stop_wait.cancel()
        idle_timer.cancel()
        pending = list(tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await ctx.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
