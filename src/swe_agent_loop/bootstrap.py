from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

from loguru import logger

from swe_agent_loop.agent import Agent
from swe_agent_loop.app_config import AppConfig, RuntimeEnv
from swe_agent_loop.inference.client import ClientFactory, InferenceClient, default_client_factory
from swe_agent_loop.inference.credentials import CredentialResolver
from swe_agent_loop.inference.retry import RetryPolicy
from swe_agent_loop.logging_config import setup_logging
from swe_agent_loop.mcp.mcp_manager import McpManager
from swe_agent_loop.services.session_controller import SessionController
from swe_agent_loop.store.blob_store import FileBlobStore
from swe_agent_loop.store.content_codec import ContentOffloadCodec
from swe_agent_loop.store.database import Database
from swe_agent_loop.store.message_store import MessageStore
from swe_agent_loop.store.token_ledger import TokenLedger
from swe_agent_loop.system_prompt import build_system_prompt
from swe_agent_loop.tool_dispatcher import ToolDispatcher
from swe_agent_loop.tool_registry import build_local_tools
from swe_agent_loop.transport import ChatTransport, ConsoleTransport
from swe_agent_loop.turn_engine import TurnEngine


@dataclass
class EngineContext:
    """Everything one process needs to run conversations."""

    database: Database
    store: MessageStore
    codec: ContentOffloadCodec
    ledger: TokenLedger
    dispatcher: ToolDispatcher
    inference: InferenceClient
    sessions: SessionController
    transport: ChatTransport
    agent: Agent
    mcp_manager: McpManager | None = None
    log_descriptions: list[str] = field(default_factory=list)

    async def close(self) -> None:
        if self.mcp_manager is not None:
            await self.mcp_manager.close()
        await self.dispatcher.close()
        await self.inference.close()
        self.database.close()


def _noop() -> None:
    pass


def _resolve_path(raw: str) -> str:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return str(path)


async def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    transport: ChatTransport | None = None,
    reset_idle_timer: Callable[[], None] | None = None,
    client_factory: ClientFactory | None = None,
    configure_logging: bool = True,
) -> EngineContext:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers) if configure_logging else []

    transport = transport or ConsoleTransport()
    working_directory = _resolve_path(app.working_directory) if app.working_directory else None
    if working_directory:
        Path(working_directory).mkdir(parents=True, exist_ok=True)

    database = Database(_resolve_path(app.database_path))
    codec = ContentOffloadCodec(FileBlobStore(_resolve_path(app.blob_directory)))
    store = MessageStore(database, codec, page_size=app.history_page_size)
    ledger = TokenLedger(database)

    mcp_manager = McpManager(app.mcp_server_configs) if app.mcp_server_configs else None
    dispatcher = ToolDispatcher(build_local_tools(working_directory, transport), mcp_manager)

    inference = InferenceClient(
        provider=app.provider_name,
        aws_region=app.aws_region,
        credential_resolver=CredentialResolver(app.bedrock_aws_accounts, app.bedrock_role_name),
        token_ledger=ledger,
        retry_policy=RetryPolicy(
            max_attempts=app.throttle_max_attempts,
            min_wait=app.throttle_min_wait_seconds,
            max_wait=app.throttle_max_wait_seconds,
        ),
        reasoning_budget_tokens=app.reasoning_budget_tokens,
        model_override=app.model_override,
        client_factory=client_factory or default_client_factory(env.anthropic_api_key),
    )

    engine = TurnEngine(
        store=store,
        codec=codec,
        inference=inference,
        dispatcher=dispatcher,
        transport=transport,
        candidate_models=app.models,
        system_prompt_factory=partial(build_system_prompt, working_directory),
        max_input_tokens=app.max_input_tokens,
        progress_reminder_seconds=app.progress_reminder_seconds,
        reset_idle_timer=reset_idle_timer or _noop,
    )
    sessions = SessionController()
    agent = Agent(store=store, engine=engine, sessions=sessions, transport=transport)

    logger.info(
        f"Engine ready: provider={app.provider_name}, models={app.models}, "
        f"override={app.model_override or '-'}, db={app.database_path}"
    )

    return EngineContext(
        database=database,
        store=store,
        codec=codec,
        ledger=ledger,
        dispatcher=dispatcher,
        inference=inference,
        sessions=sessions,
        transport=transport,
        agent=agent,
        mcp_manager=mcp_manager,
        log_descriptions=log_descriptions,
    )
