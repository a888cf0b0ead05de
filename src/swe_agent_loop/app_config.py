from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from swe_agent_loop.inference.models import DEFAULT_MODELS


@dataclass
class RuntimeEnv:
    anthropic_api_key: str
    model_override: str | None
    bedrock_aws_accounts: list[str] | None
    bedrock_role_name: str | None
    aws_region: str | None
    worker_id: str | None


@dataclass
class AppConfig:
    provider_name: str = "bedrock"
    models: list[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    model_override: str | None = None
    aws_region: str = "us-west-2"
    bedrock_aws_accounts: list[str] = field(default_factory=list)
    bedrock_role_name: str = "bedrock-remote-swe-role"
    max_input_tokens: int = 80_000
    reasoning_budget_tokens: int = 1024
    working_directory: str | None = None
    database_path: str = ".swe_agent/conversations.db"
    blob_directory: str = ".swe_agent/blobs"
    history_page_size: int = 100
    throttle_max_attempts: int = 100
    throttle_min_wait_seconds: float = 1.0
    throttle_max_wait_seconds: float = 5.0
    mcp_server_configs: dict = field(default_factory=dict)
    idle_timeout_minutes: float = 30
    progress_reminder_seconds: float = 300
    conversation_id: str = "default-worker"
    log_level: str = "INFO"
    log_consumers: list | None = None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


def _optional_str(value: object) -> str | None:
    text = str(value).strip() if value is not None else ""
    return text or None


def parse_app_config(config: dict) -> AppConfig:
    defaults = AppConfig()
    models = _to_list(config.get("Models")) or defaults.models
    return AppConfig(
        provider_name=str(config.get("Provider", defaults.provider_name)).strip().lower(),
        models=models,
        model_override=_optional_str(config.get("ModelOverride")),
        aws_region=str(config.get("AwsRegion", defaults.aws_region)),
        bedrock_aws_accounts=_to_list(config.get("BedrockAwsAccounts")),
        bedrock_role_name=str(config.get("BedrockRoleName", defaults.bedrock_role_name)),
        max_input_tokens=int(config.get("MaxInputTokens", defaults.max_input_tokens)),
        reasoning_budget_tokens=int(config.get("ReasoningBudgetTokens", defaults.reasoning_budget_tokens)),
        working_directory=_optional_str(config.get("WorkingDirectory")),
        database_path=str(config.get("DatabasePath", defaults.database_path)),
        blob_directory=str(config.get("BlobDirectory", defaults.blob_directory)),
        history_page_size=int(config.get("HistoryPageSize", defaults.history_page_size)),
        throttle_max_attempts=int(config.get("ThrottleMaxAttempts", defaults.throttle_max_attempts)),
        throttle_min_wait_seconds=float(config.get("ThrottleMinWaitSeconds", defaults.throttle_min_wait_seconds)),
        throttle_max_wait_seconds=float(config.get("ThrottleMaxWaitSeconds", defaults.throttle_max_wait_seconds)),
        mcp_server_configs=config.get("McpServers", {}),
        idle_timeout_minutes=float(config.get("IdleTimeoutMinutes", defaults.idle_timeout_minutes)),
        progress_reminder_seconds=float(config.get("ProgressReminderSeconds", defaults.progress_reminder_seconds)),
        conversation_id=str(config.get("ConversationId", defaults.conversation_id)),
        log_level=config.get("LogLevel", defaults.log_level),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    accounts = os.environ.get("BEDROCK_AWS_ACCOUNTS")
    return RuntimeEnv(
        anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
        model_override=_optional_str(os.environ.get("MODEL_OVERRIDE")),
        bedrock_aws_accounts=_to_list(accounts) if accounts is not None else None,
        bedrock_role_name=_optional_str(os.environ.get("BEDROCK_AWS_ROLE_NAME")),
        aws_region=_optional_str(os.environ.get("AWS_REGION")),
        worker_id=_optional_str(os.environ.get("WORKER_ID")),
    )


def apply_runtime_env(app: AppConfig, env: RuntimeEnv) -> AppConfig:
    """Environment variables take precedence over config.json."""
    if env.model_override:
        app.model_override = env.model_override
    if env.bedrock_aws_accounts is not None:
        app.bedrock_aws_accounts = env.bedrock_aws_accounts
    if env.bedrock_role_name:
        app.bedrock_role_name = env.bedrock_role_name
    if env.aws_region:
        app.aws_region = env.aws_region
    if env.worker_id:
        app.conversation_id = env.worker_id
    return app
