from __future__ import annotations

import random
from typing import Any, Callable

import anthropic
from loguru import logger

from swe_agent_loop.inference.credentials import AwsCredentials, CredentialResolver
from swe_agent_loop.inference.errors import ErrorKind, InferenceError, classify_error
from swe_agent_loop.inference.models import ModelConfig, get_model_config, region_prefix
from swe_agent_loop.inference.request import (
    ConverseRequest,
    ConverseResponse,
    from_anthropic_response,
    shape_request,
    to_anthropic_params,
)
from swe_agent_loop.inference.retry import RetryPolicy
from swe_agent_loop.services.cancellation import CancellationToken
from swe_agent_loop.store.token_ledger import TokenLedger

ClientFactory = Callable[[str, str, "AwsCredentials | None"], Any]


def default_client_factory(api_key: str = "") -> ClientFactory:
    def create(provider: str, aws_region: str, credentials: AwsCredentials | None) -> Any:
        if provider == "anthropic":
            return anthropic.AsyncAnthropic(api_key=api_key or None)
        if credentials is None:
            return anthropic.AsyncAnthropicBedrock(aws_region=aws_region)
        return anthropic.AsyncAnthropicBedrock(
            aws_region=aws_region,
            aws_access_key=credentials.access_key_id,
            aws_secret_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
        )

    return create


class InferenceClient:
    def __init__(
        self,
        *,
        provider: str,
        aws_region: str,
        credential_resolver: CredentialResolver,
        token_ledger: TokenLedger | None,
        retry_policy: RetryPolicy | None = None,
        reasoning_budget_tokens: int = 1024,
        model_override: str | None = None,
        client_factory: ClientFactory | None = None,
    ):
        if provider not in ("bedrock", "anthropic"):
            raise ValueError(f"Unknown provider: {provider!r}. Supported: 'bedrock', 'anthropic'")
        self._provider = provider
        self._aws_region = aws_region
        self._credentials = credential_resolver
        self._ledger = token_ledger
        self._retry_policy = retry_policy or RetryPolicy()
        self._reasoning_budget_tokens = reasoning_budget_tokens
        self._model_override = model_override or None
        self._client_factory = client_factory or default_client_factory()
        self._default_client: Any = None
        # account -> (credentials the client was built with, client)
        self._account_clients: dict[str, tuple[AwsCredentials, Any]] = {}
        # Replaced after a credential refresh; other conversations may still be using them.
        self._retired_clients: list[Any] = []

    def choose_model(self, candidate_models: list[str]) -> ModelConfig:
        key = self._model_override or random.choice(candidate_models)
        try:
            return get_model_config(key)
        except ValueError as ex:
            raise InferenceError(str(ex)) from ex

    async def converse(
        self,
        conversation_id: str,
        candidate_models: list[str],
        request: ConverseRequest,
        *,
        cancellation_token: CancellationToken | None = None,
    ) -> ConverseResponse | None:
        """Call the model once, retrying while throttled.

        Returns None when the cancellation token fires before an attempt is made.
        """
        log = logger.bind(conversation_id=conversation_id)
        if not candidate_models and not self._model_override:
            raise InferenceError("No candidate models configured")

        config = self.choose_model(candidate_models)
        model_id = config.model_id(self._provider, region_prefix(self._aws_region))
        account = self._credentials.choose_account() if self._provider == "bedrock" else None
        shaped = shape_request(request, config, self._reasoning_budget_tokens)
        params = to_anthropic_params(shaped, model_id)
        log.info(
            f"Using model={model_id}, provider={self._provider}, region={self._aws_region}, "
            f"account={account or '-'}, reasoning={shaped.reasoning_budget_tokens is not None}"
        )

        response = None
        async for attempt in self._retry_policy.retrying():
            with attempt:
                if cancellation_token is not None and cancellation_token.is_cancelled:
                    log.info("Inference skipped: loop was cancelled")
                    return None
                response = await self._call_once(account, params)

        result = from_anthropic_response(response, model_id)
        log.info(f"API response: stop_reason={result.stop_reason}, usage={result.usage}")
        await self._track_usage(conversation_id, model_id, result)
        return result

    async def _call_once(self, account: str | None, params: dict[str, Any]) -> Any:
        try:
            client = await self._client_for(account)
            return await client.messages.create(**params)
        except InferenceError:
            raise
        except Exception as ex:
            kind = classify_error(ex)
            if kind is not ErrorKind.THROTTLED:
                logger.error(f"Inference call failed: {type(ex).__name__}: {ex}")
            raise InferenceError(f"{type(ex).__name__}: {ex}", kind=kind) from ex

    async def _client_for(self, account: str | None) -> Any:
        if account is None:
            if self._default_client is None:
                self._default_client = self._client_factory(self._provider, self._aws_region, None)
            return self._default_client
        credentials = await self._credentials.resolve(account)
        cached = self._account_clients.get(account)
        if cached is not None and cached[0] == credentials:
            return cached[1]
        client = self._client_factory(self._provider, self._aws_region, credentials)
        self._account_clients[account] = (credentials, client)
        if cached is not None:
            self._retired_clients.append(cached[1])
        return client

    async def close(self) -> None:
        clients = [client for _, client in self._account_clients.values()] + self._retired_clients
        if self._default_client is not None:
            clients.append(self._default_client)
        self._account_clients.clear()
        self._retired_clients = []
        self._default_client = None
        for client in clients:
            await _close_client(client)

    async def _track_usage(self, conversation_id: str, model_id: str, response: ConverseResponse) -> None:
        log = logger.bind(conversation_id=conversation_id)
        if response.usage is None:
            log.warning("No usage information in response")
            return
        if self._ledger is None:
            return
        try:
            await self._ledger.increment(conversation_id, model_id, response.usage)
        except Exception as ex:
            log.error(f"Error tracking token usage for {model_id}: {ex}")


async def _close_client(client: Any) -> None:
    close = getattr(client, "close", None)
    if close is None:
        return
    try:
        await close()
    except Exception as ex:
        logger.warning(f"Error closing inference client: {ex}")
