from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

import boto3
from loguru import logger

_SESSION_NAME = "remote-swe-session"
_REFRESH_MARGIN = timedelta(minutes=5)


@dataclass(frozen=True)
class AwsCredentials:
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime | None = None

    def is_fresh(self, now: datetime) -> bool:
        return self.expiration is None or self.expiration - _REFRESH_MARGIN > now


class CredentialResolver:
    """Assumes a role in one of several AWS accounts to spread inference load.

    With no accounts configured the default credential chain is used and
    ``choose_account`` returns None.
    """

    def __init__(
        self,
        accounts: list[str],
        role_name: str,
        *,
        sts_client_factory: Callable[[], Any] | None = None,
    ):
        self._accounts = [a.strip() for a in accounts if a.strip()]
        self._role_name = role_name
        self._sts_client_factory = sts_client_factory or (lambda: boto3.client("sts"))
        self._sts_client: Any = None
        self._cache: dict[str, AwsCredentials] = {}

    def choose_account(self) -> str | None:
        if not self._accounts:
            return None
        return random.choice(self._accounts)

    async def resolve(self, account: str) -> AwsCredentials:
        cached = self._cache.get(account)
        if cached is not None and cached.is_fresh(datetime.now(UTC)):
            return cached
        credentials = await asyncio.to_thread(self._assume_role, account)
        self._cache[account] = credentials
        return credentials

    def _assume_role(self, account: str) -> AwsCredentials:
        if self._sts_client is None:
            self._sts_client = self._sts_client_factory()
        role_arn = f"arn:aws:iam::{account}:role/{self._role_name}"
        logger.debug(f"Assuming role {role_arn}")
        response = self._sts_client.assume_role(RoleArn=role_arn, RoleSessionName=_SESSION_NAME)
        raw = response.get("Credentials")
        if not raw:
            raise RuntimeError(f"No credentials returned when assuming {role_arn}")
        return AwsCredentials(
            access_key_id=raw["AccessKeyId"],
            secret_access_key=raw["SecretAccessKey"],
            session_token=raw["SessionToken"],
            expiration=raw.get("Expiration"),
        )
