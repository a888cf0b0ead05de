from __future__ import annotations

from enum import Enum

import anthropic
from botocore.exceptions import ClientError

from swe_agent_loop.errors import EngineError

_THROTTLING_STATUS_CODES = {429, 529}
_THROTTLING_AWS_CODES = {"ThrottlingException", "Throttling", "TooManyRequestsException"}


class ErrorKind(Enum):
    THROTTLED = "throttled"
    FATAL = "fatal"


class InferenceError(EngineError):
    def __init__(self, message: str, kind: ErrorKind = ErrorKind.FATAL):
        super().__init__(message)
        self.kind = kind

    @property
    def is_throttled(self) -> bool:
        return self.kind is ErrorKind.THROTTLED


def classify_error(ex: BaseException) -> ErrorKind:
    if isinstance(ex, InferenceError):
        return ex.kind
    if isinstance(ex, anthropic.RateLimitError):
        return ErrorKind.THROTTLED
    if isinstance(ex, anthropic.APIStatusError) and ex.status_code in _THROTTLING_STATUS_CODES:
        return ErrorKind.THROTTLED
    if isinstance(ex, ClientError):
        code = ex.response.get("Error", {}).get("Code", "")
        if code in _THROTTLING_AWS_CODES:
            return ErrorKind.THROTTLED
    return ErrorKind.FATAL
