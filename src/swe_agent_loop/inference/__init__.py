from swe_agent_loop.inference.client import InferenceClient, default_client_factory
from swe_agent_loop.inference.credentials import AwsCredentials, CredentialResolver
from swe_agent_loop.inference.errors import ErrorKind, InferenceError, classify_error
from swe_agent_loop.inference.models import DEFAULT_MODELS, MODEL_CONFIGS, ModelConfig, get_model_config
from swe_agent_loop.inference.request import ConverseRequest, ConverseResponse, ToolConfig
from swe_agent_loop.inference.retry import RetryPolicy

__all__ = [
    "AwsCredentials",
    "ConverseRequest",
    "ConverseResponse",
    "CredentialResolver",
    "DEFAULT_MODELS",
    "ErrorKind",
    "InferenceClient",
    "InferenceError",
    "MODEL_CONFIGS",
    "ModelConfig",
    "RetryPolicy",
    "ToolConfig",
    "classify_error",
    "default_client_factory",
    "get_model_config",
]
