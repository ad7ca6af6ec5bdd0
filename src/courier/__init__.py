from .adapters import AiohttpTransport, HttpxTransport, Transport
from .client import HttpClient
from .env import load_client_config_from_env, load_strategy_from_env
from .errors import AuthenticationError, ConfigurationError, CourierError
from .policies import RetryPolicy, coerce_retry_policy
from .strategies import (
    ApiKeyStrategy,
    AuthenticationStrategy,
    BasicAndBearerTokenStrategy,
    BasicAndTokenStrategy,
    BasicStrategy,
    BearerTokenStrategy,
    OAuth2Strategy,
    OAuth2Token,
    TokenStrategy,
)
from .types import BasicCredentials, HttpClientConfig, Method, RequestConfig

__all__ = [
    "HttpClient",
    "HttpClientConfig",
    "RequestConfig",
    "Method",
    "BasicCredentials",
    "RetryPolicy",
    "coerce_retry_policy",
    "AuthenticationStrategy",
    "ApiKeyStrategy",
    "BasicStrategy",
    "BearerTokenStrategy",
    "TokenStrategy",
    "BasicAndBearerTokenStrategy",
    "BasicAndTokenStrategy",
    "OAuth2Strategy",
    "OAuth2Token",
    "Transport",
    "HttpxTransport",
    "AiohttpTransport",
    "CourierError",
    "ConfigurationError",
    "AuthenticationError",
    "load_client_config_from_env",
    "load_strategy_from_env",
]
