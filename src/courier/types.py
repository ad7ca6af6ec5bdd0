from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from .errors import ConfigurationError
from .policies import RetryPolicy, coerce_retry_policy, seconds_from

DEFAULT_HEADERS: Mapping[str, str] = MappingProxyType({"Accept": "*/*"})
DEFAULT_TIMEOUT = 30.0
CORRELATION_HEADER = "X-Request-ID"


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @classmethod
    def coerce(cls, value: Union["Method", str]) -> "Method":
        if isinstance(value, Method):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {value!r}") from None


def merge_headers(*layers: Union[Mapping[str, str], None]) -> dict[str, str]:
    """Merge header mappings left to right; later layers win, names compare case-insensitively."""
    merged: dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for name, value in layer.items():
            for existing in [k for k in merged if k.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value
    return merged


@dataclass(frozen=True)
class BasicCredentials:
    """Transport-level basic auth; encoding is left to the transport."""

    username: str
    password: str

    def __repr__(self):
        return f"BasicCredentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class RequestConfig:
    """Everything needed to dispatch one HTTP request."""

    method: Method
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Union[Mapping[str, Any], None] = None
    data: Any = None
    # Seconds; 0 disables the timeout, None defers to the transport default
    timeout: Union[float, None] = None
    auth: Union[BasicCredentials, None] = None
    # Only the retry stage of HttpClient increments this
    retry_attempt: int = 0

    def __post_init__(self):
        object.__setattr__(self, "method", Method.coerce(self.method))
        if not self.url:
            raise ValueError("url is required")
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        if self.timeout is not None and self.timeout < 0:
            raise ValueError("timeout must be >= 0")

    def with_headers(self, headers: Mapping[str, str]) -> "RequestConfig":
        """Return a copy with `headers` merged over the current ones."""
        return replace(self, headers=merge_headers(self.headers, headers))

    def with_auth(self, auth: Union[BasicCredentials, None]) -> "RequestConfig":
        return replace(self, auth=auth)

    def next_attempt(self) -> "RequestConfig":
        return replace(self, retry_attempt=self.retry_attempt + 1)


@dataclass(frozen=True)
class HttpClientConfig:
    """Client-wide defaults.

    `options` is passed untouched to the transport (proxy, verify, an httpx
    transport, ...). A timeout of 0 disables timeouts.
    """

    base_url: str = ""
    headers: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    timeout: float = DEFAULT_TIMEOUT
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    options: Mapping[str, Any] = field(default_factory=dict)
    correlation_header: str = CORRELATION_HEADER

    def __post_init__(self):
        if self.timeout is None or self.timeout < 0:
            raise ConfigurationError("timeout must be >= 0")
        if not self.correlation_header:
            raise ConfigurationError("correlation_header must not be empty")
        object.__setattr__(self, "retry", coerce_retry_policy(self.retry))
        # Frozen copies
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @classmethod
    def from_mapping(cls, values: Union[Mapping[str, Any], None]) -> "HttpClientConfig":
        """Build a config from a plain mapping.

        Recognized keys: retry, headers (merged over the defaults), timeout
        (seconds) or timeoutMillis, base_url (or baseURL), correlation_header.
        Every other key is kept as a transport option.
        """
        values = dict(values or {})
        base_url = values.pop("base_url", values.pop("baseURL", ""))
        headers = merge_headers(DEFAULT_HEADERS, values.pop("headers", None))
        timeout_keys = {k: values.pop(k) for k in ("timeout", "timeoutMillis") if k in values}
        timeout = seconds_from(timeout_keys, ("timeout",), ("timeoutMillis",), DEFAULT_TIMEOUT)
        retry = coerce_retry_policy(values.pop("retry", None))
        correlation_header = values.pop("correlation_header", CORRELATION_HEADER)
        return cls(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            retry=retry,
            options=values,
            correlation_header=correlation_header,
        )
