import asyncio
import inspect
import logging
import uuid
from collections.abc import Mapping
from typing import Any, Union

from .adapters import HttpxTransport, Transport
from .policies import RetryPolicy
from .strategies import AuthenticationStrategy
from .types import HttpClientConfig, Method, RequestConfig, merge_headers

logger = logging.getLogger("courier")


class HttpClient:
    """Outbound HTTP client with pluggable authentication and bounded retries.

    Each call merges client defaults with per-call overrides once, then for
    every attempt stamps a fresh correlation id, runs the current
    authentication strategy and dispatches through the transport. HTTP
    failures whose status is in the retry policy are retried with exponential
    backoff; everything else (including exhausted retries and failures with no
    status) propagates as the transport's own exception.

        async with HttpClient({"base_url": "https://api.example.com"}) as client:
            client.set_authentication_strategy(BearerTokenStrategy("t"))
            resp = await client.get("/users/1")
    """

    _instance: Union["HttpClient", None] = None

    def __init__(
        self,
        config: Union[HttpClientConfig, Mapping[str, Any], None] = None,
        *,
        transport: Union[Transport, None] = None,
        strategy: Union[AuthenticationStrategy, None] = None,
        log_level: Union[int, None] = None,
    ):
        """Initialize an HttpClient.

        Args:
            config: HttpClientConfig, or a mapping accepted by HttpClientConfig.from_mapping.
            transport: transport to dispatch through; defaults to an HttpxTransport
                built from config.base_url and config.options.
            strategy: initial authentication strategy (None sends requests unauthenticated).
            log_level: optional level for the "courier" logger.
        """
        if not isinstance(config, HttpClientConfig):
            config = HttpClientConfig.from_mapping(config)
        self._config = config
        self._transport = transport or HttpxTransport(base_url=config.base_url, **config.options)
        self._strategy = strategy
        if log_level is not None:
            logger.setLevel(log_level)

    # ---------- shared instance ----------
    @classmethod
    def get_instance(
        cls, config: Union[HttpClientConfig, Mapping[str, Any], None] = None, **kwargs
    ) -> "HttpClient":
        """Return the process-wide client, creating it on first call.

        Arguments are only used on the first call.
        """
        if cls._instance is None:
            cls._instance = cls(config, **kwargs)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    # ---------- lifecycle ----------
    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    # ---------- configuration ----------
    @property
    def config(self) -> HttpClientConfig:
        return self._config

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._config.retry

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def authentication_strategy(self) -> Union[AuthenticationStrategy, None]:
        return self._strategy

    def set_authentication_strategy(self, strategy: AuthenticationStrategy) -> None:
        """Use `strategy` for every attempt that has not been authenticated yet."""
        self._strategy = strategy
        logger.debug(f"authentication strategy set to {strategy!r}")

    def clear_authentication_strategy(self) -> None:
        self._strategy = None
        logger.debug("authentication strategy cleared")

    # ---------- pipeline ----------
    def _build_config(
        self,
        method: Union[Method, str],
        url: str,
        data: Any,
        headers: Union[Mapping[str, str], None],
        params: Union[Mapping[str, Any], None],
        timeout: Union[float, None],
    ) -> RequestConfig:
        return RequestConfig(
            method=Method.coerce(method),
            url=url,
            headers=merge_headers(self._config.headers, headers),
            params=params,
            data=data,
            timeout=self._config.timeout if timeout is None else timeout,
        )

    def _stamp(self, config: RequestConfig) -> RequestConfig:
        return config.with_headers({self._config.correlation_header: str(uuid.uuid4())})

    async def _authenticate(self, config: RequestConfig) -> RequestConfig:
        strategy = self._strategy
        if strategy is None:
            return config
        result = strategy.authenticate(config)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _backoff(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def request(
        self,
        method: Union[Method, str],
        url: str,
        data: Any = None,
        *,
        headers: Union[Mapping[str, str], None] = None,
        params: Union[Mapping[str, Any], None] = None,
        timeout: Union[float, None] = None,
    ) -> Any:
        """Send one logical request, retrying retryable HTTP failures.

        Args:
            method: HTTP verb.
            url: absolute URL, or relative to the transport's base URL.
            data: request body; dicts/lists are sent as JSON, str/bytes as-is.
            headers: merged over the client's default headers.
            params: query string parameters.
            timeout: seconds for this call (0 disables); defaults to the client timeout.

        Returns:
            The transport's response object, untouched.
        """
        config = self._build_config(method, url, data, headers, params, timeout)
        policy = self._config.retry
        transport = self._transport
        while True:
            attempt = await self._authenticate(self._stamp(config))
            try:
                return await transport.send(attempt)
            except transport.status_errors as exc:
                status = transport.status_of(exc)
                if not policy.should_retry(status, config.retry_attempt):
                    if config.retry_attempt:
                        logger.info(
                            f"{config.method.value} {config.url} failed with status={status} "
                            f"after {config.retry_attempt} retries; giving up"
                        )
                    raise
                config = config.next_attempt()
                delay = policy.delay_for(config.retry_attempt)
                logger.warning(
                    f"{config.method.value} {config.url} failed with status={status}; "
                    f"retry {config.retry_attempt}/{policy.max_attempts} in {delay:.2f}s"
                )
            await self._backoff(delay)

    # sugar
    async def get(self, url: str, **kw) -> Any:
        return await self.request(Method.GET, url, **kw)

    async def post(self, url: str, data: Any = None, **kw) -> Any:
        return await self.request(Method.POST, url, data, **kw)

    async def put(self, url: str, data: Any = None, **kw) -> Any:
        return await self.request(Method.PUT, url, data, **kw)

    async def patch(self, url: str, data: Any = None, **kw) -> Any:
        return await self.request(Method.PATCH, url, data, **kw)

    async def delete(self, url: str, **kw) -> Any:
        return await self.request(Method.DELETE, url, **kw)

    async def head(self, url: str, **kw) -> Any:
        return await self.request(Method.HEAD, url, **kw)

    async def options(self, url: str, **kw) -> Any:
        return await self.request(Method.OPTIONS, url, **kw)
