from typing import Any, Protocol, Union, runtime_checkable
from urllib.parse import urlsplit

import aiohttp
import httpx

from .types import RequestConfig


@runtime_checkable
class Transport(Protocol):
    """What HttpClient needs from an HTTP library.

    `send` raises one of `status_errors` for an HTTP failure status; every
    other exception is a transport-level failure with no status.
    """

    status_errors: tuple[type[BaseException], ...]

    def status_of(self, error: BaseException) -> Union[int, None]: ...

    async def send(self, config: RequestConfig) -> Any: ...

    async def aclose(self) -> None: ...


def _timeout_seconds(config: RequestConfig) -> Union[float, None]:
    # 0 means "no timeout"
    return config.timeout or None


# ---------- httpx (default) ----------
class HttpxTransport:
    status_errors = (httpx.HTTPStatusError,)

    def __init__(self, base_url: str = "", client: Union[httpx.AsyncClient, None] = None, **options):
        """Wrap an httpx.AsyncClient.

        Args:
            base_url: prefix for relative request URLs (ignored when `client` is given).
            client: an existing client to reuse; it is not closed by aclose().
            options: passed to httpx.AsyncClient (proxy, verify, transport, ...).
        """
        if client is None:
            self.client = httpx.AsyncClient(base_url=base_url, **options)
            self._own_client = True
        else:
            self.client = client
            self._own_client = False

    def status_of(self, error: BaseException) -> Union[int, None]:
        if isinstance(error, httpx.HTTPStatusError):
            return error.response.status_code
        return None

    async def send(self, config: RequestConfig) -> httpx.Response:
        kwargs: dict[str, Any] = {
            "headers": dict(config.headers),
            "params": config.params,
        }
        if config.timeout is not None:
            kwargs["timeout"] = _timeout_seconds(config)
        if config.auth is not None:
            kwargs["auth"] = (config.auth.username, config.auth.password)
        if isinstance(config.data, (str, bytes)):
            kwargs["content"] = config.data
        elif config.data is not None:
            kwargs["json"] = config.data
        response = await self.client.request(config.method.value, config.url, **kwargs)
        response.raise_for_status()
        return response

    async def aclose(self) -> None:
        if self._own_client:
            await self.client.aclose()


# ---------- aiohttp ----------
class AiohttpTransport:
    status_errors = (aiohttp.ClientResponseError,)

    def __init__(
        self,
        base_url: str = "",
        session: Union[aiohttp.ClientSession, None] = None,
        **options,
    ):
        """Wrap an aiohttp.ClientSession.

        The session is created lazily on first use (aiohttp wants a running
        loop). Responses are read fully before the connection is released, so
        `await resp.json()` keeps working after `send` returns. An error
        status raises aiohttp.ClientResponseError with the raw response body
        attached as `body`.
        """
        self.base_url = base_url
        self.session = session
        self._options = options
        self._own_session = session is None

    def status_of(self, error: BaseException) -> Union[int, None]:
        if isinstance(error, aiohttp.ClientResponseError):
            return error.status
        return None

    def _resolve(self, url: str) -> str:
        if not self.base_url or urlsplit(url).scheme:
            return url
        return f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(**self._options)
        return self.session

    async def send(self, config: RequestConfig) -> aiohttp.ClientResponse:
        kwargs: dict[str, Any] = {
            "headers": dict(config.headers),
            "params": config.params,
        }
        if config.timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=_timeout_seconds(config))
        if config.auth is not None:
            kwargs["auth"] = aiohttp.BasicAuth(config.auth.username, config.auth.password)
        if isinstance(config.data, (str, bytes)):
            kwargs["data"] = config.data
        elif config.data is not None:
            kwargs["json"] = config.data
        session = self._get_session()
        async with session.request(
            config.method.value, self._resolve(config.url), **kwargs
        ) as response:
            body = await response.read()
            try:
                response.raise_for_status()
            except aiohttp.ClientResponseError as exc:
                exc.body = body
                raise
        return response

    async def aclose(self) -> None:
        if self._own_session and self.session is not None:
            await self.session.close()
            self.session = None
