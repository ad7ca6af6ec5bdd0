import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, Union, runtime_checkable

import httpx

from .errors import AuthenticationError, ConfigurationError
from .state import EMPTY, TokenState
from .types import BasicCredentials, Method, RequestConfig

logger = logging.getLogger("courier")

# OAuth2 tokens are refreshed this many seconds before they expire
OAUTH2_REFRESH_BUFFER = 300.0
DEFAULT_EXPIRATION_BUFFER = 60.0


@runtime_checkable
class AuthenticationStrategy(Protocol):
    """Attaches authentication material to an outgoing request.

    Implementations return a new RequestConfig (or an awaitable of one) that
    differs from the input only in headers or transport auth.
    """

    def authenticate(
        self, config: RequestConfig
    ) -> Union[RequestConfig, Awaitable[RequestConfig]]: ...


def _require(value, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{name} must be a non-empty string")
    return value


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@contextlib.asynccontextmanager
async def _token_client(client: Union[httpx.AsyncClient, None]):
    """Yield the injected client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as owned:
        yield owned


# ------------------------ stateless ------------------------
class ApiKeyStrategy:
    def __init__(self, api_key: str, header_name: str = "X-API-Key"):
        self._api_key = _require(api_key, "api_key")
        self.header_name = _require(header_name, "header_name")

    def authenticate(self, config: RequestConfig) -> RequestConfig:
        return config.with_headers({self.header_name: self._api_key})

    def __repr__(self):
        return f"ApiKeyStrategy(header_name={self.header_name!r})"


class BasicStrategy:
    """Sets transport-level basic credentials; the transport does the encoding."""

    def __init__(self, username: str, password: str):
        self._credentials = BasicCredentials(
            _require(username, "username"), _require(password, "password")
        )

    def authenticate(self, config: RequestConfig) -> RequestConfig:
        return config.with_auth(self._credentials)

    def __repr__(self):
        return f"BasicStrategy(username={self._credentials.username!r})"


class BearerTokenStrategy:
    def __init__(self, token: str):
        self._token = _require(token, "token")

    def authenticate(self, config: RequestConfig) -> RequestConfig:
        return config.with_headers(_bearer(self._token))

    def __repr__(self):
        return "BearerTokenStrategy()"


TokenStrategy = BearerTokenStrategy


# ------------------------ basic credentials exchanged for a bearer token ------------------------
def _default_token_extractor(response: httpx.Response) -> str:
    return response.json()["data"]["token"]


def _default_expiration_extractor(response: httpx.Response) -> float:
    return response.json()["data"]["expiresIn"]


class BasicAndBearerTokenStrategy:
    """Exchange basic credentials for a bearer token and cache it until it expires.

    Args:
        username, password: credentials sent to the token endpoint as basic auth.
        method: GET or POST, used for the token endpoint.
        endpoint: absolute URL of the token endpoint.
        token_extractor: pulls the token out of the endpoint's response.
        expiration_extractor: pulls the token lifetime, in milliseconds, out of the response.
        expiration_buffer: seconds shaved off the lifetime so the token is renewed early.
        client: optional httpx.AsyncClient used for the token call.

    Concurrent callers that find no valid token share a single token request.
    """

    def __init__(
        self,
        username: str,
        password: str,
        method: Union[Method, str],
        endpoint: str,
        token_extractor: Union[Callable[[httpx.Response], str], None] = None,
        expiration_extractor: Union[Callable[[httpx.Response], float], None] = None,
        expiration_buffer: float = DEFAULT_EXPIRATION_BUFFER,
        client: Union[httpx.AsyncClient, None] = None,
    ):
        self._username = _require(username, "username")
        self._password = _require(password, "password")
        try:
            self._method = Method.coerce(method)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None
        if self._method not in (Method.GET, Method.POST):
            raise ConfigurationError("token endpoint method must be GET or POST")
        self._endpoint = _require(endpoint, "endpoint")
        if expiration_buffer < 0:
            raise ConfigurationError("expiration_buffer must be >= 0")
        self._expiration_buffer = float(expiration_buffer)
        self._token_extractor = token_extractor or _default_token_extractor
        self._expiration_extractor = expiration_extractor or _default_expiration_extractor
        self._client = client
        self._state: TokenState = EMPTY
        self._lock = asyncio.Lock()

    def _now(self) -> float:
        return time.time()

    @property
    def token(self) -> Union[str, None]:
        return self._state.token

    @property
    def expires_at(self) -> float:
        return self._state.expires_at or 0.0

    def is_token_valid(self) -> bool:
        return self._state.is_valid_at(self._now())

    def invalidate_token(self) -> None:
        """Forget the cached token, e.g. after the server rejected it with a 401."""
        self._state = EMPTY
        logger.debug(f"bearer token for {self._endpoint} invalidated")

    async def _obtain_token(self) -> TokenState:
        try:
            async with _token_client(self._client) as client:
                response = await client.request(
                    self._method.value,
                    self._endpoint,
                    auth=(self._username, self._password),
                )
                response.raise_for_status()
            token = self._token_extractor(response)
            expires_in = float(self._expiration_extractor(response))
            if not token:
                raise ValueError("token endpoint returned an empty token")
        except Exception as exc:
            logger.error(f"Failed to obtain bearer token from {self._endpoint}: {exc}")
            raise AuthenticationError("Authentication failed: Unable to obtain token") from None

        state = TokenState(
            token=token,
            expires_at=self._now() + expires_in / 1000.0 - self._expiration_buffer,
        )
        self._state = state
        logger.debug(f"obtained bearer token from {self._endpoint}")
        return state

    async def authenticate(self, config: RequestConfig) -> RequestConfig:
        state = self._state
        if not state.is_valid_at(self._now()):
            async with self._lock:
                # Another caller may have fetched a token while we waited
                state = self._state
                if not state.is_valid_at(self._now()):
                    state = await self._obtain_token()
        return config.with_headers(_bearer(state.token))

    def __repr__(self):
        return f"BasicAndBearerTokenStrategy(endpoint={self._endpoint!r})"


BasicAndTokenStrategy = BasicAndBearerTokenStrategy


# ------------------------ OAuth2 refresh_token grant ------------------------
@dataclass(frozen=True)
class OAuth2Token:
    access_token: str
    refresh_token: str
    expires_in: Union[float, None]  # seconds


def _coerce_initial_token(initial: Union[OAuth2Token, Mapping[str, Any], None]) -> OAuth2Token:
    if initial is None:
        raise ConfigurationError("Initial token configuration is required for OAuth2Strategy")
    if isinstance(initial, Mapping):
        initial = OAuth2Token(
            access_token=initial.get("access_token", initial.get("accessToken")),
            refresh_token=initial.get("refresh_token", initial.get("refreshToken")),
            expires_in=initial.get("expires_in", initial.get("expiresInSeconds")),
        )
    if not isinstance(initial, OAuth2Token):
        raise ConfigurationError("initial_token must be an OAuth2Token or a mapping")
    if not initial.access_token or not initial.refresh_token:
        raise ConfigurationError(
            "Both access_token and refresh_token are required for OAuth2Strategy"
        )
    return initial


class OAuth2Strategy:
    """Bearer access token kept fresh with the OAuth2 refresh_token grant (RFC 6749 section 6).

    The token is refreshed once it is within five minutes of expiring. A
    refresh replaces the cached token only after the response has been
    validated; a provider that omits refresh_token keeps the previous one.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        initial_token: Union[OAuth2Token, Mapping[str, Any], None] = None,
        client: Union[httpx.AsyncClient, None] = None,
    ):
        self._client_id = _require(client_id, "client_id")
        self._client_secret = _require(client_secret, "client_secret")
        self._token_url = _require(token_url, "token_url")
        initial = _coerce_initial_token(initial_token)
        self._client = client
        self._lock = asyncio.Lock()
        self._state = TokenState(
            token=initial.access_token,
            refresh_token=initial.refresh_token,
            expires_at=self._expires_at(initial.expires_in),
        )

    def _now(self) -> float:
        return time.time()

    def _expires_at(self, expires_in) -> Union[float, None]:
        if expires_in is None:
            return None
        return self._now() + float(expires_in)

    @property
    def access_token(self) -> Union[str, None]:
        return self._state.token

    @property
    def refresh_token(self) -> Union[str, None]:
        return self._state.refresh_token

    @property
    def expires_at(self) -> Union[float, None]:
        return self._state.expires_at

    def should_refresh(self) -> bool:
        state = self._state
        if not state.token or state.expires_at is None:
            return True
        return self._now() >= state.expires_at - OAUTH2_REFRESH_BUFFER

    async def refresh(self) -> None:
        """Exchange the refresh token for a new access token."""
        async with self._lock:
            await self._refresh()

    async def _refresh(self) -> TokenState:
        current = self._state
        if not current.refresh_token:
            raise AuthenticationError("No refresh token available")
        form = {
            "grant_type": "refresh_token",
            "refresh_token": current.refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        try:
            async with _token_client(self._client) as client:
                response = await client.post(
                    self._token_url,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                response.raise_for_status()
            payload = response.json()
            access_token = payload.get("access_token")
            if not access_token:
                raise ValueError("No access token received from token endpoint")
            expires_at = self._expires_at(payload.get("expires_in"))
        except Exception as exc:
            logger.error(f"Failed to refresh OAuth2 token at {self._token_url}: {exc}")
            raise AuthenticationError("Failed to refresh OAuth2 token") from None

        state = TokenState(
            token=access_token,
            refresh_token=payload.get("refresh_token") or current.refresh_token,
            expires_at=expires_at,
        )
        self._state = state
        logger.debug(f"refreshed OAuth2 token at {self._token_url}")
        return state

    async def authenticate(self, config: RequestConfig) -> RequestConfig:
        if self.should_refresh():
            async with self._lock:
                if self.should_refresh():
                    await self._refresh()
        return config.with_headers(_bearer(self._state.token))

    def __repr__(self):
        return f"OAuth2Strategy(client_id={self._client_id!r}, token_url={self._token_url!r})"
