import os
from pathlib import Path
from typing import Union

from .errors import ConfigurationError
from .policies import coerce_retry_policy
from .strategies import (
    DEFAULT_EXPIRATION_BUFFER,
    ApiKeyStrategy,
    BasicAndBearerTokenStrategy,
    BasicStrategy,
    BearerTokenStrategy,
    OAuth2Strategy,
    OAuth2Token,
)
from .types import DEFAULT_HEADERS, DEFAULT_TIMEOUT, HttpClientConfig, merge_headers


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Read `KEY=VALUE` lines from a .env file; os.environ is left alone.

    Blank lines, `#` comments and lines without `=` are skipped, a leading
    `export ` is allowed, and one pair of matching quotes around the value is
    removed. A missing file yields an empty dict.
    """
    path = Path(env_path)
    if not path.is_file():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        name, sep, raw = line.partition("=")
        name = name.strip()
        if line.startswith("#") or not sep or not name:
            continue
        values[name] = _unquote(raw.strip())
    return values


def _env_map(env_path: Union[str, None]) -> dict[str, str]:
    # Actual environment takes precedence over the .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _number(env: dict[str, str], var: str, cast):
    raw = env.get(var)
    if raw is None or raw == "":
        return None
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{var} must be a number, got {raw!r}") from None


def _parse_headers(var: str, raw: str) -> dict[str, str]:
    headers: dict[str, str] = {}
    for item in _split(raw):
        if ":" not in item:
            raise ConfigurationError(f"{var} entries must look like 'Name:Value', got {item!r}")
        name, value = item.split(":", 1)
        headers[name.strip()] = value.strip()
    return headers


def load_client_config_from_env(
    prefix: str = "COURIER_", env_path: Union[str, None] = None
) -> HttpClientConfig:
    """Build an HttpClientConfig from environment variables.

    Recognized variables (after the prefix):
    - BASE_URL
    - TIMEOUT: seconds, 0 disables
    - HEADERS: comma-separated Name:Value pairs, merged over the defaults
    - RETRY_STATUS_CODES: comma-separated integers
    - RETRY_MAX_ATTEMPTS
    - RETRY_BASE_DELAY: seconds
    Unset variables keep their defaults.
    """
    env = _env_map(env_path)
    retry: dict[str, object] = {}
    codes = env.get(f"{prefix}RETRY_STATUS_CODES")
    if codes:
        try:
            retry["status_codes"] = [int(c) for c in _split(codes)]
        except ValueError:
            raise ConfigurationError(
                f"{prefix}RETRY_STATUS_CODES must be comma-separated integers"
            ) from None
    max_attempts = _number(env, f"{prefix}RETRY_MAX_ATTEMPTS", int)
    if max_attempts is not None:
        retry["max_attempts"] = max_attempts
    base_delay = _number(env, f"{prefix}RETRY_BASE_DELAY", float)
    if base_delay is not None:
        retry["base_delay"] = base_delay

    headers = dict(DEFAULT_HEADERS)
    raw_headers = env.get(f"{prefix}HEADERS")
    if raw_headers:
        headers = merge_headers(headers, _parse_headers(f"{prefix}HEADERS", raw_headers))

    timeout = _number(env, f"{prefix}TIMEOUT", float)
    return HttpClientConfig(
        base_url=env.get(f"{prefix}BASE_URL", ""),
        headers=headers,
        timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        retry=coerce_retry_policy(retry),
    )


def _required(env: dict[str, str], prefix: str, *names: str) -> list[str]:
    missing = [f"{prefix}{n}" for n in names if not env.get(f"{prefix}{n}")]
    if missing:
        raise ConfigurationError(f"Missing environment variable(s): {', '.join(missing)}")
    return [env[f"{prefix}{n}"] for n in names]


def load_strategy_from_env(prefix: str = "COURIER_AUTH_", env_path: Union[str, None] = None):
    """Create an authentication strategy from environment variables.

    `{prefix}TYPE` selects the strategy; None is returned when it is unset.
    - api_key: API_KEY, optional HEADER_NAME
    - basic: USERNAME, PASSWORD
    - bearer: TOKEN
    - basic_and_bearer: USERNAME, PASSWORD, TOKEN_URL, optional TOKEN_METHOD (GET),
      optional EXPIRATION_BUFFER (seconds)
    - oauth2: CLIENT_ID, CLIENT_SECRET, TOKEN_URL, ACCESS_TOKEN, REFRESH_TOKEN,
      optional EXPIRES_IN (seconds)
    """
    env = _env_map(env_path)
    kind = env.get(f"{prefix}TYPE", "").strip().lower()
    if not kind:
        return None
    if kind == "api_key":
        (api_key,) = _required(env, prefix, "API_KEY")
        return ApiKeyStrategy(api_key, env.get(f"{prefix}HEADER_NAME") or "X-API-Key")
    if kind == "basic":
        return BasicStrategy(*_required(env, prefix, "USERNAME", "PASSWORD"))
    if kind == "bearer":
        return BearerTokenStrategy(*_required(env, prefix, "TOKEN"))
    if kind == "basic_and_bearer":
        username, password, token_url = _required(env, prefix, "USERNAME", "PASSWORD", "TOKEN_URL")
        buffer = _number(env, f"{prefix}EXPIRATION_BUFFER", float)
        return BasicAndBearerTokenStrategy(
            username,
            password,
            env.get(f"{prefix}TOKEN_METHOD") or "GET",
            token_url,
            expiration_buffer=DEFAULT_EXPIRATION_BUFFER if buffer is None else buffer,
        )
    if kind == "oauth2":
        client_id, client_secret, token_url, access, refresh = _required(
            env, prefix, "CLIENT_ID", "CLIENT_SECRET", "TOKEN_URL", "ACCESS_TOKEN", "REFRESH_TOKEN"
        )
        return OAuth2Strategy(
            client_id,
            client_secret,
            token_url,
            OAuth2Token(access, refresh, _number(env, f"{prefix}EXPIRES_IN", float)),
        )
    raise ConfigurationError(
        f"Unknown {prefix}TYPE {kind!r}. Use api_key, basic, bearer, basic_and_bearer or oauth2."
    )
