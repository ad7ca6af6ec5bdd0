from urllib.parse import parse_qs

import httpx
import pytest

from courier import AuthenticationError, ConfigurationError, OAuth2Strategy, OAuth2Token, RequestConfig

TOKEN_URL = "https://auth.example.com/oauth/token"


@pytest.fixture
def clock(monkeypatch):
    now = {"t": 10_000.0}
    monkeypatch.setattr(OAuth2Strategy, "_now", lambda self: now["t"])
    return now


def _strategy(handler, expires_in=3600, refresh_token="r1"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OAuth2Strategy(
        "client",
        "shh",
        TOKEN_URL,
        {"access_token": "a1", "refresh_token": refresh_token, "expires_in": expires_in},
        client=client,
    )


def _config():
    return RequestConfig("GET", "https://api.example.com/me")


def _unreachable(request):
    raise AssertionError("token endpoint should not be called")


def test_initial_token_is_required():
    with pytest.raises(ConfigurationError, match="Initial token"):
        OAuth2Strategy("client", "shh", TOKEN_URL)
    with pytest.raises(ConfigurationError):
        OAuth2Strategy("client", "shh", TOKEN_URL, {"access_token": "a1", "expires_in": 60})
    with pytest.raises(ConfigurationError):
        OAuth2Strategy("client", "shh", TOKEN_URL, OAuth2Token("", "r1", 60))
    with pytest.raises(ConfigurationError):
        OAuth2Strategy("", "shh", TOKEN_URL, OAuth2Token("a1", "r1", 60))
    with pytest.raises(ConfigurationError, match="OAuth2Token or a mapping"):
        OAuth2Strategy("client", "shh", TOKEN_URL, ("a1", "r1", 60))
    with pytest.raises(ConfigurationError, match="Both access_token and refresh_token"):
        OAuth2Strategy("client", "shh", TOKEN_URL, {"accessToken": "a1", "expiresInSeconds": 60})


def test_initial_token_accepts_camel_case_keys(clock):
    strategy = OAuth2Strategy(
        "client",
        "shh",
        TOKEN_URL,
        {"accessToken": "a1", "refreshToken": "r1", "expiresInSeconds": 3600},
    )
    assert strategy.access_token == "a1"
    assert strategy.refresh_token == "r1"
    assert strategy.expires_at == 13_600.0


def test_should_refresh_uses_five_minute_buffer(clock):
    strategy = _strategy(_unreachable, expires_in=600)
    assert strategy.expires_at == 10_600.0

    clock["t"] += 60
    assert not strategy.should_refresh()
    clock["t"] += 240  # exactly five minutes before expiry
    assert strategy.should_refresh()


def test_short_lived_token_is_due_immediately(clock):
    strategy = _strategy(_unreachable, expires_in=100)
    assert strategy.should_refresh()
    clock["t"] += 600
    assert strategy.should_refresh()


def test_unknown_expiry_is_due(clock):
    assert _strategy(_unreachable, expires_in=None).should_refresh()


@pytest.mark.asyncio
async def test_valid_token_is_used_without_refresh(clock):
    strategy = _strategy(_unreachable)
    expires_at = strategy.expires_at

    for _ in range(3):
        result = await strategy.authenticate(_config())
        assert result.headers["Authorization"] == "Bearer a1"
    assert strategy.expires_at == expires_at


@pytest.mark.asyncio
async def test_refresh_posts_refresh_token_grant(clock):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"access_token": "a2", "expires_in": 1800})

    strategy = _strategy(handler)
    await strategy.refresh()

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == TOKEN_URL
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert parse_qs(request.content.decode()) == {
        "grant_type": ["refresh_token"],
        "refresh_token": ["r1"],
        "client_id": ["client"],
        "client_secret": ["shh"],
    }
    assert strategy.access_token == "a2"
    # provider omitted refresh_token: keep the old one
    assert strategy.refresh_token == "r1"
    assert strategy.expires_at == 10_000.0 + 1800


@pytest.mark.asyncio
async def test_refresh_replaces_rotated_refresh_token(clock):
    def handler(request):
        return httpx.Response(
            200, json={"access_token": "a2", "refresh_token": "r2", "expires_in": 1800}
        )

    strategy = _strategy(handler)
    await strategy.refresh()
    assert strategy.refresh_token == "r2"


@pytest.mark.asyncio
async def test_authenticate_refreshes_when_due(clock):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"access_token": "a2", "expires_in": 3600})

    strategy = _strategy(handler, expires_in=600)
    clock["t"] += 600

    result = await strategy.authenticate(_config())
    assert result.headers["Authorization"] == "Bearer a2"
    await strategy.authenticate(_config())
    assert len(calls) == 1


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(200, json={"token_type": "bearer"}),
        lambda request: httpx.Response(400, json={"error": "invalid_grant"}),
        lambda request: httpx.Response(200, json={"access_token": "a2", "expires_in": "soon"}),
        lambda request: httpx.Response(200, text="not json"),
    ],
)
@pytest.mark.asyncio
async def test_failed_refresh_leaves_state_untouched(clock, handler):
    strategy = _strategy(handler)
    before = (strategy.access_token, strategy.refresh_token, strategy.expires_at)

    with pytest.raises(AuthenticationError, match="Failed to refresh OAuth2 token"):
        await strategy.refresh()

    assert (strategy.access_token, strategy.refresh_token, strategy.expires_at) == before


@pytest.mark.asyncio
async def test_network_failure_during_authenticate(clock):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    strategy = _strategy(handler, expires_in=60)
    with pytest.raises(AuthenticationError):
        await strategy.authenticate(_config())
    assert strategy.access_token == "a1"
