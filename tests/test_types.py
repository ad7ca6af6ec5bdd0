import pytest

from courier import BasicCredentials, ConfigurationError, HttpClientConfig, Method, RequestConfig
from courier.types import merge_headers


def test_method_coerce():
    assert Method.coerce("get") is Method.GET
    assert Method.coerce(Method.OPTIONS) is Method.OPTIONS
    with pytest.raises(ValueError, match="TRACE"):
        Method.coerce("TRACE")


def test_merge_headers_last_write_wins_case_insensitive():
    merged = merge_headers({"Accept": "*/*", "authorization": "x"}, None, {"Authorization": "y"})
    assert merged == {"Accept": "*/*", "Authorization": "y"}


def test_request_config_copies_leave_original_untouched():
    config = RequestConfig("get", "https://example.com", headers={"A": "1"}, data={"k": 1})
    assert config.method is Method.GET

    updated = config.with_headers({"B": "2"})
    assert dict(updated.headers) == {"A": "1", "B": "2"}
    assert dict(config.headers) == {"A": "1"}
    assert updated.data == {"k": 1}

    with_auth = config.with_auth(BasicCredentials("u", "p"))
    assert with_auth.auth == BasicCredentials("u", "p")
    assert config.auth is None

    assert config.next_attempt().retry_attempt == 1
    assert config.retry_attempt == 0


def test_request_config_validation():
    with pytest.raises(ValueError):
        RequestConfig("GET", "")
    with pytest.raises(ValueError):
        RequestConfig("GET", "https://example.com", timeout=-1)


def test_basic_credentials_repr_hides_password():
    assert "secret" not in repr(BasicCredentials("u", "secret"))


def test_client_config_defaults():
    config = HttpClientConfig()
    assert dict(config.headers) == {"Accept": "*/*"}
    assert config.timeout == 30.0  # noqa: PLR2004
    assert config.retry.max_attempts == 3  # noqa: PLR2004
    assert config.correlation_header == "X-Request-ID"


def test_client_config_from_mapping():
    config = HttpClientConfig.from_mapping(
        {
            "baseURL": "https://api.example.com",
            "headers": {"X-Client": "courier"},
            "timeout": 10,
            "retry": {"statusCodes": [503], "maxAttempts": 1, "base_delay": 0.1},
            "verify": False,
        }
    )
    assert config.base_url == "https://api.example.com"
    assert dict(config.headers) == {"Accept": "*/*", "X-Client": "courier"}
    assert config.timeout == 10  # noqa: PLR2004
    assert config.retry.status_codes == {503}
    assert config.retry.max_attempts == 1
    assert dict(config.options) == {"verify": False}


def test_client_config_validation():
    with pytest.raises(ConfigurationError):
        HttpClientConfig(timeout=-1)
    with pytest.raises(ConfigurationError):
        HttpClientConfig(correlation_header="")
    with pytest.raises(ConfigurationError):
        HttpClientConfig(retry={"maxAttempts": -2})


def test_client_config_from_mapping_millisecond_options():
    config = HttpClientConfig.from_mapping(
        {
            "timeoutMillis": 5000,
            "retry": {"statusCodeList": [503], "maxAttempts": 2, "baseDelayMillis": 500},
        }
    )
    assert config.timeout == 5.0  # noqa: PLR2004
    assert config.retry.base_delay == 0.5  # noqa: PLR2004
    assert config.retry.delay_for(2) == 1.0
    assert dict(config.options) == {}

    assert HttpClientConfig.from_mapping({"timeoutMillis": 0}).timeout == 0
    assert HttpClientConfig.from_mapping({"retry": {"baseDelay": 1000}}).retry.delay_for(1) == 1.0
