from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Union

from .errors import ConfigurationError

DEFAULT_RETRY_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0

# Accepted spellings for mapping-based retry configuration
_STATUS_CODE_KEYS = ("status_codes", "statusCodes", "statusCodeList")
_MAX_ATTEMPTS_KEYS = ("max_attempts", "maxAttempts")
_BASE_DELAY_KEYS = ("base_delay",)
# camelCase delays are milliseconds
_BASE_DELAY_MILLIS_KEYS = ("baseDelayMillis", "baseDelay")


@dataclass(frozen=True)
class RetryPolicy:
    """Decides whether a failed response is retried and how long to wait first.

    Args:
        status_codes: HTTP statuses that are worth another attempt.
        max_attempts: number of retries after the first dispatch (0 disables retries).
        base_delay: delay in seconds before the first retry; doubled for each later one.
    """

    status_codes: frozenset[int] = field(default=DEFAULT_RETRY_STATUS_CODES)
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY

    def __post_init__(self):
        object.__setattr__(self, "status_codes", frozenset(int(s) for s in self.status_codes))
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ConfigurationError("max_attempts must be an integer")
        if self.max_attempts < 0:
            raise ConfigurationError("max_attempts must be >= 0")
        if self.base_delay <= 0:
            raise ConfigurationError("base_delay must be > 0")

    def should_retry(self, status_code: Union[int, None], attempt: int) -> bool:
        """Return True if a failure with status_code after `attempt` retries gets another try."""
        if status_code is None:
            return False
        return status_code in self.status_codes and attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before retry number `attempt` (1-indexed)."""
        if attempt < 1:
            raise ValueError("attempt is 1-indexed")
        return self.base_delay * (2 ** (attempt - 1))


def _first(values: Mapping, keys: Iterable[str], default):
    for k in keys:
        if k in values:
            return values[k]
    return default


def seconds_from(values: Mapping, second_keys: Iterable[str], millis_keys: Iterable[str], default):
    """Read a duration in seconds, accepting millisecond spellings as well."""
    for k in millis_keys:
        if k in values:
            return float(values[k]) / 1000.0
    value = _first(values, second_keys, default)
    return None if value is None else float(value)


def coerce_retry_policy(policy: Union[object, None]) -> RetryPolicy:
    """Turn None | RetryPolicy | mapping into a RetryPolicy.

    Accepted inputs:
      - None     -> RetryPolicy with defaults
      - RetryPolicy instance (returned as-is)
      - mapping with any of status_codes/statusCodes/statusCodeList,
        max_attempts/maxAttempts, base_delay (seconds) or
        baseDelayMillis/baseDelay (milliseconds); missing keys keep defaults
    """
    if policy is None:
        return RetryPolicy()
    if isinstance(policy, RetryPolicy):
        return policy
    if isinstance(policy, Mapping):
        known = _STATUS_CODE_KEYS + _MAX_ATTEMPTS_KEYS + _BASE_DELAY_KEYS + _BASE_DELAY_MILLIS_KEYS
        unknown = set(policy) - set(known)
        if unknown:
            raise ConfigurationError(f"Unknown retry option(s): {', '.join(sorted(unknown))}")
        return RetryPolicy(
            status_codes=frozenset(
                _first(policy, _STATUS_CODE_KEYS, DEFAULT_RETRY_STATUS_CODES)
            ),
            max_attempts=_first(policy, _MAX_ATTEMPTS_KEYS, DEFAULT_MAX_ATTEMPTS),
            base_delay=seconds_from(
                policy, _BASE_DELAY_KEYS, _BASE_DELAY_MILLIS_KEYS, DEFAULT_BASE_DELAY
            ),
        )
    raise TypeError("retry policy must be None, a RetryPolicy, or a mapping")
