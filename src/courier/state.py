from dataclasses import dataclass


@dataclass(frozen=True)
class TokenState:
    """Snapshot of a cached token. Strategies swap whole snapshots, never single fields."""

    token: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None  # epoch seconds

    def is_valid_at(self, now: float) -> bool:
        return bool(self.token) and self.expires_at is not None and now < self.expires_at


EMPTY = TokenState()
