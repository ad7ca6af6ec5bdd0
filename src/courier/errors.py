class CourierError(Exception):
    """Base class for errors raised by courier itself.

    HTTP and network failures are not wrapped: they surface as the transport's
    own exceptions so callers can branch on status code and body.
    """

    code = "COURIER_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ConfigurationError(CourierError, ValueError):
    """Malformed client or strategy configuration, raised at construction time."""

    code = "CONFIGURATION_ERROR"


class AuthenticationError(CourierError):
    """A token could not be obtained or refreshed."""

    code = "AUTHENTICATION_ERROR"
