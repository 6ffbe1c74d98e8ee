"""Exception definitions."""


class LLMError(Exception):
    """Base class for every error raised by this package."""


class LLMConfigError(LLMError, RuntimeError):
    """Configuration error."""


class LLMValidationError(LLMError, ValueError):
    """Input validation error."""


class LLMTransportError(LLMError, RuntimeError):
    """Transport layer error."""


class LLMAPIError(LLMTransportError):
    """Non-200 response from the API."""

    def __init__(self, message: str, status_code: int = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMParseError(LLMError, ValueError):
    """Response body does not match the expected schema."""


__all__ = [
    "LLMError",
    "LLMConfigError",
    "LLMValidationError",
    "LLMTransportError",
    "LLMAPIError",
    "LLMParseError",
]
