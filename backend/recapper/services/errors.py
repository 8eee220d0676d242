"""
Error taxonomy of the recap pipeline.

Every error raised by the lower layers carries a structured ``kind`` so
the classifier never has to inspect message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Structured origin of a pipeline error."""
    VALIDATION = "validation"
    ENGINE = "engine"
    OVERLOADED = "overloaded"
    INVALID_API_KEY = "invalid_api_key"
    API = "api"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"
    SIDE_EFFECT = "side_effect"


class RecapError(Exception):
    """
    Base exception for recap pipeline errors.

    Attributes:
        message: Error description
        original_error: Underlying exception if available
    """

    kind: ErrorKind = ErrorKind.API

    def __init__(self, message: str, original_error: Exception | None = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class ValidationError(RecapError):
    """Raised when a run is requested with missing or invalid inputs."""

    kind = ErrorKind.VALIDATION


class EngineError(RecapError):
    """Raised when the transcoding engine fails."""

    kind = ErrorKind.ENGINE


class EngineLoadError(EngineError):
    """Raised when the transcoding engine cannot be initialized."""

    pass


class TranscodeError(EngineError):
    """
    Raised when a transform fails (malformed media, unsupported codec, crash).

    Attributes:
        return_code: Engine exit code if available
    """

    def __init__(
        self,
        message: str,
        return_code: int | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)
        self.return_code = return_code


class ScriptGenerationError(RecapError):
    """Base class for text-generation service failures."""

    kind = ErrorKind.API


class OverloadedError(ScriptGenerationError):
    """Raised when the service stays overloaded through every attempt."""

    kind = ErrorKind.OVERLOADED

    def __init__(
        self,
        message: str = "The model is currently overloaded. Please try again in a few moments.",
        attempts: int = 0,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)
        self.attempts = attempts


class ApiError(ScriptGenerationError):
    """
    Raised when the service returns a non-retryable error response.

    Attributes:
        status_code: HTTP status code if available
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)
        self.status_code = status_code


class InvalidApiKeyError(ApiError):
    """Raised when the service rejects the supplied credential."""

    kind = ErrorKind.INVALID_API_KEY


class MalformedResponseError(ScriptGenerationError):
    """Raised when a success response carries no script text."""

    kind = ErrorKind.MALFORMED_RESPONSE


class NetworkError(ScriptGenerationError):
    """Raised when the service cannot be reached."""

    kind = ErrorKind.NETWORK


class SideEffectError(RecapError):
    """Raised by the counter service; logged by callers, never escalated."""

    kind = ErrorKind.SIDE_EFFECT
