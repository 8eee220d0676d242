"""
Mapping of pipeline failures onto user-facing categories.
"""

import asyncio
from dataclasses import dataclass

from recapper.models.schemas import ErrorCategory
from recapper.services.errors import ErrorKind, RecapError

OVERLOADED_MESSAGE = "The AI servers are busy right now. Please try again in a few minutes."
INVALID_API_KEY_MESSAGE = "The API key is not valid. Please check the key and try again."
VIDEO_PROCESSING_MESSAGE = (
    "Video processing failed. Please make sure the file is valid and try again."
)
GENERIC_FALLBACK_MESSAGE = "An unknown error occurred. Please try again."
CANCELLED_MESSAGE = "Recap creation was cancelled."

_KIND_TO_CATEGORY = {
    ErrorKind.OVERLOADED: ErrorCategory.OVERLOADED,
    ErrorKind.INVALID_API_KEY: ErrorCategory.INVALID_API_KEY,
    ErrorKind.ENGINE: ErrorCategory.VIDEO_PROCESSING_FAILURE,
}

_CATEGORY_MESSAGES = {
    ErrorCategory.OVERLOADED: OVERLOADED_MESSAGE,
    ErrorCategory.INVALID_API_KEY: INVALID_API_KEY_MESSAGE,
    ErrorCategory.VIDEO_PROCESSING_FAILURE: VIDEO_PROCESSING_MESSAGE,
}


@dataclass(frozen=True)
class ClassifiedError:
    """
    User-facing classification of a failure.

    Attributes:
        category: One of the four outcome categories
        message: Message to show the user
    """

    category: ErrorCategory
    message: str


def classify_error(error: BaseException) -> ClassifiedError:
    """
    Classify an exception raised during a run.

    Recap errors are matched on their structured kind. Anything else,
    and recap errors of other kinds, fall into the generic category
    carrying the error's own message.

    Args:
        error: Exception caught by the orchestrator

    Returns:
        ClassifiedError with category and user message
    """
    if isinstance(error, asyncio.CancelledError):
        return ClassifiedError(ErrorCategory.GENERIC, CANCELLED_MESSAGE)

    if isinstance(error, RecapError):
        category = _KIND_TO_CATEGORY.get(error.kind)
        if category is not None:
            return ClassifiedError(category, _CATEGORY_MESSAGES[category])
        message = error.message
    else:
        message = str(error)

    return ClassifiedError(ErrorCategory.GENERIC, message.strip() or GENERIC_FALLBACK_MESSAGE)
