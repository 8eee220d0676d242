"""
Shared utilities.

Modules:
    media_utils: Media file handling (validation, duration, formatting)
"""

from recapper.utils.media_utils import (
    format_duration,
    format_file_size,
    get_media_duration,
    is_video_file,
    validate_video_file,
)

__all__ = [
    "format_duration",
    "format_file_size",
    "get_media_duration",
    "is_video_file",
    "validate_video_file",
]
