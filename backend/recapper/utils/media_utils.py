"""
Media utilities for video file handling.

Provides common functions for media file operations:
- Supported container checks and upload validation
- Duration detection via ffprobe
- Human-readable duration and size formatting
"""

import logging
import math
import subprocess
from pathlib import Path

from recapper.services.errors import ValidationError

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({".mp4", ".avi", ".mov", ".mkv", ".webm"})
DEFAULT_MAX_VIDEO_SIZE = 2 * 1024 * 1024 * 1024  # 2 GB


def is_video_file(file_path: Path) -> bool:
    """Check if file is a supported video file by extension.

    Args:
        file_path: Path to media file

    Returns:
        True if file has a supported video extension
    """
    return Path(file_path).suffix.lower() in VIDEO_EXTENSIONS


def validate_video_file(file_path: Path, max_size_bytes: int = DEFAULT_MAX_VIDEO_SIZE) -> None:
    """Check that a file exists, is a supported video and is not too large.

    Args:
        file_path: Path to video file
        max_size_bytes: Upper size bound in bytes

    Raises:
        ValidationError: If any check fails
    """
    file_path = Path(file_path)

    if not file_path.is_file():
        raise ValidationError(f"Video file not found: {file_path.name}")

    if not is_video_file(file_path):
        supported = ", ".join(sorted(ext.lstrip(".").upper() for ext in VIDEO_EXTENSIONS))
        raise ValidationError(f"Unsupported file type. Supported formats: {supported}")

    size = file_path.stat().st_size
    if size > max_size_bytes:
        raise ValidationError(
            f"File is too large ({format_file_size(size)}). "
            f"Maximum size: {format_file_size(max_size_bytes)}"
        )


def get_media_duration(media_path: Path, ffprobe_path: str = "ffprobe") -> float | None:
    """Get media duration using ffprobe.

    Args:
        media_path: Path to media file
        ffprobe_path: ffprobe executable

    Returns:
        Duration in seconds, or None if ffprobe fails
    """
    try:
        result = subprocess.run(
            [
                ffprobe_path,
                "-v",
                "quiet",
                "-show_entries",
                "format=duration",
                "-of",
                "csv=p=0",
                str(media_path),
            ],
            capture_output=True,
            text=True,
            timeout=30,
        )
        if result.returncode == 0 and result.stdout.strip():
            return float(result.stdout.strip())
    except (OSError, ValueError, subprocess.TimeoutExpired) as e:
        logger.warning(f"Failed to get media duration: {e}")

    return None


def format_duration(total_seconds: int) -> str:
    """Format seconds as M:SS, or H:MM:SS from one hour up."""
    total_seconds = int(total_seconds)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_file_size(size_bytes: int) -> str:
    """Format a byte count as e.g. '1.5 MB'."""
    if size_bytes <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB", "TB"]
    index = min(int(math.floor(math.log(size_bytes, 1024))), len(units) - 1)
    value = round(size_bytes / (1024 ** index), 2)
    return f"{value:g} {units[index]}"
