"""
Logging configuration for the recap service.

Levels come from settings (environment variables):
- LOG_LEVEL: Global log level (default: INFO)
- LOG_FORMAT: "structured" (default) or "simple"
- LOG_LEVEL_<AREA>: Per-area override, one of AI_CLIENT, PIPELINE,
  ENGINE, STATS (e.g., LOG_LEVEL_ENGINE=DEBUG shows ffmpeg commands)
"""

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from recapper.config import Settings

# Settings field suffix -> logger name
MODULE_LOGGERS = {
    "ai_client": "recapper.services.ai_clients",
    "pipeline": "recapper.services.pipeline",
    "engine": "recapper.services.engine",
    "stats": "recapper.services.stats_client",
}

# Logger name prefix -> short label prefix, first match wins
NAME_PREFIXES = (
    ("recapper.services.", ""),
    ("recapper.api.", "api."),
    ("recapper.", ""),
)

SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers of libraries that log every request
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def short_logger_name(name: str) -> str:
    """Strip the package prefix: recapper.services.engine.ffmpeg_engine -> engine.ffmpeg_engine."""
    for prefix, replacement in NAME_PREFIXES:
        if name.startswith(prefix):
            return replacement + name[len(prefix):]
    return name


class StructuredFormatter(logging.Formatter):
    """
    One line per record: timestamp | level | logger | message

    Example:
        2024-05-01 12:00:00 | INFO     | pipeline.orchestrator | Recap run started: movie.mp4, 30s
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")

        message = (
            f"{timestamp} | "
            f"{record.levelname:8} | "
            f"{short_logger_name(record.name):20} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def _parse_level(level_name: str | None, default: int) -> int:
    if not level_name:
        return default
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else default


def setup_logging(settings: "Settings") -> None:
    """
    Configure root and per-area loggers from settings.

    Replaces existing root handlers, so calling it twice does not
    duplicate output.

    Args:
        settings: Application settings with log configuration
    """
    root_level = _parse_level(settings.log_level, logging.INFO)

    if settings.log_format == "structured":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(SIMPLE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for area, logger_name in MODULE_LOGGERS.items():
        level_name = getattr(settings, f"log_level_{area}", None)
        if level_name:
            logging.getLogger(logger_name).setLevel(_parse_level(level_name, root_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
