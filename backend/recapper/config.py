"""
Application configuration and settings.
"""

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

BUILTIN_PROMPTS_DIR = Path(__file__).parent / "prompts"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Transcoding engine
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    work_dir: Path = Path(tempfile.gettempdir()) / "recapper"

    # Inputs
    inbox_dir: Path = Path("/data/inbox")
    max_video_size_bytes: int = 2 * 1024 * 1024 * 1024  # 2 GB
    max_finished_jobs: int = 20  # Finished jobs (and clips) kept in memory

    # Script generation
    gemini_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-1.5-flash-latest"
    llm_timeout: int = 60
    script_language: str = "Hebrew"
    script_max_attempts: int = 3
    prompts_dir: Path | None = None  # External prompts directory (overrides built-in)

    # Stage pacing (seconds)
    script_settle_delay: float = 0.5
    audio_stage_delay: float = 1.0

    # Statistics counter (Supabase)
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    stats_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"

    # Per-module log levels (optional overrides)
    log_level_ai_client: str | None = None
    log_level_pipeline: str | None = None
    log_level_engine: str | None = None
    log_level_stats: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_prompt(
    stage: str,
    component: str,
    settings: Settings | None = None,
) -> str:
    """
    Load a prompt template with external folder priority.

    Lookup order (first found wins):
    1. prompts_dir/{stage}/{component}.md (external)
    2. recapper/prompts/{stage}/{component}.md (built-in)

    Args:
        stage: Pipeline stage ("script")
        component: Prompt component ("user")
        settings: Optional settings instance

    Returns:
        Prompt template content

    Raises:
        FileNotFoundError: If no matching prompt file is found
    """
    if settings is None:
        settings = get_settings()

    paths_to_check: list[Path] = []

    if settings.prompts_dir and settings.prompts_dir.exists():
        paths_to_check.append(settings.prompts_dir / stage / f"{component}.md")

    paths_to_check.append(BUILTIN_PROMPTS_DIR / stage / f"{component}.md")

    for path in paths_to_check:
        if path.exists():
            return path.read_text(encoding="utf-8")

    raise FileNotFoundError(
        f"Prompt not found: stage={stage}, component={component}. "
        f"Checked paths: {[str(p) for p in paths_to_check]}"
    )
