"""
Pydantic models for the recap pipeline.
"""

import mimetypes
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

MAX_RECAP_DURATION_SECONDS = 3 * 60 * 60
MAX_SAMPLE_INTERVAL_SECONDS = 60


class StageKind(str, Enum):
    """Stage of a recap run."""
    IDLE = "idle"
    LOADING_ENGINE = "loading_engine"
    CUTTING_VIDEO = "cutting_video"
    GENERATING_SCRIPT = "generating_script"
    GENERATING_AUDIO = "generating_audio"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STAGES = frozenset({StageKind.COMPLETED, StageKind.ERROR})


class ErrorCategory(str, Enum):
    """User-facing failure category of a run."""
    OVERLOADED = "overloaded"
    INVALID_API_KEY = "invalid_api_key"
    VIDEO_PROCESSING_FAILURE = "video_processing_failure"
    GENERIC = "generic"


# ═══════════════════════════════════════════════════════════════════════════
# Pipeline inputs
# ═══════════════════════════════════════════════════════════════════════════


class VideoAsset(BaseModel):
    """Source video selected for a recap.

    The path is the handle to the underlying bytes; the asset itself
    never changes after selection.
    """

    model_config = ConfigDict(frozen=True)

    asset_id: str
    name: str
    size_bytes: int = Field(ge=0)
    media_type: str
    path: Path

    @classmethod
    def from_path(cls, path: Path, asset_id: str | None = None) -> "VideoAsset":
        """Build an asset from a file on disk."""
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        return cls(
            asset_id=asset_id or uuid.uuid4().hex[:12],
            name=path.name,
            size_bytes=path.stat().st_size,
            media_type=media_type or "application/octet-stream",
            path=path,
        )


class RecapSettings(BaseModel):
    """Timing and description parameters chosen for a recap.

    A capture window longer than the sample interval would make
    consecutive segments merge, so it is rejected outright.
    """

    model_config = ConfigDict(frozen=True)

    target_duration_seconds: int = Field(
        default=30, ge=1, le=MAX_RECAP_DURATION_SECONDS
    )
    sample_interval_seconds: int = Field(
        default=8, ge=1, le=MAX_SAMPLE_INTERVAL_SECONDS
    )
    capture_window_seconds: int = Field(default=1, ge=1)
    description: str = ""
    api_key: str | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _check_window_fits_interval(self) -> "RecapSettings":
        if self.capture_window_seconds > self.sample_interval_seconds:
            raise ValueError(
                f"capture_window_seconds ({self.capture_window_seconds}) must not "
                f"exceed sample_interval_seconds ({self.sample_interval_seconds})"
            )
        return self

    @computed_field
    @property
    def estimated_segment_count(self) -> int:
        """Approximate number of kept segments (display only)."""
        return self.target_duration_seconds // self.sample_interval_seconds


# ═══════════════════════════════════════════════════════════════════════════
# Pipeline state and outputs
# ═══════════════════════════════════════════════════════════════════════════


class ProcessingStage(BaseModel):
    """Snapshot of a run's current stage."""

    model_config = ConfigDict(frozen=True)

    kind: StageKind = StageKind.IDLE
    progress_percent: int = Field(default=0, ge=0, le=100)
    message: str = ""
    error_category: ErrorCategory | None = None

    @computed_field
    @property
    def is_terminal(self) -> bool:
        """True for completed and error stages."""
        return self.kind in TERMINAL_STAGES


class RecapClip(BaseModel):
    """Trimmed, audio-less video produced by a run."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    media_type: str = "video/mp4"
    file_name: str = "recap.mp4"

    @computed_field
    @property
    def size_bytes(self) -> int:
        """Clip size in bytes."""
        return len(self.data)

    def save(self, path: Path) -> Path:
        """Write the clip to disk and return the path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path


class RecapArtifact(BaseModel):
    """Clip and narration script of a successful run."""

    model_config = ConfigDict(frozen=True)

    clip: RecapClip
    script: str


class RecapResult(BaseModel):
    """Outcome of a run: terminal stage plus artifact on success."""

    stage: ProcessingStage
    artifact: RecapArtifact | None = None

    @computed_field
    @property
    def succeeded(self) -> bool:
        """True when the run completed with an artifact."""
        return self.stage.kind == StageKind.COMPLETED and self.artifact is not None


# ═══════════════════════════════════════════════════════════════════════════
# API Request/Response Models
# ═══════════════════════════════════════════════════════════════════════════


class RecapRequest(BaseModel):
    """Request to start a recap run on a video from the inbox."""

    video_filename: str = Field(
        ...,
        description="Video filename in inbox directory",
        examples=["match_highlights.mp4"],
    )
    target_duration_seconds: int = Field(default=30, ge=1, le=MAX_RECAP_DURATION_SECONDS)
    sample_interval_seconds: int = Field(default=8, ge=1, le=MAX_SAMPLE_INTERVAL_SECONDS)
    capture_window_seconds: int = Field(default=1, ge=1)
    description: str = Field(..., examples=["a chase scene through the city"])


class RecapJob(BaseModel):
    """Recap job state as exposed by the API."""

    job_id: str
    video_name: str
    stage: ProcessingStage = Field(default_factory=ProcessingStage)
    overall_progress: float = Field(ge=0, le=100, default=0)
    script: str | None = None
    clip_size_bytes: int | None = None
    finished: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None


class AppStats(BaseModel):
    """Usage counters of the recap service."""

    recaps_created: int = 0
    total_rating_sum: int = 0
    rating_count: int = 0

    @computed_field
    @property
    def average_rating(self) -> float:
        """Mean user rating rounded to one decimal (0.0 if none)."""
        if self.rating_count <= 0:
            return 0.0
        return round(self.total_rating_sum / self.rating_count, 1)


class RatingRequest(BaseModel):
    """User rating submission."""

    rating: int = Field(..., ge=1, le=5)
