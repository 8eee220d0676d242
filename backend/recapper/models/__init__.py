"""
Pydantic models for the recap pipeline.
"""

from recapper.models.schemas import (
    AppStats,
    ErrorCategory,
    ProcessingStage,
    RatingRequest,
    RecapArtifact,
    RecapClip,
    RecapJob,
    RecapRequest,
    RecapResult,
    RecapSettings,
    StageKind,
    VideoAsset,
)

__all__ = [
    # Pipeline inputs
    "VideoAsset",
    "RecapSettings",
    # Pipeline state and outputs
    "StageKind",
    "ErrorCategory",
    "ProcessingStage",
    "RecapClip",
    "RecapArtifact",
    "RecapResult",
    # API models
    "RecapRequest",
    "RecapJob",
    "AppStats",
    "RatingRequest",
]
