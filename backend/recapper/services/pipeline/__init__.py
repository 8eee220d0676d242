"""
Pipeline package for recap generation.

- orchestrator: Stage sequencing of a recap run
- progress_manager: Per-run stage tracking and overall progress

Example:
    from recapper.services.pipeline import PipelineOrchestrator

    async with PipelineOrchestrator.from_settings(settings) as orchestrator:
        result = await orchestrator.run(asset, recap_settings, api_key)
"""

from .orchestrator import PipelineOrchestrator
from .progress_manager import (
    ProgressManager,
    StageCallback,
    StageTracker,
    StageTransitionError,
)

__all__ = [
    # Main orchestrator
    "PipelineOrchestrator",
    # Supporting classes
    "ProgressManager",
    "StageCallback",
    "StageTracker",
    "StageTransitionError",
]
