"""
Stage tracking and progress calculation for recap runs.

StageTracker enforces the stage order of a single run and forwards
each new stage to the host. ProgressManager folds stage-local progress
into one overall percentage for hosts that show a single bar.
"""

import logging
from typing import Awaitable, Callable

from recapper.models.schemas import ProcessingStage, StageKind
from recapper.services.error_classifier import ClassifiedError

logger = logging.getLogger(__name__)

# Signature: (stage) -> None
StageCallback = Callable[[ProcessingStage], Awaitable[None]]

ALLOWED_TRANSITIONS: dict[StageKind, frozenset[StageKind]] = {
    StageKind.IDLE: frozenset({StageKind.LOADING_ENGINE, StageKind.ERROR}),
    StageKind.LOADING_ENGINE: frozenset({StageKind.CUTTING_VIDEO, StageKind.ERROR}),
    StageKind.CUTTING_VIDEO: frozenset({StageKind.GENERATING_SCRIPT, StageKind.ERROR}),
    StageKind.GENERATING_SCRIPT: frozenset({StageKind.GENERATING_AUDIO, StageKind.ERROR}),
    StageKind.GENERATING_AUDIO: frozenset({StageKind.COMPLETED, StageKind.ERROR}),
    StageKind.COMPLETED: frozenset(),
    StageKind.ERROR: frozenset(),
}


class StageTransitionError(RuntimeError):
    """Raised on an out-of-order stage transition."""

    pass


class StageTracker:
    """
    Holds the latest stage of one run.

    Rules:
    - stages only move forward along ALLOWED_TRANSITIONS
    - re-emitting the current stage never lowers its progress
    - completed and error are terminal

    Example:
        tracker = StageTracker(callback)
        await tracker.advance(StageKind.LOADING_ENGINE, 0, "Loading...")
        await tracker.advance(StageKind.CUTTING_VIDEO, 40, "Cutting... 40%")
    """

    def __init__(self, callback: StageCallback | None = None):
        self._stage = ProcessingStage()
        self._callback = callback

    @property
    def stage(self) -> ProcessingStage:
        """Latest stage (idle before the first transition)."""
        return self._stage

    async def advance(
        self,
        kind: StageKind,
        progress: int,
        message: str,
    ) -> ProcessingStage:
        """
        Move to a stage (or update the current one).

        Args:
            kind: Target stage
            progress: Stage-local progress (clamped to 0..100)
            message: Human-readable status message

        Returns:
            The new stage

        Raises:
            StageTransitionError: If the transition is not allowed
        """
        current = self._stage
        progress = min(max(int(progress), 0), 100)

        if current.is_terminal:
            raise StageTransitionError(f"Run already finished in {current.kind.value}")

        if kind == current.kind:
            progress = max(progress, current.progress_percent)
        elif kind not in ALLOWED_TRANSITIONS[current.kind]:
            raise StageTransitionError(
                f"Cannot move from {current.kind.value} to {kind.value}"
            )

        return await self._set(
            ProcessingStage(kind=kind, progress_percent=progress, message=message)
        )

    async def fail(self, error: ClassifiedError) -> ProcessingStage:
        """Move to the error stage with a classified message."""
        if self._stage.is_terminal:
            raise StageTransitionError(f"Run already finished in {self._stage.kind.value}")

        return await self._set(
            ProcessingStage(
                kind=StageKind.ERROR,
                progress_percent=0,
                message=error.message,
                error_category=error.category,
            )
        )

    async def _set(self, stage: ProcessingStage) -> ProcessingStage:
        self._stage = stage
        logger.debug(f"Stage {stage.kind.value} {stage.progress_percent}%: {stage.message}")

        if self._callback is not None:
            try:
                await self._callback(stage)
            except Exception as e:
                # Never fail due to callback error
                logger.warning(f"Stage callback error: {e}")

        return stage


class ProgressManager:
    """
    Maps stage-local progress onto an overall percentage.

    Weights reflect typical run times: transcoding dominates, script
    generation is a single network call, audio is a short placeholder.

    Example:
        manager = ProgressManager()
        overall = manager.calculate_overall_progress(
            StageKind.CUTTING_VIDEO, 50
        )  # Returns 40.0 (5 + 35)
    """

    # Progress weights for each working stage (must sum to 100)
    STAGE_WEIGHTS = {
        StageKind.LOADING_ENGINE: 5,      # 0-5%
        StageKind.CUTTING_VIDEO: 70,      # 5-75%: dominant stage
        StageKind.GENERATING_SCRIPT: 20,  # 75-95%
        StageKind.GENERATING_AUDIO: 5,    # 95-100%
    }

    STAGE_ORDER = [
        StageKind.LOADING_ENGINE,
        StageKind.CUTTING_VIDEO,
        StageKind.GENERATING_SCRIPT,
        StageKind.GENERATING_AUDIO,
    ]

    def calculate_overall_progress(
        self,
        current_stage: StageKind,
        stage_progress: float = 100,
    ) -> float:
        """
        Calculate overall progress percentage.

        Args:
            current_stage: Current stage
            stage_progress: Progress within current stage (0-100)

        Returns:
            Overall progress (0-100); 0 for idle/error, 100 for completed
        """
        if current_stage == StageKind.COMPLETED:
            return 100.0
        if current_stage not in self.STAGE_WEIGHTS:
            return 0.0

        base_progress = 0.0
        for stage in self.STAGE_ORDER:
            if stage == current_stage:
                break
            base_progress += self.STAGE_WEIGHTS[stage]

        stage_contribution = (stage_progress / 100) * self.STAGE_WEIGHTS[current_stage]

        return min(base_progress + stage_contribution, 100.0)

