"""
Pipeline orchestrator for recap generation.

Runs one recap through its stages:

    idle -> loading_engine -> cutting_video -> generating_script
         -> generating_audio -> completed

Any failure after validation ends the run in the error stage with a
classified, user-facing message.
"""

import asyncio
import logging

from recapper.config import Settings, get_settings
from recapper.models.schemas import (
    RecapArtifact,
    RecapClip,
    RecapResult,
    RecapSettings,
    StageKind,
    VideoAsset,
)
from recapper.services.ai_clients import GeminiScriptClient, ScriptGenerator
from recapper.services.engine import FFmpegEngine
from recapper.services.error_classifier import classify_error
from recapper.services.errors import ValidationError
from recapper.services.filter_builder import SegmentFilter, build_segment_filter
from recapper.services.segment_extractor import ProgressStream, SegmentExtractor
from recapper.services.stats_client import RecapCounter, StatsClient, notify_recap_created

from .progress_manager import StageCallback, StageTracker

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    Pipeline orchestrator for recap generation.

    Collaborators are injected; from_settings() wires the production
    ones. The orchestrator can serve many runs: every run gets its own
    StageTracker, while the extractor serializes engine access.

    Example:
        async with PipelineOrchestrator.from_settings(settings) as orchestrator:
            result = await orchestrator.run(asset, recap_settings, api_key, on_stage)
            if result.succeeded:
                result.artifact.clip.save(Path("recap.mp4"))
    """

    def __init__(
        self,
        extractor: SegmentExtractor,
        script_generator: ScriptGenerator,
        counter: RecapCounter | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            extractor: Segment extractor over the shared engine
            script_generator: Narration script generator
            counter: Optional recap counter (side effect on completion)
            settings: Application settings (uses defaults if None)
        """
        self.settings = settings or get_settings()
        self.extractor = extractor
        self.script_generator = script_generator
        self.counter = counter
        self._background_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineOrchestrator":
        """Build an orchestrator with ffmpeg, Gemini and Supabase collaborators."""
        settings = settings or get_settings()
        engine = FFmpegEngine.from_settings(settings)
        return cls(
            extractor=SegmentExtractor(engine, ffprobe_path=settings.ffprobe_path),
            script_generator=GeminiScriptClient.from_settings(settings),
            counter=StatsClient.from_settings(settings),
            settings=settings,
        )

    async def close(self) -> None:
        """Wait for side effects, close clients and dispose the engine."""
        await self.wait_for_side_effects()
        for resource in (self.script_generator, self.counter):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
        await self.extractor.engine.dispose()

    async def __aenter__(self) -> "PipelineOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ═══════════════════════════════════════════════════════════════════════════
    # Full Pipeline
    # ═══════════════════════════════════════════════════════════════════════════

    def validate(
        self,
        asset: VideoAsset | None,
        recap_settings: RecapSettings,
        api_key: str | None = None,
    ) -> str:
        """
        Check run preconditions.

        Args:
            asset: Selected video (None if nothing selected)
            recap_settings: Recap settings
            api_key: Credential (falls back to recap_settings.api_key)

        Returns:
            The credential to use

        Raises:
            ValidationError: If a precondition fails
        """
        if asset is None:
            raise ValidationError("Please select a video file.")

        credential = (api_key or recap_settings.api_key or "").strip()
        if not credential:
            raise ValidationError("Please enter a Gemini AI API key.")

        if not recap_settings.description.strip():
            raise ValidationError("Please enter a description of the video.")

        return credential

    async def run(
        self,
        asset: VideoAsset | None,
        recap_settings: RecapSettings,
        api_key: str | None = None,
        on_stage: StageCallback | None = None,
    ) -> RecapResult:
        """
        Create a recap.

        Args:
            asset: Selected video
            recap_settings: Recap settings (not modified)
            api_key: Credential for script generation (never stored)
            on_stage: Optional async callback receiving every stage

        Returns:
            RecapResult ending in completed (with artifact) or error

        Raises:
            ValidationError: If preconditions fail (no stage is entered)
            asyncio.CancelledError: If the run is cancelled (after the
                error stage is emitted and working storage is cleaned)
        """
        credential = self.validate(asset, recap_settings, api_key)
        tracker = StageTracker(on_stage)
        segment_filter = build_segment_filter(recap_settings)

        logger.info(
            f"Recap run started: {asset.name}, {recap_settings.target_duration_seconds}s, "
            f"every {recap_settings.sample_interval_seconds}s, "
            f"~{segment_filter.estimated_segment_count} segments"
        )

        try:
            await self._load_engine(tracker)
            clip = await self._cut_video(tracker, asset, segment_filter)
            script = await self._generate_script(
                tracker, recap_settings.description.strip(), credential
            )
            await self._prepare_audio(tracker)

            artifact = RecapArtifact(clip=clip, script=script)
            await tracker.advance(StageKind.COMPLETED, 100, "Recap created successfully!")

        except asyncio.CancelledError as e:
            logger.info(f"Recap run cancelled: {asset.name}")
            # Cancelled while reporting completion: the run already ended
            if not tracker.stage.is_terminal:
                await tracker.fail(classify_error(e))
            raise

        except Exception as e:
            logger.error(f"Recap run failed in {tracker.stage.kind.value}: {e}")
            classified = classify_error(e)
            await tracker.fail(classified)
            return RecapResult(stage=tracker.stage)

        self._schedule_side_effect(notify_recap_created(self.counter))
        logger.info(f"Recap run completed: {asset.name}, script {len(script)} chars")

        return RecapResult(stage=tracker.stage, artifact=artifact)

    # ═══════════════════════════════════════════════════════════════════════════
    # Stages
    # ═══════════════════════════════════════════════════════════════════════════

    async def _load_engine(self, tracker: StageTracker) -> None:
        await tracker.advance(StageKind.LOADING_ENGINE, 0, "Loading the video engine...")
        await self.extractor.load()

    async def _cut_video(
        self,
        tracker: StageTracker,
        asset: VideoAsset,
        segment_filter: SegmentFilter,
    ) -> RecapClip:
        await tracker.advance(StageKind.CUTTING_VIDEO, 0, "Writing the file to the engine...")

        progress = ProgressStream()
        task = asyncio.create_task(self.extractor.extract(asset, segment_filter, progress))

        try:
            async for percent in progress:
                await tracker.advance(
                    StageKind.CUTTING_VIDEO,
                    percent,
                    f"Cutting segments from the video... {percent}%",
                )
            return await task
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    async def _generate_script(
        self,
        tracker: StageTracker,
        description: str,
        credential: str,
    ) -> str:
        await tracker.advance(
            StageKind.GENERATING_SCRIPT, 0, "Writing the script with Gemini AI..."
        )
        script = await self.script_generator.generate(description, credential)
        await tracker.advance(StageKind.GENERATING_SCRIPT, 100, "Script created.")
        await asyncio.sleep(self.settings.script_settle_delay)
        return script

    async def _prepare_audio(self, tracker: StageTracker) -> None:
        # Narration is synthesized by the host; this stage only marks the step
        await tracker.advance(StageKind.GENERATING_AUDIO, 50, "Preparing audio narration...")
        await asyncio.sleep(self.settings.audio_stage_delay)

    # ═══════════════════════════════════════════════════════════════════════════
    # Side effects
    # ═══════════════════════════════════════════════════════════════════════════

    def _schedule_side_effect(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def wait_for_side_effects(self) -> None:
        """Wait until fire-and-forget side effects have finished."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
