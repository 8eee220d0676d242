"""
Segment extraction over a transcoding engine.

Writes the source video into engine working storage, applies the
sampling filter and reads back the trimmed clip. Working-storage
entries are removed on every path out of extract().

Progress is published on a ProgressStream the caller consumes
concurrently with awaiting the extraction:

    stream = ProgressStream()
    task = asyncio.create_task(extractor.extract(asset, segment_filter, stream))
    async for percent in stream:
        ...
    clip = await task
"""

import asyncio
import logging
import uuid

from recapper.models.schemas import RecapClip, VideoAsset
from recapper.services.engine.base import TranscodingEngine
from recapper.services.errors import EngineError, TranscodeError
from recapper.services.filter_builder import SegmentFilter
from recapper.utils.media_utils import get_media_duration

logger = logging.getLogger(__name__)

OUTPUT_MEDIA_TYPE = "video/mp4"


class ProgressStream:
    """
    Closeable async stream of integer percentages.

    Publishing never blocks. Values lower than the last published one
    are dropped so consumers only ever observe non-decreasing progress.
    """

    _CLOSED = object()

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._last = -1
        self._closed = False

    @property
    def last(self) -> int:
        """Last published percentage (-1 if none)."""
        return self._last

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, percent: int) -> None:
        """Queue a percentage unless closed or lower than the last one."""
        if self._closed or percent <= self._last:
            return
        self._last = percent
        self._queue.put_nowait(percent)

    def close(self) -> None:
        """End the stream; iteration stops after queued values drain."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> "ProgressStream":
        return self

    async def __anext__(self) -> int:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


def fraction_to_percent(fraction: float) -> int:
    """Clamp an engine fraction into [0, 1] and convert to 0..100."""
    if fraction != fraction:  # NaN
        return 0
    return round(min(max(fraction, 0.0), 1.0) * 100)


class SegmentExtractor:
    """
    Produces recap clips from video assets with a shared engine.

    Extractions are serialized: the engine is one mutable resource and
    concurrent runs queue on an internal lock.

    Example:
        extractor = SegmentExtractor(FFmpegEngine.from_settings(settings))
        await extractor.load()
        clip = await extractor.extract(asset, build_segment_filter(recap_settings))
    """

    def __init__(self, engine: TranscodingEngine, ffprobe_path: str = "ffprobe"):
        """
        Initialize extractor.

        Args:
            engine: Transcoding engine (owned by the caller)
            ffprobe_path: ffprobe executable for source duration lookup
        """
        self.engine = engine
        self.ffprobe_path = ffprobe_path
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        """Initialize the engine if it is not loaded yet."""
        if not self.engine.loaded:
            await self.engine.load()

    async def extract(
        self,
        asset: VideoAsset,
        segment_filter: SegmentFilter,
        progress: ProgressStream | None = None,
    ) -> RecapClip:
        """
        Extract the sampled segments of an asset into a new clip.

        Args:
            asset: Source video
            segment_filter: Filter expression and output bound
            progress: Optional stream receiving percentages; closed on return

        Returns:
            RecapClip with the trimmed, audio-less video

        Raises:
            EngineError: If the engine fails (TranscodeError for transforms)
        """
        run_id = uuid.uuid4().hex[:8]
        input_name = f"{run_id}_{asset.name}"
        output_name = f"{run_id}_recap.mp4"

        def on_progress(fraction: float) -> None:
            if progress is not None:
                progress.publish(fraction_to_percent(fraction))

        try:
            async with self._lock:
                await self.load()
                expected = await self._expected_output_seconds(asset, segment_filter)

                logger.info(
                    f"Extracting segments: {asset.name} -> {output_name} "
                    f"(filter={segment_filter.expression}, max={segment_filter.max_output_seconds}s)"
                )

                try:
                    await self.engine.write_input(input_name, asset.path)
                    await self.engine.transform(
                        input_name,
                        segment_filter.expression,
                        segment_filter.max_output_seconds,
                        output_name,
                        on_progress=on_progress,
                        expected_output_seconds=expected,
                    )
                    data = await self.engine.read_output(output_name)
                except EngineError:
                    raise
                except OSError as e:
                    raise TranscodeError(
                        f"FFmpeg working storage error: {e}", original_error=e
                    ) from e
                finally:
                    await self._cleanup(input_name, output_name)
        finally:
            if progress is not None:
                progress.close()

        if not data:
            raise TranscodeError("FFmpeg produced an empty clip")

        logger.info(f"Clip extracted: {len(data) / 1024 / 1024:.1f} MB")
        return RecapClip(data=data, media_type=OUTPUT_MEDIA_TYPE)

    async def _expected_output_seconds(
        self, asset: VideoAsset, segment_filter: SegmentFilter
    ) -> float:
        """Estimate output length so progress reaches 100% on short sources."""
        duration = await asyncio.to_thread(get_media_duration, asset.path, self.ffprobe_path)
        bound = float(segment_filter.max_output_seconds)
        if not duration:
            return bound
        return max(min(bound, duration * segment_filter.keep_ratio), 1.0)

    async def _cleanup(self, *names: str) -> None:
        """Delete working-storage entries; failures are logged only."""
        for name in names:
            try:
                await self.engine.delete_entry(name)
            except Exception as e:
                logger.warning(f"Failed to delete working entry {name}: {e}")
