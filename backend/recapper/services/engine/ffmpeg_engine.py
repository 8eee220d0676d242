"""
ffmpeg-backed transcoding engine.

Working storage is a private directory; entries are files inside it.
Progress is read from ffmpeg's ``-progress pipe:1`` key=value stream.
"""

import asyncio
import logging
import shutil
import subprocess
from pathlib import Path

from recapper.config import Settings
from recapper.services.engine.base import EngineProgressCallback
from recapper.services.errors import EngineLoadError, TranscodeError

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 500


class FFmpegEngine:
    """
    Transcoding engine running the ffmpeg binary.

    Example:
        engine = FFmpegEngine.from_settings(settings)
        await engine.load()
        await engine.write_input("input.mp4", Path("movie.mp4"))
        await engine.transform("input.mp4", filter_expr, 30, "recap.mp4")
        clip = await engine.read_output("recap.mp4")
    """

    def __init__(self, work_dir: Path, ffmpeg_path: str = "ffmpeg"):
        """
        Initialize engine (does not touch the filesystem until load()).

        Args:
            work_dir: Working storage directory
            ffmpeg_path: ffmpeg executable name or path
        """
        self.work_dir = Path(work_dir)
        self.ffmpeg_path = ffmpeg_path
        self._loaded = False
        self._load_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "FFmpegEngine":
        """Create engine from application settings."""
        return cls(work_dir=settings.work_dir, ffmpeg_path=settings.ffmpeg_path)

    @property
    def loaded(self) -> bool:
        """True once load() has completed."""
        return self._loaded

    async def load(self) -> None:
        """
        Locate ffmpeg and prepare working storage, once.

        Raises:
            EngineLoadError: If ffmpeg is missing or not working
        """
        if self._loaded:
            return

        async with self._load_lock:
            if self._loaded:
                return

            executable = shutil.which(self.ffmpeg_path)
            if executable is None:
                raise EngineLoadError(f"FFmpeg executable not found: {self.ffmpeg_path}")

            version_line = await asyncio.to_thread(self._probe_version, executable)
            self.ffmpeg_path = executable

            try:
                self.work_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise EngineLoadError(
                    f"Cannot create working storage {self.work_dir}", original_error=e
                ) from e

            self._loaded = True
            logger.info(f"FFmpeg engine loaded: {version_line}")

    def _probe_version(self, executable: str) -> str:
        try:
            result = subprocess.run(
                [executable, "-version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EngineLoadError("FFmpeg is not working", original_error=e) from e

        if result.returncode != 0:
            raise EngineLoadError(f"FFmpeg is not working (code {result.returncode})")

        return result.stdout.split("\n")[0]

    def _entry_path(self, name: str) -> Path:
        return self.work_dir / Path(name).name

    async def write_input(self, name: str, data: bytes | Path) -> None:
        """Store bytes, or a copy of a file, as a working-storage entry."""
        target = self._entry_path(name)
        if isinstance(data, (bytes, bytearray)):
            await asyncio.to_thread(target.write_bytes, bytes(data))
        else:
            await asyncio.to_thread(shutil.copyfile, data, target)
        logger.debug(f"Wrote input entry {target.name}")

    async def transform(
        self,
        input_name: str,
        filter_expression: str,
        max_output_seconds: float,
        output_name: str,
        on_progress: EngineProgressCallback | None = None,
        expected_output_seconds: float | None = None,
    ) -> None:
        """
        Apply the filter, strip audio and cap the output length.

        Args:
            input_name: Input entry name
            filter_expression: Video filter (-vf) expression
            max_output_seconds: Output truncation (-t)
            output_name: Output entry name
            on_progress: Called with a fraction as ffmpeg advances
            expected_output_seconds: Output length used as the progress
                denominator (defaults to max_output_seconds)

        Raises:
            TranscodeError: If ffmpeg fails or cannot be started
        """
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-progress", "pipe:1",
            "-i", str(self._entry_path(input_name)),
            "-vf", filter_expression,
            "-an",                        # No audio
            "-t", f"{max_output_seconds}",
            "-y",                         # Overwrite output
            str(self._entry_path(output_name)),
        ]
        total = expected_output_seconds or max_output_seconds

        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError("FFmpeg could not be started", original_error=e) from e

        try:
            _, stderr = await asyncio.gather(
                self._read_progress(process.stdout, total, on_progress),
                process.stderr.read(),
            )
            return_code = await process.wait()
        finally:
            # Cancelled or failed while reading: never leave ffmpeg running
            if process.returncode is None:
                process.kill()
                await process.wait()
                logger.info("FFmpeg process killed before it finished")

        if return_code != 0:
            tail = stderr.decode(errors="replace")[-STDERR_TAIL_CHARS:]
            logger.error(f"ffmpeg failed: {tail}")
            raise TranscodeError(f"FFmpeg error (code {return_code}): {tail}", return_code)

    async def _read_progress(
        self,
        stream: asyncio.StreamReader,
        total_seconds: float,
        on_progress: EngineProgressCallback | None,
    ) -> None:
        async for raw_line in stream:
            if on_progress is None:
                continue
            key, _, value = raw_line.decode(errors="replace").strip().partition("=")
            if key == "out_time_us" and value.isdigit() and total_seconds > 0:
                on_progress(int(value) / 1_000_000 / total_seconds)
            elif key == "progress" and value == "end":
                on_progress(1.0)

    async def read_output(self, name: str) -> bytes:
        """Read an entry's bytes."""
        path = self._entry_path(name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise TranscodeError(f"FFmpeg output not created: {name}", original_error=e) from e

    async def delete_entry(self, name: str) -> None:
        """Delete an entry if it exists."""
        await asyncio.to_thread(self._entry_path(name).unlink, missing_ok=True)

    def entries(self) -> list[str]:
        """Names currently held in working storage."""
        if not self.work_dir.exists():
            return []
        return sorted(p.name for p in self.work_dir.iterdir() if p.is_file())

    async def dispose(self) -> None:
        """Remove working storage and mark the engine unloaded."""
        async with self._load_lock:
            if self.work_dir.exists():
                await asyncio.to_thread(shutil.rmtree, self.work_dir, True)
            self._loaded = False
            logger.info("FFmpeg engine disposed")
