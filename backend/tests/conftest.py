from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from recapper.config import Settings
from recapper.models.schemas import RecapSettings, VideoAsset
from recapper.services.errors import TranscodeError
from recapper.services.pipeline import PipelineOrchestrator
from recapper.services.segment_extractor import SegmentExtractor

MISSING_FFPROBE = "/nonexistent/ffprobe"


class FakeEngine:
    """In-memory transcoding engine."""

    def __init__(
        self,
        fractions: tuple[float, ...] = (0.0, 0.25, 0.5, 0.75, 1.0),
        fail_on_transform: bool = False,
        output: bytes = b"fake-mp4-bytes",
        hold: asyncio.Event | None = None,
    ) -> None:
        self.fractions = fractions
        self.fail_on_transform = fail_on_transform
        self.output = output
        self.hold = hold
        self.storage: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.transforms: list[dict] = []
        self.load_calls = 0
        self.disposed = False
        self.active = 0
        self.max_active = 0
        self._loaded = False
        self.transform_started = asyncio.Event()

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        self.load_calls += 1
        await asyncio.sleep(0)
        self._loaded = True

    async def write_input(self, name: str, data: bytes | Path) -> None:
        self.storage[name] = data if isinstance(data, bytes) else Path(data).read_bytes()

    async def transform(
        self,
        input_name,
        filter_expression,
        max_output_seconds,
        output_name,
        on_progress=None,
        expected_output_seconds=None,
    ) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.transforms.append(
            {
                "input": input_name,
                "filter": filter_expression,
                "max_output_seconds": max_output_seconds,
                "output": output_name,
            }
        )
        self.transform_started.set()
        try:
            if self.hold is not None:
                await self.hold.wait()
            for fraction in self.fractions:
                if on_progress is not None:
                    on_progress(fraction)
                await asyncio.sleep(0)
            if self.fail_on_transform:
                raise TranscodeError("FFmpeg error (code 1): Invalid data found", return_code=1)
            self.storage[output_name] = self.output
        finally:
            self.active -= 1

    async def read_output(self, name: str) -> bytes:
        if name not in self.storage:
            raise TranscodeError(f"FFmpeg output not created: {name}")
        return self.storage[name]

    async def delete_entry(self, name: str) -> None:
        self.deleted.append(name)
        self.storage.pop(name, None)

    def entries(self) -> list[str]:
        return sorted(self.storage)

    async def dispose(self) -> None:
        self.disposed = True
        self.storage.clear()


class FakeScriptGenerator:
    def __init__(self, script: str = "A thrilling chase.", error: Exception | None = None) -> None:
        self.script = script
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def generate(self, description: str, api_key: str) -> str:
        self.calls.append((description, api_key))
        if self.error is not None:
            raise self.error
        return self.script


class FakeCounter:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    async def increment_recaps_created(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        work_dir=tmp_path / "work",
        inbox_dir=tmp_path / "inbox",
        script_settle_delay=0,
        audio_stage_delay=0,
        supabase_url=None,
        supabase_anon_key=None,
        _env_file=None,
    )


@pytest.fixture
def video_asset(tmp_path: Path) -> VideoAsset:
    path = tmp_path / "movie.mp4"
    path.write_bytes(b"\x00" * 2048)
    return VideoAsset.from_path(path, asset_id="asset-1")


@pytest.fixture
def recap_settings() -> RecapSettings:
    return RecapSettings(
        target_duration_seconds=30,
        sample_interval_seconds=8,
        capture_window_seconds=1,
        description="a chase scene",
    )


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def extractor(engine: FakeEngine) -> SegmentExtractor:
    return SegmentExtractor(engine, ffprobe_path=MISSING_FFPROBE)


def make_orchestrator(
    settings: Settings,
    engine: FakeEngine | None = None,
    generator: FakeScriptGenerator | None = None,
    counter: FakeCounter | None = None,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        extractor=SegmentExtractor(engine or FakeEngine(), ffprobe_path=MISSING_FFPROBE),
        script_generator=generator or FakeScriptGenerator(),
        counter=counter,
        settings=settings,
    )
