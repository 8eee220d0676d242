from __future__ import annotations

import asyncio

import pytest

from recapper.models.schemas import (
    ErrorCategory,
    ProcessingStage,
    RecapSettings,
    StageKind,
)
from recapper.services.error_classifier import (
    CANCELLED_MESSAGE,
    INVALID_API_KEY_MESSAGE,
    OVERLOADED_MESSAGE,
    VIDEO_PROCESSING_MESSAGE,
)
from recapper.services.errors import (
    ApiError,
    InvalidApiKeyError,
    OverloadedError,
    SideEffectError,
    ValidationError,
)
from tests.conftest import FakeCounter, FakeEngine, FakeScriptGenerator, make_orchestrator

API_KEY = "valid-key"


class _Recorder:
    def __init__(self) -> None:
        self.stages: list[ProcessingStage] = []

    async def __call__(self, stage: ProcessingStage) -> None:
        self.stages.append(stage)

    @property
    def kinds(self) -> list[StageKind]:
        kinds: list[StageKind] = []
        for stage in self.stages:
            if not kinds or kinds[-1] != stage.kind:
                kinds.append(stage.kind)
        return kinds

    def percents(self, kind: StageKind) -> list[int]:
        return [s.progress_percent for s in self.stages if s.kind == kind]


@pytest.mark.asyncio
async def test_successful_run_walks_every_stage(settings, video_asset, recap_settings) -> None:
    engine = FakeEngine()
    generator = FakeScriptGenerator("An epic chase through the city.")
    counter = FakeCounter()
    orchestrator = make_orchestrator(settings, engine, generator, counter)
    recorder = _Recorder()

    result = await orchestrator.run(video_asset, recap_settings, API_KEY, on_stage=recorder)
    await orchestrator.wait_for_side_effects()

    assert result.succeeded
    assert result.stage.kind == StageKind.COMPLETED
    assert result.stage.progress_percent == 100
    assert result.artifact.clip.data == b"fake-mp4-bytes"
    assert result.artifact.script == "An epic chase through the city."
    assert recorder.kinds == [
        StageKind.LOADING_ENGINE,
        StageKind.CUTTING_VIDEO,
        StageKind.GENERATING_SCRIPT,
        StageKind.GENERATING_AUDIO,
        StageKind.COMPLETED,
    ]
    assert recorder.percents(StageKind.GENERATING_AUDIO) == [50]
    assert engine.entries() == []
    assert engine.transforms[0]["filter"] == "select='lt(mod(t,8),1)',setpts=N/FRAME_RATE/TB"
    assert engine.transforms[0]["max_output_seconds"] == 30
    assert generator.calls == [("a chase scene", API_KEY)]
    assert counter.calls == 1


@pytest.mark.asyncio
async def test_cutting_progress_is_monotonic_integers(settings, video_asset, recap_settings) -> None:
    engine = FakeEngine(fractions=(0.0, 0.12, 0.33, 0.5, 0.5, 0.81, 0.999, 1.0))
    orchestrator = make_orchestrator(settings, engine)
    recorder = _Recorder()

    await orchestrator.run(video_asset, recap_settings, API_KEY, on_stage=recorder)

    percents = recorder.percents(StageKind.CUTTING_VIDEO)
    assert percents == sorted(percents)
    assert all(isinstance(p, int) and 0 <= p <= 100 for p in percents)
    assert percents[-1] == 100


@pytest.mark.asyncio
async def test_out_of_range_engine_progress_never_goes_backwards(settings, video_asset, recap_settings) -> None:
    engine = FakeEngine(fractions=(0.4, -1.0, 2.0, 0.2))
    orchestrator = make_orchestrator(settings, engine)
    recorder = _Recorder()

    await orchestrator.run(video_asset, recap_settings, API_KEY, on_stage=recorder)

    assert recorder.percents(StageKind.CUTTING_VIDEO) == [0, 40, 100]


@pytest.mark.parametrize(
    ("asset_present", "api_key", "description", "message"),
    [
        (False, API_KEY, "a chase scene", "select a video"),
        (True, "", "a chase scene", "API key"),
        (True, "   ", "a chase scene", "API key"),
        (True, API_KEY, "   ", "description"),
    ],
)
@pytest.mark.asyncio
async def test_validation_failure_enters_no_stage(
    settings, video_asset, asset_present, api_key, description, message
) -> None:
    engine = FakeEngine()
    orchestrator = make_orchestrator(settings, engine)
    recorder = _Recorder()
    recap_settings = RecapSettings(description=description)

    with pytest.raises(ValidationError, match=message):
        await orchestrator.run(
            video_asset if asset_present else None,
            recap_settings,
            api_key,
            on_stage=recorder,
        )

    assert recorder.stages == []
    assert engine.load_calls == 0
    assert engine.transforms == []


@pytest.mark.asyncio
async def test_credential_falls_back_to_settings_echo(settings, video_asset) -> None:
    generator = FakeScriptGenerator()
    orchestrator = make_orchestrator(settings, generator=generator)
    recap_settings = RecapSettings(description="a chase scene", api_key="echoed-key")

    result = await orchestrator.run(video_asset, recap_settings)

    assert result.succeeded
    assert generator.calls == [("a chase scene", "echoed-key")]


@pytest.mark.asyncio
async def test_transcode_failure_is_video_processing_error(settings, video_asset, recap_settings) -> None:
    engine = FakeEngine(fail_on_transform=True)
    generator = FakeScriptGenerator()
    counter = FakeCounter()
    orchestrator = make_orchestrator(settings, engine, generator, counter)
    recorder = _Recorder()

    result = await orchestrator.run(video_asset, recap_settings, API_KEY, on_stage=recorder)
    await orchestrator.wait_for_side_effects()

    assert not result.succeeded
    assert result.artifact is None
    assert result.stage.kind == StageKind.ERROR
    assert result.stage.error_category == ErrorCategory.VIDEO_PROCESSING_FAILURE
    assert result.stage.message == VIDEO_PROCESSING_MESSAGE
    assert recorder.kinds[-1] == StageKind.ERROR
    assert len([s for s in recorder.stages if s.is_terminal]) == 1
    assert engine.entries() == []
    assert len(engine.deleted) == 2
    assert generator.calls == []
    assert counter.calls == 0


@pytest.mark.parametrize(
    ("error", "category", "message"),
    [
        (OverloadedError(attempts=3), ErrorCategory.OVERLOADED, OVERLOADED_MESSAGE),
        (
            InvalidApiKeyError("API key not valid", status_code=400),
            ErrorCategory.INVALID_API_KEY,
            INVALID_API_KEY_MESSAGE,
        ),
        (ApiError("Quota exceeded", status_code=429), ErrorCategory.GENERIC, "Quota exceeded"),
    ],
)
@pytest.mark.asyncio
async def test_script_failure_discards_clip(settings, video_asset, recap_settings, error, category, message) -> None:
    engine = FakeEngine()
    orchestrator = make_orchestrator(settings, engine, FakeScriptGenerator(error=error))
    recorder = _Recorder()

    result = await orchestrator.run(video_asset, recap_settings, API_KEY, on_stage=recorder)

    assert result.artifact is None
    assert result.stage.error_category == category
    assert result.stage.message == message
    assert recorder.kinds == [
        StageKind.LOADING_ENGINE,
        StageKind.CUTTING_VIDEO,
        StageKind.GENERATING_SCRIPT,
        StageKind.ERROR,
    ]
    assert engine.entries() == []


@pytest.mark.asyncio
async def test_counter_failure_does_not_fail_the_run(settings, video_asset, recap_settings) -> None:
    counter = FakeCounter(error=SideEffectError("RPC increment_recaps_created failed: HTTP 500"))
    orchestrator = make_orchestrator(settings, counter=counter)

    result = await orchestrator.run(video_asset, recap_settings, API_KEY)
    await orchestrator.wait_for_side_effects()

    assert result.succeeded
    assert counter.calls == 1


@pytest.mark.asyncio
async def test_cancellation_cleans_up_and_reports_error(settings, video_asset, recap_settings) -> None:
    hold = asyncio.Event()
    engine = FakeEngine(hold=hold)
    orchestrator = make_orchestrator(settings, engine)
    recorder = _Recorder()

    run = asyncio.create_task(
        orchestrator.run(video_asset, recap_settings, API_KEY, on_stage=recorder)
    )
    await asyncio.wait_for(engine.transform_started.wait(), timeout=1)
    run.cancel()

    with pytest.raises(asyncio.CancelledError):
        await run

    assert recorder.stages[-1].kind == StageKind.ERROR
    assert recorder.stages[-1].message == CANCELLED_MESSAGE
    assert engine.entries() == []
    assert len(engine.deleted) == 2


@pytest.mark.asyncio
async def test_orchestrator_serves_consecutive_runs(settings, video_asset, recap_settings) -> None:
    engine = FakeEngine()
    orchestrator = make_orchestrator(settings, engine)

    first = await orchestrator.run(video_asset, recap_settings, API_KEY)
    second = await orchestrator.run(video_asset, recap_settings, API_KEY)

    assert first.succeeded and second.succeeded
    assert engine.load_calls == 1
    assert engine.entries() == []


@pytest.mark.asyncio
async def test_close_disposes_engine(settings) -> None:
    engine = FakeEngine()
    orchestrator = make_orchestrator(settings, engine)

    async with orchestrator:
        pass

    assert engine.disposed


@pytest.mark.asyncio
async def test_cancel_while_reporting_completion_propagates(settings, video_asset, recap_settings) -> None:
    orchestrator = make_orchestrator(settings)
    reached_completed = asyncio.Event()
    stages: list[ProcessingStage] = []

    async def slow_on_completed(stage: ProcessingStage) -> None:
        stages.append(stage)
        if stage.kind == StageKind.COMPLETED:
            reached_completed.set()
            await asyncio.Event().wait()

    run = asyncio.create_task(
        orchestrator.run(video_asset, recap_settings, API_KEY, on_stage=slow_on_completed)
    )
    await asyncio.wait_for(reached_completed.wait(), timeout=1)
    run.cancel()

    with pytest.raises(asyncio.CancelledError):
        await run

    assert stages[-1].kind == StageKind.COMPLETED
    assert not any(s.kind == StageKind.ERROR for s in stages)
