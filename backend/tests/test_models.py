from pathlib import Path

import pydantic
import pytest

from recapper.models.schemas import (
    AppStats,
    ProcessingStage,
    RecapClip,
    RecapSettings,
    StageKind,
    VideoAsset,
)


def test_recap_settings_defaults_match_form_defaults() -> None:
    settings = RecapSettings()
    assert settings.target_duration_seconds == 30
    assert settings.sample_interval_seconds == 8
    assert settings.capture_window_seconds == 1
    assert settings.estimated_segment_count == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"target_duration_seconds": 0},
        {"target_duration_seconds": 10801},
        {"sample_interval_seconds": 0},
        {"sample_interval_seconds": 61},
        {"capture_window_seconds": 0},
    ],
)
def test_recap_settings_rejects_out_of_range_values(overrides) -> None:
    with pytest.raises(pydantic.ValidationError):
        RecapSettings(**overrides)


def test_capture_window_longer_than_interval_is_rejected() -> None:
    with pytest.raises(pydantic.ValidationError, match="must not exceed"):
        RecapSettings(sample_interval_seconds=4, capture_window_seconds=5)


def test_capture_window_equal_to_interval_is_allowed() -> None:
    settings = RecapSettings(sample_interval_seconds=4, capture_window_seconds=4)
    assert settings.capture_window_seconds == 4


def test_recap_settings_hides_api_key_from_repr() -> None:
    settings = RecapSettings(api_key="secret-key")
    assert "secret-key" not in repr(settings)


def test_recap_settings_are_immutable() -> None:
    settings = RecapSettings()
    with pytest.raises(pydantic.ValidationError):
        settings.description = "changed"


def test_video_asset_from_path(tmp_path: Path) -> None:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"1234")

    asset = VideoAsset.from_path(path)

    assert asset.name == "clip.mp4"
    assert asset.size_bytes == 4
    assert asset.media_type == "video/mp4"
    assert asset.path == path
    assert asset.asset_id


def test_processing_stage_terminal_flag() -> None:
    assert ProcessingStage().kind == StageKind.IDLE
    assert not ProcessingStage().is_terminal
    assert ProcessingStage(kind=StageKind.COMPLETED, progress_percent=100).is_terminal
    assert ProcessingStage(kind=StageKind.ERROR).is_terminal


def test_processing_stage_progress_bounds() -> None:
    with pytest.raises(pydantic.ValidationError):
        ProcessingStage(kind=StageKind.CUTTING_VIDEO, progress_percent=101)


def test_recap_clip_save(tmp_path: Path) -> None:
    clip = RecapClip(data=b"video")

    saved = clip.save(tmp_path / "out" / "recap.mp4")

    assert saved.read_bytes() == b"video"
    assert clip.size_bytes == 5


def test_app_stats_average_rating() -> None:
    assert AppStats().average_rating == 0.0
    assert AppStats(recaps_created=3, total_rating_sum=14, rating_count=3).average_rating == 4.7
