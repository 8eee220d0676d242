"""
Segment-sampling filter construction.

Keeps every capture window of W seconds that starts at a multiple of the
sample interval I, then re-timestamps the kept frames into one
contiguous stream:

    select='lt(mod(t,I),W)',setpts=N/FRAME_RATE/TB
"""

from dataclasses import dataclass

from recapper.models.schemas import RecapSettings

SELECT_FILTER_TEMPLATE = "select='lt(mod(t,{interval}),{window})',setpts=N/FRAME_RATE/TB"


@dataclass(frozen=True)
class SegmentFilter:
    """
    Filter expression plus derived display values.

    Attributes:
        expression: ffmpeg video filter expression
        max_output_seconds: Output is truncated to this length
        estimated_segment_count: Approximate number of kept segments
        keep_ratio: Share of the source timeline kept (W / I)
    """

    expression: str
    max_output_seconds: int
    estimated_segment_count: int
    keep_ratio: float = 1.0


def build_select_filter(sample_interval_seconds: int, capture_window_seconds: int) -> str:
    """Return the select/setpts expression for interval I and window W."""
    return SELECT_FILTER_TEMPLATE.format(
        interval=sample_interval_seconds,
        window=capture_window_seconds,
    )


def estimate_segment_count(target_duration_seconds: int, sample_interval_seconds: int) -> int:
    """floor(D / I); purely informational."""
    return target_duration_seconds // sample_interval_seconds


def build_segment_filter(settings: RecapSettings) -> SegmentFilter:
    """
    Build the sampling filter for validated recap settings.

    Args:
        settings: Recap settings (already validated)

    Returns:
        SegmentFilter with expression, output bound and segment estimate
    """
    return SegmentFilter(
        expression=build_select_filter(
            settings.sample_interval_seconds,
            settings.capture_window_seconds,
        ),
        max_output_seconds=settings.target_duration_seconds,
        estimated_segment_count=estimate_segment_count(
            settings.target_duration_seconds,
            settings.sample_interval_seconds,
        ),
        keep_ratio=settings.capture_window_seconds / settings.sample_interval_seconds,
    )
