"""
Transcoding engine package.

- TranscodingEngine: protocol the extractor drives
- FFmpegEngine: ffmpeg subprocess implementation with a working directory

Usage:
    from recapper.services.engine import FFmpegEngine

    engine = FFmpegEngine.from_settings(settings)
    await engine.load()
    await engine.write_input("in.mp4", video_path)
    await engine.transform("in.mp4", "select=...", 30, "out.mp4")
    data = await engine.read_output("out.mp4")
    await engine.delete_entry("in.mp4")
    await engine.delete_entry("out.mp4")
"""

from recapper.services.engine.base import EngineProgressCallback, TranscodingEngine
from recapper.services.engine.ffmpeg_engine import FFmpegEngine

__all__ = [
    "EngineProgressCallback",
    "TranscodingEngine",
    "FFmpegEngine",
]
