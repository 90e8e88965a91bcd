from __future__ import annotations

from typing import Optional, Tuple

from fastgif.config import Settings

from .models import PipelineRequest


def ffmpeg_argv(source: str, settings: Settings) -> Tuple[str, ...]:
    """ffmpeg reads the source (URL or path) and writes yuv4mpegpipe frames to stdout."""
    return (
        settings.ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-i", source,
        "-f", "yuv4mpegpipe",
        "-",
    )


def gifski_argv(settings: Settings) -> Tuple[str, ...]:
    """gifski reads yuv4mpegpipe frames from stdin and writes the GIF to stdout."""
    argv = [settings.gifski_bin, "--output", "-"]
    if settings.gifski_fast:
        argv.append("--fast")
    argv.append("-")
    return tuple(argv)


def build_request(source: str, settings: Settings, label: Optional[str] = None) -> PipelineRequest:
    return PipelineRequest(
        source=source,
        producer_argv=ffmpeg_argv(source, settings),
        consumer_argv=gifski_argv(settings),
        label=label,
    )
