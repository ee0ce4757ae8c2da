"""
ffmpeg invocation for the video-producing stages.

One call, one process: the stage blocks until ffmpeg exits and either gets a
usable output file back or an :class:`EncodeError`. On failure the output file
is removed so a partial encode can never be uploaded.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

import structlog
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .errors import EncodeError

logger = structlog.get_logger(__name__)

# Pad to a 9:16 portrait canvas, then cap at 720x1280 for mobile playback.
PORTRAIT_FILTER = (
    "pad=iw:ceil(iw*16/9):0:(oh-ih)/2:color=black,setsar=1,"
    "scale='if(gt(iw,720),720,iw)':'if(gt(ih,1280),1280,ih)'"
)

STDERR_TAIL_CHARS = 4000


@dataclass(frozen=True)
class EncoderProfile:
    name: str
    video_codec: str
    codec_args: tuple[str, ...]
    video_filter: str = PORTRAIT_FILTER
    # faststart moves the moov atom up front; yuv420p is what phones decode.
    container_args: tuple[str, ...] = ("-movflags", "faststart", "-pix_fmt", "yuv420p")
    content_type: str = "video/mp4"


PROFILES = {
    # HEVC tagged hvc1 so Apple players accept it.
    "hevc": EncoderProfile(
        name="hevc",
        video_codec="libx265",
        codec_args=("-crf", "10", "-b:v", "0", "-tag:v", "hvc1"),
    ),
    "av1": EncoderProfile(
        name="av1",
        video_codec="libaom-av1",
        codec_args=("-crf", "30", "-b:v", "0", "-cpu-used", "6"),
    ),
}


def get_profile(name: str | None = None) -> EncoderProfile:
    name = name or settings.ENCODER_PROFILE
    try:
        return PROFILES[name]
    except KeyError:
        raise ImproperlyConfigured(
            f"Unknown ENCODER_PROFILE {name!r}. Allowed: {sorted(PROFILES)}"
        ) from None


def build_command(input_path: Path, output_path: Path, profile: EncoderProfile) -> list[str]:
    return [
        settings.FFMPEG_BINARY,
        "-y",
        "-i", str(input_path),
        *profile.container_args,
        "-vf", profile.video_filter,
        "-c:v", profile.video_codec,
        *profile.codec_args,
        str(output_path),
    ]


def _decode(stream) -> str:
    if not stream:
        return ""
    if isinstance(stream, bytes):
        stream = stream.decode("utf-8", errors="ignore")
    return stream[-STDERR_TAIL_CHARS:]


def run_encoder(input_path: Path, output_path: Path, profile: EncoderProfile) -> None:
    """Encode ``input_path`` into ``output_path`` or raise :class:`EncodeError`."""
    cmd = build_command(input_path, output_path, profile)
    logger.info("encode_started", profile=profile.name, input=str(input_path), output=str(output_path))

    try:
        subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=settings.ENCODER_TIMEOUT_SECONDS,
        )
    except subprocess.CalledProcessError as e:
        _discard(output_path)
        raise EncodeError(
            f"ffmpeg exited with status {e.returncode}",
            returncode=e.returncode,
            stderr=_decode(e.stderr),
        ) from e
    except subprocess.TimeoutExpired as e:
        _discard(output_path)
        raise EncodeError(
            f"ffmpeg timed out after {e.timeout}s", stderr=_decode(e.stderr)
        ) from e
    except OSError as e:
        _discard(output_path)
        raise EncodeError(f"could not start ffmpeg: {e}") from e

    if not output_path.exists() or output_path.stat().st_size == 0:
        _discard(output_path)
        raise EncodeError("ffmpeg reported success but produced no output")

    logger.info("encode_finished", profile=profile.name, bytes=output_path.stat().st_size)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("encode_output_discard_failed", path=str(path), exc_info=True)
