"""
ffmpeg and yt-dlp commands for producing clip files.

Covers the source download, the per-aspect-ratio video filter chain, clip
encoding with loudness normalization and thumbnail extraction.
"""

import subprocess
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from reelforge.config import RENDER_PRESET
from reelforge.core.utils.ffmpeg import FFmpegTimeoutError, run_ffmpeg

logger = logging.getLogger(__name__)

RESOLUTIONS = {
    "9:16": (1080, 1920),
    "1:1": (1080, 1080),
    "16:9": (1920, 1080),
}

SCALE_FLAGS = "lanczos+accurate_rnd+full_chroma_int+full_chroma_inp"
LOUDNORM_FILTER = "loudnorm=I=-14:LRA=11:TP=-1.5"


@dataclass(frozen=True)
class RenderQuality:
    """Encoder settings for one render profile."""

    video_args: List[str]
    audio_args: List[str]
    thumbnail_quality: int
    extra_args: List[str] = field(default_factory=list)


def batch_quality(preset: str = RENDER_PRESET) -> RenderQuality:
    """Fast settings used when rendering a whole job."""
    return RenderQuality(
        video_args=["-c:v", "libx264", "-preset", preset, "-crf", "20", "-pix_fmt", "yuv420p"],
        audio_args=["-c:a", "aac", "-b:a", "192k"],
        thumbnail_quality=3,
        extra_args=["-movflags", "+faststart"],
    )


RERENDER_QUALITY = RenderQuality(
    video_args=[
        "-c:v", "libx264",
        "-preset", "slow",
        "-tune", "film",
        "-crf", "16",
        "-b:v", "12M",
        "-maxrate", "15M",
        "-bufsize", "20M",
        "-profile:v", "high",
        "-level", "4.2",
        "-pix_fmt", "yuv420p",
        "-g", "60",
        "-keyint_min", "30",
        "-refs", "5",
        "-bf", "3",
        "-x264-params", "aq-mode=3:aq-strength=0.8",
    ],
    audio_args=["-c:a", "aac", "-b:a", "192k", "-ac", "2", "-ar", "48000"],
    thumbnail_quality=2,
    extra_args=["-movflags", "+faststart"],
)


def download_video(url: str, video_file: Path) -> Path:
    """Download a remote video with yt-dlp."""
    video_file.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Downloading video from {url}")
    try:
        subprocess.run(
            [
                "yt-dlp",
                "-f", "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best",
                "--merge-output-format", "mp4",
                "-o", str(video_file),
                url,
            ],
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"yt-dlp failed:\n{e.stderr}")
        raise RuntimeError(f"Video download failed: {e.stderr}") from e
    except FileNotFoundError as e:
        raise RuntimeError("yt-dlp is not installed or not on PATH") from e

    if not video_file.exists() or video_file.stat().st_size == 0:
        raise RuntimeError(f"Video download produced no file at {video_file}")
    return video_file


def escape_filter_path(path: Path) -> str:
    """Escape a path for use inside an ffmpeg filter argument."""
    return (
        str(path)
        .replace("\\", "/")
        .replace(":", "\\:")
        .replace("'", "\\'")
        .replace(",", "\\,")
    )


def build_video_filter(aspect_ratio: str, subtitle_path: Optional[Path] = None) -> str:
    """
    Build the -vf chain for an aspect ratio.

    Vertical output crops the centre column before scaling so that the
    upscale works on as few source pixels as needed. Square output crops
    to the shorter side. Landscape output is only scaled.

    Raises:
        ValueError: For an unknown aspect ratio.
    """
    if aspect_ratio not in RESOLUTIONS:
        raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")

    width, height = RESOLUTIONS[aspect_ratio]
    scale = f"scale={width}:{height}:flags={SCALE_FLAGS}"

    if aspect_ratio == "9:16":
        filters = ["crop=ih*9/16:ih:(iw-ih*9/16)/2:0", scale]
    elif aspect_ratio == "1:1":
        filters = [
            "crop=min(iw\\,ih):min(iw\\,ih):(iw-min(iw\\,ih))/2:(ih-min(iw\\,ih))/2",
            scale,
        ]
    else:
        filters = [scale]

    filters.append("setsar=1")
    if subtitle_path is not None:
        filters.append(f"ass={escape_filter_path(subtitle_path)}")

    return ",".join(filters)


def render_clip(
    video_file: Path,
    out_path: Path,
    start: float,
    end: float,
    aspect_ratio: str,
    quality: RenderQuality,
    subtitle_path: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> Path:
    """
    Cut, reframe and encode one clip.

    Raises:
        FFmpegTimeoutError: If encoding runs longer than timeout seconds.
        RuntimeError: If ffmpeg fails.
    """
    duration = end - start
    cmd = [
        "ffmpeg", "-y",
        "-ss", f"{start:.3f}",
        "-i", str(video_file),
        "-t", f"{duration:.3f}",
        "-vf", build_video_filter(aspect_ratio, subtitle_path),
        "-af", LOUDNORM_FILTER,
        *quality.video_args,
        *quality.audio_args,
        *quality.extra_args,
        str(out_path),
    ]

    try:
        run_ffmpeg(cmd, timeout=timeout)
    except FFmpegTimeoutError:
        raise
    except RuntimeError as e:
        raise RuntimeError(f"FFmpeg clipping failed for {out_path.name}: {e}") from e
    return out_path


def extract_thumbnail(
    video_file: Path,
    out_path: Path,
    timestamp: float,
    quality: int = 3,
    timeout: Optional[float] = None,
) -> Path:
    """Grab one frame of a rendered clip as a JPEG."""
    cmd = [
        "ffmpeg", "-y",
        "-ss", f"{max(0.0, timestamp):.3f}",
        "-i", str(video_file),
        "-frames:v", "1",
        "-q:v", str(quality),
        str(out_path),
    ]
    try:
        run_ffmpeg(cmd, timeout=timeout)
    except FFmpegTimeoutError:
        raise
    except RuntimeError as e:
        raise RuntimeError(f"Thumbnail extraction failed for {video_file.name}: {e}") from e
    return out_path
