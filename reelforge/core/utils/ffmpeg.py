"""
Subprocess helpers for ffmpeg and ffprobe.

Every render, audio split and probe in the pipeline goes through run_ffmpeg,
which keeps stderr quiet and turns process failures into RuntimeError.
"""

import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# stderr lines printed by some ffmpeg builds on every run
BENIGN_WARNING_PATTERNS = [
    r"\[av1 @ .*\] Your platform doesn't suppport hardware accelerated AV1 decoding",
    r"\[av1 @ .*\] Failed to get pixel format",
    r"\[.*\] .* does not support hardware acceleration",
    r"Guessed Channel Layout for Input Stream",
]


class FFmpegTimeoutError(RuntimeError):
    """ffmpeg was killed because it ran past its time limit."""


def filter_benign_warnings(stderr: str) -> tuple[str, list[str]]:
    """Split stderr into (remaining text, benign warning lines)."""
    kept: list[str] = []
    benign: list[str] = []
    for line in stderr.splitlines():
        is_benign = any(re.search(p, line, re.IGNORECASE) for p in BENIGN_WARNING_PATTERNS)
        (benign if is_benign else kept).append(line)
    return "\n".join(kept), benign


def run_ffmpeg(
    cmd: list[str],
    suppress_warnings: bool = True,
    log_level: str = "error",
    check: bool = True,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """
    Run an ffmpeg or ffprobe command and capture its output.

    With suppress_warnings, ffmpeg commands get `-loglevel <log_level>`
    (after `-y` when present) and benign stderr lines are dropped. A process
    still running after timeout seconds is killed.

    Raises:
        FFmpegTimeoutError: The process was killed at the timeout.
        RuntimeError: The binary is missing, or it exited non-zero with check set.
    """
    if suppress_warnings and cmd and cmd[0] == "ffmpeg" and "-loglevel" not in cmd:
        insert_pos = 2 if len(cmd) > 1 and cmd[1] == "-y" else 1
        cmd = cmd[:insert_pos] + ["-loglevel", log_level] + cmd[insert_pos:]

    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            check=check,
            capture_output=True,
            text=True,
            timeout=timeout,
        )

        if suppress_warnings and result.stderr:
            filtered_stderr, warnings = filter_benign_warnings(result.stderr)
            if warnings:
                logger.debug(f"Filtered {len(warnings)} benign FFmpeg warnings")
            result.stderr = filtered_stderr

        return result

    except subprocess.CalledProcessError as e:
        stderr = e.stderr or ""
        if suppress_warnings and stderr:
            stderr, _ = filter_benign_warnings(stderr)
        logger.error(f"FFmpeg failed: {stderr.strip()}")
        raise RuntimeError(f"FFmpeg command failed: {stderr.strip()}") from e
    except subprocess.TimeoutExpired as e:
        logger.error(f"{cmd[0]} killed after {timeout:.1f}s")
        raise FFmpegTimeoutError(f"{cmd[0]} did not finish within {timeout:.1f}s") from e
    except FileNotFoundError as e:
        raise RuntimeError(f"{cmd[0]} is not installed or not on PATH") from e


def probe_duration(path: Path) -> float:
    """
    Return the container duration of a media file in seconds.

    Raises:
        RuntimeError: If ffprobe fails or reports no duration.
    """
    result = run_ffmpeg(
        [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            str(path),
        ],
        suppress_warnings=False,
    )
    try:
        data = json.loads(result.stdout)
        return float(data["format"]["duration"])
    except (ValueError, KeyError, TypeError) as e:
        raise RuntimeError(f"Could not read duration of {path}: {e}") from e
