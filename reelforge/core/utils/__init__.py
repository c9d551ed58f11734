"""
Core utility modules for FFmpeg operations.
"""

from reelforge.core.utils.ffmpeg import FFmpegTimeoutError, run_ffmpeg, filter_benign_warnings, probe_duration

__all__ = ["FFmpegTimeoutError", "run_ffmpeg", "filter_benign_warnings", "probe_duration"]
