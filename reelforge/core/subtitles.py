"""
Burned-in caption generation (Advanced SubStation Alpha).

Transcript segments are shifted to clip-local time, wrapped onto at most
two lines and written as ASS dialogue events styled from
SubtitlePreferences. ffmpeg renders the file with the `ass` filter.
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from reelforge.core.cache import TTLCache, subtitle_key
from reelforge.core.models import SubtitlePreferences, TranscriptSegment

logger = logging.getLogger(__name__)

PLAY_RES_X = 1080
PLAY_RES_Y = 1920

MIN_FONT_SIZE = 16
MAX_FONT_SIZE = 48
FAST_SPEECH_CPS = 15
SLOW_SPEECH_CPS = 5

ALIGNMENT = {"top": 8, "center": 5, "bottom": 2}

DEFAULT_SUBTITLE_PREFERENCES = SubtitlePreferences()


def smart_line_break(text: str, max_chars_per_line: int) -> List[str]:
    """
    Wrap text on word boundaries into at most two lines.

    When greedy wrapping needs more than two lines, the wrapped lines are
    rebalanced into two halves.
    """
    text = " ".join(text.split())
    if len(text) <= max_chars_per_line:
        return [text] if text else []

    lines: List[str] = []
    current = ""
    for word in text.split(" "):
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars_per_line:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)

    if len(lines) > 2:
        half = math.ceil(len(lines) / 2)
        return [" ".join(lines[:half]), " ".join(lines[half:])]
    return lines


def hex_to_ass_color(hex_color: str, alpha: str = "00") -> str:
    """Convert #RRGGBB to ASS &HAABBGGRR."""
    value = hex_color.lstrip("#")
    r, g, b = value[0:2], value[2:4], value[4:6]
    return f"&H{alpha}{b}{g}{r}".upper()


def opacity_to_ass_alpha(opacity: float) -> str:
    """ASS alpha is inverted: 00 is opaque, FF is transparent."""
    alpha = round((1 - max(0.0, min(1.0, opacity))) * 255)
    return f"{alpha:02X}"


def format_ass_time(seconds: float) -> str:
    """Format seconds as H:MM:SS.CC."""
    seconds = max(0.0, seconds)
    total_cs = int(seconds * 100)
    h, rem = divmod(total_cs, 360000)
    m, rem = divmod(rem, 6000)
    s, cs = divmod(rem, 100)
    return f"{h}:{m:02d}:{s:02d}.{cs:02d}"


def adjust_font_size(text: str, duration: float, base_font_size: int) -> int:
    """
    Shrink captions for fast speech and enlarge them for slow speech.

    Args:
        text: All caption text shown in the clip.
        duration: Clip duration in seconds.
        base_font_size: Preferred size.

    Returns:
        Font size within [MIN_FONT_SIZE, MAX_FONT_SIZE].
    """
    if duration <= 0:
        return base_font_size
    chars_per_second = len(text) / duration
    if chars_per_second > FAST_SPEECH_CPS:
        return max(MIN_FONT_SIZE, base_font_size - 4)
    if chars_per_second < SLOW_SPEECH_CPS:
        return min(MAX_FONT_SIZE, base_font_size + 2)
    return base_font_size


def _clean(text: str) -> str:
    # Braces start ASS override blocks
    return " ".join(text.replace("{", "(").replace("}", ")").split())


def _style_line(prefs: SubtitlePreferences) -> str:
    primary = hex_to_ass_color(prefs.font_color)
    outline = hex_to_ass_color(prefs.outline_color)
    # BackColour paints both the shadow and the opaque box
    back_source = prefs.shadow_color if prefs.shadow else prefs.background_color
    back = hex_to_ass_color(back_source, opacity_to_ass_alpha(prefs.background_opacity))
    fields = [
        "Default",
        prefs.font,
        str(prefs.font_size),
        primary,
        primary,
        outline,
        back,
        "-1" if prefs.bold else "0",
        "-1" if prefs.italic else "0",
        "0",
        "0",
        "100",
        "100",
        "0",
        "0",
        "1",
        str(prefs.outline_width if prefs.outline else 0),
        "2" if prefs.shadow else "0",
        str(ALIGNMENT[prefs.position]),
        "40",
        "40",
        str(prefs.margin_vertical),
        "1",
    ]
    return "Style: " + ",".join(fields)


def _dialogue_text(text: str, start: float, end: float, prefs: SubtitlePreferences) -> str:
    if prefs.format == "karaoke":
        words = text.split(" ")
        per_word_cs = round((end - start) * 100 / len(words))
        return " ".join(f"{{\\k{per_word_cs}}}{word}" for word in words)

    if prefs.format == "single-line":
        body = text
    else:
        body = "\\N".join(smart_line_break(text, prefs.max_chars_per_line))

    if prefs.format == "progressive":
        return f"{{\\fad(200,200)}}{body}"
    return body


def generate_ass(
    segments: Sequence[TranscriptSegment],
    clip_start: float,
    preferences: SubtitlePreferences,
    clip_duration: Optional[float] = None,
) -> str:
    """
    Build an ASS document for one clip.

    Args:
        segments: Transcript segments overlapping the clip.
        clip_start: Clip start in source-video seconds; subtracted from
            every segment so events are in clip-local time.
        preferences: Caption styling.
        clip_duration: If given, events are clamped to the clip length.

    Returns:
        The ASS file contents.
    """
    header = "\n".join([
        "[Script Info]",
        "Title: ReelForge Captions",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        f"PlayResX: {PLAY_RES_X}",
        f"PlayResY: {PLAY_RES_Y}",
        "ScaledBorderAndShadow: yes",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, "
        "BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, "
        "BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding",
        _style_line(preferences),
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ])

    events = []
    for seg in segments:
        text = _clean(seg.text)
        if not text:
            continue
        start = max(0.0, seg.start - clip_start)
        end = max(0.0, seg.end - clip_start)
        if clip_duration is not None:
            end = min(end, clip_duration)
        if end <= start:
            continue
        events.append(
            f"Dialogue: 0,{format_ass_time(start)},{format_ass_time(end)},Default,,0,0,0,,"
            f"{_dialogue_text(text, start, end, preferences)}"
        )

    return header + "\n" + "\n".join(events) + "\n"


def write_ass_file(
    path: Path,
    segments: Sequence[TranscriptSegment],
    clip_start: float,
    clip_duration: float,
    preferences: SubtitlePreferences,
) -> Path:
    """Write captions for a clip, with the font size adapted to speech rate."""
    caption_text = " ".join(seg.text.strip() for seg in segments)
    font_size = adjust_font_size(caption_text, clip_duration, preferences.font_size)
    if font_size != preferences.font_size:
        logger.debug(f"Adjusted caption font size {preferences.font_size} -> {font_size}")
        preferences = preferences.model_copy(update={"font_size": font_size})

    path.write_text(
        generate_ass(segments, clip_start, preferences, clip_duration),
        encoding="utf-8",
    )
    return path


def resolve_preferences(
    cache: TTLCache,
    job_id: str,
    clip_id: Optional[str] = None,
    job_preferences: Optional[Dict[str, Any]] = None,
) -> SubtitlePreferences:
    """
    Resolve caption preferences for a clip.

    Priority: clip override, job override, job preferences, defaults.
    Each layer only overrides the fields it sets. An invalid layer is
    logged and ignored.
    """
    merged: Dict[str, Any] = {}
    layers = [
        job_preferences,
        cache.get(subtitle_key(job_id)),
        cache.get(subtitle_key(job_id, clip_id)) if clip_id else None,
    ]
    for layer in layers:
        if not layer:
            continue
        candidate = {**merged, **layer}
        try:
            SubtitlePreferences.model_validate(candidate)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid subtitle preferences for job {job_id}: {e}")
            continue
        merged = candidate

    return SubtitlePreferences.model_validate(merged)
