"""
Tests for ASS caption generation and preference resolution.

Run with: pytest tests/test_subtitles.py -v
"""

from reelforge.core.cache import store_subtitle_override
from reelforge.core.models import SubtitlePreferences, TranscriptSegment
from reelforge.core.subtitles import (
    adjust_font_size,
    format_ass_time,
    generate_ass,
    hex_to_ass_color,
    opacity_to_ass_alpha,
    resolve_preferences,
    smart_line_break,
    write_ass_file,
)


def _dialogues(content):
    return [line for line in content.splitlines() if line.startswith("Dialogue:")]


class TestAssHelpers:
    """Tests for formatting helpers."""

    def test_hex_to_ass_color(self):
        assert hex_to_ass_color("#FF8000") == "&H000080FF"
        assert hex_to_ass_color("#112233", "80") == "&H80332211"

    def test_opacity_to_alpha(self):
        assert opacity_to_ass_alpha(1.0) == "00"
        assert opacity_to_ass_alpha(0.0) == "FF"
        assert opacity_to_ass_alpha(0.85) == "26"

    def test_format_ass_time(self):
        assert format_ass_time(0) == "0:00:00.00"
        assert format_ass_time(3661.5) == "1:01:01.50"
        assert format_ass_time(-2) == "0:00:00.00"

    def test_smart_line_break(self):
        assert smart_line_break("short text", 28) == ["short text"]
        lines = smart_line_break("this caption is definitely longer than one line allows", 20)
        assert len(lines) == 2
        assert " ".join(lines) == "this caption is definitely longer than one line allows"

    def test_adjust_font_size(self):
        assert adjust_font_size("x" * 200, 10, 32) == 28
        assert adjust_font_size("x" * 10, 10, 32) == 34
        assert adjust_font_size("x" * 100, 10, 32) == 32
        assert adjust_font_size("x" * 10, 10, 48) == 48
        assert adjust_font_size("x" * 500, 10, 18) == 16


class TestGenerateAss:
    """Tests for generate_ass."""

    def test_events_in_clip_time(self):
        segments = [TranscriptSegment(start=12.0, end=15.0, text="hello there")]
        content = generate_ass(segments, clip_start=10.0, preferences=SubtitlePreferences())

        assert "PlayResX: 1080" in content
        assert "PlayResY: 1920" in content
        assert _dialogues(content) == [
            "Dialogue: 0,0:00:02.00,0:00:05.00,Default,,0,0,0,,hello there"
        ]

    def test_alignment_follows_position(self):
        content = generate_ass([], 0.0, SubtitlePreferences(position="top"))
        style = next(line for line in content.splitlines() if line.startswith("Style:"))
        assert style.split(",")[18] == "8"

    def test_events_clamped_to_clip(self):
        segments = [
            TranscriptSegment(start=5.0, end=12.0, text="runs past the end"),
            TranscriptSegment(start=20.0, end=25.0, text="outside"),
        ]
        content = generate_ass(segments, 0.0, SubtitlePreferences(), clip_duration=10.0)

        assert _dialogues(content) == [
            "Dialogue: 0,0:00:05.00,0:00:10.00,Default,,0,0,0,,runs past the end"
        ]

    def test_karaoke_format(self):
        segments = [TranscriptSegment(start=0.0, end=1.0, text="hello world")]
        content = generate_ass(segments, 0.0, SubtitlePreferences(format="karaoke"))
        assert _dialogues(content)[0].endswith("{\\k50}hello {\\k50}world")

    def test_progressive_format(self):
        segments = [TranscriptSegment(start=0.0, end=2.0, text="fade in")]
        content = generate_ass(segments, 0.0, SubtitlePreferences(format="progressive"))
        assert _dialogues(content)[0].endswith("{\\fad(200,200)}fade in")

    def test_braces_escaped(self):
        segments = [TranscriptSegment(start=0.0, end=2.0, text="a {b} c")]
        content = generate_ass(segments, 0.0, SubtitlePreferences())
        assert _dialogues(content)[0].endswith("a (b) c")

    def test_write_ass_file_adapts_font(self, tmp_path):
        segments = [TranscriptSegment(start=0.0, end=10.0, text="x" * 200)]
        path = write_ass_file(tmp_path / "c.ass", segments, 0.0, 10.0, SubtitlePreferences(font_size=32))

        style = next(line for line in path.read_text(encoding="utf-8").splitlines() if line.startswith("Style:"))
        assert style.split(",")[2] == "28"


class TestResolvePreferences:
    """Tests for layered caption preferences."""

    def test_defaults(self, cache):
        assert resolve_preferences(cache, "job1") == SubtitlePreferences()

    def test_layers_in_priority_order(self, cache):
        store_subtitle_override(cache, "job1", {"position": "top", "font_size": 36})
        store_subtitle_override(cache, "job1", {"font_size": 40}, clip_id="clip1")

        prefs = resolve_preferences(cache, "job1", "clip1", {"font_size": 24, "bold": False})

        assert prefs.font_size == 40
        assert prefs.position == "top"
        assert prefs.bold is False

        other = resolve_preferences(cache, "job1", "clip2", {"font_size": 24})
        assert other.font_size == 36

    def test_invalid_layer_ignored(self, cache):
        store_subtitle_override(cache, "job1", {"font_size": 100})
        prefs = resolve_preferences(cache, "job1", None, {"font_color": "#ff0000"})

        assert prefs.font_size == 32
        assert prefs.font_color == "#FF0000"
