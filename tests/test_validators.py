"""
Tests for highlight segment validation.

Run with: pytest tests/test_validators.py -v
"""

from reelforge.core.models import HighlightSegment
from reelforge.core.workflow.validators import validate_segments


def _segment(start, end, score=0.5, title="clip"):
    return HighlightSegment(start=start, end=end, score=score, title=title)


class TestValidateSegments:
    """Tests for validate_segments."""

    def test_overlong_segment_truncated(self):
        result = validate_segments([_segment(10, 130)], video_duration=600, min_duration=30, max_duration=90)

        assert len(result) == 1
        assert result[0].start == 10
        assert result[0].end == 100

    def test_truncation_keeps_start(self):
        result = validate_segments([_segment(100, 158, title="hook")], video_duration=160, min_duration=10, max_duration=50)

        assert (result[0].start, result[0].end) == (100, 150)
        assert result[0].title == "hook"

    def test_out_of_bounds_dropped(self):
        segments = [
            _segment(-1, 40, title="negative start"),
            _segment(570, 610, title="past the end"),
            _segment(50, 50, title="empty"),
            _segment(80, 60, title="reversed"),
        ]
        assert validate_segments(segments, video_duration=600, min_duration=10, max_duration=90) == []

    def test_short_segment_dropped(self):
        result = validate_segments(
            [_segment(0, 20, title="short"), _segment(30, 70, title="ok")],
            video_duration=600,
            min_duration=30,
            max_duration=90,
        )
        assert [s.title for s in result] == ["ok"]

    def test_sorted_by_score(self):
        segments = [_segment(0, 40, 0.2, "low"), _segment(50, 90, 0.9, "high"), _segment(100, 140, 0.5, "mid")]
        result = validate_segments(segments, video_duration=600, min_duration=30, max_duration=90)

        assert [s.title for s in result] == ["high", "mid", "low"]

    def test_idempotent(self):
        segments = [
            _segment(10, 130, 0.4),
            _segment(0, 20, 0.9),
            _segment(200, 250, 0.8),
            _segment(590, 620, 0.7),
        ]
        once = validate_segments(segments, video_duration=600, min_duration=30, max_duration=90)
        twice = validate_segments(once, video_duration=600, min_duration=30, max_duration=90)

        assert once == twice
        assert len(once) == 2

    def test_input_not_mutated(self):
        original = _segment(10, 130)
        validate_segments([original], video_duration=600, min_duration=30, max_duration=90)
        assert original.end == 130

    def test_non_finite_times_dropped(self):
        segments = [
            _segment(float("nan"), 50, 0.9, "nan start"),
            _segment(10, float("nan"), 0.9, "nan end"),
            _segment(10, float("inf"), 0.9, "infinite end"),
            _segment(100, 140, 0.5, "ok"),
        ]
        result = validate_segments(segments, video_duration=600, min_duration=30, max_duration=90)

        assert [s.title for s in result] == ["ok"]
