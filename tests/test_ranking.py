"""
Tests for highlight ranking and response decoding.

Run with: pytest tests/test_ranking.py -v
"""

import pytest

from conftest import FakeLLM, make_transcript
from reelforge.core.errors import RankingError
from reelforge.core.models import AnalysisOptions, DetectedScene
from reelforge.core.ranking import HighlightRanker
from reelforge.core.workflow.data_processor import (
    ResponseFormatError,
    ScenePick,
    TimedPick,
    decode_picks,
    extract_items,
)


def _scenes(count):
    return [
        DetectedScene(
            start=i * 60.0,
            end=i * 60.0 + 45.0,
            confidence=0.7,
            boundary_types=["silence"],
            text=f"scene {i} text",
        )
        for i in range(count)
    ]


def _transcript():
    return make_transcript([(i * 10.0, i * 10.0 + 9.0, f"line {i}.") for i in range(60)])


class TestHighlightRanker:
    """Tests for HighlightRanker."""

    @pytest.mark.asyncio
    async def test_primary_path_with_enough_scenes(self):
        rankings = [
            {"scene_index": i, "score": (i + 1) / 10, "title": f"Scene {i}", "reason": "good"}
            for i in range(10)
        ]
        llm = FakeLLM([{"rankings": rankings, "reasoning": "picked the best"}])
        ranker = HighlightRanker(llm)

        result = await ranker.rank(_scenes(10), _transcript(), AnalysisOptions(clip_count=8))

        assert not result.used_fallback
        assert len(result.segments) == 8
        scores = [s.score for s in result.segments]
        assert scores == sorted(scores, reverse=True)
        assert result.segments[0].start == 9 * 60.0
        assert result.segments[0].end == 9 * 60.0 + 45.0
        assert result.reasoning == "picked the best"
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_fallback_with_too_few_scenes(self):
        llm = FakeLLM([{
            "segments": [
                {"start": 10, "end": 70, "score": 0.8, "title": "Opening"},
                {"start": 100, "end": 160, "score": 0.9, "title": "Peak"},
            ],
            "reasoning": "transcript analysis",
        }])
        ranker = HighlightRanker(llm)

        result = await ranker.rank(_scenes(3), _transcript(), AnalysisOptions(clip_count=8))

        assert result.used_fallback
        assert [s.title for s in result.segments] == ["Peak", "Opening"]
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_fallback_after_ranking_failure(self):
        llm = FakeLLM([
            RuntimeError("model overloaded"),
            {"segments": [{"start": 0, "end": 45, "score": 0.7, "title": "Only"}]},
        ])
        ranker = HighlightRanker(llm)

        result = await ranker.rank(_scenes(5), _transcript(), AnalysisOptions(clip_count=3))

        assert result.used_fallback
        assert len(result.segments) == 1
        assert len(llm.prompts) == 2

    @pytest.mark.asyncio
    async def test_fallback_after_malformed_ranking(self):
        llm = FakeLLM([
            {"items": []},
            {"segments": [{"start": 0, "end": 45}]},
        ])
        result = await HighlightRanker(llm).rank(_scenes(5), _transcript(), AnalysisOptions(clip_count=3))

        assert result.used_fallback
        assert result.segments[0].score == 0.5
        assert result.segments[0].title == "Highlight 1"

    @pytest.mark.asyncio
    async def test_fallback_failure_raises(self):
        llm = FakeLLM([RuntimeError("down"), RuntimeError("still down")])

        with pytest.raises(RankingError):
            await HighlightRanker(llm).rank(_scenes(5), _transcript(), AnalysisOptions(clip_count=3))

    @pytest.mark.asyncio
    async def test_unknown_and_duplicate_indices_skipped(self):
        llm = FakeLLM([{
            "rankings": [
                {"scene_index": 1, "score": 0.9, "title": "A"},
                {"scene_index": 1, "score": 0.8, "title": "A again"},
                {"scene_index": 42, "score": 0.7, "title": "Ghost"},
                {"scene_index": 0, "score": 0.6, "title": "B"},
            ]
        }])
        result = await HighlightRanker(llm).rank_scenes(_scenes(3), 3, "en")

        assert [s.title for s in result.segments] == ["A", "B"]


class TestResponseDecoding:
    """Tests for strict decoding of model output."""

    def test_missing_array(self):
        with pytest.raises(ResponseFormatError):
            extract_items({"reasoning": "x"}, "rankings")

    def test_score_coercion(self):
        picks = decode_picks(
            [
                {"scene_index": 0, "score": "0.9"},
                {"scene_index": 1, "score": None},
                {"scene_index": 2, "score": 7},
                {"scene_index": 3, "score": "high"},
                {"scene_index": 4, "score": -1},
            ],
            ScenePick,
        )
        assert [p.score for p in picks] == [0.9, 0.5, 1.0, 0.5, 0.0]

    def test_invalid_entries_skipped(self):
        picks = decode_picks(
            [
                "not an object",
                {"start": 5},
                {"start": 5, "end": 50, "title": "  Kept  ", "keywords": ["a", None, " b "]},
            ],
            TimedPick,
        )
        assert len(picks) == 1
        assert picks[0].title == "Kept"
        assert picks[0].keywords == ["a", "b"]

    def test_non_finite_times_skipped(self):
        picks = decode_picks(
            [
                {"start": "nan", "end": 50},
                {"start": 5, "end": float("inf")},
                {"start": 5, "end": 50, "title": "Kept"},
            ],
            TimedPick,
        )
        assert [p.title for p in picks] == ["Kept"]

    def test_placeholder_title_uses_position(self):
        picks = decode_picks([{"scene_index": 0}, {"scene_index": 1, "title": ""}], ScenePick)
        assert [p.title for p in picks] == ["Highlight 1", "Highlight 2"]
