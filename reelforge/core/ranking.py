"""
Highlight ranking through a JSON-producing language model.

Two structurally different paths exist:

- scene ranking: detected scenes are listed by index and the model picks
  clip_count of them; picks are mapped back to the scene time ranges.
- transcript analysis (fallback): the full timestamped transcript is sent
  and the model chooses the time ranges itself. Used when too few scenes
  were detected or when scene ranking fails.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Sequence

from reelforge.core.errors import RankingError
from reelforge.core.gemini import LLMClient
from reelforge.core.models import AnalysisOptions, DetectedScene, HighlightSegment, Transcript
from reelforge.core.workflow.data_processor import (
    ResponseFormatError,
    ScenePick,
    TimedPick,
    decode_picks,
    extract_items,
    extract_reasoning,
)
from reelforge.core.workflow.prompt import (
    SYSTEM_INSTRUCTION,
    build_analysis_prompt,
    build_ranking_prompt,
)

logger = logging.getLogger(__name__)


@dataclass
class RankingResult:
    """Ranked highlight segments and the model's explanation."""

    segments: List[HighlightSegment]
    reasoning: str
    used_fallback: bool = False


class HighlightRanker:
    """Selects the most promising highlights for a job."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def rank(
        self,
        scenes: Sequence[DetectedScene],
        transcript: Transcript,
        options: AnalysisOptions,
    ) -> RankingResult:
        """
        Rank scenes, falling back to transcript analysis when needed.

        Args:
            scenes: Candidate scenes from the scene detector.
            transcript: Full transcript, used by the fallback path.
            options: Requested clip count and duration bounds.

        Returns:
            RankingResult with at most clip_count segments, best first.

        Raises:
            RankingError: If the fallback path fails.
        """
        if len(scenes) >= options.clip_count:
            try:
                return await self.rank_scenes(scenes, options.clip_count, transcript.language)
            except RankingError as e:
                logger.warning(f"Scene ranking failed, falling back to transcript analysis: {e}")
        else:
            logger.info(
                f"Only {len(scenes)} scenes for {options.clip_count} clips, "
                "using transcript analysis"
            )

        return await self.analyze_transcript(transcript, options)

    async def rank_scenes(
        self,
        scenes: Sequence[DetectedScene],
        clip_count: int,
        language: str,
    ) -> RankingResult:
        """Ask the model to pick clip_count of the detected scenes."""
        prompt = build_ranking_prompt(scenes, clip_count, language)
        data = await self._generate(prompt)

        try:
            items = extract_items(data, "rankings")
        except ResponseFormatError as e:
            raise RankingError(str(e)) from e

        segments: List[HighlightSegment] = []
        seen: set[int] = set()
        for pick in decode_picks(items, ScenePick):
            if pick.scene_index >= len(scenes):
                logger.warning(f"Ranking referenced unknown scene {pick.scene_index}, skipping")
                continue
            if pick.scene_index in seen:
                continue
            seen.add(pick.scene_index)
            scene = scenes[pick.scene_index]
            segments.append(
                HighlightSegment(
                    start=scene.start,
                    end=scene.end,
                    score=pick.score,
                    title=pick.title,
                    reason=pick.reason,
                    keywords=pick.keywords,
                )
            )

        if not segments:
            raise RankingError("Scene ranking returned no usable picks")

        segments.sort(key=lambda s: s.score, reverse=True)
        logger.info(f"Scene ranking selected {min(len(segments), clip_count)} of {len(scenes)} scenes")
        return RankingResult(segments=segments[:clip_count], reasoning=extract_reasoning(data))

    async def analyze_transcript(
        self,
        transcript: Transcript,
        options: AnalysisOptions,
    ) -> RankingResult:
        """Ask the model to find highlight time ranges in the raw transcript."""
        prompt = build_analysis_prompt(transcript, options)
        data = await self._generate(prompt)

        try:
            items = extract_items(data, "segments")
        except ResponseFormatError as e:
            raise RankingError(str(e)) from e

        segments = [
            HighlightSegment(
                start=pick.start,
                end=pick.end,
                score=pick.score,
                title=pick.title,
                reason=pick.reason,
                keywords=pick.keywords,
            )
            for pick in decode_picks(items, TimedPick)
        ]
        segments.sort(key=lambda s: s.score, reverse=True)
        logger.info(f"Transcript analysis proposed {len(segments)} segments")
        return RankingResult(
            segments=segments[:options.clip_count],
            reasoning=extract_reasoning(data),
            used_fallback=True,
        )

    async def _generate(self, prompt: str) -> dict:
        try:
            return await asyncio.to_thread(
                self.llm_client.generate_json, prompt, SYSTEM_INSTRUCTION
            )
        except Exception as e:
            raise RankingError(f"Ranking service failed: {e}") from e
