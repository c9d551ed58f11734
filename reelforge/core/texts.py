"""
Publishing texts for rendered clips.

Each clip gets a title, description and hashtags written by the language
model from its transcript excerpt, then clamped to short-video platform
limits. Failures never fail the job: the clip falls back to texts derived
from its ranking data.
"""

import asyncio
import logging
import re
import textwrap
from typing import Any, Dict, List, Sequence

from reelforge.core.gemini import LLMClient
from reelforge.core.models import RenderedClip, Transcript

logger = logging.getLogger(__name__)

TITLE_MAX = 100
TITLE_MIN_CUT = 40
DESCRIPTION_MAX = 5000
EXCERPT_MAX = 220
HASHTAG_MIN = 3
HASHTAG_DEFAULT_MAX = 12
HASHTAG_LIMIT = 60
SHORTS_MAX_DURATION = 60

GENERIC_HASHTAGS = {"video", "cool", "follow"}
FALLBACK_HASHTAGS = ["#shorts", "#trending", "#viral", "#clip", "#bestmoments"]
PAD_HASHTAGS = ["#video", "#clip", "#highlights"]

TEXTS_SYSTEM_INSTRUCTION = (
    "You write short, hook-driven titles, objective descriptions and relevant "
    "hashtags for short videos. Follow platform limits strictly. Respond with "
    "JSON only."
)

_HASHTAG_INVALID_RE = re.compile(r"[^\w]", re.UNICODE)


def pick_excerpt(transcript: Transcript, start: float, end: float, max_chars: int = EXCERPT_MAX) -> str:
    """Transcript text overlapping [start, end), cut at a word boundary."""
    text = " ".join(seg.text.strip() for seg in transcript.segments_between(start, end))
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    last_space = cut.rfind(" ")
    if last_space > 0:
        cut = cut[:last_space]
    return cut.rstrip(" ,.;:") + "…"


def normalize_hashtag(tag: str) -> str:
    """Return '#tag' with only word characters, or '' if nothing remains."""
    body = _HASHTAG_INVALID_RE.sub("", str(tag).strip().lstrip("#"))
    return f"#{body}" if body else ""


def enforce_limits(
    title: str,
    description: str,
    hashtags: Sequence[Any],
    duration: float,
    hashtag_max: int = HASHTAG_DEFAULT_MAX,
) -> Dict[str, Any]:
    """
    Clamp generated texts to platform limits.

    - title: at most TITLE_MAX characters, cut at a word boundary when the
      last space falls after TITLE_MIN_CUT
    - description: at most DESCRIPTION_MAX characters
    - hashtags: normalized, generic tags removed, #Shorts first for clips up
      to a minute, deduplicated case-insensitively, capped at hashtag_max
      (itself clamped to [3, 60]) and padded to at least three
    """
    title = " ".join(str(title or "").split())
    if len(title) > TITLE_MAX:
        cut = title[:TITLE_MAX]
        last_space = cut.rfind(" ")
        title = cut[:last_space] if last_space > TITLE_MIN_CUT else cut
        title = title.rstrip()

    description = str(description or "").strip()[:DESCRIPTION_MAX]

    limit = max(HASHTAG_MIN, min(HASHTAG_LIMIT, int(hashtag_max)))
    candidates: List[str] = []
    if duration <= SHORTS_MAX_DURATION:
        candidates.append("#Shorts")
    for tag in hashtags:
        normalized = normalize_hashtag(tag)
        if normalized and normalized[1:].lower() not in GENERIC_HASHTAGS:
            candidates.append(normalized)

    seen: set[str] = set()
    final_tags: List[str] = []
    for tag in candidates:
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        final_tags.append(tag)
        if len(final_tags) >= limit:
            break

    for pad in PAD_HASHTAGS:
        if len(final_tags) >= HASHTAG_MIN:
            break
        if pad.lower() not in seen:
            seen.add(pad.lower())
            final_tags.append(pad)

    return {"title": title, "description": description, "hashtags": final_tags}


def fallback_texts(clip: RenderedClip) -> Dict[str, Any]:
    title = clip.segment.title or f"Highlight #{clip.index + 1}"
    description = "\n".join(
        line for line in [
            clip.segment.reason,
            f"Clip extracted automatically. Duration: {round(clip.duration)}s",
        ] if line
    )
    return enforce_limits(title, description, FALLBACK_HASHTAGS + clip.segment.keywords, clip.duration)


class ClipTextWriter:
    """Writes titles, descriptions and hashtags for rendered clips."""

    def __init__(self, llm_client: LLMClient, hashtag_max: int = HASHTAG_DEFAULT_MAX):
        self.llm_client = llm_client
        self.hashtag_max = hashtag_max

    def build_prompt(self, clip: RenderedClip, excerpt: str, language: str) -> str:
        return textwrap.dedent(
            """
            Write publishing texts for a short video clip.

            - TITLE: at most 100 characters, with a hook; no empty clickbait;
              use numbers when it makes sense.
            - DESCRIPTION: one or two strong sentences, then three short value
              bullets and a brief call to action.
            - HASHTAGS: 3 to {hashtag_max}, unique, no spaces or accents.
            Clip duration: {duration}s. Write in the video's language ({language}).

            Current working title: {title}
            Transcript excerpt: {excerpt}

            Respond with JSON: {{"title": string, "description": string, "hashtags": [string]}}
            """
        ).strip().format(
            hashtag_max=self.hashtag_max,
            duration=round(clip.duration),
            language=language,
            title=clip.segment.title,
            excerpt=excerpt,
        )

    async def finalize(self, clip: RenderedClip, transcript: Transcript) -> RenderedClip:
        """Fill clip.title, clip.description and clip.hashtags in place."""
        excerpt = pick_excerpt(transcript, clip.segment.start, clip.segment.end)

        if not excerpt:
            logger.warning(f"No transcript text for clip {clip.id}, using fallback texts")
            texts = fallback_texts(clip)
        else:
            try:
                raw = await asyncio.to_thread(
                    self.llm_client.generate_json,
                    self.build_prompt(clip, excerpt, transcript.language),
                    TEXTS_SYSTEM_INSTRUCTION,
                )
                hashtags = raw.get("hashtags")
                texts = enforce_limits(
                    raw.get("title") or clip.segment.title,
                    raw.get("description") or "",
                    hashtags if isinstance(hashtags, list) else [],
                    clip.duration,
                    self.hashtag_max,
                )
            except Exception as e:
                logger.warning(f"Text generation failed for clip {clip.id}, using fallback: {e}")
                texts = fallback_texts(clip)

        clip.title = texts["title"] or clip.segment.title
        clip.description = texts["description"]
        clip.hashtags = texts["hashtags"]
        return clip

    async def finalize_all(self, clips: Sequence[RenderedClip], transcript: Transcript) -> List[RenderedClip]:
        return [await self.finalize(clip, transcript) for clip in clips]
