"""
Decoding of ranking-service responses.

Responses are decoded through strict pydantic models. Optional fields get
explicit defaults (score 0.5, a placeholder title, empty keywords, empty
reason); a missing top-level array is an error.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 0.5
PLACEHOLDER_TITLE = "Highlight {index}"

M = TypeVar("M", bound="_PickBase")


class ResponseFormatError(ValueError):
    """The response lacks the expected structure."""


def _coerce_score(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_SCORE
    try:
        score = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    if math.isnan(score):
        return DEFAULT_SCORE
    return min(1.0, max(0.0, score))


class _PickBase(BaseModel):
    score: float = DEFAULT_SCORE
    title: str = ""
    reason: str = ""
    keywords: List[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> float:
        return _coerce_score(v)

    @field_validator("title", "reason", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("keywords", mode="before")
    @classmethod
    def coerce_keywords(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        return [str(k).strip() for k in v if k is not None and str(k).strip()]


class ScenePick(_PickBase):
    """One entry of a scene ranking response."""

    scene_index: int = Field(..., ge=0)


class TimedPick(_PickBase):
    """One entry of a transcript analysis response."""

    start: float = Field(..., allow_inf_nan=False)
    end: float = Field(..., allow_inf_nan=False)


def extract_items(data: Dict[str, Any], key: str) -> List[Any]:
    """
    Return the top-level array stored under key.

    Raises:
        ResponseFormatError: If the key is absent or not a list.
    """
    items = data.get(key) if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ResponseFormatError(f"Invalid response structure: missing {key} array")
    return items


def decode_picks(items: List[Any], model: Type[M]) -> List[M]:
    """
    Decode raw entries into pick models.

    Entries that fail validation (non-objects, missing required fields)
    are logged and skipped. Empty titles get a numbered placeholder.
    """
    picks: List[M] = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            logger.warning(f"Skipping non-object ranking entry #{index}: {raw!r}")
            continue
        try:
            pick = model.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Skipping malformed ranking entry #{index}: {e.errors()[0]['msg']}")
            continue
        if not pick.title:
            pick.title = PLACEHOLDER_TITLE.format(index=index)
        picks.append(pick)
    return picks


def extract_reasoning(data: Dict[str, Any]) -> str:
    reasoning: Optional[Any] = data.get("reasoning")
    return str(reasoning).strip() if reasoning is not None else ""
