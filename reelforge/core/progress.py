"""
Progress reporting for pipeline stages.

Stages publish ProgressEvent values to a ProgressSink. Only the
orchestrator's sink persists them; stages never write the job record.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress update."""

    stage: str
    percent: int
    message: str
    timestamp: datetime

    @classmethod
    def create(cls, stage: str, percent: float, message: str) -> "ProgressEvent":
        clamped = max(0, min(100, int(percent)))
        return cls(
            stage=stage,
            percent=clamped,
            message=message,
            timestamp=datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "percent": self.percent,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class ProgressSink(Protocol):
    """Receiver for progress events."""

    async def publish(self, event: ProgressEvent) -> None:
        ...


class LoggingProgressSink:
    """Sink that only logs events."""

    async def publish(self, event: ProgressEvent) -> None:
        logger.info(f"[{event.percent:3d}%] {event.stage}: {event.message}")


class CollectingProgressSink:
    """Sink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []

    async def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)


def interpolate(window: tuple[int, int], done: int, total: int) -> int:
    """
    Map done/total onto a (start, end) progress window.

    Args:
        window: Inclusive progress range reserved for the stage.
        done: Units of work finished so far.
        total: Total units of work.

    Returns:
        Integer percent inside the window.
    """
    start, end = window
    if total <= 0:
        return start
    return start + ((end - start) * done) // total
