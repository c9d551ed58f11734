import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from openai import OpenAI

from reelforge.config import OPENAI_API_KEY, WHISPER_MODEL

logger = logging.getLogger(__name__)


class SpeechClient(Protocol):
    """Contract the pipeline needs from a speech-to-text service.

    transcribe() returns {"text": str, "segments": [{"start", "end", "text"}]}
    with times relative to the start of the given audio file.
    """

    def transcribe(self, audio_path: Path, language: str) -> Dict[str, Any]:
        ...


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class WhisperClient:
    """Speech-to-text through the OpenAI Whisper API."""

    def __init__(self, api_key: Optional[str] = None, model: str = WHISPER_MODEL, client: Any = None):
        if client is None:
            api_key = api_key or OPENAI_API_KEY
            if not api_key:
                raise RuntimeError("OPENAI_API_KEY is not set in environment.")
            client = OpenAI(api_key=api_key)
        self._client = client
        self.model = model

    def transcribe(self, audio_path: Path, language: str) -> Dict[str, Any]:
        """
        Transcribe one audio file.

        Args:
            audio_path: Path to a WAV/MP3 chunk.
            language: ISO-639-1 language code.

        Returns:
            Dict with the full text and time-aligned segments.
        """
        with open(audio_path, "rb") as f:
            response = self._client.audio.transcriptions.create(
                file=(audio_path.name, f),
                model=self.model,
                response_format="verbose_json",
                timestamp_granularities=["segment"],
                language=language,
            )

        segments: List[Dict[str, Any]] = []
        for seg in _field(response, "segments", None) or []:
            segments.append(
                {
                    "start": float(_field(seg, "start", 0.0)),
                    "end": float(_field(seg, "end", 0.0)),
                    "text": (_field(seg, "text", "") or "").strip(),
                }
            )

        text = (_field(response, "text", "") or "").strip()
        logger.debug(f"Transcribed {audio_path.name}: {len(segments)} segments")
        return {"text": text, "segments": segments}
