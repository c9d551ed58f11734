import logging
from typing import Any, Dict, Optional, Protocol

import google.generativeai as genai

from reelforge.config import GEMINI_API_KEY, GEMINI_MODEL
from reelforge.core.utils.parsing import parse_json_text

logger = logging.getLogger(__name__)


class LLMClient(Protocol):
    """Contract the pipeline needs from a JSON-producing language model."""

    def generate_json(self, prompt: str, system_instruction: Optional[str] = None) -> Dict[str, Any]:
        ...


class GeminiClient:
    """
    Wrapper around the Gemini API with fallback support for multiple models.
    """

    FALLBACK_MODELS = [
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.5-pro",
    ]

    def __init__(self, api_key: str | None = None, model: str | None = None):
        api_key = api_key or GEMINI_API_KEY
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is not set in environment.")
        genai.configure(api_key=api_key)
        preferred = model or GEMINI_MODEL
        self.models = [preferred] + [m for m in self.FALLBACK_MODELS if m != preferred]

    def generate_json(self, prompt: str, system_instruction: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a prompt and decode the JSON object the model returns.

        Each model in the fallback list is tried in order until one returns
        parseable JSON.

        Args:
            prompt: User prompt.
            system_instruction: Instruction enforcing JSON-only output.

        Returns:
            Decoded JSON object.

        Raises:
            RuntimeError: If every model fails.
        """
        last_error: Exception | None = None

        for model_name in self.models:
            logger.info(f"Attempting with model: {model_name}")
            try:
                model = genai.GenerativeModel(model_name, system_instruction=system_instruction)
                response = model.generate_content(
                    prompt,
                    generation_config={
                        "response_mime_type": "application/json",
                        "temperature": 0.3,
                    },
                )
                data = parse_json_text(response.text)
                logger.info(f"Success with {model_name}")
                return data

            except Exception as e:
                logger.warning(f"Failed with {model_name}: {e}")
                last_error = e
                continue

        raise RuntimeError(f"All Gemini models failed. Last error: {last_error}")
