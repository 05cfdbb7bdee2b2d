"""Generation backend: one call to a generative-text model per `generate()`.

GenerationClient is the capability the retry orchestrator depends on, so tests
can swap in a stub. GeminiGenerationClient is the production implementation
built on the google-genai SDK.
"""

import asyncio
from typing import Optional, Protocol, runtime_checkable

from google import genai
from google.genai import types

from src.generation.errors import GenerationError
from src.utils.config import Config, config
from src.utils.logger import logger


@runtime_checkable
class GenerationClient(Protocol):
    """Anything that can turn a prompt into raw model text."""

    async def generate(self, prompt: str) -> str:
        """Issue exactly one request and return the full text reply.

        Raises:
            GenerationError: On transport, quota or backend-side failures.
        """
        ...


class GeminiGenerationClient:
    """Single-shot Gemini text generation with a JSON mime hint.

    No retries and no interpretation of the reply: both belong to the
    orchestrator. Prompt length is not checked here; Gemini rejects overlong
    prompts and that rejection surfaces as GenerationError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        client: Optional[genai.Client] = None,
    ) -> None:
        """Initialize the Gemini client.

        Args:
            api_key: Gemini API key. Defaults to config.GEMINI_API_KEY.
            model: Model id. Defaults to config.GEMINI_MODEL.
            temperature: Sampling temperature. Defaults to config.TEMPERATURE.
            max_output_tokens: Reply length cap. Defaults to config.MAX_OUTPUT_TOKENS.
            client: Pre-built genai.Client (tests inject a mock here).

        Raises:
            ValueError: If no API key is available and no client was injected.
        """
        self.api_key = api_key if api_key is not None else config.GEMINI_API_KEY
        if client is None and not self.api_key:
            raise ValueError("GEMINI_API_KEY is required")

        self.model = model or config.GEMINI_MODEL
        self.temperature = temperature if temperature is not None else config.TEMPERATURE
        self.max_output_tokens = max_output_tokens or config.MAX_OUTPUT_TOKENS
        self._client = client or genai.Client(api_key=self.api_key)

    def _generation_config(self) -> types.GenerateContentConfig:
        # Best-effort hint; Gemini may still wrap the JSON in prose or fences
        return types.GenerateContentConfig(
            response_mime_type="application/json",
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )

    async def generate(self, prompt: str) -> str:
        """Call Gemini once and return the reply text.

        Runs the synchronous SDK call in a worker thread. Cancelling the awaiting
        task abandons the result; the SDK call itself cannot be interrupted.

        Raises:
            GenerationError: If the SDK raises or the reply carries no text.
        """
        try:
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=self.model,
                contents=prompt,
                config=self._generation_config(),
            )
        except Exception as e:
            logger.debug(f"Gemini call failed ({type(e).__name__}): {e}")
            raise GenerationError(f"Gemini request failed: {e}") from e

        text = getattr(response, "text", None)
        if not text:
            # Blocked prompts and safety stops come back with no text parts
            raise GenerationError("Gemini returned an empty response")

        logger.debug(f"Gemini returned {len(text)} chars from {self.model}")
        return text


def create_generation_client(settings: Optional[Config] = None) -> GeminiGenerationClient:
    """Build the production client from validated configuration.

    Raises:
        ValueError: If configuration is invalid (see Config.validate).
    """
    settings = settings or config
    settings.validate()
    return GeminiGenerationClient(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        temperature=settings.TEMPERATURE,
        max_output_tokens=settings.MAX_OUTPUT_TOKENS,
    )
