"""Report content classification through an OpenAI-compatible chat completion API.

Key Features:
- Uses the AsyncOpenAI client (compatible with vLLM, LM Studio, etc.).
- Sends the fully built report prompt as a single user message.
- Returns the raw response text; decoding is left to the response parser.
"""

from __future__ import annotations

from openai import AsyncOpenAI

from reportcord.configuration.ai_settings import AISettings
from reportcord.report.errors import ClassificationError
from reportcord.util.logger import get_logger

logger = get_logger("classifier")


class OpenAIClassifier:
    """
    Classify reported content with a chat completion model.

    Args:
        ai_settings: Endpoint, credentials and sampling parameters.
        client: Pre-built client, mainly for tests. Built from ``ai_settings`` when omitted.
    """

    def __init__(self, ai_settings: AISettings, client: AsyncOpenAI | None = None) -> None:
        self._client = client or AsyncOpenAI(
            api_key=ai_settings.api_key,
            base_url=ai_settings.base_url,
        )
        self._model_name = ai_settings.model_name
        self._temperature = ai_settings.temperature
        self._max_tokens = ai_settings.max_tokens
        logger.info(
            "[CLASSIFIER] Initialized with base_url=%s, model=%s",
            ai_settings.base_url,
            self._model_name,
        )

    async def classify(self, prompt: str) -> str:
        """
        Send ``prompt`` to the model and return its text response.

        Raises:
            ClassificationError: The model returned no content.
        """
        response = await self._client.chat.completions.create(
            model=self._model_name,
            messages=[{"role": "user", "content": prompt}],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if not response.choices:
            raise ClassificationError("Classifier returned no choices")

        response_text = response.choices[0].message.content or ""
        if not response_text.strip():
            raise ClassificationError("Classifier returned an empty response")

        logger.debug("[CLASSIFIER] Response (%d chars): %s", len(response_text), response_text)
        return response_text

    async def close(self) -> None:
        await self._client.close()
