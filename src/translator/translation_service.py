"""Translation gateway: English subtitle lines to Burmese via a chat model."""

import json
import logging
from typing import List, Optional

from openai import AsyncOpenAI

from common.config import settings
from common.gpt_utils import (
    TRANSLATIONS_FIELD,
    GPTJSONParsingError,
    parse_translation_payload,
)
from common.retry_utils import retry_any_error, retry_with_exponential_backoff
from common.utils import StringUtils

logger = logging.getLogger(__name__)


class SubtitleTranslator:
    """
    Translates batches of subtitle lines.

    A call always returns exactly one string per input line; lines the
    model did not deliver come back as empty strings.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """
        Initialize the translator with an OpenAI-compatible async client.

        Args:
            client: Pre-built client; created from settings when omitted
        """
        self.client = client
        self.target_language = settings.translation_target_language

        if self.client is None and settings.openai_api_key:
            # Retries are handled by the gateway's own retry decorator
            self.client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.openai_request_timeout,
                max_retries=0,
            )
            logger.info(
                f"Initialized OpenAI async client with model: {settings.openai_model}"
            )
        elif self.client is None:
            logger.warning(
                "OpenAI API key not configured - translator will run in mock mode"
            )

    @property
    def _retry_decorator(self):
        """Fixed-delay retry of the whole batch on any failure."""
        return retry_with_exponential_backoff(
            max_retries=settings.translation_max_retries,
            initial_delay=settings.translation_retry_delay,
            exponential_base=1,
            max_delay=settings.translation_retry_delay,
            jitter=False,
            should_retry=retry_any_error,
        )

    async def translate_batch(self, texts: List[str]) -> List[str]:
        """
        Translate a batch of subtitle texts.

        Never raises for model or parsing failures: once retries are
        exhausted the batch comes back as empty strings.

        Args:
            texts: Source subtitle texts, in order

        Returns:
            Translated texts, same length and order as `texts`
        """
        if not texts:
            return []

        if not self.client:
            logger.warning("Mock mode: Returning original texts with language prefix")
            return [f"[{self.target_language}] {text}" for text in texts]

        decorated_method = self._retry_decorator(self._translate_batch_impl)
        try:
            translations = await decorated_method(texts)
        except Exception as e:
            logger.error(
                f"❌ All translation attempts failed for batch of {len(texts)} lines, "
                f"returning empty translations: {e}"
            )
            return ["" for _ in texts]

        return self._fit_to_length(translations, len(texts))

    async def _translate_batch_impl(self, texts: List[str]) -> List[str]:
        """
        One attempt: build the prompt, call the model, parse the payload.

        Raises:
            GPTJSONParsingError: If the response cannot be parsed
            ValueError: If the model returned no content
            openai.OpenAIError: On API failures
        """
        prompt = self._build_translation_prompt(texts)

        logger.info(f"Sending batch of {len(texts)} lines for translation")

        response_text = await self._invoke_model(prompt)
        try:
            translations = parse_translation_payload(response_text)
        except GPTJSONParsingError:
            logger.debug(
                f"Unparseable response sample:\n{StringUtils.truncate_for_logging(response_text)}"
            )
            raise

        logger.info(f"Successfully translated {len(translations)}/{len(texts)} lines")
        return translations

    async def _invoke_model(self, prompt: str) -> str:
        """
        Send the prompt to the chat model and return the raw text.

        Args:
            prompt: User prompt with the lines to translate

        Returns:
            Raw response content
        """
        response = await self.client.chat.completions.create(
            model=settings.openai_model,
            messages=[
                {
                    "role": "system",
                    "content": (
                        "You are a professional movie subtitle translator. "
                        f"You translate English subtitles into natural, conversational "
                        f"{self.target_language} and answer with JSON only."
                    ),
                },
                {"role": "user", "content": prompt},
            ],
            temperature=settings.openai_temperature,
            max_completion_tokens=settings.openai_max_tokens,
            response_format={"type": "json_object"},
        )

        if not response.choices:
            raise ValueError("Model returned no choices in response")

        choice = response.choices[0]
        message_content = choice.message.content

        if choice.finish_reason == "length":
            logger.warning(
                f"⚠️  Response was truncated (finish_reason=length) after "
                f"{len(message_content or '')} characters, attempting recovery"
            )

        if not message_content:
            raise ValueError(
                f"Model returned empty content (finish_reason: {choice.finish_reason})"
            )

        return message_content

    def _build_translation_prompt(self, texts: List[str]) -> str:
        """
        Build the translation prompt.

        Args:
            texts: Lines to translate

        Returns:
            Prompt asking for a single JSON object with one array field
        """
        example = json.dumps(
            {TRANSLATIONS_FIELD: ["line1_translated", "line2_translated"]}
        )
        return (
            f"Translate each English subtitle line below into natural, conversational "
            f"{self.target_language}.\n"
            f"Keep translations concise (subtitle-appropriate length).\n"
            f"Return exactly {len(texts)} translations, in the same order.\n\n"
            f"CRITICAL: Return ONLY valid JSON. No markdown, no explanation.\n\n"
            f"Input: {json.dumps(texts, ensure_ascii=False)}\n\n"
            f"Return exactly this format:\n{example}"
        )

    @staticmethod
    def _fit_to_length(translations: List[str], expected_count: int) -> List[str]:
        """
        Pad with empty strings or drop extras so the result matches the input.

        Args:
            translations: Parsed translations
            expected_count: Number of input lines

        Returns:
            List of exactly `expected_count` strings
        """
        if len(translations) < expected_count:
            logger.warning(
                f"⚠️  Expected {expected_count} translations but got "
                f"{len(translations)}, padding with empty strings"
            )
            return translations + [""] * (expected_count - len(translations))

        if len(translations) > expected_count:
            logger.warning(
                f"⚠️  Expected {expected_count} translations but got "
                f"{len(translations)}, dropping extras"
            )
            return translations[:expected_count]

        return translations
