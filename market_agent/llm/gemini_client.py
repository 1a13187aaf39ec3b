"""Gemini client used by the LLM plan proposer.

Plans are requested as JSON through ``response_mime_type``. Transient API
errors are retried with exponential backoff and jitter. Safety blocks are
raised on the first attempt.
"""

import random
import time
from typing import Callable, Optional

import google.generativeai as genai
from google.generativeai.types.generation_types import (
    BlockedPromptException,
    StopCandidateException,
)
from loguru import logger

from market_agent.config.settings import Settings, settings

JSON_MIME_TYPE = "application/json"

# Raised the same way on every attempt
NON_RETRYABLE_ERRORS = (BlockedPromptException, StopCandidateException, ValueError)


class GeminiClient:
    """
    Synchronous Gemini client for plan generation.

    Attributes:
        model: Configured Gemini generative model instance
        model_name: Model identifier in use
        max_attempts: Calls made before the last error is re-raised
        base_delay: Seconds before the first retry, doubled for each later one
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        *,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        config: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_key: API key, defaults to ``gemini_api_key`` from settings
            model_name: Model identifier, defaults to ``gemini_model``
            max_attempts: Total attempts per request, at least 1
            base_delay: Backoff base in seconds
            config: Settings override
            sleep: Blocking sleep used between attempts

        Raises:
            ValueError: If no API key is configured or max_attempts < 1
        """
        config = config or settings
        api_key = api_key or config.gemini_api_key
        if not api_key:
            raise ValueError("GEMINI_API_KEY not configured in environment")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.model_name = model_name or config.gemini_model
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self.logger = logger.bind(component="GeminiClient")

        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(self.model_name)

        self.logger.info("Gemini client initialized", model=self.model_name)

    def retry_delay(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based): base * 2^(attempt-1) plus up to 10% jitter."""
        delay = self.base_delay * (2 ** (attempt - 1))
        return delay + random.uniform(0, delay * 0.1)

    def generate_content(self, prompt: str, temperature: float = 0.2) -> str:
        """
        Generate a JSON response for ``prompt``.

        Args:
            prompt: Planning prompt
            temperature: Sampling temperature, low for stable plans

        Returns:
            Response text

        Raises:
            BlockedPromptException: Prompt rejected by safety filters
            StopCandidateException: Generation stopped by safety filters
            Exception: The last API error once every attempt failed
        """
        generation_config = genai.types.GenerationConfig(
            temperature=temperature,
            response_mime_type=JSON_MIME_TYPE,
        )

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.model.generate_content(prompt, generation_config=generation_config)
                return response.text
            except NON_RETRYABLE_ERRORS as e:
                self.logger.error(
                    "Gemini request rejected", error_type=type(e).__name__, error=str(e)
                )
                raise
            except Exception as e:
                if attempt == self.max_attempts:
                    self.logger.error("Gemini retries exhausted", attempts=attempt, error=str(e))
                    raise

                delay = self.retry_delay(attempt)
                self.logger.warning(
                    "Gemini request failed, retrying",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=round(delay, 2),
                    error=str(e),
                )
                self._sleep(delay)

        raise RuntimeError("Unexpected retry loop exit in generate_content")
