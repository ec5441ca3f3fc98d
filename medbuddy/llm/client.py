"""Groq LLM API client for medication explanations."""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from medbuddy.config import settings
from medbuddy.utils import log_performance, logger


class GroqAPIError(Exception):
    """Base exception for Groq API errors."""
    pass


class GroqTimeoutError(GroqAPIError):
    """Raised when Groq API request times out."""
    pass


class GroqRateLimitError(GroqAPIError):
    """Raised when Groq API rate limit is exceeded."""
    pass


class GroqInsufficientFundsError(GroqAPIError):
    """Raised when Groq API account has insufficient funds."""
    pass


class GroqClient:
    """Client for interacting with Groq LLM API."""

    API_URL = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Groq client, falling back to settings for anything not given."""
        self.api_key = api_key or settings.groq_api_key
        self.model = model or settings.groq_model
        self.timeout = timeout if timeout is not None else settings.groq_timeout
        self.max_retries = max_retries if max_retries is not None else settings.groq_max_retries
        self.transport = transport

    async def _make_request(
        self,
        prompt: str,
        retry_count: int = 0
    ) -> Dict[str, Any]:
        """Make request to Groq API with retry logic.

        Timeouts and network errors are retried with exponential backoff
        (1s, 2s, 4s, ...) up to max_retries times.

        Args:
            prompt: User prompt for the LLM
            retry_count: Current retry attempt number

        Returns:
            Parsed JSON body of the chat completion

        Raises:
            GroqTimeoutError: If request times out after all retries
            GroqRateLimitError: If rate limit is exceeded
            GroqInsufficientFundsError: If account has insufficient funds
            GroqAPIError: For other API errors
        """
        if not self.api_key:
            raise GroqAPIError("GROQ_API_KEY is not configured")

        start_time = time.time()

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt
                }
            ],
            "temperature": 0.3,
        }

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                logger.debug(
                    f"Making request to Groq API (attempt {retry_count + 1}/{self.max_retries + 1}, "
                    f"model {self.model}, prompt length {len(prompt)})"
                )

                response = await client.post(
                    self.API_URL,
                    headers=headers,
                    json=payload,
                    timeout=self.timeout
                )

                duration_ms = (time.time() - start_time) * 1000

                if response.status_code == 429:
                    logger.warning(f"Groq API rate limit exceeded (retry {retry_count})")
                    raise GroqRateLimitError("Rate limit exceeded")

                elif response.status_code == 402:
                    logger.error("Groq API insufficient funds")
                    raise GroqInsufficientFundsError("Insufficient funds on Groq account")

                elif response.status_code >= 400:
                    error_text = response.text
                    logger.error(f"Groq API error {response.status_code}: {error_text}")
                    raise GroqAPIError(f"API error {response.status_code}: {error_text}")

                log_performance("groq_api_request", duration_ms)

                try:
                    return response.json()
                except ValueError as e:
                    raise GroqAPIError(f"Invalid JSON body from Groq API: {e}") from e

        except httpx.TimeoutException:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                f"Groq API timeout (attempt {retry_count + 1}/{self.max_retries + 1}, "
                f"{duration_ms:.0f}ms)"
            )

            if retry_count < self.max_retries:
                wait_time = 2 ** retry_count
                logger.info(f"Retrying in {wait_time} seconds...")
                await asyncio.sleep(wait_time)
                return await self._make_request(prompt, retry_count + 1)
            else:
                logger.error("Groq API timeout after all retries")
                raise GroqTimeoutError("Request timed out after all retries")

        except httpx.RequestError as e:
            logger.error(f"Groq API request error: {type(e).__name__}: {e}")

            if retry_count < self.max_retries:
                wait_time = 2 ** retry_count
                logger.info(f"Retrying in {wait_time} seconds...")
                await asyncio.sleep(wait_time)
                return await self._make_request(prompt, retry_count + 1)
            else:
                logger.error(f"Request failed after all retries: {e}")
                raise GroqAPIError(f"Request failed after all retries: {e}")

    async def generate(self, prompt: str) -> str:
        """Send a prompt and return the generated text.

        Args:
            prompt: Prompt text

        Returns:
            Generated text (empty string if the model returned nothing)

        Raises:
            GroqAPIError: If API request fails
        """
        logger.info(f"Generating text for prompt of {len(prompt)} characters")

        result = await self._make_request(prompt)
        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Groq API response had no message content")
            return ""

        text = content or ""
        logger.debug(f"Groq API response: {text[:200]}...")
        return text
