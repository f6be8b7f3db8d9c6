"""
Model inference client.

A single capability object wrapping an OpenAI-compatible chat completions
API. It is constructed once at process start and passed to every component
that needs model inference (structure inferencer, translator), so no
component holds hidden global client state and tests can pass stubs.

Supports any OpenAI-compatible endpoint (OpenAI, vllm, ollama, ...).
"""

import logging
from typing import Optional

import requests

from form_assistant.config import Config
from form_assistant.errors import CallBudgetExceeded, InferenceUnavailable
from form_assistant.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class InferenceClient:
    """Blocking client for chat-completion style model inference."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[int] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the inference client.

        Args:
            api_key: API key (from Config if not provided)
            api_base: Base URL for the API
            model_name: Model name to use
            timeout: Default request timeout in seconds
            rate_limiter: Optional external-call budget
            session: Optional requests session (connection pooling)
        """
        self.api_key = api_key or Config.INFERENCE_API_KEY
        self.api_base = (api_base or Config.INFERENCE_API_BASE).rstrip('/')
        self.model_name = model_name or Config.INFERENCE_MODEL
        self.timeout = timeout or Config.INFERENCE_TIMEOUT
        self.rate_limiter = rate_limiter
        self.http = session or requests.Session()

        if not self.api_key:
            logger.warning(
                "Inference API key not configured. Structure inference will use the "
                "fallback form and translation will pass text through. "
                "Set INFERENCE_API_KEY or OPENAI_API_KEY environment variable."
            )

    @property
    def is_available(self) -> bool:
        """Check if the inference API is configured."""
        return bool(self.api_key)

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        timeout: Optional[float] = None,
        service: str = 'inference',
        json_output: bool = False,
        max_tokens: int = 2000
    ) -> str:
        """
        Run one chat completion and return the assistant message text.

        Args:
            system_prompt: Instructions for the model
            user_prompt: The request payload
            timeout: Request timeout in seconds (client default if None)
            service: Name recorded against the call budget
            json_output: Ask the API for a JSON object response
            max_tokens: Completion token cap

        Returns:
            Raw response text

        Raises:
            InferenceUnavailable: No API key configured
            CallBudgetExceeded: The rate limiter refused the call
            requests.RequestException: Transport, timeout or HTTP errors
            ValueError: The response body has no message content
        """
        if not self.is_available:
            raise InferenceUnavailable("Inference API key not configured")

        if self.rate_limiter:
            can_call, reason = self.rate_limiter.can_make_call(service)
            if not can_call:
                logger.warning(f"Rate limit exceeded for {service}: {reason}")
                raise CallBudgetExceeded(reason)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            "temperature": 0.0,  # Deterministic output
            "max_tokens": max_tokens
        }
        if json_output:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = self.http.post(
                f"{self.api_base}/chat/completions",
                headers=headers,
                json=payload,
                timeout=timeout or self.timeout
            )
        finally:
            # Failed attempts still count against the budget
            if self.rate_limiter:
                self.rate_limiter.record_call(service)
        response.raise_for_status()

        result_data = response.json()
        try:
            content = result_data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Unexpected completion payload: {e}") from e

        tokens_used = result_data.get('usage', {}).get('total_tokens', 0)
        logger.debug(f"{service} completion received ({tokens_used} tokens)")
        return content or ""
