"""
Completion client for the external LLM service.

Calls the service through the OpenAI SDK under a wall-clock deadline per
attempt and a small retry ceiling, classifying failures as retryable or
terminal. Retries happen here and nowhere else in the pipeline.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from openai import (
    APIConnectionError,
    APIResponseValidationError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)

from ..config.loader import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_RETRY_DELAY_S,
    ServiceConfig,
)
from ..core.errors import GatewayError
from ..core.pricing import ModelTier, model_for_tier

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 2048
TEMPERATURE = 0.15


@dataclass(frozen=True)
class CompletionResult:
    """Text and token counts of one successful completion."""
    text: str
    input_tokens: int
    output_tokens: int
    model: str


class CompletionClient:
    """Bounded, retrying client for chat completions.

    Retry policy:
        - timeout: terminal, no further attempts
        - 4xx response: terminal, never retried
        - malformed response body: terminal, never retried
        - 5xx response or transport error: retried up to max_retries times,
          sleeping attempt * retry_delay_s before each retry

    Each attempt runs on its own event loop with its own SDK client, and is
    cancelled once timeout_s of wall-clock time has passed, however the
    server paces its response. complete() must therefore not be called from
    inside a running event loop.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize the completion client.

        Args:
            api_key: Service API key
            base_url: OpenAI-compatible endpoint of the completion service
            timeout_s: Wall-clock bound for each attempt
            max_retries: Retries after the first attempt for transient errors
            retry_delay_s: Base delay of the linear backoff
            sleep: Sleep function, replaceable in tests
            transport: Optional httpx transport for the SDK's HTTP client

        Raises:
            ValueError: If timeout or retry settings are out of range
        """
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.api_key = api_key
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self.sleep = sleep
        self.transport = transport

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "CompletionClient":
        """Build a client from service configuration and the environment."""
        api_key = os.environ.get(config.api_key_env)
        if not api_key:
            raise ValueError(f"Environment variable {config.api_key_env} is not set")
        return cls(
            api_key=api_key,
            base_url=config.base_url,
            timeout_s=config.request_timeout_s,
            max_retries=config.max_retries,
            retry_delay_s=config.retry_delay_s
        )

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model_tier: ModelTier
    ) -> CompletionResult:
        """Request one completion.

        Args:
            system_prompt: System instructions
            user_prompt: User message
            model_tier: Tier selecting the provider model

        Returns:
            CompletionResult with text and token counts

        Raises:
            GatewayError: On timeout, remote rejection, malformed or empty
                output, or retry exhaustion
        """
        model = model_for_tier(model_tier)
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        last_error = ""

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                self.sleep(self.retry_delay_s * attempt)

            try:
                response = asyncio.run(self._attempt(model, messages))
            except (asyncio.TimeoutError, APITimeoutError) as exc:
                logger.error("Completion request timed out after %.1fs", self.timeout_s)
                raise GatewayError("AI normalization request timed out") from exc
            except APIStatusError as exc:
                if 400 <= exc.status_code < 500:
                    logger.error("Completion service rejected request (status %d)", exc.status_code)
                    raise GatewayError(
                        f"AI normalization error: {exc.status_code}",
                        status_code=exc.status_code
                    ) from exc
                last_error = f"status {exc.status_code}"
                logger.warning(
                    "Completion attempt %d/%d failed: %s",
                    attempt + 1, self.max_retries + 1, last_error
                )
                continue
            except APIConnectionError as exc:
                last_error = f"connection error: {exc}"
                logger.warning(
                    "Completion attempt %d/%d failed: %s",
                    attempt + 1, self.max_retries + 1, last_error
                )
                continue
            except (APIResponseValidationError, ValueError) as exc:
                # Undecodable or schema-invalid body on a successful exchange
                logger.error("Completion service returned a malformed response: %s", exc)
                raise GatewayError("AI returned malformed response") from exc

            return _to_result(response, model)

        raise GatewayError(f"AI normalization failed after retries: {last_error}")

    async def _attempt(self, model: str, messages):
        client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout_s,
            # SDK retries off: the retry policy above is the only one
            max_retries=0,
            http_client=httpx.AsyncClient(transport=self.transport) if self.transport else None
        )
        try:
            return await asyncio.wait_for(
                client.chat.completions.create(
                    model=model,
                    messages=messages,
                    max_tokens=MAX_OUTPUT_TOKENS,
                    temperature=TEMPERATURE
                ),
                timeout=self.timeout_s
            )
        finally:
            await client.close()


def _to_result(response, model: str) -> CompletionResult:
    choices = getattr(response, "choices", None)
    text = None
    if choices:
        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None)
    if not isinstance(text, str) or not text.strip():
        raise GatewayError("AI returned empty response")

    usage = getattr(response, "usage", None)
    input_tokens = getattr(usage, "prompt_tokens", None) or 0
    output_tokens = getattr(usage, "completion_tokens", None) or 0

    return CompletionResult(
        text=text,
        input_tokens=int(input_tokens),
        output_tokens=int(output_tokens),
        model=model
    )
