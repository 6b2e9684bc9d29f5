"""Bounded, retrying access to the OpenAI text, function-call and image APIs.

Every collaborator call in the exploration engine goes through
`GenerativeClient`. Each attempt is capped with `asyncio.wait_for`; transient
failures (timeouts, connection errors, rate limits, 5xx) are retried a fixed
number of times with exponential backoff, after which the call fails with
`GenerationUnavailable`. Non-transient API errors fail immediately with the
same exception.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from services.errors import GenerationUnavailable
from services.openai.response_parser import extract_text, extract_usage, parse_function_call

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = os.getenv("OPENAI_MODEL", "gpt-5-mini")
DEFAULT_IMAGE_MODEL = os.getenv("OPENAI_IMAGE_MODEL", "gpt-image-1")
DEFAULT_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "30"))
DEFAULT_MAX_ATTEMPTS = int(os.getenv("OPENAI_MAX_RETRIES", "3"))
DEFAULT_BACKOFF_SECONDS = float(os.getenv("OPENAI_RETRY_BACKOFF_SECONDS", "0.5"))

TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def _message(role: str, text: str) -> Dict[str, Any]:
    return {"type": "message", "role": role, "content": [{"type": "input_text", "text": text}]}


class GenerativeClient:
    """Wrap an AsyncOpenAI client with per-attempt timeouts and bounded retry."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str = DEFAULT_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self.client = client
        self.model = model
        self.image_model = image_model
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def _call(self, operation: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run `factory()` with a timeout, retrying transient failures."""
        for attempt in range(1, self.max_attempts + 1):
            start = time.time()
            try:
                result = await asyncio.wait_for(factory(), timeout=self.timeout_seconds)
            except TRANSIENT_ERRORS as exc:
                if attempt >= self.max_attempts:
                    LOGGER.error("%s failed after %d attempts: %r", operation, attempt, exc)
                    raise GenerationUnavailable(operation, exc) from exc
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                LOGGER.warning("%s attempt %d failed (%r); retrying in %.2fs", operation, attempt, exc, delay)
                await self._sleep(delay)
                continue
            except openai.APIError as exc:
                LOGGER.error("%s rejected by OpenAI: %r", operation, exc)
                raise GenerationUnavailable(operation, exc) from exc
            LOGGER.debug("%s latency: %.3fs", operation, time.time() - start)
            return result
        raise GenerationUnavailable(operation)

    async def generate_text(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        operation: str = "generate_text",
    ) -> str:
        """Return the model's text reply to `prompt`."""
        inputs: List[Dict[str, Any]] = []
        if system:
            inputs.append(_message("system", system))
        inputs.append(_message("user", prompt))

        response = await self._call(
            operation,
            lambda: self.client.responses.create(model=self.model, input=inputs),
        )
        LOGGER.debug("%s usage: %s", operation, extract_usage(response))
        return extract_text(response).strip()

    async def call_function(
        self,
        prompt: str,
        *,
        system: str,
        tool: Dict[str, Any],
        operation: str = "call_function",
    ) -> Dict[str, Any]:
        """Force a call to `tool` and return its decoded arguments.

        Raises:
            ValueError: If the model's output does not contain a usable call.
            GenerationUnavailable: If the API stayed unavailable.
        """
        inputs = [_message("system", system), _message("user", prompt)]
        response = await self._call(
            operation,
            lambda: self.client.responses.create(
                model=self.model,
                input=inputs,
                tools=[tool],
                tool_choice={"type": "function", "name": tool["name"]},
            ),
        )
        return parse_function_call(response, tool_name=tool["name"])

    async def describe_image(
        self,
        prompt: str,
        image_bytes: bytes,
        *,
        system: Optional[str] = None,
        mime_type: str = "image/png",
        operation: str = "describe_image",
    ) -> str:
        """Ask the text model about an image and return its text reply."""
        encoded = base64.b64encode(image_bytes).decode("utf-8")
        inputs: List[Dict[str, Any]] = []
        if system:
            inputs.append(_message("system", system))
        inputs.append(
            {
                "type": "message",
                "role": "user",
                "content": [
                    {"type": "input_text", "text": prompt},
                    {"type": "input_image", "image_url": f"data:{mime_type};base64,{encoded}"},
                ],
            }
        )
        response = await self._call(
            operation,
            lambda: self.client.responses.create(model=self.model, input=inputs),
        )
        return extract_text(response).strip()

    async def generate_image(self, prompt: str, *, size: str = "1024x1024", operation: str = "generate_image") -> bytes:
        """Generate one image and return its raw bytes.

        Raises:
            ValueError: If the API returned no image payload.
            GenerationUnavailable: If the API stayed unavailable.
        """
        response = await self._call(
            operation,
            lambda: self.client.images.generate(model=self.image_model, prompt=prompt, size=size, n=1),
        )
        data = getattr(response, "data", None) or []
        b64 = getattr(data[0], "b64_json", None) if data else None
        if not b64:
            raise ValueError("Image generation returned no image data.")
        return base64.b64decode(b64)
