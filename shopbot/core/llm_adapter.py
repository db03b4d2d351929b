"""Gemini adapter with primary → fallback model failover.

The primary model (fast, multimodal) answers first. On timeout, 5xx or an
unexpected SDK error the same request is retried once on the fallback model.
4xx errors fail immediately; no point retrying a bad request on another model.
"""

import asyncio
import os
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from google import genai
from google.genai import errors, types

logger = structlog.get_logger(__name__)


class LLMError(Exception):
    """Non-retryable LLM error (e.g. 4xx bad request)."""
    pass


class LLMUnavailableError(Exception):
    """Both models are down or timing out."""
    pass


class GeminiAdapter:
    """Wraps the google-genai async client with timeouts and failover."""

    def __init__(self, client: genai.Client | None = None):
        self.api_key = os.environ.get("GEMINI_API_KEY", "")

        self.model_name = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
        self.fallback_model_name = os.environ.get("GEMINI_FALLBACK_MODEL", "gemini-2.0-flash")

        self.temperature = float(os.environ.get("LLM_TEMPERATURE", "0.7"))
        self.timeout = float(os.environ.get("LLM_TIMEOUT", "30"))

        if client is None:
            client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        self.client = client

    def is_healthy(self) -> bool:
        """True if an API key is configured."""
        return bool(self.api_key)

    async def chat(
        self,
        history: list[types.Content],
        message: list[types.Part],
        system_instruction: str,
    ) -> str:
        """Send one message on a chat seeded with prior context.

        Args:
            history: Earlier conversation, oldest first.
            message: Parts of the newest user message.
            system_instruction: Catalog context and behavior rules.

        Returns:
            Reply text (may be empty if the model produced no text).

        Raises:
            LLMError: If the primary model rejects the request (4xx).
            LLMUnavailableError: If both models fail.
        """
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=self.temperature,
        )

        async def call(model: str):
            chat = self.client.aio.chats.create(model=model, config=config, history=history)
            return await chat.send_message(message)

        response = await self._invoke_with_failover(call, operation="chat")
        return response.text or ""

    async def generate_json(self, prompt: str, system_instruction: str, schema: Any) -> str:
        """Run a structured-output request constrained to `schema`.

        Returns:
            Raw JSON text from the model (unparsed).

        Raises:
            LLMError: If the primary model rejects the request (4xx).
            LLMUnavailableError: If both models fail.
        """
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=self.temperature,
            response_mime_type="application/json",
            response_schema=schema,
        )

        async def call(model: str):
            return await self.client.aio.models.generate_content(model=model, contents=prompt, config=config)

        response = await self._invoke_with_failover(call, operation="generate_json")
        return response.text or ""

    async def _invoke_with_failover(self, call: Callable[[str], Awaitable[Any]], operation: str) -> Any:
        """Try the primary model, then the fallback on timeout/5xx/unknown errors."""
        logger.debug("llm.invoke", model=self.model_name, operation=operation)

        try:
            return await asyncio.wait_for(call(self.model_name), timeout=self.timeout)

        except errors.APIError as e:
            if e.code is not None and 400 <= e.code < 500:
                logger.error("llm.4xx", status=e.code, operation=operation)
                raise LLMError(f"Gemini API rejected request ({e.code}): {e}")

            logger.warning("llm.5xx_fallback", status=e.code, operation=operation)
            primary_error = e

        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("llm.timeout_fallback", threshold=self.timeout, operation=operation)
            primary_error = e

        except Exception as e:
            logger.warning("llm.unknown_fallback", error=str(e), operation=operation)
            primary_error = e

        if not self.fallback_model_name:
            logger.error("llm.no_fallback", operation=operation)
            raise LLMUnavailableError(f"Primary model failed and no fallback is configured: {primary_error}")

        logger.info("llm.fallback", model=self.fallback_model_name, operation=operation)
        try:
            response = await asyncio.wait_for(call(self.fallback_model_name), timeout=self.timeout)
            logger.info("llm.fallback_ok", operation=operation)
            return response

        except Exception as e:
            logger.error("llm.both_failed", error=str(e), operation=operation)
            raise LLMUnavailableError(f"Both primary and fallback models failed: {e}")
