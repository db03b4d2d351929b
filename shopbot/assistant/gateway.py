"""Assistant Gateway: the boundary to the Gemini reasoning backend.

Two operations, both stateless per call:
  converse()  - history + optional image → free-text reply
  recommend() - query → catalog products, via a structured-output request

Neither raises on backend trouble. converse() degrades to a fixed apology,
recommend() to an empty list, so callers never handle backend errors.
"""

from collections.abc import Iterable, Sequence

import structlog
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shopbot.assistant.prompts import (
    CONNECTION_FALLBACK,
    EMPTY_REPLY_FALLBACK,
    build_recommendation_prompt,
    build_system_prompt,
)
from shopbot.core.history import BackendHistoryEntry, HistoryPart
from shopbot.core.llm_adapter import GeminiAdapter, LLMError, LLMUnavailableError
from shopbot.core.media import ImageAttachment
from shopbot.data.catalog import Product, ProductRepository

logger = structlog.get_logger(__name__)

RECOMMENDATION_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "recommendedProductIds": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(type=types.Type.STRING),
        ),
        "reasoning": types.Schema(type=types.Type.STRING),
    },
    required=["recommendedProductIds", "reasoning"],
)


class RecommendationPayload(BaseModel):
    """Parsed structured-output response. `reasoning` is never shown to users."""
    model_config = ConfigDict(populate_by_name=True)

    recommended_product_ids: list[str] = Field(..., alias="recommendedProductIds")
    reasoning: str = ""


class AssistantGateway:
    """Translates conversation state into Gemini requests and back."""

    def __init__(
        self,
        adapter: GeminiAdapter,
        repository: ProductRepository,
        system_instruction: str | None = None,
    ):
        self._adapter = adapter
        self._repository = repository
        self.system_instruction = system_instruction or build_system_prompt(repository.all())

    def is_healthy(self) -> bool:
        return self._adapter.is_healthy()

    async def converse(self, instruction_preamble: str, history: Sequence[BackendHistoryEntry]) -> str:
        """Get a free-text reply to the newest user entry.

        The last history entry is sent as the current message; everything
        before it seeds the chat as context.

        Args:
            instruction_preamble: Per-turn directive sent ahead of the user's
                parts (empty string for none).
            history: Full projected conversation ending with the current user entry.

        Returns:
            Reply text, or a fixed fallback message on any backend failure.

        Raises:
            ValueError: If history is empty or doesn't end with a user entry.
        """
        if not history or history[-1].role != "user":
            raise ValueError("history must end with the current user entry")

        context, current = history[:-1], history[-1]

        try:
            sdk_history = [_to_sdk_content(entry) for entry in context]
            message = _to_sdk_parts(current.parts)
            if instruction_preamble:
                message.insert(0, types.Part(text=instruction_preamble))

            logger.debug("gateway.converse", history_len=len(sdk_history), parts=len(message))
            reply = await self._adapter.chat(sdk_history, message, self.system_instruction)

        except (LLMError, LLMUnavailableError) as e:
            logger.error("gateway.converse_failed", error=str(e))
            return CONNECTION_FALLBACK

        except Exception as e:
            logger.error("gateway.converse_unexpected", error=str(e), error_type=type(e).__name__)
            return CONNECTION_FALLBACK

        if not reply.strip():
            logger.warning("gateway.converse_empty_reply")
            return EMPTY_REPLY_FALLBACK
        return reply

    async def recommend(self, query: str) -> list[Product]:
        """Ask the model for product ids matching `query` and resolve them.

        Args:
            query: The user's text for this turn.

        Returns:
            Catalog products in the order the model ranked them. Unknown ids
            are dropped; any failure yields an empty list.
        """
        try:
            raw = await self._adapter.generate_json(
                build_recommendation_prompt(query),
                self.system_instruction,
                RECOMMENDATION_SCHEMA,
            )
        except Exception as e:
            logger.error("gateway.recommend_failed", error=str(e), error_type=type(e).__name__)
            return []

        if not raw.strip():
            logger.warning("gateway.recommend_empty")
            return []

        try:
            payload = RecommendationPayload.model_validate_json(raw)
        except ValidationError as e:
            logger.error("gateway.recommend_parse_failed", error=str(e))
            return []

        products = self._resolve(payload.recommended_product_ids)
        logger.info("gateway.recommend_ok", returned=len(payload.recommended_product_ids),
                    resolved=len(products))
        return products

    def _resolve(self, product_ids: Iterable[str]) -> list[Product]:
        """Map ids to catalog products, deduplicated, unknown ids dropped."""
        seen = set()
        products = []
        for product_id in product_ids:
            if product_id in seen:
                continue
            seen.add(product_id)

            product = self._repository.get(product_id)
            if product is None:
                logger.warning("gateway.unknown_product_id", product_id=product_id)
                continue
            products.append(product)
        return products


def _to_sdk_parts(parts: Iterable[HistoryPart]) -> list[types.Part]:
    """Convert wire parts to SDK parts. Inline image data is base64 on the wire, bytes in the SDK."""
    sdk_parts = []
    for part in parts:
        if part.inline_data is not None:
            image = ImageAttachment(mime_type=part.inline_data.mime_type, data=part.inline_data.data)
            sdk_parts.append(types.Part.from_bytes(data=image.to_bytes(), mime_type=image.mime_type))
        else:
            sdk_parts.append(types.Part(text=part.text))
    return sdk_parts


def _to_sdk_content(entry: BackendHistoryEntry) -> types.Content:
    return types.Content(role=entry.role, parts=_to_sdk_parts(entry.parts))
