"""Pydantic models for the API layer.

Defines request/response schemas for all endpoints.
"""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from shopbot.core.history import ConversationTurn
from shopbot.data.catalog import Product


class ChatRequest(BaseModel):
    """Incoming chat turn from the storefront widget."""
    session_id: str = Field(..., min_length=1, description="Session identifier")
    message: str = Field("", max_length=2000, description="User text, may be empty with an image")
    image: str | None = Field(default=None, description="Attached image as a data URL")

    @model_validator(mode="after")
    def _text_or_image(self) -> "ChatRequest":
        if not self.message.strip() and not self.image:
            raise ValueError("Either message or image is required")
        return self


class MessageRecord(BaseModel):
    """Single transcript turn as rendered by the widget."""
    role: Literal["user", "assistant", "system"]
    content: str
    image: str | None = None
    recommended_products: list[Product] | None = None

    @classmethod
    def from_turn(cls, turn: ConversationTurn) -> "MessageRecord":
        return cls(
            role=turn.role,
            content=turn.content,
            image=turn.image.to_data_url() if turn.image else None,
            recommended_products=list(turn.recommended_products) if turn.recommended_products else None,
        )


class ChatResponse(BaseModel):
    """Outgoing assistant turn."""
    session_id: str
    text: str
    recommended_products: list[Product] | None = None
    latency_ms: int


class HistoryResponse(BaseModel):
    """Full transcript for a session."""
    session_id: str
    version: int
    in_flight: bool
    messages: list[MessageRecord]


class SearchRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    term: str = Field(..., max_length=200)


class SearchResponse(BaseModel):
    """Storefront search result. `assistant_message` is set on a miss."""
    term: str
    products: list[Product]
    assistant_message: str | None = None


class ProductsResponse(BaseModel):
    products: list[Product]
