"""Conversation turns and their backend wire projection.

A ConversationTurn is what the transcript stores and the UI renders. A
BackendHistoryEntry is what the reasoning backend receives:
`{role: "user"|"model", parts: [{text}, {inlineData: {mimeType, data}}]}`.
"""

from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shopbot.core.media import ImageAttachment
from shopbot.data.catalog import Product

_ROLE_TO_WIRE = {"user": "user", "assistant": "model"}


class ConversationTurn(BaseModel):
    """One transcript entry. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str = ""
    image: ImageAttachment | None = None
    recommended_products: tuple[Product, ...] | None = None

    @field_validator("recommended_products")
    @classmethod
    def _omit_empty(cls, value: tuple[Product, ...] | None) -> tuple[Product, ...] | None:
        return value or None

    @model_validator(mode="after")
    def _check_role_payloads(self) -> "ConversationTurn":
        if self.image is not None and self.role != "user":
            raise ValueError("Only user turns can carry an image")
        if self.recommended_products is not None and self.role != "assistant":
            raise ValueError("Only assistant turns can carry recommendations")
        return self


class InlineData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mime_type: str = Field(..., alias="mimeType")
    data: str


class HistoryPart(BaseModel):
    """Either a text fragment or an inline image fragment."""
    model_config = ConfigDict(populate_by_name=True)

    text: str | None = None
    inline_data: InlineData | None = Field(default=None, alias="inlineData")

    @model_validator(mode="after")
    def _exactly_one_kind(self) -> "HistoryPart":
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("A part holds either text or inlineData")
        return self


class BackendHistoryEntry(BaseModel):
    role: Literal["user", "model"]
    parts: list[HistoryPart] = Field(..., min_length=1)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def turn_to_entry(turn: ConversationTurn) -> BackendHistoryEntry | None:
    """Project one turn. Returns None for turns the backend never sees."""
    wire_role = _ROLE_TO_WIRE.get(turn.role)
    if wire_role is None:
        return None

    parts = []
    if turn.content:
        parts.append(HistoryPart(text=turn.content))
    if turn.image is not None:
        parts.append(HistoryPart(inline_data=InlineData(mime_type=turn.image.mime_type, data=turn.image.data)))

    if not parts:
        return None
    return BackendHistoryEntry(role=wire_role, parts=parts)


def to_backend_history(turns: Iterable[ConversationTurn]) -> list[BackendHistoryEntry]:
    """Project the transcript into backend history, oldest first.

    System turns (the greeting) and turns with neither text nor image are
    skipped; everything else keeps its order.
    """
    entries = []
    for turn in turns:
        entry = turn_to_entry(turn)
        if entry is not None:
            entries.append(entry)
    return entries
