"""Conversation Manager: the per-turn orchestration pipeline.

For every accepted submission:
  1. append the user turn (text and/or image) and clear the pending draft
  2. match the text against the catalog locally
  3. ask the Gateway for a reply and, when the trigger rule fires, for
     structured recommendations (both calls run concurrently)
  4. merge local + remote recommendations, first occurrence wins
  5. append exactly one assistant turn

Only one turn may be in flight; a submission arriving meanwhile is a no-op.
All work runs on one event loop, so the in-flight flag is set before the
first await and no lock is needed.
"""

import asyncio
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from shopbot.assistant.prompts import GREETING, IMAGE_TURN_PREAMBLE, PIPELINE_FAILURE_MESSAGE
from shopbot.assistant.transcript import Transcript, TranscriptListener
from shopbot.core.history import ConversationTurn, to_backend_history
from shopbot.core.matcher import CHAT_MATCH_LIMIT, LocalMatcher
from shopbot.core.media import ImageAttachment
from shopbot.data.catalog import Product

logger = structlog.get_logger(__name__)


class TurnState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    AWAITING_BACKEND = "awaiting_backend"
    SETTLED = "settled"


@dataclass
class InputDraft:
    """Pending input: what is in the text box plus any attached image."""
    text: str = ""
    image: ImageAttachment | None = None

    def append_text(self, fragment: str) -> None:
        fragment = fragment.strip()
        if fragment:
            self.text = f"{self.text} {fragment}" if self.text else fragment

    def attach(self, image: ImageAttachment | None) -> None:
        self.image = image

    def clear(self) -> None:
        self.text = ""
        self.image = None


def _keywords_from_env() -> tuple[str, ...]:
    raw = os.environ.get("RECOMMEND_KEYWORDS", "recommend,suggest")
    return tuple(k.strip().lower() for k in raw.split(",") if k.strip())


@dataclass(frozen=True)
class RecommendationTrigger:
    """When to call the structured recommendation backend.

    Fires when the text contains a keyword or the local matcher found
    nothing, and never for image turns (the structured call has no image
    channel). A heuristic, tunable through `keywords`.
    """
    keywords: tuple[str, ...] = field(default_factory=_keywords_from_env)

    def should_recommend(self, text: str, local_match_count: int, has_image: bool) -> bool:
        if has_image:
            return False
        lowered = (text or "").lower()
        return local_match_count == 0 or any(k in lowered for k in self.keywords)


def merge_recommendations(local: Iterable[Product], remote: Iterable[Product]) -> list[Product]:
    """Concatenate local then remote matches, keeping the first of each id."""
    seen = set()
    merged = []
    for product in [*local, *remote]:
        if product.id not in seen:
            seen.add(product.id)
            merged.append(product)
    return merged


class ConversationManager:
    """Owns one conversation's transcript and runs its turn pipeline."""

    def __init__(
        self,
        gateway,
        matcher: LocalMatcher,
        trigger: RecommendationTrigger | None = None,
        greeting: str = GREETING,
        chat_match_limit: int = CHAT_MATCH_LIMIT,
    ):
        self._gateway = gateway
        self._matcher = matcher
        self._trigger = trigger or RecommendationTrigger()
        self._chat_match_limit = chat_match_limit

        self._transcript = Transcript([ConversationTurn(role="system", content=greeting)])
        self._state = TurnState.IDLE

        self.draft = InputDraft()
        self.unexpected_failures = 0

    @property
    def transcript(self) -> tuple[ConversationTurn, ...]:
        return self._transcript.turns

    @property
    def version(self) -> int:
        return self._transcript.version

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state in (TurnState.SUBMITTING, TurnState.AWAITING_BACKEND)

    def on_transcript_changed(self, listener: TranscriptListener) -> Callable[[], None]:
        """Subscribe to transcript appends. Returns an unsubscribe callable."""
        return self._transcript.subscribe(listener)

    async def send_draft(self) -> bool:
        """Submit whatever is pending in the draft."""
        return await self.submit(self.draft.text, self.draft.image)

    async def submit(self, text: str = "", image: ImageAttachment | None = None) -> bool:
        """Run one turn through the pipeline.

        Args:
            text: The user's message (may be empty when an image is attached).
            image: Optional attached image.

        Returns:
            True if the turn was accepted and settled, False if rejected
            (empty input, or another turn is still in flight).
        """
        text = text or ""

        if self.in_flight:
            logger.info("conversation.rejected", reason="in_flight")
            return False
        if not text.strip() and image is None:
            logger.info("conversation.rejected", reason="empty_input")
            return False

        self._state = TurnState.SUBMITTING
        try:
            self._transcript.append(ConversationTurn(role="user", content=text, image=image))
            self.draft.clear()
            logger.info("conversation.turn_started", has_image=image is not None, text_len=len(text))

            try:
                reply = await self._run_turn(text, image)
            except asyncio.CancelledError:
                # Every user turn gets an answer, even if the caller is cancelled
                self.unexpected_failures += 1
                logger.warning("conversation.turn_cancelled")
                self._transcript.append(ConversationTurn(role="assistant", content=PIPELINE_FAILURE_MESSAGE))
                raise
            except Exception as e:
                # Gateway absorbs backend failures, so this should be unreachable
                self.unexpected_failures += 1
                logger.error("conversation.turn_failed", error=str(e), error_type=type(e).__name__)
                reply = ConversationTurn(role="assistant", content=PIPELINE_FAILURE_MESSAGE)

            self._transcript.append(reply)
            logger.info("conversation.turn_settled",
                        recommendations=len(reply.recommended_products or ()))
        finally:
            self._state = TurnState.SETTLED

        return True

    def inject_assistant_message(self, content: str) -> ConversationTurn:
        """Append an assistant message outside the submit pipeline.

        Used by the storefront search-miss handler. Does not touch the turn
        state, so an in-flight turn stays in flight.
        """
        turn = ConversationTurn(role="assistant", content=content)
        self._transcript.append(turn)
        logger.info("conversation.injected", in_flight=self.in_flight)
        return turn

    async def _run_turn(self, text: str, image: ImageAttachment | None) -> ConversationTurn:
        local_matches = self._matcher.match(text, self._chat_match_limit)
        history = to_backend_history(self._transcript.turns)
        preamble = IMAGE_TURN_PREAMBLE if image is not None else ""

        self._state = TurnState.AWAITING_BACKEND

        if self._trigger.should_recommend(text, len(local_matches), has_image=image is not None):
            reply_text, remote_matches = await asyncio.gather(
                self._gateway.converse(preamble, history),
                self._gateway.recommend(text),
            )
        else:
            reply_text = await self._gateway.converse(preamble, history)
            remote_matches = []

        merged = merge_recommendations(local_matches, remote_matches)
        logger.debug("conversation.merged", local=len(local_matches),
                     remote=len(remote_matches), merged=len(merged))

        return ConversationTurn(
            role="assistant",
            content=reply_text,
            recommended_products=tuple(merged) or None,
        )
