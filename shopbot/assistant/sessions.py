"""In-memory conversation sessions.

Each session id maps to its own ConversationManager. Nothing is persisted;
sessions vanish on restart. The registry is capped and evicts the least
recently used session that has no turn in flight.
"""

import os
from collections import OrderedDict
from collections.abc import Callable

import structlog

from shopbot.assistant.conversation import ConversationManager

logger = structlog.get_logger(__name__)


class SessionRegistry:
    """LRU-capped map of session id → ConversationManager."""

    def __init__(self, factory: Callable[[], ConversationManager], max_sessions: int | None = None):
        self._factory = factory
        if max_sessions is None:
            max_sessions = int(os.environ.get("MAX_SESSIONS", "500"))
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, ConversationManager] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> ConversationManager | None:
        manager = self._sessions.get(session_id)
        if manager is not None:
            self._sessions.move_to_end(session_id)
        return manager

    def get_or_create(self, session_id: str) -> ConversationManager:
        """Return the session's manager, creating it (with a greeting) if new."""
        manager = self.get(session_id)
        if manager is not None:
            return manager

        manager = self._factory()
        self._sessions[session_id] = manager
        logger.info("sessions.created", session_id=session_id, total=len(self._sessions))
        self._prune(keep=session_id)
        return manager

    def _prune(self, keep: str) -> None:
        """Drop least recently used idle sessions above the cap."""
        if self._max_sessions <= 0:
            return

        while len(self._sessions) > self._max_sessions:
            victim = next((sid for sid, m in self._sessions.items() if not m.in_flight and sid != keep), None)
            if victim is None:
                logger.warning("sessions.prune_blocked", total=len(self._sessions))
                return
            del self._sessions[victim]
            logger.info("sessions.evicted", session_id=victim)
