"""Append-only conversation log with change notification."""

from collections.abc import Callable

import structlog

from shopbot.core.history import ConversationTurn

logger = structlog.get_logger(__name__)

TranscriptListener = Callable[[ConversationTurn, int], None]


class Transcript:
    """Versioned, append-only list of turns.

    Every append bumps `version` and notifies subscribers with the new turn
    and the new version. Turns are frozen, so snapshots are safe to share.
    """

    def __init__(self, turns: list[ConversationTurn] | None = None):
        self._turns: list[ConversationTurn] = list(turns or [])
        self._version = 0
        self._listeners: list[TranscriptListener] = []

    @property
    def version(self) -> int:
        return self._version

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> ConversationTurn:
        return self._turns[index]

    def append(self, turn: ConversationTurn) -> int:
        """Append a turn and notify listeners. Returns the new version."""
        self._turns.append(turn)
        self._version += 1

        for listener in list(self._listeners):
            try:
                listener(turn, self._version)
            except Exception as e:
                logger.error("transcript.listener_failed", error=str(e), version=self._version)

        return self._version

    def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
