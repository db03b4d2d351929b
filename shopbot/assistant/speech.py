"""Voice input capability.

The platform's speech recognizer sits behind the SpeechCapture protocol. The
core never talks to a platform API; it only receives finalized transcripts,
which VoiceInput appends to the pending input draft.
"""

from collections.abc import Callable
from typing import Protocol

import structlog

from shopbot.assistant.conversation import InputDraft

logger = structlog.get_logger(__name__)

PERMISSION_DENIED = "not-allowed"

PERMISSION_DENIED_MESSAGE = (
    "Microphone access denied. Please allow microphone access in your browser settings."
)
UNSUPPORTED_MESSAGE = "Voice input is not supported on this platform."


class SpeechUnavailableError(Exception):
    """No speech recognizer exists on this platform."""
    pass


class SpeechCapture(Protocol):
    """Platform speech recognizer. Callbacks are assigned by the consumer."""
    on_result: Callable[[str], None] | None
    on_error: Callable[[str], None] | None
    on_end: Callable[[], None] | None

    def start(self) -> None:
        ...


class UnsupportedSpeechCapture:
    """Adapter for platforms without a speech recognizer."""

    def __init__(self):
        self.on_result = None
        self.on_error = None
        self.on_end = None

    def start(self) -> None:
        raise SpeechUnavailableError(UNSUPPORTED_MESSAGE)


class VoiceInput:
    """Feeds recognized speech into an InputDraft."""

    def __init__(self, capture: SpeechCapture, draft: InputDraft):
        self._capture = capture
        self._draft = draft
        self.listening = False
        self.last_error: str | None = None

        capture.on_result = self._handle_result
        capture.on_error = self._handle_error
        capture.on_end = self._handle_end

    def start(self) -> bool:
        """Begin listening. Returns False if already listening or unsupported."""
        if self.listening:
            return False

        self.last_error = None
        try:
            self._capture.start()
        except SpeechUnavailableError as e:
            self.last_error = str(e)
            logger.warning("speech.unsupported")
            return False

        self.listening = True
        logger.debug("speech.started")
        return True

    def error_message(self) -> str | None:
        """User-facing text for the last error, if one needs showing."""
        if self.last_error == PERMISSION_DENIED:
            return PERMISSION_DENIED_MESSAGE
        if self.last_error == UNSUPPORTED_MESSAGE:
            return UNSUPPORTED_MESSAGE
        return None

    def _handle_result(self, transcript: str) -> None:
        self._draft.append_text(transcript)

    def _handle_error(self, kind: str) -> None:
        logger.warning("speech.error", kind=kind)
        self.last_error = kind
        self.listening = False

    def _handle_end(self) -> None:
        self.listening = False
