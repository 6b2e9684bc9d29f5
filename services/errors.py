"""Exceptions raised by the topic exploration engine."""

from __future__ import annotations

from typing import Optional

APOLOGY_UTTERANCE = (
    "I'm sorry, I'm having a little trouble thinking right now. "
    "Could you say that again in a moment?"
)


class ExplorationError(Exception):
    """Base class for exploration failures."""


class InvalidStateError(ExplorationError):
    """The requested transition is not legal for the session's current phase."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(f"Session {session_id}: {message}")
        self.session_id = session_id


class GenerationUnavailable(ExplorationError):
    """A generative collaborator kept failing after bounded retries.

    Carries a speakable apology so the conversational surface can still answer.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Generation unavailable for '{operation}'")
        self.operation = operation
        self.cause = cause
        self.utterance = APOLOGY_UTTERANCE
