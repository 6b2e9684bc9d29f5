"""Entry point for one exploration step.

The orchestrator owns no state. Under the session's lock it reads the
session, classifies the reply (except on the first turn), runs the state
machine, then writes the session back and appends the turn to the
conversation log in one transaction, then returns the payload for the client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiosqlite

from dal.conversation_dal import ConversationDAL
from models.session_models import ConversationTurn, ExplorationSession
from services.errors import GenerationUnavailable
from services.exploration.intent_classifier import IntentClassifier
from services.exploration.session_store import SessionStore
from services.exploration.state_machine import ExplorationOutcome, ExplorationStateMachine

LOGGER = logging.getLogger(__name__)

FIRST_TURN = "first"
FIRST_TURN_LOG_TEXT = "(started exploration)"


@dataclass
class ExploreRequest:
    session_id: str
    user_name: str
    user_utterance: str
    rejected_count: int = 0
    is_timed_out: bool = False

    @property
    def is_first(self) -> bool:
        return self.user_utterance.strip().lower() == FIRST_TURN


class ExplorationOrchestrator:
    """Compose the session store, classifier and state machine for one request."""

    def __init__(
        self,
        session_store: SessionStore,
        conversation_dal: ConversationDAL,
        classifier: IntentClassifier,
        machine: ExplorationStateMachine,
    ) -> None:
        self.session_store = session_store
        self.conversations = conversation_dal
        self.classifier = classifier
        self.machine = machine

    async def explore(self, request: ExploreRequest) -> Dict[str, Any]:
        """Run one exploration step and return the response payload.

        Raises:
            InvalidStateError: If the reply is not legal for the session's phase.
        """
        LOGGER.info(
            "Exploring topics for %s (%s), rejected=%d",
            request.user_name,
            request.session_id,
            request.rejected_count,
        )
        step: Dict[str, Any] = {}

        async def mutate(session: Optional[ExplorationSession]) -> ExplorationSession:
            interests: List[str] = []
            if session is None or request.is_first:
                if session is None and not request.is_first:
                    LOGGER.info("No active session %s; starting a new exploration", request.session_id)
                session = session or ExplorationSession(session_id=request.session_id)
                outcome = await self.machine.start(session, request.user_name, request.is_timed_out)
            else:
                last_turn = await self.conversations.last_turn(request.session_id)
                classification = await self.classifier.classify(
                    request.user_utterance,
                    previous_ai_utterance=last_turn.ai_utterance if last_turn else None,
                    pending_topic=session.pending_topic,
                    offered_topics=session.offered_topics,
                )
                interests = classification.interests
                if request.user_name:
                    session.user_name = request.user_name
                outcome = await self.machine.advance(session, classification)
            session.turn_count += 1
            step["outcome"] = outcome
            step["interests"] = interests
            return session

        async def log_turn(session: ExplorationSession, conn: aiosqlite.Connection) -> None:
            outcome: ExplorationOutcome = step["outcome"]
            await self.conversations.append_turn(
                ConversationTurn(
                    session_id=session.session_id,
                    user_name=session.user_name,
                    user_utterance=FIRST_TURN_LOG_TEXT if request.is_first else request.user_utterance,
                    ai_utterance=outcome.utterance,
                    interests=step["interests"],
                ),
                conn,
            )

        try:
            session = await self.session_store.upsert(request.session_id, mutate, also_write=log_turn)
        except GenerationUnavailable as exc:
            LOGGER.warning("Session %s step not applied: %s", request.session_id, exc)
            return await self._unavailable_payload(request.session_id, exc)

        LOGGER.info("Session %s is now %s", session.session_id, session.phase.value)
        return step["outcome"].to_payload()

    async def _unavailable_payload(self, session_id: str, exc: GenerationUnavailable) -> Dict[str, Any]:
        session = await self.session_store.get(session_id)
        topics: Any = list(session.current_offer) if session else []
        return {
            "topics": topics,
            "select": "false",
            "aiUtterance": exc.utterance,
            "status": "unavailable",
        }
