"""Small talk that opens a visit, before the topic exploration starts.

The first call of a visit greets the user, mentioning their attendance when
it is known. Later calls continue the chat and report through `choice`
whether the user now wants to draw. Every exchange is appended to the same
conversation log the exploration dialogue uses, so interests mentioned here
shape the topic groups offered later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from dal.conversation_dal import ConversationDAL
from models.session_models import ConversationTurn
from services.errors import GenerationUnavailable
from services.openai.generative_client import GenerativeClient
from services.openai.prompts import companion_system_prompt, welcome_greeting_prompt, welcome_reply_prompt
from services.openai.welcome_schema import FUNCTION_DEFINITION

LOGGER = logging.getLogger(__name__)

WELCOME_LOG_TEXT = "(welcome)"
HISTORY_TURNS = 5
FALLBACK_REPLY = "That sounds lovely. Would you like to draw something together today?"
DRAW_KEYWORDS = ("draw", "drawing", "sketch", "paint")


@dataclass
class WelcomeRequest:
    session_id: str
    user_name: str
    user_utterance: str
    attendance_total: Optional[int] = None
    attendance_streak: Optional[int] = None

    @property
    def is_first(self) -> bool:
        return self.user_utterance.strip().lower() == "first"


def mentions_drawing(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in DRAW_KEYWORDS)


class WelcomeService:
    """Greet the user and chat until they are ready to pick something to draw."""

    def __init__(self, client: GenerativeClient, conversations: ConversationDAL) -> None:
        self.client = client
        self.conversations = conversations

    async def _history(self, session_id: str) -> List[Tuple[str, str]]:
        turns = await self.conversations.recent_turns(session_id, limit=HISTORY_TURNS)
        return [(turn.user_utterance, turn.ai_utterance) for turn in reversed(turns)]

    async def welcome(self, request: WelcomeRequest) -> Dict[str, Any]:
        """Return `{"aiUtterance", "choice"}` for one welcome exchange.

        If the model is unreachable the apology is returned with
        `status: "unavailable"` and nothing is logged.
        """
        try:
            if request.is_first:
                reply, choice, interests = await self._greet(request), False, []
            else:
                reply, choice, interests = await self._continue(request)
        except GenerationUnavailable as exc:
            LOGGER.warning("Welcome for session %s not answered: %s", request.session_id, exc)
            return {"aiUtterance": exc.utterance, "choice": False, "status": "unavailable"}

        await self.conversations.append_turn(
            ConversationTurn(
                session_id=request.session_id,
                user_name=request.user_name,
                user_utterance=WELCOME_LOG_TEXT if request.is_first else request.user_utterance,
                ai_utterance=reply,
                interests=interests,
            )
        )
        LOGGER.info("Session %s welcome turn logged (choice=%s)", request.session_id, choice)
        return {"aiUtterance": reply, "choice": choice}

    async def _greet(self, request: WelcomeRequest) -> str:
        prompt = welcome_greeting_prompt(
            request.user_name,
            await self._history(request.session_id),
            request.attendance_total,
            request.attendance_streak,
        )
        reply = await self.client.generate_text(prompt, system=companion_system_prompt(), operation="welcome_greeting")
        return reply or f"Hello {request.user_name}, it's so nice to see you today!"

    async def _continue(self, request: WelcomeRequest) -> Tuple[str, bool, List[str]]:
        prompt = welcome_reply_prompt(request.user_name, await self._history(request.session_id), request.user_utterance)
        try:
            args = await self.client.call_function(
                prompt,
                system=companion_system_prompt(),
                tool=FUNCTION_DEFINITION,
                operation="continue_welcome_chat",
            )
            reply = args.get("reply")
            if not isinstance(reply, str) or not reply.strip():
                raise ValueError("reply must be a non-empty string.")
            interests = args.get("interests") or []
            if not isinstance(interests, list):
                raise ValueError("interests must be a list.")
        except ValueError as exc:
            LOGGER.warning("Welcome output rejected (%s); using fallback reply", exc)
            return FALLBACK_REPLY, mentions_drawing(request.user_utterance), []

        wants_to_draw = args.get("wants_to_draw") is True or mentions_drawing(request.user_utterance)
        return reply.strip(), wants_to_draw, [str(i).strip() for i in interests if str(i).strip()]
