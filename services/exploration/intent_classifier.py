"""Interpret a free-form user reply as a structured exploration intent."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from models.topic_models import ClassificationResult
from services.exploration.utterances import proposed_topic_in
from services.openai.generative_client import GenerativeClient
from services.openai.intent_schema import FUNCTION_DEFINITION
from services.openai.prompts import classifier_system_prompt, classifier_user_prompt

LOGGER = logging.getLogger(__name__)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return False


def result_from_arguments(args: Dict[str, Any]) -> ClassificationResult:
    """Build a ClassificationResult from decoded tool arguments.

    Raises:
        ValueError: If `selected_topic` or `interests` have the wrong shape.
    """
    selected = args.get("selected_topic")
    if selected is not None and not isinstance(selected, str):
        raise ValueError("selected_topic must be a string or null.")
    selected = selected.strip() if selected else None

    interests = args.get("interests") or []
    if not isinstance(interests, list):
        raise ValueError("interests must be a list.")

    return ClassificationResult(
        selected_topic=selected or None,
        confirmed_topic=_as_bool(args.get("confirmed_topic")),
        wants_different_group=_as_bool(args.get("wants_different_group")),
        wants_different_topics=_as_bool(args.get("wants_different_topics")),
        interests=[str(i).strip() for i in interests if str(i).strip()],
    )


class IntentClassifier:
    """Send the last AI line and the new user line to the classification model."""

    def __init__(self, client: GenerativeClient) -> None:
        self.client = client

    async def classify(
        self,
        user_utterance: str,
        previous_ai_utterance: Optional[str] = None,
        pending_topic: Optional[str] = None,
        offered_topics: Iterable[str] = (),
    ) -> ClassificationResult:
        """Return the intent behind `user_utterance`.

        Parse failures yield the zero-value result flagged `unparsed`. Confirmation is dropped
        when the reply names a subject; whether a confirmation is legal for
        the session is decided by the state machine.

        Raises:
            GenerationUnavailable: If the classification model could not be reached.
        """
        proposal = pending_topic or proposed_topic_in(previous_ai_utterance)
        try:
            args = await self.client.call_function(
                classifier_user_prompt(user_utterance, previous_ai_utterance, proposal, offered_topics),
                system=classifier_system_prompt(),
                tool=FUNCTION_DEFINITION,
                operation="classify_user_reply",
            )
            result = result_from_arguments(args)
        except ValueError as exc:
            LOGGER.warning("Classifier output rejected (%s); using empty intent", exc)
            return ClassificationResult(unparsed=True)

        if result.confirmed_topic and result.selected_topic:
            LOGGER.info("Reply names %r; treating it as a selection, not a confirmation", result.selected_topic)
            result.confirmed_topic = False
        return result
