"""Generate named groups of drawable topics from a user's interests."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List

from services.openai.generative_client import GenerativeClient
from services.openai.prompts import companion_system_prompt, topic_groups_prompt
from services.openai.response_parser import parse_json_payload

LOGGER = logging.getLogger(__name__)

MIN_GROUP_SIZE = 3
MAX_GROUP_SIZE = 9
DEFAULT_TOPIC_GROUPS: Dict[str, List[str]] = {"easy": ["apple", "banana", "pear"]}


def default_topic_groups() -> Dict[str, List[str]]:
    return {name: list(topics) for name, topics in DEFAULT_TOPIC_GROUPS.items()}


def validate_topic_groups(raw: Any) -> Dict[str, List[str]]:
    """Coerce decoded model output into `{group: [3..9 unique topics]}`.

    Groups that are too small after cleaning are dropped and long groups are
    truncated.

    Raises:
        ValueError: If the payload is not an object of string lists or no
            usable group remains.
    """
    if not isinstance(raw, dict):
        raise ValueError("Topic groups must be a JSON object.")

    groups: Dict[str, List[str]] = {}
    for name, topics in raw.items():
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Group names must be non-empty strings.")
        if not isinstance(topics, list) or not all(isinstance(t, str) for t in topics):
            raise ValueError(f"Group '{name}' must be a list of strings.")
        cleaned: List[str] = []
        for topic in topics:
            topic = topic.strip()
            if topic and topic not in cleaned:
                cleaned.append(topic)
        if len(cleaned) < MIN_GROUP_SIZE:
            LOGGER.warning("Dropping group '%s' with only %d usable topics", name, len(cleaned))
            continue
        groups[name.strip()] = cleaned[:MAX_GROUP_SIZE]

    if not groups:
        raise ValueError("No topic group satisfied the size contract.")
    return groups


class TopicGroupGenerator:
    """Ask the text model for topic groups, falling back to a fixed default group."""

    def __init__(self, client: GenerativeClient) -> None:
        self.client = client

    async def generate(self, interests: Iterable[str]) -> Dict[str, List[str]]:
        """Return validated topic groups for `interests` (which may be empty).

        Raises:
            GenerationUnavailable: If the text model could not be reached.
        """
        interests = sorted(interests)
        start = time.time()
        text = await self.client.generate_text(
            topic_groups_prompt(interests),
            system=companion_system_prompt(),
            operation="generate_topic_groups",
        )
        try:
            groups = validate_topic_groups(parse_json_payload(text))
        except ValueError as exc:
            LOGGER.warning("Topic group output rejected (%s); using default group", exc)
            return default_topic_groups()

        LOGGER.info(
            "Generated %d topic groups for interests %s in %.3fs", len(groups), interests, time.time() - start
        )
        return groups
