"""Pick a topic group for a session and sample unseen topics from it."""

from __future__ import annotations

import logging
import os
import random
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from models.topic_models import canonical_topic
from services.exploration.topic_groups import DEFAULT_TOPIC_GROUPS
from services.openai.generative_client import GenerativeClient
from services.openai.prompts import select_group_prompt

LOGGER = logging.getLogger(__name__)

TOPICS_PER_OFFER = 3
SAMPLING_UNIFORM = "uniform"
SAMPLING_FRONT_WEIGHTED = "front_weighted"
TOPIC_SAMPLING = os.getenv("TOPIC_SAMPLING", SAMPLING_UNIFORM)


def unseen(topics: Iterable[str], excluded: Iterable[str]) -> List[str]:
    """Return `topics` without the excluded ones, keeping order."""
    excluded_set = set(excluded)
    return [topic for topic in topics if topic not in excluded_set]


def match_topic(topic: str, candidates: Iterable[str]) -> Optional[str]:
    """Return the candidate naming the same topic, ignoring case and spacing."""
    key = canonical_topic(topic)
    for candidate in candidates:
        if canonical_topic(candidate) == key:
            return candidate
    return None


def interest_overlap(group_name: str, topics: Sequence[str], interests: Iterable[str]) -> int:
    """Count interests that appear in the group name or any of its topics."""
    haystack = [group_name.lower()] + [topic.lower() for topic in topics]
    score = 0
    for interest in interests:
        needle = interest.strip().lower()
        if needle and any(needle in text or text in needle for text in haystack):
            score += 1
    return score


class TopicSelector:
    """Choose groups and sample topics while honoring a session's exclusions."""

    def __init__(
        self,
        client: GenerativeClient,
        k: int = TOPICS_PER_OFFER,
        strategy: str = TOPIC_SAMPLING,
        rng: Optional[random.Random] = None,
    ) -> None:
        if strategy not in (SAMPLING_UNIFORM, SAMPLING_FRONT_WEIGHTED):
            raise ValueError(f"Unknown sampling strategy '{strategy}'")
        self.client = client
        self.k = k
        self.strategy = strategy
        self.rng = rng or random.Random()

    def fallback_topics(self) -> List[str]:
        """Return the fixed default set in random order."""
        defaults = [topic for topics in DEFAULT_TOPIC_GROUPS.values() for topic in topics]
        return self.rng.sample(defaults, min(self.k, len(defaults)))

    def available_groups(self, groups: Dict[str, List[str]], excluded: Iterable[str]) -> List[str]:
        """Return group names that still hold at least `k` unseen topics."""
        excluded = list(excluded)
        return [name for name, topics in groups.items() if len(unseen(topics, excluded)) >= self.k]

    async def select_group(
        self,
        groups: Dict[str, List[str]],
        interests: Iterable[str],
        excluded: Iterable[str],
        avoid: Optional[str] = None,
    ) -> str:
        """Let the text model choose among non-exhausted groups.

        A reply naming no available group falls back to the first available
        one. When every group is exhausted the first group is returned and
        sampling from it yields the default set.
        """
        if not groups:
            raise ValueError("Cannot select from an empty set of topic groups.")
        excluded = list(excluded)
        available = self.available_groups(groups, excluded)
        candidates = [name for name in available if name != avoid] or available
        if not candidates:
            LOGGER.info("All topic groups are exhausted")
            return next(iter(groups))
        if len(candidates) == 1:
            return candidates[0]

        reply = await self.client.generate_text(
            select_group_prompt(sorted(interests), candidates, excluded),
            operation="select_topic_group",
        )
        choice = reply.strip().strip("\"'`.").strip()
        for name in candidates:
            if name == choice or name.lower() == choice.lower():
                return name
        LOGGER.warning("Model chose unknown group %r; falling back to %r", choice, candidates[0])
        return candidates[0]

    def sample_topics(self, topics: Sequence[str], excluded: Iterable[str]) -> List[str]:
        """Sample `k` unseen topics, or return the default set when too few remain."""
        remaining = unseen(topics, excluded)
        if len(remaining) < self.k:
            LOGGER.info("Only %d unseen topics left; offering the default set", len(remaining))
            return self.fallback_topics()
        if self.strategy == SAMPLING_FRONT_WEIGHTED:
            return self._front_weighted_sample(remaining)
        return self.rng.sample(remaining, self.k)

    def _front_weighted_sample(self, remaining: List[str]) -> List[str]:
        pool = list(remaining)
        weights = [1.0 / (index + 1) for index in range(len(pool))]
        chosen: List[str] = []
        while len(chosen) < self.k:
            pick = self.rng.choices(range(len(pool)), weights=weights, k=1)[0]
            chosen.append(pool.pop(pick))
            weights.pop(pick)
        return chosen

    def recommend_across_groups(
        self,
        groups: Dict[str, List[str]],
        interests: Iterable[str],
        excluded: Iterable[str],
    ) -> Tuple[Optional[str], List[str]]:
        """Recommend from the group that best overlaps the user's interests.

        Returns `(group_name, topics)`. The group name is None when topics come
        from the pooled leftovers of every group or from the default set.
        """
        excluded = list(excluded)
        interests = list(interests)
        best_name: Optional[str] = None
        best_score = -1
        for name in self.available_groups(groups, excluded):
            score = interest_overlap(name, groups[name], interests)
            if score > best_score:
                best_name, best_score = name, score
        if best_name is not None:
            LOGGER.info("Cross-group recommendation picked %r (overlap %d)", best_name, best_score)
            return best_name, self.sample_topics(groups[best_name], excluded)

        pooled: List[str] = []
        for topics in groups.values():
            for topic in unseen(topics, excluded):
                if topic not in pooled:
                    pooled.append(topic)
        return None, self.sample_topics(pooled, excluded)
