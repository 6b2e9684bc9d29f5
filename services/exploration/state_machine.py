"""The select -> confirm protocol for choosing a drawing topic.

Phases move INIT -> AWAITING_SELECTION -> AWAITING_CONFIRMATION -> CONFIRMED.
A topic can only be confirmed while it is the session's pending topic, and
naming any topic (even the pending one) always restarts the confirmation
question. Requests for other options send the session back to
AWAITING_SELECTION with topics it has not been offered yet.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from models.session_models import ExplorationSession, Phase
from models.topic_models import ClassificationResult, MetadataJobStatus, TopicMetadata
from services.errors import GenerationUnavailable, InvalidStateError
from services.exploration import utterances
from services.exploration.interest_aggregator import InterestAggregator
from services.exploration.topic_groups import TopicGroupGenerator, default_topic_groups
from services.exploration.topic_selector import TopicSelector, match_topic, unseen
from services.metadata_cache import TopicMetadataCache
from services.openai.generative_client import GenerativeClient
from services.openai.prompts import companion_system_prompt, confirmation_prompt

LOGGER = logging.getLogger(__name__)

METADATA_MODE_INLINE = "inline"
METADATA_MODE_BACKGROUND = "background"
METADATA_GENERATION_MODE = os.getenv("METADATA_GENERATION_MODE", METADATA_MODE_BACKGROUND)
METADATA_CONFIRM_WAIT_SECONDS = float(os.getenv("METADATA_CONFIRM_WAIT_SECONDS", "20"))


@dataclass
class ExplorationOutcome:
    """What one exploration step tells the user."""

    topics: Union[List[str], str]
    select: bool
    utterance: str
    metadata: Optional[TopicMetadata] = None
    metadata_status: Optional[MetadataJobStatus] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "topics": self.topics,
            "select": "true" if self.select else "false",
            "aiUtterance": self.utterance,
        }
        if self.metadata is not None:
            payload["metadata"] = self.metadata.to_payload()
        if self.metadata_status is not None:
            payload["metadataStatus"] = self.metadata_status.value
        return payload


class ExplorationStateMachine:
    """Apply classified replies to a session and decide what to say next."""

    def __init__(
        self,
        group_generator: TopicGroupGenerator,
        selector: TopicSelector,
        aggregator: InterestAggregator,
        metadata_cache: TopicMetadataCache,
        client: GenerativeClient,
        *,
        metadata_mode: str = METADATA_GENERATION_MODE,
        confirm_wait_seconds: float = METADATA_CONFIRM_WAIT_SECONDS,
    ) -> None:
        if metadata_mode not in (METADATA_MODE_INLINE, METADATA_MODE_BACKGROUND):
            raise ValueError(f"Unknown metadata generation mode '{metadata_mode}'")
        self.group_generator = group_generator
        self.selector = selector
        self.aggregator = aggregator
        self.metadata_cache = metadata_cache
        self.client = client
        self.metadata_mode = metadata_mode
        self.confirm_wait_seconds = confirm_wait_seconds

    async def start(self, session: ExplorationSession, user_name: str, is_timed_out: bool) -> ExplorationOutcome:
        """Begin a new episode: build groups, pick one and offer three topics."""
        session.start_episode(user_name)
        interests = await self.aggregator.collect(session.session_id)
        groups = await self.group_generator.generate(interests)
        group = await self.selector.select_group(groups, interests, excluded=[])
        topics = self.selector.sample_topics(groups[group], excluded=[])

        session.topic_groups = groups
        self._offer(session, group, topics)
        LOGGER.info("Session %s started exploring with group %r: %s", session.session_id, group, topics)
        return ExplorationOutcome(
            topics=topics,
            select=False,
            utterance=utterances.offer_utterance(user_name, topics, is_timed_out=is_timed_out, first=True),
        )

    async def advance(self, session: ExplorationSession, classification: ClassificationResult) -> ExplorationOutcome:
        """Apply one classified reply to a session that is mid-episode.

        A reply the classifier could not read repeats the last question and
        leaves the session unchanged.

        Raises:
            InvalidStateError: If the episode is over or has not started, or a
                confirmation arrives with no pending topic.
        """
        if session.phase == Phase.CONFIRMED:
            raise InvalidStateError(session.session_id, "the topic is already confirmed; start a new exploration")
        if session.phase == Phase.INIT:
            raise InvalidStateError(session.session_id, "exploration has not started")

        if classification.unparsed:
            return await self._repeat(session)
        if classification.selected_topic:
            return await self._select(session, classification.selected_topic)
        if classification.confirmed_topic:
            return await self._confirm(session)
        if classification.wants_different_group:
            return await self._different_group(session)
        return await self._different_topics(session)

    def _offer(self, session: ExplorationSession, group: Optional[str], topics: List[str]) -> None:
        if group:
            session.active_group_name = group
        session.pending_topic = None
        session.record_offer(topics)
        session.phase = Phase.AWAITING_SELECTION

    @staticmethod
    def _canonical_choice(session: ExplorationSession, topic: str) -> str:
        """Map a named topic onto the spelling the session already knows."""
        known = list(session.current_offer) + list(session.offered_topics)
        for topics in session.topic_groups.values():
            known.extend(topics)
        return match_topic(topic, known) or " ".join(topic.split())

    async def _repeat(self, session: ExplorationSession) -> ExplorationOutcome:
        LOGGER.info("Session %s reply not understood; repeating the %s question", session.session_id, session.phase.value)
        if session.phase == Phase.AWAITING_CONFIRMATION and session.pending_topic:
            topic = session.pending_topic
            metadata, status = await self._prepare_metadata(topic)
            return ExplorationOutcome(
                topics=topic,
                select=False,
                utterance=utterances.pardon(utterances.proposal_utterance(topic)),
                metadata=metadata,
                metadata_status=status,
            )
        if not session.current_offer:
            return await self._different_topics(session)
        topics = list(session.current_offer)
        return ExplorationOutcome(
            topics=topics,
            select=False,
            utterance=utterances.pardon(
                utterances.offer_utterance(session.user_name, topics, is_timed_out=False, first=True)
            ),
        )

    async def _select(self, session: ExplorationSession, topic: str) -> ExplorationOutcome:
        topic = self._canonical_choice(session, topic)
        previous = session.pending_topic
        session.pending_topic = topic
        session.phase = Phase.AWAITING_CONFIRMATION
        if previous and previous != topic:
            LOGGER.info("Session %s switched pending topic %r -> %r", session.session_id, previous, topic)

        metadata, status = await self._prepare_metadata(topic)
        return ExplorationOutcome(
            topics=topic,
            select=False,
            utterance=utterances.proposal_utterance(topic),
            metadata=metadata,
            metadata_status=status,
        )

    async def _prepare_metadata(self, topic: str) -> Tuple[Optional[TopicMetadata], MetadataJobStatus]:
        if self.metadata_mode == METADATA_MODE_INLINE:
            metadata = await self.metadata_cache.wait(topic)
        else:
            self.metadata_cache.ensure(topic)
            metadata = await self.metadata_cache.get(topic)
        if metadata is not None:
            return metadata, MetadataJobStatus.READY
        return None, await self.metadata_cache.status(topic)

    async def _confirm(self, session: ExplorationSession) -> ExplorationOutcome:
        topic = session.pending_topic
        if not topic:
            raise InvalidStateError(session.session_id, "cannot confirm: no topic is pending confirmation")

        metadata = await self.metadata_cache.wait(topic, timeout=self.confirm_wait_seconds)
        session.phase = Phase.CONFIRMED
        LOGGER.info("Session %s confirmed topic %r", session.session_id, topic)

        if metadata is None:
            status = await self.metadata_cache.status(topic)
            if status == MetadataJobStatus.FAILED:
                self.metadata_cache.ensure(topic)
                status = MetadataJobStatus.PENDING
            return ExplorationOutcome(
                topics=topic,
                select=True,
                utterance=utterances.guide_pending_utterance(topic),
                metadata_status=status,
            )

        await self.metadata_cache.bind_guide(session.session_id, topic)
        return ExplorationOutcome(
            topics=topic,
            select=True,
            utterance=await self._encouragement(topic),
            metadata=metadata,
            metadata_status=MetadataJobStatus.READY,
        )

    async def _encouragement(self, topic: str) -> str:
        try:
            text = await self.client.generate_text(
                confirmation_prompt(topic),
                system=companion_system_prompt(),
                operation="confirmation_utterance",
            )
        except GenerationUnavailable:
            LOGGER.warning("Encouragement for %r unavailable; using template", topic)
            return utterances.encouragement_fallback(topic)
        return text or utterances.encouragement_fallback(topic)

    async def _different_group(self, session: ExplorationSession) -> ExplorationOutcome:
        interests = await self.aggregator.collect(session.session_id)
        excluded = list(session.offered_topics)
        groups = session.topic_groups or default_topic_groups()
        active = session.active_group_name

        fresh = [name for name in self.selector.available_groups(groups, excluded) if name != active]
        if not fresh:
            LOGGER.info("Session %s has no unused groups left; generating new ones", session.session_id)
            groups = {**groups, **await self.group_generator.generate(interests)}
            session.topic_groups = groups

        group = await self.selector.select_group(groups, interests, excluded, avoid=active)
        topics = self.selector.sample_topics(groups[group], excluded)
        self._offer(session, group, topics)
        return self._reoffer_outcome(session, topics)

    async def _different_topics(self, session: ExplorationSession) -> ExplorationOutcome:
        excluded = list(session.offered_topics)
        groups = session.topic_groups or default_topic_groups()
        active = session.active_group_name

        if active in groups and len(unseen(groups[active], excluded)) >= self.selector.k:
            group: Optional[str] = active
            topics = self.selector.sample_topics(groups[active], excluded)
        else:
            interests = await self.aggregator.collect(session.session_id)
            group, topics = self.selector.recommend_across_groups(groups, interests, excluded)
        self._offer(session, group, topics)
        return self._reoffer_outcome(session, topics)

    @staticmethod
    def _reoffer_outcome(session: ExplorationSession, topics: List[str]) -> ExplorationOutcome:
        return ExplorationOutcome(
            topics=topics,
            select=False,
            utterance=utterances.offer_utterance(session.user_name, topics, is_timed_out=False, first=False),
        )
