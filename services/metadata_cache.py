"""Lazily generated, shared drawing metadata per topic.

A topic's metadata (reference image + 3-step guide) is generated once and
shared by every session. Generation runs as an explicit job (an
`asyncio.Task`) whose status can be queried as missing, pending, ready or
failed; concurrent requests for the same topic join the in-flight job
instead of starting a second one. Topics are keyed by their canonical name, so
"Banana" and "banana " share one record. Per-session drawing guides are bound from
the shared metadata and stored separately so evaluation state stays
session-scoped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from dal.topic_metadata_dal import TopicMetadataDAL
from models.topic_models import DrawingGuide, Evaluation, GuideStep, MetadataJobStatus, TopicMetadata, canonical_topic
from services.image_store import MediaStorage, save_reference_image
from services.openai.generative_client import GenerativeClient
from services.openai.prompts import companion_system_prompt, guide_prompt, reference_image_prompt
from services.openai.response_parser import parse_json_payload
from services.thumbnail_generator import ThumbnailGenerator

LOGGER = logging.getLogger(__name__)

GUIDE_STEP_COUNT = 3


def default_guide_steps(topic: str) -> List[GuideStep]:
    """Return the generic beginner guide used when the model's guide is unusable."""
    return [
        GuideStep(1, "Big shape", f"Lightly draw the largest simple shape of the {topic}, such as a circle, oval or box."),
        GuideStep(2, "Main parts", f"Add the other main parts of the {topic} with simple lines and shapes."),
        GuideStep(3, "Finishing touches", "Go over the lines you like, add a few details and color it in if you wish."),
    ]


def parse_guide_steps(raw: Any) -> List[GuideStep]:
    """Validate decoded guide JSON into exactly three steps.

    Accepts `{"steps": [...]}` or a bare list of `{title, instruction}` objects.

    Raises:
        ValueError: If the payload breaks the 3-step contract.
    """
    items = raw.get("steps") if isinstance(raw, dict) else raw
    if not isinstance(items, list) or len(items) != GUIDE_STEP_COUNT:
        raise ValueError(f"Guide must contain exactly {GUIDE_STEP_COUNT} steps.")

    steps: List[GuideStep] = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValueError("Each guide step must be an object.")
        title = item.get("title")
        instruction = item.get("instruction")
        if not isinstance(title, str) or not isinstance(instruction, str) or not title.strip() or not instruction.strip():
            raise ValueError("Each guide step needs a title and an instruction.")
        steps.append(GuideStep(index=index, title=title.strip(), instruction=instruction.strip()))
    return steps


class TopicMetadataCache:
    """Get, generate and share topic metadata; bind per-session guides."""

    def __init__(
        self,
        dal: TopicMetadataDAL,
        client: GenerativeClient,
        storage: MediaStorage,
        thumbnailer: Optional[ThumbnailGenerator] = None,
    ) -> None:
        self._dal = dal
        self.client = client
        self.storage = storage
        self.thumbnailer = thumbnailer
        self._jobs: Dict[str, asyncio.Task] = {}
        self._failures: Dict[str, str] = {}

    async def get(self, topic: str) -> Optional[TopicMetadata]:
        return await self._dal.get_metadata(canonical_topic(topic))

    async def status(self, topic: str) -> MetadataJobStatus:
        """Return the generation status for `topic`."""
        topic = canonical_topic(topic)
        job = self._jobs.get(topic)
        if job is not None and not job.done():
            return MetadataJobStatus.PENDING
        if await self._dal.get_metadata(topic) is not None:
            return MetadataJobStatus.READY
        if topic in self._failures:
            return MetadataJobStatus.FAILED
        return MetadataJobStatus.MISSING

    def ensure(self, topic: str) -> asyncio.Task:
        """Start generation for `topic`, or return the job already running."""
        topic = canonical_topic(topic)
        job = self._jobs.get(topic)
        if job is not None and not job.done():
            return job
        job = asyncio.create_task(self._run(topic), name=f"topic-metadata:{topic}")
        self._jobs[topic] = job
        job.add_done_callback(lambda done: self._forget_job(topic, done))
        return job

    def _forget_job(self, topic: str, job: asyncio.Task) -> None:
        if self._jobs.get(topic) is job:
            del self._jobs[topic]

    async def aclose(self) -> None:
        """Cancel unfinished generation jobs and wait for them to settle."""
        jobs = [job for job in self._jobs.values() if not job.done()]
        for job in jobs:
            job.cancel()
        if jobs:
            LOGGER.info("Cancelling %d unfinished metadata jobs", len(jobs))
            await asyncio.gather(*jobs, return_exceptions=True)
        self._jobs.clear()

    async def wait(self, topic: str, timeout: Optional[float] = None) -> Optional[TopicMetadata]:
        """Ensure a job exists and wait up to `timeout` seconds for its result.

        Returns None if the job failed or is still running at the deadline; the
        job itself keeps running.
        """
        job = self.ensure(topic)
        try:
            return await asyncio.wait_for(asyncio.shield(job), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.info("Metadata for %r not ready after %.1fs", topic, timeout or 0.0)
            return None

    async def _run(self, topic: str) -> Optional[TopicMetadata]:
        try:
            existing = await self._dal.get_metadata(topic)
            if existing is not None:
                return existing
            metadata = await self.generate(topic)
            self._failures.pop(topic, None)
            return metadata
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # The job's status is the error channel; callers poll `status()`.
            LOGGER.exception("Metadata generation for %r failed", topic)
            self._failures[topic] = repr(exc)
            return None

    async def generate(self, topic: str) -> TopicMetadata:
        """Produce, store and persist metadata for `topic`.

        Raises:
            GenerationUnavailable: If the image or text model could not be reached.
            ValueError: If the image payload is unusable.
        """
        topic = canonical_topic(topic)
        start = time.time()
        image_bytes = await self.client.generate_image(
            reference_image_prompt(topic), operation="generate_reference_image"
        )
        image_url, thumb_url = await save_reference_image(self.storage, topic, image_bytes, self.thumbnailer)

        text = await self.client.describe_image(
            guide_prompt(topic),
            image_bytes,
            system=companion_system_prompt(),
            operation="generate_drawing_guide",
        )
        try:
            steps = parse_guide_steps(parse_json_payload(text))
        except ValueError as exc:
            LOGGER.warning("Guide output for %r rejected (%s); using generic guide", topic, exc)
            steps = default_guide_steps(topic)

        metadata = await self._dal.put_metadata(
            TopicMetadata(topic=topic, image_ref=image_url, thumbnail_ref=thumb_url, steps=steps)
        )
        LOGGER.info("Generated metadata for %r in %.3fs", topic, time.time() - start)
        return metadata

    async def bind_guide(self, session_id: str, topic: str) -> Optional[DrawingGuide]:
        """Persist the drawing guide for (session_id, topic) from ready metadata."""
        topic = canonical_topic(topic)
        metadata = await self._dal.get_metadata(topic)
        if metadata is None:
            return None
        guide = DrawingGuide(
            session_id=session_id,
            topic=topic,
            image_ref=metadata.image_ref,
            steps=list(metadata.steps),
        )
        return await self._dal.put_guide(guide)

    async def get_guide(self, session_id: str, topic: str) -> Optional[DrawingGuide]:
        return await self._dal.get_guide(session_id, canonical_topic(topic))

    async def record_evaluation(self, session_id: str, topic: str, score: float, feedback: str) -> bool:
        """Store an evaluation result on a bound guide. Returns False if no guide exists."""
        evaluation = Evaluation(score=score, feedback=feedback, timestamp=int(time.time()))
        return await self._dal.save_evaluation(session_id, canonical_topic(topic), evaluation)
