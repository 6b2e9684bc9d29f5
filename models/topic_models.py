from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MetadataJobStatus(str, Enum):
    """Lifecycle of a topic metadata generation job."""

    MISSING = "missing"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass
class GuideStep:
    """A single beginner drawing instruction."""

    index: int
    title: str
    instruction: str

    def to_payload(self) -> Dict[str, Any]:
        return {"step": self.index, "title": self.title, "instruction": self.instruction}


@dataclass
class TopicMetadata:
    """Shared, per-topic reference image and drawing guide.

    Attributes:
        topic: Canonical topic name (the cache key).
        image_ref: Public URL of the stored reference image.
        thumbnail_ref: Public URL of the reference image thumbnail, if any.
        steps: Ordered guide steps derived from the reference image.
        created_at: Unix timestamp (seconds) when the record was stored.
    """

    topic: str
    image_ref: str
    steps: List[GuideStep] = field(default_factory=list)
    thumbnail_ref: Optional[str] = None
    created_at: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "imageRef": self.image_ref,
            "thumbnailRef": self.thumbnail_ref,
            "guidelineSteps": [step.to_payload() for step in self.steps],
        }


@dataclass
class Evaluation:
    score: float
    feedback: str
    timestamp: int


@dataclass
class DrawingGuide:
    """Guide steps bound to a (session, topic) pair, with optional evaluation."""

    session_id: str
    topic: str
    image_ref: str
    steps: List[GuideStep] = field(default_factory=list)
    evaluation: Optional[Evaluation] = None
    created_at: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sessionId": self.session_id,
            "topic": self.topic,
            "imageRef": self.image_ref,
            "guidelineSteps": [step.to_payload() for step in self.steps],
        }
        if self.evaluation is not None:
            payload["evaluation"] = {
                "score": self.evaluation.score,
                "feedback": self.evaluation.feedback,
                "timestamp": self.evaluation.timestamp,
            }
        return payload


@dataclass
class ClassificationResult:
    """Structured intent extracted from a user reply.

    The zero value (no selection, no confirmation, no change request) is the
    safe default when the classifier output cannot be parsed; `unparsed`
    marks that case so the caller can repeat its last question.
    """

    selected_topic: Optional[str] = None
    confirmed_topic: bool = False
    wants_different_group: bool = False
    wants_different_topics: bool = False
    interests: List[str] = field(default_factory=list)
    unparsed: bool = False


def canonical_topic(topic: str) -> str:
    """Return the shared cache key for a topic name: trimmed, single-spaced, case-folded."""
    return " ".join(topic.split()).casefold()
