"""Session domain models for topic exploration."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Phase(str, Enum):
	"""Where a session is in the select -> confirm protocol."""

	INIT = "INIT"
	AWAITING_SELECTION = "AWAITING_SELECTION"
	AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
	CONFIRMED = "CONFIRMED"


@dataclass
class ExplorationSession:
	"""Per-session exploration state owned by the session store."""

	session_id: str
	user_name: str = ""
	phase: Phase = Phase.INIT
	offered_topics: List[str] = field(default_factory=list)
	pending_topic: Optional[str] = None
	active_group_name: Optional[str] = None
	topic_groups: Dict[str, List[str]] = field(default_factory=dict)
	current_offer: List[str] = field(default_factory=list)
	turn_count: int = 0
	updated_at: float = field(default_factory=lambda: time.time())

	def record_offer(self, topics: List[str]) -> None:
		"""Remember an offer, keeping `offered_topics` ordered and duplicate-free."""
		for topic in topics:
			if topic not in self.offered_topics:
				self.offered_topics.append(topic)
		self.current_offer = list(topics)

	def start_episode(self, user_name: str) -> None:
		"""Clear everything from a previous episode."""
		self.user_name = user_name
		self.phase = Phase.INIT
		self.offered_topics = []
		self.pending_topic = None
		self.active_group_name = None
		self.topic_groups = {}
		self.current_offer = []

	def to_dict(self) -> Dict[str, Any]:
		data = asdict(self)
		data["phase"] = self.phase.value
		return data

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "ExplorationSession":
		return cls(
			session_id=data["session_id"],
			user_name=data.get("user_name", ""),
			phase=Phase(data.get("phase", Phase.INIT.value)),
			offered_topics=list(data.get("offered_topics") or []),
			pending_topic=data.get("pending_topic"),
			active_group_name=data.get("active_group_name"),
			topic_groups={k: list(v) for k, v in (data.get("topic_groups") or {}).items()},
			current_offer=list(data.get("current_offer") or []),
			turn_count=int(data.get("turn_count") or 0),
			updated_at=float(data.get("updated_at") or time.time()),
		)


@dataclass
class ConversationTurn:
	"""One appended exchange in a session's conversation log."""

	session_id: str
	user_name: str
	user_utterance: str
	ai_utterance: str
	interests: List[str] = field(default_factory=list)
	order: Optional[int] = None
	created_at: Optional[int] = None
