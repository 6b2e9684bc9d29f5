"""Spoken lines used by the exploration dialogue."""

from __future__ import annotations

import re
from typing import Optional, Sequence

_PROPOSAL_TEMPLATE = "Is {topic} the one you'd like to draw?"
_PROPOSAL_RE = re.compile(r"Is (?P<topic>.+?) the one you'd like to draw\?")


def _listing(topics: Sequence[str]) -> str:
	if len(topics) <= 1:
		return "".join(topics)
	return ", ".join(topics[:-1]) + f" or {topics[-1]}"


def offer_utterance(user_name: str, topics: Sequence[str], *, is_timed_out: bool, first: bool) -> str:
	"""Present a fresh set of topics."""
	if first and is_timed_out:
		return (
			f"{user_name}, how about we try a drawing now? Let me suggest a few things. "
			f"Which do you like best: {_listing(topics)}?"
		)
	if first:
		return f"{user_name}, which would you like to draw: {_listing(topics)}?"
	return f"Then how about these: {_listing(topics)}? Which would you like to draw?"


def proposal_utterance(topic: str) -> str:
	"""Ask the user to confirm a topic."""
	return _PROPOSAL_TEMPLATE.format(topic=topic)


def proposed_topic_in(utterance: Optional[str]) -> Optional[str]:
	"""Return the topic a previous proposal asked about, if it was one."""
	if not utterance:
		return None
	match = _PROPOSAL_RE.search(utterance)
	return match.group("topic") if match else None


def encouragement_fallback(topic: str) -> str:
	return f"Wonderful, let's draw {topic}. Start with the big, simple shape first. Shall we begin?"


def guide_pending_utterance(topic: str) -> str:
	return f"Wonderful, let's draw {topic}! I'm still preparing the picture guide, so please wait just a moment."


def pardon(question: str) -> str:
	"""Prefix a repeated question with a gentle apology."""
	return f"Sorry, I didn't quite catch that. {question}"
