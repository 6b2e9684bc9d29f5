"""Prompt helpers for topic exploration and drawing guide generation."""

from __future__ import annotations

import os
from typing import Iterable

TOPIC_LANGUAGE = os.getenv("TOPIC_LANGUAGE", "English")


def _join(items: Iterable[str]) -> str:
	return ", ".join(items) or "none"


def companion_system_prompt() -> str:
	"""Return the persona shared by every conversational prompt."""
	return (
		"You are a warm, patient drawing companion for elderly users. "
		"Speak simply, kindly and briefly, as if talking out loud."
	)


def topic_groups_prompt(interests: Iterable[str], language: str = TOPIC_LANGUAGE) -> str:
	"""Return the prompt that asks for named groups of drawable topics."""
	return (
		f"User interests: {_join(interests)}\n\n"
		"Create several named groups of drawing subjects suited to these interests. "
		"Each group must contain between 3 and 9 subjects. "
		f"Every subject must be a simple, concrete noun in {language} that a beginner can draw "
		"(for example an apple, a cup, a cat). Never use abstract categories or ideas. "
		"Respond with a JSON object only, mapping each group name to a list of subjects, e.g. "
		'{"fruit": ["apple", "banana", "pear"]}.'
	)


def select_group_prompt(interests: Iterable[str], group_names: Iterable[str], excluded: Iterable[str]) -> str:
	"""Return the prompt that asks the model to pick one group name."""
	return (
		f"User interests: {_join(interests)}\n"
		f"Subjects already offered: {_join(excluded)}\n"
		f"Available groups: {_join(group_names)}\n\n"
		"Choose the one available group that best fits the user's interests and feels new "
		"compared with the subjects already offered. Reply with the group name only."
	)


def classifier_system_prompt() -> str:
	"""Return the rules for interpreting a user's reply."""
	return (
		"You interpret what an elderly user means while choosing something to draw. "
		"Follow these rules strictly:\n"
		"1. If the user names any concrete subject, set selected_topic to it. Naming a subject is "
		"always a selection and never a confirmation, even if it is the subject that was just proposed.\n"
		"2. Set confirmed_topic to true only when a subject was proposed in the previous turn AND the "
		"user clearly agrees (yes, okay, let's do that) without naming any subject.\n"
		"3. If the user rejects the offer, set wants_different_group when they ask for a different kind "
		"or category of subject, otherwise set wants_different_topics. When unsure, prefer "
		"wants_different_topics.\n"
		"4. List any interests or hobbies the user mentions in interests.\n"
		"Always call the provided function."
	)


def classifier_user_prompt(
	user_utterance: str,
	previous_ai_utterance: str | None,
	pending_topic: str | None,
	offered_topics: Iterable[str],
) -> str:
	"""Return the per-turn classification context."""
	previous = previous_ai_utterance or "(no previous message)"
	proposal = (
		f"A subject was proposed and is awaiting a yes/no answer: {pending_topic}"
		if pending_topic
		else "No subject is awaiting confirmation."
	)
	return (
		f"Previous assistant message: {previous}\n"
		f"{proposal}\n"
		f"Subjects offered so far: {_join(offered_topics)}\n"
		f"User reply: {user_utterance}"
	)


def reference_image_prompt(topic: str) -> str:
	"""Return the image prompt for a beginner-friendly reference drawing."""
	return (
		f"Subject: {topic}\n"
		"Style: a simple, clear line drawing that a beginner can copy.\n"
		"- main shape and composition clearly visible\n"
		"- simplified forms\n"
		"- black and white or soft pale colors\n"
		"- minimal shading and texture"
	)


def guide_prompt(topic: str, language: str = TOPIC_LANGUAGE) -> str:
	"""Return the prompt that turns a reference image into a 3-step guide."""
	return (
		f"This is a reference drawing of: {topic}.\n"
		"Write a beginner-friendly guide for drawing it using simple shapes, in exactly 3 steps. "
		f"Write in {language}. Respond with JSON only, in this form:\n"
		'{"steps": [{"title": "...", "instruction": "..."}, '
		'{"title": "...", "instruction": "..."}, {"title": "...", "instruction": "..."}]}'
	)


def confirmation_prompt(topic: str, language: str = TOPIC_LANGUAGE) -> str:
	"""Return the prompt for the encouragement spoken once a topic is confirmed."""
	return (
		f"Subject: {topic}\n"
		"The elderly user has just decided to draw this subject. In one or two short sentences, "
		"warmly encourage them to begin and mention the single most important drawing point. "
		f"Write in {language}. "
		"Example: \"Great, with a banana the trick is the gentle curve. Shall we start?\""
	)


def _history(turns: Iterable[tuple[str, str]]) -> str:
	lines = []
	for user_line, ai_line in turns:
		lines.append(f"User: {user_line}")
		lines.append(f"Assistant: {ai_line}")
	return "\n".join(lines)


def welcome_greeting_prompt(
	user_name: str,
	history: Iterable[tuple[str, str]],
	attendance_total: int | None,
	attendance_streak: int | None,
	language: str = TOPIC_LANGUAGE,
) -> str:
	"""Return the prompt for the opening greeting of a visit."""
	past = _history(history)
	parts = [f"Earlier conversation:\n{past}\n" if past else ""]
	if attendance_total is None and attendance_streak is None:
		parts.append(f"Give {user_name}, visiting for the first time, a warm and friendly welcome greeting.")
	else:
		parts.append(f"Attendance of {user_name}:")
		if attendance_total is not None:
			parts.append(f"- days attended in total: {attendance_total}")
		if attendance_streak is not None:
			parts.append(f"- days attended in a row: {attendance_streak}")
		parts.append(
			"Give a warm and friendly welcome greeting. Praise the attendance record "
			"and encourage them to have a pleasant time together again today."
		)
	parts.append(f"Write one or two short sentences in {language}.")
	return "\n".join(part for part in parts if part)


def welcome_reply_prompt(
	user_name: str,
	history: Iterable[tuple[str, str]],
	user_utterance: str,
	language: str = TOPIC_LANGUAGE,
) -> str:
	"""Return the prompt for continuing the small talk before drawing starts."""
	past = _history(history)
	return (
		(f"Earlier conversation:\n{past}\n\n" if past else "")
		+ f"{user_name} just said: {user_utterance}\n\n"
		"Continue the conversation naturally and in context, in one or two short sentences "
		f"in {language}. Set wants_to_draw to true only if the user shows interest in drawing. "
		"List any interests or hobbies the user mentioned."
	)
