"""Session-scoped lookups: drawing guides and the conversation log."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, Request

from dal.conversation_dal import ConversationDAL
from services.exploration.session_store import SessionStore
from services.metadata_cache import TopicMetadataCache


async def get_drawing_guide(request: Request, session_id: str, topic: str) -> Dict[str, Any]:
	"""Return the guide for (session, topic), binding it from ready metadata if needed."""
	cache: TopicMetadataCache = request.app.state.metadata_cache
	guide = await cache.get_guide(session_id, topic)
	if guide is None:
		guide = await cache.bind_guide(session_id, topic)
	if guide is None:
		status = await cache.status(topic)
		raise HTTPException(
			status_code=404,
			detail=f"No drawing guide for '{topic}' yet (metadata status: {status.value})",
		)
	return guide.to_payload()


async def list_conversation(request: Request, session_id: str, limit: int = 10) -> Dict[str, Any]:
	"""Return the session's most recent turns, newest first."""
	conversations: ConversationDAL = request.app.state.conversation_dal
	turns = await conversations.recent_turns(session_id, limit=limit)
	return {
		"session_id": session_id,
		"turns": [
			{
				"order": turn.order,
				"userUtterance": turn.user_utterance,
				"aiUtterance": turn.ai_utterance,
				"interests": turn.interests,
				"createdAt": turn.created_at,
			}
			for turn in turns
		],
	}


async def end_session(request: Request, session_id: str) -> Dict[str, Any]:
	"""Forget the session's exploration state; the conversation log is kept."""
	store: SessionStore = request.app.state.session_store
	deleted = await store.reset(session_id)
	return {"session_id": session_id, "deleted": deleted}
