"""Derive a user's interests from their recent conversation turns."""

from __future__ import annotations

from typing import Set

from dal.conversation_dal import ConversationDAL

RECENT_TURN_LIMIT = 10


class InterestAggregator:
    """Union the interest tags of a session's most recent turns."""

    def __init__(self, conversation_dal: ConversationDAL, limit: int = RECENT_TURN_LIMIT) -> None:
        self._conversations = conversation_dal
        self.limit = limit

    async def collect(self, session_id: str) -> Set[str]:
        """Return the deduplicated interests tagged on the last `limit` turns."""
        turns = await self._conversations.recent_turns(session_id, limit=self.limit)
        interests: Set[str] = set()
        for turn in turns:
            for interest in turn.interests or []:
                cleaned = str(interest).strip()
                if cleaned:
                    interests.add(cleaned)
        return interests
