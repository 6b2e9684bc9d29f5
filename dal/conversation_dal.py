"""Async Data Access Layer for the conversation_turn table.

Turns are append-only. The next `turn_order` for a session is allocated in
the same INSERT statement that writes the row, and the
`UNIQUE (session_id, turn_order)` constraint rejects any duplicate, so two
writers can never share an order value.
"""

from __future__ import annotations

import json
import time
from typing import List, Optional, Sequence

import aiosqlite

from models.session_models import ConversationTurn
from utils.database_init import AsyncDatabaseInitializer


class ConversationDAL:
    """Data access layer for ConversationTurn records."""

    _COLUMNS = (
        "session_id",
        "user_name",
        "turn_order",
        "user_utterance",
        "ai_utterance",
        "interests",
        "created_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer, max_attempts: int = 3) -> None:
        self._db = db_initializer
        self._max_attempts = max_attempts

    async def append_turn(
        self, turn: ConversationTurn, conn: Optional[aiosqlite.Connection] = None
    ) -> ConversationTurn:
        """Insert a turn with the next order for its session and return it.

        Args:
            turn: ConversationTurn with `order=None`.
            conn: Optional connection of an open transaction; the insert then
                commits or rolls back with the caller's other writes.

        Returns:
            The same turn with `order` and `created_at` filled in.

        Raises:
            aiosqlite.IntegrityError: If an order could not be allocated after
                repeated collisions.
        """
        if conn is not None:
            return await self._insert(conn, turn)

        for attempt in range(1, self._max_attempts + 1):
            try:
                async with self._db.connection() as own:
                    await self._insert(own, turn)
                    await own.commit()
                return turn
            except aiosqlite.IntegrityError:
                if attempt >= self._max_attempts:
                    raise
        return turn

    async def _insert(self, conn: aiosqlite.Connection, turn: ConversationTurn) -> ConversationTurn:
        created_at = turn.created_at or int(time.time())
        cur = await conn.execute(
            f"""
            INSERT INTO conversation_turn ({self._COLUMN_LIST})
            SELECT ?, ?, COALESCE(MAX(turn_order), 0) + 1, ?, ?, ?, ?
            FROM conversation_turn WHERE session_id = ?
            """,
            (
                turn.session_id,
                turn.user_name,
                turn.user_utterance,
                turn.ai_utterance,
                json.dumps(turn.interests or []),
                created_at,
                turn.session_id,
            ),
        )
        cur = await conn.execute("SELECT turn_order FROM conversation_turn WHERE id = ?", (cur.lastrowid,))
        row = await cur.fetchone()
        turn.order = int(row[0])
        turn.created_at = created_at
        return turn

    async def recent_turns(self, session_id: str, limit: int = 10) -> List[ConversationTurn]:
        """Return up to `limit` turns for a session, most recent first."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM conversation_turn "
                "WHERE session_id = ? ORDER BY turn_order DESC LIMIT ?",
                (session_id, limit),
            )
            rows = await cur.fetchall()
            return [self._row_to_turn(r) for r in rows]

    async def last_turn(self, session_id: str) -> Optional[ConversationTurn]:
        turns = await self.recent_turns(session_id, limit=1)
        return turns[0] if turns else None

    @staticmethod
    def _row_to_turn(row: Sequence[object]) -> ConversationTurn:
        """Convert a DB row tuple into a ConversationTurn."""
        try:
            interests = json.loads(row[5] or "[]")
        except (TypeError, json.JSONDecodeError):
            interests = []
        return ConversationTurn(
            session_id=row[0],
            user_name=row[1],
            order=row[2],
            user_utterance=row[3],
            ai_utterance=row[4],
            interests=[str(i) for i in interests] if isinstance(interests, list) else [],
            created_at=row[6],
        )
