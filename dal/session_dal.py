"""Async Data Access Layer for the exploration_session table."""

from __future__ import annotations

import json
import time
from contextlib import AbstractAsyncContextManager
from typing import Optional

import aiosqlite

from models.session_models import ExplorationSession
from utils.database_init import AsyncDatabaseInitializer


class SessionDAL:
	"""Persist ExplorationSession records as JSON payloads keyed by session id."""

	def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
		self._db = db_initializer

	def transaction(self) -> AbstractAsyncContextManager[aiosqlite.Connection]:
		return self._db.transaction()

	async def get(self, session_id: str) -> Optional[ExplorationSession]:
		"""Return the stored session, or None if not found."""
		async with self._db.connection() as conn:
			cur = await conn.execute(
				"SELECT payload FROM exploration_session WHERE session_id = ?",
				(session_id,),
			)
			row = await cur.fetchone()
		if row is None:
			return None
		return ExplorationSession.from_dict(json.loads(row[0]))

	async def save(self, session: ExplorationSession, conn: Optional[aiosqlite.Connection] = None) -> None:
		"""Insert or replace the session row.

		With `conn` the write joins the caller's transaction and is not
		committed here.
		"""
		session.updated_at = time.time()
		if conn is not None:
			await self._write(conn, session)
			return
		async with self._db.connection() as own:
			await self._write(own, session)
			await own.commit()

	@staticmethod
	async def _write(conn: aiosqlite.Connection, session: ExplorationSession) -> None:
		await conn.execute(
			"""
			INSERT INTO exploration_session (session_id, payload, updated_at)
			VALUES (?, ?, ?)
			ON CONFLICT(session_id) DO UPDATE SET
				payload = excluded.payload,
				updated_at = excluded.updated_at
			""",
			(session.session_id, json.dumps(session.to_dict()), session.updated_at),
		)

	async def delete(self, session_id: str) -> bool:
		"""Delete a session row. Returns True if a row was deleted."""
		async with self._db.connection() as conn:
			cur = await conn.execute("DELETE FROM exploration_session WHERE session_id = ?", (session_id,))
			await conn.commit()
			return cur.rowcount > 0
