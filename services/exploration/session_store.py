"""Session store with per-session serialized read-modify-write."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Union

import aiosqlite

from dal.session_dal import SessionDAL
from models.session_models import ExplorationSession

LOGGER = logging.getLogger(__name__)

SESSION_TTL_SECONDS = float(os.getenv("SESSION_TTL_SECONDS", "3600"))

Mutator = Callable[
	[Optional[ExplorationSession]],
	Union[ExplorationSession, Awaitable[ExplorationSession]],
]


class _KeyLock:
	__slots__ = ("lock", "users")

	def __init__(self) -> None:
		self.lock = asyncio.Lock()
		self.users = 0


class SessionStore:
	"""Own ExplorationSession records and serialize updates per session id.

	Each session id gets its own asyncio.Lock, so concurrent requests for one
	session run one after another while different sessions never wait on
	each other. A lock lives only while some request holds or awaits it.
	"""

	def __init__(
		self,
		session_dal: SessionDAL,
		ttl_seconds: float = SESSION_TTL_SECONDS,
		clock: Callable[[], float] = time.time,
	) -> None:
		self._dal = session_dal
		self._ttl_seconds = ttl_seconds
		self._clock = clock
		self._locks: Dict[str, _KeyLock] = {}

	@asynccontextmanager
	async def _serialized(self, session_id: str) -> AsyncIterator[None]:
		entry = self._locks.get(session_id)
		if entry is None:
			entry = self._locks[session_id] = _KeyLock()
		entry.users += 1
		try:
			async with entry.lock:
				yield
		finally:
			entry.users -= 1
			if entry.users == 0 and self._locks.get(session_id) is entry:
				del self._locks[session_id]

	def _is_expired(self, session: ExplorationSession) -> bool:
		return self._ttl_seconds > 0 and self._clock() - session.updated_at > self._ttl_seconds

	async def _load(self, session_id: str) -> Optional[ExplorationSession]:
		session = await self._dal.get(session_id)
		if session is not None and self._is_expired(session):
			LOGGER.info("Session %s expired; treating it as new", session_id)
			return None
		return session

	async def get(self, session_id: str) -> Optional[ExplorationSession]:
		"""Return the session, or None if it does not exist or has expired."""
		return await self._load(session_id)

	async def upsert(
		self,
		session_id: str,
		mutator: Mutator,
		also_write: Optional[Callable[[ExplorationSession, aiosqlite.Connection], Awaitable[None]]] = None,
	) -> ExplorationSession:
		"""Apply `mutator` to the current session under the session's lock.

		The mutator receives the stored session (or None) and returns the
		session to persist; it may be a coroutine function. If it raises,
		nothing is written and the exception propagates.

		`also_write` receives the new session and the open connection. Its
		writes commit in the same transaction as the session row, so if it
		raises the stored session is left as it was.
		"""
		async with self._serialized(session_id):
			current = await self._load(session_id)
			result = mutator(current)
			if inspect.isawaitable(result):
				result = await result
			if result is None:
				raise ValueError("Session mutator must return a session.")
			if result.session_id != session_id:
				raise ValueError(f"Mutator returned session {result.session_id} for key {session_id}")
			async with self._dal.transaction() as conn:
				await self._dal.save(result, conn)
				if also_write is not None:
					await also_write(result, conn)
			return result

	async def reset(self, session_id: str) -> bool:
		"""Forget a session entirely. Returns True if a stored row was deleted."""
		async with self._serialized(session_id):
			deleted = await self._dal.delete(session_id)
		if deleted:
			LOGGER.info("Session %s reset", session_id)
		return deleted
