"""Async Data Access Layer for topic metadata and per-session drawing guides.

`topic_metadata` rows are shared by every session and keyed by topic alone.
`drawing_guide` rows bind the same steps to a (session, topic) pair so that
evaluation results stay session-scoped.
"""

from __future__ import annotations

import json
import time
from typing import List, Optional, Sequence

from models.topic_models import DrawingGuide, Evaluation, GuideStep, TopicMetadata
from utils.database_init import AsyncDatabaseInitializer


def _dump_steps(steps: List[GuideStep]) -> str:
    return json.dumps(
        [{"index": s.index, "title": s.title, "instruction": s.instruction} for s in steps],
        ensure_ascii=False,
    )


def _load_steps(raw: object) -> List[GuideStep]:
    items = json.loads(raw or "[]")
    return [GuideStep(index=int(i["index"]), title=i["title"], instruction=i["instruction"]) for i in items]


class TopicMetadataDAL:
    """Data access layer for TopicMetadata and DrawingGuide records."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def get_metadata(self, topic: str) -> Optional[TopicMetadata]:
        """Return metadata for `topic`, or None if not generated yet."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT topic, image_ref, thumbnail_ref, steps, created_at FROM topic_metadata WHERE topic = ?",
                (topic,),
            )
            row = await cur.fetchone()
            return self._row_to_metadata(row) if row else None

    async def put_metadata(self, metadata: TopicMetadata) -> TopicMetadata:
        """Insert or replace metadata for its topic."""
        metadata.created_at = metadata.created_at or int(time.time())
        async with self._db.connection() as conn:
            await conn.execute(
                """
                INSERT INTO topic_metadata (topic, image_ref, thumbnail_ref, steps, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(topic) DO UPDATE SET
                    image_ref = excluded.image_ref,
                    thumbnail_ref = excluded.thumbnail_ref,
                    steps = excluded.steps
                """,
                (
                    metadata.topic,
                    metadata.image_ref,
                    metadata.thumbnail_ref,
                    _dump_steps(metadata.steps),
                    metadata.created_at,
                ),
            )
            await conn.commit()
        return metadata

    async def get_guide(self, session_id: str, topic: str) -> Optional[DrawingGuide]:
        """Return the guide bound to (session_id, topic), or None."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT session_id, topic, image_ref, steps, evaluation, created_at "
                "FROM drawing_guide WHERE session_id = ? AND topic = ?",
                (session_id, topic),
            )
            row = await cur.fetchone()
            return self._row_to_guide(row) if row else None

    async def put_guide(self, guide: DrawingGuide) -> DrawingGuide:
        """Insert a guide, keeping any evaluation already stored for the pair."""
        guide.created_at = guide.created_at or int(time.time())
        async with self._db.connection() as conn:
            await conn.execute(
                """
                INSERT INTO drawing_guide (session_id, topic, image_ref, steps, evaluation, created_at)
                VALUES (?, ?, ?, ?, NULL, ?)
                ON CONFLICT(session_id, topic) DO UPDATE SET
                    image_ref = excluded.image_ref,
                    steps = excluded.steps
                """,
                (guide.session_id, guide.topic, guide.image_ref, _dump_steps(guide.steps), guide.created_at),
            )
            await conn.commit()
        return guide

    async def save_evaluation(self, session_id: str, topic: str, evaluation: Evaluation) -> bool:
        """Attach an evaluation to an existing guide. Returns True if a row was changed."""
        payload = json.dumps(
            {"score": evaluation.score, "feedback": evaluation.feedback, "timestamp": evaluation.timestamp},
            ensure_ascii=False,
        )
        async with self._db.connection() as conn:
            await conn.execute(
                "UPDATE drawing_guide SET evaluation = ? WHERE session_id = ? AND topic = ?",
                (payload, session_id, topic),
            )
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_metadata(row: Sequence[object]) -> TopicMetadata:
        return TopicMetadata(
            topic=row[0],
            image_ref=row[1],
            thumbnail_ref=row[2],
            steps=_load_steps(row[3]),
            created_at=row[4],
        )

    @staticmethod
    def _row_to_guide(row: Sequence[object]) -> DrawingGuide:
        evaluation = None
        if row[4]:
            data = json.loads(row[4])
            evaluation = Evaluation(
                score=float(data["score"]), feedback=data.get("feedback", ""), timestamp=int(data["timestamp"])
            )
        return DrawingGuide(
            session_id=row[0],
            topic=row[1],
            image_ref=row[2],
            steps=_load_steps(row[3]),
            evaluation=evaluation,
            created_at=row[5],
        )
