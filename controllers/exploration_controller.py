"""Controllers for topic exploration and topic metadata."""

from typing import Any, Dict

from fastapi import HTTPException, Request

from services.errors import InvalidStateError
from services.exploration.orchestrator import ExplorationOrchestrator, ExploreRequest
from services.metadata_cache import TopicMetadataCache


async def explore_topics(
    request: Request,
    session_id: str,
    user_name: str,
    user_utterance: str,
    rejected_count: int,
    is_timed_out: bool,
) -> Dict[str, Any]:
    """Run one exploration step for a session.

    Args:
        request: FastAPI Request (used to access app.state for shared services).
        session_id: Client session identifier.
        user_name: Display name used in spoken offers.
        user_utterance: The user's reply, or "first" to start a new episode.
        rejected_count: How many offers the client has seen rejected.
        is_timed_out: Whether the client prompted the user after a silence.

    Returns:
        The exploration payload: topics, select flag, AI utterance and
        optional metadata.

    Raises:
        HTTPException(409) if the reply is not legal for the session's phase.
    """
    orchestrator: ExplorationOrchestrator = request.app.state.orchestrator
    try:
        return await orchestrator.explore(
            ExploreRequest(
                session_id=session_id,
                user_name=user_name,
                user_utterance=user_utterance,
                rejected_count=rejected_count,
                is_timed_out=is_timed_out,
            )
        )
    except InvalidStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


async def get_topic_metadata(request: Request, topic: str) -> Dict[str, Any]:
    """Return the generation status of a topic and its metadata once ready."""
    cache: TopicMetadataCache = request.app.state.metadata_cache
    status = await cache.status(topic)
    result: Dict[str, Any] = {"topic": topic, "status": status.value}
    metadata = await cache.get(topic)
    if metadata is not None:
        result["metadata"] = metadata.to_payload()
    return result
