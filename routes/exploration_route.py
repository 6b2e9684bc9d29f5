"""FastAPI routes for topic exploration."""

from typing import Literal

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.exploration_controller import explore_topics, get_topic_metadata

router = APIRouter(prefix="/topics", tags=["topics"])


class ExplorePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    user_name: str = Field(alias="userName", min_length=1)
    rejected_count: int = Field(default=0, alias="rejectedCount", ge=0)
    user_utterance: str = Field(alias="userUtterance", min_length=1)
    is_timed_out: Literal["true", "false"] = Field(default="false", alias="isTimedOut")


@router.post("/explore", summary="Run one step of the topic exploration dialogue")
async def explore_route(request: Request, payload: ExplorePayload):
    try:
        return await explore_topics(
            request,
            session_id=payload.session_id,
            user_name=payload.user_name,
            user_utterance=payload.user_utterance,
            rejected_count=payload.rejected_count,
            is_timed_out=payload.is_timed_out == "true",
        )
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{topic}/metadata", summary="Get a topic's metadata generation status")
async def topic_metadata_route(request: Request, topic: str):
    try:
        return await get_topic_metadata(request, topic)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
