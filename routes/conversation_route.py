"""FastAPI routes for the welcome conversation."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.conversation_controller import welcome_conversation

router = APIRouter(prefix="/conversation", tags=["conversation"])


class WelcomePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    user_name: str = Field(alias="userName", min_length=1)
    user_utterance: str = Field(alias="userUtterance", min_length=1)
    attendance_total: Optional[int] = Field(default=None, alias="attendanceTotal", ge=0)
    attendance_streak: Optional[int] = Field(default=None, alias="attendanceStreak", ge=0)


@router.post("/welcome", summary="Greet the user or continue the welcome small talk")
async def welcome_route(request: Request, payload: WelcomePayload):
    try:
        return await welcome_conversation(
            request,
            session_id=payload.session_id,
            user_name=payload.user_name,
            user_utterance=payload.user_utterance,
            attendance_total=payload.attendance_total,
            attendance_streak=payload.attendance_streak,
        )
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
