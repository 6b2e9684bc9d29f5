"""Controller for the welcome conversation that precedes topic exploration."""

from typing import Any, Dict, Optional

from fastapi import Request

from services.welcome_flow import WelcomeRequest, WelcomeService


async def welcome_conversation(
    request: Request,
    session_id: str,
    user_name: str,
    user_utterance: str,
    attendance_total: Optional[int] = None,
    attendance_streak: Optional[int] = None,
) -> Dict[str, Any]:
    """Run one welcome exchange; `user_utterance` "first" opens the visit."""
    service: WelcomeService = request.app.state.welcome_service
    return await service.welcome(
        WelcomeRequest(
            session_id=session_id,
            user_name=user_name,
            user_utterance=user_utterance,
            attendance_total=attendance_total,
            attendance_streak=attendance_streak,
        )
    )
