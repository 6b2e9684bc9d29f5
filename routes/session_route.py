"""FastAPI routes for session drawing guides, conversation history and reset."""

from fastapi import APIRouter, HTTPException, Query, Request

from controllers.session_controller import end_session, get_drawing_guide, list_conversation

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/{session_id}/guides/{topic}")
async def drawing_guide_route(request: Request, session_id: str, topic: str):
	try:
		return await get_drawing_guide(request, session_id, topic)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}/conversation")
async def conversation_route(request: Request, session_id: str, limit: int = Query(10, ge=1, le=100)):
	try:
		return await list_conversation(request, session_id, limit)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{session_id}")
async def end_session_route(request: Request, session_id: str):
	try:
		return await end_session(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
