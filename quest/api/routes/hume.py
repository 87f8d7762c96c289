from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from quest.api.deps import get_db, get_llm
from quest.voice import clm

router = APIRouter(prefix="/hume", tags=["voice"])


class CLMMessage(BaseModel):
    role: str
    content: str = ""


class CLMRequest(BaseModel):
    messages: list[CLMMessage]
    custom_session_id: Optional[str] = None
    user_id: Optional[str] = None
    emotional_context: Optional[dict[str, Any]] = None


@router.post("/clm")
async def hume_clm(
    request: CLMRequest,
    custom_session_id: Optional[str] = None,
    db=Depends(get_db),
    llm=Depends(get_llm),
) -> StreamingResponse:
    events = clm.stream_reply(
        [m.model_dump() for m in request.messages],
        request.custom_session_id or custom_session_id,
        db,
        llm,
        user_id=request.user_id,
        emotional_context=request.emotional_context,
    )
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
