"""Web search (routed and direct) and the LangGraph agent search."""
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from quest.api.auth import get_current_user
from quest.graphs import agent_search
from quest.providers import linkup, serper, tavily
from quest.search import web_router

router = APIRouter(tags=["search"])


class WebSearchRequest(BaseModel):
    query: str
    urgency: Literal["fast", "normal"] = "normal"
    depth: Literal["standard", "comprehensive"] = "standard"


class SerperRequest(BaseModel):
    query: str
    search_type: str = "search"
    num: int = Field(default=10, ge=1, le=100)


class LinkupRequest(BaseModel):
    query: str
    depth: str = "standard"


class TavilyRequest(BaseModel):
    query: str
    depth: Literal["basic", "advanced"] = "basic"
    max_results: int = Field(default=10, ge=1, le=20)


class AgentSearchRequest(BaseModel):
    query: str
    thread_id: Optional[str] = None


def _require_query(query: str) -> str:
    if not query or not query.strip():
        raise ValueError("query is required")
    return query.strip()


@router.post("/search/web")
async def web_search(request: WebSearchRequest, user_id: str = Depends(get_current_user)) -> dict:
    return await web_router.search(request.query, request.urgency, request.depth)


@router.post("/search/serper")
async def serper_search(request: SerperRequest, user_id: str = Depends(get_current_user)) -> dict:
    return await serper.search(_require_query(request.query), request.search_type, request.num)


@router.post("/search/linkup")
async def linkup_search(request: LinkupRequest, user_id: str = Depends(get_current_user)) -> dict:
    return await linkup.search(_require_query(request.query), request.depth)


@router.post("/search/tavily")
async def tavily_search(request: TavilyRequest, user_id: str = Depends(get_current_user)) -> dict:
    return await tavily.search(_require_query(request.query), request.depth, request.max_results)


@router.post("/agent/search")
async def run_agent_search(request: AgentSearchRequest, user_id: str = Depends(get_current_user)) -> dict:
    return await agent_search.run_agent_search(
        _require_query(request.query), user_id=user_id, thread_id=request.thread_id,
    )
