"""Tavily client — news and current-events search with a generated answer."""
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

log = structlog.get_logger()

TAVILY_URL = "https://api.tavily.com/search"


async def search(query: str, depth: str = "basic", max_results: int = 10) -> dict[str, Any]:
    """Run a Tavily search. depth: 'basic' | 'advanced'.

    Provider scores are kept; results without one are scored by rank.
    """
    from config.settings import get_settings
    settings = get_settings()
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")

    payload = {
        "api_key": settings.tavily_api_key,
        "query": query.strip(),
        "search_depth": "advanced" if depth == "advanced" else "basic",
        "include_answer": True,
        "include_raw_content": False,
        "max_results": max_results,
    }
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(TAVILY_URL, json=payload)
        resp.raise_for_status()
        data = resp.json()

    items = data.get("results") or []
    n = len(items)
    results = [
        {
            "title": item.get("title", ""),
            "url": item.get("url", ""),
            "snippet": item.get("content", ""),
            "domain": urlparse(item.get("url", "")).hostname or "",
            "score": item.get("score") if item.get("score") is not None else (n - i) / n,
            "provider": "tavily",
            "published_date": item.get("published_date"),
        }
        for i, item in enumerate(items)
    ]
    log.info("tavily.search.ok", query=query[:80], results=n)
    return {
        "provider": "tavily",
        "results": results,
        "answer": data.get("answer"),
        "follow_up_questions": data.get("follow_up_questions") or [],
    }
