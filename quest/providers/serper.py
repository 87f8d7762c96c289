"""Serper.dev Google search client — fast, cheap, fact lookups."""
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

log = structlog.get_logger()

SERPER_URL = "https://google.serper.dev"
SEARCH_TYPES: frozenset[str] = frozenset({"search", "news", "images"})


def _domain(url: str) -> str:
    return urlparse(url).hostname or ""


async def search(query: str, search_type: str = "search", num: int = 10) -> dict[str, Any]:
    """Run a Serper query and return Quest-shaped results.

    Organic results are scored by rank: (n - i) / n.
    """
    from config.settings import get_settings
    settings = get_settings()
    if not settings.serper_api_key:
        raise RuntimeError("SERPER_API_KEY is not configured")
    if search_type not in SEARCH_TYPES:
        raise ValueError(f"Unsupported Serper search type: {search_type}")

    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.post(
            f"{SERPER_URL}/{search_type}",
            json={"q": query.strip(), "num": num},
            headers={"X-API-KEY": settings.serper_api_key, "Content-Type": "application/json"},
        )
        resp.raise_for_status()
        data = resp.json()

    organic = data.get("organic") or data.get("news") or []
    n = len(organic)
    results = [
        {
            "title": item.get("title", ""),
            "url": item.get("link", ""),
            "snippet": item.get("snippet", ""),
            "domain": _domain(item.get("link", "")),
            "score": (n - i) / n,
            "provider": "serper",
            "position": item.get("position", i + 1),
        }
        for i, item in enumerate(organic)
    ]
    answer_box = data.get("answerBox") or {}
    knowledge_graph = data.get("knowledgeGraph") or {}

    log.info("serper.search.ok", query=query[:80], results=n)
    return {
        "provider": "serper",
        "results": results,
        "answer": answer_box.get("answer") or knowledge_graph.get("description"),
        "answer_box": answer_box or None,
        "knowledge_graph": knowledge_graph or None,
        "total_results": int((data.get("searchInformation") or {}).get("totalResults") or 0),
    }
