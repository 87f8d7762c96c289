"""Linkup.so client — sourced answers for research and comparison queries."""
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

log = structlog.get_logger()

LINKUP_URL = "https://api.linkup.so/v1/search"


async def search(query: str, depth: str = "standard") -> dict[str, Any]:
    """Run a Linkup sourcedAnswer search. depth: 'standard' | 'deep'."""
    from config.settings import get_settings
    settings = get_settings()
    if not settings.linkup_api_key:
        raise RuntimeError("LINKUP_API_KEY is not configured")
    if depth not in ("standard", "deep"):
        raise ValueError(f"Unsupported Linkup depth: {depth}")

    async with httpx.AsyncClient(timeout=60) as client:
        resp = await client.post(
            LINKUP_URL,
            json={"q": query.strip(), "depth": depth, "outputType": "sourcedAnswer"},
            headers={
                "Authorization": f"Bearer {settings.linkup_api_key}",
                "Content-Type": "application/json",
            },
        )
        resp.raise_for_status()
        data = resp.json()

    sources = data.get("sources") or []
    n = len(sources)
    results = [
        {
            "title": src.get("name", ""),
            "url": src.get("url", ""),
            "snippet": src.get("snippet", ""),
            "domain": urlparse(src.get("url", "")).hostname or "",
            "score": (n - i) / n,
            "provider": "linkup",
        }
        for i, src in enumerate(sources)
    ]
    log.info("linkup.search.ok", query=query[:80], depth=depth, sources=n)
    return {"provider": "linkup", "results": results, "answer": data.get("answer"), "depth": depth}
