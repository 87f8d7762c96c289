"""
Web search router — picks Serper, Linkup, Tavily or a Linkup+Tavily hybrid
for a query using keyword rules, then runs it.

Rule order (first match wins):
    urgency fast → serper, depth comprehensive → hybrid, news → tavily,
    research → linkup, comparison → linkup, quick facts → serper,
    long/complex → linkup, otherwise serper.
"""
import asyncio
import time
from typing import Any

import structlog

log = structlog.get_logger()

NEWS_KEYWORDS = frozenset({
    "news", "latest", "recent", "today", "breaking", "announcement", "update", "2024", "2025",
})
RESEARCH_KEYWORDS = frozenset({
    "analysis", "research", "study", "report", "strategy", "business model",
    "financial", "market", "trends",
})
COMPARISON_KEYWORDS = frozenset({
    "vs", "versus", "compare", "comparison", "difference", "better", "best",
})
QUICK_FACT_PHRASES = frozenset({
    "what is", "who is", "when", "where", "how much", "how many", "price", "cost",
})
COMPLEX_WORDS = frozenset({
    "explain", "analyze", "evaluate", "assess", "determine", "investigate", "comprehensive",
})

HYBRID_RESULT_CAP = 12


def _matches(text: str, keywords: frozenset[str]) -> bool:
    return any(k in text for k in keywords)


def select_strategy(query: str, urgency: str = "normal", depth: str = "standard") -> dict[str, Any]:
    """Return {provider, reasoning, confidence} for a query."""
    q = query.lower()

    if urgency == "fast":
        return {"provider": "serper", "reasoning": "Fast results requested", "confidence": 0.9}
    if depth == "comprehensive":
        return {"provider": "hybrid", "reasoning": "Comprehensive search across Linkup and Tavily", "confidence": 0.9}
    if _matches(q, NEWS_KEYWORDS):
        return {"provider": "tavily", "reasoning": "News or current events query", "confidence": 0.85}
    if _matches(q, RESEARCH_KEYWORDS):
        return {"provider": "linkup", "reasoning": "Research or analysis query", "confidence": 0.9}
    if _matches(q, COMPARISON_KEYWORDS):
        return {"provider": "linkup", "reasoning": "Comparison query", "confidence": 0.85}
    if _matches(q, QUICK_FACT_PHRASES):
        return {"provider": "serper", "reasoning": "Quick fact lookup", "confidence": 0.8}
    if len(query) > 50 or _matches(q, COMPLEX_WORDS):
        return {"provider": "linkup", "reasoning": "Complex query needing synthesis", "confidence": 0.8}
    return {"provider": "serper", "reasoning": "General web search", "confidence": 0.7}


async def _run_hybrid(query: str) -> dict[str, Any]:
    """Linkup deep + Tavily advanced concurrently; either side may fail."""
    from quest.providers import linkup, tavily

    linkup_res, tavily_res = await asyncio.gather(
        linkup.search(query, depth="deep"),
        tavily.search(query, depth="advanced"),
        return_exceptions=True,
    )
    if isinstance(linkup_res, Exception) and isinstance(tavily_res, Exception):
        raise RuntimeError(f"Hybrid search failed: {linkup_res}; {tavily_res}")
    if isinstance(linkup_res, Exception):
        log.warning("web_search.hybrid.partial", failed="linkup", error=str(linkup_res))
        linkup_res = None
    if isinstance(tavily_res, Exception):
        log.warning("web_search.hybrid.partial", failed="tavily", error=str(tavily_res))
        tavily_res = None

    seen: set[str] = set()
    results = []
    for res in (linkup_res, tavily_res):
        for item in (res or {}).get("results", []):
            if item["url"] in seen:
                continue
            seen.add(item["url"])
            results.append(item)

    answer = (linkup_res or {}).get("answer") or (tavily_res or {}).get("answer")
    return {
        "results": results[:HYBRID_RESULT_CAP],
        "answer": answer,
        "follow_up_questions": (tavily_res or {}).get("follow_up_questions", []),
    }


async def _execute(provider: str, query: str, depth: str) -> dict[str, Any]:
    from quest.providers import linkup, serper, tavily

    if provider == "serper":
        return await serper.search(query)
    if provider == "linkup":
        return await linkup.search(query, depth="deep" if depth == "comprehensive" else "standard")
    if provider == "tavily":
        return await tavily.search(query, depth="advanced" if depth == "comprehensive" else "basic")
    if provider == "hybrid":
        return await _run_hybrid(query)
    raise ValueError(f"Unknown search provider: {provider}")


async def search(query: str, urgency: str = "normal", depth: str = "standard") -> dict[str, Any]:
    """Select a strategy and run it, falling back to Serper on failure."""
    from quest.providers import serper

    if not query or not query.strip():
        raise ValueError("query is required")

    started = time.monotonic()
    strategy = select_strategy(query, urgency, depth)
    provider = strategy["provider"]
    confidence = 0.95 if provider == "hybrid" else strategy["confidence"]
    log.info("web_search.route", provider=provider, reasoning=strategy["reasoning"])

    try:
        outcome = await _execute(provider, query, depth)
    except Exception as exc:
        log.warning("web_search.fallback", provider=provider, error=str(exc))
        outcome = await serper.search(query)
        provider = "serper"
        confidence = 0.5
        strategy = {
            "provider": "serper",
            "reasoning": f"Fallback to Serper after {strategy['provider']} failed: {exc}",
            "confidence": 0.5,
        }

    return {
        "query": query,
        "provider": provider,
        "strategy": strategy,
        "results": outcome.get("results", []),
        "answer": outcome.get("answer"),
        "confidence": confidence,
        "processing_time_ms": int((time.monotonic() - started) * 1000),
        "follow_up_questions": outcome.get("follow_up_questions", []),
    }
