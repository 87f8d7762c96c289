"""Quest agent search graph.

Decision flow:
    detect_intent    (keyword rules)
      -> select_strategy (LLM picks vector / graph / hybrid, fallback map)
      -> run_search      (pgvector hybrid search, Neo4j entity search, or both)
      -> prepare_context (top results formatted for the prompt)
      -> generate_answer (intent-specific prompt template)
"""
from __future__ import annotations

import asyncio
from typing import Any

import structlog
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph

from quest.agents.prompts import QUEST_SYSTEM_PROMPT, fill_prompt, select_prompt
from quest.core.database import get_db
from quest.core.embeddings import get_embedding
from quest.core.knowledge_graph import get_graph
from quest.core.llm import get_llm
from quest.core.state import AgentSearchState

log = structlog.get_logger()

STRATEGIES: frozenset[str] = frozenset({"vector", "graph", "hybrid"})

FALLBACK_STRATEGY: dict[str, str] = {
    "decision_maker": "hybrid",
    "introduction": "graph",
    "sales": "hybrid",
    "company": "hybrid",
    "temporal": "graph",
    "relationship": "graph",
    "general": "vector",
}

# Checked in order; first match wins
INTENT_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("decision_maker", ("decision maker", "cto", "buyer")),
    ("introduction", ("introduce", "connection", "warm intro")),
    ("sales", ("sales", "opportunity", "buying signal")),
    ("company", ("company", "organization", "about")),
    ("temporal", ("changed", "history", "timeline")),
    ("relationship", ("relationship", "worked with")),
)

VECTOR_LIMIT = 20
GRAPH_LIMIT = 20
CONTEXT_RESULTS = 10

NO_ANSWER = (
    "I couldn't generate an answer for that question right now. "
    "Try rephrasing it or narrowing it to a specific company or person."
)

STRATEGY_PROMPT = """Choose the best search strategy for this query.

Query: "{query}"
Detected intent: {intent}

- vector: semantic similarity over documents and profiles
- graph: relationships between people and companies
- hybrid: both

Respond with JSON: {{"strategy": "vector" | "graph" | "hybrid", "reasoning": str}}"""

ENTITY_PROMPT = """Extract the entities in this query.

Query: "{query}"

Respond with JSON: {{"companies": [str], "people": [str], "skills": [str],
"timeframe": str | null, "relationship_type": str | null}}"""


def detect_query_intent(query: str) -> str:
    lower = query.lower()
    for intent, keywords in INTENT_RULES:
        if any(k in lower for k in keywords):
            return intent
    return "general"


# ─────────────────────────── Node implementations ────────────────────────────


async def detect_intent(state: AgentSearchState) -> dict[str, Any]:
    query = (state.get("query") or "").strip()
    if not query:
        log.warning("agent_search.intent.empty")
        return {"intent": "general", "error": "Query is required"}

    intent = detect_query_intent(query)
    log.info("agent_search.intent", intent=intent, query=query[:80])
    return {"intent": intent, "error": None}


async def select_strategy(state: AgentSearchState) -> dict[str, Any]:
    intent = state.get("intent", "general")
    fallback = FALLBACK_STRATEGY.get(intent, "vector")
    if state.get("error"):
        return {"strategy": fallback}

    try:
        raw = await get_llm().complete_json(
            STRATEGY_PROMPT.format(query=state["query"], intent=intent),
            task_type="search_strategy",
            max_tokens=200,
        )
        strategy = str(raw.get("strategy", "")).lower()
    except Exception as exc:
        log.warning("agent_search.strategy.fallback", error=str(exc), strategy=fallback)
        return {"strategy": fallback}

    if strategy not in STRATEGIES:
        log.warning("agent_search.strategy.invalid", returned=strategy, strategy=fallback)
        return {"strategy": fallback}

    log.info("agent_search.strategy", strategy=strategy)
    return {"strategy": strategy}


async def _vector_search(query: str) -> list[dict[str, Any]]:
    from config.settings import get_settings

    embedding = await get_embedding(query)
    return await get_db().hybrid_search(
        query, embedding, limit=VECTOR_LIMIT, vector_weight=get_settings().hybrid_vector_weight,
    )


async def _extract_entities(query: str) -> dict[str, Any]:
    raw = await get_llm().complete_json(ENTITY_PROMPT.format(query=query), task_type="entities")
    return {
        "companies": [str(x) for x in raw.get("companies") or []],
        "people": [str(x) for x in raw.get("people") or []],
        "skills": [str(x) for x in raw.get("skills") or []],
        "timeframe": raw.get("timeframe"),
        "relationship_type": raw.get("relationship_type"),
    }


async def _graph_search(query: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    entities = await _extract_entities(query)
    results = await get_graph().entity_search(
        companies=entities["companies"],
        people=entities["people"],
        skills=entities["skills"],
        limit=GRAPH_LIMIT,
    )
    return entities, results


async def run_search(state: AgentSearchState) -> dict[str, Any]:
    if state.get("error"):
        return {"vector_results": [], "graph_results": [], "entities": {}}

    query = state["query"]
    strategy = state.get("strategy", "vector")
    out: dict[str, Any] = {"vector_results": [], "graph_results": [], "entities": {}}
    errors: list[str] = []

    want_vector = strategy in ("vector", "hybrid")
    want_graph = strategy in ("graph", "hybrid")
    tasks = []
    if want_vector:
        tasks.append(_vector_search(query))
    if want_graph:
        tasks.append(_graph_search(query))

    results = await asyncio.gather(*tasks, return_exceptions=True)
    if want_vector:
        vector = results.pop(0)
        if isinstance(vector, Exception):
            log.warning("agent_search.vector.failed", error=str(vector))
            errors.append(f"vector search failed: {vector}")
        else:
            out["vector_results"] = vector
    if want_graph:
        graph = results.pop(0)
        if isinstance(graph, Exception):
            log.warning("agent_search.graph.failed", error=str(graph))
            errors.append(f"graph search failed: {graph}")
        else:
            out["entities"], out["graph_results"] = graph

    log.info(
        "agent_search.results",
        strategy=strategy,
        vector=len(out["vector_results"]),
        graph=len(out["graph_results"]),
    )
    if errors:
        out["error"] = "; ".join(errors)
    return out


def _format_vector(row: dict[str, Any]) -> str:
    metadata = row.get("metadata") or {}
    source = metadata.get("source") or metadata.get("title") or "document"
    similarity = float(row.get("similarity") or 0.0)
    return f"[{source}, relevance {similarity:.2f}] {(row.get('content') or '')[:500]}"


def _format_graph(row: dict[str, Any]) -> str:
    connections = ", ".join(
        f"{c.get('name')} ({c.get('type')})"
        for c in row.get("connections") or []
        if c and c.get("name")
    )
    line = f"{row.get('name')}, {row.get('title') or 'unknown title'} at {row.get('company')}"
    if row.get("level"):
        line += f" [{row['level']}]"
    if connections:
        line += f"; connected to {connections}"
    return line


async def prepare_context(state: AgentSearchState) -> dict[str, Any]:
    sections = []
    vector = state.get("vector_results") or []
    graph = state.get("graph_results") or []
    if vector:
        sections.append("Documents:\n" + "\n".join(_format_vector(r) for r in vector[:CONTEXT_RESULTS]))
    if graph:
        sections.append("People and relationships:\n" + "\n".join(_format_graph(r) for r in graph[:CONTEXT_RESULTS]))

    total = len(vector) + len(graph)
    confidence = min(1.0, 0.3 + 0.05 * total) if total else 0.0
    return {"context": "\n\n".join(sections), "confidence": round(confidence, 2)}


async def generate_answer(state: AgentSearchState) -> dict[str, Any]:
    query = state.get("query", "")
    if not query.strip():
        return {"answer": NO_ANSWER}

    entities = state.get("entities") or {}
    companies = entities.get("companies") or []
    people = entities.get("people") or []
    task = fill_prompt(
        select_prompt(state.get("intent", "general")),
        company=companies[0] if companies else "the company in question",
        target=people[0] if people else "the target contact",
        entity=(companies or people or ["the subject of the query"])[0],
        time_range=entities.get("timeframe") or "the available history",
    )
    context = state.get("context") or "No matching records were found."
    prompt = f"{task}\n\nUser question: {query}\n\nRetrieved context:\n{context}"

    try:
        answer = await get_llm().generate(
            prompt, system=QUEST_SYSTEM_PROMPT, task_type="agent_search", max_tokens=1200,
        )
    except Exception as exc:
        log.error("agent_search.answer.failed", error=str(exc))
        return {"answer": NO_ANSWER, "error": str(exc)}

    return {"answer": answer}


# ─────────────────────────── Graph builder ───────────────────────────────────


def build_agent_search_graph(checkpointer=None):
    """Build and compile the agent search graph.

    Pass a checkpointer only when callers resume runs by thread id; every
    checkpointed thread stays in memory for the life of the saver.
    """
    graph = StateGraph(AgentSearchState)

    graph.add_node("detect_intent", detect_intent)
    graph.add_node("select_strategy", select_strategy)
    graph.add_node("run_search", run_search)
    graph.add_node("prepare_context", prepare_context)
    graph.add_node("generate_answer", generate_answer)

    graph.set_entry_point("detect_intent")
    graph.add_edge("detect_intent", "select_strategy")
    graph.add_edge("select_strategy", "run_search")
    graph.add_edge("run_search", "prepare_context")
    graph.add_edge("prepare_context", "generate_answer")
    graph.add_edge("generate_answer", END)

    return graph.compile(checkpointer=checkpointer)


agent_search_graph = build_agent_search_graph()
threaded_agent_search_graph = build_agent_search_graph(MemorySaver())


def initial_state(query: str, user_id: str | None = None) -> AgentSearchState:
    return {
        "messages": [],
        "confidence": 0.0,
        "error": None,
        "query": query,
        "user_id": user_id,
        "intent": "general",
        "strategy": "vector",
        "entities": {},
        "vector_results": [],
        "graph_results": [],
        "context": "",
        "answer": "",
    }


async def run_agent_search(query: str, user_id: str | None = None, thread_id: str | None = None) -> dict[str, Any]:
    """Run the graph for one query and return the public result shape."""
    if thread_id:
        result = await threaded_agent_search_graph.ainvoke(
            initial_state(query, user_id),
            config={"configurable": {"thread_id": thread_id}},
        )
    else:
        result = await agent_search_graph.ainvoke(initial_state(query, user_id))
    return {
        "query": query,
        "intent": result.get("intent"),
        "strategy": result.get("strategy"),
        "answer": result.get("answer"),
        "confidence": result.get("confidence", 0.0),
        "entities": result.get("entities") or {},
        "vector_results": result.get("vector_results") or [],
        "graph_results": result.get("graph_results") or [],
        "error": result.get("error"),
    }
