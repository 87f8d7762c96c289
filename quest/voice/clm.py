"""
Hume EVI custom language model — Quest coach replies streamed back to Hume.

Hume posts an OpenAI-style chat request and expects OpenAI
chat.completion.chunk events over SSE, terminated by `data: [DONE]`.
"""
import json
import re
import time
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

import structlog

log = structlog.get_logger()

CLM_MODEL = "quest-clm"
MAX_VOICE_TOKENS = 300
MAX_FALLBACK_TOKENS = 200
HISTORY_LIMIT = 10
HISTORY_TURNS = 3

_SESSION_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"user[_-]([^_-]+)", re.IGNORECASE),
    re.compile(r"([^_-]+)[_-]session", re.IGNORECASE),
    re.compile(r"^([^_-]+)"),
)

_TOPIC_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("job search", re.compile(r"job.{0,10}search|looking.{0,10}job|find.{0,10}job")),
    ("interview", re.compile(r"interview")),
    ("leadership", re.compile(r"leadership|leading|manage")),
    ("skills", re.compile(r"skill|learn|improve|develop")),
    ("promotion", re.compile(r"promotion|advance|career.{0,10}growth")),
    ("networking", re.compile(r"network|connect|colleague")),
    ("goals", re.compile(r"goal|objective|target")),
    ("feedback", re.compile(r"feedback|review|evaluation")),
    ("mentoring", re.compile(r"mentor|coach|guidance")),
    ("work-life balance", re.compile(r"work.{0,5}life|balance|stress")),
)

BASE_SYSTEM_PROMPT = (
    "You are Quest, an empathetic AI career coach with access to the user's profile. "
    "You provide personalised, contextual guidance. Keep responses under 150 words "
    "for voice synthesis, and be warm and conversational."
)

FALLBACK_SYSTEM_PROMPT = (
    "You are Quest, an AI career coach. You're having a voice conversation with someone "
    "seeking career guidance. Be warm, supportive, and helpful even though you don't have "
    "their full context right now."
)


def extract_user_id(custom_session_id: Optional[str]) -> Optional[str]:
    """User id embedded in a Hume session id ("user_<id>_<ts>", "<id>_session", ...)."""
    if not custom_session_id:
        return None
    for pattern in _SESSION_PATTERNS:
        match = pattern.search(custom_session_id)
        if match and match.group(1):
            return match.group(1)
    return None


def extract_topics(content: str, limit: int = 5) -> list[str]:
    lower = (content or "").lower()
    return [topic for topic, pattern in _TOPIC_PATTERNS if pattern.search(lower)][:limit]


def build_system_prompt(
    profile: Optional[dict[str, Any]],
    goals: list[dict[str, Any]] | None = None,
    trinity: Optional[dict[str, Any]] = None,
    emotional_context: Optional[dict[str, Any]] = None,
    history: list[dict[str, Any]] | None = None,
) -> str:
    sections = [BASE_SYSTEM_PROMPT]

    surface = (profile or {}).get("surface_repo") or {}
    if surface:
        lines = ["User profile:"]
        if surface.get("name"):
            lines.append(f"- Name: {surface['name']}")
        if surface.get("professional_headline"):
            lines.append(f"- Headline: {surface['professional_headline']}")
        skills = [s if isinstance(s, str) else s.get("name", "") for s in surface.get("skills") or []]
        if skills:
            lines.append(f"- Skills: {', '.join(s for s in skills[:10] if s)}")
        if len(lines) > 1:
            sections.append("\n".join(lines))

    active = [g["title"] for g in goals or [] if g.get("status") in ("active", "planning")]
    if active:
        sections.append("Active goals:\n" + "\n".join(f"- {t}" for t in active[:5]))

    if trinity:
        sections.append(
            "Their Trinity:\n"
            f"- Quest: {trinity.get('quest', '')}\n"
            f"- Service: {trinity.get('service', '')}\n"
            f"- Pledge: {trinity.get('pledge', '')}"
        )

    recent = [t["transcript"] for t in (history or [])[:HISTORY_TURNS] if t.get("transcript")]
    if recent:
        sections.append("Recent conversation:\n" + "\n".join(f"- {t[:100]}" for t in recent))

    if emotional_context:
        top = sorted(
            ((k, v) for k, v in emotional_context.items() if isinstance(v, (int, float))),
            key=lambda kv: kv[1],
            reverse=True,
        )[:3]
        if top:
            sections.append(
                "Current emotional signals: " + ", ".join(f"{k} ({v:.2f})" for k, v in top)
                + ". Adapt your tone accordingly."
            )

    return "\n\n".join(sections)


def chunk_event(chunk_id: str, created: int, delta: dict[str, Any], finish_reason: str | None = None) -> str:
    payload = {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": created,
        "model": CLM_MODEL,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    return f"data: {json.dumps(payload)}\n\n"


def error_event(message: str) -> str:
    return f"event: error\ndata: {json.dumps({'error': message})}\n\n"


async def load_user_context(db, user_id: str) -> dict[str, Any]:
    """Profile, goals and trinity for the prompt. Missing pieces are left empty."""
    context: dict[str, Any] = {"profile": None, "goals": [], "trinity": None}
    try:
        context["profile"] = await db.get_profile(user_id)
        context["goals"] = await db.list_goals(user_id)
        context["trinity"] = await db.get_active_trinity(user_id)
    except Exception as exc:
        log.warning("clm.context.failed", user_id=user_id, error=str(exc))
    return context


async def fetch_history(db, user_id: str, session_id: Optional[str]) -> list[dict[str, Any]]:
    try:
        return await db.list_conversation_turns(user_id, session_id, limit=HISTORY_LIMIT)
    except Exception as exc:
        log.warning("clm.history.failed", user_id=user_id, error=str(exc))
        return []


async def store_turn(
    db,
    user_id: str,
    session_id: Optional[str],
    transcript: str,
    reply: str,
    emotional_context: Optional[dict[str, Any]],
) -> None:
    """Persist one user/assistant exchange. Failures are logged, never raised."""
    try:
        await db.store_conversation_turn(
            user_id, session_id or "", transcript, reply,
            emotional_context=emotional_context, topics=extract_topics(transcript),
        )
    except Exception as exc:
        log.warning("clm.turn.store_failed", user_id=user_id, error=str(exc))


async def stream_reply(
    messages: list[dict[str, str]],
    custom_session_id: Optional[str],
    db,
    llm,
    user_id: Optional[str] = None,
    emotional_context: Optional[dict[str, Any]] = None,
) -> AsyncIterator[str]:
    """Yield SSE lines for one CLM turn, ending with [DONE].

    Without an identifiable user the reply comes from the generic fallback
    prompt and nothing is read from or written to conversation memory.
    """
    chunk_id = f"chatcmpl-{uuid4().hex}"
    created = int(time.time())

    conversation = [m for m in messages if m.get("role") in ("user", "assistant")]
    last_user = conversation[-1]["content"] if conversation and conversation[-1]["role"] == "user" else ""

    user_id = user_id or extract_user_id(custom_session_id)
    if user_id:
        context = await load_user_context(db, user_id)
        history = await fetch_history(db, user_id, custom_session_id)
        system = build_system_prompt(
            context["profile"], context["goals"], context["trinity"], emotional_context, history,
        )
        max_tokens = MAX_VOICE_TOKENS
    else:
        log.info("clm.fallback", reason="no user context")
        history = []
        system = FALLBACK_SYSTEM_PROMPT
        max_tokens = MAX_FALLBACK_TOKENS
    log.info(
        "clm.turn", user_id=user_id, messages=len(conversation),
        history=len(history), topics=extract_topics(last_user),
    )

    yield chunk_event(chunk_id, created, {"role": "assistant"})
    reply: list[str] = []
    try:
        async for delta in llm.stream(conversation, system=system, max_tokens=max_tokens):
            reply.append(delta)
            yield chunk_event(chunk_id, created, {"content": delta})
    except Exception as exc:
        log.error("clm.stream.failed", user_id=user_id, error=str(exc))
        yield error_event("Failed to generate response")
    else:
        if user_id and last_user:
            await store_turn(db, user_id, custom_session_id, last_user, "".join(reply), emotional_context)
    yield chunk_event(chunk_id, created, {}, finish_reason="stop")
    yield "data: [DONE]\n\n"
