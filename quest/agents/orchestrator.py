"""
Agent orchestrator — decides when a conversation moves from the Quest career
coach to a specialised agent, and remembers which agent each user is talking to.

Handover analysis is a single JSON-mode LLM call gated by a confidence
threshold; a keyword heuristic is available as a cheap fallback. The active
agent per user lives in Redis so every API process agrees on it.
"""
import json
from typing import Any, Literal, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()

PRIMARY_AGENT = "quest"
ACTIVE_AGENT_TTL_S = 24 * 60 * 60

AgentId = Literal["quest", "productivity", "goal", "calendar", "learning"]


class AgentCapability(BaseModel):
    agent_id: str
    name: str
    description: str
    capabilities: list[str]
    trigger_keywords: list[str]
    confidence_threshold: float


class HandoverDecision(BaseModel):
    should_handover: bool
    target_agent: Optional[AgentId] = None
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""
    trigger_keywords: list[str] = Field(default_factory=list)
    urgency: Literal["low", "medium", "high"] = "medium"
    suggested_handover_message: str = ""


class HandoverResult(BaseModel):
    success: bool
    new_agent: str
    handover_message: str
    context_transfer: dict[str, Any] = Field(default_factory=dict)


AGENTS: dict[str, AgentCapability] = {
    a.agent_id: a for a in (
        AgentCapability(
            agent_id="quest",
            name="Quest Career Coach",
            description="Primary career coaching and professional development agent",
            capabilities=["career coaching", "skill development", "professional guidance",
                          "interview preparation", "networking advice"],
            trigger_keywords=["career", "job", "interview", "resume", "cv", "networking",
                              "promotion", "salary", "skills", "development", "coaching"],
            confidence_threshold=0.7,
        ),
        AgentCapability(
            agent_id="productivity",
            name="Productivity Assistant",
            description="Task management, todo lists, and productivity optimization",
            capabilities=["task management", "todo lists", "deadline tracking",
                          "priority setting", "productivity optimization", "workflow design"],
            trigger_keywords=["todo", "task", "deadline", "priority", "organize", "schedule",
                              "productivity", "efficiency", "workflow", "checklist", "reminder"],
            confidence_threshold=0.8,
        ),
        AgentCapability(
            agent_id="goal",
            name="Goal Setting Agent",
            description="OKR management, milestone tracking, and goal achievement",
            capabilities=["goal setting", "OKR creation", "milestone tracking",
                          "progress monitoring", "achievement planning", "SMART goals"],
            trigger_keywords=["goal", "objective", "target", "milestone", "okr", "achievement",
                              "plan", "roadmap", "vision", "aim", "aspiration", "ambition"],
            confidence_threshold=0.8,
        ),
        AgentCapability(
            agent_id="calendar",
            name="Calendar & Scheduling Agent",
            description="Meeting scheduling, time management, and calendar optimization",
            capabilities=["meeting scheduling", "time blocking", "calendar management",
                          "availability coordination", "time optimization", "event planning"],
            trigger_keywords=["meeting", "schedule", "calendar", "appointment", "time", "available",
                              "book", "reschedule", "conflict", "busy", "free", "when"],
            confidence_threshold=0.8,
        ),
        AgentCapability(
            agent_id="learning",
            name="Learning & Development Agent",
            description="Skill learning paths, course recommendations, and knowledge acquisition",
            capabilities=["learning path creation", "course recommendations", "skill gap analysis",
                          "study planning", "knowledge assessment", "certification guidance"],
            trigger_keywords=["learn", "course", "training", "education", "study", "certification",
                              "improve", "master", "practice", "tutorial", "workshop", "bootcamp"],
            confidence_threshold=0.8,
        ),
    )
}


HANDOVER_SYSTEM_PROMPT = """You are an AI agent orchestrator that determines when conversations should be handed over to specialized agents.

Current Agent: {current_agent}
Available Specialized Agents:
{agent_descriptions}

HANDOVER CRITERIA:
1. User explicitly mentions agent capabilities (high confidence)
2. Conversation naturally shifts to specialized domain (medium confidence)
3. Current agent limitations evident (medium confidence)
4. User frustration or repeated requests (high urgency)

CONFIDENCE THRESHOLDS:
- 0.9+: Explicit request for specialized capability
- 0.8+: Clear domain shift requiring expertise
- 0.7+: Beneficial but not essential handover
- <0.7: Stay with current agent

USER PROFILE: {user_profile}

Respond with a JSON object:
{{"should_handover": bool, "target_agent": one of [{agent_ids}] or null,
  "confidence": 0.0-1.0, "reason": str, "trigger_keywords": [str],
  "urgency": "low"|"medium"|"high", "suggested_handover_message": str}}"""


# ─────────────────────────────────────────────────────────────────────────────
# Active agent store
# ─────────────────────────────────────────────────────────────────────────────

class ActiveAgentStore:
    """user_id → active agent id, in Redis with a 24h TTL."""

    KEY_PREFIX = "quest:active_agent:"

    def __init__(self, redis=None, ttl_s: int = ACTIVE_AGENT_TTL_S):
        self._redis = redis
        self.ttl_s = ttl_s

    def _client(self):
        if self._redis is None:
            import redis.asyncio as aioredis
            from config.settings import get_settings
            self._redis = aioredis.from_url(get_settings().redis_url, decode_responses=True)
        return self._redis

    async def get(self, user_id: str) -> Optional[str]:
        value = await self._client().get(f"{self.KEY_PREFIX}{user_id}")
        if isinstance(value, bytes):
            value = value.decode()
        return value

    async def set(self, user_id: str, agent_id: str) -> None:
        await self._client().set(f"{self.KEY_PREFIX}{user_id}", agent_id, ex=self.ttl_s)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


# ─────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────────────────────────────────────

class AgentOrchestrator:
    def __init__(self, store: ActiveAgentStore | None = None, llm=None, threshold: float | None = None):
        self.store = store or ActiveAgentStore()
        self._llm = llm
        if threshold is None:
            from config.settings import get_settings
            threshold = get_settings().handover_confidence_threshold
        self.threshold = threshold

    @property
    def llm(self):
        if self._llm is None:
            from quest.core.llm import get_llm
            self._llm = get_llm()
        return self._llm

    def available_agents(self) -> list[AgentCapability]:
        return list(AGENTS.values())

    def get_agent(self, agent_id: str) -> Optional[AgentCapability]:
        return AGENTS.get(agent_id)

    async def analyze_for_handover(
        self,
        message: str,
        current_agent: str = PRIMARY_AGENT,
        history: list[dict[str, Any]] | None = None,
        user_context: dict[str, Any] | None = None,
    ) -> Optional[HandoverDecision]:
        """Ask the LLM whether another agent should take over.

        Returns None unless it says yes with confidence ≥ threshold. LLM and
        parse errors also return None.
        """
        candidates = [a for a in AGENTS.values() if a.agent_id != current_agent]
        if not candidates:
            return None

        recent = (history or [])[-3:]
        transcript = "\n".join(f"{m.get('role', 'user')}: {m.get('content', '')}" for m in recent)
        system = HANDOVER_SYSTEM_PROMPT.format(
            current_agent=current_agent,
            agent_descriptions="\n".join(
                f"{a.agent_id}: {a.description} (triggers: {', '.join(a.trigger_keywords[:5])})"
                for a in candidates
            ),
            user_profile=json.dumps(user_context or {}, default=str),
            agent_ids=", ".join(a.agent_id for a in candidates),
        )
        prompt = (
            f"Analyze this conversation for potential agent handover:\n\n{transcript}\n\n"
            f'Latest message: "{message}"'
        )

        try:
            raw = await self.llm.complete_json(prompt, system=system, task_type="handover")
            decision = HandoverDecision.model_validate(raw)
        except (ValueError, ValidationError, RuntimeError) as exc:
            log.warning("handover.analyze.failed", error=str(exc))
            return None
        except Exception as exc:
            log.error("handover.analyze.error", error=str(exc))
            return None

        if decision.target_agent == current_agent:
            return None
        if decision.should_handover and decision.target_agent and decision.confidence >= self.threshold:
            log.info(
                "handover.suggested",
                target=decision.target_agent,
                confidence=decision.confidence,
                urgency=decision.urgency,
            )
            return decision
        return None

    async def execute_handover(
        self,
        user_id: str,
        from_agent: str,
        decision: HandoverDecision,
        history: list[dict[str, Any]] | None = None,
    ) -> HandoverResult:
        target = AGENTS.get(decision.target_agent or "")
        if target is None:
            raise ValueError(f"Unknown target agent: {decision.target_agent}")

        await self.store.set(user_id, target.agent_id)
        log.info("handover.executed", user_id=user_id, from_agent=from_agent, to_agent=target.agent_id)
        return HandoverResult(
            success=True,
            new_agent=target.agent_id,
            handover_message=decision.suggested_handover_message or f"Handover completed to {target.name}",
            context_transfer={
                "from_agent": from_agent,
                "to_agent": target.agent_id,
                "reason": decision.reason,
                "trigger_keywords": decision.trigger_keywords,
                "conversation_history": history or [],
            },
        )

    async def get_current_agent(self, user_id: str) -> str:
        return await self.store.get(user_id) or PRIMARY_AGENT

    async def hand_back_to_quest(self, user_id: str, reason: str = "") -> str:
        current = await self.get_current_agent(user_id)
        if current != PRIMARY_AGENT:
            await self.store.set(user_id, PRIMARY_AGENT)
            log.info("handover.hand_back", user_id=user_id, from_agent=current, reason=reason)
        return PRIMARY_AGENT

    def detect_handover_keywords(self, message: str) -> Optional[dict[str, Any]]:
        """Keyword fallback: first non-primary agent with enough trigger hits."""
        lower = message.lower()
        for agent in AGENTS.values():
            if agent.agent_id == PRIMARY_AGENT:
                continue
            matched = [k for k in agent.trigger_keywords if k.lower() in lower]
            if not matched:
                continue
            confidence = min(0.9, len(matched) * 0.3)
            if confidence >= agent.confidence_threshold:
                return {"agent_id": agent.agent_id, "confidence": confidence, "matched": matched}
        return None


_orchestrator: Optional[AgentOrchestrator] = None


def get_orchestrator() -> AgentOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = AgentOrchestrator()
    return _orchestrator
