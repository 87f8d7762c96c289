"""Unit tests for the agent orchestrator — LLM handover gating, keyword fallback, Redis store."""
import pytest
from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis

from quest.agents import prompts
from quest.agents.orchestrator import (
    ACTIVE_AGENT_TTL_S,
    PRIMARY_AGENT,
    ActiveAgentStore,
    AgentOrchestrator,
    HandoverDecision,
)


# ─────────────────────── Fixtures ─────────────────────────────────────────────


@pytest.fixture
def fake_redis():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def llm():
    llm = MagicMock()
    llm.complete_json = AsyncMock()
    return llm


@pytest.fixture
def orchestrator(fake_redis, llm):
    return AgentOrchestrator(store=ActiveAgentStore(redis=fake_redis), llm=llm, threshold=0.7)


def _decision(**overrides):
    decision = {
        "should_handover": True,
        "target_agent": "goal",
        "confidence": 0.85,
        "reason": "User wants OKRs",
        "trigger_keywords": ["okr"],
        "urgency": "medium",
        "suggested_handover_message": "Let me bring in the goal agent.",
    }
    decision.update(overrides)
    return decision


# ─────────────────────── analyze_for_handover ─────────────────────────────────


@pytest.mark.asyncio
async def test_analyze_returns_confident_decision(orchestrator, llm):
    llm.complete_json.return_value = _decision()
    decision = await orchestrator.analyze_for_handover("Help me set OKRs", history=[
        {"role": "user", "content": "hi"},
    ])
    assert decision.target_agent == "goal"
    _, kwargs = llm.complete_json.call_args
    assert kwargs["task_type"] == "handover"
    assert "goal:" in kwargs["system"]
    assert "quest:" not in kwargs["system"].split("Available Specialized Agents:")[1].split("HANDOVER")[0]


@pytest.mark.asyncio
async def test_analyze_below_threshold_is_none(orchestrator, llm):
    llm.complete_json.return_value = _decision(confidence=0.6)
    assert await orchestrator.analyze_for_handover("maybe goals?") is None


@pytest.mark.asyncio
async def test_analyze_same_agent_is_none(orchestrator, llm):
    llm.complete_json.return_value = _decision(target_agent="goal")
    assert await orchestrator.analyze_for_handover("more goals", current_agent="goal") is None


@pytest.mark.asyncio
async def test_analyze_no_handover_flag(orchestrator, llm):
    llm.complete_json.return_value = _decision(should_handover=False, confidence=0.95)
    assert await orchestrator.analyze_for_handover("thanks") is None


@pytest.mark.asyncio
async def test_analyze_invalid_payload_is_none(orchestrator, llm):
    llm.complete_json.return_value = {"should_handover": "perhaps", "confidence": 7}
    assert await orchestrator.analyze_for_handover("x") is None


@pytest.mark.asyncio
async def test_analyze_llm_failure_is_none(orchestrator, llm):
    llm.complete_json.side_effect = RuntimeError("no backend")
    assert await orchestrator.analyze_for_handover("x") is None


@pytest.mark.asyncio
async def test_analyze_only_sends_last_three_messages(orchestrator, llm):
    llm.complete_json.return_value = _decision(should_handover=False)
    history = [{"role": "user", "content": f"m{i}"} for i in range(5)]
    await orchestrator.analyze_for_handover("x", history=history)
    prompt = llm.complete_json.call_args.args[0]
    assert "m1" not in prompt
    assert "m2" in prompt and "m4" in prompt


# ─────────────────────── Execution and store ──────────────────────────────────


@pytest.mark.asyncio
async def test_execute_handover_persists_agent(orchestrator, fake_redis):
    decision = HandoverDecision.model_validate(_decision())
    result = await orchestrator.execute_handover("u1", "quest", decision, history=[{"role": "user", "content": "hi"}])
    assert result.success
    assert result.new_agent == "goal"
    assert result.handover_message == "Let me bring in the goal agent."
    assert result.context_transfer["from_agent"] == "quest"
    assert await orchestrator.get_current_agent("u1") == "goal"
    ttl = await fake_redis.ttl(f"{ActiveAgentStore.KEY_PREFIX}u1")
    assert 0 < ttl <= ACTIVE_AGENT_TTL_S


@pytest.mark.asyncio
async def test_execute_handover_default_message(orchestrator):
    decision = HandoverDecision.model_validate(_decision(target_agent="calendar", suggested_handover_message=""))
    result = await orchestrator.execute_handover("u1", "quest", decision)
    assert result.handover_message == "Handover completed to Calendar & Scheduling Agent"


@pytest.mark.asyncio
async def test_execute_handover_requires_target(orchestrator):
    decision = HandoverDecision.model_validate(_decision(target_agent=None))
    with pytest.raises(ValueError):
        await orchestrator.execute_handover("u1", "quest", decision)


@pytest.mark.asyncio
async def test_current_agent_defaults_to_quest(orchestrator):
    assert await orchestrator.get_current_agent("nobody") == PRIMARY_AGENT


@pytest.mark.asyncio
async def test_hand_back_resets_to_quest(orchestrator):
    await orchestrator.store.set("u1", "learning")
    assert await orchestrator.hand_back_to_quest("u1", reason="done") == PRIMARY_AGENT
    assert await orchestrator.get_current_agent("u1") == PRIMARY_AGENT


@pytest.mark.asyncio
async def test_store_close_releases_client(fake_redis):
    store = ActiveAgentStore(redis=fake_redis)
    await store.close()
    assert store._redis is None


# ─────────────────────── Keyword fallback ─────────────────────────────────────


def test_keywords_need_enough_hits(orchestrator):
    assert orchestrator.detect_handover_keywords("one task please") is None


def test_keywords_pick_productivity(orchestrator):
    match = orchestrator.detect_handover_keywords("Organize my todo list by deadline and priority")
    assert match["agent_id"] == "productivity"
    assert match["confidence"] == 0.9


def test_keywords_calendar_needs_three_hits(orchestrator):
    assert orchestrator.detect_handover_keywords("Put the meeting on my calendar") is None
    match = orchestrator.detect_handover_keywords("Book a meeting in my calendar")
    assert match["agent_id"] == "calendar"


def test_available_agents(orchestrator):
    ids = {a.agent_id for a in orchestrator.available_agents()}
    assert ids == {"quest", "productivity", "goal", "calendar", "learning"}
    assert orchestrator.get_agent("nope") is None


# ─────────────────────── Search prompt templates ──────────────────────────────


def test_select_prompt_falls_back_to_system_prompt():
    assert prompts.select_prompt("unknown") is prompts.QUEST_SYSTEM_PROMPT
    assert prompts.select_prompt("introduction") is prompts.WARM_INTRO


def test_fill_prompt_keeps_missing_placeholders():
    filled = prompts.fill_prompt(prompts.WARM_INTRO, target="Ana", company="Acme")
    assert "{requester}" in filled
    assert "Ana at Acme" in filled
