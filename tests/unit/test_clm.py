"""Unit tests for the Hume custom language model stream."""
import json

import pytest
from unittest.mock import AsyncMock

from quest.voice import clm


class _StreamingLLM:
    def __init__(self, parts, fail_after=False):
        self.parts = parts
        self.fail_after = fail_after
        self.calls = []

    async def stream(self, messages, system="", max_tokens=1024):
        self.calls.append({"messages": messages, "system": system, "max_tokens": max_tokens})
        for part in self.parts:
            yield part
        if self.fail_after:
            raise RuntimeError("stream dropped")


def _data(event: str):
    assert event.startswith("data: ")
    return json.loads(event[len("data: "):])


@pytest.fixture
def db():
    db = AsyncMock()
    db.get_profile.return_value = {"surface_repo": {"name": "Ana", "skills": ["Python", {"name": "Go"}]}}
    db.list_goals.return_value = [
        {"title": "Ship v2", "status": "active"},
        {"title": "Old thing", "status": "completed"},
    ]
    db.get_active_trinity.return_value = {"quest": "Build", "service": "Teach", "pledge": "Daily"}
    db.list_conversation_turns.return_value = [
        {"transcript": "I froze in my last interview", "ai_response": "Let's rehearse."},
    ]
    return db


# ─────────────────────── Session ids and topics ───────────────────────────────


@pytest.mark.parametrize("session_id,user_id", [
    ("user_abc123_1700000000", "abc123"),
    ("abc123_session", "abc123"),
    ("abc123", "abc123"),
    (None, None),
    ("", None),
])
def test_extract_user_id(session_id, user_id):
    assert clm.extract_user_id(session_id) == user_id


def test_extract_topics():
    assert clm.extract_topics("I have an interview and want a promotion") == ["interview", "promotion"]
    assert clm.extract_topics("") == []


# ─────────────────────── System prompt ────────────────────────────────────────


def test_system_prompt_includes_context():
    prompt = clm.build_system_prompt(
        {"surface_repo": {"name": "Ana", "skills": ["Python", {"name": "Go"}]}},
        [{"title": "Ship v2", "status": "active"}, {"title": "Done", "status": "completed"}],
        {"quest": "Build", "service": "Teach", "pledge": "Daily"},
        {"calmness": 0.2, "joy": 0.9, "anxiety": 0.5, "interest": 0.7, "label": "n/a"},
    )
    assert "- Name: Ana" in prompt
    assert "- Skills: Python, Go" in prompt
    assert "- Ship v2" in prompt and "Done" not in prompt
    assert "- Pledge: Daily" in prompt
    assert "joy (0.90), interest (0.70), anxiety (0.50)" in prompt


def test_system_prompt_without_context():
    assert clm.build_system_prompt(None) == clm.BASE_SYSTEM_PROMPT


# ─────────────────────── Streaming ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stream_reply_emits_openai_chunks(db):
    llm = _StreamingLLM(["Hi ", "Ana"])
    messages = [
        {"role": "system", "content": "ignored"},
        {"role": "user", "content": "Help me prep for an interview"},
    ]
    events = [e async for e in clm.stream_reply(messages, "user_ana_1", db, llm)]

    assert events[-1] == "data: [DONE]\n\n"
    chunks = [_data(e) for e in events[:-1]]
    assert chunks[0]["choices"][0]["delta"] == {"role": "assistant"}
    assert [c["choices"][0]["delta"].get("content") for c in chunks[1:3]] == ["Hi ", "Ana"]
    assert chunks[-1]["choices"][0]["finish_reason"] == "stop"
    assert {c["id"] for c in chunks} == {chunks[0]["id"]}
    assert all(c["object"] == "chat.completion.chunk" for c in chunks)

    db.get_profile.assert_awaited_once_with("ana")
    call = llm.calls[0]
    assert [m["role"] for m in call["messages"]] == ["user"]
    assert "- Name: Ana" in call["system"]
    assert call["max_tokens"] == clm.MAX_VOICE_TOKENS
    assert "Recent conversation:\n- I froze in my last interview" in call["system"]
    db.list_conversation_turns.assert_awaited_once_with("ana", "user_ana_1", limit=clm.HISTORY_LIMIT)
    db.store_conversation_turn.assert_awaited_once_with(
        "ana", "user_ana_1", "Help me prep for an interview", "Hi Ana",
        emotional_context=None, topics=["interview"],
    )


@pytest.mark.asyncio
async def test_stream_reply_error_event_then_done(db):
    llm = _StreamingLLM(["partial"], fail_after=True)
    events = [e async for e in clm.stream_reply([{"role": "user", "content": "hi"}], None, db, llm)]
    assert events[2].startswith("event: error\n")
    assert json.loads(events[2].split("data: ", 1)[1]) == {"error": "Failed to generate response"}
    assert _data(events[3])["choices"][0]["finish_reason"] == "stop"
    assert events[-1] == "data: [DONE]\n\n"
    db.get_profile.assert_not_called()
    db.list_conversation_turns.assert_not_called()
    db.store_conversation_turn.assert_not_called()


@pytest.mark.asyncio
async def test_context_failure_still_streams(db):
    db.get_profile.side_effect = RuntimeError("db down")
    db.list_conversation_turns.return_value = []
    llm = _StreamingLLM(["ok"])
    events = [e async for e in clm.stream_reply([{"role": "user", "content": "hi"}], None, db, llm, user_id="u1")]
    assert _data(events[1])["choices"][0]["delta"] == {"content": "ok"}
    assert llm.calls[0]["system"] == clm.BASE_SYSTEM_PROMPT


@pytest.mark.asyncio
async def test_anonymous_turn_uses_fallback_prompt(db):
    llm = _StreamingLLM(["Happy to help."])
    events = [e async for e in clm.stream_reply([{"role": "user", "content": "hi"}], None, db, llm)]
    assert _data(events[1])["choices"][0]["delta"] == {"content": "Happy to help."}
    assert llm.calls[0]["system"] == clm.FALLBACK_SYSTEM_PROMPT
    assert llm.calls[0]["max_tokens"] == clm.MAX_FALLBACK_TOKENS
    db.get_profile.assert_not_called()
    db.store_conversation_turn.assert_not_called()


@pytest.mark.asyncio
async def test_history_failure_still_streams(db):
    db.list_conversation_turns.side_effect = RuntimeError("db down")
    llm = _StreamingLLM(["ok"])
    events = [e async for e in clm.stream_reply([{"role": "user", "content": "hi"}], "user_ana_1", db, llm)]
    assert events[-1] == "data: [DONE]\n\n"
    assert "Recent conversation" not in llm.calls[0]["system"]


@pytest.mark.asyncio
async def test_store_failure_does_not_break_stream(db):
    db.store_conversation_turn.side_effect = RuntimeError("db down")
    llm = _StreamingLLM(["ok"])
    events = [e async for e in clm.stream_reply([{"role": "user", "content": "hi"}], "user_ana_1", db, llm)]
    assert _data(events[-2])["choices"][0]["finish_reason"] == "stop"
    assert events[-1] == "data: [DONE]\n\n"


@pytest.mark.asyncio
async def test_failed_stream_is_not_remembered(db):
    llm = _StreamingLLM(["partial"], fail_after=True)
    [e async for e in clm.stream_reply([{"role": "user", "content": "hi"}], "user_ana_1", db, llm)]
    db.store_conversation_turn.assert_not_called()


@pytest.mark.asyncio
async def test_trailing_assistant_message_is_not_stored(db):
    llm = _StreamingLLM(["ok"])
    messages = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
    [e async for e in clm.stream_reply(messages, "user_ana_1", db, llm)]
    db.store_conversation_turn.assert_not_called()


def test_system_prompt_keeps_three_recent_turns():
    history = [{"transcript": f"turn {i} " + "x" * 200} for i in range(5)]
    prompt = clm.build_system_prompt(None, history=history)
    section = prompt.split("Recent conversation:\n", 1)[1].splitlines()
    assert len(section) == clm.HISTORY_TURNS
    assert section[0].startswith("- turn 0 ")
    assert len(section[0]) == 2 + 100
