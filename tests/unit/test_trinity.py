"""Unit tests for trinity statements, quest seals and coaching preferences."""
import hashlib
from datetime import datetime, timezone

import pytest
from asyncpg.exceptions import UniqueViolationError
from pydantic import ValidationError
from unittest.mock import AsyncMock

from quest.core.errors import NotFoundError
from quest.repo.trinity import (
    DEFAULT_COACHING_PREFERENCES,
    CoachingPreferences,
    TrinityConflictError,
    TrinityService,
    TrinityStatement,
    generate_quest_seal,
    validate_focus,
)


@pytest.fixture
def statement():
    return TrinityStatement(quest=" Build tools ", service="Help founders", pledge="Ship weekly", trinity_type="L")


@pytest.fixture
def db():
    db = AsyncMock()
    db.get_active_trinity.return_value = None
    db.create_trinity.side_effect = lambda user_id, record, prefs: {"user_id": user_id, **record}
    return db


# ─────────────────────── Model validation ─────────────────────────────────────


def test_statement_strips_answers(statement):
    assert statement.quest == "Build tools"


def test_statement_rejects_blank_answer():
    with pytest.raises(ValidationError):
        TrinityStatement(quest="x", service="   ", pledge="y")


def test_statement_rejects_unknown_type():
    with pytest.raises(ValidationError):
        TrinityStatement(quest="x", service="y", pledge="z", trinity_type="Q")


def test_quest_seal_is_sha256_of_fields(statement):
    now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    expected = hashlib.sha256(
        f"u1|Build tools|Help founders|Ship weekly|{now.isoformat()}".encode()
    ).hexdigest()
    assert generate_quest_seal("u1", statement, now) == expected


def test_quest_seal_changes_with_time(statement):
    a = generate_quest_seal("u1", statement, datetime(2026, 1, 1, tzinfo=timezone.utc))
    b = generate_quest_seal("u1", statement, datetime(2026, 1, 2, tzinfo=timezone.utc))
    assert a != b


def test_validate_focus_requires_100():
    validate_focus(50, 25, 25)
    with pytest.raises(ValueError, match="sum to 100"):
        validate_focus(50, 50, 10)


def test_preferences_bounds():
    with pytest.raises(ValidationError):
        CoachingPreferences(quest_focus=120, service_focus=0, pledge_focus=0)


# ─────────────────────── TrinityService ───────────────────────────────────────


@pytest.mark.asyncio
async def test_create_stores_seal_and_default_preferences(db, statement):
    result = await TrinityService(db=db).create("u1", statement)
    assert len(result["quest_seal"]) == 64
    assert result["trinity_type_description"] == "Living"
    assert db.create_trinity.call_args.args[2] == DEFAULT_COACHING_PREFERENCES


@pytest.mark.asyncio
async def test_create_conflicts_with_active_trinity(db, statement):
    db.get_active_trinity.return_value = {"quest": "old"}
    with pytest.raises(TrinityConflictError):
        await TrinityService(db=db).create("u1", statement)
    db.create_trinity.assert_not_called()


@pytest.mark.asyncio
async def test_create_concurrent_insert_is_a_conflict(db, statement):
    graph = AsyncMock()
    db.create_trinity.side_effect = UniqueViolationError("duplicate key value violates unique constraint")
    with pytest.raises(TrinityConflictError):
        await TrinityService(db=db, graph=graph).create("u1", statement)
    graph.merge_trinity.assert_not_called()


@pytest.mark.asyncio
async def test_create_syncs_graph_and_tolerates_failure(db, statement):
    graph = AsyncMock()
    graph.merge_trinity.side_effect = RuntimeError("neo4j down")
    result = await TrinityService(db=db, graph=graph).create("u1", statement)
    assert result["user_id"] == "u1"
    graph.merge_trinity.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_without_trinity_raises_lookup(db):
    with pytest.raises(NotFoundError):
        await TrinityService(db=db).get("u1")


@pytest.mark.asyncio
async def test_get_falls_back_to_default_preferences(db):
    db.get_active_trinity.return_value = {"quest": "q"}
    db.get_coaching_preferences.return_value = None
    result = await TrinityService(db=db).get("u1")
    assert result["preferences"]["quest_focus"] == 34


@pytest.mark.asyncio
async def test_update_preferences_validates_sum(db):
    prefs = CoachingPreferences(quest_focus=40, service_focus=40, pledge_focus=40)
    with pytest.raises(ValueError):
        await TrinityService(db=db).update_preferences("u1", prefs)
    db.update_coaching_preferences.assert_not_called()


@pytest.mark.asyncio
async def test_update_preferences_missing_row(db):
    db.update_coaching_preferences.return_value = None
    prefs = CoachingPreferences(quest_focus=40, service_focus=30, pledge_focus=30)
    with pytest.raises(NotFoundError):
        await TrinityService(db=db).update_preferences("u1", prefs)
