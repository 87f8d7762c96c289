"""Unit tests for OKR progress, status and quarter arithmetic."""
from datetime import date

import pytest
from unittest.mock import AsyncMock

from quest.core.errors import NotFoundError
from quest.repo.okr import (
    OKR,
    OKRService,
    KeyResult,
    calculate_key_result_progress,
    calculate_okr_progress,
    determine_okr_status,
    format_okr_period,
    get_current_quarter,
    get_quarter_dates,
    get_time_progress,
    suggest_key_results,
    update_key_result_status,
)


# ---------------------------------------------------------------------------
# Progress and status
# ---------------------------------------------------------------------------

def test_key_result_progress_caps_at_100():
    assert calculate_key_result_progress({"target_value": 10, "current_value": 25}) == 100.0


def test_key_result_progress_zero_target():
    assert calculate_key_result_progress(KeyResult(description="x", target_value=0)) == 0.0


def test_okr_progress_is_rounded_mean():
    krs = [
        KeyResult(description="a", target_value=10, current_value=5),
        KeyResult(description="b", target_value=3, current_value=1),
    ]
    assert calculate_okr_progress(krs) == round((50 + 100 / 3) / 2)


def test_okr_progress_empty():
    assert calculate_okr_progress([]) == 0


@pytest.mark.parametrize("progress,time_progress,status", [
    (100, 50, "achieved"),
    (45, 50, "on-track"),
    (30, 50, "at-risk"),
    (20, 50, "missed"),
])
def test_determine_status(progress, time_progress, status):
    assert determine_okr_status(progress, time_progress) == status


def test_untouched_key_result_is_not_started():
    kr = update_key_result_status(KeyResult(description="x", target_value=5), 90)
    assert kr.status == "not-started"


def test_time_progress_uses_thirty_day_months():
    assert get_time_progress(date(2026, 5, 15)) == round((30 + 15) / 90 * 100)


def test_current_quarter():
    assert get_current_quarter(date(2026, 1, 1)) == "Q1"
    assert get_current_quarter(date(2026, 12, 31)) == "Q4"


def test_quarter_dates():
    assert get_quarter_dates("Q1", 2024) == (date(2024, 1, 1), date(2024, 3, 31))
    assert get_quarter_dates("Q4", 2024) == (date(2024, 10, 1), date(2024, 12, 31))
    assert get_quarter_dates("Annual", 2024) == (date(2024, 1, 1), date(2024, 12, 31))


def test_quarter_dates_rejects_unknown():
    with pytest.raises(ValueError):
        get_quarter_dates("Q5", 2024)


def test_format_period():
    assert format_okr_period("Q2", 2026) == "Q2 2026"
    assert format_okr_period("Annual", 2026) == "2026 Annual"


def test_suggest_key_results_accumulates_groups():
    suggestions = suggest_key_results("Learn to lead a team")
    assert len(suggestions) == 6
    assert suggestions[0]["description"] == "Complete courses or certifications"


def test_suggest_key_results_no_match():
    assert suggest_key_results("Relax") == []


# ---------------------------------------------------------------------------
# OKRService
# ---------------------------------------------------------------------------

@pytest.fixture
def db():
    return AsyncMock()


@pytest.mark.asyncio
async def test_create_computes_progress(db):
    db.create_okr.side_effect = lambda user_id, payload: {"id": "okr1", **payload}
    okr = OKR(
        objective="Grow",
        timeframe="Q3",
        year=2026,
        key_results=[KeyResult(description="a", target_value=4, current_value=2)],
    )
    created = await OKRService(db=db).create("u1", okr)
    assert created["progress"] == 50
    assert created["key_results"][0]["status"] != "not-started"


@pytest.mark.asyncio
async def test_update_key_result_missing_okr(db):
    db.get_okr.return_value = None
    with pytest.raises(NotFoundError, match="OKR"):
        await OKRService(db=db).update_key_result("u1", "okr1", "kr1", 3)


@pytest.mark.asyncio
async def test_update_key_result_missing_kr(db):
    db.get_okr.return_value = {"key_results": [{"id": "kr1", "description": "a", "target_value": 4}]}
    with pytest.raises(NotFoundError, match="Key result"):
        await OKRService(db=db).update_key_result("u1", "okr1", "nope", 3)


@pytest.mark.asyncio
async def test_update_key_result_recomputes_progress(db):
    db.get_okr.return_value = {"key_results": [
        {"id": "kr1", "description": "a", "target_value": 4},
        {"id": "kr2", "description": "b", "target_value": 2, "current_value": 2},
    ]}
    db.update_okr_key_results.return_value = {"id": "okr1"}
    updated = await OKRService(db=db).update_key_result("u1", "okr1", "kr1", 4, notes="done")
    _, _, key_results, progress = db.update_okr_key_results.await_args.args
    assert progress == 100
    assert key_results[0]["notes"] == "done"
    assert key_results[0]["status"] == "achieved"
    assert updated["health"] == "achieved"


@pytest.mark.asyncio
async def test_list_okrs_adds_period(db):
    db.list_okrs.return_value = [{"timeframe": "Q1", "year": 2026, "progress": 100}]
    okrs = await OKRService(db=db).list_okrs("u1")
    assert okrs[0]["period"] == "Q1 2026"
    assert okrs[0]["health"] == "achieved"
