"""Unit tests for goals and tasks — progress, ordering, stats and suggestions."""
from datetime import date, datetime

import pytest
from unittest.mock import AsyncMock

from quest.core.errors import NotFoundError
from quest.repo.goals import (
    Goal,
    GoalService,
    Task,
    TaskUpdate,
    calculate_goal_progress,
    get_daily_task_load,
    get_overdue_tasks,
    get_task_stats,
    get_upcoming_tasks,
    prioritize_tasks,
    suggest_tasks_from_goal,
)

TODAY = date(2026, 3, 10)


def _task(title, status="todo", priority="medium", due=None, created=None, goal_id="g1"):
    return {
        "id": title,
        "goal_id": goal_id,
        "title": title,
        "status": status,
        "priority": priority,
        "due_date": due,
        "created_at": created,
    }


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def test_goal_progress():
    tasks = [_task("a", "done"), _task("b"), _task("c", "done")]
    assert calculate_goal_progress(tasks) == 67
    assert calculate_goal_progress([]) == 0


def test_overdue_ignores_done_and_undated():
    tasks = [
        _task("late", due=date(2026, 3, 1)),
        _task("late-done", "done", due=date(2026, 3, 1)),
        _task("undated"),
        _task("today", due=TODAY),
    ]
    assert [t["title"] for t in get_overdue_tasks(tasks, TODAY)] == ["late"]


def test_overdue_accepts_iso_strings_and_datetimes():
    tasks = [_task("iso", due="2026-03-09"), _task("dt", due=datetime(2026, 3, 8, 12))]
    assert len(get_overdue_tasks(tasks, TODAY)) == 2


def test_upcoming_window_is_sorted():
    tasks = [
        _task("later", due=date(2026, 3, 16)),
        _task("soon", due=date(2026, 3, 11)),
        _task("far", due=date(2026, 3, 30)),
        _task("past", due=date(2026, 3, 1)),
    ]
    assert [t["title"] for t in get_upcoming_tasks(tasks, TODAY)] == ["soon", "later"]


def test_prioritize_orders_by_priority_then_due_then_created():
    tasks = [
        _task("low", priority="low", due=date(2026, 3, 1)),
        _task("high-undated", priority="high"),
        _task("high-late", priority="high", due=date(2026, 4, 1)),
        _task("high-early", priority="high", due=date(2026, 3, 12)),
        _task("urgent", priority="urgent"),
        _task("high-undated-older", priority="high", created="2026-01-01T00:00:00"),
    ]
    ordered = [t["title"] for t in prioritize_tasks(tasks)]
    assert ordered[0] == "urgent"
    assert ordered[1:3] == ["high-early", "high-late"]
    assert ordered[-1] == "low"


def test_task_stats():
    tasks = [
        _task("a", "done", "high"),
        _task("b", "in-progress", "urgent"),
        _task("c", "blocked", "low", due=date(2026, 3, 1)),
        _task("d", "todo", "high"),
    ]
    stats = get_task_stats(tasks, TODAY)
    assert stats["total"] == 4
    assert stats["completed"] == 1
    assert stats["completion_rate"] == 25
    assert stats["in_progress"] == 1
    assert stats["blocked"] == 1
    assert stats["overdue"] == 1
    assert stats["by_priority"] == {"urgent": 1, "high": 1, "medium": 0, "low": 1}


def test_task_stats_empty():
    assert get_task_stats([], TODAY)["completion_rate"] == 0


def test_daily_load_includes_undated_open_tasks():
    tasks = [_task("today", due=TODAY), _task("undated"), _task("tomorrow", due=date(2026, 3, 11))]
    assert [t["title"] for t in get_daily_task_load(tasks, TODAY)] == ["today", "undated"]


def test_suggestions_for_learning_goal():
    suggestions = suggest_tasks_from_goal("learning", "Pick up Rust")
    assert len(suggestions) == 5
    assert suggestions[0]["priority"] == "high"


def test_suggestions_accumulate_from_title_keywords():
    suggestions = suggest_tasks_from_goal("habit", "Build a learning habit")
    titles = [s["title"] for s in suggestions]
    assert "Research learning resources and create study plan" in titles
    assert "Define project requirements and scope" in titles
    assert "Set up tracking system/tools" in titles
    assert len(suggestions) == 5 + 6 + 4


def test_task_model_rejects_bad_priority():
    with pytest.raises(ValueError):
        Task(title="x", priority="critical")


# ---------------------------------------------------------------------------
# GoalService
# ---------------------------------------------------------------------------

@pytest.fixture
def db():
    return AsyncMock()


@pytest.mark.asyncio
async def test_list_goals_attaches_prioritized_tasks(db):
    db.list_goals.return_value = [{"id": "g1", "title": "Goal"}, {"id": "g2", "title": "Empty"}]
    db.list_tasks.return_value = [_task("b", priority="low"), _task("a", priority="urgent")]
    goals = await GoalService(db=db).list_goals("u1")
    assert [t["title"] for t in goals[0]["tasks"]] == ["a", "b"]
    assert goals[1]["tasks"] == []


@pytest.mark.asyncio
async def test_create_goal_returns_suggestions(db):
    db.create_goal.side_effect = lambda user_id, goal: {"id": "g1", **goal}
    created = await GoalService(db=db).create_goal("u1", Goal(title="Get AWS cert", goal_type="milestone"))
    assert created["suggested_tasks"][-1] == {"title": "Schedule and take the exam", "priority": "urgent"}


@pytest.mark.asyncio
async def test_add_task_to_missing_goal(db):
    db.create_task.return_value = None
    with pytest.raises(NotFoundError, match="Goal g9 not found"):
        await GoalService(db=db).add_task("u1", "g9", Task(title="x"))


@pytest.mark.asyncio
async def test_add_task_refreshes_progress(db):
    db.create_task.return_value = _task("new")
    db.list_tasks.return_value = [_task("new"), _task("old", "done")]
    await GoalService(db=db).add_task("u1", "g1", Task(title="new"))
    db.set_goal_progress.assert_awaited_once_with("g1", 50)


@pytest.mark.asyncio
async def test_update_task_sends_only_given_fields(db):
    db.update_task.return_value = _task("a", "done")
    db.list_tasks.return_value = [_task("a", "done")]
    updated = await GoalService(db=db).update_task("u1", "a", TaskUpdate(status="done"))
    assert db.update_task.await_args.args[2] == {"status": "done"}
    assert updated["goal_progress"] == 100


@pytest.mark.asyncio
async def test_update_missing_task(db):
    db.update_task.return_value = None
    with pytest.raises(NotFoundError):
        await GoalService(db=db).update_task("u1", "nope", TaskUpdate(status="done"))
