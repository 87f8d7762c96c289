"""Goals and tasks — progress, prioritisation and task suggestions.

Task helpers work on plain dicts as they come back from Postgres; due dates
may be `date` objects or ISO strings.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from quest.core.errors import NotFoundError

log = structlog.get_logger()

TaskStatus = Literal["todo", "in-progress", "done", "blocked"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
GoalType = Literal["milestone", "habit", "project", "learning"]
GoalStatus = Literal["planning", "active", "completed", "paused", "cancelled"]

PRIORITY_ORDER: dict[str, int] = {"urgent": 0, "high": 1, "medium": 2, "low": 3}


class Task(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    due_date: Optional[date] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None


class Goal(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    goal_type: GoalType
    status: GoalStatus = "planning"
    linked_okr_id: Optional[UUID] = None
    target_date: Optional[date] = None


def _today(now: datetime | date | None) -> date:
    if now is None:
        return datetime.now(timezone.utc).date()
    return now.date() if isinstance(now, datetime) else now


def _due(task: dict[str, Any]) -> Optional[date]:
    value = task.get("due_date")
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _is_open(task: dict[str, Any]) -> bool:
    return task.get("status") != "done"


def calculate_goal_progress(tasks: list[dict[str, Any]]) -> int:
    if not tasks:
        return 0
    done = sum(1 for t in tasks if t.get("status") == "done")
    return round(done / len(tasks) * 100)


def get_overdue_tasks(tasks: list[dict[str, Any]], now: datetime | date | None = None) -> list[dict[str, Any]]:
    today = _today(now)
    return [t for t in tasks if _is_open(t) and _due(t) is not None and _due(t) < today]


def get_upcoming_tasks(
    tasks: list[dict[str, Any]], now: datetime | date | None = None, days: int = 7,
) -> list[dict[str, Any]]:
    today = _today(now)
    horizon = today + timedelta(days=days)
    upcoming = [t for t in tasks if _is_open(t) and _due(t) is not None and today <= _due(t) <= horizon]
    return sorted(upcoming, key=_due)


def _created_key(task: dict[str, Any]) -> str:
    created = task.get("created_at")
    return created.isoformat() if isinstance(created, (date, datetime)) else str(created or "")


def prioritize_tasks(tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Priority, then dated before undated (earliest first), then creation time."""
    def key(task: dict[str, Any]):
        due = _due(task)
        return (
            PRIORITY_ORDER.get(task.get("priority", "medium"), 2),
            due is None,
            due or date.max,
            _created_key(task),
        )
    return sorted(tasks, key=key)


def get_task_stats(tasks: list[dict[str, Any]], now: datetime | date | None = None) -> dict[str, Any]:
    total = len(tasks)
    completed = sum(1 for t in tasks if t.get("status") == "done")
    by_priority = {p: 0 for p in ("urgent", "high", "medium", "low")}
    for t in tasks:
        if _is_open(t) and t.get("priority") in by_priority:
            by_priority[t["priority"]] += 1
    return {
        "total": total,
        "completed": completed,
        "completion_rate": round(completed / total * 100) if total else 0,
        "in_progress": sum(1 for t in tasks if t.get("status") == "in-progress"),
        "blocked": sum(1 for t in tasks if t.get("status") == "blocked"),
        "overdue": len(get_overdue_tasks(tasks, now)),
        "by_priority": by_priority,
    }


def get_daily_task_load(tasks: list[dict[str, Any]], day: date) -> list[dict[str, Any]]:
    return [t for t in tasks if _is_open(t) and (_due(t) is None or _due(t) == day)]


_LEARNING_TASKS = (
    ("Research learning resources and create study plan", "high"),
    ("Complete foundational tutorials/courses", "high"),
    ("Build practice project #1", "medium"),
    ("Join community/forum for the topic", "low"),
    ("Document learnings and create notes", "medium"),
)
_MILESTONE_TASKS = (
    ("Review certification requirements and register", "high"),
    ("Create study schedule and gather materials", "high"),
    ("Complete practice exams", "medium"),
    ("Review weak areas identified in practice", "high"),
    ("Schedule and take the exam", "urgent"),
)
_PROJECT_TASKS = (
    ("Define project requirements and scope", "high"),
    ("Create technical design/architecture", "high"),
    ("Set up development environment", "medium"),
    ("Implement core features", "high"),
    ("Test and debug", "high"),
    ("Deploy and monitor", "medium"),
)
_HABIT_TASKS = (
    ("Set up tracking system/tools", "high"),
    ("Define daily/weekly targets", "high"),
    ("Create accountability check-ins", "medium"),
    ("Review and adjust approach weekly", "low"),
)


def suggest_tasks_from_goal(goal_type: str, title: str) -> list[dict[str, str]]:
    lower = (title or "").lower()
    groups = []
    if goal_type == "learning" or "learn" in lower or "master" in lower:
        groups.append(_LEARNING_TASKS)
    if goal_type == "milestone" or "certification" in lower or "cert" in lower:
        groups.append(_MILESTONE_TASKS)
    if goal_type == "project" or "build" in lower or "launch" in lower:
        groups.append(_PROJECT_TASKS)
    if goal_type == "habit":
        groups.append(_HABIT_TASKS)
    return [{"title": t, "priority": p} for group in groups for t, p in group]


GOAL_TEMPLATES: dict[str, list[dict[str, Any]]] = {
    "Career Milestone": [
        {
            "title": "Complete [Certification Name] certification",
            "goal_type": "milestone",
            "description": "Achieve professional certification to advance career",
            "success_criteria": [
                "Pass certification exam with score >= 80%",
                "Complete all required coursework",
                "Build portfolio project demonstrating skills",
            ],
            "estimated_weeks": 12,
        },
        {
            "title": "Land [Target Role] position",
            "goal_type": "milestone",
            "description": "Secure new role aligned with career aspirations",
            "success_criteria": [
                "Update resume and portfolio",
                "Complete 20+ targeted applications",
                "Network with 10+ professionals in target field",
                "Receive and accept offer",
            ],
            "estimated_weeks": 16,
        },
    ],
    "Skill Building": [
        {
            "title": "Master [Technology/Skill]",
            "goal_type": "learning",
            "description": "Develop expertise in new technology or skill area",
            "success_criteria": [
                "Complete comprehensive course or bootcamp",
                "Build 3+ projects using the technology",
                "Contribute to open source or write tutorials",
                "Use in production environment",
            ],
            "estimated_weeks": 8,
        },
    ],
    "Habit Formation": [
        {
            "title": "Daily learning habit",
            "goal_type": "habit",
            "description": "Establish consistent daily learning routine",
            "success_criteria": [
                "30+ minutes of focused learning daily",
                "Track progress for 30 consecutive days",
                "Complete at least one course/book per month",
            ],
            "estimated_weeks": 4,
        },
        {
            "title": "Professional networking habit",
            "goal_type": "habit",
            "description": "Build and maintain professional relationships",
            "success_criteria": [
                "Reach out to 2 new connections weekly",
                "Attend 1 professional event monthly",
                "Share insights/content weekly",
            ],
            "estimated_weeks": 12,
        },
    ],
    "Project Delivery": [
        {
            "title": "Launch [Project Name]",
            "goal_type": "project",
            "description": "Complete and launch significant project",
            "success_criteria": [
                "Define clear project requirements",
                "Complete development/implementation",
                "Test thoroughly and fix issues",
                "Deploy to production",
                "Gather user feedback",
            ],
            "estimated_weeks": 8,
        },
    ],
}


class GoalService:
    def __init__(self, db=None):
        if db is None:
            from quest.core.database import get_db
            db = get_db()
        self.db = db

    async def list_goals(self, user_id: str) -> list[dict[str, Any]]:
        goals = await self.db.list_goals(user_id)
        tasks = await self.db.list_tasks(user_id)
        by_goal: dict[str, list[dict[str, Any]]] = {}
        for task in tasks:
            by_goal.setdefault(str(task.get("goal_id")), []).append(task)
        for goal in goals:
            goal["tasks"] = prioritize_tasks(by_goal.get(goal["id"], []))
        return goals

    async def create_goal(self, user_id: str, goal: Goal) -> dict[str, Any]:
        created = await self.db.create_goal(user_id, goal.model_dump())
        created["suggested_tasks"] = suggest_tasks_from_goal(goal.goal_type, goal.title)
        log.info("goal.created", user_id=user_id, goal_type=goal.goal_type)
        return created

    async def _refresh_progress(self, user_id: str, goal_id: str) -> int:
        tasks = await self.db.list_tasks(user_id, goal_id)
        progress = calculate_goal_progress(tasks)
        await self.db.set_goal_progress(goal_id, progress)
        return progress

    async def add_task(self, user_id: str, goal_id: str, task: Task) -> dict[str, Any]:
        created = await self.db.create_task(user_id, goal_id, task.model_dump())
        if created is None:
            raise NotFoundError(f"Goal {goal_id} not found")
        progress = await self._refresh_progress(user_id, goal_id)
        log.info("goal.task.added", goal_id=goal_id, progress=progress)
        return created

    async def update_task(self, user_id: str, task_id: str, changes: TaskUpdate) -> dict[str, Any]:
        updated = await self.db.update_task(user_id, task_id, changes.model_dump(exclude_none=True))
        if updated is None:
            raise NotFoundError(f"Task {task_id} not found")
        if updated.get("goal_id"):
            updated["goal_progress"] = await self._refresh_progress(user_id, str(updated["goal_id"]))
        return updated

    async def stats(self, user_id: str) -> dict[str, Any]:
        tasks = await self.db.list_tasks(user_id)
        today = datetime.now(timezone.utc).date()
        return {
            **get_task_stats(tasks, today),
            "upcoming": get_upcoming_tasks(tasks, today),
            "today": get_daily_task_load(tasks, today),
        }
