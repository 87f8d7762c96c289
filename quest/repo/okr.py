"""Professional OKR tracking — progress, status and key-result suggestions."""
from datetime import date, datetime, timezone
from typing import Any, Literal, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from quest.core.errors import NotFoundError

log = structlog.get_logger()

KRUnit = Literal["percentage", "count", "currency", "boolean"]
KRStatus = Literal["not-started", "on-track", "at-risk", "achieved", "missed"]
Timeframe = Literal["Q1", "Q2", "Q3", "Q4", "Annual"]


class KeyResult(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    description: str
    target_value: float
    current_value: float = 0
    unit: KRUnit = "count"
    status: KRStatus = "not-started"
    last_updated: Optional[str] = None
    notes: Optional[str] = None


class OKR(BaseModel):
    id: Optional[str] = None
    objective: str = Field(min_length=1)
    timeframe: Timeframe
    year: int
    key_results: list[KeyResult] = Field(default_factory=list)
    category: Optional[Literal["career", "skill", "leadership", "impact", "personal"]] = None
    visibility: Literal["private", "coach", "mentor", "accountability", "public"] = "private"
    status: Literal["draft", "active", "completed", "archived"] = "active"


def _kr_value(kr: KeyResult | dict, field: str) -> float:
    return float(getattr(kr, field) if isinstance(kr, KeyResult) else kr.get(field) or 0)


def calculate_key_result_progress(kr: KeyResult | dict) -> float:
    target = _kr_value(kr, "target_value")
    if target <= 0:
        return 0.0
    return min(_kr_value(kr, "current_value") / target * 100, 100.0)


def calculate_okr_progress(key_results: list[KeyResult | dict]) -> int:
    if not key_results:
        return 0
    return round(sum(calculate_key_result_progress(kr) for kr in key_results) / len(key_results))


def get_time_progress(now: datetime | date | None = None) -> int:
    """Rough progress through the current quarter, treating each month as 30 days."""
    now = now or datetime.now(timezone.utc)
    month_in_quarter = (now.month - 1) % 3
    return round((month_in_quarter * 30 + now.day) / 90 * 100)


def determine_okr_status(progress: float, time_progress: float) -> KRStatus:
    if progress >= 100:
        return "achieved"
    if progress >= time_progress - 10:
        return "on-track"
    if progress >= time_progress - 25:
        return "at-risk"
    return "missed"


def update_key_result_status(kr: KeyResult, time_progress: float) -> KeyResult:
    if kr.current_value == 0:
        status: KRStatus = "not-started"
    else:
        status = determine_okr_status(calculate_key_result_progress(kr), time_progress)
    return kr.model_copy(update={"status": status})


def get_current_quarter(now: datetime | date | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"Q{(now.month - 1) // 3 + 1}"


def get_quarter_dates(quarter: str, year: int) -> tuple[date, date]:
    """First and last day of a quarter ("Annual" covers the whole year)."""
    if quarter == "Annual":
        return date(year, 1, 1), date(year, 12, 31)
    if quarter not in ("Q1", "Q2", "Q3", "Q4"):
        raise ValueError(f"Invalid quarter: {quarter}")
    start_month = (int(quarter[1]) - 1) * 3 + 1
    start = date(year, start_month, 1)
    end = date(year + 1, 1, 1) if start_month == 10 else date(year, start_month + 3, 1)
    return start, date.fromordinal(end.toordinal() - 1)


def format_okr_period(timeframe: str, year: int) -> str:
    if timeframe == "Annual":
        return f"{year} Annual"
    return f"{timeframe} {year}"


_SUGGESTIONS: tuple[tuple[tuple[str, ...], tuple[tuple[str, str], ...]], ...] = (
    (("learn", "skill"), (
        ("Complete courses or certifications", "count"),
        ("Build practice projects", "count"),
        ("Achieve proficiency score", "percentage"),
    )),
    (("lead", "manage"), (
        ("Lead team initiatives", "count"),
        ("Improve team metrics", "percentage"),
        ("Conduct 1-on-1 sessions", "count"),
    )),
    (("build", "create"), (
        ("Launch features or products", "count"),
        ("Achieve user adoption", "percentage"),
        ("Meet quality metrics", "percentage"),
    )),
    (("improve", "increase"), (
        ("Improve key metric by X%", "percentage"),
        ("Reduce issues or errors", "count"),
        ("Increase efficiency score", "percentage"),
    )),
)


def suggest_key_results(objective: str) -> list[dict[str, str]]:
    lower = (objective or "").lower()
    suggestions = []
    for keywords, items in _SUGGESTIONS:
        if any(k in lower for k in keywords):
            suggestions.extend({"description": d, "unit": u} for d, u in items)
    return suggestions


def _kr(description: str, unit: str, target: float) -> dict[str, Any]:
    return {"description": description, "unit": unit, "target_value": target}


OKR_TEMPLATES: dict[str, list[dict[str, Any]]] = {
    "Career Growth": [
        {
            "objective": "Advance to [Role] by demonstrating leadership and technical excellence",
            "key_results": [
                _kr("Lead X cross-functional projects", "count", 3),
                _kr("Mentor X team members", "count", 2),
                _kr("Complete advanced certification in [Area]", "boolean", 1),
                _kr("Receive performance rating of X or higher", "percentage", 90),
            ],
        },
        {
            "objective": "Build expertise in [New Technology/Skill] to expand career opportunities",
            "key_results": [
                _kr("Complete X hours of focused learning", "count", 100),
                _kr("Build X production-ready projects", "count", 3),
                _kr("Contribute to X open source projects", "count", 2),
                _kr("Achieve certification score of X%", "percentage", 85),
            ],
        },
    ],
    "Leadership": [
        {
            "objective": "Develop strong leadership skills to prepare for management role",
            "key_results": [
                _kr("Complete leadership training program", "boolean", 1),
                _kr("Lead X team initiatives", "count", 4),
                _kr("Improve team satisfaction score to X%", "percentage", 85),
                _kr("Conduct X 1-on-1 mentoring sessions", "count", 12),
            ],
        },
    ],
    "Business Impact": [
        {
            "objective": "Drive significant business value through innovation and efficiency",
            "key_results": [
                _kr("Increase revenue/efficiency metric by X%", "percentage", 20),
                _kr("Launch X new features/products", "count", 3),
                _kr("Reduce operational costs by $X", "currency", 50000),
                _kr("Achieve customer satisfaction of X%", "percentage", 90),
            ],
        },
    ],
    "Skill Development": [
        {
            "objective": "Master [Skill Area] to become a recognized expert",
            "key_results": [
                _kr("Complete X advanced courses", "count", 3),
                _kr("Publish X articles/talks on the topic", "count", 5),
                _kr("Answer X community questions", "count", 50),
                _kr("Build portfolio of X projects", "count", 4),
            ],
        },
    ],
    "Network & Influence": [
        {
            "objective": "Build strong professional network and thought leadership",
            "key_results": [
                _kr("Grow professional connections by X", "count", 100),
                _kr("Speak at X industry events", "count", 3),
                _kr("Achieve X social media followers", "count", 1000),
                _kr("Get featured in X publications", "count", 2),
            ],
        },
    ],
}


class OKRService:
    def __init__(self, db=None):
        if db is None:
            from quest.core.database import get_db
            db = get_db()
        self.db = db

    async def list_okrs(self, user_id: str) -> list[dict[str, Any]]:
        okrs = await self.db.list_okrs(user_id)
        tp = get_time_progress()
        for okr in okrs:
            okr["period"] = format_okr_period(okr["timeframe"], okr["year"])
            okr["health"] = determine_okr_status(okr.get("progress") or 0, tp)
        return okrs

    async def create(self, user_id: str, okr: OKR) -> dict[str, Any]:
        tp = get_time_progress()
        key_results = [update_key_result_status(kr, tp) for kr in okr.key_results]
        payload = okr.model_dump(exclude={"id"})
        payload["key_results"] = [kr.model_dump() for kr in key_results]
        payload["progress"] = calculate_okr_progress(key_results)
        created = await self.db.create_okr(user_id, payload)
        log.info("okr.created", user_id=user_id, timeframe=okr.timeframe, key_results=len(key_results))
        return created

    async def update_key_result(
        self,
        user_id: str,
        okr_id: str,
        kr_id: str,
        current_value: float,
        notes: Optional[str] = None,
    ) -> dict[str, Any]:
        okr = await self.db.get_okr(user_id, okr_id)
        if okr is None:
            raise NotFoundError(f"OKR {okr_id} not found")

        tp = get_time_progress()
        key_results = [KeyResult.model_validate(kr) for kr in okr.get("key_results") or []]
        found = False
        for i, kr in enumerate(key_results):
            if kr.id != kr_id:
                continue
            found = True
            changes: dict[str, Any] = {
                "current_value": current_value,
                "last_updated": datetime.now(timezone.utc).isoformat(),
            }
            if notes is not None:
                changes["notes"] = notes
            key_results[i] = update_key_result_status(kr.model_copy(update=changes), tp)
        if not found:
            raise NotFoundError(f"Key result {kr_id} not found")

        progress = calculate_okr_progress(key_results)
        updated = await self.db.update_okr_key_results(
            user_id, okr_id, [kr.model_dump() for kr in key_results], progress,
        )
        log.info("okr.key_result.updated", okr_id=okr_id, kr_id=kr_id, progress=progress)
        if updated is not None:
            updated["health"] = determine_okr_status(progress, tp)
        return updated
