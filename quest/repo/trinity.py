"""Trinity statements — Quest / Service / Pledge self-reflection and coaching focus."""
import hashlib
from datetime import datetime, timezone
from typing import Any, Literal, Optional

import structlog
from asyncpg.exceptions import UniqueViolationError
from pydantic import BaseModel, Field, field_validator

from quest.core.errors import NotFoundError

log = structlog.get_logger()

TRINITY_TYPES: dict[str, str] = {
    "F": "Foundation",
    "L": "Living",
    "M": "Mixed",
}

DEFAULT_COACHING_PREFERENCES: dict[str, Any] = {
    "quest_focus": 34,
    "service_focus": 33,
    "pledge_focus": 33,
    "coaching_methodology": "balanced",
    "coaching_tone": "supportive",
    "context_awareness": "high",
    "voice_enabled": True,
}


class TrinityConflictError(Exception):
    """The user already has an active trinity statement."""


class TrinityStatement(BaseModel):
    quest: str
    service: str
    pledge: str
    trinity_type: Literal["F", "L", "M"] = "F"
    description: Optional[str] = None
    ritual_session_id: Optional[str] = None

    @field_validator("quest", "service", "pledge")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class CoachingPreferences(BaseModel):
    quest_focus: int = Field(ge=0, le=100)
    service_focus: int = Field(ge=0, le=100)
    pledge_focus: int = Field(ge=0, le=100)
    coaching_methodology: Optional[str] = None
    coaching_tone: Optional[str] = None
    context_awareness: Optional[str] = None
    voice_enabled: Optional[bool] = None


def generate_quest_seal(user_id: str, statement: TrinityStatement, now: datetime) -> str:
    """SHA-256 over user, the three answers and the creation time."""
    material = "|".join((
        user_id,
        statement.quest,
        statement.service,
        statement.pledge,
        now.isoformat(),
    ))
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def validate_focus(quest: int, service: int, pledge: int) -> None:
    if quest + service + pledge != 100:
        raise ValueError(
            f"Focus percentages must sum to 100 (got {quest + service + pledge})"
        )


class TrinityService:
    def __init__(self, db=None, graph=None):
        if db is None:
            from quest.core.database import get_db
            db = get_db()
        self.db = db
        self.graph = graph

    async def create(self, user_id: str, statement: TrinityStatement) -> dict[str, Any]:
        if await self.db.get_active_trinity(user_id):
            raise TrinityConflictError("An active trinity statement already exists")

        now = datetime.now(timezone.utc)
        seal = generate_quest_seal(user_id, statement, now)
        record = {
            "quest": statement.quest,
            "service": statement.service,
            "pledge": statement.pledge,
            "trinity_type": statement.trinity_type,
            "trinity_type_description": statement.description or TRINITY_TYPES[statement.trinity_type],
            "ritual_session_id": statement.ritual_session_id,
            "quest_seal": seal,
        }
        try:
            trinity = await self.db.create_trinity(user_id, record, dict(DEFAULT_COACHING_PREFERENCES))
        except UniqueViolationError:
            # Lost the race against a concurrent create for the same user
            raise TrinityConflictError("An active trinity statement already exists") from None
        log.info("trinity.created", user_id=user_id, trinity_type=statement.trinity_type)

        if self.graph is not None:
            try:
                await self.graph.merge_trinity(
                    user_id, statement.quest, statement.service, statement.pledge,
                    trinity_type=statement.trinity_type, quest_seal=seal,
                )
            except Exception as exc:
                log.warning("trinity.graph_sync.failed", user_id=user_id, error=str(exc))

        return trinity

    async def get(self, user_id: str) -> dict[str, Any]:
        trinity = await self.db.get_active_trinity(user_id)
        if trinity is None:
            raise NotFoundError("No active trinity statement")
        preferences = await self.db.get_coaching_preferences(user_id)
        return {
            "trinity": trinity,
            "preferences": preferences or dict(DEFAULT_COACHING_PREFERENCES),
        }

    async def update_preferences(self, user_id: str, prefs: CoachingPreferences) -> dict[str, Any]:
        validate_focus(prefs.quest_focus, prefs.service_focus, prefs.pledge_focus)
        updated = await self.db.update_coaching_preferences(user_id, prefs.model_dump())
        if updated is None:
            raise NotFoundError("No coaching preferences found")
        log.info("trinity.preferences.updated", user_id=user_id)
        return updated
