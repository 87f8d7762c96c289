"""
Tiered user repos and access grants.

A user profile is split into four JSON layers:

    surface   public profile (headline, skills, experience)
    working   semi-private (current projects, OKRs shared with a team)
    personal  private (goals, notes)
    deep      AI-derived (trinity, inferred traits)

Another user sees the layers their grant level unlocks; surface is always
visible.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

import structlog

from quest.core.errors import NotFoundError
from quest.repo import skills as skill_norm

log = structlog.get_logger()


class RepoLayer(str, Enum):
    SURFACE = "surface"
    WORKING = "working"
    PERSONAL = "personal"
    DEEP = "deep"


LAYER_VISIBILITY: dict[RepoLayer, str] = {
    RepoLayer.SURFACE: "public",
    RepoLayer.WORKING: "semi-private",
    RepoLayer.PERSONAL: "private",
    RepoLayer.DEEP: "ai-derived",
}

# Ordered weakest → strongest
ACCESS_LEVELS: tuple[str, ...] = ("none", "surface", "working", "personal", "deep")
GRANTABLE_LEVELS: frozenset[str] = frozenset(ACCESS_LEVELS[1:])


def parse_layer(value: str) -> RepoLayer:
    try:
        return RepoLayer(value)
    except ValueError:
        raise ValueError(f"Invalid repo layer: {value}") from None


def access_rank(level: str) -> int:
    try:
        return ACCESS_LEVELS.index(level)
    except ValueError:
        raise ValueError(f"Invalid access level: {level}") from None


def merge_layer(existing: dict[str, Any] | None, update: dict[str, Any], merge: bool = True) -> dict[str, Any]:
    if not merge:
        return dict(update)
    return {**(existing or {}), **update}


def validate_grant(
    owner_id: str, granted_to_id: str, level: str, expires_days: int | None = None,
) -> None:
    if not granted_to_id:
        raise ValueError("granted_to_id is required")
    if owner_id == granted_to_id:
        raise ValueError("Cannot grant repo access to yourself")
    if level not in GRANTABLE_LEVELS:
        raise ValueError(f"Invalid access level: {level}")
    if expires_days is not None and expires_days <= 0:
        raise ValueError("expires_days must be positive")


def visible_layers(level: str) -> list[RepoLayer]:
    """Layers unlocked by `level`. Surface is always included."""
    rank = max(access_rank(level), 1)
    return [RepoLayer(name) for name in ACCESS_LEVELS[1:rank + 1]]


def _skill_name(skill: Any) -> str:
    return skill if isinstance(skill, str) else (skill.get("name") or "")


class RepoService:
    """Repo reads/writes, grants and surface-repo skills on top of QuestDB."""

    def __init__(self, db=None):
        if db is None:
            from quest.core.database import get_db
            db = get_db()
        self.db = db

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    async def get_repo(self, user_id: str, layer: str) -> dict[str, Any]:
        return await self.db.get_layer(user_id, parse_layer(layer).value)

    async def update_repo(
        self, user_id: str, layer: str, data: dict[str, Any], merge: bool = True,
    ) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise ValueError("Repo data must be an object")
        return await self.db.update_layer(user_id, parse_layer(layer).value, data, merge=merge)

    async def update_deep_field(self, user_id: str, field: str, value: Any) -> dict[str, Any]:
        if not field:
            raise ValueError("field is required")
        return await self.db.update_deep_field(user_id, field, value)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    async def grant_access(
        self,
        owner_id: str,
        granted_to_id: str,
        level: str,
        relationship_type: str = "connection",
        reason: str | None = None,
        expires_days: int | None = None,
    ) -> dict[str, Any]:
        validate_grant(owner_id, granted_to_id, level, expires_days)
        expires_at = (
            datetime.now(timezone.utc) + timedelta(days=expires_days) if expires_days else None
        )
        grant = await self.db.create_grant(
            owner_id, granted_to_id, level,
            relationship_type=relationship_type, reason=reason, expires_at=expires_at,
        )
        log.info("repo.access.granted", owner_id=owner_id, granted_to_id=granted_to_id, level=level)
        return grant

    async def list_access(self, owner_id: str) -> list[dict[str, Any]]:
        return await self.db.list_grants(owner_id)

    async def check_access(self, owner_id: str, viewer_id: str) -> str:
        """Access level `viewer_id` holds on `owner_id`'s repo."""
        if owner_id == viewer_id:
            return "deep"
        grant = await self.db.get_active_grant(owner_id, viewer_id)
        return grant["access_level"] if grant else "none"

    async def revoke_access(self, owner_id: str, granted_to_id: str) -> None:
        if not await self.db.revoke_grant(owner_id, granted_to_id):
            raise NotFoundError(f"No active grant for {granted_to_id}")
        log.info("repo.access.revoked", owner_id=owner_id, granted_to_id=granted_to_id)

    async def view_repo(self, owner_id: str, viewer_id: str) -> dict[str, Any]:
        level = await self.check_access(owner_id, viewer_id)
        profile = await self.db.get_profile(owner_id)
        if profile is None:
            raise NotFoundError(f"No profile for {owner_id}")
        layers = visible_layers(level)
        return {
            "owner_id": owner_id,
            "access_level": level,
            "layers": {
                layer.value: profile.get(f"{layer.value}_repo") or {} for layer in layers
            },
        }

    # ------------------------------------------------------------------
    # Skills (surface_repo.skills)
    # ------------------------------------------------------------------

    async def list_skills(self, user_id: str) -> list[Any]:
        profile = await self.db.get_profile(user_id)
        if profile is None:
            return []
        return (profile.get("surface_repo") or {}).get("skills") or []

    async def add_skill(
        self,
        user_id: str,
        name: str,
        category: Optional[str] = None,
        proficiency: Optional[str] = None,
    ) -> dict[str, Any]:
        if not name or not name.strip():
            raise ValueError("Skill name is required")
        current = await self.list_skills(user_id)
        if any(_skill_name(s).lower() == name.strip().lower() for s in current):
            raise ValueError("Skill already exists")

        skill = {
            "name": name.strip(),
            "category": category or skill_norm.categorize_skill(name).lower(),
            "proficiency": proficiency or "intermediate",
            "added_at": datetime.now(timezone.utc).isoformat(),
            "is_new": True,
        }
        await self.db.update_layer(user_id, RepoLayer.SURFACE.value, {"skills": [*current, skill]}, merge=True)
        log.info("repo.skill.added", user_id=user_id, skill=skill["name"])
        return skill

    async def remove_skill(self, user_id: str, name: str) -> None:
        profile = await self.db.get_profile(user_id)
        if profile is None:
            raise NotFoundError("User profile not found")
        current = (profile.get("surface_repo") or {}).get("skills") or []
        remaining = [s for s in current if _skill_name(s).lower() != name.strip().lower()]
        await self.db.update_layer(user_id, RepoLayer.SURFACE.value, {"skills": remaining}, merge=True)
        log.info("repo.skill.removed", user_id=user_id, skill=name, removed=len(current) - len(remaining))
