"""Force-graph payloads for the 3D visualizations."""
import math
from typing import Any

from fastapi import APIRouter, Depends

from quest.api.auth import get_current_user
from quest.api.deps import get_db, get_graph

router = APIRouter(prefix="/visualization", tags=["visualization"])

CATEGORY_COLORS: dict[str, str] = {
    "Technical": "#3B82F6",
    "Frontend": "#3B82F6",
    "Backend": "#F59E0B",
    "Business": "#F59E0B",
    "AI/ML": "#10B981",
    "Creative": "#EC4899",
    "Leadership": "#A855F7",
    "General": "#6B7280",
}
CATEGORY_RADIUS = 80
SKILL_RADIUS = 30


def skills_universe(surface: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
    """Centre node → category nodes on a ring → skill nodes around each category."""
    skills = surface.get("skills") or []
    if not skills:
        return {"nodes": [], "links": []}

    grouped: dict[str, list[str]] = {}
    for skill in skills:
        if isinstance(skill, str):
            name, category = skill, "General"
        else:
            name = skill.get("name") or ""
            category = (skill.get("category") or "General").strip()
            category = category[:1].upper() + category[1:]
        if name:
            grouped.setdefault(category, []).append(name)

    center = {
        "id": "user-center",
        "name": surface.get("professional_headline") or "Professional",
        "type": "center",
        "size": 30,
        "color": "#FFFFFF",
        "x": 0.0, "y": 0.0, "z": 0.0,
    }
    nodes = [center]
    links = []
    step = 2 * math.pi / len(grouped)

    for i, (category, names) in enumerate(grouped.items()):
        cx, cy = math.cos(i * step) * CATEGORY_RADIUS, math.sin(i * step) * CATEGORY_RADIUS
        color = CATEGORY_COLORS.get(category, CATEGORY_COLORS["General"])
        category_id = f"cat-{category}"
        nodes.append({
            "id": category_id, "name": category, "type": "category",
            "size": 20, "color": color, "x": cx, "y": cy, "z": 0.0,
        })
        links.append({"source": center["id"], "target": category_id, "value": 2})

        for j, name in enumerate(names):
            angle = j / len(names) * 2 * math.pi
            skill_id = f"skill-{name}"
            nodes.append({
                "id": skill_id, "name": name, "type": "skill", "category": category,
                "size": 10, "color": color,
                "x": cx + math.cos(angle) * SKILL_RADIUS,
                "y": cy + math.sin(angle) * SKILL_RADIUS,
                "z": 0.0,
            })
            links.append({"source": category_id, "target": skill_id, "value": 1})

    return {"nodes": nodes, "links": links}


@router.get("/skills-universe")
async def get_skills_universe(
    user_id: str = Depends(get_current_user),
    db=Depends(get_db),
) -> dict:
    profile = await db.get_profile(user_id)
    if profile is None:
        return {"nodes": [], "links": []}
    return skills_universe(profile.get("surface_repo") or {})


@router.get("/company-network/{company}")
async def company_network(
    company: str,
    user_id: str = Depends(get_current_user),
    graph=Depends(get_graph),
) -> dict:
    return await graph.company_network(company)
