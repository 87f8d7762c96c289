"""Apollo.io people search — employee lists with titles, seniority and contact data."""
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

log = structlog.get_logger()

APOLLO_BASE_URL = "https://api.apollo.io/v1"
DECISION_MAKER_SENIORITY = ["c_suite", "vp", "director", "owner"]


async def search_people(
    company_name: str,
    titles: list[str] | None = None,
    seniority_levels: list[str] | None = None,
    departments: list[str] | None = None,
    per_page: int = 25,
    page: int = 1,
) -> dict[str, Any]:
    """Search people at a company. Returns the raw Apollo response ({people, pagination})."""
    from config.settings import get_settings
    settings = get_settings()
    if not settings.apollo_api_key:
        raise RuntimeError("APOLLO_API_KEY is not configured")

    params: dict[str, Any] = {
        "q_organization_name": company_name,
        "per_page": per_page,
        "page": page,
    }
    if titles:
        params["person_titles"] = titles
    if seniority_levels:
        params["person_seniorities"] = seniority_levels
    if departments:
        params["person_departments"] = departments

    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            f"{APOLLO_BASE_URL}/people/search",
            json=params,
            headers={
                "Content-Type": "application/json",
                "Cache-Control": "no-cache",
                "X-Api-Key": settings.apollo_api_key,
            },
        )
        resp.raise_for_status()
        data = resp.json()

    log.info("apollo.search.ok", company=company_name, people=len(data.get("people", [])))
    return data


async def key_decision_makers(company_name: str) -> list[dict[str, Any]]:
    """C-level, VP, Director and owner profiles at a company."""
    data = await search_people(company_name, seniority_levels=DECISION_MAKER_SENIORITY, per_page=50)
    return data.get("people", [])


def to_unified_profile(person: dict[str, Any]) -> dict[str, Any]:
    """Map an Apollo person onto the profile shape shared with other sources."""
    location = ", ".join(
        p for p in (person.get("city"), person.get("state"), person.get("country")) if p
    )
    return {
        "linkedin_url": person.get("linkedin_url") or f"apollo_{person.get('id')}",
        "email": person.get("email"),
        "name": person.get("name"),
        "headline": person.get("headline") or person.get("title"),
        "current_position": person.get("title"),
        "current_company": person.get("organization_name"),
        "location": location,
        "seniority": person.get("seniority"),
        "departments": person.get("departments") or [],
        "data_source": "apollo",
        "apollo_id": person.get("id"),
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }
