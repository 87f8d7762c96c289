"""Apollo smart enrichment with a per-company cache in Postgres."""
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import structlog

log = structlog.get_logger()

LOCKED_EMAIL = "email_not_unlocked@domain.com"
ADMIN_TEST_USER = "test-user-123"


def get_top_items(values: Iterable[Any], limit: int = 10) -> list[dict[str, Any]]:
    counts = Counter(v for v in values if v)
    return [{"name": name, "count": count} for name, count in counts.most_common(limit)]


def build_insights(people: list[dict[str, Any]]) -> dict[str, Any]:
    """Aggregate breakdowns over a list of Apollo people."""
    departments = [d for p in people for d in (p.get("departments") or [])]
    locations = [
        ", ".join(x for x in (p.get("city"), p.get("state"), p.get("country")) if x)
        for p in people
    ]
    return {
        "total_people": len(people),
        "departments": get_top_items(departments),
        "seniority": get_top_items(p.get("seniority") for p in people),
        "top_titles": get_top_items(p.get("title") for p in people),
        "top_locations": get_top_items(locations),
        "linkedin_profiles": sum(1 for p in people if p.get("linkedin_url")),
        "emails": sum(1 for p in people if p.get("email") and p.get("email") != LOCKED_EMAIL),
    }


def is_admin(user_id: str | None) -> bool:
    return bool(user_id) and (user_id == ADMIN_TEST_USER or user_id.startswith("admin_"))


def _age(last_enriched: datetime, now: datetime) -> timedelta:
    if last_enriched.tzinfo is None:
        last_enriched = last_enriched.replace(tzinfo=timezone.utc)
    return now - last_enriched


async def smart_enrich(
    company_name: str,
    user_id: str,
    force_refresh: bool = False,
    cache_days: int | None = None,
    db=None,
) -> dict[str, Any]:
    """Return Apollo enrichment for a company, serving the cache when fresh.

    status is 'cached' (no vendor call), 'fresh' (Apollo just called) or
    'stale' (Apollo failed, old cache served). Raises PermissionError when a
    non-admin forces a refresh.
    """
    from config.settings import get_settings
    from quest.providers import apollo

    if not company_name or not company_name.strip():
        raise ValueError("company_name is required")
    if force_refresh and not is_admin(user_id):
        raise PermissionError("Only admins can force a refresh")

    if db is None:
        from quest.core.database import get_db
        db = get_db()
    if cache_days is None:
        cache_days = get_settings().company_cache_days

    now = datetime.now(timezone.utc)
    cached = await db.get_company_enrichment(company_name, "apollo")
    if cached and not force_refresh:
        age = _age(cached["last_enriched"], now)
        if age < timedelta(days=cache_days):
            log.info("enrich.cache.hit", company=company_name, age_days=age.days)
            return {
                "status": "cached",
                "company": company_name,
                "data": cached["payload"],
                "last_enriched": cached["last_enriched"],
                "cache_age_days": age.days,
            }

    try:
        response = await apollo.search_people(company_name)
    except Exception as exc:
        if cached:
            log.warning("enrich.apollo.stale", company=company_name, error=str(exc))
            return {
                "status": "stale",
                "company": company_name,
                "data": cached["payload"],
                "last_enriched": cached["last_enriched"],
                "error": str(exc),
            }
        raise

    people = response.get("people") or []
    payload = {
        "people": people,
        "pagination": response.get("pagination") or {},
        "insights": build_insights(people),
    }
    stored = await db.upsert_company_enrichment(company_name, "apollo", payload, len(people))
    log.info("enrich.apollo.fresh", company=company_name, people=len(people))
    return {
        "status": "fresh",
        "company": company_name,
        "data": payload,
        "last_enriched": stored["last_enriched"] if stored else now,
    }
