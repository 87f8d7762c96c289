"""Apify actor runner — bulk LinkedIn employee discovery.

Actors run asynchronously on Apify: start a run, poll its status, then read
the default dataset once it SUCCEEDED.
"""
import asyncio
from typing import Any

import httpx
import structlog

log = structlog.get_logger()

APIFY_BASE_URL = "https://api.apify.com/v2"
POLL_INTERVAL_S = 5.0


def _headers() -> dict[str, str]:
    from config.settings import get_settings
    settings = get_settings()
    if not settings.apify_token:
        raise RuntimeError("APIFY_TOKEN is not configured")
    return {"Authorization": f"Bearer {settings.apify_token}", "Content-Type": "application/json"}


async def run_actor(
    actor_id: str,
    run_input: dict[str, Any],
    max_wait_s: float = 300.0,
    poll_interval_s: float = POLL_INTERVAL_S,
) -> list[dict[str, Any]]:
    """Start an actor run and return its dataset items.

    Raises RuntimeError when the run FAILED / ABORTED or does not finish in time.
    """
    headers = _headers()
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(f"{APIFY_BASE_URL}/acts/{actor_id}/runs", json=run_input, headers=headers)
        resp.raise_for_status()
        run_id = resp.json()["data"]["id"]
        log.info("apify.run.started", actor=actor_id, run_id=run_id)

        waited = 0.0
        while waited < max_wait_s:
            status_resp = await client.get(f"{APIFY_BASE_URL}/actor-runs/{run_id}", headers=headers)
            status_resp.raise_for_status()
            run = status_resp.json()["data"]
            status = run.get("status")

            if status == "SUCCEEDED":
                items_resp = await client.get(
                    f"{APIFY_BASE_URL}/datasets/{run['defaultDatasetId']}/items", headers=headers,
                )
                items_resp.raise_for_status()
                items = items_resp.json()
                log.info("apify.run.succeeded", run_id=run_id, items=len(items))
                return items
            if status in ("FAILED", "ABORTED"):
                raise RuntimeError(
                    f"Apify run {status.lower()}: {run.get('statusMessage', '')}"
                )

            await asyncio.sleep(poll_interval_s)
            waited += poll_interval_s

    raise RuntimeError(f"Apify run timed out after {max_wait_s:.0f}s")


async def scrape_company_employees(
    company_name: str,
    company_domain: str,
    max_employees: int = 100,
) -> list[dict[str, Any]]:
    """Discover employees of a company via the configured employee actor.

    Returns items shaped {profile_url, name, current_position, headline,
    location, inferred_department}.
    """
    from config.settings import get_settings
    settings = get_settings()

    items = await run_actor(
        settings.apify_employee_actor_id,
        {
            "companyName": company_name,
            "companyDomain": company_domain,
            "maxItems": max_employees,
            "proxyConfiguration": {"useApifyProxy": True},
        },
    )
    employees = []
    for item in items[:max_employees]:
        url = item.get("profileUrl") or item.get("linkedinUrl") or item.get("url")
        if not url:
            continue
        employees.append({
            "profile_url": url,
            "name": item.get("fullName") or item.get("name") or "Unknown",
            "current_position": item.get("currentPosition") or item.get("jobTitle"),
            "headline": item.get("headline"),
            "location": item.get("location"),
            "inferred_department": item.get("department"),
        })
    return employees


async def scrape_profile(profile_url: str) -> dict[str, Any]:
    """Scrape a single LinkedIn profile (used by the source comparison)."""
    from config.settings import get_settings
    settings = get_settings()

    items = await run_actor(
        settings.apify_employee_actor_id,
        {"startUrls": [{"url": profile_url}], "proxyConfiguration": {"useApifyProxy": True}},
    )
    if not items:
        raise RuntimeError("No profile data returned from Apify")
    return items[0]
