"""DataMagnet LinkedIn API — rich company and person profiles.

Person profiles carry recommendations and "people also viewed", which the
hybrid intelligence build turns into verified relationships.
"""
import re
from typing import Any

import httpx
import structlog

log = structlog.get_logger()

DATAMAGNET_COMPANY_API = "https://api.datamagnet.co/api/v1/linkedin/company"
DATAMAGNET_PEOPLE_API = "https://api.datamagnet.co/api/v1/linkedin/person"


def company_linkedin_url(company_name: str) -> str:
    """https://linkedin.com/company/<slug> where slug = lowercase, whitespace → '-'."""
    slug = re.sub(r"\s+", "-", company_name.strip().lower())
    return f"https://linkedin.com/company/{slug}"


def _headers() -> dict[str, str]:
    from config.settings import get_settings
    settings = get_settings()
    if not settings.datamagnet_token:
        raise RuntimeError("DATAMAGNET_TOKEN is not configured")
    return {
        "Authorization": f"Bearer {settings.datamagnet_token}",
        "Content-Type": "application/json",
    }


async def company(linkedin_url: str) -> dict[str, Any]:
    """Fetch a company profile (cached by DataMagnet when recent)."""
    async with httpx.AsyncClient(timeout=60) as client:
        resp = await client.post(
            DATAMAGNET_COMPANY_API,
            json={"url": linkedin_url, "use_cache": "if-recent"},
            headers=_headers(),
        )
        resp.raise_for_status()
        data = resp.json()
    log.info("datamagnet.company.ok", url=linkedin_url)
    return data


async def person(linkedin_url: str) -> dict[str, Any]:
    """Fetch a person profile including recommendations and also-viewed."""
    async with httpx.AsyncClient(timeout=60) as client:
        resp = await client.post(
            DATAMAGNET_PEOPLE_API,
            json={"url": linkedin_url},
            headers=_headers(),
        )
        resp.raise_for_status()
        data = resp.json()
    log.info("datamagnet.person.ok", url=linkedin_url)
    return data
