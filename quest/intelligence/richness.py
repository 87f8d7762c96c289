"""
Data richness scoring — picks the better of two vendor payloads.

A payload's richness is the percentage of known fields that carry a
non-empty value. The source comparison runs DataMagnet and Apify side by
side on the same LinkedIn URL and keeps whichever returned more.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable

import structlog

log = structlog.get_logger()

COMPANY_FIELDS = (
    "name", "description", "industry", "headquarters", "website",
    "employees", "followers", "founded_year", "company_size",
    "specialities", "locations", "recent_posts", "logo_url",
)

PROFILE_FIELDS = (
    "name", "headline", "summary", "current_position", "experience",
    "education", "skills", "connections", "recent_posts",
)

# Apify employee-scrape items
EMPLOYEE_FIELDS = (
    "profile_url", "name", "current_position", "headline", "location", "inferred_department",
)

_FIELDS = {"company": COMPANY_FIELDS, "profile": PROFILE_FIELDS, "employee": EMPLOYEE_FIELDS}

COMPARISON_EMPLOYEES = 25


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) > 0
    return bool(value)


def calculate_data_richness(data: dict[str, Any] | None, kind: str) -> int:
    """Percentage (0-100) of `kind` fields present in `data`.

    `founded_year` also matches `foundedyear` (first underscore dropped).
    The "employees" kind averages employee richness over data["employees"].
    """
    if not data:
        return 0
    if kind == "employees":
        people = data.get("employees") or []
        if not people:
            return 0
        return round(sum(calculate_data_richness(p, "employee") for p in people) / len(people))
    fields = _FIELDS.get(kind)
    if fields is None:
        raise ValueError(f"Unknown richness kind: {kind}")

    present = sum(
        1 for field in fields
        if _present(data.get(field)) or _present(data.get(field.replace("_", "", 1)))
    )
    return round(present / len(fields) * 100)


def compare_sources(
    datamagnet_result: dict[str, Any],
    apify_result: dict[str, Any],
    kind: str,
    apify_kind: str | None = None,
) -> dict[str, Any]:
    """Decide which source wins.

    Each result is {success, data, error?}. DataMagnet wins only when it
    succeeded and scored strictly higher; Apify wins only when it succeeded
    and DataMagnet did not. Anything else is a tie. `apify_kind` scores the
    Apify payload when it has a different shape (employee lists for companies).
    """
    dm_ok = bool(datamagnet_result.get("success"))
    apify_ok = bool(apify_result.get("success"))
    dm_score = calculate_data_richness(datamagnet_result.get("data"), kind) if dm_ok else 0
    apify_score = (
        calculate_data_richness(apify_result.get("data"), apify_kind or kind) if apify_ok else 0
    )

    if dm_ok and dm_score > apify_score:
        winner, merged = "DataMagnet", datamagnet_result.get("data")
    elif apify_ok and not dm_ok:
        winner, merged = "Apify", apify_result.get("data")
    else:
        winner = "Tie"
        # On a tie keep the richer of the two successful payloads
        if dm_ok and dm_score >= apify_score:
            merged = datamagnet_result.get("data")
        elif apify_ok:
            merged = apify_result.get("data")
        else:
            merged = None

    return {
        "winner": winner,
        "datamagnet_richness": dm_score,
        "apify_richness": apify_score,
        "merged": merged,
    }


def build_analysis(
    datamagnet_result: dict[str, Any],
    apify_result: dict[str, Any],
    winner: str,
) -> dict[str, Any]:
    """Strengths, weaknesses and recommendations for each source."""
    strengths: dict[str, list[str]] = {"datamagnet": [], "apify": []}
    weaknesses: dict[str, list[str]] = {"datamagnet": [], "apify": []}

    if datamagnet_result.get("success"):
        strengths["datamagnet"] += [
            "Rich company profile data",
            "Recent company posts and activity",
            "Detailed company metrics (followers, size, founding year)",
            "Company specialities and industry data",
        ]
    elif _upgrade_required(datamagnet_result):
        weaknesses["datamagnet"].append("Requires a paid plan for company data")
    else:
        weaknesses["datamagnet"].append("API connection failed")

    if apify_result.get("success"):
        strengths["apify"] += [
            "Company-level employee scraping",
            "No cookies or credentials required",
        ]
    else:
        weaknesses["apify"].append("API connection or scraping failed")

    recommendations = {
        "DataMagnet": "DataMagnet provides significantly richer data",
        "Apify": "Apify is more accessible for testing and development",
    }.get(winner, "Both services have different strengths")

    return {"strengths": strengths, "weaknesses": weaknesses, "recommendations": [recommendations]}


def build_summary(
    datamagnet_result: dict[str, Any],
    apify_result: dict[str, Any],
    comparison: dict[str, Any],
) -> dict[str, str]:
    dm_ok = bool(datamagnet_result.get("success"))
    apify_ok = bool(apify_result.get("success"))
    if dm_ok:
        dm_status = "Success"
    elif _upgrade_required(datamagnet_result):
        dm_status = "Upgrade Required"
    else:
        dm_status = "Failed"
    return {
        "datamagnet_status": dm_status,
        "apify_status": "Success" if apify_ok else "Failed",
        "recommended_service": comparison["winner"],
        "data_quality_winner": (
            "DataMagnet" if comparison["datamagnet_richness"] > comparison["apify_richness"] else "Apify"
        ),
        "accessibility_winner": "Apify" if apify_ok and not dm_ok else "DataMagnet",
    }


def _upgrade_required(result: dict[str, Any]) -> bool:
    error = (result.get("error") or "").lower()
    return "402" in error or "upgrade" in error or "plan" in error


def employee_match_confidence(employees: list[dict[str, Any]], company_name: str) -> int:
    """Percentage of scraped employees whose position or headline names the company."""
    if not employees:
        return 0
    target = company_name.lower()
    matches = sum(
        1 for e in employees
        if target in (e.get("current_position") or "").lower()
        or target in (e.get("headline") or "").lower()
    )
    return round(matches / len(employees) * 100)


def company_name_from_url(url: str) -> str:
    """'https://www.linkedin.com/company/acme-corp/' → 'acme corp'."""
    slug = url.rstrip("/").rsplit("/", 1)[-1]
    return slug.replace("-", " ").strip()


async def _timed(name: str, call: Callable[[], Awaitable[Any]]) -> dict[str, Any]:
    """Run one vendor call, capturing success, error and duration."""
    started = time.monotonic()
    try:
        data = await call()
        if isinstance(data, dict) and isinstance(data.get("message"), dict):
            data = data["message"]
        return {
            "success": True,
            "data": data,
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
    except Exception as exc:
        log.warning("richness.source.failed", source=name, error=str(exc))
        return {
            "success": False,
            "data": None,
            "error": str(exc),
            "duration_ms": int((time.monotonic() - started) * 1000),
        }


async def run_comparison(
    url: str,
    kind: str = "company",
    company_name: str | None = None,
    company_domain: str | None = None,
    max_employees: int = COMPARISON_EMPLOYEES,
) -> dict[str, Any]:
    """Fetch `url` from DataMagnet and Apify concurrently and compare them.

    For companies Apify runs its employee scrape, so its side is scored on
    the employee list and reports employee_count, total_found and a
    company-match confidence.
    """
    from quest.providers import apify, datamagnet

    if kind not in ("company", "profile"):
        raise ValueError(f"Unknown richness kind: {kind}")

    apify_kind = kind
    if kind == "company":
        name = company_name or company_name_from_url(url)
        if not name:
            raise ValueError("company_name is required")
        domain = company_domain or f"{name.lower().replace(' ', '')}.com"

        async def apify_call() -> dict[str, Any]:
            employees = await apify.scrape_company_employees(name, domain, max_employees)
            return {
                "employees": employees,
                "total_found": len(employees),
                "confidence": employee_match_confidence(employees, name),
            }

        dm_call = lambda: datamagnet.company(url)  # noqa: E731
        apify_kind = "employees"
    else:
        dm_call = lambda: datamagnet.person(url)  # noqa: E731
        apify_call = lambda: apify.scrape_profile(url)  # noqa: E731

    dm_result, apify_result = await asyncio.gather(
        _timed("datamagnet", dm_call),
        _timed("apify", apify_call),
    )
    comparison = compare_sources(dm_result, apify_result, kind, apify_kind=apify_kind)
    dm_result["richness"] = comparison["datamagnet_richness"]
    apify_result["richness"] = comparison["apify_richness"]
    if kind == "company" and apify_result["success"]:
        apify_result["employee_count"] = len(apify_result["data"]["employees"])
        apify_result["total_found"] = apify_result["data"]["total_found"]
        apify_result["confidence"] = apify_result["data"]["confidence"]

    log.info(
        "richness.compare",
        url=url,
        kind=kind,
        winner=comparison["winner"],
        datamagnet=comparison["datamagnet_richness"],
        apify=comparison["apify_richness"],
    )
    return {
        "url": url,
        "kind": kind,
        "datamagnet": dm_result,
        "apify": apify_result,
        "comparison": {
            **comparison,
            **build_analysis(dm_result, apify_result, comparison["winner"]),
        },
        "summary": build_summary(dm_result, apify_result, comparison),
    }
