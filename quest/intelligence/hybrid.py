"""
Hybrid company intelligence.

Apify does cheap bulk employee discovery; DataMagnet enriches the key people
(executives and target roles) with recommendations and "people also viewed".
Recommendations become verified relationships, also-viewed peers at the same
company become lower-confidence peer links, and the whole thing is scored
for completeness.

Pipeline:
    overview → discover → enrich key employees → relationships
             → network clusters → insights → completeness → quality filter
"""
import asyncio
import re
from datetime import datetime, timezone
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

SeniorityLevel = Literal["C-Suite", "VP", "Director", "Manager", "IC"]
RelationshipType = Literal["reports_to", "manages", "peer", "works_with"]
VerificationSource = Literal["recommendation", "manual", "email_domain"]

APIFY_BASE_QUALITY = 20
ALSO_VIEWED_SIMILARITY = 0.75
_C_SUITE = re.compile(r"\b(ceo|cto|cfo)\b")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Models
# ─────────────────────────────────────────────────────────────────────────────

class EmployeeSources(BaseModel):
    apify: bool = False
    datamagnet: bool = False
    email_verified: bool = False
    manually_verified: bool = False


class Recommendation(BaseModel):
    recommender_name: str
    recommender_title: str = ""
    relationship: str
    context: str = ""


class AlsoViewed(BaseModel):
    name: str
    title: str = ""
    company: str = ""
    linkedin_url: str = ""
    similarity: float = ALSO_VIEWED_SIMILARITY


class VerifiedRelationship(BaseModel):
    target_person_id: str
    relationship_type: RelationshipType
    verification_source: VerificationSource
    confidence: float


class HybridEmployeeData(BaseModel):
    linkedin_url: str
    name: str
    title: str | None = None
    department: str | None = None
    location: str | None = None
    email: str | None = None
    sources: EmployeeSources = Field(default_factory=EmployeeSources)
    recommendations: list[Recommendation] = Field(default_factory=list)
    also_viewed: list[AlsoViewed] = Field(default_factory=list)
    inferred_level: SeniorityLevel | None = None
    inferred_department: str | None = None
    verified_relationships: list[VerifiedRelationship] = Field(default_factory=list)
    data_quality: int = 0
    last_updated: datetime = Field(default_factory=_now)


class VerificationStats(BaseModel):
    manually_verified: int = 0
    email_verified: int = 0
    recommendation_verified: int = 0
    synthetic_only: int = 0


class HybridCompanyData(BaseModel):
    company_name: str
    company_domain: str
    linkedin_url: str
    employees: list[HybridEmployeeData]
    total_employees: int
    departments: dict[str, int]
    hierarchy_levels: dict[str, int]
    key_connectors: list[str]
    verification_stats: VerificationStats
    last_crawled: datetime = Field(default_factory=_now)
    data_completeness: int


# ─────────────────────────────────────────────────────────────────────────────
# Text heuristics
# ─────────────────────────────────────────────────────────────────────────────

def infer_seniority_level(title: str | None) -> SeniorityLevel:
    if not title:
        return "IC"
    lower = title.lower()
    if _C_SUITE.search(lower):
        return "C-Suite"
    if "vp " in lower or "vice president" in lower:
        return "VP"
    if "director" in lower:
        return "Director"
    if "manager" in lower or "lead" in lower:
        return "Manager"
    return "IC"


def parse_relationship_type(relationship: str, context: str) -> RelationshipType:
    """Direction of a recommendation, seen from the recommended person."""
    rel = (relationship or "").lower()
    ctx = (context or "").lower()
    if "managed directly" in rel or "reported to me" in ctx:
        return "manages"
    if "reported to" in rel or "my manager" in ctx:
        return "reports_to"
    if "worked with" in rel and "peer" in ctx:
        return "peer"
    return "works_with"


def extract_relationship_from_context(text: str) -> str:
    lower = (text or "").lower()
    if "managed directly" in lower or "direct report" in lower:
        return "managed directly"
    if "reported to" in lower or "my manager" in lower:
        return "reported to"
    if "worked with" in lower or "collaborated" in lower:
        return "worked with"
    if "mentored" in lower or "coached" in lower:
        return "mentored"
    if "advised" in lower or "consulted" in lower:
        return "advised"
    return "worked together"


# ─────────────────────────────────────────────────────────────────────────────
# Steps
# ─────────────────────────────────────────────────────────────────────────────

MOCK_EMPLOYEES = (
    ("John Doe", "Senior Software Engineer", "https://linkedin.com/in/johndoe", "Engineering", "IC"),
    ("Jane Smith", "Product Manager", "https://linkedin.com/in/janesmith", "Product", "Manager"),
    ("Mike Johnson", "Director of Engineering", "https://linkedin.com/in/mikejohnson", "Engineering", "Director"),
    ("Sarah Williams", "Marketing Manager", "https://linkedin.com/in/sarahwilliams", "Marketing", "Manager"),
    ("Tom Anderson", "Sales Representative", "https://linkedin.com/in/tomanderson", "Sales", "IC"),
)


def mock_employees(max_employees: int) -> list[HybridEmployeeData]:
    return [
        HybridEmployeeData(
            linkedin_url=url,
            name=name,
            title=title,
            department=dept,
            location="San Francisco, CA",
            sources=EmployeeSources(apify=True),
            inferred_level=level,
            inferred_department=dept,
            data_quality=APIFY_BASE_QUALITY,
        )
        for name, title, url, dept, level in MOCK_EMPLOYEES[:max(max_employees, 0)]
    ]


async def get_company_overview(company_name: str) -> dict[str, Any]:
    from quest.providers import datamagnet

    company_url = datamagnet.company_linkedin_url(company_name)
    try:
        data = await datamagnet.company(company_url)
    except Exception as exc:
        log.warning("hybrid.overview.fallback", company=company_name, error=str(exc))
        return {
            "linkedin_url": f"https://linkedin.com/company/{company_name.lower()}",
            "employee_count": 100,
        }

    message = data.get("message") if isinstance(data, dict) else None
    if isinstance(message, dict):
        return {
            "linkedin_url": company_url,
            "company_name": message.get("company_name"),
            "employee_count": message.get("employees") or 100,
            "industry": message.get("industry"),
            "location": message.get("location"),
            "description": message.get("description"),
        }
    return {"linkedin_url": company_url, "employee_count": 100}


async def discover_employees(
    company_name: str, company_domain: str, max_employees: int,
) -> list[HybridEmployeeData]:
    """Bulk discovery through Apify, falling back to demo employees."""
    from config.settings import get_settings
    from quest.providers import apify

    if not get_settings().apify_token:
        log.info("hybrid.apify.mock", company=company_name, reason="no token")
        return mock_employees(max_employees)

    try:
        scraped = await apify.scrape_company_employees(company_name, company_domain, max_employees)
    except Exception as exc:
        log.warning("hybrid.apify.fallback", company=company_name, error=str(exc))
        return mock_employees(max_employees)

    employees = []
    for emp in scraped:
        title = emp.get("current_position") or emp.get("headline")
        employees.append(HybridEmployeeData(
            linkedin_url=emp["profile_url"],
            name=emp.get("name") or "Unknown",
            title=title,
            department=emp.get("inferred_department"),
            location=emp.get("location"),
            sources=EmployeeSources(apify=True),
            inferred_level=infer_seniority_level(emp.get("current_position")),
            inferred_department=emp.get("inferred_department"),
            data_quality=APIFY_BASE_QUALITY,
        ))
    return employees


def is_key_employee(employee: HybridEmployeeData, target_roles: list[str] | tuple[str, ...]) -> bool:
    if employee.inferred_level in ("C-Suite", "VP"):
        return True
    title = (employee.title or "").lower()
    return any(role.lower() in title for role in target_roles)


async def enrich_with_datamagnet(employee: HybridEmployeeData) -> HybridEmployeeData:
    """DataMagnet person enrichment. Returns the employee unchanged on failure."""
    from quest.providers import datamagnet

    try:
        data = await datamagnet.person(employee.linkedin_url)
    except Exception as exc:
        log.warning("hybrid.enrich.failed", name=employee.name, error=str(exc))
        return employee

    recommendations = []
    for rec in data.get("recommendations") or []:
        text = rec.get("recommendation") or rec.get("text") or ""
        recommendations.append(Recommendation(
            recommender_name=rec.get("recommender_name") or rec.get("name") or "Unknown",
            recommender_title=rec.get("recommender_title") or rec.get("title") or "",
            relationship=extract_relationship_from_context(text),
            context=text,
        ))

    also_viewed = [
        AlsoViewed(
            name=person.get("name") or person.get("display_name") or "Unknown",
            title=person.get("title") or person.get("headline") or "",
            company=person.get("company") or person.get("current_company") or "",
            linkedin_url=person.get("url") or person.get("profile_url") or "",
        )
        for person in data.get("people_also_viewed") or []
    ]

    return employee.model_copy(update={
        "sources": employee.sources.model_copy(update={"datamagnet": True}),
        "title": data.get("job_title") or employee.title,
        "department": data.get("department") or employee.department,
        "location": data.get("location") or employee.location,
        "recommendations": recommendations,
        "also_viewed": also_viewed,
        "data_quality": min(80 + 5 * len(recommendations), 95),
    })


async def enrich_key_employees(
    employees: list[HybridEmployeeData], target_roles: list[str] | tuple[str, ...],
) -> list[HybridEmployeeData]:
    key_idx = [i for i, emp in enumerate(employees) if is_key_employee(emp, target_roles)]
    log.info("hybrid.enrich.start", key_employees=len(key_idx))
    if not key_idx:
        return employees

    enriched = await asyncio.gather(*(enrich_with_datamagnet(employees[i]) for i in key_idx))
    result = list(employees)
    for i, emp in zip(key_idx, enriched):
        result[i] = emp
    return result


def extract_relationships(employees: list[HybridEmployeeData]) -> list[HybridEmployeeData]:
    """Turn recommendations into verified relationships with other employees."""
    for employee in employees:
        if not employee.recommendations:
            continue
        relationships = []
        for rec in employee.recommendations:
            recommender = next(
                (
                    e for e in employees
                    if e.name == rec.recommender_name
                    or (rec.recommender_title and rec.recommender_title in (e.title or ""))
                ),
                None,
            )
            if recommender is None:
                continue
            relationships.append(VerifiedRelationship(
                target_person_id=recommender.linkedin_url,
                relationship_type=parse_relationship_type(rec.relationship, rec.context),
                verification_source="recommendation",
                confidence=0.9,
            ))
        employee.verified_relationships = relationships
    return employees


def analyze_network_clusters(employees: list[HybridEmployeeData]) -> list[HybridEmployeeData]:
    """Peer links to also-viewed people working at the employee's company."""
    for employee in employees:
        parts = (employee.title or "").split(" at ")
        if len(parts) < 2:
            continue
        employer = parts[1]
        for viewed in employee.also_viewed:
            if viewed.company == employer:
                employee.verified_relationships.append(VerifiedRelationship(
                    target_person_id=viewed.linkedin_url,
                    relationship_type="peer",
                    verification_source="email_domain",
                    confidence=0.5 + viewed.similarity * 0.3,
                ))
    return employees


def calculate_insights(employees: list[HybridEmployeeData]) -> dict[str, Any]:
    departments: dict[str, int] = {}
    levels: dict[str, int] = {}
    stats = VerificationStats()

    for emp in employees:
        dept = emp.inferred_department or "Unknown"
        departments[dept] = departments.get(dept, 0) + 1
        level = emp.inferred_level or "IC"
        levels[level] = levels.get(level, 0) + 1

        if emp.sources.manually_verified:
            stats.manually_verified += 1
        elif emp.sources.email_verified:
            stats.email_verified += 1
        elif emp.sources.datamagnet and emp.recommendations:
            stats.recommendation_verified += 1
        else:
            stats.synthetic_only += 1

    ranked = sorted(employees, key=lambda e: len(e.verified_relationships), reverse=True)
    return {
        "departments": departments,
        "hierarchy_levels": levels,
        "key_connectors": [e.name for e in ranked[:5]],
        "verification_stats": stats,
    }


def calculate_completeness(employees: list[HybridEmployeeData]) -> int:
    if not employees:
        return 0
    total = 0
    for emp in employees:
        score = 0
        if emp.name:
            score += 10
        if emp.title:
            score += 10
        if emp.department:
            score += 10
        if emp.sources.datamagnet:
            score += 20
        if emp.recommendations:
            score += 20
        if emp.verified_relationships:
            score += 20
        if emp.sources.manually_verified:
            score += 10
        total += score
    return round(total / len(employees))


# ─────────────────────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────────────────────

async def build_company_intelligence(
    company_name: str,
    company_domain: str,
    max_employees: int = 100,
    use_datamagnet_for_all: bool = False,
    target_roles: list[str] | tuple[str, ...] = (),
    min_data_quality: int = 0,
) -> HybridCompanyData:
    if not company_name or not company_name.strip():
        raise ValueError("company_name is required")

    log.info("hybrid.build.start", company=company_name, max_employees=max_employees)
    overview = await get_company_overview(company_name)

    if use_datamagnet_for_all:
        # Premium per-person mode has no bulk source to iterate yet
        employees: list[HybridEmployeeData] = []
    else:
        employees = await discover_employees(company_name, company_domain, max_employees)
        employees = await enrich_key_employees(employees, target_roles)

    employees = extract_relationships(employees)
    employees = analyze_network_clusters(employees)
    insights = calculate_insights(employees)
    completeness = calculate_completeness(employees)

    kept = [e for e in employees if e.data_quality >= min_data_quality]
    log.info(
        "hybrid.build.done",
        company=company_name,
        employees=len(kept),
        filtered=len(employees) - len(kept),
        completeness=completeness,
    )
    return HybridCompanyData(
        company_name=company_name,
        company_domain=company_domain,
        linkedin_url=overview["linkedin_url"],
        employees=kept,
        total_employees=len(kept),
        data_completeness=completeness,
        **insights,
    )
