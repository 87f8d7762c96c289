"""Unit tests for company intelligence — richness scoring, hybrid build, Apollo cache."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from quest.intelligence import company_insights, hybrid, richness
from quest.intelligence.hybrid import (
    AlsoViewed,
    EmployeeSources,
    HybridEmployeeData,
    Recommendation,
)


def _employee(name, title, **kwargs):
    return HybridEmployeeData(
        linkedin_url=f"https://linkedin.com/in/{name.lower().replace(' ', '')}",
        name=name,
        title=title,
        **kwargs,
    )


# ─────────────────────── Richness ─────────────────────────────────────────────


def test_richness_counts_present_fields():
    data = {"name": "Acme", "description": "", "employees": 0, "foundedyear": 1999, "locations": ["SF"]}
    assert richness.calculate_data_richness(data, "company") == round(3 / 13 * 100)


def test_richness_empty_payload():
    assert richness.calculate_data_richness(None, "profile") == 0


def test_richness_unknown_kind():
    with pytest.raises(ValueError):
        richness.calculate_data_richness({"name": "x"}, "job")


def test_compare_datamagnet_wins_when_richer():
    result = richness.compare_sources(
        {"success": True, "data": {"name": "a", "headline": "b"}},
        {"success": True, "data": {"name": "a"}},
        "profile",
    )
    assert result["winner"] == "DataMagnet"
    assert result["merged"] == {"name": "a", "headline": "b"}


def test_compare_apify_wins_only_when_datamagnet_failed():
    result = richness.compare_sources(
        {"success": False, "data": None},
        {"success": True, "data": {"name": "a"}},
        "profile",
    )
    assert result["winner"] == "Apify"
    assert result["datamagnet_richness"] == 0


def test_compare_richer_apify_is_a_tie_keeping_richer_payload():
    apify_data = {"name": "a", "headline": "b", "skills": ["x"]}
    result = richness.compare_sources(
        {"success": True, "data": {"name": "a"}},
        {"success": True, "data": apify_data},
        "profile",
    )
    assert result["winner"] == "Tie"
    assert result["merged"] == apify_data


def test_compare_both_failed():
    result = richness.compare_sources({"success": False}, {"success": False}, "company")
    assert result == {"winner": "Tie", "datamagnet_richness": 0, "apify_richness": 0, "merged": None}


@pytest.mark.asyncio
async def test_run_comparison_company_unwraps_message():
    dm = AsyncMock(return_value={"message": {"name": "Acme", "industry": "Software"}})
    scrape = AsyncMock(side_effect=RuntimeError("APIFY_TOKEN is not configured"))
    with patch("quest.providers.datamagnet.company", dm), \
            patch("quest.providers.apify.scrape_company_employees", scrape):
        result = await richness.run_comparison("https://linkedin.com/company/acme")
    assert result["datamagnet"]["data"] == {"name": "Acme", "industry": "Software"}
    assert result["apify"]["success"] is False
    assert result["comparison"]["winner"] == "DataMagnet"
    assert result["summary"]["apify_status"] == "Failed"
    assert result["comparison"]["weaknesses"]["apify"] == ["API connection or scraping failed"]


@pytest.mark.asyncio
async def test_run_comparison_company_scrapes_employees_with_apify():
    employees = [
        {"profile_url": "u1", "name": "Ana", "current_position": "CTO at Acme Corp",
         "headline": "", "location": "SF", "inferred_department": "Engineering"},
        {"profile_url": "u2", "name": "Bo", "current_position": "Advisor",
         "headline": None, "location": None, "inferred_department": None},
    ]
    scrape = AsyncMock(return_value=employees)
    dm = AsyncMock(side_effect=RuntimeError("402 upgrade your plan"))
    with patch("quest.providers.datamagnet.company", dm), \
            patch("quest.providers.apify.scrape_company_employees", scrape):
        result = await richness.run_comparison("https://www.linkedin.com/company/acme-corp/")

    scrape.assert_awaited_once_with("acme corp", "acmecorp.com", richness.COMPARISON_EMPLOYEES)
    apify = result["apify"]
    assert apify["employee_count"] == 2
    assert apify["total_found"] == 2
    assert apify["confidence"] == 50
    # Ana has 5 of 6 employee fields, Bo has 3 of 6
    assert apify["richness"] == round((round(5 / 6 * 100) + round(3 / 6 * 100)) / 2)
    assert result["comparison"]["winner"] == "Apify"
    assert result["comparison"]["recommendations"] == ["Apify is more accessible for testing and development"]
    assert result["summary"] == {
        "datamagnet_status": "Upgrade Required",
        "apify_status": "Success",
        "recommended_service": "Apify",
        "data_quality_winner": "Apify",
        "accessibility_winner": "Apify",
    }


@pytest.mark.asyncio
async def test_run_comparison_uses_supplied_company_name():
    scrape = AsyncMock(return_value=[])
    with patch("quest.providers.datamagnet.company", AsyncMock(return_value={"name": "Acme"})), \
            patch("quest.providers.apify.scrape_company_employees", scrape):
        result = await richness.run_comparison(
            "https://linkedin.com/company/1234", company_name="Acme", company_domain="acme.io",
        )
    scrape.assert_awaited_once_with("Acme", "acme.io", richness.COMPARISON_EMPLOYEES)
    assert result["apify"]["confidence"] == 0
    assert result["apify"]["richness"] == 0
    assert result["comparison"]["winner"] == "DataMagnet"


def test_employee_match_confidence():
    employees = [{"current_position": "Engineer at Acme"}, {"headline": "acme alumni"}, {}]
    assert richness.employee_match_confidence(employees, "ACME") == 67
    assert richness.employee_match_confidence([], "Acme") == 0


@pytest.mark.asyncio
async def test_run_comparison_rejects_unknown_kind():
    with pytest.raises(ValueError):
        await richness.run_comparison("https://x", kind="job")


# ─────────────────────── Hybrid heuristics ────────────────────────────────────


@pytest.mark.parametrize("title,level", [
    ("CEO & Founder", "C-Suite"),
    ("VP of Sales", "VP"),
    ("Senior Vice President, Ops", "VP"),
    ("Director of Engineering", "Director"),
    ("Tech Lead", "Manager"),
    ("Software Engineer", "IC"),
    (None, "IC"),
])
def test_infer_seniority_level(title, level):
    assert hybrid.infer_seniority_level(title) == level


@pytest.mark.parametrize("relationship,context,expected", [
    ("managed directly", "", "manages"),
    ("worked with", "she reported to me for a year", "manages"),
    ("reported to", "", "reports_to"),
    ("worked with", "he was my manager", "reports_to"),
    ("worked with", "we were peers, a true peer", "peer"),
    ("worked together", "", "works_with"),
])
def test_parse_relationship_type(relationship, context, expected):
    assert hybrid.parse_relationship_type(relationship, context) == expected


@pytest.mark.parametrize("text,expected", [
    ("Jane was a direct report of mine", "managed directly"),
    ("I reported to Mike", "reported to"),
    ("We collaborated on launches", "worked with"),
    ("She mentored me", "mentored"),
    ("He advised our board", "advised"),
    ("Great person", "worked together"),
])
def test_extract_relationship_from_context(text, expected):
    assert hybrid.extract_relationship_from_context(text) == expected


def test_is_key_employee():
    assert hybrid.is_key_employee(_employee("A", "CTO", inferred_level="C-Suite"), [])
    assert hybrid.is_key_employee(_employee("B", "Staff Engineer"), ["engineer"])
    assert not hybrid.is_key_employee(_employee("C", "Designer"), ["engineer"])


def test_extract_relationships_matches_recommender_by_name():
    jane = _employee("Jane Smith", "Product Manager")
    mike = _employee("Mike Johnson", "Director", recommendations=[
        Recommendation(recommender_name="Jane Smith", relationship="managed directly"),
        Recommendation(recommender_name="Nobody", relationship="worked with"),
    ])
    hybrid.extract_relationships([jane, mike])
    assert len(mike.verified_relationships) == 1
    rel = mike.verified_relationships[0]
    assert rel.target_person_id == jane.linkedin_url
    assert rel.relationship_type == "manages"
    assert rel.confidence == 0.9


def test_extract_relationships_ignores_empty_recommender_title():
    untitled = _employee("Sam", None)
    emp = _employee("Alex", "Engineer", recommendations=[
        Recommendation(recommender_name="Unknown", recommender_title="", relationship="worked with"),
    ])
    hybrid.extract_relationships([untitled, emp])
    assert emp.verified_relationships == []


def test_network_clusters_link_also_viewed_at_same_employer():
    emp = _employee("Alex", "Engineer at Acme", also_viewed=[
        AlsoViewed(name="Peer", company="Acme", linkedin_url="https://linkedin.com/in/peer"),
        AlsoViewed(name="Other", company="Globex", linkedin_url="https://linkedin.com/in/other"),
    ])
    hybrid.analyze_network_clusters([emp])
    assert [r.target_person_id for r in emp.verified_relationships] == ["https://linkedin.com/in/peer"]
    assert emp.verified_relationships[0].confidence == pytest.approx(0.5 + 0.75 * 0.3)
    assert emp.verified_relationships[0].relationship_type == "peer"


def test_calculate_insights_buckets_verification():
    employees = [
        _employee("A", "CEO", inferred_level="C-Suite", inferred_department="Exec",
                  sources=EmployeeSources(manually_verified=True)),
        _employee("B", "Eng", sources=EmployeeSources(email_verified=True)),
        _employee("C", "Eng", sources=EmployeeSources(datamagnet=True), recommendations=[
            Recommendation(recommender_name="A", relationship="worked with"),
        ]),
        _employee("D", "Eng", sources=EmployeeSources(datamagnet=True)),
    ]
    insights = hybrid.calculate_insights(employees)
    stats = insights["verification_stats"]
    assert (stats.manually_verified, stats.email_verified, stats.recommendation_verified, stats.synthetic_only) == (1, 1, 1, 1)
    assert insights["departments"] == {"Exec": 1, "Unknown": 3}
    assert insights["hierarchy_levels"] == {"C-Suite": 1, "IC": 3}


def test_completeness_average():
    bare = _employee("A", None)
    rich = _employee("B", "Eng", department="Eng", sources=EmployeeSources(datamagnet=True))
    assert hybrid.calculate_completeness([bare, rich]) == round((10 + 50) / 2)
    assert hybrid.calculate_completeness([]) == 0


# ─────────────────────── Hybrid build ─────────────────────────────────────────


@pytest.fixture
def no_apify_token():
    settings = MagicMock(apify_token="")
    with patch("config.settings.get_settings", return_value=settings):
        yield


@pytest.mark.asyncio
async def test_build_with_mock_employees_enriches_key_people(no_apify_token):
    person = AsyncMock(return_value={
        "recommendations": [{"recommender_name": "Jane Smith", "recommendation": "I reported to Mike"}],
        "people_also_viewed": [],
    })
    with patch("quest.providers.datamagnet.company", AsyncMock(side_effect=RuntimeError("down"))), \
         patch("quest.providers.datamagnet.person", person):
        result = await hybrid.build_company_intelligence(
            "Acme", "acme.com", max_employees=5, target_roles=["Director"], min_data_quality=50,
        )

    person.assert_awaited_once_with("https://linkedin.com/in/mikejohnson")
    assert result.linkedin_url == "https://linkedin.com/company/acme"
    assert [e.name for e in result.employees] == ["Mike Johnson"]
    mike = result.employees[0]
    assert mike.data_quality == 85
    assert mike.verified_relationships[0].relationship_type == "reports_to"
    assert result.data_completeness == round((30 * 4 + 90) / 5)
    assert result.key_connectors[0] == "Mike Johnson"


@pytest.mark.asyncio
async def test_build_premium_mode_returns_no_employees(no_apify_token):
    with patch("quest.providers.datamagnet.company", AsyncMock(return_value={"message": {"employees": 10}})):
        result = await hybrid.build_company_intelligence("Acme", "acme.com", use_datamagnet_for_all=True)
    assert result.employees == []
    assert result.data_completeness == 0


@pytest.mark.asyncio
async def test_build_requires_company_name():
    with pytest.raises(ValueError):
        await hybrid.build_company_intelligence(" ", "acme.com")


# ─────────────────────── Apollo smart enrichment ──────────────────────────────


def test_build_insights_skips_locked_emails():
    people = [
        {"title": "CEO", "seniority": "c_suite", "departments": ["exec"], "city": "SF",
         "country": "US", "linkedin_url": "x", "email": company_insights.LOCKED_EMAIL},
        {"title": "CEO", "seniority": "c_suite", "departments": ["exec", "sales"], "email": "a@b.com"},
    ]
    insights = company_insights.build_insights(people)
    assert insights["total_people"] == 2
    assert insights["emails"] == 1
    assert insights["linkedin_profiles"] == 1
    assert insights["top_titles"] == [{"name": "CEO", "count": 2}]
    assert insights["departments"][0] == {"name": "exec", "count": 2}
    assert insights["top_locations"] == [{"name": "SF, US", "count": 1}]


@pytest.mark.parametrize("user_id,admin", [
    ("test-user-123", True),
    ("admin_jo", True),
    ("user_1", False),
    (None, False),
])
def test_is_admin(user_id, admin):
    assert company_insights.is_admin(user_id) is admin


@pytest.fixture
def db():
    return AsyncMock()


@pytest.mark.asyncio
async def test_smart_enrich_serves_fresh_cache(db):
    enriched = datetime.now(timezone.utc) - timedelta(days=2)
    db.get_company_enrichment.return_value = {"payload": {"people": []}, "last_enriched": enriched}
    search = AsyncMock()
    with patch("quest.providers.apollo.search_people", search):
        result = await company_insights.smart_enrich("Acme", "user_1", cache_days=30, db=db)
    assert result["status"] == "cached"
    assert result["cache_age_days"] == 2
    search.assert_not_called()


@pytest.mark.asyncio
async def test_smart_enrich_fetches_when_cache_expired(db):
    enriched = datetime.now(timezone.utc) - timedelta(days=45)
    db.get_company_enrichment.return_value = {"payload": {}, "last_enriched": enriched}
    db.upsert_company_enrichment.return_value = {"last_enriched": datetime.now(timezone.utc)}
    people = [{"title": "CTO"}, {"title": "VP"}]
    with patch("quest.providers.apollo.search_people", AsyncMock(return_value={"people": people})):
        result = await company_insights.smart_enrich("Acme", "user_1", cache_days=30, db=db)
    assert result["status"] == "fresh"
    assert result["data"]["insights"]["total_people"] == 2
    args = db.upsert_company_enrichment.await_args.args
    assert args[0:2] == ("Acme", "apollo")
    assert args[3] == 2


@pytest.mark.asyncio
async def test_smart_enrich_serves_stale_cache_on_vendor_failure(db):
    enriched = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=90)
    db.get_company_enrichment.return_value = {"payload": {"people": [1]}, "last_enriched": enriched}
    with patch("quest.providers.apollo.search_people", AsyncMock(side_effect=RuntimeError("429"))):
        result = await company_insights.smart_enrich("Acme", "user_1", cache_days=30, db=db)
    assert result["status"] == "stale"
    assert result["error"] == "429"


@pytest.mark.asyncio
async def test_smart_enrich_propagates_failure_without_cache(db):
    db.get_company_enrichment.return_value = None
    with patch("quest.providers.apollo.search_people", AsyncMock(side_effect=RuntimeError("down"))):
        with pytest.raises(RuntimeError):
            await company_insights.smart_enrich("Acme", "user_1", cache_days=30, db=db)


@pytest.mark.asyncio
async def test_smart_enrich_force_refresh_requires_admin(db):
    with pytest.raises(PermissionError):
        await company_insights.smart_enrich("Acme", "user_1", force_refresh=True, db=db)
    db.get_company_enrichment.assert_not_called()


@pytest.mark.asyncio
async def test_smart_enrich_requires_company(db):
    with pytest.raises(ValueError):
        await company_insights.smart_enrich("", "user_1", db=db)


class _EnrichmentTable:
    """company_enrichments keyed by (company_key, source)."""

    def __init__(self):
        self.rows = {}

    async def get_company_enrichment(self, company_name, source):
        return self.rows.get((company_name.strip().lower(), source))

    async def upsert_company_enrichment(self, company_name, source, payload, employee_count=0):
        row = {
            "company_name": company_name,
            "source": source,
            "payload": payload,
            "employee_count": employee_count,
            "last_enriched": datetime.now(timezone.utc),
        }
        self.rows[(company_name.strip().lower(), source)] = row
        return row


@pytest.mark.asyncio
async def test_smart_enrich_ignores_hybrid_rows():
    table = _EnrichmentTable()
    await table.upsert_company_enrichment("Acme", "hybrid", {"employees": [{"name": "x"}]}, 1)
    people = [{"title": "CTO"}]
    search = AsyncMock(return_value={"people": people})
    with patch("quest.providers.apollo.search_people", search):
        result = await company_insights.smart_enrich("Acme", "user_1", cache_days=30, db=table)

    assert result["status"] == "fresh"
    assert result["data"]["people"] == people
    search.assert_awaited_once()
    assert table.rows[("acme", "hybrid")]["payload"] == {"employees": [{"name": "x"}]}
    assert table.rows[("acme", "apollo")]["employee_count"] == 1


@pytest.mark.asyncio
async def test_smart_enrich_reads_apollo_cache_row(db):
    db.get_company_enrichment.return_value = None
    with patch("quest.providers.apollo.search_people", AsyncMock(return_value={"people": []})):
        await company_insights.smart_enrich("Acme", "user_1", cache_days=30, db=db)
    db.get_company_enrichment.assert_awaited_once_with("Acme", "apollo")
