"""Company intelligence: hybrid build, vendor richness comparison, Apollo smart enrichment."""
from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from quest.api.auth import get_current_user
from quest.api.deps import get_db, get_graph
from quest.intelligence import company_insights, hybrid, richness

log = structlog.get_logger()

router = APIRouter(tags=["intelligence"])


class CompanyIntelligenceRequest(BaseModel):
    company_name: str
    company_domain: str = ""
    max_employees: int = Field(default=100, ge=1, le=1000)
    use_datamagnet_for_all: bool = False
    target_roles: list[str] = []
    min_data_quality: int = Field(default=0, ge=0, le=100)
    store_in_graph: bool = False


class CompareRequest(BaseModel):
    url: str
    kind: Literal["company", "profile"] = "company"
    company_name: Optional[str] = None
    company_domain: Optional[str] = None


class SmartEnrichRequest(BaseModel):
    company_name: str
    force_refresh: bool = False


@router.post("/intelligence/company")
async def company_intelligence(
    request: CompanyIntelligenceRequest,
    user_id: str = Depends(get_current_user),
    db=Depends(get_db),
    graph=Depends(get_graph),
) -> dict:
    company = await hybrid.build_company_intelligence(
        request.company_name,
        request.company_domain,
        max_employees=request.max_employees,
        use_datamagnet_for_all=request.use_datamagnet_for_all,
        target_roles=request.target_roles,
        min_data_quality=request.min_data_quality,
    )
    payload = company.model_dump(mode="json")
    await db.upsert_company_enrichment(company.company_name, "hybrid", payload, company.total_employees)

    graph_stats = None
    if request.store_in_graph:
        try:
            graph_stats = await graph.store_company_intelligence(company)
        except Exception as exc:
            log.warning("intelligence.graph_store.failed", company=company.company_name, error=str(exc))

    log.info("intelligence.company.built", user_id=user_id, company=company.company_name)
    return {"success": True, "data": payload, "graph": graph_stats}


@router.post("/intelligence/compare")
async def compare_sources(
    request: CompareRequest,
    user_id: str = Depends(get_current_user),
) -> dict:
    return await richness.run_comparison(
        request.url, request.kind,
        company_name=request.company_name, company_domain=request.company_domain,
    )


@router.post("/enrich/company-smart")
async def company_smart_enrich(
    request: SmartEnrichRequest,
    user_id: str = Depends(get_current_user),
    db=Depends(get_db),
) -> dict:
    return await company_insights.smart_enrich(
        request.company_name, user_id, force_refresh=request.force_refresh, db=db,
    )
