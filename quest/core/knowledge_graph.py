"""KnowledgeGraph — Neo4j relationship layer for companies, people and users.

Works alongside pgvector (semantic search) to provide relationship awareness.
pgvector answers "what is similar?" — Neo4j answers "who is connected to whom?"

Connection: bolt://localhost:7687
Schema: see the reference block below.
"""

import structlog
from typing import Any

from neo4j import AsyncGraphDatabase, AsyncDriver

log = structlog.get_logger()


# ─────────────────────── Schema Reference ─────────────────────────────────────
#
# Node labels:
#   Company {name, domain, linkedin_url, industry, employee_count, data_completeness}
#   Person  {linkedin_url, name, title, department, level, data_quality}
#   Skill   {name, category}
#   User    {user_id}
#   Trinity {user_id, quest, service, pledge, trinity_type, quest_seal}
#
# Relationship types:
#   Person -[WORKS_AT {title, department, level}]-> Company
#   Person -[REPORTS_TO|MANAGES|PEER|WORKS_WITH {confidence, source}]-> Person
#   User   -[HAS_SKILL {proficiency}]-> Skill
#   User   -[HAS_TRINITY]-> Trinity
# ──────────────────────────────────────────────────────────────────────────────

PERSON_RELATIONSHIPS: dict[str, str] = {
    "reports_to": "REPORTS_TO",
    "manages": "MANAGES",
    "peer": "PEER",
    "works_with": "WORKS_WITH",
}

# Visualization colours by level, matching the company network UI legend
LEVEL_COLORS: dict[str, str] = {
    "C-Suite": "#EF4444",
    "VP": "#F97316",
    "Director": "#EAB308",
    "Manager": "#22C55E",
    "IC": "#3B82F6",
}


class KnowledgeGraph:
    """Neo4j async interface for Quest's company and people graph."""

    def __init__(self, uri: str | None = None, user: str | None = None,
                 password: str | None = None):
        from config.settings import get_settings
        settings = get_settings()
        self._uri = uri or settings.neo4j_uri
        self._user = user or settings.neo4j_user
        self._password = password or settings.neo4j_password
        self._driver: AsyncDriver | None = None

    async def connect(self) -> None:
        if self._driver is None:
            self._driver = AsyncGraphDatabase.driver(
                self._uri, auth=(self._user, self._password),
            )
            await self._driver.verify_connectivity()
            log.info("knowledge_graph.connected", uri=self._uri)

    async def close(self) -> None:
        if self._driver:
            await self._driver.close()
            self._driver = None

    async def _ensure_connected(self) -> AsyncDriver:
        if self._driver is None:
            await self.connect()
        return self._driver

    async def ensure_indexes(self) -> None:
        """Create indexes and constraints for all node types."""
        driver = await self._ensure_connected()
        async with driver.session() as s:
            constraints = [
                ("Company", "name"),
                ("Person", "linkedin_url"),
                ("Skill", "name"),
                ("User", "user_id"),
            ]
            for label, prop in constraints:
                await s.run(
                    f"CREATE CONSTRAINT IF NOT EXISTS "
                    f"FOR (n:{label}) REQUIRE n.{prop} IS UNIQUE"
                )
            await s.run("CREATE INDEX IF NOT EXISTS FOR (n:Trinity) ON (n.user_id)")
        log.info("knowledge_graph.indexes_ensured")

    # ─────────────────────── Company / People ─────────────────────────────────

    async def merge_company(self, name: str, **props) -> None:
        driver = await self._ensure_connected()
        async with driver.session() as s:
            await s.run(
                "MERGE (c:Company {name: $name}) SET c += $props",
                name=name, props=props,
            )

    async def merge_employee(self, company_name: str, linkedin_url: str, name: str,
                             title: str = "", department: str = "",
                             level: str = "IC", **props) -> None:
        driver = await self._ensure_connected()
        async with driver.session() as s:
            await s.run(
                "MERGE (p:Person {linkedin_url: $url}) "
                "SET p.name = $name, p.title = $title, p.department = $department, "
                "    p.level = $level "
                "SET p += $props "
                "WITH p "
                "MERGE (c:Company {name: $company}) "
                "MERGE (p)-[w:WORKS_AT]->(c) "
                "SET w.title = $title, w.department = $department, w.level = $level",
                url=linkedin_url, name=name, title=title, department=department,
                level=level, company=company_name, props=props,
            )

    async def link_people(self, source_url: str, target_url: str,
                          relationship_type: str, confidence: float,
                          verification_source: str) -> None:
        rel = PERSON_RELATIONSHIPS.get(relationship_type)
        if rel is None:
            raise ValueError(f"Unknown relationship type: {relationship_type}")
        driver = await self._ensure_connected()
        async with driver.session() as s:
            await s.run(
                "MERGE (a:Person {linkedin_url: $source}) "
                "MERGE (b:Person {linkedin_url: $target}) "
                f"MERGE (a)-[r:{rel}]->(b) "
                "SET r.confidence = $confidence, r.source = $source_type",
                source=source_url, target=target_url, confidence=confidence,
                source_type=verification_source,
            )

    async def store_company_intelligence(self, company) -> dict[str, int]:
        """Persist a HybridCompanyData result (company, employees, relationships)."""
        await self.merge_company(
            company.company_name,
            domain=company.company_domain,
            linkedin_url=company.linkedin_url,
            employee_count=company.total_employees,
            data_completeness=company.data_completeness,
        )
        relationships = 0
        for emp in company.employees:
            await self.merge_employee(
                company.company_name,
                linkedin_url=emp.linkedin_url,
                name=emp.name,
                title=emp.title or "",
                department=emp.inferred_department or emp.department or "",
                level=emp.inferred_level or "IC",
                data_quality=emp.data_quality,
            )
        for emp in company.employees:
            for rel in emp.verified_relationships:
                await self.link_people(
                    emp.linkedin_url, rel.target_person_id, rel.relationship_type,
                    rel.confidence, rel.verification_source,
                )
                relationships += 1
        log.info(
            "knowledge_graph.company_stored",
            company=company.company_name,
            employees=len(company.employees),
            relationships=relationships,
        )
        return {"employees": len(company.employees), "relationships": relationships}

    # ─────────────────────── Users ────────────────────────────────────────────

    async def merge_user_skill(self, user_id: str, skill: str, category: str,
                               proficiency: str = "intermediate") -> None:
        driver = await self._ensure_connected()
        async with driver.session() as s:
            await s.run(
                "MERGE (u:User {user_id: $user_id}) "
                "MERGE (k:Skill {name: $skill}) SET k.category = $category "
                "MERGE (u)-[h:HAS_SKILL]->(k) SET h.proficiency = $proficiency",
                user_id=user_id, skill=skill, category=category, proficiency=proficiency,
            )

    async def merge_trinity(self, user_id: str, quest: str, service: str, pledge: str,
                            trinity_type: str, quest_seal: str) -> None:
        driver = await self._ensure_connected()
        async with driver.session() as s:
            await s.run(
                "MERGE (u:User {user_id: $user_id}) "
                "MERGE (t:Trinity {user_id: $user_id}) "
                "SET t.quest = $quest, t.service = $service, t.pledge = $pledge, "
                "    t.trinity_type = $trinity_type, t.quest_seal = $quest_seal "
                "MERGE (u)-[:HAS_TRINITY]->(t)",
                user_id=user_id, quest=quest, service=service, pledge=pledge,
                trinity_type=trinity_type, quest_seal=quest_seal,
            )

    # ─────────────────────── Query Operations ─────────────────────────────────

    async def company_network(self, company_name: str) -> dict[str, list[dict]]:
        """Return {nodes, links} for a company's people graph (visualization)."""
        driver = await self._ensure_connected()
        async with driver.session() as s:
            people_result = await s.run(
                "MATCH (p:Person)-[w:WORKS_AT]->(c:Company {name: $name}) "
                "RETURN p.linkedin_url AS id, p.name AS name, w.title AS title, "
                "       w.department AS department, w.level AS level",
                name=company_name,
            )
            people = [dict(r) async for r in people_result]

            rels_result = await s.run(
                "MATCH (a:Person)-[:WORKS_AT]->(:Company {name: $name}) "
                "MATCH (a)-[r:REPORTS_TO|MANAGES|PEER|WORKS_WITH]->(b:Person) "
                "RETURN a.linkedin_url AS source, b.linkedin_url AS target, "
                "       type(r) AS type, r.confidence AS confidence",
                name=company_name,
            )
            rels = [dict(r) async for r in rels_result]

        nodes: list[dict] = [{
            "id": f"company-{company_name}",
            "name": company_name,
            "type": "company",
            "size": 30,
            "color": "#FFFFFF",
        }]
        links: list[dict] = []
        for p in people:
            level = p.get("level") or "IC"
            nodes.append({
                "id": p["id"],
                "name": p["name"],
                "title": p.get("title"),
                "department": p.get("department"),
                "type": "person",
                "size": 20 if level in ("C-Suite", "VP") else 10,
                "color": LEVEL_COLORS.get(level, LEVEL_COLORS["IC"]),
            })
            links.append({"source": p["id"], "target": nodes[0]["id"], "type": "WORKS_AT", "value": 1})
        for r in rels:
            links.append({
                "source": r["source"],
                "target": r["target"],
                "type": r["type"],
                "value": r.get("confidence") or 0.5,
            })
        return {"nodes": nodes, "links": links}

    async def entity_search(self, companies: list[str] | None = None,
                            people: list[str] | None = None,
                            skills: list[str] | None = None,
                            limit: int = 20) -> list[dict]:
        """Look up people by company, name or skill for agent graph search."""
        driver = await self._ensure_connected()
        async with driver.session() as s:
            result = await s.run(
                "MATCH (p:Person)-[w:WORKS_AT]->(c:Company) "
                "WHERE any(x IN $companies WHERE toLower(c.name) CONTAINS toLower(x)) "
                "   OR any(x IN $people WHERE toLower(p.name) CONTAINS toLower(x)) "
                "   OR any(x IN $skills WHERE toLower(coalesce(p.title, '')) CONTAINS toLower(x)) "
                "OPTIONAL MATCH (p)-[r:REPORTS_TO|MANAGES|PEER|WORKS_WITH]-(o:Person) "
                "RETURN p.name AS name, w.title AS title, w.level AS level, "
                "       c.name AS company, "
                "       collect(DISTINCT {name: o.name, type: type(r)})[..5] AS connections "
                "LIMIT $limit",
                companies=companies or [], people=people or [], skills=skills or [],
                limit=limit,
            )
            return [dict(r) async for r in result]

    async def get_graph_stats(self) -> dict:
        """Return node and relationship counts by type."""
        driver = await self._ensure_connected()
        async with driver.session() as s:
            nodes_result = await s.run(
                "MATCH (n) RETURN labels(n)[0] as label, count(n) as count "
                "ORDER BY count DESC"
            )
            nodes = {r["label"]: r["count"] async for r in nodes_result}

            rels_result = await s.run(
                "MATCH ()-[r]->() RETURN type(r) as type, count(r) as count "
                "ORDER BY count DESC"
            )
            rels = {r["type"]: r["count"] async for r in rels_result}

            return {"nodes": nodes, "relationships": rels}


_graph: KnowledgeGraph | None = None


def get_graph() -> KnowledgeGraph:
    """Process-wide KnowledgeGraph (driver connects lazily)."""
    global _graph
    if _graph is None:
        _graph = KnowledgeGraph()
    return _graph
