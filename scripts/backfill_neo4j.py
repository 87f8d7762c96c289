#!/usr/bin/env python3
"""Backfill the Neo4j graph and the agent-search vector store from PostgreSQL.

Migrates: company_enrichments (hybrid intelligence payloads),
          user_profiles surface skills, active trinity statements

Each hybrid employee is also indexed as a text document so agent search's
vector side can find people by title and department.

Run: PYTHONPATH=. python scripts/backfill_neo4j.py [--skip-vectors]
"""
import argparse
import asyncio
from typing import Any

import structlog

log = structlog.get_logger()


async def backfill(index_vectors: bool = True) -> dict[str, Any]:
    from pydantic import ValidationError

    from quest.core.database import QuestDB
    from quest.core.embeddings import get_embeddings
    from quest.core.knowledge_graph import KnowledgeGraph
    from quest.intelligence.hybrid import HybridCompanyData
    from quest.repo.skills import categorize_skill

    db = QuestDB()
    kg = KnowledgeGraph()
    await kg.connect()
    await kg.ensure_indexes()

    stats: dict[str, int] = {}

    # ── Company intelligence ──────────────────────────────────────────────
    log.info("backfill.company_enrichments")
    rows = await db.list_company_enrichments(source="hybrid")
    companies = employees = relationships = documents = 0
    for r in rows:
        try:
            company = HybridCompanyData.model_validate(r["payload"])
        except ValidationError as exc:
            log.warning("backfill.company.invalid", company=r["company_name"], error=str(exc))
            continue
        result = await kg.store_company_intelligence(company)
        companies += 1
        employees += result["employees"]
        relationships += result["relationships"]

        if index_vectors and company.employees:
            texts = [_employee_text(company.company_name, e) for e in company.employees]
            vectors = await get_embeddings(texts)
            for emp, text, vec in zip(company.employees, texts, vectors):
                await db.store_text(text, vec, {
                    "type": "employee",
                    "company": company.company_name,
                    "linkedin_url": emp.linkedin_url,
                })
                documents += 1
    stats["companies"] = companies
    stats["employees"] = employees
    stats["relationships"] = relationships
    stats["documents"] = documents

    # ── User skills ───────────────────────────────────────────────────────
    log.info("backfill.user_skills")
    count = 0
    for profile in await db.list_profiles():
        for skill in (profile.get("surface_repo") or {}).get("skills") or []:
            name = skill if isinstance(skill, str) else skill.get("name")
            if not name:
                continue
            category = categorize_skill(name) if isinstance(skill, str) else (
                skill.get("category") or categorize_skill(name)
            )
            proficiency = "intermediate" if isinstance(skill, str) else (
                skill.get("proficiency") or "intermediate"
            )
            await kg.merge_user_skill(profile["user_id"], name, category, proficiency)
            count += 1
    stats["user_skills"] = count

    # ── Trinity statements ────────────────────────────────────────────────
    log.info("backfill.trinity")
    rows = await db.list_active_trinities()
    for r in rows:
        await kg.merge_trinity(
            r["user_id"], r["quest"], r["service"], r["pledge"],
            trinity_type=r["trinity_type"], quest_seal=r["quest_seal"],
        )
    stats["trinity_statements"] = len(rows)

    # ── Final stats ───────────────────────────────────────────────────────
    await db.close()
    graph_stats = await kg.get_graph_stats()
    await kg.close()

    log.info("backfill.complete", pg_stats=stats, neo4j_stats=graph_stats)
    print("\n=== BACKFILL COMPLETE ===")
    print("PostgreSQL → Neo4j migration:")
    for table, n in sorted(stats.items()):
        print(f"  {table}: {n}")
    print("\nNeo4j graph:")
    for label, n in sorted(graph_stats["nodes"].items()):
        print(f"  {label}: {n} nodes")
    for rel_type, n in sorted(graph_stats["relationships"].items()):
        print(f"  {rel_type}: {n} relationships")
    return {"pg": stats, "neo4j": graph_stats}


def _employee_text(company_name: str, employee) -> str:
    parts = [f"{employee.name}, {employee.title or 'Employee'} at {company_name}."]
    department = employee.inferred_department or employee.department
    if department:
        parts.append(f"Department: {department}.")
    if employee.inferred_level:
        parts.append(f"Level: {employee.inferred_level}.")
    if employee.location:
        parts.append(f"Location: {employee.location}.")
    return " ".join(parts)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--skip-vectors", action="store_true", help="do not embed employees")
    args = parser.parse_args()
    asyncio.run(backfill(index_vectors=not args.skip_vectors))
