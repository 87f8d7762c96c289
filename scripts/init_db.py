#!/usr/bin/env python3
"""Create the PostgreSQL schema, Neo4j indexes and the base coaching prompts.

Idempotent: every statement is CREATE ... IF NOT EXISTS or an upsert.

Run: PYTHONPATH=. python scripts/init_db.py
"""
import asyncio

import structlog

log = structlog.get_logger()


async def init() -> None:
    from quest.core.database import QuestDB
    from quest.core.knowledge_graph import KnowledgeGraph
    from quest.prompts.router import PromptRouter

    db = QuestDB()
    await db.init_schema()
    log.info("init_db.schema_ready")

    kg = KnowledgeGraph()
    try:
        await kg.ensure_indexes()
        log.info("init_db.graph_indexes_ready")
    except Exception as exc:
        log.warning("init_db.graph_unavailable", error=str(exc))
    finally:
        await kg.close()

    seeded = await PromptRouter(db=db).seed_base_prompts()
    log.info("init_db.prompts_seeded", count=len(seeded))
    await db.close()


if __name__ == "__main__":
    asyncio.run(init())
