"""
Coaching prompt router.

Prompts live in the coaching_prompts table with an embedding of
"name content tags". Selection ranks active prompts by
similarity × effectiveness_score, falls back to tag overlap, and finally to
the base prompt so a coaching session always gets a system prompt.
"""
import re
from enum import Enum
from typing import Any, Optional

import structlog

from quest.core.embeddings import get_embedding

log = structlog.get_logger()

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class PromptType(str, Enum):
    BASE = "base"
    SPECIALIZED = "specialized"
    COMPANY = "company"
    RELATIONSHIP = "relationship"


def render_template(content: str, variables: dict[str, Any] | None = None) -> str:
    """Replace {{var}} placeholders; unknown ones are left as they are."""
    values = variables or {}

    def sub(match: re.Match) -> str:
        key = match.group(1)
        return str(values[key]) if key in values else match.group(0)

    return _PLACEHOLDER.sub(sub, content)


BASE_PROMPTS: list[dict[str, Any]] = [
    {
        "prompt_type": PromptType.BASE.value,
        "context_tags": ["career", "general", "coaching"],
        "name": "Career Development Base",
        "content": (
            "You are {{coachName}}, an experienced career coach helping {{userName}} "
            "with their professional development.\n\n"
            "Core principles:\n"
            "- Be empathetic and supportive while providing actionable advice\n"
            "- Focus on {{userGoals}} as the primary objective\n"
            "- Adapt your communication style to match the user's needs\n"
            "- Keep responses conversational and under {{maxWords}} words for voice delivery\n\n"
            "Current context: {{conversationContext}}"
        ),
        "variables": {
            "coachName": "Alex",
            "userName": "the user",
            "userGoals": "career advancement",
            "maxWords": "150",
            "conversationContext": "general career discussion",
        },
    },
    {
        "prompt_type": PromptType.SPECIALIZED.value,
        "context_tags": ["marketing", "strategy", "campaigns"],
        "name": "Marketing Strategy Specialist",
        "content": (
            "As a marketing strategy expert, you bring deep expertise in:\n"
            "- Campaign development and optimization\n"
            "- Brand positioning and messaging\n"
            "- Customer acquisition and retention\n"
            "- Data-driven marketing decisions\n\n"
            "Focus area: {{marketingFocus}}\n"
            "Industry context: {{industryContext}}\n\n"
            "Provide insights that are both creative and analytically grounded."
        ),
        "variables": {
            "marketingFocus": "general marketing strategy",
            "industryContext": "cross-industry",
        },
    },
    {
        "prompt_type": PromptType.SPECIALIZED.value,
        "context_tags": ["engineering", "technical", "architecture"],
        "name": "Technical Leadership Coach",
        "content": (
            "You specialize in technical leadership and software engineering excellence:\n"
            "- System architecture and design patterns\n"
            "- Code quality and technical debt management\n"
            "- Team scaling and engineering culture\n"
            "- Technology selection and migration strategies\n\n"
            "Technical domain: {{techDomain}}\n"
            "Team size context: {{teamSize}}\n\n"
            "Balance technical depth with practical leadership advice."
        ),
        "variables": {
            "techDomain": "full-stack development",
            "teamSize": "small to medium teams",
        },
    },
    {
        "prompt_type": PromptType.RELATIONSHIP.value,
        "context_tags": ["upward", "management", "influence"],
        "name": "Upward Management Coach",
        "content": (
            "You're coaching someone on managing upward effectively. Key considerations:\n"
            "- Respect hierarchical dynamics while building influence\n"
            "- Frame suggestions in terms of organizational value\n"
            "- Emphasize mutual benefit and strategic alignment\n"
            "- Navigate political sensitivities with diplomacy\n\n"
            "Relationship dynamic: {{relationshipContext}}\n"
            "Organizational context: {{orgContext}}\n\n"
            "Help them influence upward while maintaining professional boundaries."
        ),
        "variables": {
            "relationshipContext": "individual contributor to manager",
            "orgContext": "corporate environment",
        },
    },
]


def _embedding_text(prompt: dict[str, Any]) -> str:
    return f"{prompt['name']} {prompt['content']} {' '.join(prompt.get('context_tags', []))}"


class PromptRouter:
    def __init__(self, db=None):
        if db is None:
            from quest.core.database import get_db
            db = get_db()
        self.db = db

    async def list_prompts(self) -> list[dict[str, Any]]:
        return await self.db.list_prompts()

    async def seed_base_prompts(self) -> list[dict[str, Any]]:
        """Upsert BASE_PROMPTS, embedding each one. A failed embedding still stores the prompt."""
        seeded = []
        for prompt in BASE_PROMPTS:
            try:
                embedding = await get_embedding(_embedding_text(prompt))
            except Exception as exc:
                log.warning("prompts.seed.embedding_failed", name=prompt["name"], error=str(exc))
                embedding = None
            seeded.append(await self.db.upsert_prompt(prompt, embedding))
        log.info("prompts.seeded", count=len(seeded))
        return seeded

    async def select_prompts(
        self,
        context_text: str,
        tags: Optional[list[str]] = None,
        limit: int = 3,
    ) -> list[dict[str, Any]]:
        if context_text and context_text.strip():
            try:
                embedding = await get_embedding(context_text)
                found = await self.db.search_prompts_by_embedding(embedding, limit)
                if found:
                    log.info("prompts.select.semantic", count=len(found))
                    return found
            except Exception as exc:
                log.warning("prompts.select.semantic_failed", error=str(exc))

        if tags:
            found = await self.db.prompts_by_tags(tags, limit)
            if found:
                log.info("prompts.select.tags", count=len(found), tags=tags)
                return found

        base = [p for p in await self.db.list_prompts() if p["prompt_type"] == PromptType.BASE.value]
        log.info("prompts.select.base_fallback", found=bool(base))
        return base[:1]

    def blend(self, prompts: list[dict[str, Any]], variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Base prompt first, then each specialised prompt as its own section.

        Prompt defaults are overridden by caller-supplied variables.
        """
        if not prompts:
            raise ValueError("No prompts to blend")

        ordered = sorted(prompts, key=lambda p: p["prompt_type"] != PromptType.BASE.value)
        merged: dict[str, Any] = {}
        for prompt in ordered:
            merged.update(prompt.get("variables") or {})
        merged.update(variables or {})

        sections = []
        for prompt in ordered:
            text = render_template(prompt["content"], merged)
            if prompt["prompt_type"] == PromptType.BASE.value:
                sections.append(text)
            else:
                sections.append(f"## {prompt['name']}\n{text}")

        return {
            "content": "\n\n".join(sections),
            "sources": [p["id"] for p in ordered if p.get("id")],
            "variables": merged,
        }

    async def log_usage(self, prompt_id: str, user_id: str | None = None, session_id: str | None = None) -> None:
        await self.db.log_prompt_usage(prompt_id, user_id, session_id)
