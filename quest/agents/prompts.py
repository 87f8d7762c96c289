"""Prompt templates for Quest agent search.

Templates use str.format placeholders; fill what the query gives you and
leave the rest to the model.
"""

QUEST_SYSTEM_PROMPT = """You are Quest AI, a business intelligence assistant specialised in
organisational mapping and professional network analysis.

You can draw on three kinds of search:
1. Vector search: semantic similarity over company documents, LinkedIn profiles and industry data.
2. Knowledge graph search: relationships between people and companies, career moves and org structure.
3. Hybrid search: both at once, for questions that mix content and relationships.

Prefer vector search for descriptions, products, skills and market trends.
Prefer graph search for relationships, career progressions, intro paths and hierarchies.
Use hybrid search for questions like "decision makers at AI companies in our network".

When answering:
- Ground every claim in the retrieved context and say where it came from.
- Flag information that may be out of date.
- Call out relationship patterns and network effects.
- State your confidence when inferring relationships.

You provide actionable business intelligence, not just search results."""

DECISION_MAKER_SCORING = """Given the employees at {company} below, score each person's likelihood
of being a decision maker for {product_type} (0-100).

Weigh job title and seniority, department fit with the product, thought
leadership on LinkedIn, team size and budget authority, and involvement in
recent company initiatives.

Return a JSON array of objects with name, title, score and reasoning."""

RELATIONSHIP_EXTRACTION = """Analyse this LinkedIn recommendation and extract:
1. Relationship type (manager, peer, subordinate, client, partner)
2. Collaboration context (project, team, timeframe)
3. Skills the recommendation verifies
4. Relationship strength (1-10)

Text: {recommendation_text}

Return structured JSON with these fields."""

SALES_INTELLIGENCE = """Analyse {company} for sales opportunities related to {product_type}.

Buying signals: relevant hires, technology stack changes, growth indicators, pain points in posts.
Key stakeholders: decision makers, influencers, technical evaluators, budget holders.
Approach: warm introduction paths, talking points, timing.

Return actionable intelligence in a structured format."""

COMPANY_ANALYSIS = """Provide intelligence on {company}.

Overview: industry and market position, size and growth, key products, recent developments.
Organisation: leadership team, departments, reporting lines, key influencers.
Network: connections to our network, competitors, partners, alumni.
Gaps: what we don't know, how fresh the data is, confidence levels."""

WARM_INTRO = """Find the best path to introduce {requester} to {target} at {company}.

Direct connections: who in our network knows the target, and how well.
Indirect paths: two-hop connections, shared alumni or previous employers, common initiatives.
Strategy: who should make the intro, how to frame it, what to talk about.

Rank paths by relationship strength and likelihood of success."""

TEMPORAL_ANALYSIS = """Track changes for {entity} over {time_range}.

Career movements: job changes, promotions, company transitions.
Network evolution: new connections, relationship changes, influence growth.
Company changes: turnover, restructuring, strategic shifts.

Finish with the patterns you see and the opportunities they suggest."""

PROMPTS_BY_INTENT: dict[str, str] = {
    "decision_maker": DECISION_MAKER_SCORING,
    "relationship": RELATIONSHIP_EXTRACTION,
    "sales": SALES_INTELLIGENCE,
    "company": COMPANY_ANALYSIS,
    "introduction": WARM_INTRO,
    "temporal": TEMPORAL_ANALYSIS,
    "general": QUEST_SYSTEM_PROMPT,
}


def select_prompt(intent: str) -> str:
    return PROMPTS_BY_INTENT.get(intent, QUEST_SYSTEM_PROMPT)


def fill_prompt(template: str, **values: str) -> str:
    """Format a template, leaving placeholders without a value intact."""

    class _Keep(dict):
        def __missing__(self, key: str) -> str:
            return "{" + key + "}"

    return template.format_map(_Keep(values))
