"""QuestDB — PostgreSQL + pgvector repository layer (async-first).

One asyncpg pool per process. Every table Quest owns is declared in SCHEMA
and created idempotently by init_schema(). JSONB columns are written as
``json.dumps(...)`` with an explicit ``::jsonb`` cast and decoded on read;
vectors are written as pgvector literals with ``::vector``.

Tables:
  user_profiles                 — Surface/Working/Personal/Deep repo JSONB per user
  repo_access_grants            — who may view which repo tier
  trinity_statements            — Quest/Service/Pledge records (one active per user)
  trinity_coaching_preferences  — focus split + coaching style
  trinity_evolution_history     — audit trail of trinity changes
  okrs, goals, tasks            — professional OKR / goal tracking
  company_enrichments           — cached vendor enrichment payloads
  coaching_prompts, prompt_usage_logs
  company_workspaces, company_documents, document_embeddings
  documents                     — generic vector store for agent search
  conversation_turns            — voice coaching turns replayed into later prompts
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Any, Iterable

import structlog

from quest.core.embeddings import to_pgvector

log = structlog.get_logger()

LAYER_COLUMNS: dict[str, str] = {
    "surface": "surface_repo",
    "working": "working_repo",
    "personal": "personal_repo",
    "deep": "deep_repo",
}

SCHEMA = """
CREATE EXTENSION IF NOT EXISTS vector;
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS user_profiles (
    user_id        TEXT PRIMARY KEY,
    surface_repo   JSONB NOT NULL DEFAULT '{}'::jsonb,
    working_repo   JSONB NOT NULL DEFAULT '{}'::jsonb,
    personal_repo  JSONB NOT NULL DEFAULT '{}'::jsonb,
    deep_repo      JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS repo_access_grants (
    id                 UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    owner_id           TEXT NOT NULL,
    granted_to_id      TEXT NOT NULL,
    access_level       TEXT NOT NULL,
    relationship_type  TEXT NOT NULL DEFAULT 'connection',
    reason             TEXT,
    expires_at         TIMESTAMPTZ,
    revoked_at         TIMESTAMPTZ,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (owner_id, granted_to_id)
);

CREATE TABLE IF NOT EXISTS trinity_statements (
    id                 UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id            TEXT NOT NULL,
    quest              TEXT NOT NULL,
    service            TEXT NOT NULL,
    pledge             TEXT NOT NULL,
    trinity_type       CHAR(1) NOT NULL,
    trinity_type_description TEXT,
    ritual_session_id  TEXT,
    quest_seal         TEXT NOT NULL,
    is_active          BOOLEAN NOT NULL DEFAULT TRUE,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at         TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS trinity_one_active_per_user
    ON trinity_statements (user_id) WHERE is_active;

CREATE TABLE IF NOT EXISTS trinity_coaching_preferences (
    user_id              TEXT PRIMARY KEY,
    quest_focus          INTEGER NOT NULL,
    service_focus        INTEGER NOT NULL,
    pledge_focus         INTEGER NOT NULL,
    coaching_methodology TEXT NOT NULL,
    coaching_tone        TEXT NOT NULL,
    context_awareness    TEXT NOT NULL,
    voice_enabled        BOOLEAN NOT NULL DEFAULT TRUE,
    updated_at           TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS trinity_evolution_history (
    id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id      TEXT NOT NULL,
    trinity_id   UUID NOT NULL,
    event        TEXT NOT NULL,
    snapshot     JSONB NOT NULL,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS okrs (
    id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id      TEXT NOT NULL,
    objective    TEXT NOT NULL,
    timeframe    TEXT NOT NULL,
    year         INTEGER NOT NULL,
    category     TEXT,
    visibility   TEXT NOT NULL DEFAULT 'private',
    status       TEXT NOT NULL DEFAULT 'active',
    key_results  JSONB NOT NULL DEFAULT '[]'::jsonb,
    progress     INTEGER NOT NULL DEFAULT 0,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS goals (
    id             UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id        TEXT NOT NULL,
    title          TEXT NOT NULL,
    description    TEXT NOT NULL DEFAULT '',
    goal_type      TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'planning',
    linked_okr_id  UUID,
    target_date    DATE,
    progress       INTEGER NOT NULL DEFAULT 0,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS tasks (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id         TEXT NOT NULL,
    goal_id         UUID REFERENCES goals(id) ON DELETE CASCADE,
    title           TEXT NOT NULL,
    description     TEXT NOT NULL DEFAULT '',
    status          TEXT NOT NULL DEFAULT 'todo',
    priority        TEXT NOT NULL DEFAULT 'medium',
    due_date        DATE,
    completed_date  DATE,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS company_enrichments (
    company_key     TEXT NOT NULL,
    company_name    TEXT NOT NULL,
    source          TEXT NOT NULL,
    payload         JSONB NOT NULL,
    employee_count  INTEGER NOT NULL DEFAULT 0,
    last_enriched   TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (company_key, source)
);

CREATE TABLE IF NOT EXISTS coaching_prompts (
    id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    prompt_type          TEXT NOT NULL,
    context_tags         TEXT[] NOT NULL DEFAULT '{}',
    name                 TEXT NOT NULL UNIQUE,
    content              TEXT NOT NULL,
    variables            JSONB NOT NULL DEFAULT '{}'::jsonb,
    embedding            vector(1536),
    effectiveness_score  DOUBLE PRECISION NOT NULL DEFAULT 0.8,
    usage_count          INTEGER NOT NULL DEFAULT 0,
    active               BOOLEAN NOT NULL DEFAULT TRUE,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS prompt_usage_logs (
    id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    prompt_id   UUID NOT NULL REFERENCES coaching_prompts(id) ON DELETE CASCADE,
    user_id     TEXT,
    session_id  TEXT,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS company_workspaces (
    id             TEXT PRIMARY KEY,
    company_name   TEXT NOT NULL,
    display_name   TEXT NOT NULL,
    description    TEXT,
    owner_id       TEXT NOT NULL,
    collaborators  JSONB NOT NULL DEFAULT '[]'::jsonb,
    access_level   TEXT NOT NULL DEFAULT 'private',
    settings       JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS company_documents (
    id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    workspace_id        TEXT NOT NULL REFERENCES company_workspaces(id) ON DELETE CASCADE,
    title               TEXT NOT NULL,
    document_type       TEXT NOT NULL,
    file_type           TEXT NOT NULL,
    uploaded_by         TEXT NOT NULL,
    content_preview     TEXT NOT NULL,
    full_content        TEXT NOT NULL,
    extracted_entities  JSONB NOT NULL DEFAULT '{}'::jsonb,
    tags                TEXT[] NOT NULL DEFAULT '{}',
    auto_tags           TEXT[] NOT NULL DEFAULT '{}',
    access_level        TEXT NOT NULL DEFAULT 'team',
    created_at          TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS document_embeddings (
    id            BIGSERIAL PRIMARY KEY,
    document_id   UUID NOT NULL REFERENCES company_documents(id) ON DELETE CASCADE,
    workspace_id  TEXT NOT NULL,
    chunk_index   INTEGER NOT NULL,
    chunk_text    TEXT NOT NULL,
    embedding     vector(1536) NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id          BIGSERIAL PRIMARY KEY,
    content     TEXT NOT NULL,
    metadata    JSONB NOT NULL DEFAULT '{}'::jsonb,
    embedding   vector(1536),
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS conversation_turns (
    id                 BIGSERIAL PRIMARY KEY,
    user_id            TEXT NOT NULL,
    session_id         TEXT NOT NULL DEFAULT '',
    transcript         TEXT NOT NULL,
    ai_response        TEXT,
    emotional_context  JSONB NOT NULL DEFAULT '{}'::jsonb,
    topics_discussed   TEXT[] NOT NULL DEFAULT '{}',
    created_at         TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS conversation_turns_user_idx
    ON conversation_turns (user_id, created_at DESC);
"""

# Columns decoded from JSON text on read (asyncpg returns jsonb as str)
_JSON_COLUMNS: frozenset[str] = frozenset({
    "surface_repo", "working_repo", "personal_repo", "deep_repo",
    "snapshot", "key_results", "payload", "variables", "collaborators",
    "settings", "extracted_entities", "metadata", "layer", "emotional_context",
})


def _record(row) -> dict[str, Any] | None:
    """Convert an asyncpg Record to a plain dict with decoded JSON and str ids."""
    if row is None:
        return None
    out: dict[str, Any] = {}
    for key, value in dict(row).items():
        if key in _JSON_COLUMNS and isinstance(value, str):
            value = json.loads(value)
        elif isinstance(value, uuid.UUID):
            value = str(value)
        out[key] = value
    return out


def _records(rows: Iterable) -> list[dict[str, Any]]:
    return [_record(r) for r in rows]


def _layer_column(layer: str) -> str:
    try:
        return LAYER_COLUMNS[layer]
    except KeyError:
        raise ValueError(f"Invalid repo layer: {layer}") from None


class QuestDB:
    """asyncpg-backed persistence for profiles, trinity, OKRs, prompts and documents."""

    def __init__(self, db_url: str | None = None):
        from config.settings import get_settings
        settings = get_settings()
        self.db_url = db_url or settings.database_url
        self._pool = None
        self._pool_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def _get_pool(self):
        """Return (or lazily create) the asyncpg connection pool."""
        if self._pool is not None:
            return self._pool
        async with self._pool_lock:
            if self._pool is not None:
                return self._pool
            import asyncpg
            self._pool = await asyncpg.create_pool(self.db_url, min_size=1, max_size=10)
            log.info("db.pool_created")
        return self._pool

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def _execute(
        self,
        query: str,
        *args,
        fetch: str | None = None,
    ) -> Any:
        """Run a query against the pool. fetch: 'one' | 'all' | 'val' | None."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            try:
                if fetch == "one":
                    return await conn.fetchrow(query, *args)
                elif fetch == "all":
                    return await conn.fetch(query, *args)
                elif fetch == "val":
                    return await conn.fetchval(query, *args)
                else:
                    return await conn.execute(query, *args)
            except Exception as exc:
                log.error("db.query_failed", error=str(exc), query=query[:120])
                raise

    async def init_schema(self) -> None:
        """Create every Quest table (idempotent)."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA)
        log.info("db.schema_ready")

    # ------------------------------------------------------------------
    # User profiles (Surface / Working / Personal / Deep repos)
    # ------------------------------------------------------------------

    async def get_or_create_profile(self, user_id: str) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO user_profiles (user_id) VALUES ($1)
            ON CONFLICT (user_id) DO UPDATE SET user_id = EXCLUDED.user_id
            RETURNING *
            """,
            user_id,
            fetch="one",
        )
        return _record(row)

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        row = await self._execute(
            "SELECT * FROM user_profiles WHERE user_id = $1", user_id, fetch="one",
        )
        return _record(row)

    async def list_profiles(self) -> list[dict[str, Any]]:
        rows = await self._execute(
            "SELECT user_id, surface_repo FROM user_profiles ORDER BY user_id", fetch="all",
        )
        return _records(rows)

    async def get_layer(self, user_id: str, layer: str) -> dict[str, Any]:
        profile = await self.get_or_create_profile(user_id)
        return profile[_layer_column(layer)] or {}

    async def update_layer(
        self,
        user_id: str,
        layer: str,
        data: dict[str, Any],
        merge: bool = True,
    ) -> dict[str, Any]:
        """Write one repo tier. merge=True shallow-merges into the existing object."""
        column = _layer_column(layer)
        if merge:
            value_sql = f"COALESCE(user_profiles.{column}, '{{}}'::jsonb) || $2::jsonb"
        else:
            value_sql = "$2::jsonb"
        row = await self._execute(
            f"""
            INSERT INTO user_profiles (user_id, {column}) VALUES ($1, $2::jsonb)
            ON CONFLICT (user_id) DO UPDATE
                SET {column} = {value_sql}, updated_at = now()
            RETURNING {column} AS layer
            """,
            user_id, json.dumps(data),
            fetch="one",
        )
        log.info("db.layer_updated", user_id=user_id, layer=layer, merge=merge)
        return _record(row)["layer"]

    async def update_deep_field(self, user_id: str, field: str, value: Any) -> dict[str, Any]:
        await self.get_or_create_profile(user_id)
        row = await self._execute(
            """
            UPDATE user_profiles
               SET deep_repo = jsonb_set(COALESCE(deep_repo, '{}'::jsonb), ARRAY[$2], $3::jsonb, true),
                   updated_at = now()
             WHERE user_id = $1
            RETURNING deep_repo AS layer
            """,
            user_id, field, json.dumps(value),
            fetch="one",
        )
        return _record(row)["layer"]

    # ------------------------------------------------------------------
    # Repo access grants
    # ------------------------------------------------------------------

    async def create_grant(
        self,
        owner_id: str,
        granted_to_id: str,
        access_level: str,
        relationship_type: str = "connection",
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO repo_access_grants
                (owner_id, granted_to_id, access_level, relationship_type, reason, expires_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (owner_id, granted_to_id) DO UPDATE
                SET access_level = EXCLUDED.access_level,
                    relationship_type = EXCLUDED.relationship_type,
                    reason = EXCLUDED.reason,
                    expires_at = EXCLUDED.expires_at,
                    revoked_at = NULL
            RETURNING *
            """,
            owner_id, granted_to_id, access_level, relationship_type, reason, expires_at,
            fetch="one",
        )
        return _record(row)

    async def list_grants(self, owner_id: str) -> list[dict[str, Any]]:
        rows = await self._execute(
            """
            SELECT * FROM repo_access_grants
             WHERE owner_id = $1 AND revoked_at IS NULL
               AND (expires_at IS NULL OR expires_at > now())
             ORDER BY created_at DESC
            """,
            owner_id,
            fetch="all",
        )
        return _records(rows)

    async def get_active_grant(self, owner_id: str, viewer_id: str) -> dict[str, Any] | None:
        row = await self._execute(
            """
            SELECT * FROM repo_access_grants
             WHERE owner_id = $1 AND granted_to_id = $2 AND revoked_at IS NULL
               AND (expires_at IS NULL OR expires_at > now())
            """,
            owner_id, viewer_id,
            fetch="one",
        )
        return _record(row)

    async def revoke_grant(self, owner_id: str, granted_to_id: str) -> bool:
        revoked = await self._execute(
            """
            UPDATE repo_access_grants SET revoked_at = now()
             WHERE owner_id = $1 AND granted_to_id = $2 AND revoked_at IS NULL
            RETURNING id
            """,
            owner_id, granted_to_id,
            fetch="val",
        )
        return revoked is not None

    # ------------------------------------------------------------------
    # Trinity
    # ------------------------------------------------------------------

    async def get_active_trinity(self, user_id: str) -> dict[str, Any] | None:
        row = await self._execute(
            "SELECT * FROM trinity_statements WHERE user_id = $1 AND is_active",
            user_id,
            fetch="one",
        )
        return _record(row)

    async def list_active_trinities(self) -> list[dict[str, Any]]:
        rows = await self._execute(
            "SELECT * FROM trinity_statements WHERE is_active ORDER BY created_at", fetch="all",
        )
        return _records(rows)

    async def create_trinity(
        self,
        user_id: str,
        statement: dict[str, Any],
        preferences: dict[str, Any],
    ) -> dict[str, Any]:
        """Insert statement + default preferences + history entry atomically.

        The statement is mirrored into deep_repo.trinity in the same transaction.
        """
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    INSERT INTO trinity_statements
                        (user_id, quest, service, pledge, trinity_type,
                         trinity_type_description, ritual_session_id, quest_seal)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING *
                    """,
                    user_id, statement["quest"], statement["service"], statement["pledge"],
                    statement["trinity_type"], statement.get("trinity_type_description"),
                    statement.get("ritual_session_id"), statement["quest_seal"],
                )
                await conn.execute(
                    """
                    INSERT INTO trinity_coaching_preferences
                        (user_id, quest_focus, service_focus, pledge_focus,
                         coaching_methodology, coaching_tone, context_awareness, voice_enabled)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    ON CONFLICT (user_id) DO NOTHING
                    """,
                    user_id, preferences["quest_focus"], preferences["service_focus"],
                    preferences["pledge_focus"], preferences["coaching_methodology"],
                    preferences["coaching_tone"], preferences["context_awareness"],
                    preferences["voice_enabled"],
                )
                trinity = _record(row)
                snapshot = {k: trinity[k] for k in ("quest", "service", "pledge", "trinity_type")}
                await conn.execute(
                    """
                    INSERT INTO trinity_evolution_history (user_id, trinity_id, event, snapshot)
                    VALUES ($1, $2, 'created', $3::jsonb)
                    """,
                    user_id, row["id"], json.dumps(snapshot),
                )
                await conn.execute(
                    """
                    INSERT INTO user_profiles (user_id, deep_repo)
                    VALUES ($1, jsonb_build_object('trinity', $2::jsonb))
                    ON CONFLICT (user_id) DO UPDATE
                        SET deep_repo = jsonb_set(COALESCE(user_profiles.deep_repo, '{}'::jsonb),
                                                  '{trinity}', $2::jsonb, true),
                            updated_at = now()
                    """,
                    user_id, json.dumps({**snapshot, "quest_seal": trinity["quest_seal"]}),
                )
        log.info("db.trinity_created", user_id=user_id, trinity_id=trinity["id"])
        return trinity

    async def get_coaching_preferences(self, user_id: str) -> dict[str, Any] | None:
        row = await self._execute(
            "SELECT * FROM trinity_coaching_preferences WHERE user_id = $1",
            user_id,
            fetch="one",
        )
        return _record(row)

    async def update_coaching_preferences(
        self, user_id: str, prefs: dict[str, Any],
    ) -> dict[str, Any] | None:
        row = await self._execute(
            """
            UPDATE trinity_coaching_preferences
               SET quest_focus = $2, service_focus = $3, pledge_focus = $4,
                   coaching_methodology = COALESCE($5, coaching_methodology),
                   coaching_tone = COALESCE($6, coaching_tone),
                   context_awareness = COALESCE($7, context_awareness),
                   voice_enabled = COALESCE($8, voice_enabled),
                   updated_at = now()
             WHERE user_id = $1
            RETURNING *
            """,
            user_id, prefs["quest_focus"], prefs["service_focus"], prefs["pledge_focus"],
            prefs.get("coaching_methodology"), prefs.get("coaching_tone"),
            prefs.get("context_awareness"), prefs.get("voice_enabled"),
            fetch="one",
        )
        return _record(row)

    # ------------------------------------------------------------------
    # OKRs
    # ------------------------------------------------------------------

    async def list_okrs(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self._execute(
            "SELECT * FROM okrs WHERE user_id = $1 ORDER BY year DESC, created_at DESC",
            user_id,
            fetch="all",
        )
        return _records(rows)

    async def get_okr(self, user_id: str, okr_id: str) -> dict[str, Any] | None:
        row = await self._execute(
            "SELECT * FROM okrs WHERE user_id = $1 AND id = $2::uuid",
            user_id, okr_id,
            fetch="one",
        )
        return _record(row)

    async def create_okr(self, user_id: str, okr: dict[str, Any]) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO okrs (user_id, objective, timeframe, year, category,
                              visibility, status, key_results, progress)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9)
            RETURNING *
            """,
            user_id, okr["objective"], okr["timeframe"], okr["year"], okr.get("category"),
            okr.get("visibility", "private"), okr.get("status", "active"),
            json.dumps(okr.get("key_results", [])), okr.get("progress", 0),
            fetch="one",
        )
        return _record(row)

    async def update_okr_key_results(
        self, user_id: str, okr_id: str, key_results: list[dict[str, Any]], progress: int,
    ) -> dict[str, Any] | None:
        row = await self._execute(
            """
            UPDATE okrs SET key_results = $3::jsonb, progress = $4, updated_at = now()
             WHERE user_id = $1 AND id = $2::uuid
            RETURNING *
            """,
            user_id, okr_id, json.dumps(key_results), progress,
            fetch="one",
        )
        return _record(row)

    # ------------------------------------------------------------------
    # Goals and tasks
    # ------------------------------------------------------------------

    async def list_goals(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self._execute(
            "SELECT * FROM goals WHERE user_id = $1 ORDER BY created_at DESC",
            user_id,
            fetch="all",
        )
        return _records(rows)

    async def create_goal(self, user_id: str, goal: dict[str, Any]) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO goals (user_id, title, description, goal_type, status,
                               linked_okr_id, target_date)
            VALUES ($1, $2, $3, $4, $5, $6::uuid, $7)
            RETURNING *
            """,
            user_id, goal["title"], goal.get("description", ""), goal["goal_type"],
            goal.get("status", "planning"), goal.get("linked_okr_id"), goal.get("target_date"),
            fetch="one",
        )
        return _record(row)

    async def set_goal_progress(self, goal_id: str, progress: int) -> None:
        await self._execute(
            "UPDATE goals SET progress = $2, updated_at = now() WHERE id = $1::uuid",
            goal_id, progress,
        )

    async def list_tasks(self, user_id: str, goal_id: str | None = None) -> list[dict[str, Any]]:
        if goal_id:
            rows = await self._execute(
                "SELECT * FROM tasks WHERE user_id = $1 AND goal_id = $2::uuid ORDER BY created_at",
                user_id, goal_id,
                fetch="all",
            )
        else:
            rows = await self._execute(
                "SELECT * FROM tasks WHERE user_id = $1 ORDER BY created_at",
                user_id,
                fetch="all",
            )
        return _records(rows)

    async def create_task(self, user_id: str, goal_id: str, task: dict[str, Any]) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO tasks (user_id, goal_id, title, description, status, priority, due_date)
            SELECT $1, g.id, $3, $4, $5, $6, $7
              FROM goals g WHERE g.id = $2::uuid AND g.user_id = $1
            RETURNING *
            """,
            user_id, goal_id, task["title"], task.get("description", ""),
            task.get("status", "todo"), task.get("priority", "medium"), task.get("due_date"),
            fetch="one",
        )
        return _record(row)

    async def update_task(
        self, user_id: str, task_id: str, changes: dict[str, Any],
    ) -> dict[str, Any] | None:
        row = await self._execute(
            """
            UPDATE tasks
               SET title = COALESCE($3, title),
                   status = COALESCE($4, status),
                   priority = COALESCE($5, priority),
                   due_date = COALESCE($6, due_date),
                   completed_date = CASE WHEN $4 = 'done' THEN CURRENT_DATE ELSE completed_date END,
                   updated_at = now()
             WHERE user_id = $1 AND id = $2::uuid
            RETURNING *
            """,
            user_id, task_id, changes.get("title"), changes.get("status"),
            changes.get("priority"), changes.get("due_date"),
            fetch="one",
        )
        return _record(row)

    # ------------------------------------------------------------------
    # Company enrichment cache
    # ------------------------------------------------------------------

    async def get_company_enrichment(self, company_name: str, source: str) -> dict[str, Any] | None:
        row = await self._execute(
            "SELECT * FROM company_enrichments WHERE company_key = $1 AND source = $2",
            company_name.strip().lower(), source,
            fetch="one",
        )
        return _record(row)

    async def upsert_company_enrichment(
        self, company_name: str, source: str, payload: dict[str, Any], employee_count: int = 0,
    ) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO company_enrichments (company_key, company_name, source, payload, employee_count)
            VALUES ($1, $2, $3, $4::jsonb, $5)
            ON CONFLICT (company_key, source) DO UPDATE
                SET payload = EXCLUDED.payload,
                    employee_count = EXCLUDED.employee_count, last_enriched = now()
            RETURNING *
            """,
            company_name.strip().lower(), company_name, source,
            json.dumps(payload, default=str), employee_count,
            fetch="one",
        )
        return _record(row)

    async def list_company_enrichments(self, source: str | None = None) -> list[dict[str, Any]]:
        if source:
            rows = await self._execute(
                "SELECT * FROM company_enrichments WHERE source = $1 ORDER BY last_enriched",
                source,
                fetch="all",
            )
        else:
            rows = await self._execute(
                "SELECT * FROM company_enrichments ORDER BY last_enriched", fetch="all",
            )
        return _records(rows)

    # ------------------------------------------------------------------
    # Coaching prompts
    # ------------------------------------------------------------------

    async def list_prompts(self, active_only: bool = True) -> list[dict[str, Any]]:
        rows = await self._execute(
            """
            SELECT id, prompt_type, context_tags, name, content, variables,
                   effectiveness_score, usage_count, active, created_at
              FROM coaching_prompts
             WHERE active OR NOT $1
             ORDER BY prompt_type, name
            """,
            active_only,
            fetch="all",
        )
        return _records(rows)

    async def upsert_prompt(
        self, prompt: dict[str, Any], embedding: list[float] | None = None,
    ) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO coaching_prompts
                (prompt_type, context_tags, name, content, variables, embedding, effectiveness_score)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6::vector, $7)
            ON CONFLICT (name) DO UPDATE
                SET prompt_type = EXCLUDED.prompt_type,
                    context_tags = EXCLUDED.context_tags,
                    content = EXCLUDED.content,
                    variables = EXCLUDED.variables,
                    embedding = COALESCE(EXCLUDED.embedding, coaching_prompts.embedding)
            RETURNING id, prompt_type, context_tags, name, content, variables,
                      effectiveness_score, usage_count, active
            """,
            prompt["prompt_type"], list(prompt.get("context_tags", [])), prompt["name"],
            prompt["content"], json.dumps(prompt.get("variables", {})),
            to_pgvector(embedding) if embedding else None,
            prompt.get("effectiveness_score", 0.8),
            fetch="one",
        )
        return _record(row)

    async def search_prompts_by_embedding(
        self, embedding: list[float], limit: int = 3,
    ) -> list[dict[str, Any]]:
        rows = await self._execute(
            """
            SELECT id, prompt_type, context_tags, name, content, variables,
                   effectiveness_score, usage_count,
                   1 - (embedding <=> $1::vector) AS similarity
              FROM coaching_prompts
             WHERE active AND embedding IS NOT NULL
             ORDER BY (1 - (embedding <=> $1::vector)) * effectiveness_score DESC
             LIMIT $2
            """,
            to_pgvector(embedding), limit,
            fetch="all",
        )
        return _records(rows)

    async def prompts_by_tags(self, tags: list[str], limit: int = 3) -> list[dict[str, Any]]:
        rows = await self._execute(
            """
            SELECT id, prompt_type, context_tags, name, content, variables,
                   effectiveness_score, usage_count
              FROM coaching_prompts
             WHERE active AND context_tags && $1::text[]
             ORDER BY effectiveness_score DESC
             LIMIT $2
            """,
            list(tags), limit,
            fetch="all",
        )
        return _records(rows)

    async def log_prompt_usage(
        self, prompt_id: str, user_id: str | None, session_id: str | None,
    ) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO prompt_usage_logs (prompt_id, user_id, session_id) "
                    "VALUES ($1::uuid, $2, $3)",
                    prompt_id, user_id, session_id,
                )
                await conn.execute(
                    "UPDATE coaching_prompts SET usage_count = usage_count + 1 WHERE id = $1::uuid",
                    prompt_id,
                )

    # ------------------------------------------------------------------
    # Workspaces and documents
    # ------------------------------------------------------------------

    async def create_workspace(self, workspace: dict[str, Any]) -> dict[str, Any]:
        row = await self._execute(
            """
            INSERT INTO company_workspaces
                (id, company_name, display_name, description, owner_id,
                 collaborators, access_level, settings)
            VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8::jsonb)
            RETURNING *
            """,
            workspace["id"], workspace["company_name"], workspace["display_name"],
            workspace.get("description"), workspace["owner_id"],
            json.dumps(workspace.get("collaborators", [])), workspace["access_level"],
            json.dumps(workspace["settings"]),
            fetch="one",
        )
        return _record(row)

    async def get_workspace(self, workspace_id: str) -> dict[str, Any] | None:
        row = await self._execute(
            "SELECT * FROM company_workspaces WHERE id = $1", workspace_id, fetch="one",
        )
        return _record(row)

    async def store_document(self, document: dict[str, Any]) -> str:
        doc_id = await self._execute(
            """
            INSERT INTO company_documents
                (workspace_id, title, document_type, file_type, uploaded_by,
                 content_preview, full_content, extracted_entities, tags, auto_tags, access_level)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10, $11)
            RETURNING id
            """,
            document["workspace_id"], document["title"], document["document_type"],
            document["file_type"], document["uploaded_by"], document["content_preview"],
            document["full_content"], json.dumps(document.get("extracted_entities", {})),
            list(document.get("tags", [])), list(document.get("auto_tags", [])),
            document.get("access_level", "team"),
            fetch="val",
        )
        return str(doc_id)

    async def store_document_chunks(
        self,
        document_id: str,
        workspace_id: str,
        chunks: list[str],
        embeddings: list[list[float]],
    ) -> int:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO document_embeddings
                    (document_id, workspace_id, chunk_index, chunk_text, embedding)
                VALUES ($1::uuid, $2, $3, $4, $5::vector)
                """,
                [
                    (document_id, workspace_id, i, chunk, to_pgvector(vec))
                    for i, (chunk, vec) in enumerate(zip(chunks, embeddings))
                ],
            )
        return len(chunks)

    async def search_document_chunks(
        self,
        workspace_id: str,
        embedding: list[float],
        threshold: float = 0.7,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        rows = await self._execute(
            """
            SELECT de.document_id, cd.title, cd.document_type, de.chunk_index,
                   de.chunk_text, 1 - (de.embedding <=> $2::vector) AS similarity
              FROM document_embeddings de
              JOIN company_documents cd ON cd.id = de.document_id
             WHERE de.workspace_id = $1
               AND 1 - (de.embedding <=> $2::vector) >= $3
             ORDER BY de.embedding <=> $2::vector
             LIMIT $4
            """,
            workspace_id, to_pgvector(embedding), threshold, limit,
            fetch="all",
        )
        return _records(rows)

    async def list_workspace_documents(self, workspace_id: str) -> list[dict[str, Any]]:
        rows = await self._execute(
            """
            SELECT id, title, document_type, file_type, uploaded_by, tags, auto_tags,
                   access_level, content_preview, created_at
              FROM company_documents WHERE workspace_id = $1
             ORDER BY created_at DESC
            """,
            workspace_id,
            fetch="all",
        )
        return _records(rows)

    # ------------------------------------------------------------------
    # Generic vector store
    # ------------------------------------------------------------------

    async def store_text(
        self, content: str, embedding: list[float], metadata: dict[str, Any] | None = None,
    ) -> int:
        return await self._execute(
            "INSERT INTO documents (content, metadata, embedding) "
            "VALUES ($1, $2::jsonb, $3::vector) RETURNING id",
            content, json.dumps(metadata or {}), to_pgvector(embedding),
            fetch="val",
        )

    async def hybrid_search(
        self,
        query: str,
        embedding: list[float],
        limit: int = 10,
        vector_weight: float = 0.7,
    ) -> list[dict[str, Any]]:
        """Blend pgvector cosine similarity with full-text ts_rank.

        combined = similarity * vector_weight + ts_rank * (1 - vector_weight)
        """
        rows = await self._execute(
            """
            WITH vector_search AS (
                SELECT id, content, metadata,
                       1 - (embedding <=> $1::vector) AS vector_similarity
                  FROM documents
                 WHERE embedding IS NOT NULL
            ),
            text_search AS (
                SELECT id, content, metadata,
                       ts_rank(to_tsvector('english', content),
                               plainto_tsquery('english', $2)) AS text_rank
                  FROM documents
                 WHERE to_tsvector('english', content) @@ plainto_tsquery('english', $2)
            )
            SELECT COALESCE(v.id, t.id) AS id,
                   COALESCE(v.content, t.content) AS content,
                   COALESCE(v.metadata, t.metadata) AS metadata,
                   COALESCE(v.vector_similarity, 0) * $3
                     + COALESCE(t.text_rank, 0) * $4 AS similarity
              FROM vector_search v
              FULL OUTER JOIN text_search t ON v.id = t.id
             ORDER BY similarity DESC
             LIMIT $5
            """,
            to_pgvector(embedding), query, vector_weight, 1 - vector_weight, limit,
            fetch="all",
        )
        return _records(rows)

    # ------------------------------------------------------------------
    # Voice conversation memory
    # ------------------------------------------------------------------

    async def store_conversation_turn(
        self,
        user_id: str,
        session_id: str,
        transcript: str,
        ai_response: str | None = None,
        emotional_context: dict[str, Any] | None = None,
        topics: list[str] | None = None,
    ) -> None:
        await self._execute(
            """
            INSERT INTO conversation_turns
                (user_id, session_id, transcript, ai_response, emotional_context, topics_discussed)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6)
            """,
            user_id, session_id or "", transcript, ai_response,
            json.dumps(emotional_context or {}), list(topics or []),
        )

    async def list_conversation_turns(
        self, user_id: str, session_id: str | None = None, limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Most recent turns first, optionally narrowed to one session."""
        rows = await self._execute(
            """
            SELECT * FROM conversation_turns
             WHERE user_id = $1 AND ($2::text IS NULL OR session_id = $2)
             ORDER BY created_at DESC
             LIMIT $3
            """,
            user_id, session_id, limit,
            fetch="all",
        )
        return _records(rows)


_db: QuestDB | None = None


def get_db() -> QuestDB:
    """Process-wide QuestDB instance (pool created lazily on first query)."""
    global _db
    if _db is None:
        _db = QuestDB()
    return _db
