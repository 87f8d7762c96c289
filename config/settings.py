"""Application settings via pydantic-settings (reads from .env).

All environment variables are documented here. The .env file in the
working directory is loaded automatically; real environment variables win.
Vendor keys default to empty strings so the API boots without them; each
consumer decides whether a missing key means mock data or an error.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # PostgreSQL + pgvector (Neon in production)
    database_url: str = "postgresql://localhost/quest"

    # Neo4j company / people graph
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""

    # Redis: active agent per user (shared across API workers)
    redis_url: str = "redis://localhost:6379"

    # OpenAI: chat completions + embeddings (1536-dim ada-002 vectors)
    openai_api_key: str = ""
    openai_chat_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-ada-002"
    embedding_dimensions: int = 1536

    # Anthropic: fallback chat backend when OpenAI is not configured
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-6"

    # People / company enrichment
    datamagnet_token: str = ""
    apollo_api_key: str = ""
    apify_token: str = ""
    apify_employee_actor_id: str = "M2FMdjRVeF1HPGFcc"

    # Web search providers
    tavily_api_key: str = ""
    linkup_api_key: str = ""
    serper_api_key: str = ""

    # Hume EVI (custom language model endpoint points back at this API)
    hume_api_key: str = ""

    # Clerk session tokens (RS256, verified against the instance JWKS)
    clerk_issuer: str = ""
    clerk_jwks_url: str = ""

    # Thresholds
    handover_confidence_threshold: float = 0.7
    document_similarity_threshold: float = 0.7
    hybrid_vector_weight: float = 0.7
    company_cache_days: int = 30

    # FastAPI server
    api_port: int = 8000

    # Application metadata
    app_name: str = "quest"
    app_version: str = "0.1.0"
    debug: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
