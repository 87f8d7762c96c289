"""OpenAI embeddings for pgvector search (1536-dim, text-embedding-ada-002)."""

import re

import structlog

log = structlog.get_logger()

MAX_TOKENS = 8191
# Rough chars-per-token ratio used to keep inputs under the model limit
CHARS_PER_TOKEN = 4
BATCH_SIZE = 100


def clean_text(text: str) -> str:
    """Collapse whitespace and truncate to the model's input limit."""
    cleaned = re.sub(r"\s+", " ", text or "").strip()
    return cleaned[: MAX_TOKENS * CHARS_PER_TOKEN]


def to_pgvector(embedding: list[float]) -> str:
    """Render an embedding as a pgvector literal for ``$n::vector`` params."""
    return f"[{','.join(str(v) for v in embedding)}]"


def _client():
    from openai import AsyncOpenAI

    from config.settings import get_settings

    settings = get_settings()
    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY is not configured")
    return AsyncOpenAI(api_key=settings.openai_api_key), settings.openai_embedding_model


async def get_embedding(text: str) -> list[float]:
    """Generate an embedding for a single text."""
    client, model = _client()
    resp = await client.embeddings.create(model=model, input=clean_text(text))
    return resp.data[0].embedding


async def get_embeddings(texts: list[str]) -> list[list[float]]:
    """Generate embeddings for many texts, BATCH_SIZE inputs per request."""
    if not texts:
        return []

    client, model = _client()
    vectors: list[list[float]] = []
    for i in range(0, len(texts), BATCH_SIZE):
        batch = [clean_text(t) for t in texts[i:i + BATCH_SIZE]]
        resp = await client.embeddings.create(model=model, input=batch)
        vectors.extend(item.embedding for item in resp.data)
        log.info("embeddings.batch", size=len(batch), total_tokens=resp.usage.total_tokens)
    return vectors
