"""
Company document workspace — upload, chunk, embed and chat over documents.

Pipeline for an upload:
    extract text → preview → LLM entity extraction → auto tags
    → store document → chunk (2000 chars, 200 overlap) → embed → store chunks
"""
import asyncio
import time
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

import structlog

from quest.core.embeddings import get_embedding, get_embeddings
from quest.core.errors import NotFoundError
from quest.core.llm import get_llm

log = structlog.get_logger()

CHUNK_SIZE = 2000
CHUNK_OVERLAP = 200
PREVIEW_CHARS = 1000
ENTITY_INPUT_CHARS = 4000
EMBED_CONCURRENCY = 4

ENTITY_KEYS: tuple[str, ...] = (
    "products", "competitors", "features", "pricing", "decision_criteria",
    "stakeholders", "technologies", "pain_points", "benefits",
)

TEXT_TYPES: frozenset[str] = frozenset({"txt", "md"})
PENDING_EXTRACTOR_TYPES: frozenset[str] = frozenset({"pdf", "docx", "pptx"})

DEFAULT_WORKSPACE_SETTINGS: dict[str, Any] = {
    "autoTagging": True,
    "aiSummaries": True,
    "competitorTracking": True,
    "notificationPreferences": {
        "newDocuments": True,
        "chatMentions": True,
        "weeklyDigest": False,
    },
}

GENERIC_SUGGESTIONS: list[str] = [
    "What are our key competitive advantages?",
    "What pricing information do we have?",
    "Who are our main competitors?",
    "What features do customers care most about?",
    "What are the common customer pain points?",
]

NO_DOCUMENTS_ANSWER = (
    "I couldn't find any relevant documents in this workspace to answer your question. "
    "Try uploading some documents or rephrasing your query."
)


class DocumentType(str, Enum):
    PRODUCT_SPEC = "product_spec"
    SALES_DECK = "sales_deck"
    CASE_STUDY = "case_study"
    PRICING = "pricing"
    COMPETITOR_ANALYSIS = "competitor_analysis"
    PROPOSAL = "proposal"
    WHITEPAPER = "whitepaper"


class AccessLevel(str, Enum):
    PRIVATE = "private"
    TEAM = "team"
    COMPANY = "company"
    PUBLIC = "public"


# ─────────────────────────────────────────────────────────────────────────────
# Pure helpers
# ─────────────────────────────────────────────────────────────────────────────

def chunk_text(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[str]:
    if overlap >= size:
        raise ValueError("overlap must be smaller than chunk size")
    chunks = []
    for start in range(0, len(text or ""), size - overlap):
        piece = text[start:start + size]
        if piece.strip():
            chunks.append(piece)
    return chunks


def extract_text(content: bytes, file_type: str, filename: str = "document") -> str:
    ext = (file_type or "").lower().lstrip(".")
    if ext in TEXT_TYPES:
        return content.decode("utf-8")
    if ext in PENDING_EXTRACTOR_TYPES:
        log.warning("documents.extract.placeholder", file_type=ext, filename=filename)
        return (
            f"[{ext.upper()} content from {filename}]\n\n"
            f"Text extraction for {ext.upper()} files is pending; this placeholder "
            f"stands in for the document body."
        )
    raise ValueError("Unsupported file type")


def content_preview(text: str) -> str:
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS] + "..."
    return text


def _empty_entities() -> dict[str, list]:
    return {key: [] for key in ENTITY_KEYS}


async def extract_entities(text: str, document_type: str = "document", llm=None) -> dict[str, list]:
    llm = llm or get_llm()
    truncated = text[:ENTITY_INPUT_CHARS]
    prompt = (
        f"Extract business intelligence from this {document_type} document.\n\n"
        f'Content: "{truncated}"{" [Content truncated...]" if len(text) > ENTITY_INPUT_CHARS else ""}\n\n'
        "Return a JSON object with these array fields: "
        + ", ".join(ENTITY_KEYS)
        + ". pricing items are objects with product, price, tier "
        "(enterprise|standard|basic|custom), currency and period."
    )
    try:
        data = await llm.complete_json(prompt, temperature=0.3)
    except Exception as exc:
        log.warning("documents.entities.failed", error=str(exc))
        return _empty_entities()

    entities = _empty_entities()
    for key in ENTITY_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            entities[key] = value
    return entities


def auto_tags(entities: dict[str, list]) -> list[str]:
    tags = list(entities.get("products", [])[:3]) + list(entities.get("technologies", [])[:2])
    return [t for t in tags if isinstance(t, str) and t]


def group_search_results(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Group chunk hits by document, best document first."""
    grouped: dict[str, dict[str, Any]] = {}
    for row in rows:
        doc_id = str(row["document_id"])
        doc = grouped.setdefault(doc_id, {
            "document_id": doc_id,
            "title": row.get("title"),
            "document_type": row.get("document_type"),
            "chunks": [],
        })
        doc["chunks"].append({
            "chunk_index": row.get("chunk_index"),
            "content": row.get("chunk_text"),
            "similarity": float(row["similarity"]),
        })

    results = []
    for doc in grouped.values():
        sims = [c["similarity"] for c in doc["chunks"]]
        doc["chunks"].sort(key=lambda c: c["similarity"], reverse=True)
        doc["max_similarity"] = max(sims)
        doc["avg_similarity"] = sum(sims) / len(sims)
        results.append(doc)
    results.sort(key=lambda d: d["max_similarity"], reverse=True)
    return results


# ─────────────────────────────────────────────────────────────────────────────
# Services
# ─────────────────────────────────────────────────────────────────────────────

class DocumentProcessor:
    def __init__(self, db=None, llm=None):
        if db is None:
            from quest.core.database import get_db
            db = get_db()
        self.db = db
        self.llm = llm

    async def _embed_chunks(self, chunks: list[str]) -> list[list[float]]:
        # Batches of chunks are embedded concurrently, a few requests at a time
        sem = asyncio.Semaphore(EMBED_CONCURRENCY)
        batches = [chunks[i:i + 16] for i in range(0, len(chunks), 16)]

        async def run(batch: list[str]) -> list[list[float]]:
            async with sem:
                return await get_embeddings(batch)

        results = await asyncio.gather(*(run(b) for b in batches))
        return [vec for batch in results for vec in batch]

    async def process(
        self,
        workspace_id: str,
        uploaded_by: str,
        title: str,
        content: bytes,
        file_type: str,
        document_type: str = DocumentType.PRODUCT_SPEC.value,
        access_level: str = AccessLevel.TEAM.value,
        tags: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        start = time.monotonic()
        if not title or not title.strip():
            raise ValueError("title is required")
        DocumentType(document_type)
        AccessLevel(access_level)

        text = extract_text(content, file_type, filename=title)
        entities = await extract_entities(text, document_type, llm=self.llm)
        generated_tags = auto_tags(entities)

        document_id = await self.db.store_document({
            "workspace_id": workspace_id,
            "title": title.strip(),
            "document_type": document_type,
            "file_type": file_type.lower().lstrip("."),
            "uploaded_by": uploaded_by,
            "content_preview": content_preview(text),
            "full_content": text,
            "extracted_entities": entities,
            "tags": tags or [],
            "auto_tags": generated_tags,
            "access_level": access_level,
        })

        chunks = chunk_text(text)
        embeddings = await self._embed_chunks(chunks)
        stored = await self.db.store_document_chunks(document_id, workspace_id, chunks, embeddings)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        log.info(
            "documents.processed",
            workspace_id=workspace_id,
            document_id=document_id,
            chunks=stored,
            elapsed_ms=elapsed_ms,
        )
        return {
            "document_id": document_id,
            "title": title.strip(),
            "chunks": stored,
            "auto_tags": generated_tags,
            "extracted_entities": entities,
            "processing_time_ms": elapsed_ms,
        }

    async def search(
        self,
        workspace_id: str,
        query: str,
        threshold: float | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        if not query or not query.strip():
            raise ValueError("query is required")
        if threshold is None:
            from config.settings import get_settings
            threshold = get_settings().document_similarity_threshold
        embedding = await get_embedding(query)
        rows = await self.db.search_document_chunks(workspace_id, embedding, threshold, limit)
        return group_search_results(rows)


def _document_context(results: list[dict[str, Any]]) -> str:
    blocks = []
    for i, doc in enumerate(results, 1):
        top = "\n\n".join(c["content"] for c in doc["chunks"][:2])
        blocks.append(f'Document {i}: "{doc["title"]}" ({doc["document_type"]})\n{top}\n---')
    return "\n\n".join(blocks)


class WorkspaceService:
    def __init__(self, db=None, processor: DocumentProcessor | None = None, llm=None):
        if db is None:
            from quest.core.database import get_db
            db = get_db()
        self.db = db
        self.llm = llm
        self.processor = processor or DocumentProcessor(db=db, llm=llm)

    async def create_workspace(
        self,
        company_name: str,
        display_name: str,
        owner_id: str,
        description: Optional[str] = None,
        access_level: str = AccessLevel.PRIVATE.value,
    ) -> dict[str, Any]:
        if not company_name or not company_name.strip():
            raise ValueError("company_name is required")
        AccessLevel(access_level)
        workspace = await self.db.create_workspace({
            "id": f"ws_{uuid4().hex[:16]}",
            "company_name": company_name.strip(),
            "display_name": (display_name or company_name).strip(),
            "description": description or f"Intelligence workspace for {company_name.strip()}",
            "owner_id": owner_id,
            "collaborators": [],
            "access_level": access_level,
            "settings": DEFAULT_WORKSPACE_SETTINGS,
        })
        log.info("workspace.created", workspace_id=workspace["id"], owner_id=owner_id)
        return workspace

    async def get_workspace(self, workspace_id: str, user_id: str) -> dict[str, Any]:
        """The workspace, when `user_id` owns it or collaborates on it."""
        workspace = await self.db.get_workspace(workspace_id)
        if workspace is None or (
            workspace["owner_id"] != user_id
            and user_id not in (workspace.get("collaborators") or [])
        ):
            log.warning("workspace.access_denied", workspace_id=workspace_id, user_id=user_id)
            raise NotFoundError("Workspace not found or access denied")
        return workspace

    async def search(
        self,
        workspace_id: str,
        user_id: str,
        query: str,
        threshold: float | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        await self.get_workspace(workspace_id, user_id)
        return await self.processor.search(workspace_id, query, threshold, limit)

    async def _suggest_queries(self, llm, query: str, results: list[dict[str, Any]]) -> list[str]:
        titles = ", ".join(d["title"] for d in results)
        prompt = (
            "Based on this query and the documents found, suggest 3-4 relevant follow-up questions.\n\n"
            f'Original query: "{query}"\nDocuments found: {titles}\n\n'
            'Return JSON: {"questions": ["question1", "question2", "question3"]}'
        )
        try:
            data = await llm.complete_json(prompt, temperature=0.6)
        except Exception as exc:
            log.warning("workspace.chat.suggestions_failed", error=str(exc))
            return list(GENERIC_SUGGESTIONS)
        questions = [q for q in data.get("questions", []) if isinstance(q, str)]
        return questions or list(GENERIC_SUGGESTIONS)

    async def chat(self, workspace_id: str, user_id: str, query: str) -> dict[str, Any]:
        start = time.monotonic()
        workspace = await self.get_workspace(workspace_id, user_id)
        results = await self.processor.search(workspace_id, query, threshold=0.6, limit=5)

        if not results:
            return {
                "answer": NO_DOCUMENTS_ANSWER,
                "documents_used": [],
                "confidence": 0,
                "suggested_queries": list(GENERIC_SUGGESTIONS),
                "processing_time_ms": int((time.monotonic() - start) * 1000),
            }

        llm = self.llm or get_llm()
        prompt = (
            f"You are an AI assistant helping analyze business documents for {workspace['company_name']}.\n"
            "Answer the user's question based on the provided document context.\n\n"
            f'User question: "{query}"\n\nDocument context:\n{_document_context(results)}\n\n'
            "Answer directly and concisely, cite the documents you use, and say so if the "
            "context does not contain enough information."
        )
        answer, suggestions = await asyncio.gather(
            llm.generate(prompt, task_type="analysis", max_tokens=500),
            self._suggest_queries(llm, query, results),
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)
        log.info("workspace.chat", workspace_id=workspace_id, user_id=user_id, documents=len(results))
        return {
            "answer": answer,
            "documents_used": [d["document_id"] for d in results],
            "confidence": max(d["max_similarity"] for d in results),
            "suggested_queries": suggestions,
            "processing_time_ms": elapsed_ms,
        }
