"""FastAPI dependencies — backends and services resolved per request.

Routes depend on these providers rather than the module-level singletons so
tests can swap them through `app.dependency_overrides`.
"""
from fastapi import Depends

from quest.agents.orchestrator import AgentOrchestrator
from quest.core.database import QuestDB
from quest.core.knowledge_graph import KnowledgeGraph
from quest.core.llm import LLMRouter
from quest.documents.processor import DocumentProcessor, WorkspaceService
from quest.prompts.router import PromptRouter
from quest.repo.goals import GoalService
from quest.repo.okr import OKRService
from quest.repo.tiers import RepoService
from quest.repo.trinity import TrinityService


def get_db() -> QuestDB:
    from quest.core.database import get_db as _get_db
    return _get_db()


def get_graph() -> KnowledgeGraph:
    from quest.core.knowledge_graph import get_graph as _get_graph
    return _get_graph()


def get_llm() -> LLMRouter:
    from quest.core.llm import get_llm as _get_llm
    return _get_llm()


def get_orchestrator() -> AgentOrchestrator:
    from quest.agents.orchestrator import get_orchestrator as _get_orchestrator
    return _get_orchestrator()


def repo_service(db=Depends(get_db)) -> RepoService:
    return RepoService(db=db)


def trinity_service(db=Depends(get_db), graph=Depends(get_graph)) -> TrinityService:
    return TrinityService(db=db, graph=graph)


def okr_service(db=Depends(get_db)) -> OKRService:
    return OKRService(db=db)


def goal_service(db=Depends(get_db)) -> GoalService:
    return GoalService(db=db)


def prompt_router(db=Depends(get_db)) -> PromptRouter:
    return PromptRouter(db=db)


def document_processor(db=Depends(get_db), llm=Depends(get_llm)) -> DocumentProcessor:
    return DocumentProcessor(db=db, llm=llm)


def workspace_service(db=Depends(get_db), llm=Depends(get_llm)) -> WorkspaceService:
    return WorkspaceService(db=db, llm=llm)
