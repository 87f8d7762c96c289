from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

from quest.api.auth import get_current_user
from quest.api.deps import document_processor, workspace_service
from quest.documents.processor import AccessLevel, DocumentProcessor, DocumentType, WorkspaceService

router = APIRouter(prefix="/workspaces", tags=["workspaces"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class CreateWorkspaceRequest(BaseModel):
    company_name: str
    display_name: str = ""
    description: Optional[str] = None
    access_level: AccessLevel = AccessLevel.PRIVATE


class DocumentSearchRequest(BaseModel):
    query: str
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    limit: int = Field(default=10, ge=1, le=50)


class ChatRequest(BaseModel):
    query: str


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


@router.post("")
async def create_workspace(
    request: CreateWorkspaceRequest,
    user_id: str = Depends(get_current_user),
    service: WorkspaceService = Depends(workspace_service),
) -> dict:
    workspace = await service.create_workspace(
        request.company_name,
        request.display_name,
        user_id,
        description=request.description,
        access_level=request.access_level.value,
    )
    return {"success": True, "workspace": workspace}


@router.post("/{workspace_id}/documents")
async def upload_document(
    workspace_id: str,
    file: UploadFile = File(...),
    title: str = Form(""),
    document_type: DocumentType = Form(DocumentType.PRODUCT_SPEC),
    access_level: AccessLevel = Form(AccessLevel.TEAM),
    tags: str = Form(""),
    user_id: str = Depends(get_current_user),
    service: WorkspaceService = Depends(workspace_service),
    processor: DocumentProcessor = Depends(document_processor),
) -> dict:
    await service.get_workspace(workspace_id, user_id)
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValueError("File too large (max 10MB)")
    filename = file.filename or "document.txt"
    document = await processor.process(
        workspace_id,
        user_id,
        title or filename,
        content,
        _extension(filename),
        document_type=document_type.value,
        access_level=access_level.value,
        tags=[t.strip() for t in tags.split(",") if t.strip()],
    )
    return {"success": True, "document": document}


@router.post("/{workspace_id}/search")
async def search_documents(
    workspace_id: str,
    request: DocumentSearchRequest,
    user_id: str = Depends(get_current_user),
    service: WorkspaceService = Depends(workspace_service),
) -> dict:
    results = await service.search(workspace_id, user_id, request.query, request.threshold, request.limit)
    return {"results": results, "total": len(results)}


@router.post("/{workspace_id}/chat")
async def chat(
    workspace_id: str,
    request: ChatRequest,
    user_id: str = Depends(get_current_user),
    service: WorkspaceService = Depends(workspace_service),
) -> dict:
    if not request.query.strip():
        raise ValueError("query is required")
    return await service.chat(workspace_id, user_id, request.query)
