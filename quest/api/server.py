"""FastAPI server — REST interface for Quest.

Errors from the core modules map onto HTTP status codes here:
ValueError → 400, PermissionError → 403, NotFoundError → 404,
TrinityConflictError → 409, vendor/backend failures → 500. Every error body
is {"error": ...}.
"""
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from config.settings import get_settings
from quest.api.routes import (
    agents,
    goals,
    hume,
    intelligence,
    okrs,
    prompts,
    repo,
    search,
    skills,
    trinity,
    visualization,
    workspaces,
)
from quest.core.errors import NotFoundError
from quest.repo.trinity import TrinityConflictError

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("quest.api_startup", version=get_settings().app_version)
    yield
    from quest.agents import orchestrator
    from quest.core import database, knowledge_graph

    if database._db is not None:
        await database._db.close()
    if knowledge_graph._graph is not None:
        await knowledge_graph._graph.close()
    if orchestrator._orchestrator is not None:
        await orchestrator._orchestrator.store.close()
    log.info("quest.api_shutdown")


app = FastAPI(
    title="Quest API",
    description="AI career coaching: tiered repos, company intelligence, search and voice",
    version=get_settings().app_version,
    lifespan=lifespan,
)


# ─────────────────────────────────────────────────────────────────────────────
# Error handlers
# ─────────────────────────────────────────────────────────────────────────────

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return _error(400, f"{field}: {message}" if field else message)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(PermissionError)
async def permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
    return _error(403, str(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, str(exc))


@app.exception_handler(TrinityConflictError)
async def trinity_conflict_handler(request: Request, exc: TrinityConflictError) -> JSONResponse:
    return _error(409, str(exc))


@app.exception_handler(httpx.HTTPError)
async def upstream_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    log.error("api.upstream_failed", path=request.url.path, error=str(exc))
    return _error(500, "Upstream service error")


@app.exception_handler(RuntimeError)
async def runtime_error_handler(request: Request, exc: RuntimeError) -> JSONResponse:
    log.error("api.backend_unavailable", path=request.url.path, error=str(exc))
    return _error(500, str(exc))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("api.unhandled", path=request.url.path, error=str(exc))
    return _error(500, "Internal server error")


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    settings = get_settings()
    return {"status": "ok", "service": settings.app_name, "version": settings.app_version}


for module in (
    repo, trinity, skills, okrs, goals, intelligence, search,
    agents, prompts, workspaces, visualization, hume,
):
    app.include_router(module.router)


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("quest.api.server:app", host="0.0.0.0", port=settings.api_port, reload=settings.debug)


if __name__ == "__main__":
    main()
