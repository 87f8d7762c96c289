from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from quest.agents.orchestrator import PRIMARY_AGENT, AgentOrchestrator, HandoverDecision
from quest.api.auth import get_current_user
from quest.api.deps import get_orchestrator

router = APIRouter(prefix="/agents", tags=["agents"])


class OrchestrateRequest(BaseModel):
    action: Literal["analyze", "execute", "detect_keywords", "current", "hand_back", "list"]
    message: str = ""
    current_agent: str = PRIMARY_AGENT
    history: list[dict[str, Any]] = []
    user_context: dict[str, Any] = {}
    decision: Optional[HandoverDecision] = None
    reason: str = ""


def _require_message(request: OrchestrateRequest) -> str:
    if not request.message.strip():
        raise ValueError("message is required")
    return request.message


@router.post("/orchestrate")
async def orchestrate(
    request: OrchestrateRequest,
    user_id: str = Depends(get_current_user),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> dict:
    if request.action == "analyze":
        decision = await orchestrator.analyze_for_handover(
            _require_message(request), request.current_agent, request.history, request.user_context,
        )
        return {
            "should_handover": decision is not None,
            "decision": decision.model_dump() if decision else None,
        }

    if request.action == "execute":
        if request.decision is None:
            raise ValueError("decision is required for execute")
        result = await orchestrator.execute_handover(
            user_id, request.current_agent, request.decision, request.history,
        )
        return result.model_dump()

    if request.action == "detect_keywords":
        return {"match": orchestrator.detect_handover_keywords(_require_message(request))}

    if request.action == "current":
        return {"agent_id": await orchestrator.get_current_agent(user_id)}

    if request.action == "hand_back":
        agent_id = await orchestrator.hand_back_to_quest(user_id, request.reason)
        return {"success": True, "agent_id": agent_id}

    return {"agents": [a.model_dump() for a in orchestrator.available_agents()]}
