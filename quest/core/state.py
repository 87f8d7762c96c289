"""TypedDict state models for LangGraph graphs."""
from typing import Annotated, Any
from typing_extensions import TypedDict, NotRequired
from langgraph.graph.message import add_messages


class BaseState(TypedDict):
    """Shared base fields across all graphs."""
    messages: Annotated[list, add_messages]
    confidence: float
    error: str | None


class AgentSearchState(BaseState):
    """State for the Quest agent search graph."""
    query: str
    user_id: NotRequired[str | None]
    intent: str  # decision_maker | introduction | sales | company | temporal | relationship | general
    strategy: str  # "vector" | "graph" | "hybrid"
    entities: dict[str, Any]
    vector_results: list[dict[str, Any]]
    graph_results: list[dict[str, Any]]
    context: str
    answer: str
