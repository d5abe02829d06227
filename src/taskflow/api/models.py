"""
Pydantic models for TaskFlow API requests and responses.
This module defines the request and response schemas used by the TaskFlow API.
"""

from typing import (
    Any,
    Dict,
    List,
)

from pydantic import (
    BaseModel,
    Field,
)

from taskflow.core.schema import (
    AgentStep,
    HistoryMessage,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class AgentRequest(BaseModel):
    """Incoming user message plus prior turns."""

    message: str = Field(..., min_length=1, description="User message for the agent")
    conversation_history: List[HistoryMessage] = Field(
        default_factory=list, description="Prior user/assistant turns, oldest first"
    )


class AgentResponse(BaseModel):
    """Finished agent run returned to the caller."""

    steps: List[AgentStep]
    response: str
    iterations: int
    tools_discovered: bool


class ToolListResponse(BaseModel):
    """Catalog of registered tools."""

    tools: List[Dict[str, Any]]
    count: int
