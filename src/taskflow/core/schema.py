"""
Schema definitions for planner <-> agent <-> tool messages.

These data models serve as the contract between the planner LLM, the orchestration loop, and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    """One role-tagged turn of a conversation."""

    role: Role
    content: str


class HistoryMessage(Message):
    """A prior turn supplied by the caller; only user and assistant turns are accepted."""

    role: Literal["user", "assistant"]


class CompletionOptions(BaseModel):
    """Knobs passed to a completion client for a single call."""

    temperature: float = 0.3
    max_tokens: int = 1024
    json_mode: bool = False
    model: Optional[str] = None  # Overrides the client's default model


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
class ParameterInfo(BaseModel):
    """Information about a tool parameter."""

    type: str
    description: str = ""
    required: bool = False


ToolFunction = Callable[[Dict[str, Any], str], Any]


class ToolDescriptor(BaseModel):
    """A named capability the planner may invoke through the registry."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Registered tool name")
    description: str = ""
    parameters: Dict[str, ParameterInfo] = Field(default_factory=dict)
    execute: ToolFunction = Field(..., exclude=True, repr=False)

    def describe(self) -> Dict[str, Any]:
        """Return the serializable view of this tool (everything except ``execute``)."""
        return self.model_dump()


# ---------------------------------------------------------------------------
# Planner decisions
# ---------------------------------------------------------------------------
class RawDecision(BaseModel):
    """The JSON object the planner is instructed to emit."""

    model_config = ConfigDict(extra="ignore")

    thought: Optional[str] = None
    tool: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    response: Optional[str] = None


class FinalAnswer(BaseModel):
    """Planner decided it is done."""

    thought: str = ""
    response: Optional[str] = None


class ToolInvocation(BaseModel):
    """Planner wants a tool to run."""

    thought: str = ""
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


PlannerDecision = Union[FinalAnswer, ToolInvocation]


# ---------------------------------------------------------------------------
# Agent run records
# ---------------------------------------------------------------------------
class AgentState(str, Enum):
    """States of the agent loop."""

    PLANNING = "planning"
    EXECUTING_TOOL = "executing_tool"
    DONE = "done"
    DONE_BY_EXHAUSTION = "done_by_exhaustion"


class StepOutcome(str, Enum):
    """How a single iteration of the loop ended."""

    ANSWERED = "answered"
    TOOL_SUCCEEDED = "tool_succeeded"
    TOOL_FAILED = "tool_failed"
    TOOL_NOT_FOUND = "tool_not_found"
    MALFORMED_OUTPUT = "malformed_output"
    PLANNER_TIMEOUT = "planner_timeout"


class AgentStep(BaseModel):
    """A single iteration in the agent loop (audit trail entry)."""

    model_config = ConfigDict(frozen=True)

    thought: str = ""
    tool: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    tool_result: Any = None
    outcome: StepOutcome


class AgentResult(BaseModel):
    """What a finished agent run hands back to its caller."""

    steps: List[AgentStep] = Field(default_factory=list)
    final_response: str
    iteration_count: int
    tools_discovered: bool
