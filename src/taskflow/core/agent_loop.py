"""
Main orchestration loop for TaskFlow.

The agent starts with a minimal system prompt (no tool catalog) and is told to call
``discover_tools`` first.  Each iteration asks the planner for one JSON decision, runs the
requested tool through the registry, and feeds the result back as a new user turn:

    PLANNING -> EXECUTING_TOOL -> PLANNING -> ... -> DONE | DONE_BY_EXHAUSTION

Planner and tool anomalies never abort a run.  Malformed output ends the run with the raw
text as the answer, unknown tools and tool failures become corrective turns, and running out of
iterations triggers a plain-text summary.  Only hard completion errors propagate.
"""

from __future__ import annotations

import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
)

from taskflow.core.errors import (
    CompletionTimeout,
    ToolExecutionError,
    ToolNotFound,
)
from taskflow.core.planner import (
    SYSTEM_PROMPT,
    CompletionClient,
    history_messages,
    parse_decision,
)
from taskflow.core.schema import (
    AgentResult,
    AgentState,
    AgentStep,
    CompletionOptions,
    FinalAnswer,
    Message,
    StepOutcome,
)
from taskflow.core.tool_executor import execute_tool
from taskflow.tools import (
    DISCOVER_TOOLS,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 7
DEFAULT_ANSWER = "Done!"
EXHAUSTED_ANSWER = "Task completed."

PLANNER_OPTIONS = CompletionOptions(temperature=0.3, max_tokens=1024, json_mode=True)
SUMMARY_PROMPT = (
    "Maximum iterations reached. Summarize what was done and respond to the user. "
    "Plain text only."
)


class AgentRun(BaseModel):
    """Ephemeral state of one invocation."""

    messages: List[Message]
    steps: List[AgentStep] = Field(default_factory=list)
    iteration_count: int = 0
    tools_discovered: bool = False
    state: AgentState = AgentState.PLANNING
    consecutive_failures: int = 0
    final_response: str | None = None

    def add_turns(self, decision_text: str, feedback: str) -> None:
        self.messages.append(Message(role="assistant", content=decision_text))
        self.messages.append(Message(role="user", content=feedback))


class Agent:
    """Tool-calling agent with runtime tool discovery."""

    def __init__(
        self,
        registry: ToolRegistry,
        client: CompletionClient,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_consecutive_failures: int = 0,
        summary_model: str | None = None,
    ) -> None:
        self.registry = registry
        self.client = client
        self.max_iterations = max_iterations
        self.max_consecutive_failures = max_consecutive_failures
        self.summary_options = CompletionOptions(
            temperature=0.7, max_tokens=256, json_mode=False, model=summary_model
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def run(
        self,
        message: str,
        user_id: str,
        history: Sequence[Dict[str, Any] | Message] = (),
    ) -> AgentResult:
        """Run the loop for *message* on behalf of *user_id* and return the finished run."""
        run = AgentRun(
            messages=[
                Message(role="system", content=SYSTEM_PROMPT),
                *history_messages(history),
                Message(role="user", content=message),
            ]
        )

        while run.iteration_count < self.max_iterations:
            run.iteration_count += 1
            run.state = AgentState.PLANNING
            self._iterate(run, user_id)
            if run.state is AgentState.DONE:
                break
            if self._too_many_failures(run):
                logger.warning(
                    "Stopping after %d consecutive tool failures", run.consecutive_failures
                )
                break

        if run.state is not AgentState.DONE:
            run.state = AgentState.DONE_BY_EXHAUSTION
            run.final_response = self._summarize(run)

        logger.info(
            "Agent run for user %s finished in %d iterations (%s)",
            user_id,
            run.iteration_count,
            run.state.value,
        )
        return AgentResult(
            steps=run.steps,
            final_response=run.final_response or "",
            iteration_count=run.iteration_count,
            tools_discovered=run.tools_discovered,
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _iterate(self, run: AgentRun, user_id: str) -> None:
        try:
            text = self.client.complete(run.messages, PLANNER_OPTIONS)
        except CompletionTimeout as exc:
            logger.warning("Planner timed out on iteration %d: %s", run.iteration_count, exc)
            run.steps.append(
                AgentStep(tool_result={"error": str(exc)}, outcome=StepOutcome.PLANNER_TIMEOUT)
            )
            run.messages.append(
                Message(
                    role="user",
                    content="The previous planning step timed out. Continue with the next step.",
                )
            )
            return

        decision = parse_decision(text)
        if decision is None:
            run.steps.append(AgentStep(outcome=StepOutcome.MALFORMED_OUTPUT))
            self._finish(run, text if text.strip() else DEFAULT_ANSWER)
            return

        if isinstance(decision, FinalAnswer):
            run.steps.append(AgentStep(thought=decision.thought, outcome=StepOutcome.ANSWERED))
            self._finish(run, decision.response or DEFAULT_ANSWER)
            return

        if decision.tool == DISCOVER_TOOLS:
            run.tools_discovered = True

        run.state = AgentState.EXECUTING_TOOL
        try:
            result = execute_tool(self.registry, decision.tool, user_id, decision.parameters)
        except ToolNotFound:
            logger.info("Planner requested unknown tool '%s'", decision.tool)
            outcome = StepOutcome.TOOL_NOT_FOUND
            result = {"error": f"Unknown tool: {decision.tool}"}
            feedback = (
                f'Unknown tool "{decision.tool}". '
                f"Call {DISCOVER_TOOLS} to see available tools."
            )
        except ToolExecutionError as exc:
            outcome = StepOutcome.TOOL_FAILED
            result = {"error": str(exc)}
            feedback = (
                f'Tool "{decision.tool}" failed: {exc}\n\nHandle this error appropriately.'
            )
        else:
            outcome = StepOutcome.TOOL_SUCCEEDED
            feedback = (
                f'Tool "{decision.tool}" returned:\n'
                f"{json.dumps(result, indent=2, default=str)}\n\n"
                "Continue with the next step or provide a final response."
            )

        if outcome is StepOutcome.TOOL_SUCCEEDED:
            run.consecutive_failures = 0
        else:
            run.consecutive_failures += 1

        run.add_turns(text, feedback)
        run.steps.append(
            AgentStep(
                thought=decision.thought,
                tool=decision.tool,
                parameters=decision.parameters,
                tool_result=result,
                outcome=outcome,
            )
        )

    def _finish(self, run: AgentRun, answer: str) -> None:
        run.final_response = answer
        run.state = AgentState.DONE

    def _too_many_failures(self, run: AgentRun) -> bool:
        return 0 < self.max_consecutive_failures <= run.consecutive_failures

    def _summarize(self, run: AgentRun) -> str:
        messages = [*run.messages, Message(role="user", content=SUMMARY_PROMPT)]
        try:
            summary = self.client.complete(messages, self.summary_options)
        except CompletionTimeout as exc:
            logger.warning("Summary call timed out: %s", exc)
            return EXHAUSTED_ANSWER
        return summary.strip() or EXHAUSTED_ANSWER
