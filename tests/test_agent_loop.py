"""Behavioural tests for the agent loop, driven by a scripted planner."""

import pytest

from taskflow.core.agent_loop import (
    DEFAULT_ANSWER,
    EXHAUSTED_ANSWER,
    Agent,
    AgentRun,
)
from taskflow.core.errors import (
    CompletionError,
    CompletionTimeout,
)
from taskflow.core.planner import SYSTEM_PROMPT
from taskflow.core.schema import (
    AgentState,
    Message,
    StepOutcome,
)
from taskflow.tools import (
    DISCOVER_TOOLS,
    ToolRegistry,
)

FINAL_OK = {"thought": "finished", "tool": None, "response": "ok"}
DISCOVER = {"thought": "look around", "tool": DISCOVER_TOOLS}
UNKNOWN = {"thought": "guessing", "tool": "teleport", "parameters": {"to": "mars"}}


@pytest.fixture
def boom_registry(registry: ToolRegistry) -> ToolRegistry:
    @registry.tool("explode", "Always fails")
    def explode(params, user_id):
        raise RuntimeError("disk on fire")

    @registry.tool("echo", "Echo parameters back")
    def echo(params, user_id):
        return {"params": params, "user": user_id}

    return registry


def test_immediate_final_answer(registry, scripted) -> None:
    """A planner that answers straight away finishes after exactly one iteration."""
    client = scripted([{"tool": None, "response": "done"}])

    result = Agent(registry, client).run("hi", "u1")

    assert result.iteration_count == 1
    assert result.final_response == "done"
    assert len(result.steps) == 1
    assert result.steps[0].outcome is StepOutcome.ANSWERED
    assert len(client.calls) == 1


def test_final_answer_without_response_uses_fallback(registry, scripted) -> None:
    result = Agent(registry, scripted([{"thought": "nothing to do", "tool": None}])).run("hi", "u1")
    assert result.final_response == "Done!"


def test_unknown_tool_runs_to_exhaustion_and_summarizes(registry, scripted) -> None:
    """An unknown tool never aborts the run; the cap triggers a plain-text summary."""
    client = scripted([UNKNOWN] * 7 + ["I could not find a teleporter."])

    result = Agent(registry, client, max_iterations=7).run("go to mars", "u1")

    assert result.iteration_count == 7
    assert result.tools_discovered is False
    assert result.final_response == "I could not find a teleporter."
    assert [s.outcome for s in result.steps] == [StepOutcome.TOOL_NOT_FOUND] * 7
    assert result.steps[0].tool_result == {"error": "Unknown tool: teleport"}

    # 7 planning calls + 1 summary call in plain-text mode
    assert len(client.calls) == 8
    summary_messages, summary_options = client.calls[-1]
    assert summary_options.json_mode is False
    assert "Maximum iterations reached" in summary_messages[-1].content
    assert 'Unknown tool "teleport"' in client.calls[1][0][-1].content


def test_exhaustion_with_empty_summary_still_answers(registry, scripted) -> None:
    client = scripted([UNKNOWN, UNKNOWN, "   "])
    result = Agent(registry, client, max_iterations=2).run("x", "u1")
    assert result.final_response == EXHAUSTED_ANSWER


def test_discover_then_answer(boom_registry, scripted) -> None:
    client = scripted([DISCOVER, FINAL_OK])

    result = Agent(boom_registry, client).run("what can you do?", "u1")

    assert result.tools_discovered is True
    assert result.iteration_count == 2
    assert len(result.steps) == 2
    assert result.final_response == "ok"

    catalog = result.steps[0].tool_result
    names = {t["name"] for t in catalog["available_tools"]}
    assert names == {"explode", "echo"}

    # The tool output is folded back as a user turn after the assistant decision
    second_call_messages = client.calls[1][0]
    assert second_call_messages[-2].role == "assistant"
    assert second_call_messages[-1].role == "user"
    assert second_call_messages[-1].content.startswith(f'Tool "{DISCOVER_TOOLS}" returned:')


def test_failing_tool_does_not_abort_run(boom_registry, scripted) -> None:
    client = scripted([{"thought": "try it", "tool": "explode"}, FINAL_OK])

    result = Agent(boom_registry, client).run("blow up", "u1")

    assert result.final_response == "ok"
    assert result.steps[0].outcome is StepOutcome.TOOL_FAILED
    assert "disk on fire" in result.steps[0].tool_result["error"]
    feedback = client.calls[1][0][-1].content
    assert feedback.startswith('Tool "explode" failed:')
    assert "Handle this error appropriately." in feedback


def test_tool_receives_parameters_and_user(boom_registry, scripted) -> None:
    client = scripted([{"tool": "echo", "parameters": {"a": 1}}, FINAL_OK])

    result = Agent(boom_registry, client).run("echo", "alice")

    step = result.steps[0]
    assert step.outcome is StepOutcome.TOOL_SUCCEEDED
    assert step.parameters == {"a": 1}
    assert step.tool_result == {"params": {"a": 1}, "user": "alice"}


def test_malformed_output_becomes_final_answer(registry, scripted) -> None:
    client = scripted(["Sorry, I can only talk in prose."])

    result = Agent(registry, client).run("hi", "u1")

    assert result.final_response == "Sorry, I can only talk in prose."
    assert result.iteration_count == 1
    assert result.steps[0].outcome is StepOutcome.MALFORMED_OUTPUT


@pytest.mark.parametrize("reply", ["", "   \n"])
def test_blank_output_finishes_with_default_answer(registry, scripted, reply: str) -> None:
    """An empty planner reply never becomes an empty final response."""
    result = Agent(registry, scripted([reply])).run("hi", "u1")

    assert result.final_response == DEFAULT_ANSWER
    assert result.iteration_count == 1
    assert [s.outcome for s in result.steps] == [StepOutcome.MALFORMED_OUTPUT]


def test_prose_quoting_json_is_returned_verbatim(registry, scripted) -> None:
    """A prose answer that quotes a JSON object is the answer, not a decision."""
    prose = 'You can send settings like {"theme": "dark"} to the app.'

    result = Agent(registry, scripted([prose])).run("how do I configure it?", "u1")

    assert result.final_response == prose
    assert result.steps[0].outcome is StepOutcome.MALFORMED_OUTPUT


def test_conversation_layout(registry, scripted) -> None:
    client = scripted([FINAL_OK])
    history = [
        {"role": "user", "content": "earlier question"},
        {"role": "assistant", "content": "earlier answer"},
    ]

    Agent(registry, client).run("now this", "u1", history)

    messages, options = client.calls[0]
    assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[0].content == SYSTEM_PROMPT
    assert messages[-1].content == "now this"
    assert options.json_mode is True
    assert "list_todos" not in SYSTEM_PROMPT


def test_planner_timeout_is_recovered(registry, scripted) -> None:
    client = scripted([CompletionTimeout("slow"), FINAL_OK])

    result = Agent(registry, client).run("hi", "u1")

    assert result.final_response == "ok"
    assert result.iteration_count == 2
    assert result.steps[0].outcome is StepOutcome.PLANNER_TIMEOUT
    assert "timed out" in client.calls[1][0][-1].content


def test_summary_timeout_falls_back(registry, scripted) -> None:
    client = scripted([UNKNOWN, CompletionTimeout("slow")])
    result = Agent(registry, client, max_iterations=1).run("x", "u1")
    assert result.final_response == EXHAUSTED_ANSWER


def test_hard_completion_failure_propagates(registry, scripted) -> None:
    client = scripted([CompletionError("401 bad key")])
    with pytest.raises(CompletionError):
        Agent(registry, client).run("hi", "u1")


def test_consecutive_failure_threshold_stops_early(boom_registry, scripted) -> None:
    client = scripted([{"tool": "explode"}, UNKNOWN, "Gave up early."])

    result = Agent(boom_registry, client, max_consecutive_failures=2).run("x", "u1")

    assert result.iteration_count == 2
    assert result.final_response == "Gave up early."


def test_success_resets_consecutive_failures(boom_registry, scripted) -> None:
    client = scripted([{"tool": "explode"}, {"tool": "echo"}, {"tool": "explode"}, FINAL_OK])

    result = Agent(boom_registry, client, max_consecutive_failures=2).run("x", "u1")

    assert result.iteration_count == 4
    assert result.final_response == "ok"


def test_tools_discovered_sticks_even_if_discovery_unregistered(scripted) -> None:
    """Asking for discover_tools marks discovery even when the registry lacks it."""
    client = scripted([DISCOVER, FINAL_OK])

    result = Agent(ToolRegistry(), client).run("hi", "u1")

    assert result.tools_discovered is True
    assert result.steps[0].outcome is StepOutcome.TOOL_NOT_FOUND


def test_agent_run_starts_in_planning_with_empty_trail() -> None:
    run = AgentRun(messages=[{"role": "user", "content": "hi"}])

    assert run.messages == [Message(role="user", content="hi")]
    assert run.state is AgentState.PLANNING
    assert run.steps == [] and run.iteration_count == 0

    run.add_turns("{}", "feedback")
    assert [m.role for m in run.messages] == ["user", "assistant", "user"]
