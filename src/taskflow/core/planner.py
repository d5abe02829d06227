"""
Planner interface for TaskFlow.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
governor) stays model-agnostic and talks to a :class:`CompletionClient`.

We support three back-ends out of the box:

1. **OpenAI** (or any OpenAI-compatible endpoint such as Groq, via ``OPENAI_BASE_URL``).
2. **Anthropic** via the Messages API.
3. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models.

Additional providers can be added by subclassing :class:`CompletionClient` and registering via
:func:`register_client`.

The module also owns the decision protocol: :func:`parse_decision` turns the planner's raw
text into a :data:`~taskflow.core.schema.PlannerDecision`, or ``None`` when the text is not a
usable decision object.
"""

import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

import httpx
from pydantic import ValidationError

from taskflow.config import (
    Settings,
    settings as default_settings,
)
from taskflow.core.errors import (
    CompletionError,
    CompletionTimeout,
)
from taskflow.core.schema import (
    CompletionOptions,
    FinalAnswer,
    HistoryMessage,
    Message,
    PlannerDecision,
    RawDecision,
    ToolInvocation,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_CLIENT_REGISTRY: dict[str, Type["CompletionClient"]] = {}


def register_client(name: str) -> Callable:
    """Decorator to register a completion client class under *name*."""

    def wrapper(cls: Type["CompletionClient"]) -> Type["CompletionClient"]:
        _CLIENT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_client(name: str | None = None, config: Settings | None = None) -> "CompletionClient":
    """
    Factory that returns an instantiated completion client.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    """

    config = config or default_settings
    target = name or config.PLANNER
    cls = _CLIENT_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Completion client '{target}' is not registered.")
    return cls(config)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class CompletionClient(ABC):
    """Abstract ``complete(messages, options) -> text`` collaborator."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    def _model(self, options: CompletionOptions) -> str:
        return options.model or self.config.PLANNER_MODEL

    @abstractmethod
    def complete(self, messages: Sequence[Message], options: CompletionOptions) -> str:
        """
        Return the model's text reply to *messages*.

        Raises
        ------
        CompletionTimeout
            If the backend did not answer within ``LLM_TIMEOUT_SECONDS``.
        CompletionError
            For any other transport, auth or API failure.
        """


# ---------------------------------------------------------------------------
# Concrete clients
# ---------------------------------------------------------------------------
@register_client("openai")
class OpenAIClient(CompletionClient):
    """OpenAI Chat Completions client (also used for Groq's OpenAI-compatible API)."""

    def complete(self, messages: Sequence[Message], options: CompletionOptions) -> str:
        import openai  # pylint: disable=import-outside-toplevel

        client = openai.OpenAI(
            api_key=self.config.OPENAI_API_KEY,
            base_url=self.config.OPENAI_BASE_URL,
            timeout=self.config.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )
        kwargs: Dict[str, Any] = {}
        if options.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            resp = client.chat.completions.create(
                model=self._model(options),
                messages=[m.model_dump() for m in messages],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                **kwargs,
            )
        except openai.APITimeoutError as exc:
            raise CompletionTimeout(f"OpenAI request timed out: {exc}") from exc
        except openai.APIError as exc:
            logger.error("OpenAI completion error: %s", exc)
            raise CompletionError(f"Error calling OpenAI: {exc}") from exc

        content = resp.choices[0].message.content if resp.choices else None
        logger.debug("OpenAI completion: %s", content)
        return content or ""


@register_client("anthropic")
class AnthropicClient(CompletionClient):
    """Anthropic Claude client; system turns are lifted into the ``system`` parameter."""

    JSON_HINT = "Respond with a single JSON object only, no extra text."

    def complete(self, messages: Sequence[Message], options: CompletionOptions) -> str:
        import anthropic  # pylint: disable=import-outside-toplevel

        client = anthropic.Anthropic(
            api_key=self.config.ANTHROPIC_API_KEY,
            timeout=self.config.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )
        system_parts = [m.content for m in messages if m.role == "system"]
        if options.json_mode:
            system_parts.append(self.JSON_HINT)
        chat = [m.model_dump() for m in messages if m.role != "system"]

        try:
            response = client.messages.create(
                model=self._model(options),
                max_tokens=options.max_tokens,
                system="\n\n".join(system_parts),
                messages=chat,
                temperature=options.temperature,
            )
        except anthropic.APITimeoutError as exc:
            raise CompletionTimeout(f"Anthropic request timed out: {exc}") from exc
        except anthropic.APIError as exc:
            logger.error("Anthropic completion error: %s", exc)
            raise CompletionError(f"Error calling Anthropic: {exc}") from exc

        # Handle different content block types from Anthropic API
        texts = [block.text for block in response.content if block.type == "text"]
        content = "".join(texts)
        logger.debug("Anthropic completion: %s", content)
        return content


@register_client("tgi")
class TGIClient(CompletionClient):
    """TGI-based client with httpx."""

    def complete(self, messages: Sequence[Message], options: CompletionOptions) -> str:
        transcript = "\n\n".join(f"{m.role.capitalize()}: {m.content}" for m in messages)
        payload = {
            "inputs": f"{transcript}\n\nAssistant:",
            "parameters": {
                "max_new_tokens": options.max_tokens,
                "temperature": options.temperature,
                "stop": ["User:", "</s>"],
            },
        }

        try:
            with httpx.Client(timeout=self.config.LLM_TIMEOUT_SECONDS) as client:
                resp = client.post(self.config.TGI_ENDPOINT, json=payload)
                resp.raise_for_status()
                content = resp.json()["generated_text"]
        except httpx.TimeoutException as exc:
            raise CompletionTimeout(f"TGI request timed out: {exc}") from exc
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error("TGI request error: %s", exc)
            raise CompletionError(f"Error calling TGI endpoint: {exc}") from exc

        logger.debug("TGI completion: %s", content)
        return str(content)


# ---------------------------------------------------------------------------
# Decision protocol
# ---------------------------------------------------------------------------
SYSTEM_PROMPT = """\
You are an AI agent for TaskFlow, a todo management app.

IMPORTANT: You must FIRST call "discover_tools" to see what tools are available before \
attempting any action.

Your workflow:
1. Call discover_tools to see available capabilities
2. Use the appropriate tools to fulfill the user's request
3. You may need multiple tool calls to complete a task
4. When done, provide a final response (set tool to null)

Respond with JSON:
{
  "thought": "Your reasoning about what to do next",
  "tool": "tool_name" or null if done,
  "parameters": { ... } if calling a tool,
  "response": "Final response to user" (only when tool is null)
}

Remember: Always discover tools first if you haven't already in this conversation."""


_FENCE_RE = re.compile(r"\s*```(?:json)?\s*(.*?)\s*```\s*", re.DOTALL)


def _sanitize_json_string(content: str) -> str:
    """Unwrap a reply that is entirely one markdown code block; leave anything else as-is."""
    match = _FENCE_RE.fullmatch(content)
    if match:
        return match.group(1)
    return content.strip()


def parse_decision(content: str) -> PlannerDecision | None:
    """
    Parse the planner's reply into a decision.

    Returns ``None`` if *content* is not a JSON object with correctly typed fields; the caller
    then treats the raw text as the final answer.
    """
    try:
        raw = RawDecision.model_validate_json(_sanitize_json_string(content))
    except ValidationError as exc:
        logger.warning("Malformed planner output (%d errors): %r", exc.error_count(), content)
        return None

    if not raw.tool:
        return FinalAnswer(thought=raw.thought or "", response=raw.response)
    return ToolInvocation(thought=raw.thought or "", tool=raw.tool, parameters=raw.parameters or {})


def history_messages(history: Sequence[Dict[str, Any] | Message]) -> List[Message]:
    """
    Normalise caller-supplied history into :class:`Message` objects.

    Raises :class:`pydantic.ValidationError` for a ``system`` turn: the system prompt is always
    supplied by the agent itself.
    """
    return [
        HistoryMessage.model_validate(m.model_dump() if isinstance(m, Message) else m)
        for m in history
    ]
