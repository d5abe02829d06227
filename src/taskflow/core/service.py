"""Entry point for callers: identity, then governor, then the agent loop."""

import logging
from typing import (
    Any,
    Dict,
    Optional,
    Sequence,
)

from pydantic import BaseModel

from taskflow.config import (
    Settings,
    settings as default_settings,
)
from taskflow.core.agent_loop import Agent
from taskflow.core.errors import (
    RateLimited,
    TokenBudgetExceeded,
    Unauthorized,
)
from taskflow.core.governor import (
    Governor,
    estimate_tokens,
)
from taskflow.core.planner import (
    CompletionClient,
    load_client,
)
from taskflow.core.schema import (
    AgentResult,
    Message,
)
from taskflow.storage.todo_store import (
    TodoStore,
    load_store,
)
from taskflow.tools import (
    ToolRegistry,
    create_registry,
)
from taskflow.tools.todo_tools import register_todo_tools

logger = logging.getLogger(__name__)


class User(BaseModel):
    """The authenticated caller, as handed over by the identity provider."""

    id: str


class AgentService:
    """Gates agent runs on identity, request rate and token budget."""

    def __init__(self, agent: Agent, governor: Governor) -> None:
        self.agent = agent
        self.governor = governor

    @property
    def registry(self) -> ToolRegistry:
        return self.agent.registry

    def run_agent(
        self,
        message: str,
        user: Optional[User],
        history: Sequence[Dict[str, Any] | Message] = (),
    ) -> AgentResult:
        """
        Run the agent for *user*.

        Raises
        ------
        Unauthorized
            If *user* is missing.
        RateLimited
            If the user's sliding window is full.
        TokenBudgetExceeded
            If the estimated prompt size would overrun today's budget.
        """
        if user is None or not user.id:
            raise Unauthorized("Unauthorized")

        rate = self.governor.check_rate_limit(user.id)
        if not rate.allowed:
            raise RateLimited(retry_after=rate.reset_in, remaining=rate.remaining)

        prompt_text = message + "".join(
            m.content if isinstance(m, Message) else str(m.get("content", "")) for m in history
        )
        usage = self.governor.track_token_usage(user.id, estimate_tokens(prompt_text))
        if not usage.allowed:
            raise TokenBudgetExceeded(used=usage.used, limit=usage.limit, retry_after=usage.reset_in)

        return self.agent.run(message, user.id, history)


def build_service(
    config: Settings | None = None,
    client: CompletionClient | None = None,
    store: TodoStore | None = None,
) -> AgentService:
    """Construct the process-wide service graph from *config*."""
    config = config or default_settings

    registry = create_registry()
    register_todo_tools(registry, store or load_store(config))

    agent = Agent(
        registry=registry,
        client=client or load_client(config=config),
        max_iterations=config.MAX_ITERATIONS,
        max_consecutive_failures=config.MAX_CONSECUTIVE_FAILURES,
        summary_model=config.SUMMARY_MODEL,
    )
    governor = Governor(
        max_requests=config.RATE_LIMIT_REQUESTS,
        window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        tokens_per_day=config.TOKENS_PER_DAY,
    )
    logger.info(
        "Agent service ready (planner=%s, tools=%d)",
        config.PLANNER,
        len(registry),
    )
    return AgentService(agent, governor)
