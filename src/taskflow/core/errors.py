"""
Exception types shared by the agent core.

Only identity, governor and completion failures ever escape ``AgentService.run_agent``.
Planner and tool anomalies are absorbed by the agent loop and show up as step outcomes.
"""


class TaskflowError(RuntimeError):
    """Base class for all TaskFlow errors."""


class Unauthorized(TaskflowError):
    """Raised when an agent invocation has no authenticated user."""


class RateLimited(TaskflowError):
    """Raised when a user exceeds the sliding-window request quota."""

    def __init__(self, retry_after: int, remaining: int = 0) -> None:
        super().__init__(f"Rate limit exceeded, retry in {retry_after}s")
        self.retry_after = retry_after
        self.remaining = remaining


class TokenBudgetExceeded(TaskflowError):
    """Raised when the estimated token cost would overrun the user's daily budget."""

    def __init__(self, used: int, limit: int, retry_after: int) -> None:
        super().__init__(f"Daily token budget exhausted ({used}/{limit})")
        self.used = used
        self.limit = limit
        self.retry_after = retry_after


class CompletionError(TaskflowError):
    """Raised when the language-model backend cannot be reached or rejects the call."""


class CompletionTimeout(CompletionError):
    """Raised when the language-model backend does not answer in time."""


class ToolExecutionError(TaskflowError):
    """Raised when a requested tool cannot run or fails."""


class ToolNotFound(ToolExecutionError):
    """Raised when the planner asks for a tool that is not registered."""
