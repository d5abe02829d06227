"""Shared fixtures: a scripted completion client and a manual clock."""

import json
from typing import (
    Any,
    List,
    Sequence,
    Tuple,
)

import pytest

from taskflow.core.planner import CompletionClient
from taskflow.core.schema import (
    CompletionOptions,
    Message,
)
from taskflow.tools import (
    ToolRegistry,
    create_registry,
)


class ScriptedClient(CompletionClient):
    """Replays canned replies in order; the last one repeats forever."""

    def __init__(self, replies: Sequence[Any]) -> None:
        super().__init__()
        self.replies = list(replies)
        self.calls: List[Tuple[List[Message], CompletionOptions]] = []

    def complete(self, messages: Sequence[Message], options: CompletionOptions) -> str:
        self.calls.append((list(messages), options))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def scripted():
    """Factory for :class:`ScriptedClient`."""
    return ScriptedClient


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(1_700_000_000.0)


@pytest.fixture
def registry() -> ToolRegistry:
    """A fresh registry containing only ``discover_tools``."""
    return create_registry()
