"""
Tool registry for TaskFlow.

The registry maps a tool name to a :class:`~taskflow.core.schema.ToolDescriptor`.  It is
constructed once at start-up, handed to the agent loop, and may be changed at runtime with
:meth:`ToolRegistry.register` / :meth:`ToolRegistry.unregister`.

Plain functions can be registered with the decorator form:

    registry = ToolRegistry()

    @registry.tool("add", "Add two numbers", {"a": {"type": "number", "required": True}})
    def add(params, user_id):
        return params["a"] + params.get("b", 0)
"""

import logging
import threading
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
)

from taskflow.core.schema import (
    ParameterInfo,
    ToolDescriptor,
    ToolFunction,
)

logger = logging.getLogger(__name__)

DISCOVER_TOOLS = "discover_tools"
"""Reserved name of the meta-tool that lists every other tool."""


class ToolRegistry:
    """Thread-safe catalog of invokable tools."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDescriptor] = {}
        self._lock = threading.RLock()

    def register(self, descriptor: ToolDescriptor) -> None:
        """Insert or overwrite the tool named ``descriptor.name``."""
        with self._lock:
            if descriptor.name in self._tools:
                logger.debug("Replacing tool '%s'", descriptor.name)
            else:
                logger.debug("Registering tool '%s'", descriptor.name)
            self._tools[descriptor.name] = descriptor

    def unregister(self, name: str) -> None:
        """Remove *name* if it is registered."""
        with self._lock:
            if self._tools.pop(name, None) is not None:
                logger.debug("Unregistered tool '%s'", name)

    def get(self, name: str) -> Optional[ToolDescriptor]:
        """Return the tool registered as *name*, or ``None``."""
        with self._lock:
            return self._tools.get(name)

    def list_all(self) -> List[ToolDescriptor]:
        """Return a snapshot of all registered tools (order is not guaranteed)."""
        with self._lock:
            return list(self._tools.values())

    def describe_all(self) -> List[Dict[str, Any]]:
        """Return ``{name, description, parameters}`` for every registered tool."""
        return [tool.describe() for tool in self.list_all()]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._tools

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def tool(
        self,
        name: str,
        description: str = "",
        parameters: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> Callable[[ToolFunction], ToolFunction]:
        """
        Register the decorated function as a tool.

        Parameters
        ----------
        name:
            The tool name.  Registering an existing name replaces the old tool.
        description:
            Text shown to the planner by ``discover_tools``.  Defaults to the function docstring.
        parameters:
            Mapping of parameter name to ``{"type", "description", "required"}``.

        Returns
        -------
        Callable
            A decorator that registers the function and returns it unchanged.
        """

        def wrapper(fn: ToolFunction) -> ToolFunction:
            self.register(
                ToolDescriptor(
                    name=name,
                    description=description or (fn.__doc__ or "").strip(),
                    parameters={
                        key: ParameterInfo(**info) for key, info in (parameters or {}).items()
                    },
                    execute=fn,
                )
            )
            return fn

        return wrapper


def build_discovery_tool(registry: ToolRegistry) -> ToolDescriptor:
    """Build the ``discover_tools`` meta-tool bound to *registry*."""

    def discover(_params: Dict[str, Any], _user_id: str) -> Dict[str, Any]:
        tools = [t for t in registry.describe_all() if t["name"] != DISCOVER_TOOLS]
        return {
            "available_tools": [
                {
                    "name": t["name"],
                    "description": t["description"],
                    "parameters": [
                        {
                            "name": param_name,
                            "type": info["type"],
                            "required": info["required"],
                            "description": info["description"],
                        }
                        for param_name, info in t["parameters"].items()
                    ],
                }
                for t in tools
            ],
            "total_count": len(tools),
        }

    return ToolDescriptor(
        name=DISCOVER_TOOLS,
        description=(
            "Discover all available tools and their capabilities. "
            "Call this first to see what actions you can perform."
        ),
        parameters={},
        execute=discover,
    )


def create_registry() -> ToolRegistry:
    """Return a new registry with ``discover_tools`` already registered."""
    registry = ToolRegistry()
    registry.register(build_discovery_tool(registry))
    return registry
