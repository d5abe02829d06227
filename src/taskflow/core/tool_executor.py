"""Dispatches tool calls registered in a :class:`~taskflow.tools.ToolRegistry` and wraps errors."""

import logging
from typing import (
    Any,
    Dict,
)

from taskflow.core.errors import (
    ToolExecutionError,
    ToolNotFound,
)
from taskflow.tools import ToolRegistry

logger = logging.getLogger(__name__)


def execute_tool(
    registry: ToolRegistry, name: str, user_id: str, params: Dict[str, Any] | None = None
) -> Any:
    """
    Look up *name* in *registry* and invoke it with *params* on behalf of *user_id*.

    Parameters
    ----------
    registry:
        The registry to resolve *name* against.
    name:
        The registered tool name.
    user_id:
        Owner on whose behalf the tool runs.
    params:
        Parameters passed verbatim to the tool.  If *None*, an empty dict is assumed.

    Returns
    -------
    Any
        Whatever the tool function returns.

    Raises
    ------
    ToolNotFound
        If the tool is not registered.
    ToolExecutionError
        If the tool invocation raises an exception.
    """

    if params is None:
        params = {}

    tool = registry.get(name)
    if tool is None:
        raise ToolNotFound(f"Tool '{name}' is not registered.")

    try:
        logger.debug("Executing tool '%s' for user %s with params=%s", name, user_id, params)
        return tool.execute(params, user_id)
    except (KeyError, TypeError, ValueError) as exc:
        # Parameter mismatch: give the caller a clean exception.
        logger.warning("Invalid parameters for tool '%s': %s", name, exc)
        raise ToolExecutionError(f"Invalid parameters for tool '{name}': {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc
