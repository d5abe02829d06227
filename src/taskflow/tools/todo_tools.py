"""Built-in todo tools exposed to the agent."""

import logging
from typing import (
    Any,
    Dict,
)

from taskflow.storage.todo_store import (
    Priority,
    TodoStore,
)
from taskflow.tools import ToolRegistry

logger = logging.getLogger(__name__)

NOT_FOUND = {"success": False, "error": "Todo not found"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def register_todo_tools(registry: ToolRegistry, store: TodoStore) -> None:
    """Register the todo CRUD tools on *registry*, backed by *store*."""

    @registry.tool(
        "list_todos",
        "List all todos for the user. Can filter by completion status (completed=true/false).",
        {
            "completed": {
                "type": "boolean",
                "description": "Filter by completion status. Omit for all todos.",
                "required": False,
            }
        },
    )
    def list_todos(params: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        completed = params.get("completed")
        todos = store.list(user_id, None if completed is None else _as_bool(completed))
        return {
            "todos": [
                {
                    "id": t.id,
                    "title": t.title,
                    "completed": t.completed,
                    "priority": t.priority.value,
                }
                for t in todos
            ],
            "count": len(todos),
        }

    @registry.tool(
        "create_todo",
        "Create a new todo item for the user.",
        {
            "title": {"type": "string", "description": "The title of the todo", "required": True},
            "description": {
                "type": "string",
                "description": "Optional description",
                "required": False,
            },
            "priority": {
                "type": "string",
                "description": "Priority level: LOW, MEDIUM, or HIGH. Defaults to MEDIUM.",
                "required": False,
            },
        },
    )
    def create_todo(params: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        priority = str(params.get("priority") or Priority.MEDIUM.value).upper()
        todo = store.create(
            user_id,
            title=params["title"],
            description=params.get("description"),
            priority=priority,
        )
        return {
            "success": True,
            "todo": {"id": todo.id, "title": todo.title, "priority": todo.priority.value},
        }

    @registry.tool(
        "complete_todo",
        "Mark a todo as completed.",
        {
            "todoId": {
                "type": "string",
                "description": "The ID of the todo to complete",
                "required": True,
            }
        },
    )
    def complete_todo(params: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        todo = store.update(user_id, params["todoId"], completed=True)
        if todo is None:
            return dict(NOT_FOUND)
        return {"success": True, "todo": {"id": todo.id, "title": todo.title, "completed": True}}

    @registry.tool(
        "delete_todo",
        "Delete a todo item permanently.",
        {
            "todoId": {
                "type": "string",
                "description": "The ID of the todo to delete",
                "required": True,
            }
        },
    )
    def delete_todo(params: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        todo = store.delete(user_id, params["todoId"])
        if todo is None:
            return dict(NOT_FOUND)
        logger.info("User %s deleted todo %s via agent", user_id, todo.id)
        return {"success": True, "message": f'Deleted: "{todo.title}"'}

    @registry.tool("summarize_todos", "Get a comprehensive summary of all todos with statistics.")
    def summarize_todos(_params: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        todos = store.list(user_id)
        pending = [t for t in todos if not t.completed]
        return {
            "total": len(todos),
            "completed": len(todos) - len(pending),
            "pending": len(pending),
            "by_priority": {
                level.value.lower(): sum(1 for t in pending if t.priority is level)
                for level in (Priority.HIGH, Priority.MEDIUM, Priority.LOW)
            },
            "pending_titles": [
                {"title": t.title, "priority": t.priority.value} for t in pending
            ],
        }
