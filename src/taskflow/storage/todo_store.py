"""
Todo datastore used by the agent's tools.

Every operation is scoped to an owning user id: a todo that belongs to someone else behaves
exactly like a todo that does not exist.  Two backends are provided:

* :class:`InMemoryTodoStore` - process-local, used by tests and by default.
* :class:`JsonTodoStore` - the in-memory store, flushed to ``<DATA_DIR>/todos.json`` on write.
"""

import json
import logging
import threading
import uuid
from abc import (
    ABC,
    abstractmethod,
)
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from taskflow.config import (
    Settings,
    settings as default_settings,
)

logger = logging.getLogger(__name__)


class Priority(str, Enum):
    """Todo priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Todo(BaseModel):
    """A todo item owned by a single user."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    priority: Priority = Priority.MEDIUM
    completed: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TodoStore(ABC):
    """Generic create/read/update/delete keyed by owning user id."""

    @abstractmethod
    def list(self, user_id: str, completed: Optional[bool] = None) -> List[Todo]:
        """Return the user's todos, newest first, optionally filtered by completion."""

    @abstractmethod
    def create(
        self,
        user_id: str,
        title: str,
        description: Optional[str] = None,
        priority: Priority | str = Priority.MEDIUM,
    ) -> Todo:
        """Create and return a todo.  Raises ``pydantic.ValidationError`` on bad fields."""

    @abstractmethod
    def get(self, user_id: str, todo_id: str) -> Optional[Todo]:
        """Return the todo if it exists and belongs to *user_id*."""

    @abstractmethod
    def update(self, user_id: str, todo_id: str, **fields: Any) -> Optional[Todo]:
        """Apply *fields* and return the updated todo, or ``None`` if not found."""

    @abstractmethod
    def delete(self, user_id: str, todo_id: str) -> Optional[Todo]:
        """Delete and return the todo, or ``None`` if not found."""


class InMemoryTodoStore(TodoStore):
    """Thread-safe dictionary-backed store."""

    def __init__(self) -> None:
        self._todos: Dict[str, Todo] = {}
        self._lock = threading.RLock()

    def list(self, user_id: str, completed: Optional[bool] = None) -> List[Todo]:
        with self._lock:
            todos = [
                t
                for t in self._todos.values()
                if t.user_id == user_id and (completed is None or t.completed == completed)
            ]
        return sorted(todos, key=lambda t: t.created_at, reverse=True)

    def create(
        self,
        user_id: str,
        title: str,
        description: Optional[str] = None,
        priority: Priority | str = Priority.MEDIUM,
    ) -> Todo:
        todo = Todo(user_id=user_id, title=title, description=description, priority=priority)
        with self._lock:
            self._todos[todo.id] = todo
            self._changed()
        logger.debug("Created todo %s for user %s", todo.id, user_id)
        return todo

    def get(self, user_id: str, todo_id: str) -> Optional[Todo]:
        with self._lock:
            todo = self._todos.get(todo_id)
        if todo is None or todo.user_id != user_id:
            return None
        return todo

    def update(self, user_id: str, todo_id: str, **fields: Any) -> Optional[Todo]:
        with self._lock:
            todo = self.get(user_id, todo_id)
            if todo is None:
                return None
            updated = Todo.model_validate({**todo.model_dump(), **fields})
            self._todos[todo_id] = updated
            self._changed()
        return updated

    def delete(self, user_id: str, todo_id: str) -> Optional[Todo]:
        with self._lock:
            todo = self.get(user_id, todo_id)
            if todo is None:
                return None
            del self._todos[todo_id]
            self._changed()
        return todo

    def _changed(self) -> None:
        """Hook called under the lock after every mutation."""


class JsonTodoStore(InMemoryTodoStore):
    """In-memory store persisted as a single JSON document."""

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self._path = Path(path)
        if self._path.exists():
            raw = json.loads(self._path.read_text(encoding="utf-8") or "[]")
            for item in raw:
                todo = Todo.model_validate(item)
                self._todos[todo.id] = todo
            logger.info("Loaded %d todos from %s", len(self._todos), self._path)

    def _changed(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        payload = [t.model_dump(mode="json") for t in self._todos.values()]
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(self._path)


def load_store(config: Settings | None = None) -> TodoStore:
    """Build the store selected by ``settings.TODO_STORE``."""
    config = config or default_settings
    kind = config.TODO_STORE.lower()
    if kind == "memory":
        return InMemoryTodoStore()
    if kind == "json":
        return JsonTodoStore(Path(config.DATA_DIR) / "todos.json")
    raise ValueError(f"Todo store '{config.TODO_STORE}' is not supported.")
