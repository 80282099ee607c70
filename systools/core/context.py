"""Per-server mutable state, passed explicitly to every tool call"""
import threading
from typing import List

from systools.core.models import TodoItem
from systools.core.processes import BackgroundProcessManager
from systools.core.tasks import BackgroundTaskManager


class ServerContext:
    """Owns the background tables, the todo list and the plan-mode flag"""

    def __init__(self, processes: BackgroundProcessManager = None,
                 tasks: BackgroundTaskManager = None):
        self.processes = processes or BackgroundProcessManager()
        self.tasks = tasks or BackgroundTaskManager()
        self._lock = threading.Lock()
        self._todos: List[TodoItem] = []
        self._plan_mode = False
        self.initialized = False

    @property
    def todos(self) -> List[TodoItem]:
        with self._lock:
            return list(self._todos)

    def set_todos(self, items: List[TodoItem]):
        with self._lock:
            self._todos = list(items)

    @property
    def plan_mode(self) -> bool:
        with self._lock:
            return self._plan_mode

    def set_plan_mode(self, enabled: bool) -> bool:
        """Set the flag and return its previous value"""
        with self._lock:
            previous, self._plan_mode = self._plan_mode, enabled
            return previous

    def close(self):
        self.tasks.shutdown(wait=False)
