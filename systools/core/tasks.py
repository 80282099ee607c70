"""Background tasks: delegated operations running on a worker pool"""
import itertools
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, List

from systools.config import Config
from systools.core.errors import NotFoundError
from systools.core.models import BackgroundTaskRecord, TaskStatus, ToolResult
from systools.observability.logger import logger


class BackgroundTaskManager:
    """Track delegated operations from ``running`` to ``completed``.

    All reads and the single terminal write happen under one condition
    variable, so a poll sees either the running record or the completed one
    with its result, never a mix.
    """

    def __init__(self, max_workers: int = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or Config.TASK_WORKERS,
            thread_name_prefix="systools-task",
        )
        self._cond = threading.Condition()
        self._records: Dict[str, BackgroundTaskRecord] = {}
        self._counter = itertools.count(1)

    def launch(self, operation: Callable[[], ToolResult], description: str = None) -> str:
        """Record the task as running and return its id without waiting"""
        with self._cond:
            task_id = f"task_{next(self._counter)}"
            self._records[task_id] = BackgroundTaskRecord(
                id=task_id,
                description=description,
                started_at=datetime.now(timezone.utc),
            )
        self._executor.submit(self._run, task_id, operation)
        logger.info("task_launched", task_id=task_id, description=description)
        return task_id

    def _run(self, task_id: str, operation: Callable[[], ToolResult]):
        try:
            result = operation()
            if not isinstance(result, ToolResult):
                result = ToolResult.ok(result)
        except Exception as e:
            logger.error("task_failed", task_id=task_id, error=str(e), exc_info=True)
            result = ToolResult.from_exception(e)
        self._complete(task_id, result)

    def _complete(self, task_id: str, result: ToolResult):
        with self._cond:
            record = self._records[task_id]
            if record.status == TaskStatus.COMPLETED:
                return
            self._records[task_id] = record.model_copy(update={
                "status": TaskStatus.COMPLETED,
                "result": result,
                "finished_at": datetime.now(timezone.utc),
            })
            self._cond.notify_all()
        logger.info("task_completed", task_id=task_id, is_error=result.is_error)

    def poll(self, task_id: str, block: bool = False, timeout: float = None) -> BackgroundTaskRecord:
        """Return the task's record, optionally waiting up to timeout seconds for completion"""
        deadline = None if timeout is None else time.monotonic() + max(timeout, 0)
        with self._cond:
            record = self._get(task_id)
            while block and record.status == TaskStatus.RUNNING:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    break
                self._cond.wait(remaining)
                record = self._get(task_id)
            return record

    def _get(self, task_id: str) -> BackgroundTaskRecord:
        record = self._records.get(task_id)
        if record is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return record

    def list(self) -> List[BackgroundTaskRecord]:
        with self._cond:
            return list(self._records.values())

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
