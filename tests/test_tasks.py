import threading
import time

import pytest

from systools.core.errors import NotFoundError
from systools.core.models import TaskStatus, ToolResult
from systools.core.tasks import BackgroundTaskManager


@pytest.fixture
def manager():
    tasks = BackgroundTaskManager(max_workers=2)
    yield tasks
    tasks.shutdown(wait=False)


def test_launch_returns_before_completion(manager):
    gate = threading.Event()
    task_id = manager.launch(lambda: (gate.wait(5), ToolResult.ok("done"))[1])

    record = manager.poll(task_id)
    assert task_id == "task_1"
    assert record.status == TaskStatus.RUNNING
    assert record.result is None

    gate.set()
    record = manager.poll(task_id, block=True, timeout=5)
    assert record.status == TaskStatus.COMPLETED
    assert record.result == ToolResult.ok("done")
    assert record.finished_at is not None


def test_blocking_poll_times_out_with_running_status(manager):
    gate = threading.Event()
    task_id = manager.launch(lambda: gate.wait(10) and ToolResult.ok("late"))

    start = time.monotonic()
    record = manager.poll(task_id, block=True, timeout=0.3)
    elapsed = time.monotonic() - start

    assert record.status == TaskStatus.RUNNING
    assert 0.25 <= elapsed < 2
    gate.set()


def test_blocking_poll_wakes_on_completion(manager):
    task_id = manager.launch(lambda: (time.sleep(0.2), ToolResult.ok("finished"))[1])

    start = time.monotonic()
    record = manager.poll(task_id, block=True, timeout=10)

    assert record.status == TaskStatus.COMPLETED
    assert record.result.text == "finished"
    assert time.monotonic() - start < 5


def test_failing_operation_completes_with_error(manager):
    def explode():
        raise RuntimeError("kaboom")

    task_id = manager.launch(explode)
    record = manager.poll(task_id, block=True, timeout=5)

    assert record.status == TaskStatus.COMPLETED
    assert record.result.is_error
    assert "kaboom" in record.result.text


def test_plain_return_value_is_wrapped(manager):
    task_id = manager.launch(lambda: "plain text")
    record = manager.poll(task_id, block=True, timeout=5)
    assert record.result == ToolResult.ok("plain text")


def test_poll_unknown_task(manager):
    with pytest.raises(NotFoundError, match="task_404"):
        manager.poll("task_404")


def test_ids_are_unique_and_listed(manager):
    ids = [manager.launch(lambda: ToolResult.ok("x")) for _ in range(5)]
    assert len(set(ids)) == 5
    for task_id in ids:
        manager.poll(task_id, block=True, timeout=5)
    assert {r.id for r in manager.list()} == set(ids)


def test_result_written_once_is_stable(manager):
    task_id = manager.launch(lambda: ToolResult.ok("first"))
    first = manager.poll(task_id, block=True, timeout=5)

    manager._complete(task_id, ToolResult.ok("second"))

    again = manager.poll(task_id)
    assert again.result.text == "first"
    assert again.finished_at == first.finished_at
