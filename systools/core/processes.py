"""Background shell processes launched detached from the server"""
import itertools
import os
import signal
import subprocess
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from systools.config import Config
from systools.core.errors import NotFoundError
from systools.core.models import BackgroundProcessRecord
from systools.observability.logger import logger


class BackgroundProcessManager:
    """Owns the table of detached processes keyed by ``shell_<n>`` ids.

    Records survive natural exit (the reaper only fills in ``exit_code``) so
    the log stays discoverable; ``terminate`` is the only way to drop one.
    """

    def __init__(self, log_dir: str = None):
        self.log_dir = Path(log_dir or Config.SHELL_LOG_DIR)
        self._lock = threading.Lock()
        self._records: Dict[str, BackgroundProcessRecord] = {}
        self._handles: Dict[str, subprocess.Popen] = {}
        self._terminated = set()
        self._counter = itertools.count(1)

    def launch(self, command: str, cwd: str = None) -> BackgroundProcessRecord:
        """Start command in its own session; never waits for it"""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            process_id = f"shell_{next(self._counter)}"
        log_path = self.log_dir / f"{process_id}.log"

        with open(log_path, "wb") as log_file:
            handle = subprocess.Popen(
                command,
                shell=True,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )

        record = BackgroundProcessRecord(
            id=process_id,
            pid=handle.pid,
            command=command,
            log_path=str(log_path),
            started_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._records[process_id] = record
            self._handles[process_id] = handle

        threading.Thread(
            target=self._reap, args=(process_id, handle),
            name=f"reap-{process_id}", daemon=True,
        ).start()
        logger.info("process_launched", process_id=process_id, pid=handle.pid, command=command)
        return record

    def _reap(self, process_id: str, handle: subprocess.Popen):
        exit_code = handle.wait()
        with self._lock:
            record = self._records.get(process_id)
            if record is not None:
                self._records[process_id] = record.model_copy(update={"exit_code": exit_code})
        logger.info("process_exited", process_id=process_id, exit_code=exit_code)

    def get(self, process_id: str) -> BackgroundProcessRecord:
        with self._lock:
            record = self._records.get(process_id)
        if record is None:
            raise NotFoundError(f"Shell not found: {process_id}")
        return record

    def list(self) -> List[BackgroundProcessRecord]:
        with self._lock:
            return list(self._records.values())

    def terminate(self, process_id: str) -> str:
        """SIGTERM the process group and drop the record.

        Already-exited processes and repeated calls count as success.
        """
        with self._lock:
            record = self._records.pop(process_id, None)
            handle = self._handles.pop(process_id, None)
            if record is None:
                if process_id in self._terminated:
                    return f"Process already terminated: {process_id}"
                raise NotFoundError(f"Shell not found: {process_id}")
            self._terminated.add(process_id)

        if handle.poll() is not None:
            return f"Process already terminated: {process_id} (exit code {handle.returncode})"

        try:
            os.killpg(handle.pid, signal.SIGTERM)
        except ProcessLookupError:
            return f"Process already terminated: {process_id}"
        logger.info("process_terminated", process_id=process_id, pid=handle.pid)
        return f"Killed: {process_id}"
