"""
Demande Lifecycle Platform
Deferred Task Runner.

Lightweight fire-and-forget runner for work that must happen shortly after
a request commits (e.g. the automatic VALIDATED → PROCESSED step). Tasks
run in background daemon threads inside their own Flask app context, so
they get a fresh DB session.

The caller never waits. Tests (and shutdown hooks) can await completion
deterministically through the returned handle or ``wait_all``.
"""

import itertools
import logging
import threading
import time
from datetime import datetime, timezone

from flask import Flask, current_app

logger = logging.getLogger(__name__)

TASK_PENDING = "pending"
TASK_RUNNING = "running"
TASK_COMPLETED = "completed"
TASK_FAILED = "failed"


class DeferredTask:
    """Handle on a submitted task. Completion is observable, not cancellable."""

    def __init__(self, task_id: int, name: str, delay: float):
        self.id = task_id
        self.name = name
        self.delay = delay
        self.status = TASK_PENDING
        self.result = None
        self.error: str | None = None
        self.submitted_at = datetime.now(timezone.utc)
        self.completed_at: datetime | None = None
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the task finished. Returns False on timeout."""
        return self._done.wait(timeout)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "error": self.error,
            "submitted_at": self.submitted_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<DeferredTask {self.id}: {self.name} [{self.status}]>"


class TaskRunner:
    """Runs deferred tasks in background threads and tracks them until done."""

    def __init__(self):
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._running: dict[int, DeferredTask] = {}

    def submit(
        self,
        name: str,
        execute_fn,
        *args,
        delay: float = 0.0,
        app: Flask | None = None,
        **kwargs,
    ) -> DeferredTask:
        """
        Schedule ``execute_fn(*args, **kwargs)`` to run after ``delay`` seconds.

        Args:
            name: Label used in logs, e.g. "auto_process:DEM-2026-000001".
            execute_fn: Callable run inside a fresh app context.
            delay: Seconds to sleep before running.
            app: Flask app to run under. Defaults to ``current_app``.

        Returns:
            The DeferredTask handle.
        """
        if app is None:
            app = current_app._get_current_object()

        task = DeferredTask(next(self._ids), name, delay)
        with self._lock:
            self._running[task.id] = task

        t = threading.Thread(
            target=self._execute_in_background,
            args=(app, task, execute_fn, args, kwargs),
            name=f"deferred-{task.id}",
            daemon=True,
        )
        t.start()
        logger.debug("TaskRunner: submitted task %d (%s, delay=%.2fs)", task.id, name, delay)
        return task

    def pending(self) -> list[DeferredTask]:
        with self._lock:
            return list(self._running.values())

    def wait_all(self, timeout: float | None = None) -> bool:
        """Wait for every task submitted so far. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for task in self.pending():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not task.wait(remaining):
                return False
        return True

    # ── Internal ──────────────────────────────────────────────────────────

    def _execute_in_background(self, app: Flask, task: DeferredTask, execute_fn, args, kwargs):
        if task.delay:
            time.sleep(task.delay)
        task.status = TASK_RUNNING
        try:
            with app.app_context():
                task.result = execute_fn(*args, **kwargs)
            task.status = TASK_COMPLETED
        except Exception as e:
            task.status = TASK_FAILED
            task.error = str(e)
            logger.error("TaskRunner: task %d (%s) failed: %s", task.id, task.name, e, exc_info=True)
        finally:
            task.completed_at = datetime.now(timezone.utc)
            with self._lock:
                self._running.pop(task.id, None)
            task._done.set()


task_runner = TaskRunner()
