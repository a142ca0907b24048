"""Running queued tasks on worker threads, with shell hooks around them."""

from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from saveany.enums import TaskType
from saveany.hooks import run_hook
from saveany.queue import QueueError, QueuedTask, TaskQueue

logger = logging.getLogger("saveany.core")


class TaskCancelled(Exception):
    """Raised by a task that stopped because it was cancelled."""


@dataclass(frozen=True)
class ExecHooks:
    """Shell commands run at points in a task's life; empty means none."""

    task_before_start: str = ""
    task_success: str = ""
    task_fail: str = ""
    task_cancel: str = ""


@runtime_checkable
class Executable(Protocol):
    """A unit of work the runner can execute."""

    @property
    def task_id(self) -> str: ...

    def task_type(self) -> TaskType: ...

    def execute(self, cancel_event: threading.Event) -> None: ...


class TaskRunner:
    """Executes added tasks in order on a fixed number of worker threads."""

    def __init__(self, workers: int = 1, hooks: ExecHooks | None = None) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.hooks = hooks or ExecHooks()
        self._queue: TaskQueue[Executable] = TaskQueue()
        self._threads: list[threading.Thread] = []

    def run(self) -> None:
        """Start the worker threads; calling it again while running does nothing."""
        if self._threads:
            return
        logger.info("Start processing tasks...")
        for index in range(self.workers):
            thread = threading.Thread(target=self._worker, name=f"saveany-worker-{index}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def _hook(self, command: str, stage: str, task_id: str) -> None:
        try:
            run_hook(command)
        except (subprocess.SubprocessError, OSError) as err:
            logger.error("Failed to execute %s hook for task %s: %s", stage, task_id, err)

    def _worker(self) -> None:
        while True:
            try:
                queued = self._queue.get()
            except QueueError as err:
                logger.debug("Worker stopping: %s", err)
                break
            task = queued.data
            task_id = task.task_id
            logger.info("Processing task: %s", task_id)
            self._hook(self.hooks.task_before_start, "before start", task_id)
            try:
                task.execute(queued.cancel_event)
            except TaskCancelled:
                logger.info("Task %s was canceled", task_id)
                self._hook(self.hooks.task_cancel, "cancel", task_id)
            except Exception as err:  # a failing task must not stop the worker
                logger.error("Failed to execute task %s: %s", task_id, err)
                self._hook(self.hooks.task_fail, "fail", task_id)
            else:
                logger.info("Task %s completed successfully", task_id)
                self._hook(self.hooks.task_success, "success", task_id)
            self._queue.done(queued.id)

    def add_task(self, task: Executable) -> None:
        """Queue a task; raises QueueError for a duplicate id or a closed runner."""
        self._queue.add(QueuedTask(task.task_id, task))

    def cancel_task(self, task_id: str) -> None:
        """Cancel a pending or running task; raises QueueError if it is unknown."""
        self._queue.cancel_task(task_id)

    def length(self) -> int:
        """Number of pending tasks that are not cancelled."""
        return self._queue.active_length()

    def close(self) -> None:
        """Stop accepting tasks, let pending ones finish and wait for the workers."""
        self._queue.close()
        for thread in self._threads:
            thread.join()
        self._threads.clear()