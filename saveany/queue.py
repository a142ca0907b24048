"""A thread-safe FIFO task queue with cancellation."""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime
from typing import Generic, TypeVar

T = TypeVar("T")


class QueueError(Exception):
    """Raised when a queue operation cannot be performed."""


class QueuedTask(Generic[T]):
    """A queued unit of work carrying a payload and a cancellation flag."""

    def __init__(self, task_id: str, data: T, parent: threading.Event | None = None) -> None:
        self.id = task_id
        self.data = data
        self.created = datetime.now()
        self._cancel_event = threading.Event()
        self._parent = parent

    @property
    def cancel_event(self) -> threading.Event:
        """Event set once the task is cancelled."""
        return self._cancel_event

    def is_cancelled(self) -> bool:
        if self._parent is not None and self._parent.is_set():
            self._cancel_event.set()
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    def __repr__(self) -> str:
        return f"QueuedTask(id={self.id!r}, cancelled={self.is_cancelled()})"


class TaskQueue(Generic[T]):
    """FIFO queue of tasks, tracking both pending and running ones."""

    def __init__(self) -> None:
        self._pending: OrderedDict[str, QueuedTask[T]] = OrderedDict()
        self._tasks: dict[str, QueuedTask[T]] = {}
        self._running: dict[str, QueuedTask[T]] = {}
        self._lock = threading.RLock()
        self._cond = threading.Condition(self._lock)
        self._closed = False

    def add(self, task: QueuedTask[T]) -> None:
        with self._lock:
            if self._closed:
                raise QueueError("queue is closed")
            if task.id in self._tasks:
                raise QueueError(f"task with ID {task.id} already exists")
            if task.is_cancelled():
                raise QueueError(f"task {task.id} has been cancelled")
            self._pending[task.id] = task
            self._tasks[task.id] = task
            self._cond.notify()

    def get(self) -> QueuedTask[T]:
        """Block until a live task is available and return it."""
        with self._lock:
            while True:
                while not self._pending and not self._closed:
                    self._cond.wait()
                if self._closed and not self._pending:
                    raise QueueError("queue is closed and empty")
                while self._pending:
                    _, task = self._pending.popitem(last=False)
                    if not task.is_cancelled():
                        self._running[task.id] = task
                        return task
                if self._closed:
                    raise QueueError("queue is closed and empty")

    def done(self, task_id: str) -> None:
        with self._lock:
            self._tasks.pop(task_id, None)
            self._running.pop(task_id, None)

    def peek(self) -> QueuedTask[T]:
        with self._lock:
            if not self._pending:
                raise QueueError("queue is empty")
            for task in self._pending.values():
                if not task.is_cancelled():
                    return task
            raise QueueError("queue has no valid tasks")

    def length(self) -> int:
        with self._lock:
            return len(self._pending)

    def __len__(self) -> int:
        return self.length()

    def active_length(self) -> int:
        with self._lock:
            return sum(1 for task in self._pending.values() if not task.is_cancelled())

    def cancel_task(self, task_id: str) -> None:
        with self._lock:
            task = self._tasks.get(task_id) or self._running.get(task_id)
        if task is None:
            raise QueueError(f"task {task_id} does not exist")
        task.cancel()

    def remove_task(self, task_id: str) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                self._running.pop(task_id, None)
                raise QueueError(
                    f"task {task_id} is already running, cannot remove from queue"
                )
            self._pending.pop(task_id, None)
            del self._tasks[task_id]
            task.cancel()

    def cancel_all(self) -> None:
        with self._lock:
            tasks = list(self._pending.values())
        for task in tasks:
            task.cancel()

    def get_task(self, task_id: str) -> QueuedTask[T]:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise QueueError(f"task {task_id} does not exist")
        return task

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._cond.notify_all()

    def is_closed(self) -> bool:
        with self._lock:
            return self._closed

    def clear(self) -> None:
        with self._lock:
            for task in self._pending.values():
                task.cancel()
            self._pending.clear()
            self._tasks = {}

    def cleanup_cancelled(self) -> int:
        """Drop cancelled pending tasks and return how many were removed."""
        with self._lock:
            cancelled = [tid for tid, task in self._pending.items() if task.is_cancelled()]
            for tid in cancelled:
                del self._pending[tid]
                self._tasks.pop(tid, None)
            return len(cancelled)