"""Thread-safe FIFO queue of asynchronous tasks."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

TaskFunc = Callable[[Any], Optional[BaseException]]


@dataclass
class Task:
    """A function paired with the argument it is to be called with."""

    run: Optional[Callable[[Any], Any]] = None
    arg: Any = None


class TaskQueue:
    """A FIFO of tasks that many threads may enqueue to and dequeue from."""

    def __init__(self) -> None:
        self._items: deque[Task] = deque()
        self._lock = threading.Lock()

    def enqueue(self, task: Task) -> None:
        """Put ``task`` at the tail of the queue."""
        with self._lock:
            self._items.append(task)

    def dequeue(self) -> Optional[Task]:
        """Remove and return the task at the head, or ``None`` if empty."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def is_empty(self) -> bool:
        """Report whether the queue holds no tasks."""
        return not self._items

    def __len__(self) -> int:
        return len(self._items)