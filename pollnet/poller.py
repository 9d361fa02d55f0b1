"""An I/O event poller built on epoll or kqueue, with queues of wake-up tasks."""

from __future__ import annotations

import errno
import logging
import os
import select
import threading
from typing import Any, Callable, List, Optional, Tuple

from pollnet.attachment import PollAttachment
from pollnet.taskqueue import Task, TaskQueue

_log = logging.getLogger(__name__)

_HAS_EPOLL = hasattr(select, "epoll")
_HAS_KQUEUE = hasattr(select, "kqueue")

if _HAS_EPOLL:
    INIT_POLL_EVENTS_CAP = 128
    MAX_POLL_EVENTS_CAP = 1024
    MIN_POLL_EVENTS_CAP = 32
    MAX_ASYNC_TASKS_AT_ONE_TIME = 256
    # Exceptional events that are neither read nor write, like a closed peer.
    ERR_EVENTS = select.EPOLLERR | select.EPOLLHUP | select.EPOLLRDHUP
    OUT_EVENTS = ERR_EVENTS | select.EPOLLOUT
    IN_EVENTS = ERR_EVENTS | select.EPOLLIN | select.EPOLLPRI
else:
    INIT_POLL_EVENTS_CAP = 64
    MAX_POLL_EVENTS_CAP = 512
    MIN_POLL_EVENTS_CAP = 16
    MAX_ASYNC_TASKS_AT_ONE_TIME = 128
    if _HAS_KQUEUE:
        EV_FILTER_WRITE = select.KQ_FILTER_WRITE
        EV_FILTER_READ = select.KQ_FILTER_READ
    # Reported in place of the filter when the peer closed or an error occurred.
    EV_FILTER_SOCK = -0xD


class ServerShutdown(Exception):
    """Raised by a callback or task to stop polling because the server is closing."""


class AcceptSocketError(Exception):
    """Raised by a callback when accepting a new connection failed fatally."""


class _EventList:
    """Tracks how many events one wait may return, growing and shrinking with load."""

    def __init__(self, size: int) -> None:
        self.size = size

    def expand(self) -> None:
        new_size = self.size << 1
        if new_size <= MAX_POLL_EVENTS_CAP:
            self.size = new_size

    def shrink(self) -> None:
        new_size = self.size >> 1
        if new_size >= MIN_POLL_EVENTS_CAP:
            self.size = new_size


class _EpollBackend:
    def __init__(self) -> None:
        self._ep = select.epoll()
        self._read = select.EPOLLPRI | select.EPOLLIN
        self._write = select.EPOLLOUT

    def add_read_write(self, fd: int) -> None:
        self._ep.register(fd, self._read | self._write)

    def add_read(self, fd: int) -> None:
        self._ep.register(fd, self._read)

    def add_write(self, fd: int) -> None:
        self._ep.register(fd, self._write)

    def mod_read(self, fd: int) -> None:
        self._ep.modify(fd, self._read)

    def mod_read_write(self, fd: int) -> None:
        self._ep.modify(fd, self._read | self._write)

    def delete(self, fd: int) -> None:
        self._ep.unregister(fd)

    def wait(self, max_events: int, block: bool) -> List[Tuple[int, int]]:
        return self._ep.poll(-1 if block else 0, max_events)

    def close(self) -> None:
        self._ep.close()


class _KqueueBackend:
    def __init__(self) -> None:
        self._kq = select.kqueue()

    def _change(self, fd: int, filters: Tuple[int, ...], flags: int) -> None:
        changes = [select.kevent(fd, filter=f, flags=flags) for f in filters]
        self._kq.control(changes, 0)

    def add_read_write(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_READ, select.KQ_FILTER_WRITE), select.KQ_EV_ADD)

    def add_read(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_READ,), select.KQ_EV_ADD)

    def add_write(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_WRITE,), select.KQ_EV_ADD)

    def mod_read(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_WRITE,), select.KQ_EV_DELETE)

    def mod_read_write(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_WRITE,), select.KQ_EV_ADD)

    def delete(self, fd: int) -> None:
        # kqueue drops a descriptor's filters by itself when it is closed.
        return None

    def wait(self, max_events: int, block: bool) -> List[Tuple[int, int]]:
        events = self._kq.control(None, max_events, None if block else 0)
        ready = []
        for ev in events:
            ev_filter = ev.filter
            if ev.flags & (select.KQ_EV_EOF | select.KQ_EV_ERROR):
                ev_filter = EV_FILTER_SOCK
            ready.append((ev.ident, ev_filter))
        return ready

    def close(self) -> None:
        self._kq.close()


def _open_backend():
    if _HAS_EPOLL:
        return _EpollBackend()
    if _HAS_KQUEUE:
        return _KqueueBackend()
    raise OSError(errno.ENOSYS, "neither epoll nor kqueue is available on this platform")


class Poller:
    """Watches file descriptors for I/O events and runs queued tasks when woken."""

    def __init__(self) -> None:
        self._closed = False
        self._backend = _open_backend()
        self._wake_lock = threading.Lock()
        self._wake_sig = False
        self._async_tasks = TaskQueue()
        self._prior_async_tasks = TaskQueue()
        self._use_eventfd = hasattr(os, "eventfd")
        try:
            if self._use_eventfd:
                fd = os.eventfd(0, os.EFD_NONBLOCK | os.EFD_CLOEXEC)
                self._wake_read_fd = self._wake_write_fd = fd
            else:
                self._wake_read_fd, self._wake_write_fd = os.pipe()
                os.set_blocking(self._wake_read_fd, False)
                os.set_blocking(self._wake_write_fd, False)
        except BaseException:
            self._backend.close()
            raise
        try:
            self.add_read(PollAttachment(fd=self._wake_read_fd))
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        """Release the poller and its wake-up descriptor(s); safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._backend.close()
        os.close(self._wake_read_fd)
        if self._wake_write_fd != self._wake_read_fd:
            os.close(self._wake_write_fd)

    def __enter__(self) -> "Poller":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _arm_wake(self) -> bool:
        with self._wake_lock:
            if self._wake_sig:
                return False
            self._wake_sig = True
            return True

    def _wake(self) -> None:
        while True:
            try:
                if self._use_eventfd:
                    os.eventfd_write(self._wake_write_fd, 1)
                else:
                    os.write(self._wake_write_fd, b"\x01")
                return
            except (InterruptedError, BlockingIOError):
                continue

    def _drain_wake(self) -> None:
        try:
            if self._use_eventfd:
                os.eventfd_read(self._wake_read_fd)
            else:
                while os.read(self._wake_read_fd, 512):
                    pass
        except BlockingIOError:
            pass

    def urgent_trigger(self, fn: Callable[[Any], Any], arg: Any) -> None:
        """Queue ``fn(arg)`` with high priority and wake the poller."""
        self._prior_async_tasks.enqueue(Task(run=fn, arg=arg))
        if self._arm_wake():
            self._wake()

    def trigger(self, fn: Callable[[Any], Any], arg: Any) -> None:
        """Queue ``fn(arg)`` with low priority and wake the poller."""
        self._async_tasks.enqueue(Task(run=fn, arg=arg))
        if self._arm_wake():
            self._wake()

    @staticmethod
    def _run_task(task: Task) -> None:
        try:
            task.run(task.arg)
        except ServerShutdown:
            raise
        except Exception as exc:
            _log.warning("error occurs in user-defined function, %s", exc)

    def _run_tasks(self) -> None:
        while (task := self._prior_async_tasks.dequeue()) is not None:
            self._run_task(task)
        for _ in range(MAX_ASYNC_TASKS_AT_ONE_TIME):
            task = self._async_tasks.dequeue()
            if task is None:
                break
            self._run_task(task)
        with self._wake_lock:
            self._wake_sig = False
        pending = not self._async_tasks.is_empty() or not self._prior_async_tasks.is_empty()
        if pending and self._arm_wake():
            self._wake()

    def polling(self, callback: Callable[[int, int], Any]) -> None:
        """Wait for events forever, calling ``callback(fd, event)`` for each.

        Returns only by raising: :class:`ServerShutdown` or
        :class:`AcceptSocketError` from a callback or task ends the loop, as
        does a failure of the wait itself. Other errors are logged.
        """
        events = _EventList(INIT_POLL_EVENTS_CAP)
        block = True
        while True:
            try:
                ready = self._backend.wait(events.size, block)
            except OSError as exc:
                _log.error("error occurs in poller: %s", exc)
                raise
            if not ready:
                block = True
                continue
            block = False

            woken = False
            for fd, ev in ready:
                if fd == self._wake_read_fd:
                    woken = True
                    self._drain_wake()
                    continue
                try:
                    callback(fd, ev)
                except (AcceptSocketError, ServerShutdown):
                    raise
                except Exception as exc:
                    _log.warning("error occurs in event-loop: %s", exc)

            if woken:
                self._run_tasks()

            n = len(ready)
            if n == events.size:
                events.expand()
            elif n < events.size >> 1:
                events.shrink()

    def add_read_write(self, pa: PollAttachment) -> None:
        """Watch ``pa.fd`` for readable and writable events."""
        self._backend.add_read_write(pa.fd)

    def add_read(self, pa: PollAttachment) -> None:
        """Watch ``pa.fd`` for readable events."""
        self._backend.add_read(pa.fd)

    def add_write(self, pa: PollAttachment) -> None:
        """Watch ``pa.fd`` for writable events."""
        self._backend.add_write(pa.fd)

    def mod_read(self, pa: PollAttachment) -> None:
        """Change the watch on ``pa.fd`` to readable events only."""
        self._backend.mod_read(pa.fd)

    def mod_read_write(self, pa: PollAttachment) -> None:
        """Change the watch on ``pa.fd`` to readable and writable events."""
        self._backend.mod_read_write(pa.fd)

    def delete(self, fd: int) -> None:
        """Stop watching ``fd``."""
        self._backend.delete(fd)