"""Per-descriptor data handed to the poller, and descriptor duplication."""

from __future__ import annotations

import errno
import os
from dataclasses import dataclass
from typing import Callable, Optional

try:
    import fcntl
except ImportError:  # not available on every platform
    fcntl = None  # type: ignore[assignment]

PollEventHandler = Callable[[int, int], None]


@dataclass
class PollAttachment:
    """A file descriptor and the callback run when it has I/O events."""

    fd: int = 0
    callback: Optional[PollEventHandler] = None


_try_dup_cloexec = True


def dup(fd: int) -> int:
    """Duplicate ``fd`` as a close-on-exec descriptor and return the new one."""
    global _try_dup_cloexec
    dup_cloexec = getattr(fcntl, "F_DUPFD_CLOEXEC", None) if fcntl is not None else None
    if _try_dup_cloexec and dup_cloexec is not None:
        try:
            return fcntl.fcntl(fd, dup_cloexec, 0)
        except OSError as exc:
            if exc.errno not in (errno.EINVAL, errno.ENOSYS):
                raise
            _try_dup_cloexec = False
    new_fd = os.dup(fd)
    os.set_inheritable(new_fd, False)
    return new_fd