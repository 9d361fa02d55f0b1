"""Scatter/gather reads and writes on file descriptors."""

from __future__ import annotations

import os
from typing import Sequence


def writev(fd: int, buffers: Sequence[bytes]) -> int:
    """Write all ``buffers`` to ``fd`` in one call; return bytes written."""
    if not buffers:
        return 0
    return os.writev(fd, buffers)


def readv(fd: int, buffers: Sequence[bytearray]) -> int:
    """Read from ``fd`` into the writable ``buffers`` in order; return bytes read."""
    if not buffers:
        return 0
    return os.readv(fd, buffers)