"""Strategies for assigning new connections to event loops."""

from __future__ import annotations

import enum
import zlib
from typing import Any, Callable, List, Union


class LoadBalancing(enum.IntEnum):
    """The load-balancing algorithm used to pick an event loop."""

    ROUND_ROBIN = 0
    LEAST_CONNECTIONS = 1
    SOURCE_ADDR_HASH = 2


def _register(loops: List[Any], el: Any) -> None:
    el.idx = len(loops)
    loops.append(el)


def _iterate(loops: List[Any], f: Callable[[int, Any], bool]) -> None:
    for i, el in enumerate(loops):
        if not f(i, el):
            break


def _require_loops(loops: List[Any]) -> None:
    if not loops:
        raise IndexError("no event loops registered")


class RoundRobinLoadBalancer:
    """Hands out event loops in turn."""

    def __init__(self) -> None:
        self._event_loops: List[Any] = []
        self._next_index = 0

    def register(self, el: Any) -> None:
        """Add an event loop, assigning it the next index."""
        _register(self._event_loops, el)

    def next(self, addr: Any) -> Any:
        """Return the next event loop in rotation; ``addr`` is ignored."""
        _require_loops(self._event_loops)
        el = self._event_loops[self._next_index]
        self._next_index += 1
        if self._next_index >= len(self._event_loops):
            self._next_index = 0
        return el

    def iterate(self, f: Callable[[int, Any], bool]) -> None:
        """Call ``f(index, loop)`` for each loop until it returns false."""
        _iterate(self._event_loops, f)

    def __len__(self) -> int:
        return len(self._event_loops)


class LeastConnectionsLoadBalancer:
    """Picks the event loop serving the fewest connections."""

    def __init__(self) -> None:
        self._event_loops: List[Any] = []

    def register(self, el: Any) -> None:
        """Add an event loop, assigning it the next index."""
        _register(self._event_loops, el)

    def next(self, addr: Any) -> Any:
        """Return the loop with the lowest ``load_conn()``; first wins ties."""
        _require_loops(self._event_loops)
        return min(self._event_loops, key=lambda el: el.load_conn())

    def iterate(self, f: Callable[[int, Any], bool]) -> None:
        """Call ``f(index, loop)`` for each loop until it returns false."""
        _iterate(self._event_loops, f)

    def __len__(self) -> int:
        return len(self._event_loops)


class SourceAddrHashLoadBalancer:
    """Picks an event loop by hashing the remote address."""

    def __init__(self) -> None:
        self._event_loops: List[Any] = []

    def register(self, el: Any) -> None:
        """Add an event loop, assigning it the next index."""
        _register(self._event_loops, el)

    def hash(self, s: str) -> int:
        """Return the CRC-32 (IEEE) checksum of ``s``."""
        return zlib.crc32(s.encode("utf-8", errors="surrogateescape"))

    def next(self, addr: Any) -> Any:
        """Return the loop chosen by hashing the string form of ``addr``."""
        _require_loops(self._event_loops)
        return self._event_loops[self.hash(str(addr)) % len(self._event_loops)]

    def iterate(self, f: Callable[[int, Any], bool]) -> None:
        """Call ``f(index, loop)`` for each loop until it returns false."""
        _iterate(self._event_loops, f)

    def __len__(self) -> int:
        return len(self._event_loops)


_AnyBalancer = Union[
    RoundRobinLoadBalancer, LeastConnectionsLoadBalancer, SourceAddrHashLoadBalancer
]


def new_load_balancer(lb: LoadBalancing) -> _AnyBalancer:
    """Create an empty load balancer for the given algorithm."""
    try:
        kind = LoadBalancing(lb)
    except ValueError:
        raise ValueError(f"unknown load-balancing algorithm: {lb!r}") from None
    if kind is LoadBalancing.LEAST_CONNECTIONS:
        return LeastConnectionsLoadBalancer()
    if kind is LoadBalancing.SOURCE_ADDR_HASH:
        return SourceAddrHashLoadBalancer()
    return RoundRobinLoadBalancer()