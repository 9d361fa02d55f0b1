"""Socket options applied to listening and connected sockets."""

from __future__ import annotations

import errno
import socket
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class SocketOption:
    """A setter paired with the value it applies to a socket."""

    set_sockopt: Callable[[socket.socket, int], None]
    opt: int

    def apply(self, sock: socket.socket) -> None:
        """Apply this option to ``sock``."""
        self.set_sockopt(sock, self.opt)


def set_no_delay(sock: socket.socket, no_delay: int) -> None:
    """Enable or disable Nagle's algorithm (TCP_NODELAY)."""
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, no_delay)


def set_recv_buffer(sock: socket.socket, size: int) -> None:
    """Set the size of the operating system's receive buffer."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, size)


def set_send_buffer(sock: socket.socket, size: int) -> None:
    """Set the size of the operating system's send buffer."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, size)


def set_reuse_port(sock: socket.socket, reuse_port: int) -> None:
    """Set the SO_REUSEPORT option."""
    option = getattr(socket, "SO_REUSEPORT", None)
    if option is None:
        raise OSError(errno.ENOPROTOOPT, "SO_REUSEPORT is not supported on this platform")
    sock.setsockopt(socket.SOL_SOCKET, option, reuse_port)


def set_reuse_addr(sock: socket.socket, reuse_addr: int) -> None:
    """Set the SO_REUSEADDR option."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, reuse_addr)


def set_ipv6_only(sock: socket.socket, ipv6_only: int) -> None:
    """Restrict an IPv6 socket to IPv6 traffic only, or allow IPv4 too."""
    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, ipv6_only)


def set_keep_alive(sock: socket.socket, secs: int) -> None:
    """Turn on keep-alive messages, sent every ``secs`` seconds."""
    if secs <= 0:
        raise ValueError("invalid time duration")
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    idle_option = getattr(socket, "TCP_KEEPIDLE", None)
    interval_option = getattr(socket, "TCP_KEEPINTVL", None)
    if idle_option is not None:
        if interval_option is not None:
            sock.setsockopt(socket.IPPROTO_TCP, interval_option, secs)
        sock.setsockopt(socket.IPPROTO_TCP, idle_option, secs)
        return

    # Systems without TCP_KEEPIDLE use TCP_KEEPALIVE for the idle time, and
    # older releases of them reject TCP_KEEPINTVL, which is then ignored.
    if interval_option is not None:
        try:
            sock.setsockopt(socket.IPPROTO_TCP, interval_option, secs)
        except OSError as exc:
            if exc.errno != errno.ENOPROTOOPT:
                raise
    keepalive_option = getattr(socket, "TCP_KEEPALIVE", None)
    if keepalive_option is not None:
        sock.setsockopt(socket.IPPROTO_TCP, keepalive_option, secs)