"""Listening sockets that the event loops accept connections or datagrams on."""

from __future__ import annotations

import errno
import logging
import os
import shutil
import socket
import threading
from typing import Any, List, Optional, Sequence, Tuple, Union

from pollnet import attachment
from pollnet.attachment import PollAttachment, PollEventHandler
from pollnet.options import Options, TCPSocketOpt
from pollnet.sockets import (
    TCPAddr,
    UDPAddr,
    UnixAddr,
    UnsupportedProtocolError,
    tcp_socket,
    udp_socket,
    unix_socket,
)
from pollnet.sockopts import (
    SocketOption,
    set_no_delay,
    set_recv_buffer,
    set_reuse_addr,
    set_reuse_port,
    set_send_buffer,
)

_log = logging.getLogger(__name__)

_IS_WINDOWS = os.name == "nt"

Address = Union[TCPAddr, UDPAddr, UnixAddr]


def _remove_all(path: str) -> None:
    """Remove ``path`` and anything below it; a missing path is not an error."""
    if not path:
        return
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
    except FileNotFoundError:
        pass


class Listener:
    """A bound socket for one network and address, closed exactly once."""

    def __init__(
        self,
        network: str,
        address: str,
        sock_opts: Sequence[SocketOption] = (),
    ) -> None:
        self.network = network
        self.address = address
        self.sock_opts: Tuple[SocketOption, ...] = tuple(sock_opts)
        self.sock: Optional[socket.socket] = None
        self.fd = 0
        self.addr: Optional[Address] = None
        self.poll_attachment: Optional[PollAttachment] = None
        self._close_lock = threading.Lock()
        self._closed = False

    def _normalize(self) -> None:
        """Create and bind the socket, settling the network name."""
        if self.network in ("tcp", "tcp4", "tcp6"):
            self.sock, self.addr = tcp_socket(self.network, self.address, *self.sock_opts)
            self.network = "tcp"
        elif self.network in ("udp", "udp4", "udp6"):
            self.sock, self.addr = udp_socket(self.network, self.address, *self.sock_opts)
            self.network = "udp"
        elif self.network == "unix":
            try:
                _remove_all(self.address)
            except OSError as exc:
                if _IS_WINDOWS:
                    _log.error("%s", exc)
                else:
                    raise
            self.sock, self.addr = unix_socket(self.network, self.address, *self.sock_opts)
        else:
            raise UnsupportedProtocolError(f"unsupported protocol {self.network!r}")
        self.fd = self.sock.fileno()

    def pack_poll_attachment(self, handler: PollEventHandler) -> PollAttachment:
        """Bind ``handler`` to this listener's descriptor for the poller."""
        self.poll_attachment = PollAttachment(fd=self.fd, callback=handler)
        return self.poll_attachment

    def dup(self) -> int:
        """Return a close-on-exec duplicate of the listening descriptor."""
        if _IS_WINDOWS:
            raise OSError(errno.ENOSYS, "dup is not supported on this platform")
        return attachment.dup(self.fd)

    def close(self) -> None:
        """Close the socket and remove a Unix-domain socket file; runs once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        if self.sock is not None and self.fd > 0:
            try:
                self.sock.close()
            except OSError as exc:
                _log.error("close: %s", exc)
        if self.network == "unix":
            try:
                _remove_all(self.address)
            except OSError as exc:
                _log.error("%s", exc)

    def __enter__(self) -> "Listener":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _socket_options(network: str, options: Options) -> List[SocketOption]:
    sock_opts: List[SocketOption] = []
    if options.reuse_port or network.startswith("udp"):
        sock_opts.append(SocketOption(set_reuse_port, 1))
    if options.reuse_addr:
        sock_opts.append(SocketOption(set_reuse_addr, 1))
    if options.tcp_no_delay == TCPSocketOpt.NO_DELAY and network.startswith("tcp"):
        sock_opts.append(SocketOption(set_no_delay, 1))
    if options.socket_recv_buffer > 0:
        sock_opts.append(SocketOption(set_recv_buffer, options.socket_recv_buffer))
    if options.socket_send_buffer > 0:
        sock_opts.append(SocketOption(set_send_buffer, options.socket_send_buffer))
    return sock_opts


def init_listener(network: str, addr: str, options: Optional[Options]) -> Listener:
    """Create a listener for ``network`` at ``addr`` configured by ``options``."""
    if options is None:
        options = Options()
    sock_opts = [] if _IS_WINDOWS else _socket_options(network, options)
    listener = Listener(network, addr, sock_opts)
    listener._normalize()
    return listener