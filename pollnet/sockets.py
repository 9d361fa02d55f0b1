"""Creation of listening TCP, UDP and Unix-domain sockets, and address types."""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Tuple, Union

from pollnet.sockopts import SocketOption, set_ipv6_only

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_MAX_BACKLOG = (1 << 16) - 1
_SOMAXCONN_PATH = "/proc/sys/net/core/somaxconn"


class UnsupportedProtocolError(ValueError):
    """Raised when a network name or protocol version is not supported."""


def _format_host(ip: Optional[IPAddress], zone: str) -> str:
    if ip is None:
        return ""
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return str(ip.ipv4_mapped)
    host = str(ip)
    if zone:
        host = f"{host}%{zone}"
    return host


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class _InetAddr:
    ip: Optional[IPAddress] = None
    port: int = 0
    zone: str = ""

    network: ClassVar[str] = ""

    def __str__(self) -> str:
        return _join_host_port(_format_host(self.ip, self.zone), self.port)


@dataclass(frozen=True)
class TCPAddr(_InetAddr):
    """The address of a TCP end point."""

    network: ClassVar[str] = "tcp"


@dataclass(frozen=True)
class UDPAddr(_InetAddr):
    """The address of a UDP end point."""

    network: ClassVar[str] = "udp"


@dataclass(frozen=True)
class UnixAddr:
    """The address of a Unix-domain socket end point."""

    name: str
    net: str = "unix"

    @property
    def network(self) -> str:
        return self.net

    def __str__(self) -> str:
        return self.name


def max_listener_backlog() -> int:
    """Return the largest listen backlog the system allows, capped at 65535."""
    try:
        with open(_SOMAXCONN_PATH, encoding="ascii") as f:
            line = f.readline()
    except OSError:
        return socket.SOMAXCONN
    fields = line.split()
    if not fields:
        return socket.SOMAXCONN
    try:
        n = int(fields[0])
    except ValueError:
        return socket.SOMAXCONN
    if n == 0:
        return socket.SOMAXCONN
    return min(n, _MAX_BACKLOG)


_LISTENER_BACKLOG = max_listener_backlog()


def _split_host_port(addr: str) -> Tuple[str, str]:
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {addr!r}")
        host, rest = addr[1:end], addr[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address {addr!r}")
        return host, rest[1:]
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {addr!r}")
    if ":" in host:
        raise ValueError(f"too many colons in address {addr!r}")
    return host, port


def _parse_port(port: str, kind: str) -> int:
    if port == "":
        return 0
    if port.isdigit():
        value = int(port)
        if value > 0xFFFF:
            raise ValueError(f"invalid port {port!r}")
        return value
    try:
        return socket.getservbyname(port, kind)
    except OSError:
        raise ValueError(f"unknown port {port!r}") from None


def _is_v4(ip: IPAddress) -> bool:
    return ip.version == 4 or getattr(ip, "ipv4_mapped", None) is not None


def _suits(ip: IPAddress, proto: str) -> bool:
    if proto.endswith("4"):
        return _is_v4(ip)
    if proto.endswith("6"):
        return not _is_v4(ip)
    return True


def _lookup(host: str, kind: str) -> list:
    socktype = socket.SOCK_STREAM if kind == "tcp" else socket.SOCK_DGRAM
    found = []
    for family, _, _, _, sockaddr in socket.getaddrinfo(host, None, socket.AF_UNSPEC, socktype):
        if family not in (socket.AF_INET, socket.AF_INET6):
            continue
        ip = ipaddress.ip_address(sockaddr[0].partition("%")[0])
        if ip not in found:
            found.append(ip)
    return found


def _resolve_inet(kind: str, proto: str, addr: str) -> Tuple[Optional[IPAddress], int, str]:
    if proto not in (kind, kind + "4", kind + "6"):
        raise UnsupportedProtocolError(f"unknown network {proto!r}")
    host, port_text = _split_host_port(addr)
    port = _parse_port(port_text, kind)
    if not host:
        return None, port, ""
    host_part, _, zone = host.partition("%")
    try:
        ip: Optional[IPAddress] = ipaddress.ip_address(host_part)
    except ValueError:
        ip = None
    if ip is not None:
        if zone and ip.version == 4:
            raise ValueError(f"invalid address {addr!r}")
        if not _suits(ip, proto):
            raise ValueError(f"no suitable address found for {addr!r}")
        return ip, port, zone
    if zone:
        raise ValueError(f"invalid address {addr!r}")
    candidates = [c for c in _lookup(host_part, kind) if _suits(c, proto)]
    if not candidates:
        raise ValueError(f"no suitable address found for {addr!r}")
    if proto == kind:
        candidates.sort(key=lambda c: 0 if _is_v4(c) else 1)
    return candidates[0], port, ""


def _inet_sock_addr(kind: str, proto: str, addr: str):
    ip, port, zone = _resolve_inet(kind, proto, addr)
    version = proto if ip is None else kind + ("4" if _is_v4(ip) else "6")
    addr_type = TCPAddr if kind == "tcp" else UDPAddr
    net_addr = addr_type(ip=ip, port=port, zone=zone)

    if version == kind + "4":
        if ip is None:
            host = "0.0.0.0"
        elif isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            host = str(ip.ipv4_mapped)
        else:
            host = str(ip)
        return (host, port), socket.AF_INET, net_addr, False
    if version in (kind, kind + "6"):
        ipv6_only = version == kind + "6"
        scope_id = socket.if_nametoindex(zone) if zone else 0
        host = str(ip) if ip is not None else "::"
        return (host, port, 0, scope_id), socket.AF_INET6, net_addr, ipv6_only
    raise UnsupportedProtocolError(f"unsupported {kind} protocol {proto!r}")


def get_tcp_sock_addr(proto: str, addr: str) -> Tuple[Any, int, TCPAddr, bool]:
    """Resolve ``addr`` for ``proto``; return (sockaddr, family, TCPAddr, ipv6_only)."""
    return _inet_sock_addr("tcp", proto, addr)


def get_udp_sock_addr(proto: str, addr: str) -> Tuple[Any, int, UDPAddr, bool]:
    """Resolve ``addr`` for ``proto``; return (sockaddr, family, UDPAddr, ipv6_only)."""
    return _inet_sock_addr("udp", proto, addr)


def get_unix_sock_addr(proto: str, addr: str) -> Tuple[str, int, UnixAddr]:
    """Resolve a Unix-domain address; return (sockaddr, family, UnixAddr)."""
    if proto not in ("unix", "unixgram", "unixpacket"):
        raise UnsupportedProtocolError(f"unknown network {proto!r}")
    unix_addr = UnixAddr(name=addr, net=proto)
    if unix_addr.network != "unix":
        raise UnsupportedProtocolError(f"unsupported Unix-domain protocol {proto!r}")
    family = getattr(socket, "AF_UNIX", None)
    if family is None:
        raise UnsupportedProtocolError("Unix-domain sockets are not supported on this platform")
    return unix_addr.name, family, unix_addr


def _open(family: int, sotype: int, proto: int) -> socket.socket:
    sock = socket.socket(family, sotype, proto)
    try:
        sock.setblocking(False)
    except BaseException:
        sock.close()
        raise
    return sock


def _apply_options(sock: socket.socket, sockopts: Tuple[SocketOption, ...]) -> None:
    for option in sockopts:
        option.apply(sock)


def tcp_socket(proto: str, addr: str, *args: SocketOption) -> Tuple[socket.socket, TCPAddr]:
    """Create a non-blocking listening TCP socket bound to ``addr``."""
    sockaddr, family, net_addr, ipv6_only = get_tcp_sock_addr(proto, addr)
    sock = _open(family, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    try:
        if family == socket.AF_INET6 and ipv6_only:
            set_ipv6_only(sock, 1)
        _apply_options(sock, args)
        sock.bind(sockaddr)
        sock.listen(_LISTENER_BACKLOG)
    except BaseException:
        sock.close()
        raise
    return sock, net_addr


def udp_socket(proto: str, addr: str, *args: SocketOption) -> Tuple[socket.socket, UDPAddr]:
    """Create a non-blocking UDP socket bound to ``addr`` with broadcast allowed."""
    sockaddr, family, net_addr, ipv6_only = get_udp_sock_addr(proto, addr)
    sock = _open(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        if family == socket.AF_INET6 and ipv6_only:
            set_ipv6_only(sock, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        _apply_options(sock, args)
        sock.bind(sockaddr)
    except BaseException:
        sock.close()
        raise
    return sock, net_addr


def unix_socket(proto: str, addr: str, *args: SocketOption) -> Tuple[socket.socket, UnixAddr]:
    """Create a non-blocking listening Unix-domain stream socket at ``addr``."""
    sockaddr, family, net_addr = get_unix_sock_addr(proto, addr)
    sock = _open(family, socket.SOCK_STREAM, 0)
    try:
        _apply_options(sock, args)
        sock.bind(sockaddr)
        sock.listen(_LISTENER_BACKLOG)
    except BaseException:
        sock.close()
        raise
    return sock, net_addr


def _ip6_zone_to_string(zone: int) -> str:
    if zone == 0:
        return ""
    index_to_name = getattr(socket, "if_indextoname", None)
    if index_to_name is not None:
        try:
            return index_to_name(zone)
        except OSError:
            pass
    return str(zone)


def _inet_parts(sa: Any) -> Optional[Tuple[IPAddress, int, str]]:
    if not isinstance(sa, tuple):
        return None
    try:
        if len(sa) == 2:
            ip = ipaddress.ip_address(sa[0])
            if ip.version == 4:
                return ip, int(sa[1]), ""
        elif len(sa) == 4:
            ip = ipaddress.ip_address(str(sa[0]).partition("%")[0])
            if ip.version == 6:
                return ip, int(sa[1]), _ip6_zone_to_string(int(sa[3]))
    except ValueError:
        return None
    return None


def sockaddr_to_tcp_or_unix_addr(sa: Any) -> Optional[Union[TCPAddr, UnixAddr]]:
    """Convert a socket address to a TCPAddr or UnixAddr, or None if it cannot."""
    if isinstance(sa, bytes):
        return UnixAddr(name=sa.decode("utf-8", errors="surrogateescape"))
    if isinstance(sa, str):
        return UnixAddr(name=sa)
    parts = _inet_parts(sa)
    if parts is None:
        return None
    ip, port, zone = parts
    return TCPAddr(ip=ip, port=port, zone=zone)


def sockaddr_to_udp_addr(sa: Any) -> Optional[UDPAddr]:
    """Convert a socket address to a UDPAddr, or None if it cannot."""
    parts = _inet_parts(sa)
    if parts is None:
        return None
    ip, port, zone = parts
    return UDPAddr(ip=ip, port=port, zone=zone)