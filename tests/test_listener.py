import os
import socket

import pytest

from pollnet.listener import Listener, init_listener
from pollnet.options import Options, TCPSocketOpt
from pollnet.sockets import TCPAddr, UDPAddr, UnixAddr, UnsupportedProtocolError


def test_tcp_listener_accepts_connections():
    with init_listener("tcp", "127.0.0.1:0", Options()) as ln:
        assert ln.network == "tcp"
        assert isinstance(ln.addr, TCPAddr)
        assert str(ln.addr) == "127.0.0.1:0"
        assert ln.fd == ln.sock.fileno()
        port = ln.sock.getsockname()[1]
        assert port > 0
        with socket.create_connection(("127.0.0.1", port), timeout=2):
            pass


def test_tcp4_network_is_normalized():
    with init_listener("tcp4", "127.0.0.1:0", Options()) as ln:
        assert ln.network == "tcp"
        assert ln.sock.family == socket.AF_INET


def test_udp_listener_receives_datagrams():
    with init_listener("udp", "127.0.0.1:0", Options()) as ln:
        assert ln.network == "udp"
        assert isinstance(ln.addr, UDPAddr)
        assert ln.sock.type == socket.SOCK_DGRAM
        port = ln.sock.getsockname()[1]
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as client:
            client.sendto(b"ping", ("127.0.0.1", port))
        ln.sock.settimeout(2)
        data, _ = ln.sock.recvfrom(16)
        assert data == b"ping"


def test_udp_sets_reuse_port_by_default():
    with init_listener("udp", "127.0.0.1:0", Options()) as ln:
        assert ln.network == "udp"
        assert ln.sock.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT) > 0
        assert ln.sock.getsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST) > 0


def test_unsupported_network_raises():
    with pytest.raises(UnsupportedProtocolError):
        init_listener("ip", "127.0.0.1:0", Options())


def test_tcp_no_delay_default_is_applied():
    with init_listener("tcp", "127.0.0.1:0", Options()) as ln:
        assert ln.sock.getsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY) > 0


def test_tcp_delay_leaves_nagle_enabled():
    opts = Options(tcp_no_delay=TCPSocketOpt.DELAY)
    with init_listener("tcp", "127.0.0.1:0", opts) as ln:
        assert ln.sock.getsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY) == 0


def test_reuse_addr_option():
    with init_listener("tcp", "127.0.0.1:0", Options(reuse_addr=True)) as ln:
        assert ln.sock.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) > 0


def test_reuse_port_option_on_tcp():
    with init_listener("tcp", "127.0.0.1:0", Options(reuse_port=True)) as ln:
        assert ln.sock.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT) > 0


def test_recv_buffer_option():
    opts = Options(socket_recv_buffer=65536)
    with init_listener("tcp", "127.0.0.1:0", opts) as ln:
        assert ln.sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF) >= 65536


def test_none_options_uses_defaults():
    with init_listener("tcp", "127.0.0.1:0", None) as ln:
        assert ln.network == "tcp"
        assert ln.sock.getsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY) > 0


def test_unix_listener_replaces_stale_file_and_removes_on_close(tmp_path):
    path = str(tmp_path / "ln.sock")
    with open(path, "w") as f:
        f.write("stale")
    ln = init_listener("unix", path, Options())
    try:
        assert ln.network == "unix"
        assert isinstance(ln.addr, UnixAddr)
        assert ln.addr.name == path
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
            client.settimeout(2)
            client.connect(path)
    finally:
        ln.close()
    assert not os.path.exists(path)


def test_close_is_idempotent():
    ln = init_listener("tcp", "127.0.0.1:0", Options())
    ln.close()
    ln.close()
    assert ln.sock.fileno() == -1


def test_context_manager_closes():
    with init_listener("tcp", "127.0.0.1:0", Options()) as ln:
        sock = ln.sock
    assert sock.fileno() == -1


def test_pack_poll_attachment():
    def handler(fd, ev):
        return None

    with init_listener("tcp", "127.0.0.1:0", Options()) as ln:
        pa = ln.pack_poll_attachment(handler)
        assert pa.fd == ln.fd
        assert pa.callback is handler
        assert ln.poll_attachment is pa


def test_dup_refers_to_same_socket():
    with init_listener("tcp", "127.0.0.1:0", Options()) as ln:
        new_fd = ln.dup()
        try:
            assert new_fd != ln.fd
            assert os.fstat(new_fd).st_ino == os.fstat(ln.fd).st_ino
            assert os.get_inheritable(new_fd) is False
        finally:
            os.close(new_fd)


def test_unbound_listener_close_is_harmless():
    ln = Listener("tcp", "127.0.0.1:0")
    ln.close()
    assert ln.fd == 0
    assert ln.sock is None