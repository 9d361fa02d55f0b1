# pollnet

Building blocks for event-driven network servers on Unix-like systems:
an epoll/kqueue based `Poller` with two prioritised task queues, listeners
for TCP, UDP and Unix-domain sockets, socket option helpers, vectored I/O,
and strategies for spreading connections over event loops.

## Installation

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

The package has no dependencies outside the standard library.

## Modules

### `pollnet.poller`

`Poller()` opens an epoll instance (Linux) or a kqueue (BSD, macOS) together
with a wake-up descriptor (an eventfd where available, otherwise a pipe). It
is a context manager; `close()` is safe to call more than once.

- `add_read(pa)`, `add_write(pa)`, `add_read_write(pa)` start watching
  `pa.fd`, a `PollAttachment`; `mod_read(pa)` and `mod_read_write(pa)` change
  the watch; `delete(fd)` stops it (a no-op with kqueue, which drops closed
  descriptors itself).
- `trigger(fn, arg)` queues `fn(arg)` with low priority and
  `urgent_trigger(fn, arg)` with high priority; both wake the poller.
- `polling(callback)` waits forever and calls `callback(fd, event)` for each
  ready descriptor. With epoll `event` is the event mask; with kqueue it is
  the filter, or `EV_FILTER_SOCK` when the peer closed or an error occurred.
  When woken, all urgent tasks run, then up to
  `MAX_ASYNC_TASKS_AT_ONE_TIME` ordinary ones.

The loop ends only by raising: `ServerShutdown` from a callback or task,
`AcceptSocketError` from a callback, or an error from the wait itself. Other
exceptions from callbacks and tasks are logged as warnings and polling goes on.

### `pollnet.listener`

`init_listener(network, addr, options)` creates and binds a non-blocking
`Listener` for `"tcp"`, `"tcp4"`, `"tcp6"`, `"udp"`, `"udp4"`, `"udp6"` or
`"unix"`; any other network raises `UnsupportedProtocolError`. Socket options
are taken from `options`: SO_REUSEPORT when `reuse_port` is set or the network
is UDP, SO_REUSEADDR, TCP_NODELAY for TCP unless `tcp_no_delay` is
`TCPSocketOpt.DELAY`, and the receive and send buffer sizes when positive.
For `"unix"` any existing file at the path is removed first.

A `Listener` exposes `sock`, `fd`, `addr` and `network` (normalised to `"tcp"`
or `"udp"`), offers `pack_poll_attachment(handler)` and `dup()`, and is a
context manager. `close()` runs once, and removes the socket file for
`"unix"`.

### `pollnet.sockets`

- `tcp_socket`, `udp_socket`, `unix_socket` return a bound, non-blocking
  `(socket, address)` pair; TCP and Unix sockets also listen, with the backlog
  from `max_listener_backlog()`. UDP sockets allow broadcast.
- `get_tcp_sock_addr`, `get_udp_sock_addr`, `get_unix_sock_addr` resolve an
  address such as `"127.0.0.1:9000"` or `"[::1]:9000"`.
- `TCPAddr`, `UDPAddr`, `UnixAddr` are the address types;
  `sockaddr_to_tcp_or_unix_addr` and `sockaddr_to_udp_addr` convert the tuples
  and paths returned by the `socket` module into them, or return `None`.

### `pollnet.sockopts`

`set_no_delay`, `set_recv_buffer`, `set_send_buffer`, `set_reuse_port`,
`set_reuse_addr`, `set_ipv6_only` and `set_keep_alive(sock, secs)` (which
raises `ValueError` unless `secs` is positive). `SocketOption(setter, value)`
pairs a setter with its value; `apply(sock)` sets it.

### `pollnet.options`

`Options` is a dataclass of settings; `load_options(*opts)` builds one from
option functions such as `with_reuse_addr(True)`, `with_load_balancing(...)`,
`with_tcp_no_delay(...)` or `with_options(other)`.

### `pollnet.load_balancer`

`RoundRobinLoadBalancer`, `LeastConnectionsLoadBalancer` and
`SourceAddrHashLoadBalancer`, created by `new_load_balancer(LoadBalancing.X)`.
`register(loop)` appends a loop and sets its `idx`; `next(addr)` picks one
(least-connections calls each loop's `load_conn()`; source-hash uses the
CRC-32 of `str(addr)`); `iterate(f)` visits loops until `f` returns false.
`next` raises `IndexError` when no loop is registered.

### Smaller helpers

- `pollnet.taskqueue` — `Task(run, arg)` and the thread-safe FIFO `TaskQueue`.
- `pollnet.attachment` — `PollAttachment(fd, callback)` and `dup(fd)`, which
  returns a close-on-exec duplicate.
- `pollnet.vectored_io` — `writev(fd, buffers)` and `readv(fd, buffers)`.
- `pollnet.toolkit` — `is_power_of_two`, `ceil_to_power_of_two`,
  `floor_to_power_of_two`, `bytes_to_string`, `string_to_bytes`.

## Example

```python
from pollnet.listener import init_listener
from pollnet.options import load_options, with_reuse_addr
from pollnet.poller import Poller, ServerShutdown

options = load_options(with_reuse_addr(True))
with init_listener("tcp", "127.0.0.1:9000", options) as ln, Poller() as poller:
    def on_event(fd, events):
        if fd == ln.fd:
            conn, peer = ln.sock.accept()
            conn.close()
            raise ServerShutdown

    poller.add_read(ln.pack_poll_attachment(on_event))
    try:
        poller.polling(on_event)
    except ServerShutdown:
        pass
```

## What it does not do

There is no server engine here: nothing starts event loops, accepts and
tracks connections, buffers reads and writes, or calls user event handlers.
`Poller.polling` hands every event to the one callback it is given; the
`callback` stored in a `PollAttachment` is not called by the poller. Settings
such as `multicore`, `num_event_loop`, `ticker`, `codec`, `read_buffer_cap`,
`tcp_keep_alive` and the logging fields are only stored in `Options`;
`init_listener` reads the socket-option fields and nothing else. The package
provides no command-line program.