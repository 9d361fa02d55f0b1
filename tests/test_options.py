import logging
from datetime import timedelta

import pytest

from pollnet.load_balancer import LoadBalancing
from pollnet.options import (
    Options,
    TCPSocketOpt,
    load_options,
    with_codec,
    with_load_balancing,
    with_lock_os_thread,
    with_log_level,
    with_log_path,
    with_logger,
    with_multicore,
    with_num_event_loop,
    with_options,
    with_read_buffer_cap,
    with_reuse_addr,
    with_reuse_port,
    with_socket_recv_buffer,
    with_socket_send_buffer,
    with_tcp_keep_alive,
    with_tcp_no_delay,
    with_ticker,
)


def test_defaults_equal_plain_options():
    opts = load_options()
    assert opts == Options()
    assert opts.tcp_no_delay is TCPSocketOpt.NO_DELAY
    assert opts.lb is LoadBalancing.ROUND_ROBIN
    assert opts.multicore is False


def test_tcp_socket_opt_values():
    assert load_options().tcp_no_delay == 0
    assert load_options(with_tcp_no_delay(TCPSocketOpt.DELAY)).tcp_no_delay == 1


CODEC = object()
LOGGER = logging.getLogger("pollnet-test")


@pytest.mark.parametrize(
    "option, field, value",
    [
        (with_multicore(True), "multicore", True),
        (with_lock_os_thread(True), "lock_os_thread", True),
        (with_read_buffer_cap(4096), "read_buffer_cap", 4096),
        (with_load_balancing(LoadBalancing.SOURCE_ADDR_HASH), "lb", LoadBalancing.SOURCE_ADDR_HASH),
        (with_num_event_loop(8), "num_event_loop", 8),
        (with_reuse_port(True), "reuse_port", True),
        (with_reuse_addr(True), "reuse_addr", True),
        (with_tcp_keep_alive(timedelta(minutes=1)), "tcp_keep_alive", timedelta(minutes=1)),
        (with_tcp_no_delay(TCPSocketOpt.DELAY), "tcp_no_delay", TCPSocketOpt.DELAY),
        (with_socket_recv_buffer(8192), "socket_recv_buffer", 8192),
        (with_socket_send_buffer(16384), "socket_send_buffer", 16384),
        (with_ticker(True), "ticker", True),
        (with_codec(CODEC), "codec", CODEC),
        (with_log_path("/tmp/pollnet.log"), "log_path", "/tmp/pollnet.log"),
        (with_log_level(logging.DEBUG), "log_level", logging.DEBUG),
        (with_logger(LOGGER), "logger", LOGGER),
    ],
)
def test_single_option_sets_field(option, field, value):
    opts = load_options(option)
    assert getattr(opts, field) == value
    others = {k: v for k, v in vars(opts).items() if k != field}
    defaults = {k: v for k, v in vars(Options()).items() if k != field}
    assert others == defaults


def test_later_options_override_earlier():
    opts = load_options(with_num_event_loop(2), with_num_event_loop(6))
    assert opts.num_event_loop == 6


def test_with_options_replaces_everything():
    template = Options(multicore=True, read_buffer_cap=1024, log_path="x.log")
    opts = load_options(with_reuse_port(True), with_options(template))
    assert opts == template
    assert opts.reuse_port is False


def test_with_options_then_override():
    template = Options(num_event_loop=3)
    opts = load_options(with_options(template), with_ticker(True))
    assert opts.num_event_loop == 3
    assert opts.ticker is True
    assert template.ticker is False


def test_load_options_returns_fresh_instances():
    a = load_options(with_multicore(True))
    b = load_options()
    assert a.multicore is True
    assert b.multicore is False