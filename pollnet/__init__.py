"""Event-driven networking building blocks: an epoll/kqueue poller, listeners, socket helpers and load balancers."""

__version__ = "0.1.0"