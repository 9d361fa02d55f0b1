"""Small numeric and byte/string helpers."""

_MAX_INT_HEAD_BIT = 1 << 62


def is_power_of_two(n: int) -> bool:
    """Report whether ``n`` is a power of two (zero counts, as with the bit test)."""
    return n & (n - 1) == 0


def ceil_to_power_of_two(n: int) -> int:
    """Return the least power of two greater than or equal to ``n`` (at least 2)."""
    if n > _MAX_INT_HEAD_BIT:
        raise ValueError("argument is too large")
    if n <= 2:
        return 2
    return 1 << (n - 1).bit_length()


def floor_to_power_of_two(n: int) -> int:
    """Return the greatest power of two less than or equal to ``n`` (at least 2)."""
    if n <= 2:
        return 2
    return 1 << (n.bit_length() - 1)


def bytes_to_string(b: bytes) -> str:
    """Convert bytes to a string, preserving undecodable bytes."""
    return bytes(b).decode("utf-8", errors="surrogateescape")


def string_to_bytes(s: str) -> bytes:
    """Convert a string to bytes; the inverse of :func:`bytes_to_string`."""
    return s.encode("utf-8", errors="surrogateescape")