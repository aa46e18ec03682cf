"""Generic networking-related utility functions."""

from typing import Optional, Tuple

import trio.socket

__all__ = (
    "create_socket",
    "format_socket_address",
    "get_socket_address",
    "parse_backlog",
)


def create_socket(socket_type=trio.socket.SOCK_STREAM) -> trio.socket.SocketType:
    """Creates an asynchronous socket with the given type.

    Asynchronous sockets have asynchronous sender and receiver methods so
    you need to use the `await` keyword with them.

    Parameters:
        socket_type: the type of the socket (``socket.SOCK_STREAM`` for
            TCP sockets, ``socket.SOCK_DGRAM`` for UDP sockets)

    Returns:
        the newly created socket
    """
    sock = trio.socket.socket(trio.socket.AF_INET, socket_type)
    if hasattr(trio.socket, "SO_REUSEADDR"):
        # SO_REUSEADDR does not exist on Windows, but we don't really need
        # it on Windows either
        sock.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_REUSEADDR, 1)
    return sock


def format_socket_address(sock, format: str = "{host}:{port}") -> str:
    """Formats the address that the given socket is bound to in the
    standard hostname-port format.

    Parameters:
        sock: the socket to format, or a tuple consisting of a host and a port
        format: format string in brace-style that is used by
            ``str.format()``. The tokens ``{host}`` and ``{port}`` will be
            replaced by the hostname and port.

    Returns:
        a formatted representation of the address and port of the socket
    """
    host, port = get_socket_address(sock)
    return format.format(host=host or "*", port=port)


def get_socket_address(sock) -> Tuple[str, int]:
    """Gets the hostname and port that the given socket is bound to.

    The wildcard address is returned as an empty string.

    Parameters:
        sock: the socket for which we need its address, or a tuple consisting
            of a host and a port

    Returns:
        the host and port where the socket is bound to
    """
    if hasattr(sock, "getsockname"):
        host, port, *_ = sock.getsockname()
    else:
        host, port = sock

    # Canonicalize the value of 'host'
    if host in ("0.0.0.0", "::"):
        host = ""

    return host, port


def parse_backlog(value: Optional[int]) -> Optional[int]:
    """Validates the backlog argument of a listener; negative numbers and
    ``None`` mean that the OS should choose a reasonable default.
    """
    if value is None:
        return None

    value = int(value)
    return value if value >= 0 else None
