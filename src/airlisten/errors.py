from typing import Optional, Tuple

__all__ = (
    "AcceptError",
    "BindError",
    "CloseError",
    "ListenerError",
    "UnknownListenerTypeError",
)


class ListenerError(RuntimeError):
    """Base class for listener-related errors."""

    pass


class BindError(ListenerError):
    """Error thrown when the listening socket of a listener could not be
    created, bound or put into listening mode.
    """

    def __init__(self, address: Tuple[str, int], message: Optional[str] = None):
        """Constructor.

        Parameters:
            address: the host and port that the listener tried to bind to
            message: optional message that overrides the default one
        """
        host, port = address
        super().__init__(
            message or f"Cannot bind listener to {host or '*'}:{port or 'any'}"
        )
        self.address = address


class CloseError(ListenerError):
    """Error thrown when the listening socket of a listener could not be
    closed.
    """

    def __init__(self, message: str = ""):
        super().__init__(message or "Cannot close listener")


class AcceptError(ListenerError):
    """Error recorded when an acceptance task stopped because accepting an
    incoming connection failed for a reason other than the listener being
    closed.
    """

    def __init__(self, message: str = ""):
        super().__init__(message or "Failed to accept incoming connection")


class UnknownListenerTypeError(RuntimeError):
    """Exception thrown when trying to construct a listener with an
    unknown type.
    """

    def __init__(self, listener_type: str):
        """Constructor.

        Parameters:
            listener_type: the listener type that the user tried to construct.
        """
        super().__init__(f"Unknown listener type: {listener_type!r}")
        self.listener_type = listener_type
