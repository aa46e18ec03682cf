"""Package that binds a TCP listener to an ephemeral port, accepts incoming
connections in a background Trio task and hands each connection off to a
handler function.

Listeners have a standard lifecycle. A listener starts from the "closed"
state. When it is started, it first transitions to the "preparing" state
and then to the "open" (listening) state. When it is stopped, it transitions
to the "closing" state and then moves back to "closed". The "preparing" and
"closing" states are considered transient, while the "open" and "closed"
states are stable.
"""

from .acceptor import AcceptLoop, AcceptorState, ConnectionHandler
from .base import Listener, ListenerBase, ListenerState
from .errors import (
    AcceptError,
    BindError,
    CloseError,
    ListenerError,
    UnknownListenerTypeError,
)
from .factory import create_listener, create_listener_factory
from .manager import TCPListenerManager
from .version import __version__

__all__ = (
    "AcceptError",
    "AcceptLoop",
    "AcceptorState",
    "BindError",
    "CloseError",
    "ConnectionHandler",
    "Listener",
    "ListenerBase",
    "ListenerError",
    "ListenerState",
    "TCPListenerManager",
    "UnknownListenerTypeError",
    "create_listener",
    "create_listener_factory",
    "__version__",
)
