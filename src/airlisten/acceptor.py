"""Acceptance task that waits for incoming connections on a listening socket
and hands them off to a connection handler.
"""

import errno
import logging

from enum import Enum
from trio import ClosedResourceError, Event, SocketStream, TASK_STATUS_IGNORED, sleep
from trio.abc import Listener as TrioListener
from trio_util import AsyncValue
from typing import Callable, Optional

from .errors import AcceptError
from .networking import format_socket_address

__all__ = ("AcceptLoop", "AcceptorState", "ConnectionHandler")


ConnectionHandler = Callable[[SocketStream], None]
"""Type of functions that receive the connections accepted by an AcceptLoop_."""

ACCEPT_CAPACITY_ERRNOS = frozenset(
    (errno.EMFILE, errno.ENFILE, errno.ENOMEM, errno.ENOBUFS)
)
"""Error codes from ``accept()`` that signal a temporary lack of resources;
accepting is retried after a short delay when one of these is encountered.
"""


class AcceptorState(Enum):
    IDLE = "IDLE"
    ACCEPTING = "ACCEPTING"
    DELIVERED = "DELIVERED"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


log = logging.getLogger(__name__.rpartition(".")[0])


def _format_peer(stream) -> str:
    sock = getattr(stream, "socket", None)
    if sock is None:
        return "unknown peer"

    try:
        return format_socket_address(sock.getpeername())
    except OSError:
        return "unknown peer"


class AcceptLoop:
    """Acceptance task that repeatedly accepts connections from a listener
    and hands each of them off to a connection handler until the listener
    is closed.

    The loop is meant to be executed exactly once, with `nursery.start()`,
    passing the listener that it should accept connections from. The loop
    starts from the ``IDLE`` state, enters ``ACCEPTING`` when it is waiting
    for a connection, passes through ``DELIVERED`` every time a connection
    was handed off and finally ends up in one of the following terminal
    states:

        - ``CLOSED``: the listener was closed while the loop was waiting for
          a connection

        - ``DELIVERED``: the maximum number of connections was reached

        - ``FAILED``: accepting a connection failed with an unexpected error;
          the error is stored in the ``error`` property
    """

    handler: Optional[ConnectionHandler]
    """The handler that is called with each accepted connection. It is called
    from the acceptance task itself so it should return quickly, typically by
    spawning a new task that deals with the connection. When it is ``None``,
    accepted connections are closed immediately.
    """

    max_connections: Optional[int]
    """Maximum number of connections to accept; ``None`` means no limit."""

    sleep_on_capacity_error: float
    """Number of seconds to wait before trying to accept again when the
    OS reports that it ran out of resources.
    """

    delivered: int
    """Number of connections handed off so far."""

    error: Optional[AcceptError]
    """The error that terminated the loop, if any."""

    def __init__(
        self,
        handler: Optional[ConnectionHandler] = None,
        *,
        max_connections: Optional[int] = None,
        sleep_on_capacity_error: float = 0.1,
    ):
        """Constructor.

        Parameters:
            handler: the handler function that will be called for every
                connection that was accepted
            max_connections: maximum number of connections to accept before
                the loop terminates on its own; ``None`` means no limit
            sleep_on_capacity_error: number of seconds to wait before retrying
                when accepting failed due to resource exhaustion
        """
        if max_connections is not None and max_connections < 1:
            raise ValueError("max_connections must be positive")

        self.handler = handler
        self.max_connections = max_connections
        self.sleep_on_capacity_error = sleep_on_capacity_error

        self.delivered = 0
        self.error = None

        self._state = AsyncValue(AcceptorState.IDLE)
        self._exited = Event()

    @property
    def has_exited(self) -> bool:
        """Returns whether the loop has finished running."""
        return self._exited.is_set()

    @property
    def limit_reached(self) -> bool:
        """Returns whether the loop has delivered as many connections as it
        was allowed to.
        """
        return (
            self.max_connections is not None
            and self.delivered >= self.max_connections
        )

    @property
    def state(self) -> AcceptorState:
        """The current state of the loop."""
        return self._state.value

    async def run(
        self, listener: TrioListener[SocketStream], *, task_status=TASK_STATUS_IGNORED
    ) -> None:
        """Runs the loop, accepting connections from the given listener.

        Returns when the listener is closed, when the connection limit is
        reached or when accepting fails with an unexpected error. The
        latter is not raised; it is logged and stored in ``error`` instead.
        """
        if self.state is not AcceptorState.IDLE:
            raise RuntimeError("an acceptance task can be run only once")

        final_state = AcceptorState.CLOSED
        try:
            self._state.value = AcceptorState.ACCEPTING
            task_status.started()

            while True:
                try:
                    stream = await listener.accept()
                except ClosedResourceError:
                    log.debug("Listener closed, no more connections to accept")
                    break
                except OSError as ex:
                    if ex.errno in ACCEPT_CAPACITY_ERRNOS:
                        log.warning(
                            f"Out of resources while accepting connection ({ex}), "
                            f"retrying in {self.sleep_on_capacity_error}s"
                        )
                        await sleep(self.sleep_on_capacity_error)
                        continue

                    log.exception("Unexpected error while accepting connection")
                    self.error = AcceptError(str(ex))
                    self.error.__cause__ = ex
                    final_state = AcceptorState.FAILED
                    break

                self.delivered += 1
                self._state.value = AcceptorState.DELIVERED
                await self._deliver(stream)

                if self.limit_reached:
                    log.debug(
                        f"Accepted {self.delivered} connection(s), limit reached"
                    )
                    final_state = AcceptorState.DELIVERED
                    break

                self._state.value = AcceptorState.ACCEPTING
        finally:
            self._state.value = final_state
            self._exited.set()

    async def wait_until_exited(self) -> None:
        """Blocks the current task until the loop has finished running."""
        await self._exited.wait()

    async def wait_for_state(self, state: AcceptorState) -> None:
        """Blocks the current task until the loop reaches the given state."""
        await self._state.wait_value(state)

    async def _deliver(self, stream: SocketStream) -> None:
        """Hands off a freshly accepted connection to the handler."""
        peer = _format_peer(stream)

        if self.handler is None:
            log.info(f"Accepted connection from {peer}, no handler to take it")
            await stream.aclose()
            return

        log.debug(f"Accepted connection from {peer}")
        try:
            self.handler(stream)
        except Exception:
            log.exception(f"Connection handler failed for connection from {peer}")
            await stream.aclose()
