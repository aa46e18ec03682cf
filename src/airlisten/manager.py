"""Listener that binds a TCP port and accepts incoming connections from a
background task.
"""

import logging

from trio import Nursery, SocketListener, TASK_STATUS_IGNORED
from trio.socket import SOCK_STREAM
from typing import Optional, Tuple

from .acceptor import AcceptLoop, ConnectionHandler
from .base import ListenerBase
from .errors import BindError, CloseError
from .factory import create_listener
from .networking import create_socket, format_socket_address, parse_backlog

__all__ = ("TCPListenerManager",)

log = logging.getLogger(__name__.rpartition(".")[0])


@create_listener.register("tcp-listen")
class TCPListenerManager(ListenerBase):
    """Listener that binds to a TCP port, accepts incoming connections in a
    background task and hands them off to a handler function.

    The acceptance task needs a Trio nursery. The nursery has to be provided
    to the constructor of the listener, or, alternatively, after construction
    in the `nursery` property.

    Each call to `start()` binds a new socket and spawns a new acceptance
    task; `stop()` closes the socket and waits for the acceptance task to
    exit. The port of the socket can be queried with the `port` property at
    any time; it is zero when the listener is not bound.
    """

    nursery: Optional[Nursery]
    """The nursery that owns the acceptance task of the listener."""

    handler: Optional[ConnectionHandler]
    """The handler that is called with each accepted connection."""

    max_connections: Optional[int]
    """Maximum number of connections to accept after each call to `start()`;
    ``None`` means no limit.
    """

    _acceptor: Optional[AcceptLoop]
    _listener: Optional[SocketListener]

    def __init__(
        self,
        host: str = "",
        port: int = 0,
        *,
        backlog: Optional[int] = None,
        handler: Optional[ConnectionHandler] = None,
        nursery: Optional[Nursery] = None,
        max_connections: Optional[int] = None,
    ):
        """Constructor.

        Parameters:
            host: the IP address or hostname that the socket will bind to. The
                default value means that the socket will bind to all IP
                addresses of the local machine.
            port: the port number that the socket will bind to. Zero means that
                the socket will choose a random ephemeral port number on its
                own.
            backlog: the size of the backlog for incoming connections; ``None``
                or negative numbers mean that the OS should choose a reasonable
                default
            handler: the handler function that will be called for every
                connection that was accepted
            nursery: the Trio nursery that will be the owner of the acceptance
                task spawned by this instance
            max_connections: maximum number of connections to accept after
                each call to `start()`; the listener stops on its own when the
                limit is reached
        """
        super().__init__()

        self._host = host or ""
        self._port = int(port or 0)
        self._backlog = parse_backlog(backlog)

        self.handler = handler
        self.nursery = nursery
        self.max_connections = max_connections

        self._acceptor = None
        self._listener = None

    @property
    def acceptor(self) -> Optional[AcceptLoop]:
        """The acceptance task of the current or most recent run of the
        listener, or ``None`` if the listener was never started.
        """
        return self._acceptor

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The IP address and port that the listener is bound to, or ``None``
        if the listener is not bound.
        """
        listener = self._listener
        if listener is None:
            return None
        host, port, *_ = listener.socket.getsockname()
        return host, port

    @property
    def port(self) -> int:
        """The port that the listener is bound to, or zero if the listener is
        not bound.
        """
        address = self.address
        return address[1] if address else 0

    def format_address(self, format: str = "{host}:{port}") -> str:
        """Returns a human-readable representation of the address that the
        listener is bound to.

        Raises:
            RuntimeError: if the listener is not bound
        """
        address = self.address
        if address is None:
            raise RuntimeError("listener is not bound to an address")
        return format_socket_address(address, format)

    async def _start(self) -> None:
        if self.nursery is None:
            raise RuntimeError(
                "You must assign a nursery to a {!r} before starting it".format(
                    self.__class__
                )
            )

        acceptor = AcceptLoop(self.handler, max_connections=self.max_connections)
        listener = await self._create_listener()

        self._listener = listener
        log.debug(f"Listening for connections on {self.format_address()}")

        try:
            await self.nursery.start(self._run_acceptor, acceptor, listener)
        except BaseException:
            self._listener = None
            await listener.aclose()
            raise

        self._acceptor = acceptor

    async def _stop(self) -> None:
        listener, acceptor = self._listener, self._acceptor
        if listener is None:
            return

        address = self.format_address()

        self._listener = None
        try:
            await listener.aclose()
        except OSError as ex:
            self._listener = listener
            raise CloseError(f"Cannot close listener on {address}: {ex}") from ex

        if acceptor is not None:
            await acceptor.wait_until_exited()

        log.debug(f"Stopped listening for connections on {address}")

    async def _create_listener(self) -> SocketListener:
        """Creates a new socket, binds it to the configured address and
        wraps it in a Trio listener.

        Raises:
            BindError: if the socket could not be created, bound or put into
                listening mode
        """
        address = (self._host, self._port)

        try:
            sock = create_socket(SOCK_STREAM)
        except OSError as ex:
            raise BindError(address) from ex

        try:
            await sock.bind(address)
            if self._backlog is None:
                sock.listen()
            else:
                sock.listen(self._backlog)
        except OSError as ex:
            sock.close()
            raise BindError(address) from ex
        except BaseException:
            sock.close()
            raise

        return SocketListener(sock)

    async def _run_acceptor(
        self,
        acceptor: AcceptLoop,
        listener: SocketListener,
        *,
        task_status=TASK_STATUS_IGNORED,
    ) -> None:
        """Runs the acceptance task of the listener in the nursery and stops
        the listener if the task exits while the listener is still bound.
        """
        await acceptor.run(listener, task_status=task_status)

        # The task may exit before start() has finished; the listener can be
        # stopped only after it has settled
        await self.wait_until_settled()
        if self._listener is listener:
            await self.stop()
