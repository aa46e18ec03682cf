"""Lifecycle management shared by all listeners.

A listener is always in one of four states. ``CLOSED`` and ``OPEN`` are
settled states; ``PREPARING`` and ``CLOSING`` are transient and last only
while a `start()` or `stop()` call is in progress. Calls that arrive during a
transient state wait for the listener to settle and then act on the settled
state, so concurrent calls never overlap and never wait for a state that a
failed transition will not reach.
"""

import logging

from abc import ABCMeta, abstractmethod
from blinker import Signal
from enum import Enum
from trio_util import AsyncValue
from typing import Awaitable, Callable


__all__ = ("Listener", "ListenerState", "ListenerBase")


class ListenerState(Enum):
    CLOSED = "CLOSED"
    PREPARING = "PREPARING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"

    @property
    def is_transitioning(self) -> bool:
        return self in (ListenerState.PREPARING, ListenerState.CLOSING)


log = logging.getLogger(__name__.rpartition(".")[0])


class Listener(metaclass=ABCMeta):
    """Interface of listeners that bind a port and accept incoming
    connections until they are stopped.
    """

    opened = Signal(doc="Signal sent when the listener starts accepting connections.")
    closed = Signal(doc="Signal sent when the listener has released its port.")
    state_changed = Signal(
        doc="""\
        Signal sent whenever the listener moves to a new state.

        Parameters:
            new_state: the new state
            old_state: the old state
        """
    )

    @property
    @abstractmethod
    def port(self) -> int:
        """The port that the listener is bound to; zero if it is not bound."""
        raise NotImplementedError

    @property
    @abstractmethod
    def state(self) -> ListenerState:
        """The current state of the listener."""
        raise NotImplementedError

    @property
    def is_closed(self) -> bool:
        return self.state is ListenerState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state is ListenerState.OPEN

    @property
    def is_transitioning(self) -> bool:
        return self.state.is_transitioning

    @abstractmethod
    async def start(self) -> int:
        """Binds the listener and starts accepting connections.

        Returns:
            the port that the listener is bound to. When the listener is
            running already, this is the port it was bound to earlier.
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """Stops accepting connections and releases the port. Does nothing
        when the listener is not running.
        """
        raise NotImplementedError

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.stop()


class ListenerBase(Listener):
    """Base class that implements the state machine of a listener on top of
    two hooks, `_start()` and `_stop()`, that subclasses must provide.

    The hooks are never called concurrently with each other. `_start()` is
    called only from the ``CLOSED`` state and `_stop()` only from the
    ``OPEN`` state. A hook that raises an exception sends the listener back
    to the state it was called from and the exception propagates to the
    caller of `start()` or `stop()`.

    Subclasses must not touch the state directly; the signals of the listener
    are dispatched from `_set_state()`.
    """

    def __init__(self):
        self._state = AsyncValue(ListenerState.CLOSED)

    @property
    def state(self) -> ListenerState:
        return self._state.value

    async def start(self) -> int:
        await self._settle()
        if self.state is ListenerState.CLOSED:
            await self._transition(
                ListenerState.PREPARING,
                self._start,
                success=ListenerState.OPEN,
                failure=ListenerState.CLOSED,
            )
        return self.port

    async def stop(self) -> None:
        await self._settle()
        if self.state is ListenerState.OPEN:
            await self._transition(
                ListenerState.CLOSING,
                self._stop,
                success=ListenerState.CLOSED,
                failure=ListenerState.OPEN,
            )

    async def wait_until_closed(self) -> None:
        """Blocks the current task until the listener is closed."""
        await self._state.wait_value(ListenerState.CLOSED)

    async def wait_until_open(self) -> None:
        """Blocks the current task until the listener is open. Note that this
        blocks forever if nobody starts the listener.
        """
        await self._state.wait_value(ListenerState.OPEN)

    async def wait_until_settled(self) -> None:
        """Blocks the current task until the listener is either open or
        closed.
        """
        await self._state.wait_value(lambda state: not state.is_transitioning)

    async def _settle(self) -> None:
        # Another task may start a new transition between the moment we are
        # woken up and the moment we get to run, hence the loop
        while self.state.is_transitioning:
            await self.wait_until_settled()

    def _set_state(self, new_state: ListenerState) -> None:
        old_state = self._state.value
        if new_state is old_state:
            return

        self._state.value = new_state

        log.debug(f"Listener state changed: {old_state.name} -> {new_state.name}")
        self.state_changed.send(self, old_state=old_state, new_state=new_state)

        if new_state is ListenerState.OPEN:
            self.opened.send(self)
        elif new_state is ListenerState.CLOSED:
            self.closed.send(self)

    async def _transition(
        self,
        via: ListenerState,
        action: Callable[[], Awaitable[None]],
        *,
        success: ListenerState,
        failure: ListenerState,
    ) -> None:
        self._set_state(via)
        outcome = failure
        try:
            await action()
            outcome = success
        finally:
            self._set_state(outcome)

    @abstractmethod
    async def _start(self) -> None:
        """Binds the listener and spawns whatever is needed to accept
        connections on it.
        """
        raise NotImplementedError

    @abstractmethod
    async def _stop(self) -> None:
        """Releases the resources acquired by `_start()`."""
        raise NotImplementedError
