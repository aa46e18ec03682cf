"""Creation of listeners from configuration values.

A listener can be described with a URL such as
``tcp-listen://127.0.0.1:0?backlog=16&max_connections=1`` or with the
equivalent dict::

    {
        "type": "tcp-listen",
        "host": "127.0.0.1",
        "port": 0,
        "parameters": {"backlog": 16, "max_connections": 1}
    }

The type selects the listener class registered in the factory; the host,
the port and the parameters become keyword arguments of the class.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, Union
from urllib.parse import parse_qsl, urlparse

from .base import Listener
from .errors import UnknownListenerTypeError

__all__ = ("ListenerFactory", "create_listener", "create_listener_factory")


ListenerSpecification = Union[str, dict[str, Any]]


def _to_int_if_possible(value: str) -> Union[int, str]:
    try:
        return int(value)
    except ValueError:
        return value


def parse_listener_url(url: str) -> dict[str, Any]:
    """Converts a URL that describes a listener into the equivalent dict
    representation.

    Query parameters that look like integers are converted to integers.
    A URL without a scheme is treated as the name of a listener type with
    no further arguments.

    Raises:
        ValueError: if a query parameter is given more than once
    """
    parts = urlparse(url, allow_fragments=False)
    if not parts.scheme:
        return {"type": url}

    parameters: dict[str, Union[int, str]] = {}
    for name, value in parse_qsl(parts.query):
        if name in parameters:
            raise ValueError(f"repeated parameters are not supported: {name!r}")
        parameters[name] = _to_int_if_possible(value)

    result: dict[str, Any] = {"type": parts.scheme, "parameters": parameters}
    host, _, port = parts.netloc.partition(":")
    if host:
        result["host"] = host
    if port:
        result["port"] = int(port)
    return result


class ListenerFactory:
    """Registry of listener classes that creates listeners from URL or dict
    specifications.
    """

    _registry: dict[str, Callable[..., Listener]]

    def __init__(self):
        self._registry = {}

    def create(self, specification: ListenerSpecification, **kwds) -> Listener:
        """Creates a listener from its specification.

        Keyword arguments that cannot be expressed in a specification, such
        as the connection handler or the nursery, are passed on to the
        listener class intact and take precedence over the specification.

        Raises:
            UnknownListenerTypeError: if no listener class is registered with
                the type given in the specification
        """
        if isinstance(specification, str):
            specification = parse_listener_url(specification)

        listener_type = specification["type"]
        factory = self._registry.get(listener_type)
        if factory is None:
            raise UnknownListenerTypeError(listener_type)

        arguments = {
            name: specification[name]
            for name in ("host", "port")
            if name in specification
        }
        arguments.update(specification.get("parameters", {}))
        arguments.update(kwds)

        return factory(**arguments)

    def register(self, name: str, klass=None):
        """Registers a listener class with the given type name. Returns a
        class decorator when no class is given.
        """
        if klass is None:
            return partial(self.register, name)

        self._registry[name] = klass
        return klass

    def __call__(self, specification: ListenerSpecification, **kwds) -> Listener:
        return self.create(specification, **kwds)


create_listener = ListenerFactory()
"""Factory that knows about all the listener classes of this package."""


def create_listener_factory(*args, **kwds) -> Callable[[], Listener]:
    """Returns a function that creates a new listener with the given
    specification each time it is called with no arguments.
    """
    return partial(create_listener, *args, **kwds)
