"""Blocking bus helpers built on the transport's request/reply primitive.

Each helper builds one request with ``jeepney``, sends it with
``connection.send_and_get_reply`` (no timeout: the call blocks until the peer
answers) and unpacks the reply. They keep no state and bypass proxy objects.

Outcome rules shared by all helpers:

- An error-typed reply raises :class:`RemoteError` carrying the peer's error
  name and text.
- A send/receive failure (``OSError`` from the transport) raises
  :class:`TransportError`.
- Success returns the unpacked value (``True`` for set/emit). Success means
  "no error was produced"; a reply message alone is not taken as success.

Nothing is retried. ``connection`` is anything with jeepney's blocking
surface, e.g. ``jeepney.io.blocking.open_dbus_connection()``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, Mapping, Tuple

from jeepney.low_level import Message, MessageType
from jeepney.wrappers import DBusAddress, new_method_call, new_signal

from dbusroute.core.constants import (
    DBUS_IFACE_OBJECT_MANAGER,
    DBUS_IFACE_PROPERTIES,
    GET_MANAGED_OBJECTS,
    PROPERTIES_CHANGED,
    PROPERTIES_CHANGED_SIGNATURE,
    PROPERTIES_GET,
    PROPERTIES_GET_SIGNATURE,
    PROPERTIES_SET,
    PROPERTIES_SET_SIGNATURE,
)
from dbusroute.core.errors import RemoteError, TransportError

__all__ = [
    "emit_properties_changed",
    "get_managed_objects",
    "get_property",
    "set_property",
]

logger = logging.getLogger(__name__)

Variant = Tuple[str, Any]
ManagedObject = Tuple[str, Dict[str, Dict[str, Variant]]]


def _call(connection: Any, request: Message) -> Message:
    try:
        reply = connection.send_and_get_reply(request)
    except OSError as exc:
        raise TransportError(f"D-Bus request failed: {exc}") from exc
    if reply.header.message_type == MessageType.error:
        raise RemoteError.from_message(reply)
    return reply


def get_managed_objects(connection: Any, service: str, path: str) -> Iterator[ManagedObject]:
    """Get managed objects of a given D-Bus service.

    Returns a single-pass iterator over ``(object_path, interfaces)`` pairs,
    where ``interfaces`` maps interface name to its property bag. An object
    manager with no children yields nothing.
    """
    request = new_method_call(
        DBusAddress(path, bus_name=service, interface=DBUS_IFACE_OBJECT_MANAGER),
        GET_MANAGED_OBJECTS,
    )
    reply = _call(connection, request)
    objects = reply.body[0] if reply.body else {}
    return iter(objects.items())


def get_property(
    connection: Any, service: str, path: str, interface: str, property: str
) -> Variant:
    """Get a property of a given D-Bus interface as ``(signature, value)``."""
    request = new_method_call(
        DBusAddress(path, bus_name=service, interface=DBUS_IFACE_PROPERTIES),
        PROPERTIES_GET,
        PROPERTIES_GET_SIGNATURE,
        (interface, property),
    )
    reply = _call(connection, request)
    return reply.body[0]


def set_property(
    connection: Any,
    service: str,
    path: str,
    interface: str,
    property: str,
    value: Variant,
) -> bool:
    """Set a property of a given D-Bus interface; ``value`` is ``(signature, value)``."""
    request = new_method_call(
        DBusAddress(path, bus_name=service, interface=DBUS_IFACE_PROPERTIES),
        PROPERTIES_SET,
        PROPERTIES_SET_SIGNATURE,
        (interface, property, value),
    )
    _call(connection, request)
    return True


def emit_properties_changed(
    connection: Any,
    path: str,
    interface: str,
    changed: Mapping[str, Variant],
    invalidated: Iterable[str] = (),
) -> bool:
    """Broadcast ``PropertiesChanged`` for ``interface`` on object ``path``."""
    signal = new_signal(
        DBusAddress(path, interface=DBUS_IFACE_PROPERTIES),
        PROPERTIES_CHANGED,
        PROPERTIES_CHANGED_SIGNATURE,
        (interface, dict(changed), list(invalidated)),
    )
    try:
        connection.send(signal)
    except OSError as exc:
        raise TransportError(f"Couldn't emit {PROPERTIES_CHANGED}: {exc}") from exc
    logger.debug("Emitted %s for %s on %s: %s", PROPERTIES_CHANGED, interface, path, sorted(changed))
    return True
