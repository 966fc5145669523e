"""Object server: feeds incoming method calls into exported skeletons.

``ObjectServer(connection)`` keeps a registry of exported skeletons keyed by
object path and interface name and answers every method call addressed to
one of them. It plays the role of the bus toolkit for skeletons built with
:func:`dbusroute.core.skeleton.new_interface_skeleton`.

Routing
-------
- ``org.freedesktop.DBus.Properties``: ``Get``/``Set``/``GetAll`` are checked
  against the skeleton's schema (unknown property, access, value signature)
  before the skeleton's property entry points run.
- ``org.freedesktop.DBus.Introspectable.Introspect``: XML built from the
  exported schemas plus the names of child nodes.
- Anything else goes to ``skeleton.method_call`` after the method and its
  argument signature were found in the schema. A call without an interface
  header goes to the first interface on the path declaring the method.

Errors
------
A :class:`DBusError` raised by a skeleton becomes the error reply. Any other
exception is logged and answered with ``org.freedesktop.DBus.Error.Failed``.
A handler that already completed its invocation is left alone.

Replies may be sent from worker threads (detached handlers), so sending is
serialized with a lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from jeepney.low_level import HeaderFields, Message, MessageType
from smartseeds.typeutils import safe_is_instance

from dbusroute.client import Variant, emit_properties_changed
from dbusroute.core.constants import (
    DBUS_IFACE_INTROSPECTABLE,
    DBUS_IFACE_PROPERTIES,
    ERROR_ACCESS_DENIED,
    ERROR_UNKNOWN_INTERFACE,
    ERROR_UNKNOWN_METHOD,
    ERROR_UNKNOWN_OBJECT,
    INTROSPECT,
    PROPERTIES_GET,
    PROPERTIES_GET_ALL,
    PROPERTIES_SET,
)
from dbusroute.core.errors import (
    DBusError,
    InvalidArgsError,
    PropertyReadOnlyError,
    UnknownPropertyError,
)
from dbusroute.core.invocation import MethodInvocation
from dbusroute.core.skeleton import InterfaceSkeleton

__all__ = ["ObjectServer"]

logger = logging.getLogger(__name__)

_INTROSPECT_HEADER = (
    '<!DOCTYPE node PUBLIC "-//freedesktop//DTD D-BUS Object Introspection 1.0//EN"\n'
    ' "http://www.freedesktop.org/standards/dbus/1.0/introspect.dtd">'
)
_STANDARD_INTERFACES_XML = f"""\
  <interface name="{DBUS_IFACE_PROPERTIES}">
    <method name="Get">
      <arg name="interface_name" type="s" direction="in"/>
      <arg name="property_name" type="s" direction="in"/>
      <arg name="value" type="v" direction="out"/>
    </method>
    <method name="GetAll">
      <arg name="interface_name" type="s" direction="in"/>
      <arg name="properties" type="a{{sv}}" direction="out"/>
    </method>
    <method name="Set">
      <arg name="interface_name" type="s" direction="in"/>
      <arg name="property_name" type="s" direction="in"/>
      <arg name="value" type="v" direction="in"/>
    </method>
    <signal name="PropertiesChanged">
      <arg name="interface_name" type="s"/>
      <arg name="changed_properties" type="a{{sv}}"/>
      <arg name="invalidated_properties" type="as"/>
    </signal>
  </interface>
  <interface name="{DBUS_IFACE_INTROSPECTABLE}">
    <method name="Introspect">
      <arg name="xml_data" type="s" direction="out"/>
    </method>
  </interface>"""


class ObjectServer:
    """Routes incoming method calls on a connection to exported skeletons."""

    def __init__(self, connection: Any):
        self.connection = connection
        self._objects: Dict[str, Dict[str, InterfaceSkeleton]] = {}
        self._lock = threading.RLock()
        self._send_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def export(self, path: str, skeleton: InterfaceSkeleton) -> None:
        """Export ``skeleton`` at object ``path`` under its interface name."""
        if not safe_is_instance(skeleton, "dbusroute.core.skeleton.InterfaceSkeleton"):
            raise TypeError(f"export() requires an InterfaceSkeleton, got {skeleton!r}")
        if not path.startswith("/"):
            raise ValueError(f"Invalid object path: {path!r}")
        interface = skeleton.get_info().name
        with self._lock:
            interfaces = self._objects.setdefault(path, {})
            if interface in interfaces and interfaces[interface] is not skeleton:
                raise ValueError(f"{interface} already exported on {path}")
            interfaces[interface] = skeleton
        logger.debug("Exported %s on %s", interface, path)

    def unexport(self, path: str, interface: Optional[str] = None) -> None:
        """Drop one interface (or every interface) exported at ``path``."""
        with self._lock:
            interfaces = self._objects.get(path)
            if not interfaces:
                return
            if interface is None:
                interfaces.clear()
            else:
                interfaces.pop(interface, None)
            if not interfaces:
                del self._objects[path]

    def lookup(self, path: str, interface: str) -> Optional[InterfaceSkeleton]:
        with self._lock:
            return self._objects.get(path, {}).get(interface)

    def exported_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._objects)

    # ------------------------------------------------------------------
    # Message loop
    # ------------------------------------------------------------------
    def run_once(self, timeout: Optional[float] = None) -> bool:
        """Receive one message and handle it; return whether it was ours.

        Method calls for paths nobody exported are answered with
        ``UnknownObject``.
        """
        message = self.connection.receive(timeout=timeout)
        if self.handle_message(message):
            return True
        if message.header.message_type == MessageType.method_call:
            invocation = MethodInvocation(message, self.send)
            invocation.return_dbus_error(
                DBusError(f"No such object: {invocation.path}", name=ERROR_UNKNOWN_OBJECT)
            )
        return False

    def serve_forever(self) -> None:
        while True:
            self.run_once()

    def send(self, message: Message) -> None:
        with self._send_lock:
            self.connection.send(message)

    def emit_properties_changed(
        self, path: str, interface: str, changed: Mapping[str, Variant]
    ) -> bool:
        with self._send_lock:
            return emit_properties_changed(self.connection, path, interface, changed)

    def handle_message(self, message: Message) -> bool:
        if message.header.message_type != MessageType.method_call:
            return False
        fields = message.header.fields
        path = fields.get(HeaderFields.path, "")
        with self._lock:
            interfaces = dict(self._objects.get(path, {}))
            known_path = bool(interfaces) or self._has_children(path)
        if not known_path:
            return False

        invocation = MethodInvocation(message, self.send)
        interface = fields.get(HeaderFields.interface)
        method = fields.get(HeaderFields.member, "")
        try:
            if interface == DBUS_IFACE_PROPERTIES:
                self._handle_properties(invocation, interfaces)
            elif interface == DBUS_IFACE_INTROSPECTABLE and method == INTROSPECT:
                invocation.return_value("s", (self.introspect(path),))
            else:
                self._handle_method(invocation, interfaces)
        except DBusError as exc:
            if not invocation.completed:
                invocation.return_dbus_error(exc)
        except Exception as exc:
            logger.exception("Unhandled error in %s.%s() on %s", interface, method, path)
            if not invocation.completed:
                invocation.return_dbus_error(DBusError(str(exc)))
        return True

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    def _handle_method(
        self, invocation: MethodInvocation, interfaces: Dict[str, InterfaceSkeleton]
    ) -> None:
        method = invocation.method
        interface = invocation.interface
        if not interfaces:
            raise DBusError(f"No such object: {invocation.path}", name=ERROR_UNKNOWN_OBJECT)
        if not interface:
            interface = next(
                (name for name, skel in interfaces.items() if skel.get_info().lookup_method(method)),
                "",
            )
            if not interface:
                raise DBusError(f"Unknown method: {method}()", name=ERROR_UNKNOWN_METHOD)
        skeleton = interfaces.get(interface)
        if skeleton is None:
            raise DBusError(f"No such interface: {interface}", name=ERROR_UNKNOWN_INTERFACE)
        info = skeleton.get_info().lookup_method(method)
        if info is None:
            raise DBusError(f"Unknown method: {interface}.{method}()", name=ERROR_UNKNOWN_METHOD)
        if invocation.signature != info.in_signature:
            raise InvalidArgsError(
                f"Expected signature '{info.in_signature}', got '{invocation.signature}'"
            )
        skeleton.method_call(
            invocation.sender,
            invocation.path,
            interface,
            method,
            invocation.parameters,
            invocation,
        )

    def _handle_properties(
        self, invocation: MethodInvocation, interfaces: Dict[str, InterfaceSkeleton]
    ) -> None:
        method = invocation.method
        expected = {PROPERTIES_GET: "ss", PROPERTIES_SET: "ssv", PROPERTIES_GET_ALL: "s"}
        if method not in expected:
            raise DBusError(
                f"Unknown method: {DBUS_IFACE_PROPERTIES}.{method}()", name=ERROR_UNKNOWN_METHOD
            )
        if invocation.signature != expected[method]:
            raise InvalidArgsError(
                f"Expected signature '{expected[method]}', got '{invocation.signature}'"
            )
        args = invocation.parameters
        skeleton = interfaces.get(args[0])
        if skeleton is None:
            raise DBusError(f"No such interface: {args[0]}", name=ERROR_UNKNOWN_INTERFACE)
        if method == PROPERTIES_GET_ALL:
            invocation.return_value("a{sv}", (dict(skeleton.get_properties()),))
            return

        name = args[1]
        info = skeleton.get_info().lookup_property(name)
        if info is None:
            raise UnknownPropertyError(f"No such property: {args[0]}.{name}")
        if method == PROPERTIES_GET:
            if not info.readable:
                raise DBusError(f"Property {name} is not readable", name=ERROR_ACCESS_DENIED)
            value = skeleton.get_property(invocation.sender, invocation.path, args[0], name)
            invocation.return_value("v", (value,))
            return

        if not info.writable:
            raise PropertyReadOnlyError(f"Property {name} is not writable")
        value = args[2]
        if value[0] != info.signature:
            raise InvalidArgsError(f"Property {name} expects '{info.signature}', got '{value[0]}'")
        if not skeleton.set_property(invocation.sender, invocation.path, args[0], name, value):
            raise DBusError(f"Couldn't set property {name}")
        invocation.return_value()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def introspect(self, path: str) -> str:
        with self._lock:
            interfaces = list(self._objects.get(path, {}).values())
            children = self._child_nodes(path)
        parts = [_INTROSPECT_HEADER, "<node>"]
        if interfaces:
            parts.append(_STANDARD_INTERFACES_XML)
        parts.extend(skeleton.get_info().to_xml() for skeleton in interfaces)
        parts.extend(f'  <node name="{child}"/>' for child in children)
        parts.append("</node>")
        return "\n".join(parts)

    def _child_nodes(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        children = {
            exported[len(prefix):].split("/", 1)[0]
            for exported in self._objects
            if exported.startswith(prefix) and exported != path
        }
        return sorted(children)

    def _has_children(self, path: str) -> bool:
        return bool(self._child_nodes(path))
