"""Well-known D-Bus names shared with the remote side.

These names and signatures are wire contracts; never alter them.
"""

from __future__ import annotations

__all__ = [
    "DBUS_IFACE_INTROSPECTABLE",
    "DBUS_IFACE_OBJECT_MANAGER",
    "DBUS_IFACE_PROPERTIES",
    "ERROR_ACCESS_DENIED",
    "ERROR_FAILED",
    "ERROR_INVALID_ARGS",
    "ERROR_NO_MEMORY",
    "ERROR_PROPERTY_READ_ONLY",
    "ERROR_UNKNOWN_INTERFACE",
    "ERROR_UNKNOWN_METHOD",
    "ERROR_UNKNOWN_OBJECT",
    "ERROR_UNKNOWN_PROPERTY",
    "GET_MANAGED_OBJECTS",
    "INTROSPECT",
    "PROPERTIES_CHANGED",
    "PROPERTIES_GET",
    "PROPERTIES_GET_ALL",
    "PROPERTIES_SET",
]

DBUS_IFACE_INTROSPECTABLE = "org.freedesktop.DBus.Introspectable"
DBUS_IFACE_OBJECT_MANAGER = "org.freedesktop.DBus.ObjectManager"
DBUS_IFACE_PROPERTIES = "org.freedesktop.DBus.Properties"

GET_MANAGED_OBJECTS = "GetManagedObjects"
GET_MANAGED_OBJECTS_REPLY = "a{oa{sa{sv}}}"
PROPERTIES_GET = "Get"
PROPERTIES_GET_SIGNATURE = "ss"
PROPERTIES_SET = "Set"
PROPERTIES_SET_SIGNATURE = "ssv"
PROPERTIES_GET_ALL = "GetAll"
PROPERTIES_CHANGED = "PropertiesChanged"
PROPERTIES_CHANGED_SIGNATURE = "sa{sv}as"
INTROSPECT = "Introspect"

_ERROR_PREFIX = "org.freedesktop.DBus.Error."
ERROR_ACCESS_DENIED = _ERROR_PREFIX + "AccessDenied"
ERROR_FAILED = _ERROR_PREFIX + "Failed"
ERROR_INVALID_ARGS = _ERROR_PREFIX + "InvalidArgs"
ERROR_NO_MEMORY = _ERROR_PREFIX + "NoMemory"
ERROR_PROPERTY_READ_ONLY = _ERROR_PREFIX + "PropertyReadOnly"
ERROR_UNKNOWN_INTERFACE = _ERROR_PREFIX + "UnknownInterface"
ERROR_UNKNOWN_METHOD = _ERROR_PREFIX + "UnknownMethod"
ERROR_UNKNOWN_OBJECT = _ERROR_PREFIX + "UnknownObject"
ERROR_UNKNOWN_PROPERTY = _ERROR_PREFIX + "UnknownProperty"
