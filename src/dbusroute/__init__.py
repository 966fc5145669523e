"""dbusroute public API surface.

- Dispatch: ``FilterEntry``, ``FilterTable``, ``method_filter``,
  ``Dispatcher``, ``dispatch_method_call``.
- Exposed objects: ``InterfaceInfo`` & co, ``SkeletonVTable``,
  ``new_interface_skeleton``, ``ObjectServer``.
- Blocking client helpers: ``get_managed_objects``, ``get_property``,
  ``set_property``, ``emit_properties_changed``.
- Errors: ``DBusError`` and subclasses.

Built-in plugins (``logging``) are imported for their side effect of calling
``Dispatcher.register_plugin``. Importing stays lightweight otherwise.
"""

from importlib import import_module

__version__ = "0.1.0"

from .client import emit_properties_changed, get_managed_objects, get_property, set_property
from .core import (
    SENTINEL,
    ArgInfo,
    Dispatcher,
    FilterEntry,
    FilterTable,
    InterfaceInfo,
    InterfaceSkeletonEx,
    MethodInfo,
    MethodInvocation,
    PropertyInfo,
    SignalInfo,
    SkeletonVTable,
    dispatch_method_call,
    method_filter,
    new_interface_skeleton,
)
from .core.errors import (
    DBusError,
    DispatchLaunchError,
    InvocationError,
    RemoteError,
    TransportError,
)
from .server import ObjectServer

for _plugin in ("logging",):
    import_module(f"{__name__}.plugins.{_plugin}")
del _plugin

__all__ = [
    "ArgInfo",
    "DBusError",
    "DispatchLaunchError",
    "Dispatcher",
    "FilterEntry",
    "FilterTable",
    "InterfaceInfo",
    "InterfaceSkeletonEx",
    "InvocationError",
    "MethodInfo",
    "MethodInvocation",
    "ObjectServer",
    "PropertyInfo",
    "RemoteError",
    "SENTINEL",
    "SignalInfo",
    "SkeletonVTable",
    "TransportError",
    "dispatch_method_call",
    "emit_properties_changed",
    "get_managed_objects",
    "get_property",
    "method_filter",
    "new_interface_skeleton",
    "set_property",
]
