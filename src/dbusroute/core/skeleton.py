"""Interface schema, skeleton contract and the interface extension adapter.

Schema
------
``InterfaceInfo`` describes one D-Bus interface: methods (with in/out
arguments), properties (signature + access) and signals. Models are frozen
pydantic models; interface and member names are validated on construction.
The schema is owned by whoever authored it; skeletons only reference it.

Skeleton contract
-----------------
``InterfaceSkeleton`` is what the object server talks to. Subclasses answer:

- ``get_info()`` -> ``InterfaceInfo``
- ``method_call(sender, path, interface, method, args, invocation)``
- ``get_property(sender, path, interface, name)`` -> ``(signature, value)``
- ``set_property(sender, path, interface, name, value)`` -> ``bool``
- ``get_properties()`` -> ``{name: (signature, value)}``

Errors are raised as :class:`DBusError` subclasses.

Extension adapter
-----------------
``InterfaceSkeletonEx`` implements the contract from a ``SkeletonVTable``, a
plain table of four capabilities:

- ``dispatchers`` -- filter table (or ready ``Dispatcher``) for method calls
- ``get_property(name, context)``
- ``set_property(name, value, context)``
- ``get_properties(context)``

``method_call`` forwards into the dispatcher with the stored context. When no
entry matches, the adapter itself answers ``UnknownMethod``; this is the only
place unmatched calls are finalized. If a detached handler cannot be
launched, the adapter answers ``NoMemory``. Property entry points forward to
the table unchanged; a missing getter/setter answers ``UnknownProperty`` /
``PropertyReadOnly``; a missing enumerator yields an empty bag.

``new_interface_skeleton(skeleton_type, info, vtable, context=None,
context_free=None)`` instantiates ``skeleton_type`` (an ``InterfaceSkeletonEx``
subclass), stores schema/table/context and ties ``context_free(context)`` to
the skeleton's own destruction through ``weakref.finalize``: it runs at most
once, after the skeleton is released, and never from the adapter; skeletons
still alive at interpreter exit never run it. Returns ``None`` if the
skeleton object cannot be allocated.
"""

from __future__ import annotations

import logging
import re
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, field_validator
from smartseeds.typeutils import safe_is_instance

from .dispatcher import Dispatcher
from .errors import (
    DispatchLaunchError,
    PropertyReadOnlyError,
    UnknownMethodError,
    UnknownPropertyError,
)
from .filters import FilterEntry, FilterTable
from .invocation import MethodInvocation

__all__ = [
    "ArgInfo",
    "InterfaceInfo",
    "InterfaceSkeleton",
    "InterfaceSkeletonEx",
    "MethodInfo",
    "PropertyInfo",
    "SignalInfo",
    "SkeletonVTable",
    "new_interface_skeleton",
]

logger = logging.getLogger(__name__)

Variant = Tuple[str, Any]
PropertyBag = Dict[str, Variant]

_INTERFACE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)+$")
_MEMBER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ----------------------------------------------------------------------
# Schema
# ----------------------------------------------------------------------
class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ArgInfo(_Frozen):
    signature: str
    name: Optional[str] = None


class _Member(_Frozen):
    name: str

    @field_validator("name")
    @classmethod
    def check_member_name(cls, value: str) -> str:
        if len(value) > 255 or not _MEMBER_RE.match(value):
            raise ValueError(f"invalid D-Bus member name: {value!r}")
        return value


class MethodInfo(_Member):
    in_args: Tuple[ArgInfo, ...] = ()
    out_args: Tuple[ArgInfo, ...] = ()

    @property
    def in_signature(self) -> str:
        return "".join(arg.signature for arg in self.in_args)

    @property
    def out_signature(self) -> str:
        return "".join(arg.signature for arg in self.out_args)


class PropertyInfo(_Member):
    signature: str
    access: Literal["read", "write", "readwrite"] = "read"

    @property
    def readable(self) -> bool:
        return self.access in ("read", "readwrite")

    @property
    def writable(self) -> bool:
        return self.access in ("write", "readwrite")


class SignalInfo(_Member):
    args: Tuple[ArgInfo, ...] = ()


class InterfaceInfo(_Frozen):
    """Static description of one D-Bus interface."""

    name: str
    methods: Tuple[MethodInfo, ...] = ()
    properties: Tuple[PropertyInfo, ...] = ()
    signals: Tuple[SignalInfo, ...] = ()

    @field_validator("name")
    @classmethod
    def check_interface_name(cls, value: str) -> str:
        if len(value) > 255 or not _INTERFACE_RE.match(value):
            raise ValueError(f"invalid D-Bus interface name: {value!r}")
        return value

    def lookup_method(self, name: str) -> Optional[MethodInfo]:
        return next((method for method in self.methods if method.name == name), None)

    def lookup_property(self, name: str) -> Optional[PropertyInfo]:
        return next((prop for prop in self.properties if prop.name == name), None)

    def to_xml(self, indent: str = "  ") -> str:
        """Render the ``<interface>`` introspection fragment."""
        lines = [f'{indent}<interface name="{self.name}">']
        for method in self.methods:
            if not method.in_args and not method.out_args:
                lines.append(f'{indent * 2}<method name="{method.name}"/>')
                continue
            lines.append(f'{indent * 2}<method name="{method.name}">')
            for direction, args in (("in", method.in_args), ("out", method.out_args)):
                for arg in args:
                    lines.append(f"{indent * 3}{_arg_xml(arg, direction)}")
            lines.append(f"{indent * 2}</method>")
        for signal in self.signals:
            if not signal.args:
                lines.append(f'{indent * 2}<signal name="{signal.name}"/>')
                continue
            lines.append(f'{indent * 2}<signal name="{signal.name}">')
            for arg in signal.args:
                lines.append(f"{indent * 3}{_arg_xml(arg)}")
            lines.append(f"{indent * 2}</signal>")
        for prop in self.properties:
            lines.append(
                f'{indent * 2}<property name="{prop.name}" type="{prop.signature}" '
                f'access="{prop.access}"/>'
            )
        lines.append(f"{indent}</interface>")
        return "\n".join(lines)


def _arg_xml(arg: ArgInfo, direction: Optional[str] = None) -> str:
    attrs = f'type="{arg.signature}"'
    if arg.name:
        attrs = f'name="{arg.name}" {attrs}'
    if direction:
        attrs += f' direction="{direction}"'
    return f"<arg {attrs}/>"


# ----------------------------------------------------------------------
# Skeleton contract
# ----------------------------------------------------------------------
class InterfaceSkeleton:
    """Bus-side object answering calls for one interface."""

    def get_info(self) -> InterfaceInfo:  # pragma: no cover - abstract
        raise NotImplementedError

    def method_call(
        self,
        sender: str,
        path: str,
        interface: str,
        method: str,
        args: Tuple[Any, ...],
        invocation: MethodInvocation,
    ) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    def get_property(self, sender: str, path: str, interface: str, name: str) -> Variant:
        raise UnknownPropertyError(f"No such property '{name}'")

    def set_property(
        self, sender: str, path: str, interface: str, name: str, value: Variant
    ) -> bool:
        raise PropertyReadOnlyError(f"Property '{name}' is not writable")

    def get_properties(self) -> PropertyBag:
        return {}


# ----------------------------------------------------------------------
# Extension adapter
# ----------------------------------------------------------------------
DispatchersLike = Union[Dispatcher, FilterTable, Tuple[FilterEntry, ...], list]


@dataclass(frozen=True)
class SkeletonVTable:
    """Capability table backing an ``InterfaceSkeletonEx``."""

    dispatchers: DispatchersLike = ()
    get_property: Optional[Callable[[str, Any], Variant]] = None
    set_property: Optional[Callable[[str, Variant, Any], bool]] = None
    get_properties: Optional[Callable[[Any], PropertyBag]] = None


class InterfaceSkeletonEx(InterfaceSkeleton):
    """Skeleton whose behaviour comes from a ``SkeletonVTable``."""

    interface_info: Optional[InterfaceInfo] = None

    def __init__(self) -> None:
        self.vtable = SkeletonVTable()
        self.context: Any = None
        self._dispatcher = Dispatcher(())

    def _setup(self, info: InterfaceInfo, vtable: SkeletonVTable, context: Any) -> None:
        self.interface_info = info
        self.vtable = vtable
        self.context = context
        dispatchers = vtable.dispatchers
        if safe_is_instance(dispatchers, "dbusroute.core.base_dispatcher.BaseDispatcher"):
            self._dispatcher = dispatchers
        else:
            self._dispatcher = Dispatcher(dispatchers, name=info.name)

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def get_info(self) -> InterfaceInfo:
        if self.interface_info is None:
            raise RuntimeError(f"{type(self).__name__} was not built by new_interface_skeleton()")
        return self.interface_info

    def method_call(
        self,
        sender: str,
        path: str,
        interface: str,
        method: str,
        args: Tuple[Any, ...],
        invocation: MethodInvocation,
    ) -> None:
        try:
            matched = self._dispatcher.dispatch(
                sender, path, interface, method, invocation, self.context
            )
        except DispatchLaunchError as exc:
            invocation.return_dbus_error(exc)
            return
        if not matched:
            logger.error("Couldn't dispatch D-Bus method call: %s.%s()", interface, method)
            invocation.return_dbus_error(
                UnknownMethodError(f"Unknown method: {interface}.{method}()")
            )

    def get_property(self, sender: str, path: str, interface: str, name: str) -> Variant:
        if self.vtable.get_property is None:
            return super().get_property(sender, path, interface, name)
        return self.vtable.get_property(name, self.context)

    def set_property(
        self, sender: str, path: str, interface: str, name: str, value: Variant
    ) -> bool:
        if self.vtable.set_property is None:
            return super().set_property(sender, path, interface, name, value)
        return self.vtable.set_property(name, value, self.context)

    def get_properties(self) -> PropertyBag:
        if self.vtable.get_properties is None:
            return {}
        return self.vtable.get_properties(self.context)


def new_interface_skeleton(
    skeleton_type: Type[InterfaceSkeletonEx],
    info: InterfaceInfo,
    vtable: SkeletonVTable,
    context: Any = None,
    context_free: Optional[Callable[[Any], None]] = None,
) -> Optional[InterfaceSkeletonEx]:
    """Create an interface skeleton of ``skeleton_type`` backed by ``vtable``.

    Args:
        skeleton_type: ``InterfaceSkeletonEx`` subclass to instantiate.
        info: The definition of the D-Bus interface.
        vtable: Capability table with the skeleton callbacks.
        context: Value passed to every callback.
        context_free: Called once with ``context`` when the skeleton object
            is destroyed.

    Returns:
        The new skeleton, or ``None`` if it could not be allocated.
    """
    if not isinstance(skeleton_type, type) or not issubclass(skeleton_type, InterfaceSkeletonEx):
        raise TypeError("skeleton_type must be an InterfaceSkeletonEx subclass")
    try:
        skeleton = skeleton_type()
    except MemoryError:
        logger.error("Couldn't allocate %s skeleton for %s", skeleton_type.__name__, info.name)
        return None
    skeleton._setup(info, vtable, context)
    if context_free is not None:
        finalizer = weakref.finalize(skeleton, context_free, context)
        # only on release; never for skeletons still alive at interpreter exit
        finalizer.atexit = False
    return skeleton

