"""Core runtime aggregator.

Exposes the building blocks from a single module; no logic beyond imports:

* ``filters`` -> ``FilterEntry``, ``FilterTable``, ``SENTINEL``, ``method_filter``
* ``invocation`` -> ``MethodInvocation``, ``MethodCall``
* ``base_dispatcher`` -> ``BaseDispatcher`` (plugin-free), ``dispatch_method_call``
* ``dispatcher`` -> ``Dispatcher`` (plugin-enabled)
* ``skeleton`` -> schema models, ``SkeletonVTable``, ``InterfaceSkeletonEx``,
  ``new_interface_skeleton``

``filters`` must be imported before the dispatchers: the plugin contract
imports it while this package is still initialising.
"""

from .filters import SENTINEL, FilterEntry, FilterTable, method_filter
from .invocation import MethodCall, MethodInvocation
from .base_dispatcher import BaseDispatcher, dispatch_method_call
from .dispatcher import Dispatcher
from .skeleton import (
    ArgInfo,
    InterfaceInfo,
    InterfaceSkeleton,
    InterfaceSkeletonEx,
    MethodInfo,
    PropertyInfo,
    SignalInfo,
    SkeletonVTable,
    new_interface_skeleton,
)

__all__ = [
    "ArgInfo",
    "BaseDispatcher",
    "Dispatcher",
    "FilterEntry",
    "FilterTable",
    "InterfaceInfo",
    "InterfaceSkeleton",
    "InterfaceSkeletonEx",
    "MethodCall",
    "MethodInfo",
    "MethodInvocation",
    "PropertyInfo",
    "SENTINEL",
    "SignalInfo",
    "SkeletonVTable",
    "dispatch_method_call",
    "method_filter",
    "new_interface_skeleton",
]
