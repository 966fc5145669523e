"""Dispatcher with a plugin pipeline around handlers.

``Dispatcher`` extends :class:`BaseDispatcher` with a global plugin registry,
per-dispatcher plugin instances and middleware wrapping. Matching and launch
semantics are inherited unchanged; plugins only see (and may wrap) the
handler once an entry has matched.

Global registry
---------------
``Dispatcher.register_plugin(plugin_class, name=None)`` requires a
``BasePlugin`` subclass with a non-empty ``plugin_code``. Registering a
different class under an existing code raises ``ValueError`` unless ``name``
is given explicitly (intentional replacement). ``available_plugins`` returns a
copy of the registry.

Attaching plugins
-----------------
``plug(plugin_name, **config)`` instantiates a registered plugin, appends it
to ``_plugins`` and rebuilds the cached handlers; it returns ``self`` so calls
chain. Attached plugins are reachable as attributes (``dispatcher.logging``).

Wrapping pipeline
-----------------
Plugins wrap in reverse attachment order, so the first attached plugin is the
outermost layer. Every layer is guarded: when the plugin is disabled for the
entry (``enabled`` false in its configuration) the layer calls straight
through. Detached entries run the whole wrapped chain on the worker.

Plugin state lives in ``_plugin_info``: one bucket per plugin, keyed by
``"--base--"`` or the entry's logical name.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Type

from dbusroute.plugins._base_plugin import BasePlugin

from .base_dispatcher import BaseDispatcher
from .filters import FilterEntry

__all__ = ["Dispatcher"]

_PLUGIN_REGISTRY: Dict[str, Type[BasePlugin]] = {}


class Dispatcher(BaseDispatcher):
    """Dispatcher with plugin registry/pipeline support."""

    __slots__ = BaseDispatcher.__slots__ + ("_plugins", "_plugins_by_name", "_plugin_info")

    def __init__(self, *args: Any, **kwargs: Any):
        self._plugins: List[BasePlugin] = []
        self._plugins_by_name: Dict[str, BasePlugin] = {}
        self._plugin_info: Dict[str, Dict[str, Any]] = {}
        super().__init__(*args, **kwargs)

    # ------------------------------------------------------------------
    # Plugin registration
    # ------------------------------------------------------------------
    @classmethod
    def register_plugin(cls, plugin_class: Type[BasePlugin], name: Optional[str] = None) -> None:
        """Register a plugin class globally under its ``plugin_code`` (or ``name``)."""
        if not isinstance(plugin_class, type) or not issubclass(plugin_class, BasePlugin):
            raise TypeError("plugin_class must be a BasePlugin subclass")
        if not getattr(plugin_class, "plugin_code", None):
            raise ValueError(f"Plugin {plugin_class.__name__} is missing plugin_code")
        code = name or plugin_class.plugin_code
        if name is None:
            existing = _PLUGIN_REGISTRY.get(code)
            if existing is not None and existing is not plugin_class:
                raise ValueError(f"Plugin '{code}' already registered")
        _PLUGIN_REGISTRY[code] = plugin_class

    @classmethod
    def available_plugins(cls) -> Dict[str, Type[BasePlugin]]:
        return dict(_PLUGIN_REGISTRY)

    def plug(self, plugin: str, **config: Any) -> "Dispatcher":
        """Attach a globally registered plugin by name."""
        if not isinstance(plugin, str):
            raise TypeError(
                f"Plugin must be referenced by name string, got {type(plugin).__name__}"
            )
        plugin_class = _PLUGIN_REGISTRY.get(plugin)
        if plugin_class is None:
            available = ", ".join(sorted(_PLUGIN_REGISTRY)) or "none"
            raise ValueError(f"Unknown plugin '{plugin}'. Available plugins: {available}")
        if plugin in self._plugins_by_name:
            raise ValueError(f"Plugin '{plugin}' already attached")
        instance = plugin_class(self, **config)
        self._plugins.append(instance)
        self._plugins_by_name[instance.name] = instance
        self._rebuild_handlers()
        return self

    def iter_plugins(self) -> List[BasePlugin]:
        return list(self._plugins)

    def __getattr__(self, name: str) -> Any:
        # only reached for names that are not slots/attributes
        try:
            plugins = object.__getattribute__(self, "_plugins_by_name")
        except AttributeError:
            raise AttributeError(name) from None
        plugin = plugins.get(name)
        if plugin is None:
            raise AttributeError(f"No plugin named '{name}' attached to dispatcher")
        return plugin

    def is_plugin_enabled(self, entry_name: str, plugin_name: str) -> bool:
        plugin = self._plugins_by_name.get(plugin_name)
        if plugin is None:
            raise AttributeError(f"No plugin named '{plugin_name}' attached to dispatcher")
        return bool(plugin.configuration(entry_name).get("enabled", True))

    # ------------------------------------------------------------------
    # Wrapping pipeline
    # ------------------------------------------------------------------
    def _wrap_handler(self, entry: FilterEntry, call_next: Callable) -> Callable:  # type: ignore[override]
        plugins = getattr(self, "_plugins", None) or ()
        wrapped = call_next
        for plugin in reversed(plugins):
            plugin_call = plugin.wrap_handler(self, entry, wrapped)
            wrapped = self._create_wrapper(plugin, entry, plugin_call, wrapped)
        return wrapped

    def _create_wrapper(
        self,
        plugin: BasePlugin,
        entry: FilterEntry,
        plugin_call: Callable,
        next_handler: Callable,
    ) -> Callable:
        entry_name = entry.logical_name

        @wraps(next_handler)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not self.is_plugin_enabled(entry_name, plugin.name):
                return next_handler(*args, **kwargs)
            return plugin_call(*args, **kwargs)

        return wrapper
