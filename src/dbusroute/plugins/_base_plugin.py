"""Plugin contract for dispatcher handler middleware.

BasePlugin
----------
Every plugin subclasses :class:`BasePlugin` and sets two class attributes:

- ``plugin_code`` -- unique identifier used for registration (``"logging"``)
- ``plugin_description`` -- human-readable description

Constructor: ``BasePlugin(dispatcher, **config)``. The initial ``config`` is
passed to ``configure()``.

``configure(**config)``
    Subclasses declare accepted options through the method signature.
    ``__init_subclass__`` wraps the method so that:

    - ``flags`` strings (``"enabled,before:off"``) become booleans
    - ``_target`` selects where the values land: ``"--base--"`` (default) for
      dispatcher-wide config, a handler name for a per-handler override, or a
      comma-separated list of handler names
    - the options are validated by a pydantic model built from the declared
      signature (unknown options rejected) and the coerced values are stored,
      so ``enabled="off"`` lands as ``False``

``configuration(name=None)``
    Merged view: dispatcher-wide config overlaid with the override stored for
    handler ``name``.

``wrap_handler(dispatcher, entry, call_next)``
    Returns the callable that runs in place of ``call_next``. Default is the
    identity. Wrappers receive the handler arguments ``(invocation, context)``.

Storage
-------
Configuration lives on the owning dispatcher (``_plugin_info``), one bucket
per plugin, keyed by ``"--base--"`` or the handler's logical name.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, create_model

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from dbusroute.core.filters import FilterEntry

__all__ = ["BasePlugin"]

BASE_TARGET = "--base--"
_OFF_STATES = frozenset({"off", "false", "no", "0"})


def _options_model(configure: Callable) -> Type[BaseModel]:
    """Pydantic model mirroring the keyword options declared by ``configure``."""
    fields: Dict[str, Any] = {}
    params = list(inspect.signature(configure, eval_str=True).parameters.values())[1:]
    for param in params:
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = Any if param.annotation is param.empty else param.annotation
        default = ... if param.default is param.empty else param.default
        fields[param.name] = (annotation, default)
    return create_model(
        f"{configure.__qualname__.replace('.', '_')}_options",
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def _wrap_configure(original_configure: Callable) -> Callable:
    model: Optional[Type[BaseModel]] = None

    def wrapper(
        self: "BasePlugin", *, _target: str = BASE_TARGET, flags: Optional[str] = None, **kwargs: Any
    ) -> None:
        nonlocal model
        if flags:
            kwargs.update(self._parse_flags(flags))
        if model is None:
            model = _options_model(original_configure)
        # coerced values are what gets stored ("off" -> False)
        options = model.model_validate(kwargs).model_dump(exclude_unset=True)
        original_configure(self, **options)
        targets = [chunk.strip() for chunk in _target.split(",") if chunk.strip()]
        for target in targets or [BASE_TARGET]:
            self._write_config(target, options)

    wrapper.__doc__ = original_configure.__doc__
    return wrapper


class BasePlugin:
    """Hook interface + configuration helpers for dispatcher plugins."""

    __slots__ = ("name", "_dispatcher")

    plugin_code: str = ""
    plugin_description: str = ""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "configure" in cls.__dict__:
            cls.configure = _wrap_configure(cls.__dict__["configure"])

    def __init__(self, dispatcher: Any, **config: Any):
        self.name = self.plugin_code
        self._dispatcher = dispatcher
        self._store().setdefault(self.name, {}).setdefault(BASE_TARGET, {"enabled": True})
        self.configure(**config)

    def configure(self, *, _target: str = BASE_TARGET, flags: Optional[str] = None) -> None:
        """Accept only ``flags``; subclasses declare their own options."""
        if flags:
            self._write_config(_target, self._parse_flags(flags))

    def configuration(self, name: Optional[str] = None) -> Dict[str, Any]:
        bucket = self._store().get(self.name)
        if not bucket:
            return {}
        merged = dict(bucket.get(BASE_TARGET, {}))
        if name:
            merged.update(bucket.get(name, {}))
        return merged

    def wrap_handler(self, dispatcher: Any, entry: "FilterEntry", call_next: Callable) -> Callable:
        return call_next

    def _write_config(self, target: str, config: Dict[str, Any]) -> None:
        if not config:
            return
        bucket = self._store().setdefault(self.name, {})
        bucket.setdefault(target, {}).update(config)

    def _parse_flags(self, flags: str) -> Dict[str, bool]:
        """``"before:off, after"`` -> ``{"before": False, "after": True}``."""
        parsed: Dict[str, bool] = {}
        for token in filter(None, (part.strip() for part in flags.split(","))):
            key, _, state = token.partition(":")
            parsed[key.strip()] = state.strip().lower() not in _OFF_STATES
        return parsed

    def _store(self) -> Dict[str, Any]:
        return getattr(self._dispatcher, "_plugin_info")
