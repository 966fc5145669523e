"""Logging plugin.

Wraps each handler run and emits two records on the ``dbusroute`` logger (or
the logger passed at construction):

- ``before`` (default True): ``"<name> start"``
- ``after`` (default True): ``"<name> end (<ms> ms)"``, elapsed time formatted
  with two decimals

``level`` picks the record level (default ``"DEBUG"``); ``enabled`` gates the
plugin. All options accept per-handler overrides via
``configure(_target="<entry name>", ...)`` or flag strings such as
``"before:off,after"``. A handler exception propagates and skips the end
record.

Registered globally as ``"logging"`` at import time.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Literal, Optional

from dbusroute.core.dispatcher import Dispatcher
from dbusroute.core.filters import FilterEntry
from dbusroute.plugins._base_plugin import BasePlugin

__all__ = ["LoggingPlugin"]

Level = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class LoggingPlugin(BasePlugin):
    """Log handler start/end with timing."""

    plugin_code = "logging"
    plugin_description = "Logs handler runs with timing"

    __slots__ = ("_logger",)

    def __init__(self, dispatcher: Any, *, logger: Optional[logging.Logger] = None, **cfg: Any):
        self._logger = logger or logging.getLogger("dbusroute")
        super().__init__(dispatcher, **cfg)

    def configure(
        self,
        enabled: bool = True,
        before: bool = True,
        after: bool = True,
        level: Level = "DEBUG",
    ):
        """Configure logging plugin options (stored by the wrapper)."""

    def wrap_handler(self, dispatcher: Any, entry: FilterEntry, call_next: Callable) -> Callable:
        entry_name = entry.logical_name

        def logged(*args: Any, **kwargs: Any) -> Any:
            cfg = self._effective_config(entry_name)
            if not cfg["enabled"]:
                return call_next(*args, **kwargs)
            level = logging.getLevelName(cfg["level"])
            if cfg["before"]:
                self._logger.log(level, "%s start", entry_name)
            t0 = time.perf_counter()
            result = call_next(*args, **kwargs)
            elapsed = (time.perf_counter() - t0) * 1000
            if cfg["after"]:
                self._logger.log(level, "%s end (%.2f ms)", entry_name, elapsed)
            return result

        return logged

    def _effective_config(self, entry_name: str) -> dict:
        defaults = {"enabled": True, "before": True, "after": True, "level": "DEBUG"}
        cfg = defaults | self.configuration(entry_name)
        return {
            "enabled": bool(cfg["enabled"]),
            "before": bool(cfg["before"]),
            "after": bool(cfg["after"]),
            "level": str(cfg["level"]).upper(),
        }


Dispatcher.register_plugin(LoggingPlugin)
