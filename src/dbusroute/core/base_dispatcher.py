"""Plugin-free method call dispatcher.

Constructor
-----------
``BaseDispatcher(table, name=None, *, executor=None, thread_prefix="dbus-dispatch")``

- ``table`` is a :class:`FilterTable` or any iterable of ``FilterEntry``
  (converted, sentinel-terminated). The table is read-only from here on.
- ``executor`` and ``thread_prefix`` are launch defaults; ``dispatch`` may
  override them per call (merged with ``SmartOptions``).
- One handler callable per entry is cached in ``_handlers`` after passing
  through ``_wrap_handler`` (passthrough here; plugins hook in there).

Dispatch
--------
``dispatch(sender, path, interface, method, invocation, context=None, **options)``

1. ``path``, ``interface`` and ``method`` must be non-empty strings and
   ``sender`` a string; otherwise ``ValueError``.
2. The table is scanned in order; the first entry whose matchers all accept
   the call wins. Later entries are never looked at, even if they match.
3. No match: return ``False``. No handler runs and the invocation is left
   untouched; completing it is the caller's job.
4. Inline entry: the handler runs on the calling thread before ``dispatch``
   returns. Its exceptions propagate.
5. Detached entry: a :class:`DetachedCall` job is handed to the executor
   (``submit``) or, without one, to a fresh daemon thread. ``dispatch``
   returns ``True`` as soon as the job is accepted; it never waits for or
   observes the handler. If the job cannot be launched,
   ``DispatchLaunchError`` is raised and the invocation stays pending.

Detached jobs run to completion; there is no cancellation. A detached handler
that raises is logged; an invocation it left pending is answered with the
raised ``DBusError`` or with ``org.freedesktop.DBus.Error.Failed``.

``dispatch_method_call(table, ...)`` is the functional form for callers that
keep a bare table.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from smartseeds import SmartOptions

from .constants import ERROR_FAILED
from .errors import DBusError, DispatchLaunchError
from .filters import FilterEntry, FilterTable
from .invocation import MethodCall, MethodInvocation

__all__ = ["BaseDispatcher", "DetachedCall", "dispatch_method_call"]

logger = logging.getLogger(__name__)

TableLike = Union[FilterTable, Iterable[FilterEntry]]


class DetachedCall:
    """One handler execution launched off the dispatching thread."""

    __slots__ = ("name", "handler", "invocation", "context")

    def __init__(self, name: str, handler: Callable, invocation: MethodInvocation, context: Any):
        self.name = name
        self.handler = handler
        self.invocation = invocation
        self.context = context

    def run(self) -> None:
        invocation = self.invocation
        try:
            self.handler(invocation, self.context)
        except DBusError as exc:
            if invocation.completed:
                logger.error("Detached D-Bus handler %s failed: %s", self.name, exc)
            else:
                self._fail(exc)
        except Exception as exc:
            logger.exception("Detached D-Bus handler %s failed", self.name)
            if not invocation.completed:
                self._fail(DBusError(str(exc), name=ERROR_FAILED))
        finally:
            self.handler = self.invocation = self.context = None

    def _fail(self, error: DBusError) -> None:
        try:
            self.invocation.return_dbus_error(error)
        except Exception:
            logger.exception("Couldn't send error reply for detached D-Bus handler %s", self.name)


class BaseDispatcher:
    """Routes incoming method calls through an ordered filter table."""

    __slots__ = ("table", "name", "_handlers", "_launch_defaults")

    def __init__(
        self,
        table: TableLike,
        name: Optional[str] = None,
        *,
        executor: Optional[Executor] = None,
        thread_prefix: str = "dbus-dispatch",
    ) -> None:
        self.table = table if isinstance(table, FilterTable) else FilterTable(table)
        self.name = name
        self._handlers: Tuple[Callable, ...] = ()
        defaults: Dict[str, Any] = {"thread_prefix": thread_prefix}
        if executor is not None:
            defaults["executor"] = executor
        self._launch_defaults = defaults
        self._rebuild_handlers()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name or ''} {len(self.table)} entries>"

    # ------------------------------------------------------------------
    # Handler table
    # ------------------------------------------------------------------
    def _rebuild_handlers(self) -> None:
        self._handlers = tuple(self._wrap_handler(entry, entry.handler) for entry in self.table)

    def _wrap_handler(
        self, entry: FilterEntry, call_next: Callable
    ) -> Callable:  # pragma: no cover - overridden by plugin dispatchers
        return call_next

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def dispatch(
        self,
        sender: str,
        path: str,
        interface: str,
        method: str,
        invocation: MethodInvocation,
        context: Any = None,
        **options: Any,
    ) -> bool:
        """Run the handler of the first matching entry; return whether one matched."""
        _check_identity(sender, path, interface, method)
        found = self.table.match(sender, path, interface, method)
        if found is None:
            return False
        index, entry = found
        logger.debug("Called: %s.%s() on %s", interface, method, path)
        handler = self._handlers[index]
        if not entry.detached:
            handler(invocation, context)
            return True
        self._launch(entry, handler, invocation, context, options)
        return True

    def dispatch_call(self, call: MethodCall, **options: Any) -> bool:
        return self.dispatch(
            call.sender,
            call.path,
            call.interface,
            call.method,
            call.invocation,
            call.context,
            **options,
        )

    __call__ = dispatch

    def _launch(
        self,
        entry: FilterEntry,
        handler: Callable,
        invocation: MethodInvocation,
        context: Any,
        options: Dict[str, Any],
    ) -> None:
        opts = SmartOptions(options, defaults=self._launch_defaults)
        executor = getattr(opts, "executor", None)
        prefix = getattr(opts, "thread_prefix", None) or "dbus-dispatch"
        try:
            job = DetachedCall(entry.logical_name, handler, invocation, context)
            if executor is not None:
                executor.submit(job.run)
            else:
                worker = threading.Thread(
                    target=job.run, name=f"{prefix}:{entry.logical_name}", daemon=True
                )
                worker.start()
        except (RuntimeError, MemoryError) as exc:
            logger.error("Couldn't create D-Bus call dispatcher: %s", exc)
            raise DispatchLaunchError(f"Couldn't launch {entry.logical_name}: {exc}") from exc


def dispatch_method_call(
    table: TableLike,
    sender: str,
    path: str,
    interface: str,
    method: str,
    invocation: MethodInvocation,
    context: Any = None,
) -> bool:
    """Dispatch one call against a bare filter table."""
    return BaseDispatcher(table).dispatch(sender, path, interface, method, invocation, context)


def _check_identity(sender: str, path: str, interface: str, method: str) -> None:
    if not isinstance(sender, str):
        raise ValueError(f"sender must be a string, got {sender!r}")
    for label, value in (("path", path), ("interface", interface), ("method", method)):
        if not isinstance(value, str) or not value:
            raise ValueError(f"{label} must be a non-empty string, got {value!r}")
