"""Filter entries, filter tables and the ``method_filter`` marker.

FilterEntry
-----------
One routing rule: four optional matchers (``sender``, ``path``,
``interface``, ``method``), a ``handler``, a ``detached`` flag and an optional
logical ``name``. ``None`` is the wildcard: it matches any incoming value. A
non-wildcard matcher must equal the incoming value exactly (no patterns, no
case folding). Entries are frozen once built.

An entry whose ``handler`` is ``None`` is a sentinel. ``SENTINEL`` is provided
for tables authored in the terminated style.

Handlers are called as ``handler(invocation, context)`` and complete the call
through the invocation.

FilterTable
-----------
Ordered, immutable sequence of entries. The constructor accepts any iterable
and keeps entries up to (not including) the first sentinel; anything authored
after a sentinel is dropped. Table order is the tie-break rule: ``match``
returns the first entry whose matchers all accept the call.

Marker discovery
----------------
``method_filter(**matchers)`` marks a method as a filter entry without
touching any table. ``FilterTable.from_object(owner)`` walks the reversed MRO
of ``type(owner)`` (base classes first), scanning each class ``__dict__`` in
definition order. Each marked function is bound to ``owner`` and turned into
an entry per marker. A subclass override replaces the base function in place;
only the override's markers count.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

__all__ = ["FilterEntry", "FilterTable", "SENTINEL", "method_filter"]

FILTER_ATTR_NAME = "__dbusroute_filters__"

Handler = Callable[[Any, Any], Any]


@dataclass(frozen=True)
class FilterEntry:
    """Routing rule matching an incoming call to a handler."""

    handler: Optional[Handler]
    sender: Optional[str] = None
    path: Optional[str] = None
    interface: Optional[str] = None
    method: Optional[str] = None
    detached: bool = False
    name: Optional[str] = None

    @property
    def is_sentinel(self) -> bool:
        return self.handler is None

    @property
    def logical_name(self) -> str:
        if self.name:
            return self.name
        return getattr(self.handler, "__name__", None) or "handler"

    def matches(self, sender: str, path: str, interface: str, method: str) -> bool:
        if self.sender is not None and self.sender != sender:
            return False
        if self.path is not None and self.path != path:
            return False
        if self.interface is not None and self.interface != interface:
            return False
        if self.method is not None and self.method != method:
            return False
        return True


SENTINEL = FilterEntry(handler=None)


class FilterTable:
    """Immutable, ordered collection of filter entries."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[FilterEntry] = ()):
        collected: List[FilterEntry] = []
        for entry in entries:
            if not isinstance(entry, FilterEntry):
                raise TypeError(f"Filter table accepts FilterEntry items, got {entry!r}")
            if entry.is_sentinel:
                break
            collected.append(entry)
        self._entries: Tuple[FilterEntry, ...] = tuple(collected)

    @classmethod
    def from_object(cls, owner: Any) -> "FilterTable":
        """Build a table from methods of ``owner`` marked with ``method_filter``."""
        entries = []
        for func, marker in _iter_marked_functions(type(owner)):
            bound = func.__get__(owner, type(owner))
            entries.append(FilterEntry(handler=bound, **marker))
        return cls(entries)

    def __iter__(self) -> Iterator[FilterEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> FilterEntry:
        return self._entries[index]

    def __repr__(self) -> str:
        return f"<FilterTable {len(self._entries)} entries>"

    def match(
        self, sender: str, path: str, interface: str, method: str
    ) -> Optional[Tuple[int, FilterEntry]]:
        """Return ``(index, entry)`` of the first matching entry, or ``None``."""
        for index, entry in enumerate(self._entries):
            if entry.matches(sender, path, interface, method):
                return index, entry
        return None


def method_filter(
    *,
    sender: Optional[str] = None,
    path: Optional[str] = None,
    interface: Optional[str] = None,
    method: Optional[str] = None,
    detached: bool = False,
    name: Optional[str] = None,
) -> Callable:
    """Mark a method as a filter entry for ``FilterTable.from_object``.

    Stacking the decorator adds one entry per marker, in the order the markers
    are listed from top to bottom.
    """

    def decorator(func: Callable) -> Callable:
        markers = list(getattr(func, FILTER_ATTR_NAME, []))
        payload: Dict[str, Any] = {
            "sender": sender,
            "path": path,
            "interface": interface,
            "method": method,
            "detached": detached,
            "name": name or func.__name__,
        }
        # decorators apply bottom-up; keep the authored top-down order
        markers.insert(0, payload)
        setattr(func, FILTER_ATTR_NAME, markers)
        return func

    return decorator


def _iter_marked_functions(cls: type) -> Iterator[Tuple[Callable, Dict[str, Any]]]:
    # an override keeps the slot of the name it replaces
    resolved: Dict[str, Any] = {}
    for base in reversed(cls.__mro__):
        resolved.update(vars(base))
    for value in resolved.values():
        if not inspect.isfunction(value):
            continue
        for marker in getattr(value, FILTER_ATTR_NAME, None) or ():
            yield value, dict(marker)
