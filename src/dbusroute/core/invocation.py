"""Pending method call handle and call descriptor.

``MethodInvocation`` is the one-shot token a handler receives. It wraps the
incoming ``jeepney`` message plus a callable that puts a reply on the wire.
Exactly one of ``return_value``/``return_error``/``return_dbus_error`` may be
called; any further completion raises :class:`InvocationError`. Completion is
guarded by a lock because detached handlers complete calls from worker
threads.

Calls flagged ``NO_REPLY_EXPECTED`` are completed normally but nothing is
sent back.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from jeepney.low_level import HeaderFields, Message, MessageFlag
from jeepney.wrappers import new_error, new_method_return

from .errors import DBusError, InvocationError

__all__ = ["MethodCall", "MethodInvocation"]


class MethodInvocation:
    """Single-use handle completing one incoming method call."""

    __slots__ = ("message", "_send", "_lock", "_completed")

    def __init__(self, message: Message, send: Callable[[Message], Any]):
        self.message = message
        self._send = send
        self._lock = threading.Lock()
        self._completed = False

    def __repr__(self) -> str:
        state = "completed" if self._completed else "pending"
        return f"<MethodInvocation {self.interface}.{self.method}() on {self.path} ({state})>"

    # ------------------------------------------------------------------
    # Call identity
    # ------------------------------------------------------------------
    @property
    def sender(self) -> str:
        return self.message.header.fields.get(HeaderFields.sender, "")

    @property
    def path(self) -> str:
        return self.message.header.fields.get(HeaderFields.path, "")

    @property
    def interface(self) -> str:
        return self.message.header.fields.get(HeaderFields.interface, "")

    @property
    def method(self) -> str:
        return self.message.header.fields.get(HeaderFields.member, "")

    @property
    def signature(self) -> str:
        return self.message.header.fields.get(HeaderFields.signature, "")

    @property
    def parameters(self) -> Tuple[Any, ...]:
        return tuple(self.message.body)

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def expects_reply(self) -> bool:
        return not (self.message.header.flags & MessageFlag.no_reply_expected)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------
    def return_value(self, signature: Optional[str] = None, body: Tuple[Any, ...] = ()) -> None:
        """Complete the call successfully with ``body`` typed by ``signature``."""
        self._complete(new_method_return(self.message, signature, tuple(body)))

    def return_error(self, name: str, message: str = "") -> None:
        """Complete the call with a D-Bus error ``name``."""
        if message:
            reply = new_error(self.message, name, "s", (message,))
        else:
            reply = new_error(self.message, name)
        self._complete(reply)

    def return_dbus_error(self, error: DBusError) -> None:
        self._complete(error.to_reply(self.message))

    def _complete(self, reply: Message) -> None:
        with self._lock:
            if self._completed:
                raise InvocationError(
                    f"{self.interface}.{self.method}() on {self.path} already completed"
                )
            self._completed = True
        if self.expects_reply:
            self._send(reply)


@dataclass(frozen=True)
class MethodCall:
    """Descriptor of one incoming call, built per call and never retained."""

    sender: str
    path: str
    interface: str
    method: str
    invocation: MethodInvocation
    context: Any = None

    @classmethod
    def from_invocation(cls, invocation: MethodInvocation, context: Any = None) -> "MethodCall":
        return cls(
            sender=invocation.sender,
            path=invocation.path,
            interface=invocation.interface,
            method=invocation.method,
            invocation=invocation,
            context=context,
        )
