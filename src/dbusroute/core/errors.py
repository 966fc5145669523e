"""Error taxonomy for dispatch, skeletons and blocking helpers.

Every error this package raises derives from :class:`DBusError`, which carries
a D-Bus error ``name`` plus a human readable ``message`` and can render itself
as an error reply to a pending call.

- :class:`RemoteError` -- the peer answered with an error-typed message. The
  ``name`` and ``message`` are the peer's, unchanged.
- :class:`TransportError` -- sending or receiving failed on our side. Callers
  see it exactly like a remote error (same base class, same attributes).
- :class:`DispatchLaunchError` -- a detached handler could not be started.
  The pending invocation is left for the caller to complete.
- :class:`InvocationError` -- an invocation handle was completed twice.

Handlers and property callbacks raise the remaining subclasses (or a plain
``DBusError`` with a custom name) to answer a call with an error.
"""

from __future__ import annotations

from typing import Optional

from jeepney.low_level import HeaderFields, Message
from jeepney.wrappers import new_error

from .constants import (
    ERROR_FAILED,
    ERROR_INVALID_ARGS,
    ERROR_NO_MEMORY,
    ERROR_PROPERTY_READ_ONLY,
    ERROR_UNKNOWN_METHOD,
    ERROR_UNKNOWN_PROPERTY,
)

__all__ = [
    "DBusError",
    "DispatchLaunchError",
    "InvalidArgsError",
    "InvocationError",
    "PropertyReadOnlyError",
    "RemoteError",
    "TransportError",
    "UnknownMethodError",
    "UnknownPropertyError",
]


class DBusError(Exception):
    """Error with a D-Bus error name attached."""

    default_name = ERROR_FAILED

    def __init__(self, message: str = "", *, name: Optional[str] = None):
        super().__init__(message)
        self.name = name or self.default_name
        self.message = message

    def __str__(self) -> str:
        if self.message:
            return f"[{self.name}] {self.message}"
        return f"[{self.name}]"

    def to_reply(self, respond_to: Message) -> Message:
        """Build the error reply answering ``respond_to``."""
        if self.message:
            return new_error(respond_to, self.name, "s", (self.message,))
        return new_error(respond_to, self.name)


class RemoteError(DBusError):
    """The bus peer replied with an error message."""

    @classmethod
    def from_message(cls, reply: Message) -> "RemoteError":
        fields = reply.header.fields
        name = fields.get(HeaderFields.error_name, ERROR_FAILED)
        signature = fields.get(HeaderFields.signature, "")
        text = ""
        if signature.startswith("s") and reply.body:
            text = reply.body[0]
        return cls(text, name=name)


class TransportError(DBusError):
    """Sending a message or waiting for its reply failed."""


class DispatchLaunchError(DBusError):
    default_name = ERROR_NO_MEMORY


class InvocationError(DBusError):
    """An invocation handle was used after it had been completed."""


class UnknownMethodError(DBusError):
    default_name = ERROR_UNKNOWN_METHOD


class UnknownPropertyError(DBusError):
    default_name = ERROR_UNKNOWN_PROPERTY


class InvalidArgsError(DBusError):
    default_name = ERROR_INVALID_ARGS


class PropertyReadOnlyError(DBusError):
    default_name = ERROR_PROPERTY_READ_ONLY
