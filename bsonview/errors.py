"""Exception types raised by bsonview."""

from __future__ import annotations


class BSONViewError(Exception):
    """Base class for all bsonview errors."""


class MalformedDocumentError(BSONViewError, ValueError):
    """Buffer bytes are inconsistent with the BSON grammar.

    Raised lazily, at the point traversal or value decoding reaches the
    offending bytes, and eagerly by ``View.validate()``.
    """

    def __init__(self, message: str, offset: int | None = None) -> None:
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)
        self.offset = offset


class CursorError(BSONViewError, IndexError):
    """Dereferenced or advanced the past-the-end cursor."""


class InvalidElementError(BSONViewError, KeyError):
    """Read the key or value of the invalid element returned on a lookup miss."""

    def __str__(self) -> str:
        # KeyError.__str__ repr()s the message; keep it readable.
        return str(self.args[0]) if self.args else ""
