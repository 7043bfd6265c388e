"""
View and Cursor — read-only traversal and lookup over a BSON document.

A View wraps a buffer without copying it. The buffer is held through a
read-only memoryview, so it stays alive as long as any View, Cursor or
Element derived from it, and a ``bytearray`` cannot be resized meanwhile.
Writing into a mutable buffer while views exist is still the caller's
responsibility: results are undefined.

Traversal is lazy. Framing is only checked when a cursor reaches the bytes
in question, or eagerly via ``View.validate()``.

Usage:
    view = View(data)
    for element in view:
        print(element.key, element.value)

    cursor = view.find("name")
    if cursor != view.end():
        print(cursor.element.value)

    element = view["name"]        # INVALID_ELEMENT when missing
    value = view.get("name")      # None when missing
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from bsonview import EMPTY_DOCUMENT, MIN_DOCUMENT_SIZE
from bsonview._format.reader import check_framing, decode_element
from bsonview._format.spec import LENGTH_PREFIX_SIZE, TERMINATOR
from bsonview.element import INVALID_ELEMENT, Element, InvalidElement
from bsonview.errors import CursorError

log = logging.getLogger(__name__)


class Cursor:
    """Forward-only position over a document's elements.

    Either positioned at an element, or the past-the-end sentinel. All state
    lives in the cursor itself, so cursors are independent of each other and
    of the View that produced them.
    """

    __slots__ = ("_element",)

    def __init__(self, element: Element | None = None) -> None:
        self._element = element

    @property
    def at_end(self) -> bool:
        return self._element is None

    @property
    def element(self) -> Element:
        """The current element. Raises CursorError on the end sentinel."""
        if self._element is None:
            raise CursorError("Cannot dereference the past-the-end cursor")
        return self._element

    def advance(self) -> Cursor:
        """Step to the next element in place and return self.

        Becomes the end sentinel when the next byte is the terminator.
        """
        current = self._element
        if current is None:
            raise CursorError("Cannot advance the past-the-end cursor")

        # decode_element guarantees the element ends before the last byte.
        buf = current.buffer
        offset = current.offset + current.length
        if buf[offset] == TERMINATOR:
            self._element = None
        else:
            self._element = decode_element(buf, offset, current.origin, current.base)
        return self

    def next(self) -> Cursor:
        """A new cursor one step ahead; this cursor is left where it is."""
        return self.copy().advance()

    def copy(self) -> Cursor:
        return Cursor(self._element)

    def __eq__(self, other: object) -> bool:
        """Both past the end, or on the same element of the same buffer."""
        if not isinstance(other, Cursor):
            return NotImplemented
        a, b = self._element, other._element
        if a is None or b is None:
            return a is b
        return a == b

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        if self._element is None:
            return "Cursor(<end>)"
        return f"Cursor(offset={self._element.offset}, key={self._element.key!r})"


class View:
    """A read-only, non-owning view of a BSON document.

    ``View()`` is the empty document ``{}``. ``View(buffer, length)`` views
    the first ``length`` bytes of any bytes-like object (all of it when
    ``length`` is omitted). The buffer must hold a framed document; this is
    not verified up front.
    """

    __slots__ = ("_data", "_origin", "_base")

    def __init__(self, buffer: Any = EMPTY_DOCUMENT, length: int | None = None) -> None:
        data = memoryview(buffer)
        origin = data.obj
        if isinstance(buffer, memoryview) and data.nbytes != memoryview(origin).nbytes:
            # A slice of a larger buffer; its start inside the owner is unknown.
            origin = buffer
        if data.format != "B" or data.ndim != 1:
            data = data.cast("B")
        if length is not None:
            if length < 0 or length > len(data):
                raise ValueError(
                    f"length {length} out of range for a {len(data)}-byte buffer"
                )
            data = data[:length]
        if len(data) < MIN_DOCUMENT_SIZE:
            raise ValueError(
                f"A BSON document is at least {MIN_DOCUMENT_SIZE} bytes, got {len(data)}"
            )
        self._data = data.toreadonly()
        self._origin = origin
        self._base = 0

    @classmethod
    def from_buffer(cls, buffer: Any, length: int | None = None) -> View:
        return cls(buffer, length)

    @classmethod
    def borrow(cls, data: memoryview, origin: Any, base: int) -> View:
        """View over ``data``, a read-only slice starting at ``base`` in ``origin``.

        Used for embedded documents, so their cursors and elements compare
        equal however many times the parent element is decoded.
        """
        view = cls.__new__(cls)
        view._data = data
        view._origin = origin
        view._base = base
        return view

    # --- raw access ---

    @property
    def data(self) -> memoryview:
        """The viewed bytes (read-only, not a copy)."""
        return self._data

    @property
    def length(self) -> int:
        """Size of the document in bytes. Not the number of elements."""
        return len(self._data)

    def __bytes__(self) -> bytes:
        return self._data.tobytes()

    def is_empty(self) -> bool:
        """True if this is the trivial document ``{}``."""
        return len(self._data) == MIN_DOCUMENT_SIZE

    # --- traversal ---

    def begin(self) -> Cursor:
        """Cursor on the first element, or ``end()`` for an empty document."""
        if self._data[LENGTH_PREFIX_SIZE] == TERMINATOR:
            return Cursor()
        return Cursor(decode_element(self._data, LENGTH_PREFIX_SIZE, self._origin, self._base))

    def end(self) -> Cursor:
        return Cursor()

    def __iter__(self) -> Iterator[Element]:
        cursor = self.begin()
        while not cursor.at_end:
            yield cursor.element
            cursor.advance()

    def keys(self) -> Iterator[str]:
        return (element.key for element in self)

    def items(self) -> Iterator[tuple[str, Any]]:
        return ((element.key, element.value) for element in self)

    # --- lookup ---

    def find(self, key: str) -> Cursor:
        """Cursor on the first top-level element named ``key``, else ``end()``.

        Linear in the number of elements. Keys need not be unique; the first
        match in encoding order wins. Embedded documents are not searched.
        """
        cursor = self.begin()
        while not cursor.at_end:
            if cursor.element.key == key:
                return cursor
            cursor.advance()
        return cursor

    def __getitem__(self, key: str) -> Element | InvalidElement:
        """The first element named ``key``, or ``INVALID_ELEMENT``. Never raises on a miss."""
        cursor = self.find(key)
        if cursor.at_end:
            return INVALID_ELEMENT
        return cursor.element

    def get(self, key: str, default: Any = None) -> Element | Any:
        """The first element named ``key``, or ``default``."""
        cursor = self.find(key)
        if cursor.at_end:
            return default
        return cursor.element

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and not self.find(key).at_end

    def to_dict(self) -> dict[str, Any]:
        """Top-level keys mapped to decoded values. First duplicate wins."""
        result: dict[str, Any] = {}
        for element in self:
            if element.key not in result:
                result[element.key] = element.value
        return result

    def validate(self, deep: bool = False) -> int:
        """Check the whole document's framing now. Returns the element count.

        Raises MalformedDocumentError on the first inconsistency. With
        ``deep``, embedded documents are checked too.
        """
        count = check_framing(self._data, deep=deep)
        log.debug("Validated %d-byte document: %d elements", len(self._data), count)
        return count

    # --- comparison ---

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, View):
            return NotImplemented
        return self._data == other._data

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        return f"View(length={len(self._data)})"
