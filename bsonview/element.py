"""
Decoded elements and BSON value types.

An Element is one key/type/value triple of a document, borrowed from the
same buffer as the View it came from. Only the key is decoded eagerly;
``value`` is decoded on access by the element decoder.

Lookup misses return ``INVALID_ELEMENT`` instead of raising, so callers test
``element.valid`` (or plain truthiness) to tell "absent" from "present".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from bsonview._format.spec import DOCUMENT_TYPES, TYPE_CODE_W_SCOPE, type_name
from bsonview.errors import InvalidElementError

if TYPE_CHECKING:
    from bsonview.view import View


@dataclass(frozen=True, eq=False)
class Element:
    """One element of a document.

    Attributes:
        key: The element's key (decoded from its cstring).
        type: The one-byte type tag.
        offset: Byte offset of the type tag within the buffer.
        length: Total encoded span: tag + key + NUL + value.
        value_offset: Byte offset where the value encoding starts.
        origin: The object the buffer borrows from.
        base: Where ``buffer[0]`` sits inside ``origin``.

    Two elements are equal when they sit at the same position of the same
    origin object, however many views were built over it.
    """

    buffer: memoryview = field(repr=False)
    offset: int
    type: int
    key: str
    length: int
    value_offset: int
    origin: Any = field(default=None, repr=False)
    base: int = field(default=0, repr=False)

    valid = True

    def __bool__(self) -> bool:
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Element):
            return NotImplemented
        return (
            self.origin is other.origin
            and self.base + self.offset == other.base + other.offset
            and self.type == other.type
            and self.key == other.key
            and self.length == other.length
        )

    def __hash__(self) -> int:
        return hash((id(self.origin), self.base + self.offset, self.type, self.key))

    @property
    def type_name(self) -> str:
        return type_name(self.type)

    @property
    def value(self) -> Any:
        """The decoded value. Embedded documents and arrays come back as Views."""
        from bsonview._format.reader import decode_value

        return decode_value(self)

    @property
    def raw(self) -> memoryview:
        """The element's full encoding (tag, key and value), without copying."""
        return self.buffer[self.offset:self.offset + self.length]

    @property
    def raw_value(self) -> memoryview:
        """The value's encoding only, without copying."""
        return self.buffer[self.value_offset:self.offset + self.length]

    def is_document(self) -> bool:
        """True for embedded documents and arrays."""
        return self.type in DOCUMENT_TYPES

    def as_view(self) -> View:
        """The embedded document/array (or code-with-scope scope) as a View."""
        if self.type in DOCUMENT_TYPES:
            return self.value
        if self.type == TYPE_CODE_W_SCOPE:
            return self.value.scope
        raise TypeError(f"Element {self.key!r} is {self.type_name}, not a document")


class InvalidElement:
    """The element returned by a subscript lookup that found nothing."""

    __slots__ = ()

    valid = False

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "INVALID_ELEMENT"

    def _invalid(self, what: str):
        raise InvalidElementError(f"Cannot read {what} of the invalid element")

    key = property(lambda self: self._invalid("key"))
    type = property(lambda self: self._invalid("type"))
    value = property(lambda self: self._invalid("value"))
    raw = property(lambda self: self._invalid("raw bytes"))


INVALID_ELEMENT = InvalidElement()


# ---------------------------------------------------------------------------
# Value types without a native Python equivalent
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ObjectId:
    """12-byte BSON ObjectId."""

    binary: bytes

    def __str__(self) -> str:
        return self.binary.hex()

    @property
    def timestamp(self) -> int:
        """Seconds since the epoch, from the id's leading big-endian int32."""
        return int.from_bytes(self.binary[:4], "big")


@dataclass(frozen=True)
class Binary:
    """Binary payload with its subtype byte. ``data`` borrows the buffer."""

    subtype: int
    data: memoryview


@dataclass(frozen=True)
class Regex:
    pattern: str
    options: str


@dataclass(frozen=True)
class DBPointer:
    namespace: str
    id: ObjectId


@dataclass(frozen=True)
class Code:
    """JavaScript code, optionally with a scope document (type 0x0F)."""

    code: str
    scope: View | None = None


@dataclass(frozen=True, order=True)
class DatetimeMS:
    """A UTC datetime outside ``datetime``'s range, as milliseconds since the epoch."""

    millis: int


@dataclass(frozen=True, order=True)
class Timestamp:
    """Internal replication timestamp: seconds plus an ordinal."""

    time: int
    inc: int


@dataclass(frozen=True)
class Decimal128:
    """IEEE 754-2008 128-bit decimal (BID encoding), kept as raw bytes."""

    bid: bytes

    _EXPONENT_BIAS = 6176
    _MAX_DIGITS = 34

    def to_decimal(self) -> Decimal:
        low = int.from_bytes(self.bid[:8], "little")
        high = int.from_bytes(self.bid[8:], "little")
        sign = high >> 63

        if (high & 0x7800000000000000) == 0x7800000000000000:
            if (high & 0x7E00000000000000) == 0x7E00000000000000:
                return Decimal((sign, (), "N"))
            if (high & 0x7C00000000000000) == 0x7C00000000000000:
                return Decimal((sign, (), "n"))
            return Decimal((sign, (), "F"))

        if (high & 0x6000000000000000) == 0x6000000000000000:
            # Non-canonical significand, always zero.
            exponent = ((high & 0x1FFFE00000000000) >> 47) - self._EXPONENT_BIAS
            significand = 0
        else:
            exponent = ((high & 0x7FFF800000000000) >> 49) - self._EXPONENT_BIAS
            significand = ((high & 0x0001FFFFFFFFFFFF) << 64) | low
            if significand >= 10 ** self._MAX_DIGITS:
                significand = 0

        digits = tuple(int(d) for d in str(significand))
        return Decimal((sign, digits, exponent))

    def __str__(self) -> str:
        return str(self.to_decimal())


class _Bound:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


MIN_KEY = _Bound("MinKey")
MAX_KEY = _Bound("MaxKey")
