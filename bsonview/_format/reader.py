"""
Element decoder — reads one element at a time straight out of a buffer.

Speed features:
  - No copying: values that are themselves byte ranges (documents, arrays,
    binary payloads) come back as memoryview slices of the source buffer
  - Only the key is decoded when an element is read; values on demand
  - NUL scanning uses a compiled regex, which searches any buffer in place

Safety features:
  - Every length prefix is bounds-checked against the document end
  - Unknown type tags, unterminated keys/strings and elements running into
    the terminator raise MalformedDocumentError with the offending offset
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from bsonview._format.spec import (
    DOCUMENT_TYPES, DOUBLE, FIXED_VALUE_SIZES, INT32, INT64, LENGTH_PREFIX_SIZE,
    OBJECT_ID_SIZE, STRING_TYPES, TERMINATOR, TERMINATOR_SIZE, UINT32,
    TYPE_ARRAY, TYPE_BINARY, TYPE_BOOLEAN, TYPE_CODE, TYPE_CODE_W_SCOPE,
    TYPE_DATETIME, TYPE_DBPOINTER, TYPE_DECIMAL128, TYPE_DOCUMENT, TYPE_DOUBLE,
    TYPE_INT32, TYPE_INT64, TYPE_MAX_KEY, TYPE_MIN_KEY, TYPE_NULL, TYPE_OBJECT_ID,
    TYPE_NAMES, TYPE_REGEX, TYPE_STRING, TYPE_SYMBOL, TYPE_TIMESTAMP,
    TYPE_UNDEFINED, type_name,
)
from bsonview.element import (
    MAX_KEY, MIN_KEY, Binary, Code, DatetimeMS, DBPointer, Decimal128, Element,
    ObjectId, Regex, Timestamp,
)
from bsonview.errors import MalformedDocumentError

log = logging.getLogger(__name__)

_NUL = re.compile(b"\x00")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Binary subtype whose payload repeats its own int32 length
_BINARY_OLD = 0x02

# Smallest code-with-scope: int32 total + string(4 + 1) + empty document(5)
_MIN_CODE_W_SCOPE_SIZE = 4 + 5 + 5


def _malformed(message: str, offset: int) -> MalformedDocumentError:
    log.debug("Malformed BSON at offset %d: %s", offset, message)
    return MalformedDocumentError(message, offset)


def _read_int32(buf: memoryview, offset: int, end: int) -> int:
    if offset + 4 > end:
        raise _malformed("truncated int32 length prefix", offset)
    return INT32.unpack_from(buf, offset)[0]


def _cstring_end(buf: memoryview, offset: int, end: int) -> int:
    """Offset of the NUL terminating the cstring that starts at ``offset``."""
    match = _NUL.search(buf, offset, end)
    if match is None:
        raise _malformed("unterminated cstring", offset)
    return match.start()


def _utf8(buf: memoryview, start: int, stop: int) -> str:
    try:
        return str(buf[start:stop], "utf-8")
    except UnicodeDecodeError as e:
        raise _malformed(f"invalid UTF-8: {e.reason}", start + e.start) from e


def _string_size(buf: memoryview, offset: int, end: int) -> int:
    """Encoded size of an int32-prefixed string, including the prefix."""
    n = _read_int32(buf, offset, end)
    if n < 1 or offset + 4 + n > end:
        raise _malformed(f"string length {n} out of bounds", offset)
    if buf[offset + 4 + n - 1] != TERMINATOR:
        raise _malformed("string is not NUL-terminated", offset + 4 + n - 1)
    return 4 + n


def _read_string(buf: memoryview, offset: int) -> str:
    n = INT32.unpack_from(buf, offset)[0]
    return _utf8(buf, offset + 4, offset + 4 + n - 1)


def value_size(buf: memoryview, tag: int, offset: int, end: int) -> int:
    """Number of bytes the value of kind ``tag`` occupies, starting at ``offset``.

    ``end`` is the first offset the value may not reach (the document's
    terminator position).
    """
    fixed = FIXED_VALUE_SIZES.get(tag)
    if fixed is not None:
        if offset + fixed > end:
            raise _malformed(f"truncated {type_name(tag)} value", offset)
        return fixed

    if tag in STRING_TYPES:
        return _string_size(buf, offset, end)

    if tag in DOCUMENT_TYPES:
        n = _read_int32(buf, offset, end)
        if n < 5 or offset + n > end:
            raise _malformed(f"embedded {type_name(tag)} length {n} out of bounds", offset)
        if buf[offset + n - 1] != TERMINATOR:
            raise _malformed(f"embedded {type_name(tag)} is not terminated", offset + n - 1)
        return n

    if tag == TYPE_BINARY:
        n = _read_int32(buf, offset, end)
        if n < 0 or offset + 5 + n > end:
            raise _malformed(f"binary length {n} out of bounds", offset)
        return 5 + n

    if tag == TYPE_REGEX:
        pattern_end = _cstring_end(buf, offset, end)
        options_end = _cstring_end(buf, pattern_end + 1, end)
        return options_end + 1 - offset

    if tag == TYPE_DBPOINTER:
        size = _string_size(buf, offset, end) + OBJECT_ID_SIZE
        if offset + size > end:
            raise _malformed("truncated dbpointer id", offset)
        return size

    if tag == TYPE_CODE_W_SCOPE:
        n = _read_int32(buf, offset, end)
        if n < _MIN_CODE_W_SCOPE_SIZE or offset + n > end:
            raise _malformed(f"code with scope length {n} out of bounds", offset)
        code_size = _string_size(buf, offset + 4, offset + n)
        scope_offset = offset + 4 + code_size
        scope_size = value_size(buf, TYPE_DOCUMENT, scope_offset, offset + n)
        if 4 + code_size + scope_size != n:
            raise _malformed("code with scope length does not match contents", offset)
        return n

    raise _malformed(f"no size rule for element type 0x{tag:02x}", offset)


def decode_element(buf: memoryview, offset: int, origin: Any = None, base: int = 0) -> Element:
    """Decode the element whose type tag sits at ``offset``.

    ``buf`` must span exactly one document: the element may not run into
    the document's final terminator byte. ``origin`` and ``base`` place
    ``buf`` inside the object it borrows from (``buf.obj`` at 0 by default).
    """
    if origin is None:
        origin = buf.obj
    end = len(buf) - TERMINATOR_SIZE
    if offset >= end:
        raise _malformed("element starts past the end of the document", offset)

    tag = buf[offset]
    if tag not in TYPE_NAMES:
        raise _malformed(f"unknown element type 0x{tag:02x}", offset)
    key_start = offset + 1
    key_end = _cstring_end(buf, key_start, end)
    key = _utf8(buf, key_start, key_end)

    value_offset = key_end + 1
    size = value_size(buf, tag, value_offset, end)
    return Element(
        buffer=buf,
        offset=offset,
        type=tag,
        key=key,
        length=value_offset + size - offset,
        value_offset=value_offset,
        origin=origin,
        base=base,
    )


def _sub_view(element: Element, offset: int):
    from bsonview.view import View

    n = INT32.unpack_from(element.buffer, offset)[0]
    return View.borrow(
        element.buffer[offset:offset + n], element.origin, element.base + offset
    )


def _decode_datetime(millis: int) -> datetime | DatetimeMS:
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except OverflowError:
        return DatetimeMS(millis)


def decode_value(element: Element) -> Any:
    """Decode an element's value into its Python representation.

    Sizes were bounds-checked by ``decode_element``, so this only interprets.
    """
    buf = element.buffer
    tag = element.type
    offset = element.value_offset

    if tag == TYPE_DOUBLE:
        return DOUBLE.unpack_from(buf, offset)[0]
    if tag in (TYPE_STRING, TYPE_SYMBOL):
        return _read_string(buf, offset)
    if tag in (TYPE_DOCUMENT, TYPE_ARRAY):
        return _sub_view(element, offset)
    if tag == TYPE_BINARY:
        n = INT32.unpack_from(buf, offset)[0]
        subtype = buf[offset + 4]
        data = buf[offset + 5:offset + 5 + n]
        if subtype == _BINARY_OLD and n >= 4:
            inner = INT32.unpack_from(data, 0)[0]
            if inner == n - 4:
                data = data[4:]
        return Binary(subtype, data)
    if tag in (TYPE_UNDEFINED, TYPE_NULL):
        return None
    if tag == TYPE_OBJECT_ID:
        return ObjectId(bytes(buf[offset:offset + OBJECT_ID_SIZE]))
    if tag == TYPE_BOOLEAN:
        flag = buf[offset]
        if flag not in (0, 1):
            raise _malformed(f"invalid boolean byte 0x{flag:02x}", offset)
        return flag == 1
    if tag == TYPE_DATETIME:
        return _decode_datetime(INT64.unpack_from(buf, offset)[0])
    if tag == TYPE_REGEX:
        pattern_end = _cstring_end(buf, offset, len(buf))
        options_end = _cstring_end(buf, pattern_end + 1, len(buf))
        return Regex(
            _utf8(buf, offset, pattern_end),
            _utf8(buf, pattern_end + 1, options_end),
        )
    if tag == TYPE_DBPOINTER:
        namespace = _read_string(buf, offset)
        id_offset = offset + 4 + INT32.unpack_from(buf, offset)[0]
        return DBPointer(namespace, ObjectId(bytes(buf[id_offset:id_offset + OBJECT_ID_SIZE])))
    if tag == TYPE_CODE:
        return Code(_read_string(buf, offset))
    if tag == TYPE_CODE_W_SCOPE:
        code = _read_string(buf, offset + 4)
        scope_offset = offset + 4 + 4 + INT32.unpack_from(buf, offset + 4)[0]
        return Code(code, _sub_view(element, scope_offset))
    if tag == TYPE_INT32:
        return INT32.unpack_from(buf, offset)[0]
    if tag == TYPE_TIMESTAMP:
        inc = UINT32.unpack_from(buf, offset)[0]
        seconds = UINT32.unpack_from(buf, offset + 4)[0]
        return Timestamp(seconds, inc)
    if tag == TYPE_INT64:
        return INT64.unpack_from(buf, offset)[0]
    if tag == TYPE_DECIMAL128:
        return Decimal128(bytes(buf[offset:offset + 16]))
    if tag == TYPE_MIN_KEY:
        return MIN_KEY
    if tag == TYPE_MAX_KEY:
        return MAX_KEY

    raise _malformed(f"unknown element type 0x{tag:02x}", element.offset)


def check_framing(buf: memoryview, deep: bool = False) -> int:
    """Walk a whole document and verify its framing. Returns the element count.

    Checks the declared length against the buffer, the final terminator and
    every element's bounds. With ``deep``, every value is decoded too (so
    bad UTF-8 and boolean bytes are caught), and embedded documents, arrays
    and code-with-scope scopes are checked recursively.
    """
    size = len(buf)
    declared = _read_int32(buf, 0, size)
    if declared != size:
        raise _malformed(f"declared length {declared} does not match buffer length {size}", 0)
    if buf[size - 1] != TERMINATOR:
        raise _malformed("document is not terminated", size - 1)

    count = 0
    offset = LENGTH_PREFIX_SIZE
    while buf[offset] != TERMINATOR:
        element = decode_element(buf, offset)
        if deep and element.type in DOCUMENT_TYPES:
            check_framing(buf[element.value_offset:element.offset + element.length], deep=True)
        elif deep:
            value = decode_value(element)
            if element.type == TYPE_CODE_W_SCOPE:
                check_framing(value.scope.data, deep=True)
        offset += element.length
        count += 1

    if offset != size - 1:
        raise _malformed("bytes follow the document terminator", offset + 1)
    return count
