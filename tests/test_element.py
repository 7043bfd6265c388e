"""
Tests for the element decoder — value kinds, spans, malformed values.
"""

from __future__ import annotations

import math
import struct
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bsonview import INVALID_ELEMENT, Element, MalformedDocumentError, View
from bsonview._format.reader import decode_element
from bsonview._format.spec import TYPE_NAMES, type_name
from bsonview.element import (
    MAX_KEY, MIN_KEY, Binary, Code, DatetimeMS, DBPointer, Decimal128, ObjectId,
    Regex, Timestamp,
)
from bsonutil import (
    array, binary, boolean, cstring, document, double, element, int32, int64,
    null, string, subdoc, text,
)

OID = bytes(range(1, 13))


def only(data: bytes) -> Element:
    """The single element of a one-element document."""
    elements = list(View(data))
    assert len(elements) == 1
    return elements[0]


def decimal128(high: int, low: int = 0) -> bytes:
    return struct.pack("<QQ", low, high)


# ---------------------------------------------------------------------------
# TestScalars
# ---------------------------------------------------------------------------

class TestScalars:
    """Fixed-width and string value kinds."""

    def test_int32(self):
        e = only(document(int32("n", -7)))
        assert e.value == -7
        assert e.type_name == "int32"
        assert e.length == 1 + 2 + 4

    def test_int64(self):
        e = only(document(int64("n", 2 ** 40)))
        assert e.value == 2 ** 40
        assert e.length == 1 + 2 + 8

    def test_double(self):
        assert only(document(double("x", 1.5))).value == 1.5

    def test_double_nan(self):
        assert math.isnan(only(document(double("x", float("nan")))).value)

    def test_string(self):
        e = only(document(text("s", "héllo")))
        assert e.value == "héllo"
        assert e.length == 1 + 2 + 4 + len("héllo".encode()) + 1

    def test_empty_string(self):
        assert only(document(text("s", ""))).value == ""

    def test_symbol(self):
        assert only(document(element(0x0E, "s", string("sym")))).value == "sym"

    def test_boolean(self):
        assert only(document(boolean("t", True))).value is True
        assert only(document(boolean("f", False))).value is False

    def test_null_and_undefined(self):
        assert only(document(null("n"))).value is None
        e = only(document(element(0x06, "u", b"")))
        assert e.value is None
        assert e.type_name == "undefined"

    def test_min_max_key(self):
        assert only(document(element(0xFF, "lo", b""))).value is MIN_KEY
        assert only(document(element(0x7F, "hi", b""))).value is MAX_KEY
        assert repr(MIN_KEY) == "MinKey"

    def test_object_id(self):
        e = only(document(element(0x07, "_id", OID)))
        assert e.value == ObjectId(OID)
        assert str(e.value) == OID.hex()
        assert e.value.timestamp == int.from_bytes(OID[:4], "big")

    def test_datetime(self):
        e = only(document(element(0x09, "d", struct.pack("<q", 1500))))
        assert e.value == datetime(1970, 1, 1, 0, 0, 1, 500000, tzinfo=timezone.utc)

    def test_datetime_before_epoch(self):
        e = only(document(element(0x09, "d", struct.pack("<q", -86_400_000))))
        assert e.value == datetime(1969, 12, 31, tzinfo=timezone.utc)

    def test_datetime_out_of_range_keeps_millis(self):
        for millis in (2 ** 62, -(2 ** 62), 2 ** 63 - 1):
            e = only(document(element(0x09, "d", struct.pack("<q", millis))))
            assert e.value == DatetimeMS(millis)

    def test_timestamp(self):
        # increment is stored first, then seconds
        e = only(document(element(0x11, "ts", struct.pack("<II", 3, 1700000000))))
        assert e.value == Timestamp(time=1700000000, inc=3)


# ---------------------------------------------------------------------------
# TestCompound
# ---------------------------------------------------------------------------

class TestCompound:
    """Length-prefixed and multi-part value kinds."""

    def test_embedded_document_is_view(self):
        inner = document(int32("x", 1), text("y", "z"))
        e = only(document(subdoc("d", inner)))
        assert isinstance(e.value, View)
        assert bytes(e.value) == inner
        assert e.value["y"].value == "z"
        assert e.is_document()

    def test_embedded_document_shares_buffer(self):
        data = bytearray(document(subdoc("d", document(int32("x", 1)))))
        outer = View(data)
        inner = outer["d"].value
        assert inner.data.obj is data

    def test_array_is_view(self):
        e = only(document(array("a", int32("0", 10), int32("1", 20))))
        assert e.type_name == "array"
        assert [x.value for x in e.value] == [10, 20]
        assert e.as_view() == e.value

    def test_empty_array(self):
        assert only(document(array("a"))).value.is_empty()

    def test_binary(self):
        e = only(document(binary("b", 0x00, b"\x01\x02\x03")))
        assert e.value == Binary(0, b"\x01\x02\x03")
        assert bytes(e.value.data) == b"\x01\x02\x03"

    def test_binary_old_subtype_strips_inner_length(self):
        payload = struct.pack("<i", 3) + b"abc"
        e = only(document(binary("b", 0x02, payload)))
        assert e.value.subtype == 2
        assert bytes(e.value.data) == b"abc"

    def test_regex(self):
        e = only(document(element(0x0B, "r", cstring("^a.*") + cstring("im"))))
        assert e.value == Regex("^a.*", "im")
        assert e.length == 1 + 2 + 5 + 3

    def test_dbpointer(self):
        e = only(document(element(0x0C, "p", string("db.coll") + OID)))
        assert e.value == DBPointer("db.coll", ObjectId(OID))

    def test_code(self):
        e = only(document(element(0x0D, "c", string("return 1"))))
        assert e.value == Code("return 1")
        assert e.value.scope is None

    def test_code_with_scope(self):
        scope = document(int32("x", 5))
        code = string("return x")
        body = struct.pack("<i", 4 + len(code) + len(scope)) + code + scope
        e = only(document(element(0x0F, "c", body)))
        assert e.value.code == "return x"
        assert e.value.scope["x"].value == 5
        assert e.as_view() == View(scope)

    def test_as_view_rejects_scalars(self):
        with pytest.raises(TypeError, match="not a document"):
            only(document(int32("n", 1))).as_view()


# ---------------------------------------------------------------------------
# TestDecimal128
# ---------------------------------------------------------------------------

class TestDecimal128:
    """BID decoding of 128-bit decimals."""

    def _value(self, bid: bytes) -> Decimal128:
        return only(document(element(0x13, "d", bid))).value

    def test_one(self):
        assert self._value(decimal128(6176 << 49, 1)).to_decimal() == Decimal("1")

    def test_negative_fraction(self):
        bid = decimal128((1 << 63) | (6175 << 49), 15)
        assert str(self._value(bid)) == "-1.5"

    def test_infinity(self):
        assert self._value(decimal128(0x7800000000000000)).to_decimal() == Decimal("Infinity")
        assert self._value(decimal128(0xF800000000000000)).to_decimal() == Decimal("-Infinity")

    def test_nan(self):
        assert self._value(decimal128(0x7C00000000000000)).to_decimal().is_nan()

    def test_keeps_raw_bytes(self):
        bid = decimal128(6176 << 49, 42)
        assert self._value(bid).bid == bid


# ---------------------------------------------------------------------------
# TestElement
# ---------------------------------------------------------------------------

class TestElement:
    """Element record behaviour."""

    def test_raw_spans(self):
        data = document(int32("a", 1))
        e = only(data)
        assert bytes(e.raw) == int32("a", 1)
        assert bytes(e.raw_value) == struct.pack("<i", 1)

    def test_repr_hides_buffer(self):
        assert "buffer" not in repr(only(document(int32("a", 1))))

    def test_truthiness(self):
        assert only(document(int32("a", 0)))
        assert not INVALID_ELEMENT
        assert repr(INVALID_ELEMENT) == "INVALID_ELEMENT"

    def test_decode_element_directly(self):
        data = memoryview(document(int32("a", 1), int32("b", 2)))
        e = decode_element(data, 11)
        assert (e.key, e.type, e.offset, e.length) == ("b", 0x10, 11, 7)
        assert e.origin is data.obj
        assert e.base == 0

    def test_nested_element_records_absolute_position(self):
        data = document(int32("a", 1), subdoc("d", document(int32("x", 2))))
        outer = View(data)["d"]
        inner = outer.value["x"]
        assert inner.origin is data
        assert inner.base == outer.value_offset
        assert bytes(data[inner.base + inner.offset:][:inner.length]) == int32("x", 2)

    def test_type_names(self):
        assert len(TYPE_NAMES) == 21
        assert type_name(0x02) == "string"
        assert type_name(0x42) == "0x42"


# ---------------------------------------------------------------------------
# TestMalformed
# ---------------------------------------------------------------------------

class TestMalformed:
    """Bad bytes surface as MalformedDocumentError when reached."""

    def test_unknown_type(self):
        with pytest.raises(MalformedDocumentError, match="unknown element type 0x42"):
            list(View(document(element(0x42, "x", b""))))

    def test_unterminated_key(self):
        body = b"\x10abc"
        data = struct.pack("<i", len(body) + 5) + body + b"\x00"
        with pytest.raises(MalformedDocumentError, match="unterminated cstring"):
            list(View(data))

    def test_invalid_utf8_key(self):
        with pytest.raises(MalformedDocumentError, match="invalid UTF-8"):
            list(View(document(b"\x10\xff\xfe\x00" + struct.pack("<i", 1))))

    def test_string_without_nul(self):
        bad = element(0x02, "s", struct.pack("<i", 3) + b"abc")
        with pytest.raises(MalformedDocumentError, match="not NUL-terminated"):
            list(View(document(bad)))

    def test_string_length_overruns(self):
        bad = element(0x02, "s", struct.pack("<i", 100) + b"abc\x00")
        with pytest.raises(MalformedDocumentError, match="out of bounds"):
            list(View(document(bad)))

    def test_negative_binary_length(self):
        bad = element(0x05, "b", struct.pack("<i", -1) + b"\x00")
        with pytest.raises(MalformedDocumentError, match="binary length"):
            list(View(document(bad)))

    def test_embedded_document_too_short(self):
        bad = element(0x03, "d", struct.pack("<i", 4))
        with pytest.raises(MalformedDocumentError, match="embedded document"):
            list(View(document(bad)))

    def test_invalid_boolean_on_value_access(self):
        e = only(document(element(0x08, "b", b"\x02")))
        with pytest.raises(MalformedDocumentError, match="invalid boolean"):
            e.value

    def test_earlier_elements_still_readable(self):
        view = View(document(int32("ok", 1), element(0x42, "bad", b"")))
        cursor = view.begin()
        assert cursor.element.value == 1
        with pytest.raises(MalformedDocumentError):
            cursor.advance()

    def test_malformed_is_value_error(self):
        with pytest.raises(ValueError):
            list(View(document(element(0x42, "x", b""))))
