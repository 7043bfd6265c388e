"""
BSON wire grammar, as consumed by the view.

Layout:
    document := int32_le(total_length) element* 0x00
    element  := type_tag(1 byte) cstring(key) value(type-specific encoding)
    cstring  := <utf-8 bytes without 0x00> 0x00
    string   := int32_le(byte_length incl. NUL) <utf-8 bytes> 0x00

Value sizes:
    - Fixed-width kinds occupy a known number of bytes after the key
    - Length-prefixed kinds (string, document, binary, ...) carry their
      own int32_le size
    - Regex is two consecutive cstrings, DBPointer is a string + 12-byte id

All integers are little-endian. Offsets are relative to the start of the
buffer the view was built from.
"""

import struct

# Framing
LENGTH_PREFIX_SIZE = 4
TERMINATOR = 0x00
TERMINATOR_SIZE = 1

# Struct codecs for the fixed-width pieces
INT32 = struct.Struct("<i")
UINT32 = struct.Struct("<I")
INT64 = struct.Struct("<q")
DOUBLE = struct.Struct("<d")

# Type tags
TYPE_DOUBLE = 0x01
TYPE_STRING = 0x02
TYPE_DOCUMENT = 0x03
TYPE_ARRAY = 0x04
TYPE_BINARY = 0x05
TYPE_UNDEFINED = 0x06
TYPE_OBJECT_ID = 0x07
TYPE_BOOLEAN = 0x08
TYPE_DATETIME = 0x09
TYPE_NULL = 0x0A
TYPE_REGEX = 0x0B
TYPE_DBPOINTER = 0x0C
TYPE_CODE = 0x0D
TYPE_SYMBOL = 0x0E
TYPE_CODE_W_SCOPE = 0x0F
TYPE_INT32 = 0x10
TYPE_TIMESTAMP = 0x11
TYPE_INT64 = 0x12
TYPE_DECIMAL128 = 0x13
TYPE_MAX_KEY = 0x7F
TYPE_MIN_KEY = 0xFF

TYPE_NAMES = {
    TYPE_DOUBLE: "double",
    TYPE_STRING: "string",
    TYPE_DOCUMENT: "document",
    TYPE_ARRAY: "array",
    TYPE_BINARY: "binary",
    TYPE_UNDEFINED: "undefined",
    TYPE_OBJECT_ID: "oid",
    TYPE_BOOLEAN: "bool",
    TYPE_DATETIME: "date",
    TYPE_NULL: "null",
    TYPE_REGEX: "regex",
    TYPE_DBPOINTER: "dbpointer",
    TYPE_CODE: "code",
    TYPE_SYMBOL: "symbol",
    TYPE_CODE_W_SCOPE: "codewscope",
    TYPE_INT32: "int32",
    TYPE_TIMESTAMP: "timestamp",
    TYPE_INT64: "int64",
    TYPE_DECIMAL128: "decimal128",
    TYPE_MAX_KEY: "maxkey",
    TYPE_MIN_KEY: "minkey",
}

# Value width for kinds whose encoding has no length prefix
FIXED_VALUE_SIZES = {
    TYPE_DOUBLE: 8,
    TYPE_UNDEFINED: 0,
    TYPE_OBJECT_ID: 12,
    TYPE_BOOLEAN: 1,
    TYPE_DATETIME: 8,
    TYPE_NULL: 0,
    TYPE_INT32: 4,
    TYPE_TIMESTAMP: 8,
    TYPE_INT64: 8,
    TYPE_DECIMAL128: 16,
    TYPE_MAX_KEY: 0,
    TYPE_MIN_KEY: 0,
}

# Kinds encoded as int32 length + utf-8 bytes + NUL
STRING_TYPES = frozenset({TYPE_STRING, TYPE_CODE, TYPE_SYMBOL})

# Kinds encoded as an embedded document (length prefix covers itself)
DOCUMENT_TYPES = frozenset({TYPE_DOCUMENT, TYPE_ARRAY})

OBJECT_ID_SIZE = 12


def type_name(tag: int) -> str:
    """Human readable name for a type tag, ``0x??`` for unknown tags."""
    return TYPE_NAMES.get(tag, f"0x{tag:02x}")
