"""
bsonview — zero-copy, read-only views over BSON documents.

Architecture:
    Buffer:   any bytes-like object holding  int32_le(length) element* 0x00
    View:     read-only memoryview over that buffer (never copies, never mutates)
    Cursor:   forward-only position, decodes one element at a time on demand
    Lookup:   linear scan by key over the top-level elements
"""

__version__ = "0.1.0"

# The canonical empty document: int32_le(5) followed by the terminator.
EMPTY_DOCUMENT = b"\x05\x00\x00\x00\x00"
MIN_DOCUMENT_SIZE = len(EMPTY_DOCUMENT)

# CLI constants
CLI_DEFAULT_MAX_SIZE = 16 * 1024 * 1024  # 16 MB, the server-side BSON limit
CLI_DEFAULT_INDENT = 2
CLI_CONFIG_ENV = "BSONVIEW_CONFIG"

from bsonview.errors import (  # noqa: E402
    BSONViewError,
    CursorError,
    InvalidElementError,
    MalformedDocumentError,
)
from bsonview.element import INVALID_ELEMENT, Element  # noqa: E402
from bsonview.view import Cursor, View  # noqa: E402

__all__ = [
    "BSONViewError",
    "Cursor",
    "CursorError",
    "EMPTY_DOCUMENT",
    "Element",
    "INVALID_ELEMENT",
    "InvalidElementError",
    "MalformedDocumentError",
    "View",
]
