"""
Internal BSON format engine.

Grammar constants (``spec``) and the element decoder (``reader``) the view is
built on. This is an internal module, not a public API: use ``bsonview.View``.

Format: BSON 1.1 (bsonspec.org), consumed only, never produced.
"""

from bsonview._format.spec import TYPE_NAMES, type_name
