"""
bsonview CLI — inspect BSON files without decoding more than needed.

Commands:
  bsonview check FILE      - Verify framing, print element count and size
  bsonview keys FILE       - List top-level keys in encoding order
  bsonview dump FILE       - Print the document as extended JSON
  bsonview get FILE KEY    - Print the value of the first element named KEY
"""

from __future__ import annotations

import argparse
import base64
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from bsonview import MalformedDocumentError, View
from bsonview._format.spec import TYPE_ARRAY, TYPE_UNDEFINED
from bsonview.element import (
    MAX_KEY, MIN_KEY, Binary, Code, DatetimeMS, DBPointer, Decimal128, Element,
    ObjectId, Regex, Timestamp,
)

log = logging.getLogger(__name__)


def _setup_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def _load_view(path: str, config: dict[str, Any]):
    """Read a BSON file into a View. Exits with an error message on failure."""
    file_path = Path(path)
    if not file_path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)

    size = file_path.stat().st_size
    max_size = config["max_size"]
    if size > max_size:
        print(
            f"Error: File size {size} exceeds maximum {max_size} bytes. "
            f"Raise max_size in the config to override.",
            file=sys.stderr,
        )
        sys.exit(1)

    data = file_path.read_bytes()
    try:
        view = View(data)
        if config["validate"]:
            view.validate(deep=True)
    except (MalformedDocumentError, ValueError) as e:
        print(f"Error: {path} is not a valid BSON document: {e}", file=sys.stderr)
        sys.exit(1)

    log.debug("Loaded %s (%d bytes)", path, view.length)
    return view


def to_extended_json(value: Any, array: bool = False) -> Any:
    """Convert a decoded value to a JSON-serializable structure.

    Embedded documents are rendered recursively for display; arrays become
    lists. Types without a JSON equivalent use relaxed extended JSON keys.
    """
    if isinstance(value, View):
        if array:
            return [element_json(e) for e in value]
        result: dict[str, Any] = {}
        for e in value:
            if e.key not in result:
                result[e.key] = element_json(e)
        return result
    if isinstance(value, ObjectId):
        return {"$oid": str(value)}
    if isinstance(value, datetime):
        return {"$date": value.isoformat().replace("+00:00", "Z")}
    if isinstance(value, DatetimeMS):
        return {"$date": {"$numberLong": str(value.millis)}}
    if isinstance(value, Binary):
        return {
            "$binary": {
                "base64": base64.b64encode(value.data).decode("ascii"),
                "subType": f"{value.subtype:02x}",
            }
        }
    if isinstance(value, Regex):
        return {"$regularExpression": {"pattern": value.pattern, "options": value.options}}
    if isinstance(value, Timestamp):
        return {"$timestamp": {"t": value.time, "i": value.inc}}
    if isinstance(value, Decimal128):
        return {"$numberDecimal": str(value)}
    if isinstance(value, Code):
        if value.scope is None:
            return {"$code": value.code}
        return {"$code": value.code, "$scope": to_extended_json(value.scope)}
    if isinstance(value, DBPointer):
        return {"$dbPointer": {"$ref": value.namespace, "$id": {"$oid": str(value.id)}}}
    if value is MIN_KEY:
        return {"$minKey": 1}
    if value is MAX_KEY:
        return {"$maxKey": 1}
    return value


def element_json(element: Element) -> Any:
    """Extended JSON for one element's value."""
    if element.type == TYPE_UNDEFINED:
        return {"$undefined": True}
    return to_extended_json(element.value, array=element.type == TYPE_ARRAY)


def _print_json(render, value: Any, path: str, config: dict[str, Any]) -> None:
    """Print ``render(value)`` as JSON. Bad bytes met while decoding are fatal."""
    try:
        rendered = render(value)
    except MalformedDocumentError as e:
        print(f"Error: {path} is not a valid BSON document: {e}", file=sys.stderr)
        sys.exit(1)
    indent = config["indent"] or None
    print(json.dumps(rendered, indent=indent, ensure_ascii=False))


def cmd_check(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """Validate a document's framing, recursively."""
    view = _load_view(args.path, {**config, "validate": False})
    try:
        count = view.validate(deep=True)
    except MalformedDocumentError as e:
        print(f"FAIL: {args.path}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"OK: {args.path}")
    print(f"  bytes:    {view.length}")
    print(f"  elements: {count}")
    print(f"  empty:    {'yes' if view.is_empty() else 'no'}")


def cmd_keys(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """List top-level keys with their types."""
    view = _load_view(args.path, config)
    for element in view:
        print(f"{element.key}\t{element.type_name}")


def cmd_dump(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """Print the whole document as extended JSON."""
    view = _load_view(args.path, config)
    _print_json(to_extended_json, view, args.path, config)


def cmd_get(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """Print the value of the first top-level element named KEY."""
    view = _load_view(args.path, config)
    element = view[args.key]
    if not element.valid:
        print(f"Error: Key not found: {args.key!r}", file=sys.stderr)
        sys.exit(1)

    _print_json(element_json, element, args.path, config)


def main(argv: list[str] | None = None) -> None:
    from bsonview import __version__
    from bsonview.config import load_config

    parser = argparse.ArgumentParser(
        prog="bsonview",
        description="Inspect BSON documents in place: check, list keys, dump, look up.",
    )
    parser.add_argument("--version", action="version", version=f"bsonview {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", help="Path to config TOML (default: ~/.bsonview/config.toml)")
    sub = parser.add_subparsers(dest="command")

    p_check = sub.add_parser("check", help="Verify document framing")
    p_check.add_argument("path", help="Path to .bson file")

    p_keys = sub.add_parser("keys", help="List top-level keys in encoding order")
    p_keys.add_argument("path", help="Path to .bson file")

    p_dump = sub.add_parser("dump", help="Print the document as extended JSON")
    p_dump.add_argument("path", help="Path to .bson file")

    p_get = sub.add_parser("get", help="Print the value of the first element named KEY")
    p_get.add_argument("path", help="Path to .bson file")
    p_get.add_argument("key", help="Top-level key to look up")

    args = parser.parse_args(argv)

    if not args.command:
        print("bsonview — read-only BSON inspection")
        print()
        print("Usage:")
        print("  bsonview check doc.bson")
        print("  bsonview keys doc.bson")
        print("  bsonview dump doc.bson")
        print("  bsonview get doc.bson <key>")
        print()
        print("Run 'bsonview <command> --help' for details on any command.")
        sys.exit(0)

    config = load_config(args.config)
    _setup_logging(config["log_level"], args.verbose)

    commands = {
        "check": cmd_check,
        "keys": cmd_keys,
        "dump": cmd_dump,
        "get": cmd_get,
    }
    commands[args.command](args, config)


if __name__ == "__main__":
    main()
