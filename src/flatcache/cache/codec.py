"""Entry codec: tagged JSON, base64, inert header/footer.

File content is ``<?php /*`` + base64(json envelope) + ``*/ ?>``. The
envelope is ``{"v": <tagged value>, "e": <expires_at or null>}``.

Supported value shapes and their tagged form:

- ``None``, ``bool``, ``int``, ``float``, ``str``: JSON scalars
- ``list``: JSON array
- ``tuple`` / ``set`` / ``frozenset``: ``{"$": "tuple", "v": [...]}``
- ``dict``: ``{"$": "map", "v": [[key, value], ...]}`` (keeps key types
  and insertion order)
- ``bytes`` / ``bytearray``: ``{"$": "bytes", "v": "<base64>"}`` (opaque blobs)
- ``datetime`` / ``date`` / ``time``: ``{"$": "datetime", "v": "<isoformat>"}``
- ``timedelta``: ``{"$": "timedelta", "v": [days, seconds, microseconds]}``
- ``Decimal``: ``{"$": "decimal", "v": "<str>"}``

Any other type raises ``UnsupportedValueError``; subclasses (namedtuples,
enums, ...) are not silently flattened into their base type.

Every JSON object in the payload is a tag, so decoding is unambiguous.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from flatcache.errors.exceptions import DecodeFailure, UnsupportedValueError

HEADER = b"<?php /*"
FOOTER = b"*/ ?>"

_TAG = "$"
_SEQUENCE_TAGS: dict[str, type] = {
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
}
_BLOB_TAGS: dict[str, type] = {
    "bytes": bytes,
    "bytearray": bytearray,
}
_ISO_TAGS: dict[str, type] = {
    "datetime": datetime,
    "date": date,
    "time": time,
}


@dataclass(frozen=True)
class DecodedEntry:
    value: Any
    expires_at: float | None = None


def encode(value: Any, expires_at: float | None = None) -> bytes:
    """Encode a value (and optional absolute expiry) into file bytes."""
    envelope = {"v": _pack(value), "e": expires_at}
    serialized = json.dumps(envelope, separators=(",", ":")).encode("utf-8")
    return HEADER + base64.b64encode(serialized) + FOOTER


def decode(payload: bytes) -> Any:
    """Decode file bytes back into the stored value."""
    return decode_entry(payload).value


def decode_entry(payload: bytes) -> DecodedEntry:
    """Decode file bytes into value plus embedded expiry."""
    if (
        len(payload) < len(HEADER) + len(FOOTER)
        or not payload.startswith(HEADER)
        or not payload.endswith(FOOTER)
    ):
        raise DecodeFailure("Payload is missing the entry header or footer")

    body = payload[len(HEADER) : len(payload) - len(FOOTER)]
    try:
        envelope = json.loads(base64.b64decode(body, validate=True))
    except (binascii.Error, ValueError) as e:
        raise DecodeFailure(f"Payload body is not valid encoded JSON: {e}") from e

    if not isinstance(envelope, dict) or "v" not in envelope:
        raise DecodeFailure("Payload envelope is malformed")

    expires_at = envelope.get("e")
    if expires_at is not None and not isinstance(expires_at, (int, float)):
        raise DecodeFailure(f"Payload expiry is not numeric: {expires_at!r}")

    return DecodedEntry(value=_unpack(envelope["v"]), expires_at=expires_at)


def _pack(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, list):
        return [_pack(item) for item in value]
    if isinstance(value, dict):
        return {_TAG: "map", "v": [[_pack(k), _pack(v)] for k, v in value.items()]}
    for tag, kind in _SEQUENCE_TAGS.items():
        if type(value) is kind:
            return {_TAG: tag, "v": [_pack(item) for item in value]}
    for tag, kind in _BLOB_TAGS.items():
        if type(value) is kind:
            return {_TAG: tag, "v": base64.b64encode(bytes(value)).decode("ascii")}
    for tag, kind in _ISO_TAGS.items():
        if type(value) is kind:
            return {_TAG: tag, "v": value.isoformat()}
    if type(value) is timedelta:
        return {_TAG: "timedelta", "v": [value.days, value.seconds, value.microseconds]}
    if type(value) is Decimal:
        return {_TAG: "decimal", "v": str(value)}
    raise UnsupportedValueError(
        f"Cannot encode value of type {type(value).__name__}",
        value_type=type(value),
    )


def _unpack(data: Any) -> Any:
    if isinstance(data, list):
        return [_unpack(item) for item in data]
    if not isinstance(data, dict):
        return data

    tag = data.get(_TAG)
    items = data.get("v")
    if tag == "map":
        if not isinstance(items, list):
            raise DecodeFailure("Map payload is not a list of pairs")
        try:
            return {_unpack(k): _unpack(v) for k, v in items}
        except (TypeError, ValueError) as e:
            raise DecodeFailure(f"Map payload is malformed: {e}") from e
    if tag in _SEQUENCE_TAGS:
        if not isinstance(items, list):
            raise DecodeFailure(f"{tag} payload is not a list")
        try:
            return _SEQUENCE_TAGS[tag](_unpack(item) for item in items)
        except TypeError as e:
            raise DecodeFailure(f"{tag} payload is malformed: {e}") from e
    if tag in _BLOB_TAGS:
        if not isinstance(items, str):
            raise DecodeFailure(f"{tag} payload is not a string")
        try:
            return _BLOB_TAGS[tag](base64.b64decode(items, validate=True))
        except binascii.Error as e:
            raise DecodeFailure(f"{tag} payload is not valid base64: {e}") from e
    if tag in _ISO_TAGS:
        if not isinstance(items, str):
            raise DecodeFailure(f"{tag} payload is not a string")
        try:
            return _ISO_TAGS[tag].fromisoformat(items)
        except ValueError as e:
            raise DecodeFailure(f"{tag} payload is malformed: {e}") from e
    if tag == "timedelta":
        if not isinstance(items, list) or len(items) != 3:
            raise DecodeFailure("timedelta payload is not [days, seconds, microseconds]")
        try:
            return timedelta(*items)
        except (TypeError, OverflowError) as e:
            raise DecodeFailure(f"timedelta payload is malformed: {e}") from e
    if tag == "decimal":
        if not isinstance(items, str):
            raise DecodeFailure("decimal payload is not a string")
        try:
            return Decimal(items)
        except InvalidOperation as e:
            raise DecodeFailure(f"decimal payload is malformed: {e}") from e
    raise DecodeFailure(f"Unknown value tag: {tag!r}")
