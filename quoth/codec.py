"""
Byte encodings for index values.

Index values are lists joined with a semicolon, a byte that never appears in
a decimal numeral:

- quote identifiers: ``b"1;2;17"``
- book titles: ``b"Huckleberry Finn;Tom Sawyer"``

An empty list encodes as ``b""``. Titles must not contain the delimiter;
``encode_values`` rejects them.

``merge_append`` is the store-level merge operator the index trees are
opened with. Lists built this way are in insertion order.
"""

import logging
from typing import Iterable, Optional

from .errors import InvalidKeyText, MalformedIndex

logger = logging.getLogger(__name__)

DELIMITER = ";"
DELIMITER_BYTE = DELIMITER.encode("ascii")


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def encode_id(identifier: int) -> bytes:
    """Decimal form of a single identifier."""
    if identifier < 0:
        raise ValueError(f"Identifier must be non-negative: {identifier}")
    return str(identifier).encode("ascii")


def decode_id(raw: bytes) -> int:
    """Parse a single decimal identifier."""
    if not raw.isdigit():
        raise MalformedIndex(raw, "not a decimal identifier")
    return int(raw)


def encode_ids(ids: Iterable[int]) -> bytes:
    """Join identifiers with the delimiter. Duplicates are kept."""
    return DELIMITER_BYTE.join(encode_id(i) for i in ids)


def decode_ids(raw: bytes, *, strict: bool = True) -> list[int]:
    """
    Split a delimiter-joined identifier list.

    Args:
        raw: Encoded index value
        strict: Raise on an unparsable segment. When False, such segments
            are dropped with a warning.

    Returns:
        Identifiers in stored order

    Raises:
        MalformedIndex: A segment is not a decimal numeral (strict only)
    """
    if not raw:
        return []
    ids = []
    for segment in raw.split(DELIMITER_BYTE):
        if segment.isdigit():
            ids.append(int(segment))
        elif strict:
            raise MalformedIndex(raw, f"bad identifier segment {segment!r}")
        else:
            logger.warning("Dropping unparsable index segment %r in %r", segment, raw)
    return ids


# ---------------------------------------------------------------------------
# Free-text values
# ---------------------------------------------------------------------------

def encode_value(value: str, field: str = "value") -> bytes:
    """Encode one title or name, rejecting text that would split the list."""
    if not value:
        raise InvalidKeyText(field, value, "must not be empty")
    if DELIMITER in value:
        raise InvalidKeyText(field, value, f"must not contain {DELIMITER!r}")
    return value.encode("utf-8")


def encode_values(values: Iterable[str]) -> bytes:
    return DELIMITER_BYTE.join(encode_value(v) for v in values)


def decode_values(raw: bytes) -> list[str]:
    if not raw:
        return []
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedIndex(raw, f"not UTF-8 ({e.reason})") from e
    return text.split(DELIMITER)


# ---------------------------------------------------------------------------
# Merge operator
# ---------------------------------------------------------------------------

def merge_append(key: bytes, existing: Optional[bytes], addition: bytes) -> bytes:
    """
    Append ``addition`` to an existing list value.

    Absent (or empty) existing values are replaced by ``addition``, so a merge
    onto a missing key behaves as a set. The key is unused.
    """
    if not existing:
        return addition
    return existing + DELIMITER_BYTE + addition
