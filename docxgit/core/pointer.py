"""Pointer record encoding and decoding.

Record layout::

    DOCX-POINTER:<refname>
    HASH:<hex sha256>
    METADATA:<partname>|(<y>, <mo>, <d>, <h>, <mi>, <s>)|<permission-int>
    METADATA:...

Decoding is strict about the frame and lenient about metadata. The header
and hash lines identify which tree to restore, so their absence raises
``IncompletePointerError``. A malformed metadata line only affects one part
of the rebuilt archive, so it is logged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

from pydantic import ValidationError

from docxgit.errors import IncompletePointerError
from docxgit.models.parts import PartDescriptor, PointerRecord, Timestamp

logger = logging.getLogger(__name__)

HEADER_MARKER = "DOCX-POINTER:"
HASH_MARKER = "HASH:"
METADATA_MARKER = "METADATA:"
FIELD_DELIMITER = "|"


class ParseState(str, Enum):
    """Which line the decoder expects next."""

    HEADER = "header"
    HASH = "hash"
    METADATA = "metadata"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def format_timestamp(timestamp: Timestamp) -> str:
    return "(" + ", ".join(str(field) for field in timestamp) + ")"


def encode_part(part: PartDescriptor) -> str:
    return (
        f"{METADATA_MARKER}{part.name}{FIELD_DELIMITER}"
        f"{format_timestamp(part.timestamp)}{FIELD_DELIMITER}{part.permissions}"
    )


def encode(refname: str, expected_hash: str, parts: Iterable[PartDescriptor]) -> str:
    """Render a pointer record, one metadata line per part, newline-terminated."""
    if not refname:
        raise ValueError("refname must not be empty")
    lines = [f"{HEADER_MARKER}{refname}", f"{HASH_MARKER}{expected_hash}"]
    lines.extend(encode_part(part) for part in parts)
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def parse_timestamp(text: str) -> Timestamp:
    """Parse ``(y, mo, d, h, mi, s)``; raises ValueError unless exactly six ints."""
    text = text.strip()
    if not (text.startswith("(") and text.endswith(")")):
        raise ValueError(f"timestamp must be parenthesized: {text!r}")
    fields = [int(field.strip()) for field in text[1:-1].split(",")]
    if len(fields) != 6:
        raise ValueError(f"expected 6 timestamp values, got {len(fields)}")
    if any(field < 0 for field in fields):
        raise ValueError(f"timestamp values must be unsigned: {text!r}")
    return tuple(fields)  # type: ignore[return-value]


def decode_part(line: str) -> PartDescriptor | None:
    """Decode one metadata line, or log and return None if it is malformed."""
    if not line.startswith(METADATA_MARKER):
        logger.error("Unexpected input line (missing METADATA): %r", line)
        return None
    # Split from the right so part names may contain the delimiter
    fields = line[len(METADATA_MARKER):].rsplit(FIELD_DELIMITER, 2)
    if len(fields) != 3:
        logger.error("Invalid METADATA format (%d fields): %r", len(fields), line)
        return None
    name, timestamp_text, permissions_text = fields
    try:
        timestamp = parse_timestamp(timestamp_text)
    except ValueError as exc:
        logger.error("Invalid datetime for '%s': %s", name, exc)
        return None
    try:
        permissions = int(permissions_text.strip())
    except ValueError:
        logger.warning("Invalid permissions for '%s': %r, using default", name, permissions_text)
        permissions = 0
    try:
        return PartDescriptor(name=name, timestamp=timestamp, permissions=permissions)
    except ValidationError as exc:
        logger.error("Invalid METADATA entry '%s': %s", name, exc.errors()[0]["msg"])
        return None


def decode(text: str) -> PointerRecord:
    """Parse a pointer record.

    Raises
    ------
    IncompletePointerError
        If the first line is not a header or the second is not a hash.
    """
    state = ParseState.HEADER
    refname = ""
    expected_hash = ""
    parts: list[PartDescriptor] = []
    seen: set[str] = set()

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if state is ParseState.HEADER:
            if not line.startswith(HEADER_MARKER):
                raise IncompletePointerError("Missing DOCX-POINTER")
            refname = line[len(HEADER_MARKER):].strip()
            if not refname:
                raise IncompletePointerError("Empty DOCX-POINTER reference")
            state = ParseState.HASH
        elif state is ParseState.HASH:
            if not line.startswith(HASH_MARKER):
                raise IncompletePointerError("Missing HASH")
            expected_hash = line[len(HASH_MARKER):].strip()
            state = ParseState.METADATA
        else:
            if not line:
                continue
            part = decode_part(line)
            if part is None:
                continue
            if part.name in seen:
                logger.error("Duplicate METADATA entry for '%s', keeping the first", part.name)
                continue
            seen.add(part.name)
            parts.append(part)

    if state is ParseState.HEADER:
        raise IncompletePointerError("Missing DOCX-POINTER")
    if state is ParseState.HASH:
        raise IncompletePointerError("Missing HASH")

    logger.info("Parsed %d metadata entries", len(parts))
    return PointerRecord(refname=refname, expected_hash=expected_hash, parts=tuple(parts))


def read_refname(text: str) -> str | None:
    """Return the reference named by a pointer's header line, if any.

    Like :func:`decode`, only the first line can carry the header.
    """
    lines = text.splitlines()
    if not lines:
        return None
    first = lines[0].strip()
    if not first.startswith(HEADER_MARKER):
        return None
    return first[len(HEADER_MARKER):].strip() or None
