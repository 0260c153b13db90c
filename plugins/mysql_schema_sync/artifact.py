"""
Transfer Artifact Format

One table's rows are written to a delimited text file that LOAD DATA reads
back with its default layout:

    FIELDS TERMINATED BY '\\t' ESCAPED BY '\\\\' LINES TERMINATED BY '\\n'

- NULL is written as \\N, so it stays distinct from the empty string
- backslash, tab, newline, carriage return, NUL and Ctrl-Z are escaped
- binary columns hold hex payloads (see binary_codec), never escaped bytes

Files are written in binary mode so byte values from the server's raw
protocol pass through untouched.
"""

from datetime import date, datetime, time as dt_time, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence
import logging
import math
import os
import re

from mysql_schema_sync.binary_codec import decode_binary, encode_binary

logger = logging.getLogger(__name__)

NULL_MARKER = b'\\N'
FIELD_SEPARATOR = b'\t'
LINE_SEPARATOR = b'\n'

_ESCAPES = {
    b'\\': b'\\\\',
    b'\t': b'\\t',
    b'\n': b'\\n',
    b'\r': b'\\r',
    b'\x00': b'\\0',
    b'\x1a': b'\\Z',
}
_ESCAPE_PATTERN = re.compile(rb'[\\\t\n\r\x00\x1a]')

_UNESCAPES = {
    ord('0'): b'\x00',
    ord('b'): b'\x08',
    ord('n'): b'\n',
    ord('r'): b'\r',
    ord('t'): b'\t',
    ord('Z'): b'\x1a',
}


def escape_bytes(data: bytes) -> bytes:
    """Escape bytes that would otherwise be read as delimiters or escapes."""
    return _ESCAPE_PATTERN.sub(lambda m: _ESCAPES[m.group(0)], data)


def unescape_bytes(data: bytes) -> bytes:
    """Reverse escape_bytes(); an escaped character not in the table maps to itself."""
    if b'\\' not in data:
        return data
    out = bytearray()
    i = 0
    length = len(data)
    while i < length:
        byte = data[i]
        if byte == 0x5C and i + 1 < length:
            nxt = data[i + 1]
            out += _UNESCAPES.get(nxt, bytes([nxt]))
            i += 2
            continue
        out.append(byte)
        i += 1
    return bytes(out)


def _format_timedelta(value: timedelta) -> str:
    """Render a TIME value the way MySQL prints it ([-]H:MM:SS[.ffffff])."""
    total_us = (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds
    sign = '-' if total_us < 0 else ''
    total_us = abs(total_us)
    seconds, micro = divmod(total_us, 1_000_000)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    text = f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"
    if micro:
        text += f".{micro:06d}"
    return text


def format_value(value: Any, binary: bool = False) -> bytes:
    """
    Render one field for the artifact.

    Args:
        value: Column value as returned by the driver (raw bytes or typed)
        binary: Whether the column is binary-bearing

    Returns:
        Escaped field bytes (no separators)
    """
    if value is None:
        return NULL_MARKER

    if binary:
        return encode_binary(value)

    if isinstance(value, (bytes, bytearray, memoryview)):
        return escape_bytes(bytes(value))
    if isinstance(value, str):
        return escape_bytes(value.encode('utf-8'))
    if isinstance(value, bool):
        return b'1' if value else b'0'
    if isinstance(value, int):
        return str(value).encode('ascii')
    if isinstance(value, float):
        if not math.isfinite(value):
            return NULL_MARKER
        return repr(value).encode('ascii')
    if isinstance(value, Decimal):
        return str(value).encode('ascii')
    if isinstance(value, datetime):
        return value.isoformat(sep=' ').encode('ascii')
    if isinstance(value, (date, dt_time)):
        return value.isoformat().encode('ascii')
    if isinstance(value, timedelta):
        return _format_timedelta(value).encode('ascii')
    if isinstance(value, (set, frozenset)):
        return escape_bytes(','.join(sorted(str(v) for v in value)).encode('utf-8'))

    return escape_bytes(str(value).encode('utf-8'))


def format_row(row: Sequence[Any], binary_mask: Sequence[bool]) -> bytes:
    """Render one row as a complete artifact line."""
    if len(row) != len(binary_mask):
        raise ValueError(
            f"Row has {len(row)} fields but the projection has {len(binary_mask)} columns"
        )
    return FIELD_SEPARATOR.join(
        format_value(value, is_bin) for value, is_bin in zip(row, binary_mask)
    ) + LINE_SEPARATOR


def write_artifact(path: Path, rows: Iterable[Sequence[Any]], binary_mask: Sequence[bool]) -> int:
    """
    Write rows to an artifact file, replacing any previous (partial) file.

    The file is flushed and fsynced before returning.

    Returns:
        Number of rows written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(path, 'wb') as handle:
        for row in rows:
            handle.write(format_row(row, binary_mask))
            count += 1
        handle.flush()
        os.fsync(handle.fileno())

    logger.debug(f"Wrote {count:,} rows to {path}")
    return count


def parse_line(line: bytes, binary_mask: Sequence[bool]) -> List[Optional[bytes]]:
    """
    Parse one artifact line (without its terminator) back into field bytes.

    Binary columns are hex-decoded; other columns are returned as the raw
    bytes that LOAD DATA would see. NULL fields become None.
    """
    fields = line.split(FIELD_SEPARATOR)
    if len(fields) != len(binary_mask):
        raise ValueError(
            f"Line has {len(fields)} fields but the projection has {len(binary_mask)} columns"
        )

    values: List[Optional[bytes]] = []
    for field, is_bin in zip(fields, binary_mask):
        if field == NULL_MARKER:
            values.append(None)
        elif is_bin:
            values.append(decode_binary(unescape_bytes(field)))
        else:
            values.append(unescape_bytes(field))
    return values


def read_artifact(path: Path, binary_mask: Sequence[bool]) -> Iterator[List[Optional[bytes]]]:
    """Iterate over the rows of an artifact file."""
    with open(path, 'rb') as handle:
        data = handle.read()

    if not data:
        return
    if data.endswith(LINE_SEPARATOR):
        data = data[:-1]
    for line in data.split(LINE_SEPARATOR):
        yield parse_line(line, binary_mask)
