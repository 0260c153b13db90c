"""
Binary Column Codec

Binary-bearing columns (BLOB variants, BINARY/VARBINARY, BIT) are carried
through the text artifact as hex payloads. On reload each one is bound to a
session variable and decoded into the real column with UNHEX(), so embedded
tab, newline, backslash, or NUL bytes can never be read as delimiters.

LOAD DATA binds fields to targets by position, not by name, so the
projection is always emitted in strict ordinal order.
"""

from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple, TYPE_CHECKING

from mysql_schema_sync.sql_utils import quote_identifier

if TYPE_CHECKING:
    from mysql_schema_sync.catalog import ColumnDescriptor

BINARY_TYPES = frozenset({
    'tinyblob',
    'blob',
    'mediumblob',
    'longblob',
    'binary',
    'varbinary',
    'bit',
})


def is_binary_type(data_type: str) -> bool:
    """
    Check whether a declared column type carries arbitrary bytes.

    Examples:
        >>> is_binary_type("VARBINARY(16)")
        True
        >>> is_binary_type("varchar")
        False
    """
    if not data_type:
        return False
    base = data_type.strip().lower().split('(', 1)[0].split()[0]
    return base in BINARY_TYPES


def encode_binary(value: Any) -> bytes:
    """
    Encode a binary column value as an ASCII hex payload.

    Typed cursors return BIT columns as int; raw cursors return bytes.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex().encode('ascii')
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Cannot encode negative value {value} as binary")
        length = max(1, (value.bit_length() + 7) // 8)
        return value.to_bytes(length, 'big').hex().encode('ascii')
    if isinstance(value, str):
        return value.encode('utf-8').hex().encode('ascii')
    raise TypeError(f"Cannot encode {type(value).__name__} as binary")


def decode_binary(payload: bytes) -> bytes:
    """Decode a hex payload back to the original bytes."""
    if isinstance(payload, (bytes, bytearray)):
        payload = bytes(payload).decode('ascii')
    return bytes.fromhex(payload)


@dataclass(frozen=True)
class LoadProjection:
    """Column handling for one table's export and reload."""

    columns: Tuple[str, ...]
    binary_mask: Tuple[bool, ...]
    targets: Tuple[str, ...]
    assignments: Tuple[str, ...]

    @property
    def binary_columns(self) -> List[str]:
        return [name for name, is_bin in zip(self.columns, self.binary_mask) if is_bin]


def build_load_projection(columns: Sequence['ColumnDescriptor']) -> LoadProjection:
    """
    Build the export column list and LOAD DATA projection for a table.

    Args:
        columns: Column descriptors of the table

    Returns:
        LoadProjection with:
        - columns: names exported, in ordinal order (generated columns dropped)
        - binary_mask: per exported column, whether it is hex-encoded
        - targets: LOAD DATA column list (quoted names or @hex_N variables)
        - assignments: SET expressions decoding each @hex_N variable
    """
    ordered = sorted(columns, key=lambda col: col.ordinal_position)

    names: List[str] = []
    mask: List[bool] = []
    targets: List[str] = []
    assignments: List[str] = []

    for col in ordered:
        if col.is_generated:
            continue
        binary = is_binary_type(col.data_type)
        names.append(col.name)
        mask.append(binary)
        if binary:
            variable = f"@hex_{len(names)}"
            targets.append(variable)
            assignments.append(f"{quote_identifier(col.name)} = UNHEX({variable})")
        else:
            targets.append(quote_identifier(col.name))

    return LoadProjection(
        columns=tuple(names),
        binary_mask=tuple(mask),
        targets=tuple(targets),
        assignments=tuple(assignments),
    )
