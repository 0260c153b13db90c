"""
Sync Error Types

Tagged exception hierarchy for the schema sync. Each failure class maps to
one recovery behavior:

- ConfigurationError: raised before any engine call, the run never starts
- ConnectivityError: an engine cannot be reached (or was lost), the run aborts
- MetadataError: a catalog query failed, the run aborts
- TransferError: drop/create/export/import failed for one table, the run
  continues with the next table
"""

from typing import Optional

from mysql.connector import errorcode
import mysql.connector


# Client/server error codes that mean the session is gone, not that the
# statement was bad
CONNECTION_ERROR_CODES = frozenset({
    errorcode.CR_CONNECTION_ERROR,
    errorcode.CR_CONN_HOST_ERROR,
    errorcode.CR_SERVER_GONE_ERROR,
    errorcode.CR_SERVER_LOST,
    errorcode.CR_SERVER_LOST_EXTENDED,
    errorcode.ER_SERVER_SHUTDOWN,
})


class SyncError(Exception):
    """Base class for all sync failures."""

    kind = "sync"

    def __init__(self, message: str, table: Optional[str] = None, phase: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.table = table
        self.phase = phase

    def __str__(self) -> str:
        parts = []
        if self.table:
            parts.append(f"table={self.table}")
        if self.phase:
            parts.append(f"phase={self.phase}")
        if parts:
            return f"[{self.kind}] {self.message} ({', '.join(parts)})"
        return f"[{self.kind}] {self.message}"


class ConfigurationError(SyncError):
    """Missing or ambiguous configuration."""

    kind = "configuration"


class ConnectivityError(SyncError):
    """Source or target engine unreachable."""

    kind = "connectivity"


class MetadataError(SyncError):
    """Catalog query failed."""

    kind = "metadata"


class TransferError(SyncError):
    """A single table's transfer failed."""

    kind = "transfer"

    def __init__(self, message: str, table: str, phase: str):
        super().__init__(message, table=table, phase=phase)


def is_connection_error(exc: BaseException) -> bool:
    """
    Check whether a driver exception means the connection itself failed.

    InterfaceError covers failures raised by the client before or outside a
    server round trip (socket refused, handshake failure). Anything else is
    classified by errno.
    """
    if isinstance(exc, ConnectivityError):
        return True
    if isinstance(exc, mysql.connector.InterfaceError):
        return True
    errno = getattr(exc, 'errno', None)
    return errno in CONNECTION_ERROR_CODES
