"""
Procedural native client over libpq, reached through `psycopg.pq`.

libpq is driven through its simple query path (PQexec) only: the adapter sends
finished SQL text and reads text-format results. This module is the narrow
seam between the adapter and the library:

- connect / close / last_error: link lifecycle
- escape_string / escape_bytea: connection-aware literal escaping
- query: run SQL text, returning a NativeResult
- fetch_row / fetch_assoc / fetch_object: read the next row in three shapes
- free_result / affected_rows / num_fields / num_rows: result bookkeeping
"""
import importlib
import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Any

from pgsql_adapter.exceptions import ConfigurationError
from pgsql_adapter.types import load_value

from libb import attrdict

logger = logging.getLogger(__name__)

__all__ = ['PgClient', 'NativeResult', 'load_native_client']


def load_native_client() -> ModuleType:
    """Import psycopg and its libpq binding.

    Raises
        ConfigurationError: psycopg is not installed or libpq cannot be loaded
    """
    try:
        return importlib.import_module('psycopg')
    except ImportError as exc:
        raise ConfigurationError(
            f'The psycopg libpq binding is required for this adapter but could not be loaded: {exc}'
        ) from exc


@dataclass
class NativeResult:
    """Result handle with its own read cursor.

    libpq results are random access; `position` is the next row that a
    fetch_* call will return.
    """
    pgresult: Any
    encoding: str = 'utf-8'
    position: int = 0

    @property
    def freed(self) -> bool:
        return self.pgresult is None


class PgClient:
    """libpq entry points used by the adapter.
    """

    def __init__(self) -> None:
        self.psycopg = load_native_client()
        self.pq = self.psycopg.pq
        self._conninfo = importlib.import_module('psycopg.conninfo')
        self._encodings = importlib.import_module('psycopg._encodings')
        logger.debug(f'Loaded libpq {self.pq.version()} ({self.pq.__impl__} wrapper)')

    def connect(self, **params: Any) -> Any:
        """Open a link; check it with is_connected, libpq reports failure
        through the link status rather than by raising.
        """
        conninfo = self._conninfo.make_conninfo('', **params)
        return self.pq.PGconn.connect(conninfo.encode())

    def is_connected(self, link: Any) -> bool:
        return link is not None and link.status == self.pq.ConnStatus.OK

    def close(self, link: Any) -> None:
        if link is not None:
            link.finish()

    def last_error(self, link: Any) -> str:
        if link is None:
            return ''
        return link.error_message.decode('utf-8', 'replace').strip()

    def encoding(self, link: Any) -> str:
        """Python codec of the link's client encoding, utf-8 when the server
        has not reported one.
        """
        name = link.parameter_status(b'client_encoding')
        if not name:
            return 'utf-8'
        return self._encodings.pg2pyenc(name)

    def server_version(self, link: Any) -> int:
        return link.server_version

    def escape_string(self, link: Any, text: str) -> str:
        """Escape text for use inside single quotes (PQescapeStringConn)."""
        encoding = self.encoding(link)
        escaped = self.pq.Escaping(link).escape_string(text.encode(encoding))
        return escaped.decode(encoding)

    def escape_bytea(self, link: Any, data: bytes) -> str:
        """Escape binary data for use inside single quotes (PQescapeByteaConn)."""
        return self.pq.Escaping(link).escape_bytea(data).decode('ascii')

    def query(self, link: Any, sql: str) -> NativeResult | None:
        """Run SQL text. Returns None when libpq produced no result at all,
        in which case the error is only available from last_error.
        """
        encoding = self.encoding(link)
        try:
            pgresult = link.exec_(sql.encode(encoding))
        except self.psycopg.OperationalError as exc:
            logger.debug(f'libpq returned no result: {exc}')
            return None
        return NativeResult(pgresult, encoding)

    def result_ok(self, result: NativeResult | None) -> bool:
        if result is None or result.freed:
            return False
        return result.pgresult.status in {
            self.pq.ExecStatus.COMMAND_OK,
            self.pq.ExecStatus.TUPLES_OK,
            self.pq.ExecStatus.EMPTY_QUERY,
            }

    def result_error(self, result: NativeResult | None) -> str:
        if result is None or result.freed:
            return ''
        return result.pgresult.error_message.decode(result.encoding, 'replace').strip()

    def free_result(self, result: NativeResult | None) -> bool:
        if result is None or result.freed:
            return False
        result.pgresult.clear()
        result.pgresult = None
        return True

    def num_fields(self, result: NativeResult) -> int:
        return result.pgresult.nfields

    def num_rows(self, result: NativeResult) -> int:
        return result.pgresult.ntuples

    def affected_rows(self, result: NativeResult) -> int:
        """Rows affected by a write, or returned by a SELECT (PQcmdTuples)."""
        return result.pgresult.command_tuples or 0

    def field_names(self, result: NativeResult) -> list[str]:
        res = result.pgresult
        return [res.fname(i).decode(result.encoding) for i in range(res.nfields)]

    def _next_values(self, result: NativeResult | None) -> list[Any] | None:
        if result is None or result.freed:
            return None
        res = result.pgresult
        if result.position >= res.ntuples:
            return None
        row = result.position
        result.position += 1
        return [load_value(res.get_value(row, col), res.ftype(col), result.encoding)
                for col in range(res.nfields)]

    def fetch_row(self, result: NativeResult | None) -> tuple | None:
        values = self._next_values(result)
        return tuple(values) if values is not None else None

    def fetch_assoc(self, result: NativeResult | None) -> dict[str, Any] | None:
        values = self._next_values(result)
        if values is None:
            return None
        return dict(zip(self.field_names(result), values))

    def fetch_object(self, result: NativeResult | None) -> attrdict | None:
        row = self.fetch_assoc(result)
        return attrdict(row) if row is not None else None
