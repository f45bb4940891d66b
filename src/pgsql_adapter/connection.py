"""
PostgreSQL connection handling over libpq.

This module provides:
1. The `connect()` function for creating new connections from options
2. The `Connection` class: lazy link lifecycle, statement preparation,
   value quoting, schema introspection, insert/sequence helpers and
   transaction commands
3. An exit hook that closes connections still open at interpreter shutdown

A Connection owns exactly one libpq link and at most one live statement;
preparing a statement closes the previous one.
"""
import atexit
import logging
import weakref
from collections.abc import Mapping
from dataclasses import fields
from typing import Any, Self

from pgsql_adapter import schema
from pgsql_adapter.client import PgClient
from pgsql_adapter.exceptions import ConfigurationError, ConnectionFailure
from pgsql_adapter.exceptions import StatementError
from pgsql_adapter.options import AdapterOptions, FetchMode, resolve_fetch_mode
from pgsql_adapter.sql import build_insert_sql, count_placeholders, limit
from pgsql_adapter.sql import quote_identifier, quote_value, sequence_name
from pgsql_adapter.sql import substitute_placeholders
from pgsql_adapter.statement import PgsqlStatement, Statement
from pgsql_adapter.transaction import Transaction
from pgsql_adapter.types import TypeConverter

from libb import load_options

__all__ = [
    'Connection',
    'connect',
    'close_all_connections',
]

logger = logging.getLogger(__name__)

_open_connections: 'weakref.WeakSet[Connection]' = weakref.WeakSet()


def close_all_connections() -> None:
    """Close every connection that still holds a link.
    """
    for cn in list(_open_connections):
        cn.close()
    logger.debug('All connections closed')


atexit.register(close_all_connections)


class Connection:
    """Adapter connection to one PostgreSQL database.

    The link is opened lazily, on the first operation that needs the server
    (preparing a statement, quoting a value, a transaction command).

    The statement implementation is chosen here, once, through
    `statement_class`; it must subclass `Statement`.
    """

    def __init__(self, options: AdapterOptions, client: PgClient | None = None,
                 statement_class: type[Statement] = PgsqlStatement) -> None:
        if not (isinstance(statement_class, type) and issubclass(statement_class, Statement)):
            raise ConfigurationError(f'{statement_class!r} is not a Statement implementation')
        self.options = options
        self.fetch_mode = options.fetch_mode
        self.last_id: Any = None
        self.in_transaction = False
        self.calls = 0
        self.time = 0
        self._client = client
        self._link: Any = None
        self._statement_class = statement_class
        self._stmt: Statement | None = None

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the link when exiting the context manager
        """
        self.close()

    @property
    def client(self) -> PgClient:
        """Native client, loaded on first use."""
        if self._client is None:
            self._client = PgClient()
        return self._client

    @property
    def link(self) -> Any:
        """The libpq link, established if needed."""
        self._connect()
        return self._link

    @property
    def is_connected(self) -> bool:
        return self._link is not None

    def connect(self) -> Self:
        """Establish the link now rather than on first use."""
        self._connect()
        return self

    def _connect(self) -> None:
        if self._link is not None:
            return

        client = self.client
        link = client.connect(**self.options.conninfo_params())
        if not client.is_connected(link):
            error = client.last_error(link)
            client.close(link)
            raise ConnectionFailure(error or f'Could not connect to {self.options.hostname}:{self.options.port}')

        self._link = link
        _open_connections.add(self)
        logger.debug(f'Connected to {self.options.hostname}:{self.options.port}/{self.options.database}')

        if self.options.charset:
            self._set_charset(self.options.charset)

    def _set_charset(self, charset: str) -> None:
        client = self.client
        result = client.query(self._link, f'SET NAMES {self.quote(charset)}')
        if not client.result_ok(result):
            error = client.result_error(result) or client.last_error(self._link)
            logger.warning(f'Could not set client encoding to {charset}: {error}')
        client.free_result(result)

    def close(self) -> None:
        """Close the current statement and the link. Safe to call repeatedly.
        """
        if self._stmt is not None:
            self._stmt.close()
            self._stmt = None
        if self._link is not None:
            self.client.close(self._link)
            self._link = None
            _open_connections.discard(self)
            self.in_transaction = False
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def last_error(self) -> str:
        """Error text most recently reported on the link."""
        if self._link is None:
            return ''
        return self.client.last_error(self._link)

    def server_version(self) -> str | None:
        """Server version as `major.minor`, None when not connected."""
        if self._link is None:
            return None
        version = self.client.server_version(self._link)
        if version >= 100000:
            return f'{version // 10000}.{version % 10000}'
        return f'{version // 10000}.{version // 100 % 100}.{version % 100}'

    def set_fetch_mode(self, mode: FetchMode | str) -> None:
        """Set the default row shape for statements prepared from now on.
        """
        self.fetch_mode = resolve_fetch_mode(mode)

    def supports_parameters(self, kind: str) -> bool:
        """Only positional (`?`) parameters are supported."""
        return kind == 'positional'

    # Statements

    def prepare(self, sql: str) -> Statement:
        """Create a statement for `sql`, closing the previous one.
        """
        self._connect()
        if self._stmt is not None:
            self._stmt.close()
        stmt = self._statement_class(self, sql)
        self._stmt = stmt
        return stmt

    def query(self, sql: str, *args: Any) -> Statement:
        """Prepare and execute `sql` with positional parameters.
        """
        stmt = self.prepare(sql)
        stmt.execute(list(args) if args else None)
        return stmt

    def fetch_all(self, sql: str, *args: Any, mode: FetchMode | str | None = None) -> list[Any]:
        """Execute a query and return every row.
        """
        return self.query(sql, *args).fetch_all(mode)

    def fetch_row(self, sql: str, *args: Any, mode: FetchMode | str | None = None) -> Any:
        """Execute a query and return its first row, or None.
        """
        return self.query(sql, *args).fetch(mode)

    def fetch_col(self, sql: str, *args: Any) -> list[Any]:
        """Execute a query and return the first column as a list.
        """
        return [row[0] for row in self.query(sql, *args).fetch_all(FetchMode.NUM)]

    def fetch_one(self, sql: str, *args: Any) -> Any:
        """Execute a query and return the first column of the first row.
        """
        return self.query(sql, *args).fetch_column(0)

    def fetch_pairs(self, sql: str, *args: Any) -> dict[Any, Any]:
        """Execute a query and map its first column to its second.
        """
        return {row[0]: row[1] for row in self.query(sql, *args).fetch_all(FetchMode.NUM)}

    # Quoting

    def quote(self, value: Any) -> Any:
        """Escape a value for inlining into SQL text.

        Numbers come back unchanged, None becomes NULL, everything else is
        escaped by libpq and single-quoted. Connects first: escaping depends
        on the link's client encoding.
        """
        self._connect()
        client, link = self.client, self._link
        return quote_value(
            TypeConverter.convert_params(value),
            lambda text: client.escape_string(link, text),
            lambda data: client.escape_bytea(link, data),
        )

    def quote_into(self, text: str, value: Any) -> str:
        """Quote `value` into every placeholder of `text`.
        """
        token = self.quote(value)
        return substitute_placeholders(text, [token] * count_placeholders(text))

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier)

    def limit(self, sql: str, count: int, offset: int = 0) -> str:
        """Append a LIMIT/OFFSET clause to `sql`.
        """
        return limit(sql, count, offset)

    # Schema

    def describe_table(self, table: str, schema_name: str | None = None) -> dict[str, schema.ColumnDescriptor]:
        """Column descriptors for `table`, keyed by case-folded column name.
        """
        return schema.describe_table(self, table, schema_name)

    def list_tables(self, schema_name: str | None = None) -> list[str]:
        return schema.list_tables(self, schema_name)

    def primary_key_name(self, table: str) -> str:
        return schema.primary_key_name(self, table)

    # Insert and sequences

    def insert(self, table: str, bind: Mapping[str, Any]) -> Any:
        """Insert one row and return its generated key.

        The INSERT asks the server to return the primary-key column (the row
        identifier when the table has no primary key). The value is also
        kept as `last_id` for last_insert_id().
        """
        returning = self.primary_key_name(table)
        sql, params = build_insert_sql(table, bind, returning)
        row = self.query(sql, *params).fetch(FetchMode.NUM)
        self.last_id = row[0] if row else None
        logger.debug(f'Inserted into {table} returning {returning}={self.last_id}')
        return self.last_id

    def last_insert_id(self, table: str | None = None, primary_key: str | None = None) -> Any:
        """Last generated id.

        Without a table this is the value returned by the last insert() on
        this connection. With a table it is the current value of the
        conventional sequence `table[_primary_key]_seq`, a separate lookup.
        """
        if table is not None:
            return self.last_sequence_id(sequence_name(table, primary_key))
        return self.last_id

    def last_sequence_id(self, name: str) -> Any:
        """Current value of a sequence in this session (currval).
        """
        self._connect()
        return self.fetch_one('SELECT CURRVAL(?)', name)

    def next_sequence_id(self, name: str) -> Any:
        """Advance a sequence and return the new value (nextval).
        """
        self._connect()
        return self.fetch_one('SELECT NEXTVAL(?)', name)

    # Transactions

    def _transaction_command(self, command: str) -> bool:
        """Send a transaction command outside the statement lifecycle.

        Failures are logged and ignored unless strict_transactions is set.
        """
        client, link = self.client, self.link
        result = client.query(link, command)
        ok = client.result_ok(result)
        error = '' if ok else (client.result_error(result) or client.last_error(link))
        client.free_result(result)
        if ok:
            return True
        if self.options.strict_transactions:
            raise StatementError(f'{command} failed: {error}')
        logger.warning(f'Ignoring failed {command} {error}')
        return False

    def begin_transaction(self) -> bool:
        ok = self._transaction_command('BEGIN;')
        self.in_transaction = ok
        return ok

    def commit(self) -> bool:
        ok = self._transaction_command('COMMIT;')
        self.in_transaction = False
        return ok

    def rollback(self) -> bool:
        ok = self._transaction_command('ROLLBACK;')
        self.in_transaction = False
        return ok

    def transaction(self) -> Transaction:
        """Context manager committing on success, rolling back on error.
        """
        return Transaction(self)


@load_options(cls=AdapterOptions)
def connect(options: AdapterOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Connection:
    """Create a connection from options.

    Args:
        options: Can be:
                - AdapterOptions object
                - String name of a Setting in `config`
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    The link itself is opened on first use; call `connect()` on the returned
    Connection to open it eagerly.

    Returns
        Connection
    """
    if isinstance(options, AdapterOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=AdapterOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    return Connection(options)
