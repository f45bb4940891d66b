"""
PostgreSQL adapter over libpq's simple query protocol.

All query operations can be called either as:
- Module functions: db.select(cn, sql, *args)
- Connection methods: cn.fetch_all(sql, *args)

Parameters use positional `?` placeholders. Values are escaped by libpq and
inlined into the SQL text before it is sent.
"""
__version__ = '0.1.0'

from typing import Any

from pgsql_adapter.connection import Connection, close_all_connections, connect
from pgsql_adapter.exceptions import ConfigurationError, ConnectionFailure
from pgsql_adapter.exceptions import DatabaseError, StatementError
from pgsql_adapter.exceptions import UnsupportedError, ValidationError
from pgsql_adapter.options import AdapterOptions, CaseFolding, FetchMode
from pgsql_adapter.row import BoundValue, Row
from pgsql_adapter.schema import ColumnDescriptor
from pgsql_adapter.sql import Expr, limit
from pgsql_adapter.statement import PgsqlStatement, Statement
from pgsql_adapter.transaction import Transaction as transaction


def execute(cn: Connection, sql: str, *args: Any) -> int:
    """Execute a SQL statement and return the affected row count.
    """
    return cn.query(sql, *args).row_count() or 0


def select(cn: Connection, sql: str, *args: Any) -> list[dict[str, Any]]:
    """Execute a query and return all rows as dicts.
    """
    return cn.fetch_all(sql, *args, mode=FetchMode.ASSOC)


def select_row(cn: Connection, sql: str, *args: Any) -> Any:
    """Execute a query and return a single row as an attribute dictionary.

    Raises ValidationError if the query returns zero or multiple rows.
    """
    rows = cn.fetch_all(sql, *args, mode=FetchMode.OBJ)
    if len(rows) != 1:
        raise ValidationError(f'Expected one row, got {len(rows)}')
    return rows[0]


def select_scalar(cn: Connection, sql: str, *args: Any) -> Any:
    """Execute a query and return a single scalar value.

    Raises ValidationError if the query returns zero or multiple rows.
    """
    rows = cn.fetch_all(sql, *args, mode=FetchMode.NUM)
    if len(rows) != 1:
        raise ValidationError(f'Expected one row, got {len(rows)}')
    return rows[0][0]


def insert(cn: Connection, table: str, bind: dict[str, Any]) -> Any:
    """Insert a row and return its generated key.
    """
    return cn.insert(table, bind)


def describe_table(cn: Connection, table: str, schema: str | None = None) -> dict[str, ColumnDescriptor]:
    """Describe the columns of a table.
    """
    return cn.describe_table(table, schema)


def list_tables(cn: Connection, schema: str | None = None) -> list[str]:
    """List the user tables of the database.
    """
    return cn.list_tables(schema)


__all__ = [
    'connect',
    'close_all_connections',
    'Connection',
    'AdapterOptions',
    'FetchMode',
    'CaseFolding',
    'Statement',
    'PgsqlStatement',
    'Row',
    'BoundValue',
    'ColumnDescriptor',
    'Expr',
    'transaction',
    'execute',
    'select',
    'select_row',
    'select_scalar',
    'insert',
    'describe_table',
    'list_tables',
    'limit',
    'DatabaseError',
    'ConfigurationError',
    'ConnectionFailure',
    'StatementError',
    'UnsupportedError',
    'ValidationError',
]
