"""
Statement lifecycle for a server without bound-parameter execution.

A statement moves through

    UNPREPARED → PREPARED → EXECUTED (repeatable) → CLOSED

`Statement` holds the bookkeeping every implementation shares (bound
parameters, bound columns, fetch mode, iteration); `PgsqlStatement` emulates
parameterized execution on libpq by escaping each value and substituting it
into the template text before sending it.
"""
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from enum import Enum, auto
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

from pgsql_adapter.exceptions import ConfigurationError, StatementError
from pgsql_adapter.exceptions import UnsupportedError, ValidationError
from pgsql_adapter.options import FetchMode
from pgsql_adapter.row import BoundValue, Row
from pgsql_adapter.sql import substitute_placeholders

if TYPE_CHECKING:
    from pgsql_adapter.client import NativeResult
    from pgsql_adapter.connection import Connection

logger = logging.getLogger(__name__)

__all__ = ['Statement', 'PgsqlStatement', 'StatementState']


class StatementState(Enum):
    UNPREPARED = auto()
    PREPARED = auto()
    EXECUTED = auto()
    CLOSED = auto()


def dumpsql(func):
    """Decorator for logging statement SQL, parameters and timing."""
    @wraps(func)
    def wrapper(self, params: Sequence[Any] | None = None):
        start = time.time()
        logger.debug(f'SQL:\n{self.sql}\nargs: {params}')
        try:
            return func(self, params)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{self.sql}\nargs: {params}')
            raise
        finally:
            elapsed = time.time() - start
            self.connection.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class Statement(ABC):
    """Base statement bound to one connection.

    The connection is shared, not owned: a statement never outlives it, and
    the connection closes its previous statement when preparing a new one.
    """

    def __init__(self, connection: 'Connection', sql: str) -> None:
        self.connection = connection
        self.sql = ''
        self.state = StatementState.UNPREPARED
        self._fetch_mode: FetchMode = connection.fetch_mode
        self._bound_params: dict[int, Any] = {}
        self._bound_columns: dict[str | int, BoundValue] = {}
        self.prepare(sql)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __iter__(self) -> Iterator[Any]:
        while (row := self.fetch()) is not None:
            yield row

    def prepare(self, sql: str) -> bool:
        """Store the SQL template. Nothing is sent to the server.
        """
        if not sql:
            return False
        self.sql = sql
        self.state = StatementState.PREPARED
        return True

    @property
    def fetch_mode(self) -> FetchMode:
        return self._fetch_mode

    def set_fetch_mode(self, mode: FetchMode | str) -> None:
        """Set the default row shape for fetch calls on this statement."""
        try:
            self._fetch_mode = FetchMode(mode)
        except ValueError:
            raise ConfigurationError(f"Invalid fetch mode '{mode}' specified")

    def _check_parameter(self, parameter: int | str) -> int:
        if isinstance(parameter, str) and not parameter.isdigit():
            raise UnsupportedError(f"Invalid bind-variable name '{parameter}': named parameters are not supported")
        position = int(parameter)
        if position < 1:
            raise ValidationError(f'Invalid bind-variable position {parameter}')
        return position

    def bind_param(self, parameter: int | str, variable: Any, type: Any = None,
                   length: int | None = None, options: Any = None) -> bool:
        """Bind a value to a 1-based placeholder position.

        Values are only ever sent in bulk at execute time; binding records the
        value for an execute() called without parameters.
        """
        position = self._check_parameter(parameter)
        self._bound_params[position] = variable
        return self._bind_param(position, variable, type, length, options)

    def bind_value(self, parameter: int | str, value: Any, type: Any = None) -> bool:
        return self.bind_param(parameter, value, type)

    def _bind_param(self, position: int, variable: Any, type: Any = None,
                    length: int | None = None, options: Any = None) -> bool:
        return True

    def bind_column(self, column: str | int, target: BoundValue | None = None) -> BoundValue:
        """Register a target filled from `column` on every FetchMode.BOUND
        fetch. Integer columns are 1-based positions.
        """
        target = target if target is not None else BoundValue()
        self._bound_columns[column] = target
        return target

    def _fetch_bound(self, row: Row) -> Row:
        for column, target in self._bound_columns.items():
            if isinstance(column, int):
                target.value = row.by_position(column - 1)
            else:
                target.value = row.get(column)
        return row

    def _bulk_params(self, params: Sequence[Any] | None) -> Sequence[Any] | None:
        if isinstance(params, Mapping):
            raise UnsupportedError('Named parameters are not supported, pass a sequence')
        if params is None and self._bound_params:
            params = [self._bound_params[k] for k in sorted(self._bound_params)]
        return params

    @dumpsql
    def execute(self, params: Sequence[Any] | None = None) -> bool:
        """Execute the prepared template.

        Falls back to parameters bound with bind_param/bind_value when
        `params` is None. Returns False when nothing is prepared.
        """
        return self._execute(self._bulk_params(params))

    def fetch_all(self, mode: FetchMode | str | None = None) -> list[Any]:
        """Fetch every remaining row."""
        rows = []
        while (row := self.fetch(mode)) is not None:
            rows.append(row)
        return rows

    def fetch_column(self, col: int = 0) -> Any:
        """Single column value from the next row, None when exhausted."""
        row = self.fetch(FetchMode.NUM)
        if row is None:
            return None
        return row[col]

    def fetch_object(self) -> Any:
        """Next row with one attribute per column."""
        return self.fetch(FetchMode.OBJ)

    @abstractmethod
    def _execute(self, params: Sequence[Any] | None) -> bool:
        """Send the template with `params` substituted."""

    @abstractmethod
    def fetch(self, mode: FetchMode | str | None = None) -> Any:
        """Return the next row in the requested shape, or None."""

    @abstractmethod
    def close(self) -> bool:
        """Release the result and the template."""

    @abstractmethod
    def close_cursor(self) -> bool:
        """Release the result, keeping the template for re-execution."""

    @abstractmethod
    def column_count(self) -> int:
        """Number of columns in the last result."""

    @abstractmethod
    def row_count(self) -> int | None:
        """Rows affected or returned by the last execution."""

    @abstractmethod
    def next_rowset(self) -> bool:
        """Advance to the next result set."""

    @abstractmethod
    def error_code(self) -> str | None:
        """Error code of the last operation."""

    @abstractmethod
    def error_info(self) -> tuple[int, str] | None:
        """Error details of the last operation."""


class PgsqlStatement(Statement):
    """Statement executed through libpq's simple query protocol.

    Every parameter is escaped by the connection and substituted into the
    template, so the text the server receives holds literals, never
    parameter markers.
    """

    def __init__(self, connection: 'Connection', sql: str) -> None:
        self._result: NativeResult | None = None
        self._column_count = 0
        self._row_count = 0
        super().__init__(connection, sql)

    def _execute(self, params: Sequence[Any] | None) -> bool:
        if not self.sql:
            return False

        sql = self.sql
        if params:
            sql = substitute_placeholders(sql, [self.connection.quote(v) for v in params])

        client = self.connection.client
        link = self.connection.link
        self.close_cursor()

        result = client.query(link, sql)
        if not client.result_ok(result):
            error = client.result_error(result) or client.last_error(link)
            client.free_result(result)
            raise StatementError(f'PGSql statement execute error : {error}')

        self._result = result
        self._column_count = client.num_fields(result)
        self._row_count = client.affected_rows(result)
        self.state = StatementState.EXECUTED
        return True

    def fetch(self, mode: FetchMode | str | None = None) -> Any:
        if self._result is None:
            return None

        try:
            mode = self._fetch_mode if mode is None else FetchMode(mode)
        except ValueError:
            logger.debug(f'Unrecognized fetch mode {mode!r}, nothing fetched')
            return None

        client = self.connection.client
        match mode:
            case FetchMode.NUM:
                return client.fetch_row(self._result)
            case FetchMode.ASSOC:
                return client.fetch_assoc(self._result)
            case FetchMode.OBJ:
                return client.fetch_object(self._result)
            case FetchMode.BOTH | FetchMode.BOUND:
                values = client.fetch_row(self._result)
                if values is None:
                    return None
                row = Row(client.field_names(self._result), values)
                if mode is FetchMode.BOUND:
                    row = self._fetch_bound(row)
                return row
        return None

    def close(self) -> bool:
        freed = self.close_cursor()
        self.sql = ''
        self.state = StatementState.CLOSED
        return freed

    def close_cursor(self) -> bool:
        if self._result is None:
            return False
        freed = self.connection.client.free_result(self._result)
        self._result = None
        return freed

    def column_count(self) -> int:
        return self._column_count

    def row_count(self) -> int | None:
        if self._result is None:
            return None
        return self._row_count

    def next_rowset(self) -> bool:
        raise UnsupportedError('next_rowset() is not implemented: a query yields exactly one result')

    def error_code(self) -> str | None:
        return None

    def error_info(self) -> tuple[int, str] | None:
        if not self.sql:
            return None
        return 1, self.connection.last_error()
