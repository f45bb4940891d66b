"""
SQL text handling for an adapter without server-side parameter binding.

Every value reaches the server inlined as a literal, so this module is where
query safety lives:

    values → quote_value (escape) → substitute_placeholders (textual rewrite)

Main entry points:
- `quote_value()` - Turn a Python value into a SQL literal token
- `substitute_placeholders()` - Replace `?` positions with literal tokens
- `quote_identifier()` - Quote table/column names
- `limit()` - Append a LIMIT/OFFSET clause
- `build_insert_sql()` - INSERT ... RETURNING for the insert helper
"""
import decimal
import json
import logging
import math
import re
from collections.abc import Callable, Mapping, Sequence
from numbers import Number
from typing import Any

from pgsql_adapter.exceptions import ValidationError

logger = logging.getLogger(__name__)

PLACEHOLDER = '?'

# Literals (including backslash-escaped E'...' strings), quoted identifiers
# and comments are copied through untouched so a `?` inside them is never
# treated as a placeholder.
_TOKENIZE = re.compile(r"""
    (?P<estring>(?<![\w$])[Ee]'(?:[^'\\]|\\.|'')*')
    |(?P<string>'(?:[^']|'')*')
    |(?P<ident>"(?:[^"]|"")*")
    |(?P<dollar>\$\$.*?\$\$|\$(?P<tag>[A-Za-z_]\w*)\$.*?\$(?P=tag)\$)
    |(?P<comment>--[^\n]*|/\*.*?\*/)
    |(?P<placeholder>\?)
""", re.VERBOSE | re.DOTALL)


class Expr:
    """Raw SQL expression inlined without quoting, e.g. Expr('now()').
    """

    def __init__(self, expression: str) -> None:
        self.expression = str(expression)

    def __str__(self) -> str:
        return self.expression

    def __repr__(self) -> str:
        return f'Expr({self.expression!r})'

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Expr) and other.expression == self.expression

    def __hash__(self) -> int:
        return hash(self.expression)


def _is_finite(value: Number) -> bool:
    if isinstance(value, decimal.Decimal):
        return value.is_finite()
    if isinstance(value, float):
        return math.isfinite(value)
    return True


def quote_value(value: Any, escape_string: Callable[[str], str],
                escape_bytea: Callable[[bytes], str] | None = None) -> Any:
    """Turn a value into a token safe to inline into SQL text.

    Numbers are returned as they are: a numeric literal cannot carry an
    injection and must not be quoted. None is the bare `NULL` keyword.
    Everything else goes through the connection's escaping routine and is
    wrapped in single quotes.

    Parameters
        value: Value to quote
        escape_string: Connection-aware string escaper (PQescapeStringConn)
        escape_bytea: Connection-aware bytea escaper (PQescapeByteaConn)

    Returns
        The number itself, or a SQL literal string
    """
    if value is None:
        return 'NULL'

    if isinstance(value, Expr):
        return str(value)

    if isinstance(value, Number) and not isinstance(value, complex):
        if _is_finite(value):
            return value
        # NaN / Infinity are only valid as quoted float input
        return "'" + escape_string(str(value)) + "'"

    if isinstance(value, bytes | bytearray | memoryview) and escape_bytea is not None:
        return "'" + escape_bytea(bytes(value)) + "'::bytea"

    if isinstance(value, list | tuple):
        return ', '.join(str(quote_value(v, escape_string, escape_bytea)) for v in value)

    if isinstance(value, dict):
        value = json.dumps(value)

    return "'" + escape_string(str(value)) + "'"


def count_placeholders(sql: str) -> int:
    """Count the `?` positions that substitute_placeholders would replace.
    """
    return sum(1 for m in _TOKENIZE.finditer(sql) if m.lastgroup == 'placeholder')


def has_placeholders(sql: str) -> bool:
    """Check if SQL has any substitutable placeholder."""
    return count_placeholders(sql) > 0


def substitute_placeholders(sql: str, tokens: Sequence[Any]) -> str:
    """Replace each `?` in `sql`, left to right, by the next token.

    This is a textual rewrite, not a protocol-level bind: the tokens must
    already be escaped literals (see quote_value). Tokens are inserted as-is
    and never re-scanned. Counts are not enforced; on a mismatch surplus
    placeholders stay in the text and surplus tokens are dropped.

    Parameters
        sql: SQL template
        tokens: Escaped literal tokens, one per placeholder

    Returns
        Executable SQL text
    """
    tokens = [str(t) for t in tokens]
    expected = count_placeholders(sql)
    if expected != len(tokens):
        logger.warning(f'Placeholder count ({expected}) does not match parameter count ({len(tokens)})')

    remaining = iter(tokens)

    def replace(match: re.Match) -> str:
        if match.lastgroup != 'placeholder':
            return match.group(0)
        return next(remaining, match.group(0))

    return _TOKENIZE.sub(replace, sql)


def quote_identifier(identifier: 'str | Expr') -> str:
    """Safely quote a database identifier.

    Dotted names (`schema.table`) are quoted part by part.

    Parameters
        identifier: Table or column name, or an Expr passed through raw

    Returns
        Quoted identifier
    """
    if isinstance(identifier, Expr):
        return str(identifier)
    return '.'.join('"' + part.replace('"', '""') + '"' for part in identifier.split('.'))


def limit(sql: str, count: int, offset: int = 0) -> str:
    """Append a LIMIT (and OFFSET when positive) clause.

    Raises
        ValidationError: count is not positive or offset is negative
    """
    count = int(count)
    if count <= 0:
        raise ValidationError(f'LIMIT argument count={count} is not valid')

    offset = int(offset)
    if offset < 0:
        raise ValidationError(f'LIMIT argument offset={offset} is not valid')

    sql += f' LIMIT {count}'
    if offset > 0:
        sql += f' OFFSET {offset}'
    return sql


def build_insert_sql(table: str, bind: Mapping[str, Any], returning: str) -> tuple[str, list[Any]]:
    """Build an INSERT that returns `returning` from the written row.

    Expr values are inlined; every other value becomes a placeholder.

    Returns
        SQL template and its positional parameters
    """
    cols, vals, params = [], [], []
    for col, val in bind.items():
        cols.append(quote_identifier(col))
        if isinstance(val, Expr):
            vals.append(str(val))
        else:
            vals.append(PLACEHOLDER)
            params.append(val)

    if cols:
        values_clause = f'({", ".join(cols)}) VALUES ({", ".join(vals)})'
    else:
        values_clause = 'DEFAULT VALUES'
    sql = f'INSERT INTO {quote_identifier(table)} {values_clause} RETURNING {quote_identifier(returning)}'
    return sql, params


def sequence_name(table: str, primary_key: str | None = None) -> str:
    """Conventional serial sequence name: `table[_primary_key]_seq`."""
    name = table
    if primary_key:
        name += f'_{primary_key}'
    return f'{name}_seq'
