"""
Schema introspection from the PostgreSQL system catalogs.

Column metadata is rebuilt from one catalog query per table. The pieces the
catalogs do not hand over directly are decoded from text:

- declared length of character types, from `format_type()` output
  (`character varying(50)`)
- clean defaults, from quoted literals with a type cast (`'x'::bpchar`)
- identity columns, from `nextval(...)` defaults or SQL identity columns
- primary-key position, from the constraint's ordered key-column list
"""
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pgsql_adapter.options import FetchMode, fold_case

if TYPE_CHECKING:
    from pgsql_adapter.connection import Connection

logger = logging.getLogger(__name__)

__all__ = [
    'ColumnDescriptor',
    'describe_table',
    'list_tables',
    'primary_key_name',
    'parse_character_length',
    'clean_default',
    'primary_key_position',
    'is_identity_default',
]

ROW_IDENTIFIER = 'ctid'

CHARACTER_TYPES = {'varchar', 'bpchar'}

_CHARACTER_LENGTH = re.compile(r'character(?: varying)?(?:\((\d+)\))?')
_CHARACTER_DEFAULT = re.compile(r"^'(.*?)'::(?:character varying|bpchar)$", re.DOTALL)
_SEQUENCE_DEFAULT = re.compile(r'^nextval', re.IGNORECASE)

_DESCRIBE_SQL = """
select
    a.attnum,
    n.nspname,
    c.relname,
    a.attname as colname,
    t.typname as type,
    a.atttypmod,
    format_type(a.atttypid, a.atttypmod) as complete_type,
    pg_get_expr(d.adbin, d.adrelid) as default_value,
    a.attnotnull as notnull,
    a.attlen as length,
    a.attidentity as identity,
    co.contype,
    array_to_string(co.conkey, ',') as conkey
from pg_attribute as a
    join pg_class as c on a.attrelid = c.oid
    join pg_namespace as n on c.relnamespace = n.oid
    join pg_type as t on a.atttypid = t.oid
    left outer join pg_constraint as co on (co.conrelid = c.oid
        and a.attnum = any(co.conkey) and co.contype = 'p')
    left outer join pg_attrdef as d on d.adrelid = c.oid and d.adnum = a.attnum
where a.attnum > 0
    and not a.attisdropped
    and c.relname = ?
"""

_LIST_TABLES_SQL = """
select
    c.relname as table_name
from pg_class as c
    join pg_namespace as n on c.relnamespace = n.oid
where c.relkind in ('r', 'p')
    and n.nspname not in ('pg_catalog', 'information_schema')
    and n.nspname !~ '^pg_toast'
"""


@dataclass
class ColumnDescriptor:
    """Normalized description of one table column.

    `length` is None for unbounded character types and for types without a
    fixed storage width. `scale`, `precision` and `unsigned` are reserved.
    `primary_position` is the 1-based position within the primary-key
    constraint, not within the table.
    """
    schema_name: str
    table_name: str
    column_name: str
    column_position: int
    data_type: str
    default: str | None = None
    nullable: bool = True
    length: int | None = None
    scale: int | None = None
    precision: int | None = None
    unsigned: bool | None = None
    primary: bool = False
    primary_position: int | None = None
    identity: bool = False


def parse_character_length(complete_type: str | None) -> int | None:
    """Declared length from a character type descriptor.

    >>> parse_character_length('character varying(50)')
    50
    >>> parse_character_length('character varying') is None
    True
    """
    if not complete_type:
        return None
    match = _CHARACTER_LENGTH.search(complete_type)
    if match and match.group(1):
        return int(match.group(1))
    return None


def clean_default(default: str | None) -> str | None:
    """Strip the quotes and cast from a character-type literal default.

    >>> clean_default("'draft'::character varying")
    'draft'
    """
    if default is None:
        return None
    match = _CHARACTER_DEFAULT.match(default)
    if match:
        return match.group(1).replace("''", "'")
    return default


def primary_key_position(attnum: int, conkey: str | None) -> int | None:
    """1-based position of a column within a comma-joined constraint key list.

    >>> primary_key_position(3, '3,1')
    1
    """
    if not conkey:
        return None
    keys = [k.strip() for k in conkey.split(',')]
    try:
        return keys.index(str(attnum)) + 1
    except ValueError:
        return None


def is_identity_default(default: str | None) -> bool:
    """True when the default advances a sequence."""
    return bool(default and _SEQUENCE_DEFAULT.match(default))


def describe_table(cn: 'Connection', table: str,
                   schema: str | None = None) -> dict[str, ColumnDescriptor]:
    """Describe every column of a table, in column order.

    The result is keyed by the column name folded with the connection's
    case policy; the descriptors keep the names as the catalog reports them.
    Without a schema only the table visible on the search path is described.
    A table without matching rows yields an empty dict.
    """
    if schema is None and '.' in table:
        schema, table = table.split('.', 1)

    sql = _DESCRIBE_SQL
    params = [table]
    if schema:
        sql += '    and n.nspname = ?\n'
        params.append(schema)
    else:
        sql += '    and pg_table_is_visible(c.oid)\n'
    sql += 'order by a.attnum'

    rows = cn.query(sql, *params).fetch_all(FetchMode.NUM)
    folding = cn.options.case_folding

    desc: dict[str, ColumnDescriptor] = {}
    for (attnum, nspname, relname, colname, typname, _atttypmod, complete_type,
         default_value, notnull, length, identity_kind, contype, conkey) in rows:
        default = default_value
        if typname in CHARACTER_TYPES:
            length = parse_character_length(complete_type)
            default = clean_default(default_value)
        elif length is not None and length <= 0:
            length = None

        primary, position, identity = False, None, False
        if contype == 'p':
            primary = True
            position = primary_key_position(attnum, conkey)
            identity = is_identity_default(default_value) or bool(identity_kind)

        desc[fold_case(colname, folding)] = ColumnDescriptor(
            schema_name=nspname,
            table_name=relname,
            column_name=colname,
            column_position=attnum,
            data_type=typname,
            default=default,
            nullable=not notnull,
            length=length,
            primary=primary,
            primary_position=position,
            identity=identity,
        )

    logger.debug(f'Described {len(desc)} columns for {table=} {schema=}')
    return desc


def list_tables(cn: 'Connection', schema: str | None = None) -> list[str]:
    """Names of ordinary and partitioned tables outside the system schemas.
    """
    sql = _LIST_TABLES_SQL
    params = []
    if schema:
        sql += '    and n.nspname = ?\n'
        params.append(schema)
    sql += 'order by c.relname'
    return [row[0] for row in cn.query(sql, *params).fetch_all(FetchMode.NUM)]


def primary_key_name(cn: 'Connection', table: str) -> str:
    """First column of the table's primary key, or the row identifier when the
    table has none.
    """
    if not table:
        return ROW_IDENTIFIER
    for column in describe_table(cn, table).values():
        if column.primary and column.primary_position in {1, None}:
            return column.column_name
    return ROW_IDENTIFIER
