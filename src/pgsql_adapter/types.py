"""
Type handling for values crossing the libpq text protocol.

This module provides:
- TypeConverter: Normalize Python parameter values before escaping
- load_value: Convert a text-format result value to a Python value by type OID
- postgres_types: Mapping of type OIDs to the Python type their values load as
"""
import datetime
import decimal
import json
import logging
import math
from collections.abc import Callable
from functools import cache
from typing import Any

import dateutil.parser
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

NUMPY_FLOAT_TYPES = (np.floating,)
NUMPY_INT_TYPES = (np.integer, np.unsignedinteger)


# Type Converter - Handles Python -> SQL literal value normalization

def _convert_numpy_value(val: Any) -> float | int | datetime.datetime | None:
    """Convert NumPy value to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64) and np.isnat(val):
        return None

    if isinstance(val, (np.floating, np.integer, np.bool_)):
        return val.item()

    if isinstance(val, np.datetime64):
        return pd.Timestamp(val).to_pydatetime()

    return val


class TypeConverter:
    """Parameter normalization applied before a value is escaped.

    NumPy scalars become Python scalars; NaN, NaT and pandas NA become None
    so they are written as NULL.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a literal-friendly Python value."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, (*NUMPY_FLOAT_TYPES, *NUMPY_INT_TYPES, np.bool_, np.datetime64)):
            return _convert_numpy_value(value)

        if value is pd.NaT or value is pd.NA:
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of parameters."""
        if params is None:
            return None

        if isinstance(params, dict):
            return {k: TypeConverter.convert_value(v) for k, v in params.items()}

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


# Type Resolution - libpq text values -> Python values

def _load_text(data: bytes, encoding: str) -> str:
    return data.decode(encoding)


def _load_bool(data: bytes, encoding: str) -> bool:
    return data == b't'


def _load_bytea(data: bytes, encoding: str) -> bytes:
    from psycopg import pq
    return pq.Escaping().unescape_bytea(data)


def _parsed(parse: Callable[[str], Any]) -> Callable[[bytes, str], Any]:
    """Build a loader that parses the decoded text, keeping the text when it
    has no Python counterpart (e.g. 'infinity' timestamps).
    """
    def loader(data: bytes, encoding: str) -> Any:
        text = data.decode(encoding)
        try:
            return parse(text)
        except (ValueError, OverflowError, decimal.InvalidOperation):
            logger.debug(f'Keeping unparsed value {text!r}')
            return text
    return loader


_TYPE_LOADERS: list[tuple[tuple[str, ...], type, Callable[[bytes, str], Any]]] = [
    (('int2', 'int4', 'int8', 'oid'), int, _parsed(int)),
    (('float4', 'float8'), float, _parsed(float)),
    (('numeric',), decimal.Decimal, _parsed(decimal.Decimal)),
    (('bool',), bool, _load_bool),
    (('date',), datetime.date, _parsed(lambda s: dateutil.parser.isoparse(s).date())),
    (('timestamp', 'timestamptz'), datetime.datetime, _parsed(dateutil.parser.isoparse)),
    (('time',), datetime.time, _parsed(dateutil.parser.isoparser().parse_isotime)),
    (('bytea',), bytes, _load_bytea),
    (('json', 'jsonb'), dict, _parsed(json.loads)),
    (('bpchar', 'varchar', 'name', 'text', 'uuid'), str, _load_text),
]


@cache
def _type_registry() -> tuple[dict[int, type], dict[int, Callable[[bytes, str], Any]]]:
    """OID lookups built from psycopg's builtin type registry.

    Built on first use so the package imports even where libpq is missing.
    """
    from psycopg.postgres import types as pg_types

    types: dict[int, type] = {}
    loaders: dict[int, Callable[[bytes, str], Any]] = {}
    for names, pytype, loader in _TYPE_LOADERS:
        for name in names:
            oid = pg_types.get(name).oid
            types[oid] = pytype
            loaders[oid] = loader
    return types, loaders


def postgres_types() -> dict[int, type]:
    """Mapping of type OIDs to the Python type their values load as."""
    return _type_registry()[0]


def load_value(data: bytes | None, oid: int, encoding: str = 'utf-8') -> Any:
    """Convert one text-format value from a result to a Python value.

    Types without a dedicated loader come back as decoded text.
    """
    if data is None:
        return None
    loaders = _type_registry()[1]
    return loaders.get(oid, _load_text)(bytes(data), encoding)
