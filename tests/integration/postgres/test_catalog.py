import dataclasses

import pgsql_adapter as db
from pgsql_adapter import CaseFolding


def test_describe_table(psql_docker, conn):
    """Test column metadata rebuilt from the catalogs"""
    desc = db.describe_table(conn, 'test_table')

    assert list(desc) == ['id', 'name', 'code', 'note', 'value']

    id_col = desc['id']
    assert id_col.schema_name == 'public'
    assert id_col.table_name == 'test_table'
    assert id_col.data_type == 'int4'
    assert id_col.primary is True
    assert id_col.primary_position == 1
    assert id_col.identity is True
    assert id_col.nullable is False
    assert id_col.length == 4

    assert desc['name'].length == 50
    assert desc['name'].nullable is False
    assert desc['name'].primary is False

    assert desc['code'].data_type == 'bpchar'
    assert desc['code'].length == 3
    assert desc['code'].default == 'abc'

    assert desc['note'].length is None
    assert desc['note'].default is None
    assert desc['note'].nullable is True

    assert desc['value'].default == '0'
    assert desc['value'].identity is False


def test_describe_composite_key(psql_docker, conn):
    desc = db.describe_table(conn, 'test_pairs')

    assert desc['right_id'].primary_position == 1
    assert desc['left_id'].primary_position == 2
    assert desc['label'].default == 'none'
    assert conn.primary_key_name('test_pairs') == 'right_id'


def test_describe_with_schema(psql_docker, conn):
    assert list(db.describe_table(conn, 'test_notes', 'public')) == ['body']
    assert list(db.describe_table(conn, 'public.test_notes')) == ['body']
    assert db.describe_table(conn, 'test_notes', 'no_such_schema') == {}


def test_describe_missing_table(psql_docker, conn):
    assert db.describe_table(conn, 'no_such_table') == {}


def test_primary_key_name(psql_docker, conn):
    assert conn.primary_key_name('test_table') == 'id'
    assert conn.primary_key_name('test_notes') == 'ctid'


def test_upper_case_folding(psql_docker, conn):
    options = dataclasses.replace(conn.options, case_folding=CaseFolding.UPPER)
    with db.connect(options) as cn:
        desc = db.describe_table(cn, 'test_table')
    assert 'ID' in desc
    assert desc['NAME'].column_name == 'name'


def test_list_tables(psql_docker, conn):
    tables = db.list_tables(conn)
    assert {'test_table', 'test_notes', 'test_pairs'} <= set(tables)
    assert tables == sorted(tables)
    assert db.list_tables(conn, 'pg_catalog') == []


def test_same_table_name_in_other_schema(psql_docker, conn):
    """Unqualified names describe only the table the search path resolves"""
    db.execute(conn, 'create schema if not exists shadow')
    try:
        db.execute(conn, 'create table shadow.test_table (shadow_key int primary key, extra text)')
        desc = db.describe_table(conn, 'test_table')
        assert list(desc) == ['id', 'name', 'code', 'note', 'value']
        assert conn.primary_key_name('test_table') == 'id'
        assert list(db.describe_table(conn, 'test_table', 'shadow')) == ['shadow_key', 'extra']
    finally:
        db.execute(conn, 'drop schema shadow cascade')
