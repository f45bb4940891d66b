import pytest
from pgsql_adapter.row import BoundValue, Row


def test_name_and_position_lookups_are_separate():
    row = Row(['id', 'name'], [1, 'Alice'])
    assert row.by_name('id') == 1
    assert row.by_position(1) == 'Alice'
    assert row['name'] == 'Alice'
    assert row[0] == 1


def test_numeric_column_name_does_not_shadow_position():
    row = Row(['0', 'x'], ['by-name', 'second'])
    assert row['0'] == 'by-name'
    assert row[0] == 'by-name'
    assert row[1] == 'second'
    row = Row(['x', '0'], ['first', 'by-name'])
    assert row[0] == 'first'
    assert row['0'] == 'by-name'


def test_duplicate_names_keep_all_values():
    row = Row(['id', 'id'], [1, 2])
    assert row.by_name('id') == 1
    assert list(row) == [1, 2]
    assert len(row) == 2


def test_missing_name():
    row = Row(['id'], [1])
    with pytest.raises(KeyError):
        row.by_name('missing')
    assert row.get('missing', 'default') == 'default'


def test_missing_position():
    with pytest.raises(IndexError):
        Row(['id'], [1]).by_position(3)


def test_mapping_helpers():
    row = Row(['a', 'b'], [1, None])
    assert row.keys() == ('a', 'b')
    assert row.values() == (1, None)
    assert row.as_dict() == {'a': 1, 'b': None}
    assert row == Row(['a', 'b'], [1, None])
    assert row != Row(['b', 'a'], [1, None])
    assert repr(row) == "Row({'a': 1, 'b': None})"


def test_bound_value():
    target = BoundValue()
    assert target.value is None
    target.value = 5
    assert repr(target) == 'BoundValue(5)'
