import pytest
from pgsql_adapter.exceptions import ConfigurationError, UnsupportedError
from pgsql_adapter.options import DEFAULT_PORT, AdapterOptions, CaseFolding
from pgsql_adapter.options import FetchMode, fold_case, resolve_fetch_mode


def test_init_defaults():
    """Test default initialization"""
    options = AdapterOptions(
        hostname='testhost',
        username='testuser',
        password='testpass',
        database='testdb',
    )

    assert options.drivername == 'postgresql'
    assert options.port == DEFAULT_PORT
    assert options.timeout == 0
    assert options.appname is not None
    assert options.charset is None
    assert options.fetch_mode is FetchMode.ASSOC
    assert options.case_folding is CaseFolding.NATURAL
    assert options.strict_transactions is False


def test_validation():
    """Test validation rules"""
    with pytest.raises(ValueError):
        AdapterOptions(
            drivername='mysql',
            hostname='testhost',
            username='testuser',
            password='testpass',
            database='testdb',
        )


def test_string_values_coerced():
    options = AdapterOptions(
        hostname='testhost',
        database='testdb',
        port='6543',
        fetch_mode='num',
        case_folding='upper',
    )
    assert options.port == 6543
    assert options.fetch_mode is FetchMode.NUM
    assert options.case_folding is CaseFolding.UPPER


def test_invalid_fetch_mode():
    with pytest.raises(ConfigurationError, match="Invalid fetch mode 'rows'"):
        AdapterOptions(hostname='testhost', fetch_mode='rows')


def test_bound_rejected_as_default_fetch_mode():
    with pytest.raises(UnsupportedError):
        AdapterOptions(hostname='testhost', fetch_mode=FetchMode.BOUND)


def test_invalid_case_folding():
    with pytest.raises(ConfigurationError):
        AdapterOptions(hostname='testhost', case_folding='title')


def test_conninfo_params():
    options = AdapterOptions(
        hostname='db.local',
        username='app',
        password='secret',
        database='sales',
        port=5433,
        timeout=10,
        appname='loader',
    )
    assert options.conninfo_params() == {
        'host': 'db.local',
        'port': 5433,
        'dbname': 'sales',
        'user': 'app',
        'password': 'secret',
        'application_name': 'loader',
        'connect_timeout': 10,
    }


def test_conninfo_params_drop_unset_values():
    params = AdapterOptions(hostname='db.local', appname='loader').conninfo_params()
    assert params == {'host': 'db.local', 'port': DEFAULT_PORT, 'application_name': 'loader'}


@pytest.mark.parametrize(('folding', 'expected'), [
    (CaseFolding.NATURAL, 'MixedCase'),
    (CaseFolding.UPPER, 'MIXEDCASE'),
    (CaseFolding.LOWER, 'mixedcase'),
])
def test_fold_case(folding, expected):
    assert fold_case('MixedCase', folding) == expected


def test_fold_case_none():
    assert fold_case(None, CaseFolding.UPPER) is None


def test_resolve_fetch_mode():
    assert resolve_fetch_mode('both') is FetchMode.BOTH
    assert resolve_fetch_mode(FetchMode.OBJ) is FetchMode.OBJ
