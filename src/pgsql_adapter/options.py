from dataclasses import dataclass
from enum import Enum

from pgsql_adapter.exceptions import ConfigurationError, UnsupportedError

from libb import ConfigOptions, scriptname

__all__ = [
    'AdapterOptions',
    'FetchMode',
    'CaseFolding',
    'fold_case',
    'resolve_fetch_mode',
    'DEFAULT_PORT',
]

DEFAULT_PORT = 5432


class FetchMode(Enum):
    """Shape of a fetched row."""
    NUM = 'num'        # tuple by position
    ASSOC = 'assoc'    # dict by column name
    BOTH = 'both'      # Row with name and position accessors
    OBJ = 'obj'        # attrdict
    BOUND = 'bound'    # Row, copied into bound column targets


class CaseFolding(Enum):
    """Case applied to identifiers reported by the schema introspector."""
    NATURAL = 'natural'
    UPPER = 'upper'
    LOWER = 'lower'


def fold_case(name: str | None, folding: CaseFolding = CaseFolding.NATURAL) -> str | None:
    """Fold an identifier according to the connection's case policy.
    """
    if name is None:
        return None
    if folding is CaseFolding.UPPER:
        return name.upper()
    if folding is CaseFolding.LOWER:
        return name.lower()
    return name


def resolve_fetch_mode(mode: 'FetchMode | str') -> FetchMode:
    """Resolve a fetch mode usable as a connection default.

    `BOUND` only makes sense per fetch call, after columns have been bound
    on a statement, so it is rejected here.
    """
    try:
        mode = FetchMode(mode)
    except ValueError:
        raise ConfigurationError(f"Invalid fetch mode '{mode}' specified")
    if mode is FetchMode.BOUND:
        raise UnsupportedError('FetchMode.BOUND is not supported as a default fetch mode')
    return mode


@dataclass
class AdapterOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`

    - charset: client encoding issued with `SET NAMES` after connecting
    - fetch_mode: default row shape for statements (not `bound`)
    - case_folding: identifier case used by `describe_table`
    - strict_transactions: raise when BEGIN/COMMIT/ROLLBACK fail instead
      of logging and carrying on
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = DEFAULT_PORT
    timeout: int = 0
    charset: str = None
    appname: str = None
    fetch_mode: FetchMode = FetchMode.ASSOC
    case_folding: CaseFolding = CaseFolding.NATURAL
    strict_transactions: bool = False

    def __post_init__(self):
        if self.drivername != 'postgresql':
            raise ValueError("drivername must be one of: ['postgresql']")
        self.port = int(self.port or DEFAULT_PORT)
        self.appname = self.appname or scriptname() or 'python_console'
        self.fetch_mode = resolve_fetch_mode(self.fetch_mode)
        try:
            self.case_folding = CaseFolding(self.case_folding)
        except ValueError:
            raise ConfigurationError(f"Invalid case folding '{self.case_folding}' specified")

    def conninfo_params(self) -> dict:
        """Keyword parameters for a libpq connection string."""
        params = {
            'host': self.hostname,
            'port': self.port,
            'dbname': self.database,
            'user': self.username,
            'password': self.password,
            'application_name': self.appname,
        }
        if self.timeout:
            params['connect_timeout'] = self.timeout
        return {k: v for k, v in params.items() if v is not None}
