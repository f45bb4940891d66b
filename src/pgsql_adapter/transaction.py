"""
Transaction handling on top of the connection's BEGIN/COMMIT/ROLLBACK commands.
"""
import logging
from typing import TYPE_CHECKING, Any, Self

from pgsql_adapter.options import FetchMode

if TYPE_CHECKING:
    from pgsql_adapter.connection import Connection

logger = logging.getLogger(__name__)


class Transaction:
    """Context manager for running multiple commands in a transaction.

    Commits when the block exits normally and rolls back when it raises.
    Nested transactions on the same connection are not supported.

    Examples
        with Transaction(cn) as tx:
            tx.execute('delete from ...', args)
            tx.execute('update from ...', args)
    """

    def __init__(self, cn: 'Connection') -> None:
        if cn.in_transaction:
            raise RuntimeError('Nested transactions are not supported')
        self.cn = cn

    def __enter__(self) -> Self:
        self.cn.begin_transaction()
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        if exc_type is None:
            self.cn.commit()
            return
        logger.debug(f'Rolling back transaction after {exc_type.__name__}: {exc_val}')
        self.cn.rollback()

    def execute(self, sql: str, *args: Any) -> int:
        """Execute a statement inside the transaction and return the affected
        row count.
        """
        return self.cn.query(sql, *args).row_count() or 0

    def select(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Run a query inside the transaction and return rows as dicts.
        """
        return self.cn.fetch_all(sql, *args, mode=FetchMode.ASSOC)
