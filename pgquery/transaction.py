"""Transaction coordinator.

A transaction borrows one connection from its parent PgQuery, pins it to a
child PgQuery, and wraps a sequence of operations between BEGIN and
COMMIT/ROLLBACK. The borrowed connection is released exactly once,
whichever way the transaction ends.

Started from an already pinned PgQuery, the transaction joins the open one
through a SAVEPOINT, so the outer envelope keeps the final say.
"""

import inspect
import itertools
import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Union

from .exceptions import PgError, PgRollbackError
from .types import ClientHandle, TxIsolation, TxState

if TYPE_CHECKING:
    from .pool import PgQuery

logger = logging.getLogger(__name__)

Operation = Callable[["PgQuery"], Any]
Operations = Union[Operation, Iterable[Operation]]

_savepoint_ids = itertools.count(1)


def _as_operations(sequence: Operations) -> List[Operation]:
    if callable(sequence):
        return [sequence]
    operations = list(sequence)
    for operation in operations:
        if not callable(operation):
            raise TypeError(f"Transaction operation is not callable: {operation!r}")
    return operations


class Transaction:
    """One BEGIN ... COMMIT/ROLLBACK envelope on a pinned connection.

    States move IDLE -> STARTED -> COMMITTED or ROLLED_BACK.
    """

    def __init__(self, parent: "PgQuery", isolation: Optional[TxIsolation] = None):
        self.parent = parent
        self.isolation = isolation
        self.state = TxState.idle
        self.query: Optional["PgQuery"] = None
        self._handle: Optional[ClientHandle] = None
        self.savepoint: Optional[str] = None
        if parent.is_pinned:
            self.savepoint = f"pgquery_sp_{next(_savepoint_ids)}"

    @property
    def nested(self) -> bool:
        return self.savepoint is not None

    @property
    def begin_sql(self) -> str:
        if self.nested:
            return f"SAVEPOINT {self.savepoint}"
        if self.isolation is None:
            return "BEGIN"
        return f"BEGIN ISOLATION LEVEL {self.isolation.value}"

    @property
    def commit_sql(self) -> str:
        if self.nested:
            return f"RELEASE SAVEPOINT {self.savepoint}"
        return "COMMIT"

    @property
    def rollback_sql(self) -> str:
        if self.nested:
            return f"ROLLBACK TO SAVEPOINT {self.savepoint}"
        return "ROLLBACK"

    async def start(self) -> "PgQuery":
        """Pin a connection and issue BEGIN.

        Returns:
            The child PgQuery bound to the transaction's connection.
        """
        if self.state is not TxState.idle:
            raise PgError(f"Transaction cannot start from state {self.state.value}")
        if self.nested and self.isolation is not None:
            raise PgError("Isolation level cannot be set on a nested transaction")

        self._handle = await self.parent.acquire_connection()
        self.query = self.parent.pinned(self._handle)
        try:
            await self.query.execute(self.begin_sql)
        except BaseException as e:
            await self.fail(e)
            raise

        self.state = TxState.started
        logger.debug(f"Transaction started: {self.begin_sql}")
        return self.query

    async def finish(self) -> None:
        """Issue COMMIT (or RELEASE SAVEPOINT), then release the connection."""
        try:
            await self.query.execute(self.commit_sql)
        except BaseException as e:
            await self.fail(e)
            raise

        self.state = TxState.committed
        logger.debug(f"Transaction committed: {self.commit_sql}")
        await self._handle.release()

    async def fail(self, error: BaseException) -> None:
        """Issue ROLLBACK after ``error``, then release the connection.

        When ``error`` is a cancellation or another non-``Exception``, a
        failed ROLLBACK is only logged so the caller re-raises ``error``
        unchanged.

        Raises:
            PgRollbackError: If ROLLBACK itself fails after an ordinary
                exception. ``error`` is kept as its ``original``.
        """
        try:
            if self.query is not None:
                await self.query.execute(self.rollback_sql)
        except Exception as rollback_error:
            logger.warning(f"Rollback failed after {error!r}: {rollback_error}")
            if isinstance(error, Exception):
                raise PgRollbackError(
                    "Rollback failed", original=error, rollback_error=rollback_error
                ) from error
            return
        finally:
            self.state = TxState.rolled_back
            if self._handle is not None:
                await self._handle.release()
        logger.debug(f"Transaction rolled back: {error!r}")

    async def run(self, sequence: Operations) -> Any:
        """Run operations in order; commit on success, roll back on failure.

        Operations after a failing one are skipped.

        Returns:
            Result of the last operation.
        """
        operations = _as_operations(sequence)
        query = await self.start()

        result = None
        try:
            for operation in operations:
                result = operation(query)
                if inspect.isawaitable(result):
                    result = await result
        except BaseException as e:
            await self.fail(e)
            raise

        await self.finish()
        return result
