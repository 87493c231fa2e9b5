"""Core types for the PostgreSQL query layer."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

from .exceptions import PgConnectionError

logger = logging.getLogger(__name__)


class TxIsolation(Enum):
    """Transaction isolation levels."""

    read_uncommitted = "READ UNCOMMITTED"
    read_committed = "READ COMMITTED"
    repeatable_read = "REPEATABLE READ"
    serializable = "SERIALIZABLE"


class TxState(Enum):
    """Lifecycle of a transaction coordinator."""

    idle = "IDLE"
    started = "STARTED"
    committed = "COMMITTED"
    rolled_back = "ROLLED_BACK"


class Row(dict):
    """Mapping-like row result.

    Supports both dict-like access and attribute access.
    """

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"Column '{name}' not found") from None

    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value

    @classmethod
    def from_record(cls, record: Any) -> "Row":
        """Build a Row from a driver record, keeping column order."""
        return cls(record.items())


@dataclass(frozen=True)
class Statement:
    """Parameterized SQL statement.

    ``params[i]`` binds placeholder ``$i+1``.
    """

    sql: str
    params: Tuple[Any, ...] = ()

    def __repr__(self) -> str:
        return f"Statement({self.sql!r}, params={len(self.params)})"


@dataclass(frozen=True)
class Notification:
    """Asynchronous notification received on a LISTEN channel."""

    channel: str
    payload: Optional[str] = None
    pid: Optional[int] = None


async def _no_release() -> None:
    return None


class ClientHandle:
    """One live driver connection plus its release action.

    The release action runs at most once; further ``release()`` calls are
    no-ops. A failing release is logged, never raised, so it cannot mask the
    outcome of the statement that used the connection.
    """

    def __init__(self, connection: Any, release: Callable[[], Awaitable[Any]] = _no_release):
        self.connection = connection
        self._release = release
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        """Return the connection to its source."""
        if self._released:
            return
        self._released = True
        try:
            await self._release()
        except Exception as e:
            logger.warning(f"Failed to release connection: {e}")

    def __repr__(self) -> str:
        state = "released" if self._released else "active"
        return f"ClientHandle({state})"


@dataclass(frozen=True)
class Pooled:
    """Connection source that checks out one pool connection per acquisition."""

    pool: Any

    async def acquire(self) -> ClientHandle:
        connection = await self.pool.acquire()
        logger.debug("Acquired pooled connection")

        async def release() -> None:
            await self.pool.release(connection)
            logger.debug("Released pooled connection")

        return ClientHandle(connection, release)


@dataclass(frozen=True)
class Pinned:
    """Connection source bound to one connection for its whole lifetime.

    Acquisitions hand out the pinned connection with a no-op release; the
    owner of ``handle`` releases it once at the end.
    """

    handle: ClientHandle = field(repr=False)

    async def acquire(self) -> ClientHandle:
        if self.handle.released:
            raise PgConnectionError("Pinned connection already released")
        return ClientHandle(self.handle.connection, _no_release)


ConnectionSource = Union[Pooled, Pinned]
