"""PostgreSQL query layer exception hierarchy."""

from typing import Any, Optional, Sequence


class PgError(Exception):
    """Base exception for all pgquery operations."""

    def __init__(self, message: str, code: int | None = None, detail: str | None = None):
        self.message = message
        self.code = code
        self.detail = detail
        super().__init__(message)


class PgConnectionError(PgError):
    """A connection could not be acquired (pool checkout or dedicated connect)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else None
        super().__init__(message, detail=detail)


class PgQueryError(PgError):
    """Statement execution or streaming failed.

    Carries the SQL text, the bound parameters and the driver error so the
    failure can be diagnosed without any internal state.
    """

    def __init__(
        self,
        message: str,
        sql: str,
        params: Sequence[Any] = (),
        cause: Optional[BaseException] = None,
        detail: str | None = None,
    ):
        self.sql = sql
        self.params = tuple(params)
        self.cause = cause
        if detail is None and cause is not None:
            detail = f"{type(cause).__name__}: {cause}"
        super().__init__(message, detail=detail)

    def __str__(self) -> str:
        text = f"{self.message}: {self.sql}"
        if self.detail:
            text += f" ({self.detail})"
        return text


class PgBuilderError(PgError):
    """Caller-supplied shape would produce an unsafe or malformed statement."""
    pass


class PgRollbackError(PgError):
    """ROLLBACK failed after a transaction failure.

    The failure that triggered the rollback is kept as ``original``; the
    rollback failure itself is kept as ``rollback_error``.
    """

    def __init__(self, message: str, original: BaseException, rollback_error: BaseException):
        self.original = original
        self.rollback_error = rollback_error
        super().__init__(message, detail=f"original error: {original!r}")
