"""Parameterized SQL builders for common write patterns.

Pure functions: each takes a table name plus column/value mappings and
returns a :class:`Statement` with ``$n`` placeholders. Values are always
bound as parameters. Column names are double-quoted verbatim and table
names are used as given, so neither may come from untrusted input.

Example:
    >>> build_update("users", {"name": "Bob"}, {"id": 7})
    Statement('UPDATE users SET "name" = $1 WHERE ("id" = $2)', params=2)
"""

from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel

from .exceptions import PgBuilderError
from .types import Statement

Columns = Union[Mapping[str, Any], BaseModel, None]


def quote_ident(name: str) -> str:
    """Wrap an identifier in double quotes."""
    return f'"{name}"'


def _items(values: Columns) -> List[Tuple[str, Any]]:
    if values is None:
        return []
    if isinstance(values, BaseModel):
        values = values.model_dump()
    return list(values.items())


class _Params:
    """Hands out sequential placeholders and collects their values."""

    def __init__(self) -> None:
        self.values: List[Any] = []

    def bind(self, value: Any) -> str:
        self.values.append(value)
        return f"${len(self.values)}"


def _where(conditions: Iterable[Tuple[str, Any]], params: _Params) -> str:
    clauses = [f"{quote_ident(key)} = {params.bind(value)}" for key, value in conditions]
    if not clauses:
        return ""
    return " WHERE (" + ") AND (".join(clauses) + ")"


def build_insert(table: str, values: Columns, returning: Optional[str] = None) -> Statement:
    """INSERT INTO table (cols...) VALUES ($1...) [RETURNING col]."""
    params = _Params()
    items = _items(values)
    if items:
        columns = ", ".join(quote_ident(key) for key, _ in items)
        placeholders = ", ".join(params.bind(value) for _, value in items)
        sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
    else:
        sql = f"INSERT INTO {table} DEFAULT VALUES"
    if returning:
        sql += f" RETURNING {quote_ident(returning)}"
    return Statement(sql, tuple(params.values))


def build_update(table: str, values: Columns, conditions: Columns) -> Statement:
    """UPDATE table SET col = $n, ... WHERE (cond = $n) AND (...).

    Raises:
        PgBuilderError: If ``values`` or ``conditions`` is empty. An UPDATE
            without conditions would touch every row.
    """
    items = _items(values)
    where_items = _items(conditions)
    if not items:
        raise PgBuilderError(f"update on {table} has no columns to set")
    if not where_items:
        raise PgBuilderError(f"update on {table} requires at least one condition")

    params = _Params()
    updates = ", ".join(f"{quote_ident(key)} = {params.bind(value)}" for key, value in items)
    sql = f"UPDATE {table} SET {updates}" + _where(where_items, params)
    return Statement(sql, tuple(params.values))


def build_upsert(table: str, values: Columns, conflict_keys: Columns) -> Statement:
    """INSERT ... ON CONFLICT (keys) DO UPDATE SET ... | DO NOTHING.

    Conflict-key columns come first, then value columns. Value columns are
    bound a second time, with fresh placeholders, for the SET clause.

    Raises:
        PgBuilderError: If ``conflict_keys`` is empty or shares a column
            with ``values``.
    """
    keys = _items(conflict_keys)
    items = _items(values)
    if not keys:
        raise PgBuilderError(f"upsert on {table} requires at least one conflict key")
    overlap = sorted({key for key, _ in keys} & {key for key, _ in items})
    if overlap:
        raise PgBuilderError(f"upsert on {table} lists {overlap} as both key and value")

    params = _Params()
    columns = [quote_ident(key) for key, _ in keys + items]
    placeholders = [params.bind(value) for _, value in keys + items]
    target = ", ".join(quote_ident(key) for key, _ in keys)

    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"
        f" ON CONFLICT ({target}) DO "
    )
    if len(items) == 0:
        sql += "NOTHING"
    else:
        sql += "UPDATE SET " + ", ".join(
            f"{quote_ident(key)} = {params.bind(value)}" for key, value in items
        )
    return Statement(sql, tuple(params.values))


def build_delete(table: str, conditions: Columns = None) -> Statement:
    """DELETE FROM table [WHERE ...]. No conditions deletes every row."""
    params = _Params()
    sql = f"DELETE FROM {table}" + _where(_items(conditions), params)
    return Statement(sql, tuple(params.values))
