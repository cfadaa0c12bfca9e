"""Dialect-aware ``INSERT ... ON CONFLICT DO NOTHING``.

Used wherever a natural key decides whether a row is new, so concurrent
writers race on the unique index instead of on a read-then-insert pair.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_ignore_conflict(
    db: AsyncSession,
    model: Any,  # noqa: ANN401
    values: dict[str, Any],
    conflict_columns: Sequence[str],
) -> bool:
    """Insert one row unless it collides on `conflict_columns`. Returns True if inserted."""
    dialect = db.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        msg = f"Unsupported database dialect: {dialect}"
        raise RuntimeError(msg)

    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns))
    result = await db.execute(stmt)
    return result.rowcount > 0
