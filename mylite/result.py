"""
mylite/result.py

Result object returned by Database.execute().

Every statement produces a ResultSet:
- SELECT / SHOW / DESCRIBE fill `columns` and `rows`
- INSERT / UPDATE / DELETE / REPLACE report `rows_affected` and `insert_id`
  with MySQL's conventions
- DDL and session statements carry only `message` (and `warnings`)

Errors are raised (see mylite/errors.py), never returned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ResultSet:
    """
    Outcome of one statement.

    Attributes:
        columns: Output column names in order (empty for statements without rows).
        rows: One dict per row, keys in column order.
        insert_id: AUTO_INCREMENT id generated (or explicitly stored) by the statement, else 0.
        rows_affected: MySQL affected-rows count.
        found_rows: Row count ignoring LIMIT when SQL_CALC_FOUND_ROWS was used.
        message: Human-readable status message.
        warnings: MySQL-style warning texts (implicit commits, truncations, notes).
    """
    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    insert_id: int = 0
    rows_affected: int = 0
    found_rows: int | None = None
    message: str = "OK"
    warnings: list[str] = field(default_factory=list)

    @property
    def is_query(self) -> bool:
        """True when the statement returned a row set (possibly empty)."""
        return bool(self.columns)

    def tuples(self) -> list[tuple[Any, ...]]:
        """Rows as tuples aligned with `columns`."""
        return [tuple(r[c] for c in self.columns) for r in self.rows]

    def column(self, name: str) -> list[Any]:
        """All values of one output column."""
        return [r[name] for r in self.rows]

    def scalar(self) -> Any:
        """First column of the first row, or None for an empty result."""
        if not self.rows or not self.columns:
            return None
        return self.rows[0][self.columns[0]]
