"""
mylite/exec/postprocess.py

Result shaping for translated queries.

Responsibilities:
- Turn a finished sqlite3 cursor into (columns, rows) where rows are dicts
  keyed by output column name
- Apply a plan's post-processing steps in order:
    - StripCharPadding: CHAR(n) values lose trailing spaces, as MySQL returns them
    - CountFoundRows:   run the LIMIT-free count that FOUND_ROWS() reports
    - UnwrapUnsigned:   negative wraps of unsigned 64-bit values become unsigned again

Design notes:
- Kept apart from the Executor so statement dispatch stays readable.
- Duplicate output names collapse to the last value, as an associative fetch
  from a MySQL client does.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable

from .. import functions
from ..translate.plan import CountFoundRows, PostStep, StripCharPadding, UnwrapUnsigned

Row = dict[str, Any]


def cursor_columns(cursor: sqlite3.Cursor) -> list[str]:
    """Output column names of an executed cursor (empty when it returns no rows)."""
    if cursor.description is None:
        return []
    return [d[0] for d in cursor.description]


def shape_rows(columns: list[str], raw: Iterable[tuple[Any, ...]]) -> list[Row]:
    """
    Build row dicts.

    Args:
        columns: Output column names in order.
        raw: Tuples as returned by sqlite3.

    Returns:
        One dict per row, keys in column order.
    """
    return [dict(zip(columns, values)) for values in raw]


def fetch_result(cursor: sqlite3.Cursor) -> tuple[list[str], list[Row]]:
    columns = cursor_columns(cursor)
    if not columns:
        return [], []
    return columns, shape_rows(columns, cursor.fetchall())


def strip_char_padding(rows: list[Row], columns: Iterable[str]) -> None:
    """Remove trailing spaces from CHAR(n) output columns in place."""
    wanted = list(columns)
    for row in rows:
        for name in wanted:
            value = row.get(name)
            if isinstance(value, str):
                row[name] = value.rstrip(" ")


def unwrap_unsigned(rows: list[Row], columns: Iterable[str]) -> None:
    wanted = list(columns)
    for row in rows:
        for name in wanted:
            if name in row:
                row[name] = functions.unwrap_unsigned(row[name])


def apply_post_steps(
    conn: sqlite3.Connection,
    steps: Iterable[PostStep],
    rows: list[Row],
) -> int:
    """
    Run a plan's post-processing steps against the fetched rows.

    Args:
        conn: Connection the query ran on (CountFoundRows reuses it).
        steps: Post steps in plan order.
        rows: Fetched rows (modified in place).

    Returns:
        The value FOUND_ROWS() reports afterwards.
    """
    found = len(rows)
    for step in steps:
        if isinstance(step, StripCharPadding):
            strip_char_padding(rows, step.columns)
        elif isinstance(step, UnwrapUnsigned):
            unwrap_unsigned(rows, step.columns)
        elif isinstance(step, CountFoundRows):
            found = int(conn.execute(step.sql, step.params).fetchone()[0])
    return found
