"""
mylite/translate/plan.py

Rewrite Plans: what the executor needs to run one translated DML statement.

A plan is built per statement (never cached) from the parsed Statement, the
current Catalog and the session state. It carries SQLite SQL text with
positional `?` bindings, the post-processing steps to apply to the result, and
whether the statement writes / must run on the writer connection.

Plan kinds:
- RewritePlan        SELECT / UNION / single-table UPDATE / DELETE
- InsertPlan         INSERT / REPLACE / INSERT IGNORE / ON DUPLICATE KEY UPDATE
                     (row values are materialized by the executor)
- MultiDeletePlan    DELETE t1, t2 FROM ... (rowids collected, then deleted per table)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..catalog import Catalog, TableMeta, delete_table, rename_table, reset_sequence, set_next_id, write_table


@dataclass
class SessionState:
    """
    Per-connection values the rewriter reads.

    Attributes:
        database: Logical database name (DATABASE()).
        connection_id: CONNECTION_ID().
        variables: System variables by lowercased name (@@sql_mode, @@autocommit...).
        user_vars: User variables by lowercased name without '@'.
        last_insert_id: LAST_INSERT_ID(): first id generated by the last INSERT.
        found_rows: FOUND_ROWS(): rows of the last SELECT (ignoring LIMIT with SQL_CALC_FOUND_ROWS).
        row_count: ROW_COUNT(): affected rows of the last DML statement.
    """
    database: str = "main"
    connection_id: int = 1
    variables: dict[str, Any] = field(default_factory=dict)
    user_vars: dict[str, Any] = field(default_factory=dict)
    last_insert_id: int = 0
    found_rows: int = 0
    row_count: int = -1

    @property
    def sql_mode(self) -> set[str]:
        return {m.strip().upper() for m in str(self.variables.get("sql_mode", "")).split(",") if m.strip()}

    @property
    def strict(self) -> bool:
        """STRICT_TRANS_TABLES / STRICT_ALL_TABLES in effect."""
        return bool(self.sql_mode & {"STRICT_TRANS_TABLES", "STRICT_ALL_TABLES", "TRADITIONAL"})

    @property
    def no_auto_value_on_zero(self) -> bool:
        return "NO_AUTO_VALUE_ON_ZERO" in self.sql_mode


@dataclass(frozen=True)
class Fragment:
    """A rendered SQL expression with its positional bindings."""
    sql: str
    params: tuple[Any, ...] = ()

    @property
    def is_binding(self) -> bool:
        """True when the fragment is a single bound value (no SQL evaluation needed)."""
        return self.sql == "?"


class PostStep:
    """Base class marker for post-processing steps."""


@dataclass(frozen=True)
class CountFoundRows(PostStep):
    """SQL_CALC_FOUND_ROWS: count the rows the SELECT would return without LIMIT."""
    sql: str
    params: tuple[Any, ...] = ()


@dataclass(frozen=True)
class StripCharPadding(PostStep):
    """CHAR(n) columns: MySQL strips trailing spaces on retrieval."""
    columns: tuple[str, ...]


@dataclass(frozen=True)
class UnwrapUnsigned(PostStep):
    """
    Output columns holding unsigned 64-bit values.

    BIGINT UNSIGNED values above 2**63 - 1 (and unsigned CAST / BIT_* results)
    come out of SQLite as their negative signed wrap.
    """
    columns: tuple[str, ...]


@dataclass(frozen=True)
class RowValue:
    """
    Placeholder binding for VALUES(col) in ON DUPLICATE KEY UPDATE.

    The executor replaces it with the value the INSERT row carried for `column`.
    """
    column: str


class DefaultValue:
    """The DEFAULT keyword in a VALUES row (column default applies)."""

    def __repr__(self) -> str:
        return "DEFAULT"


DEFAULT = DefaultValue()


@dataclass(frozen=True)
class RewritePlan:
    """
    Translated SELECT / UPDATE / DELETE.

    Attributes:
        sql: SQLite SQL text.
        params: Positional bindings for `sql`.
        post_steps: Post-processing applied to the result in order.
        writes: The statement modifies data.
        needs_writer: Must run on the writer connection under the write lock.
        kind: "select", "update" or "delete".
        table: Target table of UPDATE / DELETE.
        warnings: Notes produced while planning (values clamped outside strict mode).
    """
    sql: str
    params: tuple[Any, ...] = ()
    post_steps: tuple[PostStep, ...] = ()
    writes: bool = False
    needs_writer: bool = False
    kind: str = "select"
    table: TableMeta | None = None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class InsertPlan:
    """
    Translated INSERT / REPLACE.

    Attributes:
        table: Target table metadata.
        columns: Target columns in statement order (all columns when none were listed).
        rows: One tuple of Fragments (or DEFAULT) per VALUES row.
        source: INSERT ... SELECT source plan (rows empty in that case).
        mode: "insert", "ignore" or "replace".
        on_duplicate: ON DUPLICATE KEY UPDATE assignments as (column, Fragment);
                      Fragment params may contain RowValue placeholders.
        strict: Strict sql_mode applies to value coercion.
    """
    table: TableMeta
    columns: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...] = ()
    source: RewritePlan | None = None
    mode: str = "insert"
    on_duplicate: tuple[tuple[str, Fragment], ...] = ()
    strict: bool = True
    writes: bool = True
    needs_writer: bool = True


@dataclass(frozen=True)
class MultiDeletePlan:
    """
    Translated multi-table DELETE.

    Attributes:
        targets: (table metadata, rowid SELECT) per table rows are deleted from.
    """
    targets: tuple[tuple[TableMeta, RewritePlan], ...]
    writes: bool = True
    needs_writer: bool = True


Plan = RewritePlan | InsertPlan | MultiDeletePlan


@dataclass(frozen=True)
class DdlPlan:
    """
    Translated DDL: SQLite statements plus the Table Metadata changes they imply.

    apply() runs everything on one connection; the caller wraps it in a single
    transaction and swaps in `catalog` only after COMMIT.

    Attributes:
        statements: SQLite DDL/DML statements in execution order.
        write: Metadata rows to insert or replace.
        delete: Tables whose metadata and sequence rows are removed.
        rename: (old name, new metadata) pairs.
        sequences: (table, next id) to store; next id None resets the sequence.
        catalog: Catalog after the DDL (None when nothing changed).
        message: Result message.
        warnings: Notes such as "Table 't' already exists".
    """
    statements: tuple[str, ...] = ()
    write: tuple[TableMeta, ...] = ()
    delete: tuple[str, ...] = ()
    rename: tuple[tuple[str, TableMeta], ...] = ()
    sequences: tuple[tuple[str, int | None], ...] = ()
    catalog: Catalog | None = None
    message: str = "OK"
    warnings: tuple[str, ...] = ()

    def apply(self, conn) -> None:
        for sql in self.statements:
            conn.execute(sql)
        for old, meta in self.rename:
            if not meta.options.get("temporary"):
                rename_table(conn, old, meta)
        for name in self.delete:
            delete_table(conn, name)
        for meta in self.write:
            if not meta.options.get("temporary"):
                write_table(conn, meta)
        for table, value in self.sequences:
            if value is None:
                reset_sequence(conn, table)
            else:
                set_next_id(conn, table, value)
