"""
mylite/exec/executor.py

Statement execution engine for the mylite MySQL-on-SQLite engine.

Responsibilities:
- Execute parsed Statements:
    - DDL: CREATE / ALTER / DROP / TRUNCATE / RENAME TABLE, CREATE / DROP INDEX
      (translated, applied in one transaction, catalog swapped after COMMIT)
    - DML: SELECT / UNION / INSERT / REPLACE / UPDATE / DELETE through a Rewrite Plan
    - Session statements: transactions, SHOW / DESCRIBE, SET, LOCK / UNLOCK TABLES
- Materialize INSERT rows: column defaults, auto-increment ids, value coercion
  to the declared type, REPLACE / INSERT IGNORE / ON DUPLICATE KEY UPDATE
- Report insert_id / rows_affected with MySQL's conventions
- Map SQLite failures to MySQL errors with the offending key and value

Core design:
- Every writing statement runs inside Session.write_scope(): its own
  transaction outside BEGIN, a statement savepoint inside one. A failure
  therefore never leaves part of a multi-row statement behind.
- Statements outside an explicit transaction are retried as a whole on
  transient lock contention.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

from loguru import logger

from .. import functions, typemap
from ..ast import (
    DDL_STATEMENTS,
    AlterTable,
    CreateIndex,
    CreateTable,
    Delete,
    DropIndex,
    DropTable,
    Expr,
    Insert,
    Literal,
    LockTables,
    RenameTable,
    Select,
    SetVariables,
    Show,
    Statement,
    Transaction,
    TruncateTable,
    Union,
    Update,
)
from ..catalog import Catalog, ColumnMeta, KeyMeta, TableMeta, bump_next_id, next_id, set_next_id
from ..errors import ExecutionError, MyLiteError, translate_sqlite_error, value_text
from ..result import ResultSet
from ..session import Session, system_variables
from ..translate.alter import translate_alter_table, translate_create_index, translate_drop_index
from ..translate.create import translate_create_table, translate_drop_table, translate_rename_table, translate_truncate
from ..translate.plan import (
    DEFAULT,
    CountFoundRows,
    DdlPlan,
    Fragment,
    InsertPlan,
    MultiDeletePlan,
    RewritePlan,
    RowValue,
)
from ..translate.render import Renderer
from ..translate.rewrite import now_sql, rewrite
from ..typemap import quote_ident
from .postprocess import apply_post_steps, fetch_result
from .show import run_show

DELETE_CHUNK = 500


def translate_ddl(stmt: Statement, catalog: Catalog, database: str) -> DdlPlan:
    """Dispatch a DDL statement to its translator."""
    if isinstance(stmt, CreateTable):
        return translate_create_table(stmt, catalog, database)
    if isinstance(stmt, AlterTable):
        return translate_alter_table(stmt, catalog, database)
    if isinstance(stmt, DropTable):
        return translate_drop_table(stmt, catalog, database)
    if isinstance(stmt, TruncateTable):
        return translate_truncate(stmt, catalog, database)
    if isinstance(stmt, CreateIndex):
        return translate_create_index(stmt, catalog, database)
    if isinstance(stmt, DropIndex):
        return translate_drop_index(stmt, catalog, database)
    if isinstance(stmt, RenameTable):
        return translate_rename_table(stmt, catalog, database)
    raise ExecutionError(f"Unsupported DDL statement: {type(stmt).__name__}")


def affected_message(count: int) -> str:
    return f"Query OK, {count} row{'s' if count != 1 else ''} affected"


@dataclass
class Executor:
    """
    Executes parsed Statements against a Session.

    Args:
        session: Connections, transaction state, session values and catalog.
    """
    session: Session

    # --------------------------
    # public entry point
    # --------------------------

    def execute(
        self,
        stmt: Statement,
        *,
        params: Any = None,
        sql: str | None = None,
        timeout: float | None = None,
    ) -> ResultSet:
        """
        Execute a parsed statement.

        Args:
            stmt: Parsed Statement.
            params: Caller parameters for `?` / `%s` / `:name` placeholders.
            sql: Original statement text (error messages).
            timeout: Per-statement timeout in seconds.

        Returns:
            ResultSet.

        Raises:
            MyLiteError: translation or execution failure; partial effects are rolled back.
        """
        try:
            return self._dispatch(stmt, params, sql, timeout)
        except OverflowError as exc:
            # sqlite3 cannot bind integers outside the signed 64-bit range.
            raise ExecutionError(
                "BIGINT value is out of range", errno=1690, sqlstate="22003", statement=sql
            ) from exc

    def _dispatch(self, stmt: Statement, params: Any, sql: str | None, timeout: float | None) -> ResultSet:
        if isinstance(stmt, (Select, Union)):
            return self._query(stmt, params, sql, timeout)
        if isinstance(stmt, (Insert, Update, Delete)):
            return self._write(stmt, params, sql, timeout)
        if isinstance(stmt, DDL_STATEMENTS):
            return self._ddl(stmt, sql, timeout)
        if isinstance(stmt, Transaction):
            return self._transaction(stmt)
        if isinstance(stmt, Show):
            with self.session.read_scope() as conn:
                return run_show(stmt, self.session.catalog, conn, self.session.state)
        if isinstance(stmt, SetVariables):
            return self._set(stmt, params)
        if isinstance(stmt, LockTables):
            logger.debug("{} TABLES accepted; writes are already serialized", "UNLOCK" if stmt.unlock else "LOCK")
            return ResultSet(message="OK")
        raise ExecutionError("Unsupported statement")

    def _error(
        self,
        exc: sqlite3.Error,
        sql: str | None,
        meta: TableMeta | None = None,
        row_number: int = 1,
        duplicate_value: str | None = None,
    ) -> MyLiteError:
        return translate_sqlite_error(
            exc,
            statement=sql,
            database=self.session.state.database,
            row_number=row_number,
            key_lookup=meta.key_for_columns if meta is not None else None,
            duplicate_value=duplicate_value,
        )

    # --------------------------
    # SELECT
    # --------------------------

    def _query(self, stmt: Select | Union, params: Any, sql: str | None, timeout: float | None) -> ResultSet:
        s = self.session
        plan = rewrite(stmt, s.catalog, s.state, params)
        limit = s.statement_timeout(timeout, query=True)

        def run() -> tuple[list[str], list[dict[str, Any]], int]:
            with s.read_scope(plan.needs_writer) as conn, s.deadline(conn, limit):
                try:
                    columns, rows = fetch_result(conn.execute(plan.sql, plan.params))
                    found = apply_post_steps(conn, plan.post_steps, rows)
                except sqlite3.Error as exc:
                    raise self._error(exc, sql) from exc
            return columns, rows, found

        columns, rows, found = run() if s.in_transaction else s.retry(run)
        s.state.found_rows = found
        s.state.row_count = -1
        counted = any(isinstance(step, CountFoundRows) for step in plan.post_steps)
        return ResultSet(
            columns=columns,
            rows=rows,
            found_rows=found if counted else None,
            message=f"{len(rows)} row{'s' if len(rows) != 1 else ''} in set",
        )

    # --------------------------
    # INSERT / UPDATE / DELETE
    # --------------------------

    def _write(self, stmt: Statement, params: Any, sql: str | None, timeout: float | None) -> ResultSet:
        s = self.session
        limit = s.statement_timeout(timeout, query=False)

        def run() -> ResultSet:
            with s.write_scope() as conn:
                plan = rewrite(stmt, s.catalog, s.state, params)
                with s.deadline(conn, limit):
                    if isinstance(plan, InsertPlan):
                        return self._insert(plan, conn, sql)
                    if isinstance(plan, MultiDeletePlan):
                        return self._multi_delete(plan, conn, sql)
                    return self._modify(plan, conn, sql)

        return run() if s.in_transaction else s.retry(run)

    def _modify(self, plan: RewritePlan, conn: sqlite3.Connection, sql: str | None) -> ResultSet:
        """Single- or multi-table UPDATE / single-table DELETE."""
        try:
            cur = conn.execute(plan.sql, plan.params)
        except sqlite3.Error as exc:
            raise self._error(exc, sql, plan.table) from exc
        affected = max(cur.rowcount, 0)
        self.session.state.row_count = affected
        return ResultSet(rows_affected=affected, message=affected_message(affected), warnings=list(plan.warnings))

    def _multi_delete(self, plan: MultiDeletePlan, conn: sqlite3.Connection, sql: str | None) -> ResultSet:
        collected: list[tuple[TableMeta, list[int]]] = []
        try:
            for meta, query in plan.targets:
                ids = {r[0] for r in conn.execute(query.sql, query.params) if r[0] is not None}
                collected.append((meta, sorted(ids)))
            affected = 0
            for meta, ids in collected:
                for start in range(0, len(ids), DELETE_CHUNK):
                    part = ids[start:start + DELETE_CHUNK]
                    marks = ", ".join("?" * len(part))
                    cur = conn.execute(f"DELETE FROM {quote_ident(meta.name)} WHERE rowid IN ({marks})", part)
                    affected += cur.rowcount
        except sqlite3.Error as exc:
            raise self._error(exc, sql) from exc
        self.session.state.row_count = affected
        return ResultSet(rows_affected=affected, message=affected_message(affected))

    # --------------------------
    # INSERT materialization
    # --------------------------

    def _insert(self, plan: InsertPlan, conn: sqlite3.Connection, sql: str | None) -> ResultSet:
        meta = plan.table
        state = self.session.state
        ai = meta.auto_increment_column
        warnings: list[str] = []
        affected = 0
        first_generated: int | None = None
        insert_id = 0

        for number, provided in enumerate(self._source_rows(plan, conn, sql), start=1):
            row = self._complete_row(meta, provided, plan.strict, number, warnings)
            generate = False
            if ai is not None:
                value = row[ai.name]
                if value is None or (value == 0 and not state.no_auto_value_on_zero):
                    row[ai.name] = None
                    generate = True

            if plan.on_duplicate:
                conflicts = self._conflicts(conn, meta, row)
                if conflicts:
                    rowid = conflicts[0][1]
                    if self._update_duplicate(conn, plan, rowid, row, number, sql):
                        affected += 2
                    if ai is not None and not insert_id:
                        insert_id = self._ai_value(conn, meta, rowid) or 0
                    continue
            elif plan.mode == "replace":
                affected += self._delete_conflicts(conn, meta, row, sql)

            new_id = None
            if generate:
                new_id = next_id(conn, meta)
                row[ai.name] = new_id
                set_next_id(conn, meta.name, new_id + 1)

            if self._insert_row(conn, plan, row, number, sql):
                affected += 1
                if new_id is not None:
                    if first_generated is None:
                        first_generated = new_id
                elif ai is not None and row[ai.name] is not None:
                    bump_next_id(conn, meta, int(row[ai.name]))
                    if not insert_id:
                        insert_id = int(row[ai.name])
            else:
                warnings.append(self._duplicate_warning(conn, meta, row))

        if first_generated is not None:
            state.last_insert_id = first_generated
            insert_id = first_generated
        state.row_count = affected
        if warnings:
            logger.debug("INSERT into {} produced {} warning(s)", meta.name, len(warnings))
        return ResultSet(
            insert_id=insert_id,
            rows_affected=affected,
            message=affected_message(affected),
            warnings=warnings,
        )

    def _source_rows(self, plan: InsertPlan, conn: sqlite3.Connection, sql: str | None) -> list[dict[str, Any]]:
        """Provided values per row: VALUES fragments evaluated, or the INSERT ... SELECT result."""
        if plan.source is not None:
            try:
                cur = conn.execute(plan.source.sql, plan.source.params)
                raw = cur.fetchall()
            except sqlite3.Error as exc:
                raise self._error(exc, sql) from exc
            if len(cur.description) != len(plan.columns):
                raise ExecutionError(
                    "Column count doesn't match value count at row 1", errno=1136, sqlstate="21S01", statement=sql
                )
            return [dict(zip(plan.columns, r)) for r in raw]
        rows = []
        for values in plan.rows:
            rows.append({name: self._evaluate(conn, v, sql) for name, v in zip(plan.columns, values)})
        return rows

    def _evaluate(self, conn: sqlite3.Connection, value: Any, sql: str | None) -> Any:
        if value is DEFAULT:
            return DEFAULT
        if value.is_binding:
            return value.params[0]
        try:
            return conn.execute(f"SELECT {value.sql}", value.params).fetchone()[0]
        except sqlite3.Error as exc:
            raise self._error(exc, sql) from exc

    def _default_value(self, col: ColumnMeta, strict: bool, number: int, warnings: list[str]) -> Any:
        """Value stored for an omitted column or the DEFAULT keyword."""
        if col.auto_increment:
            return None
        if col.default_now:
            return functions.fn_curdate() if typemap.family(col.typ) == "date" else functions.fn_now()
        if col.has_default:
            return col.default
        if col.not_null:
            message = f"Field '{col.name}' doesn't have a default value"
            if strict:
                raise ExecutionError(message, errno=1364, sqlstate="HY000")
            warnings.append(message)
            return typemap.implicit_default(col.typ)
        return None

    def _complete_row(
        self,
        meta: TableMeta,
        provided: dict[str, Any],
        strict: bool,
        number: int,
        warnings: list[str],
    ) -> dict[str, Any]:
        """Full row in table column order with defaults applied and values coerced."""
        row: dict[str, Any] = {}
        for col in meta.columns:
            value = provided.get(col.name, DEFAULT)
            if value is DEFAULT:
                value = self._default_value(col, strict, number, warnings)
            elif value is None and col.not_null and not col.auto_increment:
                message = f"Column '{col.name}' cannot be null"
                if strict:
                    raise ExecutionError(message, errno=1048, sqlstate="23000")
                warnings.append(message)
                value = typemap.implicit_default(col.typ)
            if value is not None:
                value = typemap.coerce(col.name, col.typ, value, strict=strict, row_number=number, warnings=warnings)
                value = typemap.storage_value(col.typ, value)
            row[col.name] = value
        return row

    def _insert_row(
        self, conn: sqlite3.Connection, plan: InsertPlan, row: dict[str, Any], number: int, sql: str | None
    ) -> bool:
        meta = plan.table
        names = ", ".join(quote_ident(n) for n in row)
        marks = ", ".join("?" * len(row))
        verb = "INSERT OR IGNORE" if plan.mode == "ignore" else "INSERT"
        try:
            cur = conn.execute(f"{verb} INTO {quote_ident(meta.name)} ({names}) VALUES ({marks})", list(row.values()))
        except sqlite3.Error as exc:
            duplicate = None
            if isinstance(exc, sqlite3.IntegrityError):
                duplicate = self._duplicate_text(conn, meta, row)
            raise self._error(exc, sql, meta, number, duplicate) from exc
        return cur.rowcount > 0

    # --------------------------
    # duplicate-key handling
    # --------------------------

    def _conflicts(self, conn: sqlite3.Connection, meta: TableMeta, row: dict[str, Any]) -> list[tuple[KeyMeta, int]]:
        """Existing rows that share a PRIMARY / UNIQUE key value with `row` (NULLs never conflict)."""
        found: list[tuple[KeyMeta, int]] = []
        for key in meta.unique_keys():
            cols = [meta.get_column(c) for c in key.columns]
            values = [row[c.name] for c in cols if c is not None]
            if len(values) != len(key.columns) or any(v is None for v in values):
                continue
            where = " AND ".join(f"{quote_ident(c.name)} = ?" for c in cols)
            hit = conn.execute(f"SELECT rowid FROM {quote_ident(meta.name)} WHERE {where} LIMIT 1", values).fetchone()
            if hit is not None:
                found.append((key, hit[0]))
        return found

    def _duplicate_text(self, conn: sqlite3.Connection, meta: TableMeta, row: dict[str, Any]) -> str | None:
        conflicts = self._conflicts(conn, meta, row)
        if not conflicts:
            return None
        return self._key_text(meta, conflicts[0][0], row)

    def _duplicate_warning(self, conn: sqlite3.Connection, meta: TableMeta, row: dict[str, Any]) -> str:
        conflicts = self._conflicts(conn, meta, row)
        if not conflicts:
            return "Row ignored"
        key = conflicts[0][0]
        return f"Duplicate entry '{self._key_text(meta, key, row)}' for key '{key.name}'"

    @staticmethod
    def _key_text(meta: TableMeta, key: KeyMeta, row: dict[str, Any]) -> str:
        parts = []
        for name in key.columns:
            col = meta.get_column(name)
            value = row[col.name]
            if typemap.stores_wrapped(col.typ):
                value = functions.unwrap_unsigned(value)
            parts.append(value_text(value))
        return "-".join(parts)

    def _delete_conflicts(self, conn: sqlite3.Connection, meta: TableMeta, row: dict[str, Any], sql: str | None) -> int:
        """REPLACE: delete every row the new one collides with; returns the number deleted."""
        rowids = sorted({rowid for _, rowid in self._conflicts(conn, meta, row)})
        if not rowids:
            return 0
        marks = ", ".join("?" * len(rowids))
        try:
            cur = conn.execute(f"DELETE FROM {quote_ident(meta.name)} WHERE rowid IN ({marks})", rowids)
        except sqlite3.Error as exc:
            raise self._error(exc, sql, meta) from exc
        return cur.rowcount

    def _update_duplicate(
        self,
        conn: sqlite3.Connection,
        plan: InsertPlan,
        rowid: int,
        row: dict[str, Any],
        number: int,
        sql: str | None,
    ) -> bool:
        """
        ON DUPLICATE KEY UPDATE against the colliding row.

        Returns:
            True when a value actually changed (affected rows 2), False otherwise (0).
        """
        meta = plan.table
        sets: list[str] = []
        params: list[Any] = []
        changes: list[str] = []
        change_params: list[Any] = []
        for name, frag in plan.on_duplicate:
            col = meta.require_column(name)
            bound = self._bind_row_values(meta, frag, row)
            sets.append(f"{quote_ident(col.name)} = {frag.sql}")
            params.extend(bound)
            collate = " COLLATE BINARY" if typemap.is_text(col.typ) else ""
            changes.append(f"{quote_ident(col.name)} IS NOT ({frag.sql}){collate}")
            change_params.extend(bound)
        assigned = {name.lower() for name, _ in plan.on_duplicate}
        sets.extend(
            f"{quote_ident(c.name)} = {now_sql(c)}"
            for c in meta.columns
            if c.on_update_now and c.name.lower() not in assigned
        )
        statement = (
            f"UPDATE {quote_ident(meta.name)} SET {', '.join(sets)} "
            f"WHERE rowid = ? AND ({' OR '.join(changes)})"
        )
        try:
            cur = conn.execute(statement, [*params, rowid, *change_params])
        except sqlite3.Error as exc:
            raise self._error(exc, sql, meta, number) from exc
        return cur.rowcount > 0

    @staticmethod
    def _bind_row_values(meta: TableMeta, frag: Fragment, row: dict[str, Any]) -> list[Any]:
        """Replace VALUES(col) placeholders with the values the INSERT row carried."""
        out = []
        for p in frag.params:
            if isinstance(p, RowValue):
                out.append(row[meta.require_column(p.column).name])
            else:
                out.append(p)
        return out

    @staticmethod
    def _ai_value(conn: sqlite3.Connection, meta: TableMeta, rowid: int) -> int | None:
        ai = meta.auto_increment_column
        hit = conn.execute(f"SELECT {quote_ident(ai.name)} FROM {quote_ident(meta.name)} WHERE rowid = ?", (rowid,))
        value = hit.fetchone()
        return int(value[0]) if value and value[0] is not None else None

    # --------------------------
    # DDL
    # --------------------------

    def _ddl(self, stmt: Statement, sql: str | None, timeout: float | None) -> ResultSet:
        s = self.session
        s.acquire()
        try:
            plan = translate_ddl(stmt, s.catalog, s.state.database)
            warnings = s.apply_ddl(plan, sql, s.statement_timeout(timeout, query=False))
        finally:
            s.release()
        logger.info("{}: {}", type(stmt).__name__, plan.message)
        return ResultSet(message=plan.message, warnings=warnings + list(plan.warnings))

    # --------------------------
    # transactions / SET
    # --------------------------

    def _transaction(self, stmt: Transaction) -> ResultSet:
        s = self.session
        if stmt.action == "BEGIN":
            message = s.begin()
        elif stmt.action == "COMMIT":
            message = s.commit()
        elif stmt.action == "ROLLBACK":
            message = s.rollback()
        elif stmt.action in ("SAVEPOINT", "ROLLBACK TO", "RELEASE"):
            message = s.savepoint(stmt.action, stmt.savepoint or "")
        else:
            raise ExecutionError(f"Unsupported transaction statement: {stmt.action}")
        return ResultSet(message=message)

    def _scalar(self, expr: Expr, params: Any) -> Any:
        """Evaluate one expression (SET right-hand sides)."""
        if isinstance(expr, Literal) and not isinstance(expr.value, bool):
            return expr.value
        s = self.session
        r = Renderer(s.catalog, s.state, params)
        text = r.expr(expr)
        with s.read_scope() as conn:
            try:
                return conn.execute(f"SELECT {text}", r.take_bindings()).fetchone()[0]
            except sqlite3.Error as exc:
                raise self._error(exc, None) from exc

    def _set(self, stmt: SetVariables, params: Any) -> ResultSet:
        s = self.session
        for name, expr in stmt.assignments:
            if name.startswith("@"):
                s.state.user_vars[name[1:].lower()] = self._scalar(expr, params)
                continue
            self._set_system(name.lower(), expr, params)
        return ResultSet(message="OK")

    def _set_system(self, name: str, expr: Expr, params: Any) -> None:
        s = self.session
        variables = s.state.variables
        if name == "transaction_characteristics":
            logger.debug("SET TRANSACTION ignored; transactions are always serializable")
            return
        if name not in variables:
            raise ExecutionError(f"Unknown system variable '{name}'", errno=1193, sqlstate="HY000")
        if isinstance(expr, Literal) and isinstance(expr.value, str) and expr.value.upper() == "DEFAULT":
            value = system_variables(s.settings).get(name)
        else:
            value = self._scalar(expr, params)

        if name == "autocommit":
            value = 0 if str(value).upper() in ("0", "OFF", "FALSE") else 1
            if value == 1:
                while s.in_transaction:
                    s.commit()
        elif name == "sql_mode":
            value = ",".join(m.strip().upper() for m in str(value or "").split(",") if m.strip())
        elif name == "character_set_client":
            variables["character_set_connection"] = value
            variables["character_set_results"] = value
        variables[name] = value
        logger.debug("SET {} = {!r}", name, value)
