"""
mylite/translate/rewrite.py

Query Rewriter: turns a parsed DML Statement into a Rewrite Plan.

Responsibilities:
- SELECT / UNION: render with the Renderer, add CountFoundRows for
  SQL_CALC_FOUND_ROWS, StripCharPadding for CHAR(n) output columns and
  UnwrapUnsigned for BIGINT UNSIGNED / unsigned results, route
  FOR UPDATE / LOCK IN SHARE MODE to the writer connection
- INSERT / REPLACE: resolve the target columns and render every VALUES item as
  a Fragment; the executor materializes the rows (auto-increment ids, defaults,
  conflict handling)
- UPDATE: SET list with plan-time coercion of constants, ON UPDATE
  CURRENT_TIMESTAMP columns, a change filter so affected rows are MySQL's
  "changed rows", ORDER BY / LIMIT through a rowid subquery, multi-table
  UPDATE as UPDATE ... FROM
- DELETE: single-table (with ORDER BY / LIMIT) and multi-table DELETE

Notes:
- Plans are built per statement and never cached: bound parameters, session
  values and user variables are folded into the bindings.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from .. import typemap
from ..ast import (
    Assignment,
    ColumnRef,
    Default,
    Delete,
    DerivedTable,
    Expr,
    Insert,
    Join,
    Literal,
    Param,
    Select,
    Statement,
    TableRef,
    TableSource,
    Union,
    Update,
)
from ..catalog import Catalog, ColumnMeta, TableMeta
from ..errors import SchemaError, TranslationError
from ..typemap import quote_ident
from .plan import (
    DEFAULT,
    CountFoundRows,
    Fragment,
    InsertPlan,
    MultiDeletePlan,
    Plan,
    RewritePlan,
    SessionState,
    StripCharPadding,
    UnwrapUnsigned,
)
from .render import Renderer

INNER_JOINS = frozenset({"INNER", "CROSS", "STRAIGHT"})


def rewrite(statement: Statement, catalog: Catalog, session: SessionState, params: Any = None) -> Plan:
    """
    Build the Rewrite Plan for one DML statement.

    Args:
        statement: Parsed SELECT / UNION / INSERT / UPDATE / DELETE.
        catalog: Current Table Metadata.
        session: Session values read by the statement.
        params: Caller parameters (sequence for `?` / `%s`, mapping for `:name`).

    Returns:
        RewritePlan, InsertPlan or MultiDeletePlan.

    Raises:
        TranslationError: construct with no SQLite emulation.
        SchemaError / ExecutionError: unknown columns, missing parameters, ...
    """
    if isinstance(statement, (Select, Union)):
        plan = rewrite_query(statement, catalog, session, params)
    elif isinstance(statement, Insert):
        plan = rewrite_insert(statement, catalog, session, params)
    elif isinstance(statement, Update):
        plan = rewrite_update(statement, catalog, session, params)
    elif isinstance(statement, Delete):
        plan = rewrite_delete(statement, catalog, session, params)
    else:
        raise TranslationError(f"Not a DML statement: {type(statement).__name__}")
    if isinstance(plan, RewritePlan):
        logger.debug("Rewritten: {}", plan.sql)
    return plan


# ---------- SELECT / UNION ----------

def rewrite_query(node: Select | Union, catalog: Catalog, session: SessionState, params: Any = None) -> RewritePlan:
    r = Renderer(catalog, session, params)
    sql = r.query(node)
    bindings = r.take_bindings()
    char_columns = tuple(dict.fromkeys(r.char_columns))
    unsigned_columns = tuple(dict.fromkeys(r.unsigned_columns))

    selects = node.selects if isinstance(node, Union) else (node,)
    steps = []
    if selects[0].calc_found_rows:
        count_sql = f"SELECT COUNT(*) FROM ({r.query(node, drop_limit=True)})"
        steps.append(CountFoundRows(count_sql, r.take_bindings()))
    if char_columns:
        steps.append(StripCharPadding(char_columns))
    if unsigned_columns:
        steps.append(UnwrapUnsigned(unsigned_columns))
    return RewritePlan(
        sql=sql,
        params=bindings,
        post_steps=tuple(steps),
        needs_writer=any(s.lock is not None for s in selects),
    )


# ---------- shared helpers ----------

def default_sql(col: ColumnMeta) -> str:
    """SQL for the DEFAULT keyword assigned to an existing row's column."""
    text = col.default_sql
    if text is not None:
        return text
    if col.not_null:
        return typemap.quote_literal(typemap.implicit_default(col.typ))
    return "NULL"


def now_sql(col: ColumnMeta) -> str:
    if typemap.family(col.typ) == "date":
        return "date('now','localtime')"
    return "datetime('now','localtime')"


def target_column(meta: TableMeta, ref: ColumnRef, ref_name: str | None = None) -> ColumnMeta:
    if ref.table is not None and ref_name is not None and ref.table.lower() not in (
        ref_name.lower(), meta.name.lower()
    ):
        raise SchemaError(f"Unknown column '{ref.table}.{ref.column}' in 'field list'", errno=1054, sqlstate="42S22")
    return meta.require_column(ref.column)


# ---------- INSERT / REPLACE ----------

def rewrite_insert(stmt: Insert, catalog: Catalog, session: SessionState, params: Any = None) -> InsertPlan:
    meta = catalog.require_table(stmt.table.name, session.database)

    if stmt.columns:
        columns = []
        seen: set[str] = set()
        for name in stmt.columns:
            col = meta.require_column(name)
            if col.name.lower() in seen:
                raise SchemaError(f"Column '{col.name}' specified twice", errno=1110)
            seen.add(col.name.lower())
            columns.append(col.name)
    else:
        columns = meta.column_names()

    r = Renderer(catalog, session, params)
    rows = []
    for number, row in enumerate(stmt.rows, start=1):
        if not row:
            rows.append((DEFAULT,) * len(columns))
            continue
        if len(row) != len(columns):
            raise SchemaError(f"Column count doesn't match value count at row {number}", errno=1136, sqlstate="21S01")
        values = []
        for value in row:
            if isinstance(value, Default):
                values.append(DEFAULT)
            else:
                sql = r.expr(value)
                values.append(Fragment(sql, r.take_bindings()))
        rows.append(tuple(values))

    source = None
    if stmt.query is not None:
        source = rewrite_query(stmt.query, catalog, session, params)

    on_duplicate = []
    if stmt.on_duplicate:
        odku = Renderer(catalog, session, params, row_values=True)
        odku.scopes.append(odku.build_scope((stmt.table,)))
        for a in stmt.on_duplicate:
            col = target_column(meta, a.column, stmt.table.ref_name)
            if isinstance(a.value, Default):
                on_duplicate.append((col.name, Fragment(default_sql(col))))
            else:
                sql = odku.expr(a.value)
                on_duplicate.append((col.name, Fragment(sql, odku.take_bindings())))

    mode = "replace" if stmt.replace else "ignore" if stmt.ignore else "insert"
    return InsertPlan(
        table=meta,
        columns=tuple(columns),
        rows=tuple(rows),
        source=source,
        mode=mode,
        on_duplicate=tuple(on_duplicate),
        strict=session.strict and not stmt.ignore,
    )


# ---------- UPDATE ----------

def _assignment_value(
    r: Renderer, col: ColumnMeta, value: Expr, strict: bool, warnings: list[str]
) -> Fragment:
    if isinstance(value, Default):
        return Fragment(default_sql(col))
    if isinstance(value, (Literal, Param)):
        ok, constant = r.constant(value)
        if ok and constant is not None:
            coerced = typemap.coerce(col.name, col.typ, constant, strict=strict, warnings=warnings)
            return Fragment(r.bind(typemap.storage_value(col.typ, coerced)), r.take_bindings())
    sql = r.expr(value)
    return Fragment(sql, r.take_bindings())


def _set_clause(
    r: Renderer, meta: TableMeta, ref_name: str, assignments: tuple[Assignment, ...], strict: bool,
    warnings: list[str],
) -> tuple[list[tuple[ColumnMeta, Fragment]], list[str]]:
    """Rendered SET items plus ON UPDATE CURRENT_TIMESTAMP assignments."""
    sets: list[tuple[ColumnMeta, Fragment]] = []
    assigned: set[str] = set()
    for a in assignments:
        col = target_column(meta, a.column, ref_name)
        sets.append((col, _assignment_value(r, col, a.value, strict, warnings)))
        assigned.add(col.name.lower())
    auto = [
        f"{quote_ident(c.name)} = {now_sql(c)}"
        for c in meta.columns
        if c.on_update_now and c.name.lower() not in assigned
    ]
    return sets, auto


def _change_filter(sets: list[tuple[ColumnMeta, Fragment]]) -> Fragment:
    """Rows whose assigned values all equal the stored ones are not "changed" in MySQL."""
    terms = []
    params: list[Any] = []
    for col, frag in sets:
        collate = " COLLATE BINARY" if typemap.is_text(col.typ) else ""
        terms.append(f"{quote_ident(col.name)} IS NOT ({frag.sql}){collate}")
        params.extend(frag.params)
    return Fragment("(" + " OR ".join(terms) + ")", tuple(params))


def rewrite_update(stmt: Update, catalog: Catalog, session: SessionState, params: Any = None) -> RewritePlan:
    if not isinstance(stmt.table, TableRef):
        return rewrite_multi_update(stmt, catalog, session, params)

    ref = stmt.table
    meta = catalog.require_table(ref.name, session.database)
    strict = session.strict and not stmt.ignore
    warnings: list[str] = []

    r = Renderer(catalog, session, params)
    r.scopes.append(r.build_scope((ref,)))
    sets, auto = _set_clause(r, meta, ref.ref_name, stmt.assignments, strict, warnings)

    where = None
    if stmt.where is not None:
        where = Fragment(r.expr(stmt.where), r.take_bindings())

    target = quote_ident(meta.name) + (f" AS {quote_ident(ref.alias)}" if ref.alias else "")
    conditions: list[Fragment] = []
    if stmt.order_by or stmt.limit is not None:
        conditions.append(_rowid_subquery(r, target, where, stmt))
    elif where is not None:
        conditions.append(where)
    conditions.append(_change_filter(sets))

    set_sql = ", ".join([f"{quote_ident(c.name)} = {f.sql}" for c, f in sets] + auto)
    verb = "UPDATE OR IGNORE" if stmt.ignore else "UPDATE"
    sql = f"{verb} {target} SET {set_sql} WHERE " + " AND ".join(f"({c.sql})" for c in conditions)
    bindings = [p for _, f in sets for p in f.params]
    for c in conditions:
        bindings.extend(c.params)
    return RewritePlan(
        sql=sql,
        params=tuple(bindings),
        writes=True,
        needs_writer=True,
        kind="update",
        table=meta,
        warnings=tuple(warnings),
    )


def _rowid_subquery(r: Renderer, target: str, where: Fragment | None, stmt: Update | Delete) -> Fragment:
    """`rowid IN (SELECT rowid ... ORDER BY ... LIMIT n)` for UPDATE / DELETE with ORDER BY / LIMIT."""
    parts = [f"SELECT rowid FROM {target}"]
    if where is not None:
        parts.append(f"WHERE {where.sql}")
    if stmt.order_by:
        parts.append("ORDER BY " + r.order_items(stmt.order_by))
    order_params = r.take_bindings()
    if stmt.limit is not None:
        parts.append(r.limit_clause(stmt.limit, None))
    inner_params = (where.params if where is not None else ()) + order_params
    return Fragment("rowid IN (" + " ".join(parts) + ")", inner_params)


def _flatten_inner(src: TableSource, sources: list[TableSource], conditions: list[Expr]) -> None:
    if isinstance(src, (TableRef, DerivedTable)):
        sources.append(src)
        return
    if isinstance(src, Join):
        if src.kind not in INNER_JOINS or src.natural or src.using:
            raise TranslationError("Multi-table UPDATE supports only inner joins with ON conditions")
        _flatten_inner(src.left, sources, conditions)
        _flatten_inner(src.right, sources, conditions)
        if src.on is not None:
            conditions.append(src.on)
        return
    raise TranslationError(f"Unsupported table source: {type(src).__name__}")


def rewrite_multi_update(stmt: Update, catalog: Catalog, session: SessionState, params: Any = None) -> RewritePlan:
    """
    UPDATE t1 JOIN t2 ON ... SET t1.c = ... as `UPDATE t1 SET ... FROM t2 WHERE ...`.

    Only one table may be assigned to.
    """
    if stmt.order_by or stmt.limit is not None:
        raise TranslationError("Incorrect usage of UPDATE and ORDER BY", errno=1221)
    sources: list[TableSource] = []
    join_conditions: list[Expr] = []
    _flatten_inner(stmt.table, sources, join_conditions)

    r = Renderer(catalog, session, params)
    scope = r.build_scope(tuple(sources))
    r.scopes.append(scope)

    target_refs = set()
    for a in stmt.assignments:
        if a.column.table is not None:
            target_refs.add(a.column.table.lower())
        else:
            owners = [ref for ref in scope.order
                      if scope.tables[ref.lower()] is not None
                      and scope.tables[ref.lower()].get_column(a.column.column) is not None]
            if not owners:
                raise SchemaError(f"Unknown column '{a.column.column}' in 'field list'", errno=1054, sqlstate="42S22")
            if len(owners) > 1:
                raise SchemaError(f"Column '{a.column.column}' in field list is ambiguous", errno=1052,
                                  sqlstate="23000")
            target_refs.add(owners[0].lower())
    if len(target_refs) != 1:
        raise TranslationError("Multi-table UPDATE of more than one table is not supported")
    target_ref = target_refs.pop()
    target_src = next(
        (s for s in sources if isinstance(s, TableRef) and s.ref_name.lower() == target_ref), None
    )
    if target_src is None:
        raise TranslationError(f"The target table {target_ref} of the UPDATE is not updatable", errno=1288)
    meta = catalog.require_table(target_src.name, session.database)
    strict = session.strict and not stmt.ignore
    warnings: list[str] = []

    sets, auto = _set_clause(r, meta, target_src.ref_name, stmt.assignments, strict, warnings)
    others = [s for s in sources if s is not target_src]
    from_sql = ", ".join(r.source(s) for s in others)
    from_params = r.take_bindings()

    conditions = [Fragment(r.expr(c), r.take_bindings()) for c in join_conditions]
    if stmt.where is not None:
        conditions.append(Fragment(r.expr(stmt.where), r.take_bindings()))
    conditions.append(_change_filter(sets))

    target = quote_ident(meta.name) + (f" AS {quote_ident(target_src.alias)}" if target_src.alias else "")
    set_sql = ", ".join([f"{quote_ident(c.name)} = {f.sql}" for c, f in sets] + auto)
    verb = "UPDATE OR IGNORE" if stmt.ignore else "UPDATE"
    sql = f"{verb} {target} SET {set_sql}"
    if from_sql:
        sql += f" FROM {from_sql}"
    sql += " WHERE " + " AND ".join(f"({c.sql})" for c in conditions)
    bindings = [p for _, f in sets for p in f.params] + list(from_params)
    for c in conditions:
        bindings.extend(c.params)
    return RewritePlan(
        sql=sql,
        params=tuple(bindings),
        writes=True,
        needs_writer=True,
        kind="update",
        table=meta,
        warnings=tuple(warnings),
    )


# ---------- DELETE ----------

def rewrite_delete(stmt: Delete, catalog: Catalog, session: SessionState, params: Any = None) -> Plan:
    if stmt.table is None:
        return rewrite_multi_delete(stmt, catalog, session, params)

    ref = stmt.table
    meta = catalog.require_table(ref.name, session.database)
    r = Renderer(catalog, session, params)
    r.scopes.append(r.build_scope((ref,)))
    where = None
    if stmt.where is not None:
        where = Fragment(r.expr(stmt.where), r.take_bindings())

    target = quote_ident(meta.name) + (f" AS {quote_ident(ref.alias)}" if ref.alias else "")
    sql = f"DELETE FROM {target}"
    bindings: tuple[Any, ...] = ()
    if stmt.order_by or stmt.limit is not None:
        cond = _rowid_subquery(r, target, where, stmt)
        sql += f" WHERE {cond.sql}"
        bindings = cond.params
    elif where is not None:
        sql += f" WHERE {where.sql}"
        bindings = where.params
    return RewritePlan(sql=sql, params=bindings, writes=True, needs_writer=True, kind="delete", table=meta)


def rewrite_multi_delete(stmt: Delete, catalog: Catalog, session: SessionState, params: Any = None) -> MultiDeletePlan:
    """
    DELETE t1, t2 FROM ... / DELETE FROM t1, t2 USING ...

    One rowid query per target; the executor collects all rowids before
    deleting anything, so later targets still see the joined rows.
    """
    r = Renderer(catalog, session, params)
    scope = r.build_scope(stmt.from_)
    targets = []
    for name in stmt.targets:
        ref = next((o for o in scope.order if o.lower() == name.lower()), None)
        if ref is None:
            raise SchemaError(f"Unknown table '{name}' in MULTI DELETE", errno=1109, sqlstate="42S02")
        meta = scope.tables[ref.lower()]
        if meta is None:
            raise TranslationError(f"The target table {name} of the DELETE is not updatable", errno=1288)

        r.scopes.append(scope)
        try:
            sql = f"SELECT {quote_ident(ref)}.rowid FROM " + ", ".join(r.source(s) for s in stmt.from_)
            if stmt.where is not None:
                sql += " WHERE " + r.expr(stmt.where)
        finally:
            r.scopes.pop()
        targets.append((meta, RewritePlan(sql=sql, params=r.take_bindings(), kind="select")))
    return MultiDeletePlan(targets=tuple(targets))
