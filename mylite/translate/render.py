"""
mylite/translate/render.py

Render MySQL AST expressions and queries as SQLite SQL.

Responsibilities:
- Quote identifiers ("name", or `col` inside expressions) and bind every
  literal as a positional `?`
- Classify each MySQL built-in function through FUNCTION_MAP:
    - builtin: SQLite has the same function (possibly under another name)
    - udf:     implemented in mylite/functions.py, called as mylite_<name>()
    - rewrite: expressed with SQLite syntax (IF → CASE, CONCAT → ||, ...)
    - session: answered from the session (LAST_INSERT_ID(), FOUND_ROWS(), ...)
  Anything else raises TranslationError 1305.
- Render SELECT / UNION including joins (RIGHT JOIN → swapped LEFT JOIN),
  derived tables, GROUP BY / HAVING / ORDER BY / LIMIT.
- Apply declared-type comparison rules that need column metadata
  (UNSIGNED column vs negative constant folding, BIGINT UNSIGNED equality
  against the stored signed wrap).

Design notes:
- Dispatch is on the exact node class through _DISPATCH, one renderer per
  class, so a node never matches two rules and the result is deterministic.
  Every class without a renderer is an explicit TranslationError, so nothing
  is silently dropped.
- Bindings are appended in the order the SQL text is produced.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from .. import functions, typemap
from ..ast import (
    Between,
    Binary,
    Case,
    Cast,
    Collate,
    ColumnRef,
    Default,
    DerivedTable,
    Exists,
    Expr,
    FuncCall,
    InList,
    InSubquery,
    Interval,
    IsTest,
    Join,
    Like,
    Literal,
    Match,
    OrderItem,
    Param,
    Regexp,
    Select,
    SelectItem,
    Star,
    SubqueryExpr,
    TableRef,
    TableSource,
    Unary,
    Union,
    Variable,
)
from ..catalog import Catalog, ColumnMeta, TableMeta
from ..errors import ExecutionError, TranslationError
from .plan import RowValue, SessionState

BUILTIN = "builtin"
UDF = "udf"
REWRITE = "rewrite"
SESSION = "session"

# MySQL function → (kind, target). Names found in functions.SCALAR_FUNCTIONS /
# AGGREGATE_FUNCTIONS and not listed here are UDF-backed under their own name.
FUNCTION_MAP: dict[str, tuple[str, str]] = {
    # SQLite built-ins with MySQL semantics
    "ABS": (BUILTIN, "abs"),
    "IFNULL": (BUILTIN, "ifnull"),
    "NULLIF": (BUILTIN, "nullif"),
    "REPLACE": (BUILTIN, "replace"),
    "CHAR_LENGTH": (BUILTIN, "length"),
    "CHARACTER_LENGTH": (BUILTIN, "length"),
    "SUM": (BUILTIN, "sum"),
    "AVG": (BUILTIN, "avg"),
    "MIN": (BUILTIN, "min"),
    "MAX": (BUILTIN, "max"),
    # renamed UDFs
    "UCASE": (UDF, "upper"),
    "LCASE": (UDF, "lower"),
    "POWER": (UDF, "pow"),
    "CEILING": (UDF, "ceil"),
    "OCTET_LENGTH": (UDF, "length"),
    "DAYOFMONTH": (UDF, "day"),
    "NOW": (UDF, "now"),
    "SYSDATE": (UDF, "now"),
    "CURRENT_TIMESTAMP": (UDF, "now"),
    "LOCALTIME": (UDF, "now"),
    "LOCALTIMESTAMP": (UDF, "now"),
    "CURRENT_DATE": (UDF, "curdate"),
    "CURRENT_TIME": (UDF, "curtime"),
    "STD": (UDF, "stddev_pop"),
    "STDDEV": (UDF, "stddev_pop"),
    "VARIANCE": (UDF, "var_pop"),
    "REGEXP_LIKE": (UDF, "regexp"),
    # rewritten into SQLite syntax
    "IF": (REWRITE, "if"),
    "CONCAT": (REWRITE, "concat"),
    "COALESCE": (REWRITE, "coalesce"),
    "ISNULL": (REWRITE, "isnull"),
    "COUNT": (REWRITE, "count"),
    "GROUP_CONCAT": (REWRITE, "group_concat"),
    "DATE_ADD": (REWRITE, "date_add"),
    "DATE_SUB": (REWRITE, "date_sub"),
    "ADDDATE": (REWRITE, "date_add"),
    "SUBDATE": (REWRITE, "date_sub"),
    "TIMESTAMPADD": (REWRITE, "timestampadd"),
    "TRIM": (REWRITE, "trim"),
    "LTRIM": (REWRITE, "trim"),
    "RTRIM": (REWRITE, "trim"),
    "WEEKOFYEAR": (REWRITE, "weekofyear"),
    "VALUES": (REWRITE, "values"),
    # session values
    "LAST_INSERT_ID": (SESSION, "last_insert_id"),
    "FOUND_ROWS": (SESSION, "found_rows"),
    "ROW_COUNT": (SESSION, "row_count"),
    "DATABASE": (SESSION, "database"),
    "SCHEMA": (SESSION, "database"),
    "VERSION": (SESSION, "version"),
    "CONNECTION_ID": (SESSION, "connection_id"),
    "USER": (SESSION, "user"),
    "CURRENT_USER": (SESSION, "user"),
    "SESSION_USER": (SESSION, "user"),
    "SYSTEM_USER": (SESSION, "user"),
}

# Catalog entries that only the renderer itself emits.
INTERNAL_FUNCTIONS = frozenset(
    {"divide", "bitxor", "div", "match", "cast_date", "cast_datetime", "cast_time", "cast_unsigned",
     "cast_signed", "concat", "date_add", "date_sub", "group_concat"}
)

FIXED_ARITY = {"IF": 3, "ISNULL": 1, "TIMESTAMPADD": 3, "WEEKOFYEAR": 1, "VALUES": 1}

COMPARISONS = frozenset({"=", "<>", "!=", "<", "<=", ">", ">=", "<=>"})
MIRRORED = {"<": ">", "<=": ">=", ">": "<", ">=": "<=", "=": "=", "<>": "<>", "!=": "!=", "<=>": "<=>"}
PASS_OPERATORS = frozenset({"+", "-", "*", "|", "&", "<<", ">>"})
INTEGER_CASTS = frozenset({"BIGINT", "INT", "INTEGER", "SIGNED"})


def adapt_value(value: Any) -> Any:
    """Convert a caller-supplied Python value into something sqlite3 binds the MySQL way."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return functions.format_datetime(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, timedelta):
        micros = value // timedelta(microseconds=1)
        return functions.format_time(-1 if micros < 0 else 1, abs(micros))
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def sqlite_collation(name: str) -> str:
    """SQLite collation for a MySQL collation name."""
    low = name.lower()
    if low.endswith("_ci"):
        return "NOCASE"
    return "BINARY"


@dataclass
class Scope:
    """
    Tables visible in one SELECT (or UPDATE/DELETE) level.

    Attributes:
        tables: Lowercased reference name (alias or table name) → TableMeta
                (None for derived tables).
        order: Reference names in FROM-clause order, as written.
    """
    tables: dict[str, TableMeta | None] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)

    def add(self, ref: str, meta: TableMeta | None) -> None:
        self.tables[ref.lower()] = meta
        self.order.append(ref)


class Renderer:
    """
    Turns expressions and queries into SQLite SQL with positional bindings.

    Args:
        catalog: Current Table Metadata.
        session: Session values (variables, LAST_INSERT_ID, ...).
        args: Caller parameters: a sequence for `?` / `%s`, a mapping for `:name`.
        row_values: Allow VALUES(col) (ON DUPLICATE KEY UPDATE only).
    """

    def __init__(
        self,
        catalog: Catalog,
        session: SessionState,
        args: Any = None,
        *,
        row_values: bool = False,
    ):
        self.catalog = catalog
        self.session = session
        self.args = args
        self.row_values = row_values
        self.bindings: list[Any] = []
        self.scopes: list[Scope] = []
        self.char_columns: list[str] = []
        self.unsigned_columns: list[str] = []

    # --------------------------
    # bindings and constants
    # --------------------------

    def bind(self, value: Any) -> str:
        self.bindings.append(adapt_value(value))
        return "?"

    def take_bindings(self) -> tuple[Any, ...]:
        """Return and reset the bindings collected so far."""
        out = tuple(self.bindings)
        self.bindings = []
        return out

    def param_value(self, p: Param) -> Any:
        if p.name is not None:
            if not isinstance(self.args, Mapping) or p.name not in self.args:
                raise ExecutionError(f"No value bound for parameter :{p.name}", errno=1210)
            return self.args[p.name]
        if self.args is None or isinstance(self.args, Mapping) or p.index >= len(self.args):
            raise ExecutionError("Incorrect arguments to mysqld_stmt_execute", errno=1210)
        return self.args[p.index]

    def constant(self, node: Expr) -> tuple[bool, Any]:
        """(True, value) when node is a literal or bound parameter, else (False, None)."""
        if isinstance(node, Literal):
            return True, node.value
        if isinstance(node, Param):
            return True, self.param_value(node)
        if isinstance(node, Unary) and node.op == "-":
            ok, value = self.constant(node.operand)
            if ok and isinstance(value, (int, float)) and not isinstance(value, bool):
                return True, -value
        return False, None

    def int_constant(self, node: Expr, what: str) -> int:
        ok, value = self.constant(node)
        if not ok or value is None:
            raise TranslationError(f"{what} must be a constant", errno=1064)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise TranslationError(f"Incorrect argument type to {what}", errno=1210) from None

    # --------------------------
    # scopes / column metadata
    # --------------------------

    def build_scope(self, sources: tuple[TableSource, ...]) -> Scope:
        scope = Scope()

        def visit(src: TableSource) -> None:
            if isinstance(src, TableRef):
                scope.add(src.ref_name, self.catalog.get(src.name))
            elif isinstance(src, DerivedTable):
                scope.add(src.alias, None)
            elif isinstance(src, Join):
                visit(src.left)
                visit(src.right)

        for s in sources:
            visit(s)
        return scope

    def column_meta(self, ref: ColumnRef) -> ColumnMeta | None:
        """Declared metadata of a column reference, searching inner scopes first."""
        for scope in reversed(self.scopes):
            if ref.table is not None:
                if ref.table.lower() in scope.tables:
                    meta = scope.tables[ref.table.lower()]
                    return meta.get_column(ref.column) if meta is not None else None
                continue
            for meta in scope.tables.values():
                if meta is None:
                    continue
                col = meta.get_column(ref.column)
                if col is not None:
                    return col
        return None

    # --------------------------
    # expressions
    # --------------------------

    def expr(self, node: Expr) -> str:
        method = self._DISPATCH.get(type(node))
        if method is None:
            raise TranslationError(f"Unsupported expression: {type(node).__name__}")
        return method(self, node)

    def literal(self, node: Literal) -> str:
        if node.value is None:
            return "NULL"
        if isinstance(node.value, bool):
            return "1" if node.value else "0"
        return self.bind(node.value)

    def param(self, node: Param) -> str:
        return self.bind(self.param_value(node))

    def column(self, node: ColumnRef) -> str:
        if node.table is not None:
            return f"{typemap.quote_column(node.table)}.{typemap.quote_column(node.column)}"
        return typemap.quote_column(node.column)

    def star(self, node: Star) -> str:
        raise TranslationError("'*' is only allowed in a select list or COUNT(*)", errno=1064)

    def default(self, node: Default) -> str:
        raise TranslationError("DEFAULT is only allowed as an INSERT or UPDATE value", errno=1064)

    def variable(self, node: Variable) -> str:
        name = node.bare_name
        if not node.system:
            return self.bind(self.session.user_vars.get(name))
        if name in ("identity", "last_insert_id"):
            return self.bind(self.session.last_insert_id)
        if name not in self.session.variables:
            raise ExecutionError(f"Unknown system variable '{name}'", errno=1193, sqlstate="HY000")
        return self.bind(self.session.variables[name])

    def unary(self, node: Unary) -> str:
        operand = self.expr(node.operand)
        if node.op == "NOT":
            return f"(NOT {operand})"
        if node.op == "BINARY":
            return f"({operand} COLLATE BINARY)"
        if node.op in ("-", "~"):
            return f"({node.op} {operand})"
        raise TranslationError(f"Unsupported operator: {node.op}")

    def binary(self, node: Binary) -> str:
        op = node.op
        if op in ("+", "-") and isinstance(node.right, Interval):
            return self.date_arith(node.left, node.right, "date_add" if op == "+" else "date_sub")
        if op == "+" and isinstance(node.left, Interval):
            return self.date_arith(node.right, node.left, "date_add")
        if op in COMPARISONS:
            folded = self.fold_unsigned(node) or self.wrapped_equality(node)
            if folded is not None:
                return folded
            left, right = self.expr(node.left), self.expr(node.right)
            sql_op = {"!=": "<>", "<=>": "IS"}.get(op, op)
            if self.needs_nocase(node):
                return f"({left} {sql_op} {right} COLLATE NOCASE)"
            return f"({left} {sql_op} {right})"
        if op in ("AND", "OR"):
            return f"({self.expr(node.left)} {op} {self.expr(node.right)})"
        if op == "XOR":
            return f"((({self.expr(node.left)}) <> 0) <> (({self.expr(node.right)}) <> 0))"
        if op in PASS_OPERATORS:
            return f"({self.expr(node.left)} {op} {self.expr(node.right)})"
        if op == "/":
            return f"(({self.expr(node.left)}) * 1.0 / ({self.expr(node.right)}))"
        if op in ("DIV", "MOD", "^"):
            name = {"DIV": "div", "MOD": "mod", "^": "bitxor"}[op]
            return f"{functions.sql_name(name)}({self.expr(node.left)}, {self.expr(node.right)})"
        if op == ":=":
            raise TranslationError("Variable assignment inside expressions is not supported")
        raise TranslationError(f"Unsupported operator: {op}")

    def fold_unsigned(self, node: Binary) -> str | None:
        """
        `unsigned_col <op> negative_constant` has a fixed MySQL truth value.

        The column is still evaluated so NULL stays NULL.
        """
        for col_side, const_side, op in (
            (node.left, node.right, node.op),
            (node.right, node.left, MIRRORED[node.op]),
        ):
            if not isinstance(col_side, ColumnRef):
                continue
            meta = self.column_meta(col_side)
            if meta is None or not meta.typ.unsigned or typemap.family(meta.typ) not in ("integer", "decimal", "float"):
                continue
            ok, value = self.constant(const_side)
            if not ok or isinstance(value, bool) or not isinstance(value, (int, float)) or value >= 0:
                continue
            if op == "<=>":
                return "0"
            truth = 1 if op in (">", ">=", "<>", "!=") else 0
            return f"(CASE WHEN {self.column(col_side)} IS NULL THEN NULL ELSE {truth} END)"
        return None

    def wrapped_equality(self, node: Binary) -> str | None:
        """`bigint_unsigned_col = constant` above 2**63 - 1 compares against the stored wrap."""
        if node.op not in ("=", "<>", "!=", "<=>"):
            return None
        for col_side, const_side in ((node.left, node.right), (node.right, node.left)):
            if not isinstance(col_side, ColumnRef):
                continue
            meta = self.column_meta(col_side)
            if meta is None or not typemap.stores_wrapped(meta.typ):
                continue
            ok, value = self.constant(const_side)
            if not ok or isinstance(value, bool) or not isinstance(value, int) or value <= typemap.I64_MAX:
                continue
            sql_op = {"!=": "<>", "<=>": "IS"}.get(node.op, node.op)
            return f"({self.column(col_side)} {sql_op} {self.bind(typemap.storage_value(meta.typ, value))})"
        return None

    def needs_nocase(self, node: Binary) -> bool:
        """String comparison with no column operand: use MySQL's default case-insensitive collation."""
        if node.op == "<=>":
            return False
        sides = (node.left, node.right)
        if any(isinstance(s, (ColumnRef, Collate)) or (isinstance(s, Unary) and s.op == "BINARY") for s in sides):
            return False
        for s in sides:
            ok, value = self.constant(s)
            if ok and isinstance(value, str):
                return True
        return False

    def date_arith(self, value: Expr, interval: Interval, fn: str) -> str:
        base = self.expr(value)
        amount = self.expr(interval.value)
        return f"{functions.sql_name(fn)}({base}, {amount}, {self.bind(interval.unit)})"

    def like(self, node: Like) -> str:
        left = self.expr(node.expr)
        pattern = self.expr(node.pattern)
        escape = self.expr(node.escape) if node.escape is not None else "'\\'"
        neg = "NOT " if node.negated else ""
        return f"({left} {neg}LIKE {pattern} ESCAPE {escape})"

    def regexp(self, node: Regexp) -> str:
        call = f"{functions.sql_name('regexp')}({self.expr(node.expr)}, {self.expr(node.pattern)})"
        return f"(NOT {call})" if node.negated else call

    def in_list(self, node: InList) -> str:
        left = self.expr(node.expr)
        items = ", ".join(self.expr(i) for i in node.items)
        neg = "NOT " if node.negated else ""
        return f"({left} {neg}IN ({items}))"

    def in_subquery(self, node: InSubquery) -> str:
        left = self.expr(node.expr)
        neg = "NOT " if node.negated else ""
        return f"({left} {neg}IN ({self.query(node.query)}))"

    def between(self, node: Between) -> str:
        neg = "NOT " if node.negated else ""
        return f"({self.expr(node.expr)} {neg}BETWEEN {self.expr(node.low)} AND {self.expr(node.high)})"

    def is_test(self, node: IsTest) -> str:
        target = {None: "NULL", True: "TRUE", False: "FALSE"}[node.value]
        neg = "NOT " if node.negated else ""
        return f"({self.expr(node.expr)} IS {neg}{target})"

    def case(self, node: Case) -> str:
        parts = ["CASE"]
        if node.operand is not None:
            parts.append(self.expr(node.operand))
        for cond, result in node.whens:
            parts.append(f"WHEN {self.expr(cond)} THEN {self.expr(result)}")
        if node.default is not None:
            parts.append(f"ELSE {self.expr(node.default)}")
        parts.append("END")
        return "(" + " ".join(parts) + ")"

    def cast(self, node: Cast) -> str:
        inner = self.expr(node.expr)
        name = node.target.name
        if name in INTEGER_CASTS:
            if node.target.unsigned:
                return f"{functions.sql_name('cast_unsigned')}({inner})"
            return f"{functions.sql_name('cast_signed')}({inner})"
        if name in ("CHAR", "VARCHAR", "NCHAR", "TEXT"):
            if node.target.params:
                return f"substr(CAST({inner} AS TEXT), 1, {int(node.target.params[0])})"
            return f"CAST({inner} AS TEXT)"
        if name == "BINARY":
            if node.target.params:
                return f"substr(CAST({inner} AS BLOB), 1, {int(node.target.params[0])})"
            return f"CAST({inner} AS BLOB)"
        if name == "DATE":
            return f"{functions.sql_name('cast_date')}({inner})"
        if name in ("DATETIME", "TIMESTAMP"):
            return f"{functions.sql_name('cast_datetime')}({inner})"
        if name == "TIME":
            return f"{functions.sql_name('cast_time')}({inner})"
        if name in ("DECIMAL", "DEC", "NUMERIC"):
            scale = node.target.params[1] if len(node.target.params) > 1 else 0
            return f"{functions.sql_name('round')}(CAST({inner} AS REAL), {int(scale)})"
        if name in ("DOUBLE", "FLOAT", "REAL"):
            return f"CAST({inner} AS REAL)"
        if name == "JSON":
            return inner
        raise TranslationError(f"CAST to {name} is not supported")

    def interval(self, node: Interval) -> str:
        raise TranslationError("INTERVAL is only valid in date arithmetic", errno=1064)

    def subquery(self, node: SubqueryExpr) -> str:
        return f"({self.query(node.query)})"

    def exists(self, node: Exists) -> str:
        return f"EXISTS ({self.query(node.query)})"

    def match(self, node: Match) -> str:
        against = self.expr(node.against)
        cols = ", ".join(self.column(c) for c in node.columns)
        return f"{functions.sql_name('match')}({against}, {1 if node.boolean_mode else 0}, {cols})"

    def collate(self, node: Collate) -> str:
        return f"({self.expr(node.expr)} COLLATE {sqlite_collation(node.collation)})"

    # --------------------------
    # function calls
    # --------------------------

    def classify(self, name: str) -> tuple[str, str]:
        """Look a MySQL function up in the function table."""
        if name in FUNCTION_MAP:
            return FUNCTION_MAP[name]
        low = name.lower()
        if low not in INTERNAL_FUNCTIONS and (
            low in functions.SCALAR_FUNCTIONS or low in functions.AGGREGATE_FUNCTIONS
        ):
            return UDF, low
        raise TranslationError(f"FUNCTION {self.session.database}.{name} does not exist", errno=1305)

    def func(self, node: FuncCall) -> str:
        kind, target = self.classify(node.name)
        arity = FIXED_ARITY.get(node.name)
        if arity is not None and len(node.args) != arity:
            raise TranslationError(
                f"Incorrect parameter count in the call to native function '{node.name}'", errno=1582
            )
        if kind == REWRITE:
            return getattr(self, "fn_" + target)(node)
        if kind == SESSION:
            return self.session_value(node, target)
        if node.order_by or node.separator is not None:
            raise TranslationError(f"ORDER BY / SEPARATOR are not valid in {node.name}()", errno=1064)
        name = target if kind == BUILTIN else functions.sql_name(target)
        args = ", ".join(self.expr(a) for a in node.args)
        if node.distinct:
            return f"{name}(DISTINCT {args})"
        return f"{name}({args})"

    def session_value(self, node: FuncCall, target: str) -> str:
        if node.args:
            raise TranslationError(f"{node.name}() with arguments is not supported")
        s = self.session
        values = {
            "last_insert_id": s.last_insert_id,
            "found_rows": s.found_rows,
            "row_count": s.row_count,
            "database": s.database,
            "version": s.variables.get("version"),
            "connection_id": s.connection_id,
            "user": s.variables.get("user", "mylite@localhost"),
        }
        return self.bind(values[target])

    def fn_if(self, node: FuncCall) -> str:
        cond, then, other = node.args
        return f"(CASE WHEN {self.expr(cond)} THEN {self.expr(then)} ELSE {self.expr(other)} END)"

    def fn_concat(self, node: FuncCall) -> str:
        if not node.args:
            raise TranslationError("Incorrect parameter count in the call to native function 'CONCAT'", errno=1582)
        parts = [self.expr(a) for a in node.args]
        if len(parts) == 1:
            parts.append("''")
        return "(" + " || ".join(parts) + ")"

    def fn_coalesce(self, node: FuncCall) -> str:
        if not node.args:
            raise TranslationError("Incorrect parameter count in the call to native function 'COALESCE'", errno=1582)
        if len(node.args) == 1:
            return self.expr(node.args[0])
        return "coalesce(" + ", ".join(self.expr(a) for a in node.args) + ")"

    def fn_isnull(self, node: FuncCall) -> str:
        return f"(({self.expr(node.args[0])}) IS NULL)"

    def fn_count(self, node: FuncCall) -> str:
        if node.star:
            return "count(*)"
        if node.distinct:
            if len(node.args) != 1:
                raise TranslationError("COUNT(DISTINCT ...) over several expressions is not supported")
            return f"count(DISTINCT {self.expr(node.args[0])})"
        if len(node.args) != 1:
            raise TranslationError("Incorrect parameter count in the call to native function 'COUNT'", errno=1582)
        return f"count({self.expr(node.args[0])})"

    def fn_group_concat(self, node: FuncCall) -> str:
        if not node.args:
            raise TranslationError("GROUP_CONCAT requires an argument", errno=1064)
        parts = [self.expr(a) for a in node.args]
        value = parts[0] if len(parts) == 1 else "(" + " || ".join(parts) + ")"
        sep = "," if node.separator is None else node.separator
        if node.order_by:
            if sqlite3.sqlite_version_info < (3, 44, 0):
                raise TranslationError("GROUP_CONCAT(... ORDER BY ...) needs SQLite 3.44 or newer")
            if node.distinct:
                if sep != ",":
                    raise TranslationError("GROUP_CONCAT(DISTINCT ... ORDER BY ... SEPARATOR ...) is not supported")
                return f"group_concat(DISTINCT {value} ORDER BY {self.order_items(node.order_by)})"
            sep_sql = self.bind(sep)
            return f"group_concat({value}, {sep_sql} ORDER BY {self.order_items(node.order_by)})"
        if node.distinct:
            if sep == ",":
                return f"group_concat(DISTINCT {value})"
            return f"{functions.sql_name('group_concat')}({value}, {self.bind(sep)}, 1)"
        return f"group_concat({value}, {self.bind(sep)})"

    def fn_date_add(self, node: FuncCall) -> str:
        return self._date_call(node, "date_add")

    def fn_date_sub(self, node: FuncCall) -> str:
        return self._date_call(node, "date_sub")

    def _date_call(self, node: FuncCall, fn: str) -> str:
        if len(node.args) != 2:
            raise TranslationError(
                f"Incorrect parameter count in the call to native function '{node.name}'", errno=1582
            )
        base, amount = node.args
        if isinstance(amount, Interval):
            return self.date_arith(base, amount, fn)
        # ADDDATE(d, n) / SUBDATE(d, n): n days
        return self.date_arith(base, Interval(amount, "DAY"), fn)

    def fn_timestampadd(self, node: FuncCall) -> str:
        unit, amount, base = node.args
        ok, unit_name = self.constant(unit)
        if not ok:
            raise TranslationError("TIMESTAMPADD unit must be a keyword", errno=1064)
        return self.date_arith(base, Interval(amount, str(unit_name)), "date_add")

    def fn_trim(self, node: FuncCall) -> str:
        if not 1 <= len(node.args) <= 2:
            raise TranslationError(
                f"Incorrect parameter count in the call to native function '{node.name}'", errno=1582
            )
        mode = {"TRIM": "BOTH", "LTRIM": "LEADING", "RTRIM": "TRAILING"}[node.name]
        target = self.expr(node.args[0])
        if len(node.args) == 1 and mode == "BOTH":
            return f"{functions.sql_name('trim')}({target})"
        rem = self.expr(node.args[1]) if len(node.args) == 2 else "' '"
        return f"{functions.sql_name('trim')}({target}, {rem}, {self.bind(mode)})"

    def fn_weekofyear(self, node: FuncCall) -> str:
        return f"{functions.sql_name('week')}({self.expr(node.args[0])}, 3)"

    def fn_values(self, node: FuncCall) -> str:
        if not self.row_values:
            raise TranslationError("VALUES() is only allowed in ON DUPLICATE KEY UPDATE")
        ref = node.args[0]
        if not isinstance(ref, ColumnRef):
            raise TranslationError("VALUES() takes a column name", errno=1064)
        self.bindings.append(RowValue(ref.column))
        return "?"

    _DISPATCH = {
        Literal: literal,
        Param: param,
        ColumnRef: column,
        Star: star,
        Default: default,
        Variable: variable,
        Unary: unary,
        Binary: binary,
        Like: like,
        Regexp: regexp,
        InList: in_list,
        InSubquery: in_subquery,
        Between: between,
        IsTest: is_test,
        FuncCall: func,
        Case: case,
        Cast: cast,
        Interval: interval,
        SubqueryExpr: subquery,
        Exists: exists,
        Match: match,
        Collate: collate,
    }

    # --------------------------
    # queries
    # --------------------------

    def query(self, node: Select | Union, *, drop_limit: bool = False) -> str:
        if isinstance(node, Select):
            return self.select(node, drop_limit=drop_limit)
        if isinstance(node, Union):
            return self.union(node, drop_limit=drop_limit)
        raise TranslationError(f"Unsupported query: {type(node).__name__}")

    def select(self, node: Select, *, drop_limit: bool = False) -> str:
        scope = self.build_scope(node.from_)
        top_level = not self.scopes
        self.scopes.append(scope)
        try:
            parts = ["SELECT"]
            if node.distinct:
                parts.append("DISTINCT")
            parts.append(", ".join(self.select_items(node, scope, top_level)))
            if node.from_:
                parts.append("FROM " + ", ".join(self.source(s) for s in node.from_))
            if node.where is not None:
                parts.append("WHERE " + self.expr(node.where))
            if node.group_by:
                parts.append("GROUP BY " + ", ".join(self.group_item(g) for g in node.group_by))
            if node.having is not None:
                parts.append("HAVING " + self.expr(node.having))
            if node.order_by:
                parts.append("ORDER BY " + self.order_items(node.order_by))
            if node.limit is not None and not drop_limit:
                parts.append(self.limit_clause(node.limit, node.offset))
        finally:
            self.scopes.pop()
        return " ".join(parts)

    def select_items(self, node: Select, scope: Scope, top_level: bool) -> list[str]:
        expand_star = any(self._has_right_join(s) for s in node.from_)
        out: list[str] = []
        for item in node.items:
            if isinstance(item.expr, Star):
                out.extend(self.star_item(item.expr, scope, expand_star))
                continue
            sql = self.expr(item.expr)
            name = self.output_name(item)
            if name is not None:
                sql = f"{sql} AS {typemap.quote_ident(name)}"
            if top_level:
                self.note_result_type(item, name)
            out.append(sql)
        if top_level:
            for s in node.items:
                if isinstance(s.expr, Star):
                    self.char_columns.extend(self._star_columns(s.expr, scope, lambda t: t.name == "CHAR"))
                    self.unsigned_columns.extend(self._star_columns(s.expr, scope, typemap.stores_wrapped))
        return out

    def note_result_type(self, item: SelectItem, name: str | None) -> None:
        """Record output columns that need CHAR padding stripped or an unsigned wrap undone."""
        expr = item.expr
        if isinstance(expr, ColumnRef):
            meta = self.column_meta(expr)
            if meta is None:
                return
            out_name = item.alias or expr.column
            if meta.typ.name == "CHAR":
                self.char_columns.append(out_name)
            elif typemap.stores_wrapped(meta.typ):
                self.unsigned_columns.append(out_name)
        elif name is not None and (
            (isinstance(expr, Cast) and expr.target.unsigned and expr.target.name in INTEGER_CASTS)
            or (isinstance(expr, FuncCall) and expr.name.upper() in ("BIT_AND", "BIT_OR", "BIT_XOR"))
        ):
            self.unsigned_columns.append(name)

    def star_item(self, star: Star, scope: Scope, expand: bool) -> list[str]:
        if star.table is not None:
            return [f"{typemap.quote_ident(star.table)}.*"]
        if expand:
            return [f"{typemap.quote_ident(ref)}.*" for ref in scope.order]
        return ["*"]

    def _star_columns(self, star: Star, scope: Scope, wanted) -> list[str]:
        refs = [star.table] if star.table is not None else scope.order
        out = []
        for ref in refs:
            meta = scope.tables.get(ref.lower())
            if meta is not None:
                out.extend(c.name for c in meta.columns if wanted(c.typ))
        return out

    @staticmethod
    def output_name(item: SelectItem) -> str | None:
        """MySQL's column name for a select item, when SQLite would name it differently."""
        if item.alias is not None:
            return item.alias
        if isinstance(item.expr, ColumnRef):
            return None
        if isinstance(item.expr, Literal) and isinstance(item.expr.value, str):
            return item.expr.value
        return item.source or None

    def _has_right_join(self, src: TableSource) -> bool:
        if isinstance(src, Join):
            return src.kind == "RIGHT" or self._has_right_join(src.left) or self._has_right_join(src.right)
        return False

    def group_item(self, node: Expr) -> str:
        if isinstance(node, Literal) and isinstance(node.value, int) and not isinstance(node.value, bool):
            return str(node.value)
        return self.expr(node)

    def order_items(self, items: tuple[OrderItem, ...]) -> str:
        out = []
        for item in items:
            out.append(self.group_item(item.expr) + (" DESC" if item.desc else ""))
        return ", ".join(out)

    def limit_clause(self, limit: Expr, offset: Expr | None) -> str:
        n = self.int_constant(limit, "LIMIT")
        text = f"LIMIT {n}"
        if offset is not None:
            text += f" OFFSET {self.int_constant(offset, 'OFFSET')}"
        return text

    def union(self, node: Union, *, drop_limit: bool = False) -> str:
        parts: list[str] = []
        for i, sel in enumerate(node.selects):
            if i > 0:
                parts.append("UNION ALL" if node.all_flags[i - 1] else "UNION")
            if sel.order_by or sel.limit is not None:
                parts.append(f"SELECT * FROM ({self.select(sel)})")
            else:
                parts.append(self.select(sel))
        if node.order_by:
            items = tuple(
                OrderItem(ColumnRef(i.expr.column), i.desc) if isinstance(i.expr, ColumnRef) else i
                for i in node.order_by
            )
            parts.append("ORDER BY " + self.order_items(items))
        if node.limit is not None and not drop_limit:
            parts.append(self.limit_clause(node.limit, node.offset))
        return " ".join(parts)

    # --------------------------
    # FROM clause
    # --------------------------

    def source(self, src: TableSource) -> str:
        if isinstance(src, TableRef):
            text = typemap.quote_ident(src.name)
            if src.alias:
                text += f" AS {typemap.quote_ident(src.alias)}"
            return text
        if isinstance(src, DerivedTable):
            return f"({self.query(src.query)}) AS {typemap.quote_ident(src.alias)}"
        if isinstance(src, Join):
            return self.join(src)
        raise TranslationError(f"Unsupported table source: {type(src).__name__}")

    def join(self, node: Join) -> str:
        kind, left, right = node.kind, node.left, node.right
        if kind == "RIGHT":
            kind, left, right = "LEFT", right, left
        left_sql = self.source(left)
        right_sql = self.source(right)
        if isinstance(right, Join):
            right_sql = f"({right_sql})"
        op = {"INNER": "JOIN", "LEFT": "LEFT JOIN", "CROSS": "JOIN", "STRAIGHT": "JOIN"}[kind]
        if node.natural:
            op = "NATURAL " + op
        text = f"{left_sql} {op} {right_sql}"
        if node.on is not None:
            text += " ON " + self.expr(node.on)
        elif node.using:
            text += " USING (" + ", ".join(typemap.quote_ident(c) for c in node.using) + ")"
        return text
