"""
mylite/ast.py

AST (Abstract Syntax Tree) node definitions for the MySQL dialect accepted by mylite.

The parser converts token streams into instances of these dataclasses.
The translators (mylite/translate) consume them to produce SQLite SQL, and the
executor dispatches on the statement class.

Design notes:
- Every node is a frozen dataclass; a parsed Statement is never mutated.
  Rewrites build new nodes with dataclasses.replace().
- The set of statement classes is closed: each stage dispatches over it with an
  isinstance chain that ends in an explicit error for anything unhandled.
- Expressions carry no type information; declared types come from Table Metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# ---------- Expressions ----------

class Expr:
    """Base class marker for all expressions."""


@dataclass(frozen=True)
class Literal(Expr):
    """Constant value: int | float | str | bytes | bool | None."""
    value: Any


@dataclass(frozen=True)
class Param(Expr):
    """
    Caller-supplied placeholder.

    Attributes:
        index: 0-based position among positional placeholders (None for named).
        name: Placeholder name for ":name" style (None for positional).
    """
    index: int | None = None
    name: str | None = None


@dataclass(frozen=True)
class Default(Expr):
    """The DEFAULT keyword used as a value in INSERT/UPDATE."""


@dataclass(frozen=True)
class ColumnRef(Expr):
    """
    Reference to a column.

    Attributes:
        column: Column name.
        table: Optional table name or alias for qualified references.
    """
    column: str
    table: str | None = None


@dataclass(frozen=True)
class Star(Expr):
    """'*' or 'table.*' in a select list."""
    table: str | None = None


@dataclass(frozen=True)
class Variable(Expr):
    """User (@x) or system (@@x, @@session.x) variable."""
    name: str

    @property
    def system(self) -> bool:
        return self.name.startswith("@@")

    @property
    def bare_name(self) -> str:
        """Variable name without @ prefixes or scope qualifier, lowercased."""
        name = self.name.lstrip("@")
        for scope in ("session.", "global.", "local."):
            if name.lower().startswith(scope):
                name = name[len(scope):]
        return name.lower()


@dataclass(frozen=True)
class Unary(Expr):
    """Prefix operator: '-', '+', '~', 'NOT', 'BINARY'."""
    op: str
    operand: Expr


@dataclass(frozen=True)
class Binary(Expr):
    """
    Infix operator.

    op is one of: OR AND XOR = <=> <> < <= > >= | & << >> + - * / DIV MOD ^ :=
    """
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Like(Expr):
    """expr [NOT] LIKE pattern [ESCAPE esc]."""
    expr: Expr
    pattern: Expr
    escape: Expr | None = None
    negated: bool = False


@dataclass(frozen=True)
class Regexp(Expr):
    """expr [NOT] REGEXP pattern (RLIKE is a synonym)."""
    expr: Expr
    pattern: Expr
    negated: bool = False


@dataclass(frozen=True)
class InList(Expr):
    """expr [NOT] IN (item, ...)."""
    expr: Expr
    items: tuple[Expr, ...]
    negated: bool = False


@dataclass(frozen=True)
class InSubquery(Expr):
    """expr [NOT] IN (SELECT ...)."""
    expr: Expr
    query: "Select | Union"
    negated: bool = False


@dataclass(frozen=True)
class Between(Expr):
    """expr [NOT] BETWEEN low AND high."""
    expr: Expr
    low: Expr
    high: Expr
    negated: bool = False


@dataclass(frozen=True)
class IsTest(Expr):
    """
    expr IS [NOT] NULL / TRUE / FALSE / UNKNOWN.

    Attributes:
        value: None for NULL/UNKNOWN, True or False.
    """
    expr: Expr
    value: bool | None
    negated: bool = False


@dataclass(frozen=True)
class FuncCall(Expr):
    """
    Function call.

    Attributes:
        name: Uppercased function name.
        args: Argument expressions.
        distinct: COUNT(DISTINCT ...), GROUP_CONCAT(DISTINCT ...).
        star: COUNT(*).
        order_by: GROUP_CONCAT(... ORDER BY ...).
        separator: GROUP_CONCAT(... SEPARATOR 'x').
    """
    name: str
    args: tuple[Expr, ...] = ()
    distinct: bool = False
    star: bool = False
    order_by: tuple["OrderItem", ...] = ()
    separator: str | None = None


@dataclass(frozen=True)
class Case(Expr):
    """CASE [operand] WHEN ... THEN ... [ELSE ...] END."""
    operand: Expr | None
    whens: tuple[tuple[Expr, Expr], ...]
    default: Expr | None = None


@dataclass(frozen=True)
class TypeSpec:
    """
    MySQL type specification.

    Attributes:
        name: Uppercased type name, e.g. "INT", "VARCHAR", "DATETIME".
        params: Integer parameters, e.g. VARCHAR(255) => (255,), DECIMAL(10,2) => (10, 2).
        unsigned: UNSIGNED attribute.
        zerofill: ZEROFILL attribute.
        values: ENUM/SET member list.
        charset: CHARACTER SET name, lowercased.
        collation: COLLATE name, lowercased.
    """
    name: str
    params: tuple[int, ...] = ()
    unsigned: bool = False
    zerofill: bool = False
    values: tuple[str, ...] = ()
    charset: str | None = None
    collation: str | None = None


@dataclass(frozen=True)
class Cast(Expr):
    """CAST(expr AS type) / CONVERT(expr, type)."""
    expr: Expr
    target: TypeSpec


@dataclass(frozen=True)
class Interval(Expr):
    """INTERVAL value unit, only valid as a date arithmetic operand."""
    value: Expr
    unit: str


@dataclass(frozen=True)
class SubqueryExpr(Expr):
    """Scalar subquery: (SELECT ...)."""
    query: "Select | Union"


@dataclass(frozen=True)
class Exists(Expr):
    """EXISTS (SELECT ...)."""
    query: "Select | Union"


@dataclass(frozen=True)
class Match(Expr):
    """MATCH (col, ...) AGAINST (expr [IN NATURAL LANGUAGE MODE | IN BOOLEAN MODE])."""
    columns: tuple[ColumnRef, ...]
    against: Expr
    boolean_mode: bool = False


@dataclass(frozen=True)
class Collate(Expr):
    """expr COLLATE collation_name."""
    expr: Expr
    collation: str


# ---------- Query building blocks ----------

@dataclass(frozen=True)
class SelectItem:
    """
    One entry of a select list.

    Attributes:
        expr: The expression (may be Star).
        alias: Explicit alias, if any.
        source: Original source text of the expression, used to name
                unaliased expression columns the way MySQL does.
    """
    expr: Expr
    alias: str | None = None
    source: str = ""


@dataclass(frozen=True)
class OrderItem:
    """ORDER BY entry."""
    expr: Expr
    desc: bool = False


class TableSource:
    """Base class marker for FROM clause items."""


@dataclass(frozen=True)
class TableRef(TableSource):
    """
    Named table in a FROM clause.

    Attributes:
        name: Table name.
        alias: Optional alias.
        schema: Optional database qualifier (db.table).
        index_hints: USE/FORCE/IGNORE INDEX hints as written (informational).
    """
    name: str
    alias: str | None = None
    schema: str | None = None
    index_hints: tuple[str, ...] = ()

    @property
    def ref_name(self) -> str:
        return self.alias or self.name


@dataclass(frozen=True)
class DerivedTable(TableSource):
    """(SELECT ...) AS alias."""
    query: "Select | Union"
    alias: str


@dataclass(frozen=True)
class Join(TableSource):
    """
    Binary join node.

    Attributes:
        kind: "INNER", "LEFT", "RIGHT", "CROSS" or "STRAIGHT".
        left: Left input.
        right: Right input.
        on: ON condition.
        using: USING column list.
        natural: NATURAL join.
    """
    kind: str
    left: TableSource
    right: TableSource
    on: Expr | None = None
    using: tuple[str, ...] = ()
    natural: bool = False


@dataclass(frozen=True)
class Assignment:
    """A single SET assignment in UPDATE / ON DUPLICATE KEY UPDATE."""
    column: ColumnRef
    value: Expr


# ---------- Statements ----------

class Statement:
    """Base class marker for all statements."""


@dataclass(frozen=True)
class Select(Statement):
    """
    SELECT statement.

    Attributes:
        items: Select list.
        from_: FROM items (comma-separated sources; joins are nested inside).
        where: Optional WHERE condition.
        group_by: GROUP BY expressions.
        having: Optional HAVING condition.
        order_by: ORDER BY items.
        limit: Row count limit.
        offset: Row offset.
        distinct: SELECT DISTINCT.
        calc_found_rows: SQL_CALC_FOUND_ROWS modifier.
        lock: None, "UPDATE" (FOR UPDATE) or "SHARE" (LOCK IN SHARE MODE / FOR SHARE).
        modifiers: Accepted no-op modifiers as written (HIGH_PRIORITY, SQL_NO_CACHE...).
    """
    items: tuple[SelectItem, ...]
    from_: tuple[TableSource, ...] = ()
    where: Expr | None = None
    group_by: tuple[Expr, ...] = ()
    having: Expr | None = None
    order_by: tuple[OrderItem, ...] = ()
    limit: Expr | None = None
    offset: Expr | None = None
    distinct: bool = False
    calc_found_rows: bool = False
    lock: str | None = None
    modifiers: tuple[str, ...] = ()


@dataclass(frozen=True)
class Union(Statement):
    """SELECT ... UNION [ALL] SELECT ... [ORDER BY ...] [LIMIT ...]."""
    selects: tuple[Select, ...]
    all_flags: tuple[bool, ...]
    order_by: tuple[OrderItem, ...] = ()
    limit: Expr | None = None
    offset: Expr | None = None


@dataclass(frozen=True)
class Insert(Statement):
    """
    INSERT / REPLACE statement.

    Attributes:
        table: Target table.
        columns: Explicit column list (empty = all columns in table order).
        rows: VALUES rows.
        query: INSERT ... SELECT source.
        ignore: INSERT IGNORE.
        replace: REPLACE INTO.
        on_duplicate: ON DUPLICATE KEY UPDATE assignments.
    """
    table: TableRef
    columns: tuple[str, ...] = ()
    rows: tuple[tuple[Expr, ...], ...] = ()
    query: "Select | Union | None" = None
    ignore: bool = False
    replace: bool = False
    on_duplicate: tuple[Assignment, ...] = ()


@dataclass(frozen=True)
class Update(Statement):
    """UPDATE statement (single table, optionally with ORDER BY / LIMIT)."""
    table: TableSource
    assignments: tuple[Assignment, ...]
    where: Expr | None = None
    order_by: tuple[OrderItem, ...] = ()
    limit: Expr | None = None
    ignore: bool = False


@dataclass(frozen=True)
class Delete(Statement):
    """
    DELETE statement.

    Attributes:
        table: Single-table form target.
        targets: Multi-table form: tables (or aliases) rows are deleted from.
        from_: Multi-table form: the FROM sources.
        where: Optional WHERE condition.
        order_by: ORDER BY (single-table form only).
        limit: LIMIT (single-table form only).
    """
    table: TableRef | None = None
    targets: tuple[str, ...] = ()
    from_: tuple[TableSource, ...] = ()
    where: Expr | None = None
    order_by: tuple[OrderItem, ...] = ()
    limit: Expr | None = None
    ignore: bool = False


# ---------- DDL ----------

@dataclass(frozen=True)
class ColumnDef:
    """
    Column definition in CREATE TABLE / ALTER TABLE.

    Attributes:
        name: Column name.
        typ: TypeSpec object.
        not_null: NOT NULL given.
        default: DEFAULT expression (None when absent).
        has_default: Whether a DEFAULT clause was given (DEFAULT NULL counts).
        auto_increment: AUTO_INCREMENT attribute.
        primary_key: Inline PRIMARY KEY.
        unique: Inline UNIQUE [KEY].
        on_update_now: ON UPDATE CURRENT_TIMESTAMP.
        comment: COMMENT text.
    """
    name: str
    typ: TypeSpec
    not_null: bool = False
    default: Expr | None = None
    has_default: bool = False
    auto_increment: bool = False
    primary_key: bool = False
    unique: bool = False
    on_update_now: bool = False
    comment: str | None = None


@dataclass(frozen=True)
class KeyPart:
    """Column in a key definition, with optional prefix length."""
    column: str
    length: int | None = None
    desc: bool = False


@dataclass(frozen=True)
class KeyDef:
    """
    Key definition.

    Attributes:
        kind: "PRIMARY", "UNIQUE", "INDEX", "FULLTEXT", "SPATIAL" or "FOREIGN".
        name: Key name (None if not given).
        parts: Key columns.
        ref_table: FOREIGN KEY referenced table.
        ref_columns: FOREIGN KEY referenced columns.
    """
    kind: str
    name: str | None
    parts: tuple[KeyPart, ...]
    ref_table: str | None = None
    ref_columns: tuple[str, ...] = ()


@dataclass(frozen=True)
class CreateTable(Statement):
    """CREATE [TEMPORARY] TABLE [IF NOT EXISTS] statement."""
    name: str
    columns: tuple[ColumnDef, ...] = ()
    keys: tuple[KeyDef, ...] = ()
    options: dict[str, Any] = field(default_factory=dict, hash=False)
    if_not_exists: bool = False
    like: str | None = None
    temporary: bool = False


# ALTER TABLE actions

class AlterAction:
    """Base class marker for ALTER TABLE actions."""


@dataclass(frozen=True)
class AddColumn(AlterAction):
    column: ColumnDef
    first: bool = False
    after: str | None = None


@dataclass(frozen=True)
class DropColumn(AlterAction):
    name: str


@dataclass(frozen=True)
class ChangeColumn(AlterAction):
    """CHANGE old new_def / MODIFY def (old_name == column.name)."""
    old_name: str
    column: ColumnDef
    first: bool = False
    after: str | None = None


@dataclass(frozen=True)
class RenameColumn(AlterAction):
    old_name: str
    new_name: str


@dataclass(frozen=True)
class AlterColumnDefault(AlterAction):
    """ALTER [COLUMN] c SET DEFAULT v / DROP DEFAULT (default None, drop=True)."""
    name: str
    default: Expr | None = None
    drop: bool = False


@dataclass(frozen=True)
class AddKey(AlterAction):
    key: KeyDef


@dataclass(frozen=True)
class DropKey(AlterAction):
    """DROP INDEX name / DROP KEY name / DROP PRIMARY KEY (name "PRIMARY") / DROP FOREIGN KEY."""
    name: str
    foreign: bool = False


@dataclass(frozen=True)
class RenameKey(AlterAction):
    old_name: str
    new_name: str


@dataclass(frozen=True)
class RenameTo(AlterAction):
    new_name: str


@dataclass(frozen=True)
class TableOptions(AlterAction):
    """ENGINE=..., AUTO_INCREMENT=..., [DEFAULT] CHARSET=..., COLLATE=..., COMMENT=..., CONVERT TO ..."""
    options: dict[str, Any] = field(default_factory=dict, hash=False)
    convert: bool = False


@dataclass(frozen=True)
class AlterTable(Statement):
    """ALTER TABLE name action, action, ..."""
    name: str
    actions: tuple[AlterAction, ...]


@dataclass(frozen=True)
class DropTable(Statement):
    names: tuple[str, ...]
    if_exists: bool = False
    temporary: bool = False


@dataclass(frozen=True)
class TruncateTable(Statement):
    name: str


@dataclass(frozen=True)
class CreateIndex(Statement):
    """CREATE [UNIQUE|FULLTEXT] INDEX name ON table (parts)."""
    table: str
    key: KeyDef


@dataclass(frozen=True)
class DropIndex(Statement):
    name: str
    table: str


@dataclass(frozen=True)
class RenameTable(Statement):
    """RENAME TABLE a TO b [, c TO d]."""
    pairs: tuple[tuple[str, str], ...]


# ---------- Session / utility statements ----------

@dataclass(frozen=True)
class Transaction(Statement):
    """
    Transaction control.

    Attributes:
        action: "BEGIN", "COMMIT", "ROLLBACK", "SAVEPOINT", "ROLLBACK TO" or "RELEASE".
        savepoint: Savepoint name for the named-savepoint actions.
    """
    action: str
    savepoint: str | None = None


@dataclass(frozen=True)
class Show(Statement):
    """
    SHOW / DESCRIBE statement answered from Table Metadata.

    Attributes:
        kind: "TABLES", "COLUMNS", "INDEX", "CREATE TABLE", "VARIABLES", "DATABASES".
        table: Target table for COLUMNS / INDEX / CREATE TABLE.
        like: LIKE pattern filter.
        full: SHOW FULL ...
        column: DESCRIBE t col (single column filter).
    """
    kind: str
    table: str | None = None
    like: str | None = None
    full: bool = False
    column: str | None = None


@dataclass(frozen=True)
class SetVariables(Statement):
    """SET NAMES x / SET [SESSION|GLOBAL] var = v, @user = v, ..."""
    assignments: tuple[tuple[str, Expr], ...]


@dataclass(frozen=True)
class LockTables(Statement):
    """LOCK TABLES ... / UNLOCK TABLES (writer serialization already covers them)."""
    unlock: bool
    tables: tuple[str, ...] = ()


DDL_STATEMENTS = (CreateTable, AlterTable, DropTable, TruncateTable, CreateIndex, DropIndex, RenameTable)
