"""
mylite/translate/alter.py

Schema Translator, part 2: ALTER TABLE, CREATE INDEX and DROP INDEX.

Every action is first applied to a working copy of the Table Metadata. When
all actions can be done by SQLite in place (appending a simple column,
renaming a column or the table, adding/dropping/renaming indexes, table
options) the plan is the sequence of those primitives. Anything else (drop,
modify or move a column, change a default, change the primary key...) turns
the whole ALTER into a table rebuild:

    CREATE TABLE "_mylite_rebuild_<t>" (<new definition>)
    INSERT INTO "_mylite_rebuild_<t>" (...) SELECT <origin columns / fills> FROM "<t>"
    DROP TABLE "<t>"
    ALTER TABLE "_mylite_rebuild_<t>" RENAME TO "<t>"
    CREATE INDEX ...

The caller runs the plan inside one transaction, so a failure at any step
leaves the original table and its metadata untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from loguru import logger

from ..ast import (
    AddColumn,
    AddKey,
    AlterAction,
    AlterColumnDefault,
    AlterTable,
    ChangeColumn,
    CreateIndex,
    DropColumn,
    DropIndex,
    DropKey,
    RenameColumn,
    RenameKey,
    RenameTo,
    TableOptions,
)
from ..catalog import REBUILD_PREFIX, Catalog, ColumnMeta, KeyMeta, TableMeta
from ..errors import ExecutionError, SchemaError
from .. import typemap
from ..typemap import quote_ident, quote_literal
from .create import (
    NO_DEFAULT_FAMILIES,
    build_column,
    check_table_name,
    column_sql,
    default_for_family,
    drop_index_sql,
    index_sql,
    key_meta,
    renamed_table,
    schema_prefix,
    table_options,
    table_sql,
    unique_key_name,
    validate_table,
)
from .plan import DdlPlan

SERVER_COLLATION = "utf8mb4_general_ci"


@dataclass
class AlterState:
    """
    Working state while ALTER actions are applied one by one.

    Attributes:
        meta: Table Metadata after the actions applied so far.
        origins: Lowercased current column name -> column name in the original
                 table (None for columns the ALTER added).
        statements: In-place SQLite statements (discarded when rebuilding).
        rebuild: Some action needs a table rebuild.
        sequences: AUTO_INCREMENT=n values to store.
    """
    meta: TableMeta
    origins: dict[str, str | None]
    statements: list[str] = field(default_factory=list)
    rebuild: bool = False
    sequences: list[int] = field(default_factory=list)

    @property
    def table(self) -> str:
        return schema_prefix(self.meta) + quote_ident(self.meta.name)

    def require_column(self, name: str) -> ColumnMeta:
        col = self.meta.get_column(name)
        if col is None:
            raise SchemaError(f"Unknown column '{name}' in '{self.meta.name}'", errno=1054, sqlstate="42S22")
        return col

    def set_columns(self, columns: list[ColumnMeta]) -> None:
        self.meta = replace(self.meta, columns=tuple(columns))

    def set_keys(self, keys: list[KeyMeta]) -> None:
        primary = [k for k in keys if k.kind == "PRIMARY"]
        self.meta = replace(self.meta, keys=tuple(primary + [k for k in keys if k.kind != "PRIMARY"]))


# ---------- entry points ----------

def translate_alter_table(stmt: AlterTable, catalog: Catalog, database: str = "main") -> DdlPlan:
    """
    Translate ALTER TABLE.

    Args:
        stmt: Parsed ALTER TABLE.
        catalog: Current catalog.
        database: Logical database name for messages.

    Returns:
        DdlPlan with in-place statements or a rebuild sequence, plus the new metadata.

    Raises:
        SchemaError: 1054 unknown column, 1060 duplicate column, 1061 duplicate key,
                     1068 multiple primary keys, 1091 unknown column/key to drop, ...
        ExecutionError: 1146 unknown table, 1050 RENAME TO an existing table.
    """
    original = catalog.require_table(stmt.name, database)
    state = AlterState(meta=original, origins={c.name.lower(): c.name for c in original.columns})
    for action in stmt.actions:
        apply_action(state, action, catalog, database)
    final = validate_table(state.meta)

    if state.rebuild:
        logger.debug("ALTER TABLE {} needs a rebuild", original.name)
        statements = rebuild_statements(original, final, state.origins)
    else:
        statements = state.statements

    renamed = final.name != original.name
    return DdlPlan(
        statements=tuple(statements),
        write=() if renamed else (final,),
        rename=((original.name, final),) if renamed else (),
        sequences=tuple((final.name, n) for n in state.sequences),
        catalog=catalog.without_table(original.name).with_table(final),
    )


def translate_create_index(stmt: CreateIndex, catalog: Catalog, database: str = "main") -> DdlPlan:
    """CREATE [UNIQUE|FULLTEXT] INDEX is ALTER TABLE ... ADD KEY."""
    return translate_alter_table(AlterTable(name=stmt.table, actions=(AddKey(key=stmt.key),)), catalog, database)


def translate_drop_index(stmt: DropIndex, catalog: Catalog, database: str = "main") -> DdlPlan:
    """DROP INDEX name ON t is ALTER TABLE t DROP KEY name."""
    return translate_alter_table(AlterTable(name=stmt.table, actions=(DropKey(name=stmt.name),)), catalog, database)


# ---------- actions ----------

def apply_action(state: AlterState, action: AlterAction, catalog: Catalog, database: str) -> None:
    if isinstance(action, AddColumn):
        add_column(state, action)
    elif isinstance(action, DropColumn):
        drop_column(state, action)
    elif isinstance(action, ChangeColumn):
        change_column(state, action)
    elif isinstance(action, RenameColumn):
        rename_column(state, action)
    elif isinstance(action, AlterColumnDefault):
        alter_default(state, action)
    elif isinstance(action, AddKey):
        add_key(state, action)
    elif isinstance(action, DropKey):
        drop_key(state, action)
    elif isinstance(action, RenameKey):
        rename_key(state, action)
    elif isinstance(action, RenameTo):
        rename_to(state, action, catalog)
    elif isinstance(action, TableOptions):
        change_options(state, action)
    else:
        raise SchemaError(f"Unsupported ALTER TABLE action: {type(action).__name__}", errno=1235)


def _position(state: AlterState, first: bool, after: str | None, columns: list[ColumnMeta]) -> int:
    if first:
        return 0
    if after is not None:
        for i, c in enumerate(columns):
            if c.name.lower() == after.lower():
                return i + 1
        raise SchemaError(f"Unknown column '{after}' in '{state.meta.name}'", errno=1054, sqlstate="42S22")
    return len(columns)


def _inline_keys(state: AlterState, cd, column: str) -> None:
    """Keys implied by PRIMARY KEY / UNIQUE written on a column definition."""
    keys = list(state.meta.keys)
    if cd.primary_key:
        if state.meta.primary_key is not None:
            raise SchemaError("Multiple primary key defined", errno=1068)
        keys.append(KeyMeta(name="PRIMARY", kind="PRIMARY", columns=(column,), lengths=(None,)))
        state.rebuild = True
    if cd.unique:
        key = KeyMeta(name=unique_key_name(column, keys), kind="UNIQUE", columns=(column,), lengths=(None,))
        keys.append(key)
        state.set_keys(keys)
        state.statements.append(index_sql(state.meta, key))
        return
    state.set_keys(keys)


def add_column(state: AlterState, action: AddColumn) -> None:
    col = build_column(action.column)
    if state.meta.get_column(col.name) is not None:
        raise SchemaError(f"Duplicate column name '{col.name}'", errno=1060, sqlstate="42S21")
    columns = list(state.meta.columns)
    pos = _position(state, action.first, action.after, columns)
    columns.insert(pos, col)
    state.origins[col.name.lower()] = None

    simple = (
        pos == len(columns) - 1
        and not action.column.primary_key
        and not col.auto_increment
        and not col.default_now
        and not (col.not_null and col.default is None)
    )
    if simple:
        state.statements.append(f"ALTER TABLE {state.table} ADD COLUMN {column_sql(state.meta, col)}")
    else:
        state.rebuild = True
    state.set_columns(columns)
    _inline_keys(state, action.column, col.name)


def drop_column(state: AlterState, action: DropColumn) -> None:
    col = state.meta.get_column(action.name)
    if col is None:
        raise SchemaError(f"Can't DROP '{action.name}'; check that column/key exists", errno=1091)
    columns = [c for c in state.meta.columns if c is not col]
    if not columns:
        raise SchemaError("You can't delete all columns with ALTER TABLE; use DROP TABLE instead", errno=1090)
    keys = []
    for key in state.meta.keys:
        kept = [(c, n) for c, n in zip(key.columns, key.lengths or (None,) * len(key.columns))
                if c.lower() != col.name.lower()]
        if kept:
            keys.append(replace(key, columns=tuple(c for c, _ in kept), lengths=tuple(n for _, n in kept)))
    state.origins.pop(col.name.lower(), None)
    state.set_columns(columns)
    state.set_keys(keys)
    state.rebuild = True


def _rename_in_keys(keys, old: str, new: str) -> list[KeyMeta]:
    return [
        replace(k, columns=tuple(new if c.lower() == old.lower() else c for c in k.columns)) for k in keys
    ]


def change_column(state: AlterState, action: ChangeColumn) -> None:
    old = state.require_column(action.old_name)
    col = build_column(action.column)
    if col.name.lower() != old.name.lower() and state.meta.get_column(col.name) is not None:
        raise SchemaError(f"Duplicate column name '{col.name}'", errno=1060, sqlstate="42S21")

    columns = [c for c in state.meta.columns if c is not old]
    if action.first or action.after is not None:
        pos = _position(state, action.first, action.after, columns)
    else:
        pos = state.meta.column_index(old.name)
    columns.insert(pos, col)

    state.origins[col.name.lower()] = state.origins.pop(old.name.lower(), None)
    state.set_columns(columns)
    state.set_keys(_rename_in_keys(state.meta.keys, old.name, col.name))
    state.rebuild = True
    pk = state.meta.primary_key
    if action.column.primary_key and pk is not None and [c.lower() for c in pk.columns] == [col.name.lower()]:
        action = replace(action, column=replace(action.column, primary_key=False))
    _inline_keys(state, action.column, col.name)


def rename_column(state: AlterState, action: RenameColumn) -> None:
    old = state.require_column(action.old_name)
    if action.new_name.lower() != old.name.lower() and state.meta.get_column(action.new_name) is not None:
        raise SchemaError(f"Duplicate column name '{action.new_name}'", errno=1060, sqlstate="42S21")
    col = replace(old, name=action.new_name)
    state.origins[col.name.lower()] = state.origins.pop(old.name.lower(), None)
    # CHECK constraint names embed the column name, so those columns are rebuilt.
    if typemap.check_constraints(old.name, old.typ):
        state.rebuild = True
    else:
        state.statements.append(
            f"ALTER TABLE {state.table} RENAME COLUMN {quote_ident(old.name)} TO {quote_ident(col.name)}"
        )
    state.set_columns([col if c is old else c for c in state.meta.columns])
    state.set_keys(_rename_in_keys(state.meta.keys, old.name, col.name))


def alter_default(state: AlterState, action: AlterColumnDefault) -> None:
    old = state.require_column(action.name)
    if action.drop:
        col = replace(old, default=None, has_default=False)
    else:
        value = typemap.default_value(old.name, old.typ, action.default)
        if value is not None:
            if typemap.family(old.typ) in NO_DEFAULT_FAMILIES:
                raise SchemaError(
                    f"BLOB, TEXT, GEOMETRY or JSON column '{old.name}' can't have a default value", errno=1101
                )
            value = default_for_family(old.name, old.typ, value)
        elif old.not_null:
            raise SchemaError(f"Invalid default value for '{old.name}'", errno=1067)
        col = replace(old, default=value, has_default=True)
    state.set_columns([col if c is old else c for c in state.meta.columns])
    state.rebuild = True


def add_key(state: AlterState, action: AddKey) -> None:
    names = {c.name.lower(): c.name for c in state.meta.columns}
    keys = list(state.meta.keys)
    fk_number = 1 + sum(1 for k in keys if k.kind == "FOREIGN")
    key = key_meta(state.meta.name, action.key, names, keys, fk_number)
    keys.append(key)
    state.set_keys(keys)
    if key.kind == "PRIMARY":
        state.rebuild = True
    elif key.has_sqlite_index:
        state.statements.append(index_sql(state.meta, key))


def _require_key(state: AlterState, name: str) -> KeyMeta:
    key = state.meta.get_key(name)
    if key is None:
        raise SchemaError(f"Can't DROP '{name}'; check that column/key exists", errno=1091)
    return key


def drop_key(state: AlterState, action: DropKey) -> None:
    key = _require_key(state, action.name)
    if action.foreign and key.kind != "FOREIGN":
        raise SchemaError(f"Can't DROP '{action.name}'; check that column/key exists", errno=1091)
    if key.kind == "PRIMARY":
        state.rebuild = True
    elif key.has_sqlite_index:
        state.statements.append(drop_index_sql(state.meta, key))
    state.set_keys([k for k in state.meta.keys if k is not key])


def rename_key(state: AlterState, action: RenameKey) -> None:
    key = state.meta.get_key(action.old_name)
    if key is None:
        raise SchemaError(
            f"Key '{action.old_name}' doesn't exist in table '{state.meta.name}'", errno=1176
        )
    if key.kind == "PRIMARY" or action.new_name.upper() == "PRIMARY":
        raise SchemaError(f"Incorrect index name '{action.new_name}'", errno=1280)
    if action.new_name.lower() != key.name.lower() and state.meta.get_key(action.new_name) is not None:
        raise SchemaError(f"Duplicate key name '{action.new_name}'", errno=1061)
    new_key = replace(key, name=action.new_name)
    if key.has_sqlite_index:
        state.statements.append(drop_index_sql(state.meta, key))
    state.set_keys([new_key if k is key else k for k in state.meta.keys])
    if key.has_sqlite_index:
        state.statements.append(index_sql(state.meta, new_key))


def rename_to(state: AlterState, action: RenameTo, catalog: Catalog) -> None:
    if action.new_name.lower() == state.meta.name.lower():
        return
    check_table_name(action.new_name)
    if action.new_name in catalog:
        raise ExecutionError(f"Table '{action.new_name}' already exists", errno=1050, sqlstate="42S01")
    renamed, statements = renamed_table(state.meta, action.new_name)
    state.statements.extend(statements)
    state.meta = renamed


def change_options(state: AlterState, action: TableOptions) -> None:
    options, start = table_options(action.options, bool(state.meta.options.get("temporary")))
    if start is not None:
        state.sequences.append(start)
    merged = dict(state.meta.options)
    for key, value in options.items():
        if key == "engine" and "engine" not in action.options:
            continue
        merged[key] = value
    if "charset" in action.options and "collate" not in action.options:
        merged.pop("collate", None)

    meta = state.meta
    if action.convert:
        columns = [
            replace(c, collation=None, typ=replace(c.typ, charset=None, collation=None))
            if typemap.is_text(c.typ) else c
            for c in meta.columns
        ]
        converted = replace(meta, columns=tuple(columns), options=merged)
        if any(
            typemap.sqlite_collation(a.typ, meta.column_collation(a))
            != typemap.sqlite_collation(b.typ, converted.column_collation(b))
            for a, b in zip(meta.columns, converted.columns)
        ):
            state.rebuild = True
        state.meta = converted
        return

    if merged.get("collate") != meta.options.get("collate") or merged.get("charset") != meta.options.get("charset"):
        # A new table default applies to columns added later, not to existing ones.
        columns = [
            replace(c, collation=meta.column_collation(c) or SERVER_COLLATION)
            if typemap.is_text(c.typ) and c.collation is None else c
            for c in meta.columns
        ]
        state.meta = replace(meta, columns=tuple(columns), options=merged)
    else:
        state.meta = replace(meta, options=merged)


# ---------- rebuild ----------

def fill_expression(col: ColumnMeta) -> str:
    """SELECT expression that populates a column the ALTER added to existing rows."""
    if col.auto_increment:
        return "row_number() OVER (ORDER BY rowid)"
    default = col.default_sql
    if default is not None:
        return default
    if col.not_null:
        return quote_literal(typemap.implicit_default(col.typ))
    return "NULL"


def rebuild_statements(original: TableMeta, final: TableMeta, origins: dict[str, Any]) -> list[str]:
    """
    Copy-rename sequence replacing `original` with a table shaped like `final`.
    """
    tmp = REBUILD_PREFIX + final.name
    names = ", ".join(quote_ident(c.name) for c in final.columns)
    exprs = []
    for col in final.columns:
        origin = origins.get(col.name.lower())
        exprs.append(quote_ident(origin) if origin is not None else fill_expression(col))
    source = schema_prefix(original) + quote_ident(original.name)
    statements = [
        table_sql(final, name=tmp),
        f"INSERT INTO {quote_ident(tmp)} ({names}) SELECT {', '.join(exprs)} FROM {source}",
        f"DROP TABLE {source}",
        f"ALTER TABLE {schema_prefix(final)}{quote_ident(tmp)} RENAME TO {quote_ident(final.name)}",
    ]
    statements.extend(index_sql(final, k) for k in final.keys if k.has_sqlite_index)
    return statements
