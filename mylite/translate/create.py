"""
mylite/translate/create.py

Schema Translator, part 1: CREATE TABLE and the table-level "Other" DDL.

Responsibilities:
- Turn a CreateTable statement into Table Metadata plus the SQLite DDL that
  realizes it (CREATE TABLE with CHECK constraints, one CREATE INDEX per key)
- Validate definitions the way MySQL does (duplicate columns/keys, primary
  key count, AUTO_INCREMENT placement, default values)
- DROP TABLE, RENAME TABLE and TRUNCATE TABLE
- Shared SQL builders used by ALTER's rebuild path (table_sql, index_sql)

Notes:
- A single integer-family PRIMARY KEY column is declared inline as
  `INTEGER PRIMARY KEY` so it aliases SQLite's rowid; any other primary key
  becomes a table constraint.
- UNIQUE / INDEX keys are "<table>__<key>" SQLite indexes; FULLTEXT and
  FOREIGN keys live in metadata only.
- Prefix key lengths are recorded but SQLite indexes the whole column.
- TEMPORARY tables are created in SQLite's temp schema; their metadata is kept
  in memory only.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from ..ast import ColumnDef, CreateTable, DropTable, KeyDef, KeyPart, RenameTable, TruncateTable
from ..catalog import INTERNAL_PREFIX, Catalog, ColumnMeta, KeyMeta, TableMeta, index_name
from ..errors import ExecutionError, SchemaError
from .. import typemap
from ..typemap import quote_ident
from .plan import DdlPlan

AUTO_INCREMENT_FAMILIES = frozenset({"integer", "float", "decimal"})
NO_DEFAULT_FAMILIES = frozenset({"text", "blob", "json"})


# ---------- column / key metadata ----------

def build_column(cd: ColumnDef) -> ColumnMeta:
    """
    Column metadata from a parsed column definition.

    Raises:
        SchemaError: unsupported type, or an invalid DEFAULT / ON UPDATE clause.
    """
    typ = typemap.normalize(cd.typ)
    fam = typemap.family(typ)
    not_null = cd.not_null or cd.primary_key or cd.auto_increment

    if cd.auto_increment and fam not in AUTO_INCREMENT_FAMILIES:
        raise SchemaError(f"Incorrect column specifier for column '{cd.name}'", errno=1063)
    if cd.on_update_now and fam not in ("datetime", "date"):
        raise SchemaError(f"Invalid ON UPDATE clause for '{cd.name}' column", errno=1294, sqlstate="HY000")

    default = typemap.default_value(cd.name, typ, cd.default) if cd.has_default else None
    if default is not None:
        if fam in NO_DEFAULT_FAMILIES:
            raise SchemaError(
                f"BLOB, TEXT, GEOMETRY or JSON column '{cd.name}' can't have a default value", errno=1101
            )
        default = default_for_family(cd.name, typ, default)
    elif cd.has_default and not_null:
        raise SchemaError(f"Invalid default value for '{cd.name}'", errno=1067)
    if cd.auto_increment and cd.has_default:
        raise SchemaError(f"Invalid default value for '{cd.name}'", errno=1067)

    return ColumnMeta(
        name=cd.name,
        typ=typ,
        not_null=not_null,
        default=default,
        has_default=cd.has_default,
        auto_increment=cd.auto_increment,
        on_update_now=cd.on_update_now,
        collation=typ.collation,
        comment=cd.comment,
    )


def default_for_family(column: str, typ, value: Any) -> Any:
    fam = typemap.family(typ)
    if value == "CURRENT_TIMESTAMP":
        return value
    if fam in typemap.NUMERIC_FAMILIES:
        if isinstance(value, str):
            if not typemap.is_numeric_text(value):
                raise SchemaError(f"Invalid default value for '{column}'", errno=1067)
            value = typemap.numeric_prefix(value)
        rng = typemap.integer_range(typ)
        if rng is not None and not rng[0] <= value <= rng[1]:
            raise SchemaError(f"Invalid default value for '{column}'", errno=1067)
        if fam in ("integer", "bit", "year") and isinstance(value, float):
            value = int(round(value))
        return value
    if fam in ("string", "enum", "set", "date", "datetime", "time") and not isinstance(value, str):
        return str(value)
    return value


def build_keys(table: str, columns: list[ColumnMeta], defs: list[KeyDef], inline: list[ColumnDef]) -> list[KeyMeta]:
    """
    Key metadata from table-level key definitions plus inline PRIMARY KEY / UNIQUE.

    Unnamed keys take the name of their first column ("col", "col_2", ...);
    unnamed foreign keys are "<table>_ibfk_<n>".

    Raises:
        SchemaError: 1068 multiple primary keys, 1072 unknown key column,
                     1061 duplicate key name, 1280 a secondary key named PRIMARY.
    """
    all_defs: list[KeyDef] = []
    for cd in inline:
        if cd.primary_key:
            all_defs.append(_inline_key("PRIMARY", cd.name))
    all_defs.extend(defs)
    for cd in inline:
        if cd.unique:
            all_defs.append(_inline_key("UNIQUE", cd.name))

    names = {c.name.lower(): c.name for c in columns}
    keys: list[KeyMeta] = []
    foreign = 0
    for kd in all_defs:
        keys.append(key_meta(table, kd, names, keys, foreign + 1))
        if kd.kind == "FOREIGN":
            foreign += 1
    primary = [k for k in keys if k.kind == "PRIMARY"]
    return primary + [k for k in keys if k.kind != "PRIMARY"]


def _inline_key(kind: str, column: str) -> KeyDef:
    return KeyDef(kind=kind, name="PRIMARY" if kind == "PRIMARY" else None, parts=(KeyPart(column=column),))


def key_meta(table: str, kd: KeyDef, names: dict[str, str], existing: list[KeyMeta], fk_number: int) -> KeyMeta:
    if kd.kind == "SPATIAL":
        raise SchemaError("SPATIAL indexes are not supported", errno=1235)
    if kd.kind == "PRIMARY" and any(k.kind == "PRIMARY" for k in existing):
        raise SchemaError("Multiple primary key defined", errno=1068)

    columns = []
    for part in kd.parts:
        actual = names.get(part.column.lower())
        if actual is None:
            raise SchemaError(f"Key column '{part.column}' doesn't exist in table", errno=1072)
        columns.append(actual)

    if kd.kind == "PRIMARY":
        name = "PRIMARY"
    elif kd.name is not None:
        if kd.name.upper() == "PRIMARY":
            raise SchemaError(f"Incorrect index name '{kd.name}'", errno=1280)
        name = kd.name
    elif kd.kind == "FOREIGN":
        name = f"{table}_ibfk_{fk_number}"
    else:
        name = unique_key_name(columns[0], existing)

    if any(k.name.lower() == name.lower() for k in existing):
        raise SchemaError(f"Duplicate key name '{name}'", errno=1061)
    return KeyMeta(
        name=name,
        kind=kd.kind,
        columns=tuple(columns),
        lengths=tuple(p.length for p in kd.parts),
        ref_table=kd.ref_table,
        ref_columns=kd.ref_columns,
    )


def unique_key_name(base: str, existing) -> str:
    """MySQL's naming of unnamed keys: the first column, then base_2, base_3, ..."""
    taken = {k.name.lower() for k in existing}
    if base.lower() not in taken and base.upper() != "PRIMARY":
        return base
    n = 2
    while f"{base}_{n}".lower() in taken:
        n += 1
    return f"{base}_{n}"


def validate_table(meta: TableMeta) -> TableMeta:
    """
    Table-wide checks shared by CREATE and ALTER; returns `meta` with primary
    key columns forced NOT NULL.

    Raises:
        SchemaError: 1060 duplicate column, 1075 misplaced AUTO_INCREMENT,
                     1113 a table without columns.
    """
    if not meta.columns:
        raise SchemaError("A table must have at least 1 column", errno=1113)
    seen: set[str] = set()
    for col in meta.columns:
        if col.name.lower() in seen:
            raise SchemaError(f"Duplicate column name '{col.name}'", errno=1060, sqlstate="42S21")
        seen.add(col.name.lower())

    auto = [c for c in meta.columns if c.auto_increment]
    if len(auto) > 1 or (
        auto and not any(k.columns[0].lower() == auto[0].name.lower() for k in meta.keys if k.kind != "FOREIGN")
    ):
        raise SchemaError(
            "Incorrect table definition; there can be only one auto column and it must be defined as a key",
            errno=1075,
        )

    pk = meta.primary_key
    if pk is None:
        return meta
    pk_cols = {c.lower() for c in pk.columns}
    columns = tuple(
        replace(c, not_null=True) if c.name.lower() in pk_cols and not c.not_null else c for c in meta.columns
    )
    return replace(meta, columns=columns)


def table_options(options: dict[str, Any], temporary: bool = False) -> tuple[dict[str, Any], int | None]:
    """
    Split parsed table options into stored options and an AUTO_INCREMENT start value.
    """
    stored: dict[str, Any] = {}
    start = None
    for key, value in options.items():
        if key == "auto_increment":
            start = int(value)
            continue
        if key == "engine":
            stored["engine"] = str(value)
        elif key in ("charset", "collate", "comment", "row_format"):
            stored[key] = value
    stored.setdefault("engine", "InnoDB")
    if temporary:
        stored["temporary"] = True
    return stored, start


def build_table(stmt: CreateTable) -> TableMeta:
    """Validated TableMeta for a CREATE TABLE with an explicit definition."""
    columns = [build_column(cd) for cd in stmt.columns]
    keys = build_keys(stmt.name, columns, list(stmt.keys), list(stmt.columns))
    options, _ = table_options(stmt.options, stmt.temporary)
    meta = TableMeta(name=stmt.name, columns=tuple(columns), keys=tuple(keys), options=options)
    return validate_table(meta)


# ---------- SQL builders ----------

def schema_prefix(meta: TableMeta) -> str:
    """'temp.' for TEMPORARY tables, '' otherwise."""
    return "temp." if meta.options.get("temporary") else ""


def column_sql(meta: TableMeta, col: ColumnMeta, *, inline_pk: bool = False) -> str:
    """
    SQLite column definition: type, NOT NULL, DEFAULT, COLLATE and CHECKs.

    Args:
        meta: Owning table (supplies the default collation).
        col: Column to render.
        inline_pk: Declare the column `PRIMARY KEY` (rowid alias).
    """
    parts = [quote_ident(col.name), col.sqlite_type]
    if inline_pk:
        parts.append("PRIMARY KEY")
    if col.not_null:
        parts.append("NOT NULL")
    default = col.default_sql
    if default is not None:
        parts.append(f"DEFAULT {default}")
    collation = typemap.sqlite_collation(col.typ, meta.column_collation(col))
    if collation is not None:
        parts.append(f"COLLATE {collation}")
    parts.extend(typemap.check_constraints(col.name, col.typ))
    return " ".join(parts)


def table_sql(meta: TableMeta, name: str | None = None) -> str:
    """
    CREATE TABLE statement for `meta`, optionally under another name
    (the rebuild path creates "_mylite_rebuild_<t>" first).
    """
    target = name or meta.name
    alias = meta.rowid_alias
    defs = [column_sql(meta, c, inline_pk=alias is not None and c.name == alias) for c in meta.columns]
    pk = meta.primary_key
    if pk is not None and alias is None:
        defs.append("PRIMARY KEY (" + ", ".join(quote_ident(c) for c in pk.columns) + ")")
    temp = "TEMP " if meta.options.get("temporary") else ""
    return f"CREATE {temp}TABLE {quote_ident(target)} (\n  " + ",\n  ".join(defs) + "\n)"


def index_sql(meta: TableMeta, key: KeyMeta) -> str:
    """CREATE [UNIQUE] INDEX for one UNIQUE / INDEX key of `meta`."""
    unique = "UNIQUE " if key.kind == "UNIQUE" else ""
    idx = schema_prefix(meta) + quote_ident(index_name(meta.name, key.name))
    cols = ", ".join(quote_ident(c) for c in key.columns)
    return f"CREATE {unique}INDEX {idx} ON {quote_ident(meta.name)} ({cols})"


def drop_index_sql(meta: TableMeta, key: KeyMeta) -> str:
    return f"DROP INDEX {schema_prefix(meta)}{quote_ident(index_name(meta.name, key.name))}"


def create_statements(meta: TableMeta) -> list[str]:
    """CREATE TABLE plus one CREATE INDEX per SQLite-backed key."""
    return [table_sql(meta)] + [index_sql(meta, k) for k in meta.keys if k.has_sqlite_index]


def check_table_name(name: str) -> None:
    if name.lower().startswith(INTERNAL_PREFIX) or not name.strip():
        raise SchemaError(f"Incorrect table name '{name}'", errno=1103)


# ---------- translators ----------

def translate_create_table(stmt: CreateTable, catalog: Catalog, database: str = "main") -> DdlPlan:
    """
    Translate CREATE TABLE.

    Args:
        stmt: Parsed CREATE TABLE.
        catalog: Current catalog.
        database: Logical database name for messages.

    Returns:
        DdlPlan creating the table and its indexes and recording its metadata.

    Raises:
        SchemaError: invalid definition (see build_table).
        ExecutionError: 1050 table exists, 1146 unknown LIKE source.
    """
    check_table_name(stmt.name)
    existing = catalog.get(stmt.name)
    if existing is not None:
        if stmt.if_not_exists:
            note = f"Table '{existing.name}' already exists"
            return DdlPlan(message="OK", warnings=(note,))
        raise ExecutionError(f"Table '{stmt.name}' already exists", errno=1050, sqlstate="42S01")

    sequences: tuple[tuple[str, int | None], ...] = ()
    if stmt.like is not None:
        source = catalog.require_table(stmt.like, database)
        options = {k: v for k, v in source.options.items() if k != "temporary"}
        if stmt.temporary:
            options["temporary"] = True
        meta = TableMeta(name=stmt.name, columns=source.columns, keys=source.keys, options=options)
    else:
        meta = build_table(stmt)
        _, start = table_options(stmt.options)
        if start is not None and start > 1:
            sequences = ((meta.name, start),)

    return DdlPlan(
        statements=tuple(create_statements(meta)),
        write=(meta,),
        sequences=sequences,
        catalog=catalog.with_table(meta),
        message=f"Table '{meta.name}' created",
    )


def translate_drop_table(stmt: DropTable, catalog: Catalog, database: str = "main") -> DdlPlan:
    """
    Translate DROP [TEMPORARY] TABLE [IF EXISTS] t1, t2, ...

    Nothing is dropped when any named table is unknown (without IF EXISTS).
    """
    found: list[TableMeta] = []
    missing: list[str] = []
    for name in stmt.names:
        meta = catalog.get(name)
        if meta is None or (stmt.temporary and not meta.options.get("temporary")):
            missing.append(f"{database}.{name}")
        else:
            found.append(meta)
    if missing and not stmt.if_exists:
        raise ExecutionError(f"Unknown table '{','.join(missing)}'", errno=1051, sqlstate="42S02")

    new_catalog = catalog
    for meta in found:
        new_catalog = new_catalog.without_table(meta.name)
    return DdlPlan(
        statements=tuple(f"DROP TABLE {schema_prefix(m)}{quote_ident(m.name)}" for m in found),
        delete=tuple(m.name for m in found),
        catalog=new_catalog if found else None,
        warnings=tuple(f"Unknown table '{m}'" for m in missing),
    )


def renamed_table(meta: TableMeta, new_name: str) -> tuple[TableMeta, list[str]]:
    """
    Metadata and SQLite statements for renaming one table.

    Indexes are dropped and recreated so their names keep the
    "<table>__<key>" form.
    """
    renamed = replace(meta, name=new_name)
    statements = [drop_index_sql(meta, k) for k in meta.keys if k.has_sqlite_index]
    statements.append(
        f"ALTER TABLE {schema_prefix(meta)}{quote_ident(meta.name)} RENAME TO {quote_ident(new_name)}"
    )
    statements.extend(index_sql(renamed, k) for k in renamed.keys if k.has_sqlite_index)
    return renamed, statements


def translate_rename_table(stmt: RenameTable, catalog: Catalog, database: str = "main") -> DdlPlan:
    """Translate RENAME TABLE a TO b [, c TO d]; pairs apply left to right."""
    statements: list[str] = []
    renames: list[tuple[str, TableMeta]] = []
    current = catalog
    for old, new in stmt.pairs:
        meta = current.require_table(old, database)
        check_table_name(new)
        if new in current and new.lower() != old.lower():
            raise ExecutionError(f"Table '{new}' already exists", errno=1050, sqlstate="42S01")
        renamed, sql = renamed_table(meta, new)
        statements.extend(sql)
        renames.append((meta.name, renamed))
        current = current.without_table(meta.name).with_table(renamed)
    return DdlPlan(statements=tuple(statements), rename=tuple(renames), catalog=current)


def translate_truncate(stmt: TruncateTable, catalog: Catalog, database: str = "main") -> DdlPlan:
    """TRUNCATE TABLE: delete every row and restart the AUTO_INCREMENT sequence."""
    meta = catalog.require_table(stmt.name, database)
    return DdlPlan(
        statements=(f"DELETE FROM {schema_prefix(meta)}{quote_ident(meta.name)}",),
        sequences=((meta.name, None),),
    )
