"""
mylite/catalog.py

Table Metadata catalog for the mylite engine.

Responsibilities:
- Describe every MySQL table the application created: ordered columns with their
  declared MySQL types, keys, the auto-increment column and table options.
- Persist that description inside the SQLite file itself:
    - _mylite_tables(table_name, definition)   one JSON document per table
    - _mylite_sequences(table_name, next_id)   auto-increment high-water marks
- Provide lookup helpers the translators and executor share.

Persistence:
- Metadata rows are written on the caller's connection, inside the transaction
  that runs the DDL they describe, so a rolled-back DDL leaves no trace.

Design notes:
- TableMeta/ColumnMeta/KeyMeta are frozen; a DDL builds a new Catalog
  (copy-on-write) which the session swaps in only after COMMIT.
- MySQL column and table names compare case-insensitively here, matching how
  SQLite resolves names.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from loguru import logger

from . import typemap
from .ast import TypeSpec
from .errors import ExecutionError, SchemaError

META_TABLE = "_mylite_tables"
SEQUENCE_TABLE = "_mylite_sequences"
INTERNAL_PREFIX = "_mylite_"
REBUILD_PREFIX = "_mylite_rebuild_"

CATALOG_VERSION = 1


@dataclass(frozen=True)
class ColumnMeta:
    """
    Column metadata.

    Attributes:
        name: Column name.
        typ: Normalized declared MySQL type.
        not_null: NOT NULL.
        default: MySQL default value ("CURRENT_TIMESTAMP" for time defaults), None if absent or NULL.
        has_default: Whether a DEFAULT clause exists (DEFAULT NULL counts).
        auto_increment: AUTO_INCREMENT column.
        on_update_now: ON UPDATE CURRENT_TIMESTAMP.
        collation: Declared MySQL collation (None = table default).
        comment: COMMENT text.
    """
    name: str
    typ: TypeSpec
    not_null: bool = False
    default: Any = None
    has_default: bool = False
    auto_increment: bool = False
    on_update_now: bool = False
    collation: str | None = None
    comment: str | None = None

    @property
    def sqlite_type(self) -> str:
        return typemap.sqlite_type(self.typ)

    @property
    def default_sql(self) -> str | None:
        return typemap.default_sql(self.typ, self.default)

    @property
    def default_now(self) -> bool:
        return self.default == "CURRENT_TIMESTAMP"

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": {
                "name": self.typ.name,
                "params": list(self.typ.params),
                "unsigned": self.typ.unsigned,
                "zerofill": self.typ.zerofill,
                "values": list(self.typ.values),
                "charset": self.typ.charset,
                "collation": self.typ.collation,
            },
            "not_null": self.not_null,
            "default": self.default,
            "has_default": self.has_default,
            "auto_increment": self.auto_increment,
            "on_update_now": self.on_update_now,
            "collation": self.collation,
            "comment": self.comment,
        }

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "ColumnMeta":
        t = raw["type"]
        typ = TypeSpec(
            name=str(t["name"]),
            params=tuple(t.get("params", ())),
            unsigned=bool(t.get("unsigned", False)),
            zerofill=bool(t.get("zerofill", False)),
            values=tuple(t.get("values", ())),
            charset=t.get("charset"),
            collation=t.get("collation"),
        )
        return cls(
            name=raw["name"],
            typ=typ,
            not_null=bool(raw.get("not_null", False)),
            default=raw.get("default"),
            has_default=bool(raw.get("has_default", False)),
            auto_increment=bool(raw.get("auto_increment", False)),
            on_update_now=bool(raw.get("on_update_now", False)),
            collation=raw.get("collation"),
            comment=raw.get("comment"),
        )


@dataclass(frozen=True)
class KeyMeta:
    """
    Key metadata.

    Attributes:
        name: Key name ("PRIMARY" for the primary key).
        kind: "PRIMARY", "UNIQUE", "INDEX", "FULLTEXT" or "FOREIGN".
        columns: Key column names in order.
        lengths: Prefix lengths aligned with columns (None = whole column).
        ref_table: Referenced table (FOREIGN only).
        ref_columns: Referenced columns (FOREIGN only).
    """
    name: str
    kind: str
    columns: tuple[str, ...]
    lengths: tuple[int | None, ...] = ()
    ref_table: str | None = None
    ref_columns: tuple[str, ...] = ()

    @property
    def unique(self) -> bool:
        return self.kind in ("PRIMARY", "UNIQUE")

    @property
    def has_sqlite_index(self) -> bool:
        """Whether the key is backed by a "<table>__<key>" SQLite index."""
        return self.kind in ("UNIQUE", "INDEX")

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "columns": list(self.columns),
            "lengths": list(self.lengths),
            "ref_table": self.ref_table,
            "ref_columns": list(self.ref_columns),
        }

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "KeyMeta":
        columns = tuple(raw["columns"])
        return cls(
            name=raw["name"],
            kind=raw["kind"],
            columns=columns,
            lengths=tuple(raw.get("lengths") or (None,) * len(columns)),
            ref_table=raw.get("ref_table"),
            ref_columns=tuple(raw.get("ref_columns", ())),
        )


def index_name(table: str, key: str) -> str:
    """SQLite index name backing MySQL key `key` of `table`."""
    return f"{table}__{key}"


@dataclass(frozen=True)
class TableMeta:
    """
    Table metadata.

    Attributes:
        name: Table name as created.
        columns: Ordered columns.
        keys: Keys in definition order (PRIMARY first when present).
        options: Table options: engine, charset, collate, comment, ...
    """
    name: str
    columns: tuple[ColumnMeta, ...]
    keys: tuple[KeyMeta, ...] = ()
    options: dict[str, Any] = field(default_factory=dict, hash=False)

    def column_names(self) -> list[str]:
        """Return column names in table order."""
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> ColumnMeta | None:
        """Return ColumnMeta by (case-insensitive) name, or None if not found."""
        low = name.lower()
        for c in self.columns:
            if c.name.lower() == low:
                return c
        return None

    def require_column(self, name: str, where: str = "field list") -> ColumnMeta:
        col = self.get_column(name)
        if col is None:
            raise SchemaError(f"Unknown column '{name}' in '{where}'", errno=1054, sqlstate="42S22")
        return col

    def column_index(self, name: str) -> int:
        low = name.lower()
        for i, c in enumerate(self.columns):
            if c.name.lower() == low:
                return i
        return -1

    def get_key(self, name: str) -> KeyMeta | None:
        low = name.lower()
        for k in self.keys:
            if k.name.lower() == low:
                return k
        return None

    @property
    def primary_key(self) -> KeyMeta | None:
        for k in self.keys:
            if k.kind == "PRIMARY":
                return k
        return None

    @property
    def auto_increment_column(self) -> ColumnMeta | None:
        for c in self.columns:
            if c.auto_increment:
                return c
        return None

    def unique_keys(self) -> list[KeyMeta]:
        """PRIMARY first, then UNIQUE keys in definition order."""
        pk = [k for k in self.keys if k.kind == "PRIMARY"]
        return pk + [k for k in self.keys if k.kind == "UNIQUE"]

    def key_for_columns(self, columns: Iterable[str]) -> str | None:
        """Name of the unique key covering exactly `columns` (used in 1062 messages)."""
        wanted = [c.lower() for c in columns]
        for k in self.unique_keys():
            if [c.lower() for c in k.columns] == wanted:
                return k.name
        return None

    @property
    def rowid_alias(self) -> str | None:
        """Column that aliases SQLite's rowid (a lone INTEGER PRIMARY KEY), if any."""
        pk = self.primary_key
        if pk is None or len(pk.columns) != 1:
            return None
        col = self.get_column(pk.columns[0])
        if col is not None and typemap.family(col.typ) == "integer":
            return col.name
        return None

    @property
    def collation(self) -> str | None:
        return self.options.get("collate")

    def column_collation(self, col: ColumnMeta) -> str | None:
        """Effective MySQL collation of a column (column, then table default)."""
        return col.collation or col.typ.collation or self.collation

    def to_json(self) -> dict[str, Any]:
        return {
            "version": CATALOG_VERSION,
            "name": self.name,
            "columns": [c.to_json() for c in self.columns],
            "keys": [k.to_json() for k in self.keys],
            "options": self.options,
        }

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "TableMeta":
        return cls(
            name=raw["name"],
            columns=tuple(ColumnMeta.from_json(c) for c in raw.get("columns", [])),
            keys=tuple(KeyMeta.from_json(k) for k in raw.get("keys", [])),
            options=dict(raw.get("options", {})),
        )


@dataclass(frozen=True)
class Catalog:
    """
    Immutable snapshot of all Table Metadata.

    Attributes:
        tables: Mapping of lowercased table name -> TableMeta.
    """
    tables: dict[str, TableMeta] = field(default_factory=dict, hash=False)

    @classmethod
    def empty(cls) -> "Catalog":
        """Create an empty catalog."""
        return cls(tables={})

    def get(self, name: str) -> TableMeta | None:
        return self.tables.get(name.lower())

    def __contains__(self, name: str) -> bool:
        return name.lower() in self.tables

    def names(self) -> list[str]:
        """Table names as created, sorted."""
        return sorted((t.name for t in self.tables.values()), key=str.lower)

    def require_table(self, name: str, database: str = "main") -> TableMeta:
        """
        Fetch a table by name or raise ExecutionError 1146.
        """
        t = self.get(name)
        if t is None:
            raise ExecutionError(f"Table '{database}.{name}' doesn't exist", errno=1146, sqlstate="42S02")
        return t

    def with_table(self, meta: TableMeta) -> "Catalog":
        """New catalog with `meta` added or replaced."""
        tables = dict(self.tables)
        tables[meta.name.lower()] = meta
        return Catalog(tables=tables)

    def without_table(self, name: str) -> "Catalog":
        """New catalog with `name` removed."""
        tables = dict(self.tables)
        tables.pop(name.lower(), None)
        return Catalog(tables=tables)

    # ---------- persistence ----------

    @classmethod
    def load(cls, conn: sqlite3.Connection) -> "Catalog":
        """
        Load all Table Metadata from the meta table.

        Tables that exist in SQLite but have no metadata row (created outside
        mylite) are described by introspection so the catalog always matches
        SQLite's actual schema.

        Args:
            conn: Open SQLite connection.

        Returns:
            Catalog instance.
        """
        ensure_meta_tables(conn)
        tables: dict[str, TableMeta] = {}
        for name, definition in conn.execute(f'SELECT table_name, definition FROM "{META_TABLE}"'):
            meta = TableMeta.from_json(json.loads(definition))
            tables[meta.name.lower()] = meta

        existing = [
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'")
        ]
        present = {n.lower() for n in existing}
        for stale in [k for k in tables if k not in present]:
            logger.warning("Dropping metadata for missing table {}", tables[stale].name)
            conn.execute(f'DELETE FROM "{META_TABLE}" WHERE table_name = ?', (tables[stale].name,))
            del tables[stale]
        conn.execute(
            f'DELETE FROM "{SEQUENCE_TABLE}" WHERE table_name NOT IN '
            "(SELECT name FROM sqlite_master WHERE type = 'table')"
        )
        for name in existing:
            if name.lower() in tables or name.startswith(INTERNAL_PREFIX):
                continue
            logger.info("Describing table {} created outside mylite", name)
            tables[name.lower()] = introspect_table(conn, name)
        return cls(tables=tables)


def ensure_meta_tables(conn: sqlite3.Connection) -> None:
    """Create the metadata and sequence tables if missing."""
    conn.execute(
        f'CREATE TABLE IF NOT EXISTS "{META_TABLE}" ('
        "table_name TEXT PRIMARY KEY COLLATE NOCASE, definition TEXT NOT NULL)"
    )
    conn.execute(
        f'CREATE TABLE IF NOT EXISTS "{SEQUENCE_TABLE}" ('
        "table_name TEXT PRIMARY KEY COLLATE NOCASE, next_id INTEGER NOT NULL)"
    )


def write_table(conn: sqlite3.Connection, meta: TableMeta) -> None:
    """Insert or replace the metadata row for `meta` (caller owns the transaction)."""
    conn.execute(
        f'INSERT OR REPLACE INTO "{META_TABLE}" (table_name, definition) VALUES (?, ?)',
        (meta.name, json.dumps(meta.to_json(), sort_keys=True)),
    )


def delete_table(conn: sqlite3.Connection, name: str) -> None:
    """Remove metadata and sequence rows of a dropped table."""
    conn.execute(f'DELETE FROM "{META_TABLE}" WHERE table_name = ?', (name,))
    conn.execute(f'DELETE FROM "{SEQUENCE_TABLE}" WHERE table_name = ?', (name,))


def rename_table(conn: sqlite3.Connection, old: str, meta: TableMeta) -> None:
    """Move metadata and sequence rows from `old` to `meta.name`."""
    conn.execute(f'DELETE FROM "{META_TABLE}" WHERE table_name = ?', (old,))
    write_table(conn, meta)
    conn.execute(f'UPDATE "{SEQUENCE_TABLE}" SET table_name = ? WHERE table_name = ?', (meta.name, old))


# ---------- auto-increment sequences ----------

def next_id(conn: sqlite3.Connection, meta: TableMeta) -> int:
    """
    Next auto-increment value for a table.

    The stored high-water mark is reconciled with MAX(col) so rows written
    outside mylite never collide with generated ids.
    """
    ai = meta.auto_increment_column
    row = conn.execute(f'SELECT next_id FROM "{SEQUENCE_TABLE}" WHERE table_name = ?', (meta.name,)).fetchone()
    stored = int(row[0]) if row else 1
    if ai is None:
        return stored
    max_row = conn.execute(
        f"SELECT MAX({typemap.quote_ident(ai.name)}) FROM {typemap.quote_ident(meta.name)}"
    ).fetchone()
    current_max = max_row[0] if max_row and max_row[0] is not None else 0
    return max(stored, int(current_max) + 1)


def set_next_id(conn: sqlite3.Connection, table: str, value: int) -> None:
    conn.execute(
        f'INSERT OR REPLACE INTO "{SEQUENCE_TABLE}" (table_name, next_id) VALUES (?, ?)',
        (table, int(value)),
    )


def bump_next_id(conn: sqlite3.Connection, meta: TableMeta, used: int) -> None:
    """Advance the high-water mark past an id that was just stored."""
    if next_id(conn, meta) <= used:
        set_next_id(conn, meta.name, used + 1)


def reset_sequence(conn: sqlite3.Connection, table: str) -> None:
    conn.execute(f'DELETE FROM "{SEQUENCE_TABLE}" WHERE table_name = ?', (table,))


def current_auto_increment(conn: sqlite3.Connection, meta: TableMeta) -> int | None:
    """Value SHOW TABLE STATUS / SHOW CREATE TABLE report as AUTO_INCREMENT."""
    if meta.auto_increment_column is None:
        return None
    return next_id(conn, meta)


# ---------- introspection ----------

_DECLARED_TYPE_PREFIX = {
    "INT": TypeSpec(name="BIGINT"),
    "CHAR": TypeSpec(name="TEXT"),
    "CLOB": TypeSpec(name="TEXT"),
    "TEXT": TypeSpec(name="TEXT"),
    "BLOB": TypeSpec(name="BLOB"),
    "REAL": TypeSpec(name="DOUBLE"),
    "FLOA": TypeSpec(name="DOUBLE"),
    "DOUB": TypeSpec(name="DOUBLE"),
}


def _type_from_declared(declared: str) -> TypeSpec:
    """Best MySQL equivalent of an SQLite declared type, following SQLite's affinity rules."""
    upper = declared.upper()
    for needle in ("INT", "CHAR", "CLOB", "TEXT", "BLOB", "REAL", "FLOA", "DOUB"):
        if needle in upper:
            return _DECLARED_TYPE_PREFIX[needle]
    if not upper:
        return TypeSpec(name="BLOB")
    return TypeSpec(name="DECIMAL", params=(65, 30))


def introspect_table(conn: sqlite3.Connection, name: str) -> TableMeta:
    """Describe a table that has no metadata row from SQLite's own schema."""
    q = typemap.quote_ident(name)
    columns: list[ColumnMeta] = []
    pk_cols: list[tuple[int, str]] = []
    for _cid, col_name, declared, notnull, dflt, pk in conn.execute(f"PRAGMA table_info({q})"):
        typ = _type_from_declared(declared or "")
        default = None
        if dflt is not None:
            text = str(dflt)
            if text.startswith("'") and text.endswith("'"):
                default = text[1:-1].replace("''", "'")
            else:
                default = typemap.numeric_prefix(text) if text[:1].isdigit() or text[:1] == "-" else text
        columns.append(
            ColumnMeta(name=col_name, typ=typ, not_null=bool(notnull), default=default, has_default=dflt is not None)
        )
        if pk:
            pk_cols.append((pk, col_name))
    keys: list[KeyMeta] = []
    if pk_cols:
        cols = tuple(c for _, c in sorted(pk_cols))
        keys.append(KeyMeta(name="PRIMARY", kind="PRIMARY", columns=cols, lengths=(None,) * len(cols)))
    for _seq, idx_name, unique, origin, _partial in conn.execute(f"PRAGMA index_list({q})"):
        if origin == "pk":
            continue
        cols = tuple(r[2] for r in conn.execute(f"PRAGMA index_info({typemap.quote_ident(idx_name)})"))
        key_name = idx_name[len(name) + 2:] if idx_name.startswith(name + "__") else idx_name
        keys.append(
            KeyMeta(name=key_name, kind="UNIQUE" if unique else "INDEX", columns=cols, lengths=(None,) * len(cols))
        )
    if len(pk_cols) == 1:
        idx = next(i for i, c in enumerate(columns) if c.name == pk_cols[0][1])
        if columns[idx].typ.name == "BIGINT":
            columns[idx] = replace(columns[idx], auto_increment=True)
    return TableMeta(name=name, columns=tuple(columns), keys=tuple(keys), options={"engine": "InnoDB"})
