"""
mylite/exec/show.py

SHOW / DESCRIBE answered from Table Metadata.

Responsibilities:
- SHOW [FULL] TABLES [LIKE]
- SHOW [FULL] COLUMNS FROM t [LIKE] and DESCRIBE t [col]
- SHOW INDEX FROM t
- SHOW CREATE TABLE t (MySQL DDL rebuilt from metadata, not SQLite's schema)
- SHOW TABLE STATUS [LIKE]
- SHOW VARIABLES [LIKE] and SHOW DATABASES

Notes:
- Output column names and spellings follow what a MySQL 8 server returns so
  applications that parse them keep working.
- Temporary tables are not listed by SHOW TABLES, as in MySQL.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Any

from .. import typemap
from ..ast import Show
from ..catalog import Catalog, ColumnMeta, KeyMeta, TableMeta, current_auto_increment
from ..errors import ExecutionError
from ..result import ResultSet
from ..translate.plan import SessionState

SERVER_COLLATION = "utf8mb4_general_ci"
SERVER_CHARSET = "utf8mb4"
PRIVILEGES = "select,insert,update,references"


def like_to_regex(pattern: str) -> re.Pattern:
    """Compile a MySQL LIKE pattern (%, _ and backslash escapes) as a case-insensitive regex."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


def like_filter(pattern: str | None, names: list[str]) -> list[str]:
    if pattern is None:
        return names
    rx = like_to_regex(pattern)
    return [n for n in names if rx.fullmatch(n)]


def _result(columns: list[str], rows: list[tuple[Any, ...]]) -> ResultSet:
    return ResultSet(columns=columns, rows=[dict(zip(columns, r)) for r in rows])


def run_show(stmt: Show, catalog: Catalog, conn: sqlite3.Connection, session: SessionState) -> ResultSet:
    """
    Execute one SHOW / DESCRIBE statement.

    Args:
        stmt: Parsed Show node.
        catalog: Current Table Metadata.
        conn: Connection used for row counts and auto-increment values.
        session: Session state (database name, variables).

    Returns:
        ResultSet with MySQL's column names.

    Raises:
        ExecutionError: 1146 for an unknown table.
    """
    db = session.database
    if stmt.kind == "TABLES":
        return show_tables(catalog, db, stmt.like, stmt.full)
    if stmt.kind == "COLUMNS":
        meta = catalog.require_table(stmt.table, db)
        return show_columns(meta, stmt.like if stmt.column is None else stmt.column, stmt.full)
    if stmt.kind == "INDEX":
        return show_index(catalog.require_table(stmt.table, db))
    if stmt.kind == "CREATE TABLE":
        meta = catalog.require_table(stmt.table, db)
        return _result(["Table", "Create Table"], [(meta.name, create_table_sql(meta, conn))])
    if stmt.kind == "TABLE STATUS":
        return show_table_status(catalog, conn, stmt.like)
    if stmt.kind == "VARIABLES":
        names = like_filter(stmt.like, sorted(session.variables))
        return _result(["Variable_name", "Value"], [(n, _variable_text(session.variables[n])) for n in names])
    if stmt.kind == "DATABASES":
        names = like_filter(stmt.like, ["information_schema", db])
        return _result(["Database"], [(n,) for n in names])
    raise ExecutionError(f"Unsupported SHOW statement: {stmt.kind}", errno=1235, sqlstate="42000")


def _variable_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


# ---------- SHOW TABLES ----------

def show_tables(catalog: Catalog, database: str, like: str | None, full: bool) -> ResultSet:
    heading = f"Tables_in_{database}" + (f" ({like})" if like is not None else "")
    names = [
        n for n in catalog.names()
        if not catalog.get(n).options.get("temporary")
    ]
    names = like_filter(like, names)
    if full:
        return _result([heading, "Table_type"], [(n, "BASE TABLE") for n in names])
    return _result([heading], [(n,) for n in names])


# ---------- SHOW COLUMNS ----------

def column_key(meta: TableMeta, col: ColumnMeta) -> str:
    """PRI / UNI / MUL marker of SHOW COLUMNS."""
    low = col.name.lower()
    pk = meta.primary_key
    if pk is not None and low in (c.lower() for c in pk.columns):
        return "PRI"
    for k in meta.keys:
        if k.kind == "UNIQUE" and len(k.columns) == 1 and k.columns[0].lower() == low:
            return "UNI"
    for k in meta.keys:
        if k.columns and k.columns[0].lower() == low:
            return "MUL"
    return ""


def column_default(col: ColumnMeta) -> str | None:
    if col.default is None:
        return None
    if isinstance(col.default, bytes):
        return col.default.decode("latin-1")
    return str(col.default)


def column_extra(col: ColumnMeta) -> str:
    parts = []
    if col.auto_increment:
        parts.append("auto_increment")
    if col.default_now:
        parts.append("DEFAULT_GENERATED")
    if col.on_update_now:
        parts.append("on update CURRENT_TIMESTAMP")
    return " ".join(parts)


def column_collation(meta: TableMeta, col: ColumnMeta) -> str | None:
    if not typemap.is_text(col.typ):
        return None
    return meta.column_collation(col) or SERVER_COLLATION


def show_columns(meta: TableMeta, like: str | None, full: bool) -> ResultSet:
    """
    SHOW [FULL] COLUMNS / DESCRIBE.

    Args:
        meta: Table metadata.
        like: LIKE pattern on the column name (DESCRIBE t col uses it too).
        full: Include Collation, Privileges and Comment.
    """
    wanted = like_filter(like, meta.column_names())
    rows = []
    for name in wanted:
        col = meta.get_column(name)
        null = "NO" if col.not_null else "YES"
        base = (
            col.name,
            typemap.format_type(col.typ),
            null,
            column_key(meta, col),
            column_default(col),
            column_extra(col),
        )
        if full:
            rows.append(
                (base[0], base[1], column_collation(meta, col), *base[2:], PRIVILEGES, col.comment or "")
            )
        else:
            rows.append(base)
    if full:
        columns = ["Field", "Type", "Collation", "Null", "Key", "Default", "Extra", "Privileges", "Comment"]
    else:
        columns = ["Field", "Type", "Null", "Key", "Default", "Extra"]
    return _result(columns, rows)


# ---------- SHOW INDEX ----------

INDEX_COLUMNS = [
    "Table", "Non_unique", "Key_name", "Seq_in_index", "Column_name", "Collation", "Cardinality",
    "Sub_part", "Packed", "Null", "Index_type", "Comment", "Index_comment", "Visible", "Expression",
]


def show_index(meta: TableMeta) -> ResultSet:
    rows = []
    for key in meta.keys:
        if key.kind == "FOREIGN":
            continue
        lengths = key.lengths or (None,) * len(key.columns)
        for seq, (name, length) in enumerate(zip(key.columns, lengths), start=1):
            col = meta.get_column(name)
            nullable = col is not None and not col.not_null
            rows.append((
                meta.name,
                0 if key.unique else 1,
                key.name,
                seq,
                col.name if col is not None else name,
                None if key.kind == "FULLTEXT" else "A",
                None,
                length,
                None,
                "YES" if nullable else "",
                "FULLTEXT" if key.kind == "FULLTEXT" else "BTREE",
                "",
                "",
                "YES",
                None,
            ))
    return _result(INDEX_COLUMNS, rows)


# ---------- SHOW CREATE TABLE ----------

def mysql_ident(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def mysql_string(value: Any) -> str:
    if isinstance(value, bytes):
        value = value.decode("latin-1")
    return "'" + str(value).replace("\\", "\\\\").replace("'", "''") + "'"


def column_definition(meta: TableMeta, col: ColumnMeta) -> str:
    """One column line of SHOW CREATE TABLE."""
    parts = [mysql_ident(col.name), typemap.format_type(col.typ)]
    explicit = col.collation or col.typ.collation
    if typemap.is_text(col.typ) and explicit:
        charset = col.typ.charset or explicit.split("_", 1)[0]
        parts.append(f"CHARACTER SET {charset} COLLATE {explicit}")
    if col.not_null:
        parts.append("NOT NULL")
    if col.default_now:
        parts.append("DEFAULT CURRENT_TIMESTAMP")
    elif col.default is not None:
        parts.append(f"DEFAULT {mysql_string(col.default)}")
    elif not col.not_null and not col.auto_increment and typemap.family(col.typ) not in ("text", "blob", "json"):
        parts.append("DEFAULT NULL")
    if col.on_update_now:
        parts.append("ON UPDATE CURRENT_TIMESTAMP")
    if col.auto_increment:
        parts.append("AUTO_INCREMENT")
    if col.comment:
        parts.append(f"COMMENT {mysql_string(col.comment)}")
    return " ".join(parts)


def key_definition(key: KeyMeta) -> str:
    lengths = key.lengths or (None,) * len(key.columns)
    cols = ",".join(
        mysql_ident(c) + (f"({n})" if n is not None else "") for c, n in zip(key.columns, lengths)
    )
    if key.kind == "PRIMARY":
        return f"PRIMARY KEY ({cols})"
    if key.kind == "UNIQUE":
        return f"UNIQUE KEY {mysql_ident(key.name)} ({cols})"
    if key.kind == "FULLTEXT":
        return f"FULLTEXT KEY {mysql_ident(key.name)} ({cols})"
    if key.kind == "FOREIGN":
        refs = ",".join(mysql_ident(c) for c in key.ref_columns)
        return (
            f"CONSTRAINT {mysql_ident(key.name)} FOREIGN KEY ({cols}) "
            f"REFERENCES {mysql_ident(key.ref_table or '')} ({refs})"
        )
    return f"KEY {mysql_ident(key.name)} ({cols})"


def create_table_sql(meta: TableMeta, conn: sqlite3.Connection | None = None) -> str:
    """
    Rebuild the MySQL CREATE TABLE statement of a table.

    Args:
        meta: Table metadata.
        conn: When given, AUTO_INCREMENT=n is reported from the live sequence.
    """
    lines = [column_definition(meta, c) for c in meta.columns]
    keys = [k for k in meta.keys if k.kind != "FOREIGN"] + [k for k in meta.keys if k.kind == "FOREIGN"]
    lines.extend(key_definition(k) for k in keys)
    opts = meta.options
    tail = [f"ENGINE={opts.get('engine', 'InnoDB')}"]
    if conn is not None:
        ai = current_auto_increment(conn, meta)
        if ai is not None and ai > 1:
            tail.append(f"AUTO_INCREMENT={ai}")
    collate = opts.get("collate") or SERVER_COLLATION
    charset = opts.get("charset") or collate.split("_", 1)[0]
    tail.append(f"DEFAULT CHARSET={charset}")
    tail.append(f"COLLATE={collate}")
    if opts.get("row_format"):
        tail.append(f"ROW_FORMAT={str(opts['row_format']).upper()}")
    if opts.get("comment"):
        tail.append(f"COMMENT={mysql_string(opts['comment'])}")
    head = "CREATE TEMPORARY TABLE" if opts.get("temporary") else "CREATE TABLE"
    return f"{head} {mysql_ident(meta.name)} (\n  " + ",\n  ".join(lines) + "\n) " + " ".join(tail)


# ---------- SHOW TABLE STATUS ----------

STATUS_COLUMNS = [
    "Name", "Engine", "Version", "Row_format", "Rows", "Avg_row_length", "Data_length", "Max_data_length",
    "Index_length", "Data_free", "Auto_increment", "Create_time", "Update_time", "Check_time", "Collation",
    "Checksum", "Create_options", "Comment",
]


def show_table_status(catalog: Catalog, conn: sqlite3.Connection, like: str | None) -> ResultSet:
    rows = []
    for name in like_filter(like, catalog.names()):
        meta = catalog.get(name)
        if meta.options.get("temporary"):
            continue
        count = conn.execute(f"SELECT COUNT(*) FROM {typemap.quote_ident(meta.name)}").fetchone()[0]
        rows.append((
            meta.name,
            meta.options.get("engine", "InnoDB"),
            10,
            str(meta.options.get("row_format") or "Dynamic").capitalize(),
            count,
            0,
            0,
            0,
            0,
            0,
            current_auto_increment(conn, meta),
            None,
            None,
            None,
            meta.options.get("collate") or SERVER_COLLATION,
            None,
            "",
            meta.options.get("comment") or "",
        ))
    return _result(STATUS_COLUMNS, rows)
