"""
mylite/errors.py

Centralized exception types for the mylite MySQL-on-SQLite engine.

This module defines:
- A common base exception carrying the MySQL error number / SQLSTATE that the
  caller's existing error handling expects
- A lightweight Position structure for reporting syntax errors with line/column context
- Specialized error types used across lexer/parser/translator/executor layers
- translate_sqlite_error(), which maps a raw sqlite3 exception back to the
  MySQL error a MySQL server would have reported
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from typing import Any


class MyLiteError(Exception):
    """
    Base class for all mylite errors.

    Attributes:
        message: Human readable explanation (MySQL wording where one exists).
        errno: MySQL error number (e.g. 1062 for a duplicate key).
        sqlstate: Five character SQLSTATE.
        statement: The offending SQL text, when known.
    """

    default_errno = 1105
    default_sqlstate = "HY000"

    def __init__(
        self,
        message: str,
        errno: int | None = None,
        sqlstate: str | None = None,
        statement: str | None = None,
    ):
        self.message = message
        self.errno = errno if errno is not None else self.default_errno
        self.sqlstate = sqlstate if sqlstate is not None else self.default_sqlstate
        self.statement = statement
        super().__init__(self.__str__())

    def __str__(self) -> str:
        return f"ERROR {self.errno} ({self.sqlstate}): {self.message}"

    def with_statement(self, statement: str) -> "MyLiteError":
        """Attach the statement text if it was not known when the error was raised."""
        if self.statement is None:
            self.statement = statement
        return self


@dataclass(frozen=True)
class Position:
    """
    Represents a location in an input SQL string.

    Attributes:
        line: 1-based line number
        col:  1-based column number
        offset: 0-based character offset
    """
    line: int
    col: int
    offset: int = 0


class SqlSyntaxError(MyLiteError):
    """
    Raised when tokenization/parsing fails due to invalid or unsupported SQL syntax.

    Args:
        message: Human readable explanation.
        position: Optional Position indicating where the error occurred.
        near: The source text starting at the offending token.
    """

    default_errno = 1064
    default_sqlstate = "42000"

    def __init__(self, message: str, position: Position | None = None, near: str = ""):
        self.position = position
        self.near = near
        super().__init__(message)

    def __str__(self) -> str:
        where = ""
        if self.position is not None:
            where = f" near '{self.near[:40]}' at line {self.position.line}, col {self.position.col}"
        return f"ERROR {self.errno} ({self.sqlstate}): You have an error in your SQL syntax: {self.message}{where}"


class SchemaError(MyLiteError):
    """
    Raised when a CREATE/ALTER/DROP statement cannot be translated or conflicts
    with existing Table Metadata. Metadata is left unchanged.

    Examples:
      - Duplicate column name (1060)
      - Multiple primary keys (1068)
      - Unknown column in ALTER target (1054)
    """

    default_sqlstate = "42000"


class TranslationError(MyLiteError):
    """
    Raised when a DML construct has no feasible SQLite emulation.
    The statement is not executed.
    """

    default_errno = 1235
    default_sqlstate = "42000"


class ExecutionError(MyLiteError):
    """
    Raised when SQLite rejects the translated statement (constraint violation,
    missing object, interrupted statement...). The message and errno are the
    MySQL equivalents whenever one exists.
    """


class TransientError(ExecutionError):
    """
    Lock/busy contention on the SQLite file. Retried internally with bounded
    backoff; surfaced as ExecutionError 1205 once attempts are exhausted.
    """

    default_errno = 1205


class ConfigurationError(MyLiteError):
    """
    Raised at startup when a required native capability is missing or the
    storage location is unusable. No query is accepted after this.

    Attributes:
        title: Short user-facing headline for the diagnostic page/console.
    """

    def __init__(self, title: str, message: str):
        self.title = title
        super().__init__(message, errno=2002, sqlstate="HY000")

    def __str__(self) -> str:
        return f"{self.title}: {self.message}"


# ---------- SQLite → MySQL error mapping ----------

_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (.+)$")
_UNIQUE_INDEX_RE = re.compile(r"index '(.+)'")
_AMBIGUOUS_RE = re.compile(r"ambiguous column name: (.+)$")
_NOT_NULL_RE = re.compile(r"NOT NULL constraint failed: [^.]+\.(.+)$")
_CHECK_RE = re.compile(r"CHECK constraint failed: (\w+?)__(range|length|enum)")
_NO_TABLE_RE = re.compile(r"no such table: (?:\w+\.)?(.+)$")
_NO_COLUMN_RE = re.compile(r"no such column: (.+)$")
_TABLE_EXISTS_RE = re.compile(r"table \"?(.+?)\"? already exists")


def value_text(value: Any) -> str:
    """A stored value as MySQL prints it inside an error message."""
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def unique_violation(exc: BaseException) -> tuple[str | None, list[str], str | None] | None:
    """
    What a UNIQUE / PRIMARY KEY failure names.

    Returns:
        (table, columns, index) where SQLite reports either "t.a, t.b" (table
        and columns) or "index 't__key'" (index only), or None for any other error.
    """
    text = str(exc)
    m = _UNIQUE_RE.search(text)
    if m is None:
        return (None, [], None) if "PRIMARY KEY must be unique" in text else None
    target = m.group(1).strip()
    idx = _UNIQUE_INDEX_RE.fullmatch(target)
    if idx is not None:
        return None, [], idx.group(1)
    parts = [p.strip() for p in target.split(",")]
    table = parts[0].split(".", 1)[0] if "." in parts[0] else None
    return table, [p.split(".", 1)[-1] for p in parts], None


def is_busy_error(exc: BaseException) -> bool:
    """True if exc is SQLite lock/busy contention worth retrying."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    text = str(exc).lower()
    return "database is locked" in text or "database is busy" in text or "database table is locked" in text


def translate_sqlite_error(
    exc: sqlite3.Error,
    *,
    statement: str | None = None,
    database: str = "main",
    row_number: int = 1,
    key_lookup=None,
    duplicate_value: str | None = None,
) -> MyLiteError:
    """
    Map a sqlite3 exception to the MySQL error a MySQL server would raise.

    Args:
        exc: The raw sqlite3 error.
        statement: Original MySQL statement text.
        database: Logical database name used in "Table 'db.t' doesn't exist".
        row_number: 1-based row number for per-row errors (range, length...).
        key_lookup: Optional callable(columns: list[str]) -> key name, used to
                    name the violated key in duplicate-entry messages.
        duplicate_value: Value text for duplicate-entry messages, when known.

    Returns:
        An ExecutionError (or TransientError) ready to raise.
    """
    text = str(exc)

    if is_busy_error(exc):
        return TransientError(
            "Lock wait timeout exceeded; try restarting transaction", sqlstate="HY000", statement=statement
        )

    if "interrupted" in text.lower():
        return ExecutionError(
            "Query execution was interrupted, maximum statement execution time exceeded",
            errno=3024,
            sqlstate="HY000",
            statement=statement,
        )

    violation = unique_violation(exc)
    if violation is not None:
        _, columns, index = violation
        key = key_lookup(columns) if key_lookup is not None else None
        if key is None and index is not None:
            # Indexes backing MySQL keys are named <table>__<key>.
            key = index.split("__", 1)[-1]
        key = key or "PRIMARY"
        value = duplicate_value if duplicate_value is not None else ""
        return ExecutionError(
            f"Duplicate entry '{value}' for key '{key}'", errno=1062, sqlstate="23000", statement=statement
        )

    m = _NOT_NULL_RE.search(text)
    if m is not None:
        return ExecutionError(f"Column '{m.group(1)}' cannot be null", errno=1048, sqlstate="23000", statement=statement)

    m = _CHECK_RE.search(text)
    if m is not None:
        column, kind = m.group(1), m.group(2)
        if kind == "range":
            return ExecutionError(
                f"Out of range value for column '{column}' at row {row_number}",
                errno=1264,
                sqlstate="22003",
                statement=statement,
            )
        if kind == "length":
            return ExecutionError(
                f"Data too long for column '{column}' at row {row_number}",
                errno=1406,
                sqlstate="22001",
                statement=statement,
            )
        return ExecutionError(
            f"Data truncated for column '{column}' at row {row_number}",
            errno=1265,
            sqlstate="01000",
            statement=statement,
        )

    m = _NO_TABLE_RE.search(text)
    if m is not None:
        return ExecutionError(
            f"Table '{database}.{m.group(1)}' doesn't exist", errno=1146, sqlstate="42S02", statement=statement
        )

    m = _AMBIGUOUS_RE.search(text)
    if m is not None:
        return ExecutionError(
            f"Column '{m.group(1)}' in field list is ambiguous", errno=1052, sqlstate="23000", statement=statement
        )

    m = _NO_COLUMN_RE.search(text)
    if m is not None:
        return ExecutionError(
            f"Unknown column '{m.group(1)}' in 'field list'", errno=1054, sqlstate="42S22", statement=statement
        )

    m = _TABLE_EXISTS_RE.search(text)
    if m is not None:
        return ExecutionError(f"Table '{m.group(1)}' already exists", errno=1050, sqlstate="42S01", statement=statement)

    if isinstance(exc, sqlite3.IntegrityError):
        return ExecutionError(text, errno=1452, sqlstate="23000", statement=statement)

    return ExecutionError(text, errno=1105, sqlstate="HY000", statement=statement)
