import sqlite3

import pytest

from mylite.errors import (
    ConfigurationError,
    ExecutionError,
    MyLiteError,
    Position,
    SqlSyntaxError,
    TransientError,
    is_busy_error,
    translate_sqlite_error,
    unique_violation,
)


@pytest.mark.parametrize(
    "exc, errno, message",
    [
        (sqlite3.IntegrityError("NOT NULL constraint failed: users.email"), 1048, "Column 'email' cannot be null"),
        (
            sqlite3.IntegrityError("CHECK constraint failed: age__range"),
            1264,
            "Out of range value for column 'age' at row 3",
        ),
        (
            sqlite3.IntegrityError("CHECK constraint failed: name__length"),
            1406,
            "Data too long for column 'name' at row 3",
        ),
        (sqlite3.OperationalError("no such table: wp_posts"), 1146, "Table 'blog.wp_posts' doesn't exist"),
        (sqlite3.OperationalError("no such column: foo"), 1054, "Unknown column 'foo' in 'field list'"),
        (sqlite3.OperationalError("table \"t\" already exists"), 1050, "Table 't' already exists"),
        (sqlite3.OperationalError("ambiguous column name: id"), 1052, "Column 'id' in field list is ambiguous"),
        (
            sqlite3.IntegrityError("UNIQUE constraint failed: index 't__un'"),
            1062,
            "Duplicate entry '' for key 'un'",
        ),
        (
            sqlite3.OperationalError("interrupted"),
            3024,
            "Query execution was interrupted, maximum statement execution time exceeded",
        ),
    ],
)
def test_translate_sqlite_error(exc, errno, message):
    err = translate_sqlite_error(exc, statement="SQL", database="blog", row_number=3)
    assert isinstance(err, ExecutionError)
    assert err.errno == errno
    assert err.message == message
    assert err.statement == "SQL"


def test_duplicate_entry_names_key_and_value():
    exc = sqlite3.IntegrityError("UNIQUE constraint failed: users.email")
    seen = []

    def lookup(columns):
        seen.append(columns)
        return "email"

    err = translate_sqlite_error(exc, key_lookup=lookup, duplicate_value="a@b.com")
    assert seen == [["email"]]
    assert err.errno == 1062
    assert err.sqlstate == "23000"
    assert err.message == "Duplicate entry 'a@b.com' for key 'email'"

    err = translate_sqlite_error(sqlite3.IntegrityError("UNIQUE constraint failed: t.id"))
    assert err.message == "Duplicate entry '' for key 'PRIMARY'"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("UNIQUE constraint failed: users.email", ("users", ["email"], None)),
        ("UNIQUE constraint failed: t.a, t.b", ("t", ["a", "b"], None)),
        ("UNIQUE constraint failed: index 't__un'", (None, [], "t__un")),
        ("PRIMARY KEY must be unique", (None, [], None)),
        ("NOT NULL constraint failed: t.a", None),
    ],
)
def test_unique_violation(text, expected):
    assert unique_violation(sqlite3.IntegrityError(text)) == expected


def test_busy_errors_are_transient():
    exc = sqlite3.OperationalError("database is locked")
    assert is_busy_error(exc)
    assert not is_busy_error(sqlite3.OperationalError("no such table: t"))
    assert not is_busy_error(ValueError("database is locked"))
    err = translate_sqlite_error(exc)
    assert isinstance(err, TransientError)
    assert err.errno == 1205


def test_unknown_sqlite_error_falls_back():
    err = translate_sqlite_error(sqlite3.OperationalError("something odd"))
    assert err.errno == 1105
    assert err.message == "something odd"


def test_error_strings():
    err = MyLiteError("boom")
    assert str(err) == "ERROR 1105 (HY000): boom"
    assert err.with_statement("SELECT 1").statement == "SELECT 1"
    assert err.with_statement("SELECT 2").statement == "SELECT 1"

    syntax = SqlSyntaxError("unexpected FROM", Position(line=1, col=8, offset=7), near="FROM")
    assert str(syntax) == (
        "ERROR 1064 (42000): You have an error in your SQL syntax: unexpected FROM near 'FROM' at line 1, col 8"
    )

    config = ConfigurationError("SQLite library is too old", "Upgrade it.")
    assert config.title == "SQLite library is too old"
    assert str(config) == "SQLite library is too old: Upgrade it."
