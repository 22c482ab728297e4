"""
mylite/repl.py

Interactive REPL (Read-Eval-Print Loop) for the mylite engine.

Responsibilities:
- Provide a CLI shell for executing MySQL statements against one SQLite file.
- Support multiline SQL input until a semicolon ';' is entered outside of quotes.
- Display SELECT / SHOW results in a readable table format.
- Provide small meta-commands for introspection:
    - .help
    - .exit / .quit
    - .tables
    - .schema <table>
    - .translate <sql>

Usage:
    python -m mylite ./site.sqlite
If no path is provided, an in-memory database is used.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterable

try:
    import readline  # noqa: F401
except ImportError:
    # readline is optional; if missing, REPL still works.
    readline = None  # type: ignore[assignment]

from loguru import logger

from .bootstrap import configure_logging
from .db import Database
from .errors import MyLiteError
from .exec.show import create_table_sql
from .result import ResultSet

PROMPT = "mylite> "
PROMPT_CONT = "   ...> "


def is_complete_statement(buf: str) -> bool:
    """
    Decide whether the current buffer contains at least one complete statement.

    A statement is considered complete when a semicolon ';' appears outside of
    quoted strings and backtick identifiers.

    Args:
        buf: Current accumulated input buffer.

    Returns:
        True if complete, else False.
    """
    quote: str | None = None
    escaped = False
    for ch in buf:
        if escaped:
            escaped = False
            continue
        if quote is not None:
            if ch == "\\" and quote != "`":
                escaped = True
            elif ch == quote:
                quote = None
        elif ch in ("'", '"', "`"):
            quote = ch
        elif ch == ";":
            return True
    return False


def format_table(columns: list[str], rows: list[Iterable[Any]]) -> str:
    """
    Pretty-print rows as an aligned ASCII table.

    Args:
        columns: Column header list.
        rows: Row value sequences aligned with columns.

    Returns:
        A formatted string suitable for printing to console.
    """
    cols = [str(c) for c in columns]
    str_rows = [[("NULL" if v is None else str(v)) for v in r] for r in rows]

    widths = [len(c) for c in cols]
    for r in str_rows:
        for i, cell in enumerate(r):
            widths[i] = max(widths[i], len(cell))

    def fmt_row(r: Iterable[str]) -> str:
        return " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(r))

    sep = "-+-".join("-" * w for w in widths)

    out: list[str] = []
    out.append(fmt_row(cols))
    out.append(sep)
    for r in str_rows:
        out.append(fmt_row(r))
    return "\n".join(out)


def print_result(res: ResultSet) -> None:
    if res.is_query:
        print(format_table(res.columns, res.tuples()))
        print(f"({len(res.rows)} row(s))")
    else:
        print(res.message)
        if res.insert_id:
            print(f"insert_id={res.insert_id}")
    for w in res.warnings:
        print(f"Warning: {w}")


def cmd_tables(db: Database) -> None:
    names = db.catalog.names()
    if not names:
        print("(no tables)")
        return
    for n in names:
        print(n)


def cmd_schema(db: Database, table: str) -> None:
    """
    Meta-command: print the MySQL definition of a table.

    Args:
        db: Database instance.
        table: Table name.
    """
    t = db.catalog.get(table)
    if t is None:
        print(f"Table not found: {table}")
        return
    print(create_table_sql(t))


def cmd_translate(db: Database, sql: str) -> None:
    """Meta-command: show the SQLite statements a MySQL statement runs as."""
    try:
        for text in db.translate(sql.rstrip().rstrip(";")):
            print(text)
    except MyLiteError as e:
        print(e)


def repl(path: str | Path) -> int:
    """
    Run the interactive REPL.

    Args:
        path: Database file path or ":memory:".

    Returns:
        Process exit code (0 on normal exit).
    """
    try:
        db = Database.open(path)
    except MyLiteError as e:
        print(e, file=sys.stderr)
        return 1
    print(f"mylite REPL (database={path})")
    print("Type .help for commands. End SQL with ';'.")

    buf = ""
    try:
        while True:
            try:
                prompt = PROMPT if not buf else PROMPT_CONT
                line = input(prompt)
            except EOFError:
                print()
                return 0
            except KeyboardInterrupt:
                # Clear current buffer on Ctrl+C
                print()
                buf = ""
                continue

            line_stripped = line.strip()

            # Meta commands only apply if we're not in the middle of a multi-line SQL buffer.
            if not buf and line_stripped.startswith("."):
                parts = line_stripped.split(None, 1)
                cmd = parts[0].lower()

                if cmd in (".exit", ".quit"):
                    return 0

                if cmd == ".help":
                    print("Meta commands:")
                    print("  .help              show this help")
                    print("  .tables            list tables")
                    print("  .schema <table>    show the table's MySQL definition")
                    print("  .translate <sql>   show the SQLite statements a MySQL statement runs as")
                    print("  .exit / .quit      exit")
                    print()
                    print("SQL statements end with ';'. Example:")
                    print("  CREATE TABLE users (id INT UNSIGNED AUTO_INCREMENT PRIMARY KEY, email VARCHAR(255) UNIQUE);")
                    print("  INSERT INTO users (email) VALUES ('a@b.com');")
                    print("  SELECT * FROM users;")
                    continue

                if cmd == ".tables":
                    cmd_tables(db)
                    continue

                if cmd == ".schema":
                    if len(parts) != 2:
                        print("Usage: .schema <table>")
                    else:
                        cmd_schema(db, parts[1].strip())
                    continue

                if cmd == ".translate":
                    if len(parts) != 2:
                        print("Usage: .translate <sql>")
                    else:
                        cmd_translate(db, parts[1])
                    continue

                print(f"Unknown command: {cmd}. Type .help")
                continue

            buf += line + "\n"
            if not is_complete_statement(buf):
                continue

            try:
                for r in db.execute_script(buf):
                    print_result(r)
            except MyLiteError as e:
                print(e)

            buf = ""
    finally:
        db.close()


def main(argv: list[str]) -> int:
    """
    CLI entrypoint.

    Args:
        argv: sys.argv list.

    Returns:
        Exit code.
    """
    path = argv[1] if len(argv) > 1 else ":memory:"
    # The shell owns the process: only warnings reach stderr between prompts.
    logger.remove()
    handler = configure_logging("WARNING")
    try:
        return repl(path)
    finally:
        logger.remove(handler)
        logger.disable("mylite")
