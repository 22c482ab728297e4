"""
mylite/db.py

Public Database API for the mylite engine.

Responsibilities:
- Provide the library interface the host application talks to:
    - Database.open(path_or_settings)
    - db.execute(sql, params=None, timeout=None) -> ResultSet
    - db.execute_script(sql_script) -> list[ResultSet]
    - db.translate(sql) -> the SQLite text a statement runs as (debugging aid)
- Keep the MySQL client-style status of the last statement:
  insert_id, rows_affected, last_error, last_errno

This module is intentionally minimal so it can be used from:
- the REPL (repl.py)
- the bootstrap drop-in (bootstrap.py), which installs a Database into the host
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from .ast import DDL_STATEMENTS, Delete, Insert, Select, Union, Update
from .config import Settings
from .errors import ExecutionError, MyLiteError
from .exec.executor import Executor, translate_ddl
from .parser import parse_sql, split_statements
from .result import ResultSet
from .session import Session
from .translate.plan import InsertPlan, MultiDeletePlan
from .translate.rewrite import rewrite


class Database:
    """
    One logical MySQL database stored in one SQLite file.

    Attributes:
        settings: Resolved configuration.
        session: Connections, transaction state and catalog.
        insert_id: insert_id of the last statement (0 when none).
        rows_affected: Affected rows of the last statement.
        last_error: Message of the last failed statement ("" after a success).
        last_errno: MySQL errno of the last failed statement (0 after a success).
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.session = Session(settings)
        self.executor = Executor(self.session)
        self.insert_id = 0
        self.rows_affected = 0
        self.last_error = ""
        self.last_errno = 0

    @classmethod
    def open(cls, path: str | Path | Settings = ":memory:") -> "Database":
        """
        Open (or create) a database.

        Args:
            path: Database file path, ":memory:", or a full Settings object.

        Returns:
            Database instance.
        """
        settings = path if isinstance(path, Settings) else Settings.for_path(path)
        return cls(settings)

    @property
    def catalog(self):
        """Current Table Metadata, reloaded first if another connection changed the schema."""
        self.session.refresh_catalog()
        return self.session.catalog

    @property
    def in_transaction(self) -> bool:
        return self.session.in_transaction

    def execute(self, sql: str, params: Any = None, timeout: float | None = None) -> ResultSet:
        """
        Execute a single MySQL statement.

        Args:
            sql: SQL string containing exactly one statement (semicolon optional).
            params: Sequence for `?` / `%s` placeholders, mapping for `:name`.
            timeout: Abort the statement after this many seconds (errno 3024).

        Returns:
            ResultSet.

        Raises:
            SqlSyntaxError: on parse errors.
            SchemaError / TranslationError / ExecutionError: on failure; the
            statement's partial effects are rolled back.
        """
        if self.session.closed:
            raise ExecutionError("Database is closed", errno=2006, sqlstate="HY000")
        logger.debug("Execute: {}", sql)
        try:
            self.session.refresh_catalog()
            stmt = parse_sql(sql)
            result = self.executor.execute(stmt, params=params, sql=sql, timeout=timeout)
        except MyLiteError as e:
            e.with_statement(sql)
            self.last_error = e.message
            self.last_errno = e.errno
            self.rows_affected = 0
            logger.debug("Failed: {}", e)
            raise
        self.last_error = ""
        self.last_errno = 0
        self.insert_id = result.insert_id
        self.rows_affected = len(result.rows) if result.is_query else result.rows_affected
        return result

    def execute_script(self, sql: str) -> list[ResultSet]:
        """
        Execute a script containing one or more semicolon-separated statements.

        Execution stops at the first failing statement (its error is raised).

        Args:
            sql: SQL script string.

        Returns:
            List of results in statement order.
        """
        return [self.execute(text) for text in split_statements(sql)]

    def translate(self, sql: str, params: Any = None) -> list[str]:
        """
        SQLite statements a MySQL statement would run as, without running it.

        Args:
            sql: One MySQL statement.
            params: Bound parameters.

        Returns:
            SQLite SQL texts (DDL may produce several).
        """
        stmt = parse_sql(sql)
        s = self.session
        s.refresh_catalog()
        if isinstance(stmt, DDL_STATEMENTS):
            return list(translate_ddl(stmt, s.catalog, s.state.database).statements)
        if not isinstance(stmt, (Select, Union, Insert, Update, Delete)):
            return []
        plan = rewrite(stmt, s.catalog, s.state, params)
        if isinstance(plan, InsertPlan):
            target = plan.table.name
            out = [f"-- INSERT into {target} ({', '.join(plan.columns)}), mode={plan.mode}"]
            if plan.source is not None:
                out.append(plan.source.sql)
            for name, frag in plan.on_duplicate:
                out.append(f"-- ON DUPLICATE KEY UPDATE {name} = {frag.sql}")
            return out
        if isinstance(plan, MultiDeletePlan):
            return [q.sql for _, q in plan.targets]
        return [plan.sql]

    def close(self) -> None:
        """Roll back any open transaction and close the SQLite connections."""
        self.session.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
