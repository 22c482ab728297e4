"""
mylite/session.py

Connection and transaction management for one Database.

Responsibilities:
- Own the SQLite connections:
    - the writer (all writes, temp tables, explicit transactions)
    - a read-only WAL reader for plain SELECTs outside a transaction (file databases only)
- Serialize writers with a re-entrant write lock; a thread inside an explicit
  transaction keeps the lock until COMMIT / ROLLBACK
- Run the transaction state machine
    IDLE -> IN_TRANSACTION -> (COMMITTED | ROLLED_BACK) -> IDLE
  with nested BEGIN mapped to SAVEPOINTs and a statement savepoint around
  every statement inside a transaction
- Retry transient "database is locked" errors with bounded exponential backoff
- Enforce statement timeouts through an SQLite progress handler
- Hold the session values (system / user variables, LAST_INSERT_ID, ...) and
  the current copy-on-write Catalog

Notes:
- DDL implicitly commits an open transaction first, as MySQL does.
- The catalog is replaced only after the DDL transaction committed.
- PRAGMA schema_version is compared before each statement; a change made by
  another connection reloads the catalog.
"""

from __future__ import annotations

import itertools
import sqlite3
import threading
import time
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

from loguru import logger

from . import functions
from .catalog import REBUILD_PREFIX, Catalog, KeyMeta, TableMeta, index_name
from .config import Settings
from .errors import (
    ExecutionError,
    MyLiteError,
    TransientError,
    is_busy_error,
    translate_sqlite_error,
    unique_violation,
    value_text,
)
from .translate.plan import DdlPlan, SessionState
from .typemap import quote_ident

T = TypeVar("T")

SERVER_VERSION = "8.0.38-mylite"
NEST_SAVEPOINT = "mylite_nest_{}"
STATEMENT_SAVEPOINT = "mylite_statement"
PROGRESS_STEPS = 1000

_connection_ids = itertools.count(1)


class TxState(Enum):
    IDLE = "IDLE"
    IN_TRANSACTION = "IN_TRANSACTION"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


def _whole(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def system_variables(settings: Settings) -> dict[str, Any]:
    """Initial session system variables, keyed by lowercased name."""
    return {
        "version": SERVER_VERSION,
        "version_comment": f"mylite on SQLite {sqlite3.sqlite_version}",
        "sql_mode": settings.sql_mode,
        "autocommit": 1,
        "character_set_client": "utf8mb4",
        "character_set_connection": "utf8mb4",
        "character_set_results": "utf8mb4",
        "character_set_server": "utf8mb4",
        "character_set_database": "utf8mb4",
        "collation_connection": "utf8mb4_general_ci",
        "collation_server": "utf8mb4_general_ci",
        "collation_database": "utf8mb4_general_ci",
        "default_storage_engine": "InnoDB",
        "explicit_defaults_for_timestamp": 1,
        "foreign_key_checks": 1,
        "unique_checks": 1,
        "group_concat_max_len": 1024,
        "innodb_lock_wait_timeout": _whole(settings.lock_timeout),
        "lower_case_table_names": 0,
        "max_allowed_packet": 67108864,
        "max_connections": 151,
        "max_execution_time": 0,
        "sql_auto_is_null": 0,
        "sql_safe_updates": 0,
        "time_zone": "SYSTEM",
        "system_time_zone": time.tzname[0],
        "transaction_isolation": "SERIALIZABLE",
        "tx_isolation": "SERIALIZABLE",
        "wait_timeout": 28800,
        "interactive_timeout": 28800,
        "auto_increment_increment": 1,
        "auto_increment_offset": 1,
        "hostname": "localhost",
        "port": 3306,
        "user": "mylite@localhost",
    }


def _open_connection(target: str, *, uri: bool = False, busy_timeout: float = 0.0) -> sqlite3.Connection:
    conn = sqlite3.connect(target, uri=uri, isolation_level=None, check_same_thread=False, timeout=busy_timeout)
    functions.install_functions(conn)
    return conn


class Session:
    """
    Connections, locking and transaction state of one Database.

    Args:
        settings: Resolved configuration.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.state = SessionState(
            database=settings.database_name,
            connection_id=next(_connection_ids),
            variables=system_variables(settings),
        )
        self.tx_state = TxState.IDLE
        self._lock = threading.RLock()
        self._read_lock = threading.Lock()
        self._owner: int | None = None
        self._depth = 0
        self.closed = False

        if not settings.in_memory:
            Path(settings.db_dir).mkdir(parents=True, exist_ok=True)
        self.writer = _open_connection(settings.db_path, busy_timeout=settings.busy_backoff)
        self.writer.execute("PRAGMA foreign_keys = OFF")
        self.reader: sqlite3.Connection | None = None
        if not settings.in_memory:
            self.writer.execute("PRAGMA journal_mode = WAL")
            self.writer.execute("PRAGMA synchronous = NORMAL")

        self.schema_version = 0
        self.catalog = self.retry(self._load_catalog)

        if not settings.in_memory:
            uri = Path(settings.db_path).resolve().as_uri() + "?mode=ro"
            self.reader = _open_connection(uri, uri=True, busy_timeout=settings.busy_backoff)
        logger.info("Opened {} ({} tables)", settings.db_path, len(self.catalog.tables))

    def _load_catalog(self) -> Catalog:
        self.writer.execute("BEGIN IMMEDIATE")
        try:
            catalog = Catalog.load(self.writer)
            version = self._schema_version(self.writer)
        except BaseException:
            self.writer.execute("ROLLBACK")
            raise
        self.writer.execute("COMMIT")
        self.schema_version = version
        return catalog

    @staticmethod
    def _schema_version(conn: sqlite3.Connection) -> int:
        return conn.execute("PRAGMA schema_version").fetchone()[0]

    def refresh_catalog(self) -> bool:
        """
        Reload Table Metadata when another connection changed the schema.

        Temporary tables belong to this session and are carried over.

        Returns:
            True when the catalog was reloaded.
        """
        if self.closed or self.reader is None or self.in_transaction:
            return False
        with self._read_lock:
            version = self._schema_version(self.reader)
        if version == self.schema_version:
            return False
        self.acquire()
        try:
            temporary = {k: t for k, t in self.catalog.tables.items() if t.options.get("temporary")}
            loaded = self.retry(self._load_catalog)
            self.catalog = Catalog(tables={**loaded.tables, **temporary})
        finally:
            self.release()
        logger.info("Schema changed by another connection; reloaded {} tables", len(self.catalog.tables))
        return True

    # --------------------------
    # state
    # --------------------------

    @property
    def in_transaction(self) -> bool:
        """True when the calling thread has an explicit transaction open."""
        return self._depth > 0 and self._owner == threading.get_ident()

    @property
    def depth(self) -> int:
        return self._depth if self.in_transaction else 0

    @property
    def autocommit(self) -> bool:
        return str(self.state.variables.get("autocommit", 1)).upper() not in ("0", "OFF", "FALSE")

    @property
    def lock_timeout(self) -> float:
        try:
            return float(self.state.variables.get("innodb_lock_wait_timeout", self.settings.lock_timeout))
        except (TypeError, ValueError):
            return self.settings.lock_timeout

    @property
    def has_temp_tables(self) -> bool:
        return any(t.options.get("temporary") for t in self.catalog.tables.values())

    def statement_timeout(self, timeout: float | None, query: bool) -> float | None:
        """Effective timeout: explicit argument, then max_execution_time for SELECTs, then the setting."""
        if timeout is not None:
            return timeout if timeout > 0 else None
        if query:
            try:
                ms = int(self.state.variables.get("max_execution_time") or 0)
            except (TypeError, ValueError):
                ms = 0
            if ms > 0:
                return ms / 1000.0
        return self.settings.statement_timeout

    # --------------------------
    # locking / retries / timeouts
    # --------------------------

    def acquire(self) -> None:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise ExecutionError(
                "Lock wait timeout exceeded; try restarting transaction", errno=1205, sqlstate="HY000"
            )

    def release(self) -> None:
        self._lock.release()

    def retry(self, fn: Callable[[], T]) -> T:
        """
        Call fn, retrying SQLite busy/locked contention with exponential backoff.

        Raises:
            ExecutionError: 1205 once the attempts are exhausted.
        """
        delay = self.settings.busy_backoff
        attempts = max(1, self.settings.busy_retries)
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except sqlite3.OperationalError as exc:
                if not is_busy_error(exc):
                    raise
                failure: Exception = exc
            except TransientError as exc:
                failure = exc
            if attempt == attempts:
                break
            logger.warning("Database busy, retry {}/{} in {:.3f}s", attempt, attempts - 1, delay)
            time.sleep(delay)
            delay *= 2
        raise ExecutionError(
            "Lock wait timeout exceeded; try restarting transaction", errno=1205, sqlstate="HY000"
        ) from failure

    @contextmanager
    def deadline(self, conn: sqlite3.Connection, timeout: float | None) -> Iterator[None]:
        """Interrupt statements on conn that run longer than timeout seconds."""
        if timeout is None:
            yield
            return
        limit = time.monotonic() + timeout
        conn.set_progress_handler(lambda: 1 if time.monotonic() > limit else 0, PROGRESS_STEPS)
        try:
            yield
        finally:
            conn.set_progress_handler(None, PROGRESS_STEPS)

    # --------------------------
    # statement scopes
    # --------------------------

    @contextmanager
    def write_scope(self) -> Iterator[sqlite3.Connection]:
        """
        Run one writing statement atomically on the writer.

        Outside a transaction the statement gets its own BEGIN IMMEDIATE /
        COMMIT; inside one it runs under a statement savepoint so a failure
        undoes only its own effects.
        """
        self.acquire()
        try:
            if not self.in_transaction:
                self.tx_state = TxState.IDLE
            if not self.in_transaction and not self.autocommit:
                self.begin()
            conn = self.writer
            if self.in_transaction:
                conn.execute(f"SAVEPOINT {STATEMENT_SAVEPOINT}")
                try:
                    yield conn
                except BaseException:
                    conn.execute(f"ROLLBACK TO {STATEMENT_SAVEPOINT}")
                    conn.execute(f"RELEASE {STATEMENT_SAVEPOINT}")
                    raise
                conn.execute(f"RELEASE {STATEMENT_SAVEPOINT}")
            else:
                self._begin_immediate()
                try:
                    yield conn
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        finally:
            self.release()

    @contextmanager
    def read_scope(self, needs_writer: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Connection for a query.

        The reader serves plain SELECTs outside a transaction; transactions,
        locking reads, temp tables and in-memory databases use the writer.
        """
        use_writer = (
            needs_writer
            or self.reader is None
            or self.in_transaction
            or self.has_temp_tables
        )
        if use_writer:
            self.acquire()
            try:
                yield self.writer
            finally:
                self.release()
            return
        with self._read_lock:
            yield self.reader

    def _begin_immediate(self) -> None:
        def start() -> None:
            try:
                self.writer.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                raise translate_sqlite_error(exc) from exc

        self.retry(start)

    # --------------------------
    # transactions
    # --------------------------

    def begin(self) -> str:
        """BEGIN / START TRANSACTION; nested calls open a savepoint level."""
        if self.in_transaction:
            self._depth += 1
            self.writer.execute(f"SAVEPOINT {NEST_SAVEPOINT.format(self._depth)}")
            logger.info("Nested BEGIN: savepoint level {}", self._depth)
            return f"Nested transaction started (savepoint level {self._depth})"
        self.acquire()
        try:
            self._begin_immediate()
        except BaseException:
            self.release()
            raise
        self._owner = threading.get_ident()
        self._depth = 1
        self.tx_state = TxState.IN_TRANSACTION
        logger.debug("Transaction started")
        return "Transaction started"

    def commit(self) -> str:
        if not self.in_transaction:
            return "No transaction in progress"
        if self._depth > 1:
            self.writer.execute(f"RELEASE {NEST_SAVEPOINT.format(self._depth)}")
            self._depth -= 1
            return f"Savepoint level {self._depth + 1} released"
        try:
            self.writer.execute("COMMIT")
        except sqlite3.Error as exc:
            self.rollback()
            raise translate_sqlite_error(exc) from exc
        self._finish(TxState.COMMITTED)
        return "Transaction committed"

    def rollback(self) -> str:
        if not self.in_transaction:
            return "No transaction in progress"
        if self._depth > 1:
            name = NEST_SAVEPOINT.format(self._depth)
            self.writer.execute(f"ROLLBACK TO {name}")
            self.writer.execute(f"RELEASE {name}")
            self._depth -= 1
            return f"Savepoint level {self._depth + 1} rolled back"
        if self.writer.in_transaction:
            self.writer.execute("ROLLBACK")
        self._finish(TxState.ROLLED_BACK)
        return "Transaction rolled back"

    def _finish(self, outcome: TxState) -> None:
        self._depth = 0
        self._owner = None
        self.tx_state = outcome
        logger.debug("Transaction {}", outcome.value.lower())
        self.release()

    def savepoint(self, action: str, name: str) -> str:
        """SAVEPOINT / ROLLBACK TO / RELEASE of a named savepoint."""
        if not self.in_transaction:
            if action == "SAVEPOINT":
                return "No transaction in progress"
            raise ExecutionError(f"SAVEPOINT {name} does not exist", errno=1305, sqlstate="42000")
        quoted = quote_ident(name)
        try:
            if action == "SAVEPOINT":
                self.writer.execute(f"SAVEPOINT {quoted}")
            elif action == "ROLLBACK TO":
                self.writer.execute(f"ROLLBACK TO {quoted}")
            else:
                self.writer.execute(f"RELEASE {quoted}")
        except sqlite3.OperationalError as exc:
            if "no such savepoint" in str(exc):
                raise ExecutionError(f"SAVEPOINT {name} does not exist", errno=1305, sqlstate="42000") from exc
            raise translate_sqlite_error(exc) from exc
        return "OK"

    def implicit_commit(self) -> list[str]:
        """Commit every open level before DDL; returns the warning to report."""
        if not self.in_transaction:
            return []
        logger.warning("DDL statement implicitly committed the open transaction")
        self.writer.execute("COMMIT")
        self._finish(TxState.COMMITTED)
        return ["Implicit commit of the open transaction before a DDL statement"]

    # --------------------------
    # DDL
    # --------------------------

    def apply_ddl(self, plan: DdlPlan, statement: str | None = None, timeout: float | None = None) -> list[str]:
        """
        Run a DdlPlan in one transaction and swap in its catalog after COMMIT.

        A timeout interrupts the plan part way; everything it did is rolled back.

        Returns:
            Warnings (implicit commit) to add to the result.

        Raises:
            MyLiteError: the DDL failed; schema and metadata are unchanged.
        """
        self.acquire()
        try:
            warnings = self.implicit_commit()

            def run() -> None:
                self._begin_immediate()
                try:
                    with self.deadline(self.writer, timeout):
                        plan.apply(self.writer)
                    version = self._schema_version(self.writer)
                except sqlite3.Error as exc:
                    # An interrupted statement may already have ended the transaction.
                    if self.writer.in_transaction:
                        self.writer.execute("ROLLBACK")
                    if is_busy_error(exc):
                        raise
                    raise self._ddl_error(exc, plan, statement) from exc
                except BaseException:
                    if self.writer.in_transaction:
                        self.writer.execute("ROLLBACK")
                    raise
                self.writer.execute("COMMIT")
                self.schema_version = version

            self.retry(run)
            if plan.catalog is not None:
                self.catalog = plan.catalog
            return warnings
        finally:
            self.release()

    def _ddl_error(self, exc: sqlite3.Error, plan: DdlPlan, statement: str | None) -> MyLiteError:
        """Map a failed DDL step; duplicate entries name the MySQL key and a duplicated value."""
        found = self._violated_key(exc, plan)
        if found is None:
            return translate_sqlite_error(exc, statement=statement, database=self.state.database)
        meta, key = found
        return translate_sqlite_error(
            exc,
            statement=statement,
            database=self.state.database,
            key_lookup=lambda columns: key.name,
            duplicate_value=self._duplicated_value(meta.name, key),
        )

    def _violated_key(self, exc: sqlite3.Error, plan: DdlPlan) -> tuple[TableMeta, KeyMeta] | None:
        violation = unique_violation(exc)
        if violation is None:
            return None
        table, columns, index = violation
        if table is not None and table.startswith(REBUILD_PREFIX):
            table = table[len(REBUILD_PREFIX):]
        wanted = [c.lower() for c in columns]
        catalog = plan.catalog or self.catalog
        for meta in catalog.tables.values():
            for key in meta.unique_keys():
                if index is not None:
                    if index_name(meta.name, key.name).lower() == index.lower():
                        return meta, key
                elif table is not None and table.lower() == meta.name.lower():
                    if [c.lower() for c in key.columns] == wanted:
                        return meta, key
        return None

    def _duplicated_value(self, table: str, key: KeyMeta) -> str | None:
        """First value of `key` that occurs twice in the table as it was before the DDL."""
        old = self.catalog.get(table)
        if old is None or any(old.get_column(c) is None for c in key.columns):
            return None
        cols = ", ".join(quote_ident(c) for c in key.columns)
        row = self.writer.execute(
            f"SELECT {cols} FROM {quote_ident(old.name)} GROUP BY {cols} HAVING COUNT(*) > 1 LIMIT 1"
        ).fetchone()
        if row is None:
            return None
        return "-".join(value_text(v) for v in row)

    # --------------------------
    # lifecycle
    # --------------------------

    def close(self) -> None:
        if self.closed:
            return
        with self._lock:
            if self._depth > 0 and self.writer.in_transaction:
                logger.warning("Closing with an open transaction; rolling back")
                self.writer.execute("ROLLBACK")
            self._depth = 0
            self._owner = None
            for conn in (self.reader, self.writer):
                if conn is not None:
                    conn.close()
            self.closed = True
        logger.info("Closed {}", self.settings.db_path)
