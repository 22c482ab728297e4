"""
mylite/config.py

Runtime configuration for the mylite drop-in.

Settings come from environment variables (a `.env` file in the working
directory is loaded first with python-dotenv):

    MYLITE_DATABASE_TYPE      "sqlite" activates the drop-in (default); anything else leaves the host alone
    MYLITE_CONTENT_DIR        application content directory; the database directory defaults to <it>/database/
    MYLITE_DB_DIR             directory holding the database file (overrides the content-dir default)
    MYLITE_DB_FILE            database file name (default ".ht.sqlite"; ":memory:" for a private in-memory DB)
    MYLITE_DATABASE_NAME      logical database name reported by DATABASE() and in error messages
    MYLITE_SQL_MODE           initial @@sql_mode
    MYLITE_BUSY_RETRIES       attempts for "database is locked" before failing with 1205
    MYLITE_BUSY_BACKOFF       first backoff delay in seconds (doubles per attempt)
    MYLITE_LOCK_TIMEOUT       seconds a writer waits for another thread's transaction
    MYLITE_STATEMENT_TIMEOUT  default per-statement timeout in seconds (0 = none)
    MYLITE_LOG_LEVEL          loguru level for the "mylite" sink
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_DB_FILE = ".ht.sqlite"
DEFAULT_SQL_MODE = (
    "ONLY_FULL_GROUP_BY,STRICT_TRANS_TABLES,NO_ZERO_IN_DATE,NO_ZERO_DATE,"
    "ERROR_FOR_DIVISION_BY_ZERO,NO_ENGINE_SUBSTITUTION"
)
MEMORY = ":memory:"


@dataclass(frozen=True)
class Settings:
    """
    Resolved configuration.

    Attributes:
        database_type: "sqlite" when the drop-in should install itself.
        db_dir: Directory holding the database file.
        db_file: File name inside db_dir, or ":memory:".
        database_name: Logical database name.
        sql_mode: Initial session sql_mode.
        busy_retries: Retry attempts on SQLite busy/locked errors.
        busy_backoff: Initial backoff in seconds.
        lock_timeout: Seconds to wait for the write lock.
        statement_timeout: Default statement timeout in seconds (None = unlimited).
        log_level: loguru level name.
    """
    database_type: str = "sqlite"
    db_dir: Path = Path("database")
    db_file: str = DEFAULT_DB_FILE
    database_name: str = "wordpress"
    sql_mode: str = DEFAULT_SQL_MODE
    busy_retries: int = 5
    busy_backoff: float = 0.05
    lock_timeout: float = 10.0
    statement_timeout: float | None = None
    log_level: str = "WARNING"

    @property
    def in_memory(self) -> bool:
        return self.db_file == MEMORY

    @property
    def db_path(self) -> str:
        """Full database path handed to sqlite3.connect()."""
        if self.in_memory:
            return MEMORY
        return str(self.db_dir / self.db_file)

    @property
    def enabled(self) -> bool:
        return self.database_type.lower() == "sqlite"

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, load_env_file: bool = True) -> "Settings":
        """
        Build Settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ (tests pass their own).
            load_env_file: Load ./.env with python-dotenv first (ignored when env is given).

        Returns:
            Settings instance.

        Raises:
            ConfigurationError: if a numeric variable cannot be parsed.
        """
        if env is None:
            if load_env_file:
                load_dotenv(Path.cwd() / ".env")
            env = dict(os.environ)

        def get(name: str, default: str) -> str:
            value = env.get(name)
            return default if value is None or value == "" else value

        def number(name: str, default: str, kind):
            raw = get(name, default)
            try:
                return kind(raw)
            except ValueError:
                raise ConfigurationError(
                    "Invalid configuration",
                    f"{name} must be a number, got {raw!r}.",
                ) from None

        content_dir = Path(get("MYLITE_CONTENT_DIR", str(Path.cwd())))
        db_dir = Path(get("MYLITE_DB_DIR", str(content_dir / "database")))
        timeout = number("MYLITE_STATEMENT_TIMEOUT", "0", float)
        return cls(
            database_type=get("MYLITE_DATABASE_TYPE", "sqlite"),
            db_dir=db_dir,
            db_file=get("MYLITE_DB_FILE", DEFAULT_DB_FILE),
            database_name=get("MYLITE_DATABASE_NAME", "wordpress"),
            sql_mode=get("MYLITE_SQL_MODE", DEFAULT_SQL_MODE),
            busy_retries=number("MYLITE_BUSY_RETRIES", "5", int),
            busy_backoff=number("MYLITE_BUSY_BACKOFF", "0.05", float),
            lock_timeout=number("MYLITE_LOCK_TIMEOUT", "10", float),
            statement_timeout=timeout if timeout > 0 else None,
            log_level=get("MYLITE_LOG_LEVEL", "WARNING").upper(),
        )

    @classmethod
    def for_path(cls, path: str | Path, **overrides) -> "Settings":
        """Settings for an explicit database file path (or ":memory:")."""
        if str(path) == MEMORY:
            return cls(db_file=MEMORY, **overrides)
        p = Path(path)
        return cls(db_dir=p.parent, db_file=p.name, **overrides)
