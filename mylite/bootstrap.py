"""
mylite/bootstrap.py

Drop-in wiring: replace a host application's MySQL database object with a
mylite Database.

Responsibilities:
- Resolve Settings (environment + .env) and bail out quietly unless the
  configured database type is "sqlite"
- Verify the embedded driver is usable before any query is accepted:
    - the sqlite3 module imports
    - the SQLite library is recent enough for the SQL mylite emits
    - the storage directory exists (or can be created) and is writable
- Install the Database into the host's global state under a configurable name
- Feed an application's setup schema through the translator

Notes:
- Capability failures raise ConfigurationError with a short title and a
  user-facing explanation, meant for a diagnostic page or console.
"""

from __future__ import annotations

import importlib
import os
import sys
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

from loguru import logger

from .ast import CreateTable
from .config import Settings
from .db import Database
from .errors import ConfigurationError
from .parser import parse_sql, split_statements
from .result import ResultSet

# UPDATE ... FROM and window functions are emitted by the translators.
MIN_SQLITE_VERSION = (3, 35, 0)


def configure_logging(level: str = "WARNING", sink: Any = None) -> int:
    """
    Turn on mylite's log records and send them to one sink at `level`.

    Handlers the host already installed are left in place; the new sink only
    receives records from the mylite package.

    Args:
        level: loguru level name.
        sink: Destination (defaults to stderr).

    Returns:
        The loguru handler id (pass it to logger.remove() to detach).
    """
    logger.enable("mylite")
    return logger.add(
        sink if sink is not None else sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}",
        level=level,
        filter="mylite",
    )


def check_capabilities(settings: Settings) -> None:
    """
    Verify the SQLite driver and the storage location.

    Raises:
        ConfigurationError: driver missing or too old, storage unusable.
    """
    try:
        sqlite3 = importlib.import_module("sqlite3")
    except ImportError:
        raise ConfigurationError(
            "Python sqlite3 module is not loaded",
            "Your Python installation appears to be missing the sqlite3 module which is required "
            "for the type of database you have specified.",
        ) from None

    version = tuple(getattr(sqlite3, "sqlite_version_info", (0, 0, 0)))
    if version < MIN_SQLITE_VERSION:
        wanted = ".".join(str(p) for p in MIN_SQLITE_VERSION)
        raise ConfigurationError(
            "SQLite library is too old",
            f"Your Python installation is linked against SQLite {getattr(sqlite3, 'sqlite_version', '?')}; "
            f"version {wanted} or newer is required for the type of database you have specified.",
        )

    if settings.in_memory:
        return
    directory = Path(settings.db_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            "Cannot create the database directory",
            f"The directory {directory} could not be created: {e.strerror or e}.",
        ) from e
    if not os.access(directory, os.W_OK):
        raise ConfigurationError(
            "Database directory is not writable",
            f"The directory {directory} must be writable by the application to store {settings.db_file}.",
        )


def install(
    host: Any,
    name: str = "wpdb",
    settings: Settings | None = None,
    configure_log: bool = True,
) -> Database | None:
    """
    Install a mylite Database into the host application's global state.

    Args:
        host: Module, object or mapping receiving the database object.
        name: Attribute / key to set.
        settings: Explicit Settings (default: Settings.from_env()).
        configure_log: Apply settings.log_level to loguru.

    Returns:
        The installed Database, or None when the drop-in is not enabled.

    Raises:
        ConfigurationError: a capability check failed; nothing is installed.
    """
    settings = settings or Settings.from_env()
    if not settings.enabled:
        logger.info("Database type is {!r}; mylite drop-in not installed", settings.database_type)
        return None
    if configure_log:
        configure_logging(settings.log_level)
    check_capabilities(settings)
    db = Database.open(settings)
    if isinstance(host, MutableMapping):
        host[name] = db
    else:
        setattr(host, name, db)
    logger.info("Installed mylite database as {!r} ({})", name, settings.db_path)
    return db


def install_schema(db: Database, schema_sql: str) -> list[ResultSet]:
    """
    Create an application's tables from its MySQL setup script.

    CREATE TABLE statements run as CREATE TABLE IF NOT EXISTS so the setup can
    be repeated; every other statement is executed as written.

    Args:
        db: Target database.
        schema_sql: MySQL script (CREATE TABLE ... ; INSERT ... ; ...).

    Returns:
        Results in statement order.
    """
    results = []
    for text in split_statements(schema_sql):
        stmt = parse_sql(text)
        if isinstance(stmt, CreateTable) and not stmt.if_not_exists and stmt.name in db.catalog:
            logger.info("Table {} already exists; skipped", stmt.name)
            results.append(ResultSet(message="OK", warnings=[f"Table '{stmt.name}' already exists"]))
            continue
        results.append(db.execute(text))
    return results
