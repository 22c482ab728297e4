"""
mylite: run MySQL-dialect SQL unmodified against one embedded SQLite file.
"""

from loguru import logger

from .config import Settings
from .db import Database
from .errors import (
    ConfigurationError,
    ExecutionError,
    MyLiteError,
    SchemaError,
    SqlSyntaxError,
    TransientError,
    TranslationError,
)
from .result import ResultSet

# Silent as a library until the host opts in with bootstrap.configure_logging().
logger.disable("mylite")

__all__ = [
    "ConfigurationError",
    "Database",
    "ExecutionError",
    "MyLiteError",
    "ResultSet",
    "SchemaError",
    "Settings",
    "SqlSyntaxError",
    "TransientError",
    "TranslationError",
]
