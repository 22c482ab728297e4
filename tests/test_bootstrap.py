import os
import types
from pathlib import Path

import pytest
from loguru import logger

from mylite import Database, Settings
from mylite.bootstrap import check_capabilities, configure_logging, install, install_schema
from mylite.config import DEFAULT_DB_FILE
from mylite.errors import ConfigurationError


def test_settings_from_env(tmp_path):
    s = Settings.from_env(
        env={
            "MYLITE_CONTENT_DIR": str(tmp_path),
            "MYLITE_DATABASE_NAME": "blog",
            "MYLITE_BUSY_RETRIES": "9",
            "MYLITE_LOCK_TIMEOUT": "2.5",
            "MYLITE_STATEMENT_TIMEOUT": "1.5",
            "MYLITE_LOG_LEVEL": "debug",
        }
    )
    assert s.db_dir == tmp_path / "database"
    assert s.db_file == DEFAULT_DB_FILE
    assert s.db_path == str(tmp_path / "database" / DEFAULT_DB_FILE)
    assert s.database_name == "blog"
    assert s.busy_retries == 9
    assert s.lock_timeout == 2.5
    assert s.statement_timeout == 1.5
    assert s.log_level == "DEBUG"
    assert s.enabled


def test_settings_defaults_and_overrides(tmp_path):
    s = Settings.from_env(
        env={"MYLITE_DB_DIR": str(tmp_path), "MYLITE_STATEMENT_TIMEOUT": "0", "MYLITE_BUSY_RETRIES": ""}
    )
    assert s.db_dir == tmp_path
    assert s.statement_timeout is None
    assert s.busy_retries == 5
    assert not Settings.from_env(env={"MYLITE_DATABASE_TYPE": "mysql"}).enabled
    assert Settings.from_env(env={"MYLITE_DB_FILE": ":memory:"}).db_path == ":memory:"


def test_settings_invalid_number():
    with pytest.raises(ConfigurationError) as ei:
        Settings.from_env(env={"MYLITE_BUSY_RETRIES": "many"})
    assert ei.value.title == "Invalid configuration"
    assert "MYLITE_BUSY_RETRIES" in ei.value.message


def test_settings_for_path(tmp_path):
    s = Settings.for_path(tmp_path / "x.sqlite", lock_timeout=1)
    assert s.db_path == str(tmp_path / "x.sqlite")
    assert s.lock_timeout == 1
    assert Settings.for_path(":memory:").in_memory


def test_install_into_mapping(tmp_path):
    host = {}
    db = install(host, settings=Settings.for_path(tmp_path / "db" / "site.sqlite"), configure_log=False)
    assert host["wpdb"] is db
    assert (tmp_path / "db").is_dir()
    db.execute("CREATE TABLE t (a INT)")
    db.close()


def test_install_into_module_attribute():
    host = types.SimpleNamespace()
    db = install(host, name="db", settings=Settings.for_path(":memory:"), configure_log=False)
    assert host.db is db
    db.close()


def test_install_disabled_leaves_host_alone():
    host = {}
    assert install(host, settings=Settings(database_type="mysql"), configure_log=False) is None
    assert host == {}


def test_unusable_storage_directory(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    settings = Settings.for_path(blocker / "sub" / "site.sqlite")
    with pytest.raises(ConfigurationError) as ei:
        check_capabilities(settings)
    assert ei.value.title == "Cannot create the database directory"

    host = {}
    with pytest.raises(ConfigurationError):
        install(host, settings=settings, configure_log=False)
    assert host == {}


def test_install_schema_is_repeatable(tmp_path):
    schema = """
    CREATE TABLE wp_options (
      option_id bigint(20) unsigned NOT NULL auto_increment,
      option_name varchar(191) NOT NULL default '',
      option_value longtext NOT NULL,
      PRIMARY KEY (option_id),
      UNIQUE KEY option_name (option_name)
    ) DEFAULT CHARACTER SET utf8mb4;
    INSERT INTO wp_options (option_name, option_value) VALUES ('siteurl', 'http://example.com');
    """
    db = Database.open(tmp_path / "site.sqlite")
    first = install_schema(db, schema)
    assert first[0].message == "Table 'wp_options' created"
    assert first[1].rows_affected == 1

    second = install_schema(db, schema.split(";")[0])
    assert second[0].warnings == ["Table 'wp_options' already exists"]
    assert db.execute("SELECT COUNT(*) FROM wp_options").scalar() == 1
    db.close()


def test_library_is_silent_until_logging_is_configured():
    messages = []
    handler = logger.add(messages.append, level="DEBUG")
    try:
        with Database.open() as db:
            db.execute("SELECT 1")
    finally:
        logger.remove(handler)
    assert messages == []


def test_configure_logging_routes_mylite_records_to_sink():
    host_messages = []
    host = logger.add(host_messages.append, level="INFO")
    messages = []
    handler = configure_logging("INFO", sink=messages.append)
    try:
        logger.info("from the host")
        with Database.open() as db:
            db.execute("SELECT 'secret'")
    finally:
        logger.remove(handler)
        logger.remove(host)
        logger.disable("mylite")
    assert any("Opened :memory:" in m for m in messages)
    assert all("| INFO |" in m for m in messages)
    assert not any("from the host" in m or "secret" in m for m in messages)
    assert any("from the host" in m for m in host_messages)


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("MYLITE_DATABASE_NAME=fromdotenv\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MYLITE_DATABASE_NAME", raising=False)
    try:
        s = Settings.from_env()
    finally:
        os.environ.pop("MYLITE_DATABASE_NAME", None)
    assert s.database_name == "fromdotenv"
    assert Path(s.db_dir) == tmp_path / "database"
