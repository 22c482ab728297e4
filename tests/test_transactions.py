import threading

import pytest

from mylite import Database, Settings
from mylite.errors import ExecutionError
from mylite.session import TxState


def ids(db, table="t"):
    return db.execute(f"SELECT id FROM {table} ORDER BY id").column("id")


@pytest.fixture
def path(tmp_path):
    path = tmp_path / "site.sqlite"
    with Database.open(path) as db:
        db.execute("CREATE TABLE t (id INT PRIMARY KEY)")
    return path


def test_rollback_discards_and_commit_persists(path):
    db = Database.open(path)
    assert db.execute("BEGIN").message == "Transaction started"
    assert db.in_transaction
    db.execute("INSERT INTO t VALUES (1)")
    assert ids(db) == [1]
    db.execute("ROLLBACK")
    assert not db.in_transaction
    assert db.session.tx_state == TxState.ROLLED_BACK
    assert ids(db) == []

    db.execute("START TRANSACTION")
    db.execute("INSERT INTO t VALUES (2)")
    db.execute("COMMIT")
    assert db.session.tx_state == TxState.COMMITTED
    db.close()

    with Database.open(path) as again:
        assert ids(again) == [2]


def test_uncommitted_rows_are_invisible_to_other_connections(path):
    other = Database.open(path)
    db = Database.open(path)
    db.execute("BEGIN")
    db.execute("INSERT INTO t VALUES (1)")
    assert ids(other) == []
    db.execute("COMMIT")
    assert ids(other) == [1]
    db.close()
    other.close()


def test_nested_begin_uses_savepoints(path):
    db = Database.open(path)
    db.execute("BEGIN")
    db.execute("INSERT INTO t VALUES (1)")
    db.execute("BEGIN")
    assert db.session.depth == 2
    db.execute("INSERT INTO t VALUES (2)")
    db.execute("ROLLBACK")
    assert db.in_transaction
    db.execute("COMMIT")
    assert not db.in_transaction
    assert ids(db) == [1]


def test_named_savepoints(path):
    db = Database.open(path)
    db.execute("BEGIN")
    db.execute("INSERT INTO t VALUES (1)")
    db.execute("SAVEPOINT sp")
    db.execute("INSERT INTO t VALUES (2)")
    db.execute("ROLLBACK TO SAVEPOINT sp")
    db.execute("RELEASE SAVEPOINT sp")
    with pytest.raises(ExecutionError) as ei:
        db.execute("ROLLBACK TO SAVEPOINT nope")
    assert ei.value.errno == 1305
    db.execute("COMMIT")
    assert ids(db) == [1]


def test_failed_statement_keeps_transaction_open(path):
    db = Database.open(path)
    db.execute("BEGIN")
    db.execute("INSERT INTO t VALUES (1)")
    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO t VALUES (3), (1)")
    assert ei.value.errno == 1062
    assert db.in_transaction
    db.execute("INSERT INTO t VALUES (2)")
    db.execute("COMMIT")
    assert ids(db) == [1, 2]


def test_ddl_commits_open_transaction(path):
    db = Database.open(path)
    db.execute("BEGIN")
    db.execute("INSERT INTO t VALUES (1)")
    res = db.execute("CREATE TABLE u (a INT)")
    assert res.warnings == ["Implicit commit of the open transaction before a DDL statement"]
    assert not db.in_transaction
    assert db.execute("ROLLBACK").message == "No transaction in progress"
    assert ids(db) == [1]


def test_autocommit_off_opens_transaction_on_first_write(path):
    db = Database.open(path)
    db.execute("SET autocommit = 0")
    db.execute("INSERT INTO t VALUES (1)")
    assert db.in_transaction
    db.execute("ROLLBACK")
    assert ids(db) == []

    db.execute("INSERT INTO t VALUES (2)")
    db.execute("SET autocommit = 1")
    assert not db.in_transaction
    assert ids(db) == [2]


def test_close_rolls_back_open_transaction(path):
    db = Database.open(path)
    db.execute("BEGIN")
    db.execute("INSERT INTO t VALUES (1)")
    db.close()
    with pytest.raises(ExecutionError) as ei:
        db.execute("SELECT 1")
    assert ei.value.errno == 2006
    with Database.open(path) as again:
        assert ids(again) == []


def test_other_thread_waits_for_lock_then_times_out(path):
    db = Database.open(Settings.for_path(path, lock_timeout=0.3))
    db.execute("BEGIN")
    db.execute("INSERT INTO t VALUES (1)")
    errors = []

    def write():
        try:
            db.execute("INSERT INTO t VALUES (2)")
        except ExecutionError as e:
            errors.append(e.errno)

    worker = threading.Thread(target=write)
    worker.start()
    worker.join()
    assert errors == [1205]
    db.execute("COMMIT")
    assert ids(db) == [1]
    db.close()


def test_concurrent_inserts_never_reuse_ids(tmp_path):
    path = tmp_path / "site.sqlite"
    with Database.open(path) as setup:
        setup.execute("CREATE TABLE c (id INT AUTO_INCREMENT PRIMARY KEY, worker INT)")

    dbs = [Database.open(Settings.for_path(path, busy_retries=50)) for _ in range(2)]
    seen = []
    failures = []
    lock = threading.Lock()

    def work(db, n):
        for _ in range(25):
            try:
                res = db.execute("INSERT INTO c (worker) VALUES (?)", (n,))
            except ExecutionError as e:
                failures.append(e)
                return
            with lock:
                seen.append(res.insert_id)

    threads = [threading.Thread(target=work, args=(dbs[i % 2], i)) for i in range(4)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert failures == []
    assert len(seen) == 100
    assert len(set(seen)) == 100
    assert dbs[0].execute("SELECT COUNT(DISTINCT id) FROM c").scalar() == 100
    for db in dbs:
        db.close()


def test_statement_timeout_interrupts_long_query(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE n (v INT)")
    db.execute("INSERT INTO n (v) VALUES " + ", ".join(f"({i})" for i in range(300)))
    with pytest.raises(ExecutionError) as ei:
        db.execute("SELECT COUNT(*) FROM n a, n b, n c", timeout=0.05)
    assert ei.value.errno == 3024
    assert db.execute("SELECT COUNT(*) FROM n").scalar() == 300
    db.close()


def test_max_execution_time_variable(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("SET max_execution_time = 50")
    assert db.session.statement_timeout(None, query=True) == 0.05
    assert db.session.statement_timeout(None, query=False) is None
    assert db.session.statement_timeout(2, query=True) == 2
    db.close()


def test_schema_changes_from_another_instance_are_seen(path):
    a = Database.open(path)
    b = Database.open(path)
    try:
        a.execute("CREATE TABLE notes (id INT PRIMARY KEY, v VARCHAR(10))")
        b.execute("INSERT INTO notes (id, v) VALUES (1, 'x')")

        a.execute("ALTER TABLE notes ADD COLUMN w INT DEFAULT 7")
        assert b.catalog.get("notes").column_names() == ["id", "v", "w"]
        assert b.execute("SELECT * FROM notes").tuples() == [(1, "x", 7)]

        b.execute("CREATE TEMPORARY TABLE scratch (a INT)")
        a.execute("DROP TABLE notes")
        assert b.session.refresh_catalog() is True
        assert "notes" not in b.catalog
        assert "scratch" in b.catalog
        assert b.session.refresh_catalog() is False
    finally:
        a.close()
        b.close()
