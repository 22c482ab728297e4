import sqlite3

import pytest

from mylite import Database
from mylite.errors import ExecutionError, SchemaError

USERS = """
CREATE TABLE users (
  id INT UNSIGNED AUTO_INCREMENT PRIMARY KEY,
  email VARCHAR(255) NOT NULL,
  name VARCHAR(50),
  UNIQUE KEY email (email)
)
"""


def sqlite_tables(db):
    rows = db.session.writer.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {r[0] for r in rows}


def sqlite_indexes(db, table):
    rows = db.session.writer.execute(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ? AND sql IS NOT NULL", (table,)
    ).fetchall()
    return {r[0] for r in rows}


def test_create_table_records_metadata_and_indexes(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    res = db.execute(USERS)
    assert res.message == "Table 'users' created"

    meta = db.catalog.get("users")
    assert [c.name for c in meta.columns] == ["id", "email", "name"]
    assert meta.primary_key.columns == ("id",)
    assert meta.auto_increment_column.name == "id"
    assert meta.rowid_alias == "id"
    assert meta.get_key("email").kind == "UNIQUE"
    assert "users" in sqlite_tables(db)
    assert "users__email" in sqlite_indexes(db, "users")
    db.close()


def test_metadata_survives_reopen(tmp_path):
    path = tmp_path / "site.sqlite"
    with Database.open(path) as db:
        db.execute(USERS)
    with Database.open(path) as db:
        meta = db.catalog.get("USERS")
        assert meta is not None
        assert meta.get_column("email").not_null
        assert meta.get_column("id").typ.unsigned


def test_create_existing_table(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute(USERS)
    with pytest.raises(ExecutionError) as ei:
        db.execute(USERS)
    assert ei.value.errno == 1050
    res = db.execute("CREATE TABLE IF NOT EXISTS users (id INT)")
    assert res.warnings == ["Table 'users' already exists"]
    assert len(db.catalog.get("users").columns) == 3


@pytest.mark.parametrize(
    "sql, errno",
    [
        ("CREATE TABLE t (a INT, a INT)", 1060),
        ("CREATE TABLE t (a INT PRIMARY KEY, b INT PRIMARY KEY)", 1068),
        ("CREATE TABLE t (a INT AUTO_INCREMENT, b INT)", 1075),
        ("CREATE TABLE t (a INT, KEY k (missing))", 1072),
        ("CREATE TABLE t (a TEXT DEFAULT 'x')", 1101),
    ],
)
def test_invalid_definitions(sql, errno):
    db = Database.open()
    with pytest.raises(SchemaError) as ei:
        db.execute(sql)
    assert ei.value.errno == errno
    assert "t" not in db.catalog


def test_create_table_like(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute(USERS)
    db.execute("CREATE TABLE users_copy LIKE users")
    copy = db.catalog.get("users_copy")
    assert [c.name for c in copy.columns] == ["id", "email", "name"]
    assert copy.get_key("email") is not None


def test_drop_table(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute(USERS)
    db.execute("DROP TABLE users")
    assert "users" not in db.catalog
    assert "users" not in sqlite_tables(db)
    with pytest.raises(ExecutionError) as ei:
        db.execute("DROP TABLE users")
    assert ei.value.errno == 1051
    res = db.execute("DROP TABLE IF EXISTS users")
    assert res.warnings


def test_rename_table_moves_indexes(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute(USERS)
    db.execute("INSERT INTO users (email) VALUES ('a@b.com')")
    db.execute("RENAME TABLE users TO members")
    assert "users" not in db.catalog
    assert db.catalog.get("members") is not None
    assert "members__email" in sqlite_indexes(db, "members")
    assert db.execute("SELECT email FROM members").tuples() == [("a@b.com",)]


def test_truncate_restarts_auto_increment(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute(USERS)
    db.execute("INSERT INTO users (email) VALUES ('a'), ('b')")
    db.execute("TRUNCATE TABLE users")
    res = db.execute("INSERT INTO users (email) VALUES ('c')")
    assert res.insert_id == 1


def test_alter_add_column_fills_default(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE users (id INT AUTO_INCREMENT PRIMARY KEY, name VARCHAR(20))")
    db.execute("INSERT INTO users (name) VALUES ('a'), ('b')")
    db.execute("ALTER TABLE users ADD COLUMN age INT DEFAULT 0")
    res = db.execute("SELECT id, name, age FROM users ORDER BY id")
    assert res.tuples() == [(1, "a", 0), (2, "b", 0)]
    assert db.catalog.get("users").get_column("age").default == 0


def test_alter_add_column_first_rebuilds(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE t (a INT, b INT)")
    db.execute("INSERT INTO t VALUES (1, 2)")
    db.execute("ALTER TABLE t ADD COLUMN z VARCHAR(5) NOT NULL DEFAULT 'q' FIRST")
    res = db.execute("SELECT * FROM t")
    assert res.columns == ["z", "a", "b"]
    assert res.tuples() == [("q", 1, 2)]


def test_alter_drop_and_modify_column_keep_data(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute(USERS)
    db.execute("INSERT INTO users (email, name) VALUES ('a@b.com', 'Ann')")
    db.execute("ALTER TABLE users DROP COLUMN name")
    db.execute("ALTER TABLE users MODIFY email VARCHAR(500) NOT NULL")
    meta = db.catalog.get("users")
    assert meta.column_names() == ["id", "email"]
    assert meta.get_column("email").typ.params == (500,)
    assert db.execute("SELECT id, email FROM users").tuples() == [(1, "a@b.com")]
    assert "users__email" in sqlite_indexes(db, "users")


def test_alter_change_and_rename_column(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE t (a INT, b VARCHAR(10), KEY kb (b))")
    db.execute("INSERT INTO t VALUES (1, 'x')")
    db.execute("ALTER TABLE t CHANGE b title VARCHAR(20)")
    db.execute("ALTER TABLE t RENAME COLUMN a TO n")
    meta = db.catalog.get("t")
    assert meta.column_names() == ["n", "title"]
    assert meta.get_key("kb").columns == ("title",)
    assert db.execute("SELECT n, title FROM t").tuples() == [(1, "x")]


def test_alter_index_operations(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE t (a INT, b INT)")
    db.execute("CREATE INDEX ia ON t (a)")
    db.execute("ALTER TABLE t ADD UNIQUE KEY ub (b), RENAME INDEX ia TO ia2")
    meta = db.catalog.get("t")
    assert meta.get_key("ia") is None
    assert meta.get_key("ia2").columns == ("a",)
    assert meta.get_key("ub").kind == "UNIQUE"
    assert sqlite_indexes(db, "t") == {"t__ia2", "t__ub"}
    db.execute("DROP INDEX ia2 ON t")
    assert sqlite_indexes(db, "t") == {"t__ub"}
    with pytest.raises(SchemaError) as ei:
        db.execute("ALTER TABLE t DROP INDEX nope")
    assert ei.value.errno == 1091


def test_failed_alter_leaves_table_and_metadata_unchanged(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE t (id INT PRIMARY KEY, email VARCHAR(50))")
    db.execute("INSERT INTO t VALUES (1, 'same'), (2, 'same')")
    before = db.catalog.get("t")

    with pytest.raises(ExecutionError) as ei:
        db.execute("ALTER TABLE t ADD COLUMN c INT, ADD UNIQUE KEY ue (email)")
    assert ei.value.errno == 1062
    assert ei.value.message == "Duplicate entry 'same' for key 'ue'"

    assert db.catalog.get("t") == before
    assert db.execute("SELECT * FROM t ORDER BY id").tuples() == [(1, "same"), (2, "same")]
    stored = db.session.writer.execute(
        "SELECT definition FROM _mylite_tables WHERE table_name = 't'"
    ).fetchone()[0]
    assert '"c"' not in stored
    assert not any(n.startswith("_mylite_rebuild_") for n in sqlite_tables(db))


def test_add_unique_key_over_duplicates_names_the_key(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE t (id INT PRIMARY KEY, n INT)")
    db.execute("INSERT INTO t VALUES (1, 5), (2, 5)")
    with pytest.raises(ExecutionError) as ei:
        db.execute("ALTER TABLE t ADD UNIQUE KEY un (n)")
    assert ei.value.errno == 1062
    assert ei.value.message == "Duplicate entry '5' for key 'un'"
    assert db.catalog.get("t").get_key("un") is None
    db.close()


def test_failed_rebuild_rolls_back(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE t (id INT PRIMARY KEY, v INT)")
    db.execute("INSERT INTO t VALUES (1, NULL)")
    with pytest.raises(ExecutionError):
        db.execute("ALTER TABLE t MODIFY v INT NOT NULL")
    assert db.catalog.get("t").get_column("v").not_null is False
    assert db.execute("SELECT id, v FROM t").tuples() == [(1, None)]


def test_timed_out_rebuild_rolls_back(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE big (id INT PRIMARY KEY, v VARCHAR(10))")
    db.session.writer.execute(
        "WITH RECURSIVE n(i) AS (SELECT 1 UNION ALL SELECT i + 1 FROM n WHERE i < 20000) "
        "INSERT INTO big (id, v) SELECT i, 'x' FROM n"
    )
    before = db.catalog.get("big")

    with pytest.raises(ExecutionError) as ei:
        db.execute("ALTER TABLE big DROP COLUMN v", timeout=1e-9)
    assert ei.value.errno == 3024

    assert db.catalog.get("big") == before
    assert db.execute("SELECT COUNT(*) FROM big WHERE v = 'x'").scalar() == 20000
    assert not any(n.startswith("_mylite_rebuild_") for n in sqlite_tables(db))

    db.execute("ALTER TABLE big DROP COLUMN v")
    assert db.catalog.get("big").column_names() == ["id"]
    db.close()


def test_alter_rename_to_existing_table_fails(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE a (x INT)")
    db.execute("CREATE TABLE b (x INT)")
    with pytest.raises(ExecutionError) as ei:
        db.execute("ALTER TABLE a RENAME TO b")
    assert ei.value.errno == 1050


def test_auto_increment_table_option(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TABLE t (id INT AUTO_INCREMENT PRIMARY KEY, v INT) AUTO_INCREMENT=100")
    assert db.execute("INSERT INTO t (v) VALUES (1)").insert_id == 100
    db.execute("ALTER TABLE t AUTO_INCREMENT = 500")
    assert db.execute("INSERT INTO t (v) VALUES (2)").insert_id == 500


def test_temporary_table(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    db.execute("CREATE TEMPORARY TABLE scratch (a INT)")
    db.execute("INSERT INTO scratch VALUES (1)")
    assert db.execute("SELECT a FROM scratch").tuples() == [(1,)]
    assert db.execute("SHOW TABLES").rows == []
    db.close()
    with Database.open(tmp_path / "site.sqlite") as again:
        assert "scratch" not in again.catalog


def test_translate_shows_sqlite_ddl():
    db = Database.open()
    statements = db.translate(USERS)
    assert statements[0].startswith('CREATE TABLE "users"')
    assert '"id" INTEGER PRIMARY KEY' in statements[0]
    assert 'CONSTRAINT "id__range" CHECK ("id" BETWEEN 0 AND 4294967295)' in statements[0]
    assert statements[1] == 'CREATE UNIQUE INDEX "users__email" ON "users" ("email")'
    assert "users" not in db.catalog


def test_tables_created_outside_are_introspected(tmp_path):
    path = tmp_path / "site.sqlite"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE legacy (id INTEGER PRIMARY KEY, label TEXT NOT NULL)")
    conn.commit()
    conn.close()
    with Database.open(path) as db:
        meta = db.catalog.get("legacy")
        assert meta.column_names() == ["id", "label"]
        assert meta.get_column("label").not_null
