import pytest

from mylite import Database
from mylite.ast import Expr
from mylite.catalog import Catalog
from mylite.errors import ExecutionError, MyLiteError, TranslationError
from mylite.translate.plan import SessionState
from mylite.translate.render import Renderer


@pytest.fixture
def db(tmp_path):
    db = Database.open(tmp_path / "site.sqlite")
    yield db
    db.close()


def make_users(db):
    db.execute(
        "CREATE TABLE users (id INT UNSIGNED AUTO_INCREMENT PRIMARY KEY, name VARCHAR(20) NOT NULL, "
        "age TINYINT UNSIGNED, UNIQUE KEY name (name))"
    )


def test_multi_row_insert_reports_first_id(db):
    db.execute("CREATE TABLE t (id INT AUTO_INCREMENT PRIMARY KEY, v VARCHAR(10))")
    res = db.execute("INSERT INTO t (v) VALUES ('a'), ('b')")
    assert res.insert_id == 1
    assert res.rows_affected == 2
    assert db.insert_id == 1
    assert db.rows_affected == 2
    assert db.execute("SELECT * FROM t").tuples() == [(1, "a"), (2, "b")]
    assert db.execute("SELECT LAST_INSERT_ID()").scalar() == 1


def test_auto_increment_follows_explicit_ids_and_survives_delete(db):
    make_users(db)
    db.execute("INSERT INTO users (name) VALUES ('a')")
    db.execute("INSERT INTO users (id, name) VALUES (10, 'b')")
    assert db.execute("INSERT INTO users (name) VALUES ('c')").insert_id == 11
    db.execute("DELETE FROM users")
    assert db.execute("INSERT INTO users (name) VALUES ('d')").insert_id == 12


def test_zero_or_null_generates_an_id(db):
    make_users(db)
    assert db.execute("INSERT INTO users (id, name) VALUES (0, 'a')").insert_id == 1
    assert db.execute("INSERT INTO users (id, name) VALUES (NULL, 'b')").insert_id == 2


def test_insert_set_form_and_default_keyword(db):
    db.execute("CREATE TABLE t (a INT NOT NULL DEFAULT 7, b VARCHAR(5) DEFAULT 'x')")
    db.execute("INSERT INTO t SET b = 'y'")
    db.execute("INSERT INTO t (a, b) VALUES (DEFAULT, DEFAULT)")
    assert db.execute("SELECT a, b FROM t").tuples() == [(7, "y"), (7, "x")]


def test_values_are_coerced_to_declared_type(db):
    db.execute("CREATE TABLE t (n INT, d DECIMAL(6,2), s VARCHAR(10))")
    db.execute("INSERT INTO t VALUES ('12', '3.14159', 42)")
    assert db.execute("SELECT n, d, s FROM t").tuples() == [(12, 3.14, "42")]


def test_parameters(db):
    db.execute("CREATE TABLE t (a INT, b VARCHAR(10))")
    db.execute("INSERT INTO t (a, b) VALUES (?, ?)", (1, "x"))
    db.execute("INSERT INTO t (a, b) VALUES (%s, %s)", [2, "y"])
    db.execute("INSERT INTO t (a, b) VALUES (:a, :b)", {"a": 3, "b": "z"})
    res = db.execute("SELECT b FROM t WHERE a >= ? ORDER BY a", (2,))
    assert res.column("b") == ["y", "z"]


def test_strict_mode_errors(db):
    make_users(db)
    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO users (name) VALUES (NULL)")
    assert ei.value.errno == 1048

    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO users (age) VALUES (1)")
    assert ei.value.errno == 1364

    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO users (name, age) VALUES ('a', 300)")
    assert ei.value.errno == 1264
    assert ei.value.message == "Out of range value for column 'age' at row 1"

    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO users (name) VALUES ('much too long for twenty')")
    assert ei.value.errno == 1406

    assert db.last_errno == 1406
    assert db.execute("SELECT COUNT(*) FROM users").scalar() == 0
    assert db.last_errno == 0


def test_non_strict_mode_clamps_with_warnings(db):
    make_users(db)
    db.execute("SET sql_mode = ''")
    res = db.execute("INSERT INTO users (name, age) VALUES ('a', 300)")
    assert res.warnings == ["Out of range value for column 'age' at row 1"]
    res = db.execute("INSERT INTO users (age) VALUES (1)")
    assert res.warnings == ["Field 'name' doesn't have a default value"]
    assert db.execute("SELECT name, age FROM users ORDER BY id").tuples() == [("a", 255), ("", 1)]


def test_bigint_unsigned_round_trips_full_range(db):
    db.execute("CREATE TABLE u (id INT PRIMARY KEY, n BIGINT UNSIGNED)")
    values = [0, 2**63 - 1, 2**63, 2**64 - 1]
    for i, v in enumerate(values, start=1):
        db.execute("INSERT INTO u (id, n) VALUES (?, ?)", (i, v))
    assert db.execute("SELECT n FROM u ORDER BY id").column("n") == values
    assert db.execute("SELECT * FROM u WHERE n = 18446744073709551615").tuples() == [(4, 2**64 - 1)]

    db.execute("UPDATE u SET n = 9223372036854775808 WHERE id = 1")
    assert db.execute("SELECT n FROM u WHERE id = 1").scalar() == 2**63

    for bad in ("18446744073709551616", "-1"):
        with pytest.raises(ExecutionError) as ei:
            db.execute(f"INSERT INTO u (id, n) VALUES (9, {bad})")
        assert ei.value.errno == 1264
    assert db.execute("SELECT COUNT(*) FROM u").scalar() == 4


def test_unsigned_cast_and_oversized_literals(db):
    assert db.execute("SELECT CAST('-1' AS UNSIGNED) AS c").scalar() == 2**64 - 1
    db.execute("CREATE TABLE t (a INT)")
    with pytest.raises(ExecutionError) as ei:
        db.execute("SELECT a FROM t WHERE a = 99999999999999999999")
    assert ei.value.errno == 1690


def test_failed_multi_row_insert_stores_nothing(db):
    make_users(db)
    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO users (name) VALUES ('a'), ('b'), ('a')")
    assert ei.value.errno == 1062
    assert ei.value.message == "Duplicate entry 'a' for key 'name'"
    assert db.execute("SELECT COUNT(*) FROM users").scalar() == 0


def test_duplicate_primary_key(db):
    db.execute("CREATE TABLE kv (k VARCHAR(20) PRIMARY KEY, v INT)")
    db.execute("INSERT INTO kv VALUES ('a', 1)")
    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO kv VALUES ('a', 2)")
    assert ei.value.errno == 1062
    assert ei.value.sqlstate == "23000"
    assert "Duplicate entry 'a'" in ei.value.message


def test_replace_counts_deleted_and_inserted_rows(db):
    db.execute("CREATE TABLE kv (k VARCHAR(20) PRIMARY KEY, v INT)")
    db.execute("INSERT INTO kv VALUES ('a', 1)")
    assert db.execute("REPLACE INTO kv VALUES ('a', 2)").rows_affected == 2
    assert db.execute("REPLACE INTO kv VALUES ('b', 3)").rows_affected == 1
    assert db.execute("SELECT k, v FROM kv ORDER BY k").tuples() == [("a", 2), ("b", 3)]


def test_on_duplicate_key_update_counts(db):
    db.execute("CREATE TABLE kv (k VARCHAR(20) PRIMARY KEY, v INT, hits INT NOT NULL DEFAULT 0)")
    sql = "INSERT INTO kv (k, v) VALUES ('a', ?) ON DUPLICATE KEY UPDATE v = VALUES(v), hits = hits"
    assert db.execute(sql, (1,)).rows_affected == 1
    assert db.execute(sql, (5,)).rows_affected == 2
    assert db.execute(sql, (5,)).rows_affected == 0
    assert db.execute("SELECT k, v FROM kv").tuples() == [("a", 5)]


def test_on_duplicate_key_update_reports_existing_id(db):
    make_users(db)
    db.execute("INSERT INTO users (name, age) VALUES ('a', 1), ('b', 1)")
    res = db.execute("INSERT INTO users (name, age) VALUES ('b', 2) ON DUPLICATE KEY UPDATE age = age + 1")
    assert res.rows_affected == 2
    assert res.insert_id == 2
    assert db.execute("SELECT age FROM users WHERE name = 'b'").scalar() == 2
    assert db.execute("INSERT INTO users (name) VALUES ('c')").insert_id == 3


def test_insert_ignore_skips_duplicates_with_warning(db):
    make_users(db)
    db.execute("INSERT INTO users (name) VALUES ('a')")
    res = db.execute("INSERT IGNORE INTO users (name) VALUES ('a'), ('b')")
    assert res.rows_affected == 1
    assert res.warnings == ["Duplicate entry 'a' for key 'name'"]
    assert db.execute("SELECT name FROM users ORDER BY id").column("name") == ["a", "b"]


def test_insert_select(db):
    db.execute("CREATE TABLE src (a INT)")
    db.execute("CREATE TABLE dst (id INT AUTO_INCREMENT PRIMARY KEY, a INT)")
    db.execute("INSERT INTO src VALUES (5), (6)")
    res = db.execute("INSERT INTO dst (a) SELECT a FROM src ORDER BY a")
    assert res.rows_affected == 2
    assert db.execute("SELECT id, a FROM dst").tuples() == [(1, 5), (2, 6)]
    with pytest.raises(ExecutionError) as ei:
        db.execute("INSERT INTO dst (a) SELECT a, a FROM src")
    assert ei.value.errno == 1136


def test_update_counts_changed_rows_only(db):
    make_users(db)
    db.execute("INSERT INTO users (name, age) VALUES ('a', 1), ('b', 2)")
    assert db.execute("UPDATE users SET age = 2").rows_affected == 1
    assert db.execute("UPDATE users SET age = 2").rows_affected == 0
    assert db.execute("SELECT ROW_COUNT()").scalar() == 0


def test_update_case_change_counts_as_change(db):
    make_users(db)
    db.execute("INSERT INTO users (name) VALUES ('abc')")
    assert db.execute("UPDATE users SET name = 'ABC' WHERE name = 'abc'").rows_affected == 1
    assert db.execute("SELECT name FROM users").scalar() == "ABC"


def test_update_with_order_and_limit(db):
    db.execute("CREATE TABLE t (id INT PRIMARY KEY, v INT)")
    db.execute("INSERT INTO t VALUES (1, 0), (2, 0), (3, 0)")
    db.execute("UPDATE t SET v = 1 ORDER BY id DESC LIMIT 2")
    assert db.execute("SELECT id, v FROM t ORDER BY id").tuples() == [(1, 0), (2, 1), (3, 1)]


def test_on_update_current_timestamp(db):
    db.execute(
        "CREATE TABLE t (id INT PRIMARY KEY, v INT, "
        "changed DATETIME NOT NULL DEFAULT '2000-01-01 00:00:00' ON UPDATE CURRENT_TIMESTAMP)"
    )
    db.execute("INSERT INTO t (id, v) VALUES (1, 1)")
    assert db.execute("SELECT changed FROM t").scalar() == "2000-01-01 00:00:00"
    db.execute("UPDATE t SET v = 2")
    assert db.execute("SELECT changed FROM t").scalar() != "2000-01-01 00:00:00"


def test_multi_table_update_and_delete(db):
    db.execute("CREATE TABLE posts (id INT PRIMARY KEY, author INT, status VARCHAR(10))")
    db.execute("CREATE TABLE authors (id INT PRIMARY KEY, banned TINYINT NOT NULL DEFAULT 0)")
    db.execute("INSERT INTO posts VALUES (1, 1, 'publish'), (2, 2, 'publish'), (3, 2, 'draft')")
    db.execute("INSERT INTO authors (id, banned) VALUES (1, 0), (2, 1)")

    res = db.execute("UPDATE posts p JOIN authors a ON p.author = a.id SET p.status = 'hidden' WHERE a.banned = 1")
    assert res.rows_affected == 2

    res = db.execute("DELETE p FROM posts p JOIN authors a ON p.author = a.id WHERE a.banned = 1")
    assert res.rows_affected == 2
    assert db.execute("SELECT id FROM posts").column("id") == [1]


def test_delete_with_order_and_limit(db):
    db.execute("CREATE TABLE t (id INT PRIMARY KEY)")
    db.execute("INSERT INTO t VALUES (1), (2), (3)")
    assert db.execute("DELETE FROM t ORDER BY id LIMIT 2").rows_affected == 2
    assert db.execute("SELECT id FROM t").column("id") == [3]


def test_select_features(db):
    db.execute("CREATE TABLE t (id INT PRIMARY KEY, name VARCHAR(10), grp VARCHAR(5))")
    db.execute("INSERT INTO t VALUES (1, 'Bob', 'x'), (2, 'alice', 'x'), (3, 'Carl', 'y')")

    res = db.execute("SELECT name FROM t WHERE name = 'BOB'")
    assert res.column("name") == ["Bob"]

    res = db.execute("SELECT grp, GROUP_CONCAT(name SEPARATOR '|') AS names FROM t GROUP BY grp ORDER BY grp")
    assert res.column("grp") == ["x", "y"]
    assert sorted(res.rows[0]["names"].split("|")) == ["Bob", "alice"]
    assert res.rows[1]["names"] == "Carl"

    res = db.execute("SELECT IF(id > 1, 'big', 'small') AS size, CONCAT(name, '!') AS shout FROM t WHERE id = 1")
    assert res.tuples() == [("small", "Bob!")]

    res = db.execute("SELECT SQL_CALC_FOUND_ROWS id FROM t ORDER BY id LIMIT 1")
    assert res.found_rows == 3
    assert db.execute("SELECT FOUND_ROWS()").scalar() == 3

    res = db.execute("SELECT id FROM t ORDER BY id LIMIT 1, 1")
    assert res.column("id") == [2]


def test_char_columns_strip_trailing_spaces(db):
    db.execute("CREATE TABLE t (c CHAR(5))")
    db.execute("INSERT INTO t VALUES ('ab  ')")
    assert db.execute("SELECT c FROM t").scalar() == "ab"


def test_unknown_function_is_rejected(db):
    with pytest.raises(TranslationError) as ei:
        db.execute("SELECT NO_SUCH_FN(1)")
    assert ei.value.errno == 1305


def test_unknown_table_and_column(db):
    with pytest.raises(ExecutionError) as ei:
        db.execute("SELECT * FROM missing")
    assert ei.value.errno == 1146
    db.execute("CREATE TABLE t (a INT)")
    with pytest.raises(MyLiteError) as ei:
        db.execute("SELECT nope FROM t")
    assert ei.value.errno == 1054


def test_misspelled_column_is_not_read_as_a_string(db):
    db.execute("CREATE TABLE t (id INT PRIMARY KEY, name VARCHAR(10))")
    db.execute("INSERT INTO t VALUES (1, 'naem')")
    with pytest.raises(MyLiteError) as ei:
        db.execute("SELECT id FROM t WHERE nmae = 'nmae'")
    assert ei.value.errno == 1054
    with pytest.raises(MyLiteError) as ei:
        db.execute("UPDATE t SET name = 'y' WHERE naem = 'naem'")
    assert ei.value.errno == 1054
    assert "naem" in ei.value.message
    assert db.execute("SELECT name FROM t").scalar() == "naem"


def test_translate_select(db):
    db.execute("CREATE TABLE t (a INT)")
    (sql,) = db.translate("SELECT `a`, NOW() FROM t LIMIT 5, 10")
    assert '`a`, mylite_now()' in sql
    assert sql.endswith("LIMIT 10 OFFSET 5")


def test_renderer_rejects_nodes_without_a_rule():
    class Unknown(Expr):
        pass

    r = Renderer(Catalog.empty(), SessionState())
    with pytest.raises(TranslationError) as ei:
        r.expr(Unknown())
    assert "Unknown" in ei.value.message
