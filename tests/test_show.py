import pytest

from mylite import Database
from mylite.errors import ExecutionError
from mylite.exec.show import like_to_regex

USERS = """
CREATE TABLE users (
  id INT UNSIGNED AUTO_INCREMENT PRIMARY KEY,
  email VARCHAR(255) NOT NULL,
  name VARCHAR(50) DEFAULT 'anon',
  team INT,
  UNIQUE KEY email (email),
  KEY team_name (team, name)
)
"""


@pytest.fixture
def db(tmp_path):
    d = Database.open(tmp_path / "site.sqlite")
    d.execute(USERS)
    yield d
    d.close()


def test_show_tables(db):
    db.execute("CREATE TABLE wp_posts (id INT)")
    res = db.execute("SHOW TABLES")
    assert res.columns == ["Tables_in_wordpress"]
    assert sorted(res.column("Tables_in_wordpress")) == ["users", "wp_posts"]

    res = db.execute("SHOW FULL TABLES LIKE 'wp\\_%'")
    assert res.columns == ["Tables_in_wordpress (wp\\_%)", "Table_type"]
    assert res.tuples() == [("wp_posts", "BASE TABLE")]


def test_describe(db):
    res = db.execute("DESCRIBE users")
    assert res.columns == ["Field", "Type", "Null", "Key", "Default", "Extra"]
    assert res.tuples() == [
        ("id", "int(10) unsigned", "NO", "PRI", None, "auto_increment"),
        ("email", "varchar(255)", "NO", "UNI", None, ""),
        ("name", "varchar(50)", "YES", "", "anon", ""),
        ("team", "int(11)", "YES", "MUL", None, ""),
    ]


def test_show_full_columns_like(db):
    res = db.execute("SHOW FULL COLUMNS FROM users LIKE 'e%'")
    assert res.columns == ["Field", "Type", "Collation", "Null", "Key", "Default", "Extra", "Privileges", "Comment"]
    assert len(res.rows) == 1
    row = res.rows[0]
    assert row["Field"] == "email"
    assert row["Collation"] == "utf8mb4_general_ci"


def test_show_index(db):
    res = db.execute("SHOW INDEX FROM users")
    keys = [(r["Key_name"], r["Seq_in_index"], r["Column_name"], r["Non_unique"]) for r in res.rows]
    assert keys == [
        ("PRIMARY", 1, "id", 0),
        ("email", 1, "email", 0),
        ("team_name", 1, "team", 1),
        ("team_name", 2, "name", 1),
    ]


def test_show_create_table(db):
    db.execute("INSERT INTO users (email) VALUES ('a@b.com')")
    res = db.execute("SHOW CREATE TABLE users")
    assert res.columns == ["Table", "Create Table"]
    text = res.rows[0]["Create Table"]
    assert text.startswith("CREATE TABLE `users` (")
    assert "`id` int(10) unsigned NOT NULL AUTO_INCREMENT" in text
    assert "`name` varchar(50) DEFAULT 'anon'" in text
    assert "PRIMARY KEY (`id`)" in text
    assert "UNIQUE KEY `email` (`email`)" in text
    assert "KEY `team_name` (`team`,`name`)" in text
    assert "AUTO_INCREMENT=2" in text


def test_show_unknown_table(db):
    with pytest.raises(ExecutionError) as ei:
        db.execute("SHOW COLUMNS FROM missing")
    assert ei.value.errno == 1146


def test_show_variables(db):
    res = db.execute("SHOW VARIABLES LIKE 'sql_mode'")
    assert res.columns == ["Variable_name", "Value"]
    assert res.rows[0]["Variable_name"] == "sql_mode"
    assert "STRICT_TRANS_TABLES" in res.rows[0]["Value"]


def test_show_table_status(db):
    db.execute("INSERT INTO users (email) VALUES ('a'), ('b')")
    res = db.execute("SHOW TABLE STATUS LIKE 'users'")
    row = res.rows[0]
    assert row["Name"] == "users"
    assert row["Rows"] == 2
    assert row["Auto_increment"] == 3


def test_show_databases(db):
    res = db.execute("SHOW DATABASES")
    assert res.column("Database") == ["information_schema", "wordpress"]


@pytest.mark.parametrize(
    "pattern, name, matches",
    [
        ("wp_%", "wp_posts", True),
        ("wp_%", "WP_POSTS", True),
        ("wp\\_%", "wpxposts", False),
        ("a_c", "abc", True),
        ("a_c", "abbc", False),
        ("100%", "100% sure", True),
        ("a.b", "axb", False),
    ],
)
def test_like_to_regex(pattern, name, matches):
    assert bool(like_to_regex(pattern).fullmatch(name)) is matches
