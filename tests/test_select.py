import pytest

from mylite import Database
from mylite.errors import MyLiteError


@pytest.fixture
def db(tmp_path):
    d = Database.open(tmp_path / "site.sqlite")
    d.execute("CREATE TABLE categories (id INT PRIMARY KEY, user_id INT, name VARCHAR(50) UNIQUE)")
    d.execute("CREATE TABLE transactions (id INT PRIMARY KEY, user_id INT, category_id INT, amount INT)")
    d.execute("INSERT INTO categories (id, user_id, name) VALUES (1, 10, 'Groceries'), (2, 10, 'Rent'), (3, 11, 'Fun')")
    d.execute(
        "INSERT INTO transactions (id, user_id, category_id, amount) VALUES "
        "(100, 10, 1, 2500), (101, 10, 2, 50000), (102, 10, 1, 1500), (103, 12, 9, 10)"
    )
    yield d
    d.close()


def test_inner_join(db):
    res = db.execute(
        "SELECT transactions.id, categories.name "
        "FROM transactions "
        "JOIN categories ON transactions.category_id = categories.id "
        "WHERE transactions.user_id = 10 "
        "ORDER BY transactions.id"
    )
    assert res.columns == ["id", "name"]
    assert res.tuples() == [(100, "Groceries"), (101, "Rent"), (102, "Groceries")]


def test_left_and_right_join(db):
    res = db.execute(
        "SELECT t.id, c.name FROM transactions t LEFT JOIN categories c ON c.id = t.category_id "
        "WHERE c.id IS NULL"
    )
    assert res.tuples() == [(103, None)]

    res = db.execute(
        "SELECT c.name, t.id FROM transactions t RIGHT JOIN categories c ON c.id = t.category_id "
        "WHERE t.id IS NULL"
    )
    assert res.tuples() == [("Fun", None)]


def test_group_by_having(db):
    res = db.execute(
        "SELECT category_id, COUNT(*), SUM(amount) AS total FROM transactions "
        "GROUP BY category_id HAVING COUNT(*) > 1"
    )
    assert res.columns == ["category_id", "COUNT(*)", "total"]
    assert res.tuples() == [(1, 2, 4000)]


def test_subqueries_and_derived_tables(db):
    res = db.execute(
        "SELECT name FROM categories WHERE id IN (SELECT category_id FROM transactions WHERE amount > 2000) "
        "ORDER BY name"
    )
    assert res.column("name") == ["Groceries", "Rent"]

    res = db.execute(
        "SELECT name FROM categories c WHERE NOT EXISTS "
        "(SELECT 1 FROM transactions t WHERE t.category_id = c.id)"
    )
    assert res.column("name") == ["Fun"]

    res = db.execute("SELECT MAX(s.total) AS best FROM (SELECT SUM(amount) AS total FROM transactions GROUP BY user_id) s")
    assert res.scalar() == 54000


def test_union(db):
    res = db.execute(
        "SELECT name AS label FROM categories WHERE id = 1 "
        "UNION SELECT name FROM categories WHERE id < 3 "
        "ORDER BY label DESC"
    )
    assert res.column("label") == ["Rent", "Groceries"]
    res = db.execute("SELECT 1 AS n UNION ALL SELECT 1")
    assert res.column("n") == [1, 1]


def test_mysql_arithmetic(db):
    res = db.execute("SELECT 5 / 2 AS q, 7 DIV 2 AS d, 7 MOD 3 AS m, 1 / 0 AS z")
    assert res.tuples() == [(2.5, 3, 1, None)]


def test_case_like_between(db):
    res = db.execute(
        "SELECT id, CASE WHEN amount >= 10000 THEN 'big' ELSE 'small' END AS size FROM transactions "
        "WHERE amount BETWEEN 1000 AND 60000 ORDER BY id"
    )
    assert res.tuples() == [(100, "small"), (101, "big"), (102, "small")]
    res = db.execute("SELECT name FROM categories WHERE name LIKE 'gro%'")
    assert res.column("name") == ["Groceries"]
    res = db.execute("SELECT name FROM categories WHERE name REGEXP '^r'")
    assert res.column("name") == ["Rent"]


def test_string_comparison_without_columns_ignores_case():
    db = Database.open()
    assert db.execute("SELECT 'abc' = 'ABC' AS same").scalar() == 1
    assert db.execute("SELECT BINARY 'abc' = 'ABC' AS same").scalar() == 0
    db.close()


def test_user_variables(db):
    db.execute("SET @min = 2000")
    res = db.execute("SELECT COUNT(*) AS n FROM transactions WHERE amount > @min")
    assert res.scalar() == 2
    assert db.execute("SELECT @@autocommit AS a").scalar() == 1


def test_ambiguous_column(db):
    with pytest.raises(MyLiteError) as ei:
        db.execute("SELECT id FROM transactions JOIN categories ON categories.id = transactions.category_id")
    assert ei.value.errno == 1052
    assert ei.value.message == "Column 'id' in field list is ambiguous"
