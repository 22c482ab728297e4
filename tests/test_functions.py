import sqlite3

import pytest

from mylite import Database
from mylite import functions as f


@pytest.fixture
def conn():
    c = sqlite3.connect(":memory:")
    yield c
    c.close()


def test_install_functions_once_per_connection(conn):
    assert not f.is_installed(conn)
    assert f.install_functions(conn) is True
    assert f.install_functions(conn) is False
    assert f.is_installed(conn)
    row = conn.execute("SELECT mylite_date_format('2024-01-05 13:07:00', '%W %D %M %Y %H:%i')").fetchone()
    assert row == ("Friday 5th January 2024 13:07",)


def test_aggregates_registered(conn):
    f.install_functions(conn)
    conn.execute("CREATE TABLE n (v INTEGER)")
    conn.executemany("INSERT INTO n VALUES (?)", [(6,), (3,), (3,)])
    assert conn.execute("SELECT mylite_bit_or(v), mylite_bit_and(v) FROM n").fetchone() == (7, 2)
    assert conn.execute("SELECT mylite_group_concat(v, '|', 1) FROM n").fetchone() == ("6|3",)


@pytest.mark.parametrize(
    "value, fmt, expected",
    [
        ("2024-01-05", "%W", "Friday"),
        ("2024-01-05", "%a %b %e", "Fri Jan 5"),
        ("2024-03-09 07:05:03", "%h:%i:%s %p", "07:05:03 AM"),
        ("2024-03-09 19:05:03", "%r", "07:05:03 PM"),
        ("2024-12-31", "%j", "366"),
        ("2024-01-05", "100%%", "100%"),
        (None, "%Y", None),
    ],
)
def test_date_format(value, fmt, expected):
    assert f.fn_date_format(value, fmt) == expected


def test_str_to_date():
    assert f.fn_str_to_date("05/01/2024", "%d/%m/%Y") == "2024-01-05"
    assert f.fn_str_to_date("2024-01-05 10:30:00", "%Y-%m-%d %H:%i:%s") == "2024-01-05 10:30:00"
    assert f.fn_str_to_date("31/02/2024", "%d/%m/%Y") is None
    assert f.fn_str_to_date("nonsense", "%Y") is None


@pytest.mark.parametrize(
    "value, amount, unit, expected",
    [
        ("2024-01-31", 1, "MONTH", "2024-02-29"),
        ("2024-01-31", 1, "DAY", "2024-02-01"),
        ("2024-01-31 23:00:00", 2, "HOUR", "2024-02-01 01:00:00"),
        ("2024-01-31", 1, "HOUR", "2024-01-31 01:00:00"),
        ("2024-02-29", 1, "YEAR", "2025-02-28"),
        ("2024-01-01 00:00:00", "1:30", "HOUR_MINUTE", "2024-01-01 01:30:00"),
        ("not a date", 1, "DAY", None),
    ],
)
def test_date_add(value, amount, unit, expected):
    assert f.fn_date_add(value, amount, unit) == expected


def test_date_sub_and_diffs():
    assert f.fn_date_sub("2024-03-01", 1, "DAY") == "2024-02-29"
    assert f.fn_datediff("2024-03-01", "2024-02-01") == 29
    assert f.fn_timestampdiff("MONTH", "2024-01-31", "2024-02-29") == 0
    assert f.fn_timestampdiff("MONTH", "2024-01-15", "2024-03-15") == 2
    assert f.fn_timestampdiff("HOUR", "2024-01-01 00:00:00", "2024-01-01 05:59:59") == 5
    assert f.fn_last_day("2023-02-10") == "2023-02-28"


def test_date_parts():
    assert f.fn_extract("YEAR_MONTH", "2024-07-04") == 202407
    assert f.fn_extract("MINUTE", "2024-07-04 10:15:00") == 15
    assert f.fn_monthname("2024-07-04") == "July"
    assert f.fn_dayofweek("2024-07-04") == 5
    assert f.fn_cast_date("2024-07-04 10:15:00") == "2024-07-04"


def test_string_functions():
    assert f.fn_concat("a", 1, "b") == "a1b"
    assert f.fn_concat("a", None) is None
    assert f.fn_concat_ws(",", "a", None, "b") == "a,b"
    assert f.fn_substring("Quadratically", 5) == "ratically"
    assert f.fn_substring("Sakila", -3) == "ila"
    assert f.fn_substring("Quadratically", 5, 6) == "ratica"
    assert f.fn_substring_index("www.mysql.com", ".", 2) == "www.mysql"
    assert f.fn_substring_index("www.mysql.com", ".", -2) == "mysql.com"
    assert f.fn_find_in_set("b", "a,b,c,d") == 2
    assert f.fn_find_in_set("B", "a,b") == 2
    assert f.fn_field("ej", "Hej", "ej", "Heja") == 2
    assert f.fn_lpad("hi", 4, "?") == "??hi"
    assert f.fn_locate("bar", "foobarbar") == 4


def test_hashes_and_numbers():
    assert f.fn_md5("abc") == "900150983cd24fb0d6963f7d28e17f72"
    assert f.fn_crc32("MySQL") == 3259397556
    assert f.fn_inet_aton("10.0.5.9") == 167773449
    assert f.fn_inet_ntoa(167773449) == "10.0.5.9"
    assert f.fn_round(2.5) == 3
    assert f.fn_round(-2.5) == -3
    assert f.fn_round(1.25, 1) == 1.3
    assert f.fn_round(None) is None


def test_match_relevance():
    assert f.fn_match("mysql", 0, "MySQL tutorial", "learn mysql fast") == 2.0
    assert f.fn_match("+mysql -oracle", 1, "mysql and oracle") == 0.0
    assert f.fn_match("data*", 1, "databases and datasets") == 2.0


def test_functions_through_database():
    db = Database.open()
    res = db.execute(
        "SELECT DATE_ADD('2024-01-31', INTERVAL 1 MONTH) AS d, "
        "DATE_FORMAT('2024-01-05', '%W') AS w, "
        "SUBSTRING_INDEX('a.b.c', '.', 1) AS s"
    )
    assert res.tuples() == [("2024-02-29", "Friday", "a")]
    db.close()
