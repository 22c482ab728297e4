import pytest

from mylite import Database
from mylite import repl


@pytest.mark.parametrize(
    "buf, complete",
    [
        ("SELECT 1", False),
        ("SELECT 1;", True),
        ("SELECT ';'", False),
        ("SELECT 'it\\'s;'", False),
        ("SELECT `a;b` FROM t", False),
        ("SELECT \"x;\" ;", True),
        ("INSERT INTO t VALUES ('a');\n", True),
    ],
)
def test_is_complete_statement(buf, complete):
    assert repl.is_complete_statement(buf) is complete


def test_format_table():
    text = repl.format_table(["id", "name"], [(1, "alice"), (22, None)])
    assert text.splitlines() == [
        "id | name ",
        "---+------",
        "1  | alice",
        "22 | NULL ",
    ]


def test_meta_commands(capsys):
    db = Database.open()
    repl.cmd_tables(db)
    assert capsys.readouterr().out == "(no tables)\n"

    db.execute("CREATE TABLE t (id INT PRIMARY KEY)")
    repl.cmd_tables(db)
    assert capsys.readouterr().out == "t\n"

    repl.cmd_schema(db, "t")
    assert "CREATE TABLE `t`" in capsys.readouterr().out
    repl.cmd_schema(db, "nope")
    assert capsys.readouterr().out == "Table not found: nope\n"

    repl.cmd_translate(db, "SELECT id FROM t LIMIT 2, 3;")
    assert capsys.readouterr().out.strip().endswith("LIMIT 3 OFFSET 2")
    db.close()


def test_repl_session(monkeypatch, capsys, tmp_path):
    lines = iter(
        [
            ".tables",
            "CREATE TABLE t (id INT AUTO_INCREMENT PRIMARY KEY,",
            "  v VARCHAR(10));",
            "INSERT INTO t (v) VALUES ('a');",
            "SELECT * FROM t;",
            "SELECT * FROM missing;",
            ".bogus",
        ]
    )

    def fake_input(prompt):
        try:
            return next(lines)
        except StopIteration:
            raise EOFError from None

    monkeypatch.setattr("builtins.input", fake_input)
    assert repl.main(["mylite", str(tmp_path / "site.sqlite")]) == 0
    out = capsys.readouterr().out
    assert "(no tables)" in out
    assert "Table 't' created" in out
    assert "insert_id=1" in out
    assert "1  | a" in out
    assert "(1 row(s))" in out
    assert "ERROR 1146" in out
    assert "Unknown command: .bogus" in out


def test_exit_command(monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt: ".quit")
    assert repl.main(["mylite"]) == 0
