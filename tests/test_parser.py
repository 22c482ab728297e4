import pytest

from mylite.ast import (
    AddColumn,
    AlterTable,
    Binary,
    ChangeColumn,
    ColumnRef,
    CreateTable,
    Delete,
    DropKey,
    DropTable,
    FuncCall,
    Insert,
    Literal,
    Param,
    Select,
    SetVariables,
    Show,
    TableRef,
    Transaction,
    Union,
    Update,
)
from mylite.errors import SqlSyntaxError
from mylite.parser import parse_script, parse_sql, split_statements


def test_select_with_where_order_and_mysql_limit():
    stmt = parse_sql("SELECT id, name AS n FROM users WHERE id > 3 ORDER BY name DESC LIMIT 5, 10")
    assert isinstance(stmt, Select)
    assert stmt.items[0].expr == ColumnRef(column="id")
    assert stmt.items[1].alias == "n"
    assert isinstance(stmt.from_[0], TableRef)
    assert stmt.from_[0].name == "users"
    assert isinstance(stmt.where, Binary) and stmt.where.op == ">"
    assert stmt.order_by[0].desc
    assert stmt.limit == Literal(10)
    assert stmt.offset == Literal(5)


def test_select_modifiers():
    stmt = parse_sql("SELECT SQL_CALC_FOUND_ROWS DISTINCT * FROM t FOR UPDATE")
    assert stmt.calc_found_rows
    assert stmt.distinct
    assert stmt.lock is not None


def test_positional_and_named_params():
    stmt = parse_sql("SELECT * FROM t WHERE a = ? AND b = %s")
    params = [stmt.where.left.right, stmt.where.right.right]
    assert params == [Param(index=0), Param(index=1)]
    named = parse_sql("SELECT * FROM t WHERE a = :a")
    assert named.where.right == Param(name="a")


def test_function_call_names_are_uppercased():
    stmt = parse_sql("SELECT date_format(created, '%Y') FROM t")
    call = stmt.items[0].expr
    assert isinstance(call, FuncCall)
    assert call.name == "DATE_FORMAT"
    assert len(call.args) == 2


def test_union():
    stmt = parse_sql("SELECT a FROM t UNION ALL SELECT a FROM u ORDER BY a LIMIT 3")
    assert isinstance(stmt, Union)
    assert len(stmt.selects) == 2
    assert stmt.all_flags == (True,)
    assert stmt.limit == Literal(3)


def test_insert_forms():
    stmt = parse_sql("INSERT INTO t (a, b) VALUES (1, 'x'), (2, DEFAULT)")
    assert isinstance(stmt, Insert)
    assert stmt.columns == ("a", "b")
    assert len(stmt.rows) == 2

    stmt = parse_sql("INSERT IGNORE INTO t SET a = 1, b = 2")
    assert stmt.ignore
    assert stmt.columns == ("a", "b")

    stmt = parse_sql("REPLACE INTO t (a) SELECT a FROM u")
    assert stmt.replace
    assert isinstance(stmt.query, Select)

    stmt = parse_sql("INSERT INTO t (a) VALUES (1) ON DUPLICATE KEY UPDATE a = VALUES(a) + 1")
    assert stmt.on_duplicate[0].column == ColumnRef(column="a")


def test_update_and_delete():
    stmt = parse_sql("UPDATE t SET a = a + 1 WHERE b = 2 ORDER BY a LIMIT 1")
    assert isinstance(stmt, Update)
    assert stmt.assignments[0].column.column == "a"
    assert stmt.limit == Literal(1)

    stmt = parse_sql("DELETE FROM t WHERE a = 1")
    assert isinstance(stmt, Delete)
    assert stmt.table.name == "t"

    stmt = parse_sql("DELETE t1 FROM t1 JOIN t2 ON t1.id = t2.id WHERE t2.x = 1")
    assert stmt.table is None
    assert stmt.targets == ("t1",)


def test_create_table():
    stmt = parse_sql(
        """
        CREATE TABLE IF NOT EXISTS `wp_posts` (
          ID bigint(20) unsigned NOT NULL AUTO_INCREMENT,
          post_title text NOT NULL,
          post_status varchar(20) NOT NULL DEFAULT 'publish',
          post_date datetime NOT NULL DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
          PRIMARY KEY (ID),
          KEY type_status_date (post_status(10), post_date)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_520_ci
        """
    )
    assert isinstance(stmt, CreateTable)
    assert stmt.if_not_exists
    assert stmt.name == "wp_posts"
    id_col = stmt.columns[0]
    assert id_col.typ.name == "BIGINT" and id_col.typ.unsigned
    assert id_col.auto_increment and id_col.not_null
    assert stmt.columns[3].on_update_now
    assert [k.kind for k in stmt.keys] == ["PRIMARY", "INDEX"]
    assert stmt.keys[1].parts[0].length == 10


def test_alter_table_actions():
    stmt = parse_sql("ALTER TABLE t ADD COLUMN age INT DEFAULT 0 AFTER name, MODIFY name VARCHAR(100), DROP INDEX k")
    assert isinstance(stmt, AlterTable)
    add, modify, drop = stmt.actions
    assert isinstance(add, AddColumn) and add.after == "name"
    assert isinstance(modify, ChangeColumn) and modify.old_name == "name"
    assert isinstance(drop, DropKey) and drop.name == "k"


def test_drop_table_list():
    stmt = parse_sql("DROP TABLE IF EXISTS a, b")
    assert isinstance(stmt, DropTable)
    assert stmt.names == ("a", "b")
    assert stmt.if_exists


def test_session_statements():
    assert parse_sql("START TRANSACTION") == Transaction(action="BEGIN")
    assert parse_sql("ROLLBACK TO SAVEPOINT sp") == Transaction(action="ROLLBACK TO", savepoint="sp")
    stmt = parse_sql("SET NAMES utf8mb4")
    assert isinstance(stmt, SetVariables)
    assert stmt.assignments[0][0] == "character_set_client"
    stmt = parse_sql("SET @@session.sql_mode = 'ANSI', @x = 5")
    assert [name for name, _ in stmt.assignments] == ["sql_mode", "@x"]


def test_show_and_describe():
    assert parse_sql("SHOW FULL TABLES LIKE 'wp_%'") == Show(kind="TABLES", like="wp_%", full=True)
    assert parse_sql("DESCRIBE users") == Show(kind="COLUMNS", table="users")
    assert parse_sql("SHOW INDEX FROM users").kind == "INDEX"
    assert parse_sql("SHOW CREATE TABLE users").table == "users"


def test_script_and_split():
    script = "CREATE TABLE t (a INT); INSERT INTO t VALUES (';'); SELECT * FROM t;"
    assert len(parse_script(script)) == 3
    assert split_statements(script) == [
        "CREATE TABLE t (a INT)",
        "INSERT INTO t VALUES (';')",
        "SELECT * FROM t",
    ]


def test_parse_sql_rejects_multiple_statements():
    with pytest.raises(SqlSyntaxError):
        parse_sql("SELECT 1; SELECT 2")


def test_syntax_error_reports_position():
    with pytest.raises(SqlSyntaxError) as ei:
        parse_sql("SELECT FROM")
    err = ei.value
    assert err.errno == 1064
    assert err.sqlstate == "42000"
    assert err.position is not None
