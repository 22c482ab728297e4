import pytest

from mylite.errors import SqlSyntaxError
from mylite.lexer import TokenType, tokenize


def kinds(sql):
    return [t.typ for t in tokenize(sql)]


def test_keywords_identifiers_and_backticks():
    toks = tokenize("SELECT `order`, name FROM `my table`")
    assert toks[0].typ == TokenType.KEYWORD and toks[0].value == "SELECT"
    assert toks[1].typ == TokenType.IDENT and toks[1].value == "order"
    assert toks[1].quoted
    assert toks[3].typ == TokenType.IDENT and toks[3].value == "name"
    assert not toks[3].quoted
    assert toks[5].value == "my table"
    assert toks[-1].typ == TokenType.EOF


def test_string_escapes_and_doubled_quotes():
    toks = tokenize(r"SELECT 'it''s', 'a\nb', 'back\\slash', 'x\'y'")
    strings = [t.value for t in toks if t.typ == TokenType.STRING]
    assert strings == ["it's", "a\nb", "back\\slash", "x'y"]


def test_double_quoted_text_is_a_string():
    toks = tokenize('SELECT "hello"')
    assert toks[1].typ == TokenType.STRING
    assert toks[1].value == "hello"


def test_numbers_and_hex():
    toks = tokenize("SELECT 12, 1.5, .5, 2e3, 0x41, X'4142'")
    values = [(t.typ, t.value) for t in toks if t.typ in (TokenType.INT, TokenType.NUMBER, TokenType.HEX)]
    assert values == [
        (TokenType.INT, 12),
        (TokenType.NUMBER, 1.5),
        (TokenType.NUMBER, 0.5),
        (TokenType.NUMBER, 2000.0),
        (TokenType.HEX, 0x41),
        (TokenType.HEX, b"AB"),
    ]


def test_placeholders_and_variables():
    toks = tokenize("SELECT ?, %s, :name, @v, @@session.sql_mode")
    params = [t.value for t in toks if t.typ == TokenType.PARAM]
    assert params == [None, None, "name"]
    variables = [t.value for t in toks if t.typ == TokenType.VARIABLE]
    assert variables == ["@v", "@@session.sql_mode"]


def test_comments_are_skipped_and_executable_comments_kept():
    toks = tokenize("SELECT 1 -- trailing\n# hash\n/* block */ /*!40101 + 2 */")
    assert kinds("SELECT 1 -- x") == [TokenType.KEYWORD, TokenType.INT, TokenType.EOF]
    assert [t.value for t in toks if t.typ in (TokenType.INT, TokenType.OP)] == [1, "+", 2]


def test_longest_operator_wins():
    toks = tokenize("a <=> b <= c <> d")
    assert [t.value for t in toks if t.typ == TokenType.OP] == ["<=>", "<=", "<>"]


def test_positions_track_lines():
    toks = tokenize("SELECT\n  x")
    assert toks[1].pos.line == 2
    assert toks[1].pos.col == 3


@pytest.mark.parametrize("sql", ["SELECT 'open", "SELECT `open", "SELECT /* open", "SELECT {"])
def test_lexer_errors(sql):
    with pytest.raises(SqlSyntaxError) as ei:
        tokenize(sql)
    assert ei.value.errno == 1064
