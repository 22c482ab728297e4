"""
mylite/lexer.py

MySQL-dialect tokenizer (lexer) for the mylite engine.

Responsibilities:
- Convert an input SQL string into a list of tokens with line/column/offset positions
- Recognize reserved keywords, identifiers (bare and `backtick` quoted), literals,
  placeholders, variables, operators and punctuation
- Skip comments: "-- ", "#", "/* ... */"; tokenize the body of MySQL executable
  comments "/*!40101 ... */" as regular SQL
- Provide reliable error messages for unexpected characters and unterminated literals

Notes:
- Strings may use single or double quotes; backslash escapes follow MySQL rules
  (\\n, \\t, \\0, \\Z, ...; "\\%" and "\\_" keep their backslash for LIKE).
- Only MySQL reserved words become KEYWORD tokens. Non-reserved words such as
  ENGINE, UNSIGNED or DUPLICATE stay IDENT so they remain usable as names; the
  parser matches them contextually.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from .errors import Position, SqlSyntaxError


class TokenType(Enum):
    """Token categories recognized by the lexer."""
    EOF = auto()

    # Identifiers + literals
    IDENT = auto()
    KEYWORD = auto()
    INT = auto()
    NUMBER = auto()
    STRING = auto()
    HEX = auto()

    # Placeholders and variables
    PARAM = auto()     # ?  %s  :name
    VARIABLE = auto()  # @name  @@scope.name

    # Symbols
    LPAREN = auto()   # (
    RPAREN = auto()   # )
    COMMA = auto()    # ,
    SEMI = auto()     # ;
    DOT = auto()      # .
    OP = auto()       # = <=> <> != < <= > >= + - * / % || && ! | & ^ ~ << >> :=


RESERVED: frozenset[str] = frozenset(
    """
    ADD ALL ALTER AND AS ASC BETWEEN BINARY BY CASE CHANGE CHARACTER CHECK COLLATE
    COLUMN CONSTRAINT CONVERT CREATE CROSS CURRENT_DATE CURRENT_TIME CURRENT_TIMESTAMP
    DEFAULT DELAYED DELETE DESC DESCRIBE DISTINCT DISTINCTROW DIV DROP DUAL ELSE EXISTS
    EXPLAIN FALSE FOR FORCE FOREIGN FROM FULLTEXT GROUP HAVING HIGH_PRIORITY IF IGNORE
    IN INDEX INNER INSERT INTERVAL INTO IS JOIN KEY KEYS LEFT LIKE LIMIT LOCALTIME
    LOCALTIMESTAMP LOCK LOW_PRIORITY MATCH MOD NATURAL NOT NULL ON OR ORDER OUTER
    PRIMARY REFERENCES REGEXP RENAME REPLACE RIGHT RLIKE SELECT SEPARATOR SET SHOW
    SPATIAL SQL_CALC_FOUND_ROWS STRAIGHT_JOIN TABLE THEN TO TRUE UNION UNIQUE UNLOCK
    UPDATE USE USING UTC_DATE UTC_TIME UTC_TIMESTAMP VALUES WHEN WHERE WITH XOR
    """.split()
)

# Longest operators first so "<=>" wins over "<=" and "<".
OPERATORS: tuple[str, ...] = (
    "<=>", "<<", ">>", "<=", ">=", "<>", "!=", "||", "&&", ":=",
    "=", "<", ">", "+", "-", "*", "/", "%", "!", "|", "&", "^", "~",
)

_ESCAPES = {
    "0": "\0",
    "'": "'",
    '"': '"',
    "b": "\b",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "Z": "\x1a",
    "\\": "\\",
    "%": "\\%",
    "_": "\\_",
}


@dataclass(frozen=True)
class Token:
    """
    A lexical token.

    Attributes:
        typ: TokenType
        lexeme: The original source text of the token
        value: Parsed value for literals/idents:
               - IDENT -> str (backticks removed)
               - KEYWORD -> uppercased str
               - INT -> int, NUMBER -> float
               - STRING -> str (unescaped), HEX -> bytes or int
               - PARAM -> None (positional) or the placeholder name
               - VARIABLE -> the name including its @ / @@ prefix
               - OP -> the operator text
        pos: Position in input (line/col/offset)
    """
    typ: TokenType
    lexeme: str
    value: object | None
    pos: Position

    @property
    def quoted(self) -> bool:
        """True for `backtick` quoted identifiers."""
        return self.typ == TokenType.IDENT and self.lexeme.startswith("`")

    @property
    def end(self) -> int:
        """Offset just past the token in the source text."""
        return self.pos.offset + len(self.lexeme)


def tokenize(sql: str) -> list[Token]:
    """
    Tokenize a MySQL statement or script into a list of Token objects.

    Args:
        sql: Raw SQL input string.

    Returns:
        List of Token, always terminated with EOF token.

    Raises:
        SqlSyntaxError: for unexpected characters or unterminated literals/comments.
    """
    tokens: list[Token] = []
    i = 0
    line = 1
    col = 1
    exec_comment_depth = 0

    def cur_pos() -> Position:
        return Position(line=line, col=col, offset=i)

    def peek(offset: int = 0) -> str:
        j = i + offset
        if j >= len(sql):
            return ""
        return sql[j]

    def advance(n: int = 1) -> None:
        """Advance the cursor by n characters while tracking line/column."""
        nonlocal i, line, col
        for _ in range(n):
            if i >= len(sql):
                return
            ch = sql[i]
            i += 1
            if ch == "\n":
                line += 1
                col = 1
            else:
                col += 1

    def error(message: str, pos: Position) -> SqlSyntaxError:
        return SqlSyntaxError(message, pos, near=sql[pos.offset:])

    def emit(typ: TokenType, start: Position, value: object | None) -> None:
        tokens.append(Token(typ, sql[start.offset:i], value, start))

    while i < len(sql):
        ch = peek(0)

        # Skip whitespace
        if ch.isspace():
            advance(1)
            continue

        # Comments
        if ch == "#" or (ch == "-" and peek(1) == "-" and (peek(2) == "" or peek(2).isspace())):
            while i < len(sql) and peek(0) != "\n":
                advance(1)
            continue
        if ch == "/" and peek(1) == "*":
            start = cur_pos()
            if peek(2) == "!":
                # Executable comment: drop the marker and optional version, keep the body.
                advance(3)
                while peek(0).isdigit():
                    advance(1)
                exec_comment_depth += 1
                continue
            end = sql.find("*/", i + 2)
            if end < 0:
                raise error("Unterminated comment", start)
            advance(end + 2 - i)
            continue
        if ch == "*" and peek(1) == "/" and exec_comment_depth > 0:
            exec_comment_depth -= 1
            advance(2)
            continue

        # Single-character punctuation
        if ch in "(),;":
            start = cur_pos()
            advance(1)
            typ = {
                "(": TokenType.LPAREN,
                ")": TokenType.RPAREN,
                ",": TokenType.COMMA,
                ";": TokenType.SEMI,
            }[ch]
            emit(typ, start, None)
            continue

        # Quoted identifier: `...` with `` as an escaped backtick
        if ch == "`":
            start = cur_pos()
            advance(1)
            buf: list[str] = []
            while True:
                if i >= len(sql):
                    raise error("Unterminated quoted identifier", start)
                c = peek(0)
                if c == "`":
                    if peek(1) == "`":
                        buf.append("`")
                        advance(2)
                        continue
                    advance(1)
                    break
                buf.append(c)
                advance(1)
            emit(TokenType.IDENT, start, "".join(buf))
            continue

        # String literal: '...' or "..."
        if ch in ("'", '"'):
            quote = ch
            start = cur_pos()
            advance(1)  # consume opening quote
            buf = []
            while True:
                if i >= len(sql):
                    raise error("Unterminated string literal", start)
                c = peek(0)
                if c == "\\":
                    nxt = peek(1)
                    if nxt == "":
                        raise error("Unterminated string literal", start)
                    buf.append(_ESCAPES.get(nxt, nxt))
                    advance(2)
                    continue
                if c == quote:
                    if peek(1) == quote:
                        buf.append(quote)
                        advance(2)
                        continue
                    advance(1)  # consume closing quote
                    break
                buf.append(c)
                advance(1)
            emit(TokenType.STRING, start, "".join(buf))
            continue

        # Hex literals: X'4142' and 0x4142
        if ch in "xX" and peek(1) == "'":
            start = cur_pos()
            end = sql.find("'", i + 2)
            if end < 0:
                raise error("Unterminated hex literal", start)
            digits = sql[i + 2:end]
            try:
                value = bytes.fromhex(digits)
            except ValueError:
                raise error("Invalid hex literal", start) from None
            advance(end + 1 - i)
            emit(TokenType.HEX, start, value)
            continue
        if ch == "0" and peek(1) in "xX" and peek(2) and peek(2) in "0123456789abcdefABCDEF":
            start = cur_pos()
            j = i + 2
            while j < len(sql) and sql[j] in "0123456789abcdefABCDEF":
                j += 1
            value = int(sql[i + 2:j], 16)
            advance(j - i)
            emit(TokenType.HEX, start, value)
            continue

        # Numeric literal: 12, 1.5, .5, 1e10, 2.5E-3
        if ch.isdigit() or (ch == "." and peek(1).isdigit()):
            start = cur_pos()
            j = i
            while j < len(sql) and sql[j].isdigit():
                j += 1
            is_float = False
            if j < len(sql) and sql[j] == ".":
                is_float = True
                j += 1
                while j < len(sql) and sql[j].isdigit():
                    j += 1
            if j < len(sql) and sql[j] in "eE":
                k = j + 1
                if k < len(sql) and sql[k] in "+-":
                    k += 1
                if k < len(sql) and sql[k].isdigit():
                    is_float = True
                    j = k
                    while j < len(sql) and sql[j].isdigit():
                        j += 1
            if j < len(sql) and (sql[j].isalpha() or sql[j] == "_") and not is_float:
                # Identifiers may start with digits in MySQL (e.g. 1col).
                while j < len(sql) and (sql[j].isalnum() or sql[j] in "_$"):
                    j += 1
                lex = sql[i:j]
                advance(j - i)
                emit(TokenType.IDENT, start, lex)
                continue
            lex = sql[i:j]
            advance(j - i)
            if is_float:
                emit(TokenType.NUMBER, start, float(lex))
            else:
                emit(TokenType.INT, start, int(lex))
            continue

        # Identifier / keyword
        if ch.isalpha() or ch in "_$" or ord(ch) > 127:
            start = cur_pos()
            j = i
            while j < len(sql) and (sql[j].isalnum() or sql[j] in "_$" or ord(sql[j]) > 127):
                j += 1
            lex = sql[i:j]
            upper = lex.upper()
            advance(j - i)
            if upper in RESERVED:
                emit(TokenType.KEYWORD, start, upper)
            else:
                emit(TokenType.IDENT, start, lex)
            continue

        # Placeholders
        if ch == "?":
            start = cur_pos()
            advance(1)
            emit(TokenType.PARAM, start, None)
            continue
        if ch == "%" and peek(1) == "s" and not (peek(2).isalnum() or peek(2) == "_"):
            start = cur_pos()
            advance(2)
            emit(TokenType.PARAM, start, None)
            continue
        if ch == ":" and (peek(1).isalpha() or peek(1) == "_"):
            start = cur_pos()
            j = i + 1
            while j < len(sql) and (sql[j].isalnum() or sql[j] == "_"):
                j += 1
            name = sql[i + 1:j]
            advance(j - i)
            emit(TokenType.PARAM, start, name)
            continue

        # Variables: @user_var, @`quoted`, @@session.sql_mode
        if ch == "@":
            start = cur_pos()
            j = i + 1
            if j < len(sql) and sql[j] == "@":
                j += 1
            if j < len(sql) and sql[j] in "`'\"":
                quote = sql[j]
                end = sql.find(quote, j + 1)
                if end < 0:
                    raise error("Unterminated variable name", start)
                name = sql[i:j] + sql[j + 1:end]
                j = end + 1
            else:
                k = j
                while k < len(sql) and (sql[k].isalnum() or sql[k] in "_$."):
                    k += 1
                if k == j:
                    raise error("Expected variable name after '@'", start)
                name = sql[i:k]
                j = k
            advance(j - i)
            emit(TokenType.VARIABLE, start, name)
            continue

        if ch == ".":
            start = cur_pos()
            advance(1)
            emit(TokenType.DOT, start, None)
            continue

        matched = next((op for op in OPERATORS if sql.startswith(op, i)), None)
        if matched is not None:
            start = cur_pos()
            advance(len(matched))
            emit(TokenType.OP, start, matched)
            continue

        # Unknown character
        raise error(f"Unexpected character: {ch!r}", cur_pos())

    if exec_comment_depth:
        raise SqlSyntaxError("Unterminated executable comment", Position(line, col, i))

    tokens.append(Token(TokenType.EOF, "", None, Position(line=line, col=col, offset=len(sql))))
    return tokens
