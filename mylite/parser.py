"""
mylite/parser.py

Recursive-descent parser for the MySQL dialect.

Responsibilities:
- Convert token sequences into AST nodes (see mylite/ast.py)
- Provide clear syntax errors with line/column positions and the offending text
- Support the MySQL surface a typical application issues:
    - SELECT (joins, derived tables, GROUP BY/HAVING, ORDER BY, LIMIT forms,
      UNION, locking clauses, SQL_CALC_FOUND_ROWS)
    - INSERT / REPLACE (multi-row VALUES, SET form, SELECT source, IGNORE,
      ON DUPLICATE KEY UPDATE)
    - UPDATE / DELETE (ORDER BY + LIMIT, multi-table forms)
    - CREATE TABLE / ALTER TABLE / DROP TABLE / TRUNCATE / CREATE INDEX /
      DROP INDEX / RENAME TABLE
    - SHOW / DESCRIBE, SET, transaction control, LOCK/UNLOCK TABLES
- Expressions follow MySQL operator precedence.

Notes:
- Anything outside this surface is a hard SqlSyntaxError; no clause is ever
  skipped silently.
- Placeholders are numbered in order of appearance.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .ast import (
    AddColumn,
    AddKey,
    AlterAction,
    AlterColumnDefault,
    AlterTable,
    Assignment,
    Between,
    Binary,
    Case,
    Cast,
    ChangeColumn,
    Collate,
    ColumnDef,
    ColumnRef,
    CreateIndex,
    CreateTable,
    Default,
    Delete,
    DerivedTable,
    DropColumn,
    DropIndex,
    DropKey,
    DropTable,
    Exists,
    Expr,
    FuncCall,
    Insert,
    InList,
    InSubquery,
    Interval,
    IsTest,
    Join,
    KeyDef,
    KeyPart,
    Like,
    Literal,
    LockTables,
    Match,
    OrderItem,
    Param,
    Regexp,
    RenameColumn,
    RenameKey,
    RenameTable,
    RenameTo,
    Select,
    SelectItem,
    SetVariables,
    Show,
    Star,
    Statement,
    SubqueryExpr,
    TableOptions,
    TableRef,
    TableSource,
    Transaction,
    TruncateTable,
    TypeSpec,
    Unary,
    Union,
    Update,
    Variable,
)
from .errors import Position, SqlSyntaxError
from .lexer import Token, TokenType, tokenize

INTERVAL_UNITS = frozenset(
    """
    MICROSECOND SECOND MINUTE HOUR DAY WEEK MONTH QUARTER YEAR SECOND_MICROSECOND
    MINUTE_MICROSECOND MINUTE_SECOND HOUR_MICROSECOND HOUR_SECOND HOUR_MINUTE
    DAY_MICROSECOND DAY_SECOND DAY_MINUTE DAY_HOUR YEAR_MONTH
    """.split()
)

# Keywords that are also function names when followed by '('.
KEYWORD_FUNCTIONS = frozenset({"IF", "LEFT", "RIGHT", "REPLACE", "INSERT", "MOD", "VALUES"})

# Keywords that may be written with or without "()".
NILADIC_FUNCTIONS = frozenset(
    {"CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME", "LOCALTIME", "LOCALTIMESTAMP",
     "UTC_DATE", "UTC_TIME", "UTC_TIMESTAMP"}
)

COMPARISON_OPS = frozenset({"=", "<=>", "<>", "!=", "<", "<=", ">", ">="})

TWO_WORD_TYPES = {
    ("DOUBLE", "PRECISION"): "DOUBLE",
    ("LONG", "VARCHAR"): "MEDIUMTEXT",
    ("LONG", "VARBINARY"): "MEDIUMBLOB",
    ("CHARACTER", "VARYING"): "VARCHAR",
    ("NATIONAL", "CHAR"): "CHAR",
    ("NATIONAL", "VARCHAR"): "VARCHAR",
}


@dataclass
class Parser:
    """
    Stateful parser over a token list.

    Attributes:
        tokens: List of Token.
        sql: Source text (used for error context and select-item names).
        i: Current token index.
        param_count: Number of positional placeholders seen so far.
    """
    tokens: list[Token]
    sql: str = ""
    i: int = 0
    param_count: int = 0

    def peek(self, offset: int = 0) -> Token:
        """Return the token at current index + offset without consuming."""
        j = self.i + offset
        if j >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[j]

    def at(self, typ: TokenType) -> bool:
        """Check whether current token is of a specific type."""
        return self.peek().typ == typ

    def consume(self) -> Token:
        """Consume and return the current token."""
        t = self.peek()
        self.i += 1
        return t

    def error(self, msg: str, tok: Token | None = None) -> SqlSyntaxError:
        t = tok or self.peek()
        return SqlSyntaxError(msg, t.pos, near=self.sql[t.pos.offset:] if self.sql else t.lexeme)

    def expect(self, typ: TokenType, msg: str) -> Token:
        """Consume a token of the expected type, otherwise raise syntax error."""
        t = self.peek()
        if t.typ != typ:
            raise self.error(msg)
        return self.consume()

    def match(self, typ: TokenType) -> bool:
        """If current token matches typ, consume it and return True."""
        if self.at(typ):
            self.consume()
            return True
        return False

    # ---- keyword / word helpers ----

    def at_kw(self, *words: str, offset: int = 0) -> bool:
        """Current token is one of the given reserved keywords."""
        t = self.peek(offset)
        return t.typ == TokenType.KEYWORD and t.value in words

    def at_word(self, *words: str, offset: int = 0) -> bool:
        """Current token is one of the given words, reserved or not (never a quoted identifier)."""
        t = self.peek(offset)
        if t.typ == TokenType.KEYWORD:
            return t.value in words
        if t.typ == TokenType.IDENT and not t.quoted:
            return str(t.value).upper() in words
        return False

    def match_word(self, *words: str) -> str | None:
        if self.at_word(*words):
            return str(self.consume().value).upper()
        return None

    def expect_word(self, *words: str) -> str:
        if not self.at_word(*words):
            raise self.error(f"Expected {' or '.join(words)}")
        return str(self.consume().value).upper()

    def at_op(self, *ops: str) -> bool:
        t = self.peek()
        return t.typ == TokenType.OP and t.value in ops

    def match_op(self, *ops: str) -> str | None:
        if self.at_op(*ops):
            return str(self.consume().value)
        return None

    def expect_op(self, op: str, msg: str) -> None:
        if not self.match_op(op):
            raise self.error(msg)

    def ident(self, what: str = "identifier") -> str:
        """Parse an identifier; non-reserved words are accepted unquoted."""
        t = self.peek()
        if t.typ == TokenType.IDENT:
            self.consume()
            return str(t.value)
        raise self.error(f"Expected {what}")

    def qualified_name(self, what: str = "table name") -> tuple[str | None, str]:
        """Parse name or schema.name."""
        first = self.ident(what)
        if self.at(TokenType.DOT):
            self.consume()
            return first, self.ident(what)
        return None, first

    def string_value(self, what: str = "string") -> str:
        t = self.peek()
        if t.typ == TokenType.STRING:
            self.consume()
            return str(t.value)
        raise self.error(f"Expected {what}")

    def int_value(self, what: str = "integer") -> int:
        t = self.peek()
        if t.typ == TokenType.INT:
            self.consume()
            return int(t.value)  # type: ignore[arg-type]
        raise self.error(f"Expected {what}")

    def source_since(self, start: Token) -> str:
        """Source text from start token through the last consumed token."""
        last = self.tokens[self.i - 1]
        return self.sql[start.pos.offset:last.end].strip()

    # ---------------- entry points ----------------

    def parse_script(self) -> list[Statement]:
        """
        Parse one or more statements separated by semicolons.

        Returns:
            List of Statement AST nodes.

        Notes:
            Trailing semicolons and empty statements (e.g., ";;") are allowed.
        """
        stmts: list[Statement] = []
        while not self.at(TokenType.EOF):
            if self.match(TokenType.SEMI):
                continue
            self.param_count = 0
            stmts.append(self.parse_statement())
            if not self.at(TokenType.EOF) and not self.at(TokenType.SEMI):
                raise self.error(f"Unexpected token: {self.peek().lexeme!r}")
            self.match(TokenType.SEMI)
        return stmts

    def parse_one(self) -> Statement:
        """
        Parse exactly one statement.

        Returns:
            A single Statement.

        Raises:
            SqlSyntaxError if input is empty or contains multiple statements.
        """
        stmts = self.parse_script()
        if not stmts:
            raise SqlSyntaxError("Query was empty", Position(1, 1, 0))
        if len(stmts) > 1:
            raise SqlSyntaxError("Expected a single statement", self.peek().pos)
        return stmts[0]

    # ---------------- statement dispatch ----------------

    def parse_statement(self) -> Statement:
        """Dispatch based on the first keyword token."""
        t = self.peek()
        if self.at_kw("SELECT") or t.typ == TokenType.LPAREN:
            return self.parse_query()
        if self.at_kw("INSERT", "REPLACE"):
            return self.parse_insert()
        if self.at_kw("UPDATE"):
            return self.parse_update()
        if self.at_kw("DELETE"):
            return self.parse_delete()
        if self.at_kw("CREATE"):
            return self.parse_create()
        if self.at_kw("ALTER"):
            return self.parse_alter()
        if self.at_kw("DROP"):
            return self.parse_drop()
        if self.at_word("TRUNCATE"):
            self.consume()
            self.match_word("TABLE")
            _, name = self.qualified_name()
            return TruncateTable(name=name)
        if self.at_kw("RENAME"):
            return self.parse_rename_table()
        if self.at_kw("SHOW"):
            return self.parse_show()
        if self.at_kw("DESCRIBE", "DESC", "EXPLAIN"):
            return self.parse_describe()
        if self.at_kw("SET"):
            return self.parse_set()
        if self.at_word("START", "BEGIN", "COMMIT", "ROLLBACK", "SAVEPOINT", "RELEASE"):
            return self.parse_transaction()
        if self.at_kw("LOCK", "UNLOCK"):
            return self.parse_lock_tables()
        raise self.error(f"Unexpected token: {t.lexeme!r}")

    # ---------------- SELECT ----------------

    def parse_query(self) -> Select | Union:
        """
        Parse:
          select_core [UNION [ALL|DISTINCT] select_core]* [ORDER BY ...] [LIMIT ...]
        """
        first, parenthesized = self.parse_query_operand()
        selects = [first]
        flags: list[bool] = []
        last_parenthesized = parenthesized
        while self.match_word("UNION"):
            all_ = False
            if self.match_word("ALL"):
                all_ = True
            else:
                self.match_word("DISTINCT")
            nxt, last_parenthesized = self.parse_query_operand()
            selects.append(nxt)
            flags.append(all_)

        if len(selects) == 1:
            if parenthesized and (self.at_kw("ORDER") or self.at_kw("LIMIT")):
                order_by = self.parse_order_by_opt()
                limit, offset = self.parse_limit_opt()
                return replace(first, order_by=order_by or first.order_by, limit=limit, offset=offset)
            return first

        # ORDER BY / LIMIT written after the last bare SELECT apply to the whole UNION.
        order_by: tuple[OrderItem, ...] = ()
        limit = offset = None
        last = selects[-1]
        if not last_parenthesized and (last.order_by or last.limit is not None):
            order_by, limit, offset = last.order_by, last.limit, last.offset
            selects[-1] = replace(last, order_by=(), limit=None, offset=None)
        else:
            order_by = self.parse_order_by_opt()
            limit, offset = self.parse_limit_opt()
        for s in selects:
            if s.lock is not None:
                raise self.error("Locking clauses are not allowed inside UNION")
        return Union(selects=tuple(selects), all_flags=tuple(flags), order_by=order_by, limit=limit, offset=offset)

    def parse_query_operand(self) -> tuple[Select, bool]:
        if self.at(TokenType.LPAREN):
            self.consume()
            inner = self.parse_query()
            self.expect(TokenType.RPAREN, "Expected ')' after subquery")
            if isinstance(inner, Union):
                raise self.error("Nested UNION operands are not supported")
            return inner, True
        return self.parse_select(), False

    def parse_select(self) -> Select:
        """
        Parse:
          SELECT [modifiers] <items> [FROM ...] [WHERE] [GROUP BY] [HAVING]
                 [ORDER BY] [LIMIT] [FOR UPDATE | LOCK IN SHARE MODE]
        """
        if not self.at_kw("SELECT"):
            raise self.error("Expected SELECT")
        self.consume()

        distinct = False
        calc_found_rows = False
        modifiers: list[str] = []
        while True:
            if self.at_kw("DISTINCT", "DISTINCTROW"):
                self.consume()
                distinct = True
                continue
            if self.at_kw("ALL"):
                self.consume()
                continue
            if self.at_kw("SQL_CALC_FOUND_ROWS"):
                self.consume()
                calc_found_rows = True
                continue
            word = self.match_word(
                "HIGH_PRIORITY", "STRAIGHT_JOIN", "SQL_SMALL_RESULT", "SQL_BIG_RESULT",
                "SQL_BUFFER_RESULT", "SQL_NO_CACHE", "SQL_CACHE",
            )
            if word:
                modifiers.append(word)
                continue
            break

        items = [self.parse_select_item()]
        while self.match(TokenType.COMMA):
            items.append(self.parse_select_item())

        from_: tuple[TableSource, ...] = ()
        if self.at_kw("INTO"):
            raise self.error("SELECT ... INTO is not supported")
        if self.at_kw("FROM"):
            self.consume()
            if self.at_kw("DUAL"):
                self.consume()
            else:
                from_ = self.parse_table_references()

        where = self.parse_where_opt()

        group_by: list[Expr] = []
        if self.at_kw("GROUP"):
            self.consume()
            self.expect_word("BY")
            group_by.append(self.parse_group_item())
            while self.match(TokenType.COMMA):
                group_by.append(self.parse_group_item())
            if self.at_kw("WITH"):
                raise self.error("WITH ROLLUP is not supported")

        having = None
        if self.at_kw("HAVING"):
            self.consume()
            having = self.parse_expr()

        order_by = self.parse_order_by_opt()
        limit, offset = self.parse_limit_opt()

        lock = None
        if self.at_kw("FOR"):
            self.consume()
            lock = self.expect_word("UPDATE", "SHARE")
            if self.at_word("NOWAIT", "SKIP"):
                raise self.error("NOWAIT / SKIP LOCKED are not supported")
        elif self.at_kw("LOCK"):
            self.consume()
            self.expect_word("IN")
            self.expect_word("SHARE")
            self.expect_word("MODE")
            lock = "SHARE"

        return Select(
            items=tuple(items),
            from_=from_,
            where=where,
            group_by=tuple(group_by),
            having=having,
            order_by=order_by,
            limit=limit,
            offset=offset,
            distinct=distinct,
            calc_found_rows=calc_found_rows,
            lock=lock,
            modifiers=tuple(modifiers),
        )

    def parse_select_item(self) -> SelectItem:
        """
        Parse:
          '*' | tbl.'*' | expr [[AS] alias]
        """
        start = self.peek()
        if self.at_op("*"):
            self.consume()
            return SelectItem(expr=Star(), source="*")
        expr = self.parse_expr()
        source = self.source_since(start)
        alias = None
        if self.at_kw("AS"):
            self.consume()
            alias = self.parse_alias()
        elif self.at(TokenType.IDENT) or self.at(TokenType.STRING):
            alias = self.parse_alias()
        return SelectItem(expr=expr, alias=alias, source=source)

    def parse_alias(self) -> str:
        t = self.peek()
        if t.typ in (TokenType.IDENT, TokenType.STRING):
            self.consume()
            return str(t.value)
        raise self.error("Expected alias")

    def parse_group_item(self) -> Expr:
        expr = self.parse_expr()
        if self.at_kw("ASC", "DESC"):
            raise self.error("GROUP BY ... ASC/DESC is not supported")
        return expr

    def parse_where_opt(self) -> Expr | None:
        if self.at_kw("WHERE"):
            self.consume()
            return self.parse_expr()
        return None

    def parse_order_by_opt(self) -> tuple[OrderItem, ...]:
        if not self.at_kw("ORDER"):
            return ()
        self.consume()
        self.expect_word("BY")
        items = [self.parse_order_item()]
        while self.match(TokenType.COMMA):
            items.append(self.parse_order_item())
        return tuple(items)

    def parse_order_item(self) -> OrderItem:
        expr = self.parse_expr()
        desc = False
        if self.at_kw("ASC"):
            self.consume()
        elif self.at_kw("DESC"):
            self.consume()
            desc = True
        return OrderItem(expr=expr, desc=desc)

    def parse_limit_value(self) -> Expr:
        t = self.peek()
        if t.typ == TokenType.INT:
            self.consume()
            return Literal(int(t.value))  # type: ignore[arg-type]
        if t.typ == TokenType.PARAM:
            return self.parse_param()
        raise self.error("Expected integer or placeholder in LIMIT")

    def parse_limit_opt(self) -> tuple[Expr | None, Expr | None]:
        """
        Parse:
          LIMIT count | LIMIT offset, count | LIMIT count OFFSET offset
        """
        if not self.at_kw("LIMIT"):
            return None, None
        self.consume()
        first = self.parse_limit_value()
        if self.match(TokenType.COMMA):
            return self.parse_limit_value(), first
        if self.match_word("OFFSET"):
            return first, self.parse_limit_value()
        return first, None

    # ---------------- FROM ----------------

    def parse_table_references(self) -> tuple[TableSource, ...]:
        refs = [self.parse_join_chain()]
        while self.match(TokenType.COMMA):
            refs.append(self.parse_join_chain())
        return tuple(refs)

    def parse_join_chain(self) -> TableSource:
        left = self.parse_table_factor()
        while True:
            kind = None
            natural = False
            if self.at_kw("NATURAL"):
                self.consume()
                natural = True
                kind = "INNER"
                if self.at_kw("LEFT", "RIGHT"):
                    kind = str(self.consume().value)
                    if self.at_kw("OUTER"):
                        self.consume()
                self.expect_word("JOIN")
            elif self.at_kw("JOIN"):
                self.consume()
                kind = "INNER"
            elif self.at_kw("INNER", "CROSS"):
                kind = str(self.consume().value)
                self.expect_word("JOIN")
            elif self.at_kw("STRAIGHT_JOIN"):
                self.consume()
                kind = "STRAIGHT"
            elif self.at_kw("LEFT", "RIGHT"):
                kind = str(self.consume().value)
                if self.at_kw("OUTER"):
                    self.consume()
                self.expect_word("JOIN")
            if kind is None:
                return left

            right = self.parse_table_factor()
            on = None
            using: tuple[str, ...] = ()
            if not natural:
                if self.at_kw("ON"):
                    self.consume()
                    on = self.parse_expr()
                elif self.at_kw("USING"):
                    self.consume()
                    self.expect(TokenType.LPAREN, "Expected '(' after USING")
                    cols = [self.ident("column name")]
                    while self.match(TokenType.COMMA):
                        cols.append(self.ident("column name"))
                    self.expect(TokenType.RPAREN, "Expected ')' after USING columns")
                    using = tuple(cols)
                elif kind in ("LEFT", "RIGHT"):
                    raise self.error(f"{kind} JOIN requires ON or USING")
            left = Join(kind=kind, left=left, right=right, on=on, using=using, natural=natural)

    def parse_table_factor(self) -> TableSource:
        if self.at(TokenType.LPAREN):
            self.consume()
            if self.at_kw("SELECT") or self.at(TokenType.LPAREN):
                query = self.parse_query()
                self.expect(TokenType.RPAREN, "Expected ')' after derived table")
                if self.at_kw("AS"):
                    self.consume()
                if not self.at(TokenType.IDENT):
                    raise self.error("Every derived table must have its own alias")
                return DerivedTable(query=query, alias=self.ident("alias"))
            refs = self.parse_table_references()
            self.expect(TokenType.RPAREN, "Expected ')' after table references")
            if len(refs) != 1:
                joined = refs[0]
                for r in refs[1:]:
                    joined = Join(kind="CROSS", left=joined, right=r)
                return joined
            return refs[0]

        schema, name = self.qualified_name()
        alias = None
        if self.at_kw("AS"):
            self.consume()
            alias = self.ident("alias")
        elif self.at(TokenType.IDENT):
            alias = self.ident("alias")
        hints = self.parse_index_hints()
        return TableRef(name=name, alias=alias, schema=schema, index_hints=hints)

    def parse_index_hints(self) -> tuple[str, ...]:
        hints: list[str] = []
        while self.at_kw("USE", "FORCE", "IGNORE") and self.at_kw("INDEX", "KEY", offset=1):
            start = self.peek()
            self.consume()
            self.consume()
            if self.at_kw("FOR"):
                self.consume()
                if self.at_kw("JOIN"):
                    self.consume()
                else:
                    self.expect_word("ORDER", "GROUP")
                    self.expect_word("BY")
            self.expect(TokenType.LPAREN, "Expected '(' in index hint")
            depth = 1
            while depth:
                t = self.consume()
                if t.typ == TokenType.EOF:
                    raise self.error("Unterminated index hint")
                if t.typ == TokenType.LPAREN:
                    depth += 1
                elif t.typ == TokenType.RPAREN:
                    depth -= 1
            hints.append(self.source_since(start))
        return tuple(hints)

    # ---------------- INSERT / REPLACE ----------------

    def parse_insert(self) -> Insert:
        """
        Parse:
          {INSERT|REPLACE} [LOW_PRIORITY|DELAYED|HIGH_PRIORITY] [IGNORE] [INTO] tbl [(cols)]
              {VALUES|VALUE} (...), (...) | SET c=v, ... | SELECT ...
              [ON DUPLICATE KEY UPDATE c=v, ...]
        """
        replace_ = str(self.consume().value) == "REPLACE"
        while self.at_kw("LOW_PRIORITY", "DELAYED", "HIGH_PRIORITY"):
            self.consume()
        ignore = False
        if self.at_kw("IGNORE"):
            self.consume()
            ignore = True
        if self.at_kw("INTO"):
            self.consume()
        schema, name = self.qualified_name()
        table = TableRef(name=name, schema=schema)

        columns: list[str] = []
        if self.at(TokenType.LPAREN) and not (self.at_kw("SELECT", offset=1) or self.peek(1).typ == TokenType.LPAREN):
            self.consume()
            if not self.at(TokenType.RPAREN):
                columns.append(self.parse_insert_column())
                while self.match(TokenType.COMMA):
                    columns.append(self.parse_insert_column())
            self.expect(TokenType.RPAREN, "Expected ')' after column list")

        rows: list[tuple[Expr, ...]] = []
        query = None
        if self.at_kw("VALUES") or self.at_word("VALUE"):
            self.consume()
            rows.append(self.parse_value_row())
            while self.match(TokenType.COMMA):
                rows.append(self.parse_value_row())
            if self.at_kw("AS"):
                raise self.error("INSERT ... VALUES ... AS row_alias is not supported")
        elif self.at_kw("SET"):
            if columns:
                raise self.error("INSERT ... SET cannot have a column list")
            self.consume()
            values: list[Expr] = []
            while True:
                columns.append(self.parse_insert_column())
                self.expect_op("=", "Expected '=' in SET assignment")
                values.append(self.parse_expr())
                if not self.match(TokenType.COMMA):
                    break
            rows.append(tuple(values))
        elif self.at_kw("SELECT") or self.at(TokenType.LPAREN):
            query = self.parse_query()
        else:
            raise self.error("Expected VALUES, SET or SELECT")

        on_duplicate: list[Assignment] = []
        if self.at_kw("ON"):
            if replace_:
                raise self.error("REPLACE does not accept ON DUPLICATE KEY UPDATE")
            self.consume()
            self.expect_word("DUPLICATE")
            self.expect_word("KEY")
            self.expect_word("UPDATE")
            on_duplicate.append(self.parse_assignment())
            while self.match(TokenType.COMMA):
                on_duplicate.append(self.parse_assignment())

        return Insert(
            table=table,
            columns=tuple(columns),
            rows=tuple(rows),
            query=query,
            ignore=ignore,
            replace=replace_,
            on_duplicate=tuple(on_duplicate),
        )

    def parse_insert_column(self) -> str:
        name = self.ident("column name")
        while self.match(TokenType.DOT):
            name = self.ident("column name")
        return name

    def parse_value_row(self) -> tuple[Expr, ...]:
        self.expect(TokenType.LPAREN, "Expected '(' before values")
        vals: list[Expr] = []
        if not self.at(TokenType.RPAREN):
            vals.append(self.parse_expr())
            while self.match(TokenType.COMMA):
                vals.append(self.parse_expr())
        self.expect(TokenType.RPAREN, "Expected ')' after values")
        return tuple(vals)

    # ---------------- UPDATE ----------------

    def parse_update(self) -> Update:
        """
        Parse:
          UPDATE [LOW_PRIORITY] [IGNORE] table_refs SET c=v [,c=v]* [WHERE ...] [ORDER BY ...] [LIMIT n]
        """
        self.consume()
        ignore = False
        while self.at_kw("LOW_PRIORITY", "IGNORE"):
            if str(self.consume().value) == "IGNORE":
                ignore = True
        refs = self.parse_table_references()
        table: TableSource = refs[0]
        for r in refs[1:]:
            table = Join(kind="CROSS", left=table, right=r)
        if not self.at_kw("SET"):
            raise self.error("Expected SET")
        self.consume()

        assignments = [self.parse_assignment()]
        while self.match(TokenType.COMMA):
            assignments.append(self.parse_assignment())

        where = self.parse_where_opt()
        order_by = self.parse_order_by_opt()
        limit, offset = self.parse_limit_opt()
        if offset is not None:
            raise self.error("UPDATE does not accept an OFFSET")
        return Update(
            table=table,
            assignments=tuple(assignments),
            where=where,
            order_by=order_by,
            limit=limit,
            ignore=ignore,
        )

    def parse_assignment(self) -> Assignment:
        """
        Parse:
          [tbl.]col = <expr>
        """
        first = self.ident("column name")
        column = ColumnRef(column=first)
        if self.match(TokenType.DOT):
            column = ColumnRef(table=first, column=self.ident("column name"))
        self.expect_op("=", "Expected '=' in assignment")
        return Assignment(column=column, value=self.parse_expr())

    # ---------------- DELETE ----------------

    def parse_delete(self) -> Delete:
        """
        Parse:
          DELETE [LOW_PRIORITY] [QUICK] [IGNORE] FROM tbl [[AS] alias] [WHERE] [ORDER BY] [LIMIT]
          DELETE [opts] t1[.*] [, t2[.*]] FROM table_refs [WHERE]
          DELETE [opts] FROM t1[.*] [, t2[.*]] USING table_refs [WHERE]
        """
        self.consume()
        ignore = False
        while self.at_kw("LOW_PRIORITY", "IGNORE") or self.at_word("QUICK"):
            if str(self.consume().value).upper() == "IGNORE":
                ignore = True

        if self.at_kw("FROM"):
            self.consume()
            targets = self.parse_delete_targets()
            if self.at_kw("USING"):
                self.consume()
                from_ = self.parse_table_references()
                where = self.parse_where_opt()
                return Delete(targets=tuple(targets), from_=from_, where=where, ignore=ignore)
            if len(targets) != 1:
                raise self.error("Multi-table DELETE requires USING")
            if self.at_kw("JOIN", "INNER", "LEFT", "RIGHT", "CROSS", "STRAIGHT_JOIN", "NATURAL"):
                raise self.error("Joins in DELETE require the multi-table syntax")
            alias = None
            if self.at_kw("AS"):
                self.consume()
                alias = self.ident("alias")
            elif self.at(TokenType.IDENT):
                alias = self.ident("alias")
            where = self.parse_where_opt()
            order_by = self.parse_order_by_opt()
            limit, offset = self.parse_limit_opt()
            if offset is not None:
                raise self.error("DELETE does not accept an OFFSET")
            return Delete(
                table=TableRef(name=targets[0], alias=alias),
                where=where,
                order_by=order_by,
                limit=limit,
                ignore=ignore,
            )

        targets = self.parse_delete_targets()
        if not self.at_kw("FROM"):
            raise self.error("Expected FROM")
        self.consume()
        from_ = self.parse_table_references()
        where = self.parse_where_opt()
        return Delete(targets=tuple(targets), from_=from_, where=where, ignore=ignore)

    def parse_delete_targets(self) -> list[str]:
        targets = [self.parse_delete_target()]
        while self.match(TokenType.COMMA):
            targets.append(self.parse_delete_target())
        return targets

    def parse_delete_target(self) -> str:
        _, name = self.qualified_name()
        if self.at(TokenType.DOT) and self.peek(1).typ == TokenType.OP and self.peek(1).value == "*":
            self.consume()
            self.consume()
        return name

    # ---------------- CREATE ----------------

    def parse_create(self) -> Statement:
        """
        CREATE statement dispatcher:
          - CREATE [TEMPORARY] TABLE ...
          - CREATE [UNIQUE|FULLTEXT|SPATIAL] INDEX ...
        """
        self.consume()
        temporary = self.match_word("TEMPORARY") is not None
        if self.at_kw("TABLE"):
            self.consume()
            return self.parse_create_table_after_keyword(temporary)
        if temporary:
            raise self.error("Expected TABLE after TEMPORARY")
        kind = "INDEX"
        if self.at_kw("UNIQUE", "FULLTEXT", "SPATIAL"):
            kind = str(self.consume().value)
        if self.at_kw("INDEX"):
            self.consume()
            return self.parse_create_index_after_keyword(kind)
        raise self.error("Only CREATE TABLE and CREATE INDEX are supported")

    def parse_create_table_after_keyword(self, temporary: bool) -> CreateTable:
        """
        Parse:
          CREATE TABLE [IF NOT EXISTS] <name> ( <create_definition>, ... ) [table_options]
          CREATE TABLE [IF NOT EXISTS] <name> [(] LIKE <old> [)]
        """
        if_not_exists = False
        if self.at_kw("IF"):
            self.consume()
            if not self.at_kw("NOT"):
                raise self.error("Expected NOT EXISTS")
            self.consume()
            self.expect_word("EXISTS")
            if_not_exists = True
        _, name = self.qualified_name()

        if self.at_kw("LIKE") or (self.at(TokenType.LPAREN) and self.at_kw("LIKE", offset=1)):
            paren = self.match(TokenType.LPAREN)
            self.consume()
            _, like = self.qualified_name()
            if paren:
                self.expect(TokenType.RPAREN, "Expected ')' after LIKE table")
            return CreateTable(name=name, if_not_exists=if_not_exists, like=like, temporary=temporary)

        self.expect(TokenType.LPAREN, "Expected '(' after table name")
        columns: list[ColumnDef] = []
        keys: list[KeyDef] = []
        while True:
            key = self.parse_key_definition_opt()
            if key is not None:
                keys.append(key)
            else:
                columns.append(self.parse_column_def())
            if not self.match(TokenType.COMMA):
                break
        self.expect(TokenType.RPAREN, "Expected ')' after column definitions")

        options = self.parse_table_options()
        if self.at_kw("SELECT") or self.at_kw("AS") or self.at_kw("IGNORE", "REPLACE"):
            raise self.error("CREATE TABLE ... SELECT is not supported")
        if self.at_word("PARTITION"):
            raise self.error("Partitioning is not supported")
        return CreateTable(
            name=name,
            columns=tuple(columns),
            keys=tuple(keys),
            options=options,
            if_not_exists=if_not_exists,
            temporary=temporary,
        )

    def parse_key_definition_opt(self) -> KeyDef | None:
        """
        Parse a key / constraint definition if one starts here:
          [CONSTRAINT [sym]] PRIMARY KEY (parts)
          {INDEX|KEY} [name] (parts)
          [CONSTRAINT [sym]] UNIQUE [INDEX|KEY] [name] (parts)
          {FULLTEXT|SPATIAL} [INDEX|KEY] [name] (parts)
          [CONSTRAINT [sym]] FOREIGN KEY [name] (cols) REFERENCES tbl (cols) [ON ...]
        """
        symbol = None
        if self.at_kw("CONSTRAINT"):
            self.consume()
            if self.at(TokenType.IDENT):
                symbol = self.ident()
            if not self.at_kw("PRIMARY", "UNIQUE", "FOREIGN", "CHECK"):
                raise self.error("Expected PRIMARY, UNIQUE or FOREIGN after CONSTRAINT")

        if self.at_kw("CHECK"):
            raise self.error("CHECK constraints are not supported")

        if self.at_kw("PRIMARY"):
            self.consume()
            self.expect_word("KEY")
            self.parse_index_type_opt()
            parts = self.parse_key_parts()
            self.parse_index_options()
            return KeyDef(kind="PRIMARY", name="PRIMARY", parts=parts)

        if self.at_kw("UNIQUE"):
            self.consume()
            if self.at_kw("INDEX", "KEY"):
                self.consume()
            name = self.parse_key_name_opt() or symbol
            self.parse_index_type_opt()
            parts = self.parse_key_parts()
            self.parse_index_options()
            return KeyDef(kind="UNIQUE", name=name, parts=parts)

        if self.at_kw("INDEX", "KEY"):
            self.consume()
            name = self.parse_key_name_opt()
            self.parse_index_type_opt()
            parts = self.parse_key_parts()
            self.parse_index_options()
            return KeyDef(kind="INDEX", name=name, parts=parts)

        if self.at_kw("FULLTEXT", "SPATIAL"):
            kind = str(self.consume().value)
            if self.at_kw("INDEX", "KEY"):
                self.consume()
            name = self.parse_key_name_opt()
            parts = self.parse_key_parts()
            self.parse_index_options()
            return KeyDef(kind=kind, name=name, parts=parts)

        if self.at_kw("FOREIGN"):
            self.consume()
            self.expect_word("KEY")
            name = self.parse_key_name_opt() or symbol
            parts = self.parse_key_parts()
            if not self.at_kw("REFERENCES"):
                raise self.error("Expected REFERENCES")
            self.consume()
            _, ref_table = self.qualified_name()
            ref_parts = self.parse_key_parts()
            self.parse_reference_actions()
            return KeyDef(
                kind="FOREIGN",
                name=name,
                parts=parts,
                ref_table=ref_table,
                ref_columns=tuple(p.column for p in ref_parts),
            )
        return None

    def parse_key_name_opt(self) -> str | None:
        if self.at(TokenType.IDENT) and not self.at_word("USING"):
            return self.ident()
        return None

    def parse_index_type_opt(self) -> None:
        if self.at_kw("USING"):
            self.consume()
            self.expect_word("BTREE", "HASH")

    def parse_index_options(self) -> None:
        while True:
            if self.at_kw("USING"):
                self.parse_index_type_opt()
            elif self.at_word("KEY_BLOCK_SIZE"):
                self.consume()
                self.match_op("=")
                self.int_value()
            elif self.at_word("COMMENT"):
                self.consume()
                self.string_value("comment")
            elif self.at_word("VISIBLE", "INVISIBLE"):
                self.consume()
            elif self.at_kw("WITH") and self.at_word("PARSER", offset=1):
                self.consume()
                self.consume()
                self.ident("parser name")
            else:
                return

    def parse_reference_actions(self) -> None:
        while self.at_kw("ON") or self.at_kw("MATCH"):
            if self.at_kw("MATCH"):
                self.consume()
                self.expect_word("FULL", "PARTIAL", "SIMPLE")
                continue
            self.consume()
            self.expect_word("DELETE", "UPDATE")
            if self.match_word("RESTRICT", "CASCADE"):
                continue
            if self.at_kw("SET"):
                self.consume()
                self.expect_word("NULL", "DEFAULT")
                continue
            self.expect_word("NO")
            self.expect_word("ACTION")

    def parse_key_parts(self) -> tuple[KeyPart, ...]:
        self.expect(TokenType.LPAREN, "Expected '(' before key columns")
        parts = [self.parse_key_part()]
        while self.match(TokenType.COMMA):
            parts.append(self.parse_key_part())
        self.expect(TokenType.RPAREN, "Expected ')' after key columns")
        return tuple(parts)

    def parse_key_part(self) -> KeyPart:
        if self.at(TokenType.LPAREN):
            raise self.error("Functional key parts are not supported")
        column = self.ident("column name")
        length = None
        if self.match(TokenType.LPAREN):
            length = self.int_value("prefix length")
            self.expect(TokenType.RPAREN, "Expected ')' after prefix length")
        desc = False
        if self.at_kw("ASC"):
            self.consume()
        elif self.at_kw("DESC"):
            self.consume()
            desc = True
        return KeyPart(column=column, length=length, desc=desc)

    def parse_column_def(self) -> ColumnDef:
        """
        Parse:
          <colname> <type> [attributes...]
        Attributes may appear in any order.
        """
        name = self.ident("column name")
        typ = self.parse_type_spec()

        not_null = False
        default: Expr | None = None
        has_default = False
        auto_increment = False
        primary_key = False
        unique = False
        on_update_now = False
        comment = None
        charset = typ.charset
        collation = typ.collation

        while True:
            if self.at_kw("NOT"):
                self.consume()
                if not self.at_kw("NULL"):
                    raise self.error("Expected NULL after NOT")
                self.consume()
                not_null = True
                continue
            if self.at_kw("NULL"):
                self.consume()
                continue
            if self.at_kw("DEFAULT"):
                self.consume()
                default = self.parse_default_value()
                has_default = True
                continue
            if self.at_word("AUTO_INCREMENT"):
                self.consume()
                auto_increment = True
                continue
            if self.at_kw("UNIQUE"):
                self.consume()
                if self.at_kw("KEY"):
                    self.consume()
                unique = True
                continue
            if self.at_kw("PRIMARY"):
                self.consume()
                self.expect_word("KEY")
                primary_key = True
                continue
            if self.at_kw("KEY"):
                self.consume()
                primary_key = True
                continue
            if self.at_word("COMMENT"):
                self.consume()
                comment = self.string_value("comment")
                continue
            if self.at_kw("COLLATE"):
                self.consume()
                collation = self.parse_charset_name()
                continue
            if self.at_kw("CHARACTER") or self.at_word("CHARSET"):
                charset = self.parse_charset_clause()
                continue
            if self.at_kw("ON"):
                self.consume()
                self.expect_word("UPDATE")
                self.parse_now_function()
                on_update_now = True
                continue
            if self.at_word("COLUMN_FORMAT", "STORAGE"):
                self.consume()
                self.ident()
                continue
            if self.at_word("VISIBLE", "INVISIBLE"):
                self.consume()
                continue
            if self.at_kw("REFERENCES"):
                raise self.error("Inline REFERENCES is not supported; use FOREIGN KEY")
            if self.at_kw("CHECK"):
                raise self.error("CHECK constraints are not supported")
            if self.at_word("GENERATED") or self.at_kw("AS"):
                raise self.error("Generated columns are not supported")
            break

        if charset != typ.charset or collation != typ.collation:
            typ = replace(typ, charset=charset, collation=collation)
        return ColumnDef(
            name=name,
            typ=typ,
            not_null=not_null,
            default=default,
            has_default=has_default,
            auto_increment=auto_increment,
            primary_key=primary_key,
            unique=unique,
            on_update_now=on_update_now,
            comment=comment,
        )

    def parse_now_function(self) -> FuncCall:
        if not self.at_word("CURRENT_TIMESTAMP", "NOW", "LOCALTIME", "LOCALTIMESTAMP"):
            raise self.error("Expected CURRENT_TIMESTAMP")
        self.consume()
        if self.match(TokenType.LPAREN):
            if self.at(TokenType.INT):
                self.consume()
            self.expect(TokenType.RPAREN, "Expected ')'")
        return FuncCall(name="CURRENT_TIMESTAMP")

    def parse_default_value(self) -> Expr:
        """
        Parse a column DEFAULT: literal, signed number, CURRENT_TIMESTAMP, or (expr).
        """
        if self.at_word("CURRENT_TIMESTAMP", "NOW", "LOCALTIME", "LOCALTIMESTAMP"):
            return self.parse_now_function()
        if self.at(TokenType.LPAREN):
            self.consume()
            expr = self.parse_expr()
            self.expect(TokenType.RPAREN, "Expected ')' after DEFAULT expression")
            return expr
        sign = self.match_op("-", "+")
        t = self.peek()
        if t.typ in (TokenType.INT, TokenType.NUMBER):
            self.consume()
            value = t.value
            if sign == "-":
                value = -value  # type: ignore[operator]
            return Literal(value)
        if sign:
            raise self.error("Expected number after sign")
        if t.typ in (TokenType.STRING, TokenType.HEX):
            self.consume()
            return Literal(t.value)
        if self.at_kw("NULL"):
            self.consume()
            return Literal(None)
        if self.at_kw("TRUE", "FALSE"):
            return Literal(1 if str(self.consume().value) == "TRUE" else 0)
        if t.typ == TokenType.IDENT and not t.quoted and str(t.value).lower() in ("b",):
            raise self.error("Bit literals are not supported")
        raise self.error("Expected DEFAULT value")

    def parse_charset_name(self) -> str:
        t = self.peek()
        if t.typ in (TokenType.IDENT, TokenType.STRING) or (t.typ == TokenType.KEYWORD and t.value in ("BINARY", "DEFAULT")):
            self.consume()
            return str(t.value).lower()
        raise self.error("Expected character set or collation name")

    def parse_charset_clause(self) -> str:
        if self.at_kw("CHARACTER"):
            self.consume()
            self.expect_word("SET")
        else:
            self.consume()
        return self.parse_charset_name()

    def parse_type_spec(self) -> TypeSpec:
        """
        Parse:
          TYPE := name [ '(' INT (',' INT)* ')' | '(' 'v1', 'v2', ... ')' ]
                  [UNSIGNED|SIGNED] [ZEROFILL] [CHARACTER SET x] [COLLATE y] [BINARY]

        Examples:
          INT(11) UNSIGNED
          VARCHAR(255) CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci
          ENUM('a','b')
        """
        t = self.peek()
        if t.typ == TokenType.IDENT and not t.quoted:
            type_name = str(self.consume().value).upper()
        elif t.typ == TokenType.KEYWORD and t.value in ("BINARY", "CHARACTER", "SET"):
            type_name = str(self.consume().value)
        else:
            raise self.error("Expected type name")
        nxt = self.peek()
        if nxt.typ in (TokenType.IDENT, TokenType.KEYWORD) and not nxt.quoted:
            combined = TWO_WORD_TYPES.get((type_name, str(nxt.value).upper()))
            if combined:
                self.consume()
                type_name = combined
        if type_name == "CHARACTER":
            type_name = "CHAR"

        params: list[int] = []
        values: list[str] = []
        if self.match(TokenType.LPAREN):
            if type_name in ("ENUM", "SET"):
                values.append(self.string_value("ENUM/SET member"))
                while self.match(TokenType.COMMA):
                    values.append(self.string_value("ENUM/SET member"))
            else:
                params.append(self.int_value("type parameter"))
                while self.match(TokenType.COMMA):
                    params.append(self.int_value("type parameter"))
            self.expect(TokenType.RPAREN, "Expected ')' after type parameters")

        unsigned = False
        zerofill = False
        charset = None
        collation = None
        while True:
            if self.match_word("UNSIGNED"):
                unsigned = True
                continue
            if self.match_word("SIGNED"):
                continue
            if self.match_word("ZEROFILL"):
                zerofill = True
                unsigned = True
                continue
            if (self.at_kw("CHARACTER") and self.at_kw("SET", offset=1)) or self.at_word("CHARSET"):
                charset = self.parse_charset_clause()
                continue
            if self.at_kw("COLLATE"):
                self.consume()
                collation = self.parse_charset_name()
                continue
            if self.at_kw("BINARY") and type_name not in ("BINARY",):
                self.consume()
                collation = collation or "binary"
                continue
            break

        return TypeSpec(
            name=type_name,
            params=tuple(params),
            unsigned=unsigned,
            zerofill=zerofill,
            values=tuple(values),
            charset=charset,
            collation=collation,
        )

    def parse_table_options(self, allow_comma: bool = True) -> dict[str, object]:
        """
        Parse table options: ENGINE=x, [DEFAULT] CHARSET=x, COLLATE=x, AUTO_INCREMENT=n, COMMENT='x', ...
        Keys are lowercased; CHARACTER SET / CHARSET become "charset".
        """
        options: dict[str, object] = {}
        while True:
            if allow_comma and options:
                self.match(TokenType.COMMA)
            if self.at_kw("DEFAULT"):
                self.consume()
            if self.at_kw("CHARACTER") or self.at_word("CHARSET"):
                if self.at_kw("CHARACTER"):
                    self.consume()
                    self.expect_word("SET")
                else:
                    self.consume()
                self.match_op("=")
                options["charset"] = self.parse_charset_name()
                continue
            if self.at_kw("COLLATE"):
                self.consume()
                self.match_op("=")
                options["collate"] = self.parse_charset_name()
                continue
            t = self.peek()
            if t.typ == TokenType.IDENT and not t.quoted and self.peek(1).typ in (
                TokenType.OP, TokenType.IDENT, TokenType.INT, TokenType.STRING,
            ) and not self.at_word("PARTITION"):
                key = str(self.consume().value).lower()
                self.match_op("=")
                v = self.peek()
                if v.typ in (TokenType.IDENT, TokenType.INT, TokenType.STRING) or (
                    v.typ == TokenType.KEYWORD and v.value == "DEFAULT"
                ):
                    self.consume()
                    options[key] = v.value
                    continue
                raise self.error(f"Expected value for table option {key}")
            return options

    def parse_create_index_after_keyword(self, kind: str) -> CreateIndex:
        """
        Parse:
          CREATE [UNIQUE|FULLTEXT] INDEX <idx_name> [USING BTREE] ON <table> (<parts>)
        """
        idx_name = self.ident("index name")
        self.parse_index_type_opt()
        if not self.at_kw("ON"):
            raise self.error("Expected ON after index name")
        self.consume()
        _, table = self.qualified_name()
        parts = self.parse_key_parts()
        self.parse_index_options()
        return CreateIndex(table=table, key=KeyDef(kind=kind, name=idx_name, parts=parts))

    # ---------------- ALTER ----------------

    def parse_alter(self) -> AlterTable:
        """
        Parse:
          ALTER [IGNORE] TABLE <name> <action> [, <action>]*
        """
        self.consume()
        if self.at_kw("IGNORE"):
            self.consume()
        if not self.at_kw("TABLE"):
            raise self.error("Only ALTER TABLE is supported")
        self.consume()
        _, name = self.qualified_name()
        actions: list[AlterAction] = []
        while True:
            actions.extend(self.parse_alter_action())
            if not self.match(TokenType.COMMA):
                break
        return AlterTable(name=name, actions=tuple(actions))

    def parse_position_opt(self) -> tuple[bool, str | None]:
        if self.match_word("FIRST"):
            return True, None
        if self.match_word("AFTER"):
            return False, self.ident("column name")
        return False, None

    def parse_alter_action(self) -> list[AlterAction]:
        if self.at_kw("ADD"):
            self.consume()
            key = self.parse_key_definition_opt()
            if key is not None:
                return [AddKey(key=key)]
            if self.at_kw("COLUMN"):
                self.consume()
            if self.at(TokenType.LPAREN):
                self.consume()
                cols = [AddColumn(column=self.parse_column_def())]
                while self.match(TokenType.COMMA):
                    cols.append(AddColumn(column=self.parse_column_def()))
                self.expect(TokenType.RPAREN, "Expected ')' after column definitions")
                return list(cols)
            col = self.parse_column_def()
            first, after = self.parse_position_opt()
            return [AddColumn(column=col, first=first, after=after)]

        if self.at_kw("DROP"):
            self.consume()
            if self.at_kw("PRIMARY"):
                self.consume()
                self.expect_word("KEY")
                return [DropKey(name="PRIMARY")]
            if self.at_kw("INDEX", "KEY"):
                self.consume()
                return [DropKey(name=self.ident("index name"))]
            if self.at_kw("FOREIGN"):
                self.consume()
                self.expect_word("KEY")
                return [DropKey(name=self.ident("foreign key name"), foreign=True)]
            if self.at_kw("COLUMN"):
                self.consume()
            return [DropColumn(name=self.ident("column name"))]

        if self.at_kw("CHANGE"):
            self.consume()
            if self.at_kw("COLUMN"):
                self.consume()
            old = self.ident("column name")
            col = self.parse_column_def()
            first, after = self.parse_position_opt()
            return [ChangeColumn(old_name=old, column=col, first=first, after=after)]

        if self.at_word("MODIFY"):
            self.consume()
            if self.at_kw("COLUMN"):
                self.consume()
            col = self.parse_column_def()
            first, after = self.parse_position_opt()
            return [ChangeColumn(old_name=col.name, column=col, first=first, after=after)]

        if self.at_kw("ALTER"):
            self.consume()
            if self.at_kw("COLUMN"):
                self.consume()
            name = self.ident("column name")
            if self.at_kw("SET"):
                self.consume()
                if not self.at_kw("DEFAULT"):
                    raise self.error("Expected DEFAULT")
                self.consume()
                return [AlterColumnDefault(name=name, default=self.parse_default_value())]
            if self.at_kw("DROP"):
                self.consume()
                if not self.at_kw("DEFAULT"):
                    raise self.error("Expected DEFAULT")
                self.consume()
                return [AlterColumnDefault(name=name, drop=True)]
            raise self.error("Expected SET DEFAULT or DROP DEFAULT")

        if self.at_kw("RENAME"):
            self.consume()
            if self.at_kw("COLUMN"):
                self.consume()
                old = self.ident("column name")
                if not self.at_kw("TO"):
                    raise self.error("Expected TO")
                self.consume()
                return [RenameColumn(old_name=old, new_name=self.ident("column name"))]
            if self.at_kw("INDEX", "KEY"):
                self.consume()
                old = self.ident("index name")
                if not self.at_kw("TO"):
                    raise self.error("Expected TO")
                self.consume()
                return [RenameKey(old_name=old, new_name=self.ident("index name"))]
            if self.at_kw("TO", "AS"):
                self.consume()
            _, new = self.qualified_name()
            return [RenameTo(new_name=new)]

        if self.at_kw("CONVERT"):
            self.consume()
            if not self.at_kw("TO"):
                raise self.error("Expected TO")
            self.consume()
            charset = self.parse_charset_clause()
            options: dict[str, object] = {"charset": charset}
            if self.at_kw("COLLATE"):
                self.consume()
                options["collate"] = self.parse_charset_name()
            return [TableOptions(options=options, convert=True)]

        if self.at_word("ALGORITHM") or self.at_kw("LOCK"):
            self.consume()
            self.match_op("=")
            self.consume()
            return []

        if self.at_kw("ORDER"):
            raise self.error("ALTER TABLE ... ORDER BY is not supported")

        options = self.parse_table_options(allow_comma=False)
        if not options:
            raise self.error("Unsupported ALTER TABLE action")
        return [TableOptions(options=options)]

    # ---------------- DROP / RENAME ----------------

    def parse_drop(self) -> Statement:
        self.consume()
        temporary = self.match_word("TEMPORARY") is not None
        if self.at_kw("TABLE") or self.at_word("TABLES"):
            self.consume()
            if_exists = False
            if self.at_kw("IF"):
                self.consume()
                self.expect_word("EXISTS")
                if_exists = True
            names = [self.qualified_name()[1]]
            while self.match(TokenType.COMMA):
                names.append(self.qualified_name()[1])
            self.match_word("RESTRICT", "CASCADE")
            return DropTable(names=tuple(names), if_exists=if_exists, temporary=temporary)
        if self.at_kw("INDEX"):
            self.consume()
            name = self.ident("index name")
            if not self.at_kw("ON"):
                raise self.error("Expected ON")
            self.consume()
            _, table = self.qualified_name()
            return DropIndex(name=name, table=table)
        raise self.error("Only DROP TABLE and DROP INDEX are supported")

    def parse_rename_table(self) -> RenameTable:
        self.consume()
        if not self.at_kw("TABLE"):
            raise self.error("Expected TABLE after RENAME")
        self.consume()
        pairs = []
        while True:
            _, old = self.qualified_name()
            if not self.at_kw("TO"):
                raise self.error("Expected TO")
            self.consume()
            _, new = self.qualified_name()
            pairs.append((old, new))
            if not self.match(TokenType.COMMA):
                break
        return RenameTable(pairs=tuple(pairs))

    # ---------------- SHOW / DESCRIBE ----------------

    def parse_show_filter(self) -> str | None:
        if self.at_kw("LIKE"):
            self.consume()
            return self.string_value("LIKE pattern")
        if self.at_kw("WHERE"):
            raise self.error("SHOW ... WHERE is not supported")
        return None

    def parse_show_from(self) -> str:
        if not self.at_kw("FROM", "IN"):
            raise self.error("Expected FROM")
        self.consume()
        _, table = self.qualified_name()
        if self.at_kw("FROM", "IN"):
            self.consume()
            self.ident("database name")
        return table

    def parse_show(self) -> Show:
        self.consume()
        full = self.match_word("FULL") is not None
        if self.match_word("TABLES"):
            if self.at_kw("FROM", "IN"):
                self.consume()
                self.ident("database name")
            return Show(kind="TABLES", like=self.parse_show_filter(), full=full)
        if self.match_word("COLUMNS", "FIELDS"):
            table = self.parse_show_from()
            return Show(kind="COLUMNS", table=table, like=self.parse_show_filter(), full=full)
        if self.at_kw("INDEX", "KEYS") or self.at_word("INDEXES"):
            self.consume()
            table = self.parse_show_from()
            return Show(kind="INDEX", table=table)
        if self.at_kw("CREATE"):
            self.consume()
            if not self.at_kw("TABLE"):
                raise self.error("Only SHOW CREATE TABLE is supported")
            self.consume()
            _, table = self.qualified_name()
            return Show(kind="CREATE TABLE", table=table)
        if self.at_kw("TABLE") and self.at_word("STATUS", offset=1):
            self.consume()
            self.consume()
            if self.at_kw("FROM", "IN"):
                self.consume()
                self.ident("database name")
            return Show(kind="TABLE STATUS", like=self.parse_show_filter())
        self.match_word("GLOBAL", "SESSION", "LOCAL")
        if self.match_word("VARIABLES"):
            return Show(kind="VARIABLES", like=self.parse_show_filter())
        if self.match_word("DATABASES", "SCHEMAS"):
            return Show(kind="DATABASES", like=self.parse_show_filter())
        raise self.error("Unsupported SHOW statement")

    def parse_describe(self) -> Show:
        self.consume()
        if self.at_kw("SELECT", "INSERT", "UPDATE", "DELETE", "REPLACE"):
            raise self.error("EXPLAIN of queries is not supported")
        _, table = self.qualified_name()
        column = None
        if self.at(TokenType.IDENT):
            column = self.ident("column name")
        elif self.at(TokenType.STRING):
            column = self.string_value()
        return Show(kind="COLUMNS", table=table, column=column)

    # ---------------- SET / transactions / locks ----------------

    def parse_set(self) -> SetVariables:
        """
        Parse:
          SET NAMES x [COLLATE y] | SET CHARACTER SET x | SET TRANSACTION ...
          SET [GLOBAL|SESSION|LOCAL] var = expr [, ...] | SET @@var = expr | SET @user = expr
        """
        self.consume()
        if self.match_word("NAMES"):
            charset = self.parse_charset_name()
            assignments: list[tuple[str, Expr]] = [("character_set_client", Literal(charset))]
            if self.at_kw("COLLATE"):
                self.consume()
                assignments.append(("collation_connection", Literal(self.parse_charset_name())))
            return SetVariables(assignments=tuple(assignments))
        if self.at_kw("CHARACTER") or self.at_word("CHARSET"):
            return SetVariables(assignments=(("character_set_client", Literal(self.parse_charset_clause())),))
        scope_words = ("GLOBAL", "SESSION", "LOCAL")
        self.match_word(*scope_words)
        if self.match_word("TRANSACTION"):
            start = self.peek()
            while not self.at(TokenType.EOF) and not self.at(TokenType.SEMI):
                self.consume()
            return SetVariables(assignments=(("transaction_characteristics", Literal(self.source_since(start))),))

        assignments = []
        while True:
            self.match_word(*scope_words)
            t = self.peek()
            if t.typ == TokenType.VARIABLE:
                self.consume()
                var = Variable(str(t.value))
                name = var.bare_name if var.system else "@" + var.bare_name
            else:
                name = self.ident("variable name").lower()
            if not self.match_op("=", ":="):
                raise self.error("Expected '=' in SET")
            nxt = self.peek()
            following = self.peek(1)
            if nxt.typ == TokenType.IDENT and following.typ in (TokenType.COMMA, TokenType.SEMI, TokenType.EOF):
                self.consume()
                value: Expr = Literal(str(nxt.value))
            elif nxt.typ == TokenType.KEYWORD and nxt.value in ("ON", "DEFAULT") and following.typ in (
                TokenType.COMMA, TokenType.SEMI, TokenType.EOF,
            ):
                self.consume()
                value = Literal(str(nxt.value))
            else:
                value = self.parse_expr()
            assignments.append((name, value))
            if not self.match(TokenType.COMMA):
                break
        return SetVariables(assignments=tuple(assignments))

    def parse_transaction(self) -> Transaction:
        word = str(self.consume().value).upper()
        if word == "START":
            self.expect_word("TRANSACTION")
            while self.at_word("READ", "WITH"):
                if self.match_word("READ"):
                    self.expect_word("ONLY", "WRITE")
                else:
                    self.consume()
                    self.expect_word("CONSISTENT")
                    self.expect_word("SNAPSHOT")
                self.match(TokenType.COMMA)
            return Transaction(action="BEGIN")
        if word == "BEGIN":
            self.match_word("WORK")
            return Transaction(action="BEGIN")
        if word == "SAVEPOINT":
            return Transaction(action="SAVEPOINT", savepoint=self.ident("savepoint name"))
        if word == "RELEASE":
            self.expect_word("SAVEPOINT")
            return Transaction(action="RELEASE", savepoint=self.ident("savepoint name"))
        self.match_word("WORK")
        if word == "ROLLBACK" and self.at_kw("TO"):
            self.consume()
            self.match_word("SAVEPOINT")
            return Transaction(action="ROLLBACK TO", savepoint=self.ident("savepoint name"))
        if self.at_kw("AND"):
            self.consume()
            self.match_word("NO")
            self.expect_word("CHAIN")
        return Transaction(action=word)

    def parse_lock_tables(self) -> LockTables:
        unlock = str(self.consume().value) == "UNLOCK"
        self.expect_word("TABLES", "TABLE")
        if unlock:
            return LockTables(unlock=True)
        tables = []
        while True:
            _, name = self.qualified_name()
            tables.append(name)
            if self.at_kw("AS"):
                self.consume()
                self.ident("alias")
            elif self.at(TokenType.IDENT) and not self.at_word("READ", "WRITE"):
                self.ident("alias")
            if self.match_word("READ"):
                self.match_word("LOCAL")
            else:
                self.match_word("LOW_PRIORITY")
                self.expect_word("WRITE")
            if not self.match(TokenType.COMMA):
                break
        return LockTables(unlock=False, tables=tuple(tables))

    # ---------------- expressions ----------------

    def parse_expr(self) -> Expr:
        """Parse a full expression (lowest precedence: OR)."""
        return self.parse_or()

    def parse_or(self) -> Expr:
        left = self.parse_xor()
        while self.at_kw("OR") or self.at_op("||"):
            self.consume()
            left = Binary("OR", left, self.parse_xor())
        return left

    def parse_xor(self) -> Expr:
        left = self.parse_and()
        while self.at_kw("XOR"):
            self.consume()
            left = Binary("XOR", left, self.parse_and())
        return left

    def parse_and(self) -> Expr:
        left = self.parse_not()
        while self.at_kw("AND") or self.at_op("&&"):
            self.consume()
            left = Binary("AND", left, self.parse_not())
        return left

    def parse_not(self) -> Expr:
        if self.at_kw("NOT"):
            self.consume()
            return Unary("NOT", self.parse_not())
        return self.parse_predicate()

    def parse_predicate(self) -> Expr:
        """
        Parse comparison-level predicates:
          a = b, a <=> b, a IS [NOT] NULL, a [NOT] IN (...), a [NOT] BETWEEN x AND y,
          a [NOT] LIKE p [ESCAPE e], a [NOT] REGEXP p
        """
        left = self.parse_bit_or()
        while True:
            op = self.match_op(*COMPARISON_OPS)
            if op is not None:
                if self.at_word("ANY", "SOME") or self.at_kw("ALL"):
                    raise self.error("ANY/ALL subquery comparisons are not supported")
                left = Binary("<>" if op == "!=" else op, left, self.parse_bit_or())
                continue

            if self.at_kw("IS"):
                self.consume()
                negated = False
                if self.at_kw("NOT"):
                    self.consume()
                    negated = True
                if self.at_kw("NULL") or self.at_word("UNKNOWN"):
                    self.consume()
                    left = IsTest(left, None, negated)
                elif self.at_kw("TRUE", "FALSE"):
                    left = IsTest(left, str(self.consume().value) == "TRUE", negated)
                else:
                    raise self.error("Expected NULL, TRUE, FALSE or UNKNOWN after IS")
                continue

            negated = False
            if self.at_kw("NOT") and self.at_kw("IN", "BETWEEN", "LIKE", "REGEXP", "RLIKE", offset=1):
                self.consume()
                negated = True

            if self.at_kw("IN"):
                self.consume()
                self.expect(TokenType.LPAREN, "Expected '(' after IN")
                if self.at_kw("SELECT"):
                    query = self.parse_query()
                    self.expect(TokenType.RPAREN, "Expected ')' after subquery")
                    left = InSubquery(left, query, negated)
                    continue
                items = [self.parse_expr()]
                while self.match(TokenType.COMMA):
                    items.append(self.parse_expr())
                self.expect(TokenType.RPAREN, "Expected ')' after IN list")
                left = InList(left, tuple(items), negated)
                continue

            if self.at_kw("BETWEEN"):
                self.consume()
                low = self.parse_bit_or()
                if not self.at_kw("AND"):
                    raise self.error("Expected AND in BETWEEN")
                self.consume()
                high = self.parse_bit_or()
                left = Between(left, low, high, negated)
                continue

            if self.at_kw("LIKE"):
                self.consume()
                pattern = self.parse_bit_or()
                escape = None
                if self.match_word("ESCAPE"):
                    escape = self.parse_bit_or()
                left = Like(left, pattern, escape, negated)
                continue

            if self.at_kw("REGEXP", "RLIKE"):
                self.consume()
                left = Regexp(left, self.parse_bit_or(), negated)
                continue

            if negated:
                raise self.error("Expected IN, BETWEEN, LIKE or REGEXP after NOT")
            if self.at_word("SOUNDS", "MEMBER"):
                raise self.error(f"{self.peek().lexeme.upper()} is not supported")
            return left

    def parse_bit_or(self) -> Expr:
        left = self.parse_bit_and()
        while self.at_op("|"):
            self.consume()
            left = Binary("|", left, self.parse_bit_and())
        return left

    def parse_bit_and(self) -> Expr:
        left = self.parse_shift()
        while self.at_op("&"):
            self.consume()
            left = Binary("&", left, self.parse_shift())
        return left

    def parse_shift(self) -> Expr:
        left = self.parse_additive()
        while self.at_op("<<", ">>"):
            op = str(self.consume().value)
            left = Binary(op, left, self.parse_additive())
        return left

    def parse_additive(self) -> Expr:
        left = self.parse_multiplicative()
        while self.at_op("+", "-"):
            op = str(self.consume().value)
            left = Binary(op, left, self.parse_multiplicative())
        return left

    def parse_multiplicative(self) -> Expr:
        left = self.parse_xor_bits()
        while True:
            if self.at_op("*", "/", "%"):
                op = str(self.consume().value)
                left = Binary("MOD" if op == "%" else op, left, self.parse_xor_bits())
            elif self.at_kw("DIV", "MOD"):
                op = str(self.consume().value)
                left = Binary(op, left, self.parse_xor_bits())
            else:
                return left

    def parse_xor_bits(self) -> Expr:
        left = self.parse_unary()
        while self.at_op("^"):
            self.consume()
            left = Binary("^", left, self.parse_unary())
        return left

    def parse_unary(self) -> Expr:
        if self.at_op("-", "+", "~"):
            op = str(self.consume().value)
            operand = self.parse_unary()
            if op == "-" and isinstance(operand, Literal) and isinstance(operand.value, (int, float)) \
                    and not isinstance(operand.value, bool):
                return Literal(-operand.value)
            if op == "+":
                return operand
            return Unary(op, operand)
        if self.at_op("!"):
            self.consume()
            return Unary("NOT", self.parse_unary())
        if self.at_kw("BINARY"):
            self.consume()
            return Unary("BINARY", self.parse_unary())
        return self.parse_collate()

    def parse_collate(self) -> Expr:
        expr = self.parse_primary()
        while self.at_kw("COLLATE"):
            self.consume()
            expr = Collate(expr, self.parse_charset_name())
        return expr

    def parse_param(self) -> Param:
        t = self.consume()
        if t.value is None:
            p = Param(index=self.param_count)
            self.param_count += 1
            return p
        return Param(name=str(t.value))

    def parse_primary(self) -> Expr:
        t = self.peek()

        if t.typ == TokenType.LPAREN:
            self.consume()
            if self.at_kw("SELECT"):
                query = self.parse_query()
                self.expect(TokenType.RPAREN, "Expected ')' after subquery")
                return SubqueryExpr(query)
            expr = self.parse_expr()
            if self.at(TokenType.COMMA):
                raise self.error("Row constructors are not supported")
            self.expect(TokenType.RPAREN, "Expected ')'")
            return expr

        if t.typ in (TokenType.INT, TokenType.NUMBER, TokenType.HEX):
            self.consume()
            return Literal(t.value)

        if t.typ == TokenType.STRING:
            self.consume()
            value = str(t.value)
            while self.at(TokenType.STRING):
                value += str(self.consume().value)
            return Literal(value)

        if t.typ == TokenType.PARAM:
            return self.parse_param()

        if t.typ == TokenType.VARIABLE:
            self.consume()
            return Variable(str(t.value))

        if t.typ == TokenType.KEYWORD:
            return self.parse_keyword_primary(t)

        if t.typ == TokenType.IDENT:
            return self.parse_identifier_primary(t)

        raise self.error(f"Unexpected token in expression: {t.lexeme!r}")

    def parse_keyword_primary(self, t: Token) -> Expr:
        kw = str(t.value)
        if kw == "NULL":
            self.consume()
            return Literal(None)
        if kw in ("TRUE", "FALSE"):
            self.consume()
            return Literal(kw == "TRUE")
        if kw == "DEFAULT":
            self.consume()
            if self.at(TokenType.LPAREN):
                raise self.error("DEFAULT(column) is not supported")
            return Default()
        if kw == "CASE":
            return self.parse_case()
        if kw == "EXISTS":
            self.consume()
            self.expect(TokenType.LPAREN, "Expected '(' after EXISTS")
            query = self.parse_query()
            self.expect(TokenType.RPAREN, "Expected ')' after subquery")
            return Exists(query)
        if kw == "INTERVAL":
            self.consume()
            value = self.parse_expr()
            unit = self.expect_word(*INTERVAL_UNITS)
            return Interval(value, unit)
        if kw == "MATCH":
            return self.parse_match()
        if kw in NILADIC_FUNCTIONS:
            self.consume()
            if self.match(TokenType.LPAREN):
                if self.at(TokenType.INT):
                    self.consume()
                self.expect(TokenType.RPAREN, "Expected ')'")
            return FuncCall(name=kw)
        if kw == "CONVERT":
            return self.parse_convert()
        if kw in KEYWORD_FUNCTIONS and self.peek(1).typ == TokenType.LPAREN:
            self.consume()
            return self.parse_function_call(kw)
        raise self.error(f"Unexpected keyword in expression: {t.lexeme!r}")

    def parse_identifier_primary(self, t: Token) -> Expr:
        self.consume()
        name = str(t.value)
        upper = name.upper()

        if not t.quoted:
            # Typed literals and charset introducers: DATE '2020-01-01', _utf8mb4'x', N'x'
            if self.at(TokenType.STRING) and (
                upper in ("DATE", "TIME", "TIMESTAMP", "N") or name.startswith("_")
            ):
                return Literal(str(self.consume().value))
            if self.at(TokenType.LPAREN):
                return self.parse_function_call(upper)

        if self.at(TokenType.DOT):
            self.consume()
            if self.at_op("*"):
                self.consume()
                return Star(table=name)
            second = self.ident("column name")
            if self.at(TokenType.DOT):
                self.consume()
                if self.at_op("*"):
                    self.consume()
                    return Star(table=second)
                return ColumnRef(table=second, column=self.ident("column name"))
            return ColumnRef(table=name, column=second)
        return ColumnRef(column=name)

    def parse_case(self) -> Case:
        self.consume()
        operand = None
        if not self.at_kw("WHEN"):
            operand = self.parse_expr()
        whens: list[tuple[Expr, Expr]] = []
        while self.at_kw("WHEN"):
            self.consume()
            cond = self.parse_expr()
            if not self.at_kw("THEN"):
                raise self.error("Expected THEN")
            self.consume()
            whens.append((cond, self.parse_expr()))
        if not whens:
            raise self.error("CASE requires at least one WHEN")
        default = None
        if self.at_kw("ELSE"):
            self.consume()
            default = self.parse_expr()
        self.expect_word("END")
        return Case(operand, tuple(whens), default)

    def parse_match(self) -> Match:
        self.consume()
        self.expect(TokenType.LPAREN, "Expected '(' after MATCH")
        cols = [self.parse_match_column()]
        while self.match(TokenType.COMMA):
            cols.append(self.parse_match_column())
        self.expect(TokenType.RPAREN, "Expected ')' after MATCH columns")
        self.expect_word("AGAINST")
        self.expect(TokenType.LPAREN, "Expected '(' after AGAINST")
        against = self.parse_bit_or()
        boolean_mode = False
        if self.at_kw("IN"):
            self.consume()
            if self.match_word("BOOLEAN"):
                boolean_mode = True
            else:
                self.expect_word("NATURAL")
                self.expect_word("LANGUAGE")
            self.expect_word("MODE")
        if self.at_kw("WITH"):
            raise self.error("WITH QUERY EXPANSION is not supported")
        self.expect(TokenType.RPAREN, "Expected ')' after AGAINST")
        return Match(tuple(cols), against, boolean_mode)

    def parse_match_column(self) -> ColumnRef:
        first = self.ident("column name")
        if self.match(TokenType.DOT):
            return ColumnRef(table=first, column=self.ident("column name"))
        return ColumnRef(column=first)

    def parse_cast_type(self) -> TypeSpec:
        t = self.peek()
        if t.typ == TokenType.KEYWORD and t.value in ("BINARY", "CHARACTER"):
            name = str(self.consume().value)
        else:
            name = self.ident("type name").upper()
        if name == "CHARACTER":
            name = "CHAR"
        params: list[int] = []
        if self.match(TokenType.LPAREN):
            params.append(self.int_value("type parameter"))
            while self.match(TokenType.COMMA):
                params.append(self.int_value("type parameter"))
            self.expect(TokenType.RPAREN, "Expected ')' after type parameters")
        unsigned = False
        if name in ("SIGNED", "UNSIGNED"):
            unsigned = name == "UNSIGNED"
            self.match_word("INTEGER", "INT")
            name = "BIGINT"
        charset = None
        if self.at_kw("CHARACTER") or self.at_word("CHARSET"):
            charset = self.parse_charset_clause()
        return TypeSpec(name=name, params=tuple(params), unsigned=unsigned, charset=charset)

    def parse_convert(self) -> Expr:
        self.consume()
        self.expect(TokenType.LPAREN, "Expected '(' after CONVERT")
        expr = self.parse_expr()
        if self.at_kw("USING"):
            self.consume()
            self.parse_charset_name()
            self.expect(TokenType.RPAREN, "Expected ')'")
            return expr
        self.expect(TokenType.COMMA, "Expected ',' or USING in CONVERT")
        target = self.parse_cast_type()
        self.expect(TokenType.RPAREN, "Expected ')'")
        return Cast(expr, target)

    def parse_function_call(self, name: str) -> Expr:
        """Parse the argument list of a function call; the name is already consumed."""
        self.expect(TokenType.LPAREN, "Expected '('")

        if name == "CAST":
            expr = self.parse_expr()
            if not self.at_kw("AS"):
                raise self.error("Expected AS in CAST")
            self.consume()
            target = self.parse_cast_type()
            self.expect(TokenType.RPAREN, "Expected ')' after CAST")
            return Cast(expr, target)

        if name == "TRIM":
            mode = "TRIM"
            if self.at_word("BOTH", "LEADING", "TRAILING"):
                word = str(self.consume().value).upper()
                mode = {"BOTH": "TRIM", "LEADING": "LTRIM", "TRAILING": "RTRIM"}[word]
                remstr = None
                if not self.at_kw("FROM"):
                    remstr = self.parse_expr()
                if not self.at_kw("FROM"):
                    raise self.error("Expected FROM in TRIM")
                self.consume()
                target = self.parse_expr()
                self.expect(TokenType.RPAREN, "Expected ')' after TRIM")
                args = (target,) if remstr is None else (target, remstr)
                return FuncCall(name=mode, args=args)
            first = self.parse_expr()
            if self.at_kw("FROM"):
                self.consume()
                target = self.parse_expr()
                self.expect(TokenType.RPAREN, "Expected ')' after TRIM")
                return FuncCall(name="TRIM", args=(target, first))
            self.expect(TokenType.RPAREN, "Expected ')' after TRIM")
            return FuncCall(name="TRIM", args=(first,))

        if name in ("SUBSTRING", "SUBSTR", "MID"):
            s = self.parse_expr()
            if self.at_kw("FROM"):
                self.consume()
                args = [s, self.parse_expr()]
                if self.at_kw("FOR"):
                    self.consume()
                    args.append(self.parse_expr())
                self.expect(TokenType.RPAREN, "Expected ')' after SUBSTRING")
                return FuncCall(name="SUBSTRING", args=tuple(args))
            args = [s]
            while self.match(TokenType.COMMA):
                args.append(self.parse_expr())
            self.expect(TokenType.RPAREN, "Expected ')' after SUBSTRING")
            return FuncCall(name="SUBSTRING", args=tuple(args))

        if name == "EXTRACT":
            unit = self.expect_word(*INTERVAL_UNITS)
            if not self.at_kw("FROM"):
                raise self.error("Expected FROM in EXTRACT")
            self.consume()
            value = self.parse_expr()
            self.expect(TokenType.RPAREN, "Expected ')' after EXTRACT")
            return FuncCall(name="EXTRACT", args=(Literal(unit), value))

        if name == "POSITION":
            sub = self.parse_bit_or()
            if not self.at_kw("IN"):
                raise self.error("Expected IN in POSITION")
            self.consume()
            s = self.parse_expr()
            self.expect(TokenType.RPAREN, "Expected ')' after POSITION")
            return FuncCall(name="LOCATE", args=(sub, s))

        if name in ("TIMESTAMPDIFF", "TIMESTAMPADD"):
            unit = self.expect_word(*INTERVAL_UNITS)
            args = [Literal(unit)]
            while self.match(TokenType.COMMA):
                args.append(self.parse_expr())
            self.expect(TokenType.RPAREN, f"Expected ')' after {name}")
            return FuncCall(name=name, args=tuple(args))

        if name == "COUNT" and self.at_op("*"):
            self.consume()
            self.expect(TokenType.RPAREN, "Expected ')' after COUNT(*)")
            return FuncCall(name="COUNT", star=True)

        distinct = False
        if self.at_kw("DISTINCT"):
            self.consume()
            distinct = True
        elif self.at_kw("ALL"):
            self.consume()

        args_list: list[Expr] = []
        if not self.at(TokenType.RPAREN):
            args_list.append(self.parse_expr())
            while self.match(TokenType.COMMA):
                args_list.append(self.parse_expr())

        order_by: tuple[OrderItem, ...] = ()
        separator = None
        if name == "GROUP_CONCAT":
            order_by = self.parse_order_by_opt()
            if self.at_kw("SEPARATOR"):
                self.consume()
                separator = self.string_value("separator")
        if name == "CHAR" and self.at_kw("USING"):
            self.consume()
            self.parse_charset_name()

        self.expect(TokenType.RPAREN, f"Expected ')' after arguments of {name}")
        if self.at_word("OVER") and self.peek(1).typ == TokenType.LPAREN:
            raise self.error("Window functions are not supported")
        return FuncCall(
            name=name,
            args=tuple(args_list),
            distinct=distinct,
            order_by=order_by,
            separator=separator,
        )


# ---------- public helpers ----------

def parse_sql(sql: str) -> Statement:
    """
    Parse exactly one SQL statement.

    Args:
        sql: SQL string.

    Returns:
        AST Statement.

    Raises:
        SqlSyntaxError: if parsing fails or multiple statements provided.
    """
    tokens = tokenize(sql)
    return Parser(tokens, sql).parse_one()


def parse_script(sql: str) -> list[Statement]:
    """
    Parse one or more SQL statements separated by semicolons.

    Args:
        sql: SQL script string.

    Returns:
        List of AST Statements.
    """
    tokens = tokenize(sql)
    return Parser(tokens, sql).parse_script()


def split_statements(sql: str) -> list[str]:
    """
    Split a script into statement texts at top-level semicolons.

    Used to pair each parsed statement with its own source text.
    """
    tokens = tokenize(sql)
    out: list[str] = []
    start = 0
    for t in tokens:
        if t.typ in (TokenType.SEMI, TokenType.EOF):
            text = sql[start:t.pos.offset].strip()
            if text:
                out.append(text)
            start = t.end
    return out
