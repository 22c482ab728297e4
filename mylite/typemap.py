"""
mylite/typemap.py

MySQL → SQLite column type mapping.

Responsibilities:
- Normalize MySQL type spellings (BOOL, INTEGER, DEC, REAL...) to one canonical TypeSpec
- Resolve the SQLite storage type for a declared MySQL type
- Produce the named CHECK constraints that enforce declared-type semantics:
    - "<col>__range"  integer range (signed/unsigned per width)
    - "<col>__length" CHAR/VARCHAR/BINARY/VARBINARY length
    - "<col>__enum"   ENUM membership
- Render column DEFAULTs in SQLite DDL form
- Format a TypeSpec back into MySQL's SHOW COLUMNS spelling
- Coerce values the way MySQL's non-strict sql_mode does (clamp, truncate, implicit defaults)

Notes:
- SQLite stores dates and times as TEXT in MySQL's 'YYYY-MM-DD HH:MM:SS' format,
  so zero dates ('0000-00-00 00:00:00') round-trip unchanged.
- Only ASCII case folding is available for COLLATE NOCASE.
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Any

from .ast import Expr, FuncCall, Literal, TypeSpec
from .errors import ExecutionError, SchemaError

INTEGER_BITS = {
    "TINYINT": 8,
    "SMALLINT": 16,
    "MEDIUMINT": 24,
    "INT": 32,
    "BIGINT": 64,
}

I64_MAX = (1 << 63) - 1

# MySQL 5.7 display widths shown by SHOW COLUMNS when none was declared.
DEFAULT_WIDTHS = {
    ("TINYINT", False): 4, ("TINYINT", True): 3,
    ("SMALLINT", False): 6, ("SMALLINT", True): 5,
    ("MEDIUMINT", False): 9, ("MEDIUMINT", True): 8,
    ("INT", False): 11, ("INT", True): 10,
    ("BIGINT", False): 20, ("BIGINT", True): 20,
}

ALIASES = {
    "INTEGER": "INT",
    "INT1": "TINYINT",
    "INT2": "SMALLINT",
    "INT3": "MEDIUMINT",
    "INT4": "INT",
    "INT8": "BIGINT",
    "MIDDLEINT": "MEDIUMINT",
    "DEC": "DECIMAL",
    "FIXED": "DECIMAL",
    "NUMERIC": "DECIMAL",
    "REAL": "DOUBLE",
    "FLOAT4": "FLOAT",
    "FLOAT8": "DOUBLE",
    "NCHAR": "CHAR",
    "NVARCHAR": "VARCHAR",
}

FAMILIES = {
    "TINYINT": "integer", "SMALLINT": "integer", "MEDIUMINT": "integer", "INT": "integer", "BIGINT": "integer",
    "BIT": "bit",
    "YEAR": "year",
    "FLOAT": "float", "DOUBLE": "float",
    "DECIMAL": "decimal",
    "CHAR": "string", "VARCHAR": "string",
    "TINYTEXT": "text", "TEXT": "text", "MEDIUMTEXT": "text", "LONGTEXT": "text",
    "ENUM": "enum", "SET": "set",
    "JSON": "json",
    "DATE": "date", "DATETIME": "datetime", "TIMESTAMP": "datetime", "TIME": "time",
    "BINARY": "binary", "VARBINARY": "binary",
    "TINYBLOB": "blob", "BLOB": "blob", "MEDIUMBLOB": "blob", "LONGBLOB": "blob",
}

SQLITE_AFFINITY = {
    "integer": "INTEGER",
    "bit": "INTEGER",
    "year": "INTEGER",
    "float": "REAL",
    "decimal": "NUMERIC",
    "string": "TEXT",
    "text": "TEXT",
    "enum": "TEXT",
    "set": "TEXT",
    "json": "TEXT",
    "date": "TEXT",
    "datetime": "TEXT",
    "time": "TEXT",
    "binary": "BLOB",
    "blob": "BLOB",
}

TEXT_FAMILIES = frozenset({"string", "text", "enum", "set", "json"})
NUMERIC_FAMILIES = frozenset({"integer", "bit", "year", "float", "decimal"})

ZERO_VALUES = {
    "date": "0000-00-00",
    "datetime": "0000-00-00 00:00:00",
    "time": "00:00:00",
    "year": 0,
}

NOW_FUNCTIONS = frozenset({"CURRENT_TIMESTAMP", "NOW", "LOCALTIME", "LOCALTIMESTAMP"})

_NUMERIC_PREFIX = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")


def normalize(typ: TypeSpec) -> TypeSpec:
    """
    Return the canonical spelling of a MySQL type.

    BOOL/BOOLEAN become TINYINT(1); synonyms collapse to their base type.

    Raises:
        SchemaError: for types with no SQLite mapping (spatial types, ...).
    """
    name = typ.name.upper()
    if name in ("BOOL", "BOOLEAN"):
        return replace(typ, name="TINYINT", params=(1,))
    name = ALIASES.get(name, name)
    if name == "FLOAT" and len(typ.params) == 1 and typ.params[0] > 24:
        name = "DOUBLE"
    if name not in FAMILIES:
        raise SchemaError(f"Unsupported column type: {typ.name}", errno=1235)
    if name in ("CHAR", "BINARY") and not typ.params:
        return replace(typ, name=name, params=(1,))
    if name in ("VARCHAR", "VARBINARY") and not typ.params:
        raise SchemaError(f"{name} requires a length, e.g. {name}(255)", errno=1064)
    if name in ("ENUM", "SET") and not typ.values:
        raise SchemaError(f"{name} requires at least one member", errno=1064)
    return replace(typ, name=name)


def family(typ: TypeSpec) -> str:
    return FAMILIES[typ.name]


def sqlite_type(typ: TypeSpec) -> str:
    """SQLite storage type for a normalized TypeSpec."""
    return SQLITE_AFFINITY[family(typ)]


def integer_range(typ: TypeSpec) -> tuple[int, int] | None:
    """
    Inclusive (low, high) range of an integer type, honoring UNSIGNED.

    Returns None for non-integer types.
    """
    if typ.name == "BIT":
        bits = typ.params[0] if typ.params else 1
        return 0, (1 << bits) - 1
    bits = INTEGER_BITS.get(typ.name)
    if bits is None:
        return None
    if typ.unsigned:
        return 0, (1 << bits) - 1
    return -(1 << (bits - 1)), (1 << (bits - 1)) - 1


def stores_wrapped(typ: TypeSpec) -> bool:
    """BIGINT UNSIGNED: values above 2**63 - 1 are stored as their signed 64-bit wrap."""
    return typ.name == "BIGINT" and typ.unsigned


def storage_value(typ: TypeSpec, value: Any) -> Any:
    """A coerced value as written to SQLite for a column of type typ."""
    if stores_wrapped(typ) and isinstance(value, int) and not isinstance(value, bool) and value > I64_MAX:
        return value - (1 << 64)
    return value


def max_length(typ: TypeSpec) -> int | None:
    """Declared maximum length for CHAR/VARCHAR/BINARY/VARBINARY, else None."""
    if typ.name in ("CHAR", "VARCHAR", "BINARY", "VARBINARY") and typ.params:
        return typ.params[0]
    return None


def is_text(typ: TypeSpec) -> bool:
    return family(typ) in TEXT_FAMILIES


def is_case_insensitive(collation: str | None) -> bool:
    """
    True for MySQL collations that compare case-insensitively.

    None means the server default (utf8mb4_general_ci), which is case-insensitive.
    """
    if collation is None:
        return True
    c = collation.lower()
    return c.endswith("_ci") or c in ("default",)


def sqlite_collation(typ: TypeSpec, collation: str | None) -> str | None:
    """COLLATE clause for a column: NOCASE for *_ci text columns, None otherwise."""
    if family(typ) not in ("string", "text", "enum", "set"):
        return None
    return "NOCASE" if is_case_insensitive(collation) else None


def quote_ident(name: str) -> str:
    """Double-quote an SQLite identifier."""
    return '"' + name.replace('"', '""') + '"'


def quote_column(name: str) -> str:
    """
    Backtick-quote an identifier used inside an expression.

    SQLite reads an unresolved "name" as the string 'name'; a backticked
    name that resolves to nothing is always "no such column".
    """
    return "`" + name.replace("`", "``") + "`"


def quote_literal(value: Any) -> str:
    """Render a Python constant as an SQLite literal (for DDL only)."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, bytes):
        return "X'" + value.hex() + "'"
    return "'" + str(value).replace("'", "''") + "'"


def check_constraints(column: str, typ: TypeSpec) -> list[str]:
    """
    Named CHECK constraints enforcing declared-type semantics for one column.

    Args:
        column: Column name.
        typ: Normalized TypeSpec.

    Returns:
        Constraint clauses such as 'CONSTRAINT "age__range" CHECK ("age" BETWEEN 0 AND 255)'.
    """
    col = quote_ident(column)
    out: list[str] = []
    rng = integer_range(typ)
    # Every signed 64-bit integer decodes to a valid BIGINT UNSIGNED value.
    if rng is not None and not stores_wrapped(typ):
        lo, hi = rng
        out.append(f"CONSTRAINT {quote_ident(column + '__range')} CHECK ({col} BETWEEN {lo} AND {hi})")
    n = max_length(typ)
    if n is not None:
        out.append(f"CONSTRAINT {quote_ident(column + '__length')} CHECK (length({col}) <= {n})")
    if typ.name == "ENUM":
        # '' is the value MySQL stores for invalid members outside strict mode.
        members = ", ".join(quote_literal(v) for v in ("",) + typ.values)
        out.append(f"CONSTRAINT {quote_ident(column + '__enum')} CHECK ({col} IN ({members}))")
    return out


def is_now_default(expr: Expr | None) -> bool:
    return isinstance(expr, FuncCall) and expr.name in NOW_FUNCTIONS


def default_value(column: str, typ: TypeSpec, expr: Expr | None) -> Any:
    """
    Python value of a column DEFAULT clause (the text SHOW COLUMNS reports).

    CURRENT_TIMESTAMP defaults are returned as the string "CURRENT_TIMESTAMP".

    Raises:
        SchemaError: 1067 for defaults that are not constants.
    """
    if expr is None:
        return None
    if is_now_default(expr):
        if family(typ) not in ("datetime", "date"):
            raise SchemaError(f"Invalid default value for '{column}'", errno=1067)
        return "CURRENT_TIMESTAMP"
    if not isinstance(expr, Literal):
        raise SchemaError(f"Invalid default value for '{column}'", errno=1067)
    value = expr.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, bytes):
        return value.decode("latin-1")
    if value is not None and typ.name == "ENUM" and str(value).lower() not in {v.lower() for v in typ.values}:
        raise SchemaError(f"Invalid default value for '{column}'", errno=1067)
    return value


def default_sql(typ: TypeSpec, value: Any) -> str | None:
    """SQLite DEFAULT clause body for a value produced by default_value()."""
    if value is None:
        return None
    if value == "CURRENT_TIMESTAMP":
        if family(typ) == "date":
            return "(date('now','localtime'))"
        return "(datetime('now','localtime'))"
    return quote_literal(value)


def format_type(typ: TypeSpec) -> str:
    """
    MySQL SHOW COLUMNS spelling of a type, e.g. "bigint(20) unsigned", "varchar(255)".
    """
    name = typ.name.lower()
    if typ.name in ("ENUM", "SET"):
        return f"{name}(" + ",".join(quote_literal(v) for v in typ.values) + ")"
    params = typ.params
    if not params and typ.name in INTEGER_BITS:
        params = (DEFAULT_WIDTHS[(typ.name, typ.unsigned)],)
    if not params and typ.name == "DECIMAL":
        params = (10, 0)
    text = name + (f"({','.join(str(p) for p in params)})" if params else "")
    if typ.unsigned:
        text += " unsigned"
    if typ.zerofill:
        text += " zerofill"
    return text


def implicit_default(typ: TypeSpec) -> Any:
    """Value MySQL substitutes for an omitted NOT NULL column without DEFAULT in non-strict mode."""
    fam = family(typ)
    if fam in ZERO_VALUES:
        return ZERO_VALUES[fam]
    if fam in NUMERIC_FAMILIES:
        return 0
    if typ.name == "ENUM":
        return typ.values[0]
    if fam in ("binary", "blob"):
        return b""
    return ""


def is_numeric_text(value: str) -> bool:
    """True when the whole string is a number literal (surrounding spaces allowed)."""
    return _NUMERIC_PREFIX.fullmatch(value.strip()) is not None


def numeric_prefix(value: str) -> int | float:
    """MySQL string→number conversion: leading numeric prefix, 0 when there is none."""
    m = _NUMERIC_PREFIX.match(value)
    if m is None:
        return 0
    text = m.group(0).strip()
    if m.group(2) is None and m.group(3) is None and "." not in text:
        return int(text)
    return float(text)


def coerce(
    column: str,
    typ: TypeSpec,
    value: Any,
    *,
    strict: bool,
    row_number: int = 1,
    warnings: list[str] | None = None,
) -> Any:
    """
    Adjust a value about to be stored, as MySQL does for the column's declared type.

    In strict mode values are only converted (e.g. '12' → 12); out-of-range
    integers raise 1264 and over-long values are left for the CHECK constraints
    to reject. Outside strict mode they are clamped/truncated and a warning is
    recorded.

    Args:
        column: Column name (for messages).
        typ: Normalized TypeSpec.
        value: Candidate value.
        strict: Whether STRICT_TRANS_TABLES / STRICT_ALL_TABLES is in effect.
        row_number: 1-based row number for messages.
        warnings: Optional list receiving MySQL-style warning texts.

    Raises:
        ExecutionError: 1366 for non-numeric strings and 1264 for out-of-range
            integers in strict mode.
    """
    if value is None:
        return None
    fam = family(typ)

    if fam in ("integer", "bit", "year"):
        if isinstance(value, bytes):
            value = int.from_bytes(value, "big") if value else 0
        if isinstance(value, str):
            stripped = value.strip()
            if stripped and not is_numeric_text(stripped) and strict:
                raise ExecutionError(
                    f"Incorrect integer value: '{value}' for column '{column}' at row {row_number}",
                    errno=1366,
                    sqlstate="HY000",
                )
            value = numeric_prefix(value)
        if isinstance(value, float):
            value = int(round(value))
        if isinstance(value, bool):
            value = int(value)
        rng = integer_range(typ)
        if rng is not None:
            lo, hi = rng
            if value < lo or value > hi:
                if strict:
                    raise ExecutionError(
                        f"Out of range value for column '{column}' at row {row_number}",
                        errno=1264,
                        sqlstate="22003",
                    )
                if warnings is not None:
                    warnings.append(f"Out of range value for column '{column}' at row {row_number}")
                value = lo if value < lo else hi
        return value

    if fam in ("float", "decimal"):
        if isinstance(value, str):
            value = numeric_prefix(value)
        if fam == "decimal" and len(typ.params) == 2 and isinstance(value, (int, float)):
            value = round(float(value), typ.params[1])
            if typ.params[1] == 0:
                value = int(value)
        if typ.unsigned and isinstance(value, (int, float)) and value < 0 and not strict:
            value = 0
        return value

    if fam in ("string", "binary"):
        if fam == "string" and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        n = max_length(typ)
        if n is not None and isinstance(value, (str, bytes)) and len(value) > n and not strict:
            if warnings is not None:
                warnings.append(f"Data truncated for column '{column}' at row {row_number}")
            value = value[:n]
        return value

    if fam == "enum":
        if isinstance(value, int) and not isinstance(value, bool):
            # Numeric ENUM values are 1-based member indexes.
            value = typ.values[value - 1] if 1 <= value <= len(typ.values) else ""
        text = str(value)
        for member in typ.values:
            if member.lower() == text.lower():
                return member
        if strict:
            return text
        if warnings is not None:
            warnings.append(f"Data truncated for column '{column}' at row {row_number}")
        return ""

    if fam in ("date", "datetime", "time", "text", "json", "set") and isinstance(value, (int, float)) \
            and not isinstance(value, bool):
        return str(value)
    return value
