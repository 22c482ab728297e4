"""
mylite/functions.py

User-defined functions that give SQLite the MySQL built-ins it lacks.

Responsibilities:
- Implement MySQL scalar functions in Python with MySQL's NULL propagation:
    - date/time: NOW, CURDATE, UNIX_TIMESTAMP, FROM_UNIXTIME, DATE_FORMAT,
      STR_TO_DATE, part extractors, DATEDIFF, DATE_ADD/DATE_SUB, LAST_DAY, ...
    - string: CONCAT_WS, SUBSTRING, SUBSTRING_INDEX, LOCATE, LPAD/RPAD, FIELD,
      FIND_IN_SET, LENGTH (bytes), MD5, SHA1, CRC32, INET_ATON/INET_NTOA, REGEXP, ...
    - numeric: FLOOR, CEIL, POW, SQRT, LOG family, TRUNCATE, MOD, RAND, LEAST/GREATEST, ...
    - casts to UNSIGNED / DATE / DATETIME / TIME
    - full-text relevance for MATCH ... AGAINST
- Implement MySQL aggregates: BIT_AND/BIT_OR/BIT_XOR, STDDEV/VARIANCE family,
  GROUP_CONCAT with DISTINCT + SEPARATOR.
- Register the whole catalog on a connection exactly once (install_functions).

Notes:
- Every function is registered as "mylite_<name>" so SQLite's own built-ins
  (used by CHECK constraints and DEFAULT expressions) keep their meaning and the
  database file stays readable by plain SQLite tools.
- Dates are handled as component tuples first, so MySQL zero dates
  ('0000-00-00 00:00:00') keep working where MySQL accepts them.
- A function never raises into SQLite; invalid input yields NULL like MySQL.
"""

from __future__ import annotations

import base64
import calendar
import hashlib
import ipaddress
import math
import random
import re
import sqlite3
import time
import uuid
import zlib
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import wraps
from typing import Any, Callable

from loguru import logger

PREFIX = "mylite_"

U64 = (1 << 64) - 1
I64_MAX = (1 << 63) - 1

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

DATE_ONLY_UNITS = frozenset({"DAY", "WEEK", "MONTH", "QUARTER", "YEAR", "YEAR_MONTH"})

INTERVAL_FIELDS = {
    "MICROSECOND": ("microsecond",),
    "SECOND": ("second",),
    "MINUTE": ("minute",),
    "HOUR": ("hour",),
    "DAY": ("day",),
    "WEEK": ("week",),
    "MONTH": ("month",),
    "QUARTER": ("quarter",),
    "YEAR": ("year",),
    "SECOND_MICROSECOND": ("second", "microsecond"),
    "MINUTE_MICROSECOND": ("minute", "second", "microsecond"),
    "MINUTE_SECOND": ("minute", "second"),
    "HOUR_MICROSECOND": ("hour", "minute", "second", "microsecond"),
    "HOUR_SECOND": ("hour", "minute", "second"),
    "HOUR_MINUTE": ("hour", "minute"),
    "DAY_MICROSECOND": ("day", "hour", "minute", "second", "microsecond"),
    "DAY_SECOND": ("day", "hour", "minute", "second"),
    "DAY_MINUTE": ("day", "hour", "minute"),
    "DAY_HOUR": ("day", "hour"),
    "YEAR_MONTH": ("year", "month"),
}


# ---------- value helpers ----------

def nullsafe(fn: Callable) -> Callable:
    """Return NULL when any argument is NULL (MySQL's default propagation)."""
    @wraps(fn)
    def wrapper(*args):
        for a in args:
            if a is None:
                return None
        return fn(*args)
    return wrapper


def to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return str(value)


_NUM_PREFIX = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")


def to_number(value: Any) -> int | float:
    """MySQL numeric context conversion: strings contribute their numeric prefix."""
    if isinstance(value, (int, float)):
        return value
    text = to_text(value)
    m = _NUM_PREFIX.match(text)
    if m is None:
        return 0
    s = m.group(0).strip()
    if m.group(2) is None and m.group(3) is None and "." not in s:
        return int(s)
    return float(s)


def to_int(value: Any) -> int:
    n = to_number(value)
    if isinstance(n, float):
        return int(round(n))
    return n


def sqlite_int(value: int) -> int:
    """
    Fit an unsigned 64-bit value into SQLite's signed INTEGER.

    Values above 2**63 - 1 wrap to negative (two's complement); unwrap_unsigned
    reverses it wherever the value is known to be unsigned.
    """
    if value > I64_MAX:
        return value - (1 << 64)
    return value


def unwrap_unsigned(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool) and value < 0:
        return value & U64
    return value


# ---------- date/time parsing ----------

_DATETIME_RE = re.compile(
    r"^\s*(\d{1,4})[-/.](\d{1,2})[-/.](\d{1,2})"
    r"(?:[ T]+(\d{1,2}):(\d{1,2})(?::(\d{1,2})(?:\.(\d{1,6}))?)?)?\s*$"
)
_TIME_RE = re.compile(r"^\s*(-)?(?:(\d+) +)?(\d{1,3}):(\d{1,2})(?::(\d{1,2})(?:\.(\d{1,6}))?)?\s*$")


@dataclass(frozen=True)
class DateParts:
    """
    Calendar components of a MySQL DATE/DATETIME value.

    Components may be zero (MySQL zero dates); to_datetime() returns None for them.
    """
    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0
    microsecond: int = 0
    has_time: bool = False

    @property
    def zero(self) -> bool:
        return self.month == 0 or self.day == 0

    def to_datetime(self) -> datetime | None:
        if self.zero or self.year == 0:
            return None
        try:
            return datetime(self.year, self.month, self.day, self.hour, self.minute, self.second, self.microsecond)
        except ValueError:
            return None

    def date_text(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    def datetime_text(self) -> str:
        text = f"{self.date_text()} {self.hour:02d}:{self.minute:02d}:{self.second:02d}"
        if self.microsecond:
            text += f".{self.microsecond:06d}"
        return text


def _digits_to_parts(digits: str) -> DateParts | None:
    if len(digits) == 8:
        return DateParts(int(digits[:4]), int(digits[4:6]), int(digits[6:8]))
    if len(digits) == 6:
        yy = int(digits[:2])
        return DateParts(2000 + yy if yy < 70 else 1900 + yy, int(digits[2:4]), int(digits[4:6]))
    if len(digits) == 14:
        return DateParts(
            int(digits[:4]), int(digits[4:6]), int(digits[6:8]),
            int(digits[8:10]), int(digits[10:12]), int(digits[12:14]), 0, True,
        )
    if len(digits) == 12:
        yy = int(digits[:2])
        return DateParts(
            2000 + yy if yy < 70 else 1900 + yy, int(digits[2:4]), int(digits[4:6]),
            int(digits[6:8]), int(digits[8:10]), int(digits[10:12]), 0, True,
        )
    return None


def parse_datetime(value: Any) -> DateParts | None:
    """
    Parse a MySQL date/datetime value into components.

    Accepts 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS[.ffffff]', 'YYYY-MM-DDTHH:MM',
    and the numeric forms YYYYMMDD / YYYYMMDDHHMMSS. Returns None when the value
    is not a date.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        parts = _digits_to_parts(str(int(value)))
    else:
        text = to_text(value)
        m = _DATETIME_RE.match(text)
        if m is not None:
            y, mo, d, hh, mi, ss, frac = m.groups()
            parts = DateParts(
                int(y), int(mo), int(d),
                int(hh or 0), int(mi or 0), int(ss or 0),
                int((frac or "0").ljust(6, "0")),
                hh is not None,
            )
        elif text.strip().isdigit():
            parts = _digits_to_parts(text.strip())
        else:
            parts = None
    if parts is None:
        return None
    if parts.month > 12 or parts.day > 31 or parts.hour > 23 or parts.minute > 59 or parts.second > 59:
        return None
    return parts


def parse_time(value: Any) -> tuple[int, int] | None:
    """
    Parse a MySQL TIME (or the time part of a DATETIME) into (sign, total microseconds).
    """
    if value is None:
        return None
    text = to_text(value)
    m = _TIME_RE.match(text)
    if m is not None:
        neg, days, hh, mi, ss, frac = m.groups()
        total = ((int(days or 0) * 24 + int(hh)) * 3600 + int(mi) * 60 + int(ss or 0)) * 1_000_000
        total += int((frac or "0").ljust(6, "0"))
        return (-1 if neg else 1), total
    parts = parse_datetime(value)
    if parts is not None and parts.has_time:
        total = (parts.hour * 3600 + parts.minute * 60 + parts.second) * 1_000_000 + parts.microsecond
        return 1, total
    if isinstance(value, (int, float)) or text.strip().lstrip("-").isdigit():
        n = abs(int(to_number(value)))
        sign = -1 if to_number(value) < 0 else 1
        hh, rest = divmod(n, 10000)
        mi, ss = divmod(rest, 100)
        if mi > 59 or ss > 59:
            return None
        return sign, (hh * 3600 + mi * 60 + ss) * 1_000_000
    return None


def format_datetime(dt: datetime, with_time: bool = True) -> str:
    parts = DateParts(dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, dt.microsecond, True)
    return parts.datetime_text() if with_time else parts.date_text()


def format_time(sign: int, micros: int) -> str:
    secs, us = divmod(micros, 1_000_000)
    hh, rest = divmod(secs, 3600)
    mi, ss = divmod(rest, 60)
    text = f"{'-' if sign < 0 and micros else ''}{hh:02d}:{mi:02d}:{ss:02d}"
    if us:
        text += f".{us:06d}"
    return text


def _as_datetime(value: Any) -> datetime | None:
    parts = parse_datetime(value)
    return parts.to_datetime() if parts is not None else None


# ---------- week numbering (MySQL calc_week) ----------

WEEK_MONDAY_FIRST = 1
WEEK_YEAR = 2
WEEK_FIRST_WEEKDAY = 4


def _daynr(d: date) -> int:
    return d.toordinal() + 365


def _weekday(daynr: int, sunday_first: bool) -> int:
    return (daynr + 5 + (1 if sunday_first else 0)) % 7


def _days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def week_mode(mode: int) -> int:
    behaviour = mode & 7
    if not behaviour & WEEK_MONDAY_FIRST:
        behaviour ^= WEEK_FIRST_WEEKDAY
    return behaviour


def calc_week(d: date, behaviour: int) -> tuple[int, int]:
    """Week number and its year for date d, with MySQL's week_behaviour flags."""
    daynr = _daynr(d)
    first_daynr = _daynr(date(d.year, 1, 1))
    monday_first = bool(behaviour & WEEK_MONDAY_FIRST)
    week_year = bool(behaviour & WEEK_YEAR)
    first_weekday = bool(behaviour & WEEK_FIRST_WEEKDAY)

    weekday = _weekday(first_daynr, not monday_first)
    year = d.year

    if d.month == 1 and d.day <= 7 - weekday:
        if not week_year and ((first_weekday and weekday != 0) or (not first_weekday and weekday >= 4)):
            return 0, year
        week_year = True
        year -= 1
        days = _days_in_year(year)
        first_daynr -= days
        weekday = (weekday + 53 * 7 - days) % 7

    if (first_weekday and weekday != 0) or (not first_weekday and weekday >= 4):
        days = daynr - (first_daynr + (7 - weekday))
    else:
        days = daynr - (first_daynr - weekday)

    if week_year and days >= 52 * 7:
        weekday = (weekday + _days_in_year(year)) % 7
        if (not first_weekday and weekday < 4) or (first_weekday and weekday == 0):
            return 1, year + 1
    return days // 7 + 1, year


# ---------- date/time functions ----------

def fn_now(*_fsp) -> str:
    return format_datetime(datetime.now().replace(microsecond=0))


def fn_utc_timestamp(*_fsp) -> str:
    return format_datetime(datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None))


def fn_curdate() -> str:
    return date.today().isoformat()


def fn_utc_date() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def fn_curtime(*_fsp) -> str:
    return datetime.now().strftime("%H:%M:%S")


def fn_utc_time(*_fsp) -> str:
    return datetime.now(timezone.utc).strftime("%H:%M:%S")


def fn_unix_timestamp(*args):
    if not args:
        return int(time.time())
    value = args[0]
    if value is None:
        return None
    parts = parse_datetime(value)
    if parts is None:
        return None
    if parts.zero:
        return 0
    dt = parts.to_datetime()
    if dt is None:
        return None
    ts = time.mktime(dt.timetuple())
    if ts < 0:
        return 0
    if dt.microsecond:
        return ts + dt.microsecond / 1_000_000
    return int(ts)


def fn_from_unixtime(ts, fmt=None):
    if ts is None:
        return None
    n = to_number(ts)
    if n < 0:
        return None
    try:
        dt = datetime.fromtimestamp(n)
    except (OverflowError, OSError, ValueError):
        return None
    if fmt is not None:
        return fn_date_format(format_datetime(dt), fmt)
    return format_datetime(dt)


def _format_spec(ch: str, p: DateParts, dt: datetime | None) -> str | None:
    """One DATE_FORMAT specifier; None means the result is NULL."""
    if ch == "Y":
        return f"{p.year:04d}"
    if ch == "y":
        return f"{p.year % 100:02d}"
    if ch == "m":
        return f"{p.month:02d}"
    if ch == "c":
        return str(p.month)
    if ch == "d":
        return f"{p.day:02d}"
    if ch == "e":
        return str(p.day)
    if ch == "H":
        return f"{p.hour:02d}"
    if ch == "k":
        return str(p.hour)
    if ch in ("h", "I"):
        return f"{(p.hour % 12) or 12:02d}"
    if ch == "l":
        return str((p.hour % 12) or 12)
    if ch == "i":
        return f"{p.minute:02d}"
    if ch in ("S", "s"):
        return f"{p.second:02d}"
    if ch == "f":
        return f"{p.microsecond:06d}"
    if ch == "p":
        return "AM" if p.hour < 12 else "PM"
    if ch == "r":
        return f"{(p.hour % 12) or 12:02d}:{p.minute:02d}:{p.second:02d} {'AM' if p.hour < 12 else 'PM'}"
    if ch == "T":
        return f"{p.hour:02d}:{p.minute:02d}:{p.second:02d}"
    if ch == "M":
        return MONTH_NAMES[p.month - 1] if p.month else None
    if ch == "b":
        return MONTH_NAMES[p.month - 1][:3] if p.month else None
    if ch == "D":
        if p.day in (11, 12, 13):
            suffix = "th"
        else:
            suffix = {1: "st", 2: "nd", 3: "rd"}.get(p.day % 10, "th")
        return f"{p.day}{suffix}"
    if dt is None:
        return None
    if ch == "W":
        return DAY_NAMES[dt.weekday()]
    if ch == "a":
        return DAY_NAMES[dt.weekday()][:3]
    if ch == "w":
        return str((dt.weekday() + 1) % 7)
    if ch == "j":
        return f"{dt.timetuple().tm_yday:03d}"
    if ch == "U":
        return f"{calc_week(dt.date(), week_mode(0))[0]:02d}"
    if ch == "u":
        return f"{calc_week(dt.date(), week_mode(1))[0]:02d}"
    if ch == "V":
        return f"{calc_week(dt.date(), week_mode(2))[0]:02d}"
    if ch == "v":
        return f"{calc_week(dt.date(), week_mode(3))[0]:02d}"
    if ch == "X":
        return f"{calc_week(dt.date(), week_mode(2))[1]:04d}"
    if ch == "x":
        return f"{calc_week(dt.date(), week_mode(3))[1]:04d}"
    return ch


@nullsafe
def fn_date_format(value, fmt):
    parts = parse_datetime(value)
    if parts is None:
        t = parse_time(value)
        if t is None:
            return None
        secs = t[1] // 1_000_000
        parts = DateParts(0, 0, 0, (secs // 3600) % 24, (secs // 60) % 60, secs % 60, t[1] % 1_000_000, True)
    dt = parts.to_datetime()
    fmt = to_text(fmt)
    out: list[str] = []
    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch == "%" and i + 1 < len(fmt):
            piece = _format_spec(fmt[i + 1], parts, dt)
            if piece is None:
                return None
            out.append(piece)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


_MONTH_LOOKUP = {name.lower(): i + 1 for i, name in enumerate(MONTH_NAMES)}
_MONTH_LOOKUP.update({name[:3].lower(): i + 1 for i, name in enumerate(MONTH_NAMES)})


@nullsafe
def fn_str_to_date(value, fmt):
    """
    STR_TO_DATE(str, format): the inverse of DATE_FORMAT.

    Returns 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS' or 'HH:MM:SS' depending on
    which parts the format contains; NULL when the string does not match.
    """
    s = to_text(value)
    fmt = to_text(fmt)
    fields = {"year": 0, "month": 0, "day": 0, "hour": 0, "minute": 0, "second": 0, "micro": 0}
    has_date = has_time = False
    pm: bool | None = None
    pos = 0

    def take_digits(max_len: int) -> int | None:
        nonlocal pos
        m = re.match(r"\d{1,%d}" % max_len, s[pos:])
        if m is None:
            return None
        pos += m.end()
        return int(m.group(0))

    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch != "%" or i + 1 >= len(fmt):
            if pos < len(s) and s[pos] == ch:
                pos += 1
            elif not ch.isspace():
                return None
            i += 1
            continue
        spec = fmt[i + 1]
        i += 2
        while pos < len(s) and s[pos].isspace() and spec not in ("%",):
            pos += 1
        if spec in ("Y", "y"):
            n = take_digits(4 if spec == "Y" else 2)
            if n is None:
                return None
            if spec == "y":
                n = 2000 + n if n < 70 else 1900 + n
            fields["year"] = n
            has_date = True
        elif spec in ("m", "c"):
            n = take_digits(2)
            if n is None:
                return None
            fields["month"] = n
            has_date = True
        elif spec in ("M", "b"):
            m = re.match(r"[A-Za-z]+", s[pos:])
            if m is None or m.group(0).lower() not in _MONTH_LOOKUP:
                return None
            fields["month"] = _MONTH_LOOKUP[m.group(0).lower()]
            pos += m.end()
            has_date = True
        elif spec in ("d", "e"):
            n = take_digits(2)
            if n is None:
                return None
            fields["day"] = n
            has_date = True
        elif spec == "D":
            n = take_digits(2)
            if n is None:
                return None
            fields["day"] = n
            m = re.match(r"st|nd|rd|th", s[pos:])
            if m is not None:
                pos += m.end()
            has_date = True
        elif spec in ("H", "k", "h", "I", "l"):
            n = take_digits(2)
            if n is None:
                return None
            fields["hour"] = n
            has_time = True
        elif spec == "i":
            n = take_digits(2)
            if n is None:
                return None
            fields["minute"] = n
            has_time = True
        elif spec in ("S", "s"):
            n = take_digits(2)
            if n is None:
                return None
            fields["second"] = n
            has_time = True
        elif spec == "f":
            m = re.match(r"\d{1,6}", s[pos:])
            if m is None:
                return None
            fields["micro"] = int(m.group(0).ljust(6, "0"))
            pos += m.end()
            has_time = True
        elif spec == "p":
            m = re.match(r"(?i)AM|PM", s[pos:])
            if m is None:
                return None
            pm = m.group(0).upper() == "PM"
            pos += m.end()
        elif spec == "T":
            m = re.match(r"(\d{1,2}):(\d{1,2}):(\d{1,2})", s[pos:])
            if m is None:
                return None
            fields["hour"], fields["minute"], fields["second"] = (int(g) for g in m.groups())
            pos += m.end()
            has_time = True
        elif spec in ("W", "a"):
            m = re.match(r"[A-Za-z]+", s[pos:])
            if m is None:
                return None
            pos += m.end()
        elif spec == "j":
            n = take_digits(3)
            if n is None:
                return None
            base = date(fields["year"] or 2000, 1, 1) + timedelta(days=n - 1)
            fields["month"], fields["day"] = base.month, base.day
            has_date = True
        elif spec == "%":
            if pos < len(s) and s[pos] == "%":
                pos += 1
            else:
                return None
        else:
            return None

    if pm is not None:
        if fields["hour"] > 12:
            return None
        fields["hour"] = fields["hour"] % 12 + (12 if pm else 0)
    if fields["month"] > 12 or fields["day"] > 31 or fields["hour"] > 23 or fields["minute"] > 59 \
            or fields["second"] > 59:
        return None
    parts = DateParts(
        fields["year"], fields["month"], fields["day"],
        fields["hour"], fields["minute"], fields["second"], fields["micro"], has_time,
    )
    if has_date and not parts.zero and parts.to_datetime() is None:
        return None
    if has_date and has_time:
        return parts.datetime_text()
    if has_date:
        return parts.date_text()
    if has_time:
        return format_time(1, ((parts.hour * 60 + parts.minute) * 60 + parts.second) * 1_000_000 + parts.microsecond)
    return None


def _part(getter: Callable[[DateParts], Any], need_real: bool = False) -> Callable:
    @nullsafe
    def fn(value):
        parts = parse_datetime(value)
        if parts is None:
            return None
        if need_real and parts.to_datetime() is None:
            return None
        return getter(parts)
    return fn


def _time_part(index: int) -> Callable:
    @nullsafe
    def fn(value):
        t = parse_time(value)
        if t is None:
            return None
        secs, us = divmod(t[1], 1_000_000)
        return (secs // 3600, (secs // 60) % 60, secs % 60, us)[index]
    return fn


fn_year = _part(lambda p: p.year)
fn_month = _part(lambda p: p.month)
fn_day = _part(lambda p: p.day)
fn_quarter = _part(lambda p: (p.month + 2) // 3)
fn_hour = _time_part(0)
fn_minute = _time_part(1)
fn_second = _time_part(2)
fn_microsecond = _time_part(3)
fn_dayofweek = _part(lambda p: p.to_datetime().isoweekday() % 7 + 1, need_real=True)
fn_weekday = _part(lambda p: p.to_datetime().weekday(), need_real=True)
fn_dayofyear = _part(lambda p: p.to_datetime().timetuple().tm_yday, need_real=True)
fn_monthname = _part(lambda p: MONTH_NAMES[p.month - 1], need_real=True)
fn_dayname = _part(lambda p: DAY_NAMES[p.to_datetime().weekday()], need_real=True)
fn_to_days = _part(lambda p: _daynr(p.to_datetime().date()), need_real=True)


@nullsafe
def fn_date(value):
    parts = parse_datetime(value)
    return parts.date_text() if parts is not None else None


@nullsafe
def fn_time(value):
    t = parse_time(value)
    return format_time(*t) if t is not None else None


def fn_week(value, mode=0):
    if value is None:
        return None
    dt = _as_datetime(value)
    if dt is None:
        return None
    return calc_week(dt.date(), week_mode(to_int(mode or 0)))[0]


def fn_yearweek(value, mode=0):
    if value is None:
        return None
    dt = _as_datetime(value)
    if dt is None:
        return None
    week, year = calc_week(dt.date(), week_mode(to_int(mode or 0)) | WEEK_YEAR)
    return year * 100 + week


@nullsafe
def fn_last_day(value):
    dt = _as_datetime(value)
    if dt is None:
        return None
    return date(dt.year, dt.month, calendar.monthrange(dt.year, dt.month)[1]).isoformat()


@nullsafe
def fn_datediff(a, b):
    da, db = _as_datetime(a), _as_datetime(b)
    if da is None or db is None:
        return None
    return (da.date() - db.date()).days


@nullsafe
def fn_from_days(n):
    n = to_int(n)
    if n <= 365:
        return "0000-00-00"
    try:
        return date.fromordinal(n - 365).isoformat()
    except (OverflowError, ValueError):
        return None


@nullsafe
def fn_makedate(year, doy):
    year, doy = to_int(year), to_int(doy)
    if doy <= 0:
        return None
    try:
        return (date(year, 1, 1) + timedelta(days=doy - 1)).isoformat()
    except (OverflowError, ValueError):
        return None


@nullsafe
def fn_time_to_sec(value):
    t = parse_time(value)
    if t is None:
        return None
    return t[0] * (t[1] // 1_000_000)


@nullsafe
def fn_sec_to_time(value):
    n = to_number(value)
    sign = -1 if n < 0 else 1
    return format_time(sign, int(abs(n) * 1_000_000))


def _interval_fields(value: Any, unit: str) -> dict[str, float] | None:
    """Split an INTERVAL value into its unit components ('1:30' HOUR_MINUTE → hour=1, minute=30)."""
    names = INTERVAL_FIELDS.get(unit.upper())
    if names is None:
        return None
    if len(names) == 1:
        n = to_number(value)
        if names[0] not in ("second", "microsecond"):
            n = int(math.copysign(math.floor(abs(n) + 0.5), n))
        return {names[0]: n}
    text = to_text(value).strip()
    sign = -1 if text.startswith("-") else 1
    numbers = [int(x) for x in re.findall(r"\d+", text)]
    if not numbers or len(numbers) > len(names):
        return None
    aligned = dict(zip(names[len(names) - len(numbers):], numbers))
    return {k: sign * v for k, v in aligned.items()}


def _add_months(dt: datetime, months: int) -> datetime | None:
    total = dt.year * 12 + (dt.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    if not 1 <= year <= 9999:
        return None
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def date_add(value: Any, amount: Any, unit: str, sign: int = 1) -> str | None:
    """DATE_ADD / DATE_SUB / d + INTERVAL n unit."""
    if value is None or amount is None or unit is None:
        return None
    parts = parse_datetime(value)
    if parts is None:
        t = parse_time(value)
        if t is None:
            return None
        fields = _interval_fields(amount, to_text(unit))
        if fields is None:
            return None
        delta = timedelta(
            days=fields.get("day", 0) + 7 * fields.get("week", 0), hours=fields.get("hour", 0),
            minutes=fields.get("minute", 0), seconds=fields.get("second", 0),
            microseconds=fields.get("microsecond", 0),
        )
        micros = t[0] * t[1] + sign * int(delta / timedelta(microseconds=1))
        return format_time(-1 if micros < 0 else 1, abs(micros))
    dt = parts.to_datetime()
    if dt is None:
        return None
    fields = _interval_fields(amount, to_text(unit))
    if fields is None:
        return None
    months = fields.get("year", 0) * 12 + fields.get("quarter", 0) * 3 + fields.get("month", 0)
    if months:
        dt = _add_months(dt, sign * int(months))
        if dt is None:
            return None
    try:
        dt = dt + sign * timedelta(
            days=fields.get("day", 0) + 7 * fields.get("week", 0),
            hours=fields.get("hour", 0),
            minutes=fields.get("minute", 0),
            seconds=fields.get("second", 0),
            microseconds=fields.get("microsecond", 0),
        )
    except OverflowError:
        return None
    keep_date = not parts.has_time and to_text(unit).upper() in DATE_ONLY_UNITS
    return format_datetime(dt, with_time=not keep_date)


def fn_date_add(value, amount, unit):
    return date_add(value, amount, unit, 1)


def fn_date_sub(value, amount, unit):
    return date_add(value, amount, unit, -1)


def fn_adddate(value, amount, unit="DAY"):
    return date_add(value, amount, unit, 1)


def fn_subdate(value, amount, unit="DAY"):
    return date_add(value, amount, unit, -1)


def fn_addtime(value, amount):
    if value is None or amount is None:
        return None
    t = parse_time(amount)
    if t is None:
        return None
    return date_add(value, t[0] * t[1], "MICROSECOND", 1)


def _months_between(a: datetime, b: datetime) -> int:
    months = (b.year - a.year) * 12 + (b.month - a.month)
    tail_b = (b.day, b.hour, b.minute, b.second, b.microsecond)
    tail_a = (a.day, a.hour, a.minute, a.second, a.microsecond)
    if months > 0 and tail_b < tail_a:
        months -= 1
    elif months < 0 and tail_b > tail_a:
        months += 1
    return months


@nullsafe
def fn_timestampdiff(unit, a, b):
    da, db = _as_datetime(a), _as_datetime(b)
    if da is None or db is None:
        return None
    unit = to_text(unit).upper()
    if unit in ("MONTH", "QUARTER", "YEAR"):
        months = _months_between(da, db)
        return int(months / {"MONTH": 1, "QUARTER": 3, "YEAR": 12}[unit])
    micros = (db - da) // timedelta(microseconds=1)
    per = {
        "MICROSECOND": 1,
        "SECOND": 1_000_000,
        "MINUTE": 60_000_000,
        "HOUR": 3_600_000_000,
        "DAY": 86_400_000_000,
        "WEEK": 604_800_000_000,
    }.get(unit)
    if per is None:
        return None
    return int(micros / per)


def fn_timestampadd(unit, amount, value):
    return date_add(value, amount, unit, 1)


@nullsafe
def fn_extract(unit, value):
    unit = to_text(unit).upper()
    parts = parse_datetime(value)
    if parts is None:
        t = parse_time(value)
        if t is None:
            return None
        secs, us = divmod(t[1], 1_000_000)
        parts = DateParts(0, 0, 0, secs // 3600, (secs // 60) % 60, secs % 60, us, True)
    values = {
        "YEAR": parts.year,
        "QUARTER": (parts.month + 2) // 3,
        "MONTH": parts.month,
        "DAY": parts.day,
        "HOUR": parts.hour,
        "MINUTE": parts.minute,
        "SECOND": parts.second,
        "MICROSECOND": parts.microsecond,
        "YEAR_MONTH": parts.year * 100 + parts.month,
        "DAY_HOUR": parts.day * 100 + parts.hour,
        "DAY_MINUTE": (parts.day * 100 + parts.hour) * 100 + parts.minute,
        "DAY_SECOND": ((parts.day * 100 + parts.hour) * 100 + parts.minute) * 100 + parts.second,
        "HOUR_MINUTE": parts.hour * 100 + parts.minute,
        "HOUR_SECOND": (parts.hour * 100 + parts.minute) * 100 + parts.second,
        "MINUTE_SECOND": parts.minute * 100 + parts.second,
    }
    if unit == "WEEK":
        dt = parts.to_datetime()
        return calc_week(dt.date(), week_mode(0))[0] if dt is not None else None
    return values.get(unit)


def fn_cast_date(value):
    if value is None:
        return None
    parts = parse_datetime(value)
    return parts.date_text() if parts is not None else None


def fn_cast_datetime(value):
    if value is None:
        return None
    parts = parse_datetime(value)
    return parts.datetime_text() if parts is not None else None


def fn_cast_time(value):
    if value is None:
        return None
    t = parse_time(value)
    return format_time(*t) if t is not None else None


# ---------- string functions ----------

def fn_concat(*args):
    if any(a is None for a in args):
        return None
    return "".join(to_text(a) for a in args)


def fn_concat_ws(sep, *args):
    if sep is None:
        return None
    return to_text(sep).join(to_text(a) for a in args if a is not None)


def fn_substring(s, pos, length=None):
    if s is None or pos is None:
        return None
    text = to_text(s)
    pos = to_int(pos)
    if pos == 0:
        return ""
    start = pos - 1 if pos > 0 else len(text) + pos
    if start < 0 or start >= len(text):
        return ""
    if length is None:
        return text[start:]
    n = to_int(length)
    if n <= 0:
        return ""
    return text[start:start + n]


@nullsafe
def fn_substring_index(s, delim, count):
    text, delim, count = to_text(s), to_text(delim), to_int(count)
    if not delim or count == 0:
        return ""
    pieces = text.split(delim)
    if count > 0:
        return delim.join(pieces[:count])
    return delim.join(pieces[count:])


def fn_locate(sub, s, pos=1):
    if sub is None or s is None or pos is None:
        return None
    pos = to_int(pos)
    if pos < 1:
        return 0
    return to_text(s).lower().find(to_text(sub).lower(), pos - 1) + 1


@nullsafe
def fn_instr(s, sub):
    return to_text(s).lower().find(to_text(sub).lower()) + 1


@nullsafe
def fn_left(s, n):
    n = to_int(n)
    return to_text(s)[:n] if n > 0 else ""


@nullsafe
def fn_right(s, n):
    n = to_int(n)
    return to_text(s)[-n:] if n > 0 else ""


@nullsafe
def fn_lpad(s, n, pad):
    text, n, pad = to_text(s), to_int(n), to_text(pad)
    if n < 0:
        return None
    if len(text) >= n:
        return text[:n]
    if not pad:
        return None
    fill = (pad * (n // len(pad) + 1))[: n - len(text)]
    return fill + text


@nullsafe
def fn_rpad(s, n, pad):
    text, n, pad = to_text(s), to_int(n), to_text(pad)
    if n < 0:
        return None
    if len(text) >= n:
        return text[:n]
    if not pad:
        return None
    return text + (pad * (n // len(pad) + 1))[: n - len(text)]


@nullsafe
def fn_repeat(s, n):
    n = to_int(n)
    return to_text(s) * n if n > 0 else ""


@nullsafe
def fn_reverse(s):
    return to_text(s)[::-1]


@nullsafe
def fn_space(n):
    n = to_int(n)
    return " " * n if n > 0 else ""


def fn_field(needle, *haystack):
    if needle is None:
        return 0
    if all(isinstance(x, (int, float)) for x in (needle,) + tuple(h for h in haystack if h is not None)):
        for i, h in enumerate(haystack, start=1):
            if h is not None and h == needle:
                return i
        return 0
    target = to_text(needle).lower()
    for i, h in enumerate(haystack, start=1):
        if h is not None and to_text(h).lower() == target:
            return i
    return 0


@nullsafe
def fn_find_in_set(needle, items):
    target = to_text(needle).lower()
    if "," in target:
        return 0
    text = to_text(items)
    if not text:
        return 0
    for i, item in enumerate(text.split(","), start=1):
        if item.lower() == target:
            return i
    return 0


@nullsafe
def fn_length(s):
    if isinstance(s, bytes):
        return len(s)
    return len(to_text(s).encode("utf-8"))


@nullsafe
def fn_char_length(s):
    if isinstance(s, bytes):
        return len(s)
    return len(to_text(s))


def _bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return to_text(value).encode("utf-8")


@nullsafe
def fn_md5(s):
    return hashlib.md5(_bytes(s)).hexdigest()


@nullsafe
def fn_sha1(s):
    return hashlib.sha1(_bytes(s)).hexdigest()


@nullsafe
def fn_sha2(s, bits):
    algo = {0: "sha256", 224: "sha224", 256: "sha256", 384: "sha384", 512: "sha512"}.get(to_int(bits))
    if algo is None:
        return None
    return hashlib.new(algo, _bytes(s)).hexdigest()


@nullsafe
def fn_crc32(s):
    return zlib.crc32(_bytes(s)) & 0xFFFFFFFF


@nullsafe
def fn_inet_aton(s):
    text = to_text(s).strip()
    parts = text.split(".")
    if not 1 <= len(parts) <= 4 or not all(p.isdigit() for p in parts):
        return None
    nums = [int(p) for p in parts]
    if any(n > 255 for n in nums[:-1]):
        return None
    # MySQL expands short forms: 'a.b' means a.0.0.b
    last = nums[-1]
    value = 0
    for n in nums[:-1]:
        value = (value << 8) | n
    value <<= 8 * (4 - len(nums) + 1)
    if last >= 1 << (8 * (4 - len(nums) + 1)):
        return None
    return value | last


@nullsafe
def fn_inet_ntoa(n):
    n = to_int(n)
    if not 0 <= n <= 0xFFFFFFFF:
        return None
    return str(ipaddress.IPv4Address(n))


def _compile(pattern: Any, case_sensitive: bool) -> re.Pattern | None:
    try:
        return re.compile(to_text(pattern), 0 if case_sensitive else re.IGNORECASE)
    except re.error:
        return None


def fn_regexp(value, pattern):
    """value REGEXP pattern → 1/0; case-insensitive unless an operand is binary."""
    if value is None or pattern is None:
        return None
    rx = _compile(pattern, isinstance(value, bytes) or isinstance(pattern, bytes))
    if rx is None:
        return None
    return 1 if rx.search(to_text(value)) else 0


def fn_regexp_replace(value, pattern, replacement):
    if value is None or pattern is None or replacement is None:
        return None
    rx = _compile(pattern, False)
    if rx is None:
        return None
    repl = re.sub(r"\$(\d)", r"\\\1", to_text(replacement))
    return rx.sub(repl, to_text(value))


def fn_regexp_substr(value, pattern):
    if value is None or pattern is None:
        return None
    rx = _compile(pattern, False)
    if rx is None:
        return None
    m = rx.search(to_text(value))
    return m.group(0) if m else None


def fn_trim(s, *rest):
    """TRIM([BOTH|LEADING|TRAILING] remstr FROM s); remstr is a whole string, not a char set."""
    if s is None or any(r is None for r in rest):
        return None
    remstr = rest[0] if rest else " "
    mode = rest[1] if len(rest) > 1 else "BOTH"
    text = to_text(s)
    rem = to_text(remstr)
    if not rem:
        return text
    mode = to_text(mode).upper()
    if mode in ("BOTH", "LEADING", "TRIM", "LTRIM"):
        while text.startswith(rem):
            text = text[len(rem):]
    if mode in ("BOTH", "TRAILING", "TRIM", "RTRIM"):
        while text.endswith(rem):
            text = text[: len(text) - len(rem)]
    return text


@nullsafe
def fn_lower(s):
    return to_text(s).lower()


@nullsafe
def fn_upper(s):
    return to_text(s).upper()


def fn_elt(n, *items):
    if n is None:
        return None
    n = to_int(n)
    if 1 <= n <= len(items):
        v = items[n - 1]
        return None if v is None else to_text(v)
    return None


@nullsafe
def fn_insert(s, pos, length, new):
    text, pos, length, new = to_text(s), to_int(pos), to_int(length), to_text(new)
    if pos < 1 or pos > len(text):
        return text
    if length < 0 or pos - 1 + length > len(text):
        length = len(text) - pos + 1
    return text[: pos - 1] + new + text[pos - 1 + length:]


@nullsafe
def fn_strcmp(a, b):
    x, y = to_text(a).lower(), to_text(b).lower()
    return (x > y) - (x < y)


@nullsafe
def fn_hex(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        n = to_int(value)
        return format(n & U64 if n < 0 else n, "X")
    return _bytes(value).hex().upper()


@nullsafe
def fn_unhex(value):
    try:
        return bytes.fromhex(to_text(value))
    except ValueError:
        return None


@nullsafe
def fn_ascii(s):
    b = _bytes(s)
    return b[0] if b else 0


@nullsafe
def fn_ord(s):
    text = to_text(s)
    if not text:
        return 0
    b = text[0].encode("utf-8")
    return int.from_bytes(b, "big")


def fn_char(*codes):
    out = bytearray()
    for c in codes:
        if c is None:
            continue
        n = to_int(c) & 0xFFFFFFFF
        out.extend(n.to_bytes(max(1, (n.bit_length() + 7) // 8), "big"))
    return out.decode("utf-8", "replace")


@nullsafe
def fn_bin(n):
    n = to_int(n)
    return format(n & U64 if n < 0 else n, "b")


@nullsafe
def fn_oct(n):
    n = to_int(n)
    return format(n & U64 if n < 0 else n, "o")


@nullsafe
def fn_conv(value, from_base, to_base):
    fb, tb = abs(to_int(from_base)), to_int(to_base)
    if not (2 <= fb <= 36 and 2 <= abs(tb) <= 36):
        return None
    m = re.match(r"-?[0-9a-zA-Z]+", to_text(value).strip())
    if m is None:
        return "0"
    try:
        n = int(m.group(0), fb)
    except ValueError:
        return "0"
    if n < 0 and tb > 0:
        n &= U64
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    base = abs(tb)
    neg = n < 0
    n = abs(n)
    out = ""
    while True:
        n, r = divmod(n, base)
        out = digits[r] + out
        if n == 0:
            break
    return ("-" if neg else "") + out


def fn_format(x, d, _locale=None):
    if x is None or d is None:
        return None
    d = max(0, to_int(d))
    return f"{_round_half_up(to_number(x), d):,.{d}f}"


@nullsafe
def fn_to_base64(s):
    return base64.b64encode(_bytes(s)).decode("ascii")


@nullsafe
def fn_from_base64(s):
    try:
        return base64.b64decode(_bytes(s), validate=False)
    except ValueError:
        return None


def fn_uuid() -> str:
    return str(uuid.uuid1())


@nullsafe
def fn_soundex(s):
    text = "".join(ch for ch in to_text(s).upper() if ch.isalpha())
    if not text:
        return ""
    codes = {c: d for d, letters in {
        "1": "BFPV", "2": "CGJKQSXZ", "3": "DT", "4": "L", "5": "MN", "6": "R",
    }.items() for c in letters}
    out = text[0]
    last = codes.get(text[0], "")
    for ch in text[1:]:
        code = codes.get(ch, "")
        if code and code != last:
            out += code
        if ch not in "HW":
            last = code
    return out.ljust(4, "0")


def fn_quote(s):
    if s is None:
        return "NULL"
    text = to_text(s)
    for a, b in (("\\", "\\\\"), ("'", "\\'"), ("\0", "\\0"), ("\x1a", "\\Z")):
        text = text.replace(a, b)
    return "'" + text + "'"


# ---------- numeric functions ----------

def _round_half_up(x: float | int, d: int = 0) -> float | int:
    if isinstance(x, int) and d >= 0:
        return x
    factor = 10 ** d
    value = math.floor(abs(x) * factor + 0.5) / factor
    value = math.copysign(value, x)
    if d <= 0:
        return int(value)
    return value


def _math1(op: Callable[[float], float], domain: Callable[[float], bool] = lambda x: True) -> Callable:
    @nullsafe
    def fn(x):
        v = float(to_number(x))
        if not domain(v):
            return None
        try:
            return op(v)
        except (OverflowError, ValueError):
            return None
    return fn


@nullsafe
def fn_floor(x):
    n = to_number(x)
    return n if isinstance(n, int) else math.floor(n)


@nullsafe
def fn_ceil(x):
    n = to_number(x)
    return n if isinstance(n, int) else math.ceil(n)


@nullsafe
def fn_pow(x, y):
    try:
        result = math.pow(to_number(x), to_number(y))
    except (OverflowError, ValueError):
        return None
    return result


def fn_log(*args):
    if not args or any(a is None for a in args):
        return None
    if len(args) == 1:
        x = to_number(args[0])
        return math.log(x) if x > 0 else None
    base, x = to_number(args[0]), to_number(args[1])
    if base <= 0 or base == 1 or x <= 0:
        return None
    return math.log(x) / math.log(base)


@nullsafe
def fn_sign(x):
    n = to_number(x)
    return (n > 0) - (n < 0)


@nullsafe
def fn_truncate(x, d):
    n, d = to_number(x), to_int(d)
    factor = 10 ** d
    value = math.trunc(n * factor) / factor
    if d <= 0:
        return int(value)
    return value


@nullsafe
def fn_mod(a, b):
    x, y = to_number(a), to_number(b)
    if y == 0:
        return None
    return math.fmod(x, y) if isinstance(x, float) or isinstance(y, float) else int(math.fmod(x, y))


@nullsafe
def fn_div(a, b):
    x, y = to_number(a), to_number(b)
    if y == 0:
        return None
    q = int(abs(x) // abs(y))
    return q if (x >= 0) == (y > 0) else -q


@nullsafe
def fn_divide(a, b):
    x, y = to_number(a), to_number(b)
    if y == 0:
        return None
    return x / y


@nullsafe
def fn_bitxor(a, b):
    return to_int(a) ^ to_int(b)


def fn_round(x, d=0):
    if x is None or d is None:
        return None
    return _round_half_up(to_number(x), to_int(d))


_rand_state = random.Random()


def fn_rand(seed=None):
    if seed is not None:
        return random.Random(to_int(seed)).random()
    return _rand_state.random()


def _extreme(pick: Callable) -> Callable:
    def fn(*args):
        if not args or any(a is None for a in args):
            return None
        if all(isinstance(a, (int, float)) for a in args):
            return pick(args)
        if all(isinstance(a, (int, float)) or _NUM_PREFIX.fullmatch(to_text(a).strip() or "x") for a in args):
            return pick(to_number(a) for a in args)
        return pick((to_text(a) for a in args), key=str.lower)
    return fn


fn_greatest = _extreme(max)
fn_least = _extreme(min)


def fn_cast_unsigned(value):
    if value is None:
        return None
    if isinstance(value, str) and parse_datetime(value) is not None and "-" in value:
        return to_int(value)
    n = to_int(value)
    return sqlite_int(n & U64)


def fn_cast_signed(value):
    if value is None:
        return None
    n = to_int(value)
    if n > I64_MAX:
        n -= 1 << 64
    return n


# ---------- full-text ----------

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def fn_match(against, boolean_mode, *columns):
    """
    Relevance of MATCH(columns) AGAINST(against).

    Natural language mode: number of query-word occurrences in the document.
    Boolean mode honors +required, -excluded and trailing * prefix terms;
    a document failing a required/excluded term scores 0.
    """
    if against is None:
        return 0.0
    document = " ".join(to_text(c) for c in columns if c is not None).lower()
    words = _WORD_RE.findall(document)
    if not words:
        return 0.0
    query = to_text(against).lower()

    def occurrences(term: str, prefix: bool) -> int:
        if prefix:
            return sum(1 for w in words if w.startswith(term))
        return sum(1 for w in words if w == term)

    if not boolean_mode:
        return float(sum(occurrences(t, False) for t in _WORD_RE.findall(query)))

    score = 0.0
    for raw in re.findall(r'[+\-~<>]?"[^"]*"|[+\-~<>]?[\w*]+', query):
        op = raw[0] if raw[0] in "+-~<>" else ""
        term = raw[1:] if op else raw
        if term.startswith('"'):
            phrase = term.strip('"').strip()
            hits = document.count(phrase) if phrase else 0
        else:
            prefix = term.endswith("*")
            term = term.rstrip("*")
            hits = occurrences(term, prefix) if term else 0
        if op == "+" and not hits:
            return 0.0
        if op == "-" and hits:
            return 0.0
        if op == "~":
            score -= 0.5 * hits
        elif op != "-":
            score += hits
    return max(score, 0.0)


# ---------- aggregates ----------

class BitAnd:
    def __init__(self):
        self.value = U64

    def step(self, x):
        if x is not None:
            self.value &= to_int(x) & U64

    def finalize(self):
        return sqlite_int(self.value)


class BitOr:
    def __init__(self):
        self.value = 0

    def step(self, x):
        if x is not None:
            self.value |= to_int(x) & U64

    def finalize(self):
        return sqlite_int(self.value)


class BitXor:
    def __init__(self):
        self.value = 0

    def step(self, x):
        if x is not None:
            self.value ^= to_int(x) & U64

    def finalize(self):
        return sqlite_int(self.value)


class _Moments:
    """Welford running variance; subclasses pick population/sample and sqrt."""
    sample = False
    root = False

    def __init__(self):
        self.n = 0
        self.mean = 0.0
        self.m2 = 0.0

    def step(self, x):
        if x is None:
            return
        v = float(to_number(x))
        self.n += 1
        delta = v - self.mean
        self.mean += delta / self.n
        self.m2 += delta * (v - self.mean)

    def finalize(self):
        denom = self.n - 1 if self.sample else self.n
        if denom <= 0:
            return None if self.n == 0 or self.sample else 0.0
        var = self.m2 / denom
        return math.sqrt(var) if self.root else var


class VarPop(_Moments):
    pass


class VarSamp(_Moments):
    sample = True


class StdPop(_Moments):
    root = True


class StdSamp(_Moments):
    sample = True
    root = True


class GroupConcat:
    """GROUP_CONCAT(value, separator, distinct) for the combinations SQLite cannot express."""

    def __init__(self):
        self.items: list[str] = []
        self.seen: set[str] = set()
        self.sep = ","

    def step(self, value, sep=",", distinct=0):
        if value is None:
            return
        self.sep = "," if sep is None else to_text(sep)
        text = to_text(value)
        if distinct:
            if text in self.seen:
                return
            self.seen.add(text)
        self.items.append(text)

    def finalize(self):
        if not self.items:
            return None
        return self.sep.join(self.items)


# ---------- registry ----------

# name → (callable, number of args (-1 = variadic), deterministic)
SCALAR_FUNCTIONS: dict[str, tuple[Callable, int, bool]] = {
    "now": (fn_now, -1, False),
    "utc_timestamp": (fn_utc_timestamp, -1, False),
    "curdate": (fn_curdate, 0, False),
    "utc_date": (fn_utc_date, 0, False),
    "curtime": (fn_curtime, -1, False),
    "utc_time": (fn_utc_time, -1, False),
    "unix_timestamp": (fn_unix_timestamp, -1, False),
    "from_unixtime": (fn_from_unixtime, -1, True),
    "date_format": (fn_date_format, 2, True),
    "str_to_date": (fn_str_to_date, 2, True),
    "date": (fn_date, 1, True),
    "time": (fn_time, 1, True),
    "year": (fn_year, 1, True),
    "month": (fn_month, 1, True),
    "day": (fn_day, 1, True),
    "quarter": (fn_quarter, 1, True),
    "hour": (fn_hour, 1, True),
    "minute": (fn_minute, 1, True),
    "second": (fn_second, 1, True),
    "microsecond": (fn_microsecond, 1, True),
    "dayofweek": (fn_dayofweek, 1, True),
    "weekday": (fn_weekday, 1, True),
    "dayofyear": (fn_dayofyear, 1, True),
    "monthname": (fn_monthname, 1, True),
    "dayname": (fn_dayname, 1, True),
    "to_days": (fn_to_days, 1, True),
    "from_days": (fn_from_days, 1, True),
    "makedate": (fn_makedate, 2, True),
    "week": (fn_week, -1, True),
    "yearweek": (fn_yearweek, -1, True),
    "last_day": (fn_last_day, 1, True),
    "datediff": (fn_datediff, 2, True),
    "time_to_sec": (fn_time_to_sec, 1, True),
    "sec_to_time": (fn_sec_to_time, 1, True),
    "date_add": (fn_date_add, 3, True),
    "date_sub": (fn_date_sub, 3, True),
    "adddate": (fn_adddate, -1, True),
    "subdate": (fn_subdate, -1, True),
    "addtime": (fn_addtime, 2, True),
    "timestampdiff": (fn_timestampdiff, 3, True),
    "timestampadd": (fn_timestampadd, 3, True),
    "extract": (fn_extract, 2, True),
    "cast_date": (fn_cast_date, 1, True),
    "cast_datetime": (fn_cast_datetime, 1, True),
    "cast_time": (fn_cast_time, 1, True),
    "concat": (fn_concat, -1, True),
    "concat_ws": (fn_concat_ws, -1, True),
    "substring": (fn_substring, -1, True),
    "substring_index": (fn_substring_index, 3, True),
    "locate": (fn_locate, -1, True),
    "instr": (fn_instr, 2, True),
    "left": (fn_left, 2, True),
    "right": (fn_right, 2, True),
    "lpad": (fn_lpad, 3, True),
    "rpad": (fn_rpad, 3, True),
    "repeat": (fn_repeat, 2, True),
    "reverse": (fn_reverse, 1, True),
    "space": (fn_space, 1, True),
    "field": (fn_field, -1, True),
    "find_in_set": (fn_find_in_set, 2, True),
    "length": (fn_length, 1, True),
    "char_length": (fn_char_length, 1, True),
    "md5": (fn_md5, 1, True),
    "sha1": (fn_sha1, 1, True),
    "sha2": (fn_sha2, 2, True),
    "crc32": (fn_crc32, 1, True),
    "inet_aton": (fn_inet_aton, 1, True),
    "inet_ntoa": (fn_inet_ntoa, 1, True),
    "regexp": (fn_regexp, 2, True),
    "regexp_replace": (fn_regexp_replace, 3, True),
    "regexp_substr": (fn_regexp_substr, 2, True),
    "trim": (fn_trim, -1, True),
    "lower": (fn_lower, 1, True),
    "upper": (fn_upper, 1, True),
    "elt": (fn_elt, -1, True),
    "insert": (fn_insert, 4, True),
    "strcmp": (fn_strcmp, 2, True),
    "hex": (fn_hex, 1, True),
    "unhex": (fn_unhex, 1, True),
    "ascii": (fn_ascii, 1, True),
    "ord": (fn_ord, 1, True),
    "char": (fn_char, -1, True),
    "bin": (fn_bin, 1, True),
    "oct": (fn_oct, 1, True),
    "conv": (fn_conv, 3, True),
    "format": (fn_format, -1, True),
    "to_base64": (fn_to_base64, 1, True),
    "from_base64": (fn_from_base64, 1, True),
    "uuid": (fn_uuid, 0, False),
    "soundex": (fn_soundex, 1, True),
    "quote": (fn_quote, 1, True),
    "floor": (fn_floor, 1, True),
    "ceil": (fn_ceil, 1, True),
    "pow": (fn_pow, 2, True),
    "sqrt": (_math1(math.sqrt, lambda x: x >= 0), 1, True),
    "log": (fn_log, -1, True),
    "ln": (_math1(math.log, lambda x: x > 0), 1, True),
    "log2": (_math1(math.log2, lambda x: x > 0), 1, True),
    "log10": (_math1(math.log10, lambda x: x > 0), 1, True),
    "exp": (_math1(math.exp), 1, True),
    "pi": (lambda: math.pi, 0, True),
    "sign": (fn_sign, 1, True),
    "truncate": (fn_truncate, 2, True),
    "mod": (fn_mod, 2, True),
    "div": (fn_div, 2, True),
    "divide": (fn_divide, 2, True),
    "bitxor": (fn_bitxor, 2, True),
    "round": (fn_round, -1, True),
    "rand": (fn_rand, -1, False),
    "degrees": (_math1(math.degrees), 1, True),
    "radians": (_math1(math.radians), 1, True),
    "sin": (_math1(math.sin), 1, True),
    "cos": (_math1(math.cos), 1, True),
    "tan": (_math1(math.tan), 1, True),
    "cot": (_math1(lambda x: 1 / math.tan(x), lambda x: x != 0), 1, True),
    "asin": (_math1(math.asin, lambda x: -1 <= x <= 1), 1, True),
    "acos": (_math1(math.acos, lambda x: -1 <= x <= 1), 1, True),
    "atan": (_math1(math.atan), 1, True),
    "atan2": (nullsafe(lambda y, x: math.atan2(float(to_number(y)), float(to_number(x)))), 2, True),
    "greatest": (fn_greatest, -1, True),
    "least": (fn_least, -1, True),
    "cast_unsigned": (fn_cast_unsigned, 1, True),
    "cast_signed": (fn_cast_signed, 1, True),
    "match": (fn_match, -1, True),
}

AGGREGATE_FUNCTIONS: dict[str, tuple[type, int]] = {
    "bit_and": (BitAnd, 1),
    "bit_or": (BitOr, 1),
    "bit_xor": (BitXor, 1),
    "var_pop": (VarPop, 1),
    "var_samp": (VarSamp, 1),
    "stddev_pop": (StdPop, 1),
    "stddev_samp": (StdSamp, 1),
    "group_concat": (GroupConcat, 3),
}

# Called with no arguments to detect an installed catalog.
_MARKER_FUNCTION = "pi"


def sql_name(name: str) -> str:
    """Registered SQLite name of a catalog function."""
    return PREFIX + name.lower()


def is_installed(conn: sqlite3.Connection) -> bool:
    """True when the catalog is already registered on this connection."""
    try:
        conn.execute(f"SELECT {sql_name(_MARKER_FUNCTION)}()").fetchall()
    except sqlite3.OperationalError:
        return False
    return True


def install_functions(conn: sqlite3.Connection) -> bool:
    """
    Register the full UDF catalog on a connection.

    Registration happens once per connection; later calls are no-ops.

    Args:
        conn: SQLite connection.

    Returns:
        True if the catalog was registered by this call, False if it already was.
    """
    if is_installed(conn):
        return False
    for name, (fn, nargs, deterministic) in SCALAR_FUNCTIONS.items():
        conn.create_function(sql_name(name), nargs, fn, deterministic=deterministic)
    for name, (cls, nargs) in AGGREGATE_FUNCTIONS.items():
        conn.create_aggregate(sql_name(name), nargs, cls)
    logger.debug("Installed {} scalar and {} aggregate functions", len(SCALAR_FUNCTIONS), len(AGGREGATE_FUNCTIONS))
    return True
