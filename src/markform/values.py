# src/markform/values.py
# Scalar coercions shared by field values, table cells and patches.
# Every coercer takes text and returns the typed value or raises ValueError.

from __future__ import annotations
import datetime as _dt
import math
import re
from typing import Union

NUMBER_RE = re.compile(r'^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$')
INT_RE = re.compile(r'^[+-]?\d+$')
URL_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*://[^\s/?#]+\S*$')
DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

YEAR_MIN = 1000
YEAR_MAX = 9999

Number = Union[int, float]


def parse_number(text: str) -> Number:
    s = (text or "").strip()
    if not NUMBER_RE.match(s):
        raise ValueError(f"Invalid number '{s}'")
    if INT_RE.match(s):
        return int(s)
    value = float(s)
    if not math.isfinite(value):
        raise ValueError(f"Number '{s}' is out of range")
    return value


def format_number(value: Number) -> str:
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    if isinstance(value, int):
        return str(value)
    return repr(float(value))


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def parse_url(text: str) -> str:
    s = (text or "").strip()
    if not URL_RE.match(s):
        raise ValueError(f"Invalid URL '{s}'")
    return s


def is_url(value) -> bool:
    return isinstance(value, str) and bool(URL_RE.match(value))


def parse_date(text: str) -> str:
    s = (text or "").strip()
    if not is_date(s):
        raise ValueError(f"Invalid date '{s}' (expected YYYY-MM-DD)")
    return s


def is_date(value) -> bool:
    if not isinstance(value, str) or not DATE_RE.match(value):
        return False
    try:
        _dt.date(int(value[:4]), int(value[5:7]), int(value[8:10]))
    except ValueError:
        return False
    return True


def parse_year(text) -> int:
    if isinstance(text, int) and not isinstance(text, bool):
        year = text
    else:
        s = str(text or "").strip()
        if not INT_RE.match(s):
            raise ValueError(f"Invalid year '{s}'")
        year = int(s)
    if not YEAR_MIN <= year <= YEAR_MAX:
        raise ValueError(f"Year {year} is out of range ({YEAR_MIN}-{YEAR_MAX})")
    return year


def is_year(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and YEAR_MIN <= value <= YEAR_MAX
