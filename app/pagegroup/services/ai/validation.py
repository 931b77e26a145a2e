"""
Value validation and normalization utilities for extracted data.

Handles:
- Date detection and parsing (python-dateutil)
- Field value coercion for field mode
- Cell coercion for table mode
"""

import logging
import re
from datetime import datetime
from typing import Any

from dateutil import parser

logger = logging.getLogger(__name__)

# Shapes accepted as dates before dateutil gets a say
_NUMERIC_DATE = re.compile(
    r"^(\d{4}[-/.]\d{1,2}[-/.]\d{1,2}|\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4})"
    r"([ T]\d{1,2}:\d{2}(:\d{2})?)?$"
)
_MONTH_NAME = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)"
    r"(uary|ruary|ch|il|e|y|ust|tember|ober|ember)?\.?(?=[\s,\d\-/.]|$)",
    re.IGNORECASE,
)

MAX_DATE_LENGTH = 40

NULL_MARKERS = {"", "null", "none", "n/a"}


def looks_like_date(value: Any) -> bool:
    """
    Heuristic date check used to tag field values as ``"date"``.

    A value qualifies when it is a short string with at least one digit,
    has a numeric date shape or contains a month name, and dateutil parses it.
    """
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not text or len(text) > MAX_DATE_LENGTH:
        return False
    if not any(char.isdigit() for char in text):
        return False
    if not (_NUMERIC_DATE.match(text) or _MONTH_NAME.search(text)):
        return False
    try:
        parser.parse(text)
    except (ValueError, OverflowError):
        try:
            parser.parse(text, dayfirst=True)
        except (ValueError, OverflowError):
            return False
    return True


def parse_date(value: Any) -> datetime | None:
    """
    Parse various date formats to a naive datetime.

    Month-first is tried before day-first. Returns None if parsing fails.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)

    value = value.strip()
    if not looks_like_date(value):
        return None

    for dayfirst in (False, True):
        try:
            return parser.parse(value, dayfirst=dayfirst).replace(tzinfo=None)
        except (ValueError, OverflowError):
            continue
    return None


def coerce_field_value(raw: Any) -> str | None:
    """
    Reduce a model-provided field entry to a string value or None.

    Accepts either the requested ``{"value": ..., "type": ...}`` shape or a
    bare scalar. Containers and null markers become None.
    """
    if isinstance(raw, dict):
        raw = raw.get("value")
    if raw is None or isinstance(raw, (dict, list)):
        return None
    if isinstance(raw, bool):
        return "true" if raw else "false"
    text = str(raw).strip()
    if text.lower() in NULL_MARKERS:
        return None
    return text


def field_type_for(value: str | None) -> str:
    """``"date"`` for values that look like dates, ``"text"`` otherwise."""
    return "date" if looks_like_date(value) else "text"


def coerce_cell(raw: Any) -> str:
    """Stringify a table cell, flattening embedded newlines to spaces."""
    if raw is None:
        return ""
    if isinstance(raw, bool):
        text = "true" if raw else "false"
    elif isinstance(raw, float) and raw.is_integer():
        text = str(int(raw))
    else:
        text = str(raw)
    return re.sub(r"\s*[\r\n]+\s*", " ", text).strip()


def coerce_page_number(raw: Any) -> int | None:
    """Accept ints and numeric strings; anything else is None."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None
