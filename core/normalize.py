"""
Field interpreters for dates and amounts.
Both parsers return None for unusable input instead of raising, so a bad
cell surfaces as a row validation error rather than aborting the batch.
"""
import math
import re
from datetime import date, datetime
from typing import Any, Callable, List, Optional, Tuple

from dateutil import parser as date_parser

from core.logger import setup_logger

logger = setup_logger(__name__)

_AMOUNT_NOISE = re.compile(r"[$€£\s,]")

# dateutil fills missing parts from its default; parsing against two
# defaults that differ in every date part exposes any filled-in part
_FALLBACK_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def _ymd(match: re.Match) -> Tuple[str, str, str]:
    return match.group(1), match.group(2), match.group(3)


def _mdy(match: re.Match) -> Tuple[str, str, str]:
    return match.group(3), match.group(1), match.group(2)


def _dmy(match: re.Match) -> Tuple[str, str, str]:
    return match.group(3), match.group(2), match.group(1)


# Tried in order; strict regexes keep DD/MM and MM/DD from being confused
DATE_PATTERNS: List[Tuple[str, re.Pattern, Callable[[re.Match], Tuple[str, str, str]]]] = [
    ("YYYY-MM-DD", re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), _ymd),
    ("MM/DD/YYYY", re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), _mdy),
    ("DD-MM-YYYY", re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), _dmy),
    ("YYYY/MM/DD", re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), _ymd),
]


def _to_iso(year: str, month: str, day: str) -> Optional[str]:
    """Zero-pad and check the parts form a real calendar date."""
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[str]:
    """
    Parse a date cell into YYYY-MM-DD.

    Tries YYYY-MM-DD, MM/DD/YYYY, DD-MM-YYYY and YYYY/MM/DD in order, then
    falls back to a generic dateutil parse, which must supply the year,
    month and day itself.

    Args:
        value: Raw cell text

    Returns:
        ISO date string, or None if empty or unparsable
    """
    if value is None:
        return None

    text = str(value).strip()
    if not text:
        return None

    for name, pattern, extract in DATE_PATTERNS:
        match = pattern.match(text)
        if match:
            result = _to_iso(*extract(match))
            if result is None:
                logger.debug(f"Date '{text}' matched {name} but is not a calendar date")
            return result

    try:
        first, second = (date_parser.parse(text, default=default).date() for default in _FALLBACK_DEFAULTS)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Failed to parse date: '{text}' -> {e}")
        return None

    if first != second:
        logger.debug(f"Date '{text}' is missing a year, month or day")
        return None
    return first.isoformat()


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse an amount cell into a float.

    Currency symbols, whitespace and thousands separators are removed.
    A value wrapped in parentheses is negative.

    Args:
        value: Raw cell text or number

    Returns:
        Parsed float, or None if empty or unparsable
    """
    if value is None:
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
        return number if math.isfinite(number) else None

    cleaned = _AMOUNT_NOISE.sub("", str(value))
    if not cleaned:
        return None

    negative = cleaned.startswith("(") and cleaned.endswith(")")
    if negative:
        cleaned = cleaned[1:-1]

    try:
        number = float(cleaned)
    except ValueError:
        logger.debug(f"Failed to parse amount: '{value}'")
        return None

    if not math.isfinite(number):
        return None

    return -number if negative else number
