"""
Heuristic Date Parsing

NCBI isolate metadata carries dates in several shapes: ``MM/DD/YYYY``,
``YYYY-MM-DD``, a bare year, or free text that starts with a year
(``2019/2020``, ``2018-05``). This module normalizes all of them into a
``datetime.date`` so trees can be compared against a date window.

Parsing never fails outward. Anything that cannot be read becomes the
sentinel date 1969-12-31, so one garbled field cannot abort a run.
``parse_date`` returns a tagged ``ParsedDate`` and leaves logging to the
caller; ``to_date`` is the convenience wrapper that logs a warning for
fallbacks and returns the plain date.

Rules, first match wins:
1. Blank input -> sentinel (no warning)
2. ``M/D/Y`` anywhere in the string
3. ``Y-M-D`` anywhere in the string
4. Exactly four digits -> bare year
5. Leading four digits -> bare year
6. Otherwise -> sentinel with a warning

Example Usage:
    >>> from pathogentrees.dates import parse_date, to_date
    >>> parse_date("6/15/2021").value
    datetime.date(2021, 6, 15)
    >>> to_date("not a date")
    datetime.date(1969, 12, 31)
"""

from typing import NamedTuple, Optional
from datetime import date
import logging
import re

logger = logging.getLogger(__name__)

SENTINEL_DATE = date(1969, 12, 31)

MDY_PATTERN = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2,4})")
YMD_PATTERN = re.compile(r"(\d{2,4})-(\d{1,2})-(\d{1,2})")
YEAR_PATTERN = re.compile(r"\d{4}")
LEADING_YEAR_PATTERN = re.compile(r"(\d{4})")


class ParsedDate(NamedTuple):
    """Result of parsing one raw date string."""
    value: date
    ok: bool
    reason: Optional[str] = None


def _expand_year(token: str) -> int:
    # Two-digit years pivot like strptime's %y
    year = int(token)
    if len(token) == 2:
        year += 1900 if year >= 69 else 2000
    return year


def _match_date(text: str) -> Optional[date]:
    """Apply the first matching rule; raises ValueError for impossible dates."""
    match = MDY_PATTERN.search(text)
    if match:
        month, day, year = match.groups()
        return date(_expand_year(year), int(month), int(day))

    match = YMD_PATTERN.search(text)
    if match:
        year, month, day = match.groups()
        return date(_expand_year(year), int(month), int(day))

    if YEAR_PATTERN.fullmatch(text):
        return date(int(text), 1, 1)

    match = LEADING_YEAR_PATTERN.match(text)
    if match:
        return date(int(match.group(1)), 1, 1)

    return None


def parse_date(raw: Optional[str]) -> ParsedDate:
    """
    Parse a raw date string into a ``ParsedDate``.

    Parameters
    ----------
    raw : str or None
        Date string from metadata or the command line

    Returns
    -------
    ParsedDate
        ``ok`` is False when the sentinel was substituted for unreadable
        input; ``reason`` then explains why. Blank input yields the sentinel
        with ``ok=True`` because an empty field is not a parse failure.

    Examples
    --------
    >>> parse_date("2021-06-15")
    ParsedDate(value=datetime.date(2021, 6, 15), ok=True, reason=None)
    >>> parse_date("")
    ParsedDate(value=datetime.date(1969, 12, 31), ok=True, reason=None)
    """
    text = "" if raw is None else str(raw).strip()
    if not text:
        return ParsedDate(SENTINEL_DATE, True)

    try:
        parsed = _match_date(text)
    except ValueError as e:
        return ParsedDate(SENTINEL_DATE, False, f"invalid date '{text}': {e}")

    if parsed is None:
        return ParsedDate(SENTINEL_DATE, False, f"unrecognized date format '{text}'")

    return ParsedDate(parsed, True)


def to_date(raw: Optional[str]) -> date:
    """Parse ``raw`` and return the date, logging a warning on fallback."""
    result = parse_date(raw)
    if not result.ok:
        logger.warning(
            f"Could not parse {raw!r} as a date ({result.reason}). "
            f"Using {SENTINEL_DATE:%m/%d/%Y}."
        )
    return result.value


def format_date(value: date) -> str:
    """Format a date the way the report and usage text show it."""
    return value.strftime("%m/%d/%Y")
