"""Normalization functions for registration report ingestion and matching.

All functions accept str | None and return the appropriate type or None,
unless noted otherwise.
"""

from __future__ import annotations

import re
from datetime import date, datetime

PROTECTED_EMAIL_SENTINEL = "[email protected]"

_PROTECTED_EMAIL_RE = re.compile(r"\[email(?:&#160;|&nbsp;|\s)protected\]", re.IGNORECASE)
_EMAIL_RE = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
_TRANS_DATE_FORMAT = "%d-%m-%Y"
_PLACEHOLDER_CELLS = {"-", "--"}


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace (incl. NBSP); treat empty string as None."""
    if value is None:
        return None
    v = value.replace("\xa0", " ").strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


def is_blank(value: str | None) -> bool:
    """True for None, whitespace, and the '-' placeholder the report prints."""
    v = trim(value)
    return v is None or v in _PLACEHOLDER_CELLS


# ---------------------------------------------------------------------------
# Rule 3: normalize_name  (match key)
# ---------------------------------------------------------------------------

def normalize_name(value: str | None) -> str | None:
    """Lowercase and trim.

    Punctuation and internal spacing are kept: roster names and report
    names are compared as written.
    """
    v = trim(value)
    if v is None:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 4: normalize_email  (match key)
# ---------------------------------------------------------------------------

def normalize_email(value: str | None) -> str | None:
    """Lowercase and trim an email address.

    The protected-email sentinel is not an address and never matches.
    """
    v = trim(value)
    if v is None or v == PROTECTED_EMAIL_SENTINEL:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 5: normalize_phone10  (match key)
# ---------------------------------------------------------------------------

def normalize_phone10(value: str | None, country_code: str = "91") -> str | None:
    """Return the last 10 digits of a phone number, or None.

    Keeps digits only.  A leading country code is dropped only when the
    digit string is longer than 10, so a 10-digit local number that happens
    to start with the country code is left intact.  Fewer than 10 digits
    → None.
    """
    v = trim(value)
    if v is None:
        return None
    digits = re.sub(r"\D", "", v)
    if country_code and len(digits) > 10 and digits.startswith(country_code):
        digits = digits[len(country_code):]
    if len(digits) < 10:
        return None
    return digits[-10:]


# ---------------------------------------------------------------------------
# Rule 6: parse_number
# ---------------------------------------------------------------------------

def parse_number(value: str | None) -> tuple[float, bool]:
    """Parse a number tolerant of thousands separators.

    Returns (number, ok).  Blank cells give (0, True); anything that still
    fails to parse gives (0, False) so the caller can count a warning.
    """
    if is_blank(value):
        return 0.0, True
    v = trim(value).replace(",", "").replace(" ", "")
    try:
        return float(v), True
    except ValueError:
        return 0.0, False


def parse_int(value: str | None) -> tuple[int, bool]:
    """parse_number truncated to int."""
    number, ok = parse_number(value)
    return int(number), ok


# ---------------------------------------------------------------------------
# Rule 7: parse_trans_date
# ---------------------------------------------------------------------------

def parse_trans_date(value: str | None) -> date | None:
    """Parse the calendar date from a 'DD-MM-YYYY HH:MM:SS' transaction stamp.

    Only the date part is read; a date with no time part is accepted.
    """
    v = trim(value)
    if v is None:
        return None
    date_part = v.split()[0]
    try:
        return datetime.strptime(date_part, _TRANS_DATE_FORMAT).date()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Rule 8: extract_protected_email
# ---------------------------------------------------------------------------

def extract_protected_email(value: str | None) -> str:
    """Return the email address contained in a report cell.

    Obfuscated addresses ('[email protected]' markup) collapse to the
    sentinel.  Otherwise the first address-shaped substring is returned
    verbatim, falling back to the trimmed cell text.
    """
    v = trim(value)
    if v is None:
        return ""
    if _PROTECTED_EMAIL_RE.search(v):
        return PROTECTED_EMAIL_SENTINEL
    m = _EMAIL_RE.search(v)
    if m:
        return m.group(1)
    return v


# ---------------------------------------------------------------------------
# Helpers: names
# ---------------------------------------------------------------------------

def strip_parenthetical(value: str | None) -> str | None:
    """Drop everything from the first '(' on: 'Asha Rao (playlist)' → 'Asha Rao'."""
    v = trim(value)
    if v is None:
        return None
    return normalize_space(v.split("(", 1)[0])


def split_full_name(full_name: str | None, repeat_single: bool = True) -> tuple[str, str]:
    """Split a full name into (first_name, last_name) on whitespace.

    The first token is the first name and the remainder the last name.  A
    single token is repeated as the last name when repeat_single is set,
    otherwise the last name is empty.
    """
    v = normalize_space(full_name)
    if not v:
        return ("", "")
    tokens = v.split(" ")
    first = tokens[0]
    rest = " ".join(tokens[1:])
    if not rest and repeat_single:
        rest = first
    return (first, rest)
