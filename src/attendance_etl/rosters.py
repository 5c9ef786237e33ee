"""attendance_etl.rosters

CSV loaders for the two rosters the matcher consumes:

  group members           full_name, mobile_number, alternate_mobile_number,
                          email, age, group
  historical participants full_name, phone, years, age

Headers are matched case-insensitively after stripping.  `years` holds
one or more four-digit years separated by commas, semicolons, pipes or
spaces; an empty cell means no recorded attendance.
"""

from __future__ import annotations

import csv
import re
from pathlib import Path

from attendance_etl.models import GroupMember, HistoricalParticipant
from attendance_etl.normalize import normalize_space, parse_int, trim
from attendance_etl.shared import normalize_headers

MEMBER_REQUIRED_HEADERS = frozenset({"full_name", "mobile_number", "group"})
HISTORICAL_REQUIRED_HEADERS = frozenset({"full_name", "phone", "years"})

_YEAR_SPLIT_RE = re.compile(r"[,;|\s]+")


class RosterFormatError(ValueError):
    """Raised when a roster CSV is missing required headers."""


def _read_rows(csv_path: Path, required: frozenset[str]) -> list[dict[str, str]]:
    with csv_path.open(encoding="utf-8-sig", newline="") as fh:
        reader = csv.DictReader(fh)
        header_set = {k.strip().lower() for k in (reader.fieldnames or [])}
        missing = required - header_set
        if missing:
            raise RosterFormatError(
                f"{csv_path.name} missing required headers: {sorted(missing)}"
            )
        return [normalize_headers(raw) for raw in reader]


def _age(value: str | None) -> int | None:
    age, ok = parse_int(value)
    return age if ok and age > 0 else None


def parse_years(value: str | None) -> frozenset[int]:
    """'2019, 2022' → frozenset({2019, 2022}); non-year tokens are dropped."""
    v = trim(value)
    if v is None:
        return frozenset()
    years = set()
    for token in _YEAR_SPLIT_RE.split(v):
        if len(token) == 4 and token.isdigit():
            years.add(int(token))
    return frozenset(years)


def member_from_row(row: dict[str, str]) -> GroupMember:
    return GroupMember(
        full_name=normalize_space(row.get("full_name")) or "",
        mobile_number=trim(row.get("mobile_number")) or "",
        alternate_mobile_number=trim(row.get("alternate_mobile_number")) or "",
        email=trim(row.get("email")) or "",
        age=_age(row.get("age")),
        group=(trim(row.get("group")) or "").upper(),
    )


def historical_from_row(row: dict[str, str]) -> HistoricalParticipant:
    return HistoricalParticipant(
        full_name=normalize_space(row.get("full_name")) or "",
        phone=trim(row.get("phone")) or "",
        years=parse_years(row.get("years")),
        age=_age(row.get("age")),
    )


def load_group_members(csv_path: Path) -> list[GroupMember]:
    """Load the group-member roster in file order (matching order).

    Raises:
        RosterFormatError: If a required header is missing.
    """
    return [member_from_row(row) for row in _read_rows(csv_path, MEMBER_REQUIRED_HEADERS)]


def load_historical_participants(csv_path: Path) -> list[HistoricalParticipant]:
    """Load the historical-attendance roster.

    Raises:
        RosterFormatError: If a required header is missing.
    """
    return [
        historical_from_row(row)
        for row in _read_rows(csv_path, HISTORICAL_REQUIRED_HEADERS)
    ]
