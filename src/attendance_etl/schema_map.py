"""attendance_etl.schema_map

Versioned column maps for the registration report.

The report is positional: there are no per-cell labels on data rows, only a
header row.  Rather than reading cells by bare index, the parser goes through
a ColumnMap, which is picked once per table by matching the header row
against the known layouts:

  LEGACY_EXPORT   45 columns (0–44): discrete first/last name, referral slots
  CURRENT_EXPORT  54 columns (0–53): adds full_name at 45 and the
                  complimentary-holder block at 49–51
  UNKNOWN         anything else → SchemaDriftError before any row is read

Both form versions (LEGACY / CURRENT) can appear as rows inside a
CURRENT_EXPORT table; the per-row form version is inferred by the parser
from which cells are populated.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

log = logging.getLogger(__name__)

MIN_CELLS = 45


class ReportLayout(str, enum.Enum):
    LEGACY_EXPORT = "LEGACY_EXPORT"
    CURRENT_EXPORT = "CURRENT_EXPORT"
    UNKNOWN = "UNKNOWN"


class SchemaDriftError(ValueError):
    """Raised when a report header matches no known column layout."""


# ---------------------------------------------------------------------------
# Field → column index tables
# ---------------------------------------------------------------------------

_BASE_COLUMNS: dict[str, int] = {
    "background": 0,
    "booking_id": 1,
    "transaction_id": 2,
    "booking_commit": 3,
    "trans_date": 4,
    "venue": 5,
    "event_name": 6,
    "show_date": 7,
    "ticketwise_qty": 8,
    "seat_info": 9,
    "ticket_qty": 10,
    "ticket_amount": 11,
    "item_desc": 12,
    "item_qty": 13,
    "item_amount": 14,
    "invoice_qty": 15,
    "invoice_amount": 16,
    "additional_desc": 17,
    "additional_amount": 18,
    "additional_charges": 19,
    "first_name": 20,
    "last_name": 21,
    "age": 22,
    "gender": 23,
    "phone": 24,
    "email": 25,
    "pincode": 26,
    "sports_tournament": 27,
    "referral_optin": 28,
    "terms_accepted": 44,
}

# Referral slots: (name, mobile, email) × 5 starting at column 29.
REFERRAL_SLOTS = 5
_REFERRAL_START = 29
for _slot in range(REFERRAL_SLOTS):
    _BASE_COLUMNS[f"referral_{_slot + 1}_name"] = _REFERRAL_START + _slot * 3
    _BASE_COLUMNS[f"referral_{_slot + 1}_phone"] = _REFERRAL_START + _slot * 3 + 1
    _BASE_COLUMNS[f"referral_{_slot + 1}_email"] = _REFERRAL_START + _slot * 3 + 2

_CURRENT_COLUMNS: dict[str, int] = {
    **_BASE_COLUMNS,
    "full_name": 45,
    "pincode_repeat": 46,
    "sports_tournament_current": 47,
    "inflate_run": 48,
    "comp_full_name": 49,
    "comp_mobile": 50,
    "comp_email": 51,
    "remarks": 52,
    "age_alternate": 53,
}

# Header text expected at anchor positions, compared case-insensitively.
_LEGACY_ANCHORS: dict[int, str] = {
    2: "trans_id",
    4: "trans_date",
    5: "cinema_name",
    6: "event_name",
    10: "ticket_qty",
    11: "ticket_amt",
    20: "first_name",
    21: "last_name",
    24: "primary_phoneno",
    25: "primary_email",
    29: "name_1",
    43: "email_id_5",
}

_CURRENT_ANCHORS: dict[int, str] = {
    **_LEGACY_ANCHORS,
    45: "full_name",
    49: "fullname",
    50: "mobilenumber",
    51: "email",
}


@dataclass(frozen=True)
class ColumnMap:
    layout: ReportLayout
    columns: dict[str, int]
    width: int

    def has(self, name: str) -> bool:
        return name in self.columns

    def get(self, cells: list[str], name: str) -> str:
        """Return the cell for `name`, or '' if the layout/row lacks it."""
        idx = self.columns.get(name)
        if idx is None or idx >= len(cells):
            return ""
        return cells[idx] or ""


LEGACY_EXPORT_MAP = ColumnMap(ReportLayout.LEGACY_EXPORT, dict(_BASE_COLUMNS), 45)
CURRENT_EXPORT_MAP = ColumnMap(ReportLayout.CURRENT_EXPORT, dict(_CURRENT_COLUMNS), 54)

_MAPS = {
    ReportLayout.LEGACY_EXPORT: LEGACY_EXPORT_MAP,
    ReportLayout.CURRENT_EXPORT: CURRENT_EXPORT_MAP,
}


# ---------------------------------------------------------------------------
# Layout detection
# ---------------------------------------------------------------------------

def _matches(headers: list[str], anchors: dict[int, str]) -> bool:
    for idx, expected in anchors.items():
        if idx >= len(headers):
            return False
        if headers[idx].strip().lower() != expected:
            return False
    return True


def detect_layout(headers: list[str] | None) -> ReportLayout:
    """Classify a header row.  No header at all means CURRENT_EXPORT."""
    if not headers:
        return ReportLayout.CURRENT_EXPORT
    if _matches(headers, _CURRENT_ANCHORS):
        return ReportLayout.CURRENT_EXPORT
    if _matches(headers, _LEGACY_ANCHORS):
        return ReportLayout.LEGACY_EXPORT
    return ReportLayout.UNKNOWN


def resolve_column_map(headers: list[str] | None) -> ColumnMap:
    """Return the ColumnMap for a header row or raise SchemaDriftError."""
    layout = detect_layout(headers)
    if layout is ReportLayout.UNKNOWN:
        anchors = _CURRENT_ANCHORS if headers and len(headers) > 45 else _LEGACY_ANCHORS
        mismatched = [
            f"{idx}:{expected!r}!={headers[idx] if idx < len(headers) else None!r}"
            for idx, expected in anchors.items()
            if idx >= len(headers) or headers[idx].strip().lower() != expected
        ]
        raise SchemaDriftError(
            f"unknown registration report layout ({len(headers)} header cells); "
            f"mismatched anchors: {mismatched[:5]}"
        )
    log.debug("registration report layout: %s", layout.value)
    return _MAPS[layout]
