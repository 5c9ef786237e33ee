"""attendance_etl.report_html

Extract tabular cells from the raw report HTML handed over by the fetch
session.  Two reports are understood:

  - the column-wise registration report (one <tr> per ticket holder row)
  - the event-wise summary report (capacity / sold / off-loaded totals)

Nothing here interprets cell meaning beyond the summary columns; the
registration rows are returned as plain lists of text for the schema map
and the registration parser.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from attendance_etl.models import EventSummary
from attendance_etl.normalize import parse_int, parse_number, trim

log = logging.getLogger(__name__)

_REGISTRATION_MARKERS = ("Cinema_Name", "Event_Name")
_SUMMARY_MARKERS = ("Event Name", "Show Date")
_SUMMARY_MIN_CELLS = 21
_SUMMARY_TOTAL_MARKER = "Total :"


@dataclass
class RegistrationTable:
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)


def _cell_text(cell) -> str:
    return cell.get_text(" ", strip=True)


def _has_markers(table, markers: tuple[str, ...]) -> bool:
    text = table.get_text(" ")
    return all(m in text for m in markers)


def _find_table(soup: BeautifulSoup, markers: tuple[str, ...]):
    """Return the innermost table whose text carries all markers.

    Report pages wrap the data grid in layout tables, so the outer ones
    match too.
    """
    for table in soup.find_all("table"):
        if not _has_markers(table, markers):
            continue
        if any(_has_markers(inner, markers) for inner in table.find_all("table")):
            continue
        return table
    return None


# ---------------------------------------------------------------------------
# Registration report
# ---------------------------------------------------------------------------

def parse_registration_report(html: str) -> RegistrationTable:
    """Return the header cells and the data-row cells of the registration table.

    The header is the first row holding <th> cells; without one, the first
    row is taken as the header.  Rows are returned as-is (short rows
    included) so the parser can count them as malformed.
    """
    soup = BeautifulSoup(html, "html.parser")
    table = _find_table(soup, _REGISTRATION_MARKERS)
    if table is None:
        log.warning("registration data table not found in report HTML")
        return RegistrationTable(headers=[])

    trs = table.find_all("tr")
    if not trs:
        return RegistrationTable(headers=[])
    header_idx = 0
    for idx, tr in enumerate(trs):
        if tr.find("th") is not None:
            header_idx = idx
            break

    header_tr = trs[header_idx]
    headers = [_cell_text(c) for c in header_tr.find_all(["th", "td"])]
    rows = [
        [_cell_text(td) for td in tr.find_all("td")]
        for tr in trs[header_idx + 1:]
    ]
    log.debug("registration table: %d header cells, %d rows", len(headers), len(rows))
    return RegistrationTable(headers=headers, rows=rows)


# ---------------------------------------------------------------------------
# Event summary report
# ---------------------------------------------------------------------------

def _summary_from_cells(cells: list[str]) -> EventSummary:
    def i(idx: int) -> int:
        return parse_int(cells[idx])[0]

    def f(idx: int) -> float:
        return parse_number(cells[idx])[0]

    return EventSummary(
        event_name=trim(cells[0]) or "",
        show_date=trim(cells[1]) or "",
        location=trim(cells[2]) or "",
        capacity=i(3),
        killed=i(4),
        other_seat=i(5),
        reserve_seat=i(6),
        special_seat=i(7),
        available_for_sale=i(8),
        tickets_sold=i(9),
        sold_amount=f(10),
        debtor_discount_amount=f(11),
        net_sold_amount=f(12),
        comp_qty=i(13),
        comp_amount=f(14),
        unpaid_cod=f(15),
        unpaid_qty=i(16),
        total_offloaded_qty=i(17),
        total_offloaded_amount=f(18),
        social_distancing_count=i(19),
        available=i(20),
    )


def parse_event_summary_report(html: str) -> list[EventSummary]:
    """Parse every data row of the event summary table, skipping the totals row."""
    soup = BeautifulSoup(html, "html.parser")
    table = _find_table(soup, _SUMMARY_MARKERS)
    if table is None:
        log.warning("event summary table not found in report HTML")
        return []

    summaries: list[EventSummary] = []
    for tr in table.find_all("tr"):
        tds = tr.find_all("td")
        if len(tds) < _SUMMARY_MIN_CELLS:
            continue
        if _SUMMARY_TOTAL_MARKER in tr.get_text(" "):
            continue
        summaries.append(_summary_from_cells([_cell_text(td) for td in tds]))
    return summaries
