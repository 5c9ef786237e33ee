"""attendance_etl.registration_parser

Turn one positional report row into one canonical Registration.

The report carries two registration forms in the same table.  Neither row
says which form produced it; the form is read off the populated cells:

  LEGACY   first_name / last_name (cols 20–21) and up to five referral
           invitee triples (cols 29–43)
  CURRENT  a single full_name (col 45), no referral data

Name resolution order (never yields an empty display name):
  1. discrete first/last name, if either is non-empty
  2. full_name split on whitespace (first token / remainder; a single token
     is repeated as the last name)
  3. complimentary rows whose name is empty or a guest placeholder take the
     complimentary-holder name (col 49) minus any '(...)' annotation, and
     the complimentary mobile (col 50) when the primary phone is empty
  4. a synthetic guest label built from the first 8 characters of the
     transaction id

The record returned still carries the reported ticket quantity; splitting
multi-ticket complimentary rows (and settling every record at one ticket)
is the ticket expander's job.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from attendance_etl.models import (
    Contact,
    FormVersion,
    Identity,
    Invitee,
    Registration,
    TicketMeta,
    TransactionMeta,
)
from attendance_etl.normalize import (
    extract_protected_email,
    is_blank,
    normalize_space,
    parse_number,
    split_full_name,
    strip_parenthetical,
    trim,
)
from attendance_etl.pipeline_config import PipelineConfig
from attendance_etl.schema_map import (
    CURRENT_EXPORT_MAP,
    MIN_CELLS,
    REFERRAL_SLOTS,
    ColumnMap,
)
from attendance_etl.shared import MalformedRowError, RejectWriter, RunCounters

log = logging.getLogger(__name__)

_SURVEY_FIELDS = (
    "sports_tournament",
    "referral_optin",
    "terms_accepted",
    "pincode_repeat",
    "sports_tournament_current",
    "inflate_run",
    "remarks",
)


class _RowReader:
    """Column-map access to one row, with numeric parse-warning tracking."""

    def __init__(self, cells: list[str], column_map: ColumnMap) -> None:
        self.cells = cells
        self.column_map = column_map
        self.warnings: list[str] = []

    def text(self, name: str) -> str:
        v = trim(self.column_map.get(self.cells, name))
        if v is None or is_blank(v):
            return ""
        return v

    def raw(self, name: str) -> str:
        return trim(self.column_map.get(self.cells, name)) or ""

    def number(self, name: str) -> float:
        value, ok = parse_number(self.column_map.get(self.cells, name))
        if not ok:
            self.warnings.append(f"{name}={self.raw(name)!r}")
        return value


def is_complimentary(amount: float, seat_info: str, markers: Iterable[str]) -> bool:
    """Zero-amount tickets and seat info carrying a comp marker are complimentary."""
    if amount == 0:
        return True
    seat = seat_info.lower()
    return any(marker in seat for marker in markers)


def _resolve_ticket_type(item_desc: str, seat_info: str, default: str) -> str:
    if item_desc:
        return item_desc
    if seat_info:
        return seat_info
    return default


def _read_referrals(reader: _RowReader) -> tuple[Invitee, ...]:
    slots = []
    for slot in range(1, REFERRAL_SLOTS + 1):
        slots.append(Invitee(
            name=reader.text(f"referral_{slot}_name"),
            phone=reader.text(f"referral_{slot}_phone"),
            email=extract_protected_email(reader.text(f"referral_{slot}_email")),
        ))
    return tuple(slots)


def _read_age(reader: _RowReader) -> int | None:
    age = int(reader.number("age"))
    if age <= 0 and reader.column_map.has("age_alternate"):
        age = int(reader.number("age_alternate"))
    return age if age > 0 else None


# ---------------------------------------------------------------------------
# Single row
# ---------------------------------------------------------------------------

def normalize_row(
    cells: list[str],
    column_map: ColumnMap = CURRENT_EXPORT_MAP,
    config: PipelineConfig | None = None,
    counters: RunCounters | None = None,
) -> Registration:
    """Normalize one report row.

    Raises:
        MalformedRowError: If the row has fewer than 45 cells.
    """
    if len(cells) < MIN_CELLS:
        raise MalformedRowError(f"row has {len(cells)} cells; need at least {MIN_CELLS}")
    config = config or PipelineConfig()
    counters = counters if counters is not None else RunCounters()
    reader = _RowReader(cells, column_map)

    transaction_id = reader.text("transaction_id")
    seat_info = reader.text("seat_info")
    amount = reader.number("ticket_amount")
    quantity = int(reader.number("ticket_qty"))
    comp = is_complimentary(amount, seat_info, config.complimentary_markers)
    phone = reader.text("phone")

    # Steps 1–2: discrete names, then full name.
    first = reader.text("first_name")
    last = reader.text("last_name")
    used_discrete = bool(first or last)
    if not used_discrete:
        first, last = split_full_name(reader.text("full_name"))
    display = normalize_space(f"{first} {last}") or ""

    # Step 3: complimentary-holder block.
    placeholder = not display or not first or first.startswith(config.guest_prefix)
    if comp and placeholder:
        comp_name = strip_parenthetical(reader.text("comp_full_name"))
        if comp_name:
            first, last = split_full_name(comp_name, repeat_single=False)
            display = comp_name
            counters.comp_names_used += 1
        comp_mobile = reader.text("comp_mobile")
        if comp_mobile and not phone:
            phone = comp_mobile

    # Step 4: synthetic guest label.
    if not display:
        first = f"{config.guest_prefix}{transaction_id[:8] or 'unknown'}"
        last = ""
        display = first
        counters.guest_names_synthesized += 1
        log.debug("no name on row for transaction %r; using %s", transaction_id, first)

    referrals = _read_referrals(reader)
    has_referrals = any(inv.is_filled() for inv in referrals)
    if has_referrals or used_discrete:
        form_version = FormVersion.LEGACY
        counters.legacy_form_records += 1
    else:
        form_version = FormVersion.CURRENT
        referrals = ()
        counters.current_form_records += 1

    item_desc = reader.text("item_desc")
    transaction = TransactionMeta(
        trans_date=reader.text("trans_date"),
        venue=reader.text("venue"),
        event_name=reader.text("event_name") or config.default_event_name,
        show_date=reader.text("show_date"),
        booking_commit=reader.text("booking_commit"),
        ticketwise_qty=reader.number("ticketwise_qty"),
        item_desc=item_desc,
        item_qty=reader.number("item_qty"),
        item_amount=reader.number("item_amount"),
        invoice_qty=reader.number("invoice_qty"),
        invoice_amount=reader.number("invoice_amount"),
        additional_desc=reader.text("additional_desc"),
        additional_amount=reader.number("additional_amount"),
        additional_charges=reader.number("additional_charges"),
    )
    ticket = TicketMeta(
        amount=amount,
        is_complimentary=comp,
        seat_info=seat_info,
        quantity=quantity,
        ticket_type=_resolve_ticket_type(item_desc, seat_info, config.default_ticket_type),
        ordered_qty=quantity,
    )
    age = _read_age(reader)

    if reader.warnings:
        counters.parse_warnings += len(reader.warnings)
        counters.warn(f"trans_id={transaction_id}: unparsable {', '.join(reader.warnings)}")

    counters.records_normalized += 1
    return Registration(
        registration_id=transaction_id,
        transaction_id=transaction_id,
        booking_id=reader.text("booking_id"),
        identity=Identity(first_name=first, last_name=last, display_name=display),
        contact=Contact(
            phone=phone,
            email=extract_protected_email(reader.text("email")),
        ),
        form_version=form_version,
        ticket=ticket,
        transaction=transaction,
        age=age,
        gender=reader.text("gender"),
        pincode=reader.text("pincode"),
        referrals=referrals,
        survey={
            name: reader.text(name)
            for name in _SURVEY_FIELDS
            if column_map.has(name) and reader.text(name)
        },
    )


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

def normalize_rows(
    rows: Iterable[list[str]],
    column_map: ColumnMap,
    config: PipelineConfig,
    counters: RunCounters,
    rejects: RejectWriter | None = None,
) -> Iterator[Registration]:
    """Normalize every row, skipping (and counting) malformed ones."""
    for row_number, cells in enumerate(rows, start=1):
        counters.rows_read += 1
        try:
            yield normalize_row(cells, column_map, config, counters)
        except MalformedRowError as exc:
            counters.rows_rejected += 1
            counters.warn(f"row {row_number}: {exc}")
            log.warning("row %d rejected: %s", row_number, exc)
            if rejects is not None:
                rejects.write(row_number, cells, exc.reason)
