"""attendance_etl.tickets

Cardinality and transaction-level fixes applied after normalization.

  expand_complimentary    one comp row for N tickets → N records, ids
                          '<trans_id>_comp_<n>'; every record ends up
                          holding quantity 1
  backfill_transactions   rows sharing a transaction id get that
                          transaction's fields from its primary row
  disambiguate_registration_ids
                          siblings of a group purchase that still share a
                          storage key get '_<n>' suffixes

All three return new Registration instances; inputs are not modified.
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Any

from attendance_etl.models import Registration, TransactionMeta
from attendance_etl.shared import RunCounters

log = logging.getLogger(__name__)

_TRANSACTION_FIELDS = tuple(f.name for f in fields(TransactionMeta))
_TICKET_FIELDS = ("seat_info", "ordered_qty", "amount")


# ---------------------------------------------------------------------------
# Ticket expander
# ---------------------------------------------------------------------------

def expand_complimentary(
    registration: Registration,
    counters: RunCounters | None = None,
) -> list[Registration]:
    """Split a multi-ticket complimentary record into one record per ticket.

    Every other record comes back as a single-element list holding one
    ticket.  The reported quantity stays on `ticket.ordered_qty`.
    """
    quantity = registration.ticket.quantity
    if not registration.ticket.is_complimentary or quantity <= 1:
        if quantity == 1:
            return [registration]
        return [replace(registration, ticket=replace(registration.ticket, quantity=1))]

    if counters is not None:
        counters.complimentary_rows_expanded += 1
    log.debug(
        "complimentary transaction %s: expanding into %d records",
        registration.transaction_id, quantity,
    )
    single = replace(registration.ticket, quantity=1)
    return [
        replace(
            registration,
            registration_id=f"{registration.transaction_id}_comp_{n}",
            ticket=single,
        )
        for n in range(1, quantity + 1)
    ]


def expand_registrations(
    registrations: list[Registration],
    counters: RunCounters | None = None,
) -> list[Registration]:
    expanded: list[Registration] = []
    for reg in registrations:
        expanded.extend(expand_complimentary(reg, counters))
    if counters is not None:
        counters.records_after_expansion = len(expanded)
    return expanded


# ---------------------------------------------------------------------------
# Transaction backfill
# ---------------------------------------------------------------------------

def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == 0


def _is_primary(reg: Registration) -> bool:
    t = reg.transaction
    return bool(
        t.trans_date and t.venue and t.event_name and t.show_date
        and reg.ticket.quantity > 0
    )


def _group_by_transaction(registrations: list[Registration]) -> dict[str, list[int]]:
    groups: dict[str, list[int]] = {}
    for idx, reg in enumerate(registrations):
        if not reg.transaction_id:
            continue
        groups.setdefault(reg.transaction_id, []).append(idx)
    return groups


def _primary_values(primary: Registration) -> dict[str, dict[str, Any]]:
    """The primary's non-empty transaction-level fields."""
    values: dict[str, dict[str, Any]] = {"transaction": {}, "ticket": {}}
    for name in _TRANSACTION_FIELDS:
        value = getattr(primary.transaction, name)
        if not _is_empty(value):
            values["transaction"][name] = value
    for name in _TICKET_FIELDS:
        value = getattr(primary.ticket, name)
        if not _is_empty(value):
            values["ticket"][name] = value
    return values


def _fill(reg: Registration, values: dict[str, dict[str, Any]]) -> Registration:
    trans_updates = {
        name: value
        for name, value in values["transaction"].items()
        if _is_empty(getattr(reg.transaction, name))
    }
    ticket_updates = {
        name: value
        for name, value in values["ticket"].items()
        if _is_empty(getattr(reg.ticket, name))
    }
    if not trans_updates and not ticket_updates:
        return reg
    return replace(
        reg,
        transaction=replace(reg.transaction, **trans_updates),
        ticket=replace(reg.ticket, **ticket_updates),
    )


def backfill_transactions(
    registrations: list[Registration],
    counters: RunCounters | None = None,
) -> list[Registration]:
    """Fill empty transaction-level fields within each multi-row transaction.

    The primary row is the first whose transaction date, venue, event name,
    show date and ticket quantity are all set (else the first row).  Its
    values are copied into the other rows of the group wherever a row has
    the field empty or zero.  The primary itself is never written; name,
    contact and age are never touched, and the complimentary flag keeps
    its normalized value.
    Records without a transaction id are left alone.
    """
    result = list(registrations)
    groups = _group_by_transaction(registrations)
    for trans_id, indexes in groups.items():
        if len(indexes) < 2:
            continue
        if counters is not None:
            counters.transaction_groups += 1
        primary_idx = next(
            (i for i in indexes if _is_primary(registrations[i])), indexes[0]
        )
        values = _primary_values(registrations[primary_idx])
        for idx in indexes:
            if idx == primary_idx:
                continue
            filled = _fill(registrations[idx], values)
            if filled is not registrations[idx]:
                result[idx] = filled
                if counters is not None:
                    counters.records_backfilled += 1
                log.debug("backfilled transaction fields for %s (%s)",
                          filled.display_name, trans_id)
    return result


# ---------------------------------------------------------------------------
# Storage keys
# ---------------------------------------------------------------------------

def disambiguate_registration_ids(
    registrations: list[Registration],
    counters: RunCounters | None = None,
) -> list[Registration]:
    """Make registration_id unique across the run.

    The first record keeps its id; later records with the same id (group
    purchases reported one row per attendee under one transaction id) get
    '_2', '_3', ... in report order.  Records without any id become
    'unknown', 'unknown_2', ...
    """
    seen: set[str] = set()
    occurrences: dict[str, int] = {}
    result: list[Registration] = []
    for reg in registrations:
        base = reg.registration_id or "unknown"
        candidate = base
        if candidate in seen:
            n = occurrences.get(base, 1)
            while candidate in seen:
                n += 1
                candidate = f"{base}_{n}"
            occurrences[base] = n
            if counters is not None:
                counters.registration_ids_disambiguated += 1
        seen.add(candidate)
        result.append(reg if candidate == reg.registration_id else replace(reg, registration_id=candidate))
    return result
