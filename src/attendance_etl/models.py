"""attendance_etl.models

Canonical record types shared by every pipeline stage.

A Registration is one attendee holding one ticket.  It is built by the
registration parser, re-shaped by the ticket expander and transaction
backfill (both return new instances via dataclasses.replace), and treated
as read-only by the matcher and the stats aggregator.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any


class FormVersion(str, enum.Enum):
    """Which registration form produced a row.

    LEGACY rows carry discrete first/last names and the five referral
    slots; CURRENT rows carry a single full-name field and no referrals.
    """

    LEGACY = "LEGACY"
    CURRENT = "CURRENT"


@dataclass(frozen=True)
class Identity:
    first_name: str
    last_name: str
    display_name: str


@dataclass(frozen=True)
class Contact:
    phone: str = ""
    email: str = ""


@dataclass(frozen=True)
class Invitee:
    name: str = ""
    phone: str = ""
    email: str = ""

    def is_filled(self) -> bool:
        return bool(self.name or self.phone or self.email)


@dataclass(frozen=True)
class TicketMeta:
    """Ticket cells of one row.

    `ordered_qty` is the ticket-quantity cell as reported, for the whole
    transaction.  `quantity` is what this record holds: the reported value
    until the ticket expander runs, 1 afterwards.
    """

    amount: float = 0.0
    is_complimentary: bool = False
    seat_info: str = ""
    quantity: int = 0
    ticket_type: str = ""
    ordered_qty: int = 0


@dataclass(frozen=True)
class TransactionMeta:
    """Transaction-level cells; any of these may be blank until backfilled."""

    trans_date: str = ""
    venue: str = ""
    event_name: str = ""
    show_date: str = ""
    booking_commit: str = ""
    ticketwise_qty: float = 0.0
    item_desc: str = ""
    item_qty: float = 0.0
    item_amount: float = 0.0
    invoice_qty: float = 0.0
    invoice_amount: float = 0.0
    additional_desc: str = ""
    additional_amount: float = 0.0
    additional_charges: float = 0.0


@dataclass(frozen=True)
class Registration:
    registration_id: str
    transaction_id: str
    booking_id: str
    identity: Identity
    contact: Contact
    form_version: FormVersion
    ticket: TicketMeta
    transaction: TransactionMeta
    age: int | None = None
    gender: str = ""
    pincode: str = ""
    referrals: tuple[Invitee, ...] = ()
    survey: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def display_name(self) -> str:
        return self.identity.display_name

    def invitee_count(self) -> int:
        return sum(1 for inv in self.referrals if inv.is_filled())

    def to_document(self) -> dict[str, Any]:
        """Flat JSON-ready form used by the store and the report artifacts."""
        doc = asdict(self)
        doc["form_version"] = self.form_version.value
        doc["referrals"] = [asdict(inv) for inv in self.referrals]
        return doc


@dataclass(frozen=True)
class GroupMember:
    full_name: str
    mobile_number: str = ""
    alternate_mobile_number: str = ""
    email: str = ""
    age: int | None = None
    group: str = ""


@dataclass(frozen=True)
class HistoricalParticipant:
    full_name: str
    phone: str = ""
    years: frozenset[int] = frozenset()
    age: int | None = None


@dataclass(frozen=True)
class MatchLink:
    """A claimed (member, registration) pair.

    member_index / registration_index are positions in the roster and the
    registration list as handed to the matcher.  `method` records how the
    claim was made: 'name_confirmed', 'name_only', 'phone' or 'email'.
    """

    member_index: int
    registration_index: int
    registration_id: str
    group: str
    method: str
    score: int = 0


@dataclass(frozen=True)
class EventSummary:
    """One row of the event-wise summary report."""

    event_name: str
    show_date: str
    location: str
    capacity: int = 0
    killed: int = 0
    other_seat: int = 0
    reserve_seat: int = 0
    special_seat: int = 0
    available_for_sale: int = 0
    tickets_sold: int = 0
    sold_amount: float = 0.0
    debtor_discount_amount: float = 0.0
    net_sold_amount: float = 0.0
    comp_qty: int = 0
    comp_amount: float = 0.0
    unpaid_cod: float = 0.0
    unpaid_qty: int = 0
    total_offloaded_qty: int = 0
    total_offloaded_amount: float = 0.0
    social_distancing_count: int = 0
    available: int = 0
