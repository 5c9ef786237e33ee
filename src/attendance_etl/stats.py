"""attendance_etl.stats

Aggregate the reconciled registrations into one StatsSnapshot, the
document behind the dashboard.

compute_stats() is a pure function of its inputs: the same registrations,
roster, links, returning flags, config and calculated_at always give an
equal snapshot.  Everything is counted by person (one per Registration
after complimentary expansion), except the trend, which sums tickets.

Sections:
  overview            totals, off-loaded quantity, data quality, ticket
                      reconciliation against the event summary report
  members             member / non-member split, matched-member groups
  first_timers        first-timer / returning split, first-timer age buckets
  roster              roster-wide registered / not registered
  group_registration  per-group registered vs roster size
  trend               tickets per transaction date
  referrals           LEGACY-form invitee histogram before the cutoff
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from attendance_etl.models import (
    EventSummary,
    FormVersion,
    GroupMember,
    MatchLink,
    Registration,
)
from attendance_etl.normalize import parse_trans_date
from attendance_etl.pipeline_config import PipelineConfig
from attendance_etl.schema_map import REFERRAL_SLOTS
from attendance_etl.shared import RunCounters

log = logging.getLogger(__name__)


def _pct(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part * 100 / whole, 2)


@dataclass
class StatsSnapshot:
    calculated_at: str
    config_version: str
    config_hash: str
    overview: dict[str, Any] = field(default_factory=dict)
    members: dict[str, Any] = field(default_factory=dict)
    first_timers: dict[str, Any] = field(default_factory=dict)
    roster: dict[str, Any] = field(default_factory=dict)
    group_registration: dict[str, Any] = field(default_factory=dict)
    trend: list[dict[str, Any]] = field(default_factory=list)
    referrals: dict[int, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.overview.get("total_registrations", 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "calculated_at": self.calculated_at,
            "config_version": self.config_version,
            "config_hash": self.config_hash,
            "overview": self.overview,
            "members": self.members,
            "first_timers": self.first_timers,
            "roster": self.roster,
            "group_registration": self.group_registration,
            "trend": self.trend,
            # JSON object keys are strings
            "referrals": {str(k): v for k, v in self.referrals.items()},
        }


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _overview(
    registrations: list[Registration],
    members: list[GroupMember],
    historical_count: int,
    event_summaries: list[EventSummary],
    config: PipelineConfig,
) -> dict[str, Any]:
    total = len(registrations)
    tickets_from_registrations = sum(r.ticket.quantity for r in registrations)
    tickets_sold = sum(s.tickets_sold for s in event_summaries)
    if event_summaries:
        total_offloaded_qty = event_summaries[-1].total_offloaded_qty or total
    else:
        total_offloaded_qty = total
    return {
        "total_registrations": total,
        "total_tickets": tickets_from_registrations,
        "total_offloaded_qty": total_offloaded_qty,
        "data_quality": {
            "total_group_members": len(members),
            "total_previous_participants": historical_count,
            "years_considered": list(config.years_considered),
        },
        "ticket_reconciliation": {
            "tickets_sold": tickets_sold,
            "tickets_from_registrations": tickets_from_registrations,
            "difference": tickets_sold - tickets_from_registrations,
            "matches": bool(event_summaries) and tickets_sold == tickets_from_registrations,
        },
    }


def _member_split(
    total: int,
    links: list[MatchLink],
    config: PipelineConfig,
) -> dict[str, Any]:
    member_count = len(links)
    non_members = total - member_count
    breakdown = {group: 0 for group in config.groups}
    for link in links:
        if link.group in breakdown:
            breakdown[link.group] += 1
    return {
        "members": member_count,
        "non_members": non_members,
        "members_percentage": _pct(member_count, total),
        "non_members_percentage": _pct(non_members, total),
        "group_breakdown": breakdown,
    }


def _first_timer_split(
    registrations: list[Registration],
    returning: list[bool],
    config: PipelineConfig,
) -> dict[str, Any]:
    total = len(registrations)
    at_or_above = below = unknown = 0
    returning_count = 0
    for reg, is_returning in zip(registrations, returning):
        if is_returning:
            returning_count += 1
            continue
        if reg.age is None or reg.age <= 0:
            unknown += 1
        elif reg.age >= config.age_threshold:
            at_or_above += 1
        else:
            below += 1
    first_timers = total - returning_count
    return {
        "first_timers": first_timers,
        "returning": returning_count,
        "first_timers_percentage": _pct(first_timers, total),
        "returning_percentage": _pct(returning_count, total),
        "age_threshold": config.age_threshold,
        "age_breakdown": {
            "at_or_above": {"count": at_or_above, "percentage": _pct(at_or_above, first_timers)},
            "below": {"count": below, "percentage": _pct(below, first_timers)},
            "unknown": {"count": unknown, "percentage": _pct(unknown, first_timers)},
        },
    }


def _group_registration(
    members: list[GroupMember],
    links: list[MatchLink],
    config: PipelineConfig,
) -> dict[str, Any]:
    """Registered vs roster size per group, over the whole roster."""
    matched = {link.member_index for link in links}
    result: dict[str, Any] = {}
    for group in config.groups:
        indexes = [i for i, m in enumerate(members) if m.group == group]
        registered = sum(1 for i in indexes if i in matched)
        result[group] = {
            "registered": registered,
            "not_registered": len(indexes) - registered,
            "total": len(indexes),
            "registration_rate": _pct(registered, len(indexes)),
        }
    return result


def _trend(
    registrations: list[Registration],
    counters: RunCounters,
) -> list[dict[str, Any]]:
    per_day: Counter = Counter()
    for reg in registrations:
        day = parse_trans_date(reg.transaction.trans_date)
        if day is None:
            counters.trend_dates_unparsed += 1
            if reg.transaction.trans_date:
                counters.parse_warnings += 1
                counters.warn(
                    f"registration {reg.registration_id}: unparsable transaction date "
                    f"{reg.transaction.trans_date!r}"
                )
            continue
        per_day[day] += reg.ticket.quantity or 1
    return [
        {"date": day.isoformat(), "count": per_day[day]}
        for day in sorted(per_day)
    ]


def _referral_histogram(
    registrations: list[Registration],
    config: PipelineConfig,
    counters: RunCounters,
) -> dict[int, int]:
    """Invitee-count histogram over LEGACY records.

    CURRENT-form records have no referral fields.  A record is left out
    only when its date parses to the cutoff day or later; records without
    a parsable date are counted.
    """
    histogram = {n: 0 for n in range(REFERRAL_SLOTS + 1)}
    for reg in registrations:
        if reg.form_version is not FormVersion.LEGACY:
            continue
        day = parse_trans_date(reg.transaction.trans_date)
        if day is not None and day >= config.referral_cutoff_date:
            continue
        histogram[min(reg.invitee_count(), REFERRAL_SLOTS)] += 1
        counters.referral_records_counted += 1
    return histogram


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def compute_stats(
    registrations: list[Registration],
    members: list[GroupMember],
    links: list[MatchLink],
    returning: list[bool],
    config: PipelineConfig | None = None,
    event_summaries: list[EventSummary] | None = None,
    historical_count: int = 0,
    calculated_at: datetime | None = None,
    counters: RunCounters | None = None,
) -> StatsSnapshot:
    """Build the StatsSnapshot for one run.

    `returning` holds one flag per registration, in registration order.
    `calculated_at` defaults to now (UTC); pass it explicitly for a
    reproducible snapshot.
    """
    if len(returning) != len(registrations):
        raise ValueError(
            f"returning flags ({len(returning)}) do not line up with "
            f"registrations ({len(registrations)})"
        )
    config = config or PipelineConfig()
    counters = counters if counters is not None else RunCounters()
    event_summaries = event_summaries or []
    calculated_at = calculated_at or datetime.now(timezone.utc)

    total = len(registrations)
    registered = len({link.member_index for link in links})
    snapshot = StatsSnapshot(
        calculated_at=calculated_at.isoformat(),
        config_version=config.version,
        config_hash=config.yaml_hash,
        overview=_overview(registrations, members, historical_count, event_summaries, config),
        members=_member_split(total, links, config),
        first_timers=_first_timer_split(registrations, returning, config),
        roster={
            "registered": registered,
            "not_registered": len(members) - registered,
        },
        group_registration=_group_registration(members, links, config),
        trend=_trend(registrations, counters),
        referrals=_referral_histogram(registrations, config, counters),
    )
    log.debug("stats computed over %d registrations", total)
    return snapshot
