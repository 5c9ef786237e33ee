"""attendance_etl.pipeline

End-to-end transformation of one run's already-fetched inputs:

  report table → column map → normalize rows → expand complimentary
  → backfill transactions → disambiguate ids → match members
  → flag returning → aggregate stats

Single-threaded and order-sensitive; no I/O beyond the optional reject
writer.  Loading the inputs and storing the outputs are the caller's job
(see cli.py and store.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from attendance_etl.matching import MatchResult, reconcile
from attendance_etl.models import (
    EventSummary,
    GroupMember,
    HistoricalParticipant,
    Registration,
)
from attendance_etl.pipeline_config import PipelineConfig
from attendance_etl.registration_parser import normalize_rows
from attendance_etl.report_html import RegistrationTable
from attendance_etl.schema_map import resolve_column_map
from attendance_etl.shared import RejectWriter, RunCounters
from attendance_etl.stats import StatsSnapshot, compute_stats
from attendance_etl.tickets import (
    backfill_transactions,
    disambiguate_registration_ids,
    expand_registrations,
)

log = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    registrations: list[Registration]
    match: MatchResult
    snapshot: StatsSnapshot
    counters: RunCounters = field(default_factory=RunCounters)


def build_registrations(
    table: RegistrationTable,
    config: PipelineConfig,
    counters: RunCounters,
    rejects: RejectWriter | None = None,
) -> list[Registration]:
    """Report table → canonical, expanded, backfilled, uniquely keyed records.

    Raises:
        SchemaDriftError: If the header row matches no known layout.
    """
    column_map = resolve_column_map(table.headers)
    log.info("registration report layout: %s", column_map.layout.value)
    normalized = list(normalize_rows(table.rows, column_map, config, counters, rejects))
    expanded = expand_registrations(normalized, counters)
    backfilled = backfill_transactions(expanded, counters)
    return disambiguate_registration_ids(backfilled, counters)


def run_pipeline(
    table: RegistrationTable,
    members: list[GroupMember],
    historical: list[HistoricalParticipant],
    config: PipelineConfig | None = None,
    event_summaries: list[EventSummary] | None = None,
    calculated_at: datetime | None = None,
    counters: RunCounters | None = None,
    rejects: RejectWriter | None = None,
) -> PipelineResult:
    config = config or PipelineConfig()
    counters = counters if counters is not None else RunCounters()

    registrations = build_registrations(table, config, counters, rejects)
    match = reconcile(registrations, members, historical, config, counters)
    snapshot = compute_stats(
        registrations,
        members,
        match.links,
        match.returning,
        config=config,
        event_summaries=event_summaries,
        historical_count=len(historical),
        calculated_at=calculated_at,
        counters=counters,
    )
    return PipelineResult(
        registrations=registrations,
        match=match,
        snapshot=snapshot,
        counters=counters,
    )
