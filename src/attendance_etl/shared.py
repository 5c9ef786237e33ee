"""attendance_etl.shared

Shared utilities used by every pipeline stage: the RunCounters report
threaded through a run, the RejectWriter for malformed rows, and report
writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Anomaly categories surfaced in the run report.
MALFORMED_ROW = "MALFORMED_ROW"
PARSE_WARNING = "PARSE_WARNING"
AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"

_WARNINGS_CAP = 50


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MalformedRowError(ValueError):
    """Raised for a report row with too few cells to normalize."""

    reason = MALFORMED_ROW


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected report rows.

    Rows are positional, so each reject is written as its reason, its row
    number in the report, and then its cells.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.count = 0

    def write(self, row_number: int, cells: list[str], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.writer(self._fh)
            self._writer.writerow(["_reject_reason", "_row_number", "cells..."])
        self._writer.writerow([reason, row_number, *cells])
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    # Normalization
    rows_read: int = 0
    rows_rejected: int = 0
    parse_warnings: int = 0
    records_normalized: int = 0
    legacy_form_records: int = 0
    current_form_records: int = 0
    guest_names_synthesized: int = 0
    comp_names_used: int = 0
    # Expansion / backfill
    complimentary_rows_expanded: int = 0
    records_after_expansion: int = 0
    transaction_groups: int = 0
    records_backfilled: int = 0
    registration_ids_disambiguated: int = 0
    # Matching
    members_read: int = 0
    members_matched: int = 0
    members_unmatched: int = 0
    name_confirmed_matches: int = 0
    name_only_matches: int = 0
    ambiguous_matches: int = 0
    phone_fallback_matches: int = 0
    email_fallback_matches: int = 0
    historical_read: int = 0
    historical_skipped_no_years: int = 0
    returning_flagged: int = 0
    # Aggregation
    trend_dates_unparsed: int = 0
    referral_records_counted: int = 0
    # Store
    registrations_stored: int = 0
    stats_documents_stored: int = 0
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        if len(self.warnings) < _WARNINGS_CAP:
            self.warnings.append(message)

    def by_category(self) -> dict[str, int]:
        return {
            MALFORMED_ROW: self.rows_rejected,
            PARSE_WARNING: self.parse_warnings,
            AMBIGUOUS_MATCH: self.ambiguous_matches,
        }

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["anomalies"] = self.by_category()
        d["warnings"] = self.warnings[:_WARNINGS_CAP]
        return d


# ---------------------------------------------------------------------------
# Report writers
# ---------------------------------------------------------------------------

def build_run_report(ctrs: RunCounters, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        "Attendance Pipeline Report",
        f"  dry_run: {dry_run}",
        "=" * 60,
        f"  rows read:                 {ctrs.rows_read}",
        f"    → rejected (malformed):  {ctrs.rows_rejected}",
        f"    → normalized:            {ctrs.records_normalized}"
        f" (legacy {ctrs.legacy_form_records} / current {ctrs.current_form_records})",
        f"  parse warnings:            {ctrs.parse_warnings}",
        f"  comp rows expanded:        {ctrs.complimentary_rows_expanded}",
        f"  records after expansion:   {ctrs.records_after_expansion}",
        f"  records backfilled:        {ctrs.records_backfilled}",
        f"  members matched:           {ctrs.members_matched} / {ctrs.members_read}",
        f"    → name + phone/email:    {ctrs.name_confirmed_matches}",
        f"    → name only:             {ctrs.name_only_matches}",
        f"    → phone fallback:        {ctrs.phone_fallback_matches}",
        f"    → email fallback:        {ctrs.email_fallback_matches}",
        f"  ambiguous name matches:    {ctrs.ambiguous_matches}",
        f"  returning registrations:   {ctrs.returning_flagged}",
        f"  trend dates unparsed:      {ctrs.trend_dates_unparsed}",
    ]
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)


def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: RunCounters,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path


# ---------------------------------------------------------------------------
# CSV helpers
# ---------------------------------------------------------------------------

def normalize_headers(raw: dict[str, str]) -> dict[str, str]:
    """Return a new dict with header keys whitespace-stripped and lowercased."""
    return {k.strip().lower(): v for k, v in raw.items() if k is not None}
