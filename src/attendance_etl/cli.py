"""attendance_etl.cli

Run the attendance pipeline over already-fetched inputs:

    python -m attendance_etl.cli \\
        --report-html artifacts/raw/registrations.html \\
        --members-csv artifacts/raw/group_members.csv \\
        --historical-csv artifacts/raw/previous_participants.csv \\
        --event-summary-html artifacts/raw/event_summary.html \\
        --db-dsn "postgresql://..."

Without --db-dsn the run stops after aggregation (stats are still
reported and optionally written with --stats-out).  With --dry-run the
store writes are executed and rolled back.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from attendance_etl.pipeline import run_pipeline
from attendance_etl.pipeline_config import (
    DEFAULT_CONFIG_PATH,
    PipelineConfigError,
    load_pipeline_config,
)
from attendance_etl.report_html import (
    parse_event_summary_report,
    parse_registration_report,
)
from attendance_etl.rosters import (
    RosterFormatError,
    load_group_members,
    load_historical_participants,
)
from attendance_etl.schema_map import SchemaDriftError
from attendance_etl.shared import (
    RejectWriter,
    RunCounters,
    build_run_report,
    write_run_report,
)
from attendance_etl.store import replace_registrations, replace_stats


def _fatal(run_id: str, message: str) -> None:
    click.echo(f"[{run_id}] FATAL: {message}", err=True)
    sys.exit(1)


def _store(
    db_dsn: str,
    result,
    run_id: str,
    dry_run: bool,
    counters: RunCounters,
) -> None:
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        try:
            replace_registrations(conn, result.registrations, run_id, counters)
            replace_stats(conn, result.snapshot, run_id, counters)
        except psycopg.Error as exc:
            conn.rollback()
            _fatal(run_id, f"store failed; rolled back: {exc}")
        if dry_run:
            conn.rollback()
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            conn.commit()
    finally:
        conn.close()


@click.command()
@click.option("--report-html", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Column-wise registration report HTML")
@click.option("--members-csv", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Group-member roster CSV")
@click.option("--historical-csv", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Historical-attendance roster CSV")
@click.option("--event-summary-html", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Event-wise summary report HTML (off-loaded qty, ticket reconciliation)")
@click.option("--config-path", default=str(DEFAULT_CONFIG_PATH), type=click.Path(),
              show_default=True, help="Pipeline YAML config")
@click.option("--db-dsn", default=None, help="PostgreSQL DSN; omit to skip the store step")
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/registration_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path())
@click.option("--stats-out", default=None, type=click.Path(), help="Also write the stats document as JSON")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    report_html: str,
    members_csv: str,
    historical_csv: str,
    event_summary_html: str | None,
    config_path: str,
    db_dsn: str | None,
    dry_run: bool,
    rejects_path: str,
    run_id: str | None,
    report_dir: str,
    stats_out: str | None,
    log_level: str,
) -> None:
    """Normalize, reconcile and aggregate one registration export."""
    logging.basicConfig(level=log_level, format="%(levelname)s %(name)s: %(message)s")
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc)
    counters = RunCounters()
    rejects = RejectWriter(Path(rejects_path))

    click.echo(f"[{run_id}] Starting attendance run (dry_run={dry_run})")

    try:
        config = load_pipeline_config(Path(config_path))
    except (PipelineConfigError, FileNotFoundError) as exc:
        _fatal(run_id, f"invalid config {config_path}: {exc}")

    try:
        members = load_group_members(Path(members_csv))
        historical = load_historical_participants(Path(historical_csv))
    except RosterFormatError as exc:
        _fatal(run_id, str(exc))
    click.echo(
        f"[{run_id}] Rosters loaded: members={len(members)} historical={len(historical)}"
    )

    table = parse_registration_report(Path(report_html).read_text(encoding="utf-8"))
    summaries = []
    if event_summary_html:
        summaries = parse_event_summary_report(
            Path(event_summary_html).read_text(encoding="utf-8")
        )

    try:
        result = run_pipeline(
            table,
            members,
            historical,
            config=config,
            event_summaries=summaries,
            calculated_at=started_at,
            counters=counters,
            rejects=rejects,
        )
    except SchemaDriftError as exc:
        _fatal(run_id, f"registration report layout not recognized: {exc}")
    finally:
        rejects.close()

    snapshot = result.snapshot
    click.echo(
        f"[{run_id}] Pipeline done: registrations={snapshot.total} "
        f"members={snapshot.members['members']} "
        f"returning={snapshot.first_timers['returning']}"
    )
    if summaries:
        recon = snapshot.overview["ticket_reconciliation"]
        status = "OK" if recon["matches"] else "MISMATCH"
        click.echo(
            f"[{run_id}] Ticket count {status}: sold={recon['tickets_sold']} "
            f"registered={recon['tickets_from_registrations']} "
            f"difference={recon['difference']}"
        )

    if stats_out:
        out_path = Path(stats_out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(snapshot.to_dict(), indent=2))
        click.echo(f"[{run_id}] Stats written: {out_path}")

    if db_dsn:
        _store(db_dsn, result, run_id, dry_run, counters)
    else:
        click.echo(f"[{run_id}] No --db-dsn given; store step skipped.")

    report_path = write_run_report(
        run_id=run_id,
        started_at=started_at.isoformat(),
        dry_run=dry_run,
        source_paths={
            "report_html": report_html,
            "members_csv": members_csv,
            "historical_csv": historical_csv,
            "event_summary_html": event_summary_html,
            "config_path": config_path,
            "config_hash": config.yaml_hash,
        },
        counters=counters,
        report_dir=Path(report_dir),
    )
    click.echo(build_run_report(counters, dry_run))
    click.echo(f"[{run_id}] Report written: {report_path}")


if __name__ == "__main__":
    main()
