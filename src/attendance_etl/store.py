"""attendance_etl.store

PostgreSQL persistence for one pipeline run (see migrations/).

  replace_registrations   delete every registration row, insert this run's
  replace_stats           upsert the single dashboard_stats row
  load_latest_stats       read the stats document back
  count_registrations     row count, for reports and tests

Functions execute on the given connection and never commit; the caller
owns the transaction so both writes land together or not at all.
"""

from __future__ import annotations

import json
from typing import Any

import psycopg

from attendance_etl.models import Registration
from attendance_etl.shared import RunCounters
from attendance_etl.stats import StatsSnapshot


def replace_registrations(
    conn: psycopg.Connection,
    registrations: list[Registration],
    run_id: str,
    counters: RunCounters | None = None,
) -> int:
    """Replace the registration collection with `registrations`.

    Returns the number of rows inserted.
    """
    conn.execute("DELETE FROM registration")
    with conn.cursor() as cur:
        cur.executemany(
            """
            INSERT INTO registration (
                registration_id, transaction_id, booking_id,
                display_name, first_name, last_name, phone, email,
                form_version, is_complimentary, ticket_quantity, ticket_amount,
                trans_date, age, document, run_id
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s)
            """,
            [
                (
                    reg.registration_id,
                    reg.transaction_id,
                    reg.booking_id,
                    reg.display_name,
                    reg.identity.first_name,
                    reg.identity.last_name,
                    reg.contact.phone,
                    reg.contact.email,
                    reg.form_version.value,
                    reg.ticket.is_complimentary,
                    reg.ticket.quantity,
                    reg.ticket.amount,
                    reg.transaction.trans_date,
                    reg.age,
                    json.dumps(reg.to_document(), ensure_ascii=False, sort_keys=True),
                    run_id,
                )
                for reg in registrations
            ],
        )
    if counters is not None:
        counters.registrations_stored += len(registrations)
    return len(registrations)


def replace_stats(
    conn: psycopg.Connection,
    snapshot: StatsSnapshot,
    run_id: str,
    counters: RunCounters | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO dashboard_stats (id, calculated_at, config_version, config_hash, document, run_id)
        VALUES (1, %s, %s, %s, %s::jsonb, %s)
        ON CONFLICT (id) DO UPDATE SET
            calculated_at  = EXCLUDED.calculated_at,
            config_version = EXCLUDED.config_version,
            config_hash    = EXCLUDED.config_hash,
            document       = EXCLUDED.document,
            run_id         = EXCLUDED.run_id,
            stored_at      = now()
        """,
        (
            snapshot.calculated_at,
            snapshot.config_version,
            snapshot.config_hash,
            json.dumps(snapshot.to_dict(), ensure_ascii=False, sort_keys=True),
            run_id,
        ),
    )
    if counters is not None:
        counters.stats_documents_stored += 1


def load_latest_stats(conn: psycopg.Connection) -> dict[str, Any] | None:
    row = conn.execute("SELECT document FROM dashboard_stats WHERE id = 1").fetchone()
    return row[0] if row else None


def count_registrations(conn: psycopg.Connection) -> int:
    row = conn.execute("SELECT count(*) FROM registration").fetchone()
    return row[0]
