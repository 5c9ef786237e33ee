"""Unit tests for attendance_etl.stats."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from attendance_etl.models import (
    Contact,
    EventSummary,
    FormVersion,
    GroupMember,
    Identity,
    Invitee,
    MatchLink,
    Registration,
    TicketMeta,
    TransactionMeta,
)
from attendance_etl.pipeline_config import PipelineConfig
from attendance_etl.shared import RunCounters
from attendance_etl.stats import compute_stats

_AT = datetime(2025, 10, 20, 6, 0, tzinfo=timezone.utc)


def _reg(
    rid: str,
    trans_date: str = "08-10-2025 10:00:00",
    age: int | None = 25,
    form: FormVersion = FormVersion.CURRENT,
    invitees: int = 0,
    quantity: int = 1,
) -> Registration:
    referrals = ()
    if form is FormVersion.LEGACY:
        referrals = tuple(
            Invitee(name=f"Invitee {n}") if n < invitees else Invitee()
            for n in range(5)
        )
    return Registration(
        registration_id=rid,
        transaction_id=rid,
        booking_id="",
        identity=Identity("X", rid, f"X {rid}"),
        contact=Contact(),
        form_version=form,
        ticket=TicketMeta(amount=500.0, quantity=quantity, ordered_qty=quantity),
        transaction=TransactionMeta(trans_date=trans_date),
        age=age,
        referrals=referrals,
    )


def _members() -> list[GroupMember]:
    return [
        GroupMember("A", group="YG"),
        GroupMember("B", group="YG"),
        GroupMember("C", group="SG"),
        GroupMember("D", group="HG"),
        GroupMember("E", group=""),
    ]


def _link(member_idx: int, reg_idx: int, group: str) -> MatchLink:
    return MatchLink(member_idx, reg_idx, f"R{reg_idx}", group, "name_only", 0)


def _stats(regs, members=None, links=(), returning=None, **kwargs):
    return compute_stats(
        regs,
        members or [],
        list(links),
        returning if returning is not None else [False] * len(regs),
        calculated_at=_AT,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Overview and member split
# ---------------------------------------------------------------------------

class TestOverview:
    def test_total_counts_people(self):
        snap = _stats([_reg("R0"), _reg("R1"), _reg("R2")])
        assert snap.total == 3
        assert snap.overview["total_offloaded_qty"] == 3

    def test_event_summary_feeds_offloaded_and_reconciliation(self):
        summary = EventSummary("GYF", "12-10-2025", "Dome", tickets_sold=4, total_offloaded_qty=5)
        snap = _stats([_reg("R0"), _reg("R1")], event_summaries=[summary])
        assert snap.overview["total_offloaded_qty"] == 5
        recon = snap.overview["ticket_reconciliation"]
        assert recon == {
            "tickets_sold": 4,
            "tickets_from_registrations": 2,
            "difference": 2,
            "matches": False,
        }

    def test_zero_offloaded_falls_back_to_total(self):
        summary = EventSummary("GYF", "12-10-2025", "Dome", tickets_sold=2, total_offloaded_qty=0)
        snap = _stats([_reg("R0"), _reg("R1")], event_summaries=[summary])
        assert snap.overview["total_offloaded_qty"] == 2

    def test_data_quality(self):
        config = PipelineConfig(years_considered=(2023, 2024))
        snap = _stats([_reg("R0")], members=_members(), historical_count=12, config=config)
        assert snap.overview["data_quality"] == {
            "total_group_members": 5,
            "total_previous_participants": 12,
            "years_considered": [2023, 2024],
        }

    def test_empty_input(self):
        snap = _stats([])
        assert snap.total == 0
        assert snap.members["members_percentage"] == 0.0
        assert snap.first_timers["age_breakdown"]["unknown"]["percentage"] == 0.0
        assert snap.trend == []
        assert snap.referrals == {0: 0, 1: 0, 2: 0, 3: 0, 4: 0, 5: 0}

    def test_misaligned_returning_flags(self):
        with pytest.raises(ValueError):
            compute_stats([_reg("R0")], [], [], [])


class TestMemberSplit:
    def test_percentages_sum_to_100(self):
        regs = [_reg(f"R{i}") for i in range(3)]
        snap = _stats(regs, members=_members(), links=[_link(0, 0, "YG")])
        m = snap.members
        assert (m["members"], m["non_members"]) == (1, 2)
        assert m["members_percentage"] == 33.33
        assert m["non_members_percentage"] == 66.67
        assert m["members_percentage"] + m["non_members_percentage"] == pytest.approx(100, abs=0.01)

    def test_group_breakdown(self):
        regs = [_reg(f"R{i}") for i in range(4)]
        links = [_link(0, 0, "YG"), _link(2, 1, "SG"), _link(4, 2, "")]
        snap = _stats(regs, members=_members(), links=links)
        assert snap.members["group_breakdown"] == {"YG": 1, "SG": 1, "JG": 0, "HG": 0}
        assert snap.members["members"] == 3


# ---------------------------------------------------------------------------
# First timers
# ---------------------------------------------------------------------------

class TestFirstTimers:
    def test_age_buckets(self):
        regs = [
            _reg("R0", age=40),
            _reg("R1", age=39),
            _reg("R2", age=None),
            _reg("R3", age=0),
            _reg("R4", age=65),
        ]
        snap = _stats(regs, returning=[False, False, False, False, True])
        ft = snap.first_timers
        assert ft["first_timers"] == 4
        assert ft["returning"] == 1
        assert ft["first_timers_percentage"] == 80.0
        assert ft["returning_percentage"] == 20.0
        buckets = ft["age_breakdown"]
        assert buckets["at_or_above"] == {"count": 1, "percentage": 25.0}
        assert buckets["below"] == {"count": 1, "percentage": 25.0}
        assert buckets["unknown"] == {"count": 2, "percentage": 50.0}
        assert ft["age_threshold"] == 40

    def test_bucket_percentages_sum_to_100(self):
        regs = [_reg(f"R{i}", age=a) for i, a in enumerate([12, 45, None, 30, 61, 22, 40])]
        buckets = _stats(regs).first_timers["age_breakdown"]
        total = sum(b["percentage"] for b in buckets.values())
        assert total == pytest.approx(100, abs=0.02)


# ---------------------------------------------------------------------------
# Roster registration
# ---------------------------------------------------------------------------

class TestRosterRegistration:
    def test_group_rates_over_full_roster(self):
        regs = [_reg(f"R{i}") for i in range(2)]
        links = [_link(0, 0, "YG"), _link(3, 1, "HG")]
        snap = _stats(regs, members=_members(), links=links)
        assert snap.roster == {"registered": 2, "not_registered": 3}
        assert snap.group_registration["YG"] == {
            "registered": 1, "not_registered": 1, "total": 2, "registration_rate": 50.0,
        }
        assert snap.group_registration["HG"]["registration_rate"] == 100.0
        assert snap.group_registration["JG"] == {
            "registered": 0, "not_registered": 0, "total": 0, "registration_rate": 0.0,
        }


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------

class TestTrend:
    def test_grouped_and_sorted(self):
        regs = [
            _reg("R0", trans_date="09-10-2025 10:00:00"),
            _reg("R1", trans_date="08-10-2025 23:59:59"),
            _reg("R2", trans_date="08-10-2025 08:00:00"),
        ]
        snap = _stats(regs)
        assert snap.trend == [
            {"date": "2025-10-08", "count": 2},
            {"date": "2025-10-09", "count": 1},
        ]

    def test_unparsable_dates_excluded_but_counted_in_total(self):
        counters = RunCounters()
        regs = [_reg("R0"), _reg("R1", trans_date="yesterday"), _reg("R2", trans_date="")]
        snap = _stats(regs, counters=counters)
        assert snap.total == 3
        assert sum(p["count"] for p in snap.trend) == 1
        assert counters.trend_dates_unparsed == 2
        assert counters.parse_warnings == 1

    def test_sums_quantity(self):
        snap = _stats([_reg("R0", quantity=2), _reg("R1", quantity=0)])
        assert snap.trend == [{"date": "2025-10-08", "count": 3}]


# ---------------------------------------------------------------------------
# Referral histogram
# ---------------------------------------------------------------------------

class TestReferrals:
    def test_cutoff(self):
        regs = [
            _reg("R0", trans_date="08-10-2025 22:00:00", form=FormVersion.LEGACY, invitees=2),
            _reg("R1", trans_date="09-10-2025 00:00:01", form=FormVersion.LEGACY, invitees=3),
            _reg("R2", trans_date="15-10-2025 10:00:00", form=FormVersion.LEGACY, invitees=5),
        ]
        snap = _stats(regs)
        assert snap.referrals == {0: 0, 1: 0, 2: 1, 3: 0, 4: 0, 5: 0}

    def test_current_form_excluded(self):
        counters = RunCounters()
        regs = [
            _reg("R0", form=FormVersion.CURRENT),
            _reg("R1", form=FormVersion.LEGACY, invitees=0),
            _reg("R2", form=FormVersion.LEGACY, invitees=5),
        ]
        snap = _stats(regs, counters=counters)
        assert snap.referrals == {0: 1, 1: 0, 2: 0, 3: 0, 4: 0, 5: 1}
        assert counters.referral_records_counted == 2

    def test_undated_legacy_counted(self):
        regs = [
            _reg("R0", trans_date="", form=FormVersion.LEGACY, invitees=1),
            _reg("R1", trans_date="sometime", form=FormVersion.LEGACY, invitees=1),
        ]
        snap = _stats(regs)
        assert snap.referrals[1] == 2

    def test_configurable_cutoff(self):
        config = PipelineConfig(referral_cutoff_date=date(2025, 10, 1))
        regs = [_reg("R0", form=FormVersion.LEGACY, invitees=1)]
        assert sum(_stats(regs, config=config).referrals.values()) == 0


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

class TestSnapshot:
    def test_deterministic(self):
        regs = [_reg("R0", form=FormVersion.LEGACY, invitees=1), _reg("R1", age=None)]
        links = [_link(0, 0, "YG")]
        first = _stats(regs, members=_members(), links=links, returning=[True, False])
        second = _stats(regs, members=_members(), links=links, returning=[True, False])
        assert first.to_dict() == second.to_dict()

    def test_to_dict_string_histogram_keys(self):
        doc = _stats([_reg("R0")]).to_dict()
        assert doc["calculated_at"] == "2025-10-20T06:00:00+00:00"
        assert set(doc["referrals"]) == {"0", "1", "2", "3", "4", "5"}
        assert doc["config_version"] == "default"
