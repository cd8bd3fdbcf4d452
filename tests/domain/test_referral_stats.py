"""Tests for headline referral statistics and dashboard analytics."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from referral_kernel.domain.referral import (
    Priority,
    Referral,
    ReferralStatus,
    SourceCategory,
)
from referral_kernel.domain.stats import (
    compute_referral_stats,
    monthly_referral_trend,
    referrals_by_source,
)


def referral(fee="0", status=ReferralStatus.PENDING, created=None, source=SourceCategory.EXTERNAL):
    return Referral(
        referral_id=uuid4(),
        case_id=uuid4(),
        referring_actor_id=uuid4(),
        referred_to_actor_id=None,
        external_source_name="Outside Counsel",
        source_category=source,
        referral_fee=Decimal(fee),
        reason="r",
        client_consent_obtained=True,
        priority=Priority.NORMAL,
        status=status,
        workflow_stage="pending_firm_admin",
        created_at=created,
    )


def at(year, month, day):
    return datetime(year, month, day, 9, 30, tzinfo=timezone.utc)


def test_empty_snapshot():
    stats = compute_referral_stats([], date(2024, 3, 15))
    assert stats.total_referrals == 0
    assert stats.pending_referrals == 0
    assert stats.this_month_referrals == 0
    assert stats.average_referral_fee == Decimal("0.00")


def test_counts_and_average():
    snapshot = [
        referral("100", ReferralStatus.PENDING, at(2024, 3, 1)),
        referral("200", ReferralStatus.FULLY_APPROVED, at(2024, 3, 31)),
        referral("0", ReferralStatus.PENDING, at(2024, 2, 29)),
    ]

    stats = compute_referral_stats(snapshot, date(2024, 3, 15))

    assert stats.total_referrals == 3
    assert stats.pending_referrals == 2
    assert stats.this_month_referrals == 2
    assert stats.average_referral_fee == Decimal("100.00")


def test_average_rounds_to_cents():
    snapshot = [referral("10"), referral("10"), referral("5")]
    stats = compute_referral_stats(snapshot, date(2024, 1, 1))
    assert stats.average_referral_fee == Decimal("8.33")


def test_same_month_of_another_year_is_not_this_month():
    snapshot = [referral(created=at(2023, 3, 10))]
    stats = compute_referral_stats(snapshot, date(2024, 3, 15))
    assert stats.this_month_referrals == 0


class TestMonthlyReferralTrend:

    def test_buckets_by_calendar_month_oldest_first(self):
        snapshot = [
            referral("250", created=at(2024, 3, 31)),
            referral("100", created=at(2024, 1, 5)),
            referral("50.50", created=at(2024, 3, 1)),
            referral("0", created=at(2023, 12, 31)),
        ]

        trend = monthly_referral_trend(snapshot)

        assert [(t.month, t.referral_count, t.total_fees) for t in trend] == [
            (date(2023, 12, 1), 1, Decimal("0")),
            (date(2024, 1, 1), 1, Decimal("100")),
            (date(2024, 3, 1), 2, Decimal("300.50")),
        ]

    def test_empty_months_are_not_filled(self):
        trend = monthly_referral_trend([referral(created=at(2024, 1, 1)), referral(created=at(2024, 4, 1))])
        assert [t.month for t in trend] == [date(2024, 1, 1), date(2024, 4, 1)]

    def test_undated_referrals_are_skipped(self):
        assert monthly_referral_trend([referral("500")]) == ()


class TestReferralsBySource:

    def test_counts_largest_first(self):
        snapshot = [
            referral(source=SourceCategory.CLIENT),
            referral(source=SourceCategory.EXTERNAL),
            referral(source=SourceCategory.CLIENT),
            referral(source=SourceCategory.COURT),
            referral(source=SourceCategory.CLIENT),
            referral(source=SourceCategory.EXTERNAL),
        ]

        breakdown = referrals_by_source(snapshot)

        assert [(b.source_category, b.referral_count) for b in breakdown] == [
            (SourceCategory.CLIENT, 3),
            (SourceCategory.EXTERNAL, 2),
            (SourceCategory.COURT, 1),
        ]

    def test_ties_ordered_by_category_name(self):
        snapshot = [referral(source=SourceCategory.INTERNAL), referral(source=SourceCategory.COURT)]
        breakdown = referrals_by_source(snapshot)
        assert [b.source_category for b in breakdown] == [SourceCategory.COURT, SourceCategory.INTERNAL]

    def test_empty_snapshot(self):
        assert referrals_by_source([]) == ()
