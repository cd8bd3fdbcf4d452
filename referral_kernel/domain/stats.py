"""Headline referral statistics and dashboard analytics over a snapshot.  Pure, zero I/O."""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from referral_kernel.domain.referral import Referral, ReferralStatus, SourceCategory

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ReferralStats:
    total_referrals: int
    pending_referrals: int
    this_month_referrals: int
    average_referral_fee: Decimal


def compute_referral_stats(referrals: Iterable[Referral], as_of: date) -> ReferralStats:
    snapshot = tuple(referrals)
    pending = sum(1 for r in snapshot if r.status == ReferralStatus.PENDING)
    this_month = sum(
        1 for r in snapshot
        if r.created_at is not None
        and r.created_at.year == as_of.year
        and r.created_at.month == as_of.month
    )
    if snapshot:
        total_fees = sum((r.referral_fee for r in snapshot), Decimal("0"))
        average = (total_fees / len(snapshot)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    else:
        average = Decimal("0.00")
    return ReferralStats(
        total_referrals=len(snapshot),
        pending_referrals=pending,
        this_month_referrals=this_month,
        average_referral_fee=average,
    )


@dataclass(frozen=True)
class MonthlyReferralTrend:
    """Referrals created in one calendar month and their summed fees."""

    month: date  # first day of the month
    referral_count: int
    total_fees: Decimal


@dataclass(frozen=True)
class SourceBreakdown:
    source_category: SourceCategory
    referral_count: int


def monthly_referral_trend(referrals: Iterable[Referral]) -> tuple[MonthlyReferralTrend, ...]:
    """Per-month count and fee total, oldest month first.

    Referrals with no ``created_at`` are left out.  Months with no
    referrals are not filled in.
    """
    counts: Counter[date] = Counter()
    fees: dict[date, Decimal] = defaultdict(lambda: Decimal("0"))
    for r in referrals:
        if r.created_at is None:
            continue
        month = date(r.created_at.year, r.created_at.month, 1)
        counts[month] += 1
        fees[month] += r.referral_fee
    return tuple(
        MonthlyReferralTrend(month=m, referral_count=counts[m], total_fees=fees[m])
        for m in sorted(counts)
    )


def referrals_by_source(referrals: Iterable[Referral]) -> tuple[SourceBreakdown, ...]:
    """Referral count per source category, largest first; ties by category name."""
    counts = Counter(r.source_category for r in referrals)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0].value))
    return tuple(SourceBreakdown(source_category=s, referral_count=n) for s, n in ranked)
