"""
Module: referral_kernel.selectors.referral_selector
Responsibility: Read-only access to referrals and approvals: filtered
    listings, the per-role approval queue, the snapshot the Concentration
    Risk Analyzer runs over, headline statistics, the monthly trend and
    source breakdown, and the workflow timeline.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - Deterministic ordering: listings are ordered by created_at then id;
      the approval queue is oldest first.

Failure modes:
    - get_referral returns None for an unknown id; timeline raises
      ReferralNotFoundError.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from referral_kernel.domain.concentration import ConcentrationAlert, compute_alerts
from referral_kernel.domain.policy import PolicyTable
from referral_kernel.domain.referral import (
    CATEGORY_ORDER,
    Approval,
    ApprovalStatus,
    Referral,
    ReferralStatus,
)
from referral_kernel.domain.stats import (
    MonthlyReferralTrend,
    ReferralStats,
    SourceBreakdown,
    compute_referral_stats,
    monthly_referral_trend,
    referrals_by_source,
)
from referral_kernel.domain.workflow import TimelineEntry, build_timeline
from referral_kernel.exceptions import ReferralNotFoundError
from referral_kernel.logging_config import get_logger
from referral_kernel.models.referral import ApprovalModel, ReferralModel
from referral_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.referral")


class ReferralSelector(BaseSelector):
    """Selector for referral queries."""

    def __init__(self, session: Session, policy: PolicyTable):
        super().__init__(session)
        self._policy = policy

    def get_referral(self, referral_id: UUID) -> Referral | None:
        model = self.session.get(ReferralModel, referral_id)
        return model.to_dto() if model is not None else None

    def list_referrals(
        self,
        destination_actor_id: UUID | None = None,
        referring_actor_id: UUID | None = None,
        status: ReferralStatus | str | None = None,
    ) -> list[Referral]:
        """Referrals matching every filter given, oldest first."""
        stmt = select(ReferralModel)
        if destination_actor_id is not None:
            stmt = stmt.where(ReferralModel.referred_to_actor_id == destination_actor_id)
        if referring_actor_id is not None:
            stmt = stmt.where(ReferralModel.referring_actor_id == referring_actor_id)
        if status is not None:
            stmt = stmt.where(ReferralModel.status == ReferralStatus(status).value)
        stmt = stmt.order_by(ReferralModel.created_at, ReferralModel.id)

        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def pending_approvals_for_role(self, role: str) -> list[Approval]:
        """The approval queue for a role: pending approvals of every
        category the role may decide, oldest first."""
        categories = [c.value for c in self._policy.categories_for_role(role)]
        if not categories:
            return []

        models = self.session.execute(
            select(ApprovalModel)
            .where(
                ApprovalModel.status == ApprovalStatus.PENDING.value,
                ApprovalModel.category.in_(categories),
            )
            .order_by(ApprovalModel.created_at, ApprovalModel.id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def snapshot(self) -> list[Referral]:
        """Every referral, as one read for the analyzer."""
        return self.list_referrals()

    def concentration_alerts(self) -> list[ConcentrationAlert]:
        referrals = self.snapshot()
        alerts = compute_alerts(referrals)
        logger.info(
            "concentration_alerts_computed",
            extra={
                "referral_count": len(referrals),
                "alert_count": len(alerts),
            },
        )
        return alerts

    def stats(self, as_of: date) -> ReferralStats:
        return compute_referral_stats(self.snapshot(), as_of)

    def monthly_trend(self) -> tuple[MonthlyReferralTrend, ...]:
        return monthly_referral_trend(self.snapshot())

    def source_breakdown(self) -> tuple[SourceBreakdown, ...]:
        return referrals_by_source(self.snapshot())

    def timeline(self, referral_id: UUID) -> list[TimelineEntry]:
        model = self.session.get(ReferralModel, referral_id)
        if model is None:
            raise ReferralNotFoundError(str(referral_id))

        approvals = self.session.execute(
            select(ApprovalModel).where(ApprovalModel.referral_id == referral_id)
        ).scalars().all()
        order = {c.value: i for i, c in enumerate(CATEGORY_ORDER)}
        ordered = sorted(approvals, key=lambda a: order[a.category])
        return list(build_timeline(model.to_dto(), [a.to_dto() for a in ordered]))
