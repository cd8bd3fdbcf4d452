"""
referral_kernel.services.referral_workflow -- Referral lifecycle management.

Responsibility:
    Creates referrals (validating input and deriving the required approvals
    from the Policy Table) and is the single authority for referral status:
    ``recompute_status`` re-projects status and workflow_stage from the
    stored approval set after every approval mutation.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - The approval set of a referral equals its required-category set:
      one pending approval per required category, created here and nowhere
      else.
    - Status is derived, never set: rejected iff any approval is rejected;
      fully_approved iff all approvals are approved; active iff the policy
      required none; otherwise pending.
    - Destination exclusivity: internal actor XOR external source name.
    - No partial referral: every validation runs before the first
      ``session.add``.

Failure modes:
    - ValidationError / DestinationExclusivityError on bad input.
    - ReferralNotFoundError on unknown referral id.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from referral_kernel.domain.clock import Clock
from referral_kernel.domain.policy import PolicyTable, RequirementPreview
from referral_kernel.domain.referral import (
    CATEGORY_ORDER,
    TERMINAL_REFERRAL_STATUSES,
    Approval,
    ApprovalCategory,
    ApprovalStatus,
    Destination,
    Priority,
    Referral,
    ReferralAttributes,
    ReferralStatus,
    SourceCategory,
)
from referral_kernel.domain.workflow import derive_referral_status, derive_workflow_stage
from referral_kernel.exceptions import (
    DestinationExclusivityError,
    ReferralNotFoundError,
    ValidationError,
)
from referral_kernel.logging_config import get_logger
from referral_kernel.models.referral import ApprovalModel, ReferralModel
from referral_kernel.services.base import BaseService

logger = get_logger("services.referral_workflow")

MIN_RISK_SCORE = 0
MAX_RISK_SCORE = 10

# workflow_stage before the first projection runs
STAGE_INITIATED = "attorney_initiated"

E = TypeVar("E", bound=Enum)


def _coerce_enum(enum_cls: type[E], value: Any, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, f"{value!r} is not one of: {allowed}") from None


def _coerce_fee(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("referral_fee", f"{value!r} is not a number")
    try:
        fee = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("referral_fee", f"{value!r} is not a number") from None
    if not fee.is_finite():
        raise ValidationError("referral_fee", "must be finite")
    if fee < 0:
        raise ValidationError("referral_fee", "must not be negative")
    return fee


def _check_destination(destination: Destination) -> None:
    if not destination.is_exclusive:
        raise DestinationExclusivityError(
            has_internal=destination.has_internal,
            has_external=destination.has_external,
        )


def _check_risk_score(risk_score: int | None) -> None:
    if risk_score is None:
        return
    if isinstance(risk_score, bool) or not isinstance(risk_score, int):
        raise ValidationError("risk_score", f"{risk_score!r} is not an integer")
    if not MIN_RISK_SCORE <= risk_score <= MAX_RISK_SCORE:
        raise ValidationError(
            "risk_score",
            f"must be between {MIN_RISK_SCORE} and {MAX_RISK_SCORE}",
        )


class ReferralWorkflowService(BaseService):
    """Owns the referral lifecycle and the status projection."""

    def __init__(
        self,
        session: Session,
        policy: PolicyTable,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._policy = policy

    @property
    def policy(self) -> PolicyTable:
        return self._policy

    # ------------------------------------------------------------------
    # Requirement derivation
    # ------------------------------------------------------------------

    def _attributes(
        self,
        referring_actor_id: UUID | None,
        destination: Destination,
        source_category: SourceCategory,
        referral_fee: Decimal,
        priority: Priority,
        risk_score: int | None,
    ) -> ReferralAttributes:
        cross_attorney = (
            destination.has_internal
            and referring_actor_id is not None
            and destination.actor_id != referring_actor_id
        )
        return ReferralAttributes(
            source_category=source_category,
            referral_fee=referral_fee,
            priority=priority,
            destination_is_internal=destination.has_internal,
            cross_attorney=cross_attorney,
            risk_score=risk_score,
        )

    def preview_requirements(
        self,
        *,
        destination: Destination,
        source_category: SourceCategory | str,
        referral_fee: Decimal | int | str,
        priority: Priority | str = Priority.NORMAL,
        referring_actor_id: UUID | None = None,
        risk_score: int | None = None,
    ) -> RequirementPreview:
        """Evaluate the Policy Table for a prospective referral.  Writes nothing."""
        source = _coerce_enum(SourceCategory, source_category, "source_category")
        prio = _coerce_enum(Priority, priority, "priority")
        fee = _coerce_fee(referral_fee)
        _check_risk_score(risk_score)
        attrs = self._attributes(
            referring_actor_id, destination, source, fee, prio, risk_score,
        )
        return RequirementPreview(
            required_categories=self._policy.required_categories(attrs),
            matched_rules=self._policy.matched_rules(attrs),
            risk_band=self._policy.risk_band(risk_score),
            policy_name=self._policy.policy_name,
            policy_version=self._policy.version,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_referral(
        self,
        case_id: UUID,
        referring_actor_id: UUID | None,
        destination: Destination,
        source_category: SourceCategory | str,
        referral_fee: Decimal | int | str,
        reason: str,
        client_consent_obtained: bool,
        priority: Priority | str = Priority.NORMAL,
        deadline: date | None = None,
        risk_score: int | None = None,
        notes: str | None = None,
    ) -> Referral:
        """Validate, derive required approvals, persist referral + approvals.

        Returns the referral after the first status projection: ``pending``
        with one pending approval per required category, or ``active`` with
        ``auto_approved`` set when the policy requires no approval.
        """
        if reason is None or not reason.strip():
            raise ValidationError("reason", "must not be empty")
        _check_destination(destination)
        source = _coerce_enum(SourceCategory, source_category, "source_category")
        prio = _coerce_enum(Priority, priority, "priority")
        fee = _coerce_fee(referral_fee)
        _check_risk_score(risk_score)

        if source == SourceCategory.INTERNAL and not destination.has_internal:
            raise ValidationError(
                "destination", "internal referrals must name an internal actor",
            )
        if source == SourceCategory.EXTERNAL and not destination.has_external:
            raise ValidationError(
                "destination", "external referrals must name an external source",
            )
        if (
            destination.has_internal
            and referring_actor_id is not None
            and destination.actor_id == referring_actor_id
        ):
            raise ValidationError("destination", "an actor cannot refer a case to themselves")

        attrs = self._attributes(
            referring_actor_id, destination, source, fee, prio, risk_score,
        )
        required = self._policy.required_categories(attrs)
        now = self.clock.now()

        model = ReferralModel(
            case_id=case_id,
            referring_actor_id=referring_actor_id,
            referred_to_actor_id=destination.actor_id,
            external_source_name=(
                destination.external_name.strip() if destination.has_external else None
            ),
            source_category=source.value,
            referral_fee=fee,
            reason=reason.strip(),
            client_consent_obtained=bool(client_consent_obtained),
            priority=prio.value,
            deadline=deadline,
            risk_score=risk_score,
            notes=notes,
            requires_case_manager=ApprovalCategory.CASE_MANAGER in required,
            requires_firm_admin=ApprovalCategory.FIRM_ADMIN in required,
            requires_compliance=ApprovalCategory.COMPLIANCE in required,
            auto_approved=not required,
            status=ReferralStatus.PENDING.value,
            workflow_stage=STAGE_INITIATED,
            policy_name=self._policy.policy_name,
            policy_version=self._policy.version,
            policy_hash=self._policy.policy_hash,
            created_at=now,
        )
        self.session.add(model)
        self.session.flush()

        for category in required:
            self.session.add(
                ApprovalModel(
                    referral_id=model.id,
                    category=category.value,
                    status=ApprovalStatus.PENDING.value,
                    created_at=now,
                )
            )
        self.session.flush()

        logger.info(
            "referral_created",
            extra={
                "referral_id": str(model.id),
                "case_id": str(case_id),
                "source_category": source.value,
                "priority": prio.value,
                "required_categories": [c.value for c in required],
                "policy": self._policy.policy_name,
                "policy_version": self._policy.version,
            },
        )

        return self.recompute_status(model.id)

    # ------------------------------------------------------------------
    # Status authority
    # ------------------------------------------------------------------

    def recompute_status(self, referral_id: UUID) -> Referral:
        """Re-project status and workflow_stage from the stored approvals.

        Idempotent.  The referral row is locked (FOR UPDATE, where the
        backend supports it) so concurrent decisions on sibling approvals
        project in turn and the later one sees the earlier one's commit.
        """
        model = self._load_referral_model(referral_id, for_update=True)
        approvals = self.session.execute(
            select(ApprovalModel)
            .where(ApprovalModel.referral_id == referral_id)
            .execution_options(populate_existing=True)
        ).scalars().all()

        pairs = [
            (ApprovalCategory(a.category), ApprovalStatus(a.status))
            for a in approvals
        ]
        new_status = derive_referral_status(s for _, s in pairs)
        new_stage = derive_workflow_stage(pairs)
        previous_status = model.status

        if model.status != new_status.value:
            model.status = new_status.value
        if model.workflow_stage != new_stage:
            model.workflow_stage = new_stage
        if new_status in TERMINAL_REFERRAL_STATUSES and model.processed_at is None:
            model.processed_at = self.clock.now()
        self.session.flush()

        if previous_status != new_status.value:
            logger.info(
                "referral_status_recomputed",
                extra={
                    "referral_id": str(referral_id),
                    "previous_status": previous_status,
                    "new_status": new_status.value,
                    "workflow_stage": new_stage,
                },
            )

        return model.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_referral(self, referral_id: UUID) -> Referral:
        return self._load_referral_model(referral_id).to_dto()

    def get_approvals(self, referral_id: UUID) -> list[Approval]:
        """Approvals of a referral in canonical category order."""
        self._load_referral_model(referral_id)
        models = self.session.execute(
            select(ApprovalModel).where(ApprovalModel.referral_id == referral_id)
        ).scalars().all()
        order = {c.value: i for i, c in enumerate(CATEGORY_ORDER)}
        return [m.to_dto() for m in sorted(models, key=lambda m: order[m.category])]

    def _load_referral_model(
        self, referral_id: UUID, for_update: bool = False,
    ) -> ReferralModel:
        """Load referral model by id, raise if not found."""
        stmt = select(ReferralModel).where(ReferralModel.id == referral_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = self.session.execute(stmt).scalar_one_or_none()

        if model is None:
            raise ReferralNotFoundError(str(referral_id))

        return model
