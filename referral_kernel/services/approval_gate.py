"""
referral_kernel.services.approval_gate -- Authorized approval decisions.

Responsibility:
    The only path by which an approval leaves ``pending``.  Verifies the
    approver's role against the Policy Table, applies the decision with an
    atomic conditional UPDATE, then asks the workflow service to re-project
    the referral status.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - An approval is decided at most once: pending -> approved|rejected
      through ``UPDATE ... WHERE id = :id AND status = 'pending'``; a
      zero-row update is a lost race, never a silent overwrite.
    - Authorization precedes mutation: nothing is written for an actor
      whose resolved role may not decide the category.
    - A rejection always carries a non-blank reason.
    - The referral status is recomputed after every successful decision.

Failure modes:
    - ApprovalNotFoundError on unknown approval id.
    - ApprovalAlreadyDecidedError if the approval is no longer pending.
    - UnauthorizedApproverError on unknown actor, role mismatch, or a role
      the policy does not permit for the category.
    - RejectionReasonRequiredError on reject with blank comments.
    - DecisionConflictError if another actor won the conditional update.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from referral_kernel.domain.clock import Clock
from referral_kernel.domain.identity import RoleProvider
from referral_kernel.domain.policy import PolicyTable
from referral_kernel.domain.referral import (
    APPROVAL_TRANSITIONS,
    ApprovalCategory,
    ApprovalDecision,
    ApprovalStatus,
    Referral,
)
from referral_kernel.exceptions import (
    ApprovalAlreadyDecidedError,
    ApprovalNotFoundError,
    DecisionConflictError,
    RejectionReasonRequiredError,
    UnauthorizedApproverError,
    ValidationError,
)
from referral_kernel.logging_config import LogContext, get_logger
from referral_kernel.models.referral import ApprovalModel
from referral_kernel.services.base import BaseService
from referral_kernel.services.referral_workflow import ReferralWorkflowService

logger = get_logger("services.approval_gate")


class ApprovalGate(BaseService):
    """Authorizes and applies approve/reject decisions."""

    def __init__(
        self,
        session: Session,
        workflow: ReferralWorkflowService,
        policy: PolicyTable,
        role_provider: RoleProvider,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._workflow = workflow
        self._policy = policy
        self._roles = role_provider

    def submit_decision(
        self,
        approval_id: UUID,
        actor_id: UUID,
        actor_role: str | None,
        action: ApprovalDecision | str,
        comments: str | None = None,
    ) -> Referral:
        """Record an approve/reject decision and return the updated referral.

        ``actor_role`` is what the caller claims; the role provider is the
        authority.  Pass None to rely on the provider alone.
        """
        try:
            decision = ApprovalDecision(action)
        except ValueError:
            raise ValidationError(
                "action", f"{action!r} is not one of: approve, reject",
            ) from None

        with LogContext.bind(actor_id=str(actor_id)):
            return self._decide(approval_id, actor_id, actor_role, decision, comments)

    def _decide(
        self,
        approval_id: UUID,
        actor_id: UUID,
        actor_role: str | None,
        decision: ApprovalDecision,
        comments: str | None,
    ) -> Referral:
        approval = self._load_approval_model(approval_id)
        category = ApprovalCategory(approval.category)

        new_status = decision.resulting_status
        if new_status not in APPROVAL_TRANSITIONS[ApprovalStatus(approval.status)]:
            raise ApprovalAlreadyDecidedError(str(approval_id), approval.status)

        role = self._resolve_role(actor_id, actor_role, category)

        reason = comments.strip() if comments else None
        if decision == ApprovalDecision.REJECT and not reason:
            raise RejectionReasonRequiredError(str(approval_id))

        referral_id = approval.referral_id

        # Identity map is not synchronized here; recompute_status re-selects
        # the approvals with populate_existing.
        result = self.session.execute(
            update(ApprovalModel)
            .where(
                ApprovalModel.id == approval_id,
                ApprovalModel.status == ApprovalStatus.PENDING.value,
            )
            .values(
                status=new_status.value,
                comments=reason,
                decided_by=actor_id,
                decided_role=role,
                decided_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.warning(
                "approval_decision_conflict",
                extra={
                    "approval_id": str(approval_id),
                    "referral_id": str(referral_id),
                    "actor_id": str(actor_id),
                    "action": decision.value,
                },
            )
            raise DecisionConflictError(str(approval_id))

        logger.info(
            "approval_decision_recorded",
            extra={
                "approval_id": str(approval_id),
                "referral_id": str(referral_id),
                "category": category.value,
                "actor_id": str(actor_id),
                "actor_role": role,
                "decision": decision.value,
                "new_status": new_status.value,
            },
        )

        return self._workflow.recompute_status(referral_id)

    def _resolve_role(
        self,
        actor_id: UUID,
        claimed_role: str | None,
        category: ApprovalCategory,
    ) -> str:
        role = self._roles.get_actor_role(actor_id)
        if role is None:
            raise UnauthorizedApproverError(
                str(actor_id), claimed_role, category.value, "actor has no known role",
            )
        if claimed_role is not None and claimed_role != role:
            raise UnauthorizedApproverError(
                str(actor_id),
                claimed_role,
                category.value,
                f"claimed role does not match resolved role {role}",
            )
        if not self._policy.is_permitted(category, role):
            raise UnauthorizedApproverError(str(actor_id), role, category.value)
        return role

    def _load_approval_model(self, approval_id: UUID) -> ApprovalModel:
        """Load approval model by id, raise if not found."""
        model = self.session.execute(
            select(ApprovalModel)
            .where(ApprovalModel.id == approval_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if model is None:
            raise ApprovalNotFoundError(str(approval_id))

        return model
