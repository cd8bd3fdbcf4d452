"""
Module: referral_kernel.models.referral
Responsibility: ORM persistence for referrals, their approvals and comments.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions.py only (domain DTOs are imported lazily inside to_dto()).

Invariants enforced:
    - Destination exclusivity: CHECK constraint requires exactly one of
      referred_to_actor_id / external_source_name.
    - One approval per category per referral: UNIQUE(referral_id, category).
    - Required-approval flags are write-once: an ORM update that changes
      them raises ImmutabilityViolationError.
    - Decided approvals are final: an ORM update of an approved or
      rejected row, or its deletion, raises ImmutabilityViolationError.
    - Comments are append-only: ORM update/delete raises
      ImmutabilityViolationError.
    - Valid status values: CHECK constraints on referral and approval status.

Failure modes:
    - IntegrityError on a second approval of the same category.
    - IntegrityError on a destination that is both or neither.
    - ImmutabilityViolationError on comment UPDATE/DELETE, on a change to
      a decided approval, or on a change to a required-approval flag.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_kernel.db.base import Base, UUIDString
from referral_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from referral_kernel.domain.referral import Approval, Comment, Referral


class ReferralModel(Base):
    """Persistent referral.

    Contract:
        ``status`` and ``workflow_stage`` are written only by
        ReferralWorkflowService.recompute_status (and at creation).
        ``requires_*`` flags are fixed at creation.
    """

    __tablename__ = "referrals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'fully_approved', 'rejected', 'active')",
            name="ck_referrals_valid_status",
        ),
        CheckConstraint(
            "(referred_to_actor_id IS NULL) <> (external_source_name IS NULL)",
            name="ck_referrals_destination_exclusive",
        ),
        CheckConstraint(
            "referral_fee >= 0",
            name="ck_referrals_fee_non_negative",
        ),
        Index("ix_referrals_destination", "referred_to_actor_id", "status"),
        Index("ix_referrals_referring", "referring_actor_id", "status"),
        Index("ix_referrals_case", "case_id"),
    )

    case_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    referring_actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    referred_to_actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    external_source_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_category: Mapped[str] = mapped_column(String(20), nullable=False)
    referral_fee: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    client_consent_obtained: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="normal")
    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    requires_case_manager: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_firm_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_compliance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    workflow_stage: Mapped[str] = mapped_column(String(50), nullable=False)

    policy_name: Mapped[str] = mapped_column(String(200), nullable=False)
    policy_version: Mapped[int] = mapped_column(Integer, nullable=False)
    policy_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approvals: Mapped[list["ApprovalModel"]] = relationship(
        "ApprovalModel",
        back_populates="referral",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Referral {self.id} case={self.case_id} status={self.status}>"

    def to_dto(self) -> Referral:
        """Convert ORM model to frozen domain DTO."""
        from referral_kernel.domain.referral import (
            Priority,
            Referral as ReferralDTO,
            ReferralStatus,
            SourceCategory,
        )

        return ReferralDTO(
            referral_id=self.id,
            case_id=self.case_id,
            referring_actor_id=self.referring_actor_id,
            referred_to_actor_id=self.referred_to_actor_id,
            external_source_name=self.external_source_name,
            source_category=SourceCategory(self.source_category),
            referral_fee=self.referral_fee,
            reason=self.reason,
            client_consent_obtained=self.client_consent_obtained,
            priority=Priority(self.priority),
            status=ReferralStatus(self.status),
            workflow_stage=self.workflow_stage,
            requires_case_manager=self.requires_case_manager,
            requires_firm_admin=self.requires_firm_admin,
            requires_compliance=self.requires_compliance,
            deadline=self.deadline,
            risk_score=self.risk_score,
            notes=self.notes,
            auto_approved=self.auto_approved,
            policy_name=self.policy_name,
            policy_version=self.policy_version,
            policy_hash=self.policy_hash,
            created_at=self.created_at,
            processed_at=self.processed_at,
        )


class ApprovalModel(Base):
    """Persistent approval record.

    Contract:
        Created once per required category at referral creation; never
        created or deleted afterwards.  The status column moves
        pending -> approved|rejected exactly once, through the Approval
        Gate's conditional UPDATE.
    """

    __tablename__ = "referral_approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_referral_approvals_valid_status",
        ),
        CheckConstraint(
            "category IN ('case_manager', 'firm_admin', 'compliance')",
            name="ck_referral_approvals_valid_category",
        ),
        UniqueConstraint(
            "referral_id", "category",
            name="uq_referral_approvals_category",
        ),
        Index("ix_referral_approvals_queue", "status", "category", "created_at"),
    )

    referral_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("referrals.id"),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    referral: Mapped["ReferralModel"] = relationship(
        "ReferralModel",
        back_populates="approvals",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} referral={self.referral_id} "
            f"{self.category} status={self.status}>"
        )

    def to_dto(self) -> Approval:
        """Convert ORM model to frozen domain DTO."""
        from referral_kernel.domain.referral import (
            Approval as ApprovalDTO,
            ApprovalCategory,
            ApprovalStatus,
        )

        return ApprovalDTO(
            approval_id=self.id,
            referral_id=self.referral_id,
            category=ApprovalCategory(self.category),
            status=ApprovalStatus(self.status),
            comments=self.comments,
            decided_by=self.decided_by,
            decided_role=self.decided_role,
            decided_at=self.decided_at,
            created_at=self.created_at,
        )


class CommentModel(Base):
    """Persistent referral comment. Append-only."""

    __tablename__ = "referral_comments"

    __table_args__ = (
        UniqueConstraint(
            "referral_id", "sequence",
            name="uq_referral_comments_sequence",
        ),
        CheckConstraint(
            "length(text) > 0",
            name="ck_referral_comments_text_not_empty",
        ),
    )

    referral_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("referrals.id"),
        nullable=False,
    )
    author_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Comment {self.id} referral={self.referral_id} seq={self.sequence}>"

    def to_dto(self) -> Comment:
        """Convert ORM model to frozen domain DTO."""
        from referral_kernel.domain.referral import Comment as CommentDTO

        return CommentDTO(
            comment_id=self.id,
            referral_id=self.referral_id,
            author_id=self.author_id,
            text=self.text,
            sequence=self.sequence,
            is_internal=self.is_internal,
            created_at=self.created_at,
        )


# =============================================================================
# ORM-level write-once / append-only guards
# =============================================================================

_WRITE_ONCE_REFERRAL_FIELDS = (
    "requires_case_manager",
    "requires_firm_admin",
    "requires_compliance",
    "policy_name",
    "policy_version",
    "policy_hash",
)


@event.listens_for(ReferralModel, "before_update")
def prevent_requirement_change(mapper, connection, target):
    """Required-approval flags and the policy snapshot are fixed at creation."""
    state = inspect(target)
    for name in _WRITE_ONCE_REFERRAL_FIELDS:
        if state.attrs[name].history.has_changes():
            raise ImmutabilityViolationError(
                entity_type="Referral",
                entity_id=str(target.id),
                reason=f"{name} is fixed at creation -- cannot modify",
            )


@event.listens_for(ApprovalModel, "before_update")
def prevent_decided_approval_change(mapper, connection, target):
    """
    A decided approval is final, and a pending one may only move along
    ``APPROVAL_TRANSITIONS``.

    The approval gate writes decisions with a Core UPDATE, which does not
    fire mapper events; this guards every ORM path.
    """
    from referral_kernel.domain.referral import APPROVAL_TRANSITIONS, ApprovalStatus

    status_history = inspect(target).attrs.status.history
    old_status = (
        status_history.deleted[0] if status_history.deleted else target.status
    )

    if old_status == ApprovalStatus.PENDING.value:
        if status_history.added:
            new_status = status_history.added[0]
            allowed = {s.value for s in APPROVAL_TRANSITIONS[ApprovalStatus.PENDING]}
            if new_status not in allowed:
                raise ImmutabilityViolationError(
                    entity_type="Approval",
                    entity_id=str(target.id),
                    reason=f"pending approval cannot move to '{new_status}'",
                )
        return

    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            raise ImmutabilityViolationError(
                entity_type="Approval",
                entity_id=str(target.id),
                reason=f"approval already {old_status} -- cannot modify '{attr.key}'",
            )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_decided_approval_delete(mapper, connection, target):
    """A decided approval is part of the referral's record."""
    if target.status != "pending":
        raise ImmutabilityViolationError(
            entity_type="Approval",
            entity_id=str(target.id),
            reason=f"approval already {target.status} -- cannot delete",
        )


@event.listens_for(CommentModel, "before_update")
def prevent_comment_update(mapper, connection, target):
    """Prevent updates to comment records."""
    raise ImmutabilityViolationError(
        entity_type="Comment",
        entity_id=str(target.id),
        reason="Comments are append-only -- cannot modify",
    )


@event.listens_for(CommentModel, "before_delete")
def prevent_comment_delete(mapper, connection, target):
    """Prevent deletion of comment records."""
    raise ImmutabilityViolationError(
        entity_type="Comment",
        entity_id=str(target.id),
        reason="Comments are append-only -- cannot delete",
    )
