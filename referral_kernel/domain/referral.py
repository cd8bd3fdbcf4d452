"""
Referral domain types (``referral_kernel.domain.referral``).

Responsibility
--------------
Pure value objects for the case-referral workflow: the referral and
approval lifecycle enums, the approval state machine, and the frozen
records handed back to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Approval state machine -- ``APPROVAL_TRANSITIONS`` defines the only
  valid approval status transitions.  Terminal states have no outgoing
  edges, so an approval is decided exactly once.
* Destination exclusivity -- a ``Destination`` is an internal actor XOR
  an external source name (checked by ``Destination.is_exclusive``; the
  workflow service refuses to persist a referral otherwise).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Referral attributes
# =========================================================================


class SourceCategory(str, Enum):
    """Where the referral comes from / goes to."""

    INTERNAL = "internal"
    EXTERNAL = "external"
    CLIENT = "client"
    COURT = "court"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ReferralStatus(str, Enum):
    """Referral status.  Derived from the approval set, never set directly."""

    PENDING = "pending"
    FULLY_APPROVED = "fully_approved"
    REJECTED = "rejected"
    ACTIVE = "active"


TERMINAL_REFERRAL_STATUSES: frozenset[ReferralStatus] = frozenset({
    ReferralStatus.FULLY_APPROVED,
    ReferralStatus.REJECTED,
    ReferralStatus.ACTIVE,
})


# =========================================================================
# Approval lifecycle
# =========================================================================


class ApprovalCategory(str, Enum):
    """A class of required sign-off."""

    CASE_MANAGER = "case_manager"
    FIRM_ADMIN = "firm_admin"
    COMPLIANCE = "compliance"


# Canonical ordering used for reporting and for the workflow stage label.
CATEGORY_ORDER: tuple[ApprovalCategory, ...] = (
    ApprovalCategory.CASE_MANAGER,
    ApprovalCategory.FIRM_ADMIN,
    ApprovalCategory.COMPLIANCE,
)


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


class ApprovalDecision(str, Enum):
    """Decision types that an approver can make."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def resulting_status(self) -> ApprovalStatus:
        if self is ApprovalDecision.APPROVE:
            return ApprovalStatus.APPROVED
        return ApprovalStatus.REJECTED


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class Destination:
    """Where a referral is sent: an internal actor or an external party."""

    actor_id: UUID | None = None
    external_name: str | None = None

    @classmethod
    def internal(cls, actor_id: UUID) -> Destination:
        return cls(actor_id=actor_id)

    @classmethod
    def external(cls, name: str) -> Destination:
        return cls(external_name=name)

    @property
    def has_internal(self) -> bool:
        return self.actor_id is not None

    @property
    def has_external(self) -> bool:
        return bool(self.external_name and self.external_name.strip())

    @property
    def is_exclusive(self) -> bool:
        return self.has_internal != self.has_external


@dataclass(frozen=True)
class ReferralAttributes:
    """The inputs the Policy Table evaluates to derive required approvals."""

    source_category: SourceCategory
    referral_fee: Decimal
    priority: Priority
    destination_is_internal: bool
    cross_attorney: bool
    risk_score: int | None = None


@dataclass(frozen=True)
class Approval:
    """Immutable snapshot of one required sign-off."""

    approval_id: UUID
    referral_id: UUID
    category: ApprovalCategory
    status: ApprovalStatus = ApprovalStatus.PENDING
    comments: str | None = None
    decided_by: UUID | None = None
    decided_role: str | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING


@dataclass(frozen=True)
class Referral:
    """Immutable snapshot of a referral.

    ``status`` and ``workflow_stage`` are projections of the approval set
    computed by the workflow service; the required-category flags are
    fixed at creation.
    """

    referral_id: UUID
    case_id: UUID
    referring_actor_id: UUID | None
    referred_to_actor_id: UUID | None
    external_source_name: str | None
    source_category: SourceCategory
    referral_fee: Decimal
    reason: str
    client_consent_obtained: bool
    priority: Priority
    status: ReferralStatus
    workflow_stage: str
    requires_case_manager: bool = False
    requires_firm_admin: bool = False
    requires_compliance: bool = False
    deadline: date | None = None
    risk_score: int | None = None
    notes: str | None = None
    auto_approved: bool = False
    policy_name: str | None = None
    policy_version: int | None = None
    policy_hash: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None

    @property
    def destination(self) -> Destination:
        return Destination(
            actor_id=self.referred_to_actor_id,
            external_name=self.external_source_name,
        )

    @property
    def required_categories(self) -> tuple[ApprovalCategory, ...]:
        flags = {
            ApprovalCategory.CASE_MANAGER: self.requires_case_manager,
            ApprovalCategory.FIRM_ADMIN: self.requires_firm_admin,
            ApprovalCategory.COMPLIANCE: self.requires_compliance,
        }
        return tuple(c for c in CATEGORY_ORDER if flags[c])

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REFERRAL_STATUSES


@dataclass(frozen=True)
class Comment:
    """One entry of a referral's append-only annotation trail."""

    comment_id: UUID
    referral_id: UUID
    author_id: UUID
    text: str
    sequence: int
    is_internal: bool = True
    created_at: datetime | None = None
