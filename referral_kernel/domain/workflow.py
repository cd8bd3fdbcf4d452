"""
Referral status projection (``referral_kernel.domain.workflow``).

Responsibility
--------------
The pure half of ``recompute_status``: given the statuses of a referral's
approvals, derive the referral status and the display ``workflow_stage``.
Also builds the read-only workflow timeline shown next to a referral.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.

Invariants enforced
-------------------
* status == REJECTED iff at least one approval is REJECTED.  Rejection is
  sticky: later approvals cannot lift it.
* status == FULLY_APPROVED iff approvals exist and every one is APPROVED.
* status == ACTIVE iff the referral owns no approvals at all (the policy
  required none, so the referral takes effect immediately).
* Otherwise status == PENDING.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from referral_kernel.domain.referral import (
    CATEGORY_ORDER,
    Approval,
    ApprovalCategory,
    ApprovalStatus,
    Referral,
    ReferralStatus,
)

STAGE_REJECTED = "rejected"
STAGE_FULLY_APPROVED = "fully_approved"
STAGE_IN_PROGRESS = "in_progress"


def derive_referral_status(statuses: Iterable[ApprovalStatus]) -> ReferralStatus:
    statuses = list(statuses)
    if any(s == ApprovalStatus.REJECTED for s in statuses):
        return ReferralStatus.REJECTED
    if not statuses:
        return ReferralStatus.ACTIVE
    if all(s == ApprovalStatus.APPROVED for s in statuses):
        return ReferralStatus.FULLY_APPROVED
    return ReferralStatus.PENDING


def pending_stage(category: ApprovalCategory) -> str:
    return f"pending_{category.value}"


def derive_workflow_stage(
    approvals: Sequence[tuple[ApprovalCategory, ApprovalStatus]],
) -> str:
    """Display label: which sign-off the referral is waiting on, if any."""
    status = derive_referral_status(s for _, s in approvals)
    if status == ReferralStatus.REJECTED:
        return STAGE_REJECTED
    if status == ReferralStatus.FULLY_APPROVED:
        return STAGE_FULLY_APPROVED
    if status == ReferralStatus.ACTIVE:
        return STAGE_IN_PROGRESS
    waiting = {c for c, s in approvals if s == ApprovalStatus.PENDING}
    first = next(c for c in CATEGORY_ORDER if c in waiting)
    return pending_stage(first)


# =========================================================================
# Timeline
# =========================================================================


class TimelineKind(str, Enum):
    INITIATED = "initiated"
    APPROVAL = "approval"
    COMPLETED = "completed"


@dataclass(frozen=True)
class TimelineEntry:
    kind: TimelineKind
    title: str
    status: str
    timestamp: datetime | None = None
    category: ApprovalCategory | None = None
    actor_id: UUID | None = None


def _category_title(category: ApprovalCategory) -> str:
    return category.value.replace("_", " ").title()


def build_timeline(
    referral: Referral,
    approvals: Sequence[Approval],
) -> tuple[TimelineEntry, ...]:
    """Initiated entry, one entry per approval, then a completed entry once
    every approval is approved."""
    entries = [
        TimelineEntry(
            kind=TimelineKind.INITIATED,
            title="Referral Initiated",
            status="completed",
            timestamp=referral.created_at,
            actor_id=referral.referring_actor_id,
        )
    ]
    for approval in approvals:
        entries.append(
            TimelineEntry(
                kind=TimelineKind.APPROVAL,
                title=f"{_category_title(approval.category)} Review",
                status=approval.status.value,
                timestamp=approval.decided_at,
                category=approval.category,
                actor_id=approval.decided_by,
            )
        )
    if approvals and all(a.status == ApprovalStatus.APPROVED for a in approvals):
        entries.append(
            TimelineEntry(
                kind=TimelineKind.COMPLETED,
                title="Referral Completed",
                status="completed",
                timestamp=referral.processed_at,
            )
        )
    return tuple(entries)
