"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from referral_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from referral_kernel.domain.concentration import (
    AlertSeverity,
    AlertType,
    ConcentrationAlert,
    compute_alerts,
)
from referral_kernel.domain.identity import RoleProvider, StaticRoleProvider
from referral_kernel.domain.policy import (
    DestinationKind,
    PolicyTable,
    RequirementPreview,
    RequirementRule,
    RiskBand,
)
from referral_kernel.domain.referral import (
    Approval,
    ApprovalCategory,
    ApprovalDecision,
    ApprovalStatus,
    Comment,
    Destination,
    Priority,
    Referral,
    ReferralAttributes,
    ReferralStatus,
    SourceCategory,
)
from referral_kernel.domain.stats import (
    MonthlyReferralTrend,
    ReferralStats,
    SourceBreakdown,
    compute_referral_stats,
    monthly_referral_trend,
    referrals_by_source,
)
from referral_kernel.domain.workflow import (
    TimelineEntry,
    build_timeline,
    derive_referral_status,
    derive_workflow_stage,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Identity
    "RoleProvider",
    "StaticRoleProvider",
    # Referral records
    "Approval",
    "ApprovalCategory",
    "ApprovalDecision",
    "ApprovalStatus",
    "Comment",
    "Destination",
    "Priority",
    "Referral",
    "ReferralAttributes",
    "ReferralStatus",
    "SourceCategory",
    # Policy
    "DestinationKind",
    "PolicyTable",
    "RequirementPreview",
    "RequirementRule",
    "RiskBand",
    # Projections
    "TimelineEntry",
    "build_timeline",
    "derive_referral_status",
    "derive_workflow_stage",
    # Analytics
    "AlertSeverity",
    "AlertType",
    "ConcentrationAlert",
    "compute_alerts",
    "ReferralStats",
    "compute_referral_stats",
    "MonthlyReferralTrend",
    "monthly_referral_trend",
    "SourceBreakdown",
    "referrals_by_source",
]
