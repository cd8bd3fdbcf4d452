"""
Policy Table (``referral_kernel.domain.policy``).

Responsibility
--------------
Configuration-as-data for the referral workflow:

* which actor roles may decide each approval category, and
* which approval categories a referral requires, given its attributes.

The table is authored in YAML (see ``referral_config``) and compiled into
the frozen dataclasses below.  Neither the Approval Gate nor the workflow
service hard-codes a threshold or a role name.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and pure evaluation.  ZERO
I/O.  May import only from ``domain/referral``.

Invariants enforced
-------------------
* Rules are conjunctive: every condition a rule declares must hold for it
  to fire.  A rule that declares no conditions always fires.
* A category is required iff at least one of its rules fires.
* ``required_categories`` is reported in ``CATEGORY_ORDER`` regardless of
  rule declaration order, so the derivation is deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from referral_kernel.domain.referral import (
    CATEGORY_ORDER,
    ApprovalCategory,
    Priority,
    ReferralAttributes,
    SourceCategory,
)


class DestinationKind(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class RiskBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class RequirementRule:
    """One condition set that makes a category required.

    ``fee_above`` and ``risk_score_above`` are strict (``>``) thresholds.
    A referral without a risk score never satisfies ``risk_score_above``.
    """

    category: ApprovalCategory
    name: str = ""
    fee_above: Decimal | None = None
    priorities: frozenset[Priority] = frozenset()
    risk_score_above: int | None = None
    sources: frozenset[SourceCategory] = frozenset()
    destination: DestinationKind | None = None
    cross_attorney: bool | None = None

    def matches(self, attrs: ReferralAttributes) -> bool:
        if self.fee_above is not None and not attrs.referral_fee > self.fee_above:
            return False
        if self.priorities and attrs.priority not in self.priorities:
            return False
        if self.risk_score_above is not None:
            if attrs.risk_score is None or not attrs.risk_score > self.risk_score_above:
                return False
        if self.sources and attrs.source_category not in self.sources:
            return False
        if self.destination is not None:
            is_internal = self.destination == DestinationKind.INTERNAL
            if attrs.destination_is_internal != is_internal:
                return False
        if self.cross_attorney is not None and attrs.cross_attorney != self.cross_attorney:
            return False
        return True


@dataclass(frozen=True)
class PolicyTable:
    """A named, versioned approval policy table."""

    policy_name: str
    version: int
    category_roles: dict[ApprovalCategory, frozenset[str]] = field(default_factory=dict)
    rules: tuple[RequirementRule, ...] = ()
    risk_medium_above: int = 2
    risk_high_above: int = 4
    policy_hash: str | None = None

    def permitted_roles(self, category: ApprovalCategory) -> frozenset[str]:
        return self.category_roles.get(category, frozenset())

    def is_permitted(self, category: ApprovalCategory, role: str | None) -> bool:
        return role is not None and role in self.permitted_roles(category)

    def categories_for_role(self, role: str) -> tuple[ApprovalCategory, ...]:
        """Categories the role may decide, in canonical order."""
        return tuple(c for c in CATEGORY_ORDER if role in self.permitted_roles(c))

    def required_categories(
        self, attrs: ReferralAttributes,
    ) -> tuple[ApprovalCategory, ...]:
        required = {rule.category for rule in self.rules if rule.matches(attrs)}
        return tuple(c for c in CATEGORY_ORDER if c in required)

    def matched_rules(self, attrs: ReferralAttributes) -> tuple[str, ...]:
        return tuple(rule.name for rule in self.rules if rule.matches(attrs))

    def risk_band(self, score: int | None) -> RiskBand | None:
        if score is None:
            return None
        if score > self.risk_high_above:
            return RiskBand.HIGH
        if score > self.risk_medium_above:
            return RiskBand.MEDIUM
        return RiskBand.LOW


@dataclass(frozen=True)
class RequirementPreview:
    """What a prospective referral would require, without persisting it."""

    required_categories: tuple[ApprovalCategory, ...]
    matched_rules: tuple[str, ...]
    risk_band: RiskBand | None
    policy_name: str
    policy_version: int

    @property
    def requires_case_manager(self) -> bool:
        return ApprovalCategory.CASE_MANAGER in self.required_categories

    @property
    def requires_firm_admin(self) -> bool:
        return ApprovalCategory.FIRM_ADMIN in self.required_categories

    @property
    def requires_compliance(self) -> bool:
        return ApprovalCategory.COMPLIANCE in self.required_categories

    @property
    def auto_approved(self) -> bool:
        return not self.required_categories
