"""
Tests for the referral status projection.

Covers:
- derive_referral_status over every approval-status combination of up to
  three approvals
- order independence of the projection
- workflow_stage labels
- approval transition table
"""

from itertools import permutations, product

import pytest

from referral_kernel.domain.referral import (
    APPROVAL_TRANSITIONS,
    CATEGORY_ORDER,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalCategory,
    ApprovalDecision,
    ApprovalStatus,
    ReferralStatus,
)
from referral_kernel.domain.workflow import (
    STAGE_FULLY_APPROVED,
    STAGE_IN_PROGRESS,
    STAGE_REJECTED,
    derive_referral_status,
    derive_workflow_stage,
)

ALL_COMBINATIONS = [
    combo
    for n in range(len(CATEGORY_ORDER) + 1)
    for combo in product(list(ApprovalStatus), repeat=n)
]


def _expected(statuses):
    if ApprovalStatus.REJECTED in statuses:
        return ReferralStatus.REJECTED
    if not statuses:
        return ReferralStatus.ACTIVE
    if all(s == ApprovalStatus.APPROVED for s in statuses):
        return ReferralStatus.FULLY_APPROVED
    return ReferralStatus.PENDING


class TestDeriveReferralStatus:

    @pytest.mark.parametrize("statuses", ALL_COMBINATIONS)
    def test_every_combination(self, statuses):
        assert derive_referral_status(statuses) == _expected(statuses)

    @pytest.mark.parametrize("statuses", [c for c in ALL_COMBINATIONS if len(c) > 1])
    def test_order_independent(self, statuses):
        results = {derive_referral_status(p) for p in permutations(statuses)}
        assert len(results) == 1

    def test_no_approvals_is_active(self):
        assert derive_referral_status([]) == ReferralStatus.ACTIVE

    def test_one_rejection_outweighs_approvals(self):
        statuses = [ApprovalStatus.APPROVED, ApprovalStatus.APPROVED, ApprovalStatus.REJECTED]
        assert derive_referral_status(statuses) == ReferralStatus.REJECTED

    def test_accepts_generator(self):
        statuses = (s for s in [ApprovalStatus.APPROVED])
        assert derive_referral_status(statuses) == ReferralStatus.FULLY_APPROVED


class TestWorkflowStage:

    def test_empty_is_in_progress(self):
        assert derive_workflow_stage([]) == STAGE_IN_PROGRESS

    def test_waiting_on_first_pending_category(self):
        approvals = [
            (ApprovalCategory.COMPLIANCE, ApprovalStatus.PENDING),
            (ApprovalCategory.FIRM_ADMIN, ApprovalStatus.PENDING),
        ]
        assert derive_workflow_stage(approvals) == "pending_firm_admin"

    def test_skips_decided_categories(self):
        approvals = [
            (ApprovalCategory.CASE_MANAGER, ApprovalStatus.APPROVED),
            (ApprovalCategory.FIRM_ADMIN, ApprovalStatus.APPROVED),
            (ApprovalCategory.COMPLIANCE, ApprovalStatus.PENDING),
        ]
        assert derive_workflow_stage(approvals) == "pending_compliance"

    def test_rejected(self):
        approvals = [
            (ApprovalCategory.CASE_MANAGER, ApprovalStatus.PENDING),
            (ApprovalCategory.FIRM_ADMIN, ApprovalStatus.REJECTED),
        ]
        assert derive_workflow_stage(approvals) == STAGE_REJECTED

    def test_fully_approved(self):
        approvals = [(ApprovalCategory.FIRM_ADMIN, ApprovalStatus.APPROVED)]
        assert derive_workflow_stage(approvals) == STAGE_FULLY_APPROVED


class TestApprovalTransitions:

    def test_only_pending_can_move(self):
        assert APPROVAL_TRANSITIONS[ApprovalStatus.PENDING] == frozenset({
            ApprovalStatus.APPROVED,
            ApprovalStatus.REJECTED,
        })

    @pytest.mark.parametrize("status", sorted(TERMINAL_APPROVAL_STATUSES))
    def test_terminal_statuses_are_final(self, status):
        assert APPROVAL_TRANSITIONS[status] == frozenset()

    def test_decision_maps_to_status(self):
        assert ApprovalDecision.APPROVE.resulting_status == ApprovalStatus.APPROVED
        assert ApprovalDecision.REJECT.resulting_status == ApprovalStatus.REJECTED
