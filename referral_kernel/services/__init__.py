"""
Services layer - imperative shell for referral operations.

Services own the write side: they validate, persist via flush, and log.
They never commit; the caller owns the transaction.
"""

from referral_kernel.services.approval_gate import ApprovalGate
from referral_kernel.services.base import BaseService
from referral_kernel.services.comment_log import CommentLogService
from referral_kernel.services.referral_workflow import ReferralWorkflowService

__all__ = [
    "ApprovalGate",
    "BaseService",
    "CommentLogService",
    "ReferralWorkflowService",
]
