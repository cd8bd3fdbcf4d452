"""ORM models for the referral kernel."""

from referral_kernel.models.referral import ApprovalModel, CommentModel, ReferralModel

__all__ = [
    "ApprovalModel",
    "CommentModel",
    "ReferralModel",
]
