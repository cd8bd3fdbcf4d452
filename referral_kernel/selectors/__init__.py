"""Selectors layer - read-only queries returning DTOs."""

from referral_kernel.selectors.base import BaseSelector
from referral_kernel.selectors.referral_selector import ReferralSelector

__all__ = [
    "BaseSelector",
    "ReferralSelector",
]
