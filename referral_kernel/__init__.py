"""
Referral Kernel

Case referral workflow and concentration-risk engine:
- Policy-table-driven derivation of required approvals
- Multi-party approval state machine with optimistic concurrency
- Single-authority referral status projection
- Pure concentration-risk analysis over referral snapshots
- Append-only comment trail
"""

__version__ = "0.1.0"
