"""
Module: referral_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    are the query side of the kernel: structured read access to referrals
    and approvals without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    pure domain/ functions.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never
      ORM model instances.
    - Session ownership: the caller owns the session and its transaction,
      so a snapshot is taken at whatever isolation the caller chose.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
