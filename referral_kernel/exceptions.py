"""
Typed Exception Hierarchy for the Referral Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the referral engine (an HTTP layer, a queue consumer, a CLI) must
be able to tell "bad input" from "not allowed" from "someone else already
decided this" without parsing message strings.  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        gate.submit_decision(approval_id, actor_id, "case_manager", "approve")
    except DecisionConflictError as e:
        api_response(409, code=e.code, approval_id=e.approval_id)
    except StateError as e:
        api_response(409, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ReferralEngineError (base)
    |
    +-- ValidationError
    |   +-- DestinationExclusivityError
    |   +-- RejectionReasonRequiredError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedApproverError
    |
    +-- StateError
    |   +-- ApprovalAlreadyDecidedError
    |   +-- DecisionConflictError
    |
    +-- NotFoundError
    |   +-- ReferralNotFoundError
    |   +-- ApprovalNotFoundError
    |
    +-- ImmutabilityViolationError
    |
    +-- PolicyConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|-------------------------------------
Validation    | VALIDATION_ERROR              | Malformed or missing input
              | DESTINATION_EXCLUSIVITY       | Internal AND external, or neither
              | REJECTION_REASON_REQUIRED     | Reject with blank comments
--------------|-------------------------------|-------------------------------------
Authorization | UNAUTHORIZED_APPROVER         | Role not permitted for category
--------------|-------------------------------|-------------------------------------
State         | APPROVAL_ALREADY_DECIDED      | Approval is no longer pending
              | APPROVAL_DECISION_CONFLICT    | Lost the conditional-update race
--------------|-------------------------------|-------------------------------------
Not found     | REFERRAL_NOT_FOUND            | Unknown referral id
              | APPROVAL_NOT_FOUND            | Unknown approval id
--------------|-------------------------------|-------------------------------------
Immutability  | IMMUTABILITY_VIOLATION        | Update/delete of an append-only row
--------------|-------------------------------|-------------------------------------
Config        | POLICY_CONFIGURATION_INVALID  | Policy table failed validation

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY A SEPARATE DecisionConflictError?
   Lost optimistic-concurrency races are expected under load.  They subclass
   StateError (the approval is not pending from the caller's point of view)
   but carry their own code so a caller can say "someone else already decided
   this" instead of reporting a logic bug.

2. WHY NO RETRIES?
   Every error is terminal to the caller.  The engine validates before it
   adds anything to the session, so no error leaves a partial mutation.

===============================================================================
"""


class ReferralEngineError(Exception):
    """
    Base exception for all referral engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REFERRAL_ENGINE_ERROR"


# Validation exceptions


class ValidationError(ReferralEngineError):
    """Input failed validation before anything was persisted."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class DestinationExclusivityError(ValidationError):
    """Referral destination must be an internal actor XOR an external name."""

    code: str = "DESTINATION_EXCLUSIVITY"

    def __init__(self, has_internal: bool, has_external: bool):
        self.has_internal = has_internal
        self.has_external = has_external
        if has_internal and has_external:
            reason = "both an internal actor and an external source name were given"
        else:
            reason = "neither an internal actor nor an external source name was given"
        super().__init__("destination", reason)


class RejectionReasonRequiredError(ValidationError):
    """A rejection must state a reason."""

    code: str = "REJECTION_REASON_REQUIRED"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__("comments", f"rejecting approval {approval_id} requires comments")


# Authorization exceptions


class AuthorizationError(ReferralEngineError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedApproverError(AuthorizationError):
    """Actor may not act on an approval of this category."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, actor_id: str, role: str | None, category: str, reason: str = ""):
        self.actor_id = actor_id
        self.role = role
        self.category = category
        self.reason = reason
        message = f"Actor {actor_id} (role={role}) may not decide {category} approvals"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# State exceptions


class StateError(ReferralEngineError):
    """Base exception for operations invalid in the current record state."""

    code: str = "STATE_ERROR"


class ApprovalAlreadyDecidedError(StateError):
    """Approval has already left the pending state."""

    code: str = "APPROVAL_ALREADY_DECIDED"

    def __init__(self, approval_id: str, current_status: str):
        self.approval_id = approval_id
        self.current_status = current_status
        super().__init__(
            f"Approval {approval_id} is already {current_status}"
        )


class DecisionConflictError(StateError):
    """
    The conditional update matched zero rows.

    Another actor decided the approval between our read and our write.
    """

    code: str = "APPROVAL_DECISION_CONFLICT"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(
            f"Approval {approval_id} was decided concurrently by another actor"
        )


# Not-found exceptions


class NotFoundError(ReferralEngineError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class ReferralNotFoundError(NotFoundError):
    """Referral with given ID was not found."""

    code: str = "REFERRAL_NOT_FOUND"

    def __init__(self, referral_id: str):
        self.referral_id = referral_id
        super().__init__(f"Referral not found: {referral_id}")


class ApprovalNotFoundError(NotFoundError):
    """Approval with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


# Immutability exceptions


class ImmutabilityViolationError(ReferralEngineError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class PolicyConfigurationError(ReferralEngineError):
    """Policy table configuration failed validation."""

    code: str = "POLICY_CONFIGURATION_INVALID"

    def __init__(self, errors: list[str] | tuple[str, ...]):
        self.errors = tuple(errors)
        super().__init__(
            "Policy configuration invalid:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )
