"""
Engine Errors

Precondition failures are expected caller mistakes and carry a stable
``code`` so adapters can map them without parsing messages. Validation
failures carry the full list of violated rules.

Infrastructure errors raised by a repository are never wrapped here.
"""

from __future__ import annotations

from typing import Iterable


class ActorEngineError(Exception):
    """Base class for all engine errors."""

    pass


class ActorNotFoundError(ActorEngineError, LookupError):
    """Raised when an actor or co-owner id does not exist."""

    def __init__(self, entity_id: str, entity: str = "Actor"):
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class OwnershipValidationError(ActorEngineError):
    """Raised when a ledger mutation would break the ownership rules."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__(f"Ownership rules violated: {'; '.join(self.errors)}")


class StoreConflictError(ActorEngineError):
    """Raised by a repository when a conditional write loses."""

    pass


# =============================================================================
# Precondition Errors
# =============================================================================


class PreconditionError(ActorEngineError):
    """A named failure outcome caused by the caller's request."""

    code: str = "PRECONDITION_FAILED"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class OnlyLandlordError(PreconditionError):
    code = "ONLY_LANDLORD"


class CrossPolicyTransferError(PreconditionError):
    code = "CROSS_POLICY_TRANSFER"


class LandlordLimitError(PreconditionError):
    code = "LANDLORD_LIMIT"


class InvalidTransitionError(PreconditionError):
    code = "INVALID_TRANSITION"


class PrimaryRequiredError(PreconditionError):
    code = "PRIMARY_REQUIRED"


class ProtectedFieldError(PreconditionError):
    code = "PROTECTED_FIELD"


class NoActiveTokenError(PreconditionError):
    code = "NO_ACTIVE_TOKEN"


class WrongActorKindError(PreconditionError):
    code = "WRONG_ACTOR_KIND"


class TokenRejectedError(PreconditionError):
    """Raised when a self-service call presents an invalid or expired token."""

    code = "TOKEN_REJECTED"


class SubmissionRequirementsError(PreconditionError):
    """Raised by submit() with every unmet requirement."""

    code = "SUBMISSION_REQUIREMENTS"

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"Cannot submit: missing {', '.join(self.missing)}")
