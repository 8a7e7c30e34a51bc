"""
Policy Actor Engine - Consistency and Lifecycle Core

Manages the parties to a rental policy (landlords, tenants, joint
obligors and avals) and the rules that must hold across them.

Principles:
1. Landlord share plus co-owner shares always total exactly 100%
2. Exactly one primary landlord per policy with landlords
3. Every violated rule is reported, not just the first
4. Multi-row writes commit as one unit per policy
5. Activity logging never blocks or fails a mutation
"""

from actor_engine.models import (
    Actor,
    ActorKind,
    CoOwner,
    GuaranteeMethod,
    GuarantorDetails,
    LandlordDetails,
    TenantDetails,
    VerificationStatus,
)
from actor_engine.errors import (
    ActorEngineError,
    ActorNotFoundError,
    CrossPolicyTransferError,
    InvalidTransitionError,
    LandlordLimitError,
    NoActiveTokenError,
    OnlyLandlordError,
    OwnershipValidationError,
    PreconditionError,
    PrimaryRequiredError,
    ProtectedFieldError,
    StoreConflictError,
    SubmissionRequirementsError,
    TokenRejectedError,
    WrongActorKindError,
)
from actor_engine.ownership import (
    OwnershipLedger,
    OwnershipSummary,
    OwnershipValidationResult,
    RedistributionStrategy,
    create_co_owner,
    redistribute,
    validate_totals,
    PRIMARY_MIN_PERCENT,
    CO_OWNER_MIN_PERCENT,
    CO_OWNER_MAX_PERCENT,
    MAX_CO_OWNERS,
)
from actor_engine.primary import (
    PrimaryDesignationManager,
    select_successor,
    MAX_LANDLORDS_PER_POLICY,
)
from actor_engine.requirements import (
    SubmissionRequirements,
    SubmissionRequirementsEvaluator,
)
from actor_engine.lifecycle import ActorLifecycle
from actor_engine.tokens import (
    IssuedToken,
    TokenManager,
    TokenValidationResult,
    build_invitation_link,
    is_valid_token_format,
)
from actor_engine.activity import (
    ActivityAction,
    ActivityEntry,
    ActivityLog,
    ActivitySink,
    FileActivitySink,
    InMemoryActivitySink,
)
from actor_engine.repository import (
    ActorRepository,
    InMemoryActorRepository,
    PolicyTransaction,
    get_actor_repository,
    reset_actor_repository,
)
from actor_engine.collaborators import (
    AddressCollaborator,
    DocumentsCollaborator,
    ReferencesCollaborator,
)

__all__ = [
    # Models
    "Actor",
    "ActorKind",
    "CoOwner",
    "GuaranteeMethod",
    "GuarantorDetails",
    "LandlordDetails",
    "TenantDetails",
    "VerificationStatus",
    # Errors
    "ActorEngineError",
    "ActorNotFoundError",
    "CrossPolicyTransferError",
    "InvalidTransitionError",
    "LandlordLimitError",
    "NoActiveTokenError",
    "OnlyLandlordError",
    "OwnershipValidationError",
    "PreconditionError",
    "PrimaryRequiredError",
    "ProtectedFieldError",
    "StoreConflictError",
    "SubmissionRequirementsError",
    "TokenRejectedError",
    "WrongActorKindError",
    # Ownership
    "OwnershipLedger",
    "OwnershipSummary",
    "OwnershipValidationResult",
    "RedistributionStrategy",
    "create_co_owner",
    "redistribute",
    "validate_totals",
    "PRIMARY_MIN_PERCENT",
    "CO_OWNER_MIN_PERCENT",
    "CO_OWNER_MAX_PERCENT",
    "MAX_CO_OWNERS",
    # Primary
    "PrimaryDesignationManager",
    "select_successor",
    "MAX_LANDLORDS_PER_POLICY",
    # Lifecycle
    "SubmissionRequirements",
    "SubmissionRequirementsEvaluator",
    "ActorLifecycle",
    # Tokens
    "IssuedToken",
    "TokenManager",
    "TokenValidationResult",
    "build_invitation_link",
    "is_valid_token_format",
    # Activity
    "ActivityAction",
    "ActivityEntry",
    "ActivityLog",
    "ActivitySink",
    "FileActivitySink",
    "InMemoryActivitySink",
    # Storage and collaborators
    "ActorRepository",
    "InMemoryActorRepository",
    "PolicyTransaction",
    "get_actor_repository",
    "reset_actor_repository",
    "AddressCollaborator",
    "DocumentsCollaborator",
    "ReferencesCollaborator",
]
