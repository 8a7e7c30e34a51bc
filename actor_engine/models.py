"""
Actor Models - Policy Actors and Co-Owners

Defines the entities the engine operates on. An actor is a tagged variant:
common lifecycle and token fields on ``Actor`` plus a kind-specific payload
(``LandlordDetails``, ``TenantDetails`` or ``GuarantorDetails``).

The state machine and the token manager only touch the common fields.
Ownership and primary fields live in the landlord payload and are written
only by the ownership ledger and the primary designation manager.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Final, Optional, Union
from uuid import uuid4

from actor_engine.errors import WrongActorKindError
from utils.formatting import mask_account_number, mask_clabe


# =============================================================================
# Enums
# =============================================================================


class ActorKind(Enum):
    """Role an actor plays in a rental policy."""

    LANDLORD = "landlord"
    TENANT = "tenant"
    JOINT_OBLIGOR = "joint_obligor"
    AVAL = "aval"


class VerificationStatus(Enum):
    """Verification state of an actor's information."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_CHANGES = "requires_changes"

    @property
    def is_terminal(self) -> bool:
        return self is VerificationStatus.APPROVED


class GuaranteeMethod(Enum):
    """How a joint obligor or aval backs the policy."""

    INCOME = "income"
    PROPERTY = "property"
    BOTH = "both"


# =============================================================================
# Constants
# =============================================================================

ID_PREFIXES: Final[dict[ActorKind, str]] = {
    ActorKind.LANDLORD: "LLD",
    ActorKind.TENANT: "TEN",
    ActorKind.JOINT_OBLIGOR: "JOB",
    ActorKind.AVAL: "AVL",
}

# Fields owned by the lifecycle state machine and the token manager
PROTECTED_ACTOR_FIELDS: Final[frozenset[str]] = frozenset({
    "id",
    "policy_id",
    "kind",
    "details",
    "verification_status",
    "information_complete",
    "completed_at",
    "verified_by",
    "verified_at",
    "rejected_by",
    "rejected_at",
    "rejection_reason",
    "required_changes",
    "access_token",
    "token_expiry",
    "last_accessed_at",
    "access_count",
    "created_at",
    "updated_at",
})

# Landlord fields owned by the ownership ledger and primary designation manager
PROTECTED_LANDLORD_FIELDS: Final[frozenset[str]] = frozenset({
    "is_primary",
    "ownership_percentage",
    "co_owners",
})


# =============================================================================
# Helpers
# =============================================================================


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """
    Convert a percentage or amount to Decimal.

    Floats are converted through their string form so that 33.3 stays
    33.3 rather than its binary expansion.

    Raises:
        ValueError: If the value is not numeric, or is NaN or infinite
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError) as e:
            raise ValueError(f"Invalid number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid number: {value!r}")
    return result


def generate_actor_id(kind: ActorKind) -> str:
    """Generate a unique actor ID, prefixed by kind."""
    return f"{ID_PREFIXES[kind]}-{uuid4().hex[:12].upper()}"


def generate_co_owner_id() -> str:
    return f"COW-{uuid4().hex[:12].upper()}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _dec(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _parse_dec(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


# =============================================================================
# Co-Owner
# =============================================================================


@dataclass
class CoOwner:
    """
    Secondary owner holding a share of a landlord's property.

    Belongs to exactly one landlord and is deleted with it. Inactive
    co-owners are kept for history but excluded from ownership totals.
    """

    landlord_id: str
    name: str
    ownership_percentage: Decimal
    id: str = field(default_factory=generate_co_owner_id)
    rfc: Optional[str] = None
    curp: Optional[str] = None
    relationship: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.ownership_percentage = to_decimal(self.ownership_percentage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "landlord_id": self.landlord_id,
            "name": self.name,
            "ownership_percentage": str(self.ownership_percentage),
            "rfc": self.rfc,
            "curp": self.curp,
            "relationship": self.relationship,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CoOwner":
        return cls(
            id=data["id"],
            landlord_id=data["landlord_id"],
            name=data["name"],
            ownership_percentage=Decimal(data["ownership_percentage"]),
            rfc=data.get("rfc"),
            curp=data.get("curp"),
            relationship=data.get("relationship"),
            contact_email=data.get("contact_email"),
            contact_phone=data.get("contact_phone"),
            is_active=data.get("is_active", True),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


# =============================================================================
# Kind-Specific Payloads
# =============================================================================


@dataclass
class LandlordDetails:
    """Landlord payload: ownership, bank, property and CFDI data."""

    # === OWNERSHIP (ledger / primary manager only) ===
    is_primary: bool = False
    ownership_percentage: Decimal = Decimal("100")
    co_owners: list[CoOwner] = field(default_factory=list)

    # === BANK ===
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    clabe: Optional[str] = None
    account_holder: Optional[str] = None

    # === PROPERTY ===
    property_deed_number: Optional[str] = None
    property_registry_folio: Optional[str] = None

    # === CFDI ===
    requires_cfdi: bool = False
    cfdi_data: Optional[dict[str, Any]] = None

    # Policy-level financial terms, editable by the primary landlord only
    policy_financials: Optional[dict[str, Any]] = None

    def __post_init__(self):
        self.ownership_percentage = to_decimal(self.ownership_percentage)

    @property
    def active_co_owners(self) -> list[CoOwner]:
        return [c for c in self.co_owners if c.is_active]

    def find_co_owner(self, co_owner_id: str) -> Optional[CoOwner]:
        for co_owner in self.co_owners:
            if co_owner.id == co_owner_id:
                return co_owner
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_primary": self.is_primary,
            "ownership_percentage": str(self.ownership_percentage),
            "co_owners": [c.to_dict() for c in self.co_owners],
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "clabe": self.clabe,
            "account_holder": self.account_holder,
            "property_deed_number": self.property_deed_number,
            "property_registry_folio": self.property_registry_folio,
            "requires_cfdi": self.requires_cfdi,
            "cfdi_data": self.cfdi_data,
            "policy_financials": self.policy_financials,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LandlordDetails":
        return cls(
            is_primary=data.get("is_primary", False),
            ownership_percentage=Decimal(data.get("ownership_percentage", "100")),
            co_owners=[CoOwner.from_dict(c) for c in data.get("co_owners", [])],
            bank_name=data.get("bank_name"),
            account_number=data.get("account_number"),
            clabe=data.get("clabe"),
            account_holder=data.get("account_holder"),
            property_deed_number=data.get("property_deed_number"),
            property_registry_folio=data.get("property_registry_folio"),
            requires_cfdi=data.get("requires_cfdi", False),
            cfdi_data=data.get("cfdi_data"),
            policy_financials=data.get("policy_financials"),
        )


@dataclass
class TenantDetails:
    """Tenant payload: employment and CFDI data."""

    occupation: Optional[str] = None
    employer_name: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    requires_cfdi: bool = False
    cfdi_data: Optional[dict[str, Any]] = None

    def __post_init__(self):
        if self.monthly_income is not None:
            self.monthly_income = to_decimal(self.monthly_income)

    def to_dict(self) -> dict[str, Any]:
        return {
            "occupation": self.occupation,
            "employer_name": self.employer_name,
            "monthly_income": _dec(self.monthly_income),
            "requires_cfdi": self.requires_cfdi,
            "cfdi_data": self.cfdi_data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TenantDetails":
        return cls(
            occupation=data.get("occupation"),
            employer_name=data.get("employer_name"),
            monthly_income=_parse_dec(data.get("monthly_income")),
            requires_cfdi=data.get("requires_cfdi", False),
            cfdi_data=data.get("cfdi_data"),
        )


@dataclass
class GuarantorDetails:
    """Joint obligor / aval payload: guarantee and marriage data."""

    guarantee_method: Optional[GuaranteeMethod] = None
    monthly_income: Optional[Decimal] = None
    guarantee_property_deed_number: Optional[str] = None
    guarantee_property_value: Optional[Decimal] = None
    nationality: str = "MEXICAN"  # MEXICAN or FOREIGN
    marital_status: Optional[str] = None
    marriage_regime: Optional[str] = None
    spouse_name: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.guarantee_method, str):
            self.guarantee_method = GuaranteeMethod(self.guarantee_method)
        if self.monthly_income is not None:
            self.monthly_income = to_decimal(self.monthly_income)
        if self.guarantee_property_value is not None:
            self.guarantee_property_value = to_decimal(self.guarantee_property_value)

    @property
    def has_property_guarantee(self) -> bool:
        return self.guarantee_method in (GuaranteeMethod.PROPERTY, GuaranteeMethod.BOTH)

    @property
    def has_income_guarantee(self) -> bool:
        return self.guarantee_method in (GuaranteeMethod.INCOME, GuaranteeMethod.BOTH)

    def to_dict(self) -> dict[str, Any]:
        return {
            "guarantee_method": self.guarantee_method.value if self.guarantee_method else None,
            "monthly_income": _dec(self.monthly_income),
            "guarantee_property_deed_number": self.guarantee_property_deed_number,
            "guarantee_property_value": _dec(self.guarantee_property_value),
            "nationality": self.nationality,
            "marital_status": self.marital_status,
            "marriage_regime": self.marriage_regime,
            "spouse_name": self.spouse_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GuarantorDetails":
        return cls(
            guarantee_method=data.get("guarantee_method"),
            monthly_income=_parse_dec(data.get("monthly_income")),
            guarantee_property_deed_number=data.get("guarantee_property_deed_number"),
            guarantee_property_value=_parse_dec(data.get("guarantee_property_value")),
            nationality=data.get("nationality", "MEXICAN"),
            marital_status=data.get("marital_status"),
            marriage_regime=data.get("marriage_regime"),
            spouse_name=data.get("spouse_name"),
        )


ActorDetails = Union[LandlordDetails, TenantDetails, GuarantorDetails]

DETAILS_BY_KIND: Final[dict[ActorKind, type]] = {
    ActorKind.LANDLORD: LandlordDetails,
    ActorKind.TENANT: TenantDetails,
    ActorKind.JOINT_OBLIGOR: GuarantorDetails,
    ActorKind.AVAL: GuarantorDetails,
}


# =============================================================================
# Actor
# =============================================================================


@dataclass
class Actor:
    """
    A party to a rental policy.

    ``policy_id`` is a grouping key into the external policy aggregate.
    The payload type in ``details`` must match ``kind``.
    """

    # === IDENTITY ===
    policy_id: str
    kind: ActorKind
    details: Optional[ActorDetails] = None
    id: str = ""
    is_company: bool = False

    # === CONTACT / PERSON / COMPANY ===
    email: Optional[str] = None
    phone: Optional[str] = None
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    company_rfc: Optional[str] = None
    legal_rep_name: Optional[str] = None

    # === VERIFICATION (lifecycle only) ===
    verification_status: VerificationStatus = VerificationStatus.PENDING
    information_complete: bool = False
    completed_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    required_changes: list[str] = field(default_factory=list)

    # === SELF-SERVICE TOKEN (token manager only) ===
    access_token: Optional[str] = None
    token_expiry: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None
    access_count: int = 0

    # === METADATA ===
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.policy_id:
            raise ValueError("policy_id is required")
        if isinstance(self.kind, str):
            self.kind = ActorKind(self.kind)
        if isinstance(self.verification_status, str):
            self.verification_status = VerificationStatus(self.verification_status)

        expected = DETAILS_BY_KIND[self.kind]
        if self.details is None:
            self.details = expected()
        elif not isinstance(self.details, expected):
            raise ValueError(
                f"{self.kind.value} actors require {expected.__name__}, "
                f"got {type(self.details).__name__}"
            )

        if not self.id:
            self.id = generate_actor_id(self.kind)

    @property
    def is_landlord(self) -> bool:
        return self.kind is ActorKind.LANDLORD

    @property
    def landlord(self) -> LandlordDetails:
        """Landlord payload, or WrongActorKindError for other kinds."""
        if not isinstance(self.details, LandlordDetails):
            raise WrongActorKindError(f"Actor {self.id} is a {self.kind.value}, not a landlord")
        return self.details

    @property
    def is_primary(self) -> bool:
        return isinstance(self.details, LandlordDetails) and self.details.is_primary

    @property
    def display_name(self) -> str:
        if self.is_company:
            return self.company_name or self.id
        return self.full_name or self.id

    @property
    def has_token(self) -> bool:
        return self.access_token is not None

    def clone(self) -> "Actor":
        """Deep copy, used for staged writes."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialisation (includes token)."""
        return {
            "id": self.id,
            "policy_id": self.policy_id,
            "kind": self.kind.value,
            "is_company": self.is_company,
            "email": self.email,
            "phone": self.phone,
            "full_name": self.full_name,
            "company_name": self.company_name,
            "company_rfc": self.company_rfc,
            "legal_rep_name": self.legal_rep_name,
            "verification_status": self.verification_status.value,
            "information_complete": self.information_complete,
            "completed_at": _iso(self.completed_at),
            "verified_by": self.verified_by,
            "verified_at": _iso(self.verified_at),
            "rejected_by": self.rejected_by,
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "required_changes": list(self.required_changes),
            "access_token": self.access_token,
            "token_expiry": _iso(self.token_expiry),
            "last_accessed_at": _iso(self.last_accessed_at),
            "access_count": self.access_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "details": self.details.to_dict(),
        }

    def to_public_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for external use.

        Excludes the access token value and masks landlord bank numbers.
        """
        data = self.to_dict()
        data.pop("access_token")
        data["has_token"] = self.has_token
        if isinstance(self.details, LandlordDetails):
            data["details"]["account_number"] = mask_account_number(self.details.account_number) or None
            data["details"]["clabe"] = mask_clabe(self.details.clabe) or None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Actor":
        kind = ActorKind(data["kind"])
        return cls(
            id=data["id"],
            policy_id=data["policy_id"],
            kind=kind,
            details=DETAILS_BY_KIND[kind].from_dict(data.get("details", {})),
            is_company=data.get("is_company", False),
            email=data.get("email"),
            phone=data.get("phone"),
            full_name=data.get("full_name"),
            company_name=data.get("company_name"),
            company_rfc=data.get("company_rfc"),
            legal_rep_name=data.get("legal_rep_name"),
            verification_status=VerificationStatus(data.get("verification_status", "pending")),
            information_complete=data.get("information_complete", False),
            completed_at=_parse_dt(data.get("completed_at")),
            verified_by=data.get("verified_by"),
            verified_at=_parse_dt(data.get("verified_at")),
            rejected_by=data.get("rejected_by"),
            rejected_at=_parse_dt(data.get("rejected_at")),
            rejection_reason=data.get("rejection_reason"),
            required_changes=list(data.get("required_changes", [])),
            access_token=data.get("access_token"),
            token_expiry=_parse_dt(data.get("token_expiry")),
            last_accessed_at=_parse_dt(data.get("last_accessed_at")),
            access_count=data.get("access_count", 0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
