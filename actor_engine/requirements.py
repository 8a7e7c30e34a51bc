"""
Submission Requirements - What an Actor Needs Before Review

Aggregates independent checks per actor kind and collects every failing
check's description into one list:

- personal or company information
- document categories (documents collaborator)
- address (address collaborator)
- references (references collaborator)
- kind-specific data: landlord bank/property/CFDI/ownership, tenant
  employment/CFDI, guarantor guarantee and spouse consent

Checks whose collaborator is not configured are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Optional

from actor_engine.collaborators import (
    AddressCollaborator,
    DocumentsCollaborator,
    ReferenceCounts,
    ReferencesCollaborator,
)
from actor_engine.models import (
    Actor,
    ActorKind,
    GuarantorDetails,
    LandlordDetails,
    TenantDetails,
)
from actor_engine.ownership import validate_totals
from actor_engine.validators import (
    is_marriage_info_complete,
    is_valid_clabe,
    is_valid_email,
    is_valid_phone,
    is_valid_property_deed,
    is_valid_registry_folio,
    is_valid_rfc,
    requires_spouse_consent,
)


# =============================================================================
# Constants
# =============================================================================

# (kind, is_company) -> document categories required before submission
REQUIRED_DOCUMENTS: Final[dict[tuple[ActorKind, bool], tuple[str, ...]]] = {
    (ActorKind.LANDLORD, False): ("INE_IFE", "PROOF_OF_ADDRESS", "PROPERTY_DEED"),
    (ActorKind.LANDLORD, True): ("ACTA_CONSTITUTIVA", "LEGAL_REP_ID", "PROOF_OF_ADDRESS", "PROPERTY_DEED"),
    (ActorKind.TENANT, False): ("INE_IFE", "PROOF_OF_ADDRESS", "PROOF_OF_INCOME"),
    (ActorKind.TENANT, True): ("ACTA_CONSTITUTIVA", "LEGAL_REP_ID", "PROOF_OF_ADDRESS", "TAX_STATUS_CERTIFICATE"),
    (ActorKind.JOINT_OBLIGOR, False): ("INE_IFE", "PROOF_OF_ADDRESS"),
    (ActorKind.JOINT_OBLIGOR, True): ("ACTA_CONSTITUTIVA", "LEGAL_REP_ID", "PROOF_OF_ADDRESS"),
    (ActorKind.AVAL, False): ("INE_IFE", "PROOF_OF_ADDRESS"),
    (ActorKind.AVAL, True): ("ACTA_CONSTITUTIVA", "LEGAL_REP_ID", "PROOF_OF_ADDRESS"),
}

# Extra categories for guarantors, by guarantee
INCOME_GUARANTEE_DOCUMENTS: Final[tuple[str, ...]] = ("PROOF_OF_INCOME",)
PROPERTY_GUARANTEE_DOCUMENTS: Final[tuple[str, ...]] = ("PROPERTY_DEED", "PROPERTY_TAX_RECEIPT")
SPOUSE_CONSENT_DOCUMENTS: Final[tuple[str, ...]] = ("MARRIAGE_CERTIFICATE",)

# (kind, is_company) -> minimum references; landlords need none
MINIMUM_REFERENCES: Final[dict[tuple[ActorKind, bool], ReferenceCounts]] = {
    (ActorKind.TENANT, False): ReferenceCounts(personal=3),
    (ActorKind.TENANT, True): ReferenceCounts(commercial=3),
    (ActorKind.JOINT_OBLIGOR, False): ReferenceCounts(personal=3),
    (ActorKind.JOINT_OBLIGOR, True): ReferenceCounts(commercial=3),
    (ActorKind.AVAL, False): ReferenceCounts(personal=3),
    (ActorKind.AVAL, True): ReferenceCounts(commercial=3),
}


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class SubmissionRequirements:
    """Per-check outcome plus the combined list of missing items."""

    has_required_personal_info: bool
    has_required_documents: bool
    has_address: bool
    has_required_references: bool
    has_specific_requirements: bool
    missing: tuple[str, ...] = ()

    @property
    def can_submit(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict:
        return {
            "has_required_personal_info": self.has_required_personal_info,
            "has_required_documents": self.has_required_documents,
            "has_address": self.has_address,
            "has_required_references": self.has_required_references,
            "has_specific_requirements": self.has_specific_requirements,
            "can_submit": self.can_submit,
            "missing": list(self.missing),
        }


def required_document_categories(actor: Actor) -> list[str]:
    """Document categories an actor must have uploaded."""
    categories = list(REQUIRED_DOCUMENTS[(actor.kind, actor.is_company)])

    details = actor.details
    if isinstance(details, GuarantorDetails):
        extra: list[str] = []
        if details.has_income_guarantee:
            extra.extend(INCOME_GUARANTEE_DOCUMENTS)
        if details.has_property_guarantee:
            extra.extend(PROPERTY_GUARANTEE_DOCUMENTS)
        if not actor.is_company and _needs_spouse_consent(details):
            extra.extend(SPOUSE_CONSENT_DOCUMENTS)
        categories.extend(c for c in extra if c not in categories)

    return categories


def minimum_references(actor: Actor) -> ReferenceCounts:
    return MINIMUM_REFERENCES.get((actor.kind, actor.is_company), ReferenceCounts())


def _needs_spouse_consent(details: GuarantorDetails) -> bool:
    return requires_spouse_consent(
        details.nationality,
        details.marital_status,
        details.marriage_regime,
        details.has_property_guarantee,
    )


# =============================================================================
# Kind-Specific Checks
# =============================================================================


def check_personal_info(actor: Actor) -> list[str]:
    missing: list[str] = []

    if not actor.email:
        missing.append("Email")
    elif not is_valid_email(actor.email):
        missing.append("Valid email")

    if not actor.phone:
        missing.append("Phone")
    elif not is_valid_phone(actor.phone):
        missing.append("Valid phone")

    if actor.is_company:
        if not actor.company_name:
            missing.append("Company name")
        if not actor.company_rfc:
            missing.append("Company RFC")
        elif not is_valid_rfc(actor.company_rfc):
            missing.append("Valid company RFC")
        if not actor.legal_rep_name:
            missing.append("Legal representative name")
    elif not actor.full_name:
        missing.append("Full name")

    return missing


def check_landlord(details: LandlordDetails) -> list[str]:
    issues: list[str] = []

    if not details.bank_name or not details.account_number or not details.clabe:
        issues.append("Bank account information is incomplete")

    if details.clabe and not is_valid_clabe(details.clabe):
        issues.append("CLABE must be exactly 18 digits")

    if not details.property_deed_number:
        issues.append("Property deed number is required")
    elif not is_valid_property_deed(details.property_deed_number):
        issues.append("Invalid property deed number format")

    if details.property_registry_folio and not is_valid_registry_folio(details.property_registry_folio):
        issues.append("Invalid registry folio format")

    if details.requires_cfdi and not details.cfdi_data:
        issues.append("CFDI information is required when CFDI is enabled")

    ownership = validate_totals(details.ownership_percentage, details.co_owners)
    issues.extend(ownership.errors)

    return issues


def check_tenant(details: TenantDetails, is_company: bool) -> list[str]:
    issues: list[str] = []

    if not is_company:
        if not details.occupation:
            issues.append("Occupation")
        if details.monthly_income is None or details.monthly_income <= 0:
            issues.append("Monthly income")

    if details.requires_cfdi and not details.cfdi_data:
        issues.append("CFDI information is required when CFDI is enabled")

    return issues


def check_guarantor(details: GuarantorDetails, is_company: bool) -> list[str]:
    issues: list[str] = []

    if details.guarantee_method is None:
        issues.append("Guarantee method")

    if details.has_income_guarantee and (details.monthly_income is None or details.monthly_income <= 0):
        issues.append("Monthly income")

    if details.has_property_guarantee:
        if not details.guarantee_property_deed_number:
            issues.append("Guarantee property deed number")
        elif not is_valid_property_deed(details.guarantee_property_deed_number):
            issues.append("Invalid guarantee property deed number format")
        if details.guarantee_property_value is None or details.guarantee_property_value <= 0:
            issues.append("Guarantee property value")

    if not is_company:
        if not is_marriage_info_complete(details.marital_status, details.marriage_regime):
            issues.append("Marriage regime")
        if _needs_spouse_consent(details) and not details.spouse_name:
            issues.append("Spouse name (spouse consent required)")

    return issues


def check_specific(actor: Actor) -> list[str]:
    details = actor.details
    if isinstance(details, LandlordDetails):
        return check_landlord(details)
    if isinstance(details, TenantDetails):
        return check_tenant(details, actor.is_company)
    return check_guarantor(details, actor.is_company)


# =============================================================================
# Evaluator
# =============================================================================


class SubmissionRequirementsEvaluator:
    """
    Evaluates whether an actor can be submitted for review.

    Usage:
        evaluator = SubmissionRequirementsEvaluator(documents, addresses, references)
        requirements = await evaluator.evaluate(actor)
        if not requirements.can_submit:
            print(requirements.missing)
    """

    def __init__(
        self,
        documents: Optional[DocumentsCollaborator] = None,
        addresses: Optional[AddressCollaborator] = None,
        references: Optional[ReferencesCollaborator] = None,
    ):
        self.documents = documents
        self.addresses = addresses
        self.references = references

    async def evaluate(self, actor: Actor) -> SubmissionRequirements:
        missing: list[str] = []

        personal = check_personal_info(actor)
        missing.extend(personal)

        documents_ok = True
        if self.documents is not None:
            categories = required_document_categories(actor)
            if not await self.documents.has_required_documents(actor.id, categories):
                documents_ok = False
                missing_docs = await self.documents.get_missing_documents(actor.id, categories)
                missing.append(f"Documents: {', '.join(missing_docs)}")

        address_ok = True
        if self.addresses is not None:
            address_ok = await self.addresses.has_address(actor.id)
            if not address_ok:
                missing.append("Address")

        references_ok = True
        required_refs = minimum_references(actor)
        if self.references is not None and (required_refs.personal or required_refs.commercial):
            counts = await self.references.count_references(actor.id)
            if counts.personal < required_refs.personal:
                references_ok = False
                missing.append(f"Personal references ({counts.personal} of {required_refs.personal})")
            if counts.commercial < required_refs.commercial:
                references_ok = False
                missing.append(f"Commercial references ({counts.commercial} of {required_refs.commercial})")

        specific = check_specific(actor)
        missing.extend(specific)

        return SubmissionRequirements(
            has_required_personal_info=not personal,
            has_required_documents=documents_ok,
            has_address=address_ok,
            has_required_references=references_ok,
            has_specific_requirements=not specific,
            missing=tuple(missing),
        )
