"""
Tests for Submission Requirements

Tests covering:
1. Personal vs company information checks
2. Landlord bank / property / CFDI / ownership checks
3. Tenant and guarantor specific checks, spouse consent documents
4. Collaborator-backed document, address and reference checks
5. Unconfigured collaborators are skipped
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from actor_engine.models import (
    Actor,
    ActorKind,
    CoOwner,
    GuaranteeMethod,
    GuarantorDetails,
    LandlordDetails,
    TenantDetails,
)
from actor_engine.requirements import (
    SubmissionRequirementsEvaluator,
    check_guarantor,
    check_landlord,
    check_personal_info,
    check_tenant,
    minimum_references,
    required_document_categories,
)


def guarantor(kind=ActorKind.AVAL, **details) -> Actor:
    return Actor(
        policy_id="POL-1",
        kind=kind,
        full_name="Luis Pérez",
        email="luis@example.com",
        phone="5599998888",
        details=GuarantorDetails(**details),
    )


# =============================================================================
# Personal Information
# =============================================================================


class TestPersonalInfo:
    def test_individual_missing_everything(self):
        actor = Actor(policy_id="POL-1", kind=ActorKind.TENANT)
        assert check_personal_info(actor) == ["Email", "Phone", "Full name"]

    def test_invalid_formats(self):
        actor = Actor(
            policy_id="POL-1",
            kind=ActorKind.TENANT,
            full_name="Carlos Díaz",
            email="not-an-email",
            phone="123",
        )
        assert check_personal_info(actor) == ["Valid email", "Valid phone"]

    def test_company_fields(self):
        actor = Actor(
            policy_id="POL-1",
            kind=ActorKind.TENANT,
            is_company=True,
            email="legal@acme.mx",
            phone="5512345678",
            company_rfc="BAD",
        )
        assert check_personal_info(actor) == [
            "Company name",
            "Valid company RFC",
            "Legal representative name",
        ]


# =============================================================================
# Kind-Specific Checks
# =============================================================================


class TestLandlordChecks:
    def test_complete_landlord_passes(self, complete_landlord_details):
        assert check_landlord(complete_landlord_details()) == []

    def test_missing_bank_and_deed(self):
        issues = check_landlord(LandlordDetails())
        assert issues == [
            "Bank account information is incomplete",
            "Property deed number is required",
        ]

    def test_format_errors(self, complete_landlord_details):
        details = complete_landlord_details(
            clabe="1234",
            property_deed_number="DEED-1",
            property_registry_folio="XX-1",
        )
        assert check_landlord(details) == [
            "CLABE must be exactly 18 digits",
            "Invalid property deed number format",
            "Invalid registry folio format",
        ]

    def test_cfdi_required_when_enabled(self, complete_landlord_details):
        details = complete_landlord_details(requires_cfdi=True)
        assert check_landlord(details) == ["CFDI information is required when CFDI is enabled"]

        details = complete_landlord_details(requires_cfdi=True, cfdi_data={"rfc": "XAXX010101000"})
        assert check_landlord(details) == []

    def test_ownership_errors_included(self, complete_landlord_details):
        details = complete_landlord_details(
            ownership_percentage=Decimal("50"),
            co_owners=[CoOwner(landlord_id="LLD-1", name="B", ownership_percentage=Decimal("30"))],
        )
        issues = check_landlord(details)
        assert len(issues) == 1
        assert issues[0].startswith("Total ownership must equal 100%")


class TestTenantChecks:
    def test_individual_needs_employment(self):
        assert check_tenant(TenantDetails(), is_company=False) == ["Occupation", "Monthly income"]
        assert check_tenant(TenantDetails(occupation="Chef", monthly_income="0"), is_company=False) == [
            "Monthly income"
        ]

    def test_company_skips_employment(self):
        assert check_tenant(TenantDetails(), is_company=True) == []


class TestGuarantorChecks:
    def test_method_required(self):
        assert "Guarantee method" in check_guarantor(GuarantorDetails(), is_company=False)

    def test_property_guarantee(self):
        issues = check_guarantor(
            GuarantorDetails(guarantee_method=GuaranteeMethod.PROPERTY, guarantee_property_deed_number="X"),
            is_company=False,
        )
        assert issues == ["Invalid guarantee property deed number format", "Guarantee property value"]

    def test_spouse_consent(self):
        details = GuarantorDetails(
            guarantee_method=GuaranteeMethod.PROPERTY,
            guarantee_property_deed_number="4455",
            guarantee_property_value="2500000",
            marital_status="married_joint",
            marriage_regime="conjugal_partnership",
        )
        assert check_guarantor(details, is_company=False) == ["Spouse name (spouse consent required)"]

        details.spouse_name = "María Pérez"
        assert check_guarantor(details, is_company=False) == []

    def test_marriage_regime_required(self):
        details = GuarantorDetails(
            guarantee_method=GuaranteeMethod.INCOME,
            monthly_income="30000",
            marital_status="married",
        )
        assert check_guarantor(details, is_company=False) == ["Marriage regime"]


# =============================================================================
# Required Categories
# =============================================================================


class TestRequiredCategories:
    def test_landlord_documents(self):
        landlord = Actor(policy_id="POL-1", kind=ActorKind.LANDLORD)
        assert required_document_categories(landlord) == ["INE_IFE", "PROOF_OF_ADDRESS", "PROPERTY_DEED"]

    def test_guarantor_extras(self):
        actor = guarantor(
            guarantee_method=GuaranteeMethod.BOTH,
            marital_status="married_joint",
            marriage_regime="conjugal_partnership",
        )
        assert required_document_categories(actor) == [
            "INE_IFE",
            "PROOF_OF_ADDRESS",
            "PROOF_OF_INCOME",
            "PROPERTY_DEED",
            "PROPERTY_TAX_RECEIPT",
            "MARRIAGE_CERTIFICATE",
        ]

    def test_minimum_references(self):
        landlord = Actor(policy_id="POL-1", kind=ActorKind.LANDLORD)
        company_tenant = Actor(policy_id="POL-1", kind=ActorKind.TENANT, is_company=True)

        assert minimum_references(landlord).personal == 0
        assert minimum_references(landlord).commercial == 0
        assert minimum_references(company_tenant).commercial == 3
        assert minimum_references(company_tenant).personal == 0


# =============================================================================
# Evaluator
# =============================================================================


class TestEvaluator:
    """Tests for the aggregated evaluation."""

    @pytest.mark.asyncio
    async def test_all_checks_pass(self, evaluator, supply_all_collaborators):
        actor = guarantor(
            kind=ActorKind.JOINT_OBLIGOR,
            guarantee_method=GuaranteeMethod.INCOME,
            monthly_income="40000",
            marital_status="single",
        )
        supply_all_collaborators(actor)

        requirements = await evaluator.evaluate(actor)

        assert requirements.can_submit
        assert requirements.missing == ()
        assert requirements.to_dict()["can_submit"] is True

    @pytest.mark.asyncio
    async def test_every_failing_check_listed(self, evaluator, references):
        actor = Actor(policy_id="POL-1", kind=ActorKind.TENANT, is_company=True)
        references.add_commercial(actor.id, 1)

        requirements = await evaluator.evaluate(actor)

        assert not requirements.can_submit
        assert not requirements.has_required_personal_info
        assert not requirements.has_required_documents
        assert not requirements.has_address
        assert not requirements.has_required_references
        assert requirements.has_specific_requirements
        assert "Commercial references (1 of 3)" in requirements.missing
        assert (
            "Documents: ACTA_CONSTITUTIVA, LEGAL_REP_ID, PROOF_OF_ADDRESS, TAX_STATUS_CERTIFICATE"
            in requirements.missing
        )

    @pytest.mark.asyncio
    async def test_unconfigured_collaborators_skipped(self, complete_landlord_details):
        landlord = Actor(
            policy_id="POL-1",
            kind=ActorKind.LANDLORD,
            full_name="Ana Ruiz",
            email="ana@example.com",
            phone="5512345678",
            details=complete_landlord_details(),
        )

        requirements = await SubmissionRequirementsEvaluator().evaluate(landlord)

        assert requirements.can_submit
        assert requirements.has_required_documents
        assert requirements.has_address
