"""Shared fixtures for the actor engine tests."""

from __future__ import annotations

from decimal import Decimal

import pytest

from actor_engine.activity import ActivityLog, InMemoryActivitySink
from actor_engine.collaborators import (
    InMemoryAddressBook,
    InMemoryDocumentRegistry,
    InMemoryReferenceBook,
)
from actor_engine.lifecycle import ActorLifecycle
from actor_engine.models import Actor, ActorKind, CoOwner, LandlordDetails
from actor_engine.ownership import OwnershipLedger
from actor_engine.primary import PrimaryDesignationManager
from actor_engine.repository import InMemoryActorRepository, reset_actor_repository
from actor_engine.requirements import (
    SubmissionRequirementsEvaluator,
    minimum_references,
    required_document_categories,
)
from actor_engine.tokens import TokenManager


APP_URL = "https://app.example.com"


@pytest.fixture
def repository():
    """Fresh in-memory repository without file persistence."""
    reset_actor_repository()
    return InMemoryActorRepository()


@pytest.fixture
def sink():
    return InMemoryActivitySink()


@pytest.fixture
def activity(sink):
    return ActivityLog(sink)


@pytest.fixture
def documents():
    return InMemoryDocumentRegistry()


@pytest.fixture
def addresses():
    return InMemoryAddressBook()


@pytest.fixture
def references():
    return InMemoryReferenceBook()


@pytest.fixture
def evaluator(documents, addresses, references):
    return SubmissionRequirementsEvaluator(documents, addresses, references)


@pytest.fixture
def primary(repository, activity):
    return PrimaryDesignationManager(repository, activity)


@pytest.fixture
def tokens(repository, activity):
    return TokenManager(repository, activity, app_url=APP_URL)


@pytest.fixture
def ledger(repository, activity):
    return OwnershipLedger(repository, activity)


@pytest.fixture
def lifecycle(repository, evaluator, primary, tokens, activity):
    return ActorLifecycle(
        repository,
        evaluator,
        primary=primary,
        tokens=tokens,
        activity=activity,
    )


@pytest.fixture
def complete_landlord_fields():
    """Keyword arguments for a landlord that meets every requirement."""
    return {
        "full_name": "Ana Ruiz",
        "email": "ana@example.com",
        "phone": "5512345678",
    }


@pytest.fixture
def complete_landlord_details():
    def build(**overrides) -> LandlordDetails:
        values = {
            "bank_name": "BBVA",
            "account_number": "0123456789",
            "clabe": "012345678901234567",
            "account_holder": "Ana Ruiz",
            "property_deed_number": "12345-2024",
            "property_registry_folio": "F123456",
        }
        values.update(overrides)
        return LandlordDetails(**values)

    return build


@pytest.fixture
def landlord_with_co_owners():
    """Landlord A at 50% with co-owners B=30% and C=20% (not stored)."""
    landlord = Actor(policy_id="POL-1", kind=ActorKind.LANDLORD)
    details = landlord.landlord
    details.is_primary = True
    details.ownership_percentage = Decimal("50")
    details.co_owners = [
        CoOwner(landlord_id=landlord.id, name="B", ownership_percentage=Decimal("30")),
        CoOwner(landlord_id=landlord.id, name="C", ownership_percentage=Decimal("20")),
    ]
    return landlord


@pytest.fixture
def supply_all_collaborators(documents, addresses, references):
    """Satisfy every collaborator-backed check for an actor."""
    def supply(actor: Actor) -> None:
        documents.add(actor.id, *required_document_categories(actor))
        addresses.set_address(actor.id, "Av. Reforma 222, CDMX")
        refs = minimum_references(actor)
        references.add_personal(actor.id, refs.personal)
        references.add_commercial(actor.id, refs.commercial)

    return supply
