"""
Actor Lifecycle - Intake, Updates and Verification State Machine

States:

    PENDING --submit--> IN_REVIEW --approve--> APPROVED (terminal)
                                  --reject---> REJECTED
                                  --request_changes--> REQUIRES_CHANGES

REJECTED and REQUIRES_CHANGES actors may be updated and resubmitted.
approve/reject/request_changes are accepted from any non-terminal state.

Every mutation runs inside one policy transaction and emits an activity
entry after it commits.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Optional

from actor_engine.activity import SELF_SERVICE, SYSTEM, ActivityAction, ActivityLog
from actor_engine.errors import (
    InvalidTransitionError,
    ProtectedFieldError,
    SubmissionRequirementsError,
    TokenRejectedError,
)
from actor_engine.models import (
    PROTECTED_ACTOR_FIELDS,
    PROTECTED_LANDLORD_FIELDS,
    Actor,
    ActorDetails,
    ActorKind,
    LandlordDetails,
    VerificationStatus,
    utc_now,
)
from actor_engine.ownership import TOTAL_PERCENT
from actor_engine.primary import PrimaryDesignationManager
from actor_engine.requirements import SubmissionRequirements, SubmissionRequirementsEvaluator
from utils.formatting import mask_account_number, mask_clabe

if TYPE_CHECKING:
    from actor_engine.repository import ActorRepository
    from actor_engine.tokens import TokenManager


logger = logging.getLogger(__name__)


SUBMITTABLE_STATES: Final[frozenset[VerificationStatus]] = frozenset({
    VerificationStatus.PENDING,
    VerificationStatus.REJECTED,
    VerificationStatus.REQUIRES_CHANGES,
})

# Landlord terms only the policy's primary landlord may change
PRIMARY_ONLY_FIELDS: Final[frozenset[str]] = frozenset({"policy_financials"})

ACTOR_FIELDS: Final[frozenset[str]] = frozenset(f.name for f in dataclasses.fields(Actor))


def _detail_fields(details: ActorDetails) -> frozenset[str]:
    return frozenset(f.name for f in dataclasses.fields(details))


@dataclass(frozen=True)
class LandlordFinancialSummary:
    """Payout and invoicing view of a landlord with bank numbers masked."""

    landlord_id: str
    bank_name: Optional[str]
    account_number: str
    clabe: str
    bank_complete: bool
    cfdi_enabled: bool
    cfdi_rfc: Optional[str]
    cfdi_razon_social: Optional[str]
    cfdi_complete: bool

    @classmethod
    def from_details(cls, landlord_id: str, details: LandlordDetails) -> "LandlordFinancialSummary":
        cfdi = details.cfdi_data or {}
        return cls(
            landlord_id=landlord_id,
            bank_name=details.bank_name,
            account_number=mask_account_number(details.account_number),
            clabe=mask_clabe(details.clabe),
            bank_complete=bool(details.bank_name and details.account_number and details.clabe),
            cfdi_enabled=details.requires_cfdi,
            cfdi_rfc=cfdi.get("rfc"),
            cfdi_razon_social=cfdi.get("razon_social"),
            cfdi_complete=not details.requires_cfdi or bool(details.cfdi_data),
        )

    def to_dict(self) -> dict[str, Any]:
        bank_account = None
        if self.bank_name:
            bank_account = {
                "bank_name": self.bank_name,
                "account_number": self.account_number,
                "clabe": self.clabe,
                "is_complete": self.bank_complete,
            }
        return {
            "landlord_id": self.landlord_id,
            "bank_account": bank_account,
            "cfdi_config": {
                "enabled": self.cfdi_enabled,
                "rfc": self.cfdi_rfc,
                "razon_social": self.cfdi_razon_social,
                "is_complete": self.cfdi_complete,
            },
        }


class ActorLifecycle:
    """Owns verification status, completion and general actor updates."""

    def __init__(
        self,
        repository: "ActorRepository",
        evaluator: Optional[SubmissionRequirementsEvaluator] = None,
        primary: Optional[PrimaryDesignationManager] = None,
        tokens: Optional["TokenManager"] = None,
        activity: Optional[ActivityLog] = None,
    ):
        self._repository = repository
        self._activity = activity or ActivityLog()
        self.evaluator = evaluator or SubmissionRequirementsEvaluator()
        self.primary = primary or PrimaryDesignationManager(repository, self._activity)
        self.tokens = tokens

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_actor(self, actor_id: str) -> Actor:
        return await self._repository.require(actor_id)

    async def list_policy_actors(self, policy_id: str, kind: Optional[ActorKind] = None) -> list[Actor]:
        actors = await self._repository.list_by_policy(policy_id)
        return [a for a in actors if kind is None or a.kind is kind]

    async def check_requirements(self, actor_id: str) -> SubmissionRequirements:
        actor = await self._repository.require(actor_id)
        return await self.evaluator.evaluate(actor)

    async def get_financial_summary(self, landlord_id: str) -> LandlordFinancialSummary:
        """
        Bank and CFDI configuration of a landlord, safe to show outside
        the back office.

        Raises:
            WrongActorKindError: If the actor is not a landlord
        """
        actor = await self._repository.require(landlord_id)
        return LandlordFinancialSummary.from_details(actor.id, actor.landlord)

    # =========================================================================
    # Intake and Updates
    # =========================================================================

    async def register_actor(
        self,
        policy_id: str,
        kind: ActorKind,
        details: Optional[ActorDetails] = None,
        performed_by: str = SYSTEM,
        **fields: Any,
    ) -> Actor:
        """
        Create an actor in PENDING status.

        Landlords go through the primary designation manager so the
        landlord cap and the single-primary rule hold. Ownership starts at
        100% with no co-owners; co-owners are added through the ledger.

        Raises:
            ProtectedFieldError: If ``fields`` sets a field the engine owns
        """
        self._reject_protected(fields.keys() & PROTECTED_ACTOR_FIELDS)
        unknown = fields.keys() - ACTOR_FIELDS
        if unknown:
            raise ValueError(f"Unknown actor fields: {', '.join(sorted(unknown))}")

        if isinstance(details, LandlordDetails) and (
            details.co_owners or details.ownership_percentage != TOTAL_PERCENT
        ):
            raise ProtectedFieldError("Co-owners and shares are managed through the ownership ledger")

        actor = Actor(policy_id=policy_id, kind=kind, details=details, **fields)

        if actor.is_landlord:
            actor = await self.primary.add_landlord(actor, performed_by)
        else:
            async with self._repository.transaction(policy_id) as tx:
                tx.add(actor.clone())
            self._activity.emit(
                actor.id,
                ActivityAction.ACTOR_CREATED,
                performed_by,
                {"policy_id": policy_id, "kind": actor.kind.value},
            )

        logger.info("Registered %s %s for policy %s", actor.kind.value, actor.id, policy_id)
        return actor

    async def update_actor(
        self,
        actor_id: str,
        changes: dict[str, Any],
        performed_by: str = SYSTEM,
    ) -> Actor:
        """
        Apply field changes to an actor.

        Keys may name common actor fields or fields of the kind-specific
        payload. Afterwards the actor is marked information-complete once
        every submission requirement passes.

        Raises:
            ProtectedFieldError: If a change targets an engine-owned field
            ValueError: If a key names no known field
        """
        return await self._update(actor_id, changes, performed_by, ActivityAction.ACTOR_UPDATED)

    async def self_service_update(self, token: str, changes: dict[str, Any]) -> Actor:
        """
        Token-authenticated update by the actor itself.

        Policy financial terms may only be changed by the primary landlord.

        Raises:
            TokenRejectedError: If the token is invalid or expired
            PrimaryRequiredError: If a non-primary changes primary-only terms
        """
        if self.tokens is None:
            raise RuntimeError("Self-service updates need a TokenManager")

        result = await self.tokens.validate(token)
        if not result.is_valid:
            raise TokenRejectedError(result.error)

        actor = result.actor
        if changes.keys() & PRIMARY_ONLY_FIELDS:
            await self.primary.require_primary(actor.id)

        updated = await self._update(actor.id, changes, SELF_SERVICE, ActivityAction.SELF_SERVICE_UPDATE)
        await self.tokens.record_access(updated)
        return updated

    async def remove_actor(self, actor_id: str, performed_by: str = SYSTEM) -> None:
        """
        Delete an actor.

        Landlords are removed through the primary designation manager,
        which refuses the policy's only landlord and reassigns primary
        status in the same commit.
        """
        actor = await self._repository.require(actor_id)
        if actor.is_landlord:
            await self.primary.remove_landlord(actor.policy_id, actor_id, performed_by)
            return

        async with self._repository.transaction(actor.policy_id) as tx:
            tx.delete(actor_id)

        logger.info("Removed %s %s from policy %s", actor.kind.value, actor_id, actor.policy_id)
        self._activity.emit(actor_id, ActivityAction.ACTOR_REMOVED, performed_by, {"policy_id": actor.policy_id})

    # =========================================================================
    # Transitions
    # =========================================================================

    async def submit(self, actor_id: str, performed_by: str = SYSTEM) -> Actor:
        """
        Submit an actor for review.

        Raises:
            InvalidTransitionError: If the actor is not in a submittable state
            SubmissionRequirementsError: Listing every unmet requirement
        """
        current = await self._repository.require(actor_id)

        async with self._repository.transaction(current.policy_id) as tx:
            actor = tx.get(actor_id)
            if actor.verification_status not in SUBMITTABLE_STATES:
                raise InvalidTransitionError(
                    f"Cannot submit actor in {actor.verification_status.value} status"
                )

            requirements = await self.evaluator.evaluate(actor)
            if not requirements.can_submit:
                raise SubmissionRequirementsError(requirements.missing)

            now = utc_now()
            previous = actor.verification_status
            actor.information_complete = True
            actor.completed_at = actor.completed_at or now
            actor.verification_status = VerificationStatus.IN_REVIEW
            actor.updated_at = now

        self._emit_transition(actor, ActivityAction.ACTOR_SUBMITTED, performed_by, previous)
        return actor

    async def approve(self, actor_id: str, approved_by: str) -> Actor:
        """Approve an actor. APPROVED is terminal."""
        current = await self._repository.require(actor_id)

        async with self._repository.transaction(current.policy_id) as tx:
            actor = tx.get(actor_id)
            previous = self._require_open(actor, "approve")

            now = utc_now()
            actor.verification_status = VerificationStatus.APPROVED
            actor.verified_by = approved_by
            actor.verified_at = now
            actor.updated_at = now

        self._emit_transition(actor, ActivityAction.ACTOR_APPROVED, approved_by, previous)
        return actor

    async def reject(self, actor_id: str, rejected_by: str, reason: str) -> Actor:
        """
        Reject an actor with a reason.

        Raises:
            ValueError: If the reason is empty
        """
        if not reason or not reason.strip():
            raise ValueError("Rejection reason is required")

        current = await self._repository.require(actor_id)

        async with self._repository.transaction(current.policy_id) as tx:
            actor = tx.get(actor_id)
            previous = self._require_open(actor, "reject")

            now = utc_now()
            actor.verification_status = VerificationStatus.REJECTED
            actor.rejected_by = rejected_by
            actor.rejected_at = now
            actor.rejection_reason = reason.strip()
            actor.updated_at = now

        self._emit_transition(
            actor, ActivityAction.ACTOR_REJECTED, rejected_by, previous, {"reason": actor.rejection_reason}
        )
        return actor

    async def request_changes(self, actor_id: str, requested_by: str, changes: list[str]) -> Actor:
        """
        Send an actor back for corrections.

        Raises:
            ValueError: If no changes are listed
        """
        requested = [c.strip() for c in changes if c and c.strip()]
        if not requested:
            raise ValueError("At least one requested change is required")

        current = await self._repository.require(actor_id)

        async with self._repository.transaction(current.policy_id) as tx:
            actor = tx.get(actor_id)
            previous = self._require_open(actor, "request changes for")

            actor.verification_status = VerificationStatus.REQUIRES_CHANGES
            actor.required_changes = requested
            actor.updated_at = utc_now()

        self._emit_transition(
            actor, ActivityAction.CHANGES_REQUESTED, requested_by, previous, {"changes": requested}
        )
        return actor

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _update(
        self,
        actor_id: str,
        changes: dict[str, Any],
        performed_by: str,
        action: ActivityAction,
    ) -> Actor:
        if not changes:
            return await self._repository.require(actor_id)

        current = await self._repository.require(actor_id)
        completed_now = False

        async with self._repository.transaction(current.policy_id) as tx:
            actor = tx.get(actor_id)
            self._apply_changes(actor, changes)
            actor.updated_at = utc_now()

            if not actor.information_complete:
                requirements = await self.evaluator.evaluate(actor)
                if requirements.can_submit:
                    actor.information_complete = True
                    actor.completed_at = actor.updated_at
                    completed_now = True

        self._activity.emit(actor_id, action, performed_by, {"fields": sorted(changes)})
        if completed_now:
            logger.info("Actor %s information complete", actor_id)
            self._activity.emit(actor_id, ActivityAction.INFORMATION_COMPLETED, performed_by)
        return actor

    def _apply_changes(self, actor: Actor, changes: dict[str, Any]) -> None:
        detail_fields = _detail_fields(actor.details)
        protected = set(changes.keys() & PROTECTED_ACTOR_FIELDS)
        if actor.is_landlord:
            protected |= changes.keys() & PROTECTED_LANDLORD_FIELDS
        self._reject_protected(protected)

        unknown = changes.keys() - ACTOR_FIELDS - detail_fields
        if unknown:
            raise ValueError(f"Unknown fields for {actor.kind.value}: {', '.join(sorted(unknown))}")

        detail_changes = {k: v for k, v in changes.items() if k in detail_fields}
        if detail_changes:
            actor.details = dataclasses.replace(actor.details, **detail_changes)

        for key, value in changes.items():
            if key not in detail_changes:
                setattr(actor, key, value)

    @staticmethod
    def _reject_protected(fields) -> None:
        if fields:
            raise ProtectedFieldError(
                f"Fields managed by the engine cannot be set directly: {', '.join(sorted(fields))}"
            )

    @staticmethod
    def _require_open(actor: Actor, verb: str) -> VerificationStatus:
        if actor.verification_status.is_terminal:
            raise InvalidTransitionError(
                f"Cannot {verb} actor in {actor.verification_status.value} status"
            )
        return actor.verification_status

    def _emit_transition(
        self,
        actor: Actor,
        action: ActivityAction,
        performed_by: str,
        previous: VerificationStatus,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        logger.info(
            "Actor %s moved from %s to %s",
            actor.id,
            previous.value,
            actor.verification_status.value,
        )
        payload = {"from": previous.value, "to": actor.verification_status.value}
        payload.update(details or {})
        self._activity.emit(actor.id, action, performed_by, payload)
