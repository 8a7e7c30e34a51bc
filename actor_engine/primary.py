"""
Primary Designation Manager - One Primary Landlord per Policy

Every policy with landlords has exactly one primary landlord: the
principal point of contact and financial authority. All primary-flag
writes happen here, each as one policy transaction, so no reader ever
sees a policy with zero or two primaries.

Successor rule (reassignment after removal or clear): the remaining
landlord with the highest own ownership share, then the earliest
created, then the lowest id.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final, Iterable, Optional

from actor_engine.activity import SYSTEM, ActivityAction, ActivityLog
from actor_engine.errors import (
    ActorNotFoundError,
    CrossPolicyTransferError,
    LandlordLimitError,
    OnlyLandlordError,
    PrimaryRequiredError,
    WrongActorKindError,
)
from actor_engine.models import Actor, utc_now
from actor_engine.ownership import own_share

if TYPE_CHECKING:
    from actor_engine.repository import ActorRepository, PolicyTransaction


logger = logging.getLogger(__name__)


MAX_LANDLORDS_PER_POLICY: Final[int] = 10


def select_successor(landlords: Iterable[Actor], excluding: str) -> Optional[Actor]:
    """Pick the landlord that takes over primary status, or None."""
    candidates = [a for a in landlords if a.id != excluding]
    if not candidates:
        return None
    return min(candidates, key=lambda a: (-own_share(a), a.created_at, a.id))


def _assign_primary(landlords: Iterable[Actor], primary_id: str) -> None:
    now = utc_now()
    for landlord in landlords:
        should_be_primary = landlord.id == primary_id
        if landlord.landlord.is_primary != should_be_primary:
            landlord.landlord.is_primary = should_be_primary
            landlord.updated_at = now


def _current_primary(landlords: Iterable[Actor]) -> Optional[Actor]:
    return next((a for a in landlords if a.is_primary), None)


class PrimaryDesignationManager:
    """Sole writer of the landlord ``is_primary`` flag."""

    def __init__(self, repository: "ActorRepository", activity: Optional[ActivityLog] = None):
        self._repository = repository
        self._activity = activity or ActivityLog()

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_primary(self, policy_id: str) -> Optional[Actor]:
        actors = await self._repository.list_by_policy(policy_id)
        return _current_primary(a for a in actors if a.is_landlord)

    async def require_primary(self, landlord_id: str) -> Actor:
        """
        Gate for primary-only actions.

        Raises:
            PrimaryRequiredError: If the landlord is not the policy's primary
        """
        actor = await self._repository.require(landlord_id)
        if not actor.is_primary:
            raise PrimaryRequiredError(
                f"Only the primary landlord can perform this action ({landlord_id} is not primary)"
            )
        return actor

    # =========================================================================
    # Mutations
    # =========================================================================

    async def set_primary(self, policy_id: str, landlord_id: str, performed_by: str = SYSTEM) -> Actor:
        """
        Make ``landlord_id`` the only primary landlord of the policy.

        Raises:
            ActorNotFoundError: If the landlord is not part of the policy
        """
        async with self._repository.transaction(policy_id) as tx:
            target = self._landlord_in(tx, landlord_id)
            previous = _current_primary(tx.landlords())
            _assign_primary(tx.landlords(), target.id)

        logger.info("Primary landlord of policy %s set to %s", policy_id, landlord_id)
        self._activity.emit(
            landlord_id,
            ActivityAction.PRIMARY_SET,
            performed_by,
            {"policy_id": policy_id, "previous_primary_id": previous.id if previous else None},
        )
        return target

    async def transfer_primary(
        self,
        policy_id: str,
        from_landlord_id: str,
        to_landlord_id: str,
        performed_by: str = SYSTEM,
    ) -> Actor:
        """
        Move primary status between two landlords of the same policy.

        Raises:
            CrossPolicyTransferError: If either landlord is not in the policy
            PrimaryRequiredError: If ``from_landlord_id`` is not the primary
        """
        async with self._repository.transaction(policy_id) as tx:
            source = tx.find(from_landlord_id)
            target = tx.find(to_landlord_id)
            if (
                source is None
                or target is None
                or not source.is_landlord
                or not target.is_landlord
            ):
                raise CrossPolicyTransferError(
                    f"Landlords {from_landlord_id} and {to_landlord_id} "
                    f"must both belong to policy {policy_id}"
                )
            if not source.is_primary:
                raise PrimaryRequiredError(f"Landlord {from_landlord_id} is not the primary landlord")

            _assign_primary(tx.landlords(), target.id)

        logger.info(
            "Primary landlord of policy %s transferred from %s to %s",
            policy_id,
            from_landlord_id,
            to_landlord_id,
        )
        self._activity.emit(
            to_landlord_id,
            ActivityAction.PRIMARY_TRANSFERRED,
            performed_by,
            {"policy_id": policy_id, "from_landlord_id": from_landlord_id},
        )
        return target

    async def reassign_on_removal(
        self,
        policy_id: str,
        removed_landlord_id: str,
        performed_by: str = SYSTEM,
    ) -> Optional[Actor]:
        """Hand primary status to the successor of ``removed_landlord_id``."""
        async with self._repository.transaction(policy_id) as tx:
            successor = self.reassign_within(tx, removed_landlord_id)

        if successor is not None:
            self._emit_reassigned(successor, removed_landlord_id, performed_by)
        return successor

    def reassign_within(self, tx: "PolicyTransaction", removed_landlord_id: str) -> Optional[Actor]:
        """
        Reassign primary status inside an open policy transaction.

        Used by callers that delete or demote a landlord in the same commit.
        """
        successor = select_successor(tx.landlords(), excluding=removed_landlord_id)
        if successor is not None:
            _assign_primary(tx.landlords(), successor.id)
            logger.info(
                "Primary landlord of policy %s reassigned from %s to %s",
                tx.policy_id,
                removed_landlord_id,
                successor.id,
            )
        return successor

    async def remove_landlord(
        self,
        policy_id: str,
        landlord_id: str,
        performed_by: str = SYSTEM,
    ) -> Optional[Actor]:
        """
        Delete a landlord, reassigning primary status first if needed.

        Returns:
            The new primary landlord when one was reassigned, else None

        Raises:
            OnlyLandlordError: If it is the policy's only landlord
        """
        async with self._repository.transaction(policy_id) as tx:
            self.check_removable(tx, landlord_id)
            landlord = tx.get(landlord_id)
            successor = self.reassign_within(tx, landlord_id) if landlord.is_primary else None
            tx.delete(landlord_id)

        logger.info("Removed landlord %s from policy %s", landlord_id, policy_id)
        self._activity.emit(landlord_id, ActivityAction.ACTOR_REMOVED, performed_by, {"policy_id": policy_id})
        if successor is not None:
            self._emit_reassigned(successor, landlord_id, performed_by)
        return successor

    def check_removable(self, tx: "PolicyTransaction", landlord_id: str) -> None:
        self._landlord_in(tx, landlord_id)
        if len(tx.landlords()) <= 1:
            raise OnlyLandlordError("Cannot remove the only landlord of a policy")

    async def clear_primary(self, landlord_id: str, performed_by: str = SYSTEM) -> Actor:
        """
        Take primary status away from a landlord.

        Primary status moves to the successor. Clearing a landlord that is
        not primary changes nothing.

        Returns:
            The policy's primary landlord afterwards

        Raises:
            OnlyLandlordError: If it is the policy's only landlord
        """
        actor = await self._repository.require(landlord_id)

        async with self._repository.transaction(actor.policy_id) as tx:
            landlord = self._landlord_in(tx, landlord_id)
            if len(tx.landlords()) <= 1:
                raise OnlyLandlordError("Cannot clear primary status from the only landlord of a policy")
            if not landlord.is_primary:
                return _current_primary(tx.landlords())
            successor = self.reassign_within(tx, landlord_id)

        self._emit_reassigned(successor, landlord_id, performed_by)
        return successor

    async def add_landlord(self, actor: Actor, performed_by: str = SYSTEM) -> Actor:
        """
        Add a landlord to its policy.

        The first landlord of a policy is always primary. A later landlord
        created with ``is_primary`` set takes primary status in the same
        commit; otherwise it joins as non-primary.

        Raises:
            WrongActorKindError: If the actor is not a landlord
            LandlordLimitError: If the policy already has the maximum
        """
        if not actor.is_landlord:
            raise WrongActorKindError(f"Actor {actor.id} is a {actor.kind.value}, not a landlord")

        actor = actor.clone()
        async with self._repository.transaction(actor.policy_id) as tx:
            landlords = tx.landlords()
            if len(landlords) >= MAX_LANDLORDS_PER_POLICY:
                raise LandlordLimitError(
                    f"Maximum of {MAX_LANDLORDS_PER_POLICY} landlords allowed per policy"
                )
            take_primary = not landlords or actor.landlord.is_primary
            actor.landlord.is_primary = False
            tx.add(actor)
            if take_primary:
                _assign_primary(tx.landlords(), actor.id)

        self._activity.emit(
            actor.id,
            ActivityAction.ACTOR_CREATED,
            performed_by,
            {"policy_id": actor.policy_id, "kind": actor.kind.value, "is_primary": actor.is_primary},
        )
        return actor

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _landlord_in(tx: "PolicyTransaction", landlord_id: str) -> Actor:
        landlord = tx.find(landlord_id)
        if landlord is None or not landlord.is_landlord:
            raise ActorNotFoundError(landlord_id, entity="Landlord")
        return landlord

    def _emit_reassigned(self, successor: Actor, removed_landlord_id: str, performed_by: str) -> None:
        self._activity.emit(
            successor.id,
            ActivityAction.PRIMARY_REASSIGNED,
            performed_by,
            {"policy_id": successor.policy_id, "previous_primary_id": removed_landlord_id},
        )
