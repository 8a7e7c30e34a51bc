"""
Tests for the Primary Designation Manager

Tests covering:
1. First landlord is primary, landlord cap enforced
2. set_primary / transfer_primary leave exactly one primary
3. Cross-policy transfers fail without mutating either policy
4. Removing and clearing landlords reassigns to a deterministic successor
5. Concurrent writers never expose zero or two primaries
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from actor_engine.activity import ActivityAction
from actor_engine.errors import (
    ActorNotFoundError,
    CrossPolicyTransferError,
    LandlordLimitError,
    OnlyLandlordError,
    PrimaryRequiredError,
    WrongActorKindError,
)
from actor_engine.models import Actor, ActorKind, LandlordDetails, utc_now
from actor_engine.primary import MAX_LANDLORDS_PER_POLICY, select_successor


async def add_landlords(primary, policy_id: str, count: int) -> list[Actor]:
    landlords = []
    for i in range(count):
        landlord = Actor(policy_id=policy_id, kind=ActorKind.LANDLORD, full_name=f"Landlord {i}")
        landlords.append(await primary.add_landlord(landlord))
    return landlords


async def primaries(repository, policy_id: str) -> list[str]:
    actors = await repository.list_by_policy(policy_id)
    return [a.id for a in actors if a.is_primary]


# =============================================================================
# Successor Selection
# =============================================================================


class TestSelectSuccessor:
    """Tests for the deterministic successor rule."""

    def _landlord(self, share, created_offset, actor_id):
        actor = Actor(
            policy_id="POL-1",
            kind=ActorKind.LANDLORD,
            id=actor_id,
            details=LandlordDetails(ownership_percentage=Decimal(share)),
        )
        actor.created_at = utc_now() + timedelta(minutes=created_offset)
        return actor

    def test_highest_share_wins(self):
        landlords = [
            self._landlord("60", 0, "LLD-A"),
            self._landlord("100", 5, "LLD-B"),
        ]
        assert select_successor(landlords, excluding="LLD-X").id == "LLD-B"

    def test_earliest_created_breaks_share_tie(self):
        landlords = [
            self._landlord("100", 5, "LLD-A"),
            self._landlord("100", 0, "LLD-B"),
        ]
        assert select_successor(landlords, excluding="LLD-X").id == "LLD-B"

    def test_id_breaks_full_tie(self):
        a = self._landlord("100", 0, "LLD-B")
        b = self._landlord("100", 0, "LLD-A")
        b.created_at = a.created_at
        assert select_successor([a, b], excluding="LLD-X").id == "LLD-A"

    def test_excluded_landlord_never_chosen(self):
        landlords = [self._landlord("100", 0, "LLD-A")]
        assert select_successor(landlords, excluding="LLD-A") is None


# =============================================================================
# Adding Landlords
# =============================================================================


class TestAddLandlord:
    """Tests for landlord intake through the manager."""

    @pytest.mark.asyncio
    async def test_first_landlord_is_primary(self, primary, repository):
        first, second = await add_landlords(primary, "POL-1", 2)

        assert first.is_primary
        assert not second.is_primary
        assert await primaries(repository, "POL-1") == [first.id]

    @pytest.mark.asyncio
    async def test_new_landlord_requesting_primary_takes_it(self, primary, repository):
        first, _ = await add_landlords(primary, "POL-1", 2)
        newcomer = Actor(
            policy_id="POL-1",
            kind=ActorKind.LANDLORD,
            details=LandlordDetails(is_primary=True),
        )

        added = await primary.add_landlord(newcomer)

        assert added.is_primary
        assert await primaries(repository, "POL-1") == [added.id]
        stored_first = await repository.get(first.id)
        assert not stored_first.is_primary

    @pytest.mark.asyncio
    async def test_landlord_cap(self, primary, repository):
        await add_landlords(primary, "POL-1", MAX_LANDLORDS_PER_POLICY)

        with pytest.raises(LandlordLimitError) as exc_info:
            await add_landlords(primary, "POL-1", 1)

        assert exc_info.value.code == "LANDLORD_LIMIT"
        assert len(await repository.list_by_policy("POL-1")) == MAX_LANDLORDS_PER_POLICY

    @pytest.mark.asyncio
    async def test_non_landlord_rejected(self, primary):
        tenant = Actor(policy_id="POL-1", kind=ActorKind.TENANT)

        with pytest.raises(WrongActorKindError):
            await primary.add_landlord(tenant)


# =============================================================================
# set_primary / transfer_primary
# =============================================================================


class TestSetAndTransfer:
    """Tests for atomic primary changes."""

    @pytest.mark.asyncio
    async def test_set_primary(self, primary, repository, activity, sink):
        landlords = await add_landlords(primary, "POL-1", 3)

        await primary.set_primary("POL-1", landlords[2].id)

        assert await primaries(repository, "POL-1") == [landlords[2].id]
        await activity.drain()
        assert ActivityAction.PRIMARY_SET in sink.actions_for(landlords[2].id)

    @pytest.mark.asyncio
    async def test_set_primary_is_idempotent(self, primary, repository):
        landlords = await add_landlords(primary, "POL-1", 2)

        await primary.set_primary("POL-1", landlords[0].id)

        assert await primaries(repository, "POL-1") == [landlords[0].id]

    @pytest.mark.asyncio
    async def test_set_primary_unknown_landlord(self, primary, repository):
        landlords = await add_landlords(primary, "POL-1", 2)

        with pytest.raises(ActorNotFoundError):
            await primary.set_primary("POL-1", "LLD-UNKNOWN")

        assert await primaries(repository, "POL-1") == [landlords[0].id]

    @pytest.mark.asyncio
    async def test_transfer_primary(self, primary, repository):
        a, b = await add_landlords(primary, "POL-1", 2)

        await primary.transfer_primary("POL-1", a.id, b.id)

        assert await primaries(repository, "POL-1") == [b.id]

    @pytest.mark.asyncio
    async def test_cross_policy_transfer_mutates_nothing(self, primary, repository):
        (a,) = await add_landlords(primary, "POL-1", 1)
        (b,) = await add_landlords(primary, "POL-2", 1)

        with pytest.raises(CrossPolicyTransferError) as exc_info:
            await primary.transfer_primary("POL-1", a.id, b.id)

        assert exc_info.value.code == "CROSS_POLICY_TRANSFER"
        assert await primaries(repository, "POL-1") == [a.id]
        assert await primaries(repository, "POL-2") == [b.id]

    @pytest.mark.asyncio
    async def test_transfer_from_non_primary(self, primary, repository):
        a, b, c = await add_landlords(primary, "POL-1", 3)

        with pytest.raises(PrimaryRequiredError):
            await primary.transfer_primary("POL-1", b.id, c.id)

        assert await primaries(repository, "POL-1") == [a.id]

    @pytest.mark.asyncio
    async def test_concurrent_set_primary_keeps_single_primary(self, primary, repository):
        landlords = await add_landlords(primary, "POL-1", 5)
        observed: list[int] = []
        done = asyncio.Event()

        async def reader():
            while not done.is_set():
                observed.append(len(await primaries(repository, "POL-1")))
                await asyncio.sleep(0)

        async def writers():
            await asyncio.gather(*(
                primary.set_primary("POL-1", landlord.id)
                for landlord in landlords * 4
            ))
            done.set()

        await asyncio.gather(reader(), writers())

        assert observed
        assert set(observed) == {1}
        assert len(await primaries(repository, "POL-1")) == 1


# =============================================================================
# Removal and Clearing
# =============================================================================


class TestRemovalAndClear:
    """Tests for reassignment when a landlord leaves or is demoted."""

    @pytest.mark.asyncio
    async def test_remove_only_landlord_rejected(self, primary, repository):
        (only,) = await add_landlords(primary, "POL-1", 1)

        with pytest.raises(OnlyLandlordError) as exc_info:
            await primary.remove_landlord("POL-1", only.id)

        assert exc_info.value.code == "ONLY_LANDLORD"
        assert await repository.get(only.id) is not None

    @pytest.mark.asyncio
    async def test_remove_non_primary_keeps_primary(self, primary, repository):
        a, b = await add_landlords(primary, "POL-1", 2)

        successor = await primary.remove_landlord("POL-1", b.id)

        assert successor is None
        assert await repository.get(b.id) is None
        assert await primaries(repository, "POL-1") == [a.id]

    @pytest.mark.asyncio
    async def test_remove_primary_reassigns_before_delete(self, primary, repository, ledger, activity, sink):
        a, b, c = await add_landlords(primary, "POL-1", 3)
        # b keeps 60% of its property, c keeps 100%: c has the highest own share
        await ledger.add_co_owner(b.id, "Co Owner", "40")

        successor = await primary.remove_landlord("POL-1", a.id)

        assert successor.id == c.id
        assert await repository.get(a.id) is None
        assert await primaries(repository, "POL-1") == [c.id]
        await activity.drain()
        assert ActivityAction.PRIMARY_REASSIGNED in sink.actions_for(c.id)
        assert ActivityAction.ACTOR_REMOVED in sink.actions_for(a.id)

    @pytest.mark.asyncio
    async def test_reassign_on_removal(self, primary, repository):
        a, b = await add_landlords(primary, "POL-1", 2)

        successor = await primary.reassign_on_removal("POL-1", a.id)

        assert successor.id == b.id
        assert await primaries(repository, "POL-1") == [b.id]

    @pytest.mark.asyncio
    async def test_clear_primary_only_landlord_rejected(self, primary, repository):
        (only,) = await add_landlords(primary, "POL-1", 1)

        with pytest.raises(OnlyLandlordError):
            await primary.clear_primary(only.id)

        assert await primaries(repository, "POL-1") == [only.id]

    @pytest.mark.asyncio
    async def test_clear_primary_moves_to_successor(self, primary, repository):
        a, b = await add_landlords(primary, "POL-1", 2)

        new_primary = await primary.clear_primary(a.id)

        assert new_primary.id == b.id
        assert await primaries(repository, "POL-1") == [b.id]

    @pytest.mark.asyncio
    async def test_clear_non_primary_changes_nothing(self, primary, repository):
        a, b = await add_landlords(primary, "POL-1", 2)

        current = await primary.clear_primary(b.id)

        assert current.id == a.id
        assert await primaries(repository, "POL-1") == [a.id]


# =============================================================================
# Primary Gate
# =============================================================================


class TestPrimaryGate:
    @pytest.mark.asyncio
    async def test_require_primary(self, primary):
        a, b = await add_landlords(primary, "POL-1", 2)

        assert (await primary.require_primary(a.id)).id == a.id
        with pytest.raises(PrimaryRequiredError) as exc_info:
            await primary.require_primary(b.id)
        assert exc_info.value.code == "PRIMARY_REQUIRED"

    @pytest.mark.asyncio
    async def test_get_primary(self, primary):
        assert await primary.get_primary("POL-EMPTY") is None
        a, _ = await add_landlords(primary, "POL-1", 2)
        assert (await primary.get_primary("POL-1")).id == a.id
