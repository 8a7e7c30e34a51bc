"""
Ownership Ledger - Co-Ownership Percentage Bookkeeping

Maintains the percentage-sum rule for a landlord and its co-owners:

    landlord share + sum(active co-owner shares) == 100   (exact Decimal)

Pure half (no I/O):
    validate_totals()   - reports every violated rule in one pass, never raises
    redistribute()      - spreads a removed share over the remaining co-owners
    create_co_owner()   - field-level checks for a new co-owner

Service half:
    OwnershipLedger     - repository-backed mutations, each committed inside
                          one policy transaction and only when the result
                          re-validates
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Final, Iterable, Optional, Sequence, Union

from actor_engine.activity import SYSTEM, ActivityAction, ActivityLog
from actor_engine.errors import ActorNotFoundError, OwnershipValidationError
from actor_engine.models import Actor, CoOwner, to_decimal, utc_now
from actor_engine.validators import (
    is_valid_curp,
    is_valid_email,
    is_valid_phone,
    is_valid_rfc,
)
from utils.formatting import format_percent

if TYPE_CHECKING:
    from actor_engine.repository import ActorRepository


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

TOTAL_PERCENT: Final[Decimal] = Decimal("100")

# Landlord's own share, with or without co-owners
PRIMARY_MIN_PERCENT: Final[Decimal] = Decimal("25")

CO_OWNER_MIN_PERCENT: Final[Decimal] = Decimal("1")
CO_OWNER_MAX_PERCENT: Final[Decimal] = Decimal("100")

MAX_CO_OWNERS: Final[int] = 10

# Smallest unit redistribute() allocates
SHARE_QUANTUM: Final[Decimal] = Decimal("0.01")


class RedistributionStrategy(Enum):
    """How a removed co-owner's share is spread over the rest."""

    EQUAL = "equal"
    PROPORTIONAL = "proportional"

    @classmethod
    def parse(cls, value: Union["RedistributionStrategy", str]) -> "RedistributionStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown redistribution strategy: {value!r}") from None


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class OwnershipValidationResult:
    """Outcome of validate_totals(). ``errors`` holds every violated rule."""

    is_valid: bool
    total: Decimal
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class OwnershipSummary:
    """Read model of a landlord's ownership split."""

    landlord_id: str
    primary_percentage: Decimal
    co_owners: tuple[CoOwner, ...]
    total: Decimal
    is_valid: bool
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "landlord_id": self.landlord_id,
            "primary_percentage": str(self.primary_percentage),
            "co_owners": [
                {
                    "id": c.id,
                    "name": c.name,
                    "ownership_percentage": str(c.ownership_percentage),
                }
                for c in self.co_owners
            ],
            "total": str(self.total),
            "is_valid": self.is_valid,
            "errors": list(self.errors),
        }


# =============================================================================
# Pure Operations
# =============================================================================


def _finite_share(value) -> Optional[Decimal]:
    try:
        return to_decimal(value)
    except ValueError:
        return None


def validate_totals(
    primary_percentage: Union[Decimal, int, float, str],
    co_owners: Iterable[CoOwner],
) -> OwnershipValidationResult:
    """
    Check a landlord's ownership split.

    Only active co-owners count. Every rule is evaluated so callers can
    show the full list at once. A share that is not a finite number is
    reported as an error; the total then only sums the numeric shares.

    Args:
        primary_percentage: The landlord's own share
        co_owners: Co-owners of that landlord

    Returns:
        OwnershipValidationResult
    """
    primary = _finite_share(primary_percentage)
    active = [c for c in co_owners if c.is_active]
    shares = [(c, _finite_share(c.ownership_percentage)) for c in active]

    errors: list[str] = []

    if primary is None:
        errors.append("Primary ownership percentage must be a number")
    for co_owner, share in shares:
        if share is None:
            errors.append(f"Co-owner {co_owner.name} ownership percentage must be a number")

    numeric = [share for _, share in shares if share is not None]
    total = (primary or Decimal("0")) + sum(numeric, Decimal("0"))
    all_numeric = primary is not None and len(numeric) == len(shares)

    if all_numeric and total != TOTAL_PERCENT:
        errors.append(f"Total ownership must equal 100% (currently {format_percent(total)})")

    if primary is not None and primary < PRIMARY_MIN_PERCENT:
        errors.append(
            f"Primary owner must have at least {format_percent(PRIMARY_MIN_PERCENT)} ownership "
            f"(currently {format_percent(primary)})"
        )
    elif primary is not None and primary > TOTAL_PERCENT:
        errors.append("Primary owner cannot exceed 100% ownership")

    for co_owner, share in shares:
        if share is None:
            continue
        if share < CO_OWNER_MIN_PERCENT or share > CO_OWNER_MAX_PERCENT:
            errors.append(
                f"Co-owner {co_owner.name} must hold between "
                f"{format_percent(CO_OWNER_MIN_PERCENT)} and {format_percent(CO_OWNER_MAX_PERCENT)} "
                f"(currently {format_percent(share)})"
            )

    if len(active) > MAX_CO_OWNERS:
        errors.append(f"A landlord can have at most {MAX_CO_OWNERS} co-owners (currently {len(active)})")

    return OwnershipValidationResult(
        is_valid=not errors,
        total=total,
        errors=tuple(errors),
    )


def _allocation_quantum(removed: Decimal) -> Decimal:
    exponent = removed.normalize().as_tuple().exponent
    return min(SHARE_QUANTUM, Decimal(1).scaleb(exponent))


def redistribute(
    removed_percentage: Union[Decimal, int, float, str],
    remaining_co_owners: Sequence[CoOwner],
    strategy: Union[RedistributionStrategy, str] = RedistributionStrategy.PROPORTIONAL,
) -> list[CoOwner]:
    """
    Spread a removed share over the remaining co-owners.

    EQUAL gives each owner ``removed / n``; PROPORTIONAL gives each owner
    ``removed * share / sum(shares)``. Amounts are allocated in units of
    SHARE_QUANTUM (finer when the removed share itself is finer) using
    largest-remainder rounding, so the additions always sum exactly to
    ``removed``. Ties go to the earlier owner in the input.

    The input is not modified and the result is not re-validated; callers
    run validate_totals() afterwards. An empty input returns [] and the
    caller credits the landlord.

    Raises:
        ValueError: If removed_percentage is negative or the strategy is unknown
    """
    strategy = RedistributionStrategy.parse(strategy)
    removed = to_decimal(removed_percentage)
    if removed < 0:
        raise ValueError("Removed percentage cannot be negative")
    if not remaining_co_owners:
        return []

    if strategy is RedistributionStrategy.PROPORTIONAL:
        weights = [c.ownership_percentage for c in remaining_co_owners]
    else:
        weights = [Decimal("1")] * len(remaining_co_owners)

    weight_sum = sum(weights, Decimal("0"))
    if weight_sum <= 0:
        weights = [Decimal("1")] * len(remaining_co_owners)
        weight_sum = Decimal(len(remaining_co_owners))

    quantum = _allocation_quantum(removed) if removed else SHARE_QUANTUM
    total_units = int((removed / quantum).to_integral_value())

    raw = [Decimal(total_units) * w / weight_sum for w in weights]
    units = [int(r.to_integral_value(rounding=ROUND_FLOOR)) for r in raw]

    leftover = total_units - sum(units)
    by_remainder = sorted(
        range(len(raw)),
        key=lambda i: (-(raw[i] - units[i]), i),
    )
    for i in by_remainder[:leftover]:
        units[i] += 1

    now = utc_now()
    return [
        dataclasses.replace(
            co_owner,
            ownership_percentage=co_owner.ownership_percentage + unit_count * quantum,
            updated_at=now,
        )
        for co_owner, unit_count in zip(remaining_co_owners, units)
    ]


def create_co_owner(
    landlord_id: str,
    name: str,
    ownership_percentage: Union[Decimal, int, float, str],
    rfc: Optional[str] = None,
    curp: Optional[str] = None,
    relationship: Optional[str] = None,
    contact_email: Optional[str] = None,
    contact_phone: Optional[str] = None,
) -> tuple[Optional[CoOwner], list[str]]:
    """
    Build a co-owner after field-level domain checks.

    Returns:
        (CoOwner, []) on success, (None, errors) otherwise
    """
    errors: list[str] = []

    if not name or not name.strip():
        errors.append("Co-owner name is required")

    share: Optional[Decimal] = None
    try:
        share = to_decimal(ownership_percentage)
    except ValueError:
        errors.append("Ownership percentage must be a number")

    if share is not None and (share < CO_OWNER_MIN_PERCENT or share > CO_OWNER_MAX_PERCENT):
        errors.append(
            f"Co-owner ownership must be between {format_percent(CO_OWNER_MIN_PERCENT)} "
            f"and {format_percent(CO_OWNER_MAX_PERCENT)}"
        )

    if rfc and not is_valid_rfc(rfc):
        errors.append("Invalid RFC format")
    if curp and not is_valid_curp(curp):
        errors.append("Invalid CURP format")
    if contact_email and not is_valid_email(contact_email):
        errors.append("Invalid email format")
    if contact_phone and not is_valid_phone(contact_phone):
        errors.append("Invalid phone format")

    if errors:
        return None, errors

    co_owner = CoOwner(
        landlord_id=landlord_id,
        name=name.strip(),
        ownership_percentage=share,
        rfc=rfc.strip().upper() if rfc else None,
        curp=curp.strip().upper() if curp else None,
        relationship=relationship,
        contact_email=contact_email,
        contact_phone=contact_phone,
    )
    return co_owner, []


def own_share(actor: Actor) -> Decimal:
    """A landlord's own ownership share (read-only)."""
    return actor.landlord.ownership_percentage


def summarize(actor: Actor) -> OwnershipSummary:
    details = actor.landlord
    active = details.active_co_owners
    result = validate_totals(details.ownership_percentage, active)
    return OwnershipSummary(
        landlord_id=actor.id,
        primary_percentage=details.ownership_percentage,
        co_owners=tuple(active),
        total=result.total,
        is_valid=result.is_valid,
        errors=result.errors,
    )


# =============================================================================
# Ledger Service
# =============================================================================


class OwnershipLedger:
    """
    Repository-backed ownership mutations.

    Each mutation reads the landlord inside a policy transaction, computes
    the new split, re-validates it and commits only a valid result. A
    refused mutation raises OwnershipValidationError and stores nothing.
    """

    def __init__(
        self,
        repository: "ActorRepository",
        activity: Optional[ActivityLog] = None,
        default_strategy: Union[RedistributionStrategy, str] = RedistributionStrategy.PROPORTIONAL,
    ):
        self._repository = repository
        self._activity = activity or ActivityLog()
        self.default_strategy = RedistributionStrategy.parse(default_strategy)

    async def get_summary(self, landlord_id: str) -> OwnershipSummary:
        actor = await self._repository.require(landlord_id)
        return summarize(actor)

    async def add_co_owner(
        self,
        landlord_id: str,
        name: str,
        ownership_percentage: Union[Decimal, int, float, str],
        performed_by: str = SYSTEM,
        **identity,
    ) -> CoOwner:
        """
        Add a co-owner. Its share is taken from the landlord's own share.

        Raises:
            OwnershipValidationError: If the co-owner or resulting split is invalid
        """
        actor = await self._repository.require(landlord_id)
        co_owner, errors = create_co_owner(landlord_id, name, ownership_percentage, **identity)
        if co_owner is None:
            raise OwnershipValidationError(errors)

        async with self._repository.transaction(actor.policy_id) as tx:
            landlord = tx.get(landlord_id)
            details = landlord.landlord
            new_primary = details.ownership_percentage - co_owner.ownership_percentage

            result = validate_totals(new_primary, details.active_co_owners + [co_owner])
            if not result.is_valid:
                raise OwnershipValidationError(result.errors)

            details.ownership_percentage = new_primary
            details.co_owners.append(co_owner)
            landlord.updated_at = utc_now()

        logger.info("Added co-owner %s to landlord %s", co_owner.id, landlord_id)
        self._activity.emit(
            landlord_id,
            ActivityAction.CO_OWNER_ADDED,
            performed_by,
            {
                "co_owner_id": co_owner.id,
                "ownership_percentage": str(co_owner.ownership_percentage),
                "primary_percentage": str(new_primary),
            },
        )
        return co_owner

    async def update_shares(
        self,
        landlord_id: str,
        primary_percentage: Union[Decimal, int, float, str],
        shares: dict[str, Union[Decimal, int, float, str]],
        performed_by: str = SYSTEM,
    ) -> OwnershipSummary:
        """
        Replace the landlord's share and any subset of co-owner shares.

        Raises:
            ActorNotFoundError: If a co-owner id is not an active co-owner
            OwnershipValidationError: If a share is not a number or the split is invalid
        """
        actor = await self._repository.require(landlord_id)
        try:
            primary = to_decimal(primary_percentage)
            new_shares = {cid: to_decimal(pct) for cid, pct in shares.items()}
        except ValueError as e:
            raise OwnershipValidationError(["Ownership percentage must be a number"]) from e

        async with self._repository.transaction(actor.policy_id) as tx:
            landlord = tx.get(landlord_id)
            details = landlord.landlord
            active_ids = {c.id for c in details.active_co_owners}
            for co_owner_id in new_shares:
                if co_owner_id not in active_ids:
                    raise ActorNotFoundError(co_owner_id, entity="Co-owner")

            now = utc_now()
            proposed = [
                dataclasses.replace(c, ownership_percentage=new_shares[c.id], updated_at=now)
                if c.id in new_shares
                else c
                for c in details.active_co_owners
            ]
            result = validate_totals(primary, proposed)
            if not result.is_valid:
                raise OwnershipValidationError(result.errors)

            self._apply(landlord, primary, proposed)
            summary = summarize(landlord)

        self._activity.emit(
            landlord_id,
            ActivityAction.OWNERSHIP_UPDATED,
            performed_by,
            {
                "primary_percentage": str(primary),
                "shares": {cid: str(pct) for cid, pct in new_shares.items()},
            },
        )
        return summary

    async def remove_co_owner(
        self,
        landlord_id: str,
        co_owner_id: str,
        strategy: Union[RedistributionStrategy, str, None] = None,
        performed_by: str = SYSTEM,
    ) -> OwnershipSummary:
        """
        Deactivate a co-owner and redistribute its share.

        The share goes to the remaining active co-owners using ``strategy``
        (the ledger default when None), or back to the landlord when none
        remain. Redistribution and re-validation commit together.

        Raises:
            ActorNotFoundError: If the co-owner is not an active co-owner
            OwnershipValidationError: If the redistributed split is invalid
        """
        strategy = RedistributionStrategy.parse(strategy or self.default_strategy)
        actor = await self._repository.require(landlord_id)

        async with self._repository.transaction(actor.policy_id) as tx:
            landlord = tx.get(landlord_id)
            details = landlord.landlord
            removed = next(
                (c for c in details.active_co_owners if c.id == co_owner_id),
                None,
            )
            if removed is None:
                raise ActorNotFoundError(co_owner_id, entity="Co-owner")

            remaining = [c for c in details.active_co_owners if c.id != co_owner_id]
            primary = details.ownership_percentage
            if remaining:
                proposed = redistribute(removed.ownership_percentage, remaining, strategy)
            else:
                proposed = []
                primary = primary + removed.ownership_percentage

            result = validate_totals(primary, proposed)
            if not result.is_valid:
                raise OwnershipValidationError(result.errors)

            removed.is_active = False
            removed.updated_at = utc_now()
            self._apply(landlord, primary, proposed)
            summary = summarize(landlord)

        logger.info(
            "Removed co-owner %s from landlord %s (%s redistribution)",
            co_owner_id,
            landlord_id,
            strategy.value,
        )
        self._activity.emit(
            landlord_id,
            ActivityAction.CO_OWNER_REMOVED,
            performed_by,
            {
                "co_owner_id": co_owner_id,
                "removed_percentage": str(removed.ownership_percentage),
                "strategy": strategy.value,
            },
        )
        return summary

    @staticmethod
    def _apply(landlord: Actor, primary: Decimal, proposed: list[CoOwner]) -> None:
        details = landlord.landlord
        by_id = {c.id: c for c in proposed}
        details.co_owners = [by_id.get(c.id, c) for c in details.co_owners]
        details.ownership_percentage = primary
        landlord.updated_at = utc_now()
