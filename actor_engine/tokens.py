"""
Self-Service Access Tokens

Bearer tokens that let an actor edit its own record without staff login.

Principles:
1. Tokens are cryptographically secure (32 random bytes, 64 hex chars)
2. One active token per actor; issuing a new one invalidates the old
3. Tokens expire; expiry is clamped into configured day bounds
4. Not-found and expired tokens are ordinary results, not exceptions
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Final, Optional

from actor_engine.activity import SYSTEM, ActivityAction, ActivityLog
from actor_engine.errors import NoActiveTokenError
from actor_engine.models import Actor, ActorKind, utc_now
from utils.formatting import token_preview

if TYPE_CHECKING:
    from actor_engine.repository import ActorRepository


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Token length in bytes (32 bytes = 256 bits = 64 hex chars)
TOKEN_BYTES: Final[int] = 32

DEFAULT_EXPIRY_DAYS: Final[int] = 7
MIN_EXPIRY_DAYS: Final[int] = 1
MAX_EXPIRY_DAYS: Final[int] = 30

TOKEN_PATTERN: Final = re.compile(r"^[0-9a-f]{64}$")

INVALID_TOKEN: Final[str] = "Invalid token"
TOKEN_EXPIRED: Final[str] = "Token expired"

# URL path segment per actor kind in invitation links
LINK_SEGMENTS: Final[dict[ActorKind, str]] = {
    ActorKind.LANDLORD: "landlord",
    ActorKind.TENANT: "tenant",
    ActorKind.JOINT_OBLIGOR: "joint-obligor",
    ActorKind.AVAL: "aval",
}


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class IssuedToken:
    """A freshly generated or refreshed token."""

    actor_id: str
    token: str
    expires_at: datetime
    link: Optional[str] = None

    def to_public_dict(self) -> dict:
        return {
            "actor_id": self.actor_id,
            "token": token_preview(self.token),
            "expires_at": self.expires_at.isoformat(),
            "link": self.link,
        }


@dataclass(frozen=True)
class TokenValidationResult:
    """Outcome of TokenManager.validate()."""

    is_valid: bool
    actor: Optional[Actor] = None
    error: Optional[str] = None
    remaining_hours: Optional[float] = None


@dataclass(frozen=True)
class TokenRemainingTime:
    days: int
    hours: int
    minutes: int
    is_expired: bool

    @property
    def total_hours(self) -> int:
        return self.days * 24 + self.hours


# =============================================================================
# Helpers
# =============================================================================


def generate_token_value() -> str:
    """
    Generate a cryptographically secure token value.

    Uses the secrets module; returns 64 lowercase hex characters.
    """
    return secrets.token_hex(TOKEN_BYTES)


def is_valid_token_format(token: Optional[str]) -> bool:
    if not token:
        return False
    return bool(TOKEN_PATTERN.match(token))


def clamp_expiry_days(days: int, bounds: tuple[int, int] = (MIN_EXPIRY_DAYS, MAX_EXPIRY_DAYS)) -> int:
    low, high = bounds
    if low > high:
        raise ValueError(f"Invalid expiry bounds: {bounds}")
    return max(low, min(high, days))


def remaining_time(expiry: datetime, now: Optional[datetime] = None) -> TokenRemainingTime:
    """Break the time left until ``expiry`` into days, hours and minutes."""
    now = now or utc_now()
    seconds = int((expiry - now).total_seconds())
    if seconds <= 0:
        return TokenRemainingTime(days=0, hours=0, minutes=0, is_expired=True)

    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    return TokenRemainingTime(days=days, hours=hours, minutes=seconds // 60, is_expired=False)


def build_invitation_link(app_url: str, kind: ActorKind, token: str) -> str:
    return f"{app_url.rstrip('/')}/actor/{LINK_SEGMENTS[kind]}/{token}"


# =============================================================================
# Token Manager
# =============================================================================


class TokenManager:
    """
    Issues, validates, refreshes and revokes self-service tokens.

    Token fields are written only through the repository's conditional
    single-row update.
    """

    def __init__(
        self,
        repository: "ActorRepository",
        activity: Optional[ActivityLog] = None,
        app_url: Optional[str] = None,
        default_expiry_days: int = DEFAULT_EXPIRY_DAYS,
        bounds: tuple[int, int] = (MIN_EXPIRY_DAYS, MAX_EXPIRY_DAYS),
        clock: Callable[[], datetime] = utc_now,
    ):
        if bounds[0] > bounds[1]:
            raise ValueError(f"Invalid expiry bounds: {bounds}")
        self._repository = repository
        self._activity = activity or ActivityLog()
        self.app_url = app_url
        self.default_expiry_days = default_expiry_days
        self.bounds = bounds
        self._clock = clock

    def invitation_link(self, actor: Actor, token: str) -> Optional[str]:
        if not self.app_url:
            return None
        return build_invitation_link(self.app_url, actor.kind, token)

    async def generate(
        self,
        actor_id: str,
        expiry_days: Optional[int] = None,
        bounds: Optional[tuple[int, int]] = None,
        performed_by: str = SYSTEM,
    ) -> IssuedToken:
        """
        Issue a new token for an actor, replacing any previous one.

        Args:
            actor_id: Actor receiving the token
            expiry_days: Validity in days (default from the manager)
            bounds: (min, max) days the expiry is clamped into

        Returns:
            IssuedToken
        """
        actor = await self._repository.require(actor_id)
        days = clamp_expiry_days(
            self.default_expiry_days if expiry_days is None else expiry_days,
            bounds or self.bounds,
        )

        token = generate_token_value()
        # Ensure token is unique (extremely unlikely collision)
        while await self._repository.get_by_token(token) is not None:
            token = generate_token_value()

        expires_at = self._clock() + timedelta(days=days)
        await self._repository.update_token(actor_id, token, expires_at)

        logger.info("Issued token %s for actor %s, expires %s", token_preview(token), actor_id, expires_at)
        self._activity.emit(
            actor_id,
            ActivityAction.TOKEN_GENERATED,
            performed_by,
            {"expires_at": expires_at.isoformat(), "expiry_days": days},
        )
        return IssuedToken(
            actor_id=actor_id,
            token=token,
            expires_at=expires_at,
            link=self.invitation_link(actor, token),
        )

    async def validate(self, token: Optional[str]) -> TokenValidationResult:
        """Look up a token. Unknown, malformed and expired tokens return is_valid=False."""
        if not is_valid_token_format(token):
            return TokenValidationResult(is_valid=False, error=INVALID_TOKEN)

        actor = await self._repository.get_by_token(token)
        if actor is None:
            return TokenValidationResult(is_valid=False, error=INVALID_TOKEN)

        now = self._clock()
        if actor.token_expiry is None or actor.token_expiry <= now:
            return TokenValidationResult(is_valid=False, error=TOKEN_EXPIRED)

        remaining = (actor.token_expiry - now).total_seconds() / 3600
        return TokenValidationResult(is_valid=True, actor=actor, remaining_hours=remaining)

    async def revoke(self, actor_id: str, performed_by: str = SYSTEM) -> Actor:
        """Clear an actor's token. Revoking an actor without a token is a no-op."""
        actor = await self._repository.require(actor_id)
        if actor.access_token is None and actor.token_expiry is None:
            return actor

        updated = await self._repository.update_token(actor_id, None, None)
        logger.info("Revoked token for actor %s", actor_id)
        self._activity.emit(actor_id, ActivityAction.TOKEN_REVOKED, performed_by)
        return updated

    async def refresh(
        self,
        actor_id: str,
        additional_days: int,
        performed_by: str = SYSTEM,
    ) -> IssuedToken:
        """
        Extend the current token's expiry.

        Extends from the current expiry while the token is valid, otherwise
        from now. The result never exceeds now plus the maximum bound.

        Raises:
            NoActiveTokenError: If the actor has no token
            StoreConflictError: If the token changed while refreshing
        """
        if additional_days < 1:
            raise ValueError("additional_days must be at least 1")

        actor = await self._repository.require(actor_id)
        if not actor.access_token:
            raise NoActiveTokenError(f"Actor {actor_id} has no token to refresh")

        now = self._clock()
        base = actor.token_expiry if actor.token_expiry and actor.token_expiry > now else now
        expires_at = min(
            base + timedelta(days=additional_days),
            now + timedelta(days=self.bounds[1]),
        )

        await self._repository.update_token(
            actor_id,
            actor.access_token,
            expires_at,
            expected_token=actor.access_token,
        )

        self._activity.emit(
            actor_id,
            ActivityAction.TOKEN_REFRESHED,
            performed_by,
            {"expires_at": expires_at.isoformat(), "additional_days": additional_days},
        )
        return IssuedToken(
            actor_id=actor_id,
            token=actor.access_token,
            expires_at=expires_at,
            link=self.invitation_link(actor, actor.access_token),
        )

    async def record_access(self, actor: Actor) -> Actor:
        return await self._repository.record_access(actor.id, self._clock())

    async def remaining_time(self, actor_id: str) -> Optional[TokenRemainingTime]:
        actor = await self._repository.require(actor_id)
        if actor.token_expiry is None:
            return None
        return remaining_time(actor.token_expiry, self._clock())

    async def find_expiring(self, within_days: int = 1) -> list[Actor]:
        """Actors whose still-valid token expires within ``within_days``."""
        now = self._clock()
        horizon = now + timedelta(days=within_days)
        actors = await self._repository.list_all()
        expiring = [
            a for a in actors
            if a.access_token and a.token_expiry and now < a.token_expiry <= horizon
        ]
        return sorted(expiring, key=lambda a: a.token_expiry)
