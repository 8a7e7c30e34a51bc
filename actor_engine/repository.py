"""
Actor Repository - Storage Contract and In-Memory Store

The engine reaches storage only through ActorRepository:

- reads by actor id, policy id and access token
- an atomic per-policy transaction for multi-row writes (primary flags,
  ownership splits, deletes)
- a conditional single-row update for token fields

InMemoryActorRepository is the development implementation, with optional
JSON file persistence. Production should back the same contract with a
transactional database.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Optional

from actor_engine.errors import ActorNotFoundError, StoreConflictError
from actor_engine.models import Actor, ActorKind, utc_now


logger = logging.getLogger(__name__)

# Sentinel for "do not check the current token" in update_token()
ANY_TOKEN = object()


# =============================================================================
# Policy Transaction
# =============================================================================


class PolicyTransaction:
    """
    Staged writes against every actor of one policy.

    Actors handed out by a transaction are private working copies. Nothing
    is visible to other readers until the repository commits the whole
    transaction in one step; an exception inside the ``async with`` block
    discards everything.
    """

    def __init__(self, policy_id: str, actors: list[Actor]):
        self.policy_id = policy_id
        self._actors: dict[str, Actor] = {a.id: a for a in actors}
        self._deleted: set[str] = set()

    def find(self, actor_id: str) -> Optional[Actor]:
        return self._actors.get(actor_id)

    def get(self, actor_id: str) -> Actor:
        """Working copy of an actor in this policy, or ActorNotFoundError."""
        actor = self._actors.get(actor_id)
        if actor is None:
            raise ActorNotFoundError(actor_id)
        return actor

    def actors(self, kind: Optional[ActorKind] = None) -> list[Actor]:
        """Actors of the policy, oldest first."""
        result = [a for a in self._actors.values() if kind is None or a.kind is kind]
        return sorted(result, key=lambda a: (a.created_at, a.id))

    def landlords(self) -> list[Actor]:
        return self.actors(ActorKind.LANDLORD)

    def add(self, actor: Actor) -> None:
        if actor.policy_id != self.policy_id:
            raise ValueError(
                f"Actor {actor.id} belongs to policy {actor.policy_id}, not {self.policy_id}"
            )
        if actor.id in self._actors:
            raise ValueError(f"Actor {actor.id} already exists")
        self._deleted.discard(actor.id)
        self._actors[actor.id] = actor

    def delete(self, actor_id: str) -> Actor:
        actor = self.get(actor_id)
        del self._actors[actor_id]
        self._deleted.add(actor_id)
        return actor

    @property
    def staged(self) -> list[Actor]:
        return list(self._actors.values())

    @property
    def deleted_ids(self) -> set[str]:
        return set(self._deleted)


# =============================================================================
# Contract
# =============================================================================


class ActorRepository(ABC):
    """Storage contract consumed by the engine. Every call is awaitable."""

    @abstractmethod
    async def get(self, actor_id: str) -> Optional[Actor]:
        pass

    @abstractmethod
    async def get_by_token(self, access_token: str) -> Optional[Actor]:
        pass

    @abstractmethod
    async def list_by_policy(self, policy_id: str) -> list[Actor]:
        pass

    @abstractmethod
    async def list_all(self) -> list[Actor]:
        pass

    @abstractmethod
    def transaction(self, policy_id: str):
        """Async context manager yielding a PolicyTransaction."""

    @abstractmethod
    async def update_token(
        self,
        actor_id: str,
        access_token: Optional[str],
        token_expiry: Optional[datetime],
        expected_token=ANY_TOKEN,
    ) -> Actor:
        """
        Replace an actor's token pair in one conditional write.

        Raises:
            ActorNotFoundError: If the actor does not exist
            StoreConflictError: If ``expected_token`` is given and no longer
                current, or the new token belongs to another actor
        """

    @abstractmethod
    async def record_access(self, actor_id: str, accessed_at: datetime) -> Actor:
        pass

    async def require(self, actor_id: str) -> Actor:
        actor = await self.get(actor_id)
        if actor is None:
            raise ActorNotFoundError(actor_id)
        return actor


# =============================================================================
# In-Memory Implementation
# =============================================================================


class InMemoryActorRepository(ActorRepository):
    """
    In-memory actor store with optional JSON file persistence.

    Writers for a policy are serialised by a per-policy asyncio.Lock. Reads
    never take the lock: a commit swaps rows in without awaiting, so a
    reader sees either the state before or the state after it.
    """

    def __init__(self, persist_path: Optional[str] = None):
        self._actors: dict[str, Actor] = {}  # actor_id -> Actor
        self._token_index: dict[str, str] = {}  # access_token -> actor_id
        self._locks: dict[str, asyncio.Lock] = {}
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "actors": {aid: a.to_dict() for aid, a in self._actors.items()},
            "saved_at": utc_now().isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load data from file."""
        if not self._persist_path or not self._persist_path.exists():
            return

        try:
            data = json.loads(self._persist_path.read_text())
            for aid, actor_data in data.get("actors", {}).items():
                actor = Actor.from_dict(actor_data)
                self._actors[aid] = actor
                if actor.access_token:
                    self._token_index[actor.access_token] = aid
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load actor data from %s: %s", self._persist_path, e)

    def _lock_for(self, policy_id: str) -> asyncio.Lock:
        lock = self._locks.get(policy_id)
        if lock is None:
            lock = self._locks[policy_id] = asyncio.Lock()
        return lock

    def _policy_actors(self, policy_id: str) -> list[Actor]:
        return [a for a in self._actors.values() if a.policy_id == policy_id]

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, actor_id: str) -> Optional[Actor]:
        actor = self._actors.get(actor_id)
        return actor.clone() if actor else None

    async def get_by_token(self, access_token: str) -> Optional[Actor]:
        actor_id = self._token_index.get(access_token)
        if actor_id is None:
            return None
        return await self.get(actor_id)

    async def list_by_policy(self, policy_id: str) -> list[Actor]:
        actors = sorted(self._policy_actors(policy_id), key=lambda a: (a.created_at, a.id))
        return [a.clone() for a in actors]

    async def list_all(self) -> list[Actor]:
        return [a.clone() for a in self._actors.values()]

    def count(self) -> int:
        return len(self._actors)

    # =========================================================================
    # Writes
    # =========================================================================

    @asynccontextmanager
    async def transaction(self, policy_id: str) -> AsyncIterator[PolicyTransaction]:
        async with self._lock_for(policy_id):
            tx = PolicyTransaction(
                policy_id,
                [a.clone() for a in self._policy_actors(policy_id)],
            )
            yield tx
            self._commit(tx)

    def _commit(self, tx: PolicyTransaction) -> None:
        staged = tx.staged
        for actor in staged:
            if actor.access_token is None:
                continue
            owner = self._token_index.get(actor.access_token)
            if owner is not None and owner != actor.id:
                raise StoreConflictError(f"Access token already assigned to {owner}")
            if actor.token_expiry is None:
                raise StoreConflictError(f"Actor {actor.id} has a token without expiry")

        for actor_id in tx.deleted_ids:
            self._drop(actor_id)
        for actor in staged:
            self._drop(actor.id)
            self._actors[actor.id] = actor.clone()
            if actor.access_token:
                self._token_index[actor.access_token] = actor.id

        self._save_to_file()

    def _drop(self, actor_id: str) -> None:
        previous = self._actors.pop(actor_id, None)
        if previous is not None and previous.access_token:
            self._token_index.pop(previous.access_token, None)

    async def update_token(
        self,
        actor_id: str,
        access_token: Optional[str],
        token_expiry: Optional[datetime],
        expected_token=ANY_TOKEN,
    ) -> Actor:
        if access_token is not None and token_expiry is None:
            raise ValueError("token_expiry is required with an access token")

        current = self._actors.get(actor_id)
        if current is None:
            raise ActorNotFoundError(actor_id)

        async with self._lock_for(current.policy_id):
            actor = self._actors.get(actor_id)
            if actor is None:
                raise ActorNotFoundError(actor_id)
            if expected_token is not ANY_TOKEN and actor.access_token != expected_token:
                raise StoreConflictError(f"Token for actor {actor_id} changed concurrently")
            if access_token is not None:
                owner = self._token_index.get(access_token)
                if owner is not None and owner != actor_id:
                    raise StoreConflictError(f"Access token already assigned to {owner}")

            updated = actor.clone()
            updated.access_token = access_token
            updated.token_expiry = token_expiry if access_token is not None else None
            updated.updated_at = utc_now()

            self._drop(actor_id)
            self._actors[actor_id] = updated
            if access_token is not None:
                self._token_index[access_token] = actor_id
            self._save_to_file()

        return updated.clone()

    async def record_access(self, actor_id: str, accessed_at: datetime) -> Actor:
        current = self._actors.get(actor_id)
        if current is None:
            raise ActorNotFoundError(actor_id)

        async with self._lock_for(current.policy_id):
            actor = self._actors.get(actor_id)
            if actor is None:
                raise ActorNotFoundError(actor_id)
            actor.last_accessed_at = accessed_at
            actor.access_count += 1
            self._save_to_file()
            return actor.clone()


# =============================================================================
# Singleton Instance
# =============================================================================

_repository_instance: Optional[InMemoryActorRepository] = None


def get_actor_repository(persist_path: Optional[str] = None) -> InMemoryActorRepository:
    """
    Get the actor repository singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)

    Returns:
        InMemoryActorRepository instance
    """
    global _repository_instance
    if _repository_instance is None:
        _repository_instance = InMemoryActorRepository(persist_path or "data/actors.json")
    return _repository_instance


def reset_actor_repository() -> None:
    """Reset the singleton instance (for testing)."""
    global _repository_instance
    _repository_instance = None
