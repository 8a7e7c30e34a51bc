"""
External Collaborator Contracts

Narrow queries the submission-requirements evaluator makes against
services the engine does not own: document storage, addresses and
references. In-memory implementations back tests and the admin CLI.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional


class DocumentsCollaborator(ABC):
    """Answers which document categories an actor has uploaded."""

    @abstractmethod
    async def has_required_documents(self, actor_id: str, categories: Iterable[str]) -> bool:
        pass

    @abstractmethod
    async def get_missing_documents(self, actor_id: str, categories: Iterable[str]) -> list[str]:
        pass


class AddressCollaborator(ABC):
    @abstractmethod
    async def has_address(self, actor_id: str) -> bool:
        pass


@dataclass(frozen=True)
class ReferenceCounts:
    personal: int = 0
    commercial: int = 0


class ReferencesCollaborator(ABC):
    @abstractmethod
    async def count_references(self, actor_id: str) -> ReferenceCounts:
        pass


# =============================================================================
# In-Memory Implementations
# =============================================================================


class InMemoryDocumentRegistry(DocumentsCollaborator):
    """Document categories per actor, keyed by category name."""

    def __init__(self):
        self._categories: dict[str, set[str]] = {}

    def add(self, actor_id: str, *categories: str) -> None:
        self._categories.setdefault(actor_id, set()).update(categories)

    def remove(self, actor_id: str, category: str) -> None:
        self._categories.get(actor_id, set()).discard(category)

    async def has_required_documents(self, actor_id: str, categories: Iterable[str]) -> bool:
        return not await self.get_missing_documents(actor_id, categories)

    async def get_missing_documents(self, actor_id: str, categories: Iterable[str]) -> list[str]:
        uploaded = self._categories.get(actor_id, set())
        return [c for c in categories if c not in uploaded]


class InMemoryAddressBook(AddressCollaborator):
    def __init__(self):
        self._addresses: dict[str, str] = {}

    def set_address(self, actor_id: str, address: str) -> None:
        self._addresses[actor_id] = address

    def get_address(self, actor_id: str) -> Optional[str]:
        return self._addresses.get(actor_id)

    async def has_address(self, actor_id: str) -> bool:
        return bool(self._addresses.get(actor_id))


class InMemoryReferenceBook(ReferencesCollaborator):
    def __init__(self):
        self._counts: dict[str, ReferenceCounts] = {}

    def add_personal(self, actor_id: str, count: int = 1) -> None:
        current = self._counts.get(actor_id, ReferenceCounts())
        self._counts[actor_id] = ReferenceCounts(current.personal + count, current.commercial)

    def add_commercial(self, actor_id: str, count: int = 1) -> None:
        current = self._counts.get(actor_id, ReferenceCounts())
        self._counts[actor_id] = ReferenceCounts(current.personal, current.commercial + count)

    async def count_references(self, actor_id: str) -> ReferenceCounts:
        return self._counts.get(actor_id, ReferenceCounts())
