"""
Card repository contract.

The vault core only ever talks to this interface, so the storage engine can
be swapped (SQL database, in-memory store, a document store) without
touching encryption or masking code.

Records are write-once: the contract has no update or delete.
"""

from abc import ABC, abstractmethod

from cardvault.schemas.card import CardDraft, CardRecord


class CardRepository(ABC):
    """Abstraction over card persistence."""

    @abstractmethod
    async def save(self, draft: CardDraft) -> CardRecord:
        """
        Persist a new card and return it with a freshly assigned unique id.

        created_at defaults to now (UTC) when the draft leaves it unset.

        Raises:
            PersistenceError: If the record could not be written.
        """

    @abstractmethod
    async def find_all(self) -> list[CardRecord]:
        """Return every stored card, in no particular order."""

    @abstractmethod
    async def find_by_last_four_hash(self, last_four_hash: str) -> list[CardRecord]:
        """Return cards whose last_four_hash equals the given digest exactly."""
