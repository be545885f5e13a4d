"""
In-memory card repository for local development and tests.

Records live in a plain dict for the lifetime of the process. All methods
are coroutines that never await, so on a single event loop each call runs
to completion without interleaving.
"""

import uuid
from datetime import datetime, timezone

from cardvault.repositories.base import CardRepository
from cardvault.schemas.card import CardDraft, CardRecord


class InMemoryCardRepository(CardRepository):

    def __init__(self) -> None:
        self._store: dict[str, CardRecord] = {}

    async def save(self, draft: CardDraft) -> CardRecord:
        record = CardRecord(
            id=str(uuid.uuid4()),
            cardholder_name=draft.cardholder_name,
            pan_ciphertext=draft.pan_ciphertext,
            last_four_hash=draft.last_four_hash,
            created_at=(draft.created_at or datetime.now(timezone.utc)).astimezone(timezone.utc),
        )
        self._store[record.id] = record
        return record

    async def find_all(self) -> list[CardRecord]:
        return list(self._store.values())

    async def find_by_last_four_hash(self, last_four_hash: str) -> list[CardRecord]:
        return [
            record for record in self._store.values()
            if record.last_four_hash == last_four_hash
        ]
