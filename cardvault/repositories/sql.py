"""
SQLAlchemy-backed card repository.

Each repository call opens its own AsyncSession from the session factory:
  - save() inserts one row and commits; on failure it rolls back and raises
    PersistenceError
  - find_*() run a single SELECT

Any SQLAlchemyError is wrapped as PersistenceError so the API layer can map
it to a 500 without knowing about the database driver.

SQLite note:
  SQLite drops the timezone from DateTime columns. Rows read back are
  normalized to UTC so CardRecord.created_at is always timezone-aware.
  save() converts created_at to UTC before writing so an offset such as
  +02:00 is not lost.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardvault.exceptions import PersistenceError
from cardvault.models.card import Card
from cardvault.repositories.base import CardRepository
from cardvault.schemas.card import CardDraft, CardRecord

logger = logging.getLogger(__name__)


def _to_record(row: Card) -> CardRecord:
    created_at = row.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return CardRecord(
        id=row.id,
        cardholder_name=row.cardholder_name,
        pan_ciphertext=row.pan_ciphertext,
        last_four_hash=row.last_four_hash,
        created_at=created_at,
    )


class SqlAlchemyCardRepository(CardRepository):
    """
    Card repository backed by an async SQLAlchemy engine.

    Args:
        session_factory: async_sessionmaker bound to the target engine. The
            record returned by save() is built before commit, so the factory
            works with or without expire_on_commit.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save(self, draft: CardDraft) -> CardRecord:
        # SQLite stores the wall-clock value without its offset, so convert first
        created_at = (draft.created_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
        card = Card(
            cardholder_name=draft.cardholder_name,
            pan_ciphertext=draft.pan_ciphertext,
            last_four_hash=draft.last_four_hash,
            created_at=created_at,
        )
        async with self._session_factory() as session:
            try:
                session.add(card)
                await session.flush()
                record = _to_record(card)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Failed to store card: %s", type(exc).__name__)
                raise PersistenceError("Could not store card information") from exc

        logger.debug("Persisted card %s", record.id)
        return record

    async def find_all(self) -> list[CardRecord]:
        return await self._query(select(Card))

    async def find_by_last_four_hash(self, last_four_hash: str) -> list[CardRecord]:
        return await self._query(select(Card).where(Card.last_four_hash == last_four_hash))

    async def _query(self, statement) -> list[CardRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Failed to query card collection: %s", type(exc).__name__)
            raise PersistenceError("Could not query card information") from exc
