"""
Card vault service — stores PANs encrypted and lists them masked.

When a card is created:
  1. The last four digits are hashed (SHA-256) for search
  2. The full PAN is encrypted by the configured backend
  3. The encrypted record is persisted; the repository assigns its id
  4. The response is masked from the plaintext already in hand; the write
     path never decrypts what it just encrypted

When cards are listed:
  1. Records are fetched (all, or by the hash of a last-four filter)
  2. Each ciphertext is decrypted and masked independently
  3. A record that cannot be decrypted is shown as "****", so one corrupt
     record never fails the whole listing

The encryptor and hash indexer are shared, read-only collaborators passed
in at construction. Encrypt and decrypt run in a worker thread so a
blocking KMS round trip never stalls the event loop; the last-four hash
runs inline. Nothing is retried here: backend failures propagate to the
caller.
"""

import asyncio
import logging
from datetime import datetime, timezone

from cardvault.exceptions import CryptoError, ValidationError
from cardvault.repositories.base import CardRepository
from cardvault.schemas.card import CardDraft, CardRecord, CardResponse
from cardvault.security import Encryptor, HashIndexer

logger = logging.getLogger(__name__)

MASK_FALLBACK = "****"
MASK_PREFIX = "**** **** **** "


def mask_pan(pan: str | None) -> str:
    """
    Mask a plaintext PAN, revealing only its last four characters.

    Examples:
        mask_pan("1234567812345678") -> "**** **** **** 5678"
        mask_pan("") -> "****"
    """
    if pan is None or len(pan) < 4:
        return MASK_FALLBACK
    return MASK_PREFIX + pan[-4:]


def _is_last_four(value: str) -> bool:
    # str.isdigit() also accepts non-ASCII digits like "²"
    return len(value) == 4 and value.isascii() and value.isdigit()


class VaultService:
    """
    Orchestrates card creation and retrieval.

    Args:
        repository: Where encrypted records are stored.
        encryptor: The PAN encryption backend selected at startup.
        hasher: Last-four index hasher.
    """

    def __init__(
        self,
        repository: CardRepository,
        encryptor: Encryptor,
        hasher: HashIndexer,
    ):
        self.repository = repository
        self.encryptor = encryptor
        self.hasher = hasher

    async def create_card(self, cardholder_name: str, pan: str) -> CardResponse:
        """
        Encrypt and store a new card.

        Args:
            cardholder_name: Display name, already validated upstream.
            pan: Exactly 16 digits, already validated upstream.

        Returns:
            The masked CardResponse for the stored card.

        Raises:
            CryptoError: If encryption fails.
            PersistenceError: If the record could not be stored.
        """
        last_four = pan[-4:]
        last_four_hash = self.hasher.hash_last_four(last_four)
        pan_ciphertext = await asyncio.to_thread(self.encryptor.encrypt, pan)

        draft = CardDraft(
            cardholder_name=cardholder_name,
            pan_ciphertext=pan_ciphertext,
            last_four_hash=last_four_hash,
            created_at=datetime.now(timezone.utc),
        )
        record = await self.repository.save(draft)
        logger.debug("Stored card %s (backend=%s)", record.id, self.encryptor.backend.value)

        return CardResponse(
            id=record.id,
            cardholder_name=record.cardholder_name,
            masked_pan=mask_pan(pan),
            created_at=record.created_at,
        )

    async def list_cards(self, last_four: str | None = None) -> list[CardResponse]:
        """
        List stored cards, optionally filtered by their last four digits.

        Args:
            last_four: Optional filter. None or blank lists every card;
                anything else must be exactly four digits.

        Returns:
            Masked CardResponses in repository order.

        Raises:
            ValidationError: If the filter is not exactly four digits.
            PersistenceError: If the repository cannot be read.
        """
        if last_four is None or not last_four.strip():
            records = await self.repository.find_all()
        else:
            trimmed = last_four.strip()
            if not _is_last_four(trimmed):
                raise ValidationError("Last four digits must be exactly 4 numbers")
            records = await self.repository.find_by_last_four_hash(
                self.hasher.hash_last_four(trimmed)
            )

        return [await self._to_response(record) for record in records]

    async def _to_response(self, record: CardRecord) -> CardResponse:
        return CardResponse(
            id=record.id,
            cardholder_name=record.cardholder_name,
            masked_pan=mask_pan(await self._decrypt_pan(record)),
            created_at=record.created_at,
        )

    async def _decrypt_pan(self, record: CardRecord) -> str:
        """Decrypt a record's PAN, or return "" if it is missing or undecryptable."""
        if not record.pan_ciphertext or not record.pan_ciphertext.strip():
            logger.warning("Card %s is missing ciphertext; skipping decryption", record.id)
            return ""
        try:
            return await asyncio.to_thread(self.encryptor.decrypt, record.pan_ciphertext)
        except CryptoError as exc:
            logger.warning("Could not decrypt card %s: %s", record.id, exc.detail)
            return ""
