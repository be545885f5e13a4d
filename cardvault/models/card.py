"""
Card model — the persisted form of an encrypted card record.

Plaintext PANs are never stored. Each row holds:
  - pan_ciphertext: The full PAN, encrypted by the configured backend
    (base64 AES-256-GCM envelope or base64 KMS ciphertext)
  - last_four_hash: SHA-256 hex of the last four digits, for search

Rows are write-once: there is no update or delete path anywhere in the
code base. The ciphertext and the hash are derived from the same plaintext
at creation and never recomputed.

last_four_hash is indexed but NOT unique: many cards share the same last
four digits.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from cardvault.database import Base


class Card(Base):
    __tablename__ = "cards"

    # Opaque string id, assigned on insert
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    cardholder_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    pan_ciphertext: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # SHA-256 hex digest of the last four digits
    last_four_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
