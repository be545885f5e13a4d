"""
Pydantic schemas for cards.

Three layers of card data live here:

  - CreateCardRequest: the inbound API payload. This is where PANs and
    cardholder names are validated; the vault core assumes they are
    already well-formed.
  - CardDraft / CardRecord: what the vault hands to and gets back from the
    repository. Both are frozen: a record is write-once.
  - CardResponse: the only shape ever returned to clients. It carries a
    masked PAN ("**** **** **** 4242"), never the full number or the
    ciphertext.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreateCardRequest(BaseModel):
    """Request body for storing a new card."""
    cardholder_name: str = Field(..., min_length=1, max_length=255)
    pan: str = Field(..., pattern=r"^[0-9]{16}$", description="Exactly 16 digits")

    @field_validator("cardholder_name")
    @classmethod
    def cardholder_name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Cardholder name is required")
        return v


class CardDraft(BaseModel):
    """An encrypted card that has not been persisted yet (no id)."""
    cardholder_name: str
    pan_ciphertext: str
    last_four_hash: str
    created_at: datetime | None = None

    model_config = ConfigDict(frozen=True)


class CardRecord(BaseModel):
    """A persisted card as stored by the repository."""
    id: str
    cardholder_name: str
    pan_ciphertext: str
    last_four_hash: str
    created_at: datetime

    model_config = ConfigDict(frozen=True, from_attributes=True)


class CardResponse(BaseModel):
    """Public representation of a card (masked — no full number or ciphertext)."""
    id: str
    cardholder_name: str
    masked_pan: str
    created_at: datetime
