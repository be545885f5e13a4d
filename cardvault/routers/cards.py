"""
Cards router — store cards and search them by last four digits.

Endpoints:
  POST /api/cards                 — Encrypt and store a card
  GET  /api/cards?last_four=NNNN  — List cards (masked), optionally filtered

Full PANs are validated here and never returned: every response carries
only the masked PAN ("**** **** **** 4242").
"""

from fastapi import APIRouter, Depends, Query, status

from cardvault.dependencies import get_vault_service
from cardvault.schemas.card import CardResponse, CreateCardRequest
from cardvault.services.card_service import VaultService

router = APIRouter()


@router.post(
    "",
    response_model=CardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store a card",
)
async def create_card(
    body: CreateCardRequest,
    vault: VaultService = Depends(get_vault_service),
):
    """
    Store a new card.

    - The PAN must be exactly 16 digits
    - The PAN is encrypted at rest; only a hash of the last four is searchable
    - The response contains the masked PAN only
    """
    return await vault.create_card(body.cardholder_name, body.pan)


@router.get(
    "",
    response_model=list[CardResponse],
    summary="List cards (masked)",
)
async def list_cards(
    last_four: str | None = Query(None, description="Filter by the last four digits"),
    vault: VaultService = Depends(get_vault_service),
):
    """
    List stored cards.

    Pass `last_four` to return only cards ending in those four digits.
    A card that cannot be decrypted is listed with masked PAN `****`.
    """
    return await vault.list_cards(last_four)
