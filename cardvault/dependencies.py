"""
FastAPI dependencies and vault wiring.

The VaultService is built exactly once, during application startup, and
kept on app.state. Route handlers receive it through get_vault_service,
which tests override to inject a service backed by an in-memory repository.

  build_vault_service(settings)
      ├── build_encryptor(settings)      [KMS or local AES, fixed for process]
      ├── HashIndexer()
      └── build_repository(settings)     [SQLAlchemy or in-memory]
"""

from fastapi import Request

from cardvault.config import Settings
from cardvault.database import AsyncSessionLocal
from cardvault.repositories.base import CardRepository
from cardvault.repositories.memory import InMemoryCardRepository
from cardvault.repositories.sql import SqlAlchemyCardRepository
from cardvault.security import HashIndexer, build_encryptor
from cardvault.services.card_service import VaultService


def build_repository(settings: Settings) -> CardRepository:
    """Return the card repository selected by CARD_REPOSITORY."""
    if settings.CARD_REPOSITORY == "memory":
        return InMemoryCardRepository()
    return SqlAlchemyCardRepository(AsyncSessionLocal)


def build_vault_service(settings: Settings) -> VaultService:
    """
    Assemble the vault from configuration.

    Raises:
        ConfigurationError: If no encryption backend can be resolved.
    """
    return VaultService(
        repository=build_repository(settings),
        encryptor=build_encryptor(settings),
        hasher=HashIndexer(),
    )


def get_vault_service(request: Request) -> VaultService:
    """FastAPI dependency returning the process-wide VaultService."""
    return request.app.state.vault_service
