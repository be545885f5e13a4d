"""
Test fixtures for the Card Vault test suite.

This module provides shared fixtures used across all test files:

  - encryptor / hasher: A LocalCipher with a fixed test key, and a HashIndexer
  - repository / vault: In-memory repository and a VaultService built on it
  - client: Async HTTP test client with the test vault injected
  - db_engine / sql_repository: Fresh in-memory SQLite database per test
  - fake_kms: A stand-in for the Google Cloud KMS client

Key design decisions:
  - httpx's ASGITransport does not run the app lifespan, so the vault is
    injected by overriding the get_vault_service dependency. The route
    handlers run exactly as they do in production.
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from cardvault.database import Base
from cardvault.dependencies import get_vault_service
from cardvault.main import app
from cardvault.models.card import Card  # noqa: F401
from cardvault.repositories.memory import InMemoryCardRepository
from cardvault.repositories.sql import SqlAlchemyCardRepository
from cardvault.security import HashIndexer, LocalCipher
from cardvault.services.card_service import VaultService


# Base64 of the 32 ASCII bytes "0123456789abcdef0123456789abcdef"
TEST_ENCRYPTION_KEY = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="
TEST_KEY_BYTES = b"0123456789abcdef0123456789abcdef"

TEST_KMS_KEY_NAME = "projects/test-project/locations/global/keyRings/cards/cryptoKeys/pan"

# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
def encryptor():
    return LocalCipher(TEST_KEY_BYTES)


@pytest.fixture
def hasher():
    return HashIndexer()


@pytest.fixture
def repository():
    return InMemoryCardRepository()


@pytest.fixture
def vault(repository, encryptor, hasher):
    return VaultService(repository=repository, encryptor=encryptor, hasher=hasher)


@pytest_asyncio.fixture
async def client(vault):
    """
    Async HTTP test client with the test vault injected.

    Overrides get_vault_service so every request uses the in-memory vault.
    """
    app.dependency_overrides[get_vault_service] = lambda: vault

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_repository(session_factory):
    return SqlAlchemyCardRepository(session_factory)


class FakeKmsClient:
    """
    Minimal stand-in for kms.KeyManagementServiceClient.

    "Encrypts" by prefixing b"kms:" and records every request. Set `error`
    to make the next call raise, or `empty_response` to return no payload.
    """

    def __init__(self):
        self.requests = []
        self.entered = False
        self.closed = False
        self.error = None
        self.empty_response = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    def encrypt(self, request, retry=None, timeout=None):
        self.requests.append(("encrypt", request, retry, timeout))
        if self.error is not None:
            raise self.error
        if self.empty_response:
            return SimpleNamespace(ciphertext=b"")
        return SimpleNamespace(ciphertext=b"kms:" + request["plaintext"])

    def decrypt(self, request, retry=None, timeout=None):
        self.requests.append(("decrypt", request, retry, timeout))
        if self.error is not None:
            raise self.error
        if self.empty_response:
            return SimpleNamespace(plaintext=b"")
        return SimpleNamespace(plaintext=request["ciphertext"].removeprefix(b"kms:"))


@pytest.fixture
def fake_kms():
    """A FakeKmsClient plus a factory that hands out that same instance."""
    client = FakeKmsClient()
    calls = []

    def factory():
        calls.append(client)
        return client

    return SimpleNamespace(client=client, factory=factory, calls=calls)


@pytest.fixture
def encryption_key_b64():
    return TEST_ENCRYPTION_KEY


@pytest.fixture
def kms_key_name():
    return TEST_KMS_KEY_NAME
