"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This keeps key material out of source code (the .env file is
gitignored).

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Encryption backend:
  Exactly one backend must resolve at startup. CARD_KMS_KEY_NAME wins when
  it is set; otherwise CARD_ENCRYPTION_KEY must hold a base64-encoded
  32-byte AES key. Both are optional here so that importing the settings
  never fails. The check happens in cardvault.security.build_encryptor(),
  which raises ConfigurationError before the app accepts any request.

Usage:
    from cardvault.config import settings
    print(settings.DATABASE_URL)
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Card Vault service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Card Vault"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Persistence ---
    # "memory" keeps records in-process only (local development)
    CARD_REPOSITORY: Literal["sqlalchemy", "memory"] = "sqlalchemy"
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/cards.db"

    # --- Card Encryption ---
    # Full CryptoKey resource name, e.g.
    # projects/my-project/locations/global/keyRings/cards/cryptoKeys/pan
    CARD_KMS_KEY_NAME: str | None = None
    CARD_KMS_TIMEOUT_SECONDS: float = 10.0

    # Base64 AES-256 key, used only when CARD_KMS_KEY_NAME is unset.
    # Generate with: python -c "from cardvault.security import generate_encryption_key; print(generate_encryption_key())"
    CARD_ENCRYPTION_KEY: str | None = None

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
