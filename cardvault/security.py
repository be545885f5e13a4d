"""
Security utilities: last-four index hashing and PAN encryption at rest.

This module centralizes all cryptographic operations so they're easy to
audit and update. Three concerns are handled here:

1. LAST-FOUR INDEX HASHING (SHA-256)
   - The last four digits of every PAN are hashed and stored next to the
     ciphertext, so cards can be searched without decrypting anything
   - The digest is unkeyed and deterministic: the same four digits always
     produce the same 64-character hex string, in every process, forever
   - Residual risk: there are only 10,000 possible inputs, so anyone with
     read access to the index can enumerate them offline and learn which
     last-four values are present. Adding a secret key would change every
     stored hash and break search for existing records

2. LOCAL AES-256-GCM ENCRYPTION
   - Authenticated encryption: ciphertext plus a 128-bit integrity tag
   - A fresh 96-bit random nonce per call, so encrypting the same PAN twice
     yields different ciphertext
   - Stored format: base64(nonce || ciphertext || tag), one opaque string

3. REMOTE KEY SERVICE (Google Cloud KMS)
   - The PAN is sent to KMS and encrypted under a key that never leaves
     the key service (envelope encryption)
   - A client is opened per call and always closed, including on errors
   - Client-side retries are disabled; transient failures reach the caller

Backend selection happens once, in build_encryptor(). Both backends expose
the same Encryptor interface and carry an EncryptionBackend tag.

Security note:
    Never log plaintext, ciphertext or key material. Log key resource
    names and backend tags only.
"""

import base64
import binascii
import enum
import hashlib
import logging
import os
import secrets
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.auth.exceptions import GoogleAuthError
from google.cloud import kms

from cardvault.config import Settings
from cardvault.exceptions import ConfigurationError, CryptoError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256


# ---------------------------------------------------------------------------
# 1. Last-four index hashing
# ---------------------------------------------------------------------------


class HashIndexer:
    """Deterministic one-way digest of a PAN's last four digits."""

    def hash_last_four(self, last_four: str) -> str:
        """
        Hash the last four digits of a PAN.

        The caller guarantees `last_four` is exactly four digits. Each call
        uses its own digest object, so one instance can be shared freely.

        Args:
            last_four: Four-character numeric string (e.g., "4242").

        Returns:
            Lowercase hex SHA-256 digest (64 characters).
        """
        return hashlib.sha256(last_four.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Encryptor interface
# ---------------------------------------------------------------------------


class EncryptionBackend(str, enum.Enum):
    """Which encryption backend is serving this process."""
    LOCAL = "local"
    KMS = "kms"


class Encryptor(Protocol):
    """Common interface of every PAN encryption backend."""

    backend: EncryptionBackend

    def encrypt(self, plaintext: str) -> str:
        ...

    def decrypt(self, ciphertext: str) -> str:
        ...


def _b64decode(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CryptoError("malformed ciphertext") from exc


# ---------------------------------------------------------------------------
# 2. Local AES-256-GCM encryption
# ---------------------------------------------------------------------------


class LocalCipher:
    """
    AES-256-GCM encryption with a key held in process memory.

    The AESGCM object is stateless between calls (the nonce is passed per
    call), so one LocalCipher is safe to share across concurrent requests.
    """

    backend = EncryptionBackend.LOCAL

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(
                f"AES-256 key must be exactly {KEY_LENGTH} bytes, got {len(key)}"
            )
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a PAN with a fresh random nonce.

        Returns:
            base64(nonce || ciphertext || tag) as an ASCII string.
        """
        nonce = os.urandom(NONCE_SIZE)
        ct = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ct).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a value produced by encrypt(), verifying its tag.

        Raises:
            CryptoError: If the value is not base64, is too short to hold a
                nonce and payload, or fails tag verification.
        """
        combined = _b64decode(ciphertext)
        if len(combined) <= NONCE_SIZE:
            raise CryptoError("ciphertext too short")
        nonce = combined[:NONCE_SIZE]
        try:
            plain = self._aesgcm.decrypt(nonce, combined[NONCE_SIZE:], None)
        except InvalidTag as exc:
            raise CryptoError("authentication failed") from exc
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoError("malformed plaintext") from exc


# ---------------------------------------------------------------------------
# 3. Remote key service (Google Cloud KMS)
# ---------------------------------------------------------------------------


class RemoteKeyService:
    """
    Delegates encryption to a Google Cloud KMS CryptoKey.

    Every call acquires a fresh KeyManagementServiceClient, performs a
    single request and closes the client before returning or raising.

    Args:
        key_name: Full CryptoKey resource name
            (projects/*/locations/*/keyRings/*/cryptoKeys/*).
        client_factory: Zero-argument callable returning a KMS client.
            Defaults to kms.KeyManagementServiceClient (application
            default credentials).
        timeout: Per-request deadline in seconds.
    """

    backend = EncryptionBackend.KMS

    def __init__(
        self,
        key_name: str,
        client_factory: Callable[[], kms.KeyManagementServiceClient] = kms.KeyManagementServiceClient,
        timeout: float = 10.0,
    ):
        self._key_name = key_name
        self._client_factory = client_factory
        self._timeout = timeout

    @property
    def key_name(self) -> str:
        return self._key_name

    def _check_key_name(self) -> None:
        if not kms.KeyManagementServiceClient.parse_crypto_key_path(self._key_name):
            raise CryptoError(f"malformed key identifier: {self._key_name!r}")

    @contextmanager
    def _connect(self) -> Iterator[kms.KeyManagementServiceClient]:
        try:
            client = self._client_factory()
        except GoogleAuthError as exc:
            raise CryptoError("key service unreachable: credentials unavailable") from exc
        # Closing the client closes its transport
        with client:
            yield client

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a PAN under the configured CryptoKey; returns base64 ciphertext."""
        self._check_key_name()
        try:
            with self._connect() as client:
                response = client.encrypt(
                    request={"name": self._key_name, "plaintext": plaintext.encode("utf-8")},
                    retry=None,
                    timeout=self._timeout,
                )
        except (GoogleAPICallError, RetryError) as exc:
            raise CryptoError(f"key service encrypt failed: {type(exc).__name__}") from exc

        if not response.ciphertext:
            raise CryptoError("key service returned empty ciphertext")
        return base64.b64encode(response.ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a base64 KMS ciphertext back to the PAN."""
        self._check_key_name()
        raw = _b64decode(ciphertext)
        try:
            with self._connect() as client:
                response = client.decrypt(
                    request={"name": self._key_name, "ciphertext": raw},
                    retry=None,
                    timeout=self._timeout,
                )
        except (GoogleAPICallError, RetryError) as exc:
            raise CryptoError(f"key service decrypt failed: {type(exc).__name__}") from exc

        if not response.plaintext:
            raise CryptoError("key service returned empty plaintext")
        try:
            return response.plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoError("malformed plaintext") from exc


# ---------------------------------------------------------------------------
# Backend selection
# ---------------------------------------------------------------------------


def build_encryptor(
    settings: Settings,
    kms_client_factory: Callable[[], kms.KeyManagementServiceClient] | None = None,
) -> Encryptor:
    """
    Select the encryption backend for the lifetime of the process.

    Order of preference:
      1. CARD_KMS_KEY_NAME set (non-blank) → RemoteKeyService, exclusively
      2. CARD_ENCRYPTION_KEY decoding to 32 bytes → LocalCipher
      3. Otherwise → ConfigurationError

    Args:
        settings: Application settings.
        kms_client_factory: Optional KMS client factory (used in tests).

    Returns:
        The selected Encryptor.

    Raises:
        ConfigurationError: If no backend can be resolved.
    """
    key_name = (settings.CARD_KMS_KEY_NAME or "").strip()
    if key_name:
        logger.info("Using KMS encryption backend with key %s", key_name)
        return RemoteKeyService(
            key_name,
            client_factory=kms_client_factory or kms.KeyManagementServiceClient,
            timeout=settings.CARD_KMS_TIMEOUT_SECONDS,
        )

    key_material = (settings.CARD_ENCRYPTION_KEY or "").strip()
    if not key_material:
        raise ConfigurationError(
            "Either CARD_KMS_KEY_NAME or CARD_ENCRYPTION_KEY must be configured"
        )
    try:
        key = base64.b64decode(key_material, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("CARD_ENCRYPTION_KEY is not valid base64") from exc
    if len(key) != KEY_LENGTH:
        raise ConfigurationError(
            f"CARD_ENCRYPTION_KEY must decode to exactly {KEY_LENGTH} bytes for AES-256, "
            f"got {len(key)}"
        )

    logger.info("Using local AES-256-GCM encryption backend")
    return LocalCipher(key)


def generate_encryption_key() -> str:
    """Generate a random 32-byte AES key and return it as base64."""
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")
