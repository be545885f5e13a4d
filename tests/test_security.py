"""
Tests for the security module: index hashing, encryption backends and
backend selection.

These tests verify:
  - The last-four hash is deterministic, distinct per input, and SHA-256 hex
  - LocalCipher round-trips PANs and uses a fresh nonce per call
  - Tampered, truncated or non-base64 ciphertext raises CryptoError
  - RemoteKeyService makes one KMS call per operation and always closes
    its client, even on errors
  - build_encryptor prefers KMS, falls back to the local key, and raises
    ConfigurationError when neither resolves
"""

import base64

import pytest
from google.api_core.exceptions import NotFound, ServiceUnavailable
from google.auth.exceptions import DefaultCredentialsError

from cardvault.config import Settings
from cardvault.exceptions import ConfigurationError, CryptoError
from cardvault.security import (
    EncryptionBackend,
    HashIndexer,
    LocalCipher,
    NONCE_SIZE,
    RemoteKeyService,
    build_encryptor,
    generate_encryption_key,
)


def make_settings(**overrides) -> Settings:
    values = {"CARD_KMS_KEY_NAME": None, "CARD_ENCRYPTION_KEY": None}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestHashIndexer:
    """Tests for the deterministic last-four digest."""

    def test_known_digest(self):
        """The digest is plain SHA-256 hex of the four digits."""
        assert HashIndexer().hash_last_four("5678") == (
            "f8638b979b2f4f793ddb6dbd197e0ee25a7a6ea32b0ae22f5e3c5d119d839e75"
        )

    def test_stable_across_instances(self):
        """Independently created indexers must agree, or search would break."""
        assert HashIndexer().hash_last_four("4242") == HashIndexer().hash_last_four("4242")

    def test_distinct_inputs_distinct_digests(self):
        hasher = HashIndexer()
        digests = {hasher.hash_last_four(f"{n:04d}") for n in range(0, 10000, 37)}
        assert len(digests) == len(range(0, 10000, 37))

    def test_digest_is_lowercase_hex(self):
        digest = HashIndexer().hash_last_four("0000")
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)


class TestLocalCipher:
    """Tests for AES-256-GCM encryption."""

    def test_round_trip(self, encryptor):
        pan = "4111111111111111"
        assert encryptor.decrypt(encryptor.encrypt(pan)) == pan

    def test_fresh_nonce_per_call(self, encryptor):
        """Encrypting the same PAN twice yields different ciphertext."""
        pan = "1234567812345678"
        first = encryptor.encrypt(pan)
        second = encryptor.encrypt(pan)
        assert first != second
        assert encryptor.decrypt(first) == pan
        assert encryptor.decrypt(second) == pan

    def test_ciphertext_layout(self, encryptor):
        """Output is base64(nonce || ciphertext || 16-byte tag)."""
        pan = "1234567812345678"
        raw = base64.b64decode(encryptor.encrypt(pan))
        assert len(raw) == NONCE_SIZE + len(pan) + 16
        assert pan.encode() not in raw

    def test_tampered_ciphertext_fails_authentication(self, encryptor):
        raw = bytearray(base64.b64decode(encryptor.encrypt("1234567812345678")))
        raw[NONCE_SIZE + 2] ^= 0x01
        with pytest.raises(CryptoError, match="authentication failed"):
            encryptor.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_wrong_key_fails_authentication(self, encryptor):
        other = LocalCipher(b"f" * 32)
        with pytest.raises(CryptoError, match="authentication failed"):
            other.decrypt(encryptor.encrypt("1234567812345678"))

    def test_too_short(self, encryptor):
        with pytest.raises(CryptoError, match="ciphertext too short"):
            encryptor.decrypt(base64.b64encode(b"\x00" * NONCE_SIZE).decode())

    def test_not_base64(self, encryptor):
        with pytest.raises(CryptoError, match="malformed ciphertext"):
            encryptor.decrypt("not base64 at all!")

    def test_rejects_short_key(self):
        with pytest.raises(ConfigurationError):
            LocalCipher(b"too-short")

    def test_backend_tag(self, encryptor):
        assert encryptor.backend is EncryptionBackend.LOCAL


class TestRemoteKeyService:
    """Tests for the Google Cloud KMS backend, using a fake client."""

    def test_round_trip(self, fake_kms, kms_key_name):
        service = RemoteKeyService(kms_key_name, client_factory=fake_kms.factory)
        ciphertext = service.encrypt("1234567812345678")
        assert base64.b64decode(ciphertext) == b"kms:1234567812345678"
        assert service.decrypt(ciphertext) == "1234567812345678"

    def test_one_client_per_call_and_closed(self, fake_kms, kms_key_name):
        service = RemoteKeyService(kms_key_name, client_factory=fake_kms.factory)
        service.encrypt("1234567812345678")
        assert len(fake_kms.calls) == 1
        assert fake_kms.client.entered
        assert fake_kms.client.closed

    def test_request_shape_disables_retries(self, fake_kms, kms_key_name):
        service = RemoteKeyService(kms_key_name, client_factory=fake_kms.factory, timeout=3.0)
        service.encrypt("1234567812345678")
        op, request, retry, timeout = fake_kms.client.requests[0]
        assert op == "encrypt"
        assert request["name"] == kms_key_name
        assert request["plaintext"] == b"1234567812345678"
        assert retry is None
        assert timeout == 3.0

    def test_unreachable_service_closes_client(self, fake_kms, kms_key_name):
        fake_kms.client.error = ServiceUnavailable("kms down")
        service = RemoteKeyService(kms_key_name, client_factory=fake_kms.factory)
        with pytest.raises(CryptoError, match="ServiceUnavailable"):
            service.encrypt("1234567812345678")
        assert fake_kms.client.closed

    def test_unknown_key_is_crypto_error(self, fake_kms, kms_key_name):
        fake_kms.client.error = NotFound("no such key")
        service = RemoteKeyService(kms_key_name, client_factory=fake_kms.factory)
        with pytest.raises(CryptoError):
            service.decrypt(base64.b64encode(b"kms:1234").decode())
        assert fake_kms.client.closed

    def test_missing_credentials_is_crypto_error(self, kms_key_name):
        def factory():
            raise DefaultCredentialsError("no credentials")

        service = RemoteKeyService(kms_key_name, client_factory=factory)
        with pytest.raises(CryptoError, match="unreachable"):
            service.encrypt("1234567812345678")

    def test_malformed_key_name_skips_client(self, fake_kms):
        service = RemoteKeyService("cards-key", client_factory=fake_kms.factory)
        with pytest.raises(CryptoError, match="malformed key identifier"):
            service.encrypt("1234567812345678")
        assert fake_kms.calls == []

    def test_empty_response_is_crypto_error(self, fake_kms, kms_key_name):
        fake_kms.client.empty_response = True
        service = RemoteKeyService(kms_key_name, client_factory=fake_kms.factory)
        with pytest.raises(CryptoError, match="empty ciphertext"):
            service.encrypt("1234567812345678")
        with pytest.raises(CryptoError, match="empty plaintext"):
            service.decrypt(base64.b64encode(b"kms:1234").decode())

    def test_malformed_ciphertext_skips_client(self, fake_kms, kms_key_name):
        service = RemoteKeyService(kms_key_name, client_factory=fake_kms.factory)
        with pytest.raises(CryptoError, match="malformed ciphertext"):
            service.decrypt("%%%")
        assert fake_kms.calls == []


class TestBuildEncryptor:
    """Tests for construction-time backend selection."""

    def test_local_key_selects_local_cipher(self, encryption_key_b64):
        encryptor = build_encryptor(make_settings(CARD_ENCRYPTION_KEY=encryption_key_b64))
        assert isinstance(encryptor, LocalCipher)
        assert encryptor.decrypt(encryptor.encrypt("1234567812345678")) == "1234567812345678"

    def test_local_key_matches_fixture_key(self, encryptor, encryption_key_b64):
        built = build_encryptor(make_settings(CARD_ENCRYPTION_KEY=encryption_key_b64))
        assert built.decrypt(encryptor.encrypt("1234567812345678")) == "1234567812345678"
        assert base64.b64decode(encryption_key_b64) == b"0123456789abcdef0123456789abcdef"

    def test_kms_wins_when_both_configured(self, fake_kms, kms_key_name, encryption_key_b64):
        encryptor = build_encryptor(
            make_settings(
                CARD_KMS_KEY_NAME=kms_key_name,
                CARD_ENCRYPTION_KEY=encryption_key_b64,
            ),
            kms_client_factory=fake_kms.factory,
        )
        assert isinstance(encryptor, RemoteKeyService)
        assert encryptor.backend is EncryptionBackend.KMS
        assert encryptor.key_name == kms_key_name

    def test_blank_kms_name_falls_back_to_local(self, encryption_key_b64):
        encryptor = build_encryptor(
            make_settings(CARD_KMS_KEY_NAME="   ", CARD_ENCRYPTION_KEY=encryption_key_b64)
        )
        assert encryptor.backend is EncryptionBackend.LOCAL

    def test_nothing_configured(self):
        with pytest.raises(ConfigurationError, match="must be configured"):
            build_encryptor(make_settings())

    def test_short_local_key(self):
        """A key decoding to fewer than 32 bytes fails at construction."""
        with pytest.raises(ConfigurationError, match="32 bytes"):
            build_encryptor(make_settings(CARD_ENCRYPTION_KEY="c2hvcnQta2V5LTE2Ynl0ZQ=="))

    def test_key_not_base64(self):
        with pytest.raises(ConfigurationError, match="not valid base64"):
            build_encryptor(make_settings(CARD_ENCRYPTION_KEY="!!not-a-key!!"))

    def test_generated_key_is_usable(self):
        key = generate_encryption_key()
        assert len(base64.b64decode(key)) == 32
        assert build_encryptor(make_settings(CARD_ENCRYPTION_KEY=key)).backend is EncryptionBackend.LOCAL
