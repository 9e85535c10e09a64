"""
Unit tests for the encryption primitives.

No I/O here: these exercise the payload format and key handling only.
"""

import os

import pytest

from chronoframe.core.crypto import (
    IV_LENGTH,
    MAGIC,
    TAG_LENGTH,
    decrypt_buffer,
    derive_aes256_key,
    encrypt_buffer,
    is_encrypted_payload,
)
from chronoframe.core.exceptions import ConfigError, CryptoError


@pytest.fixture
def key() -> bytes:
    return derive_aes256_key("s3cret passphrase")


class TestKeyDerivation:
    """Tests for passphrase -> AES key derivation."""

    def test_derives_32_byte_key(self):
        assert len(derive_aes256_key("anything")) == 32

    def test_derivation_is_deterministic(self):
        """The same passphrase must always yield the same key."""
        assert derive_aes256_key("pass") == derive_aes256_key("pass")

    def test_different_passphrases_give_different_keys(self):
        assert derive_aes256_key("pass-a") != derive_aes256_key("pass-b")

    def test_rejects_empty_passphrase(self):
        with pytest.raises(ConfigError):
            derive_aes256_key("")


class TestRoundTrip:
    """decrypt(encrypt(b, k), k) == b"""

    @pytest.mark.parametrize("plaintext", [
        b"",
        b"x",
        b"hello world",
        os.urandom(4096),
        MAGIC + b"looks encrypted but is not",
    ])
    def test_round_trip(self, key, plaintext):
        assert decrypt_buffer(encrypt_buffer(plaintext, key), key) == plaintext

    def test_ciphertext_differs_from_plaintext(self, key):
        plaintext = b"A" * 100
        assert plaintext not in encrypt_buffer(plaintext, key)

    def test_fresh_iv_per_encryption(self, key):
        """Encrypting twice must not produce identical payloads."""
        assert encrypt_buffer(b"same", key) != encrypt_buffer(b"same", key)

    def test_payload_layout(self, key):
        payload = encrypt_buffer(b"12345", key)
        assert payload.startswith(MAGIC)
        assert len(payload) == len(MAGIC) + IV_LENGTH + 5 + TAG_LENGTH


class TestDecryptionFailures:
    """Wrong keys and tampering must fail loudly."""

    def test_wrong_key_raises_crypto_error(self, key):
        payload = encrypt_buffer(b"secret photo", key)
        with pytest.raises(CryptoError):
            decrypt_buffer(payload, derive_aes256_key("other passphrase"))

    def test_tampered_payload_raises_crypto_error(self, key):
        payload = bytearray(encrypt_buffer(b"secret photo", key))
        payload[-1] ^= 0x01
        with pytest.raises(CryptoError):
            decrypt_buffer(bytes(payload), key)

    def test_plaintext_raises_crypto_error(self, key):
        with pytest.raises(CryptoError):
            decrypt_buffer(b"not encrypted at all, just some bytes", key)

    def test_short_key_is_config_error(self):
        with pytest.raises(ConfigError):
            encrypt_buffer(b"data", b"too short")


class TestStructuralDetection:
    """is_encrypted_payload recognizes only real payloads."""

    def test_detects_encrypted_payload(self, key):
        assert is_encrypted_payload(encrypt_buffer(b"data", key))

    def test_detects_encrypted_empty_plaintext(self, key):
        assert is_encrypted_payload(encrypt_buffer(b"", key))

    @pytest.mark.parametrize("data", [
        None,
        b"",
        b"\xff\xd8\xff\xe0 jpeg header",
        b"plain text",
        os.urandom(1024),
    ])
    def test_rejects_plaintext(self, data):
        assert not is_encrypted_payload(data)

    def test_rejects_marker_without_room_for_iv_and_tag(self):
        """A buffer that is just the marker can't be a payload."""
        assert not is_encrypted_payload(MAGIC)
        assert not is_encrypted_payload(MAGIC + b"\x00" * (IV_LENGTH + TAG_LENGTH - 1))

    def test_rejects_near_miss_marker(self):
        near_miss = MAGIC[:-1] + b"\x02" + b"\x00" * 64
        assert not is_encrypted_payload(near_miss)
