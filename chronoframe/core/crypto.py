"""
Encryption primitives for objects at rest.

Payload format (everything the backing store ever sees):

    MAGIC (8 bytes) | IV (12 bytes) | ciphertext | GCM tag (16 bytes)

AES-256-GCM is used because the tag authenticates the ciphertext, so a
wrong key or a truncated object fails loudly instead of returning garbage.

Detection is structural: a buffer counts as encrypted when it starts with
MAGIC and is long enough to hold an IV and a tag. A plaintext file that
happens to begin with the same 8 bytes would be misdetected; for
uniformly random content that probability is 2**-64 per object. Such a
file would then fail decryption with CryptoError rather than being
returned corrupted.
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import ConfigError, CryptoError


MAGIC = b"CFENC\x00\x01\x00"
IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32

_HEADER_LENGTH = len(MAGIC) + IV_LENGTH


def derive_aes256_key(passphrase: str) -> bytes:
    """
    Derive a 32-byte AES key from an operator-supplied passphrase.

    SHA-256 of the UTF-8 passphrase. Deterministic on purpose: settings
    store the passphrase, and every read must yield the same key.
    """
    if not passphrase:
        raise ConfigError("Encryption passphrase must not be empty")

    digest = hashes.Hash(hashes.SHA256())
    digest.update(passphrase.encode("utf-8"))
    return digest.finalize()


def is_encrypted_payload(data: bytes | None) -> bool:
    """True if `data` is structurally an encrypted payload."""
    if not data:
        return False
    return len(data) >= _HEADER_LENGTH + TAG_LENGTH and data[:len(MAGIC)] == MAGIC


def encrypt_buffer(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt `plaintext` with a fresh random IV."""
    _check_key(key)
    iv = os.urandom(IV_LENGTH)
    ciphertext = AESGCM(key).encrypt(iv, bytes(plaintext), None)
    return MAGIC + iv + ciphertext


def decrypt_buffer(payload: bytes, key: bytes) -> bytes:
    """Decrypt a payload produced by encrypt_buffer."""
    _check_key(key)
    if not is_encrypted_payload(payload):
        raise CryptoError("Buffer is not an encrypted payload")

    iv = payload[len(MAGIC):_HEADER_LENGTH]
    ciphertext = payload[_HEADER_LENGTH:]
    try:
        return AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag as e:
        raise CryptoError(
            "Decryption failed: wrong encryption key or corrupted object"
        ) from e


def _check_key(key: bytes) -> None:
    if not key or len(key) != KEY_LENGTH:
        raise ConfigError(f"Encryption key must be {KEY_LENGTH} bytes")
