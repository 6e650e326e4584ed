"""
AES-256-GCM envelope for stored image bytes and for image tokens.

Both packet kinds share one layout: ``nonce (12 bytes) || ciphertext || tag
(16 bytes)``. Image tokens are that packet rendered as unpadded URL-safe
base64, with a ``FileReference`` as the plaintext.
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import ConfigError, EncryptionError, InvalidImageId
from .models import NONCE_SIZE, FileReference

KEY_SIZE = 32
TAG_SIZE = 16


def decode_key(encoded: str) -> bytes:
    """Decode a standard base64 key and require exactly 256 bits."""
    try:
        key = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise ConfigError("ENCRYPTION_KEY must be valid base64")
    if len(key) != KEY_SIZE:
        raise ConfigError(f"ENCRYPTION_KEY must be {KEY_SIZE} bytes (256 bits) when decoded")
    return key


def generate_key() -> bytes:
    return os.urandom(KEY_SIZE)


def hash_data(data: bytes) -> bytes:
    """SHA-256 digest of *data*."""
    return hashlib.sha256(data).digest()


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(token: str) -> bytes:
    if not token.isascii():
        raise ValueError("token is not ascii")
    padded = token + "=" * (-len(token) % 4)
    data = base64.urlsafe_b64decode(padded.encode("ascii"))
    # Reject padding, stray characters and non-zero trailing bits: exactly one
    # spelling of every token is accepted.
    if _b64url_encode(data) != token:
        raise ValueError("non-canonical token encoding")
    return data


class CryptoEnvelope:
    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise ConfigError(f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}")
        self._cipher = AESGCM(key)

    @classmethod
    def from_base64(cls, encoded: str) -> "CryptoEnvelope":
        return cls(decode_key(encoded))

    def encrypt_bytes(self, plaintext: bytes) -> bytes:
        """Encrypt *plaintext* under a fresh random nonce."""
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._cipher.encrypt(nonce, plaintext, None)

    def decrypt_bytes(self, packet: bytes) -> bytes:
        if len(packet) < NONCE_SIZE:
            raise EncryptionError("Invalid encrypted data: packet shorter than nonce")
        nonce, ciphertext = packet[:NONCE_SIZE], packet[NONCE_SIZE:]
        try:
            return self._cipher.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise EncryptionError("Authentication failed: data tampered or wrong key")

    def encode_reference(self, ref: FileReference) -> str:
        """Encrypt *ref* into a URL-safe token using the reference's own nonce."""
        ciphertext = self._cipher.encrypt(ref.nonce, ref.to_canonical(), None)
        return _b64url_encode(ref.nonce + ciphertext)

    def decode_reference(self, token: str) -> FileReference:
        """Decrypt a token back into a ``FileReference``.

        Any failure raises ``InvalidImageId`` without saying what was wrong.
        """
        try:
            combined = _b64url_decode(token)
        except (binascii.Error, ValueError):
            raise InvalidImageId()

        if len(combined) < NONCE_SIZE:
            raise InvalidImageId()

        nonce, ciphertext = combined[:NONCE_SIZE], combined[NONCE_SIZE:]
        try:
            plaintext = self._cipher.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise InvalidImageId()

        try:
            ref = FileReference.from_canonical(plaintext)
        except (ValueError, KeyError, TypeError):
            raise InvalidImageId()

        if ref.nonce != nonce:
            raise InvalidImageId()
        return ref
