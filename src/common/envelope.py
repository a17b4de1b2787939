from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


IV_SIZE = 12
KEY_SIZE = 32


class EnvelopeError(ValueError):
    """Base error for the encrypted envelope codec."""


class InvalidKey(EnvelopeError):
    """Key is not valid base64 or not a 256-bit AES key."""


class MalformedEnvelope(EnvelopeError):
    """Envelope is too short to carry an IV."""


class AuthenticationError(EnvelopeError):
    """GCM tag check failed: wrong key or tampered ciphertext."""


def generate_key() -> str:
    """Return a fresh 256-bit AES key, base64-encoded for configuration."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")


def decode_key(text: str) -> bytes:
    """Decode a base64 key from configuration into raw key bytes.

    Raises `InvalidKey` on bad base64 or when the result is not 32 bytes.
    """
    try:
        raw = base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as ex:
        raise InvalidKey("Asset key is not valid base64") from ex
    if len(raw) != KEY_SIZE:
        raise InvalidKey(f"Asset key must be {KEY_SIZE} bytes, got {len(raw)}")
    return raw


def _to_aesgcm(key: str | bytes) -> AESGCM:
    """Construct an AESGCM cipher from a base64 string or raw key bytes."""
    key_bytes = decode_key(key) if isinstance(key, str) else bytes(key)
    if len(key_bytes) != KEY_SIZE:
        raise InvalidKey(f"Asset key must be {KEY_SIZE} bytes, got {len(key_bytes)}")
    return AESGCM(key_bytes)


def encode(key: str | bytes, plaintext: bytes) -> bytes:
    """Encrypt `plaintext` and return `IV || ciphertext` (tag included).

    A fresh random IV is drawn for every call.
    """
    cipher = _to_aesgcm(key)
    iv = os.urandom(IV_SIZE)
    return iv + cipher.encrypt(iv, plaintext, None)


def decode(key: str | bytes, envelope: bytes) -> bytes:
    """Split the IV off `envelope` and decrypt the remainder.

    Raises:
    - MalformedEnvelope if the input is shorter than the IV.
    - AuthenticationError if the tag does not verify.
    - InvalidKey if the key cannot be used.
    """
    cipher = _to_aesgcm(key)
    if len(envelope) < IV_SIZE:
        raise MalformedEnvelope(
            f"Envelope is {len(envelope)} bytes, need at least {IV_SIZE}"
        )
    iv, ciphertext = envelope[:IV_SIZE], envelope[IV_SIZE:]
    try:
        return cipher.decrypt(iv, ciphertext, None)
    except InvalidTag as ex:
        raise AuthenticationError("Envelope failed authentication") from ex


__all__ = [
    "AuthenticationError",
    "EnvelopeError",
    "InvalidKey",
    "MalformedEnvelope",
    "decode",
    "decode_key",
    "encode",
    "generate_key",
]
