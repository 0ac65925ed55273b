"""
Symmetric text encryption for stored payloads.

AES-256-GCM from the cryptography library. The caller's key may be any
string; HKDF-SHA256 derives the 32-byte AES key from it. Ciphertext layout:
``<nonce hex>:<ciphertext+tag hex>``.
"""

import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits for AES-GCM
SALT_SIZE = 32
KDF_INFO = b"gistdb payload key"


def derive_key(encryption_key: str, salt: bytes = b"\x00" * SALT_SIZE) -> bytes:
    """
    Derive a 256-bit AES key from an arbitrary string key using HKDF.

    Args:
        encryption_key: Shared secret
        salt: HKDF salt (fixed, so every handle with the same key agrees)

    Returns:
        Derived key bytes
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        info=KDF_INFO,
    )
    return hkdf.derive(encryption_key.encode("utf-8"))


def encrypt(text: str, encryption_key: str) -> str:
    """
    Encrypt text.

    Args:
        text: Plain text
        encryption_key: Shared secret

    Returns:
        Hex encoded nonce and ciphertext joined by ":"
    """
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(derive_key(encryption_key)).encrypt(nonce, text.encode("utf-8"), None)
    return nonce.hex() + ":" + ciphertext.hex()


def decrypt(text: str, encryption_key: str) -> str:
    """
    Decrypt text produced by :func:`encrypt`.

    Raises:
        ValueError: malformed input
        cryptography.exceptions.InvalidTag: wrong key or tampered ciphertext
    """
    nonce_hex, sep, ciphertext_hex = text.partition(":")
    if not sep:
        raise ValueError("ciphertext is missing its nonce")
    plaintext = AESGCM(derive_key(encryption_key)).decrypt(
        bytes.fromhex(nonce_hex), bytes.fromhex(ciphertext_hex), None
    )
    return plaintext.decode("utf-8")
