"""
Repeating-key XOR obfuscation.

This is NOT encryption: the key is stored next to the ciphertext, so
anyone holding the record can reverse it. It only keeps message bodies
from sitting in the database as readable text.
"""

import secrets
from typing import Tuple


def generate_key(length: int) -> bytes:
    return secrets.token_bytes(length)


def encode(plaintext: bytes, key: bytes) -> bytes:
    """
    XOR every byte of `plaintext` with the key, wrapping the key
    cyclically when it is shorter than the data.

    The transform is its own inverse, see `decode`.
    """
    if not plaintext:
        return b""
    if not key:
        raise ValueError("key must not be empty")

    key_len = len(key)
    result = bytearray(len(plaintext))
    for i, byte in enumerate(plaintext):
        result[i] = byte ^ key[i % key_len]
    return bytes(result)


def decode(ciphertext: bytes, key: bytes) -> bytes:
    return encode(ciphertext, key)


def encode_text(text: str) -> Tuple[bytes, bytes]:
    """Returns (ciphertext, key) with a fresh key as long as the UTF-8 body."""
    raw = text.encode("utf-8")
    key = generate_key(len(raw))
    return encode(raw, key), key


def decode_text(ciphertext: bytes, key: bytes) -> str:
    return decode(ciphertext, key).decode("utf-8")
