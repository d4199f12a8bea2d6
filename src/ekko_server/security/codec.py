# src/ekko_server/security/codec.py
"""
Sealing of shard documents at rest.

Wire format of a sealed document (all three fields required):

    {"iv": hex(12 bytes), "data": base64(ciphertext), "tag": hex(16 bytes)}

The cipher is ChaCha20-Poly1305 (IETF, 96-bit nonce, 128-bit tag) from
libsodium via PyNaCl. `open_sealed` never raises: any malformed, tampered or
undecodable payload comes back as a CorruptionSignal.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Union

import nacl.utils
from nacl.bindings import (
    crypto_aead_chacha20poly1305_ietf_ABYTES as TAG_BYTES,
    crypto_aead_chacha20poly1305_ietf_KEYBYTES as KEY_BYTES,
    crypto_aead_chacha20poly1305_ietf_NPUBBYTES as NONCE_BYTES,
    crypto_aead_chacha20poly1305_ietf_decrypt,
    crypto_aead_chacha20poly1305_ietf_encrypt,
)
from nacl.exceptions import CryptoError

SEALED_FIELDS = ("iv", "data", "tag")


@dataclass(frozen=True)
class CorruptionSignal:
    """Returned by open_sealed instead of a document. `reason` is safe to log."""

    reason: str

    def __bool__(self) -> bool:
        return False


def load_key(key_hex: str) -> bytes:
    """Decode a 64-hex-char configuration value into a 32-byte key."""
    try:
        key = bytes.fromhex((key_hex or "").strip())
    except ValueError:
        raise ValueError("encryption key must be hex encoded") from None
    if len(key) != KEY_BYTES:
        raise ValueError(f"encryption key must be {KEY_BYTES} bytes ({KEY_BYTES * 2} hex chars)")
    return key


def generate_key() -> bytes:
    return nacl.utils.random(KEY_BYTES)


def seal(document: Dict[str, Any], key: bytes) -> Dict[str, str]:
    plaintext = json.dumps(document, separators=(",", ":"), sort_keys=True).encode("utf-8")
    nonce = nacl.utils.random(NONCE_BYTES)
    sealed = crypto_aead_chacha20poly1305_ietf_encrypt(plaintext, None, nonce, key)
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return {
        "iv": nonce.hex(),
        "data": base64.b64encode(ciphertext).decode("ascii"),
        "tag": tag.hex(),
    }


def open_sealed(payload: Any, key: bytes) -> Union[Dict[str, Any], CorruptionSignal]:
    if not isinstance(payload, dict):
        return CorruptionSignal("payload is not an object")
    for field in SEALED_FIELDS:
        if not isinstance(payload.get(field), str):
            return CorruptionSignal(f"missing field: {field}")

    try:
        nonce = bytes.fromhex(payload["iv"])
        tag = bytes.fromhex(payload["tag"])
        ciphertext = base64.b64decode(payload["data"], validate=True)
    except (ValueError, binascii.Error):
        return CorruptionSignal("bad field encoding")
    if len(nonce) != NONCE_BYTES or len(tag) != TAG_BYTES:
        return CorruptionSignal("bad nonce or tag length")

    try:
        plaintext = crypto_aead_chacha20poly1305_ietf_decrypt(ciphertext + tag, None, nonce, key)
    except CryptoError:
        return CorruptionSignal("authentication failed")

    try:
        document = json.loads(plaintext.decode("utf-8"))
    except ValueError:
        return CorruptionSignal("plaintext is not JSON")
    if not isinstance(document, dict):
        return CorruptionSignal("plaintext is not an object")
    return document
