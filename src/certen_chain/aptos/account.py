"""Aptos address math and sponsor key handling."""
from __future__ import annotations

import hashlib
import struct

from nacl.signing import SigningKey

from ..derivation import derive_owner32, derive_salt64, hex_to_bytes
from ..exceptions import ConfigurationError

# Domain separation scheme bytes appended before hashing
ED25519_SCHEME = b"\x00"
DERIVE_RESOURCE_ACCOUNT_SCHEME = b"\xff"

PRIVATE_KEY_PREFIX = "ed25519-priv-"


def normalize_address(address: str) -> str:
    """Long form: 0x followed by 64 lowercase hex characters."""
    raw = address.lower().removeprefix("0x")
    if len(raw) > 64:
        raise ValueError(f"Aptos address too long: {address}")
    return "0x" + raw.zfill(64)


def account_seed(adi_url: str) -> bytes:
    """owner32 || utf-8 ADI URL || salt (u64 little-endian)"""
    return derive_owner32(adi_url) + adi_url.encode("utf-8") + struct.pack("<Q", derive_salt64(adi_url))


def resource_account_address(source: str, seed: bytes) -> str:
    """sha3-256(source || seed || 0xFF), as created by account::create_resource_account."""
    digest = hashlib.sha3_256(
        hex_to_bytes(normalize_address(source)) + seed + DERIVE_RESOURCE_ACCOUNT_SCHEME
    ).digest()
    return "0x" + digest.hex()


def predict_account_address(factory_package: str, adi_url: str) -> str:
    return resource_account_address(factory_package, account_seed(adi_url))


def load_signing_key(private_key: str) -> SigningKey:
    """Ed25519 key from hex, with or without the ``ed25519-priv-`` and ``0x`` prefixes."""
    raw = private_key.strip().removeprefix(PRIVATE_KEY_PREFIX)
    try:
        seed = hex_to_bytes(raw)
        return SigningKey(seed)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid Aptos sponsor key: {e}") from e


def signer_address(key: SigningKey) -> str:
    """Single-key ed25519 account address: sha3-256(public_key || 0x00)."""
    public_key = bytes(key.verify_key)
    return "0x" + hashlib.sha3_256(public_key + ED25519_SCHEME).hexdigest()
