"""TRON address encoding.

A TRON address is the 20-byte EVM-style account id prefixed with 0x41 and
rendered as Base58Check (the familiar ``T...`` form).
"""
from __future__ import annotations

import base58

from ..derivation import hex_to_bytes

TRON_ADDRESS_PREFIX = b"\x41"


def to_base58(address20: bytes) -> str:
    """Base58Check form of a raw 20-byte account id."""
    if len(address20) != 20:
        raise ValueError("TRON account id must be 20 bytes")
    return base58.b58encode_check(TRON_ADDRESS_PREFIX + address20).decode("ascii")


def from_base58(address: str) -> bytes:
    """Raw 20-byte account id of a ``T...`` address."""
    raw = base58.b58decode_check(address)
    if len(raw) != 21 or raw[:1] != TRON_ADDRESS_PREFIX:
        raise ValueError(f"Not a TRON address: {address}")
    return raw[1:]


def to_hex41(address20: bytes) -> str:
    """``41``-prefixed hex form used by TronGrid with visible=false."""
    return (TRON_ADDRESS_PREFIX + address20).hex()


def from_evm_hex(address: str) -> str:
    """Base58Check form of a 0x-prefixed EVM address."""
    return to_base58(hex_to_bytes(address))


def from_abi_word(word_hex: str) -> str:
    """Base58Check address from an ABI-encoded address return word."""
    return to_base58(bytes.fromhex(word_hex[-40:]))
