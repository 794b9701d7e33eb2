"""Borsh serialization of NEAR transactions.

Only the FunctionCall action is supported; it is the one action a factory
call needs.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List

ED25519_KEY_TYPE = 0
FUNCTION_CALL_ACTION = 2


def encode_u8(value: int) -> bytes:
    return struct.pack("<B", value)


def encode_u32(value: int) -> bytes:
    return struct.pack("<I", value)


def encode_u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def encode_u128(value: int) -> bytes:
    if value < 0 or value >= 2 ** 128:
        raise ValueError("u128 out of range")
    return value.to_bytes(16, "little")


def encode_bytes(data: bytes) -> bytes:
    """Vec<u8>: u32 length then raw bytes."""
    return encode_u32(len(data)) + data


def encode_string(value: str) -> bytes:
    return encode_bytes(value.encode("utf-8"))


def encode_public_key(public_key: bytes) -> bytes:
    if len(public_key) != 32:
        raise ValueError("ed25519 public key must be 32 bytes")
    return encode_u8(ED25519_KEY_TYPE) + public_key


@dataclass(frozen=True)
class FunctionCall:
    method_name: str
    args: bytes
    gas: int
    deposit: int

    def serialize(self) -> bytes:
        return (
            encode_u8(FUNCTION_CALL_ACTION)
            + encode_string(self.method_name)
            + encode_bytes(self.args)
            + encode_u64(self.gas)
            + encode_u128(self.deposit)
        )


@dataclass(frozen=True)
class Transaction:
    signer_id: str
    public_key: bytes
    nonce: int
    receiver_id: str
    block_hash: bytes
    actions: List[FunctionCall]

    def serialize(self) -> bytes:
        if len(self.block_hash) != 32:
            raise ValueError("block hash must be 32 bytes")
        body = (
            encode_string(self.signer_id)
            + encode_public_key(self.public_key)
            + encode_u64(self.nonce)
            + encode_string(self.receiver_id)
            + self.block_hash
            + encode_u32(len(self.actions))
        )
        for action in self.actions:
            body += action.serialize()
        return body


def serialize_signed_transaction(transaction: Transaction, signature: bytes) -> bytes:
    """SignedTransaction: transaction then an ed25519 Signature enum value."""
    if len(signature) != 64:
        raise ValueError("ed25519 signature must be 64 bytes")
    return transaction.serialize() + encode_u8(ED25519_KEY_TYPE) + signature
