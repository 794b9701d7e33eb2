"""Minimal BCS encoder for Sui programmable transactions.

Covers only what a single Move call needs: a TransactionKind holding one
ProgrammableTransaction whose inputs are pure values and one object, and a
single MoveCall command referencing those inputs.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Union

import base58

from ..derivation import hex_to_bytes

# TransactionKind
PROGRAMMABLE_TRANSACTION = 0
# CallArg
CALL_ARG_PURE = 0
CALL_ARG_OBJECT = 1
# ObjectArg
IMM_OR_OWNED_OBJECT = 0
SHARED_OBJECT = 1
# Command
MOVE_CALL = 0
# Argument
ARGUMENT_INPUT = 1


def uleb128(value: int) -> bytes:
    if value < 0:
        raise ValueError("uleb128 value must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_bytes(data: bytes) -> bytes:
    """vector<u8>: ULEB128 length then raw bytes."""
    return uleb128(len(data)) + data


def encode_string(value: str) -> bytes:
    return encode_bytes(value.encode("utf-8"))


def encode_u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def encode_address(address: str) -> bytes:
    """32-byte Sui address / object id, left-padded."""
    raw = hex_to_bytes(address)
    if len(raw) > 32:
        raise ValueError(f"Sui address too long: {address}")
    return raw.rjust(32, b"\x00")


@dataclass(frozen=True)
class PureArg:
    """Already BCS-serialized pure value."""
    value: bytes

    def encode(self) -> bytes:
        return bytes([CALL_ARG_PURE]) + encode_bytes(self.value)


@dataclass(frozen=True)
class SharedObjectArg:
    object_id: str
    initial_shared_version: int
    mutable: bool

    def encode(self) -> bytes:
        return (
            bytes([CALL_ARG_OBJECT, SHARED_OBJECT])
            + encode_address(self.object_id)
            + encode_u64(self.initial_shared_version)
            + bytes([1 if self.mutable else 0])
        )


@dataclass(frozen=True)
class ObjectRefArg:
    """Immutable or owned object, referenced by (id, version, digest)."""
    object_id: str
    version: int
    digest: str  # base58

    def encode(self) -> bytes:
        return (
            bytes([CALL_ARG_OBJECT, IMM_OR_OWNED_OBJECT])
            + encode_address(self.object_id)
            + encode_u64(self.version)
            + encode_bytes(base58.b58decode(self.digest))
        )


CallArg = Union[PureArg, SharedObjectArg, ObjectRefArg]


def move_call_transaction_kind(
    package: str,
    module: str,
    function: str,
    inputs: List[CallArg],
) -> bytes:
    """TransactionKind bytes calling package::module::function(inputs...)."""
    encoded = bytearray([PROGRAMMABLE_TRANSACTION])
    encoded += uleb128(len(inputs))
    for arg in inputs:
        encoded += arg.encode()

    encoded += uleb128(1)
    encoded += bytes([MOVE_CALL])
    encoded += encode_address(package)
    encoded += encode_string(module)
    encoded += encode_string(function)
    encoded += uleb128(0)  # type arguments
    encoded += uleb128(len(inputs))
    for index in range(len(inputs)):
        encoded += bytes([ARGUMENT_INPUT]) + struct.pack("<H", index)
    return bytes(encoded)
