"""Deterministic derivation of owners and salts from an ADI URL.

Every chain factory mirrors the same seed: keccak256 of the UTF-8 encoded
ADI URL. The helpers below turn that digest into the owner and salt shapes
each chain's factory expects:

- derive_owner20:  last 20 bytes (EVM, TRON)
- derive_owner32:  full 32 bytes (Solana, Aptos, Sui, NEAR, TON)
- derive_salt256:  digest as a big-endian uint256 (EVM, TRON)
- derive_salt64:   salt256 mod 2**64 (Aptos, Sui, TON)
- derive_salt53:   salt256 mod 2**53 (NEAR, JSON-number safe)

The hash MUST stay keccak256. Swapping it for SHA3-256 or SHA-256 would
silently move every predicted address on every chain.
"""
from __future__ import annotations

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .exceptions import InvalidIdentityError

ADI_URL_PREFIX = "acc://"

# CREATE2 domain separation bytes
EVM_CREATE2_PREFIX = b"\xff"
TVM_CREATE2_PREFIX = b"\x41"

ZERO_EVM_ADDRESS = "0x0000000000000000000000000000000000000000"


def validate_identity(adi_url: str) -> None:
    """Validate an ADI URL.

    Raises:
        InvalidIdentityError: if the URL is missing or not an acc:// URL
    """
    if not adi_url or not isinstance(adi_url, str):
        raise InvalidIdentityError("ADI URL is required")
    if not adi_url.startswith(ADI_URL_PREFIX):
        raise InvalidIdentityError(
            "Invalid ADI URL format. Must start with acc://", identity=adi_url
        )


def _digest(adi_url: str) -> bytes:
    return keccak(adi_url.encode("utf-8"))


def identity_hash(adi_url: str) -> str:
    """keccak256(adi_url) as a 0x-prefixed hex string."""
    return "0x" + _digest(adi_url).hex()


def derive_owner20(adi_url: str) -> bytes:
    """Last 20 bytes of keccak256(adi_url)."""
    return _digest(adi_url)[-20:]


def derive_owner32(adi_url: str) -> bytes:
    """Full 32-byte keccak256(adi_url)."""
    return _digest(adi_url)


def derive_salt256(adi_url: str) -> int:
    """keccak256(adi_url) as an unsigned big-endian integer."""
    return int.from_bytes(_digest(adi_url), "big")


def derive_salt64(adi_url: str) -> int:
    """salt256 truncated to fit a u64 field."""
    return derive_salt256(adi_url) % (2 ** 64)


def derive_salt53(adi_url: str) -> int:
    """salt256 truncated to 53 bits so it survives JSON number encoding."""
    return derive_salt256(adi_url) % (2 ** 53)


def derive_evm_owner(adi_url: str) -> str:
    """EIP-55 checksummed owner address for EVM-style factories."""
    return to_checksum_address("0x" + derive_owner20(adi_url).hex())


def is_zero_address(address: str | None) -> bool:
    """True for None, empty strings and all-zero hex addresses."""
    if not address:
        return True
    stripped = address.lower()
    if stripped.startswith("0x"):
        stripped = stripped[2:]
    return stripped.strip("0") == ""


def account_create2_salt(owner: str, adi_url: str, salt: int) -> bytes:
    """Combined CREATE2 salt used by CertenAccountFactory.

    keccak256(abi.encode(owner, keccak256(bytes(adiURL)), salt))
    """
    return keccak(
        encode(
            ["address", "bytes32", "uint256"],
            [to_checksum_address(owner), keccak(adi_url.encode("utf-8")), salt],
        )
    )


def create2_address(
    deployer: bytes,
    salt: bytes,
    init_code_hash: bytes,
    prefix: bytes = EVM_CREATE2_PREFIX,
) -> bytes:
    """Compute a CREATE2 address as raw 20 bytes.

    address = keccak256(prefix ++ deployer ++ salt ++ init_code_hash)[12:]

    EVM chains use the 0xff prefix; TRON's TVM uses 0x41.
    """
    if len(deployer) != 20:
        raise ValueError("deployer must be 20 bytes")
    if len(salt) != 32 or len(init_code_hash) != 32:
        raise ValueError("salt and init_code_hash must be 32 bytes")
    return keccak(prefix + deployer + salt + init_code_hash)[-20:]


def hex_to_bytes(value: str) -> bytes:
    """Decode a hex string with or without 0x prefix."""
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)
