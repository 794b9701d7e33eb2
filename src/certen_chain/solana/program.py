"""CertenAccountFactory program: PDA derivation and instruction layout."""
from __future__ import annotations

import base64
import struct
from typing import Tuple

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from ..derivation import derive_owner32
from ..exceptions import ConfigurationError

ACCOUNT_SEED = b"certen_account"

# Instruction discriminators
CREATE_ACCOUNT = 0


def owner_pubkey(adi_url: str) -> Pubkey:
    """The 32-byte identity owner interpreted as a Solana public key."""
    return Pubkey.from_bytes(derive_owner32(adi_url))


def find_account_address(adi_url: str, factory_program: Pubkey) -> Tuple[Pubkey, int]:
    """PDA and bump for seeds [b"certen_account", owner32]."""
    return Pubkey.find_program_address(
        [ACCOUNT_SEED, bytes(owner_pubkey(adi_url))], factory_program
    )


def encode_create_account(adi_url: str) -> bytes:
    """[u8 discriminator][u32 LE length][utf-8 ADI URL]"""
    url = adi_url.encode("utf-8")
    return struct.pack("<BI", CREATE_ACCOUNT, len(url)) + url


def create_account_instruction(
    adi_url: str,
    sponsor: Pubkey,
    factory_program: Pubkey,
) -> Instruction:
    pda, _ = find_account_address(adi_url, factory_program)
    return Instruction(
        factory_program,
        encode_create_account(adi_url),
        [
            AccountMeta(sponsor, is_signer=True, is_writable=True),
            AccountMeta(owner_pubkey(adi_url), is_signer=False, is_writable=False),
            AccountMeta(pda, is_signer=False, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def load_keypair(secret: str) -> Keypair:
    """Keypair from a base64-encoded 64-byte secret key."""
    try:
        raw = base64.b64decode(secret, validate=True)
        return Keypair.from_bytes(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid Solana sponsor key: {e}") from e
