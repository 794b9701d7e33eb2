"""Solana Devnet support."""
from __future__ import annotations

from typing import Optional

from ..config import CertenChainSettings, build_solana_chain_config, build_sponsor
from .client import SolanaClient
from .handler import ClientFactory, SolanaChainHandler
from .program import find_account_address


def create_solana_handler(
    settings: CertenChainSettings,
    client_factory: Optional[ClientFactory] = None,
) -> SolanaChainHandler:
    sponsor = build_sponsor(settings.solana, "Solana", "SOL")
    return SolanaChainHandler(
        build_solana_chain_config(settings), sponsor, client_factory=client_factory
    )


__all__ = [
    "SolanaChainHandler",
    "SolanaClient",
    "create_solana_handler",
    "find_account_address",
]
