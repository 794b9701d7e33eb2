"""Sui Testnet support."""
from __future__ import annotations

from typing import Optional

from ..config import CertenChainSettings, build_sponsor, build_sui_chain_config
from .client import SuiClient
from .handler import ClientFactory, SuiChainHandler


def create_sui_handler(
    settings: CertenChainSettings,
    client_factory: Optional[ClientFactory] = None,
) -> SuiChainHandler:
    sponsor = build_sponsor(settings.sui, "Sui", "SUI")
    return SuiChainHandler(
        build_sui_chain_config(settings), sponsor, client_factory=client_factory
    )


__all__ = ["SuiChainHandler", "SuiClient", "create_sui_handler"]
