"""TRON Shasta testnet support."""
from __future__ import annotations

from typing import Optional

from ..config import CertenChainSettings, build_sponsor, build_tron_chain_config
from .client import TronGridClient
from .handler import ClientFactory, TronChainHandler


def create_tron_handler(
    settings: CertenChainSettings,
    client_factory: Optional[ClientFactory] = None,
) -> TronChainHandler:
    sponsor = build_sponsor(settings.tron, "TRON", "TRX", address=settings.tron.sponsor_address)
    return TronChainHandler(
        build_tron_chain_config(settings), sponsor, client_factory=client_factory
    )


__all__ = ["TronChainHandler", "TronGridClient", "create_tron_handler"]
