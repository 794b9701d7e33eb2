"""TON Testnet support."""
from __future__ import annotations

from typing import Optional

from ..config import CertenChainSettings, build_sponsor, build_ton_chain_config
from .client import TonCenterClient
from .handler import ClientFactory, TonChainHandler


def create_ton_handler(
    settings: CertenChainSettings,
    client_factory: Optional[ClientFactory] = None,
) -> TonChainHandler:
    sponsor = build_sponsor(
        settings.ton, "TON", "TON", mnemonic=settings.ton.sponsor_mnemonic
    )
    return TonChainHandler(
        build_ton_chain_config(settings), sponsor, client_factory=client_factory
    )


__all__ = ["TonCenterClient", "TonChainHandler", "create_ton_handler"]
