"""NEAR Testnet support."""
from __future__ import annotations

from typing import Optional

from ..config import CertenChainSettings, build_near_chain_config, build_sponsor
from .client import NearClient
from .handler import ClientFactory, NearChainHandler, compute_account_id


def create_near_handler(
    settings: CertenChainSettings,
    client_factory: Optional[ClientFactory] = None,
) -> NearChainHandler:
    sponsor = build_sponsor(
        settings.near, "NEAR", "NEAR", account_id=settings.near.sponsor_account_id
    )
    return NearChainHandler(
        build_near_chain_config(settings), sponsor, client_factory=client_factory
    )


__all__ = ["NearChainHandler", "NearClient", "compute_account_id", "create_near_handler"]
