"""Aptos Testnet support."""
from __future__ import annotations

from typing import Optional

from ..config import CertenChainSettings, build_aptos_chain_config, build_sponsor
from .account import predict_account_address
from .client import AptosClient
from .handler import AptosChainHandler, ClientFactory


def create_aptos_handler(
    settings: CertenChainSettings,
    client_factory: Optional[ClientFactory] = None,
) -> AptosChainHandler:
    sponsor = build_sponsor(settings.aptos, "Aptos", "APT")
    return AptosChainHandler(
        build_aptos_chain_config(settings), sponsor, client_factory=client_factory
    )


__all__ = [
    "AptosChainHandler",
    "AptosClient",
    "create_aptos_handler",
    "predict_account_address",
]
