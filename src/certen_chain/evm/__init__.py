"""EVM chain family: Ethereum, Arbitrum, Base, BSC, Optimism, Polygon, Moonbeam testnets."""
from __future__ import annotations

from typing import List, Optional

from ..config import CertenChainSettings, build_evm_chain_configs, build_evm_sponsor
from .client import EvmRpcClient
from .factory import AccountFactory
from .handler import ClientFactory, EvmChainHandler


def create_evm_handlers(
    settings: CertenChainSettings,
    client_factory: Optional[ClientFactory] = None,
) -> List[EvmChainHandler]:
    """One handler per configured EVM network, sharing the EVM sponsor."""
    sponsor = build_evm_sponsor(settings)
    return [
        EvmChainHandler(config, sponsor, client_factory=client_factory)
        for config in build_evm_chain_configs(settings)
    ]


__all__ = [
    "AccountFactory",
    "EvmChainHandler",
    "EvmRpcClient",
    "create_evm_handlers",
]
