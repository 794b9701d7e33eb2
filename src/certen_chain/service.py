"""
AccountService: chain-id keyed entry point for the four handler operations.

This is the surface an HTTP layer would call. It resolves the handler,
delegates, and lets CertenChainError subclasses propagate so the caller can
map them to responses with ``to_dict()`` and ``http_status``.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .config import CertenChainSettings, load_settings
from .derivation import validate_identity
from .logging_utils import setup_logging
from .registry import HandlerRegistry, build_registry
from .results import (
    AccountAddressResult,
    AddressBalanceResult,
    DeployAccountResult,
    SponsorStatusResult,
)
from .sponsor import sponsor_unreachable

logger = logging.getLogger(__name__)


class AccountService:
    """Dispatches account operations to the handler registered for a chain."""

    def __init__(self, registry: HandlerRegistry) -> None:
        self._registry = registry

    @classmethod
    def from_settings(cls, settings: Optional[CertenChainSettings] = None) -> "AccountService":
        """Process entry point: configure logging, then build every handler."""
        settings = settings or load_settings()
        setup_logging(level=settings.log_level, json_format=settings.environment != "dev")
        return cls(build_registry(settings))

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    async def get_account_address(self, chain_id: str, adi_url: str) -> AccountAddressResult:
        """Predict the account address for adi_url on chain_id."""
        handler = self._registry.resolve(chain_id)
        validate_identity(adi_url)
        return await handler.get_account_address(adi_url)

    async def deploy_account(self, chain_id: str, adi_url: str) -> DeployAccountResult:
        """Deploy (or confirm) the account for adi_url on chain_id."""
        handler = self._registry.resolve(chain_id)
        validate_identity(adi_url)
        logger.info(f"Deploy requested for {adi_url} on {handler.chain_name}")
        return await handler.deploy_account(adi_url)

    async def get_address_balance(self, chain_id: str, address: str) -> AddressBalanceResult:
        handler = self._registry.resolve(chain_id)
        return await handler.get_address_balance(address)

    async def get_sponsor_status(self, chain_id: str) -> SponsorStatusResult:
        handler = self._registry.resolve(chain_id)
        return await handler.get_sponsor_status()

    def list_chains(self) -> List[Dict[str, Any]]:
        """Describe every registered handler."""
        return [
            {
                "chainIds": list(handler.chain_ids),
                "name": handler.chain_name,
                "sponsorConfigured": handler.is_sponsor_configured(),
                "supportsPreDeploymentPrediction": handler.supports_pre_deployment_prediction,
            }
            for handler in self._registry.list_handlers()
        ]

    async def get_all_sponsor_statuses(self) -> Dict[str, SponsorStatusResult]:
        """Sponsor status for every handler, keyed by its primary chain id."""
        handlers = self._registry.list_handlers()
        results = await asyncio.gather(
            *(handler.get_sponsor_status() for handler in handlers),
            return_exceptions=True,
        )
        statuses: Dict[str, SponsorStatusResult] = {}
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                result = sponsor_unreachable(handler.chain_name, "", result)
            statuses[handler.chain_ids[0]] = result
        return statuses
