"""
Handler registry: maps chain identifiers to ChainHandler instances.

Identifiers are stored case-folded; lookups try the lowercased identifier
first and fall back to the exact string. A handler registered under an
identifier that is already taken replaces the previous one.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .config import CertenChainSettings, load_settings
from .exceptions import UnsupportedChainError
from .handler import ChainHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Registry of chain handlers keyed by every identifier they answer to."""

    def __init__(self, handlers: Optional[Iterable[ChainHandler]] = None) -> None:
        self._handlers: Dict[str, ChainHandler] = {}
        for handler in handlers or ():
            self.register(handler)

    def register(self, handler: ChainHandler) -> None:
        """Register a handler under each of its chain_ids."""
        for chain_id in handler.chain_ids:
            key = chain_id.lower()
            previous = self._handlers.get(key)
            if previous is not None and previous is not handler:
                logger.warning(
                    f"Chain identifier {chain_id!r} re-registered: "
                    f"{previous.chain_name} replaced by {handler.chain_name}"
                )
            self._handlers[key] = handler
        logger.debug(f"Registered {handler.chain_name} as {list(handler.chain_ids)}")

    def get(self, chain_id: str) -> Optional[ChainHandler]:
        """Return the handler for chain_id, or None."""
        if not chain_id:
            return None
        return self._handlers.get(chain_id.lower()) or self._handlers.get(chain_id)

    def resolve(self, chain_id: str) -> ChainHandler:
        """Return the handler for chain_id.

        Raises:
            UnsupportedChainError: if nothing is registered under chain_id
        """
        handler = self.get(chain_id)
        if handler is None:
            raise UnsupportedChainError(chain_id, supported=self.list_identifiers())
        return handler

    def is_supported(self, chain_id: str) -> bool:
        return self.get(chain_id) is not None

    def list_handlers(self) -> List[ChainHandler]:
        """Distinct handlers in registration order."""
        seen: List[ChainHandler] = []
        for handler in self._handlers.values():
            if not any(handler is existing for existing in seen):
                seen.append(handler)
        return seen

    def list_identifiers(self) -> List[str]:
        return list(self._handlers.keys())

    def __contains__(self, chain_id: str) -> bool:
        return self.is_supported(chain_id)

    def __len__(self) -> int:
        return len(self.list_handlers())


def build_registry(settings: Optional[CertenChainSettings] = None) -> HandlerRegistry:
    """Build a registry with the default handler for every supported chain."""
    from .aptos import create_aptos_handler
    from .evm import create_evm_handlers
    from .near import create_near_handler
    from .solana import create_solana_handler
    from .sui import create_sui_handler
    from .ton import create_ton_handler
    from .tron import create_tron_handler

    settings = settings or load_settings()
    registry = HandlerRegistry()
    for handler in create_evm_handlers(settings):
        registry.register(handler)
    registry.register(create_solana_handler(settings))
    registry.register(create_aptos_handler(settings))
    registry.register(create_sui_handler(settings))
    registry.register(create_near_handler(settings))
    registry.register(create_ton_handler(settings))
    registry.register(create_tron_handler(settings))

    logger.info(
        f"Chain handler registry ready: {len(registry)} handlers, "
        f"{len(registry.list_identifiers())} identifiers"
    )
    return registry
