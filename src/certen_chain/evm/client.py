"""
EVM JSON-RPC client.

Thin typed wrapper over JsonRpcClient for the handful of eth_* methods the
account factory flow needs.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from ..exceptions import ConfirmationTimeoutError
from ..rpc import JsonRpcClient

logger = logging.getLogger(__name__)


class EvmRpcClient(JsonRpcClient):
    """Async client for an EVM node."""

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        """Execute a read-only call; returns the raw 0x-hex return data."""
        return await self.call("eth_call", [{"to": to, "data": data}, block])

    async def get_balance(self, address: str) -> int:
        """Get native balance in wei."""
        result = await self.call("eth_getBalance", [address, "latest"])
        return int(result, 16)

    async def get_code(self, address: str) -> str:
        return await self.call("eth_getCode", [address, "latest"])

    async def get_nonce(self, address: str) -> int:
        """Get transaction count (nonce) for address."""
        result = await self.call("eth_getTransactionCount", [address, "pending"])
        return int(result, 16)

    async def get_gas_price(self) -> int:
        result = await self.call("eth_gasPrice")
        return int(result, 16)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        """Estimate gas for a transaction."""
        result = await self.call("eth_estimateGas", [tx])
        return int(result, 16)

    async def send_raw_transaction(self, signed_tx: str) -> str:
        """Broadcast signed transaction."""
        return await self.call("eth_sendRawTransaction", [signed_tx])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get transaction receipt."""
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> Dict[str, Any]:
        """Poll until the transaction is mined.

        Raises:
            ConfirmationTimeoutError: if no receipt appears within timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(self.chain, tx_hash, timeout)
            logger.debug(f"Waiting for receipt of {tx_hash} on {self.chain}")
            await asyncio.sleep(poll_interval)
