"""
Aptos fullnode REST client.

Wraps the subset of the ``/v1`` API needed for view calls, account lookups
and the encode, sign, submit, wait cycle of an entry-function transaction.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import ChainRPCError
from ..rpc import RestClient

logger = logging.getLogger(__name__)

APTOS_COIN = "0x1::aptos_coin::AptosCoin"


class AptosClient(RestClient):
    """Async client for an Aptos fullnode (base URL ends in /v1)."""

    async def view(
        self,
        function: str,
        arguments: List[Any],
        type_arguments: Optional[List[str]] = None,
    ) -> List[Any]:
        """Execute a Move view function."""
        return await self.post("/view", {
            "function": function,
            "type_arguments": type_arguments or [],
            "arguments": arguments,
        })

    async def get_account(self, address: str) -> Optional[Dict[str, Any]]:
        """Account resource, or None if the account does not exist."""
        return await self.get(f"/accounts/{address}", allow_not_found=True)

    async def get_sequence_number(self, address: str) -> int:
        account = await self.get_account(address)
        if account is None:
            raise ChainRPCError(
                f"Account {address} not found on {self.chain}",
                chain=self.chain,
                method="accounts",
            )
        return int(account["sequence_number"])

    async def estimate_gas_price(self) -> int:
        result = await self.get("/estimate_gas_price")
        return int(result["gas_estimate"])

    async def get_balance(self, address: str) -> int:
        """APT balance in octas."""
        result = await self.view("0x1::coin::balance", [address], [APTOS_COIN])
        return int(result[0])

    async def encode_submission(self, request: Dict[str, Any]) -> bytes:
        """BCS signing message for a JSON transaction request."""
        result = await self.post("/transactions/encode_submission", request)
        return bytes.fromhex(result.removeprefix("0x"))

    async def submit_transaction(self, signed_request: Dict[str, Any]) -> str:
        """Submit a signed transaction; returns its hash."""
        result = await self.post("/transactions", signed_request)
        return result["hash"]

    async def wait_for_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """Block server-side until the transaction is committed."""
        return await self.get(f"/transactions/wait_by_hash/{tx_hash}")

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.get(f"/transactions/by_hash/{tx_hash}", allow_not_found=True)
