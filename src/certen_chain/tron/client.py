"""
TronGrid HTTP API client.

Uses the full-node ``/wallet/*`` endpoints with ``visible=true`` so that
addresses travel in Base58Check form.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from ..exceptions import ChainRPCError, ConfirmationTimeoutError
from ..rpc import RestClient

logger = logging.getLogger(__name__)

# Maximum TRX (in sun) the sponsor will burn on energy for one deployment
DEFAULT_FEE_LIMIT = 100_000_000


def _decode_message(message: Any) -> str:
    """TronGrid hex-encodes error messages."""
    if not isinstance(message, str):
        return str(message)
    try:
        return bytes.fromhex(message).decode("utf-8")
    except ValueError:
        return message


class TronGridClient(RestClient):
    """Async client for a TRON full node."""

    async def trigger_constant_contract(
        self,
        owner_address: str,
        contract_address: str,
        function_selector: str,
        parameter: str = "",
    ) -> str:
        """Run a view function; returns the first constant_result word(s) as hex."""
        result = await self.post("/wallet/triggerconstantcontract", {
            "owner_address": owner_address,
            "contract_address": contract_address,
            "function_selector": function_selector,
            "parameter": parameter,
            "visible": True,
        })
        outcome = (result or {}).get("result") or {}
        constant = (result or {}).get("constant_result") or []
        if not outcome.get("result") or not constant or not constant[0]:
            raise ChainRPCError(
                f"View call {function_selector} returned no result: "
                f"{_decode_message(outcome.get('message', ''))}",
                chain=self.chain,
                method=function_selector,
                rpc_error=outcome or None,
            )
        return constant[0]

    async def trigger_smart_contract(
        self,
        owner_address: str,
        contract_address: str,
        function_selector: str,
        parameter: str,
        call_value: int = 0,
        fee_limit: int = DEFAULT_FEE_LIMIT,
    ) -> Dict[str, Any]:
        """Build an unsigned contract-call transaction."""
        result = await self.post("/wallet/triggersmartcontract", {
            "owner_address": owner_address,
            "contract_address": contract_address,
            "function_selector": function_selector,
            "parameter": parameter,
            "call_value": call_value,
            "fee_limit": fee_limit,
            "visible": True,
        })
        outcome = (result or {}).get("result") or {}
        transaction = (result or {}).get("transaction")
        if not outcome.get("result") or not transaction:
            raise ChainRPCError(
                f"triggersmartcontract failed: {_decode_message(outcome.get('message', ''))}",
                chain=self.chain,
                method=function_selector,
                rpc_error=outcome or None,
            )
        return transaction

    async def broadcast_transaction(self, transaction: Dict[str, Any]) -> str:
        """Broadcast a signed transaction; returns its txID."""
        result = await self.post("/wallet/broadcasttransaction", transaction)
        if not isinstance(result, dict):
            raise ChainRPCError(
                f"Broadcast returned no result object: {result!r}",
                chain=self.chain,
                method="broadcasttransaction",
                rpc_error=result,
            )
        if not result.get("result"):
            raise ChainRPCError(
                f"Broadcast rejected: {result.get('code', '')} "
                f"{_decode_message(result.get('message', ''))}",
                chain=self.chain,
                method="broadcasttransaction",
                rpc_error=result,
            )
        return result.get("txid") or transaction["txID"]

    async def get_transaction_info(self, tx_id: str) -> Optional[Dict[str, Any]]:
        """Execution info of a mined transaction, or None while pending."""
        result = await self.post("/wallet/gettransactioninfobyid", {"value": tx_id})
        return result or None

    async def wait_for_transaction_info(
        self,
        tx_id: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        while True:
            info = await self.get_transaction_info(tx_id)
            if info and info.get("id"):
                return info
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(self.chain, tx_id, timeout)
            await asyncio.sleep(poll_interval)

    async def get_balance(self, address: str) -> int:
        """Get TRX balance in sun (0 for unactivated accounts)."""
        result = await self.post("/wallet/getaccount", {"address": address, "visible": True})
        return int((result or {}).get("balance", 0))
