"""Sui JSON-RPC client."""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional

from ..rpc import JsonRpcClient

logger = logging.getLogger(__name__)

ZERO_SENDER = "0x" + "00" * 32


class SuiClient(JsonRpcClient):
    """Async client for a Sui fullnode."""

    async def get_object(self, object_id: str, show_owner: bool = False) -> Optional[Dict[str, Any]]:
        """Object data, or None when the object does not exist."""
        result = await self.call(
            "sui_getObject",
            [object_id, {"showOwner": show_owner, "showType": True}],
        )
        return (result or {}).get("data")

    async def get_balance(self, owner: str) -> int:
        """SUI balance in MIST."""
        result = await self.call("suix_getBalance", [owner])
        return int(result.get("totalBalance", 0))

    async def dev_inspect(self, tx_kind: bytes, sender: str = ZERO_SENDER) -> Dict[str, Any]:
        """Run a TransactionKind read-only."""
        return await self.call(
            "sui_devInspectTransactionBlock",
            [sender, base64.b64encode(tx_kind).decode("ascii")],
        )

    async def unsafe_move_call(
        self,
        signer: str,
        package: str,
        module: str,
        function: str,
        arguments: List[Any],
        gas_budget: int,
    ) -> bytes:
        """Have the node build TransactionData bytes for a Move call."""
        result = await self.call(
            "unsafe_moveCall",
            [signer, package, module, function, [], arguments, None, str(gas_budget)],
        )
        return base64.b64decode(result["txBytes"])

    async def execute_transaction(self, tx_bytes: bytes, signature: bytes) -> Dict[str, Any]:
        return await self.call(
            "sui_executeTransactionBlock",
            [
                base64.b64encode(tx_bytes).decode("ascii"),
                [base64.b64encode(signature).decode("ascii")],
                {"showEffects": True, "showObjectChanges": True},
                "WaitForLocalExecution",
            ],
        )
