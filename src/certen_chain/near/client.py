"""NEAR JSON-RPC client."""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Optional

from ..exceptions import ChainRPCError
from ..rpc import JsonRpcClient

logger = logging.getLogger(__name__)


def _is_unknown_account(error: ChainRPCError) -> bool:
    rpc_error = error.rpc_error if isinstance(error.rpc_error, dict) else {}
    cause = rpc_error.get("cause") or {}
    return cause.get("name") == "UNKNOWN_ACCOUNT" or "does not exist" in str(error)


class NearClient(JsonRpcClient):
    """Async client for a NEAR RPC node."""

    async def query(self, request: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.call("query", request)
        # view errors may be reported inside a successful response
        if isinstance(result, dict) and result.get("error"):
            raise ChainRPCError(
                f"RPC error from {self.chain}: {result['error']}",
                chain=self.chain,
                method=request.get("request_type"),
                rpc_error=result["error"],
            )
        return result

    async def call_view_function(self, account_id: str, method_name: str, args: Dict[str, Any]) -> Any:
        """Call a view method; returns the decoded JSON result."""
        result = await self.query({
            "request_type": "call_function",
            "finality": "optimistic",
            "account_id": account_id,
            "method_name": method_name,
            "args_base64": base64.b64encode(json.dumps(args).encode("utf-8")).decode("ascii"),
        })
        return json.loads(bytes(result["result"]).decode("utf-8"))

    async def view_account(self, account_id: str) -> Optional[Dict[str, Any]]:
        """Account state, or None if the account does not exist."""
        try:
            return await self.query({
                "request_type": "view_account",
                "finality": "final",
                "account_id": account_id,
            })
        except ChainRPCError as e:
            if _is_unknown_account(e):
                return None
            raise

    async def get_balance(self, account_id: str) -> int:
        """Balance in yoctoNEAR."""
        account = await self.view_account(account_id)
        if account is None:
            raise ChainRPCError(
                f"Account {account_id} does not exist",
                chain=self.chain,
                method="view_account",
            )
        return int(account["amount"])

    async def view_access_key(self, account_id: str, public_key: str) -> Dict[str, Any]:
        """Nonce and recent block hash for an access key."""
        return await self.query({
            "request_type": "view_access_key",
            "finality": "final",
            "account_id": account_id,
            "public_key": public_key,
        })

    async def broadcast_tx_commit(self, signed_tx: bytes) -> Dict[str, Any]:
        """Submit and wait for the final execution outcome."""
        return await self.call(
            "broadcast_tx_commit", [base64.b64encode(signed_tx).decode("ascii")]
        )
