"""Solana RPC client wrapper."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from ..exceptions import ConfirmationTimeoutError, TransactionFailedError
from ..rpc import JsonRpcClient

logger = logging.getLogger(__name__)


class SolanaClient(JsonRpcClient):
    """Async Solana JSON-RPC client.

    Uses raw httpx instead of solana-py; solders is only used to build and
    sign transactions locally.
    """

    def __init__(self, *args: Any, commitment: str = "confirmed", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.commitment = commitment

    async def get_balance(self, pubkey: str) -> int:
        """Get SOL balance in lamports."""
        result = await self.call("getBalance", [pubkey, {"commitment": self.commitment}])
        return result["value"]

    async def get_account_info(self, pubkey: str) -> Optional[dict[str, Any]]:
        """Account data, or None when the account does not exist."""
        result = await self.call(
            "getAccountInfo",
            [pubkey, {"encoding": "base64", "commitment": self.commitment}],
        )
        return result.get("value") if result else None

    async def get_latest_blockhash(self) -> str:
        """Get latest blockhash for transaction building."""
        result = await self.call("getLatestBlockhash", [{"commitment": self.commitment}])
        return result["value"]["blockhash"]

    async def send_raw_transaction(self, signed_tx_base64: str) -> str:
        """Send a signed transaction. Returns transaction signature."""
        result = await self.call(
            "sendTransaction",
            [
                signed_tx_base64,
                {"encoding": "base64", "skipPreflight": False, "preflightCommitment": self.commitment},
            ],
        )
        logger.info(f"Solana tx sent: {result}")
        return result

    async def confirm_transaction(self, signature: str, commitment: Optional[str] = None) -> bool:
        """Check whether a transaction has reached the desired commitment level."""
        result = await self.call("getSignatureStatuses", [[signature]])
        statuses = (result or {}).get("value", [])
        if not statuses or statuses[0] is None:
            return False
        status = statuses[0]
        if status.get("err"):
            raise TransactionFailedError(
                f"Transaction failed: {status['err']}",
                chain=self.chain,
                tx_hash=signature,
            )
        target = commitment or self.commitment
        # confirmed and finalized both satisfy "confirmed"
        confirmation = status.get("confirmationStatus", "")
        if target == "finalized":
            return confirmation == "finalized"
        return confirmation in ("confirmed", "finalized")

    async def wait_for_confirmation(
        self,
        signature: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> None:
        deadline = time.monotonic() + timeout
        while not await self.confirm_transaction(signature):
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(self.chain, signature, timeout)
            await asyncio.sleep(poll_interval)
