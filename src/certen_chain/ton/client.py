"""toncenter v2 HTTP API client."""
from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Dict, List, Optional

from tonsdk.boc import Cell

from ..exceptions import ChainRPCError, ConfirmationTimeoutError
from ..rpc import RestClient

logger = logging.getLogger(__name__)


def cell_to_b64(cell: Cell) -> str:
    return base64.b64encode(bytes(cell.to_boc(False))).decode("ascii")


def stack_cell(entry: Any) -> Cell:
    """Cell carried by a ["cell" | "slice", {"bytes": ...}] get-method stack entry."""
    try:
        kind, value = entry
        if kind not in ("cell", "slice", "tvm.Cell", "tvm.Slice"):
            raise ValueError(f"unexpected stack entry type {kind!r}")
        boc = value["bytes"] if isinstance(value, dict) else value
        return Cell.one_from_boc(base64.b64decode(boc))
    except (TypeError, KeyError, ValueError) as e:
        raise ValueError(f"Cannot decode stack entry: {e}") from e


class TonCenterClient(RestClient):
    """Async client for the toncenter v2 API.

    Every response is wrapped as {"ok": bool, "result": ..., "error": ...};
    the wrapper is removed and ok=false raised as ChainRPCError.
    """

    def __init__(self, base_url: str, chain: str, api_key: str = "", **kwargs: Any) -> None:
        headers = {"X-API-Key": api_key} if api_key else {}
        super().__init__(base_url, chain, headers=headers, **kwargs)

    def _unwrap(self, method: str, response: Any) -> Any:
        if not isinstance(response, dict) or not response.get("ok", False):
            error = response.get("error") if isinstance(response, dict) else response
            raise ChainRPCError(
                f"toncenter {method} failed on {self.chain}: {error}",
                chain=self.chain,
                method=method,
                rpc_error=error,
            )
        return response.get("result")

    async def run_get_method(self, address: str, method: str, stack: List[List[str]]) -> List[Any]:
        """Run a contract getter; returns the result stack."""
        result = self._unwrap("runGetMethod", await self.post(
            "/runGetMethod", {"address": address, "method": method, "stack": stack}
        ))
        exit_code = int(result.get("exit_code", 0))
        if exit_code not in (0, 1):
            raise ChainRPCError(
                f"Get method {method} on {address} exited with code {exit_code}",
                chain=self.chain,
                method="runGetMethod",
                rpc_error={"exit_code": exit_code},
            )
        return result.get("stack") or []

    async def get_address_information(self, address: str) -> Dict[str, Any]:
        return self._unwrap("getAddressInformation", await self.get(
            "/getAddressInformation", params={"address": address}
        ))

    async def get_address_state(self, address: str) -> str:
        """One of "active", "uninitialized", "frozen"."""
        info = await self.get_address_information(address)
        return info.get("state", "uninitialized")

    async def get_balance(self, address: str) -> int:
        """Balance in nanotons."""
        return int(self._unwrap("getAddressBalance", await self.get(
            "/getAddressBalance", params={"address": address}
        )))

    async def get_seqno(self, address: str) -> int:
        """Wallet seqno; 0 for a wallet that has not been deployed yet."""
        info = self._unwrap("getWalletInformation", await self.get(
            "/getWalletInformation", params={"address": address}
        ))
        return int(info.get("seqno") or 0)

    async def send_boc(self, boc: bytes) -> None:
        self._unwrap("sendBoc", await self.post(
            "/sendBoc", {"boc": base64.b64encode(boc).decode("ascii")}
        ))

    async def get_transactions(self, address: str, limit: int = 5) -> List[Dict[str, Any]]:
        return self._unwrap("getTransactions", await self.get(
            "/getTransactions", params={"address": address, "limit": limit}
        )) or []

    async def wait_for_seqno(
        self,
        address: str,
        previous_seqno: int,
        reference: str,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
    ) -> int:
        """Poll until the wallet seqno moves past previous_seqno.

        Raises:
            ConfirmationTimeoutError: if the seqno does not advance within timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            await asyncio.sleep(poll_interval)
            try:
                seqno = await self.get_seqno(address)
            except ChainRPCError as e:
                logger.debug(f"Seqno poll on {self.chain} failed: {e}")
                seqno = previous_seqno
            if seqno > previous_seqno:
                return seqno
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(self.chain, reference, timeout)
