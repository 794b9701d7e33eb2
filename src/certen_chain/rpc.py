"""Async HTTP transports shared by the chain clients.

JsonRpcClient speaks JSON-RPC 2.0 (EVM, Solana, Sui, NEAR); RestClient wraps
plain JSON REST APIs (Aptos fullnode, toncenter, TronGrid). Both raise
ChainRPCError for transport and protocol failures and never retry: retrying
is the caller's decision.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from .exceptions import ChainRPCError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """JSON-RPC 2.0 client over httpx."""

    def __init__(
        self,
        rpc_url: str,
        chain: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._chain = chain
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._request_id = 0

    @property
    def chain(self) -> str:
        return self._chain

    async def call(self, method: str, params: Any = None) -> Any:
        """Make a JSON-RPC call and return its result."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params if params is not None else [],
        }

        started = time.monotonic()
        try:
            response = await self._client.post(
                self._rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ChainRPCError(
                f"RPC {method} to {self._chain} failed: {e}",
                chain=self._chain,
                method=method,
            ) from e
        except ValueError as e:
            raise ChainRPCError(
                f"RPC {method} to {self._chain} returned invalid JSON",
                chain=self._chain,
                method=method,
            ) from e
        finally:
            elapsed_ms = (time.monotonic() - started) * 1000
            logger.debug(f"RPC {method} to {self._chain} in {elapsed_ms:.0f}ms")

        if not isinstance(data, dict):
            raise ChainRPCError(
                f"RPC {method} to {self._chain} returned a non-object response",
                chain=self._chain,
                method=method,
                rpc_error=data,
            )
        if data.get("error"):
            error = data["error"]
            message = error.get("message", "Unknown RPC error") if isinstance(error, dict) else str(error)
            raise ChainRPCError(
                f"RPC error from {self._chain}: {message}",
                chain=self._chain,
                method=method,
                rpc_error=error,
            )
        return data.get("result")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class RestClient:
    """JSON REST client over httpx."""

    def __init__(
        self,
        base_url: str,
        chain: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._chain = chain
        self._headers = headers or {}
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def chain(self) -> str:
        return self._chain

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """Send a request; returns None for 404 when allow_not_found is set."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            response = await self._client.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise ChainRPCError(
                f"{method} {path} to {self._chain} failed: {e}",
                chain=self._chain,
                method=path,
            ) from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code >= 400:
            raise ChainRPCError(
                f"{method} {path} to {self._chain} returned {response.status_code}",
                chain=self._chain,
                method=path,
                rpc_error=response.text[:500],
            )
        try:
            return response.json()
        except ValueError as e:
            raise ChainRPCError(
                f"{method} {path} to {self._chain} returned invalid JSON",
                chain=self._chain,
                method=path,
            ) from e

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, json=body, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

