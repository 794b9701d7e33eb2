"""CertenAccountFactory ABI bindings.

Calldata encoding and return decoding are shared by the EVM handler (over
eth_call) and the TRON handler (over TronGrid's trigger endpoints), since
both talk to the same Solidity factory.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from eth_abi import decode, encode
from web3 import Web3

from ..exceptions import ChainRPCError
from .client import EvmRpcClient

GET_ADDRESS_SIGNATURE = "getAddress(address,string,uint256)"
IS_DEPLOYED_SIGNATURE = "isDeployedAccount(address)"
DEPLOYMENT_FEE_SIGNATURE = "deploymentFee()"
CREATE_ACCOUNT_SIGNATURE = "createAccountIfNotExists(address,string,uint256)"

# AccountDeployed event topic0; topics[1] holds the account address
ACCOUNT_DEPLOYED_TOPIC = "0xf92d8f64e097b6044b318e7dc56258b83e25d40b31866b4af076cf98ae167dee"


def selector(signature: str) -> bytes:
    return Web3.keccak(text=signature)[:4]


GET_ADDRESS_SELECTOR = selector(GET_ADDRESS_SIGNATURE)
IS_DEPLOYED_SELECTOR = selector(IS_DEPLOYED_SIGNATURE)
DEPLOYMENT_FEE_SELECTOR = selector(DEPLOYMENT_FEE_SIGNATURE)
CREATE_ACCOUNT_SELECTOR = selector(CREATE_ACCOUNT_SIGNATURE)


def encode_account_args(owner: str, adi_url: str, salt: int) -> bytes:
    """ABI-encode (address owner, string adiURL, uint256 salt)."""
    return encode(
        ["address", "string", "uint256"],
        [Web3.to_checksum_address(owner), adi_url, salt],
    )


def encode_address_arg(address: str) -> bytes:
    return encode(["address"], [Web3.to_checksum_address(address)])


def encode_get_address(owner: str, adi_url: str, salt: int) -> str:
    return "0x" + (GET_ADDRESS_SELECTOR + encode_account_args(owner, adi_url, salt)).hex()


def encode_is_deployed(account: str) -> str:
    return "0x" + (IS_DEPLOYED_SELECTOR + encode_address_arg(account)).hex()


def encode_deployment_fee() -> str:
    return "0x" + DEPLOYMENT_FEE_SELECTOR.hex()


def encode_create_account(owner: str, adi_url: str, salt: int) -> str:
    return "0x" + (CREATE_ACCOUNT_SELECTOR + encode_account_args(owner, adi_url, salt)).hex()


def _return_bytes(data: str, chain: str, method: str) -> bytes:
    raw = data[2:] if data.startswith(("0x", "0X")) else data
    if not raw:
        raise ChainRPCError(
            f"{method} returned no data on {chain}; the factory may not be deployed",
            chain=chain,
            method=method,
        )
    return bytes.fromhex(raw)


def decode_address(data: str, chain: str = "", method: str = GET_ADDRESS_SIGNATURE) -> str:
    """Decode a single address return value (checksummed)."""
    (address,) = decode(["address"], _return_bytes(data, chain, method))
    return Web3.to_checksum_address(address)


def decode_bool(data: str, chain: str = "", method: str = IS_DEPLOYED_SIGNATURE) -> bool:
    (value,) = decode(["bool"], _return_bytes(data, chain, method))
    return bool(value)


def decode_uint(data: str, chain: str = "", method: str = DEPLOYMENT_FEE_SIGNATURE) -> int:
    (value,) = decode(["uint256"], _return_bytes(data, chain, method))
    return int(value)


def find_deployed_account(logs: Sequence[Dict[str, Any]]) -> Optional[str]:
    """Account address from the first AccountDeployed log, if any.

    The address is the last 40 hex characters of topics[1].
    """
    for log in logs:
        topics: List[str] = log.get("topics") or []
        if len(topics) > 1 and topics[0].lower() == ACCOUNT_DEPLOYED_TOPIC:
            topic = topics[1]
            return Web3.to_checksum_address("0x" + topic[-40:])
    return None


class AccountFactory:
    """Read-only view of a CertenAccountFactory deployed on an EVM chain."""

    def __init__(self, client: EvmRpcClient, address: str) -> None:
        self._client = client
        self.address = address

    async def get_address(self, owner: str, adi_url: str, salt: int) -> str:
        result = await self._client.eth_call(self.address, encode_get_address(owner, adi_url, salt))
        return decode_address(result, self._client.chain)

    async def is_deployed_account(self, account: str) -> bool:
        result = await self._client.eth_call(self.address, encode_is_deployed(account))
        return decode_bool(result, self._client.chain)

    async def deployment_fee(self) -> int:
        result = await self._client.eth_call(self.address, encode_deployment_fee())
        return decode_uint(result, self._client.chain)
