"""
TRON chain handler.

TRON runs the same Solidity factory as the EVM chains, so calldata is
shared with certen_chain.evm.factory. Only the transport (TronGrid HTTP
instead of JSON-RPC), the transaction format and the address encoding
differ.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, Callable, Dict, List, Optional

from eth_keys import keys

from ..config import ChainConfig, SponsorConfig
from ..derivation import (
    TVM_CREATE2_PREFIX,
    account_create2_salt,
    create2_address,
    derive_evm_owner,
    derive_salt256,
    hex_to_bytes,
    validate_identity,
)
from ..evm.factory import (
    CREATE_ACCOUNT_SIGNATURE,
    DEPLOYMENT_FEE_SIGNATURE,
    GET_ADDRESS_SIGNATURE,
    IS_DEPLOYED_SIGNATURE,
    decode_bool,
    decode_uint,
    encode_account_args,
    find_deployed_account,
)
from ..exceptions import (
    CertenChainError,
    ChainError,
    ChainRPCError,
    ConfigurationError,
    DeploymentVerificationError,
    InvalidFactoryResponseError,
    SponsorNotConfiguredError,
    TransactionFailedError,
)
from ..handler import DeploymentTracker
from ..logging_utils import ChainLogger, OperationType, get_chain_logger
from ..results import (
    AccountAddressResult,
    AddressBalanceResult,
    DeployAccountResult,
    DerivationPath,
    SponsorStatusResult,
)
from ..sponsor import (
    ensure_sponsor_funds,
    format_units,
    sponsor_not_configured,
    sponsor_status,
    sponsor_unreachable,
)
from .address import from_abi_word, from_base58, from_evm_hex, to_base58
from .client import DEFAULT_FEE_LIMIT, TronGridClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ChainConfig], TronGridClient]


def default_client_factory(config: ChainConfig) -> TronGridClient:
    return TronGridClient(config.rpc_url, config.name, timeout=config.http_timeout_seconds)


def sign_transaction(transaction: Dict[str, Any], private_key: keys.PrivateKey) -> Dict[str, Any]:
    """Attach a secp256k1 signature over sha256(raw_data) to a TronGrid transaction."""
    digest = hashlib.sha256(bytes.fromhex(transaction["raw_data_hex"])).digest()
    if digest.hex() != transaction["txID"]:
        raise ChainError("Transaction id does not match raw_data", chain="TRON")
    signature = private_key.sign_msg_hash(digest)
    packed = (
        signature.r.to_bytes(32, "big")
        + signature.s.to_bytes(32, "big")
        + bytes([signature.v + 27])
    )
    return {**transaction, "signature": [packed.hex()]}


def _normalize_logs(logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """TronGrid log topics carry no 0x prefix."""
    return [
        {**log, "topics": ["0x" + topic.lower().removeprefix("0x") for topic in log.get("topics", [])]}
        for log in logs
    ]


class TronChainHandler:
    """Account prediction and sponsored deployment on TRON Shasta."""

    supports_pre_deployment_prediction = True

    def __init__(
        self,
        config: ChainConfig,
        sponsor: SponsorConfig,
        client_factory: Optional[ClientFactory] = None,
        chain_logger: Optional[ChainLogger] = None,
    ) -> None:
        self.config = config
        self.sponsor = sponsor
        self.chain_ids: List[str] = list(config.chain_ids)
        self.chain_name = config.name
        self._client_factory = client_factory or default_client_factory
        self._chain_logger = chain_logger or get_chain_logger()

    def is_sponsor_configured(self) -> bool:
        return self.sponsor.is_configured

    def _client(self) -> TronGridClient:
        return self._client_factory(self.config)

    async def _view(self, client: TronGridClient, signature: str, parameter: str = "") -> str:
        return await client.trigger_constant_contract(
            self.config.factory_address, self.config.factory_address, signature, parameter
        )

    async def _predict(self, client: TronGridClient, owner: str, adi_url: str, salt: int) -> str:
        word = await self._view(
            client, GET_ADDRESS_SIGNATURE, encode_account_args(owner, adi_url, salt).hex()
        )
        if word.strip("0") == "":
            raise InvalidFactoryResponseError(self.chain_name, returned=word)
        return from_abi_word(word)

    async def _is_deployed(self, client: TronGridClient, account: str) -> bool:
        parameter = (b"\x00" * 12 + from_base58(account)).hex()
        return decode_bool(await self._view(client, IS_DEPLOYED_SIGNATURE, parameter), self.chain_name)

    def _local_address(self, owner: str, adi_url: str, salt: int) -> Optional[str]:
        if not self.config.account_init_code_hash:
            return None
        raw = create2_address(
            from_base58(self.config.factory_address),
            account_create2_salt(owner, adi_url, salt),
            hex_to_bytes(self.config.account_init_code_hash),
            prefix=TVM_CREATE2_PREFIX,
        )
        return to_base58(raw)

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        validate_identity(adi_url)
        owner = derive_evm_owner(adi_url)
        salt = derive_salt256(adi_url)

        async with self._chain_logger.operation_context(
            OperationType.ADDRESS_DERIVATION, self.chain_name, adi_url=adi_url
        ):
            async with self._client() as client:
                path = DerivationPath.ONCHAIN
                reason = None
                try:
                    predicted = await self._predict(client, owner, adi_url, salt)
                except ChainRPCError as e:
                    local = self._local_address(owner, adi_url, salt)
                    if local is None:
                        raise
                    predicted, path, reason = local, DerivationPath.LOCAL, str(e)
                self._chain_logger.log_derivation(
                    self.chain_name, adi_url, predicted, path.value, reason=reason
                )

                try:
                    is_deployed = await self._is_deployed(client, predicted)
                except ChainRPCError:
                    if path is DerivationPath.ONCHAIN:
                        raise
                    logger.warning(f"Existence check failed on {self.chain_name}")
                    is_deployed = False

        return AccountAddressResult(
            account_address=predicted,
            is_deployed=is_deployed,
            explorer_url=self.config.address_url(predicted),
            derivation_path=path,
        )

    def _load_sponsor_key(self) -> keys.PrivateKey:
        try:
            return keys.PrivateKey(hex_to_bytes(self.sponsor.private_key))
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid TRON sponsor private key: {e}") from e

    def _sponsor_address(self, key: Optional[keys.PrivateKey] = None) -> str:
        if self.sponsor.address:
            return self.sponsor.address
        key = key or self._load_sponsor_key()
        return to_base58(key.public_key.to_canonical_address())

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        validate_identity(adi_url)
        if not self.is_sponsor_configured():
            raise SponsorNotConfiguredError("TRON")

        owner = derive_evm_owner(adi_url)
        salt = derive_salt256(adi_url)
        tracker = DeploymentTracker(self.chain_name, adi_url, self._chain_logger)

        async with self._chain_logger.operation_context(
            OperationType.DEPLOYMENT, self.chain_name, adi_url=adi_url
        ) as op:
            async with self._client() as client:
                key = self._load_sponsor_key()
                sponsor_address = to_base58(key.public_key.to_canonical_address())
                predicted, balance, fee_word = await asyncio.gather(
                    self._predict(client, owner, adi_url, salt),
                    client.get_balance(sponsor_address),
                    self._view(client, DEPLOYMENT_FEE_SIGNATURE),
                )
                tracker.predicted()
                op.metadata["account"] = predicted

                if await self._is_deployed(client, predicted):
                    tracker.already_deployed()
                    return DeployAccountResult(
                        account_address=predicted,
                        already_existed=True,
                        transaction_hash=None,
                        explorer_url=self.config.address_url(predicted),
                        message="Certen Abstract Account already exists at this address",
                    )

                fee = decode_uint(fee_word, self.chain_name)
                ensure_sponsor_funds(
                    self.chain_name, self.sponsor, balance,
                    self.config.decimals, self.config.native_token,
                )

                tracker.pending_submission()
                try:
                    return await self._submit(
                        client, key, sponsor_address, owner, adi_url, salt, fee, predicted, tracker
                    )
                except CertenChainError:
                    tracker.fail()
                    raise

    async def _submit(
        self,
        client: TronGridClient,
        key: keys.PrivateKey,
        sponsor_address: str,
        owner: str,
        adi_url: str,
        salt: int,
        fee: int,
        predicted: str,
        tracker: DeploymentTracker,
    ) -> DeployAccountResult:
        logger.info(
            f"Deploying on {self.chain_name}, fee "
            f"{format_units(fee, self.config.decimals)} {self.config.native_token}"
        )
        unsigned = await client.trigger_smart_contract(
            sponsor_address,
            self.config.factory_address,
            CREATE_ACCOUNT_SIGNATURE,
            encode_account_args(owner, adi_url, salt).hex(),
            call_value=fee,
            fee_limit=DEFAULT_FEE_LIMIT,
        )
        tx_id = await client.broadcast_transaction(sign_transaction(unsigned, key))
        tracker.submitted(tx_id)
        self._chain_logger.log_transaction_submitted(
            tx_id, self.chain_name, sponsor_address, self.config.factory_address, fee
        )

        info = await client.wait_for_transaction_info(
            tx_id,
            timeout=self.config.confirmation_timeout_seconds,
            poll_interval=self.config.poll_interval_seconds,
        )
        receipt = info.get("receipt") or {}
        if info.get("result") == "FAILED" or receipt.get("result") != "SUCCESS":
            error = receipt.get("result") or info.get("resMessage", "unknown")
            self._chain_logger.log_transaction_failed(tx_id, self.chain_name, str(error))
            raise TransactionFailedError(
                f"Transaction failed on {self.chain_name}: {error}",
                chain=self.chain_name,
                tx_hash=tx_id,
            )
        gas_used = str(receipt.get("energy_usage_total", 0))
        tracker.confirmed()
        self._chain_logger.log_transaction_confirmed(tx_id, self.chain_name, gas_used)

        event_account = find_deployed_account(_normalize_logs(info.get("log") or []))
        deployed = from_evm_hex(event_account) if event_account else predicted
        if not await self._is_deployed(client, deployed):
            raise DeploymentVerificationError(self.chain_name, tx_id, deployed)
        tracker.verified()

        return DeployAccountResult(
            account_address=deployed,
            already_existed=False,
            transaction_hash=tx_id,
            explorer_url=self.config.tx_url(tx_id, path="transaction"),
            gas_used=gas_used,
            message=f"Certen Abstract Account deployed successfully on {self.chain_name}",
        )

    async def get_address_balance(self, address: str) -> AddressBalanceResult:
        symbol = self.config.native_token
        try:
            async with self._client() as client:
                balance = await client.get_balance(address)
            return AddressBalanceResult(
                address=address,
                balance=format_units(balance, self.config.decimals),
                symbol=symbol,
            )
        except Exception as e:
            logger.warning(f"Balance query failed on {self.chain_name}: {e}")
            return AddressBalanceResult(address=address, balance="0", symbol=symbol, error=str(e))

    async def get_sponsor_status(self) -> SponsorStatusResult:
        factory = self.config.factory_address
        if not self.is_sponsor_configured():
            return sponsor_not_configured(self.chain_name, factory)
        try:
            address = self._sponsor_address()
            async with self._client() as client:
                balance = await client.get_balance(address)
        except Exception as e:
            return sponsor_unreachable(self.chain_name, factory, e)
        return sponsor_status(
            self.chain_name, factory, self.sponsor, balance,
            self.config.decimals, self.config.native_token,
        )
