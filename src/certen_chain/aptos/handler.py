"""
Aptos Testnet chain handler.

The factory creates each account as a resource account of the factory
package, so when the get_address view is unavailable the address can be
reproduced locally from the same seed.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from nacl.signing import SigningKey

from ..config import ChainConfig, SponsorConfig
from ..derivation import derive_owner32, derive_salt64, validate_identity
from ..exceptions import (
    CertenChainError,
    ChainRPCError,
    ConfirmationTimeoutError,
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
from .account import (
    load_signing_key,
    normalize_address,
    predict_account_address,
    signer_address,
)
from .client import AptosClient

logger = logging.getLogger(__name__)

MODULE = "certen_account_factory"
MAX_GAS_AMOUNT = 200_000
EXPIRATION_SECONDS = 600

ClientFactory = Callable[[ChainConfig], AptosClient]


def default_client_factory(config: ChainConfig) -> AptosClient:
    return AptosClient(config.rpc_url, config.name, timeout=config.http_timeout_seconds)


class AptosChainHandler:
    """Account prediction and sponsored deployment on Aptos Testnet."""

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

    def _client(self) -> AptosClient:
        return self._client_factory(self.config)

    def _function(self, name: str) -> str:
        return f"{self.config.factory_address}::{MODULE}::{name}"

    @staticmethod
    def _arguments(adi_url: str) -> List[str]:
        return ["0x" + derive_owner32(adi_url).hex(), adi_url, str(derive_salt64(adi_url))]

    async def _predict(self, client: AptosClient, adi_url: str) -> str:
        result = await client.view(self._function("get_address"), self._arguments(adi_url))
        returned = result[0] if result else None
        if not returned or int(returned, 16) == 0:
            raise InvalidFactoryResponseError(self.chain_name, returned=returned)
        return normalize_address(returned)

    async def _resolve(self, client: AptosClient, adi_url: str) -> tuple[str, DerivationPath]:
        try:
            address = await self._predict(client, adi_url)
        except ChainRPCError as e:
            address = predict_account_address(self.config.factory_address, adi_url)
            self._chain_logger.log_derivation(
                self.chain_name, adi_url, address, DerivationPath.LOCAL.value, reason=str(e)
            )
            return address, DerivationPath.LOCAL
        self._chain_logger.log_derivation(
            self.chain_name, adi_url, address, DerivationPath.ONCHAIN.value
        )
        return address, DerivationPath.ONCHAIN

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        validate_identity(adi_url)
        async with self._chain_logger.operation_context(
            OperationType.ADDRESS_DERIVATION, self.chain_name, adi_url=adi_url
        ):
            async with self._client() as client:
                address, path = await self._resolve(client, adi_url)
                is_deployed = await client.get_account(address) is not None
        return AccountAddressResult(
            account_address=address,
            is_deployed=is_deployed,
            explorer_url=self.config.address_url(address, path="account"),
            derivation_path=path,
        )

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        validate_identity(adi_url)
        if not self.is_sponsor_configured():
            raise SponsorNotConfiguredError("Aptos")

        tracker = DeploymentTracker(self.chain_name, adi_url, self._chain_logger)
        async with self._chain_logger.operation_context(
            OperationType.DEPLOYMENT, self.chain_name, adi_url=adi_url
        ) as op:
            async with self._client() as client:
                address, _ = await self._resolve(client, adi_url)
                tracker.predicted()
                op.metadata["account"] = address

                if await client.get_account(address) is not None:
                    tracker.already_deployed()
                    return DeployAccountResult(
                        account_address=address,
                        already_existed=True,
                        transaction_hash=None,
                        explorer_url=self.config.address_url(address, path="account"),
                        message="Certen Abstract Account already exists at this address",
                    )

                key = load_signing_key(self.sponsor.private_key)
                sender = signer_address(key)
                balance, sequence_number, gas_price = await asyncio.gather(
                    client.get_balance(sender),
                    client.get_sequence_number(sender),
                    client.estimate_gas_price(),
                )
                ensure_sponsor_funds(
                    self.chain_name, self.sponsor, balance,
                    self.config.decimals, self.config.native_token,
                )

                tracker.pending_submission()
                try:
                    return await self._submit(
                        client, key, sender, sequence_number, gas_price, adi_url, address, tracker
                    )
                except CertenChainError:
                    tracker.fail()
                    raise

    def _transaction_request(
        self, sender: str, sequence_number: int, gas_price: int, adi_url: str
    ) -> Dict[str, Any]:
        return {
            "sender": sender,
            "sequence_number": str(sequence_number),
            "max_gas_amount": str(MAX_GAS_AMOUNT),
            "gas_unit_price": str(gas_price),
            "expiration_timestamp_secs": str(int(time.time()) + EXPIRATION_SECONDS),
            "payload": {
                "type": "entry_function_payload",
                "function": self._function("create_account"),
                "type_arguments": [],
                "arguments": self._arguments(adi_url),
            },
        }

    async def _submit(
        self,
        client: AptosClient,
        key: SigningKey,
        sender: str,
        sequence_number: int,
        gas_price: int,
        adi_url: str,
        address: str,
        tracker: DeploymentTracker,
    ) -> DeployAccountResult:
        request = self._transaction_request(sender, sequence_number, gas_price, adi_url)
        signing_message = await client.encode_submission(request)
        signature = key.sign(signing_message).signature
        request["signature"] = {
            "type": "ed25519_signature",
            "public_key": "0x" + bytes(key.verify_key).hex(),
            "signature": "0x" + signature.hex(),
        }

        tx_hash = await client.submit_transaction(request)
        tracker.submitted(tx_hash)
        self._chain_logger.log_transaction_submitted(
            tx_hash, self.chain_name, sender, self.config.factory_address
        )

        committed = await self._await_commit(client, tx_hash)
        if not committed.get("success"):
            vm_status = committed.get("vm_status", "unknown")
            self._chain_logger.log_transaction_failed(tx_hash, self.chain_name, vm_status)
            raise TransactionFailedError(
                f"Transaction failed on {self.chain_name}: {vm_status}",
                chain=self.chain_name,
                tx_hash=tx_hash,
            )
        gas_used = committed.get("gas_used")
        tracker.confirmed()
        self._chain_logger.log_transaction_confirmed(tx_hash, self.chain_name, gas_used)

        if await client.get_account(address) is None:
            raise DeploymentVerificationError(self.chain_name, tx_hash, address)
        tracker.verified()

        return DeployAccountResult(
            account_address=address,
            already_existed=False,
            transaction_hash=tx_hash,
            explorer_url=self.config.tx_url(tx_hash, path="txn"),
            gas_used=gas_used,
            message=f"Certen Abstract Account deployed successfully on {self.chain_name}",
        )

    async def _await_commit(self, client: AptosClient, tx_hash: str) -> Dict[str, Any]:
        """wait_by_hash may return while still pending; keep polling until committed."""
        deadline = time.monotonic() + self.config.confirmation_timeout_seconds
        txn = await client.wait_for_transaction(tx_hash)
        while txn is None or txn.get("type") == "pending_transaction":
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(
                    self.chain_name, tx_hash, self.config.confirmation_timeout_seconds
                )
            await asyncio.sleep(self.config.poll_interval_seconds)
            txn = await client.get_transaction(tx_hash)
        return txn

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
            sender = signer_address(load_signing_key(self.sponsor.private_key))
            async with self._client() as client:
                balance = await client.get_balance(sender)
        except Exception as e:
            return sponsor_unreachable(self.chain_name, factory, e)
        return sponsor_status(
            self.chain_name, factory, self.sponsor, balance,
            self.config.decimals, self.config.native_token,
        )
