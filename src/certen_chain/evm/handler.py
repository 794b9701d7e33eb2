"""
EVM chain handler.

One instance per EVM network. Addresses come from the factory's
getAddress view; when that call fails and the account proxy init code hash
is configured, the CREATE2 address is reproduced locally instead.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from eth_account import Account
from web3 import Web3

from ..config import ChainConfig, SponsorConfig
from ..derivation import (
    EVM_CREATE2_PREFIX,
    account_create2_salt,
    create2_address,
    derive_evm_owner,
    derive_salt256,
    hex_to_bytes,
    is_zero_address,
    validate_identity,
)
from ..exceptions import (
    CertenChainError,
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
from .client import EvmRpcClient
from .factory import AccountFactory, encode_create_account, find_deployed_account

logger = logging.getLogger(__name__)

# Headroom over eth_estimateGas for the factory call
GAS_LIMIT_MULTIPLIER = 1.2

ClientFactory = Callable[[ChainConfig], EvmRpcClient]


def default_client_factory(config: ChainConfig) -> EvmRpcClient:
    return EvmRpcClient(config.rpc_url, config.name, timeout=config.http_timeout_seconds)


class EvmChainHandler:
    """Account prediction and sponsored deployment on one EVM network."""

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

    def _client(self) -> EvmRpcClient:
        return self._client_factory(self.config)

    def _local_address(self, owner: str, adi_url: str, salt: int) -> Optional[str]:
        """CREATE2 reproduction of the factory's getAddress, if configured."""
        if not self.config.account_init_code_hash:
            return None
        raw = create2_address(
            hex_to_bytes(self.config.factory_address),
            account_create2_salt(owner, adi_url, salt),
            hex_to_bytes(self.config.account_init_code_hash),
            prefix=EVM_CREATE2_PREFIX,
        )
        return Web3.to_checksum_address("0x" + raw.hex())

    async def _is_deployed(self, factory: AccountFactory, client: EvmRpcClient, address: str) -> bool:
        """Factory registry check, falling back to the presence of contract code."""
        try:
            return await factory.is_deployed_account(address)
        except ChainRPCError as e:
            logger.warning(f"isDeployedAccount failed on {self.chain_name}, checking code: {e}")
            code = await client.get_code(address)
            return bool(code) and code not in ("0x", "0x0")

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        validate_identity(adi_url)
        owner = derive_evm_owner(adi_url)
        salt = derive_salt256(adi_url)

        async with self._chain_logger.operation_context(
            OperationType.ADDRESS_DERIVATION, self.chain_name, adi_url=adi_url
        ):
            async with self._client() as client:
                factory = AccountFactory(client, self.config.factory_address)
                path = DerivationPath.ONCHAIN
                try:
                    predicted = await factory.get_address(owner, adi_url, salt)
                except ChainRPCError as e:
                    predicted = self._local_address(owner, adi_url, salt)
                    if predicted is None:
                        raise
                    path = DerivationPath.LOCAL
                    self._chain_logger.log_derivation(
                        self.chain_name, adi_url, predicted, path.value, reason=str(e)
                    )
                else:
                    if is_zero_address(predicted):
                        raise InvalidFactoryResponseError(self.chain_name, returned=predicted)
                    self._chain_logger.log_derivation(
                        self.chain_name, adi_url, predicted, path.value
                    )

                if path is DerivationPath.ONCHAIN:
                    is_deployed = await factory.is_deployed_account(predicted)
                else:
                    try:
                        is_deployed = await self._is_deployed(factory, client, predicted)
                    except ChainRPCError as e:
                        logger.warning(f"Existence check failed on {self.chain_name}: {e}")
                        is_deployed = False

        return AccountAddressResult(
            account_address=predicted,
            is_deployed=is_deployed,
            explorer_url=self.config.address_url(predicted),
            derivation_path=path,
        )

    def _load_sponsor_account(self):
        try:
            return Account.from_key(self.sponsor.private_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid EVM sponsor private key: {e}") from e

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        validate_identity(adi_url)
        if not self.is_sponsor_configured():
            raise SponsorNotConfiguredError(
                "EVM", "Sponsored deployment is not configured for EVM chains"
            )

        owner = derive_evm_owner(adi_url)
        salt = derive_salt256(adi_url)
        tracker = DeploymentTracker(self.chain_name, adi_url, self._chain_logger)

        async with self._chain_logger.operation_context(
            OperationType.DEPLOYMENT, self.chain_name, adi_url=adi_url
        ) as op:
            async with self._client() as client:
                factory = AccountFactory(client, self.config.factory_address)
                sponsor = self._load_sponsor_account()

                predicted, balance, fee = await asyncio.gather(
                    factory.get_address(owner, adi_url, salt),
                    client.get_balance(sponsor.address),
                    factory.deployment_fee(),
                )
                if is_zero_address(predicted):
                    raise InvalidFactoryResponseError(self.chain_name, returned=predicted)
                tracker.predicted()
                op.metadata["account"] = predicted

                if await factory.is_deployed_account(predicted):
                    tracker.already_deployed()
                    return DeployAccountResult(
                        account_address=predicted,
                        already_existed=True,
                        transaction_hash=None,
                        explorer_url=self.config.address_url(predicted),
                        message="Certen Abstract Account already exists at this address",
                    )

                ensure_sponsor_funds(
                    self.chain_name, self.sponsor, balance,
                    self.config.decimals, self.config.native_token,
                )

                tracker.pending_submission()
                try:
                    return await self._submit(
                        client, factory, sponsor, owner, adi_url, salt, fee, predicted, tracker
                    )
                except CertenChainError:
                    tracker.fail()
                    raise

    async def _submit(
        self,
        client: EvmRpcClient,
        factory: AccountFactory,
        sponsor,
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
        call = {
            "from": sponsor.address,
            "to": Web3.to_checksum_address(self.config.factory_address),
            "value": hex(fee),
            "data": encode_create_account(owner, adi_url, salt),
        }
        nonce, gas_price, gas_estimate = await asyncio.gather(
            client.get_nonce(sponsor.address),
            client.get_gas_price(),
            client.estimate_gas(call),
        )
        tx = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": int(gas_estimate * GAS_LIMIT_MULTIPLIER),
            "to": call["to"],
            "value": fee,
            "data": call["data"],
            "chainId": self.config.numeric_chain_id,
        }
        signed = sponsor.sign_transaction(tx)
        tx_hash = await client.send_raw_transaction("0x" + bytes(signed.raw_transaction).hex())
        tracker.submitted(tx_hash)
        self._chain_logger.log_transaction_submitted(
            tx_hash, self.chain_name, sponsor.address, self.config.factory_address, fee
        )

        receipt = await client.wait_for_receipt(
            tx_hash,
            timeout=self.config.confirmation_timeout_seconds,
            poll_interval=self.config.poll_interval_seconds,
        )
        if int(receipt.get("status", "0x0"), 16) != 1:
            self._chain_logger.log_transaction_failed(tx_hash, self.chain_name, "reverted")
            raise TransactionFailedError(
                f"Transaction failed on {self.chain_name}",
                chain=self.chain_name,
                tx_hash=tx_hash,
            )
        gas_used = str(int(receipt.get("gasUsed", "0x0"), 16))
        tracker.confirmed()
        self._chain_logger.log_transaction_confirmed(tx_hash, self.chain_name, gas_used)

        deployed = find_deployed_account(receipt.get("logs") or []) or predicted
        if not await self._is_deployed(factory, client, deployed):
            raise DeploymentVerificationError(self.chain_name, tx_hash, deployed)
        tracker.verified()

        return DeployAccountResult(
            account_address=deployed,
            already_existed=False,
            transaction_hash=tx_hash,
            explorer_url=self.config.tx_url(tx_hash),
            gas_used=gas_used,
            message="Certen Abstract Account deployed successfully",
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

    def _sponsor_address(self) -> str:
        if self.sponsor.address:
            return self.sponsor.address
        return self._load_sponsor_account().address

    async def get_sponsor_status(self) -> SponsorStatusResult:
        factory = self.config.factory_address
        if not self.is_sponsor_configured():
            return sponsor_not_configured(self.chain_name, factory)
        try:
            address = self._sponsor_address()
            async with self._chain_logger.operation_context(
                OperationType.SPONSOR_STATUS, self.chain_name
            ):
                async with self._client() as client:
                    balance = await client.get_balance(address)
        except Exception as e:
            return sponsor_unreachable(self.chain_name, factory, e)
        return sponsor_status(
            self.chain_name, factory, self.sponsor, balance,
            self.config.decimals, self.config.native_token,
        )
