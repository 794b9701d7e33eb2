"""
Solana Devnet chain handler.

The account address is a program-derived address of the factory program,
so prediction is purely local and always authoritative; the RPC node is
only asked whether the account exists.
"""
from __future__ import annotations

import base64
import logging
from typing import Callable, List, Optional

from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..config import ChainConfig, SponsorConfig
from ..derivation import validate_identity
from ..exceptions import (
    CertenChainError,
    DeploymentVerificationError,
    SponsorNotConfiguredError,
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
from .client import SolanaClient
from .program import create_account_instruction, find_account_address, load_keypair

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ChainConfig], SolanaClient]


def default_client_factory(config: ChainConfig) -> SolanaClient:
    return SolanaClient(config.rpc_url, config.name, timeout=config.http_timeout_seconds)


class SolanaChainHandler:
    """Account prediction and sponsored deployment on Solana Devnet."""

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
        self.factory_program = Pubkey.from_string(config.factory_address)
        self._client_factory = client_factory or default_client_factory
        self._chain_logger = chain_logger or get_chain_logger()

    def is_sponsor_configured(self) -> bool:
        return self.sponsor.is_configured

    def _client(self) -> SolanaClient:
        return self._client_factory(self.config)

    def derive_address(self, adi_url: str) -> str:
        pda, _ = find_account_address(adi_url, self.factory_program)
        return str(pda)

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        validate_identity(adi_url)
        address = self.derive_address(adi_url)
        async with self._chain_logger.operation_context(
            OperationType.ADDRESS_DERIVATION, self.chain_name, adi_url=adi_url
        ):
            self._chain_logger.log_derivation(
                self.chain_name, adi_url, address, DerivationPath.LOCAL.value
            )
            async with self._client() as client:
                is_deployed = await client.get_account_info(address) is not None
        return AccountAddressResult(
            account_address=address,
            is_deployed=is_deployed,
            explorer_url=self.config.address_url(address, path="account"),
            derivation_path=DerivationPath.LOCAL,
        )

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        validate_identity(adi_url)
        if not self.is_sponsor_configured():
            raise SponsorNotConfiguredError("Solana")

        tracker = DeploymentTracker(self.chain_name, adi_url, self._chain_logger)
        address = self.derive_address(adi_url)
        tracker.predicted()

        async with self._chain_logger.operation_context(
            OperationType.DEPLOYMENT, self.chain_name, adi_url=adi_url, account=address
        ):
            async with self._client() as client:
                if await client.get_account_info(address) is not None:
                    tracker.already_deployed()
                    return DeployAccountResult(
                        account_address=address,
                        already_existed=True,
                        transaction_hash=None,
                        explorer_url=self.config.address_url(address, path="account"),
                        message="Certen Abstract Account already exists at this address",
                    )

                keypair = load_keypair(self.sponsor.private_key)
                balance = await client.get_balance(str(keypair.pubkey()))
                ensure_sponsor_funds(
                    self.chain_name, self.sponsor, balance,
                    self.config.decimals, self.config.native_token,
                )

                tracker.pending_submission()
                try:
                    instruction = create_account_instruction(
                        adi_url, keypair.pubkey(), self.factory_program
                    )
                    blockhash = Hash.from_string(await client.get_latest_blockhash())
                    message = Message.new_with_blockhash([instruction], keypair.pubkey(), blockhash)
                    tx = Transaction([keypair], message, blockhash)

                    signature = await client.send_raw_transaction(
                        base64.b64encode(bytes(tx)).decode("ascii")
                    )
                    tracker.submitted(signature)
                    self._chain_logger.log_transaction_submitted(
                        signature, self.chain_name, str(keypair.pubkey()), str(self.factory_program)
                    )

                    await client.wait_for_confirmation(
                        signature,
                        timeout=self.config.confirmation_timeout_seconds,
                        poll_interval=self.config.poll_interval_seconds,
                    )
                    tracker.confirmed()
                    self._chain_logger.log_transaction_confirmed(signature, self.chain_name)

                    if await client.get_account_info(address) is None:
                        raise DeploymentVerificationError(self.chain_name, signature, address)
                    tracker.verified()
                except CertenChainError as e:
                    if tracker.tx_hash:
                        self._chain_logger.log_transaction_failed(
                            tracker.tx_hash, self.chain_name, str(e)
                        )
                    tracker.fail()
                    raise

        return DeployAccountResult(
            account_address=address,
            already_existed=False,
            transaction_hash=signature,
            explorer_url=self.config.tx_url(signature),
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
            keypair = load_keypair(self.sponsor.private_key)
            async with self._client() as client:
                balance = await client.get_balance(str(keypair.pubkey()))
        except Exception as e:
            return sponsor_unreachable(self.chain_name, factory, e)
        return sponsor_status(
            self.chain_name, factory, self.sponsor, balance,
            self.config.decimals, self.config.native_token,
        )
