"""
TON Testnet chain handler.

The factory contract exposes a getAddress(owner, adiUrl, salt) getter that
computes the account's StateInit address. Deployment is an internal message
from the sponsor's v4r2 wallet carrying CreateAccountIfNotExists; the
factory then deploys the account in a follow-up transaction, so success is
judged by the account becoming active rather than by the wallet transfer.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Callable, List, Optional, Tuple

from tonsdk.boc import Cell, begin_cell
from tonsdk.contract.wallet import WalletVersionEnum, Wallets
from tonsdk.utils import Address

from ..config import ChainConfig, SponsorConfig
from ..derivation import derive_owner32, derive_salt64, validate_identity
from ..exceptions import (
    CertenChainError,
    ChainRPCError,
    ConfigurationError,
    DeploymentVerificationError,
    InvalidFactoryResponseError,
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
from .client import TonCenterClient, cell_to_b64, stack_cell

logger = logging.getLogger(__name__)

# CRC32C("CreateAccountIfNotExists") | 0x80000000, from the factory's compiled ABI
OP_CREATE_ACCOUNT_IF_NOT_EXISTS = 3475342255
DEPLOY_VALUE = 50_000_000  # 0.05 TON for gas and storage
SNAKE_CHUNK_BYTES = 127

ClientFactory = Callable[[ChainConfig], TonCenterClient]


def default_client_factory(config: ChainConfig) -> TonCenterClient:
    return TonCenterClient(
        config.rpc_url, config.name, api_key=config.api_key,
        timeout=config.http_timeout_seconds,
    )


def format_address(address: Address) -> str:
    """User-friendly, url-safe, bounceable form."""
    return address.to_string(True, True, True)


def owner_address(adi_url: str) -> Address:
    """Workchain 0 address whose hash part is the identity's owner bytes."""
    return Address(f"0:{derive_owner32(adi_url).hex()}")


def string_tail(text: str) -> Cell:
    """Snake-encoded string: 127-byte chunks chained through the first ref."""
    data = text.encode("utf-8")
    chunks = [data[i:i + SNAKE_CHUNK_BYTES] for i in range(0, len(data), SNAKE_CHUNK_BYTES)] or [b""]
    tail: Optional[Cell] = None
    for chunk in reversed(chunks):
        builder = begin_cell().store_bytes(chunk)
        if tail is not None:
            builder = builder.store_ref(tail)
        tail = builder.end_cell()
    return tail


def get_address_stack(adi_url: str) -> List[List[str]]:
    """Arguments of the factory getAddress getter in toncenter stack form."""
    owner = begin_cell().store_address(owner_address(adi_url)).end_cell()
    return [
        ["tvm.Slice", cell_to_b64(owner)],
        ["tvm.Cell", cell_to_b64(string_tail(adi_url))],
        ["num", str(derive_salt64(adi_url))],
    ]


def create_account_body(adi_url: str) -> Cell:
    """op:uint32 owner:Address adiUrl:^String salt:uint64"""
    return (
        begin_cell()
        .store_uint(OP_CREATE_ACCOUNT_IF_NOT_EXISTS, 32)
        .store_address(owner_address(adi_url))
        .store_ref(string_tail(adi_url))
        .store_uint(derive_salt64(adi_url), 64)
        .end_cell()
    )


def load_wallet(mnemonic: str) -> Any:
    """v4r2 wallet (workchain 0) for the sponsor mnemonic."""
    words = mnemonic.split()
    try:
        _words, _public_key, _private_key, wallet = Wallets.from_mnemonics(
            words, WalletVersionEnum.v4r2, 0
        )
    except Exception as e:
        raise ConfigurationError(f"Invalid TON sponsor mnemonic: {e}") from e
    return wallet


def placeholder_address(factory_address: str) -> str:
    return f"pending-{factory_address}"


class TonChainHandler:
    """Account prediction and sponsored deployment on TON Testnet."""

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
        return self.sponsor.enabled and bool(self.sponsor.mnemonic)

    def _client(self) -> TonCenterClient:
        return self._client_factory(self.config)

    async def _predict(self, client: TonCenterClient, adi_url: str) -> str:
        stack = await client.run_get_method(
            self.config.factory_address, "getAddress", get_address_stack(adi_url)
        )
        if not stack:
            raise InvalidFactoryResponseError(self.chain_name, returned="empty stack")
        try:
            address = stack_cell(stack[0]).begin_parse().read_msg_addr()
        except ValueError as e:
            raise InvalidFactoryResponseError(self.chain_name, returned=str(stack[0])) from e
        if address is None:
            raise InvalidFactoryResponseError(self.chain_name, returned="addr_none")
        return format_address(address)

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        validate_identity(adi_url)
        factory = self.config.factory_address
        async with self._chain_logger.operation_context(
            OperationType.ADDRESS_DERIVATION, self.chain_name, adi_url=adi_url
        ):
            async with self._client() as client:
                try:
                    address = await self._predict(client, adi_url)
                except ChainRPCError as e:
                    placeholder = placeholder_address(factory)
                    self._chain_logger.log_derivation(
                        self.chain_name, adi_url, placeholder,
                        DerivationPath.PLACEHOLDER.value, reason=str(e),
                    )
                    return AccountAddressResult(
                        account_address=placeholder,
                        is_deployed=False,
                        explorer_url=self.config.address_url(factory),
                        derivation_path=DerivationPath.PLACEHOLDER,
                    )
                self._chain_logger.log_derivation(
                    self.chain_name, adi_url, address, DerivationPath.ONCHAIN.value
                )
                is_deployed = await client.get_address_state(address) == "active"

        return AccountAddressResult(
            account_address=address,
            is_deployed=is_deployed,
            explorer_url=self.config.address_url(address),
            derivation_path=DerivationPath.ONCHAIN,
        )

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        validate_identity(adi_url)
        if not self.is_sponsor_configured():
            raise SponsorNotConfiguredError("TON")

        tracker = DeploymentTracker(self.chain_name, adi_url, self._chain_logger)
        async with self._chain_logger.operation_context(
            OperationType.DEPLOYMENT, self.chain_name, adi_url=adi_url
        ) as op:
            async with self._client() as client:
                predicted = await self._predict(client, adi_url)
                tracker.predicted()
                op.metadata["account"] = predicted

                if await client.get_address_state(predicted) == "active":
                    tracker.already_deployed()
                    return DeployAccountResult(
                        account_address=predicted,
                        already_existed=True,
                        transaction_hash=None,
                        explorer_url=self.config.address_url(predicted),
                        message="Certen Abstract Account already exists at this address",
                    )

                wallet = load_wallet(self.sponsor.mnemonic)
                wallet_address = format_address(wallet.address)
                balance = await client.get_balance(wallet_address)
                ensure_sponsor_funds(
                    self.chain_name, self.sponsor, balance,
                    self.config.decimals, self.config.native_token,
                )

                tracker.pending_submission()
                try:
                    return await self._submit(
                        client, wallet, wallet_address, adi_url, predicted, tracker
                    )
                except CertenChainError:
                    tracker.fail()
                    raise

    async def _submit(
        self,
        client: TonCenterClient,
        wallet: Any,
        wallet_address: str,
        adi_url: str,
        predicted: str,
        tracker: DeploymentTracker,
    ) -> DeployAccountResult:
        seqno = await client.get_seqno(wallet_address)
        transfer = wallet.create_transfer_message(
            self.config.factory_address,
            DEPLOY_VALUE,
            seqno,
            payload=create_account_body(adi_url),
        )
        message: Cell = transfer["message"]
        message_hash = message.bytes_hash().hex()

        await client.send_boc(bytes(message.to_boc(False)))
        tracker.submitted(message_hash)
        self._chain_logger.log_transaction_submitted(
            message_hash, self.chain_name, wallet_address,
            self.config.factory_address, DEPLOY_VALUE,
        )

        await client.wait_for_seqno(
            wallet_address,
            seqno,
            message_hash,
            timeout=self.config.confirmation_timeout_seconds,
            poll_interval=self.config.poll_interval_seconds,
        )
        tx_hash, lt = await self._latest_transaction(client, wallet_address, seqno)
        tracker.confirmed()
        self._chain_logger.log_transaction_confirmed(tx_hash, self.chain_name)

        await self._await_active(client, predicted, tx_hash)
        tracker.verified()

        return DeployAccountResult(
            account_address=predicted,
            already_existed=False,
            transaction_hash=tx_hash,
            explorer_url=(
                self.config.tx_url(tx_hash) if lt else self.config.address_url(predicted)
            ),
            message=f"Certen Abstract Account deployed successfully on {self.chain_name}",
        )

    async def _latest_transaction(
        self, client: TonCenterClient, wallet_address: str, seqno: int
    ) -> Tuple[str, Optional[str]]:
        """Hash (hex) and lt of the wallet's newest transaction, or a seqno reference."""
        try:
            transactions = await client.get_transactions(wallet_address, limit=1)
        except ChainRPCError as e:
            logger.warning(f"Transaction lookup on {self.chain_name} failed: {e}")
            transactions = []
        if transactions:
            tx_id = transactions[0].get("transaction_id") or {}
            if tx_id.get("hash"):
                return base64.b64decode(tx_id["hash"]).hex(), tx_id.get("lt")
        return f"seqno-{seqno}", None

    async def _await_active(self, client: TonCenterClient, address: str, tx_hash: str) -> None:
        """Wait for the factory's follow-up transaction to activate the account."""
        deadline = time.monotonic() + self.config.confirmation_timeout_seconds
        while True:
            try:
                if await client.get_address_state(address) == "active":
                    return
            except ChainRPCError as e:
                logger.debug(f"State poll for {address} on {self.chain_name} failed: {e}")
            if time.monotonic() >= deadline:
                raise DeploymentVerificationError(self.chain_name, tx_hash, address)
            await asyncio.sleep(self.config.poll_interval_seconds)

    async def get_address_balance(self, address: str) -> AddressBalanceResult:
        symbol = self.config.native_token
        try:
            async with self._client() as client:
                balance = await client.get_balance(address)
            return AddressBalanceResult(
                address=address,
                balance=format_units(balance, self.config.decimals, places=6),
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
            wallet = load_wallet(self.sponsor.mnemonic)
            async with self._client() as client:
                balance = await client.get_balance(format_address(wallet.address))
        except Exception as e:
            return sponsor_unreachable(self.chain_name, factory, e)
        return sponsor_status(
            self.chain_name, factory, self.sponsor, balance,
            self.config.decimals, self.config.native_token,
        )
