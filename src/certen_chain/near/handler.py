"""
NEAR Testnet chain handler.

Accounts are named sub-accounts of the factory account. The factory derives
the sub-account name from keccak256(owner || adi_url || salt), so the name
can be reproduced locally when the get_account_id view is unavailable.
"""
from __future__ import annotations

import hashlib
import json
import logging
import struct
from typing import Any, Callable, Dict, List, Optional

import base58
from eth_utils import keccak
from nacl.signing import SigningKey

from ..config import ChainConfig, SponsorConfig
from ..derivation import derive_evm_owner, derive_owner32, derive_salt53, validate_identity
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
from .borsh import FunctionCall, Transaction, serialize_signed_transaction
from .client import NearClient

logger = logging.getLogger(__name__)

CREATE_ACCOUNT_GAS = 300 * 10 ** 12  # 300 TGas
# 8 NEAR storage + 0.5 NEAR factory fee + headroom
CREATE_ACCOUNT_DEPOSIT = 10 * 10 ** 24
KEY_PREFIX = "ed25519:"

ClientFactory = Callable[[ChainConfig], NearClient]


def default_client_factory(config: ChainConfig) -> NearClient:
    return NearClient(config.rpc_url, config.name, timeout=config.http_timeout_seconds)


def owner_account(adi_url: str) -> str:
    """64-char hex implicit account id of the identity owner."""
    return derive_owner32(adi_url).hex()


def compute_account_id(adi_url: str, factory_account: str) -> str:
    """keccak256(owner || adi_url || salt_le)[:16] as hex, under the factory account."""
    data = (
        owner_account(adi_url).encode("utf-8")
        + adi_url.encode("utf-8")
        + struct.pack("<Q", derive_salt53(adi_url))
    )
    return f"{keccak(data)[:16].hex()}.{factory_account}"


def load_signing_key(private_key: str) -> SigningKey:
    """Key from ``ed25519:<base58>`` (64-byte secret or 32-byte seed)."""
    raw = private_key.strip().removeprefix(KEY_PREFIX)
    try:
        secret = base58.b58decode(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid NEAR sponsor key: {e}") from e
    if len(secret) not in (32, 64):
        raise ConfigurationError("Invalid NEAR sponsor key: expected 32 or 64 bytes")
    return SigningKey(secret[:32])


def public_key_string(key: SigningKey) -> str:
    return KEY_PREFIX + base58.b58encode(bytes(key.verify_key)).decode("ascii")


def extract_outcome_failure(outcome: Dict[str, Any]) -> Optional[str]:
    """Failure description from a final execution outcome, or None on success."""
    status = outcome.get("status") or {}
    if isinstance(status, dict) and status.get("Failure"):
        return json.dumps(status["Failure"])

    tx_status = ((outcome.get("transaction_outcome") or {}).get("outcome") or {}).get("status") or {}
    if isinstance(tx_status, dict) and tx_status.get("Failure"):
        return json.dumps(tx_status["Failure"])

    for receipt in outcome.get("receipts_outcome") or []:
        receipt_status = (receipt.get("outcome") or {}).get("status") or {}
        if isinstance(receipt_status, dict) and receipt_status.get("Failure"):
            return json.dumps(receipt_status["Failure"])
    return None


class NearChainHandler:
    """Account prediction and sponsored deployment on NEAR Testnet."""

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
        """Also needs the named sponsor account, since NEAR keys do not imply an account id."""
        return self.sponsor.is_configured and bool(self.sponsor.account_id)

    def _client(self) -> NearClient:
        return self._client_factory(self.config)

    async def _resolve(self, client: NearClient, adi_url: str) -> tuple[str, DerivationPath]:
        args = {
            "owner": owner_account(adi_url),
            "adi_url": adi_url,
            "salt": derive_salt53(adi_url),
        }
        try:
            account_id = await client.call_view_function(
                self.config.factory_address, "get_account_id", args
            )
        except (ChainRPCError, ValueError, KeyError) as e:
            account_id = compute_account_id(adi_url, self.config.factory_address)
            self._chain_logger.log_derivation(
                self.chain_name, adi_url, account_id, DerivationPath.LOCAL.value, reason=str(e)
            )
            return account_id, DerivationPath.LOCAL

        if not account_id or not isinstance(account_id, str):
            raise InvalidFactoryResponseError(self.chain_name, returned=str(account_id))
        self._chain_logger.log_derivation(
            self.chain_name, adi_url, account_id, DerivationPath.ONCHAIN.value
        )
        return account_id, DerivationPath.ONCHAIN

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        validate_identity(adi_url)
        async with self._chain_logger.operation_context(
            OperationType.ADDRESS_DERIVATION, self.chain_name, adi_url=adi_url
        ):
            async with self._client() as client:
                account_id, path = await self._resolve(client, adi_url)
                is_deployed = await client.view_account(account_id) is not None
        return AccountAddressResult(
            account_address=account_id,
            is_deployed=is_deployed,
            explorer_url=self.config.address_url(account_id),
            derivation_path=path,
        )

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        validate_identity(adi_url)
        if not self.is_sponsor_configured():
            raise SponsorNotConfiguredError("NEAR")

        tracker = DeploymentTracker(self.chain_name, adi_url, self._chain_logger)
        async with self._chain_logger.operation_context(
            OperationType.DEPLOYMENT, self.chain_name, adi_url=adi_url
        ) as op:
            async with self._client() as client:
                account_id, _ = await self._resolve(client, adi_url)
                tracker.predicted()
                op.metadata["account"] = account_id

                if await client.view_account(account_id) is not None:
                    tracker.already_deployed()
                    return DeployAccountResult(
                        account_address=account_id,
                        already_existed=True,
                        transaction_hash=None,
                        explorer_url=self.config.address_url(account_id),
                        message="Certen Abstract Account already exists at this address",
                    )

                key = load_signing_key(self.sponsor.private_key)
                balance = await client.get_balance(self.sponsor.account_id)
                ensure_sponsor_funds(
                    self.chain_name, self.sponsor, balance,
                    self.config.decimals, self.config.native_token,
                )

                tracker.pending_submission()
                try:
                    return await self._submit(client, key, adi_url, account_id, tracker)
                except CertenChainError:
                    tracker.fail()
                    raise

    async def _submit(
        self,
        client: NearClient,
        key: SigningKey,
        adi_url: str,
        account_id: str,
        tracker: DeploymentTracker,
    ) -> DeployAccountResult:
        sponsor_id = self.sponsor.account_id
        access_key = await client.view_access_key(sponsor_id, public_key_string(key))
        args = {
            "owner": owner_account(adi_url),
            "owner_eth": derive_evm_owner(adi_url),
            "adi_url": adi_url,
            "salt": derive_salt53(adi_url),
        }
        logger.info(f"Deploying on {self.chain_name}: {args} -> {account_id}")

        transaction = Transaction(
            signer_id=sponsor_id,
            public_key=bytes(key.verify_key),
            nonce=int(access_key["nonce"]) + 1,
            receiver_id=self.config.factory_address,
            block_hash=base58.b58decode(access_key["block_hash"]),
            actions=[
                FunctionCall(
                    method_name="create_account",
                    args=json.dumps(args).encode("utf-8"),
                    gas=CREATE_ACCOUNT_GAS,
                    deposit=CREATE_ACCOUNT_DEPOSIT,
                )
            ],
        )
        digest = hashlib.sha256(transaction.serialize()).digest()
        tx_hash = base58.b58encode(digest).decode("ascii")
        signed = serialize_signed_transaction(transaction, key.sign(digest).signature)

        outcome = await client.broadcast_tx_commit(signed)
        tx_hash = (outcome.get("transaction_outcome") or {}).get("id") or tx_hash
        tracker.submitted(tx_hash)
        self._chain_logger.log_transaction_submitted(
            tx_hash, self.chain_name, sponsor_id, self.config.factory_address,
            CREATE_ACCOUNT_DEPOSIT,
        )

        failure = extract_outcome_failure(outcome)
        if failure:
            self._chain_logger.log_transaction_failed(tx_hash, self.chain_name, failure)
            raise TransactionFailedError(
                f"NEAR deployment transaction failed on-chain: {failure}",
                chain=self.chain_name,
                tx_hash=tx_hash,
            )
        tracker.confirmed()
        self._chain_logger.log_transaction_confirmed(tx_hash, self.chain_name)

        if await client.view_account(account_id) is None:
            raise DeploymentVerificationError(self.chain_name, tx_hash, account_id)
        tracker.verified()

        return DeployAccountResult(
            account_address=account_id,
            already_existed=False,
            transaction_hash=tx_hash,
            explorer_url=self.config.tx_url(tx_hash, path="txns"),
            message=f"Certen Abstract Account deployed successfully on {self.chain_name}",
        )

    async def get_address_balance(self, address: str) -> AddressBalanceResult:
        symbol = self.config.native_token
        try:
            async with self._client() as client:
                account = await client.view_account(address)
        except Exception as e:
            logger.warning(f"Balance query failed on {self.chain_name}: {e}")
            return AddressBalanceResult(address=address, balance="0", symbol=symbol, error=str(e))
        if account is None:
            return AddressBalanceResult(
                address=address, balance="0", symbol=symbol, error="Account not created"
            )
        return AddressBalanceResult(
            address=address,
            balance=format_units(int(account["amount"]), self.config.decimals),
            symbol=symbol,
        )

    async def get_sponsor_status(self) -> SponsorStatusResult:
        factory = self.config.factory_address
        if not self.is_sponsor_configured():
            return sponsor_not_configured(self.chain_name, factory)
        try:
            async with self._client() as client:
                balance = await client.get_balance(self.sponsor.account_id)
        except Exception as e:
            return sponsor_unreachable(self.chain_name, factory, e)
        return sponsor_status(
            self.chain_name, factory, self.sponsor, balance,
            self.config.decimals, self.config.native_token,
        )
