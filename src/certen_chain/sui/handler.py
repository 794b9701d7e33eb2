"""
Sui Testnet chain handler.

Sui assigns object ids at execution time, so there is no local formula for
the account address. The factory's get_address view is evaluated through
devInspect; when that fails the handler returns a placeholder and reports
it through derivation_path. The real address is read from the created
objects of the deployment transaction.
"""
from __future__ import annotations

import base64
import hashlib
import logging
from typing import Any, Callable, Dict, List, Optional

from nacl.signing import SigningKey

from ..config import ChainConfig, SponsorConfig
from ..derivation import derive_owner32, derive_salt64, validate_identity
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
from .bcs import (
    CallArg,
    ObjectRefArg,
    PureArg,
    SharedObjectArg,
    encode_bytes,
    encode_string,
    encode_u64,
    move_call_transaction_kind,
)
from .client import SuiClient

logger = logging.getLogger(__name__)

MODULE = "certen_account_factory"
GAS_BUDGET = 50_000_000  # MIST

ED25519_FLAG = b"\x00"
# IntentScope::TransactionData, IntentVersion::V0, AppId::Sui
TRANSACTION_INTENT = b"\x00\x00\x00"

ClientFactory = Callable[[ChainConfig], SuiClient]


def default_client_factory(config: ChainConfig) -> SuiClient:
    return SuiClient(config.rpc_url, config.name, timeout=config.http_timeout_seconds)


def load_signing_key(secret: str) -> SigningKey:
    """Ed25519 key from a base64 secret (32-byte seed, 33 bytes with scheme flag, or 64 bytes)."""
    try:
        raw = base64.b64decode(secret, validate=True)
    except ValueError as e:
        raise ConfigurationError(f"Invalid Sui sponsor key: {e}") from e
    if len(raw) == 33 and raw[:1] == ED25519_FLAG:
        raw = raw[1:]
    elif len(raw) == 64:
        raw = raw[:32]
    if len(raw) != 32:
        raise ConfigurationError("Invalid Sui sponsor key: expected a 32-byte ed25519 seed")
    return SigningKey(raw)


def sui_address(key: SigningKey) -> str:
    """blake2b-256(flag || public_key)"""
    digest = hashlib.blake2b(ED25519_FLAG + bytes(key.verify_key), digest_size=32).digest()
    return "0x" + digest.hex()


def sign_transaction(tx_bytes: bytes, key: SigningKey) -> bytes:
    """Serialized signature: flag || ed25519(blake2b-256(intent || tx)) || public_key."""
    digest = hashlib.blake2b(TRANSACTION_INTENT + tx_bytes, digest_size=32).digest()
    signature = key.sign(digest).signature
    return ED25519_FLAG + signature + bytes(key.verify_key)


def placeholder_address(adi_url: str) -> str:
    return "0x" + derive_owner32(adi_url).hex()


class SuiChainHandler:
    """Account prediction and sponsored deployment on Sui Testnet."""

    supports_pre_deployment_prediction = False

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

    def _client(self) -> SuiClient:
        return self._client_factory(self.config)

    async def _factory_arg(self, client: SuiClient) -> CallArg:
        object_id = self.config.factory_object_id or self.config.factory_address
        data = await client.get_object(object_id, show_owner=True)
        if data is None:
            raise ChainRPCError(
                f"Factory object {object_id} not found on {self.chain_name}",
                chain=self.chain_name,
                method="sui_getObject",
            )
        owner = data.get("owner")
        if isinstance(owner, dict) and "Shared" in owner:
            return SharedObjectArg(
                object_id, int(owner["Shared"]["initial_shared_version"]), mutable=False
            )
        return ObjectRefArg(object_id, int(data["version"]), data["digest"])

    async def _predict(self, client: SuiClient, adi_url: str) -> str:
        inputs: List[CallArg] = [
            await self._factory_arg(client),
            PureArg(encode_bytes(derive_owner32(adi_url))),
            PureArg(encode_string(adi_url)),
            PureArg(encode_u64(derive_salt64(adi_url))),
        ]
        tx_kind = move_call_transaction_kind(
            self.config.factory_address, MODULE, "get_address", inputs
        )
        result = await client.dev_inspect(tx_kind)
        if result.get("error"):
            raise ChainRPCError(
                f"get_address failed on {self.chain_name}: {result['error']}",
                chain=self.chain_name,
                method="sui_devInspectTransactionBlock",
                rpc_error=result["error"],
            )
        try:
            value, _type = result["results"][0]["returnValues"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ChainRPCError(
                f"get_address returned no value on {self.chain_name}",
                chain=self.chain_name,
                method="sui_devInspectTransactionBlock",
            ) from e
        raw = bytes(value)
        if len(raw) != 32 or not any(raw):
            raise InvalidFactoryResponseError(self.chain_name, returned="0x" + raw.hex())
        return "0x" + raw.hex()

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        validate_identity(adi_url)
        async with self._chain_logger.operation_context(
            OperationType.ADDRESS_DERIVATION, self.chain_name, adi_url=adi_url
        ):
            async with self._client() as client:
                try:
                    address = await self._predict(client, adi_url)
                except ChainRPCError as e:
                    address = placeholder_address(adi_url)
                    self._chain_logger.log_derivation(
                        self.chain_name, adi_url, address,
                        DerivationPath.PLACEHOLDER.value, reason=str(e),
                    )
                    return AccountAddressResult(
                        account_address=address,
                        is_deployed=False,
                        explorer_url=self.config.address_url(address, path="object"),
                        derivation_path=DerivationPath.PLACEHOLDER,
                    )
                self._chain_logger.log_derivation(
                    self.chain_name, adi_url, address, DerivationPath.ONCHAIN.value
                )
                is_deployed = await client.get_object(address) is not None

        return AccountAddressResult(
            account_address=address,
            is_deployed=is_deployed,
            explorer_url=self.config.address_url(address, path="object"),
            derivation_path=DerivationPath.ONCHAIN,
        )

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        validate_identity(adi_url)
        if not self.is_sponsor_configured():
            raise SponsorNotConfiguredError("Sui")

        tracker = DeploymentTracker(self.chain_name, adi_url, self._chain_logger)
        async with self._chain_logger.operation_context(
            OperationType.DEPLOYMENT, self.chain_name, adi_url=adi_url
        ) as op:
            async with self._client() as client:
                # A placeholder cannot answer "already deployed?", so require the view here
                predicted = await self._predict(client, adi_url)
                tracker.predicted()
                op.metadata["account"] = predicted

                if await client.get_object(predicted) is not None:
                    tracker.already_deployed()
                    return DeployAccountResult(
                        account_address=predicted,
                        already_existed=True,
                        transaction_hash=None,
                        explorer_url=self.config.address_url(predicted, path="object"),
                        message="Certen Abstract Account already exists at this address",
                    )

                key = load_signing_key(self.sponsor.private_key)
                sender = sui_address(key)
                balance = await client.get_balance(sender)
                ensure_sponsor_funds(
                    self.chain_name, self.sponsor, balance,
                    self.config.decimals, self.config.native_token,
                )

                tracker.pending_submission()
                try:
                    return await self._submit(client, key, sender, adi_url, predicted, tracker)
                except CertenChainError:
                    tracker.fail()
                    raise

    def _created_account(self, changes: List[Dict[str, Any]]) -> Optional[str]:
        """Object id of the account created by the factory package."""
        package = self.config.factory_address.lower()
        for change in changes:
            if change.get("type") != "created":
                continue
            object_type = (change.get("objectType") or "").lower()
            if object_type.startswith(package + "::"):
                return change.get("objectId")
        return None

    async def _submit(
        self,
        client: SuiClient,
        key: SigningKey,
        sender: str,
        adi_url: str,
        predicted: str,
        tracker: DeploymentTracker,
    ) -> DeployAccountResult:
        tx_bytes = await client.unsafe_move_call(
            sender,
            self.config.factory_address,
            MODULE,
            "create_account",
            [
                self.config.factory_object_id or self.config.factory_address,
                list(derive_owner32(adi_url)),
                adi_url,
                str(derive_salt64(adi_url)),
            ],
            GAS_BUDGET,
        )
        result = await client.execute_transaction(tx_bytes, sign_transaction(tx_bytes, key))
        digest = result["digest"]
        tracker.submitted(digest)
        self._chain_logger.log_transaction_submitted(
            digest, self.chain_name, sender, self.config.factory_address
        )

        effects = result.get("effects") or {}
        status = effects.get("status") or {}
        if status.get("status") != "success":
            error = status.get("error", "unknown")
            self._chain_logger.log_transaction_failed(digest, self.chain_name, error)
            raise TransactionFailedError(
                f"Transaction failed on {self.chain_name}: {error}",
                chain=self.chain_name,
                tx_hash=digest,
            )
        gas = effects.get("gasUsed") or {}
        gas_used = str(
            int(gas.get("computationCost", 0))
            + int(gas.get("storageCost", 0))
            - int(gas.get("storageRebate", 0))
        )
        tracker.confirmed()
        self._chain_logger.log_transaction_confirmed(digest, self.chain_name, gas_used)

        address = self._created_account(result.get("objectChanges") or []) or predicted
        if await client.get_object(address) is None:
            raise DeploymentVerificationError(self.chain_name, digest, address)
        tracker.verified()

        return DeployAccountResult(
            account_address=address,
            already_existed=False,
            transaction_hash=digest,
            explorer_url=self.config.tx_url(digest),
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
            sender = sui_address(load_signing_key(self.sponsor.private_key))
            async with self._client() as client:
                balance = await client.get_balance(sender)
        except Exception as e:
            return sponsor_unreachable(self.chain_name, factory, e)
        return sponsor_status(
            self.chain_name, factory, self.sponsor, balance,
            self.config.decimals, self.config.native_token,
        )
