"""
Tests for Aptos address math and the Aptos handler.
"""
from __future__ import annotations

import hashlib
import struct
from decimal import Decimal
from typing import Any, Dict, List

import pytest
from nacl.signing import SigningKey, VerifyKey

from certen_chain.aptos.account import (
    account_seed,
    load_signing_key,
    normalize_address,
    predict_account_address,
    resource_account_address,
    signer_address,
)
from certen_chain.aptos.handler import AptosChainHandler
from certen_chain.config import ChainConfig, SponsorConfig
from certen_chain.derivation import derive_owner32, derive_salt64
from certen_chain.exceptions import (
    ChainRPCError,
    ConfigurationError,
    InvalidFactoryResponseError,
    TransactionFailedError,
)
from certen_chain.results import DerivationPath

FACTORY = "0xf3cb210860525f9137f0ba9a088124393e12ce6758ee08d167d92b779d9c5894"
SPONSOR_SEED = "33" * 32
TX_HASH = "0x" + "cd" * 32


@pytest.fixture
def aptos_config():
    return ChainConfig(
        chain_ids=("aptos-testnet",),
        name="Aptos Testnet",
        rpc_url="http://localhost:8080/v1",
        factory_address=FACTORY,
        explorer_url="https://explorer.aptoslabs.com",
        explorer_query="?network=testnet",
        native_token="APT",
        decimals=8,
        confirmation_timeout_seconds=1.0,
        poll_interval_seconds=0.0,
    )


@pytest.fixture
def aptos_sponsor():
    return SponsorConfig(
        chain_name="Aptos", enabled=True, private_key="ed25519-priv-0x" + SPONSOR_SEED,
        min_balance=Decimal("0.1"), symbol="APT",
    )


class FakeAptosClient:
    """Fullnode stand-in whose view answers with the resource account formula."""

    def __init__(self, view_result=None, view_error=None, balance: int = 10 ** 9):
        self.view_result = view_result
        self.view_error = view_error
        self.balance = balance
        self.accounts: set = set()
        self.submitted: List[Dict[str, Any]] = []
        self.predicted = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        pass

    async def view(self, function, arguments, type_arguments=None):
        if self.view_error is not None:
            raise self.view_error
        if self.view_result is not None:
            return [self.view_result]
        return [predict_account_address(FACTORY, arguments[1])]

    async def get_account(self, address):
        return {"sequence_number": "0"} if address in self.accounts else None

    async def get_balance(self, address):
        return self.balance

    async def get_sequence_number(self, address):
        return 3

    async def estimate_gas_price(self):
        return 100

    async def encode_submission(self, request):
        return b"signing-message"

    async def submit_transaction(self, signed_request):
        self.submitted.append(signed_request)
        self.accounts.add(predict_account_address(FACTORY, signed_request["payload"]["arguments"][1]))
        return TX_HASH

    async def wait_for_transaction(self, tx_hash):
        return {"type": "user_transaction", "success": True, "gas_used": "812"}

    async def get_transaction(self, tx_hash):
        return await self.wait_for_transaction(tx_hash)


def make_handler(config, sponsor, client):
    return AptosChainHandler(config, sponsor, client_factory=lambda _config: client)


class TestAccountMath:
    """Resource account derivation and key handling."""

    def test_normalize_address(self):
        assert normalize_address("0x1") == "0x" + "0" * 63 + "1"
        assert normalize_address("0xABC") == "0x" + "0" * 61 + "abc"
        with pytest.raises(ValueError):
            normalize_address("0x" + "1" * 65)

    def test_seed_layout(self, example_adi):
        seed = account_seed(example_adi)
        assert seed[:32] == derive_owner32(example_adi)
        assert seed[32:-8] == example_adi.encode("utf-8")
        assert struct.unpack("<Q", seed[-8:])[0] == derive_salt64(example_adi)

    def test_resource_account_formula(self, example_adi):
        seed = account_seed(example_adi)
        expected = hashlib.sha3_256(bytes.fromhex(FACTORY[2:]) + seed + b"\xff").hexdigest()
        assert resource_account_address(FACTORY, seed) == "0x" + expected
        assert predict_account_address(FACTORY, example_adi) == "0x" + expected

    def test_signer_address(self):
        key = SigningKey(bytes.fromhex(SPONSOR_SEED))
        expected = hashlib.sha3_256(bytes(key.verify_key) + b"\x00").hexdigest()
        assert signer_address(key) == "0x" + expected

    def test_load_signing_key_prefixes(self):
        plain = load_signing_key(SPONSOR_SEED)
        prefixed = load_signing_key("ed25519-priv-0x" + SPONSOR_SEED)
        assert bytes(plain) == bytes(prefixed)

    def test_load_signing_key_rejects_garbage(self):
        with pytest.raises(ConfigurationError):
            load_signing_key("zz")


class TestAptosHandler:
    """Tests for AptosChainHandler."""

    @pytest.mark.asyncio
    async def test_local_parity_with_view(self, aptos_config, aptos_sponsor, example_adi):
        online = make_handler(aptos_config, aptos_sponsor, FakeAptosClient())
        offline = make_handler(aptos_config, aptos_sponsor, FakeAptosClient(
            view_error=ChainRPCError("503", chain="Aptos Testnet", method="/view"),
        ))

        onchain = await online.get_account_address(example_adi)
        local = await offline.get_account_address(example_adi)

        assert onchain.derivation_path is DerivationPath.ONCHAIN
        assert local.derivation_path is DerivationPath.LOCAL
        assert onchain.account_address == local.account_address
        assert local.explorer_url.endswith(f"/account/{local.account_address}?network=testnet")

    @pytest.mark.asyncio
    async def test_zero_address_rejected(self, aptos_config, aptos_sponsor, example_adi):
        handler = make_handler(aptos_config, aptos_sponsor, FakeAptosClient(view_result="0x0"))
        with pytest.raises(InvalidFactoryResponseError):
            await handler.get_account_address(example_adi)

    @pytest.mark.asyncio
    async def test_deploy_signs_and_is_idempotent(self, aptos_config, aptos_sponsor, example_adi):
        client = FakeAptosClient()
        handler = make_handler(aptos_config, aptos_sponsor, client)

        first = await handler.deploy_account(example_adi)
        second = await handler.deploy_account(example_adi)

        assert first.transaction_hash == TX_HASH
        assert first.gas_used == "812"
        assert first.explorer_url.endswith(f"/txn/{TX_HASH}?network=testnet")
        assert second.already_existed is True
        assert len(client.submitted) == 1

        request = client.submitted[0]
        assert request["payload"]["function"] == f"{FACTORY}::certen_account_factory::create_account"
        assert request["sequence_number"] == "3"
        signature = request["signature"]
        verify_key = VerifyKey(bytes.fromhex(signature["public_key"][2:]))
        verify_key.verify(b"signing-message", bytes.fromhex(signature["signature"][2:]))

    @pytest.mark.asyncio
    async def test_failed_transaction(self, aptos_config, aptos_sponsor, example_adi):
        class Failing(FakeAptosClient):
            async def wait_for_transaction(self, tx_hash):
                return {"type": "user_transaction", "success": False, "vm_status": "Move abort"}

        handler = make_handler(aptos_config, aptos_sponsor, Failing())
        with pytest.raises(TransactionFailedError) as exc_info:
            await handler.deploy_account(example_adi)
        assert exc_info.value.error_code == "TRANSACTION_FAILED"
        assert "Move abort" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_balance_in_apt(self, aptos_config, aptos_sponsor):
        handler = make_handler(aptos_config, aptos_sponsor, FakeAptosClient(balance=250_000_000))
        result = await handler.get_address_balance(FACTORY)
        assert result.balance == "2.5"
