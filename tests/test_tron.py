"""
Tests for TRON address encoding, transaction signing and the TRON handler.
"""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List

import base58
import pytest
from eth_abi import encode
from eth_keys import keys
from eth_utils import keccak

from certen_chain.config import ChainConfig, SponsorConfig
from certen_chain.derivation import (
    account_create2_salt,
    derive_evm_owner,
    derive_salt256,
)
from certen_chain.evm.factory import (
    DEPLOYMENT_FEE_SIGNATURE,
    GET_ADDRESS_SIGNATURE,
    IS_DEPLOYED_SIGNATURE,
)
from certen_chain.exceptions import (
    ChainError,
    ChainRPCError,
    InvalidFactoryResponseError,
    SponsorNotConfiguredError,
)
from certen_chain.results import DerivationPath
from certen_chain.tron.address import from_abi_word, from_base58, from_evm_hex, to_base58, to_hex41
from certen_chain.tron.handler import TronChainHandler, sign_transaction

SPONSOR_KEY = "22" * 32
FACTORY_ID = bytes.fromhex("dd" * 20)
ACCOUNT_ID = bytes.fromhex("ab" * 19 + "01")


@pytest.fixture
def tron_config():
    return ChainConfig(
        chain_ids=("tron-testnet", "tron-shasta"),
        name="TRON Shasta Testnet",
        rpc_url="http://localhost:8090",
        factory_address=to_base58(FACTORY_ID),
        explorer_url="https://shasta.tronscan.org/#",
        native_token="TRX",
        decimals=6,
        confirmation_timeout_seconds=1.0,
        poll_interval_seconds=0.0,
    )


@pytest.fixture
def tron_sponsor():
    return SponsorConfig(
        chain_name="TRON", enabled=True, private_key=SPONSOR_KEY,
        min_balance=Decimal("10"), symbol="TRX",
    )


class FakeTronGrid:
    """TronGrid stand-in backed by a mock factory."""

    chain = "TRON Shasta Testnet"

    def __init__(self, predicted: bytes = ACCOUNT_ID, balance: int = 100_000_000, view_error=None):
        self.predicted = predicted
        self.balance = balance
        self.view_error = view_error
        self.deployed: set = set()
        self.broadcast: List[Dict[str, Any]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        pass

    async def trigger_constant_contract(self, owner, contract, signature, parameter=""):
        if self.view_error is not None:
            raise self.view_error
        if signature == GET_ADDRESS_SIGNATURE:
            return encode(["address"], ["0x" + self.predicted.hex()]).hex()
        if signature == IS_DEPLOYED_SIGNATURE:
            account = bytes.fromhex(parameter[-40:])
            return encode(["bool"], [account in self.deployed]).hex()
        if signature == DEPLOYMENT_FEE_SIGNATURE:
            return encode(["uint256"], [0]).hex()
        raise AssertionError(signature)

    async def trigger_smart_contract(self, owner, contract, signature, parameter, call_value=0, fee_limit=0):
        raw = b"create-account:" + bytes.fromhex(parameter)[:32]
        return {"txID": hashlib.sha256(raw).hexdigest(), "raw_data_hex": raw.hex(), "raw_data": {}}

    async def broadcast_transaction(self, transaction):
        assert transaction["signature"]
        self.broadcast.append(transaction)
        self.deployed.add(self.predicted)
        return transaction["txID"]

    async def wait_for_transaction_info(self, tx_id, timeout=120.0, poll_interval=2.0):
        return {"id": tx_id, "receipt": {"result": "SUCCESS", "energy_usage_total": 64000}, "log": []}

    async def get_balance(self, address):
        return self.balance


def make_handler(config, sponsor, client):
    return TronChainHandler(config, sponsor, client_factory=lambda _config: client)


class TestTronAddress:
    """Tests for Base58Check address helpers."""

    def test_round_trip(self):
        address = to_base58(ACCOUNT_ID)
        assert address.startswith("T")
        assert from_base58(address) == ACCOUNT_ID

    def test_hex41(self):
        assert to_hex41(ACCOUNT_ID) == "41" + ACCOUNT_ID.hex()

    def test_from_evm_hex_and_abi_word(self):
        assert from_evm_hex("0x" + ACCOUNT_ID.hex()) == to_base58(ACCOUNT_ID)
        assert from_abi_word("00" * 12 + ACCOUNT_ID.hex()) == to_base58(ACCOUNT_ID)

    def test_rejects_non_tron_prefix(self):
        other = base58.b58encode_check(b"\x42" + ACCOUNT_ID).decode()
        with pytest.raises(ValueError):
            from_base58(other)


class TestSignTransaction:
    """Tests for sign_transaction."""

    def test_signature_recovers_sponsor(self):
        key = keys.PrivateKey(bytes.fromhex(SPONSOR_KEY))
        raw = b"raw-data"
        tx = {"txID": hashlib.sha256(raw).hexdigest(), "raw_data_hex": raw.hex()}
        signed = sign_transaction(tx, key)

        packed = bytes.fromhex(signed["signature"][0])
        assert len(packed) == 65
        r = int.from_bytes(packed[:32], "big")
        s = int.from_bytes(packed[32:64], "big")
        signature = keys.Signature(vrs=(packed[64] - 27, r, s))
        recovered = signature.recover_public_key_from_msg_hash(hashlib.sha256(raw).digest())
        assert recovered == key.public_key

    def test_rejects_mismatched_tx_id(self):
        key = keys.PrivateKey(bytes.fromhex(SPONSOR_KEY))
        with pytest.raises(ChainError):
            sign_transaction({"txID": "00" * 32, "raw_data_hex": "abcd"}, key)


class TestTronHandler:
    """Tests for TronChainHandler against a fake TronGrid."""

    @pytest.mark.asyncio
    async def test_predict(self, tron_config, tron_sponsor, example_adi):
        handler = make_handler(tron_config, tron_sponsor, FakeTronGrid())
        result = await handler.get_account_address(example_adi)
        assert result.account_address == to_base58(ACCOUNT_ID)
        assert result.is_deployed is False
        assert result.explorer_url == f"https://shasta.tronscan.org/#/address/{to_base58(ACCOUNT_ID)}"

    @pytest.mark.asyncio
    async def test_deploy_is_idempotent(self, tron_config, tron_sponsor, example_adi):
        client = FakeTronGrid()
        handler = make_handler(tron_config, tron_sponsor, client)

        first = await handler.deploy_account(example_adi)
        second = await handler.deploy_account(example_adi)

        assert first.already_existed is False
        assert first.gas_used == "64000"
        assert first.explorer_url.endswith(f"/transaction/{first.transaction_hash}")
        assert second.already_existed is True
        assert second.transaction_hash is None
        assert len(client.broadcast) == 1

    @pytest.mark.asyncio
    async def test_zero_address_rejected(self, tron_config, tron_sponsor, example_adi):
        handler = make_handler(tron_config, tron_sponsor, FakeTronGrid(predicted=b"\x00" * 20))
        with pytest.raises(InvalidFactoryResponseError):
            await handler.get_account_address(example_adi)

    @pytest.mark.asyncio
    async def test_not_configured(self, tron_config, example_adi):
        sponsor = SponsorConfig(chain_name="TRON", enabled=False)
        handler = make_handler(tron_config, sponsor, FakeTronGrid())
        with pytest.raises(SponsorNotConfiguredError):
            await handler.deploy_account(example_adi)

    @pytest.mark.asyncio
    async def test_local_fallback_uses_tvm_prefix(self, tron_config, tron_sponsor, example_adi):
        init_hash = keccak(b"certen-account-proxy")
        config = replace(tron_config, account_init_code_hash="0x" + init_hash.hex())
        error = ChainRPCError("node down", chain="TRON Shasta Testnet")
        handler = make_handler(config, tron_sponsor, FakeTronGrid(view_error=error))

        result = await handler.get_account_address(example_adi)

        salt = account_create2_salt(derive_evm_owner(example_adi), example_adi, derive_salt256(example_adi))
        expected = keccak(b"\x41" + FACTORY_ID + salt + init_hash)[12:]
        assert result.derivation_path is DerivationPath.LOCAL
        assert result.account_address == to_base58(expected)
        assert result.is_deployed is False

    @pytest.mark.asyncio
    async def test_balance_in_trx(self, tron_config, tron_sponsor):
        handler = make_handler(tron_config, tron_sponsor, FakeTronGrid(balance=12_500_000))
        result = await handler.get_address_balance(to_base58(ACCOUNT_ID))
        assert result.balance == "12.5"
        assert result.symbol == "TRX"


class RecordingTronGrid(FakeTronGrid):
    """Records when each pre-deployment read starts and finishes."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.events: List[tuple] = []

    async def _traced(self, name, read):
        self.events.append(("start", name))
        await asyncio.sleep(0)
        result = await read
        self.events.append(("end", name))
        return result

    async def trigger_constant_contract(self, owner, contract, signature, parameter=""):
        read = super().trigger_constant_contract(owner, contract, signature, parameter)
        if signature == IS_DEPLOYED_SIGNATURE:
            return await read
        return await self._traced(signature, read)

    async def get_balance(self, address):
        return await self._traced("balance", super().get_balance(address))


class TestTronConcurrentReads:
    """Predicted address, sponsor balance and deployment fee are read together."""

    @pytest.mark.asyncio
    async def test_reads_overlap(self, tron_config, tron_sponsor, example_adi):
        client = RecordingTronGrid()
        await make_handler(tron_config, tron_sponsor, client).deploy_account(example_adi)

        first_end = next(i for i, event in enumerate(client.events) if event[0] == "end")
        started = {name for kind, name in client.events[:first_end] if kind == "start"}
        assert started == {GET_ADDRESS_SIGNATURE, DEPLOYMENT_FEE_SIGNATURE, "balance"}
