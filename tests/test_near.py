"""
Tests for NEAR borsh serialization, account naming and the NEAR handler.
"""
from __future__ import annotations

import hashlib
import struct
from decimal import Decimal
from unittest.mock import MagicMock

import base58
import pytest
from eth_utils import keccak
from nacl.signing import SigningKey, VerifyKey

from certen_chain.config import ChainConfig, LoggingConfig, SponsorConfig
from certen_chain.derivation import derive_owner32, derive_salt53
from certen_chain.exceptions import (
    ChainRPCError,
    ConfigurationError,
    SponsorNotConfiguredError,
    TransactionFailedError,
)
from certen_chain.logging_utils import ChainLogger
from certen_chain.near.borsh import (
    FunctionCall,
    Transaction,
    encode_string,
    encode_u128,
    serialize_signed_transaction,
)
from certen_chain.near.handler import (
    CREATE_ACCOUNT_DEPOSIT,
    NearChainHandler,
    compute_account_id,
    extract_outcome_failure,
    load_signing_key,
    public_key_string,
)
from certen_chain.results import DerivationPath

FACTORY = "certen-factory.testnet"
SEED = bytes.fromhex("55" * 32)
BLOCK_HASH = base58.b58encode(b"\x09" * 32).decode()


@pytest.fixture
def near_config():
    return ChainConfig(
        chain_ids=("near-testnet",),
        name="NEAR Testnet",
        rpc_url="http://localhost:3030",
        factory_address=FACTORY,
        explorer_url="https://testnet.nearblocks.io",
        native_token="NEAR",
        decimals=24,
    )


@pytest.fixture
def near_sponsor():
    return SponsorConfig(
        chain_name="NEAR",
        enabled=True,
        private_key="ed25519:" + base58.b58encode(SEED + bytes(SigningKey(SEED).verify_key)).decode(),
        min_balance=Decimal("1.0"),
        symbol="NEAR",
        account_id="sponsor.testnet",
    )


class FakeNearClient:
    """NEAR RPC stand-in whose factory names accounts with the keccak formula."""

    def __init__(self, view_error=None, balance: int = 50 * 10 ** 24, outcome=None,
                 broadcast_error=None):
        self.view_error = view_error
        self.broadcast_error = broadcast_error
        self.balance = balance
        self.outcome = outcome
        self.accounts = {"sponsor.testnet": {"amount": str(balance)}}
        self.pending = []
        self.broadcast = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        pass

    async def call_view_function(self, account_id, method_name, args):
        if self.view_error is not None:
            raise self.view_error
        return compute_account_id(args["adi_url"], account_id)

    async def view_account(self, account_id):
        return self.accounts.get(account_id)

    async def get_balance(self, account_id):
        return self.balance

    async def view_access_key(self, account_id, public_key):
        return {"nonce": 41, "block_hash": BLOCK_HASH, "permission": "FullAccess"}

    async def broadcast_tx_commit(self, signed_tx):
        if self.broadcast_error is not None:
            raise self.broadcast_error
        self.broadcast.append(signed_tx)
        if self.outcome is not None:
            return self.outcome
        for account in self.pending:
            self.accounts[account] = {"amount": "0"}
        return {
            "status": {"SuccessValue": ""},
            "transaction_outcome": {"id": "TxHash111", "outcome": {"status": {"SuccessReceiptId": "r"}}},
            "receipts_outcome": [{"outcome": {"status": {"SuccessValue": ""}}}],
        }


def make_handler(config, sponsor, client):
    return NearChainHandler(config, sponsor, client_factory=lambda _config: client)


class TestBorsh:
    """Tests for the borsh encoder."""

    def test_string(self):
        assert encode_string("ab") == b"\x02\x00\x00\x00ab"

    def test_u128(self):
        assert encode_u128(10 ** 24) == (10 ** 24).to_bytes(16, "little")
        with pytest.raises(ValueError):
            encode_u128(2 ** 128)

    def test_function_call(self):
        action = FunctionCall("create_account", b"{}", gas=300 * 10 ** 12, deposit=1)
        encoded = action.serialize()
        assert encoded[0] == 2
        assert encoded[1:5] == struct.pack("<I", len("create_account"))
        assert encoded.endswith(struct.pack("<Q", 300 * 10 ** 12) + (1).to_bytes(16, "little"))

    def test_transaction_and_signature(self):
        key = SigningKey(SEED)
        tx = Transaction(
            signer_id="sponsor.testnet",
            public_key=bytes(key.verify_key),
            nonce=42,
            receiver_id=FACTORY,
            block_hash=b"\x09" * 32,
            actions=[FunctionCall("create_account", b"{}", gas=1, deposit=0)],
        )
        body = tx.serialize()
        assert body.startswith(encode_string("sponsor.testnet") + b"\x00" + bytes(key.verify_key))
        signed = serialize_signed_transaction(tx, b"\x01" * 64)
        assert signed == body + b"\x00" + b"\x01" * 64

    def test_rejects_bad_block_hash(self):
        tx = Transaction("a", b"\x00" * 32, 1, "b", b"\x00" * 31, [])
        with pytest.raises(ValueError):
            tx.serialize()


class TestAccountNaming:
    """Local reproduction of the factory's sub-account naming."""

    def test_formula(self, example_adi):
        owner = derive_owner32(example_adi).hex()
        data = owner.encode() + example_adi.encode() + struct.pack("<Q", derive_salt53(example_adi))
        expected = keccak(data)[:16].hex() + "." + FACTORY
        assert compute_account_id(example_adi, FACTORY) == expected

    def test_sub_account_of_factory(self, example_adi):
        account = compute_account_id(example_adi, FACTORY)
        name, _, parent = account.partition(".")
        assert parent == FACTORY
        assert len(name) == 32

    def test_key_loading(self):
        expected = bytes(SigningKey(SEED))
        assert bytes(load_signing_key("ed25519:" + base58.b58encode(SEED).decode())) == expected
        key = load_signing_key("ed25519:" + base58.b58encode(SEED + b"\x00" * 32).decode())
        assert bytes(key) == expected
        assert public_key_string(key).startswith("ed25519:")

    def test_key_rejects_wrong_length(self):
        with pytest.raises(ConfigurationError):
            load_signing_key("ed25519:" + base58.b58encode(b"\x01" * 16).decode())


class TestOutcomeFailure:
    """Tests for extract_outcome_failure."""

    def test_success(self):
        assert extract_outcome_failure({"status": {"SuccessValue": ""}}) is None

    def test_top_level_failure(self):
        failure = extract_outcome_failure({"status": {"Failure": {"ActionError": {"index": 0}}}})
        assert "ActionError" in failure

    def test_receipt_failure(self):
        outcome = {
            "status": {"SuccessValue": ""},
            "receipts_outcome": [
                {"outcome": {"status": {"SuccessValue": ""}}},
                {"outcome": {"status": {"Failure": {"ActionError": "AccountAlreadyExists"}}}},
            ],
        }
        assert "AccountAlreadyExists" in extract_outcome_failure(outcome)


class TestNearHandler:
    """Tests for NearChainHandler."""

    @pytest.mark.asyncio
    async def test_local_parity(self, near_config, near_sponsor, example_adi):
        online = make_handler(near_config, near_sponsor, FakeNearClient())
        offline = make_handler(near_config, near_sponsor, FakeNearClient(
            view_error=ChainRPCError("MethodNotFound", chain="NEAR Testnet", method="call_function"),
        ))
        onchain = await online.get_account_address(example_adi)
        local = await offline.get_account_address(example_adi)

        assert onchain.derivation_path is DerivationPath.ONCHAIN
        assert local.derivation_path is DerivationPath.LOCAL
        assert onchain.account_address == local.account_address
        assert local.explorer_url == f"https://testnet.nearblocks.io/address/{local.account_address}"

    @pytest.mark.asyncio
    async def test_deploy(self, near_config, near_sponsor, example_adi):
        client = FakeNearClient()
        client.pending = [compute_account_id(example_adi, FACTORY)]
        handler = make_handler(near_config, near_sponsor, client)

        first = await handler.deploy_account(example_adi)
        second = await handler.deploy_account(example_adi)

        assert first.transaction_hash == "TxHash111"
        assert first.explorer_url == "https://testnet.nearblocks.io/txns/TxHash111"
        assert second.already_existed is True
        assert len(client.broadcast) == 1

    @pytest.mark.asyncio
    async def test_signed_payload(self, near_config, near_sponsor, example_adi):
        client = FakeNearClient()
        client.pending = [compute_account_id(example_adi, FACTORY)]
        handler = make_handler(near_config, near_sponsor, client)
        await handler.deploy_account(example_adi)

        signed = client.broadcast[0]
        body, signature = signed[:-65], signed[-64:]
        assert signed[-65] == 0
        VerifyKey(bytes(SigningKey(SEED).verify_key)).verify(hashlib.sha256(body).digest(), signature)

        assert b'"adi_url": "acc://example.acme"' in body
        assert struct.pack("<Q", 42) in body  # access key nonce + 1
        assert CREATE_ACCOUNT_DEPOSIT.to_bytes(16, "little") in body
        assert derive_owner32(example_adi).hex().encode() in body

    @pytest.mark.asyncio
    async def test_failed_outcome(self, near_config, near_sponsor, example_adi):
        outcome = {
            "status": {"Failure": {"ActionError": {"kind": "FunctionCallError"}}},
            "transaction_outcome": {"id": "TxBad"},
        }
        handler = make_handler(near_config, near_sponsor, FakeNearClient(outcome=outcome))
        with pytest.raises(TransactionFailedError) as exc_info:
            await handler.deploy_account(example_adi)
        assert exc_info.value.tx_hash == "TxBad"

    @pytest.mark.asyncio
    async def test_requires_sponsor_account(self, near_config, example_adi):
        sponsor = SponsorConfig(chain_name="NEAR", enabled=True, private_key="ed25519:abc")
        handler = make_handler(near_config, sponsor, FakeNearClient())
        assert handler.is_sponsor_configured() is False
        with pytest.raises(SponsorNotConfiguredError):
            await handler.deploy_account(example_adi)

    @pytest.mark.asyncio
    async def test_balance_of_missing_account(self, near_config, near_sponsor):
        handler = make_handler(near_config, near_sponsor, FakeNearClient())
        result = await handler.get_address_balance("ghost.testnet")
        assert result.balance == "0"
        assert result.error == "Account not created"

    @pytest.mark.asyncio
    async def test_sponsor_status(self, near_config, near_sponsor):
        handler = make_handler(near_config, near_sponsor, FakeNearClient(balance=5 * 10 ** 24))
        status = await handler.get_sponsor_status()
        assert status.available is True
        assert status.balance == "5.0000 NEAR"

    @pytest.mark.asyncio
    async def test_unsent_transaction_is_not_submitted(self, near_config, near_sponsor, example_adi):
        error = ChainRPCError("connection reset", chain="NEAR Testnet", method="broadcast_tx_commit")
        chain_logger = ChainLogger("certen_chain.test", LoggingConfig(audit_log_enabled=False))
        chain_logger.log_state_transition = MagicMock()
        chain_logger.log_transaction_submitted = MagicMock()
        handler = NearChainHandler(
            near_config, near_sponsor,
            client_factory=lambda _config: FakeNearClient(broadcast_error=error),
            chain_logger=chain_logger,
        )

        with pytest.raises(ChainRPCError):
            await handler.deploy_account(example_adi)

        transitions = [call.args[3] for call in chain_logger.log_state_transition.call_args_list]
        assert transitions == ["predicted", "pending_submission", "failed"]
        chain_logger.log_transaction_submitted.assert_not_called()
