"""
Tests for certen_chain.derivation.

Tests cover:
- Identity validation
- Determinism and truncation consistency of owners and salts
- Uniqueness across identities
- CREATE2 address computation
"""
from __future__ import annotations

import pytest
from eth_abi import encode
from eth_utils import is_checksum_address, keccak

from certen_chain.derivation import (
    EVM_CREATE2_PREFIX,
    TVM_CREATE2_PREFIX,
    account_create2_salt,
    create2_address,
    derive_evm_owner,
    derive_owner20,
    derive_owner32,
    derive_salt53,
    derive_salt64,
    derive_salt256,
    hex_to_bytes,
    identity_hash,
    is_zero_address,
    validate_identity,
)
from certen_chain.exceptions import InvalidIdentityError


class TestValidateIdentity:
    """Tests for validate_identity."""

    def test_accepts_acc_url(self):
        validate_identity("acc://example.acme")

    @pytest.mark.parametrize("value", ["", None, "example.acme", "https://example.acme", "ACC://x"])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidIdentityError) as exc_info:
            validate_identity(value)
        assert exc_info.value.http_status == 400
        assert exc_info.value.error_code == "INVALID_IDENTITY"

    def test_error_carries_identity(self):
        with pytest.raises(InvalidIdentityError) as exc_info:
            validate_identity("example.acme")
        assert exc_info.value.details["identity"] == "example.acme"


class TestDerivation:
    """Owners and salts all come from keccak256(utf8(adi_url))."""

    def test_owner32_is_keccak(self, example_adi):
        assert derive_owner32(example_adi) == keccak(example_adi.encode("utf-8"))

    def test_identity_hash_hex(self, example_adi):
        assert identity_hash(example_adi) == "0x" + keccak(b"acc://example.acme").hex()

    def test_deterministic(self, example_adi):
        assert derive_owner32(example_adi) == derive_owner32(example_adi)
        assert derive_salt256(example_adi) == derive_salt256(example_adi)

    def test_owner20_is_suffix_of_owner32(self, example_adi):
        assert derive_owner20(example_adi) == derive_owner32(example_adi)[12:]
        assert len(derive_owner20(example_adi)) == 20

    def test_truncated_salts(self, example_adi):
        salt = derive_salt256(example_adi)
        assert derive_salt64(example_adi) == salt % 2 ** 64
        assert derive_salt53(example_adi) == salt % 2 ** 53
        assert derive_salt53(example_adi) < 2 ** 53

    def test_salt256_big_endian(self, example_adi):
        assert derive_salt256(example_adi).to_bytes(32, "big") == derive_owner32(example_adi)

    def test_evm_owner_checksummed(self, example_adi):
        owner = derive_evm_owner(example_adi)
        assert owner.lower() == "0x" + derive_owner20(example_adi).hex()
        assert is_checksum_address(owner)

    def test_distinct_identities_differ(self):
        urls = [f"acc://org{i}.acme" for i in range(50)]
        assert len({derive_owner32(u) for u in urls}) == len(urls)
        assert len({derive_salt53(u) for u in urls}) == len(urls)

    def test_utf8_encoding(self):
        url = "acc://ünïcode.acme"
        assert derive_owner32(url) == keccak(url.encode("utf-8"))


class TestZeroAddress:
    """Tests for is_zero_address."""

    @pytest.mark.parametrize("value", [None, "", "0x", "0x0", "0x" + "0" * 40, "0" * 64])
    def test_zero_values(self, value):
        assert is_zero_address(value) is True

    def test_non_zero(self):
        assert is_zero_address("0xAAAA000000000000000000000000000000001111") is False


class TestCreate2:
    """Tests for CREATE2 helpers."""

    def test_account_salt_matches_abi_encoding(self, example_adi):
        owner = derive_evm_owner(example_adi)
        salt = derive_salt256(example_adi)
        expected = keccak(encode(
            ["address", "bytes32", "uint256"],
            [owner, keccak(example_adi.encode("utf-8")), salt],
        ))
        assert account_create2_salt(owner, example_adi, salt) == expected

    def test_create2_formula(self):
        deployer = bytes.fromhex("2e6037afFA783d487664b2440c691fc86Bc18A17")
        salt = b"\x01" * 32
        init_hash = b"\x02" * 32
        expected = keccak(b"\xff" + deployer + salt + init_hash)[12:]
        assert create2_address(deployer, salt, init_hash) == expected

    def test_tvm_prefix_changes_address(self):
        deployer = b"\x03" * 20
        salt = b"\x04" * 32
        init_hash = b"\x05" * 32
        evm = create2_address(deployer, salt, init_hash, prefix=EVM_CREATE2_PREFIX)
        tvm = create2_address(deployer, salt, init_hash, prefix=TVM_CREATE2_PREFIX)
        assert evm != tvm
        assert tvm == keccak(b"\x41" + deployer + salt + init_hash)[12:]

    def test_rejects_bad_lengths(self):
        with pytest.raises(ValueError):
            create2_address(b"\x00" * 19, b"\x00" * 32, b"\x00" * 32)
        with pytest.raises(ValueError):
            create2_address(b"\x00" * 20, b"\x00" * 31, b"\x00" * 32)

    def test_hex_to_bytes(self):
        assert hex_to_bytes("0xabcd") == b"\xab\xcd"
        assert hex_to_bytes("abcd") == b"\xab\xcd"
