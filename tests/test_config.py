"""
Tests for environment-driven configuration.
"""
from __future__ import annotations

from decimal import Decimal

import pytest

from certen_chain.config import (
    EVM_NETWORKS,
    V5_EVM_FACTORY,
    CertenChainSettings,
    ChainConfig,
    SponsorConfig,
    build_evm_chain_configs,
    build_evm_sponsor,
    build_near_chain_config,
    build_solana_chain_config,
    build_sponsor,
    build_sui_chain_config,
    build_ton_chain_config,
    build_tron_chain_config,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run settings loading from an empty directory so no .env file is read."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "EVM_SPONSORED_DEPLOYMENT_ENABLED",
        "EVM_SPONSOR_PRIVATE_KEY",
        "EVM_SEPOLIA_RPC_URL",
        "INFURA_API_KEY",
        "NEAR_SPONSOR_ACCOUNT_ID",
        "TON_SPONSOR_MNEMONIC",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Tests for CertenChainSettings."""

    def test_defaults(self, clean_env):
        settings = CertenChainSettings()
        assert settings.environment == "dev"
        assert settings.evm.sponsored_deployment_enabled is False
        assert settings.evm.sponsor_min_balance == Decimal("0.01")
        assert settings.near.factory_account == "certen-factory.testnet"
        assert settings.ton.factory_address == "kQCiF_punJ_9IQlPw18b2R9XyqwegUImJ8OgdNmfUp2rBsDB"

    def test_reads_prefixed_environment(self, clean_env):
        clean_env.setenv("EVM_SPONSORED_DEPLOYMENT_ENABLED", "true")
        clean_env.setenv("EVM_SPONSOR_PRIVATE_KEY", "0x" + "11" * 32)
        clean_env.setenv("EVM_SEPOLIA_RPC_URL", "https://rpc.example/sepolia")
        clean_env.setenv("NEAR_SPONSOR_ACCOUNT_ID", "sponsor.testnet")
        settings = CertenChainSettings()

        assert settings.evm.sponsored_deployment_enabled is True
        assert settings.evm.sepolia_rpc_url == "https://rpc.example/sepolia"
        assert settings.near.sponsor_account_id == "sponsor.testnet"

    def test_invalid_log_level(self, clean_env):
        clean_env.setenv("CERTEN_LOG_LEVEL", "LOUD")
        with pytest.raises(ValueError):
            CertenChainSettings()


class TestChainConfigs:
    """Tests for the frozen per-chain configuration builders."""

    def test_seven_evm_networks(self, clean_env):
        configs = build_evm_chain_configs(CertenChainSettings())
        assert len(configs) == len(EVM_NETWORKS) == 7
        assert all(config.factory_address == V5_EVM_FACTORY for config in configs)
        sepolia = configs[0]
        assert sepolia.chain_ids == ("sepolia", "11155111")
        assert sepolia.numeric_chain_id == 11155111

    def test_rpc_override_wins(self, clean_env):
        clean_env.setenv("EVM_SEPOLIA_RPC_URL", "https://rpc.example/sepolia")
        configs = build_evm_chain_configs(CertenChainSettings())
        assert configs[0].rpc_url == "https://rpc.example/sepolia"

    def test_public_rpc_used_without_infura(self, clean_env):
        configs = {c.chain_ids[0]: c for c in build_evm_chain_configs(CertenChainSettings())}
        assert configs["bsc-testnet"].rpc_url == "https://data-seed-prebsc-1-s1.binance.org:8545"
        assert configs["bsc-testnet"].native_token == "BNB"

    def test_non_evm_identifiers(self, clean_env):
        settings = CertenChainSettings()
        assert build_solana_chain_config(settings).chain_ids == ("solana-devnet",)
        assert build_sui_chain_config(settings).factory_object_id == settings.sui.factory_package
        assert build_near_chain_config(settings).decimals == 24
        assert build_ton_chain_config(settings).decimals == 9
        assert build_tron_chain_config(settings).chain_ids == ("tron-testnet", "tron-shasta")

    def test_explorer_urls(self):
        config = ChainConfig(
            chain_ids=("solana-devnet",),
            name="Solana Devnet",
            rpc_url="http://x",
            factory_address="F",
            explorer_url="https://solscan.io",
            native_token="SOL",
            decimals=9,
            explorer_query="?cluster=devnet",
        )
        assert config.address_url("abc", path="account") == "https://solscan.io/account/abc?cluster=devnet"
        assert config.tx_url("sig") == "https://solscan.io/tx/sig?cluster=devnet"


class TestSponsorConfig:
    """Tests for SponsorConfig."""

    def test_requires_flag_and_key(self):
        assert SponsorConfig("EVM", enabled=True, private_key="k").is_configured is True
        assert SponsorConfig("EVM", enabled=False, private_key="k").is_configured is False
        assert SponsorConfig("EVM", enabled=True).is_configured is False

    def test_mnemonic_counts_as_signing_material(self):
        assert SponsorConfig("TON", enabled=True, mnemonic="a b c").is_configured is True

    def test_private_key_not_in_repr(self):
        assert "secret" not in repr(SponsorConfig("EVM", enabled=True, private_key="secret"))

    def test_builders(self, clean_env):
        settings = CertenChainSettings()
        assert build_evm_sponsor(settings).chain_name == "EVM"
        near = build_sponsor(settings.near, "NEAR", "NEAR", account_id="sponsor.testnet")
        assert near.account_id == "sponsor.testnet"
        assert near.min_balance == Decimal("1.0")
