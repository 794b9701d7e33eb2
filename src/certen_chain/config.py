"""
Configuration management for certen-chain.

Provides centralized configuration for:
- RPC endpoints and factory/program addresses per chain
- Sponsor signing material and deployment enable flags
- Minimum sponsor balances
- Explorer URL templates
- Logging and HTTP timeouts

Settings are loaded once at process start from environment variables (and an
optional .env file) by pydantic-settings, then frozen into ChainConfig and
SponsorConfig objects. Nothing here is mutated at runtime.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# CertenAccountFactory V5: same deterministic address on every EVM chain
V5_EVM_FACTORY = "0x2e6037afFA783d487664b2440c691fc86Bc18A17"


# =============================================================================
# Environment-driven settings (one class per chain family)
# =============================================================================

class _ChainSettings(BaseSettings):
    """Common sponsor fields; subclasses set the env prefix."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sponsored_deployment_enabled: bool = False
    sponsor_private_key: str = ""
    sponsor_min_balance: Decimal = Decimal("0")


class EvmSettings(_ChainSettings):
    """EVM_* variables. RPC and factory overrides are per network."""
    model_config = SettingsConfigDict(env_prefix="EVM_", env_file=".env", extra="ignore")

    sponsor_address: str = ""
    sponsor_min_balance: Decimal = Decimal("0.01")
    infura_api_key: str = Field(default="", validation_alias="INFURA_API_KEY")
    # keccak256 of the account proxy creation code; enables local CREATE2 fallback
    account_init_code_hash: str = ""

    sepolia_rpc_url: str = ""
    sepolia_account_factory: str = ""
    arbitrum_sepolia_rpc_url: str = ""
    arbitrum_sepolia_account_factory: str = ""
    base_sepolia_rpc_url: str = ""
    base_sepolia_account_factory: str = ""
    bsc_testnet_rpc_url: str = ""
    bsc_testnet_account_factory: str = ""
    optimism_sepolia_rpc_url: str = ""
    optimism_sepolia_account_factory: str = ""
    polygon_amoy_rpc_url: str = ""
    polygon_amoy_account_factory: str = ""
    moonbase_alpha_rpc_url: str = ""
    moonbase_alpha_account_factory: str = ""


class SolanaSettings(_ChainSettings):
    model_config = SettingsConfigDict(env_prefix="SOLANA_", env_file=".env", extra="ignore")

    devnet_rpc_url: str = "https://api.devnet.solana.com"
    factory_program_id: str = "FBcWmM1w7wJ9gmzEMNhDFCVKGryGaM8yYuDfjGpdD1Nc"
    account_program_id: str = "2JcPAjzBp2rdHK6AAsdw5ArrDeB1aw6fFufk7C1tYnNj"
    sponsor_min_balance: Decimal = Decimal("0.05")


class AptosSettings(_ChainSettings):
    model_config = SettingsConfigDict(env_prefix="APTOS_", env_file=".env", extra="ignore")

    testnet_rpc_url: str = "https://fullnode.testnet.aptoslabs.com/v1"
    factory_package: str = "0xf3cb210860525f9137f0ba9a088124393e12ce6758ee08d167d92b779d9c5894"
    sponsor_min_balance: Decimal = Decimal("0.1")


class SuiSettings(_ChainSettings):
    model_config = SettingsConfigDict(env_prefix="SUI_", env_file=".env", extra="ignore")

    testnet_rpc_url: str = "https://fullnode.testnet.sui.io:443"
    factory_package: str = "0xf9f8f5c8349e04404631531f2420cd45805934839867daa1f4c043ec06b6ade2"
    factory_object: str = ""  # defaults to factory_package
    sponsor_min_balance: Decimal = Decimal("0.1")


class NearSettings(_ChainSettings):
    model_config = SettingsConfigDict(env_prefix="NEAR_", env_file=".env", extra="ignore")

    testnet_rpc_url: str = "https://rpc.testnet.fastnear.com"
    factory_account: str = "certen-factory.testnet"
    sponsor_account_id: str = ""
    sponsor_min_balance: Decimal = Decimal("1.0")


class TonSettings(_ChainSettings):
    model_config = SettingsConfigDict(env_prefix="TON_", env_file=".env", extra="ignore")

    testnet_rpc_url: str = "https://testnet.toncenter.com/api/v2"
    testnet_api_key: str = ""
    factory_address: str = "kQCiF_punJ_9IQlPw18b2R9XyqwegUImJ8OgdNmfUp2rBsDB"
    sponsor_mnemonic: str = ""
    sponsor_min_balance: Decimal = Decimal("0.5")


class TronSettings(_ChainSettings):
    model_config = SettingsConfigDict(env_prefix="TRON_", env_file=".env", extra="ignore")

    shasta_rpc_url: str = "https://api.shasta.trongrid.io"
    factory_address: str = "TWBh1qjpABrxVSnUDnp4zcsSnpfAeRhJwy"
    sponsor_address: str = ""
    sponsor_min_balance: Decimal = Decimal("10")
    account_init_code_hash: str = ""


class CertenChainSettings(BaseSettings):
    """Master configuration for certen-chain.

    Global options use the CERTEN_ prefix; each chain family reads its own
    prefix (EVM_, SOLANA_, APTOS_, SUI_, NEAR_, TON_, TRON_).
    """
    model_config = SettingsConfigDict(env_prefix="CERTEN_", env_file=".env", extra="ignore")

    environment: Literal["dev", "testnet", "prod"] = "dev"
    http_timeout_seconds: float = 30.0
    confirmation_timeout_seconds: float = 120.0
    poll_interval_seconds: float = 2.0
    log_level: str = "INFO"

    evm: EvmSettings = Field(default_factory=EvmSettings)
    solana: SolanaSettings = Field(default_factory=SolanaSettings)
    aptos: AptosSettings = Field(default_factory=AptosSettings)
    sui: SuiSettings = Field(default_factory=SuiSettings)
    near: NearSettings = Field(default_factory=NearSettings)
    ton: TonSettings = Field(default_factory=TonSettings)
    tron: TronSettings = Field(default_factory=TronSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level


# =============================================================================
# Frozen runtime configuration
# =============================================================================

@dataclass
class LoggingConfig:
    """Configuration for chain operation logging."""
    # Log levels for different operations
    operation_level: str = "INFO"
    transaction_level: str = "INFO"
    error_level: str = "ERROR"

    # Sensitive data handling
    mask_addresses: bool = False

    # Audit logging
    audit_log_enabled: bool = True
    audit_log_path: Optional[str] = None  # None = use default logger

@dataclass(frozen=True)
class SponsorConfig:
    """Funding identity for one chain family."""
    chain_name: str
    enabled: bool
    private_key: str = field(default="", repr=False)
    min_balance: Decimal = Decimal("0")
    symbol: str = ""
    address: str = ""
    account_id: str = ""  # NEAR named sponsor account
    mnemonic: str = field(default="", repr=False)  # TON wallet mnemonic

    @property
    def is_configured(self) -> bool:
        """Enable flag set AND signing material present."""
        return self.enabled and bool(self.private_key or self.mnemonic)


@dataclass(frozen=True)
class ChainConfig:
    """Static configuration for one target network."""
    chain_ids: Tuple[str, ...]
    name: str
    rpc_url: str
    factory_address: str
    explorer_url: str
    native_token: str
    decimals: int

    numeric_chain_id: Optional[int] = None
    explorer_query: str = ""  # appended to explorer links, e.g. "?cluster=devnet"
    account_init_code_hash: str = ""
    factory_object_id: str = ""  # Sui shared factory object
    account_program_id: str = ""  # Solana account program
    api_key: str = field(default="", repr=False)

    http_timeout_seconds: float = 30.0
    confirmation_timeout_seconds: float = 120.0
    poll_interval_seconds: float = 2.0

    def address_url(self, address: str, path: str = "address") -> str:
        return f"{self.explorer_url}/{path}/{address}{self.explorer_query}"

    def tx_url(self, tx_hash: str, path: str = "tx") -> str:
        return f"{self.explorer_url}/{path}/{tx_hash}{self.explorer_query}"


@dataclass(frozen=True)
class EvmNetwork:
    """Default parameters for an EVM network."""
    key: str
    name: str
    numeric_chain_id: int
    explorer_url: str
    infura_network: str = ""
    public_rpc_url: str = ""
    native_token: str = "ETH"


EVM_NETWORKS: List[EvmNetwork] = [
    EvmNetwork(
        key="sepolia",
        name="Ethereum Sepolia",
        numeric_chain_id=11155111,
        explorer_url="https://sepolia.etherscan.io",
        infura_network="sepolia",
    ),
    EvmNetwork(
        key="arbitrum-sepolia",
        name="Arbitrum Sepolia",
        numeric_chain_id=421614,
        explorer_url="https://sepolia.arbiscan.io",
        infura_network="arbitrum-sepolia",
    ),
    EvmNetwork(
        key="base-sepolia",
        name="Base Sepolia",
        numeric_chain_id=84532,
        explorer_url="https://sepolia-explorer.base.org",
        infura_network="base-sepolia",
    ),
    EvmNetwork(
        key="bsc-testnet",
        name="BSC Testnet",
        numeric_chain_id=97,
        explorer_url="https://testnet.bscscan.com",
        public_rpc_url="https://data-seed-prebsc-1-s1.binance.org:8545",
        native_token="BNB",
    ),
    EvmNetwork(
        key="optimism-sepolia",
        name="Optimism Sepolia",
        numeric_chain_id=11155420,
        explorer_url="https://sepolia-optimistic.etherscan.io",
        infura_network="optimism-sepolia",
    ),
    EvmNetwork(
        key="polygon-amoy",
        name="Polygon Amoy",
        numeric_chain_id=80002,
        explorer_url="https://amoy.polygonscan.com",
        public_rpc_url="https://rpc-amoy.polygon.technology",
        native_token="POL",
    ),
    EvmNetwork(
        key="moonbase-alpha",
        name="Moonbeam Moonbase Alpha",
        numeric_chain_id=1287,
        explorer_url="https://moonbase.moonscan.io",
        public_rpc_url="https://rpc.api.moonbase.moonbeam.network",
        native_token="DEV",
    ),
]


def _timing(settings: CertenChainSettings) -> dict:
    return {
        "http_timeout_seconds": settings.http_timeout_seconds,
        "confirmation_timeout_seconds": settings.confirmation_timeout_seconds,
        "poll_interval_seconds": settings.poll_interval_seconds,
    }


def build_evm_chain_configs(settings: CertenChainSettings) -> List[ChainConfig]:
    """Build a ChainConfig per EVM network with environment overrides."""
    evm = settings.evm
    configs = []
    for network in EVM_NETWORKS:
        attr = network.key.replace("-", "_")
        custom_rpc = getattr(evm, f"{attr}_rpc_url")
        custom_factory = getattr(evm, f"{attr}_account_factory")

        if custom_rpc:
            rpc_url = custom_rpc
        elif network.public_rpc_url:
            rpc_url = network.public_rpc_url
        else:
            if not evm.infura_api_key:
                logger.warning(
                    f"No RPC URL or INFURA_API_KEY configured for {network.name}"
                )
            rpc_url = f"https://{network.infura_network}.infura.io/v3/{evm.infura_api_key}"

        configs.append(ChainConfig(
            chain_ids=(network.key, str(network.numeric_chain_id)),
            name=network.name,
            rpc_url=rpc_url,
            factory_address=custom_factory or V5_EVM_FACTORY,
            explorer_url=network.explorer_url,
            native_token=network.native_token,
            decimals=18,
            numeric_chain_id=network.numeric_chain_id,
            account_init_code_hash=evm.account_init_code_hash,
            **_timing(settings),
        ))
    return configs


def build_evm_sponsor(settings: CertenChainSettings) -> SponsorConfig:
    evm = settings.evm
    return SponsorConfig(
        chain_name="EVM",
        enabled=evm.sponsored_deployment_enabled,
        private_key=evm.sponsor_private_key,
        min_balance=evm.sponsor_min_balance,
        symbol="ETH",
        address=evm.sponsor_address,
    )


def build_solana_chain_config(settings: CertenChainSettings) -> ChainConfig:
    sol = settings.solana
    return ChainConfig(
        chain_ids=("solana-devnet",),
        name="Solana Devnet",
        rpc_url=sol.devnet_rpc_url,
        factory_address=sol.factory_program_id,
        explorer_url="https://solscan.io",
        explorer_query="?cluster=devnet",
        native_token="SOL",
        decimals=9,
        account_program_id=sol.account_program_id,
        **_timing(settings),
    )


def build_aptos_chain_config(settings: CertenChainSettings) -> ChainConfig:
    aptos = settings.aptos
    return ChainConfig(
        chain_ids=("aptos-testnet",),
        name="Aptos Testnet",
        rpc_url=aptos.testnet_rpc_url,
        factory_address=aptos.factory_package,
        explorer_url="https://explorer.aptoslabs.com",
        explorer_query="?network=testnet",
        native_token="APT",
        decimals=8,
        **_timing(settings),
    )


def build_sui_chain_config(settings: CertenChainSettings) -> ChainConfig:
    sui = settings.sui
    return ChainConfig(
        chain_ids=("sui-testnet",),
        name="Sui Testnet",
        rpc_url=sui.testnet_rpc_url,
        factory_address=sui.factory_package,
        factory_object_id=sui.factory_object or sui.factory_package,
        explorer_url="https://testnet.suiscan.xyz",
        native_token="SUI",
        decimals=9,
        **_timing(settings),
    )


def build_near_chain_config(settings: CertenChainSettings) -> ChainConfig:
    near = settings.near
    return ChainConfig(
        chain_ids=("near-testnet",),
        name="NEAR Testnet",
        rpc_url=near.testnet_rpc_url,
        factory_address=near.factory_account,
        explorer_url="https://testnet.nearblocks.io",
        native_token="NEAR",
        decimals=24,
        **_timing(settings),
    )


def build_ton_chain_config(settings: CertenChainSettings) -> ChainConfig:
    ton = settings.ton
    return ChainConfig(
        chain_ids=("ton-testnet",),
        name="TON Testnet",
        rpc_url=ton.testnet_rpc_url,
        factory_address=ton.factory_address,
        explorer_url="https://testnet.tonscan.org",
        native_token="TON",
        decimals=9,
        api_key=ton.testnet_api_key,
        **_timing(settings),
    )


def build_tron_chain_config(settings: CertenChainSettings) -> ChainConfig:
    tron = settings.tron
    return ChainConfig(
        chain_ids=("tron-testnet", "tron-shasta"),
        name="TRON Shasta Testnet",
        rpc_url=tron.shasta_rpc_url,
        factory_address=tron.factory_address,
        explorer_url="https://shasta.tronscan.org/#",
        native_token="TRX",
        decimals=6,
        account_init_code_hash=tron.account_init_code_hash,
        **_timing(settings),
    )


def build_sponsor(
    settings: _ChainSettings,
    chain_name: str,
    symbol: str,
    **extra,
) -> SponsorConfig:
    """SponsorConfig for a non-EVM chain family."""
    return SponsorConfig(
        chain_name=chain_name,
        enabled=settings.sponsored_deployment_enabled,
        private_key=settings.sponsor_private_key,
        min_balance=settings.sponsor_min_balance,
        symbol=symbol,
        **extra,
    )


def load_settings() -> CertenChainSettings:
    """Load settings from the environment (call once at startup)."""
    return CertenChainSettings()
