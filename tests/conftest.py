"""
Pytest configuration for certen-chain tests.
"""
from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from eth_utils import to_checksum_address

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
if str(package_src) not in sys.path:
    sys.path.insert(0, str(package_src))

# Set test environment
os.environ.setdefault("CERTEN_ENVIRONMENT", "dev")

from certen_chain.config import ChainConfig, SponsorConfig  # noqa: E402

EXAMPLE_ADI = "acc://example.acme"
EVM_FACTORY = "0x2e6037afFA783d487664b2440c691fc86Bc18A17"
PREDICTED_EVM = to_checksum_address("0xaaaa000000000000000000000000000000001111")
# Well-known throwaway key; never funded
EVM_SPONSOR_KEY = "0x" + "11" * 32


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def example_adi():
    return EXAMPLE_ADI


@pytest.fixture
def evm_config():
    """Mock EVM-style chain with instant confirmation polling."""
    return ChainConfig(
        chain_ids=("base-sepolia", "84532"),
        name="Base Sepolia",
        rpc_url="http://localhost:8545",
        factory_address=EVM_FACTORY,
        explorer_url="https://sepolia-explorer.base.org",
        native_token="ETH",
        decimals=18,
        numeric_chain_id=84532,
        confirmation_timeout_seconds=1.0,
        poll_interval_seconds=0.0,
    )


@pytest.fixture
def evm_sponsor():
    return SponsorConfig(
        chain_name="EVM",
        enabled=True,
        private_key=EVM_SPONSOR_KEY,
        min_balance=Decimal("0.01"),
        symbol="ETH",
    )


@pytest.fixture
def disabled_sponsor():
    return SponsorConfig(chain_name="EVM", enabled=False)
