"""Value objects returned by chain handlers.

Each result is built fresh for a single call and never cached: on-chain
deployment state can change between calls.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class DerivationPath(str, Enum):
    """Which path produced a predicted address."""
    ONCHAIN = "onchain"          # factory view call
    LOCAL = "local"              # bit-exact local reproduction
    PLACEHOLDER = "placeholder"  # best effort, not final


@dataclass(frozen=True)
class AccountAddressResult:
    """Predicted account address for an ADI on one chain."""
    account_address: str
    is_deployed: bool
    explorer_url: str
    derivation_path: DerivationPath = DerivationPath.ONCHAIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "accountAddress": self.account_address,
            "isDeployed": self.is_deployed,
            "explorerUrl": self.explorer_url,
            "derivationPath": self.derivation_path.value,
        }


@dataclass(frozen=True)
class DeployAccountResult:
    """Outcome of a deploy-or-confirm call.

    transaction_hash is None exactly when already_existed is True.
    """
    account_address: str
    already_existed: bool
    transaction_hash: Optional[str]
    explorer_url: str
    message: str
    gas_used: Optional[str] = None

    def __post_init__(self) -> None:
        if self.already_existed != (self.transaction_hash is None):
            raise ValueError(
                "transaction_hash must be None exactly when already_existed is True"
            )

    def to_dict(self) -> dict[str, Any]:
        result = {
            "accountAddress": self.account_address,
            "alreadyExisted": self.already_existed,
            "transactionHash": self.transaction_hash,
            "explorerUrl": self.explorer_url,
            "message": self.message,
        }
        if self.gas_used is not None:
            result["gasUsed"] = self.gas_used
        return result


@dataclass(frozen=True)
class SponsorStatusResult:
    """Sponsor wallet status for operational dashboards."""
    name: str
    available: bool
    factory_address: str
    balance: Optional[str] = None
    min_balance: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "available": self.available,
            "factoryAddress": self.factory_address,
        }
        if self.balance is not None:
            result["balance"] = self.balance
        if self.min_balance is not None:
            result["minBalance"] = self.min_balance
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class AddressBalanceResult:
    """Native balance of an address; error set instead of raising."""
    address: str
    balance: str
    symbol: str
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "address": self.address,
            "balance": self.balance,
            "symbol": self.symbol,
        }
        if self.error is not None:
            result["error"] = self.error
        return result
