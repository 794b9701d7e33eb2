"""Sponsor account model: balance policy gating sponsored deployments.

Balances are carried as integers in the chain's base unit (wei, lamports,
octas, MIST, yoctoNEAR, nanotons, sun) and only formatted for display.
"""
from __future__ import annotations

import logging
from decimal import Decimal, localcontext
from typing import Optional

from .config import SponsorConfig
from .exceptions import InsufficientSponsorFundsError
from .results import SponsorStatusResult

logger = logging.getLogger(__name__)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a display amount (e.g. Decimal("0.01") ETH) to base units."""
    with localcontext() as ctx:
        ctx.prec = 80
        return int(amount.scaleb(decimals))


def format_units(value: int, decimals: int, places: Optional[int] = None) -> str:
    """Format base units as a display amount.

    With places=None the exact value is rendered without trailing zeros.
    """
    with localcontext() as ctx:
        ctx.prec = 80
        amount = Decimal(value).scaleb(-decimals)
        if places is not None:
            return f"{amount:.{places}f}"
        return format(amount.normalize(), "f")


def min_balance_units(sponsor: SponsorConfig, decimals: int) -> int:
    return to_base_units(sponsor.min_balance, decimals)


def has_sufficient_balance(sponsor: SponsorConfig, balance: int, decimals: int) -> bool:
    """Balance meets or exceeds the configured minimum."""
    return balance >= min_balance_units(sponsor, decimals)


def ensure_sponsor_funds(
    chain_name: str,
    sponsor: SponsorConfig,
    balance: int,
    decimals: int,
    symbol: str,
) -> None:
    """Raise before any transaction is attempted if the sponsor is underfunded."""
    required = min_balance_units(sponsor, decimals)
    logger.info(f"Sponsor balance on {chain_name}: {format_units(balance, decimals)} {symbol}")
    if balance < required:
        raise InsufficientSponsorFundsError(
            "Sponsor wallet balance too low. Please contact support.",
            chain=chain_name,
            balance=f"{format_units(balance, decimals)} {symbol}",
            required=f"{format_units(required, decimals)} {symbol}",
        )


def sponsor_not_configured(name: str, factory_address: str) -> SponsorStatusResult:
    return SponsorStatusResult(
        name=name,
        available=False,
        factory_address=factory_address,
        error="Sponsor not configured",
    )


def sponsor_status(
    name: str,
    factory_address: str,
    sponsor: SponsorConfig,
    balance: int,
    decimals: int,
    symbol: str,
) -> SponsorStatusResult:
    """Status for a configured sponsor with a known balance."""
    return SponsorStatusResult(
        name=name,
        available=has_sufficient_balance(sponsor, balance, decimals),
        factory_address=factory_address,
        balance=f"{format_units(balance, decimals, places=4)} {symbol}",
        min_balance=f"{format_units(min_balance_units(sponsor, decimals), decimals)} {symbol}",
    )


def sponsor_unreachable(name: str, factory_address: str, error: Exception) -> SponsorStatusResult:
    logger.warning(f"Sponsor status for {name} failed: {error}")
    return SponsorStatusResult(
        name=name,
        available=False,
        factory_address=factory_address,
        error=f"Failed to connect to {name}: {error}",
    )
