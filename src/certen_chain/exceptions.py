"""Unified exception hierarchy for certen-chain.

All chain-handler exceptions inherit from CertenChainError, enabling:
- Consistent error handling across handlers
- Proper HTTP status code mapping in the API layer
- Structured error responses with error codes

Usage:
    from certen_chain.exceptions import (
        CertenChainError,
        SponsorNotConfiguredError,
        InsufficientSponsorFundsError,
    )

    try:
        result = await handler.deploy_account(adi_url)
    except CertenChainError as e:
        return JSONResponse(e.to_dict(), status_code=e.http_status)

All exceptions have:
- error_code: Machine-readable error code (e.g., "INSUFFICIENT_SPONSOR_FUNDS")
- http_status: Appropriate HTTP status code for API responses
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to API response format
"""
from __future__ import annotations

from typing import Any, Optional


class CertenChainError(Exception):
    """Base exception for all certen-chain errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "CHAIN_HANDLER_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Validation & Lookup Errors (4xx)
# =============================================================================

class InvalidIdentityError(CertenChainError):
    """Identity string (ADI URL) is missing or malformed."""

    error_code = "INVALID_IDENTITY"
    http_status = 400

    def __init__(
        self,
        message: str,
        identity: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if identity is not None:
            details["identity"] = identity
        super().__init__(message, details=details)


class UnsupportedChainError(CertenChainError):
    """No handler is registered for the requested chain identifier."""

    error_code = "UNSUPPORTED_CHAIN"
    http_status = 404

    def __init__(
        self,
        chain_id: str,
        supported: Optional[list[str]] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["chain_id"] = chain_id
        message = f"Unsupported chain: {chain_id}"
        if supported:
            details["supported"] = supported
            message += f". Supported chains: {', '.join(supported)}"
        super().__init__(message, details=details)


class InsufficientSponsorFundsError(CertenChainError):
    """Sponsor balance is below the configured minimum for deployments."""

    error_code = "INSUFFICIENT_SPONSOR_FUNDS"
    http_status = 402

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        balance: Optional[str] = None,
        required: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if chain:
            details["chain"] = chain
        if balance is not None:
            details["balance"] = balance
        if required is not None:
            details["required"] = required
        super().__init__(message, details=details)


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(CertenChainError):
    """Handler configuration error (bad key material, bad factory address)."""

    error_code = "CONFIGURATION_ERROR"
    http_status = 500


class SponsorNotConfiguredError(ConfigurationError):
    """Sponsored deployment is disabled or has no signing key."""

    error_code = "SPONSOR_NOT_CONFIGURED"
    http_status = 503

    def __init__(
        self,
        chain: str,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        message = message or f"Sponsored deployment is not configured for {chain}"
        details = details or {}
        details["chain"] = chain
        super().__init__(message, details=details)


# =============================================================================
# Chain & Infrastructure Errors (5xx)
# =============================================================================

class ChainError(CertenChainError):
    """Base class for blockchain-related errors."""

    error_code = "CHAIN_ERROR"
    http_status = 502

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if chain:
            details["chain"] = chain
        self.chain = chain
        super().__init__(message, details=details)


class ChainRPCError(ChainError):
    """RPC call to a chain node failed."""

    error_code = "RPC_ERROR"

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        method: Optional[str] = None,
        rpc_error: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if method:
            details["method"] = method
        if rpc_error is not None:
            details["rpc_error"] = rpc_error
        self.method = method
        self.rpc_error = rpc_error
        super().__init__(message, chain=chain, details=details)


class InvalidFactoryResponseError(ChainError):
    """Factory returned a zero, empty or otherwise unusable address."""

    error_code = "INVALID_FACTORY_RESPONSE"

    def __init__(
        self,
        chain: str,
        returned: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if returned is not None:
            details["returned"] = returned
        message = (
            f"Factory on {chain} returned invalid address. The contract may not be "
            f"properly deployed or may be incompatible."
        )
        super().__init__(message, chain=chain, details=details)


class TransactionFailedError(ChainError):
    """Deployment transaction was confirmed with a failure status."""

    error_code = "TRANSACTION_FAILED"

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        tx_hash: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if tx_hash:
            details["tx_hash"] = tx_hash
        self.tx_hash = tx_hash
        super().__init__(message, chain=chain, details=details)


class DeploymentVerificationError(ChainError):
    """Transaction confirmed but no account is discoverable at the address."""

    error_code = "DEPLOYMENT_NOT_VERIFIED"

    def __init__(
        self,
        chain: str,
        tx_hash: str,
        address: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["tx_hash"] = tx_hash
        details["address"] = address
        message = (
            f"{chain} deployment tx {tx_hash} succeeded but account not found at {address}"
        )
        super().__init__(message, chain=chain, details=details)


class InvalidStateTransitionError(CertenChainError):
    """Deployment state machine was driven through an illegal transition."""

    error_code = "INVALID_STATE_TRANSITION"
    http_status = 500


class ConfirmationTimeoutError(ChainError):
    """Submitted transaction was not confirmed within the configured timeout."""

    error_code = "CONFIRMATION_TIMEOUT"
    http_status = 504

    def __init__(
        self,
        chain: str,
        tx_hash: str,
        timeout_seconds: float,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["tx_hash"] = tx_hash
        details["timeout_seconds"] = timeout_seconds
        self.tx_hash = tx_hash
        message = f"Transaction {tx_hash} on {chain} not confirmed within {timeout_seconds:.0f}s"
        super().__init__(message, chain=chain, details=details)
