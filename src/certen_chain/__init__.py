"""Multi-chain account prediction and sponsored deployment exports."""

from .config import (
    CertenChainSettings,
    ChainConfig,
    LoggingConfig,
    SponsorConfig,
    load_settings,
)
from .derivation import (
    derive_evm_owner,
    derive_owner20,
    derive_owner32,
    derive_salt53,
    derive_salt64,
    derive_salt256,
    identity_hash,
    validate_identity,
)
from .exceptions import (
    CertenChainError,
    ChainError,
    ChainRPCError,
    ConfigurationError,
    ConfirmationTimeoutError,
    DeploymentVerificationError,
    InsufficientSponsorFundsError,
    InvalidFactoryResponseError,
    InvalidIdentityError,
    InvalidStateTransitionError,
    SponsorNotConfiguredError,
    TransactionFailedError,
    UnsupportedChainError,
)
from .handler import ChainHandler, DeploymentState, DeploymentTracker
from .logging_utils import ChainLogger, OperationType, get_chain_logger, setup_logging
from .registry import HandlerRegistry, build_registry
from .results import (
    AccountAddressResult,
    AddressBalanceResult,
    DeployAccountResult,
    DerivationPath,
    SponsorStatusResult,
)
from .service import AccountService

__version__ = "0.1.0"

__all__ = [
    "AccountAddressResult",
    "AccountService",
    "AddressBalanceResult",
    "CertenChainError",
    "CertenChainSettings",
    "ChainConfig",
    "ChainError",
    "ChainHandler",
    "ChainLogger",
    "ChainRPCError",
    "ConfigurationError",
    "ConfirmationTimeoutError",
    "DeployAccountResult",
    "DeploymentState",
    "DeploymentTracker",
    "DeploymentVerificationError",
    "DerivationPath",
    "HandlerRegistry",
    "InsufficientSponsorFundsError",
    "InvalidFactoryResponseError",
    "InvalidIdentityError",
    "InvalidStateTransitionError",
    "LoggingConfig",
    "OperationType",
    "SponsorConfig",
    "SponsorNotConfiguredError",
    "SponsorStatusResult",
    "TransactionFailedError",
    "UnsupportedChainError",
    "build_registry",
    "derive_evm_owner",
    "derive_owner20",
    "derive_owner32",
    "derive_salt53",
    "derive_salt64",
    "derive_salt256",
    "get_chain_logger",
    "identity_hash",
    "load_settings",
    "setup_logging",
    "validate_identity",
]
