"""
Chain handler contract and deployment state machine.

Every chain family implements ChainHandler structurally; the registry and
AccountService only ever see this Protocol. Deployments are driven through a
DeploymentTracker so that each handler follows the same lifecycle:

    UNRESOLVED -> PREDICTED -> ALREADY_DEPLOYED
                            -> PENDING_SUBMISSION -> SUBMITTED -> CONFIRMED -> VERIFIED

Any state from PENDING_SUBMISSION onwards may move to FAILED, which is
terminal. Nothing is retried once a transaction has been handed to the node.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Protocol, runtime_checkable

from .exceptions import InvalidStateTransitionError
from .logging_utils import ChainLogger, get_chain_logger
from .results import (
    AccountAddressResult,
    AddressBalanceResult,
    DeployAccountResult,
    SponsorStatusResult,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class ChainHandler(Protocol):
    """Uniform per-chain contract for prediction and sponsored deployment."""

    chain_ids: List[str]
    chain_name: str
    supports_pre_deployment_prediction: bool

    def is_sponsor_configured(self) -> bool:
        ...

    async def get_account_address(self, adi_url: str) -> AccountAddressResult:
        ...

    async def deploy_account(self, adi_url: str) -> DeployAccountResult:
        ...

    async def get_address_balance(self, address: str) -> AddressBalanceResult:
        ...

    async def get_sponsor_status(self) -> SponsorStatusResult:
        ...


class DeploymentState(str, Enum):
    """Lifecycle of a single deploy_account call."""
    UNRESOLVED = "unresolved"
    PREDICTED = "predicted"
    ALREADY_DEPLOYED = "already_deployed"
    PENDING_SUBMISSION = "pending_submission"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    VERIFIED = "verified"
    FAILED = "failed"


_TRANSITIONS: Dict[DeploymentState, FrozenSet[DeploymentState]] = {
    DeploymentState.UNRESOLVED: frozenset({DeploymentState.PREDICTED}),
    DeploymentState.PREDICTED: frozenset({
        DeploymentState.ALREADY_DEPLOYED,
        DeploymentState.PENDING_SUBMISSION,
    }),
    DeploymentState.PENDING_SUBMISSION: frozenset({
        DeploymentState.SUBMITTED,
        DeploymentState.FAILED,
    }),
    DeploymentState.SUBMITTED: frozenset({
        DeploymentState.CONFIRMED,
        DeploymentState.FAILED,
    }),
    DeploymentState.CONFIRMED: frozenset({
        DeploymentState.VERIFIED,
        DeploymentState.FAILED,
    }),
    DeploymentState.ALREADY_DEPLOYED: frozenset(),
    DeploymentState.VERIFIED: frozenset(),
    DeploymentState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({
    DeploymentState.ALREADY_DEPLOYED,
    DeploymentState.VERIFIED,
    DeploymentState.FAILED,
})


class DeploymentTracker:
    """Enforces legal deployment state transitions for one identity on one chain."""

    def __init__(
        self,
        chain: str,
        adi_url: str,
        chain_logger: Optional[ChainLogger] = None,
    ) -> None:
        self.chain = chain
        self.adi_url = adi_url
        self.state = DeploymentState.UNRESOLVED
        self.history: List[DeploymentState] = [DeploymentState.UNRESOLVED]
        self.tx_hash: Optional[str] = None
        self._logger = chain_logger or get_chain_logger()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can_transition(self, new_state: DeploymentState) -> bool:
        return new_state in _TRANSITIONS[self.state]

    def advance(self, new_state: DeploymentState) -> None:
        """Move to new_state or raise InvalidStateTransitionError."""
        if not self.can_transition(new_state):
            raise InvalidStateTransitionError(
                f"Illegal deployment transition on {self.chain}: "
                f"{self.state.value} -> {new_state.value}",
                details={
                    "chain": self.chain,
                    "adi_url": self.adi_url,
                    "from": self.state.value,
                    "to": new_state.value,
                },
            )
        self._logger.log_state_transition(
            self.chain, self.adi_url, self.state.value, new_state.value
        )
        self.state = new_state
        self.history.append(new_state)

    def predicted(self) -> None:
        self.advance(DeploymentState.PREDICTED)

    def already_deployed(self) -> None:
        self.advance(DeploymentState.ALREADY_DEPLOYED)

    def pending_submission(self) -> None:
        self.advance(DeploymentState.PENDING_SUBMISSION)

    def submitted(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        self.advance(DeploymentState.SUBMITTED)

    def confirmed(self) -> None:
        self.advance(DeploymentState.CONFIRMED)

    def verified(self) -> None:
        self.advance(DeploymentState.VERIFIED)

    def fail(self) -> None:
        """Mark failure; no-op before submission was prepared or once terminal."""
        if self.can_transition(DeploymentState.FAILED):
            self.advance(DeploymentState.FAILED)
