"""
Structured logging for chain handler operations.

Handlers log three kinds of events through ChainLogger:

- timed operations (derivation, deployment, sponsor status), via the
  ``operation_context`` async context manager
- which derivation path produced an address
- the deployment transaction lifecycle, mirrored to an audit trail
"""
from __future__ import annotations

import itertools
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from .config import LoggingConfig

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    ADDRESS_DERIVATION = "address_derivation"
    DEPLOYMENT = "deployment"
    SPONSOR_STATUS = "sponsor_status"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OperationRecord:
    """One timed handler operation; handlers may add to ``metadata``."""
    operation_id: str
    operation_type: OperationType
    chain: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_utcnow)
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None

    def finish(self, error: Optional[BaseException] = None) -> None:
        self.duration_ms = (_utcnow() - self.started_at).total_seconds() * 1000
        self.success = error is None
        self.error = None if error is None else str(error)

    def as_log_extra(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type.value,
            "chain": self.chain,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


class ChainLogger:
    """Logger shared by every chain handler."""

    def __init__(self, name: str = "certen_chain", config: Optional[LoggingConfig] = None):
        self._logger = logging.getLogger(name)
        self._config = config or LoggingConfig()
        self._sequence = itertools.count(1)

    def _generate_operation_id(self) -> str:
        return f"op_{int(time.time() * 1000)}_{next(self._sequence)}"

    @staticmethod
    def _level(name: str) -> int:
        return getattr(logging, name.upper(), logging.INFO)

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        chain: str,
        **metadata: Any,
    ) -> AsyncIterator[OperationRecord]:
        """Time an operation and log its outcome; exceptions propagate."""
        record = OperationRecord(
            operation_id=self._generate_operation_id(),
            operation_type=operation_type,
            chain=chain,
            metadata=metadata,
        )
        self._logger.debug(
            f"{operation_type.value} on {chain} started",
            extra={"operation": record.as_log_extra()},
        )
        try:
            yield record
        except BaseException as e:
            record.finish(e)
            raise
        else:
            record.finish()
        finally:
            level = self._config.operation_level if record.success else self._config.error_level
            self._logger.log(
                self._level(level),
                f"{operation_type.value} on {chain} "
                f"{'succeeded' if record.success else 'failed'} after {record.duration_ms:.0f}ms",
                extra={"operation": record.as_log_extra()},
            )

    def log_derivation(
        self,
        chain: str,
        adi_url: str,
        address: str,
        path: str,
        reason: Optional[str] = None,
    ) -> None:
        """Anything other than the on-chain path is logged as a warning."""
        shown = self._fmt(address)
        message = f"Derived {chain} address for {adi_url} via {path}: {shown}"
        if reason:
            message += f" ({reason})"
        self._logger.log(
            logging.INFO if path == "onchain" else logging.WARNING,
            message,
            extra={"derivation": {
                "chain": chain, "adi_url": adi_url, "address": shown,
                "path": path, "reason": reason,
            }},
        )

    def log_transaction_submitted(
        self,
        tx_hash: str,
        chain: str,
        from_address: str,
        to_address: str,
        value: int = 0,
    ) -> None:
        self._transaction_event(
            "submitted", tx_hash, chain,
            from_address=self._fmt(from_address),
            to_address=self._fmt(to_address),
            value=value,
        )

    def log_transaction_confirmed(
        self, tx_hash: str, chain: str, gas_used: Optional[str] = None
    ) -> None:
        self._transaction_event("confirmed", tx_hash, chain, gas_used=gas_used)

    def log_transaction_failed(self, tx_hash: str, chain: str, error: str) -> None:
        self._transaction_event("failed", tx_hash, chain, error=error)

    def _transaction_event(self, event: str, tx_hash: str, chain: str, **fields: Any) -> None:
        entry = {"tx_hash": tx_hash, "chain": chain, **fields}
        level = self._config.error_level if event == "failed" else self._config.transaction_level
        message = f"Transaction {event}: {tx_hash} on {chain}"
        if fields.get("error"):
            message += f" ({fields['error']})"
        self._logger.log(self._level(level), message, extra={"transaction": entry})
        if self._config.audit_log_enabled:
            self._audit(f"transaction_{event}", entry)

    def log_state_transition(self, chain: str, adi_url: str, old: str, new: str) -> None:
        self._logger.debug(
            f"Deployment of {adi_url} on {chain}: {old} -> {new}",
            extra={"deployment_state": {"chain": chain, "adi_url": adi_url, "from": old, "to": new}},
        )

    def _fmt(self, address: str) -> str:
        return self._mask_address(address) if self._config.mask_addresses else address

    @staticmethod
    def _mask_address(address: str) -> str:
        if len(address) < 10:
            return address
        return f"{address[:6]}...{address[-4:]}"

    def _audit(self, event_type: str, data: Dict[str, Any]) -> None:
        """Append to the audit file if one is configured, else log at INFO."""
        entry = {"timestamp": _utcnow().isoformat(), "event_type": event_type, "data": data}
        path = self._config.audit_log_path
        if not path:
            self._logger.info(f"AUDIT: {event_type}", extra={"audit": entry})
            return
        try:
            with open(path, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            self._logger.error(f"Failed to write audit log {path}: {e}")


_chain_logger: Optional[ChainLogger] = None


def get_chain_logger(
    name: str = "certen_chain",
    config: Optional[LoggingConfig] = None,
) -> ChainLogger:
    """Process-wide ChainLogger, created on first use."""
    global _chain_logger
    if _chain_logger is None:
        _chain_logger = ChainLogger(name, config)
    return _chain_logger


PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
    '"name": "%(name)s", "message": "%(message)s"}'
)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure root logging for a process embedding the handlers.

    HTTP client libraries are held at WARNING so per-request lines do not
    drown out handler logs.
    """
    numeric = getattr(logging, level.upper())
    logging.basicConfig(level=numeric, format=JSON_FORMAT if json_format else PLAIN_FORMAT)
    logging.getLogger("certen_chain").setLevel(numeric)
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
