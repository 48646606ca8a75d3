# MIT License
# Copyright (c) 2025 Hashborn

"""
Call receipt tracking.

Stores the outcome of every top-level contract call for querying.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, List
import logging
from threading import RLock

logger = logging.getLogger(__name__)

STATUS_SUCCESS = 'success'
STATUS_REVERTED = 'reverted'


@dataclass
class CallReceipt:
    """
    Receipt of a top-level contract call.

    Attributes:
        call_id: Unique call identifier
        contract: Address of the called contract
        method: Contract method name
        caller: Address that made the call
        status: 'success' or 'reverted'
        timestamp: Runtime clock time of the call
        error: Error code if the call reverted (None otherwise)
        message: Human-readable error message
        event_indexes: Positions of the committed events in the runtime log
    """
    call_id: str
    contract: str
    method: str
    caller: str
    status: str
    timestamp: int = 0
    error: Optional[str] = None
    message: Optional[str] = None
    event_indexes: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert receipt to dictionary for API response."""
        return {
            "call_id": self.call_id,
            "contract": self.contract,
            "method": self.method,
            "caller": self.caller,
            "status": self.status,
            "timestamp": self.timestamp,
            "error": self.error,
            "message": self.message,
            "event_indexes": list(self.event_indexes),
        }


class CallReceiptStore:
    """
    In-memory store for call receipts.

    Thread-safe storage with automatic cleanup of old receipts.
    """

    def __init__(self, max_receipts: int = 10000):
        """
        Initialize receipt store.

        Args:
            max_receipts: Maximum number of receipts to keep in memory
        """
        self.receipts: Dict[str, CallReceipt] = {}
        self.max_receipts = max_receipts
        self.lock = RLock()

    def add(self, receipt: CallReceipt) -> CallReceipt:
        with self.lock:
            self.receipts[receipt.call_id] = receipt

            if len(self.receipts) > self.max_receipts:
                self._cleanup_old_receipts()

            logger.debug(f"Recorded {receipt.status} receipt: {receipt.call_id[:16]}... "
                         f"{receipt.method}" + (f" ({receipt.error})" if receipt.error else ""))
            return receipt

    def get(self, call_id: str) -> Optional[CallReceipt]:
        """
        Get receipt for a call.

        Args:
            call_id: Call identifier

        Returns:
            Receipt if found, None otherwise
        """
        with self.lock:
            return self.receipts.get(call_id)

    def by_status(self, status: str) -> List[CallReceipt]:
        with self.lock:
            return [r for r in self.receipts.values() if r.status == status]

    def _cleanup_old_receipts(self) -> None:
        """
        Remove oldest receipts to stay under max_receipts limit.

        Removes 10% of oldest receipts when limit is exceeded.
        """
        num_to_remove = max(1, len(self.receipts) // 10)

        # dicts keep insertion order, so the head holds the oldest calls
        for call_id in list(self.receipts.keys())[:num_to_remove]:
            del self.receipts[call_id]

        logger.info(f"Cleaned up {num_to_remove} old receipts (total: {len(self.receipts)})")

    def __len__(self) -> int:
        with self.lock:
            return len(self.receipts)

    def clear(self) -> None:
        """Clear all receipts (for testing)."""
        with self.lock:
            self.receipts.clear()
            logger.debug("Cleared all receipts")
