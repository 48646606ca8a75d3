# MIT License
# Copyright (c) 2025 Hashborn

from .clock import SystemClock, ManualClock
from .events import EventBus
from .receipts import CallReceipt, CallReceiptStore
from .runtime import Runtime, Contract, transaction
from .token import TokenLedger, ZERO_ADDRESS
from .staking import StakingContract

__all__ = [
    'SystemClock', 'ManualClock', 'EventBus', 'CallReceipt', 'CallReceiptStore',
    'Runtime', 'Contract', 'transaction', 'TokenLedger', 'ZERO_ADDRESS', 'StakingContract',
]
