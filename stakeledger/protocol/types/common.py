# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class CallType(str, Enum):
    TRANSFER = "TRANSFER"
    APPROVE = "APPROVE"
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    FUND_REWARDS = "FUND_REWARDS"     # Owner only
    TRANSFER_OWNERSHIP = "TRANSFER_OWNERSHIP"  # Owner only


class EventName(str, Enum):
    TRANSFER = "Transfer"
    APPROVAL = "Approval"
    TOKENS_STAKED = "TokensStaked"
    TOKENS_UNSTAKED = "TokensUnstaked"
    REWARDS_FUNDED = "RewardsFunded"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"


class ProtocolError(Exception):
    pass


class ValidationError(ProtocolError):
    pass


class LedgerError(ProtocolError):
    """
    Named precondition failure. The whole call is aborted with no partial effect.

    `code` is stable and equals the class name; the RPC layer reports it verbatim.
    """

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    @property
    def code(self) -> str:
        return type(self).__name__


class InvalidAmount(LedgerError):
    pass


class InsufficientBalance(LedgerError):
    pass


class InsufficientAllowance(LedgerError):
    pass


class StakingPeriodNotMet(LedgerError):
    pass


class Unauthorized(LedgerError):
    pass


class InvalidAddress(LedgerError):
    pass


class InvalidSignature(ValidationError, LedgerError):
    pass


class InvalidNonce(ValidationError, LedgerError):
    pass


class UnknownMethod(ValidationError, LedgerError):
    pass


class InvalidArguments(ValidationError, LedgerError):
    pass
