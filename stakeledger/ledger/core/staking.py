# MIT License
# Copyright (c) 2025 Hashborn

"""
Token staking contract (StakeLedger).

Participants lock tokens for at least `min_staking_period` seconds. On unstake
they get their principal back plus a reward that grows linearly with time:

    reward = amount * reward_rate_percent * elapsed // (100 * min_staking_period)

Rewards are paid only out of the reward reserve, i.e. tokens the contract holds
beyond the principal it custodies. The owner tops the reserve up with
`fund_rewards`; an unfunded reserve pays a reward of 0.

Emits:
    TokensStaked {participant, amount}
    TokensUnstaked {participant, principal, reward}
    RewardsFunded {funder, amount}
    OwnershipTransferred {previous_owner, new_owner}
"""
from typing import Optional, Tuple
import logging

from ...protocol.types.common import EventName, InvalidAmount, InsufficientBalance, StakingPeriodNotMet, Unauthorized
from ...protocol.types.stake import StakeRecord, StakingState
from ...protocol.config.params import DEFAULT_REWARD_RATE_PERCENT
from .runtime import Contract, transaction
from .token import TokenLedger, require_address

logger = logging.getLogger(__name__)


class StakingContract(Contract):
    kind = "staking"

    def __init__(self,
                 token: TokenLedger,
                 min_staking_period: int,
                 owner: str,
                 reward_rate_percent: int = DEFAULT_REWARD_RATE_PERCENT):
        super().__init__()
        if min_staking_period <= 0:
            raise ValueError(f"min_staking_period must be positive, got {min_staking_period}")
        if reward_rate_percent < 0:
            raise ValueError(f"reward_rate_percent must be non-negative, got {reward_rate_percent}")
        if not owner:
            raise ValueError("Staking owner is required")

        self.token = token
        self._min_staking_period = int(min_staking_period)
        self._reward_rate_percent = int(reward_rate_percent)
        self.state = StakingState(owner=owner)

    def on_deploy(self, deployer: str):
        if self.token.runtime is not self.runtime:
            raise ValueError("Token must be deployed in the same runtime as the staking contract")

    # --- Configuration (immutable) ---
    @property
    def min_staking_period(self) -> int:
        return self._min_staking_period

    @property
    def reward_rate_percent(self) -> int:
        return self._reward_rate_percent

    @property
    def owner(self) -> str:
        return self.state.owner

    # --- Views ---
    def staked_amount(self, participant: str) -> int:
        return self.state.get_stake(participant).amount

    def stake_of(self, participant: str) -> StakeRecord:
        return self.state.get_stake(participant).model_copy()

    def total_staked(self) -> int:
        return self.state.total_staked

    def reward_reserve(self) -> int:
        """Tokens held beyond custodied principal."""
        return max(0, self.token.balance_of(self.address) - self.state.total_staked)

    def unlocks_at(self, participant: str) -> Optional[int]:
        record = self.state.get_stake(participant)
        if not record.is_active:
            return None
        return record.since + self._min_staking_period

    def calculate_reward(self, participant: str) -> int:
        """Reward accrued so far; 0 when the participant is not staking."""
        record = self.state.get_stake(participant)
        if not record.is_active:
            return 0
        elapsed = max(0, self._now() - record.since)
        return (record.amount * self._reward_rate_percent * elapsed) // (100 * self._min_staking_period)

    # --- Transactions ---
    @transaction
    def stake(self, caller: str, amount: int) -> int:
        """
        Moves `amount` from the caller into custody.

        The caller must have approved the staking contract for `amount` on the
        token first. Re-staking adds to the principal and restarts the period.

        Returns:
            The caller's new staked amount.
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(f"Stake amount must be a positive integer, got {amount!r}")

        balance = self.token.balance_of(caller)
        if balance < amount:
            raise InsufficientBalance(f"Insufficient balance: have {balance}, need {amount}")

        self.token.transfer_from(self.address, caller, self.address, amount)

        record = self.state.get_stake(caller)
        updated = StakeRecord(amount=record.amount + amount, since=self._now())
        self.state.set_stake(caller, updated)
        self.state.total_staked += amount

        self._emit(EventName.TOKENS_STAKED, {"participant": caller, "amount": amount})
        logger.info(f"{caller} staked {amount} (total {updated.amount})")
        return updated.amount

    @transaction
    def unstake(self, caller: str) -> Tuple[int, int]:
        """
        Returns the caller's whole principal plus the payable reward and clears the stake.

        Returns:
            (principal, reward)
        """
        record = self.state.get_stake(caller)
        if not record.is_active:
            raise Unauthorized(f"{caller} has no active stake")

        elapsed = self._now() - record.since
        if elapsed < self._min_staking_period:
            raise StakingPeriodNotMet(
                f"Staked {elapsed}s ago, minimum period is {self._min_staking_period}s"
            )

        accrued = self.calculate_reward(caller)
        reward = min(accrued, self.reward_reserve())
        if reward < accrued:
            logger.warning(f"Reward reserve short for {caller}: accrued {accrued}, paying {reward}")

        principal = record.amount
        self.state.set_stake(caller, StakeRecord())
        self.state.total_staked -= principal

        self.token.transfer(self.address, caller, principal + reward)

        self._emit(EventName.TOKENS_UNSTAKED, {"participant": caller, "principal": principal, "reward": reward})
        logger.info(f"{caller} unstaked {principal} with reward {reward}")
        return principal, reward

    @transaction
    def fund_rewards(self, caller: str, amount: int) -> int:
        """Owner moves `amount` tokens into the reward reserve. Returns the new reserve."""
        self._require_owner(caller)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(f"Funding amount must be a positive integer, got {amount!r}")

        self.token.transfer_from(self.address, caller, self.address, amount)

        self._emit(EventName.REWARDS_FUNDED, {"funder": caller, "amount": amount})
        return self.reward_reserve()

    @transaction
    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        self._require_owner(caller)
        require_address(new_owner, "new owner")

        previous = self.state.owner
        self.state.owner = new_owner
        self._emit(EventName.OWNERSHIP_TRANSFERRED, {"previous_owner": previous, "new_owner": new_owner})
        logger.info(f"Staking ownership transferred {previous} -> {new_owner}")
        return new_owner

    def _require_owner(self, caller: str):
        if caller != self.state.owner:
            raise Unauthorized(f"{caller} is not the staking owner")
