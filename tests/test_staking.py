"""Tests for the staking contract: stake, unstake, rewards and access control."""
import pytest

from stakeledger.protocol.types.common import (
    InvalidAmount, InsufficientBalance, InsufficientAllowance, StakingPeriodNotMet, Unauthorized,
)
from stakeledger.ledger.core.receipts import STATUS_REVERTED
from stakeledger.ledger.core.staking import StakingContract

from conftest import UNIT, MIN_STAKING_PERIOD, REWARD_RATE, START_TIME


def approve_and_stake(token, staking, participant, amount):
    token.approve(participant, staking.address, amount)
    return staking.stake(participant, amount)


def snapshot_ledger(token, staking, runtime):
    return (
        dict(token.state.balances),
        {k: v.model_dump() for k, v in staking.state.stakes.items()},
        staking.total_staked(),
        len(runtime.logs),
    )


# ═══════════════════════════════════════════════════════════════════
# STAKING
# ═══════════════════════════════════════════════════════════════════

def test_stake_moves_tokens_into_custody(token, staking, user1):
    stake_amount = 100 * UNIT
    balance_before = token.balance_of(user1)

    total = approve_and_stake(token, staking, user1, stake_amount)

    assert total == stake_amount
    assert staking.staked_amount(user1) == stake_amount
    assert token.balance_of(user1) == balance_before - stake_amount
    assert token.balance_of(staking.address) == stake_amount
    assert staking.stake_of(user1).since == START_TIME
    assert token.allowance(user1, staking.address) == 0


def test_stake_emits_tokens_staked(runtime, token, staking, user1):
    approve_and_stake(token, staking, user1, 100 * UNIT)

    events = runtime.events(name="TokensStaked")
    assert len(events) == 1
    assert events[0].contract == staking.address
    assert events[0].args == {"participant": user1, "amount": 100 * UNIT}


def test_stake_insufficient_balance(runtime, token, staking, user1):
    """Staking 2000 with only 1000 available fails with no state change."""
    stake_amount = 2000 * UNIT
    token.approve(user1, staking.address, stake_amount)
    before = snapshot_ledger(token, staking, runtime)

    with pytest.raises(InsufficientBalance):
        staking.stake(user1, stake_amount)

    assert snapshot_ledger(token, staking, runtime) == before
    assert runtime.last_receipt.status == STATUS_REVERTED
    assert runtime.last_receipt.error == "InsufficientBalance"


@pytest.mark.parametrize("amount", [0, -1, -100 * UNIT])
def test_stake_rejects_non_positive_amount(token, staking, user1, amount):
    with pytest.raises(InvalidAmount):
        staking.stake(user1, amount)


def test_stake_zero_fails_for_active_staker(token, staking, user1):
    approve_and_stake(token, staking, user1, 100 * UNIT)

    with pytest.raises(InvalidAmount):
        staking.stake(user1, 0)
    assert staking.staked_amount(user1) == 100 * UNIT


def test_stake_requires_allowance(runtime, token, staking, user1):
    before = snapshot_ledger(token, staking, runtime)

    with pytest.raises(InsufficientAllowance):
        staking.stake(user1, 100 * UNIT)

    assert snapshot_ledger(token, staking, runtime) == before


def test_restake_adds_principal_and_resets_period(runtime, token, staking, user1):
    approve_and_stake(token, staking, user1, 100 * UNIT)
    runtime.advance_time(MIN_STAKING_PERIOD - 10)

    total = approve_and_stake(token, staking, user1, 50 * UNIT)

    assert total == 150 * UNIT
    record = staking.stake_of(user1)
    assert record.since == START_TIME + MIN_STAKING_PERIOD - 10

    # The period restarted, so the original unlock time no longer applies
    runtime.advance_time(10)
    with pytest.raises(StakingPeriodNotMet):
        staking.unstake(user1)


# ═══════════════════════════════════════════════════════════════════
# UNSTAKING
# ═══════════════════════════════════════════════════════════════════

def test_unstake_after_minimum_period(runtime, token, staking, user1):
    stake_amount = 100 * UNIT
    approve_and_stake(token, staking, user1, stake_amount)
    balance_after_stake = token.balance_of(user1)

    # Fast forward time to meet staking period requirement
    runtime.advance_time(MIN_STAKING_PERIOD)

    principal, reward = staking.unstake(user1)

    # Reserve is unfunded, so no reward is paid
    assert (principal, reward) == (stake_amount, 0)
    event = runtime.events(name="TokensUnstaked")[-1]
    assert event.args == {"participant": user1, "principal": stake_amount, "reward": 0}
    assert staking.staked_amount(user1) == 0
    assert token.balance_of(user1) == balance_after_stake + stake_amount
    assert staking.total_staked() == 0


def test_unstake_before_minimum_period(runtime, token, staking, user1):
    approve_and_stake(token, staking, user1, 100 * UNIT)

    with pytest.raises(StakingPeriodNotMet):
        staking.unstake(user1)

    runtime.advance_time(MIN_STAKING_PERIOD - 1)
    with pytest.raises(StakingPeriodNotMet):
        staking.unstake(user1)

    assert staking.staked_amount(user1) == 100 * UNIT


@pytest.mark.parametrize("amount", [1, 100 * UNIT, 1000 * UNIT])
def test_unstake_before_period_fails_regardless_of_amount(token, staking, user1, amount):
    approve_and_stake(token, staking, user1, amount)

    with pytest.raises(StakingPeriodNotMet):
        staking.unstake(user1)


def test_unstake_without_stake_is_unauthorized(staking, user1):
    with pytest.raises(Unauthorized):
        staking.unstake(user1)


def test_unstake_twice_is_unauthorized(runtime, token, staking, user1):
    approve_and_stake(token, staking, user1, 100 * UNIT)
    runtime.advance_time(MIN_STAKING_PERIOD)
    staking.unstake(user1)

    with pytest.raises(Unauthorized):
        staking.unstake(user1)


# ═══════════════════════════════════════════════════════════════════
# REWARDS
# ═══════════════════════════════════════════════════════════════════

def test_calculate_reward_at_minimum_period(runtime, token, staking, user1):
    stake_amount = 100 * UNIT
    approve_and_stake(token, staking, user1, stake_amount)

    runtime.advance_time(MIN_STAKING_PERIOD)

    expected = (stake_amount * REWARD_RATE * MIN_STAKING_PERIOD) // (100 * MIN_STAKING_PERIOD)
    assert staking.calculate_reward(user1) == expected == 10 * UNIT


def test_calculate_reward_grows_linearly(runtime, token, staking, user1):
    approve_and_stake(token, staking, user1, 100 * UNIT)

    assert staking.calculate_reward(user1) == 0
    runtime.advance_time(MIN_STAKING_PERIOD // 2)
    assert staking.calculate_reward(user1) == 5 * UNIT
    runtime.advance_time(MIN_STAKING_PERIOD * 3 // 2)
    assert staking.calculate_reward(user1) == 20 * UNIT


def test_zero_reward_when_not_staking(staking, user2):
    assert staking.calculate_reward(user2) == 0


def test_calculate_reward_is_idempotent(runtime, token, staking, user1):
    approve_and_stake(token, staking, user1, 100 * UNIT)
    runtime.advance_time(MIN_STAKING_PERIOD + 12345)

    first = staking.calculate_reward(user1)
    assert all(staking.calculate_reward(user1) == first for _ in range(5))


def test_funded_reserve_pays_full_reward(runtime, token, staking, owner, user1):
    token.approve(owner, staking.address, 500 * UNIT)
    reserve = staking.fund_rewards(owner, 500 * UNIT)
    assert reserve == 500 * UNIT

    approve_and_stake(token, staking, user1, 100 * UNIT)
    runtime.advance_time(MIN_STAKING_PERIOD)

    principal, reward = staking.unstake(user1)

    assert principal == 100 * UNIT
    assert reward == 10 * UNIT
    assert token.balance_of(user1) == 1010 * UNIT
    assert staking.reward_reserve() == 490 * UNIT


def test_short_reserve_caps_reward(runtime, token, staking, owner, user1):
    token.approve(owner, staking.address, 3 * UNIT)
    staking.fund_rewards(owner, 3 * UNIT)

    approve_and_stake(token, staking, user1, 100 * UNIT)
    runtime.advance_time(MIN_STAKING_PERIOD * 2)

    assert staking.calculate_reward(user1) == 20 * UNIT
    principal, reward = staking.unstake(user1)

    assert (principal, reward) == (100 * UNIT, 3 * UNIT)
    assert staking.reward_reserve() == 0


def test_other_stakers_principal_never_pays_rewards(runtime, token, staking, user1, user2):
    approve_and_stake(token, staking, user1, 100 * UNIT)
    approve_and_stake(token, staking, user2, 500 * UNIT)
    runtime.advance_time(MIN_STAKING_PERIOD * 4)

    _, reward = staking.unstake(user1)

    assert reward == 0
    assert token.balance_of(staking.address) == 500 * UNIT == staking.total_staked()


def test_custody_covers_total_staked(runtime, token, staking, owner, user1, user2):
    token.approve(owner, staking.address, 50 * UNIT)
    staking.fund_rewards(owner, 50 * UNIT)
    approve_and_stake(token, staking, user1, 300 * UNIT)
    approve_and_stake(token, staking, user2, 200 * UNIT)
    runtime.advance_time(MIN_STAKING_PERIOD)
    staking.unstake(user2)

    assert staking.total_staked() == sum(r.amount for r in staking.state.stakes.values())
    assert staking.total_staked() <= token.balance_of(staking.address)
    assert sum(token.state.balances.values()) == token.total_supply()


# ═══════════════════════════════════════════════════════════════════
# ACCESS CONTROL & CONFIGURATION
# ═══════════════════════════════════════════════════════════════════

def test_only_owner_can_fund_rewards(token, staking, user1):
    token.approve(user1, staking.address, 10 * UNIT)

    with pytest.raises(Unauthorized):
        staking.fund_rewards(user1, 10 * UNIT)
    assert staking.reward_reserve() == 0


def test_transfer_ownership(runtime, token, staking, owner, user1):
    staking.transfer_ownership(owner, user1)

    assert staking.owner == user1
    assert runtime.events(name="OwnershipTransferred")[-1].args == {
        "previous_owner": owner, "new_owner": user1,
    }
    with pytest.raises(Unauthorized):
        staking.transfer_ownership(owner, owner)


def test_fund_rewards_rejects_zero(token, staking, owner):
    with pytest.raises(InvalidAmount):
        staking.fund_rewards(owner, 0)


def test_default_reward_rate(staking):
    assert staking.reward_rate_percent == REWARD_RATE
    assert staking.min_staking_period == MIN_STAKING_PERIOD


@pytest.mark.parametrize("period, rate", [(0, 10), (-5, 10), (60, -1)])
def test_invalid_configuration(token, owner, period, rate):
    with pytest.raises(ValueError):
        StakingContract(token, period, owner, reward_rate_percent=rate)


def test_unlocks_at(runtime, token, staking, user1):
    assert staking.unlocks_at(user1) is None
    approve_and_stake(token, staking, user1, 1)
    assert staking.unlocks_at(user1) == START_TIME + MIN_STAKING_PERIOD
