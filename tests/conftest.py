"""Shared fixtures: a runtime on a manual clock with the token and staking contracts deployed."""
import pytest

from stakeledger.ledger.core.clock import ManualClock
from stakeledger.ledger.core.runtime import Runtime
from stakeledger.ledger.core.token import TokenLedger
from stakeledger.ledger.core.staking import StakingContract
from stakeledger.protocol.crypto.keys import generate_private_key, public_key_from_private
from stakeledger.protocol.crypto.addresses import address_from_pubkey
from stakeledger.protocol.config.params import DECIMALS

UNIT = 10**DECIMALS
MIN_STAKING_PERIOD = 60 * 60 * 24 * 7  # 7 days
REWARD_RATE = 10  # 10%
START_TIME = 1_700_000_000


def new_account():
    """Returns (private_key, public_key, address)."""
    priv = generate_private_key()
    pub = public_key_from_private(priv)
    return priv, pub, address_from_pubkey(pub)


@pytest.fixture
def owner():
    return new_account()[2]


@pytest.fixture
def user1():
    return new_account()[2]


@pytest.fixture
def user2():
    return new_account()[2]


@pytest.fixture
def clock():
    return ManualClock(START_TIME)


@pytest.fixture
def runtime(clock):
    return Runtime(clock=clock)


@pytest.fixture
def token(runtime, owner):
    return runtime.deploy(TokenLedger("TestToken", "TT", 1_000_000 * UNIT, owner), deployer=owner)


@pytest.fixture
def staking(runtime, token, owner, user1, user2):
    contract = runtime.deploy(StakingContract(token, MIN_STAKING_PERIOD, owner), deployer=owner)

    # Fund users for testing
    token.transfer(owner, user1, 1000 * UNIT)
    token.transfer(owner, user2, 1000 * UNIT)
    return contract
