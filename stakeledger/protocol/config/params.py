# MIT License
# Copyright (c) 2025 Hashborn

import os
from decimal import Decimal, InvalidOperation, localcontext
from typing import Dict, Union

# Global Constants
DENOM = "stk"
DECIMALS = 18

SECONDS_PER_DAY = 24 * 60 * 60

# Staking defaults
MIN_STAKING_PERIOD = 7 * SECONDS_PER_DAY   # 7 days
DEFAULT_REWARD_RATE_PERCENT = 10           # 10% per min_staking_period elapsed

# Token defaults
DEFAULT_TOKEN_NAME = "TestToken"
DEFAULT_TOKEN_SYMBOL = "TT"
DEFAULT_INITIAL_SUPPLY = 1_000_000 * 10**DECIMALS


def to_units(amount: Union[str, int, float, Decimal], decimals: int = DECIMALS) -> int:
    """Converts a human amount ("1.5") to minimal units. Sub-unit remainders are rejected."""
    with localcontext() as ctx:
        ctx.prec = 80
        try:
            value = Decimal(str(amount)) * (Decimal(10) ** decimals)
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if value != value.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimals")
    return int(value)


def from_units(units: int, decimals: int = DECIMALS) -> str:
    """Formats minimal units as a human amount without float rounding."""
    with localcontext() as ctx:
        ctx.prec = 80
        value = Decimal(units) / (Decimal(10) ** decimals)
        return format(value.normalize(), "f")


class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 token_name: str = DEFAULT_TOKEN_NAME,
                 token_symbol: str = DEFAULT_TOKEN_SYMBOL,
                 token_decimals: int = DECIMALS,
                 initial_supply: int = DEFAULT_INITIAL_SUPPLY,
                 min_staking_period: int = MIN_STAKING_PERIOD,
                 reward_rate_percent: int = DEFAULT_REWARD_RATE_PERCENT,
                 # Devnet runs on a manual clock that can be advanced over RPC
                 manual_clock: bool = False,
                 max_receipts: int = 10000,
                 # Devnet specific deterministic keys (hex strings)
                 owner_priv_key: str = None):
        self.network_id = network_id
        self.token_name = token_name
        self.token_symbol = token_symbol
        self.token_decimals = token_decimals
        self.initial_supply = initial_supply
        self.min_staking_period = min_staking_period
        self.reward_rate_percent = reward_rate_percent
        self.manual_clock = manual_clock
        self.max_receipts = max_receipts
        self.owner_priv_key = owner_priv_key

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        manual_clock=True,
        # Deterministic owner key for Devnet
        owner_priv_key="4f3edf982522b4e51b7e8b5f2f9c4d1d7a9e5f8c2b6d4e1a3c5b7d9e0f1a2b3c"
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        min_staking_period=1 * SECONDS_PER_DAY,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        token_name="StakeLedger",
        token_symbol="STK",
        initial_supply=100_000_000 * 10**DECIMALS,
        min_staking_period=30 * SECONDS_PER_DAY,
        max_receipts=100000,
    ),
}


def get_network(network_id: str = None) -> NetworkConfig:
    """Resolves a network by id, falling back to $STAKELEDGER_NETWORK, then devnet."""
    network_id = network_id or os.environ.get("STAKELEDGER_NETWORK", "devnet")
    if network_id not in NETWORKS:
        raise ValueError(f"Unknown network '{network_id}' (expected one of {sorted(NETWORKS)})")
    return NETWORKS[network_id]


CURRENT_NETWORK = get_network()
