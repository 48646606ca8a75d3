# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports ledger metrics in Prometheus format.

Metrics:
- Contract calls by method and outcome, reverts by error code
- Committed events by name
- Staking totals (principal, active stakers, reward reserve, rewards paid)
- Token supply and runtime clock
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# CALL METRICS
# ═══════════════════════════════════════════════════════════════════

calls_total = Counter(
    'stakeledger_calls_total',
    'Total number of top-level contract calls',
    ['method', 'status'],
    registry=metrics_registry
)

reverts_total = Counter(
    'stakeledger_reverts_total',
    'Total number of reverted calls by error code',
    ['error'],
    registry=metrics_registry
)

events_total = Counter(
    'stakeledger_events_total',
    'Total number of committed contract events',
    ['event'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# STAKING METRICS
# ═══════════════════════════════════════════════════════════════════

total_staked = Gauge(
    'stakeledger_total_staked',
    'Principal currently held in staking custody (minimal units)',
    registry=metrics_registry
)

active_stakers = Gauge(
    'stakeledger_active_stakers',
    'Number of participants with a nonzero stake',
    registry=metrics_registry
)

reward_reserve = Gauge(
    'stakeledger_reward_reserve',
    'Funded rewards available for payout (minimal units)',
    registry=metrics_registry
)

rewards_paid_total = Counter(
    'stakeledger_rewards_paid_total',
    'Total rewards paid out on unstake (minimal units)',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# TOKEN / RUNTIME METRICS
# ═══════════════════════════════════════════════════════════════════

token_total_supply = Gauge(
    'stakeledger_token_total_supply',
    'Token total supply (minimal units)',
    ['symbol'],
    registry=metrics_registry
)

token_holders = Gauge(
    'stakeledger_token_holders',
    'Number of addresses with a nonzero token balance',
    ['symbol'],
    registry=metrics_registry
)

clock_time = Gauge(
    'stakeledger_clock_time_seconds',
    'Current runtime clock (unix seconds)',
    registry=metrics_registry
)


def record_call(method: str, status: str, error: str = None):
    calls_total.labels(method=method, status=status).inc()
    if error:
        reverts_total.labels(error=error).inc()


def record_event(event):
    """Counts a committed ContractEvent."""
    events_total.labels(event=event.name.value).inc()
    reward = event.args.get("reward")
    if event.name.value == "TokensUnstaked" and reward:
        rewards_paid_total.inc(reward)


def update_metrics(runtime):
    """Refreshes gauges from the runtime's deployed contracts."""
    clock_time.set(runtime.now())

    for contract in runtime.contracts.values():
        if contract.kind == "staking":
            total_staked.set(contract.total_staked())
            active_stakers.set(len(contract.state.stakes))
            reward_reserve.set(contract.reward_reserve())
        elif contract.kind == "token":
            token_total_supply.labels(symbol=contract.symbol).set(contract.total_supply())
            token_holders.labels(symbol=contract.symbol).set(len(contract.state.balances))
