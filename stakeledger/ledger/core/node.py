# MIT License
# Copyright (c) 2025 Hashborn

from typing import Optional, Dict
import json
import logging
import os
import time

from ...protocol.types.common import CallType
from ...protocol.config.params import NetworkConfig, CURRENT_NETWORK
from ..storage.db import StorageDB
from .clock import SystemClock, ManualClock
from .receipts import CallReceiptStore
from .runtime import Runtime
from .token import TokenLedger
from .staking import StakingContract

logger = logging.getLogger(__name__)

GENESIS_FILE = "genesis.json"


class LedgerNode:
    """
    A runtime with the token and staking contracts deployed by `owner`.

    With a `db_path`, state persisted by a previous run is restored; otherwise
    the genesis allocation next to the database (genesis.json) is applied.
    """

    def __init__(self,
                 owner: str,
                 config: NetworkConfig = CURRENT_NETWORK,
                 db_path: Optional[str] = None,
                 clock=None):
        self.config = config
        self.owner = owner
        if clock is None:
            clock = ManualClock(int(time.time())) if config.manual_clock else SystemClock()

        self.runtime = Runtime(clock=clock, receipts=CallReceiptStore(max_receipts=config.max_receipts))

        self.token = self.runtime.deploy(
            TokenLedger(
                name=config.token_name,
                symbol=config.token_symbol,
                initial_supply=config.initial_supply,
                owner=owner,
                decimals=config.token_decimals,
            ),
            deployer=owner,
        )
        self.staking = self.runtime.deploy(
            StakingContract(
                token=self.token,
                min_staking_period=config.min_staking_period,
                owner=owner,
                reward_rate_percent=config.reward_rate_percent,
            ),
            deployer=owner,
        )
        self._register_routes()

        self.db: Optional[StorageDB] = None
        self.genesis_path: Optional[str] = None
        if db_path:
            self.db = StorageDB(db_path)
            self.genesis_path = os.path.join(os.path.dirname(os.path.abspath(db_path)), GENESIS_FILE)
            if self.runtime.restore(self.db) == 0:
                logger.info("Ledger initialized empty, applying genesis")
                self._apply_genesis_allocation()
                self.persist()
            else:
                logger.info(f"Ledger restored from {db_path}")

    def _register_routes(self):
        self.runtime.route(CallType.TRANSFER, self.token, "transfer")
        self.runtime.route(CallType.APPROVE, self.token, "approve")
        self.runtime.route(CallType.STAKE, self.staking, "stake")
        self.runtime.route(CallType.UNSTAKE, self.staking, "unstake")
        self.runtime.route(CallType.FUND_REWARDS, self.staking, "fund_rewards")
        self.runtime.route(CallType.TRANSFER_OWNERSHIP, self.staking, "transfer_ownership")

    def _apply_genesis_allocation(self):
        """Transfers initial balances from the owner as listed in genesis.json, if present."""
        if not self.genesis_path or not os.path.exists(self.genesis_path):
            logger.warning("No genesis.json found. All supply stays with the owner.")
            return

        with open(self.genesis_path, "r") as f:
            data = json.load(f)

        alloc: Dict[str, int] = data.get("alloc", {})
        for address, amount in alloc.items():
            self.token.transfer(self.owner, address, int(amount))

        reserve = int(data.get("reward_reserve", 0))
        if reserve > 0:
            self.token.approve(self.owner, self.staking.address, reserve)
            self.staking.fund_rewards(self.owner, reserve)

        logger.info(f"Applied genesis allocation to {len(alloc)} accounts (reward reserve {reserve}).")

    def persist(self):
        if self.db is not None:
            self.runtime.persist(self.db)

    def close(self):
        if self.db is not None:
            self.persist()
            self.db.close()
            self.db = None
