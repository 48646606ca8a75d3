# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Dict, Optional


class StakeRecord(BaseModel):
    """Per-participant stake. amount == 0 means "not staking"."""
    amount: int = 0     # Principal in minimal token units
    since: int = 0      # Unix seconds of the last stake action

    @property
    def is_active(self) -> bool:
        return self.amount > 0


class StakingState(BaseModel):
    owner: str
    stakes: Dict[str, StakeRecord] = Field(default_factory=dict)
    total_staked: int = 0   # Always equals sum(stakes[*].amount)

    def get_stake(self, participant: str) -> StakeRecord:
        return self.stakes.get(participant) or StakeRecord()

    def set_stake(self, participant: str, record: StakeRecord):
        if record.amount == 0:
            # Cleared records are indistinguishable from missing ones
            self.stakes.pop(participant, None)
        else:
            self.stakes[participant] = record


class StakeView(BaseModel):
    """Read model returned by the RPC."""
    participant: str
    amount: int
    since: Optional[int] = None
    unlocks_at: Optional[int] = None
    accrued_reward: int = 0
