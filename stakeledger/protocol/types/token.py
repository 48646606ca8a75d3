# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Dict


class TokenState(BaseModel):
    name: str
    symbol: str
    decimals: int = 18
    owner: str
    total_supply: int = 0
    balances: Dict[str, int] = Field(default_factory=dict)
    # owner -> spender -> amount
    allowances: Dict[str, Dict[str, int]] = Field(default_factory=dict)

    def balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    def set_balance(self, address: str, amount: int):
        if amount == 0:
            self.balances.pop(address, None)
        else:
            self.balances[address] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner, {}).get(spender, 0)

    def set_allowance(self, owner: str, spender: str, amount: int):
        spenders = self.allowances.setdefault(owner, {})
        if amount == 0:
            spenders.pop(spender, None)
            if not spenders:
                self.allowances.pop(owner, None)
        else:
            spenders[spender] = amount
