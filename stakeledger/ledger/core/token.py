# MIT License
# Copyright (c) 2025 Hashborn

"""
ERC20-style fungible token ledger.

Mutating methods take an explicit `caller` (no ambient sender) and run as
runtime transactions. Emits:
    Transfer {from, to, value}
    Approval {owner, spender, value}
"""
import logging

from ...protocol.types.common import (
    EventName, InvalidAmount, InvalidAddress, InsufficientBalance, InsufficientAllowance, Unauthorized,
)
from ...protocol.crypto.addresses import is_ledger_address
from ...protocol.types.token import TokenState
from ...protocol.config.params import DECIMALS
from .runtime import Contract, transaction

logger = logging.getLogger(__name__)

# Counterparty of mint Transfer events
ZERO_ADDRESS = "0x0"


def require_amount(amount: int, allow_zero: bool = True):
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount(f"Invalid amount: {amount}")


def require_address(address: str, role: str):
    if not is_ledger_address(address):
        raise InvalidAddress(f"Invalid {role} address: {address!r}")


class TokenLedger(Contract):
    kind = "token"

    def __init__(self, name: str, symbol: str, initial_supply: int, owner: str, decimals: int = DECIMALS):
        super().__init__()
        require_amount(initial_supply)
        if not owner:
            raise ValueError("Token owner is required")
        if not 0 <= decimals <= 36:
            raise ValueError(f"Decimals out of range: {decimals}")

        self.state = TokenState(
            name=name,
            symbol=symbol,
            decimals=decimals,
            owner=owner,
            total_supply=initial_supply,
        )
        self.state.set_balance(owner, initial_supply)

    def on_deploy(self, deployer: str):
        if self.state.total_supply > 0:
            self._emit(EventName.TRANSFER, {"from": ZERO_ADDRESS, "to": self.state.owner, "value": self.state.total_supply})

    # --- Metadata ---
    @property
    def name(self) -> str:
        return self.state.name

    @property
    def symbol(self) -> str:
        return self.state.symbol

    @property
    def decimals(self) -> int:
        return self.state.decimals

    @property
    def owner(self) -> str:
        return self.state.owner

    # --- Views ---
    def total_supply(self) -> int:
        return self.state.total_supply

    def balance_of(self, address: str) -> int:
        return self.state.balance(address)

    def allowance(self, owner: str, spender: str) -> int:
        return self.state.allowance(owner, spender)

    # --- Transactions ---
    @transaction
    def transfer(self, caller: str, to: str, amount: int) -> bool:
        require_amount(amount)
        self._move(caller, to, amount)
        return True

    @transaction
    def approve(self, caller: str, spender: str, amount: int) -> bool:
        require_amount(amount)
        require_address(spender, "spender")
        self.state.set_allowance(caller, spender, amount)
        self._emit(EventName.APPROVAL, {"owner": caller, "spender": spender, "value": amount})
        return True

    @transaction
    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool:
        require_amount(amount)
        require_address(owner, "owner")
        allowed = self.state.allowance(owner, caller)
        if allowed < amount:
            raise InsufficientAllowance(f"Allowance {allowed} of {caller} over {owner} is below {amount}")
        self._move(owner, to, amount)
        self.state.set_allowance(owner, caller, allowed - amount)
        return True

    @transaction
    def mint(self, caller: str, to: str, amount: int) -> bool:
        if caller != self.state.owner:
            raise Unauthorized(f"{caller} is not the token owner")
        require_amount(amount)
        require_address(to, "recipient")
        self.state.total_supply += amount
        self.state.set_balance(to, self.state.balance(to) + amount)
        self._emit(EventName.TRANSFER, {"from": ZERO_ADDRESS, "to": to, "value": amount})
        logger.info(f"Minted {amount} {self.symbol} to {to}")
        return True

    def _move(self, sender: str, to: str, amount: int):
        require_address(to, "recipient")
        balance = self.state.balance(sender)
        if balance < amount:
            raise InsufficientBalance(f"Insufficient balance: have {balance}, need {amount}")
        self.state.set_balance(sender, balance - amount)
        self.state.set_balance(to, self.state.balance(to) + amount)
        self._emit(EventName.TRANSFER, {"from": sender, "to": to, "value": amount})
