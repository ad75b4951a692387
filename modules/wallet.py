"""
wallet.py
---------
Synthetic cash account used for paper trading and backtests. Live custody is
an external collaborator exposing the same ``balance`` / ``debit`` / ``credit``
surface.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class InsufficientFunds(Exception):
    pass


@dataclass(frozen=True)
class WalletBalance:
    cash: float


class PaperWallet:
    def __init__(self, initial_cash: float = 1000.0):
        if initial_cash < 0:
            raise ValueError("initial_cash must be non-negative")
        self.initial_cash = float(initial_cash)
        self._cash = float(initial_cash)

    @property
    def cash(self) -> float:
        return self._cash

    async def balance(self) -> WalletBalance:
        return WalletBalance(cash=self._cash)

    def debit(self, amount: float) -> None:
        if amount < 0:
            raise ValueError("debit amount must be non-negative")
        if amount > self._cash + 1e-9:
            raise InsufficientFunds(f"need {amount:.2f}, have {self._cash:.2f}")
        self._cash -= amount
        logger.debug("[Wallet] debit %.2f -> cash %.2f", amount, self._cash)

    def credit(self, amount: float) -> None:
        # a short that went badly can return less than nothing
        self._cash += amount
        logger.debug("[Wallet] credit %.2f -> cash %.2f", amount, self._cash)
