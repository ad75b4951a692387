"""
strategy/base.py
----------------
Common interface for backtest strategies.

A Strategy receives one price bar and decides whether to emit an
``Opportunity``: its confidence plus the stop-loss / take-profit levels the
position lifecycle will enforce.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable, Optional

from models.opportunity import Opportunity, TokenInfo
from modules.market_data import PricePoint


class BaseStrategy(ABC):
    """Abstract base strategy with a single entry point."""

    name = "base"

    @abstractmethod
    def generate_opportunity(
        self,
        point: PricePoint,
        token: TokenInfo,
    ) -> Optional[Opportunity]:
        """
        Evaluate the bar and return an Opportunity or None.

        Must be deterministic: the same bar and token always give the same
        answer, otherwise backtests stop being reproducible.
        """
        raise NotImplementedError


class FunctionStrategy(BaseStrategy):
    """Wraps a plain ``fn(point, token) -> Optional[Opportunity]``."""

    def __init__(self, fn: Callable[[PricePoint, TokenInfo], Optional[Opportunity]], name: str = "function"):
        self._fn = fn
        self.name = name

    def generate_opportunity(self, point: PricePoint, token: TokenInfo) -> Optional[Opportunity]:
        return self._fn(point, token)
