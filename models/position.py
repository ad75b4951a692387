"""
models/position.py
------------------
Live position state. Instances are owned and mutated only by
``modules.portfolio.PositionManager``; everyone else receives copies.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from models.decision import TradeAction
from models.opportunity import TokenInfo


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CloseReason(str, Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TIME_EXIT = "time_exit"
    MANUAL = "manual"


@dataclass
class Position:
    id: str
    token: TokenInfo
    action: TradeAction
    size: float
    entry_price: float
    current_price: float
    stop_loss: float
    take_profit: float
    confidence: float
    opened_at: float  # epoch seconds
    status: PositionStatus = PositionStatus.OPEN
    pnl: float = 0.0
    close_reason: Optional[CloseReason] = None
    closed_at: Optional[float] = None
    close_price: Optional[float] = None
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    @property
    def symbol(self) -> str:
        return self.token.symbol

    @property
    def market_value(self) -> float:
        return self.size + self.pnl

    def unrealized_pnl(self, price: float) -> float:
        change = self.size * (price - self.entry_price) / self.entry_price
        return change if self.action is TradeAction.BUY else -change

    def copy(self) -> "Position":
        return replace(self)
