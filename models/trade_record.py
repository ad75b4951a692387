# --------------------------------------------------------------------
# models/trade_record.py
# Immutable records of a position's life: the stub written when it opens,
# the final TradeRecord written when it closes, and the per-tick portfolio
# snapshot. Shared by PositionManager, PerformanceAnalyzer and the alert hub.
# --------------------------------------------------------------------
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Tuple

from models.decision import TradeAction
from models.position import CloseReason, Position


@dataclass(frozen=True)
class OpenTradeStub:
    position_id: str
    symbol: str
    action: TradeAction
    size: float
    entry_price: float
    opened_at: float  # epoch seconds
    reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TradeRecord:
    position_id: str
    token_id: str
    symbol: str
    action: TradeAction
    size: float
    entry_price: float
    exit_price: float
    stop_loss: float
    take_profit: float
    confidence: float
    opened_at: float
    closed_at: float
    close_reason: CloseReason
    pnl: float
    hold_seconds: float
    reasons: Tuple[str, ...] = ()

    @property
    def is_win(self) -> bool:
        return self.pnl > 0

    @property
    def hold_hours(self) -> float:
        return self.hold_seconds / 3600.0

    @classmethod
    def from_position(cls, pos: Position) -> "TradeRecord":
        """Build the record from a position that has just been closed."""
        if pos.is_open or pos.closed_at is None or pos.close_reason is None:
            raise ValueError(f"position {pos.id} is not closed")
        return cls(
            position_id=pos.id,
            token_id=pos.token.id,
            symbol=pos.token.symbol,
            action=pos.action,
            size=pos.size,
            entry_price=pos.entry_price,
            exit_price=pos.close_price if pos.close_price is not None else pos.current_price,
            stop_loss=pos.stop_loss,
            take_profit=pos.take_profit,
            confidence=pos.confidence,
            opened_at=pos.opened_at,
            closed_at=pos.closed_at,
            close_reason=pos.close_reason,
            pnl=pos.pnl,
            hold_seconds=max(0.0, pos.closed_at - pos.opened_at),
            reasons=tuple(pos.reasons),
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["action"] = self.action.value
        d["close_reason"] = self.close_reason.value
        d["reasons"] = list(self.reasons)
        return d


@dataclass(frozen=True)
class PortfolioSnapshot:
    timestamp: float
    total_value: float
    cash: float
    open_positions: int
