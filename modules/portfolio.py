"""
portfolio.py
------------
Position lifecycle: owns the open-position set, realised PnL totals and the
closed-trade history.

Each tick is split in two:
  * ``fetch_marks()``  – async I/O, price lookups under a timeout
  * ``apply_marks()``  – synchronous mutation: refresh PnL, evaluate exits, close
The engine runs the mutation half under its gate, so nothing here locks.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from models.decision import Decision, TradeAction
from models.opportunity import TokenInfo
from models.position import CloseReason, Position, PositionStatus
from models.trade_record import OpenTradeStub, PortfolioSnapshot, TradeRecord
from modules.price_oracle import PriceOracle
from modules.slippage_model import apply_slippage
from modules.wallet import PaperWallet
from utils.config_manager import TradingLimits
from utils.event_bus import BUS, EventBus, POSITION_CLOSED, POSITION_OPENED, TRADE_RECORD


logger = logging.getLogger(__name__)


def utc_date(ts: float) -> date:
    return datetime.fromtimestamp(ts, tz=timezone.utc).date()


class PositionManager:
    """
    In-memory position book for one portfolio. The only component allowed to
    mutate positions, ``total_pnl`` and the daily PnL buckets.
    """

    def __init__(
        self,
        limits: Optional[TradingLimits] = None,
        wallet: Optional[PaperWallet] = None,
        price_oracle: Optional[PriceOracle] = None,
        *,
        bus: Optional[EventBus] = None,
        lookup_timeout: float = 5.0,
    ):
        self.limits = limits or TradingLimits()
        self.wallet = wallet or PaperWallet()
        self.price_oracle = price_oracle
        self.bus = bus or BUS
        self.lookup_timeout = lookup_timeout

        self._open: Dict[str, Position] = {}
        self.history: List[TradeRecord] = []
        self.journal: List[OpenTradeStub] = []
        self.total_pnl = 0.0
        self.daily_pnl_by_date: Dict[date, float] = defaultdict(float)
        self.consecutive_losses = 0
        self.halted = False
        self._seq = 0

    # ------------------------------------------------------------------ #
    # I/O phase
    # ------------------------------------------------------------------ #
    async def fetch_marks(self) -> Dict[str, float]:
        """Fresh price per open token id. Tokens without one are left out."""
        if self.price_oracle is None or not self._open:
            return {}
        tokens = {p.token.id: p.token for p in self._open.values()}
        prices = await asyncio.gather(*(self._lookup(t) for t in tokens.values()))
        return {tid: px for tid, px in zip(tokens, prices) if px is not None}

    async def _lookup(self, token: TokenInfo) -> Optional[float]:
        try:
            px = await asyncio.wait_for(self.price_oracle.price(token), self.lookup_timeout)
        except asyncio.TimeoutError:
            logger.warning("Price lookup timed out for %s, skipping this tick", token.symbol)
            return None
        except Exception as exc:
            logger.warning("Price lookup failed for %s: %s", token.symbol, exc)
            return None
        try:
            px = float(px)
        except (TypeError, ValueError):
            return None
        return px if math.isfinite(px) and px > 0 else None

    # ------------------------------------------------------------------ #
    # Mutation phase
    # ------------------------------------------------------------------ #
    def apply_marks(self, marks: Dict[str, float], now: float) -> List[TradeRecord]:
        """Refresh every open position that has a fresh mark and close the triggered ones."""
        closed = []
        for pos in list(self._open.values()):
            px = marks.get(pos.token.id)
            if px is None:
                continue  # never compare against a stale price
            pos.current_price = px
            pos.pnl = pos.unrealized_pnl(px)
            reason = self.exit_reason(pos, now)
            if reason is not None:
                closed.append(self._close(pos, reason, px, now))
        return closed

    def exit_reason(self, pos: Position, now: float) -> Optional[CloseReason]:
        px = pos.current_price
        if pos.action is TradeAction.BUY:
            if px <= pos.stop_loss:
                return CloseReason.STOP_LOSS
            if px >= pos.take_profit:
                return CloseReason.TAKE_PROFIT
        else:
            if px >= pos.stop_loss:
                return CloseReason.STOP_LOSS
            if px <= pos.take_profit:
                return CloseReason.TAKE_PROFIT
        if (now - pos.opened_at) / 3600.0 > self.limits.max_hold_hours:
            return CloseReason.TIME_EXIT
        return None

    def open_position(self, decision: Decision, now: float) -> Optional[Position]:
        lim = self.limits
        size = decision.position_size
        if self.halted:
            logger.warning("Position book halted, not opening %s", decision.token.symbol)
            return None
        if size <= 0 or size > lim.max_position_size + 1e-9:
            logger.warning("Refusing %s: size %.2f outside limits", decision.token.symbol, size)
            return None
        value = self.portfolio_value()
        if value <= 0 or (self.deployed + size) / value > lim.max_portfolio_risk + 1e-9:
            logger.warning("Refusing %s: portfolio exposure limit", decision.token.symbol)
            return None
        if size > self.wallet.cash + 1e-9:
            logger.warning("Refusing %s: insufficient cash (%.2f)", decision.token.symbol, self.wallet.cash)
            return None

        stop_loss = decision.stop_loss
        distance = round(abs(decision.entry - stop_loss) / decision.entry, 12)
        if not lim.min_stop_distance <= distance <= lim.max_stop_distance:
            stop_loss = decision.entry * (1 - lim.stop_loss_percentage / 100)

        fill = apply_slippage(decision.entry, decision.action, lim.slippage_pct, opening=True)
        self.wallet.debit(size)
        self._seq += 1
        pos = Position(
            id=f"pos_{self._seq:06d}",
            token=decision.token,
            action=decision.action,
            size=size,
            entry_price=fill,
            current_price=fill,
            stop_loss=stop_loss,
            take_profit=decision.take_profit,
            confidence=decision.confidence,
            opened_at=now,
            reasons=tuple(decision.reasons),
        )
        self._open[pos.id] = pos
        stub = OpenTradeStub(
            position_id=pos.id,
            symbol=pos.symbol,
            action=pos.action,
            size=size,
            entry_price=pos.entry_price,
            opened_at=now,
            reasons=pos.reasons,
        )
        self.journal.append(stub)
        logger.info("📝 Opened %s %s %s for %.2f @ %g", pos.id, pos.action.value, pos.symbol, size, pos.entry_price)
        self.bus.publish(POSITION_OPENED, stub)
        return pos.copy()

    def close_position(
        self,
        position_id: str,
        reason: CloseReason = CloseReason.MANUAL,
        price: Optional[float] = None,
        now: Optional[float] = None,
    ) -> Optional[TradeRecord]:
        """Close one position. A second call for the same id is a no-op returning None."""
        pos = self._open.get(position_id)
        if pos is None:
            logger.debug("close_position(%s): not open", position_id)
            return None
        px = pos.current_price if price is None else float(price)
        pos.current_price = px
        pos.pnl = pos.unrealized_pnl(px)
        return self._close(pos, reason, px, time.time() if now is None else now)

    def close_all(self, reason: CloseReason = CloseReason.MANUAL, now: Optional[float] = None) -> List[TradeRecord]:
        return [
            rec for rec in (self.close_position(pid, reason, now=now) for pid in list(self._open))
            if rec is not None
        ]

    def _close(self, pos: Position, reason: CloseReason, px: float, now: float) -> TradeRecord:
        px = apply_slippage(px, pos.action, self.limits.slippage_pct, opening=False)
        pos.pnl = pos.unrealized_pnl(px)
        pos.status = PositionStatus.CLOSED
        pos.close_reason = reason
        pos.close_price = px
        pos.closed_at = now
        del self._open[pos.id]

        record = TradeRecord.from_position(pos)
        self.history.append(record)
        self.total_pnl += record.pnl
        self.daily_pnl_by_date[utc_date(now)] += record.pnl
        self.consecutive_losses = 0 if record.is_win else self.consecutive_losses + 1
        self.wallet.credit(pos.size + record.pnl)

        logger.info(
            "🔒 Position closed: %s %s PnL=%.2f (%s)", pos.id, pos.symbol, record.pnl, reason.value
        )
        self.bus.publish(TRADE_RECORD, record)
        self.bus.publish(POSITION_CLOSED, record)
        return record

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #
    @property
    def deployed(self) -> float:
        return sum(p.size for p in self._open.values())

    def open_positions(self) -> List[Position]:
        return [p.copy() for p in self._open.values()]

    def get(self, position_id: str) -> Optional[Position]:
        pos = self._open.get(position_id)
        return pos.copy() if pos else None

    def portfolio_value(self) -> float:
        return self.wallet.cash + sum(p.market_value for p in self._open.values())

    def daily_pnl(self, now: Optional[float] = None) -> float:
        return self.daily_pnl_by_date.get(utc_date(time.time() if now is None else now), 0.0)

    def snapshot(self, now: float, cash: Optional[float] = None) -> PortfolioSnapshot:
        cash = self.wallet.cash if cash is None else cash
        return PortfolioSnapshot(
            timestamp=now,
            total_value=cash + sum(p.market_value for p in self._open.values()),
            cash=cash,
            open_positions=len(self._open),
        )
