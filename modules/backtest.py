"""
backtest.py
-----------
Replays a historical price series through the live ``TradingEngine``.

Each bar:
  1. the replay oracle is moved to the bar's price
  2. the strategy may turn the bar into an Opportunity, queued on the engine
  3. ``engine.tick(now=bar.timestamp)`` refreshes, closes and opens positions

Nothing here reads the wall clock or a random source, so two runs over the same
series give the same decisions and trade records.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from core.engine import TradingEngine
from core.sources import StaticSentimentSource
from models.decision import Decision
from models.opportunity import TokenInfo
from models.position import CloseReason
from models.report import PerformanceReport
from models.trade_record import PortfolioSnapshot, TradeRecord
from modules.market_data import PricePoint, to_points
from modules.opportunity_evaluator import OpportunityEvaluator
from modules.performance_analyzer import PerformanceAnalyzer
from modules.portfolio import PositionManager
from modules.price_oracle import StaticPriceOracle
from modules.strategy.base import BaseStrategy
from modules.wallet import PaperWallet
from utils.config_manager import TradingLimits
from utils.event_bus import EventBus
from utils.timeframe import periods_per_year

logger = logging.getLogger(__name__)

DEFAULT_TOKEN = TokenInfo(id="backtest", symbol="MOON", name="Backtest Moon")


@dataclass
class BacktestResult:
    initial_cash: float
    final_value: float
    decisions: List[Decision] = field(default_factory=list)
    trades: List[TradeRecord] = field(default_factory=list)
    snapshots: List[PortfolioSnapshot] = field(default_factory=list)
    report: PerformanceReport = field(default_factory=PerformanceReport)

    @property
    def total_return(self) -> float:
        if self.initial_cash <= 0:
            return 0.0
        return (self.final_value - self.initial_cash) / self.initial_cash

    def summary(self) -> dict:
        return {
            "initial_cash": self.initial_cash,
            "final_value": round(self.final_value, 6),
            "total_return": round(self.total_return, 6),
            "decisions": len(self.decisions),
            "trades": len(self.trades),
            "win_rate": self.report.profitability.win_rate,
            "max_drawdown": self.report.risk.max_drawdown,
        }


class BacktestSimulator:
    def __init__(
        self,
        limits: Optional[TradingLimits] = None,
        strategy: Optional[BaseStrategy] = None,
        *,
        token: TokenInfo = DEFAULT_TOKEN,
        initial_cash: float = 1000.0,
        sentiment: float = 0.0,
        close_at_end: bool = True,
    ):
        if strategy is None:
            from modules.strategy.meme import MemeStrategy
            strategy = MemeStrategy()
        self.limits = limits or TradingLimits()
        self.strategy = strategy
        self.token = token
        self.initial_cash = initial_cash
        self.sentiment = sentiment
        self.close_at_end = close_at_end

    # ------------------------------------------------------------------ #
    def run(self, series: Union[pd.DataFrame, Iterable]) -> BacktestResult:
        points = to_points(series)
        return asyncio.run(self.run_async(points))

    async def run_async(self, points: List[PricePoint]) -> BacktestResult:
        oracle = StaticPriceOracle()
        wallet = PaperWallet(self.initial_cash)
        # private bus: replayed trades must not reach live alert backends
        bus = EventBus()
        positions = PositionManager(self.limits, wallet, oracle, bus=bus)
        engine = TradingEngine(
            positions,
            evaluator=OpportunityEvaluator(self.limits),
            sentiment_source=StaticSentimentSource(self.sentiment),
            analyzer=PerformanceAnalyzer(periods_per_year=self._periods_per_year(points)),
            bus=bus,
            logger=logger,
            queue_size=max(1, len(points)),
        )

        logger.info("Backtest: %d bars, strategy=%s, cash=%.2f",
                    len(points), getattr(self.strategy, "name", "?"), self.initial_cash)

        for point in points:
            oracle.set_price(self.token.id, point.price)
            opp = self.strategy.generate_opportunity(point, self.token)
            if opp is not None:
                engine.submit_nowait(opp)
            await engine.tick(now=point.timestamp)
            if engine.halted:
                logger.error("Backtest halted at %s", point.timestamp)
                break

        if self.close_at_end and points:
            await engine.close_all(CloseReason.MANUAL, now=points[-1].timestamp)
            engine.snapshots.append(positions.snapshot(points[-1].timestamp))
        await bus.drain()

        result = BacktestResult(
            initial_cash=self.initial_cash,
            final_value=positions.portfolio_value(),
            decisions=list(engine.decisions),
            trades=list(positions.history),
            snapshots=list(engine.snapshots),
            report=engine.performance_report(),
        )
        logger.info("Backtest done: %s", result.summary())
        return result

    @staticmethod
    def _periods_per_year(points: List[PricePoint]) -> float:
        if len(points) < 2:
            return 365.0
        step = float(np.median(np.diff([p.timestamp for p in points])))
        if int(step) <= 0:
            return 365.0
        return periods_per_year(str(int(step)))
