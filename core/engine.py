"""
core/engine.py
--------------
The tick loop that drives the decision core.

One tick:
  1. I/O phase (awaits allowed): mark prices, wallet balance, sentiment and a
     signal scan, each under a timeout. Failures mean "no data this tick".
  2. Mutation phase (under ``self._gate``, no awaits): refresh/close positions,
     check the circuit breaker, evaluate queued opportunities, open accepted
     ones, take the portfolio snapshot.

Manual closes go through the same gate, so they never interleave with a
tick's own closes and opens.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from core.sources import SentimentSource, SignalSource
from models.decision import Decision
from models.opportunity import Opportunity
from models.position import CloseReason, Position
from models.report import PerformanceReport
from models.risk import EmergencyStopCheck, PortfolioRisk, RiskLevel
from models.trade_record import PortfolioSnapshot, TradeRecord
from modules.opportunity_evaluator import OpportunityEvaluator
from modules.performance_analyzer import PerformanceAnalyzer
from modules.portfolio import PositionManager
from modules.risk_assessor import RiskAssessor
from utils.event_bus import BUS, DECISION, EMERGENCY_STOP, ENGINE_HALTED, RISK_LEVEL, EventBus


class TradingEngine:
    """Single-owner orchestrator for evaluator, risk assessor and position book."""

    def __init__(
        self,
        positions: PositionManager,
        *,
        evaluator: Optional[OpportunityEvaluator] = None,
        signal_source: Optional[SignalSource] = None,
        sentiment_source: Optional[SentimentSource] = None,
        analyzer: Optional[PerformanceAnalyzer] = None,
        bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
        tick_seconds: float = 60.0,
        lookup_timeout: float = 5.0,
        queue_size: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)

        self.positions = positions
        self.limits = positions.limits
        self.evaluator = evaluator or OpportunityEvaluator(self.limits)
        self.risk_assessor: RiskAssessor = self.evaluator.risk_assessor
        self.signal_source = signal_source
        self.sentiment_source = sentiment_source
        self.analyzer = analyzer or PerformanceAnalyzer()
        self.bus = bus or BUS

        self.tick_seconds = tick_seconds
        self.lookup_timeout = lookup_timeout
        self.clock = clock

        self._gate = asyncio.Lock()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self.accepting = True
        self.halted = False
        self.emergency = EmergencyStopCheck(should_stop=False)
        self.portfolio_risk: Optional[PortfolioRisk] = None
        self.sentiment = 0.0
        self.decisions: List[Decision] = []
        self.snapshots: List[PortfolioSnapshot] = []
        self.tick_count = 0

        self.metrics = {"ticks": 0, "dropped_signals": 0, "lookup_failures": 0}

    # ------------------------------------------------------------------ #
    # Signal intake
    # ------------------------------------------------------------------ #
    async def submit(self, opportunity: Opportunity) -> None:
        """Enqueue, waiting for room when the queue is full."""
        await self._queue.put(opportunity)

    def submit_nowait(self, opportunity: Opportunity) -> bool:
        try:
            self._queue.put_nowait(opportunity)
        except asyncio.QueueFull:
            self.metrics["dropped_signals"] += 1
            self.logger.warning("Signal queue full, dropping %s", opportunity.symbol)
            return False
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _drain_queue(self) -> List[Opportunity]:
        batch = []
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return batch

    # ------------------------------------------------------------------ #
    # I/O phase helpers – never raise
    # ------------------------------------------------------------------ #
    async def _guarded(self, what: str, coro):
        try:
            return await asyncio.wait_for(coro, self.lookup_timeout)
        except asyncio.TimeoutError:
            self.metrics["lookup_failures"] += 1
            self.logger.warning("%s timed out, no update this tick", what)
        except Exception as exc:
            self.metrics["lookup_failures"] += 1
            self.logger.warning("%s failed: %s", what, exc)
        return None

    async def _refresh_inputs(self):
        marks = await self.positions.fetch_marks()

        balance = getattr(self.positions.wallet, "balance", None)
        if balance is not None:
            await self._guarded("Wallet balance", balance())

        if self.sentiment_source is not None:
            value = await self._guarded("Sentiment", self.sentiment_source.sentiment())
            if value is not None:
                self.sentiment = max(-1.0, min(1.0, float(value)))

        if self.signal_source is not None and self.accepting:
            found = await self._guarded("Signal scan", self.signal_source.scan())
            for opp in found or []:
                self.submit_nowait(opp)
        return marks

    # ------------------------------------------------------------------ #
    # Tick
    # ------------------------------------------------------------------ #
    async def tick(self, now: Optional[float] = None) -> List[Decision]:
        marks = await self._refresh_inputs()
        async with self._gate:
            now = self.clock() if now is None else now
            opportunities = self._drain_queue()
            try:
                return self._mutate(marks, opportunities, now)
            except Exception:
                self._halt("Mutation phase failed")
                return []
            finally:
                self.tick_count += 1
                self.metrics["ticks"] += 1

    def _mutate(self, marks, opportunities: List[Opportunity], now: float) -> List[Decision]:
        pm = self.positions
        pm.apply_marks(marks, now)

        value = pm.portfolio_value()
        check = self.risk_assessor.should_emergency_stop(
            pm.daily_pnl(now), pm.total_pnl, value, pm.consecutive_losses
        )
        if check.should_stop and not self.emergency.should_stop:
            self.logger.error("🚨 Emergency stop triggered: %s", check.reasons)
            self.bus.publish(EMERGENCY_STOP, check)
        elif self.emergency.should_stop and not check.should_stop:
            self.logger.info("Emergency stop conditions cleared")
        self.emergency = check

        decisions = []
        if opportunities and not (self.accepting and not self.halted):
            self.logger.info("Not accepting decisions, discarding %d opportunities", len(opportunities))
        elif opportunities:
            for opp in opportunities:
                evaluation = self.evaluator.evaluate(
                    opp,
                    self.sentiment,
                    pm.open_positions(),
                    pm.portfolio_value(),
                    emergency_stop_active=self.emergency.should_stop,
                    now=now,
                )
                if evaluation.decision is None:
                    self.logger.debug("Rejected %s: %s", opp.symbol, evaluation.reasons)
                    continue
                if pm.open_position(evaluation.decision, now) is not None:
                    decisions.append(evaluation.decision)
                    self.decisions.append(evaluation.decision)
                    self.bus.publish(DECISION, evaluation.decision)

        self.snapshots.append(pm.snapshot(now))
        self._check_portfolio(now)
        return decisions

    def _check_portfolio(self, now: float) -> None:
        previous = self.portfolio_risk.risk_level if self.portfolio_risk else RiskLevel.LOW
        risk = self.risk_assessor.assess_portfolio_risk(
            self.positions.open_positions(), self.positions.wallet.cash, now=now
        )
        self.portfolio_risk = risk
        if risk.risk_level in (RiskLevel.HIGH, RiskLevel.ERROR) and risk.risk_level is not previous:
            self.bus.publish(RISK_LEVEL, risk)

    def _halt(self, reason: str) -> None:
        """Stop taking new trades; keep every open position for manual inspection."""
        if self.halted:
            self.logger.error("%s again while halted", reason, exc_info=True)
            return
        self.logger.critical("%s – halting new trades, %d positions preserved",
                             reason, len(self.positions.open_positions()), exc_info=True)
        self.halted = True
        self.accepting = False
        self.positions.halted = True
        self.bus.publish(ENGINE_HALTED, reason)

    # ------------------------------------------------------------------ #
    # Manual operations (serialised with ticks)
    # ------------------------------------------------------------------ #
    async def close_position(
        self, position_id: str, reason: CloseReason = CloseReason.MANUAL
    ) -> Optional[TradeRecord]:
        async with self._gate:
            return self.positions.close_position(position_id, reason, now=self.clock())

    async def close_all(
        self, reason: CloseReason = CloseReason.MANUAL, now: Optional[float] = None
    ) -> List[TradeRecord]:
        async with self._gate:
            return self.positions.close_all(reason, now=self.clock() if now is None else now)

    # ------------------------------------------------------------------ #
    # Loop control
    # ------------------------------------------------------------------ #
    async def run(self, max_ticks: Optional[int] = None) -> None:
        self.logger.info("✅ TradingEngine started – tick every %ss", self.tick_seconds)
        ticks = 0
        while not self._stop_event.is_set():
            await self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                pass
        self.logger.info("TradingEngine loop finished after %d ticks", ticks)

    def start(self) -> asyncio.Task:
        self._stop_event.clear()
        self.accepting = not self.halted
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop taking decisions now, let the in-flight tick finish, leave positions open."""
        self.accepting = False
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        self.logger.info("TradingEngine stopped with %d open positions", len(self.positions.open_positions()))

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #
    def open_positions(self) -> List[Position]:
        return self.positions.open_positions()

    def performance_report(self, annualize: bool = False) -> PerformanceReport:
        initial = getattr(self.positions.wallet, "initial_cash", None)
        if initial is None:
            initial = self.snapshots[0].total_value if self.snapshots else 0.0
        return self.analyzer.analyze(self.positions.history, self.snapshots, initial, annualize=annualize)

    def risk_report(self) -> dict:
        report = self.risk_assessor.risk_report()
        report["emergency_stop"] = {"active": self.emergency.should_stop, "reasons": list(self.emergency.reasons)}
        report["halted"] = self.halted
        return report
