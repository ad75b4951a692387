"""
models/report.py
----------------
Performance report produced on demand by ``PerformanceAnalyzer``.
Derived data only; nothing here is persisted by the engine.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Union

# Profit factor when there are winning trades and no losing ones.
INFINITE = "infinite"

ProfitFactor = Union[float, str]


@dataclass(frozen=True)
class OverviewReport:
    total_trades: int = 0
    total_return: float = 0.0      # fraction of initial balance
    total_pnl: float = 0.0
    current_balance: float = 0.0
    trading_period_hours: float = 0.0
    average_trade_value: float = 0.0


@dataclass(frozen=True)
class ProfitabilityReport:
    win_rate: float = 0.0          # wins / closed trades
    profit_factor: ProfitFactor = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0      # magnitude
    largest_win: float = 0.0
    largest_loss: float = 0.0      # most negative pnl
    winning_trades: int = 0
    losing_trades: int = 0

    @property
    def profit_factor_unbounded(self) -> bool:
        return self.profit_factor == INFINITE


@dataclass(frozen=True)
class RiskReport:
    max_drawdown: float = 0.0      # fraction of running peak
    sharpe_ratio: float = 0.0
    volatility: float = 0.0
    calmar_ratio: float = 0.0
    consecutive_losses: int = 0
    risk_of_ruin: float = 0.0


@dataclass(frozen=True)
class EfficiencyReport:
    average_hold_hours: float = 0.0
    trades_per_day: float = 0.0
    capital_utilization: float = 0.0   # fraction of the trading period capital was deployed
    opportunity_ratio: float = 0.0


@dataclass(frozen=True)
class PatternReport:
    best_hours: List[Dict[str, float]] = field(default_factory=list)
    best_days: List[Dict[str, object]] = field(default_factory=list)
    profitable_reasons: List[Dict[str, object]] = field(default_factory=list)
    monthly: List[Dict[str, object]] = field(default_factory=list)


@dataclass(frozen=True)
class Advice:
    type: str
    priority: str
    message: str


@dataclass(frozen=True)
class PerformanceReport:
    overview: OverviewReport = field(default_factory=OverviewReport)
    profitability: ProfitabilityReport = field(default_factory=ProfitabilityReport)
    risk: RiskReport = field(default_factory=RiskReport)
    efficiency: EfficiencyReport = field(default_factory=EfficiencyReport)
    patterns: PatternReport = field(default_factory=PatternReport)
    recommendations: List[Advice] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
