"""
performance_analyzer.py
-----------------------
Aggregates closed trades and the per-tick portfolio value series into a
``PerformanceReport``: profitability, risk, efficiency, patterns and plain
language recommendations. Pure; never raises.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import List, Sequence

import numpy as np
import pandas as pd

from models.report import (
    INFINITE,
    Advice,
    EfficiencyReport,
    OverviewReport,
    PatternReport,
    PerformanceReport,
    ProfitabilityReport,
    RiskReport,
)
from models.trade_record import PortfolioSnapshot, TradeRecord

logger = logging.getLogger(__name__)

RUIN_ON_NEGATIVE_EDGE = 0.5


class PerformanceAnalyzer:
    def __init__(self, periods_per_year: float = 365.0):
        self.periods_per_year = periods_per_year

    def analyze(
        self,
        trades: Sequence[TradeRecord],
        snapshots: Sequence[PortfolioSnapshot] = (),
        initial_balance: float = 1000.0,
        annualize: bool = False,
    ) -> PerformanceReport:
        try:
            trades = list(trades)
            if not trades:
                return PerformanceReport()

            df = self._frame(trades)
            values = pd.Series([s.total_value for s in snapshots], dtype=float)

            report = PerformanceReport(
                overview=self._overview(df, values, initial_balance),
                profitability=self._profitability(df),
                risk=self._risk(df, values, annualize),
                efficiency=self._efficiency(df),
                patterns=self._patterns(df),
            )
            return replace(report, recommendations=self.recommendations(report))
        except Exception:
            logger.exception("Error analyzing trading performance")
            return self.error_report()

    # ------------------------------------------------------------------ #
    @staticmethod
    def _frame(trades: List[TradeRecord]) -> pd.DataFrame:
        df = pd.DataFrame(
            {
                "pnl": [t.pnl for t in trades],
                "size": [t.size for t in trades],
                "opened_at": [t.opened_at for t in trades],
                "closed_at": [t.closed_at for t in trades],
                "hold_seconds": [t.hold_seconds for t in trades],
                "reasons": [list(t.reasons) or ["Unknown"] for t in trades],
            }
        )
        df = df.sort_values("closed_at", kind="stable").reset_index(drop=True)
        df["closed_dt"] = pd.to_datetime(df["closed_at"], unit="s", utc=True)
        return df

    @staticmethod
    def _period_seconds(df: pd.DataFrame) -> float:
        return float(df["closed_at"].max() - df["opened_at"].min())

    def _overview(self, df, values, initial_balance) -> OverviewReport:
        total_pnl = float(df["pnl"].sum())
        current = float(values.iloc[-1]) if len(values) else initial_balance + total_pnl
        return OverviewReport(
            total_trades=len(df),
            total_return=(current - initial_balance) / initial_balance if initial_balance > 0 else 0.0,
            total_pnl=total_pnl,
            current_balance=current,
            trading_period_hours=self._period_seconds(df) / 3600,
            average_trade_value=float(df["size"].mean()),
        )

    @staticmethod
    def _profitability(df) -> ProfitabilityReport:
        wins = df.loc[df["pnl"] > 0, "pnl"]
        losses = df.loc[df["pnl"] <= 0, "pnl"]
        total_wins = float(wins.sum())
        total_losses = abs(float(losses.sum()))

        if total_losses > 0:
            profit_factor = total_wins / total_losses
        elif total_wins > 0:
            profit_factor = INFINITE
        else:
            profit_factor = 0.0

        return ProfitabilityReport(
            win_rate=len(wins) / len(df),
            profit_factor=profit_factor,
            average_win=total_wins / len(wins) if len(wins) else 0.0,
            average_loss=total_losses / len(losses) if len(losses) else 0.0,
            largest_win=float(wins.max()) if len(wins) else 0.0,
            largest_loss=float(losses.min()) if len(losses) else 0.0,
            winning_trades=len(wins),
            losing_trades=len(losses),
        )

    def _risk(self, df, values, annualize) -> RiskReport:
        if len(values) == 0:
            max_dd, returns = 0.0, pd.Series(dtype=float)
        else:
            max_dd = self.max_drawdown(values)
            returns = self.period_returns(values)

        volatility = float(returns.std(ddof=0)) if len(returns) else 0.0
        sharpe = float(returns.mean()) / volatility if volatility > 0 else 0.0
        if annualize:
            sharpe *= math.sqrt(self.periods_per_year)

        annual = self.annualized_return(returns)
        return RiskReport(
            max_drawdown=max_dd,
            sharpe_ratio=sharpe,
            volatility=volatility,
            calmar_ratio=annual / max_dd if max_dd > 0 else 0.0,
            consecutive_losses=self.longest_loss_streak(df["pnl"]),
            risk_of_ruin=self.risk_of_ruin(df["pnl"]),
        )

    def _efficiency(self, df) -> EfficiencyReport:
        period = self._period_seconds(df)
        return EfficiencyReport(
            average_hold_hours=float(df["hold_seconds"].mean()) / 3600,
            trades_per_day=len(df) / (period / 86400) if period > 0 else 0.0,
            capital_utilization=float(df["hold_seconds"].sum()) / period if period > 0 else 0.0,
            opportunity_ratio=float((df["pnl"] > 0).mean()),
        )

    @staticmethod
    def _patterns(df) -> PatternReport:
        def summarize(grouped, key):
            out = grouped["pnl"].agg(["mean", "count"]).reset_index()
            out = out.sort_values("mean", ascending=False, kind="stable")
            out = out.astype({"count": int})
            return [
                {key: label, "average_pnl": float(mean), "trade_count": int(count)}
                for label, mean, count in zip(
                    [int(v) if key == "hour" else v for v in out[key]], out["mean"], out["count"]
                )
            ]

        frame = df.assign(
            hour=df["closed_dt"].dt.hour,
            day=df["closed_dt"].dt.day_name(),
            month=df["closed_dt"].dt.month_name().str[:3],
        )
        hours = summarize(frame.groupby("hour"), "hour")
        days = summarize(frame.groupby("day"), "day")

        tagged = frame.explode("reasons")
        by_tag = tagged.groupby("reasons")["pnl"].agg(
            total="sum", average="mean", count="count", win_rate=lambda s: float((s > 0).mean())
        ).reset_index().sort_values("total", ascending=False, kind="stable")
        reasons = [
            {
                "reason": row["reasons"],
                "total_pnl": float(row["total"]),
                "average_pnl": float(row["average"]),
                "win_rate": float(row["win_rate"]),
                "trade_count": int(row["count"]),
            }
            for _, row in by_tag.iterrows()
        ]

        monthly = frame.groupby("month", sort=False)["pnl"].agg(["mean", "count"]).reset_index()
        months = [
            {"month": row["month"], "average_pnl": float(row["mean"]), "trade_count": int(row["count"])}
            for _, row in monthly.iterrows()
        ]
        return PatternReport(best_hours=hours, best_days=days, profitable_reasons=reasons, monthly=months)

    # ------------------------------------------------------------------ #
    # Building blocks (also used by the backtest summary)
    # ------------------------------------------------------------------ #
    @staticmethod
    def period_returns(values: pd.Series) -> pd.Series:
        prev = values.shift(1)
        returns = (values - prev) / prev
        return returns.replace([np.inf, -np.inf], np.nan).dropna()

    @staticmethod
    def max_drawdown(values: pd.Series) -> float:
        if len(values) < 2:
            return 0.0
        peak = values.cummax()
        drawdown = ((peak - values) / peak).where(peak > 0, 0.0)
        return float(drawdown.max())

    def annualized_return(self, returns: pd.Series) -> float:
        if len(returns) == 0:
            return 0.0
        growth = float((1 + returns).prod())
        if growth <= 0:
            return -1.0
        return growth ** (self.periods_per_year / len(returns)) - 1

    @staticmethod
    def longest_loss_streak(pnl: pd.Series) -> int:
        longest = current = 0
        for value in pnl:
            current = current + 1 if value <= 0 else 0
            longest = max(longest, current)
        return longest

    @staticmethod
    def risk_of_ruin(pnl: pd.Series) -> float:
        wins = pnl[pnl > 0]
        losses = pnl[pnl <= 0]
        avg_win = float(wins.mean()) if len(wins) else 0.0
        avg_loss = abs(float(losses.mean())) if len(losses) else 0.0
        if avg_loss == 0:
            return 0.0
        win_rate = len(wins) / len(pnl)
        edge = win_rate * (avg_win / avg_loss) - (1 - win_rate)
        return RUIN_ON_NEGATIVE_EDGE if edge < 0 else max(0.0, 1.0 - edge)

    @staticmethod
    def recommendations(report: PerformanceReport) -> List[Advice]:
        advice = []
        if report.profitability.win_rate < 0.4:
            advice.append(Advice("strategy", "high", "Consider improving entry criteria - win rate is below 40%"))
        if report.risk.max_drawdown > 0.2:
            advice.append(Advice("risk", "high", "Reduce position sizes - maximum drawdown exceeds 20%"))
        if report.efficiency.average_hold_hours > 48:
            advice.append(
                Advice("efficiency", "medium", "Consider shorter holding periods - current average is over 48 hours")
            )
        pf = report.profitability.profit_factor
        if pf != INFINITE and pf < 1.5:
            advice.append(
                Advice(
                    "profitability",
                    "high",
                    "Improve profit factor by letting winners run longer or cutting losses faster",
                )
            )
        return advice

    @staticmethod
    def error_report() -> PerformanceReport:
        return PerformanceReport(
            recommendations=[Advice("error", "high", "Performance analysis failed - check data quality")]
        )
