"""
risk_assessor.py
----------------
Table-driven trade risk scoring, portfolio exposure checks, the emergency-stop
circuit breaker and stop-loss validation.

Every public method is total: it returns a result record and never raises.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Sequence

from models.opportunity import Opportunity, TokenInfo
from models.position import Position
from models.risk import (
    EmergencyStopCheck,
    PortfolioRisk,
    Recommendation,
    RiskAssessment,
    RiskLevel,
    StopLossValidation,
)
from utils.config_manager import TradingLimits

logger = logging.getLogger(__name__)

# (threshold, added risk) – first matching row wins within a factor
MARKET_CAP_TIERS = ((100_000, 0.4), (1_000_000, 0.2))
VOLATILITY_TIERS = ((50, 0.3), (20, 0.1))
LIQUIDITY_TIERS = ((50_000, 0.3), (100_000, 0.1))
POSITION_SIZE_SHARE = 0.10
POSITION_SIZE_RISK = 0.2
CORRELATION_RISK = 0.2
TIMING_RISK = 0.1
QUIET_HOURS = (6, 22)  # UTC; before the first or after the second

REJECT_ABOVE = 0.7
REDUCE_ABOVE = 0.4

MEME_KEYWORDS = ("doge", "shib", "inu", "moon", "safe", "baby")


def _num(value) -> float:
    """Absent or malformed numerics count as 0."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def _utc_hour(now) -> int:
    if now is None:
        return datetime.now(timezone.utc).hour
    if isinstance(now, datetime):
        return now.astimezone(timezone.utc).hour if now.tzinfo else now.hour
    return datetime.fromtimestamp(float(now), tz=timezone.utc).hour


def tokens_similar(a: TokenInfo, b: TokenInfo) -> bool:
    """Crude keyword-overlap check between two meme tokens."""
    text_a = f"{a.symbol} {a.name}".lower()
    text_b = f"{b.symbol} {b.name}".lower()
    return any(word in text_a and word in text_b for word in MEME_KEYWORDS)


class RiskAssessor:
    """Scores candidate trades and the open portfolio against ``TradingLimits``."""

    def __init__(self, limits: Optional[TradingLimits] = None):
        self.limits = limits or TradingLimits()
        self.last_portfolio_check: Optional[float] = None
        self.last_exposure: float = 0.0

    # ------------------------------------------------------------------ #
    # Trade risk
    # ------------------------------------------------------------------ #
    def assess_trade_risk(
        self,
        opportunity: Opportunity,
        open_positions: Sequence[Position],
        portfolio_value: float,
        now=None,
    ) -> RiskAssessment:
        try:
            factors: Dict[str, float] = {}

            market_cap = _num(opportunity.market_cap)
            for ceiling, risk in MARKET_CAP_TIERS:
                if market_cap < ceiling:
                    factors["market_cap"] = risk
                    break

            change = abs(_num(opportunity.price_change_24h))
            for floor, risk in VOLATILITY_TIERS:
                if change > floor:
                    factors["volatility"] = risk
                    break

            volume = _num(opportunity.volume_24h)
            for ceiling, risk in LIQUIDITY_TIERS:
                if volume < ceiling:
                    factors["liquidity"] = risk
                    break

            confidence = _num(opportunity.confidence) or 0.5
            prospective = self.limits.max_position_size * confidence
            value = _num(portfolio_value)
            if value <= 0 or prospective / value > POSITION_SIZE_SHARE:
                factors["position_size"] = POSITION_SIZE_RISK

            if any(tokens_similar(p.token, opportunity.token) for p in open_positions):
                factors["correlation"] = CORRELATION_RISK

            hour = _utc_hour(now)
            if hour < QUIET_HOURS[0] or hour > QUIET_HOURS[1]:
                factors["timing"] = TIMING_RISK

            overall = min(1.0, max(0.0, round(sum(factors.values()), 10)))
            return RiskAssessment(
                overall=overall,
                factors=factors,
                recommendation=self.recommend(overall),
            )
        except Exception:
            logger.exception("Error assessing trade risk")
            return RiskAssessment.rejected()

    @staticmethod
    def recommend(overall: float) -> Recommendation:
        if overall > REJECT_ABOVE:
            return Recommendation.REJECT
        if overall > REDUCE_ABOVE:
            return Recommendation.REDUCE_SIZE
        return Recommendation.PROCEED

    # ------------------------------------------------------------------ #
    # Portfolio risk
    # ------------------------------------------------------------------ #
    def assess_portfolio_risk(
        self, positions: Sequence[Position], wallet_balance: float, now: Optional[float] = None
    ) -> PortfolioRisk:
        try:
            lim = self.limits
            total_value = float(wallet_balance) + sum(p.market_value for p in positions)
            deployed = sum(p.size for p in positions)
            exposure = deployed / total_value if total_value > 0 else (1.0 if deployed else 0.0)

            level = RiskLevel.LOW
            warnings, recommendations = [], []

            if exposure > lim.max_portfolio_risk:
                level = RiskLevel.HIGH
                warnings.append(f"Portfolio exposure too high: {exposure * 100:.1f}%")
                recommendations.append("Close some positions to reduce exposure")

            if len(positions) > lim.max_active_positions:
                level = RiskLevel.MEDIUM
                warnings.append(f"Too many active positions: {len(positions)}")
                recommendations.append("Consider closing weaker positions")

            oversized = [p for p in positions if p.size > lim.max_position_size]
            if oversized:
                level = RiskLevel.MEDIUM
                warnings.append(f"{len(oversized)} positions exceed size limit")
                recommendations.append("Reduce position sizes")

            concentration = self.token_concentration(positions)
            if concentration and max(concentration.values()) > lim.max_token_concentration:
                level = RiskLevel.HIGH
                warnings.append(
                    f"High concentration in single token: {max(concentration.values()) * 100:.1f}%"
                )
                recommendations.append("Diversify holdings across more tokens")

            self.last_exposure = exposure
            self.last_portfolio_check = now
            if level is RiskLevel.HIGH:
                logger.warning("🚨 High risk portfolio detected: %s", warnings)

            return PortfolioRisk(
                risk_level=level,
                exposure=exposure,
                total_value=total_value,
                position_count=len(positions),
                warnings=warnings,
                recommendations=recommendations,
                token_concentration=concentration,
            )
        except Exception:
            logger.exception("Error assessing portfolio risk")
            return PortfolioRisk(
                risk_level=RiskLevel.ERROR,
                warnings=["Risk assessment failed"],
                recommendations=["Manual review required"],
            )

    @staticmethod
    def token_concentration(positions: Iterable[Position]) -> Dict[str, float]:
        per_token: Dict[str, float] = defaultdict(float)
        for p in positions:
            per_token[p.token.symbol] += p.size
        total = sum(per_token.values())
        if total <= 0:
            return {}
        return {sym: size / total for sym, size in per_token.items()}

    # ------------------------------------------------------------------ #
    # Circuit breaker
    # ------------------------------------------------------------------ #
    def should_emergency_stop(
        self,
        daily_pnl: float,
        total_pnl: float,
        portfolio_value: float,
        consecutive_losses: int = 0,
    ) -> EmergencyStopCheck:
        lim = self.limits
        reasons = []
        value = _num(portfolio_value)

        if value <= 0:
            reasons.append("Portfolio value is not positive")
        else:
            if abs(_num(daily_pnl)) / value > lim.emergency_stop_loss:
                reasons.append(f"Daily loss exceeds {lim.emergency_stop_loss * 100:g}%")
            if abs(_num(total_pnl)) / value > lim.max_total_loss:
                reasons.append(f"Total portfolio loss exceeds {lim.max_total_loss * 100:g}%")

        if consecutive_losses > lim.max_consecutive_losses:
            reasons.append("Too many consecutive losses")

        return EmergencyStopCheck(should_stop=bool(reasons), reasons=reasons)

    # ------------------------------------------------------------------ #
    # Stop-loss band
    # ------------------------------------------------------------------ #
    def validate_stop_loss(self, entry: float, stop_loss: float) -> StopLossValidation:
        entry = _num(entry)
        if entry <= 0:
            return StopLossValidation(is_valid=False, percentage=0.0, recommendation="increase")
        # rounded so that exactly 2% / 20% are not lost to float noise
        distance = round(abs(entry - _num(stop_loss)) / entry, 12)
        if distance < self.limits.min_stop_distance:
            rec = "increase"
        elif distance > self.limits.max_stop_distance:
            rec = "decrease"
        else:
            rec = "valid"
        return StopLossValidation(is_valid=rec == "valid", percentage=distance * 100, recommendation=rec)

    def risk_report(self) -> Dict[str, object]:
        lim = self.limits
        return {
            "metrics": {
                "total_exposure": self.last_exposure,
                "last_risk_check": self.last_portfolio_check,
            },
            "config": {
                "max_position_size": lim.max_position_size,
                "max_portfolio_risk": lim.max_portfolio_risk,
                "stop_loss_percentage": lim.stop_loss_percentage,
                "emergency_stop_loss": lim.emergency_stop_loss,
            },
        }
