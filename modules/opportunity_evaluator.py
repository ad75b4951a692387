from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from models.decision import Decision, Evaluation, TradeAction, Verdict
from models.opportunity import Opportunity
from models.position import Position
from models.risk import Recommendation, RiskAssessment
from modules.position_sizer import PositionSizer
from modules.risk_assessor import RiskAssessor
from utils.config_manager import TradingLimits

logger = logging.getLogger(__name__)

# (threshold, multiplier) checked in order
BULLISH_TIERS = ((0.3, 1.2), (0.1, 1.1))
BEARISH_TIERS = ((-0.3, 0.8), (-0.1, 0.9))

HIGH_CONFIDENCE = 0.7
BULLISH_TAG_ABOVE = 0.2
LOW_RISK_BELOW = 0.3
FALLBACK_REASON = "Technical analysis signal"


def sentiment_multiplier(sentiment: float) -> float:
    for threshold, mult in BULLISH_TIERS:
        if sentiment > threshold:
            return mult
    for threshold, mult in BEARISH_TIERS:
        if sentiment < threshold:
            return mult
    return 1.0


class OpportunityEvaluator:
    """Coordinator for risk scoring and sizing of one candidate trade.

    Holds no mutable state; safe to call for independent opportunities
    concurrently. Never raises: any failure becomes a REJECT evaluation.
    """

    def __init__(
        self,
        limits: Optional[TradingLimits] = None,
        risk_assessor: Optional[RiskAssessor] = None,
        sizer: Optional[PositionSizer] = None,
    ):
        self.limits = limits or TradingLimits()
        self.risk_assessor = risk_assessor or RiskAssessor(self.limits)
        self.sizer = sizer or PositionSizer(self.limits)

    def evaluate(
        self,
        opportunity: Opportunity,
        sentiment: float,
        open_positions: Sequence[Position],
        portfolio_value: float,
        emergency_stop_active: bool = False,
        now: Optional[float] = None,
    ) -> Evaluation:
        try:
            return self._evaluate(
                opportunity, sentiment, open_positions, portfolio_value, emergency_stop_active, now
            )
        except Exception:
            logger.exception("Error evaluating opportunity %s", getattr(opportunity, "symbol", "?"))
            return self._reject(RiskAssessment.rejected(), "Evaluation failed")

    # ------------------------------------------------------------------ #
    def _evaluate(self, opp, sentiment, open_positions, portfolio_value, emergency_stop_active, now):
        lim = self.limits

        if emergency_stop_active:
            logger.warning("Emergency stop active, rejecting %s", opp.symbol)
            return self._reject(RiskAssessment(overall=0.0), "Emergency stop active")

        risk = self.risk_assessor.assess_trade_risk(opp, open_positions, portfolio_value, now=now)
        if risk.recommendation is Recommendation.REJECT:
            logger.info("Trade rejected due to high risk: %s (%.2f)", opp.symbol, risk.overall)
            return self._reject(risk, "High risk score")

        if len(open_positions) >= lim.max_active_positions:
            return self._reject(risk, "Maximum active positions reached")

        sentiment = max(-1.0, min(1.0, float(sentiment or 0.0)))
        adjusted = min(1.0, opp.confidence * sentiment_multiplier(sentiment))

        size = self.sizer.calculate_position_size(adjusted, risk, portfolio_value)
        if size < lim.min_position_size or size > self.sizer.portfolio_cap(portfolio_value):
            logger.info("Position for %s below minimum size", opp.symbol)
            return self._reject(risk, "Position below minimum size")

        deployed = sum(p.size for p in open_positions)
        if portfolio_value <= 0 or (deployed + size) / portfolio_value > lim.max_portfolio_risk:
            logger.info("Portfolio exposure limit reached, rejecting %s", opp.symbol)
            return self._reject(risk, "Portfolio exposure limit reached")

        stop_loss = opp.stop_loss
        check = self.risk_assessor.validate_stop_loss(opp.entry_price, stop_loss)
        stop_adjusted = not check.is_valid
        if stop_adjusted:
            logger.warning(
                "Invalid stop loss for %s (%.2f%%, %s), using %g%% default",
                opp.symbol, check.percentage, check.recommendation, lim.stop_loss_percentage,
            )
            stop_loss = opp.entry_price * (1 - lim.stop_loss_percentage / 100)

        reasons = self.trade_reasons(opp, sentiment, risk, stop_adjusted)
        decision = Decision(
            action=TradeAction.BUY,
            token=opp.token,
            position_size=size,
            entry=opp.entry_price,
            stop_loss=stop_loss,
            take_profit=opp.take_profit,
            confidence=adjusted,
            risk=risk,
            timestamp=float(now) if now is not None else opp.timestamp,
            reasons=tuple(reasons),
        )
        verdict = Verdict.RESIZE if risk.recommendation is Recommendation.REDUCE_SIZE else Verdict.ACCEPT
        logger.info(
            "🎯 Trade decision: %s %s size=%.2f confidence=%.2f risk=%.2f (%s)",
            decision.action.value, opp.symbol, size, adjusted, risk.overall, verdict.value,
        )
        return Evaluation(verdict=verdict, risk=risk, decision=decision, reasons=reasons)

    @staticmethod
    def trade_reasons(
        opp: Opportunity, sentiment: float, risk: RiskAssessment, stop_adjusted: bool = False
    ) -> List[str]:
        reasons = []
        if opp.confidence > HIGH_CONFIDENCE:
            reasons.append("High confidence signal")
        if sentiment > BULLISH_TAG_ABOVE:
            reasons.append("Bullish market sentiment")
        if opp.type == "memecoin":
            reasons.append("Memecoin opportunity")
        if risk.overall < LOW_RISK_BELOW:
            reasons.append("Low risk profile")
        if risk.factors.get("market_cap"):
            reasons.append("Market cap consideration")
        if risk.factors.get("liquidity"):
            reasons.append("Liquidity analysis")
        if risk.recommendation is Recommendation.REDUCE_SIZE:
            reasons.append("Size reduced for elevated risk")
        if stop_adjusted:
            reasons.append("Stop loss adjusted")
        return reasons or [FALLBACK_REASON]

    @staticmethod
    def _reject(risk: RiskAssessment, reason: str) -> Evaluation:
        return Evaluation(verdict=Verdict.REJECT, risk=risk, reasons=[reason])
