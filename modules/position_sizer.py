"""
position_sizer.py
-----------------
Turns confidence, risk score and portfolio value into a bounded position size
(currency units).
"""

from __future__ import annotations

import math
from typing import Optional

from models.risk import RiskAssessment
from utils.config_manager import TradingLimits


def _finite(value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


class PositionSizer:
    def __init__(self, limits: Optional[TradingLimits] = None):
        self.limits = limits or TradingLimits()

    def portfolio_cap(self, portfolio_value: float) -> float:
        """Largest size a single position may take from this portfolio."""
        return max(0.0, _finite(portfolio_value)) * self.limits.risk_percentage / 100

    def calculate_position_size(
        self, confidence: float, risk: RiskAssessment, portfolio_value: float
    ) -> float:
        lim = self.limits
        base = lim.max_position_size * max(0.0, _finite(confidence))
        risk_score = min(1.0, max(0.0, _finite(risk.overall)))
        size = base * (1 - risk_score)
        size = min(size, self.portfolio_cap(portfolio_value), lim.max_position_size)
        return max(size, lim.min_position_size)
