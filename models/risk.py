"""
models/risk.py
--------------
Result records produced by the risk assessor. All of them are read-only views
handed to the evaluator, the engine and the alert hub.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class Recommendation(str, Enum):
    PROCEED = "PROCEED"
    REDUCE_SIZE = "REDUCE_SIZE"
    REJECT = "REJECT"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    ERROR = "ERROR"


@dataclass(frozen=True)
class RiskAssessment:
    overall: float
    factors: Dict[str, float] = field(default_factory=dict)
    recommendation: Recommendation = Recommendation.PROCEED

    @classmethod
    def rejected(cls, reason: str = "error") -> "RiskAssessment":
        return cls(overall=1.0, factors={reason: 1.0}, recommendation=Recommendation.REJECT)


@dataclass(frozen=True)
class PortfolioRisk:
    risk_level: RiskLevel
    exposure: float = 0.0
    total_value: float = 0.0
    position_count: int = 0
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    token_concentration: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class EmergencyStopCheck:
    should_stop: bool
    reasons: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class StopLossValidation:
    is_valid: bool
    percentage: float
    recommendation: str  # "increase" | "decrease" | "valid"
