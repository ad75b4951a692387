from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from models.opportunity import TokenInfo
from models.risk import RiskAssessment


class TradeAction(str, Enum):
    BUY = "buy"    # long
    SELL = "sell"  # short


class Verdict(str, Enum):
    ACCEPT = "ACCEPT"
    RESIZE = "RESIZE"
    REJECT = "REJECT"


@dataclass(frozen=True)
class Decision:
    """Accepted, sized and bounded trade instruction handed to execution."""

    action: TradeAction
    token: TokenInfo
    position_size: float
    entry: float
    stop_loss: float
    take_profit: float
    confidence: float
    risk: RiskAssessment
    timestamp: float
    reasons: Tuple[str, ...] = ()

    @property
    def risk_score(self) -> float:
        return self.risk.overall


@dataclass(frozen=True)
class Evaluation:
    verdict: Verdict
    risk: RiskAssessment
    decision: Optional[Decision] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.decision is not None and self.verdict is not Verdict.REJECT
