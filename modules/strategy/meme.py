"""
strategy/meme.py
----------------
Memecoin momentum scoring:

• price action – strong 24h momentum, market cap in the 100k–5M sweet spot
• volume      – turnover relative to market cap
• timing      – US session hours and weekends
Social buzz is an optional 0–1 input supplied by the caller.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from models.opportunity import Opportunity, TokenInfo
from modules.market_data import PricePoint

from .base import BaseStrategy

MEME_KEYWORDS = (
    "moon", "rocket", "diamond hands", "hodl", "ape",
    "pump", "gem", "next doge", "x100", "lambo",
    "degen", "chad", "wojak", "pepe", "shiba",
)

WEIGHTS = {"price": 0.3, "social": 0.4, "volume": 0.2, "timing": 0.1}


class MemeStrategy(BaseStrategy):
    """Weighted momentum/volume/timing score turned into an Opportunity."""

    name = "Memecoin Strategy"

    def __init__(
        self,
        *,
        min_confidence: float = 0.6,
        stop_loss_percentage: float = 5.0,
        take_profit_percentage: float = 15.0,
        keywords: Sequence[str] = MEME_KEYWORDS,
        weights: Optional[Dict[str, float]] = None,
        social_score: float = 0.0,
        require_meme_token: bool = True,
    ):
        self.min_confidence = min_confidence
        self.stop_loss_percentage = stop_loss_percentage
        self.take_profit_percentage = take_profit_percentage
        self.keywords = tuple(k.lower() for k in keywords)
        self.weights = dict(weights or WEIGHTS)
        self.social_score = social_score
        self.require_meme_token = require_meme_token

    def is_meme_token(self, token: TokenInfo) -> bool:
        text = f"{token.symbol} {token.name}".lower()
        return any(k in text for k in self.keywords)

    def analyze(self, point: PricePoint, token: TokenInfo) -> Dict[str, object]:
        signals: List[str] = []
        if self.require_meme_token and not self.is_meme_token(token):
            return {"confidence": 0.0, "signals": signals}

        price = 0.0
        if point.change_24h > 50:
            price += 0.4
            signals.append("Strong upward momentum")
        elif point.change_24h > 20:
            price += 0.2
            signals.append("Moderate upward momentum")
        if 100_000 < point.market_cap < 5_000_000:
            price += 0.3
            signals.append("Optimal market cap range")

        volume = 0.0
        ratio = point.volume / point.market_cap if point.market_cap > 0 else 0.0
        if ratio > 0.5:
            volume += 0.4
            signals.append("Extremely high volume")
        elif ratio > 0.2:
            volume += 0.2
            signals.append("High volume")

        timing = 0.0
        when = datetime.fromtimestamp(point.timestamp, tz=timezone.utc)
        if 13 <= when.hour <= 21:
            timing += 0.3
            signals.append("Peak trading hours")
        if when.weekday() >= 5:
            timing += 0.2
            signals.append("Weekend memecoin activity")

        w = self.weights
        score = (
            price * w.get("price", 0.0)
            + self.social_score * w.get("social", 0.0)
            + volume * w.get("volume", 0.0)
            + timing * w.get("timing", 0.0)
        )
        return {"confidence": min(score, 1.0), "signals": signals}

    def stop_loss(self, entry: float) -> float:
        return entry * (1 - self.stop_loss_percentage / 100)

    def take_profit(self, entry: float, confidence: float) -> float:
        # higher confidence, further target
        pct = self.take_profit_percentage * (1 + confidence * 0.5)
        return entry * (1 + pct / 100)

    def generate_opportunity(self, point: PricePoint, token: TokenInfo) -> Optional[Opportunity]:
        if point.price <= 0:
            return None
        confidence = float(self.analyze(point, token)["confidence"])
        if confidence < self.min_confidence:
            return None
        return Opportunity(
            token=token,
            entry_price=point.price,
            stop_loss=self.stop_loss(point.price),
            take_profit=self.take_profit(point.price, confidence),
            confidence=confidence,
            market_cap=point.market_cap,
            volume_24h=point.volume,
            price_change_24h=point.change_24h,
            timestamp=point.timestamp,
        )
