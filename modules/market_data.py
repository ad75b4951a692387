"""
market_data.py
--------------
Historical/synthetic price series and the paper-mode feeds built on them.

This is the only module allowed to use randomness. Everything is driven by a
seeded ``numpy.random.Generator`` so the same seed yields the same series.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from core.sources import SentimentSource, SignalSource
from models.opportunity import Opportunity, TokenInfo
from modules.price_oracle import PriceOracle

logger = logging.getLogger(__name__)

SERIES_COLUMNS = ["timestamp", "price", "volume", "market_cap", "change_24h"]


@dataclass(frozen=True)
class PricePoint:
    timestamp: float
    price: float
    volume: float = 0.0
    market_cap: float = 0.0
    change_24h: float = 0.0


def generate_price_series(
    days: int = 30,
    *,
    seed: Optional[int] = None,
    start: float = 1_700_000_000.0,
    start_price: float = 1.0,
    step_seconds: int = 3600,
    max_step_change: float = 0.05,
    supply: float = 1_000_000.0,
) -> pd.DataFrame:
    """Hourly random walk, ±``max_step_change`` per bar."""
    rng = np.random.default_rng(seed)
    n = int(days * 86400 / step_seconds)
    changes = (rng.random(n) - 0.5) * 2 * max_step_change
    prices = np.maximum(0.001, start_price * np.cumprod(1 + changes))
    return pd.DataFrame(
        {
            "timestamp": start + np.arange(n) * step_seconds,
            "price": prices,
            "volume": rng.random(n) * 100_000 + 10_000,
            "market_cap": prices * supply,
            "change_24h": changes * 100,
        }
    )


def epoch_seconds(ts: float) -> float:
    """Millisecond epochs (JS-style series) are scaled down to seconds."""
    return ts / 1000 if ts > 10**12 else ts


def to_points(series: Union[pd.DataFrame, Iterable]) -> List[PricePoint]:
    """Accept a DataFrame, dicts or PricePoints and return PricePoints in time order."""
    if isinstance(series, pd.DataFrame):
        frame = series.copy()
        missing = {"timestamp", "price"} - set(frame.columns)
        if missing:
            raise ValueError(f"price series is missing columns: {sorted(missing)}")
        for col in SERIES_COLUMNS:
            if col not in frame.columns:
                frame[col] = 0.0
        frame["timestamp"] = frame["timestamp"].astype(float).map(epoch_seconds)
        frame = frame.sort_values("timestamp", kind="stable")
        return [
            PricePoint(*(float(v) for v in row))
            for row in frame[SERIES_COLUMNS].itertuples(index=False, name=None)
        ]

    points = []
    for item in series:
        if isinstance(item, PricePoint):
            points.append(replace(item, timestamp=epoch_seconds(item.timestamp)))
        else:
            fields = {k: float(item.get(k, 0.0)) for k in SERIES_COLUMNS}
            fields["timestamp"] = epoch_seconds(fields["timestamp"])
            points.append(PricePoint(**fields))
    return sorted(points, key=lambda p: p.timestamp)


# ---------------------------------------------------------------------- #
# Paper-mode feeds
# ---------------------------------------------------------------------- #
class RandomWalkPriceOracle(PriceOracle):
    """Every lookup moves the token's price one random step."""

    def __init__(self, seed: Optional[int] = None, max_step_change: float = 0.05):
        self._rng = np.random.default_rng(seed)
        self.max_step_change = max_step_change
        self.prices = {}

    def seed_price(self, token_id: str, price: float) -> None:
        self.prices.setdefault(token_id, price)

    async def price(self, token: TokenInfo) -> Optional[float]:
        current = self.prices.get(token.id)
        if current is None:
            return None
        step = (self._rng.random() - 0.5) * 2 * self.max_step_change
        current = max(0.001, current * (1 + step))
        self.prices[token.id] = current
        return float(current)


class RandomSignalSource(SignalSource):
    """Invents memecoin opportunities for paper trading."""

    def __init__(
        self,
        tokens: Sequence[TokenInfo],
        *,
        seed: Optional[int] = None,
        oracle: Optional[RandomWalkPriceOracle] = None,
        per_scan: int = 2,
    ):
        self.tokens = list(tokens)
        self._rng = np.random.default_rng(seed)
        self.oracle = oracle
        self.per_scan = per_scan

    async def scan(self) -> List[Opportunity]:
        if not self.tokens:
            return []
        picks = self._rng.choice(len(self.tokens), size=min(self.per_scan, len(self.tokens)), replace=False)
        out = []
        for idx in picks:
            token = self.tokens[int(idx)]
            entry = float(self._rng.uniform(0.0005, 2.0))
            if self.oracle is not None:
                self.oracle.seed_price(token.id, entry)
                entry = self.oracle.prices[token.id]
            out.append(
                Opportunity(
                    token=token,
                    entry_price=entry,
                    stop_loss=entry * float(self._rng.uniform(0.85, 0.99)),
                    take_profit=entry * float(self._rng.uniform(1.05, 1.5)),
                    confidence=float(self._rng.uniform(0.3, 1.0)),
                    market_cap=float(self._rng.uniform(20_000, 5_000_000)),
                    volume_24h=float(self._rng.uniform(10_000, 500_000)),
                    price_change_24h=float(self._rng.uniform(-40, 80)),
                )
            )
        return out


class RandomSentimentSource(SentimentSource):
    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    async def sentiment(self) -> float:
        return float(self._rng.uniform(-1, 1))
