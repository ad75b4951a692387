"""
price_oracle.py
---------------
Mark-price lookups for open positions. Every oracle returns ``None`` when it
has no fresh price; callers treat that as "no update this tick".
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import aiohttp

from models.opportunity import TokenInfo

logger = logging.getLogger(__name__)

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"


class PriceOracle(ABC):
    @abstractmethod
    async def price(self, token: TokenInfo) -> Optional[float]:
        raise NotImplementedError

    async def close(self) -> None:
        """Release network resources, if any."""


class StaticPriceOracle(PriceOracle):
    """In-memory oracle. Backtests push each bar's price through ``set_price``."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices: Dict[str, Optional[float]] = dict(prices or {})

    def set_price(self, token_id: str, price: Optional[float]) -> None:
        self.prices[token_id] = price

    async def price(self, token: TokenInfo) -> Optional[float]:
        return self.prices.get(token.id)


class CoinGeckoPriceOracle(PriceOracle):
    """USD prices from CoinGecko's simple/price endpoint with a short TTL cache.

    A cached value is only served while it is younger than ``cache_ttl``;
    past that the oracle reports ``None`` instead of a stale price.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        url: str = COINGECKO_URL,
        cache_ttl: float = 30.0,
        timeout: float = 5.0,
    ):
        self._session = session
        self._owns_session = session is None
        self.url = url
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self._cache: Dict[str, Tuple[float, float]] = {}  # id -> (price, fetched_at)
        self.metrics = {"requests_sent": 0, "errors": 0}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def price(self, token: TokenInfo) -> Optional[float]:
        cached = self._cache.get(token.id)
        if cached and time.time() - cached[1] < self.cache_ttl:
            return cached[0]

        session = await self._get_session()
        params = {"ids": token.id, "vs_currencies": "usd"}
        try:
            async with session.get(
                self.url, params=params, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                self.metrics["requests_sent"] += 1
                if resp.status != 200:
                    raise aiohttp.ClientResponseError(
                        resp.request_info, resp.history, status=resp.status
                    )
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.metrics["errors"] += 1
            logger.warning("Price request failed for %s: %s", token.symbol, exc)
            return None

        try:
            value = float(data[token.id]["usd"])
        except (KeyError, TypeError, ValueError):
            logger.warning("No USD price for %s in response", token.symbol)
            return None
        if value <= 0:
            return None

        self._cache[token.id] = (value, time.time())
        return value

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
