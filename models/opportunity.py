from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TokenInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1)
    name: str = ""
    address: Optional[str] = None


class Opportunity(BaseModel):
    """Candidate trade produced by the market signal source. Consumed once."""

    model_config = ConfigDict(frozen=True)

    token: TokenInfo
    entry_price: float = Field(..., gt=0)
    stop_loss: float = Field(..., ge=0)
    take_profit: float = Field(..., gt=0)
    confidence: float = Field(..., ge=0, le=1)
    market_cap: Optional[float] = None
    volume_24h: Optional[float] = None
    price_change_24h: Optional[float] = None
    type: str = "memecoin"
    timestamp: float = Field(
        default_factory=lambda: datetime.now(timezone.utc).timestamp()
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_ts(cls, v):
        if v > 10**12:
            v /= 1000
        if v <= 0:
            raise ValueError("timestamp must be positive")
        return v

    @property
    def symbol(self) -> str:
        return self.token.symbol
