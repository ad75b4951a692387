from __future__ import annotations
from typing import Any, Dict, Optional

from pydantic import ValidationError
from models.opportunity import Opportunity
from utils.config_manager import TradingLimits
from utils.logger import setup_logger

logger = setup_logger(__name__)


def to_opportunity(signal: Dict[str, Any], limits: Optional[TradingLimits] = None) -> Opportunity:
    """Build an Opportunity from a raw scanner record.

    Accepts either a nested ``token`` dict or flat ``symbol`` / ``token_id`` /
    ``name`` keys, and ``price`` as an alias of ``entry_price``. Missing
    stop-loss / take-profit levels are filled from the default percentages.
    Raises ``pydantic.ValidationError`` on bad input.
    """
    limits = limits or TradingLimits()
    data = dict(signal)

    if "token" not in data:
        symbol = data.pop("symbol", None)
        data["token"] = {
            "id": data.pop("token_id", None) or symbol,
            "symbol": symbol,
            "name": data.pop("name", "") or "",
            "address": data.pop("address", None),
        }
    if "entry_price" not in data and "price" in data:
        data["entry_price"] = data.pop("price")

    entry = data.get("entry_price")
    if isinstance(entry, (int, float)) and entry > 0:
        data.setdefault("stop_loss", entry * (1 - limits.stop_loss_percentage / 100))
        data.setdefault("take_profit", entry * (1 + limits.take_profit_percentage / 100))

    return Opportunity(**data)


async def handle_new_signal(
    signal: Dict[str, Any],
    engine,
    *,
    limits: Optional[TradingLimits] = None,
    wait: bool = False,
) -> Optional[Opportunity]:
    """Validate with Pydantic and queue on the engine. Invalid records are dropped."""
    try:
        opp = to_opportunity(signal, limits or getattr(engine, "limits", None))
    except ValidationError as ve:
        logger.warning("Signal validation failed: %s", ve)
        return None

    if wait:
        await engine.submit(opp)
    elif not engine.submit_nowait(opp):
        return None
    logger.info("📥 Queued signal for %s (confidence %.2f)", opp.symbol, opp.confidence)
    return opp
